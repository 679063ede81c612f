"""Configuration from environment variables (.env)."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    project_root: Path
    logs_dir: Path
    api_version: str
    cache_ttl_seconds: int
    cache_max_entries: int
    max_concurrency: int
    timeout_free: float
    timeout_pro: float
    timeout_enterprise: float
    enhancer_url: str
    enhancer_model: str
    enhancer_timeout: float
    enhancer_min_confidence: float
    enhance_natural: bool
    suggestion_count: int
    slow_database_ms: float
    analytics_buffer: int

    @classmethod
    def load(cls) -> "Config":
        project_root = Path(__file__).parent.parent.parent
        logs_dir = os.getenv("ALTUS_LOGS_DIR", "")
        return cls(
            project_root=project_root,
            logs_dir=Path(logs_dir) if logs_dir else project_root / "logs",
            api_version=os.getenv("ALTUS_API_VERSION", "0.3.0"),
            cache_ttl_seconds=int(os.getenv("ALTUS_CACHE_TTL_SECONDS", "300")),
            cache_max_entries=int(os.getenv("ALTUS_CACHE_MAX_ENTRIES", "10000")),
            max_concurrency=int(os.getenv("ALTUS_MAX_CONCURRENCY", "10")),
            timeout_free=float(os.getenv("ALTUS_TIMEOUT_FREE", "0.5")),
            timeout_pro=float(os.getenv("ALTUS_TIMEOUT_PRO", "1.0")),
            timeout_enterprise=float(os.getenv("ALTUS_TIMEOUT_ENTERPRISE", "2.0")),
            enhancer_url=os.getenv("ALTUS_ENHANCER_URL", ""),
            enhancer_model=os.getenv("ALTUS_ENHANCER_MODEL", "gpt-4o-mini"),
            enhancer_timeout=float(os.getenv("ALTUS_ENHANCER_TIMEOUT", "3.0")),
            enhancer_min_confidence=float(os.getenv("ALTUS_ENHANCER_MIN_CONFIDENCE", "0.5")),
            enhance_natural=_env_bool("ALTUS_ENHANCE_NATURAL"),
            suggestion_count=int(os.getenv("ALTUS_SUGGESTION_COUNT", "5")),
            slow_database_ms=float(os.getenv("ALTUS_SLOW_DATABASE_MS", "1000")),
            analytics_buffer=int(os.getenv("ALTUS_ANALYTICS_BUFFER", "10000")),
        )

    def tier_timeouts(self) -> dict[str, float]:
        """Per-database query timeout (seconds) keyed by rate-limit tier."""
        return {
            "free": self.timeout_free,
            "pro": self.timeout_pro,
            "enterprise": self.timeout_enterprise,
        }

    def validate(self) -> list[str]:
        errors = []
        if self.cache_ttl_seconds <= 0:
            errors.append(f"ALTUS_CACHE_TTL_SECONDS must be positive, got {self.cache_ttl_seconds}")
        if self.max_concurrency < 1:
            errors.append(f"ALTUS_MAX_CONCURRENCY must be >= 1, got {self.max_concurrency}")
        for tier, timeout in self.tier_timeouts().items():
            if timeout <= 0:
                errors.append(f"Timeout for tier '{tier}' must be positive, got {timeout}")
        if not 0.0 <= self.enhancer_min_confidence <= 1.0:
            errors.append(
                f"ALTUS_ENHANCER_MIN_CONFIDENCE must be within [0, 1], got {self.enhancer_min_confidence}"
            )
        if self.enhancer_timeout <= 0:
            errors.append(f"ALTUS_ENHANCER_TIMEOUT must be positive, got {self.enhancer_timeout}")
        return errors


config = Config.load()
