"""Query enhancer: optional semantic rewrite with a degrade-not-fail contract."""

import asyncio
from dataclasses import dataclass

from altus.contracts.search_v1 import QuerySuggestion, SearchMode, SuggestionType
from altus.core.logger import logger
from altus.observability import traceable
from altus.orchestrators.search.errors import EnhancementError
from altus.orchestrators.search.interface import SemanticEnhancementService
from altus.orchestrators.search.outcomes import Outcome


@dataclass(frozen=True)
class Enhancement:
    original_query: str
    optimized_query: str
    confidence: float = 0.0

    @property
    def applied(self) -> bool:
        return self.optimized_query != self.original_query

    def as_suggestion(self) -> QuerySuggestion | None:
        if not self.applied:
            return None
        return QuerySuggestion(
            text=self.optimized_query,
            score=round(self.confidence, 4),
            type=SuggestionType.SEMANTIC,
        )


class QueryEnhancer:
    """Wraps a SemanticEnhancementService with a timeout and raw-query fallback."""

    def __init__(
        self,
        service: SemanticEnhancementService | None,
        timeout: float = 3.0,
        min_confidence: float = 0.5,
        enhance_natural: bool = False,
    ):
        self._service = service
        self._timeout = timeout
        self._min_confidence = min_confidence
        self._enhance_natural = enhance_natural

    def applies_to(self, mode: SearchMode) -> bool:
        if self._service is None:
            return False
        if mode == SearchMode.SEMANTIC:
            return True
        return mode == SearchMode.NATURAL and self._enhance_natural

    async def close(self) -> None:
        if self._service is not None:
            await self._service.close()

    @traceable(name="search_enhance", run_type="chain")
    async def enhance(self, query: str) -> Outcome[Enhancement]:
        """Rewrite ``query``. Every failure degrades to the raw query."""
        fallback = Enhancement(original_query=query, optimized_query=query)
        if self._service is None:
            return Outcome.degraded("no enhancement service configured", fallback)

        try:
            payload = await asyncio.wait_for(
                self._service.rewrite(query), timeout=self._timeout
            )
        except TimeoutError as e:
            logger.warning("Query enhancement timed out after %.1fs; using raw query", self._timeout)
            return Outcome.degraded("timeout", fallback, error=e)
        except EnhancementError as e:
            logger.warning("Query enhancement unavailable (%s); using raw query", e.code)
            return Outcome.degraded(e.code.lower(), fallback, error=e)
        except Exception as e:
            logger.warning("Query enhancement failed: %s; using raw query", e)
            return Outcome.degraded(f"error: {e}", fallback, error=e)

        optimized = str((payload or {}).get("optimizedQuery") or "").strip()
        try:
            confidence = float((payload or {}).get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0
        confidence = min(1.0, max(0.0, confidence))

        if not optimized:
            return Outcome.degraded("empty rewrite", fallback)
        if confidence < self._min_confidence:
            logger.debug(
                "Enhancement confidence %.2f below %.2f; keeping raw query",
                confidence,
                self._min_confidence,
            )
            return Outcome.ok(
                Enhancement(original_query=query, optimized_query=query, confidence=confidence)
            )

        logger.info("Enhanced query %r -> %r (confidence=%.2f)", query, optimized, confidence)
        return Outcome.ok(
            Enhancement(original_query=query, optimized_query=optimized, confidence=confidence)
        )
