"""Structured logging: console plus a JSON-lines event file."""

import contextvars
import json
import logging
import os
import sys
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from altus.core.config import config


def _format_duration(ms: float) -> str:
    if ms < 0:
        return "0ms"
    if ms >= 60_000:
        m = int(ms // 60_000)
        s = (ms % 60_000) / 1000
        return f"{m}m {s:.0f}s"
    if ms >= 1000:
        return f"{ms / 1000:.1f}s"
    if ms >= 1:
        return f"{ms:.0f}ms"
    if ms > 0:
        return "<1ms"
    return "0ms"


def _short_query(query: str | None, max_len: int = 60) -> str:
    """One-line query preview for console lines."""
    if not query or not query.strip():
        return ""
    s = " ".join(query.split())
    return s[:max_len] + "..." if len(s) > max_len else s


_CONSOLE_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def _console_kwargs(kwargs: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k in _CONSOLE_KWARGS}


_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "altus_request_id", default=None
)


def _use_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    try:
        return sys.stdout.isatty()
    except Exception:
        return False


def _c(role: str) -> str:
    if not _use_color():
        return ""
    codes = {
        "dim": "\033[38;5;239m",
        "db": "\033[38;5;81m",
        "ok": "\033[38;5;78m",
        "fail": "\033[38;5;203m",
        "duration": "\033[38;5;221m",
        "mode": "\033[38;5;245m",
    }
    return codes.get(role, "")


def _reset() -> str:
    if not _use_color():
        return ""
    return "\033[0m"


@dataclass
class LogEvent:
    event_type: str
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AltusLogger:
    def __init__(self):
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = config.logs_dir / "altus.log"
        self._file_lock = threading.Lock()
        self._log_file_handle = open(self.log_file, "a", encoding="utf-8")
        self._setup_console_logger()

    def _setup_console_logger(self):
        self.console = logging.getLogger("altus")
        self.console.setLevel(logging.DEBUG)
        self._console_formatter = logging.Formatter(
            "%(asctime)s │ %(message)s", datefmt="%H:%M:%S"
        )
        if not self.console.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.INFO)
            handler.setFormatter(self._console_formatter)
            self.console.addHandler(handler)

    def log_event(self, event: LogEvent) -> None:
        request_id = _request_id.get()
        if request_id and "request_id" not in event.data:
            event.data["request_id"] = request_id
        with self._file_lock:
            self._log_file_handle.write(event.to_json() + "\n")
            self._log_file_handle.flush()

    def _timestamp(self) -> str:
        return datetime.now().isoformat()

    def _prefix(self) -> str:
        request_id = _request_id.get()
        if request_id:
            return f"{_c('dim')}[{request_id[:8]}]{_reset()} "
        return ""

    def bind_request(self, request_id: str | None) -> contextvars.Token:
        """Tag every log line in the current task with request_id."""
        return _request_id.set(request_id)

    def unbind_request(self, token: contextvars.Token) -> None:
        _request_id.reset(token)

    def search_started(self, caller_id: str, query: str, mode: str, databases: int):
        event = LogEvent(
            event_type="SEARCH_STARTED",
            timestamp=self._timestamp(),
            data={
                "caller_id": caller_id,
                "query": query[:500],
                "mode": mode,
                "databases": databases,
            },
        )
        self.log_event(event)
        self.console.info(
            f"{self._prefix()}Search  {_short_query(query)!r}  "
            f"{_c('mode')}[{mode}]{_reset()}  databases={databases or 'all'}"
        )

    def backend_failed(self, database_id: str, reason: str, elapsed_ms: float):
        event = LogEvent(
            event_type="BACKEND_FAILED",
            timestamp=self._timestamp(),
            data={
                "database_id": database_id,
                "reason": reason[:500],
                "elapsed_ms": round(elapsed_ms, 1),
            },
        )
        self.log_event(event)
        dur = f"{_c('duration')}{_format_duration(elapsed_ms)}{_reset()}"
        self.console.warning(
            f"{self._prefix()}{_c('fail')}[failed]{_reset()} "
            f"{_c('db')}{database_id}{_reset()}  after {dur}  {reason[:80]}"
        )

    def search_completed(
        self,
        result_count: int,
        total_count: int,
        elapsed_ms: float,
        *,
        cached: bool,
        failed: int = 0,
    ):
        event = LogEvent(
            event_type="SEARCH_COMPLETED",
            timestamp=self._timestamp(),
            data={
                "results": result_count,
                "total": total_count,
                "elapsed_ms": round(elapsed_ms, 1),
                "cached": cached,
                "failed_databases": failed,
            },
        )
        self.log_event(event)
        dur = f"{_c('duration')}{_format_duration(elapsed_ms)}{_reset()}"
        source = "cache" if cached else "backends"
        failed_suffix = f"  {_c('fail')}{failed} failed{_reset()}" if failed else ""
        self.console.info(
            f"{self._prefix()}{_c('ok')}Done{_reset()}  {result_count}/{total_count} results "
            f"from {source} in {dur}{failed_suffix}"
        )

    def _record(self, event_type: str, message: str, **extra: Any) -> None:
        data: dict[str, Any] = {"message": message[:500]}
        data.update(extra)
        self.log_event(LogEvent(event_type=event_type, timestamp=self._timestamp(), data=data))

    def error(self, message: str, *args, exception: Exception | None = None, **kwargs):
        self._record("ERROR", message, exception=str(exception) if exception else None)
        log_kwargs = _console_kwargs(kwargs)
        if exception and "exc_info" not in log_kwargs:
            log_kwargs["exc_info"] = exception
        self.console.error(f"{self._prefix()}Error: {message}", *args, **log_kwargs)

    def info(self, message: str, *args, **kwargs):
        self.console.info(f"{self._prefix()}{message}", *args, **_console_kwargs(kwargs))

    def warning(self, message: str, *args, **kwargs):
        self._record("WARNING", message)
        self.console.warning(f"{self._prefix()}{message}", *args, **_console_kwargs(kwargs))

    def debug(self, message: str, *args, **kwargs):
        self._record("DEBUG", message)
        self.console.debug(f"{self._prefix()}{message}", *args, **_console_kwargs(kwargs))


logger = AltusLogger()
