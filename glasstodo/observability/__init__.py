from __future__ import annotations

import contextvars
import datetime as dt
import json
import logging
import os
import sys
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import Any

# Push key material and credentials never reach the log stream
SENSITIVE_KEYS = frozenset(
    {
        "auth",
        "p256dh",
        "private_key",
        "vapid_private_key",
        "authorization",
        "password",
        "secret",
        "token",
    }
)

# Record attributes promoted to top-level JSON fields when a caller passes them in `extra`
EXTRA_FIELDS = (
    "event",
    "service",
    "username",
    "endpoint",
    "version",
    "server_version",
    "status_code",
    "scan_id",
    "attributes",
)

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_scan_context_var: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "glasstodo_scan_context", default=None
)


def _redact(obj: Any) -> Any:
    if isinstance(obj, Mapping):
        return {
            k: "[REDACTED]" if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else _redact(v)
            for k, v in obj.items()
        }
    if isinstance(obj, list | tuple):
        return [_redact(v) for v in obj]
    return obj


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Collect extras from the record, filling scan_id/username from the scan context."""
    fields = {name: getattr(record, name) for name in EXTRA_FIELDS if hasattr(record, name)}
    for key, value in (get_scan_context() or {}).items():
        if value is not None:
            fields.setdefault(key, value)
    if isinstance(fields.get("attributes"), Mapping):
        fields["attributes"] = _redact(fields["attributes"])
    return fields


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg and any known extras."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "ts": dt.datetime.fromtimestamp(record.created, dt.UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(_record_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload["err_type"] = exc_type.__name__
            payload["err"] = str(exc_value)
            payload["stack"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleLogFormatter(logging.Formatter):
    """Compact human-readable lines for interactive terminals."""

    def __init__(self) -> None:
        super().__init__("%(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        fields = _record_fields(record)
        parts = [self.formatTime(record, self.datefmt), record.levelname, record.name]
        if "event" in fields:
            parts.append(str(fields["event"]))
        if "username" in fields:
            parts.append(f"user={fields['username']}")
        if "scan_id" in fields:
            parts.append(f"scan={str(fields['scan_id'])[:8]}")
        if fields.get("status_code") is not None:
            parts.append(f"status={fields['status_code']}")
        line = " ".join([*parts, "-", record.getMessage()])
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _choose_formatter() -> logging.Formatter:
    pref = (os.getenv("LOG_FORMAT") or "auto").strip().lower()
    if pref == "console" or (pref == "auto" and sys.stdout.isatty()):
        return ConsoleLogFormatter()
    return JsonLogFormatter()


def _log_level() -> int:
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


def _bind(logger: logging.Logger) -> None:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(_choose_formatter())
    logger.addHandler(handler)
    logger.setLevel(_log_level())
    logger.propagate = False


def get_json_logger(name: str = "glasstodo") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        _bind(logger)
    return logger


def configure_uvicorn_logging() -> None:
    """Route uvicorn's loggers through our formatter, replacing its default handlers."""
    for name in UVICORN_LOGGERS:
        lg = logging.getLogger(name)
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()
        _bind(lg)


class Metrics:
    """In-process counters keyed by name and label set."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}

    def increment(
        self,
        name: str,
        labels: Mapping[str, str] | None = None,
        amount: int = 1,
    ) -> None:
        key = (name, tuple(sorted((labels or {}).items())))
        self._counters[key] = self._counters.get(key, 0) + amount

    def total(self, name: str) -> int:
        """Sum a counter across all label sets."""
        return sum(v for (n, _), v in self._counters.items() if n == name)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {"name": name, "labels": dict(labels), "value": value}
            for (name, labels), value in sorted(self._counters.items())
        ]


def get_scan_context() -> dict[str, Any] | None:
    return _scan_context_var.get()


@contextmanager
def use_scan_context(scan_id: str, username: str | None = None) -> Generator[None, None, None]:
    token = _scan_context_var.set({"scan_id": scan_id, "username": username})
    try:
        yield None
    finally:
        _scan_context_var.reset(token)


_metrics_singleton: Metrics | None = None


def get_metrics() -> Metrics:
    global _metrics_singleton
    if _metrics_singleton is None:
        _metrics_singleton = Metrics()
    return _metrics_singleton


def reset_metrics() -> None:
    global _metrics_singleton
    _metrics_singleton = Metrics()


__all__ = [
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "Metrics",
    "configure_uvicorn_logging",
    "get_json_logger",
    "get_metrics",
    "get_scan_context",
    "reset_metrics",
    "use_scan_context",
]
