from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

DEFAULT_VAPID_SUBJECT = "mailto:admin@example.com"
DEFAULT_SCAN_INTERVAL_MS = 60 * 1000
DEFAULT_WINDOW_MS = 60 * 1000


@dataclass(frozen=True, slots=True)
class ServerConfig:
    redis_url: str
    key_prefix: str
    host: str
    port: int
    vapid_public_key: str | None
    vapid_private_key: str | None
    vapid_subject: str | None
    autogenerate_keys: bool
    scan_interval_ms: int
    window_ms: int
    push_ttl_s: int


def _read_int(e: dict[str, Any], name: str, default: int, minimum: int) -> int:
    raw = (e.get(name) or "").strip()
    try:
        value = int(raw) if raw else default
    except Exception:
        value = default
    return max(minimum, value)


def _read_bool(e: dict[str, Any], name: str, default: bool) -> bool:
    raw = (e.get(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


def _read_optional(e: dict[str, Any], name: str) -> str | None:
    value = (e.get(name) or "").strip()
    return value or None


def load_config(env: dict[str, str] | None = None) -> ServerConfig:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    return ServerConfig(
        redis_url=e.get("REDIS_URL") or "redis://localhost:6379/0",
        key_prefix=(e.get("GLASSTODO_KEY_PREFIX") or "glasstodo").rstrip(":"),
        host=e.get("HOST") or "0.0.0.0",
        port=_read_int(e, "PORT", 3000, 1),
        vapid_public_key=_read_optional(e, "VAPID_PUBLIC_KEY"),
        vapid_private_key=_read_optional(e, "VAPID_PRIVATE_KEY"),
        vapid_subject=_read_optional(e, "VAPID_SUBJECT"),
        autogenerate_keys=_read_bool(e, "PUSH_AUTOGENERATE_KEYS", True),
        # A zero interval disables the background scanner
        scan_interval_ms=_read_int(e, "PUSH_SCAN_INTERVAL_MS", DEFAULT_SCAN_INTERVAL_MS, 0),
        window_ms=_read_int(e, "PUSH_WINDOW_MS", DEFAULT_WINDOW_MS, 1),
        push_ttl_s=_read_int(e, "PUSH_TTL_S", 24 * 60 * 60, 0),
    )


__all__ = [
    "DEFAULT_SCAN_INTERVAL_MS",
    "DEFAULT_VAPID_SUBJECT",
    "DEFAULT_WINDOW_MS",
    "ServerConfig",
    "load_config",
]
