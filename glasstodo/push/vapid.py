from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from py_vapid.utils import b64urlencode

from glasstodo.config import DEFAULT_VAPID_SUBJECT, ServerConfig
from glasstodo.errors import StorageError
from glasstodo.observability import get_json_logger
from glasstodo.store.interface import SettingsStore

PUBLIC_KEY_SETTING = "vapid_public_key"
PRIVATE_KEY_SETTING = "vapid_private_key"
SUBJECT_SETTING = "vapid_subject"


@dataclass(frozen=True, slots=True)
class PushConfig:
    """VAPID signing identity shared by every push send in the process."""

    public_key: str | None = None
    private_key: str | None = None
    subject: str = DEFAULT_VAPID_SUBJECT

    @property
    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key)


def generate_vapid_keys() -> tuple[str, str]:
    """Create a fresh P-256 key pair as (public, private) URL-safe base64 strings.

    The public key is the uncompressed point browsers expect as
    ``applicationServerKey``; the private key is the raw 32-byte scalar.
    """
    vapid = Vapid()
    vapid.generate_keys()
    raw_private = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    raw_public = vapid.public_key.public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )
    return b64urlencode(raw_public), b64urlencode(raw_private)


def init_push_config(
    settings: SettingsStore,
    config: ServerConfig,
    *,
    generate: Callable[[], tuple[str, str]] = generate_vapid_keys,
) -> PushConfig:
    """Resolve the signing keys once at startup.

    Order:
    1. ``VAPID_PUBLIC_KEY`` / ``VAPID_PRIVATE_KEY`` / ``VAPID_SUBJECT`` from the environment
    2. keys stored in the settings table by an earlier run
    3. a freshly generated pair, persisted so restarts reuse it

    Settings read/write failures are logged and do not abort startup; the result
    may be unconfigured, in which case push features stay disabled.
    """
    logger = get_json_logger("glasstodo.push")
    public_key = config.vapid_public_key
    private_key = config.vapid_private_key
    subject = config.vapid_subject

    if public_key and private_key:
        logger.info("vapid keys from environment", extra={"event": "vapid_env"})
        return PushConfig(public_key, private_key, subject or DEFAULT_VAPID_SUBJECT)

    try:
        stored = settings.get_many([PUBLIC_KEY_SETTING, PRIVATE_KEY_SETTING, SUBJECT_SETTING])
    except StorageError:
        logger.warning("vapid load failed", extra={"event": "vapid_load_failed"}, exc_info=True)
        stored = {}
    public_key = public_key or stored.get(PUBLIC_KEY_SETTING)
    private_key = private_key or stored.get(PRIVATE_KEY_SETTING)
    subject = subject or stored.get(SUBJECT_SETTING)

    if public_key and private_key:
        logger.info("vapid keys from settings", extra={"event": "vapid_stored"})
        return PushConfig(public_key, private_key, subject or DEFAULT_VAPID_SUBJECT)

    if not config.autogenerate_keys:
        logger.warning("push not configured", extra={"event": "vapid_missing"})
        return PushConfig(subject=subject or DEFAULT_VAPID_SUBJECT)

    public_key, private_key = generate()
    subject = subject or DEFAULT_VAPID_SUBJECT
    try:
        settings.set_many(
            {
                PUBLIC_KEY_SETTING: public_key,
                PRIVATE_KEY_SETTING: private_key,
                SUBJECT_SETTING: subject,
            }
        )
    except StorageError:
        logger.warning("vapid save failed", extra={"event": "vapid_save_failed"}, exc_info=True)
    logger.info("vapid keys generated", extra={"event": "vapid_generated"})
    return PushConfig(public_key, private_key, subject)


__all__ = ["PushConfig", "generate_vapid_keys", "init_push_config"]
