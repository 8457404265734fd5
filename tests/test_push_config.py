from __future__ import annotations

import base64
from collections.abc import Iterable, Mapping

from glasstodo.config import DEFAULT_VAPID_SUBJECT, load_config
from glasstodo.errors import StorageError
from glasstodo.push.vapid import PushConfig, generate_vapid_keys, init_push_config
from glasstodo.store.memory import InMemorySettingsStore


def _b64_len(value: str) -> int:
    return len(base64.urlsafe_b64decode(value + "=" * (-len(value) % 4)))


def _never() -> tuple[str, str]:
    raise AssertionError("keys should not be generated")


def test_environment_keys_win() -> None:
    settings = InMemorySettingsStore({"vapid_public_key": "stored", "vapid_private_key": "s"})
    cfg = load_config({"VAPID_PUBLIC_KEY": "envpub", "VAPID_PRIVATE_KEY": "envpriv"})
    push = init_push_config(settings, cfg, generate=_never)
    assert (push.public_key, push.private_key) == ("envpub", "envpriv")


def test_stored_keys_reused_across_restarts() -> None:
    settings = InMemorySettingsStore(
        {"vapid_public_key": "pub", "vapid_private_key": "priv", "vapid_subject": "mailto:me@x"}
    )
    push = init_push_config(settings, load_config({}), generate=_never)
    assert push == PushConfig("pub", "priv", "mailto:me@x")


def test_generated_once_and_persisted() -> None:
    settings = InMemorySettingsStore()
    calls: list[int] = []

    def gen() -> tuple[str, str]:
        calls.append(1)
        return "genpub", "genpriv"

    first = init_push_config(settings, load_config({}), generate=gen)
    second = init_push_config(settings, load_config({}), generate=gen)

    assert first == second == PushConfig("genpub", "genpriv", DEFAULT_VAPID_SUBJECT)
    assert len(calls) == 1


def test_no_autogeneration_leaves_push_disabled() -> None:
    cfg = load_config({"PUSH_AUTOGENERATE_KEYS": "false"})
    push = init_push_config(InMemorySettingsStore(), cfg, generate=_never)
    assert not push.is_configured


class _UnreachableSettings:
    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        raise StorageError("down")

    def set_many(self, values: Mapping[str, str]) -> None:
        raise StorageError("down")


def test_settings_failures_do_not_block_startup() -> None:
    push = init_push_config(_UnreachableSettings(), load_config({}), generate=lambda: ("p", "k"))
    assert push.is_configured


def test_generate_vapid_keys_formats() -> None:
    public_key, private_key = generate_vapid_keys()
    assert "=" not in public_key and "=" not in private_key
    # Uncompressed P-256 point and raw scalar
    assert _b64_len(public_key) == 65
    assert _b64_len(private_key) == 32
    assert generate_vapid_keys() != (public_key, private_key)
