from __future__ import annotations

import threading

import pytest

from glasstodo.errors import StorageError
from glasstodo.models import PushSubscription, Task
from glasstodo.observability import get_metrics
from glasstodo.push.dispatcher import (
    NotificationDispatcher,
    build_reminder_payload,
    build_test_payload,
)
from glasstodo.push.vapid import PushConfig
from glasstodo.store.memory import InMemorySubscriptionRegistry
from tests.helpers.push import FakeTransport, make_subscription


def _registry(*subs: PushSubscription) -> InMemorySubscriptionRegistry:
    reg = InMemorySubscriptionRegistry()
    for s in subs:
        reg.upsert(s)
    return reg


def test_reminder_payload_includes_date_and_start() -> None:
    msg = build_reminder_payload(Task(id="t1", title="Dentist", date="2026-10-20", start="09:30"))
    assert msg.body == "Dentist (2026-10-20 09:30)"
    assert msg.tag == "task-t1"
    assert msg.url == "/"
    assert msg.title


def test_reminder_payload_without_schedule_is_just_the_title() -> None:
    assert build_reminder_payload(Task(id=3, title="Stretch")).body == "Stretch"
    assert build_reminder_payload(Task(id=3, title="Stretch", start="10:00")).body == "Stretch"
    assert build_reminder_payload(Task(id=3, title="X", date="2026-01-01")).body == "X (2026-01-01)"
    assert build_reminder_payload(Task(id=3)).tag == "task-3"


def test_reminder_payload_stringifies_non_text_fields() -> None:
    msg = build_reminder_payload(Task(id=1.5, title=42, date="2026-10-20", start=930))
    assert msg.body == "42 (2026-10-20 930)"
    assert msg.tag == "task-1.5"


def test_test_payload_tag_is_unique_per_call() -> None:
    assert build_test_payload(1).tag != build_test_payload(2).tag


@pytest.mark.asyncio
async def test_not_configured_is_a_silent_no_op() -> None:
    transport = FakeTransport()
    d = NotificationDispatcher(_registry(make_subscription("alice", "e1")), transport, PushConfig())
    assert await d.dispatch("alice", build_test_payload(1)) is False
    assert transport.attempts == []


@pytest.mark.asyncio
async def test_no_subscriptions_returns_false(push_config: PushConfig) -> None:
    d = NotificationDispatcher(_registry(), FakeTransport(), push_config)
    assert await d.dispatch("alice", build_test_payload(1)) is False


@pytest.mark.asyncio
async def test_fans_out_to_every_device_of_the_user(push_config: PushConfig) -> None:
    transport = FakeTransport()
    reg = _registry(
        make_subscription("alice", "e1"),
        make_subscription("alice", "e2"),
        make_subscription("bob", "e3"),
    )
    d = NotificationDispatcher(reg, transport, push_config)

    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert sorted(e for e, _ in transport.sent) == ["e1", "e2"]
    assert get_metrics().total("push_sent") == 2


@pytest.mark.asyncio
async def test_gone_endpoint_is_pruned_and_others_untouched(push_config: PushConfig) -> None:
    transport = FakeTransport(fail_with={"dead": 410})
    reg = _registry(
        make_subscription("alice", "dead"),
        make_subscription("alice", "live"),
        make_subscription("bob", "bob-1"),
    )
    d = NotificationDispatcher(reg, transport, push_config)

    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert reg.get("dead") is None
    assert reg.get("live") is not None
    assert reg.get("bob-1") is not None
    assert [e for e, _ in transport.sent] == ["live"]
    assert get_metrics().total("push_pruned") == 1


@pytest.mark.asyncio
async def test_not_found_also_prunes(push_config: PushConfig) -> None:
    reg = _registry(make_subscription("alice", "e1"))
    d = NotificationDispatcher(reg, FakeTransport(fail_with={"e1": 404}), push_config)
    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert reg.list_for_user("alice") == []


@pytest.mark.asyncio
async def test_other_failures_keep_subscription_and_still_count_as_attempted(
    push_config: PushConfig,
) -> None:
    reg = _registry(make_subscription("alice", "e1"), make_subscription("alice", "e2"))
    transport = FakeTransport(fail_with={"e1": 500, "e2": None})
    d = NotificationDispatcher(reg, transport, push_config)

    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert len(reg.list_for_user("alice")) == 2
    assert get_metrics().total("push_failed") == 2


@pytest.mark.asyncio
async def test_unexpected_transport_error_does_not_block_siblings(
    push_config: PushConfig,
) -> None:
    def boom(sub: PushSubscription) -> None:
        if sub.endpoint == "e1":
            raise RuntimeError("bug in transport")

    reg = _registry(make_subscription("alice", "e1"), make_subscription("alice", "e2"))
    transport = FakeTransport(on_send=boom)
    d = NotificationDispatcher(reg, transport, push_config)

    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert [e for e, _ in transport.sent] == ["e2"]


@pytest.mark.asyncio
async def test_sends_run_concurrently(push_config: PushConfig) -> None:
    # e1 only completes once e2 has been attempted; a sequential fan-out would stall
    e2_attempted = threading.Event()
    e1_saw_e2: list[bool] = []

    def gate(sub: PushSubscription) -> None:
        if sub.endpoint == "e1":
            e1_saw_e2.append(e2_attempted.wait(timeout=2.0))
        else:
            e2_attempted.set()

    reg = _registry(make_subscription("alice", "e1"), make_subscription("alice", "e2"))
    d = NotificationDispatcher(reg, FakeTransport(on_send=gate), push_config)

    assert await d.dispatch("alice", build_test_payload(1)) is True
    assert e1_saw_e2 == [True]


class _BrokenRegistry(InMemorySubscriptionRegistry):
    def list_for_user(self, username: str) -> list[PushSubscription]:
        raise StorageError("down")


@pytest.mark.asyncio
async def test_registry_failure_returns_false(push_config: PushConfig) -> None:
    transport = FakeTransport()
    d = NotificationDispatcher(_BrokenRegistry(), transport, push_config)
    assert await d.dispatch("alice", build_test_payload(1)) is False
    assert transport.attempts == []
