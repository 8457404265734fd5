from __future__ import annotations

from glasstodo.models import PushSubscription, Task


def test_task_keeps_unknown_client_fields() -> None:
    t = Task.model_validate(
        {"id": "t1", "title": "Call mom", "remindAt": 1000, "priority": 2, "tags": ["home"]}
    )
    assert t.remind_at == 1000
    assert t.model_extra == {"priority": 2, "tags": ["home"]}


def test_from_record_rejects_non_tasks() -> None:
    assert Task.from_record(None) is None
    assert Task.from_record("t1") is None
    assert Task.from_record({"id": "t1", "remindAt": "tomorrow"}) is None
    assert Task.from_record({"id": "t1", "remindAt": 1000, "notifiedAt": [1]}) is None


def test_from_record_accepts_any_display_field_types() -> None:
    t = Task.from_record({"id": 1712345678901.5, "title": 42, "start": 930, "remindAt": 1000})
    assert t is not None
    assert t.is_reminder_candidate
    assert Task.from_record({"title": "no id", "remindAt": 5}) is not None


def test_reminder_candidate_rules() -> None:
    assert Task(id="a", remindAt=5).is_reminder_candidate
    assert not Task(id="a").is_reminder_candidate
    assert not Task(id="a", remindAt=5, status="completed").is_reminder_candidate
    assert not Task(id="a", remindAt=5, deletedAt=99).is_reminder_candidate
    assert Task(id="a", remindAt=5, status="active").is_reminder_candidate


def test_already_notified_compares_against_remind_at() -> None:
    assert Task(id="a", remindAt=100, notifiedAt=100).is_already_notified
    assert Task(id="a", remindAt=100, notifiedAt=150).is_already_notified
    # Reminder moved later after an earlier notification: notify again
    assert not Task(id="a", remindAt=200, notifiedAt=150).is_already_notified
    assert not Task(id="a", remindAt=100).is_already_notified


def test_due_window_is_half_open() -> None:
    t = Task(id="a", remindAt=1000)
    assert not t.is_due(999, 60)
    assert t.is_due(1000, 60)
    assert t.is_due(1059, 60)
    assert not t.is_due(1060, 60)


def test_subscription_info_shape() -> None:
    sub = PushSubscription(endpoint="https://push/1", username="alice", p256dh="k", auth="a")
    assert sub.subscription_info() == {
        "endpoint": "https://push/1",
        "keys": {"p256dh": "k", "auth": "a"},
    }
    assert sub.created_at > 0
