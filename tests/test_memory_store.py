from __future__ import annotations

from glasstodo.models import TaskCollection
from glasstodo.store.memory import (
    InMemorySettingsStore,
    InMemorySubscriptionRegistry,
    InMemoryTaskStore,
)
from tests.helpers.push import make_subscription


def test_task_store_hands_out_copies() -> None:
    store = InMemoryTaskStore()
    original = TaskCollection(username="alice", tasks=[{"id": "t1"}], version=1)
    store.put(original)
    original.tasks.append({"id": "sneaky"})

    doc = store.get("alice")
    assert doc is not None
    assert doc.tasks == [{"id": "t1"}]
    doc.tasks[0]["notifiedAt"] = 5
    again = store.get("alice")
    assert again is not None
    assert again.tasks == [{"id": "t1"}]


def test_task_store_delete_and_list() -> None:
    store = InMemoryTaskStore()
    store.put(TaskCollection(username="b", version=1))
    store.put(TaskCollection(username="a", version=2))
    assert [d.username for d in store.list_all()] == ["a", "b"]
    assert store.delete("a") is True
    assert store.delete("a") is False


def test_registry_reassigns_endpoint_on_resubscribe() -> None:
    reg = InMemorySubscriptionRegistry()
    reg.upsert(make_subscription("alice", "e1"))
    reg.upsert(make_subscription("bob", "e1"))
    assert reg.list_for_user("alice") == []
    assert [s.username for s in reg.list_all()] == ["bob"]
    assert reg.delete_for_user("alice", "e1") == 0
    assert reg.delete_for_user("bob") == 1


def test_settings_store() -> None:
    settings = InMemorySettingsStore()
    settings.set_many({"k": "v"})
    assert settings.get_many(["k", "missing"]) == {"k": "v"}
