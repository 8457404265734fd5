from __future__ import annotations

import copy
import threading
from collections.abc import Iterable, Iterator, Mapping

from glasstodo.models import PushSubscription, TaskCollection


class InMemoryTaskStore:
    """Thread-safe in-process task documents.

    Collections are deep-copied on the way in and out so callers never share
    mutable state with the store, matching what a real backend gives them.
    """

    def __init__(self) -> None:
        self._docs: dict[str, TaskCollection] = {}
        self._lock = threading.RLock()

    def get(self, username: str) -> TaskCollection | None:
        with self._lock:
            doc = self._docs.get(username)
            return copy.deepcopy(doc) if doc is not None else None

    def put(self, collection: TaskCollection) -> None:
        with self._lock:
            self._docs[collection.username] = copy.deepcopy(collection)

    def delete(self, username: str) -> bool:
        with self._lock:
            return self._docs.pop(username, None) is not None

    def list_all(self) -> Iterator[TaskCollection]:
        with self._lock:
            snapshot = [copy.deepcopy(d) for _, d in sorted(self._docs.items())]
        yield from snapshot


class InMemorySubscriptionRegistry:
    def __init__(self) -> None:
        self._subs: dict[str, PushSubscription] = {}
        self._lock = threading.RLock()

    def get(self, endpoint: str) -> PushSubscription | None:
        with self._lock:
            sub = self._subs.get(endpoint)
            return sub.model_copy() if sub is not None else None

    def upsert(self, subscription: PushSubscription) -> None:
        with self._lock:
            self._subs[subscription.endpoint] = subscription.model_copy()

    def delete(self, endpoint: str) -> bool:
        with self._lock:
            return self._subs.pop(endpoint, None) is not None

    def list_for_user(self, username: str) -> list[PushSubscription]:
        with self._lock:
            return [
                s.model_copy()
                for _, s in sorted(self._subs.items())
                if s.username == username
            ]

    def delete_for_user(self, username: str, endpoint: str | None = None) -> int:
        with self._lock:
            doomed = [
                e
                for e, s in self._subs.items()
                if s.username == username and (endpoint is None or e == endpoint)
            ]
            for e in doomed:
                del self._subs[e]
            return len(doomed)

    def list_all(self) -> Iterator[PushSubscription]:
        with self._lock:
            snapshot = [s.model_copy() for _, s in sorted(self._subs.items())]
        yield from snapshot


class InMemorySettingsStore:
    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            return {k: self._values[k] for k in keys if k in self._values}

    def set_many(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._values.update(values)


__all__ = ["InMemoryTaskStore", "InMemorySubscriptionRegistry", "InMemorySettingsStore"]
