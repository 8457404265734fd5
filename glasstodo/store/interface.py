from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol

from glasstodo.models import PushSubscription, TaskCollection


class TaskStore(Protocol):
    """Durable per-user task documents keyed by username.

    Each call is atomic on its own; callers get no multi-call transactions.
    Implementations raise ``StorageError`` on backend failures.
    """

    def get(self, username: str) -> TaskCollection | None:
        """Return the stored collection, or None if the user never wrote one."""

    def put(self, collection: TaskCollection) -> None:
        """Replace the user's whole collection (tasks and version)."""

    def delete(self, username: str) -> bool:
        """Drop the user's collection. Returns True if something was removed."""

    def list_all(self) -> Iterable[TaskCollection]:
        """Yield every stored collection."""


class SubscriptionRegistry(Protocol):
    """Durable push subscriptions keyed by endpoint, indexed by owner."""

    def get(self, endpoint: str) -> PushSubscription | None: ...

    def upsert(self, subscription: PushSubscription) -> None:
        """Insert or replace by endpoint; ownership moves to the new username."""

    def delete(self, endpoint: str) -> bool: ...

    def list_for_user(self, username: str) -> list[PushSubscription]: ...

    def delete_for_user(self, username: str, endpoint: str | None = None) -> int:
        """Remove one endpoint owned by username, or all of them when endpoint is None."""

    def list_all(self) -> Iterable[PushSubscription]: ...


class SettingsStore(Protocol):
    """Small key/value table for server settings such as signing keys."""

    def get_many(self, keys: Iterable[str]) -> dict[str, str]: ...

    def set_many(self, values: Mapping[str, str]) -> None: ...


__all__ = ["TaskStore", "SubscriptionRegistry", "SettingsStore"]
