from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from glasstodo.models import TaskCollection
from glasstodo.observability import get_json_logger, get_metrics
from glasstodo.store.interface import TaskStore


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class PublishAccepted:
    version: int


@dataclass(frozen=True, slots=True)
class PublishConflict:
    """The caller's copy is older than the stored one; nothing was written."""

    server_version: int


PublishResult = PublishAccepted | PublishConflict


class SyncReconciler:
    """Optimistic-concurrency read/write of whole task documents.

    - ``fetch`` returns the stored document or an empty one at version 0.
    - ``publish`` rejects a stale writer unless ``force`` is set, otherwise
      replaces the whole document and stamps it with the write time.

    The version read and the write are separate store calls with no lock in
    between; two concurrent publishes for one user can both pass the check and
    the later write wins.
    """

    def __init__(self, store: TaskStore, *, clock: Callable[[], int] | None = None) -> None:
        self._store = store
        self._clock = clock or now_ms
        self._logger = get_json_logger("glasstodo.sync")

    def fetch(self, username: str) -> tuple[list[Any], int]:
        doc = self._store.get(username)
        if doc is None:
            return [], 0
        return doc.tasks, doc.version

    def publish(
        self,
        username: str,
        tasks: list[Any],
        client_version: int,
        force: bool = False,
    ) -> PublishResult:
        metrics = get_metrics()
        current = self._store.get(username)
        server_version = current.version if current is not None else 0
        if not force and client_version < server_version:
            self._logger.info(
                "sync conflict",
                extra={
                    "event": "sync_conflict",
                    "username": username,
                    "version": client_version,
                    "server_version": server_version,
                },
            )
            metrics.increment("sync_conflicts")
            return PublishConflict(server_version=server_version)

        # Write time as version; bump past the stored one if the clock has not moved
        new_version = max(self._clock(), server_version + 1)
        self._store.put(TaskCollection(username=username, tasks=tasks, version=new_version))
        self._logger.info(
            "sync publish",
            extra={
                "event": "sync_publish",
                "username": username,
                "version": new_version,
                "attributes": {"task_count": len(tasks), "force": force},
            },
        )
        metrics.increment("sync_publishes", {"force": str(force).lower()})
        return PublishAccepted(version=new_version)


__all__ = ["PublishAccepted", "PublishConflict", "PublishResult", "SyncReconciler", "now_ms"]
