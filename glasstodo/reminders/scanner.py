from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from glasstodo.config import DEFAULT_WINDOW_MS
from glasstodo.errors import StorageError
from glasstodo.models import Task, TaskCollection
from glasstodo.observability import get_json_logger, get_metrics, use_scan_context
from glasstodo.push.dispatcher import NotificationDispatcher, build_reminder_payload
from glasstodo.store.interface import TaskStore
from glasstodo.sync.reconciler import SyncReconciler, now_ms


@dataclass(slots=True)
class ScanReport:
    users_scanned: int = 0
    reminders_sent: int = 0
    users_updated: int = 0
    users_failed: int = 0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReminderScanner:
    """Walk every user's tasks and push reminders that are due right now.

    A task is due when it is open (not completed, not deleted), has ``remindAt``,
    was not already notified for that ``remindAt``, and the scan time falls in
    ``[remindAt, remindAt + window)``. Tasks whose window has passed are never
    notified. After a delivery attempt the task gets ``notifiedAt`` set to the
    scan time and the user's document is written back through the reconciler,
    so other devices pick up the marker on their next sync.
    """

    def __init__(
        self,
        store: TaskStore,
        reconciler: SyncReconciler,
        dispatcher: NotificationDispatcher,
        *,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._dispatcher = dispatcher
        self._window_ms = window_ms
        self._clock = clock or now_ms
        self._logger = get_json_logger("glasstodo.reminders")

    async def scan_once(self, now: int | None = None) -> ScanReport:
        report = ScanReport()
        if not self._dispatcher.is_configured:
            return report
        scan_time = self._clock() if now is None else now
        scan_id = str(uuid.uuid4())
        metrics = get_metrics()
        metrics.increment("reminder_scans")

        with use_scan_context(scan_id):
            try:
                docs = await asyncio.to_thread(lambda: list(self._store.list_all()))
            except StorageError:
                self._logger.warning(
                    "reminder scan failed", extra={"event": "scan_failed"}, exc_info=True
                )
                return report

            for doc in docs:
                report.users_scanned += 1
                with use_scan_context(scan_id, doc.username):
                    try:
                        sent = await self._scan_user(doc, scan_time)
                    except StorageError:
                        report.users_failed += 1
                        self._logger.warning(
                            "reminder write-back failed",
                            extra={"event": "scan_user_failed"},
                            exc_info=True,
                        )
                        continue
                    except Exception:
                        report.users_failed += 1
                        self._logger.exception(
                            "reminder scan errored for user", extra={"event": "scan_user_failed"}
                        )
                        continue
                if sent:
                    report.reminders_sent += sent
                    report.users_updated += 1

            self._logger.info(
                "reminder scan completed",
                extra={"event": "scan_completed", "attributes": report.as_dict()},
            )
        metrics.increment("reminders_sent", amount=report.reminders_sent)
        return report

    async def _scan_user(self, doc: TaskCollection, scan_time: int) -> int:
        sent = 0
        for record in doc.tasks:
            task = Task.from_record(record)
            if task is None:
                self._logger.debug(
                    "skipping unreadable task record", extra={"event": "scan_record_skipped"}
                )
                continue
            if not task.is_reminder_candidate:
                continue
            if task.is_already_notified or not task.is_due(scan_time, self._window_ms):
                continue
            if await self._dispatcher.dispatch(doc.username, build_reminder_payload(task)):
                # Marked per task, not per endpoint: an attempt counts as handled
                record["notifiedAt"] = scan_time
                sent += 1
                self._logger.info(
                    "reminder sent",
                    extra={"event": "reminder_sent", "attributes": {"task_id": task.id}},
                )
        if sent:
            await asyncio.to_thread(
                self._reconciler.publish, doc.username, doc.tasks, doc.version, True
            )
        return sent


class ReminderScheduler:
    """Fixed-interval ticker for the scanner, single-flight within the process.

    Every ``interval_ms`` a tick is launched; a tick that finds the previous scan
    still running is skipped instead of overlapping it.
    """

    def __init__(self, scanner: ReminderScanner, *, interval_ms: int) -> None:
        self._scanner = scanner
        self._interval_ms = interval_ms
        self._busy = False
        self._runner: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[bool]] = set()
        self._stop: asyncio.Event | None = None
        self._logger = get_json_logger("glasstodo.reminders")

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def tick(self) -> bool:
        """Run one scan unless one is already in flight. Returns False when skipped."""
        if self._busy:
            self._logger.debug("reminder tick skipped", extra={"event": "scan_skipped"})
            get_metrics().increment("reminder_scans_skipped")
            return False
        self._busy = True
        try:
            await self._scanner.scan_once()
        except Exception:
            self._logger.exception("reminder scan crashed", extra={"event": "scan_failed"})
        finally:
            self._busy = False
        return True

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._runner = asyncio.create_task(self._run(self._stop))
        self._logger.info(
            "reminder scheduler started",
            extra={"event": "scheduler_started", "attributes": {"interval_ms": self._interval_ms}},
        )

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        if self._runner is not None:
            await self._runner
            self._runner = None
        # Scans are not cancellable; let the one in flight finish
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _run(self, stop: asyncio.Event) -> None:
        interval_s = self._interval_ms / 1000.0
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_s)
            except TimeoutError:
                pass
            else:
                return
            t = asyncio.create_task(self.tick())
            self._inflight.add(t)
            t.add_done_callback(self._inflight.discard)


__all__ = ["ReminderScanner", "ReminderScheduler", "ScanReport"]
