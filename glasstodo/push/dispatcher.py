from __future__ import annotations

import asyncio

from glasstodo.errors import PushTransportError, StorageError
from glasstodo.models import PushMessage, PushSubscription, Task
from glasstodo.observability import get_json_logger, get_metrics
from glasstodo.store.interface import SubscriptionRegistry

from .transport import PushTransport
from .vapid import PushConfig

REMINDER_TITLE = "Start time reminder"
TEST_TITLE = "Test notification"
TEST_BODY = "This is a test notification"


def build_reminder_payload(task: Task) -> PushMessage:
    when = ""
    if task.date:
        when = f"{task.date} {task.start}" if task.start else str(task.date)
    title = "" if task.title is None else str(task.title)
    return PushMessage(
        title=REMINDER_TITLE,
        body=f"{title} ({when})" if when else title,
        url="/",
        # Same tag for the same task lets the client replace rather than stack
        tag=f"task-{task.id}",
    )


def build_test_payload(now_ms: int) -> PushMessage:
    return PushMessage(title=TEST_TITLE, body=TEST_BODY, url="/", tag=f"test-{now_ms}")


class NotificationDispatcher:
    """Fan a message out to every push endpoint a user has registered.

    Delivery is best-effort: each endpoint is tried independently and
    concurrently, endpoints the push service reports as gone (404/410) are
    removed from the registry, and every other failure is only logged.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        transport: PushTransport | None,
        config: PushConfig,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._config = config
        self._logger = get_json_logger("glasstodo.push")

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured and self._transport is not None

    async def dispatch(self, username: str, message: PushMessage) -> bool:
        """Attempt delivery to all of the user's endpoints.

        Returns True once at least one delivery was attempted, False when push is
        not configured, the user has no subscriptions or they could not be loaded.
        """
        if not self.is_configured:
            return False
        try:
            subs = await asyncio.to_thread(self._registry.list_for_user, username)
        except StorageError:
            self._logger.warning(
                "push load subscriptions failed",
                extra={"event": "push_load_failed", "username": username},
                exc_info=True,
            )
            return False
        if not subs:
            return False
        await asyncio.gather(*(self._send_one(sub, message) for sub in subs))
        return True

    async def _send_one(self, sub: PushSubscription, message: PushMessage) -> None:
        assert self._transport is not None
        metrics = get_metrics()
        try:
            await asyncio.to_thread(self._transport.send, sub, message)
        except PushTransportError as exc:
            if exc.is_gone:
                await self._prune(sub, exc.status_code)
                return
            self._logger.warning(
                "push send failed",
                extra={
                    "event": "push_failed",
                    "username": sub.username,
                    "endpoint": sub.endpoint,
                    "status_code": exc.status_code,
                },
            )
            metrics.increment("push_failed")
            return
        except Exception:
            self._logger.exception(
                "push send errored",
                extra={"event": "push_failed", "username": sub.username, "endpoint": sub.endpoint},
            )
            metrics.increment("push_failed")
            return
        metrics.increment("push_sent")

    async def _prune(self, sub: PushSubscription, status_code: int | None) -> None:
        try:
            await asyncio.to_thread(self._registry.delete, sub.endpoint)
        except StorageError:
            self._logger.warning(
                "push prune failed",
                extra={"event": "push_prune_failed", "endpoint": sub.endpoint},
                exc_info=True,
            )
            return
        self._logger.info(
            "push endpoint gone, subscription removed",
            extra={
                "event": "push_pruned",
                "username": sub.username,
                "endpoint": sub.endpoint,
                "status_code": status_code,
            },
        )
        get_metrics().increment("push_pruned")


__all__ = [
    "NotificationDispatcher",
    "build_reminder_payload",
    "build_test_payload",
]
