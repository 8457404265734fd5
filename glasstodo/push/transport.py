from __future__ import annotations

from typing import Protocol

import requests
from pywebpush import WebPushException, webpush

from glasstodo.errors import NotConfiguredError, PushTransportError
from glasstodo.models import PushMessage, PushSubscription

from .vapid import PushConfig


class PushTransport(Protocol):
    """Delivers one message to one endpoint.

    Raises ``PushTransportError`` on failure, carrying the push service status code
    when there was one.
    """

    def send(self, subscription: PushSubscription, message: PushMessage) -> None: ...


class WebPushTransport:
    """Web Push (RFC 8030) delivery signed with VAPID via pywebpush."""

    def __init__(self, config: PushConfig, *, ttl: int = 24 * 60 * 60, timeout: float = 10.0):
        if not config.is_configured:
            raise NotConfiguredError("VAPID keys are required for WebPushTransport")
        self._config = config
        self._ttl = ttl
        self._timeout = timeout

    def send(self, subscription: PushSubscription, message: PushMessage) -> None:
        try:
            webpush(
                subscription_info=subscription.subscription_info(),
                data=message.model_dump_json(),
                vapid_private_key=self._config.private_key,
                # pywebpush fills in aud/exp on the dict it is given
                vapid_claims={"sub": self._config.subject},
                ttl=self._ttl,
                timeout=self._timeout,
            )
        except WebPushException as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise PushTransportError(str(exc), status_code=status) from exc
        except requests.RequestException as exc:
            raise PushTransportError(str(exc)) from exc


__all__ = ["PushTransport", "WebPushTransport"]
