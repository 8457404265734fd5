from __future__ import annotations


class GlasstodoError(Exception):
    """Base class for errors raised by the sync and reminder core."""


class StorageError(GlasstodoError):
    """A read or write against the backing store failed."""


class NotConfiguredError(GlasstodoError):
    """Push signing keys are not available, so push features are disabled."""


class PushTransportError(GlasstodoError):
    """Delivery to a single push endpoint failed.

    ``status_code`` is the HTTP status returned by the push service, or None when
    the request never produced a response (DNS, TLS, timeouts).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_gone(self) -> bool:
        # Push services answer 404/410 once a subscription has expired or been revoked
        return self.status_code in (404, 410)


__all__ = ["GlasstodoError", "StorageError", "NotConfiguredError", "PushTransportError"]
