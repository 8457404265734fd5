from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


class PushSubscription(BaseModel):
    """A Web Push endpoint registered by one browser or device.

    ``endpoint`` is the natural key; re-registering it replaces keys and owner.
    """

    endpoint: str
    username: str
    p256dh: str
    auth: str
    expiration_time: int | None = None
    created_at: int = Field(default_factory=lambda: int(time.time() * 1000))

    def subscription_info(self) -> dict[str, Any]:
        """Shape expected by Web Push libraries."""
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


class PushMessage(BaseModel):
    title: str
    body: str
    url: str = "/"
    tag: str


__all__ = ["PushSubscription", "PushMessage"]
