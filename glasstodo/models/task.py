from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

COMPLETED_STATUS = "completed"


class Task(BaseModel):
    """Typed view over one client task record.

    The server only understands a handful of fields; everything else the client
    stores is kept as-is in the model extras and is never interpreted.
    Timestamps are epoch milliseconds.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # Display fields are whatever the client stored; only the timestamps are typed
    id: Any = None
    title: Any = None
    date: Any = None
    start: Any = None
    status: str | None = None
    deleted_at: Any = Field(default=None, alias="deletedAt")
    remind_at: int | None = Field(default=None, alias="remindAt")
    notified_at: int | None = Field(default=None, alias="notifiedAt")

    @classmethod
    def from_record(cls, record: Any) -> Task | None:
        """Parse a raw record, returning None for anything that is not a usable task."""
        if not isinstance(record, dict):
            return None
        try:
            return cls.model_validate(record)
        except ValidationError:
            return None

    @property
    def is_reminder_candidate(self) -> bool:
        if self.status == COMPLETED_STATUS or self.deleted_at:
            return False
        return self.remind_at is not None

    @property
    def is_already_notified(self) -> bool:
        if self.remind_at is None or self.notified_at is None:
            return False
        return self.notified_at >= self.remind_at

    def is_due(self, now_ms: int, window_ms: int) -> bool:
        """True when now falls inside the half-open window [remindAt, remindAt + window)."""
        if self.remind_at is None:
            return False
        return self.remind_at <= now_ms < self.remind_at + window_ms


@dataclass(slots=True)
class TaskCollection:
    """One user's full task document.

    ``tasks`` holds the raw client records so they round-trip untouched.
    """

    username: str
    tasks: list[Any] = field(default_factory=list)
    version: int = 0


__all__ = ["COMPLETED_STATUS", "Task", "TaskCollection"]
