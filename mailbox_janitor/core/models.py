"""Data models for the mailbox janitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

EVENT_TYPE_USER_DELETED = "user.deleted"


@dataclass(frozen=True)
class PendingDeletion:
    """A recorded request to purge a mailbox once retention has elapsed."""

    identifier: str
    requested_at: datetime  # timezone-aware UTC


@dataclass
class PurgeResult:
    """Outcome of a successful purge command."""

    identifier: str
    returncode: int
    output: str = ""
    duration_seconds: float = 0.0


@dataclass
class CycleReport:
    """Summary of a single scheduler cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    due: int = 0
    purged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped_invalid: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "due": self.due,
            "purged": list(self.purged),
            "failed": list(self.failed),
            "skipped_invalid": list(self.skipped_invalid),
            "error": self.error,
        }


class IngestOutcome(str, Enum):
    """Result of handing a deletion request to the ingest service."""

    ACCEPTED = "accepted"
    REJECTED_INVALID = "rejected_invalid"
    DUPLICATE = "duplicate"
    STORAGE_ERROR = "storage_error"


class UserEventData(BaseModel):
    """Payload of a userli webhook event."""

    # Kept as a raw string: the validator decides what is acceptable.
    email: str = ""


class UserEvent(BaseModel):
    """A webhook event sent by userli."""

    type: str
    timestamp: datetime | None = None
    data: UserEventData = Field(default_factory=UserEventData)
