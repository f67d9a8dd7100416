"""Core components for the mailbox janitor."""

from mailbox_janitor.core.errors import (
    ConfigurationError,
    DuplicateError,
    ExecutionError,
    FileLockError,
    JanitorError,
    StorageError,
    ValidationError,
)
from mailbox_janitor.core.models import (
    CycleReport,
    IngestOutcome,
    PendingDeletion,
    PurgeResult,
    UserEvent,
)
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.core.utils import format_timestamp, parse_duration, parse_timestamp, utc_now
from mailbox_janitor.core.validation import is_valid_identifier, validate_identifier

__all__ = [
    # Errors
    "JanitorError",
    "ValidationError",
    "DuplicateError",
    "StorageError",
    "FileLockError",
    "ExecutionError",
    "ConfigurationError",
    # Models
    "PendingDeletion",
    "PurgeResult",
    "CycleReport",
    "IngestOutcome",
    "UserEvent",
    # Store
    "PendingStore",
    # Validation
    "validate_identifier",
    "is_valid_identifier",
    # Utilities
    "utc_now",
    "format_timestamp",
    "parse_timestamp",
    "parse_duration",
]
