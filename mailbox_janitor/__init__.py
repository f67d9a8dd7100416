"""Mailbox Janitor - retention-gated mailbox purge daemon for userli and Dovecot."""

__version__ = "0.1.0"

# Re-export core components for convenience
from mailbox_janitor.config import Settings, load_settings
from mailbox_janitor.core import (
    ConfigurationError,
    DuplicateError,
    ExecutionError,
    JanitorError,
    PendingDeletion,
    PendingStore,
    StorageError,
    ValidationError,
    validate_identifier,
)

__all__ = [
    "__version__",
    # Config
    "Settings",
    "load_settings",
    # Store
    "PendingDeletion",
    "PendingStore",
    "validate_identifier",
    # Errors
    "JanitorError",
    "ValidationError",
    "DuplicateError",
    "StorageError",
    "ExecutionError",
    "ConfigurationError",
]
