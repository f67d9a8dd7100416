"""Ingestion of authenticated deletion requests."""

from __future__ import annotations

import logging

from mailbox_janitor.core.errors import DuplicateError, StorageError, ValidationError
from mailbox_janitor.core.models import IngestOutcome
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.core.validation import validate_identifier

logger = logging.getLogger(__name__)


class IngestService:
    """Validates a requested identifier and records it as pending.

    Called only after the request has been authenticated. Rejections are
    logged but never raised, so the HTTP layer can acknowledge every
    authenticated request the same way.
    """

    def __init__(self, store: PendingStore) -> None:
        self._store = store

    def on_deletion_requested(self, identifier: str) -> IngestOutcome:
        """Record a deletion request for identifier.

        Args:
            identifier: Raw identifier exactly as received.

        Returns:
            The outcome; only STORAGE_ERROR indicates a retryable failure.
        """
        try:
            validate_identifier(identifier)
        except ValidationError as e:
            logger.warning(f"Rejected deletion request: {e}")
            return IngestOutcome.REJECTED_INVALID

        try:
            self._store.add(identifier)
        except DuplicateError:
            logger.warning(
                f"Mailbox already pending deletion, keeping original request: {identifier}"
            )
            return IngestOutcome.DUPLICATE
        except StorageError as e:
            logger.error(f"Failed to add mailbox {identifier} to pending store: {e}")
            return IngestOutcome.STORAGE_ERROR

        logger.info(f"Mailbox added to purge queue: {identifier}")
        return IngestOutcome.ACCEPTED
