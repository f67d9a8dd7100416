"""Durable store of pending mailbox deletions.

The store is a small CSV file::

    email,created_at
    alice@example.com,2024-01-15T10:30:00.000000+00:00

Every mutation rewrites the whole file to a temporary sibling, fsyncs it and
atomically replaces the original, so readers (in this or another process)
only ever see a complete file. Reads always go back to disk, which keeps
entries added by another process (or by hand) visible to the scheduler.
"""

from __future__ import annotations

import csv
import logging
import os
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from mailbox_janitor.core.errors import DuplicateError, StorageError
from mailbox_janitor.core.locking import ProcessLock, ReadWriteLock
from mailbox_janitor.core.models import PendingDeletion
from mailbox_janitor.core.utils import format_timestamp, parse_timestamp, to_aware_utc, utc_now

logger = logging.getLogger(__name__)

HEADER = ("email", "created_at")

# Files written by the earlier SQLite-backed daemon start with this magic
SQLITE_MAGIC = b"SQLite format 3\x00"


class PendingStore:
    """Concurrency-safe mapping from mailbox identifier to request time.

    Only the add / list_due / remove contract is exposed; callers never touch
    the backing file directly.
    """

    def __init__(
        self,
        path: str | Path,
        clock: Callable[[], datetime] = utc_now,
        lock_timeout: float = 30.0,
        filelock_enabled: bool = True,
    ) -> None:
        """Create a store handle. Use PendingStore.open() to also initialize it.

        Args:
            path: Location of the CSV file.
            clock: Source of the current time (timezone-aware UTC).
            lock_timeout: Seconds to wait for the cross-process lock.
            filelock_enabled: Disable to skip the cross-process lock file.
        """
        self.path = Path(path)
        self._clock = clock
        self._rw_lock = ReadWriteLock()
        self._process_lock = ProcessLock(
            lock_path=self.path.with_name(self.path.name + ".lock"),
            timeout=lock_timeout,
            enabled=filelock_enabled,
        )
        self._closed = False

    @classmethod
    def open(cls, location: str | Path, **kwargs: Any) -> PendingStore:
        """Open the store at location, creating it if absent.

        Existing entries are loaded and checked, never rewritten.

        Raises:
            StorageError: If the store cannot be created or is unreadable.
        """
        store = cls(location, **kwargs)
        store._initialize()
        return store

    def __enter__(self) -> PendingStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Public API
    # =========================================================================

    def add(self, identifier: str) -> PendingDeletion:
        """Record a new pending deletion stamped with the current time.

        Raises:
            DuplicateError: If the identifier is already pending. The stored
                timestamp is left untouched.
            StorageError: If the store cannot be read or written.
        """
        with self._writing():
            entries = self._load()
            if identifier in entries:
                raise DuplicateError(identifier)
            entry = PendingDeletion(identifier=identifier, requested_at=self._now())
            entries[identifier] = entry
            self._write(entries)

        logger.info(f"Mailbox added to pending store: {identifier}")
        return entry

    def list_due(self, retention: timedelta) -> list[PendingDeletion]:
        """Return entries requested at or before now - retention.

        Sorted by (requested_at, identifier) so ties are reproducible.

        Raises:
            ValueError: If retention is negative.
            StorageError: If the store cannot be read.
        """
        if retention < timedelta(0):
            raise ValueError(f"retention must not be negative: {retention}")
        with self._reading():
            entries = self._load()
            cutoff = self._now() - retention
        due = [e for e in entries.values() if e.requested_at <= cutoff]
        due.sort(key=lambda e: (e.requested_at, e.identifier))
        return due

    def remove(self, identifier: str) -> bool:
        """Remove an entry. Removing an absent identifier is a no-op.

        Returns:
            True if an entry was removed, False if it was not present.

        Raises:
            StorageError: If the store cannot be read or written.
        """
        with self._writing():
            entries = self._load()
            if entries.pop(identifier, None) is None:
                logger.debug(f"Mailbox not in pending store, nothing to remove: {identifier}")
                return False
            self._write(entries)

        logger.info(f"Mailbox removed from pending store: {identifier}")
        return True

    def get(self, identifier: str) -> PendingDeletion | None:
        with self._reading():
            return self._load().get(identifier)

    def list_all(self) -> list[PendingDeletion]:
        """Return every pending entry, oldest first."""
        with self._reading():
            entries = self._load()
        return sorted(entries.values(), key=lambda e: (e.requested_at, e.identifier))

    def __len__(self) -> int:
        with self._reading():
            return len(self._load())

    def __contains__(self, identifier: object) -> bool:
        with self._reading():
            return identifier in self._load()

    # =========================================================================
    # Locking
    # =========================================================================

    @contextmanager
    def _reading(self) -> Iterator[None]:
        self._check_open()
        with self._rw_lock.read_locked():
            yield

    @contextmanager
    def _writing(self) -> Iterator[None]:
        # Process lock first, then the thread lock
        self._check_open()
        with self._process_lock, self._rw_lock.write_locked():
            yield

    def _check_open(self) -> None:
        if self._closed:
            raise StorageError("Pending store is closed")

    def _now(self) -> datetime:
        return to_aware_utc(self._clock())

    # =========================================================================
    # File I/O
    # =========================================================================

    def _initialize(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create store directory: {e}") from e

        with self._writing():
            if self.path.exists():
                self._reject_legacy_database()
                entries = self._load()
                logger.info(f"Pending store opened: {self.path.name} ({len(entries)} pending)")
            else:
                self._write({})
                logger.info(f"Pending store created: {self.path.name}")

    def _reject_legacy_database(self) -> None:
        try:
            with self.path.open("rb") as f:
                magic = f.read(len(SQLITE_MAGIC))
        except OSError as e:
            raise StorageError(f"Failed to read pending store: {e}") from e
        if magic == SQLITE_MAGIC:
            raise StorageError(
                f"{self.path.name} is an SQLite database from an earlier version; "
                f"export its rows as '{','.join(HEADER)}' CSV before starting"
            )

    def _load(self) -> dict[str, PendingDeletion]:
        entries: dict[str, PendingDeletion] = {}
        try:
            with self.path.open("r", encoding="utf-8", newline="") as f:
                reader = csv.reader(f)
                header = next(reader, None)
                if header is None or tuple(header) != HEADER:
                    raise StorageError(
                        f"Unrecognized pending store header in {self.path.name}: {header!r}"
                    )
                for line_no, row in enumerate(reader, start=2):
                    if not row:
                        continue
                    if len(row) != len(HEADER):
                        raise StorageError(
                            f"Malformed row {line_no} in {self.path.name}: expected "
                            f"{len(HEADER)} fields, got {len(row)}"
                        )
                    identifier, raw_ts = row
                    try:
                        requested_at = parse_timestamp(raw_ts)
                    except ValueError as e:
                        raise StorageError(
                            f"Invalid timestamp on row {line_no} in {self.path.name}: {e}"
                        ) from e
                    if identifier in entries:
                        logger.warning(
                            f"Duplicate row for {identifier} in {self.path.name}, "
                            "keeping the first"
                        )
                        continue
                    entries[identifier] = PendingDeletion(identifier, requested_at)
        except (OSError, UnicodeError, csv.Error) as e:
            raise StorageError(f"Failed to read pending store: {e}") from e
        return entries

    def _write(self, entries: dict[str, PendingDeletion]) -> None:
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid.uuid4().hex[:8]}.tmp")
        rows = sorted(entries.values(), key=lambda e: (e.requested_at, e.identifier))
        try:
            with tmp_path.open("w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(HEADER)
                for entry in rows:
                    writer.writerow((entry.identifier, format_timestamp(entry.requested_at)))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except (OSError, UnicodeError, csv.Error) as e:
            self._discard(tmp_path)
            raise StorageError(f"Failed to write pending store: {e}") from e
        except BaseException:
            self._discard(tmp_path)
            raise
        self._fsync_dir()

    @staticmethod
    def _discard(tmp_path: Path) -> None:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to clean up temporary store file {tmp_path.name}: {e}")

    def _fsync_dir(self) -> None:
        # Directory fsync makes the rename durable; not supported on Windows
        if not hasattr(os, "O_DIRECTORY"):
            return
        try:
            fd = os.open(self.path.parent, os.O_RDONLY | os.O_DIRECTORY)
        except OSError:
            return
        try:
            os.fsync(fd)
        except OSError as e:
            logger.debug(f"Directory fsync failed for {self.path.parent}: {e}")
        finally:
            os.close(fd)
