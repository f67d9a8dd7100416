"""Locks guarding the pending store.

Two layers, always acquired in this order by writers:

1. ProcessLock - a FileLock shared with other processes (the daemon
   and administrative CLI runs) so their rewrites never overwrite each other.
2. ReadWriteLock - shared reads / exclusive writes between threads of one
   process (scheduler thread and HTTP request handlers).
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock
from filelock import Timeout as FileLockTimeout

from mailbox_janitor.core.errors import FileLockError


class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    Any number of readers may hold the lock at once; a writer waits for active
    readers to drain and blocks new readers while it waits. Not reentrant.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class ProcessLock:
    """FileLock shared by every process writing the same store file.

    The daemon and administrative CLI runs each hold their own handle; while
    one of them rewrites the store the others wait up to ``timeout`` seconds.
    Not reentrant: the store takes it exactly once per mutation.
    """

    def __init__(
        self,
        lock_path: Path,
        timeout: float = 30.0,
        poll_interval: float = 0.1,
        enabled: bool = True,
    ) -> None:
        """Initialize the lock.

        Args:
            lock_path: Path to the lock file, created on first acquisition.
            timeout: Maximum seconds to wait for another process.
            poll_interval: Seconds between acquisition attempts.
            enabled: If False, acquire and release do nothing.
        """
        self.lock_path = lock_path
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._file_lock = FileLock(str(lock_path)) if enabled else None

    @property
    def enabled(self) -> bool:
        return self._file_lock is not None

    @property
    def is_locked(self) -> bool:
        return self._file_lock is not None and self._file_lock.is_locked

    def acquire(self) -> None:
        """Wait for the lock.

        Raises:
            FileLockError: If another process keeps it past the timeout.
        """
        if self._file_lock is None:
            return
        try:
            self._file_lock.acquire(timeout=self.timeout, poll_interval=self.poll_interval)
        except FileLockTimeout as e:
            raise FileLockError(
                lock_path=str(self.lock_path),
                timeout=self.timeout,
                message=(
                    f"Timed out waiting {self.timeout}s for store lock "
                    f"{self.lock_path.name}; another process is writing the store"
                ),
            ) from e

    def release(self) -> None:
        if self._file_lock is not None:
            self._file_lock.release()

    def __enter__(self) -> ProcessLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()
