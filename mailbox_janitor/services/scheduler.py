"""Background purge scheduler.

Follows the daemon-thread pattern used across the services:
- __init__: threading primitives, config
- start(): idempotent, creates daemon thread
- stop(timeout): sets shutdown event, joins thread, logs stats
- _background_worker(): tick loop with event.wait(timeout)

Each tick lists the due entries once and processes all of them, in order,
even if stop() is called meanwhile. An entry leaves the store only after its
purge succeeded; anything else keeps it for the next tick.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from enum import Enum
from typing import Any

from mailbox_janitor.core.errors import ExecutionError, StorageError, ValidationError
from mailbox_janitor.core.models import CycleReport, PendingDeletion
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.core.utils import utc_now
from mailbox_janitor.core.validation import validate_identifier
from mailbox_janitor.services.executor import PurgeExecutor

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class PurgeScheduler:
    """Periodically purges every pending mailbox whose retention has elapsed."""

    def __init__(
        self,
        store: PendingStore,
        executor: PurgeExecutor,
        tick_interval: timedelta = timedelta(minutes=5),
        retention: timedelta = timedelta(hours=24),
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Pending deletions to purge from.
            executor: Runs the purge for a single identifier.
            tick_interval: Time between the end of one cycle and the next.
            retention: Minimum age of a request before it is purged.
        """
        if tick_interval <= timedelta(0):
            raise ValueError("tick_interval must be positive")
        if retention < timedelta(0):
            raise ValueError("retention must not be negative")

        self._store = store
        self._executor = executor
        self._tick_interval = tick_interval
        # Event.wait rejects timeouts above TIMEOUT_MAX
        self._wait_seconds = min(tick_interval.total_seconds(), threading.TIMEOUT_MAX)
        self._retention = retention

        # Threading primitives
        self._lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._shutdown_event = threading.Event()
        self._worker_thread: threading.Thread | None = None
        self._state = SchedulerState.IDLE

        # Statistics
        self._stats_lock = threading.Lock()
        self._cycles_run = 0
        self._purged = 0
        self._failed = 0
        self._skipped_invalid = 0
        self._last_report: CycleReport | None = None

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def retention(self) -> timedelta:
        return self._retention

    @property
    def tick_interval(self) -> timedelta:
        return self._tick_interval

    def start(self) -> None:
        """Start the background worker; the first cycle runs immediately.

        Safe to call multiple times - will only start if not already running.
        """
        with self._lock:
            if self._worker_thread is not None and self._worker_thread.is_alive():
                logger.debug("Purge scheduler already running")
                return

            self._shutdown_event.clear()
            self._state = SchedulerState.IDLE
            self._worker_thread = threading.Thread(
                target=self._background_worker,
                name="purge-scheduler",
                daemon=True,
            )
            self._worker_thread.start()

        logger.info(
            f"Purge scheduler started (tick_interval={self._tick_interval.total_seconds()}s, "
            f"retention={self._retention.total_seconds()}s)"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop the background worker.

        Returns once the worker has exited. A cycle in progress first finishes
        every identifier it already fetched.

        Args:
            timeout: Maximum seconds to wait. None waits for the cycle to end.
        """
        self._shutdown_event.set()
        thread = self._worker_thread

        if thread is not None and thread.is_alive():
            logger.info("Stopping purge scheduler...")
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Purge scheduler did not stop within timeout")
                return

        with self._lock:
            self._state = SchedulerState.STOPPED
        with self._stats_lock:
            logger.info(
                f"Purge scheduler stopped. Cycles: {self._cycles_run}, "
                f"Purged: {self._purged}, Failed: {self._failed}, "
                f"Skipped: {self._skipped_invalid}"
            )

    def get_stats(self) -> dict[str, Any]:
        with self._stats_lock:
            stats: dict[str, Any] = {
                "cycles_run": self._cycles_run,
                "purged": self._purged,
                "failed": self._failed,
                "skipped_invalid": self._skipped_invalid,
                "last_cycle": self._last_report.to_dict() if self._last_report else None,
            }
        stats["state"] = self.state.value
        stats["worker_alive"] = (
            self._worker_thread is not None and self._worker_thread.is_alive()
        )
        return stats

    # =========================================================================
    # Background Worker
    # =========================================================================

    def _background_worker(self) -> None:
        logger.debug("Purge scheduler worker started")

        while not self._shutdown_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.error("Error in purge scheduler worker", exc_info=True)

            self._shutdown_event.wait(timeout=self._wait_seconds)

        with self._lock:
            self._state = SchedulerState.STOPPED
        logger.debug("Purge scheduler worker stopped")

    # =========================================================================
    # Cycle
    # =========================================================================

    def run_cycle(self) -> CycleReport:
        """Run one purge cycle over every due entry.

        Cycles never overlap: a call made while another cycle is in progress
        waits for it to finish.

        Returns:
            CycleReport describing what happened to each due identifier.
        """
        with self._cycle_lock:
            with self._lock:
                previous = self._state
                self._state = SchedulerState.RUNNING
            try:
                report = self._run_cycle()
            finally:
                with self._lock:
                    # A stop() that completed meanwhile wins
                    if self._state is SchedulerState.RUNNING:
                        self._state = (
                            previous
                            if previous is SchedulerState.STOPPED
                            else SchedulerState.IDLE
                        )

        with self._stats_lock:
            self._cycles_run += 1
            self._purged += len(report.purged)
            self._failed += len(report.failed)
            self._skipped_invalid += len(report.skipped_invalid)
            self._last_report = report
        return report

    def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=utc_now())
        try:
            due = self._store.list_due(self._retention)
        except StorageError as e:
            logger.error(f"Failed to get due mailboxes: {e}")
            report.error = str(e)
            report.finished_at = utc_now()
            return report

        report.due = len(due)
        if not due:
            logger.debug("No mailboxes due for purging")
            report.finished_at = utc_now()
            return report

        logger.info(f"Processing due mailboxes: {len(due)}")
        for entry in due:
            self._process_entry(entry, report)

        report.finished_at = utc_now()
        logger.info(
            f"Purge cycle finished: {len(report.purged)} purged, "
            f"{len(report.failed)} failed, {len(report.skipped_invalid)} skipped"
        )
        return report

    def _process_entry(self, entry: PendingDeletion, report: CycleReport) -> None:
        identifier = entry.identifier
        try:
            validate_identifier(identifier)
        except ValidationError as e:
            logger.critical(
                f"Refusing to purge invalid identifier from pending store: {e}. "
                "Manual intervention required."
            )
            report.skipped_invalid.append(identifier)
            return

        logger.info(f"Purging mailbox {identifier} (requested_at={entry.requested_at.isoformat()})")
        try:
            self._executor.execute(identifier)
        except ExecutionError as e:
            logger.error(f"Failed to purge mailbox {identifier}: {e}")
            report.failed.append(identifier)
            return
        except Exception:
            logger.error(f"Unexpected error purging mailbox {identifier}", exc_info=True)
            report.failed.append(identifier)
            return

        try:
            self._store.remove(identifier)
        except StorageError as e:
            # Purged but still pending: the next tick purges again, harmlessly
            logger.error(f"Failed to remove mailbox {identifier} from pending store: {e}")
            report.failed.append(identifier)
            return

        logger.info(f"Mailbox purged successfully: {identifier}")
        report.purged.append(identifier)
