"""Unit tests for the purge scheduler.

Tests cover:
1. Cycle processing - purge + remove, failure retention, invalid identifiers
2. Fault isolation - one failure never aborts the rest of the cycle
3. Storage errors - reported, never raised
4. Lifecycle - start/stop, idempotent start, stop waits for the in-flight cycle
5. Statistics
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from mailbox_janitor.core.errors import ExecutionError, StorageError
from mailbox_janitor.core.models import PurgeResult
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.services.scheduler import PurgeScheduler, SchedulerState
from tests.conftest import T0, FakeClock


class FakeExecutor:
    """Records purge calls; identifiers in fail_for raise ExecutionError."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = set(fail_for or ())
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def execute(self, identifier: str) -> PurgeResult:
        with self._lock:
            self.calls.append(identifier)
        if identifier in self.fail_for:
            raise ExecutionError(identifier, "doveadm purge failed", returncode=75, output="boom")
        return PurgeResult(identifier=identifier, returncode=0)


def make_scheduler(
    store: PendingStore,
    executor: object,
    tick: float = 60.0,
    retention: timedelta = timedelta(0),
) -> PurgeScheduler:
    return PurgeScheduler(
        store=store,
        executor=executor,  # type: ignore[arg-type]
        tick_interval=timedelta(seconds=tick),
        retention=retention,
    )


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# =============================================================================
# 1. Cycle processing
# =============================================================================


@pytest.mark.unit
class TestRunCycle:
    def test_empty_store(self, store: PendingStore) -> None:
        executor = FakeExecutor()
        report = make_scheduler(store, executor).run_cycle()

        assert report.due == 0
        assert report.ok
        assert executor.calls == []

    def test_success_removes_entry(self, store: PendingStore) -> None:
        store.add("test@example.com")
        executor = FakeExecutor()

        report = make_scheduler(store, executor).run_cycle()

        assert executor.calls == ["test@example.com"]
        assert report.purged == ["test@example.com"]
        assert store.list_due(timedelta(0)) == []

    def test_failure_keeps_entry_unchanged(
        self, store: PendingStore, clock: FakeClock
    ) -> None:
        store.add("test@example.com")
        executor = FakeExecutor(fail_for={"test@example.com"})
        scheduler = make_scheduler(store, executor)

        report = scheduler.run_cycle()
        assert report.failed == ["test@example.com"]
        assert not report.ok

        clock.advance(1)
        due = store.list_due(timedelta(0))
        assert [(e.identifier, e.requested_at) for e in due] == [("test@example.com", T0)]

        # Retried on the next cycle
        scheduler.run_cycle()
        assert executor.calls == ["test@example.com", "test@example.com"]

    def test_not_due_is_not_purged(self, store: PendingStore, clock: FakeClock) -> None:
        store.add("test@example.com")
        clock.advance(3600)
        executor = FakeExecutor()

        report = make_scheduler(store, executor, retention=timedelta(hours=24)).run_cycle()

        assert report.due == 0
        assert executor.calls == []
        assert "test@example.com" in store

    def test_invalid_identifier_skipped_and_kept(
        self, store: PendingStore, store_path: Path
    ) -> None:
        # Rows written around the ingestion path, e.g. by hand
        store_path.write_text(
            "email,created_at\n"
            "*@example.com,2024-01-15T09:00:00+00:00\n"
            "good@example.com,2024-01-15T09:00:01+00:00\n",
            encoding="utf-8",
        )
        executor = FakeExecutor()

        report = make_scheduler(store, executor).run_cycle()

        assert executor.calls == ["good@example.com"]
        assert report.skipped_invalid == ["*@example.com"]
        assert report.purged == ["good@example.com"]
        assert "*@example.com" in store

    def test_processes_in_list_due_order(
        self, store: PendingStore, clock: FakeClock
    ) -> None:
        store.add("c@example.com")
        clock.advance(1)
        store.add("a@example.com")
        clock.advance(1)
        store.add("b@example.com")
        executor = FakeExecutor()

        make_scheduler(store, executor).run_cycle()

        assert executor.calls == ["c@example.com", "a@example.com", "b@example.com"]


# =============================================================================
# 2. Fault isolation
# =============================================================================


@pytest.mark.unit
class TestFaultIsolation:
    def test_failure_does_not_abort_cycle(self, store: PendingStore) -> None:
        for name in ("a", "b", "c"):
            store.add(f"{name}@example.com")
        executor = FakeExecutor(fail_for={"b@example.com"})

        report = make_scheduler(store, executor).run_cycle()

        assert executor.calls == ["a@example.com", "b@example.com", "c@example.com"]
        assert report.purged == ["a@example.com", "c@example.com"]
        assert report.failed == ["b@example.com"]
        assert [e.identifier for e in store.list_all()] == ["b@example.com"]

    def test_unexpected_exception_is_isolated(self, store: PendingStore) -> None:
        store.add("a@example.com")
        store.add("b@example.com")
        executor = MagicMock()
        executor.execute.side_effect = [RuntimeError("unexpected"), None]

        report = make_scheduler(store, executor).run_cycle()

        assert report.failed == ["a@example.com"]
        assert report.purged == ["b@example.com"]

    def test_remove_failure_keeps_entry_for_retry(self, store: PendingStore) -> None:
        store.add("a@example.com")
        executor = FakeExecutor()
        flaky_store = MagicMock(wraps=store)
        flaky_store.remove.side_effect = StorageError("disk full")

        report = make_scheduler(flaky_store, executor).run_cycle()

        assert executor.calls == ["a@example.com"]
        assert report.failed == ["a@example.com"]
        assert "a@example.com" in store


# =============================================================================
# 3. Storage errors
# =============================================================================


@pytest.mark.unit
class TestStorageErrors:
    def test_list_due_error_is_reported(self) -> None:
        broken_store = MagicMock()
        broken_store.list_due.side_effect = StorageError("unreadable")
        executor = FakeExecutor()
        scheduler = make_scheduler(broken_store, executor)

        report = scheduler.run_cycle()

        assert report.error == "unreadable"
        assert not report.ok
        assert executor.calls == []
        assert scheduler.state is SchedulerState.IDLE

    def test_unreadable_store_file_is_reported(
        self, store: PendingStore, store_path: Path
    ) -> None:
        store_path.write_bytes(b"email,created_at\nj\xf6rg@example.com,2024-01-15T09:00:00Z\n")
        executor = FakeExecutor()
        scheduler = make_scheduler(store, executor)

        report = scheduler.run_cycle()

        assert report.error is not None
        assert "Failed to read" in report.error
        assert executor.calls == []
        assert scheduler.get_stats()["cycles_run"] == 1


# =============================================================================
# 4. Lifecycle
# =============================================================================


@pytest.mark.unit
class TestLifecycle:
    def test_rejects_bad_intervals(self, store: PendingStore) -> None:
        with pytest.raises(ValueError):
            make_scheduler(store, FakeExecutor(), tick=0)
        with pytest.raises(ValueError):
            make_scheduler(store, FakeExecutor(), retention=timedelta(seconds=-1))

    def test_start_runs_first_cycle_immediately(self, store: PendingStore) -> None:
        store.add("test@example.com")
        executor = FakeExecutor()
        scheduler = make_scheduler(store, executor, tick=3600)

        scheduler.start()
        try:
            assert wait_for(lambda: executor.calls == ["test@example.com"])
            assert wait_for(lambda: "test@example.com" not in store)
        finally:
            scheduler.stop(timeout=5)

        assert scheduler.state is SchedulerState.STOPPED
        assert not scheduler.get_stats()["worker_alive"]

    def test_ticks_repeat(self, store: PendingStore) -> None:
        executor = FakeExecutor()
        scheduler = make_scheduler(store, executor, tick=0.02)

        scheduler.start()
        try:
            assert wait_for(lambda: scheduler.get_stats()["cycles_run"] >= 3)
        finally:
            scheduler.stop(timeout=5)

    def test_start_is_idempotent(self, store: PendingStore) -> None:
        scheduler = make_scheduler(store, FakeExecutor(), tick=3600)
        scheduler.start()
        try:
            first = scheduler._worker_thread
            scheduler.start()
            assert scheduler._worker_thread is first
        finally:
            scheduler.stop(timeout=5)

    def test_stop_without_start(self, store: PendingStore) -> None:
        scheduler = make_scheduler(store, FakeExecutor())
        scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED

    def test_restart_after_stop(self, store: PendingStore) -> None:
        executor = FakeExecutor()
        scheduler = make_scheduler(store, executor, tick=3600)
        scheduler.start()
        scheduler.stop(timeout=5)

        store.add("later@example.com")
        scheduler.start()
        try:
            assert wait_for(lambda: "later@example.com" in executor.calls)
        finally:
            scheduler.stop(timeout=5)

    def test_stop_waits_for_in_flight_cycle(self, store: PendingStore) -> None:
        store.add("a@example.com")
        store.add("b@example.com")
        started = threading.Event()
        release = threading.Event()
        calls: list[str] = []

        def slow_execute(identifier: str) -> PurgeResult:
            calls.append(identifier)
            started.set()
            release.wait(timeout=5)
            return PurgeResult(identifier=identifier, returncode=0)

        executor = MagicMock()
        executor.execute.side_effect = slow_execute
        scheduler = make_scheduler(store, executor, tick=3600)

        scheduler.start()
        assert started.wait(timeout=5)
        assert scheduler.state is SchedulerState.RUNNING

        stopper = threading.Thread(target=scheduler.stop)
        stopper.start()
        time.sleep(0.1)
        assert stopper.is_alive()  # still waiting for the cycle

        release.set()
        stopper.join(timeout=5)
        assert not stopper.is_alive()

        # The whole fetched set was processed before stopping
        assert calls == ["a@example.com", "b@example.com"]
        assert len(store) == 0
        assert scheduler.state is SchedulerState.STOPPED


# =============================================================================
# 5. Statistics
# =============================================================================


@pytest.mark.unit
class TestStats:
    def test_stats_accumulate(self, store: PendingStore) -> None:
        store.add("a@example.com")
        store.add("b@example.com")
        scheduler = make_scheduler(store, FakeExecutor(fail_for={"b@example.com"}))

        scheduler.run_cycle()
        scheduler.run_cycle()

        stats = scheduler.get_stats()
        assert stats["cycles_run"] == 2
        assert stats["purged"] == 1
        assert stats["failed"] == 2
        assert stats["skipped_invalid"] == 0
        assert stats["state"] == "idle"
        assert stats["last_cycle"]["failed"] == ["b@example.com"]
