"""Pytest fixtures for mailbox janitor tests."""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mailbox_janitor.core.store import PendingStore

# Variables read by Settings; cleared so the host environment never leaks in
CONFIG_ENV_VARS = (
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LISTEN_ADDR",
    "WEBHOOK_SECRET",
    "DATABASE_PATH",
    "LOCK_TIMEOUT",
    "RETENTION_HOURS",
    "TICK_INTERVAL",
    "DOVEADM_PATH",
    "USE_SUDO",
    "PURGE_TIMEOUT",
)

T0 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


# ---------------------------------------------------------------------------
# Basic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove janitor configuration variables from the environment."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "mailboxes.csv"


@pytest.fixture
def store(store_path: Path, clock: FakeClock) -> Generator[PendingStore, None, None]:
    """Provide an opened store driven by the fake clock."""
    s = PendingStore.open(store_path, clock=clock, lock_timeout=5.0)
    yield s
    s.close()
