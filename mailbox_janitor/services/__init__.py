"""Service layer for the mailbox janitor."""

from mailbox_janitor.services.executor import PurgeExecutor
from mailbox_janitor.services.ingest import IngestService
from mailbox_janitor.services.scheduler import PurgeScheduler, SchedulerState

__all__ = [
    "IngestService",
    "PurgeExecutor",
    "PurgeScheduler",
    "SchedulerState",
]
