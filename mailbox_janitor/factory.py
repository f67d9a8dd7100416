"""Service factory for dependency injection and initialization.

Centralizes the wiring of store, executor, scheduler, ingest service and the
HTTP app so the CLI commands and tests build them the same way.

Usage:
    from mailbox_janitor.factory import ServiceFactory

    factory = ServiceFactory(settings)
    services = factory.create_all()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI

from mailbox_janitor.config import Settings
from mailbox_janitor.core.errors import ConfigurationError
from mailbox_janitor.core.store import PendingStore
from mailbox_janitor.server import create_app
from mailbox_janitor.services.executor import PurgeExecutor
from mailbox_janitor.services.ingest import IngestService
from mailbox_janitor.services.scheduler import PurgeScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Container for all initialized services.

    Attributes:
        store: Durable pending deletion store.
        executor: Runs doveadm purge for one mailbox.
        scheduler: Background purge loop (not started).
        ingest: Entry point for authenticated deletion requests.
        app: Webhook HTTP application.
    """

    store: PendingStore
    executor: PurgeExecutor
    scheduler: PurgeScheduler
    ingest: IngestService
    app: FastAPI

    def close(self) -> None:
        """Stop the scheduler and close the store."""
        self.scheduler.stop()
        self.store.close()


class ServiceFactory:
    """Builds the janitor's services from Settings."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def create_store(self) -> PendingStore:
        """Open (or create) the pending store.

        Raises:
            StorageError: If the store cannot be opened; fatal at startup.
        """
        return PendingStore.open(
            self._settings.database_path,
            lock_timeout=self._settings.lock_timeout,
        )

    def create_executor(self) -> PurgeExecutor:
        timeout = self._settings.purge_timeout.total_seconds()
        return PurgeExecutor(
            doveadm_path=self._settings.doveadm_path,
            use_sudo=self._settings.use_sudo,
            timeout=timeout or None,
        )

    def create_scheduler(self, store: PendingStore, executor: PurgeExecutor) -> PurgeScheduler:
        return PurgeScheduler(
            store=store,
            executor=executor,
            tick_interval=self._settings.tick_interval,
            retention=self._settings.retention,
        )

    def create_all(self) -> ServiceContainer:
        """Create every service for the serve command.

        Raises:
            ConfigurationError: If WEBHOOK_SECRET is unset.
            StorageError: If the pending store cannot be opened.
        """
        if self._settings.webhook_secret is None:
            raise ConfigurationError("WEBHOOK_SECRET environment variable is required")

        store = self.create_store()
        executor = self.create_executor()
        scheduler = self.create_scheduler(store, executor)
        ingest = IngestService(store)
        app = create_app(self._settings.webhook_secret.get_secret_value(), ingest)
        logger.debug(f"Services created (store={store.path.name})")
        return ServiceContainer(
            store=store,
            executor=executor,
            scheduler=scheduler,
            ingest=ingest,
            app=app,
        )
