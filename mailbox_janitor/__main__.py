"""Entry point for running the mailbox janitor daemon and CLI commands."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

from mailbox_janitor.config import Settings, load_settings
from mailbox_janitor.core.errors import ConfigurationError, StorageError
from mailbox_janitor.core.logging import configure_logging
from mailbox_janitor.factory import ServiceFactory

logger = logging.getLogger(__name__)


def _load_settings(require_webhook_secret: bool) -> Settings | None:
    try:
        return load_settings(require_webhook_secret=require_webhook_secret)
    except ConfigurationError as e:
        # Use basic logging for error
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Configuration error: {e}")
        return None


def _configure_logging(settings: Settings) -> None:
    secrets = []
    if settings.webhook_secret is not None:
        secrets.append(settings.webhook_secret.get_secret_value())
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_format == "json",
        secrets=secrets,
    )


def run_server() -> int:
    """Run the webhook server and the purge scheduler until interrupted.

    Returns:
        Exit code (0 for clean shutdown, 1 for startup failure).
    """
    import uvicorn

    settings = _load_settings(require_webhook_secret=True)
    if settings is None:
        return 1
    _configure_logging(settings)

    logger.info(
        f"Configuration loaded: listen_addr={settings.listen_addr} "
        f"database_path={settings.database_path} "
        f"retention_hours={settings.retention_hours} "
        f"tick_interval={settings.tick_interval.total_seconds()}s"
    )

    try:
        services = ServiceFactory(settings).create_all()
    except (ConfigurationError, StorageError) as e:
        logger.critical(f"Failed to initialize services: {e}")
        return 1

    services.scheduler.start()
    try:
        logger.info(f"Starting HTTP server on {settings.listen_addr}")
        # uvicorn handles SIGINT/SIGTERM and returns once it has shut down
        uvicorn.run(
            services.app,
            host=settings.listen_host,
            port=settings.listen_port,
            log_config=None,
        )
        logger.info("Shutdown signal received, stopping...")
    finally:
        services.close()
    logger.info("Shutdown complete")
    return 0


def run_pending(args: argparse.Namespace) -> int:
    """List pending deletions.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    settings = _load_settings(require_webhook_secret=False)
    if settings is None:
        return 1
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    try:
        with ServiceFactory(settings).create_store() as store:
            if args.due:
                entries = store.list_due(settings.retention)
            else:
                entries = store.list_all()
    except StorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not entries:
        print("No pending deletions." if not args.due else "No mailboxes due for purging.")
        return 0

    for entry in entries:
        print(f"{entry.identifier}\t{entry.requested_at.isoformat()}")
    print(f"\n{len(entries)} {'due' if args.due else 'pending'}")
    return 0


def run_purge_once(args: argparse.Namespace) -> int:
    """Run a single purge cycle and report the result.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 when every due mailbox was purged, 1 otherwise).
    """
    settings = _load_settings(require_webhook_secret=False)
    if settings is None:
        return 1
    _configure_logging(settings)

    factory = ServiceFactory(settings)
    try:
        store = factory.create_store()
    except StorageError as e:
        logger.critical(f"Failed to open pending store: {e}")
        return 1

    with store:
        scheduler = factory.create_scheduler(store, factory.create_executor())
        report = scheduler.run_cycle()

    print(f"Due: {report.due}")
    print(f"Purged: {len(report.purged)}")
    for identifier in report.purged:
        print(f"  - {identifier}")
    if report.failed:
        print(f"Failed: {len(report.failed)}")
        for identifier in report.failed:
            print(f"  - {identifier}")
    if report.skipped_invalid:
        print(f"Skipped (invalid identifier): {len(report.skipped_invalid)}")
        for identifier in report.skipped_invalid:
            print(f"  - {identifier!r}")
    if report.error:
        print(f"Error: {report.error}", file=sys.stderr)

    return 0 if report.ok and not report.skipped_invalid else 1


def run_version() -> None:
    from mailbox_janitor import __version__

    print(f"mailbox-janitor {__version__}")


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point with subcommand support."""
    parser = argparse.ArgumentParser(
        prog="mailbox-janitor",
        description="Retention-gated mailbox purge daemon for userli and Dovecot",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        description="Available commands",
    )

    subparsers.add_parser(
        "serve",
        help="Start the webhook server and purge scheduler (default if no command given)",
    )

    pending_parser = subparsers.add_parser(
        "pending",
        help="List mailboxes waiting to be purged",
    )
    pending_parser.add_argument(
        "--due",
        action="store_true",
        help="Only show mailboxes whose retention period has elapsed",
    )

    subparsers.add_parser(
        "purge-once",
        help="Run a single purge cycle and exit",
    )

    args = parser.parse_args(argv)

    if args.version:
        run_version()
        sys.exit(0)

    if args.command == "pending":
        sys.exit(run_pending(args))
    elif args.command == "purge-once":
        sys.exit(run_purge_once(args))
    else:
        sys.exit(run_server())


if __name__ == "__main__":
    main()
