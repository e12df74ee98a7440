#!/usr/bin/env python3
"""
IT Helpdesk - application wiring and admin command line.

Builds the configuration, settings, ticket store, notifier and lifecycle
engine, and offers a few admin commands on top of them.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from config.config_manager import ConfigManager
from config.settings_store import SettingsStore
from core.metrics import compute_dashboard_stats, is_overdue
from core.notifications import Notifier
from core.ticket_manager import TicketManager
from core.user_directory import UserDirectory
from database.adapter import TicketStore
from database.selector import create_ticket_store, migrate_file_store_to_sqlite
from errors.exceptions import ConfigurationError, HelpdeskError
from errors.handlers import format_error_message, log_error
from logging_config import get_audit_logger, setup_logging
from models.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)


class HelpdeskApp:
    """Owns the helpdesk components for the life of the process."""

    def __init__(self, config_file: Optional[str] = None, strict_config: bool = False):
        """
        Args:
            config_file: Optional JSON configuration file (CONFIG_FILE env var by default)
            strict_config: Refuse to start when configuration validation reports errors
        """
        self.config_file = config_file or os.getenv('CONFIG_FILE', 'config.json')
        self.strict_config = strict_config
        self.config_manager: Optional[ConfigManager] = None
        self.settings: Optional[SettingsStore] = None
        self.store: Optional[TicketStore] = None
        self.notifier: Optional[Notifier] = None
        self.ticket_manager: Optional[TicketManager] = None

    async def start(self) -> TicketManager:
        """Initialize every component and return the lifecycle engine."""
        logger.info("Starting helpdesk...")
        try:
            self._initialize_config()
            await self._initialize_store()
            self._initialize_ticket_manager()
        except Exception as e:
            logger.error(f"Error during helpdesk setup: {e}")
            await self.stop()
            raise

        logger.info(f"Helpdesk started with the {self.store.backend} ticket store")
        return self.ticket_manager

    def _initialize_config(self):
        self.config_manager = ConfigManager(self.config_file)

        errors = self.config_manager.validate_configuration()
        if errors:
            error_msg = "Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors)
            if self.strict_config:
                raise ConfigurationError(error_msg)
            logger.warning(error_msg)

        self.settings = SettingsStore(
            self.config_manager.get_global_config('data_dir'),
            fallback_sla_hours=self._float_setting('sla_hours')
        )

    def _float_setting(self, key: str) -> Optional[float]:
        try:
            return self.config_manager.get_float(key)
        except ConfigurationError as e:
            logger.warning(str(e))
            return None

    async def _initialize_store(self):
        sla_hours = self._float_setting('sla_hours')
        sla_minutes = int(round(sla_hours * 60)) if sla_hours and sla_hours > 0 else None
        self.store = await create_ticket_store(self.config_manager, sla_minutes)

    def _initialize_ticket_manager(self):
        if not self.store or not self.config_manager:
            raise RuntimeError("Configuration and store must be initialized before the ticket manager")

        audit_logger = get_audit_logger()
        self.notifier = Notifier.from_config(self.config_manager, audit_logger=audit_logger)
        max_bytes = self._float_setting('max_attachment_bytes')

        self.ticket_manager = TicketManager(
            store=self.store,
            settings=self.settings,
            notifier=self.notifier,
            user_directory=UserDirectory.from_file(self.config_manager.get_global_config('users_file')),
            base_url=self.config_manager.get_global_config('base_url'),
            helpdesk_email=self.config_manager.get_global_config('helpdesk_email'),
            max_attachment_bytes=int(max_bytes) if max_bytes else 35 * 1024 * 1024,
            audit_logger=audit_logger
        )

    async def stop(self):
        """Let pending emails finish and release the store."""
        if self.notifier:
            await self.notifier.drain()
        if self.store:
            try:
                await self.store.disconnect()
            except Exception as e:
                logger.error(f"Error during store cleanup: {e}")
        self.store = None
        self.ticket_manager = None
        self.notifier = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="IT helpdesk administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python helpdesk.py validate                         # Check configuration
  python helpdesk.py list --status active             # Open tickets
  python helpdesk.py stats                            # Dashboard numbers
  python helpdesk.py show NTC-AB12CD                  # One ticket
  python helpdesk.py migrate Ticket data/tickets.db   # Import JSON tickets into SQLite
        """
    )
    parser.add_argument('--config', help='Path to the JSON configuration file')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('validate', help='Validate configuration')

    list_parser = subparsers.add_parser('list', help='List tickets')
    list_parser.add_argument('--category', help='Only tickets in this category')
    list_parser.add_argument('--status', default='all', choices=['all', 'active', 'complete'])

    subparsers.add_parser('stats', help='Show dashboard statistics')

    show_parser = subparsers.add_parser('show', help='Show a ticket')
    show_parser.add_argument('ticket_id')

    migrate_parser = subparsers.add_parser('migrate', help='Import JSON tickets into SQLite')
    migrate_parser.add_argument('source', nargs='?', default='Ticket')
    migrate_parser.add_argument('db_file', nargs='?', default='data/tickets.db')

    return parser


def _print_ticket_row(ticket, now) -> None:
    overdue = " (overdue)" if is_overdue(ticket, now) else ""
    created = format_timestamp(ticket.created) if ticket.created else "-"
    print(f"{ticket.id:<12} {ticket.status.value:<15} {ticket.category:<14} {created}  {ticket.name}{overdue}")


async def run_command(args: argparse.Namespace) -> int:
    """Execute one CLI command and return the exit code."""
    if args.command == 'validate':
        errors = ConfigManager(args.config or os.getenv('CONFIG_FILE', 'config.json')).validate_configuration()
        for error in errors:
            print(f"- {error}")
        print("Configuration OK" if not errors else f"{len(errors)} configuration problem(s)")
        return 1 if errors else 0

    if args.command == 'migrate':
        count = await migrate_file_store_to_sqlite(args.source, args.db_file)
        print(f"Imported {count} tickets from {args.source} into {args.db_file}")
        return 0

    async with HelpdeskApp(args.config) as app:
        manager = app.ticket_manager

        if args.command == 'list':
            now = utc_now()
            for ticket in await manager.list_tickets(args.category, args.status):
                _print_ticket_row(ticket, now)
            return 0

        if args.command == 'stats':
            stats = compute_dashboard_stats(await manager.list_tickets())
            print(f"Total: {stats.total}  Open: {stats.open}  Closed: {stats.closed}  Overdue: {stats.overdue}")
            print(f"Avg first response: {stats.avg_first_response}  Avg resolution: {stats.avg_resolution}")
            return 0

        if args.command == 'show':
            ticket = await manager.get_ticket(args.ticket_id)
            if ticket is None:
                print(f"Ticket {args.ticket_id} not found")
                return 1
            for key, value in ticket.to_dict().items():
                if key not in ('updates', 'attachments'):
                    print(f"{key}: {value}")
            for update in ticket.updates:
                print(f"  [{format_timestamp(update.at) if update.at else '-'}] {update.text}")
            for attachment in ticket.attachments:
                print(f"  attachment: {attachment.original_name} ({attachment.size} bytes)")
            return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    setup_logging(log_dir=os.getenv('LOG_DIR', 'logs'), log_level=os.getenv('LOG_LEVEL', 'INFO'))

    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run_command(args))
    except HelpdeskError as e:
        log_error(e, context=f"cli:{args.command}")
        print(format_error_message(e, include_details=True), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
