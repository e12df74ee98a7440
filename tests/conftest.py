"""
Shared fixtures for the helpdesk test suite.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from config.config_manager import ENV_VARS
from config.settings_store import SettingsStore
from core.notifications import Notifier
from core.ticket_manager import TicketManager
from core.user_directory import UserDirectory
from database.file_store import FileTicketStore
from database.sqlite_adapter import SQLiteTicketStore
from errors.exceptions import NotificationError
from logging_config.logger import AuditLogger


USERS = [
    {"name": "Alice Smith", "email": "alice@example.com"},
    {"name": "Bob Jones", "email": "bob@example.com"},
    {"name": "Carol White", "email": "carol@example.com"},
]


class RecordingSender:
    """Stand-in for the email transport that records every send."""

    def __init__(self, fail: bool = False, delay: float = 0):
        self.fail = fail
        self.delay = delay
        self.calls = []

    async def __call__(self, use_graph, recipients, subject, html, smtp=None, graph=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append({
            'use_graph': use_graph,
            'recipients': list(recipients),
            'subject': subject,
            'html': html
        })
        if self.fail:
            raise NotificationError("SMTP send failed: connection refused", transport="smtp")

    def subjects(self):
        return [call['subject'] for call in self.calls]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host environment settings out of the tests."""
    for env_name in ENV_VARS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.delenv('CONFIG_FILE', raising=False)


@pytest.fixture
def audit_logger():
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifier(sender, audit_logger):
    return Notifier(send=sender, timeout=1.0, audit_logger=audit_logger)


@pytest.fixture
def ticket_dir(tmp_path):
    return tmp_path / "Ticket"


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(str(tmp_path / "data"))


@pytest_asyncio.fixture(params=["fs", "db"])
async def store(request, tmp_path, ticket_dir):
    """Both ticket stores, so every lifecycle test runs against each."""
    if request.param == "fs":
        ticket_store = FileTicketStore(str(ticket_dir))
    else:
        ticket_store = SQLiteTicketStore(str(tmp_path / "data" / "tickets.db"), str(ticket_dir))
    await ticket_store.connect()
    yield ticket_store
    await ticket_store.disconnect()


@pytest.fixture
def ticket_manager(store, settings, notifier, audit_logger):
    return TicketManager(
        store=store,
        settings=settings,
        notifier=notifier,
        user_directory=UserDirectory(USERS),
        base_url="https://helpdesk.example.com",
        helpdesk_email="helpdesk@example.com",
        audit_logger=audit_logger
    )


@pytest.fixture
def make_sender():
    """Factory for senders that fail or stall."""
    return RecordingSender
