"""
Tests for ticket email composition and the fire-and-forget notifier.
"""
import asyncio

import pytest

from config.config_manager import ConfigManager
from core.notifications import (
    Notifier,
    anchor_group,
    anchor_id,
    group_recipients,
    new_ticket_email,
    resolved_email,
    ticket_url,
    update_email,
)
from models.ticket import Ticket


def ticket(ticket_id, related=None, email=None):
    return Ticket(id=ticket_id, name="Alice <Admin>", issue="printer & scanner", related=related, email=email)


class TestAnchorGroup:
    """Test recipient grouping through the related link."""

    def test_anchor_is_related_or_self(self):
        assert anchor_id(ticket("NTC-A")) == "NTC-A"
        assert anchor_id(ticket("NTC-B", related="NTC-A")) == "NTC-A"

    def test_group_contains_anchor_and_siblings(self):
        a = ticket("NTC-A", email="alice@example.com")
        b = ticket("NTC-B", related="NTC-A", email="bob@example.com; alice@example.com")
        c = ticket("NTC-C", related="NTC-A", email="carol@example.com")
        d = ticket("NTC-D", email="dave@example.com")

        group = anchor_group([a, b, c, d], c)

        assert [t.id for t in group] == ["NTC-A", "NTC-B", "NTC-C"]
        assert group_recipients(group) == ["alice@example.com", "bob@example.com", "carol@example.com"]

    def test_chains_are_not_followed(self):
        a = ticket("NTC-A", email="alice@example.com")
        b = ticket("NTC-B", related="NTC-A", email="bob@example.com")
        c = ticket("NTC-C", related="NTC-B", email="carol@example.com")

        assert [t.id for t in anchor_group([a, b, c], c)] == ["NTC-B", "NTC-C"]

    def test_dangling_anchor(self):
        orphan = ticket("NTC-B", related="NTC-GONE", email="bob@example.com")
        assert group_recipients(anchor_group([orphan], orphan)) == ["bob@example.com"]


class TestEmailContent:
    """Test subjects and bodies."""

    def test_new_ticket_email(self):
        subject, body = new_ticket_email(ticket("NTC-A"), "https://helpdesk.example.com/")
        assert subject == "New Ticket [NTC-A]"
        assert "https://helpdesk.example.com/tickets/NTC-A" in body
        assert "Alice &lt;Admin&gt;" in body
        assert "printer &amp; scanner" in body

    def test_update_email_quotes_text(self):
        subject, body = update_email(ticket("NTC-A"), "<b>done</b>", "")
        assert subject == "Update on NTC-A"
        assert "&lt;b&gt;done&lt;/b&gt;" in body

    def test_resolved_email_with_and_without_text(self):
        subject, body = resolved_email(ticket("NTC-A"), "Replaced toner", "https://h")
        assert subject == "Ticket NTC-A resolved - quick feedback?"
        assert "Replaced toner" in body

        _, plain = resolved_email(ticket("NTC-A"), None, "https://h")
        assert "Your ticket has been resolved.</p>" in plain

    def test_ticket_url(self):
        assert ticket_url("https://h/", "NTC-A") == "https://h/tickets/NTC-A"


class TestNotifier:
    """Test timeout racing and failure isolation."""

    @pytest.mark.asyncio
    async def test_successful_send(self, notifier, sender):
        assert await notifier.notify("a@example.com;b@example.com, a@example.com", "Hi", "<p>x</p>") is True
        assert sender.calls[0]['recipients'] == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_no_recipients_is_a_no_op(self, notifier, sender):
        assert await notifier.notify(["", None], "Hi", "<p>x</p>") is False
        assert sender.calls == []

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_audited(self, make_sender, audit_logger):
        notifier = Notifier(send=make_sender(fail=True), timeout=1.0, audit_logger=audit_logger)

        assert await notifier.notify("a@example.com", "Hi", "<p>x</p>", ticket_id="NTC-A") is False

        audit_logger.log_notification_failed.assert_called_once()
        args, kwargs = audit_logger.log_notification_failed.call_args
        assert args[:2] == ("Hi", 1)
        assert kwargs['ticket_id'] == "NTC-A"

    @pytest.mark.asyncio
    async def test_timeout_returns_and_send_continues(self, make_sender, audit_logger):
        slow = make_sender(delay=0.2)
        notifier = Notifier(send=slow, timeout=0.01, audit_logger=audit_logger)

        assert await notifier.notify("a@example.com", "Hi", "<p>x</p>") is False
        assert slow.calls == []
        assert notifier.pending == 1

        await notifier.drain()

        assert len(slow.calls) == 1
        assert notifier.pending == 0

    @pytest.mark.asyncio
    async def test_late_failure_is_logged(self, make_sender, audit_logger):
        slow_failure = make_sender(fail=True, delay=0.05)
        notifier = Notifier(send=slow_failure, timeout=0.01, audit_logger=audit_logger)

        await notifier.notify("a@example.com", "Hi", "<p>x</p>")
        await asyncio.sleep(0.1)

        audit_logger.log_notification_failed.assert_called_once()
        assert notifier.pending == 0

    def test_from_config(self, tmp_path, audit_logger):
        config = ConfigManager(str(tmp_path / "none.json"), environ={
            'USE_GRAPH': 'true',
            'NOTIFY_TIMEOUT_SECONDS': '3.5',
            'SMTP_HOST': 'smtp.example.com',
            'SMTP_PORT': '587',
            'AZURE_TENANT_ID': 'tenant',
            'GRAPH_SENDER_UPN': 'helpdesk@example.com'
        })

        notifier = Notifier.from_config(config, audit_logger=audit_logger)

        assert notifier.use_graph is True
        assert notifier.timeout == 3.5
        assert notifier.smtp.port == 587
        assert notifier.graph.sender_upn == "helpdesk@example.com"

    def test_from_config_with_bad_values(self, tmp_path, audit_logger):
        config = ConfigManager(str(tmp_path / "none.json"), environ={
            'NOTIFY_TIMEOUT_SECONDS': 'soon',
            'SMTP_PORT': 'smtp'
        })

        notifier = Notifier.from_config(config, audit_logger=audit_logger)

        assert notifier.timeout == 2.0
        assert notifier.smtp is None
