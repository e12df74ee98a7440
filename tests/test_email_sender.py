"""
Tests for the SMTP and Microsoft Graph email transports.
"""
import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests

from config.config_manager import GraphConfig, SmtpConfig
from errors.exceptions import NotificationError
from mail.graph import build_message_payload, get_graph_token, send_via_graph
from mail.sender import build_smtp_message, normalize_recipients, send_ticket_email, send_via_smtp, strip_tags


SMTP = SmtpConfig(host="smtp.example.com", port=587, user="desk", password="secret", from_email="desk@example.com")
GRAPH = GraphConfig(tenant_id="tenant", client_id="client", client_secret="shh", sender_upn="desk@example.com")


class TestRecipients:
    """Test recipient normalization."""

    def test_mixed_separators_deduplicated(self):
        assert normalize_recipients("a@x.com; b@x.com,a@x.com ,, ") == ["a@x.com", "b@x.com"]

    def test_list_input(self):
        assert normalize_recipients(["a@x.com,b@x.com", "b@x.com", None]) == ["a@x.com", "b@x.com"]

    @pytest.mark.parametrize("value", [None, "", [], " ; , "])
    def test_empty(self, value):
        assert normalize_recipients(value) == []


class TestSmtp:
    """Test the SMTP transport."""

    def test_message_has_text_and_html_parts(self):
        msg = build_smtp_message(SMTP, ["a@x.com", "b@x.com"], "Subject", "<p>Hello <b>there</b></p>")

        assert msg['From'] == "desk@example.com"
        assert msg['To'] == "a@x.com, b@x.com"
        assert msg.get_body(('plain',)).get_content().strip() == "Hello there"
        assert "<b>there</b>" in msg.get_body(('html',)).get_content()

    def test_strip_tags(self):
        assert strip_tags("<h2>Title</h2><p>x</p>") == "Titlex"

    @patch("mail.sender.smtplib.SMTP")
    def test_starttls_and_login(self, mock_smtp):
        server = mock_smtp.return_value.__enter__.return_value

        send_via_smtp(SMTP, ["a@x.com"], "Subject", "<p>x</p>")

        mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("desk", "secret")
        server.send_message.assert_called_once()

    @patch("mail.sender.smtplib.SMTP_SSL")
    def test_implicit_tls_without_credentials(self, mock_smtp_ssl):
        config = SmtpConfig(host="smtp.example.com", port=465, secure=True, from_email="desk@example.com")
        server = mock_smtp_ssl.return_value.__enter__.return_value

        send_via_smtp(config, ["a@x.com"], "Subject", "<p>x</p>")

        server.login.assert_not_called()
        server.send_message.assert_called_once()

    @patch("mail.sender.smtplib.SMTP")
    def test_failure_raises_notification_error(self, mock_smtp):
        mock_smtp.return_value.__enter__.return_value.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        with pytest.raises(NotificationError) as exc_info:
            send_via_smtp(SMTP, ["a@x.com"], "Subject", "<p>x</p>")
        assert exc_info.value.transport == "smtp"

    def test_unconfigured_host(self):
        with pytest.raises(NotificationError):
            send_via_smtp(SmtpConfig(host=None, port=None), ["a@x.com"], "Subject", "<p>x</p>")


class TestGraph:
    """Test the Microsoft Graph transport."""

    @patch("mail.graph.ConfidentialClientApplication")
    def test_token(self, mock_app):
        mock_app.return_value.acquire_token_for_client.return_value = {"access_token": "tok"}

        assert get_graph_token(GRAPH) == "tok"
        mock_app.assert_called_once_with(
            "client", authority="https://login.microsoftonline.com/tenant", client_credential="shh"
        )

    @patch("mail.graph.ConfidentialClientApplication")
    def test_token_error(self, mock_app):
        mock_app.return_value.acquire_token_for_client.return_value = {"error": "invalid_client"}

        with pytest.raises(NotificationError, match="invalid_client"):
            get_graph_token(GRAPH)

    def test_missing_credentials(self):
        with pytest.raises(NotificationError):
            get_graph_token(GraphConfig(tenant_id=None, client_id=None, client_secret=None, sender_upn="x"))

    def test_payload(self):
        payload = build_message_payload(["a@x.com"], "Subject", "<p>x</p>")
        assert payload["saveToSentItems"] is True
        assert payload["message"]["toRecipients"] == [{"emailAddress": {"address": "a@x.com"}}]
        assert payload["message"]["body"] == {"contentType": "HTML", "content": "<p>x</p>"}

    @patch("mail.graph.requests.post")
    @patch("mail.graph.get_graph_token", return_value="tok")
    def test_send_accepted(self, mock_token, mock_post):
        mock_post.return_value = MagicMock(status_code=202)

        send_via_graph(GRAPH, ["a@x.com"], "Subject", "<p>x</p>")

        url = mock_post.call_args[0][0]
        assert url == "https://graph.microsoft.com/v1.0/users/desk%40example.com/sendMail"
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer tok"

    @patch("mail.graph.requests.post")
    @patch("mail.graph.get_graph_token", return_value="tok")
    def test_send_rejected(self, mock_token, mock_post):
        mock_post.return_value = MagicMock(status_code=403, text="Forbidden")

        with pytest.raises(NotificationError, match="403"):
            send_via_graph(GRAPH, ["a@x.com"], "Subject", "<p>x</p>")

    @patch("mail.graph.requests.post", side_effect=requests.ConnectionError("down"))
    @patch("mail.graph.get_graph_token", return_value="tok")
    def test_send_network_error(self, mock_token, mock_post):
        with pytest.raises(NotificationError):
            send_via_graph(GRAPH, ["a@x.com"], "Subject", "<p>x</p>")


class TestSendTicketEmail:
    """Test transport dispatch."""

    @pytest.mark.asyncio
    async def test_empty_recipients_no_op(self):
        with patch("mail.sender.send_via_smtp") as mock_smtp:
            await send_ticket_email(False, "", "Subject", "<p>x</p>", smtp=SMTP)
        mock_smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispatch_to_smtp(self):
        with patch("mail.sender.send_via_smtp") as mock_smtp:
            await send_ticket_email(False, "a@x.com;a@x.com", "Subject", "<p>x</p>", smtp=SMTP)
        mock_smtp.assert_called_once_with(SMTP, ["a@x.com"], "Subject", "<p>x</p>")

    @pytest.mark.asyncio
    async def test_dispatch_to_graph(self):
        with patch("mail.sender.send_via_graph") as mock_graph:
            await send_ticket_email(True, ["a@x.com"], "Subject", "<p>x</p>", graph=GRAPH)
        mock_graph.assert_called_once_with(GRAPH, ["a@x.com"], "Subject", "<p>x</p>")

    @pytest.mark.asyncio
    async def test_missing_transport_config(self):
        with pytest.raises(NotificationError):
            await send_ticket_email(False, "a@x.com", "Subject", "<p>x</p>")

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self):
        with patch("mail.sender.send_via_smtp", side_effect=NotificationError("boom", transport="smtp")):
            with pytest.raises(NotificationError):
                await send_ticket_email(False, "a@x.com", "Subject", "<p>x</p>", smtp=SMTP)
