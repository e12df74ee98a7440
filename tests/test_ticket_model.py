"""
Unit tests for the ticket model, categories and timestamps.
"""
from datetime import datetime, timedelta, timezone

import pytest

from models.category import CATEGORIES, Category, UNCATEGORIZED, normalize_category
from models.ticket import Attachment, Feedback, FeedbackRating, Ticket, TicketStatus, TicketUpdate
from models.timestamps import format_timestamp, parse_timestamp, utc_now


class TestCategory:
    """Test category normalization."""

    @pytest.mark.parametrize("value", CATEGORIES)
    def test_known_categories_kept(self, value):
        assert normalize_category(value) == value

    @pytest.mark.parametrize("value", ["Firmware", "hardware", " Hardware", "Uncategorized", "", None, 3, ["Hardware"]])
    def test_everything_else_uncategorized(self, value):
        assert normalize_category(value) == UNCATEGORIZED

    def test_enumeration(self):
        assert [c.value for c in Category] == ["Hardware", "Software", "Networking", "Access", "Other"]


class TestTicketStatus:
    """Test TicketStatus parsing."""

    def test_values(self):
        assert TicketStatus.ACKNOWLEDGED.value == "Acknowledged"
        assert TicketStatus.WORKING_ON_IT.value == "Working on it"
        assert TicketStatus.PENDING_RESULT.value == "Pending result"
        assert TicketStatus.ON_HOLD.value == "On hold"
        assert TicketStatus.COMPLETE.value == "Complete"

    def test_parse(self):
        assert TicketStatus.parse("Complete") is TicketStatus.COMPLETE
        assert TicketStatus.parse(TicketStatus.ON_HOLD) is TicketStatus.ON_HOLD
        assert TicketStatus.parse("complete") is None
        assert TicketStatus.parse(None) is None


class TestTimestamps:
    """Test timestamp parsing and formatting."""

    def test_format_uses_z_and_milliseconds(self):
        value = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-05-01T12:00:00.123Z"

    def test_parse_variants(self):
        expected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2024-05-01T12:00:00.000Z") == expected
        assert parse_timestamp("2024-05-01T14:00:00+02:00") == expected
        assert parse_timestamp("2024-05-01T12:00:00") == expected
        assert parse_timestamp(expected) == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12345])
    def test_parse_invalid(self, value):
        assert parse_timestamp(value) is None

    def test_utc_now_is_aware_and_truncated(self):
        now = utc_now()
        assert now.tzinfo is not None
        assert now.microsecond % 1000 == 0
        assert parse_timestamp(format_timestamp(now)) == now


class TestTicket:
    """Test Ticket serialization."""

    def test_defaults(self):
        ticket = Ticket(id="NTC-ABC123")
        assert ticket.status == TicketStatus.ACKNOWLEDGED
        assert ticket.category == UNCATEGORIZED
        assert ticket.sla_minutes == 1440
        assert ticket.updates == []
        assert ticket.is_complete is False

    def test_to_dict_uses_stored_keys(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        ticket = Ticket(id="NTC-ABC123", name="Alice", issue="printer jam", created=created,
                        due_at=created + timedelta(hours=24), status=TicketStatus.WORKING_ON_IT)
        ticket.add_update("On it", created)

        data = ticket.to_dict()

        assert data['status'] == "Working on it"
        assert data['created'] == "2024-05-01T12:00:00.000Z"
        assert data['dueAt'] == "2024-05-02T12:00:00.000Z"
        assert data['updates'] == [{'at': "2024-05-01T12:00:00.000Z", 'text': "On it"}]
        assert 'email' not in data
        assert 'feedback' not in data
        assert 'resolvedAt' not in data

    def test_from_dict_round_trip(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        ticket = Ticket(
            id="NTC-ABC123",
            name="Alice",
            issue="printer jam",
            email="alice@example.com",
            category="Access",
            status=TicketStatus.COMPLETE,
            created=created,
            resolved_at=created + timedelta(hours=2),
            updates=[TicketUpdate(created, "note")],
            attachments=[Attachment("a b.txt", "stamp-a_b.txt", 3, "text/plain", created)],
            feedback=Feedback(FeedbackRating.UP, "thanks", created),
            extra={'mailboxId': "AAMk"}
        )
        assert Ticket.from_dict(ticket.to_dict()) == ticket

    def test_from_dict_tolerates_junk(self):
        ticket = Ticket.from_dict({
            'id': "NTC-1",
            'status': "Nonsense",
            'updates': [{'text': "x"}, "junk"],
            'attachments': [{'storedName': "f.bin"}],
            'feedback': {'rating': "sideways"}
        })
        assert ticket.status == TicketStatus.ACKNOWLEDGED
        assert [u.text for u in ticket.updates] == ["x"]
        assert ticket.attachments[0].original_name == "f.bin"
        assert ticket.feedback is None
