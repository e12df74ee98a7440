"""
Ticket data model for the helpdesk.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from models.category import UNCATEGORIZED
from models.timestamps import format_timestamp, parse_timestamp


DEFAULT_SLA_HOURS = 24


class TicketStatus(str, Enum):
    """Enumeration for ticket status values, in informal workflow order."""
    ACKNOWLEDGED = "Acknowledged"
    WORKING_ON_IT = "Working on it"
    PENDING_RESULT = "Pending result"
    ON_HOLD = "On hold"
    COMPLETE = "Complete"

    @classmethod
    def parse(cls, value: Any) -> Optional['TicketStatus']:
        """Return the status for a stored value, or None if it is not one."""
        if isinstance(value, cls):
            return value
        for status in cls:
            if status.value == value:
                return status
        return None


class FeedbackRating(str, Enum):
    """Thumbs up / thumbs down rating left by the requester."""
    UP = "up"
    DOWN = "down"


def _optional_timestamp(value: Optional[datetime]) -> Optional[str]:
    return format_timestamp(value) if value else None


@dataclass
class TicketUpdate:
    """A single timestamped entry in a ticket's history."""
    at: Optional[datetime]
    text: str

    def to_dict(self) -> dict:
        return {'at': _optional_timestamp(self.at), 'text': self.text}

    @classmethod
    def from_dict(cls, data: dict) -> 'TicketUpdate':
        return cls(at=parse_timestamp(data.get('at')), text=str(data.get('text') or ''))


@dataclass
class Attachment:
    """
    Metadata for a file stored under the ticket's attachment directory.

    Attributes:
        original_name: File name as uploaded
        stored_name: Sanitized, collision-free name on disk
        size: Size in bytes
        mime: Content type reported at upload time
        uploaded_at: Upload timestamp
    """
    original_name: str
    stored_name: str
    size: int = 0
    mime: str = "application/octet-stream"
    uploaded_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'originalName': self.original_name,
            'storedName': self.stored_name,
            'size': self.size,
            'mime': self.mime,
            'uploadedAt': _optional_timestamp(self.uploaded_at)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Attachment':
        original_name = str(data.get('originalName') or data.get('storedName') or 'file.bin')
        return cls(
            original_name=original_name,
            stored_name=str(data.get('storedName') or original_name),
            size=int(data.get('size') or 0),
            mime=str(data.get('mime') or 'application/octet-stream'),
            uploaded_at=parse_timestamp(data.get('uploadedAt'))
        )


@dataclass
class Feedback:
    """Requester feedback left on a completed ticket."""
    rating: FeedbackRating
    comment: str = ""
    at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {'rating': self.rating.value, 'comment': self.comment, 'at': _optional_timestamp(self.at)}

    @classmethod
    def from_dict(cls, data: dict) -> Optional['Feedback']:
        if data.get('rating') not in ('up', 'down'):
            return None
        return cls(
            rating=FeedbackRating(data['rating']),
            comment=str(data.get('comment') or ''),
            at=parse_timestamp(data.get('at'))
        )


# Keys owned by the model; anything else on a stored record is carried in Ticket.extra
TICKET_KEYS = {
    'id', 'name', 'email', 'issue', 'category', 'status', 'created', 'dueAt',
    'slaMinutes', 'firstResponseAt', 'resolvedAt', 'updates', 'attachments',
    'related', 'feedback'
}


@dataclass
class Ticket:
    """
    Data model representing a helpdesk ticket.

    Attributes:
        id: Unique identifier, ``<PREFIX>-<6 base-36 chars>``
        name: Requester display name
        issue: Description given at submission, never changed afterwards
        email: Requester addresses, comma or semicolon separated
        category: One of the known categories or "Uncategorized"
        status: Current workflow status
        created: Creation timestamp
        due_at: SLA due timestamp
        sla_minutes: SLA window in minutes
        first_response_at: Time of the first free-text update
        resolved_at: Time the ticket first entered Complete
        updates: Append-only history, oldest first
        attachments: Attachment metadata, in upload order
        related: Id of a related ticket (weak reference, may dangle)
        feedback: Requester feedback, only on completed tickets
        extra: Unrecognized keys from the stored record, preserved on save
    """
    id: str
    name: str = ""
    issue: str = ""
    email: Optional[str] = None
    category: str = UNCATEGORIZED
    status: TicketStatus = TicketStatus.ACKNOWLEDGED
    created: Optional[datetime] = None
    due_at: Optional[datetime] = None
    sla_minutes: int = DEFAULT_SLA_HOURS * 60
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    updates: List[TicketUpdate] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    related: Optional[str] = None
    feedback: Optional[Feedback] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.status == TicketStatus.COMPLETE

    def add_update(self, text: str, at: Optional[datetime] = None) -> TicketUpdate:
        """Append a history entry and return it."""
        update = TicketUpdate(at=at, text=text)
        self.updates.append(update)
        return update

    def to_dict(self) -> dict:
        """Convert ticket to the JSON-ready record stored by the backends."""
        data = dict(self.extra)
        data.update({
            'id': self.id,
            'name': self.name,
            'issue': self.issue,
            'category': self.category,
            'status': self.status.value,
            'slaMinutes': self.sla_minutes,
            'updates': [update.to_dict() for update in self.updates],
            'attachments': [attachment.to_dict() for attachment in self.attachments]
        })

        optional = {
            'email': self.email,
            'created': _optional_timestamp(self.created),
            'dueAt': _optional_timestamp(self.due_at),
            'firstResponseAt': _optional_timestamp(self.first_response_at),
            'resolvedAt': _optional_timestamp(self.resolved_at),
            'related': self.related,
            'feedback': self.feedback.to_dict() if self.feedback else None
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Ticket':
        """Create a ticket from a hydrated record."""
        feedback = data.get('feedback')
        email = data.get('email')
        related = data.get('related')
        return cls(
            id=str(data['id']),
            name=str(data.get('name') or ''),
            issue=str(data.get('issue') or ''),
            email=str(email) if email else None,
            category=data.get('category') or UNCATEGORIZED,
            status=TicketStatus.parse(data.get('status')) or TicketStatus.ACKNOWLEDGED,
            created=parse_timestamp(data.get('created')),
            due_at=parse_timestamp(data.get('dueAt')),
            sla_minutes=int(round(data.get('slaMinutes') or DEFAULT_SLA_HOURS * 60)),
            first_response_at=parse_timestamp(data.get('firstResponseAt')),
            resolved_at=parse_timestamp(data.get('resolvedAt')),
            updates=[TicketUpdate.from_dict(u) for u in data.get('updates') or [] if isinstance(u, dict)],
            attachments=[Attachment.from_dict(a) for a in data.get('attachments') or [] if isinstance(a, dict)],
            related=str(related) if related else None,
            feedback=Feedback.from_dict(feedback) if isinstance(feedback, dict) else None,
            extra={key: value for key, value in data.items() if key not in TICKET_KEYS}
        )
