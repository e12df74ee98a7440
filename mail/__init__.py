# Mail package for outbound ticket email

from .sender import normalize_recipients, send_ticket_email, send_via_smtp, strip_tags
from .graph import send_via_graph, get_graph_token

__all__ = [
    'normalize_recipients',
    'send_ticket_email',
    'send_via_smtp',
    'strip_tags',
    'send_via_graph',
    'get_graph_token'
]
