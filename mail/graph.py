"""
Microsoft Graph mail transport (application permissions).
"""
import logging
from typing import List
from urllib.parse import quote

import requests
from msal import ConfidentialClientApplication

from config.config_manager import GraphConfig
from errors.exceptions import NotificationError

logger = logging.getLogger(__name__)


GRAPH_DEFAULT_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_SEND_MAIL_URL = "https://graph.microsoft.com/v1.0/users/{sender}/sendMail"
REQUEST_TIMEOUT_SECONDS = 10


def get_graph_token(graph: GraphConfig) -> str:
    """
    Acquire an app-only access token with the client-credentials flow.

    Raises:
        NotificationError: If the Graph settings are incomplete or MSAL
            does not return a token
    """
    if not (graph.tenant_id and graph.client_id and graph.client_secret):
        raise NotificationError("Graph tenant, client id and secret must be configured", transport="graph")

    client = ConfidentialClientApplication(
        graph.client_id,
        authority=graph.authority,
        client_credential=graph.client_secret,
    )
    result = client.acquire_token_for_client(scopes=[GRAPH_DEFAULT_SCOPE])
    token = result.get("access_token")
    if not token:
        error = result.get("error_description") or result.get("error") or "Unknown error"
        raise NotificationError(f"Token error: {error}", transport="graph")
    return token


def build_message_payload(recipients: List[str], subject: str, html: str) -> dict:
    return {
        "message": {
            "subject": subject,
            "body": {"contentType": "HTML", "content": html},
            "toRecipients": [{"emailAddress": {"address": address}} for address in recipients],
        },
        "saveToSentItems": True,
    }


def send_via_graph(graph: GraphConfig, recipients: List[str], subject: str, html: str) -> None:
    """
    Send an HTML email from the configured sender mailbox.

    Blocking; callers on the event loop run it in an executor.

    Raises:
        NotificationError: If the token cannot be acquired or Graph does not
            answer 202 Accepted
    """
    if not graph.sender_upn:
        raise NotificationError("GRAPH_SENDER_UPN is not configured", transport="graph")

    token = get_graph_token(graph)
    endpoint = GRAPH_SEND_MAIL_URL.format(sender=quote(graph.sender_upn))
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }

    try:
        resp = requests.post(
            endpoint,
            headers=headers,
            json=build_message_payload(recipients, subject, html),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise NotificationError(f"Graph sendMail request failed: {e}", transport="graph") from e

    if resp.status_code != 202:
        raise NotificationError(
            f"Graph send error: {resp.status_code} {resp.text[:200]}",
            transport="graph"
        )
    logger.debug(f"Graph accepted message '{subject}' for {len(recipients)} recipient(s)")
