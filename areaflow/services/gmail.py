"""
Gmail service - new mail triggers and send reaction

Uses Gmail API v1. Required OAuth scopes: gmail.send, gmail.readonly, gmail.modify
"""

import base64
import logging
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional

from ..engine.models import CheckResult, EvaluationContext
from ..errors import ExternalServiceError
from .base import Parameter, Reaction, Service, Trigger
from .http import fetch_json, post_json

logger = logging.getLogger(__name__)

SERVICE_NAME = "gmail"
API_BASE = "https://gmail.googleapis.com/gmail/v1"


def _headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Accept": "application/json"}


def build_query(params: Dict[str, Any], attachments_only: bool = False) -> str:
    """Gmail search query for unread mail matching the optional filters."""
    parts = ["has:attachment", "is:unread"] if attachments_only else ["is:unread"]
    if params.get("from"):
        parts.append(f"from:{params['from']}")
    if params.get("subject"):
        parts.append(f"subject:{params['subject']}")
    if params.get("label"):
        parts.append(f"label:{params['label']}")
    if attachments_only and params.get("fileExtension"):
        parts.append(f"filename:{str(params['fileExtension']).lstrip('.')}")
    return " ".join(parts)


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _header(headers: List[Dict[str, str]], name: str, default: str) -> str:
    for h in headers:
        if str(h.get("name") or "").lower() == name:
            return h.get("value", default)
    return default


async def _check_latest_message(
    context: EvaluationContext,
    query: str,
    cursor_key: str,
    build_data: Callable[[str, Dict[str, Any]], Dict[str, Any]],
) -> CheckResult:
    """Single-slot cursor over the newest message matching ``query``."""
    token = context.require_access_token(SERVICE_NAME)
    try:
        listing = await fetch_json(
            f"{API_BASE}/users/me/messages",
            service=SERVICE_NAME,
            headers=_headers(token),
            params={"q": query, "maxResults": 1},
        )
    except ExternalServiceError as e:
        logger.warning(f"Gmail check failed ({query}): {e}")
        return CheckResult.idle()

    messages = listing.get("messages") if isinstance(listing, dict) else None
    if not isinstance(messages, list) or not messages:
        return CheckResult.idle()
    if not isinstance(messages[0], dict) or not messages[0].get("id"):
        return CheckResult.idle()
    latest_id = messages[0]["id"]

    last_id = context.metadata.get(cursor_key)
    if last_id is None:
        return CheckResult(fired=False, metadata={cursor_key: latest_id})
    if latest_id == last_id:
        return CheckResult.idle()

    # Details are fetched before moving the cursor so a failure retries next sweep
    try:
        message = await fetch_json(
            f"{API_BASE}/users/me/messages/{latest_id}",
            service=SERVICE_NAME,
            headers=_headers(token),
        )
    except ExternalServiceError as e:
        logger.warning(f"Gmail message fetch failed for {latest_id}: {e}")
        return CheckResult.idle()

    if not isinstance(message, dict):
        logger.warning(f"Gmail message {latest_id} came back malformed")
        return CheckResult.idle()
    return CheckResult(fired=True, data=build_data(latest_id, message), metadata={cursor_key: latest_id})


def _payload(message: Dict[str, Any]) -> Dict[str, Any]:
    payload = message.get("payload")
    return payload if isinstance(payload, dict) else {}


def _email_data(message_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
    payload = _payload(message)
    headers = _dict_items(payload.get("headers"))
    attachments = [p for p in _dict_items(payload.get("parts")) if p.get("filename")]
    return {
        "messageId": message_id,
        "from": _header(headers, "from", "Unknown"),
        "subject": _header(headers, "subject", "No Subject"),
        "snippet": message.get("snippet", ""),
        "date": _header(headers, "date", ""),
        "attachmentCount": len(attachments),
        "firstAttachmentName": attachments[0]["filename"] if attachments else "",
    }


def _attachment_data(message_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
    payload = _payload(message)
    headers = _dict_items(payload.get("headers"))
    attachments = []
    for part in _dict_items(payload.get("parts")):
        body = part.get("body") if isinstance(part.get("body"), dict) else {}
        # Inline bodies carry no attachmentId
        if part.get("filename") and body.get("attachmentId"):
            attachments.append({
                "filename": part["filename"],
                "mimeType": part.get("mimeType", ""),
                "size": body.get("size", 0),
            })
    return {
        "messageId": message_id,
        "from": _header(headers, "from", "Unknown"),
        "subject": _header(headers, "subject", "No Subject"),
        "snippet": message.get("snippet", ""),
        "attachmentCount": len(attachments),
        "firstAttachmentName": attachments[0]["filename"] if attachments else "",
        "attachments": attachments,
    }


async def check_new_email(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    return await _check_latest_message(context, build_query(params), "lastEmailId", _email_data)


async def check_new_attachment(params: Dict[str, Any], context: EvaluationContext) -> CheckResult:
    return await _check_latest_message(
        context,
        build_query(params, attachments_only=True),
        "lastAttachmentEmailId",
        _attachment_data,
    )


def encode_message(to: str, subject: str, body: str, reply_to: Optional[str] = None) -> str:
    """RFC 2822 message, base64url encoded as the Gmail API expects."""
    message = MIMEText(body or "", "plain", "utf-8")
    message["To"] = to
    message["Subject"] = subject
    if reply_to:
        message["Reply-To"] = reply_to
    return base64.urlsafe_b64encode(message.as_bytes()).decode().rstrip("=")


async def send_email(params: Dict[str, Any], context: EvaluationContext) -> None:
    token = context.require_access_token(SERVICE_NAME)
    raw = encode_message(
        to=params.get("to", ""),
        subject=params.get("subject", ""),
        body=params.get("body", ""),
        reply_to=params.get("replyTo"),
    )
    result = await post_json(
        f"{API_BASE}/users/me/messages/send",
        {"raw": raw},
        service=SERVICE_NAME,
        headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
    )
    logger.info(f"Gmail sent: {result.get('id') if isinstance(result, dict) else None}")


gmail_service = Service(
    name=SERVICE_NAME,
    description="Gmail email management and automation",
    auth_type="oauth2",
    triggers=(
        Trigger(
            name="new_email",
            description="Triggered when a new email is received",
            check=check_new_email,
            params={
                "from": Parameter(
                    type="string",
                    label="From (optional)",
                    required=False,
                    description="Filter by sender email address",
                ),
                "subject": Parameter(
                    type="string",
                    label="Subject contains (optional)",
                    required=False,
                    description="Filter by subject keywords",
                ),
                "label": Parameter(
                    type="string",
                    label="Label (optional)",
                    required=False,
                    description="Filter by Gmail label (e.g., INBOX, IMPORTANT)",
                ),
            },
            variables={
                "messageId": "ID of the email message",
                "from": "Sender address",
                "subject": "Subject line",
                "snippet": "Short preview of the email body",
                "date": "Date received",
                "attachmentCount": "Number of attachments",
                "firstAttachmentName": "Name of the first attachment",
            },
        ),
        Trigger(
            name="new_attach",
            description="Triggered when a new email with an attachment is received",
            check=check_new_attachment,
            params={
                "fileExtension": Parameter(
                    type="string",
                    label="File Extension (optional)",
                    required=False,
                    description="Filter by attachment extension (e.g., pdf, jpg, xlsx)",
                ),
                "from": Parameter(
                    type="string",
                    label="From (optional)",
                    required=False,
                    description="Filter by sender email address",
                ),
            },
            variables={
                "messageId": "ID of the email message",
                "from": "Sender address",
                "subject": "Subject line",
                "snippet": "Short preview of the email body",
                "attachmentCount": "Number of attachments",
                "firstAttachmentName": "Name of the first attachment",
                "attachments": "List of attachments (filename, mimeType, size)",
            },
        ),
    ),
    reactions=(
        Reaction(
            name="send_email",
            description="Sends an email via Gmail",
            execute=send_email,
            params={
                "to": Parameter(type="string", label="To", description="Recipient email address"),
                "subject": Parameter(type="string", label="Subject"),
                "body": Parameter(type="string", label="Body", description="Email body (supports templates)"),
                "replyTo": Parameter(type="string", label="Reply To", required=False),
            },
        ),
    ),
)
