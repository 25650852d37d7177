from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from chopphub.integrations.http import config_value, request_json


logger = logging.getLogger(__name__)

PROVIDER = "sendgrid"


@dataclass(frozen=True)
class MailAttachment:
    filename: str
    content: bytes
    content_type: str


@dataclass(frozen=True)
class MailSender:
    email: str
    name: str | None = None


def error_message_from(body: object) -> str | None:
    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return str(errors[0].get("message") or "") or None
    return None


def build_message(
    sender: MailSender,
    to: str,
    subject: str,
    text: str,
    html: str | None = None,
    attachments: Iterable[MailAttachment] = (),
) -> Dict[str, object]:
    content: List[Dict[str, str]] = [{"type": "text/plain", "value": text}]
    if html:
        content.append({"type": "text/html", "value": html})
    from_block: Dict[str, str] = {"email": sender.email}
    if sender.name:
        from_block["name"] = sender.name
    message: Dict[str, object] = {
        "personalizations": [{"to": [{"email": to}]}],
        "from": from_block,
        "subject": subject,
        "content": content,
    }
    encoded = [
        {
            "content": base64.b64encode(item.content).decode("ascii"),
            "filename": item.filename,
            "type": item.content_type,
            "disposition": "attachment",
        }
        for item in attachments
    ]
    if encoded:
        message["attachments"] = encoded
    return message


def send_mail(
    api_key: str,
    sender: MailSender,
    to: str,
    subject: str,
    text: str,
    html: str | None = None,
    attachments: Iterable[MailAttachment] = (),
) -> None:
    base = str(config_value("SENDGRID_BASE_URL", "https://api.sendgrid.com/v3")).rstrip("/")
    message = build_message(sender, to, subject, text, html, attachments)
    request_json(
        PROVIDER,
        "POST",
        f"{base}/mail/send",
        headers={"Authorization": f"Bearer {str(api_key or '').strip()}"},
        payload=message,
        message_from=error_message_from,
    )
    logger.info("mail_sent", extra={"subject": subject, "attachments": len(message.get("attachments") or [])})


def system_sender() -> tuple[str | None, MailSender]:
    """API key and sender used for account e-mails (invites, password resets)."""
    api_key = config_value("SENDGRID_API_KEY")
    sender = MailSender(
        email=str(config_value("SENDGRID_SENDER_EMAIL", "nao-responda@chopphub.com.br")),
        name=str(config_value("SENDGRID_SENDER_NAME", "Chopp Hub")),
    )
    return (str(api_key) if api_key else None), sender
