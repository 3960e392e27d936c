"""
Email notifications for Naybourhood.
Sends assignment and message notifications through the Resend API.
"""

import html
import logging
from dataclasses import dataclass
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import EmailConfig
from .errors import NotificationError
from .records import Buyer

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
MESSAGE_PREVIEW_LENGTH = 100


@dataclass
class EmailMessage:
    """Represents an email to be sent."""
    to: str
    subject: str
    body_html: str
    body_text: str
    from_email: Optional[str] = None
    reply_to: Optional[str] = None


def intent_badge(intent: Optional[str]) -> str:
    intent = (intent or "").lower()
    if intent == "hot":
        return "🔥"
    if intent == "warm":
        return "🌡️"
    return "❄️"


def _detail_rows(details: list[tuple[str, Optional[str]]]) -> str:
    rows = []
    for label, value in details:
        if not value:
            continue
        rows.append(
            f'<tr><td style="padding: 8px; border-bottom: 1px solid #f0f0f0; color: #666;">{label}</td>'
            f'<td style="padding: 8px; border-bottom: 1px solid #f0f0f0;"><strong>{html.escape(str(value))}</strong></td></tr>'
        )
    return "\n".join(rows)


class Notifier:
    """Resend email sender. send_email is best-effort and returns False on failure; deliver raises."""

    def __init__(self, config: EmailConfig, site_url: str = "", session: Optional[requests.Session] = None):
        self.config = config
        self.site_url = site_url.rstrip("/")
        if session is None:
            session = requests.Session()
            retries = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
            )
            session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session = session

    @property
    def enabled(self) -> bool:
        return bool(self.config.resend_api_key)

    def send_email(self, message: EmailMessage) -> bool:
        if not self.enabled:
            logger.info(f"Email disabled, not sending '{message.subject}' to {message.to}")
            return False

        try:
            self.deliver(message)
        except NotificationError:
            return False
        return True

    def deliver(self, message: EmailMessage) -> dict:
        """Send one email and return Resend's response body."""
        if not self.enabled:
            raise NotificationError("Email service is not configured", status_code=500)

        payload = {
            "from": message.from_email or self.config.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.body_html,
            "text": message.body_text,
        }
        if message.reply_to:
            payload["reply_to"] = message.reply_to

        try:
            response = self.session.post(
                RESEND_URL,
                headers={
                    "Authorization": f"Bearer {self.config.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=30,
            )
        except requests.RequestException as e:
            logger.error(f"Failed to send email to {message.to}: {e}")
            raise NotificationError(f"Failed to send email: {e}") from e

        if not response.ok:
            logger.error(f"Resend API error {response.status_code}: {response.text}")
            raise NotificationError(f"Failed to send email: {response.text}")

        logger.info(f"Email sent to {message.to}: {message.subject}")
        try:
            return response.json() or {}
        except ValueError:
            logger.warning(f"Resend returned a non-JSON body for '{message.subject}'")
            return {}

    def send_assignment_notification(self, caller_email: str, caller_name: Optional[str], buyer: Buyer) -> bool:
        """Tell a caller they have been assigned a buyer."""
        if not caller_email:
            logger.warning(f"No email for caller of buyer {buyer.id}, skipping notification")
            return False

        score = f"{buyer.score:.0f}" if buyer.score else "N/A"
        intent = buyer.intent or "Unknown"
        details = [
            ("Name", buyer.name),
            ("Email", buyer.email),
            ("Phone", buyer.phone),
            ("Budget", buyer.budget_range),
            ("Location", buyer.location),
            ("Timeline", buyer.timeline),
            ("Development", buyer.development),
        ]
        subject = f"New Lead Assigned: {buyer.name} ({intent} Intent)"

        body_text = "\n".join(
            [
                f"Hi {caller_name or 'there'},",
                "",
                "You've been assigned a new lead.",
                "",
                f"Quality Score: {score}",
                f"Intent: {intent}",
                *[f"{label}: {value}" for label, value in details if value],
                "",
                "Please reach out within 24 hours.",
                "",
                "---",
                "Naybourhood",
            ]
        )

        body_html = f"""
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px;">
<h2>NAYBOURHOOD</h2>
<p>Hi {html.escape(caller_name or 'there')},</p>
<p>You've been assigned a new lead. Here are the details:</p>
<p style="font-size: 32px; font-weight: bold; color: {'#22c55e' if (buyer.score or 0) >= 70 else '#f59e0b'};">{score}</p>
<p>{intent_badge(buyer.intent)} {html.escape(intent)} Intent</p>

<table style="width: 100%; border-collapse: collapse;">
{_detail_rows(details)}
</table>

{f'<p><a href="{self.site_url}/buyers" style="background: #2563eb; color: white; padding: 12px 32px; text-decoration: none; border-radius: 8px;">View in Dashboard</a></p>' if self.site_url else ''}

<p style="color: #999; font-size: 12px;">Please reach out within 24 hours.</p>
</body>
</html>
        """

        return self.send_email(EmailMessage(
            to=caller_email,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
        ))

    def send_message_notification(
        self,
        to_email: Optional[str],
        conversation_id: str,
        buyer_name: Optional[str],
        message: str,
    ) -> bool:
        """Notify a buyer that a user sent them a message."""
        if not to_email:
            logger.info(f"No email for conversation {conversation_id}, notification not sent")
            return False

        preview = message[:MESSAGE_PREVIEW_LENGTH]
        if len(message) > MESSAGE_PREVIEW_LENGTH:
            preview += "..."

        return self.send_email(EmailMessage(
            to=to_email,
            subject="You have a new message on Naybourhood",
            body_text=f"Hi {buyer_name or 'there'},\n\nYou have a new message:\n\n{preview}\n\n---\nNaybourhood",
            body_html=(
                f"<html><body style=\"font-family: Arial, sans-serif; max-width: 600px;\">"
                f"<p>Hi {html.escape(buyer_name or 'there')},</p>"
                f"<p>You have a new message:</p>"
                f"<blockquote style=\"background: #f8f9fa; padding: 15px; border-radius: 5px;\">{html.escape(preview)}</blockquote>"
                f"<p style=\"color: #999; font-size: 12px;\">Naybourhood</p>"
                f"</body></html>"
            ),
        ))
