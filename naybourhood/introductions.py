"""
Buyer introductions.
A user introduces themselves to a buyer by email (through Resend) or WhatsApp.
"""

import html
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import RequestValidationError
from .notifications import EmailMessage, Notifier

logger = logging.getLogger(__name__)

INTRODUCTION_FROM = "Naybourhood <introductions@resend.dev>"
CHANNELS = ("email", "whatsapp")


@dataclass
class Sender:
    name: str
    email: str = ""
    company: str = "Naybourhood Partner"

    @classmethod
    def from_email(cls, email: Optional[str]) -> "Sender":
        if not email:
            return cls(name="A Naybourhood Partner", company="Naybourhood")
        return cls(name=email.split("@")[0] or "A Partner", email=email)


def introduction_subject(sender: Sender) -> str:
    return f"{sender.name} from {sender.company} would like to connect"


def introduction_html(sender: Sender, buyer_name: str, message: str) -> str:
    email_row = ""
    if sender.email:
        address = html.escape(sender.email)
        email_row = f'<p><strong>Email:</strong> <a href="mailto:{address}" style="color: white;">{address}</a></p>'

    return f"""
<html>
<body style="font-family: Arial, sans-serif; background-color: #f5f5f5;">
<div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; padding: 32px;">
<h2 style="text-align: center;">NAYBOURHOOD</h2>
<p style="text-align: center; color: #666;">Property Introduction</p>
<p>Hi {html.escape(buyer_name)},</p>
<div style="white-space: pre-wrap; background: #f9f9f9; padding: 16px; border-radius: 8px;">{html.escape(message)}</div>
<div style="background: #667eea; color: white; border-radius: 12px; padding: 20px; margin-top: 24px;">
<h3>Contact Details</h3>
<p><strong>Name:</strong> {html.escape(sender.name)}</p>
<p><strong>Company:</strong> {html.escape(sender.company)}</p>
{email_row}
</div>
<p style="text-align: center; color: #999; font-size: 12px;">This introduction was sent via Naybourhood.<br>If you didn't request this, please ignore this email.</p>
</div>
</body>
</html>
    """


class IntroductionService:

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    def send(self, body: dict, sender: Sender) -> dict:
        """Send or log one introduction; a failed Resend call raises NotificationError."""
        channel = body.get("channel")
        buyer_id = body.get("buyerId")
        buyer_name = body.get("buyerName") or "there"
        message = body.get("customMessage") or ""
        logger.info(f"Introduction for buyer {buyer_id} over {channel} from {sender.name}")

        if channel not in CHANNELS:
            raise RequestValidationError("Invalid channel specified")

        if channel == "whatsapp":
            # No WhatsApp provider yet, the request is only logged
            logger.info(f"WhatsApp introduction to {body.get('buyerPhone')} logged")
            return {"success": True, "message": "WhatsApp introduction logged (integration pending)", "demo": True}

        buyer_email = body.get("buyerEmail")
        if not buyer_email:
            raise RequestValidationError("Buyer email is required for email introductions")

        subject = introduction_subject(sender)
        if not self.notifier.enabled:
            logger.info(f"Email disabled, introduction '{subject}' to {buyer_email} logged")
            return {"success": True, "message": "Introduction logged (email service not configured)", "demo": True}

        result = self.notifier.deliver(EmailMessage(
            to=buyer_email,
            subject=subject,
            body_html=introduction_html(sender, buyer_name, message),
            body_text=(
                f"Hi {buyer_name},\n\n{message}\n\n"
                f"{sender.name}\n{sender.company}\n{sender.email}\n\n---\nSent via Naybourhood"
            ),
            from_email=INTRODUCTION_FROM,
            reply_to=sender.email or None,
        ))
        return {"success": True, "message": "Introduction email sent successfully", "emailId": result.get("id")}
