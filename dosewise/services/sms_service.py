"""
SMS Service - Text-message channel for supplement reminders (Twilio).

Credentials come from settings; without all three of them the channel
reports itself as unconfigured and reminders fall back to the log.
"""
from dataclasses import dataclass
from typing import Optional
import logging

from dosewise.config import get_settings

logger = logging.getLogger(__name__)

SIGNATURE = "- Dosewise"


@dataclass
class DeliveryResult:
    success: bool
    sid: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


def mask_phone(phone: Optional[str]) -> str:
    """Keep the country prefix and last four digits for log lines."""
    if phone and len(phone) > 6:
        return f"{phone[:3]}***{phone[-4:]}"
    return "***"


class SMSService:
    """Sends reminder texts through a lazily created Twilio client."""

    def __init__(self):
        self._client = None

    def is_configured(self) -> bool:
        settings = get_settings()
        return all((settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_phone_number))

    def _twilio(self):
        if self._client is None and self.is_configured():
            from twilio.rest import Client

            settings = get_settings()
            self._client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        return self._client

    def build_reminder_message(self, user_name: str, title: str, body: str) -> str:
        first_name = user_name.split()[0] if user_name and user_name.strip() else "there"
        return f"{title}, {first_name}!\n\n{body}\n\n{SIGNATURE}"

    def send_reminder(self, to_number: str, user_name: str, title: str, body: str) -> DeliveryResult:
        client = self._twilio()
        if client is None:
            logger.warning("Twilio credentials not configured")
            return DeliveryResult(success=False, error="SMS service not configured")

        from twilio.base.exceptions import TwilioRestException

        try:
            message = client.messages.create(
                body=self.build_reminder_message(user_name, title, body),
                from_=get_settings().twilio_phone_number,
                to=to_number
            )
        except TwilioRestException as e:
            logger.error(f"Twilio rejected reminder to {mask_phone(to_number)}: {e}")
            return DeliveryResult(success=False, error=str(e))

        logger.info(f"Reminder text sent to {mask_phone(to_number)} (SID {message.sid})")
        return DeliveryResult(success=True, sid=message.sid, status=message.status)


sms_service = SMSService()
