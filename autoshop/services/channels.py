"""
Delivery Channels
SMS through the Twilio REST API and email through Resend (MJML bodies), behind one
send(target, message) interface
"""

import asyncio
import logging
from dataclasses import dataclass
from io import StringIO
from typing import Optional, Protocol

import httpx
import resend
from mjml import mjml_to_html

from ..config import (
    EMAIL_FROM_ADDRESS,
    RESEND_API_KEY,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
    TWILIO_MESSAGING_SERVICE_SID,
)
from ..exceptions import ChannelDeliveryError

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


@dataclass
class ChannelMessage:
    subject: str
    body: str
    # MJML source; channels that send HTML compile it
    mjml: Optional[str] = None


@dataclass
class ChannelReceipt:
    message_id: Optional[str]


class NotificationChannel(Protocol):
    """send() returns a receipt or raises ChannelDeliveryError"""

    name: str

    async def send(self, target: str, message: ChannelMessage) -> ChannelReceipt:
        ...


class SmsChannel:
    name = "sms"

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid or TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or TWILIO_AUTH_TOKEN
        self.from_number = from_number or TWILIO_FROM_NUMBER
        self.messaging_service_sid = messaging_service_sid or TWILIO_MESSAGING_SERVICE_SID
        self.timeout = timeout

    async def send(self, target: str, message: ChannelMessage) -> ChannelReceipt:
        if not self.account_sid or not self.auth_token:
            raise ChannelDeliveryError(self.name, "Twilio credentials not configured")

        # Ensure phone number is in E.164 format
        if not target or not target.startswith("+"):
            raise ChannelDeliveryError(
                self.name, "Phone number must be in E.164 format (e.g., +1234567890)"
            )

        data = {"To": target, "Body": message.body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number

        logger.info(f"📱 Sending SMS to {target}")
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    TWILIO_MESSAGES_URL.format(account_sid=self.account_sid),
                    auth=(self.account_sid, self.auth_token),
                    data=data,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ HTTP error sending SMS to {target}: {e}")
            raise ChannelDeliveryError(self.name, f"HTTP error: {e}") from e

        if response.status_code in (200, 201):
            message_sid = response.json().get("sid")
            logger.info(f"✅ SMS sent to {target} (SID: {message_sid})")
            return ChannelReceipt(message_id=message_sid)

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message", f"HTTP {response.status_code}")
        error_code = error_data.get("code")
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
        raise ChannelDeliveryError(
            self.name, f"[{error_code}] {error_message}" if error_code else error_message
        )


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile an MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(StringIO(mjml_content))
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise ValueError(f"Failed to compile MJML template: {e}") from e

    if result.errors:
        logger.warning(f"MJML compilation warnings: {result.errors}")
    return result.html


class EmailChannel:
    name = "email"

    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        self.api_key = api_key or RESEND_API_KEY
        self.from_address = from_address or EMAIL_FROM_ADDRESS

    async def send(self, target: str, message: ChannelMessage) -> ChannelReceipt:
        if not self.api_key:
            raise ChannelDeliveryError(self.name, "Email service not configured")
        if not target:
            raise ChannelDeliveryError(self.name, "No email address provided")

        try:
            html_content = (
                compile_mjml_to_html(message.mjml) if message.mjml else f"<p>{message.body}</p>"
            )
        except ValueError as e:
            raise ChannelDeliveryError(self.name, str(e)) from e

        resend.api_key = self.api_key
        email_data = {
            "from": self.from_address,
            "to": [target],
            "subject": message.subject,
            "html": html_content,
            "text": message.body,
        }

        logger.info(f"📧 Sending email via Resend to: {target}")
        try:
            # The SDK is synchronous
            response = await asyncio.to_thread(resend.Emails.send, email_data)
        except Exception as e:
            logger.error(f"❌ Email send error to {target}: {e}")
            raise ChannelDeliveryError(self.name, f"Failed to send email: {e}") from e

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"✅ Email sent to {target} (id: {message_id})")
        return ChannelReceipt(message_id=message_id)
