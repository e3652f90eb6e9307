"""
Communication Dispatcher
Sends one templated appointment message over every channel the customer
prefers. Each channel is isolated: a failure becomes a failed outcome and
never stops the other channel.
"""

import logging
from datetime import datetime
from typing import List, Optional

from ..exceptions import AutoshopError
from ..models_appointment import Appointment, AppointmentCommunication
from ..reminder_templates import render_message
from ..schemas import CommunicationOutcome
from ..shared.validators import validate_email, validate_us_phone
from .channels import ChannelMessage, EmailChannel, NotificationChannel, SmsChannel

logger = logging.getLogger(__name__)

# preferred_contact → channels attempted, in order
CHANNELS_BY_PREFERENCE = {
    "email": ("email",),
    "sms": ("sms",),
    "both": ("email", "sms"),
    "phone": (),
}


def record_outcomes(appointment: Appointment, outcomes: List[CommunicationOutcome]) -> None:
    """Append outcomes to the appointment's communication history; caller commits"""
    for outcome in outcomes:
        appointment.communication_history.append(
            AppointmentCommunication(
                kind=outcome.kind,
                channel=outcome.channel,
                sent_at=outcome.sent_at,
                status=outcome.status,
                message_id=outcome.message_id,
                error_message=outcome.error_message,
            )
        )


def preferred_channels(appointment: Appointment) -> tuple:
    preference = appointment.preferred_contact or appointment.reminder_channel or "email"
    return CHANNELS_BY_PREFERENCE.get(preference.lower(), ("email",))


class CommunicationDispatcher:
    def __init__(
        self,
        email_channel: Optional[NotificationChannel] = None,
        sms_channel: Optional[NotificationChannel] = None,
    ):
        self.channels = {
            "email": email_channel or EmailChannel(),
            "sms": sms_channel or SmsChannel(),
        }

    @staticmethod
    def _target(channel_name: str, appointment: Appointment) -> Optional[str]:
        customer = appointment.customer
        if customer is None:
            return None
        if channel_name == "email":
            return validate_email(customer.email)
        return validate_us_phone(customer.phone)

    async def _attempt(
        self,
        channel_name: str,
        kind: str,
        appointment: Appointment,
        message: ChannelMessage,
        now: datetime,
    ) -> CommunicationOutcome:
        try:
            target = self._target(channel_name, appointment)
            if not target:
                raise AutoshopError(f"No {channel_name} contact for customer")
            receipt = await self.channels[channel_name].send(target, message)
        except Exception as e:
            logger.error(
                f"❌ Failed to send {kind} {channel_name} for appointment {appointment.id}: {e}"
            )
            return CommunicationOutcome(
                kind=kind,
                channel=channel_name,
                status="failed",
                error_message=str(e),
                sent_at=now,
            )

        return CommunicationOutcome(
            kind=kind,
            channel=channel_name,
            status="sent",
            message_id=receipt.message_id,
            sent_at=now,
        )

    async def dispatch(
        self, kind: str, appointment: Appointment, now: Optional[datetime] = None
    ) -> List[CommunicationOutcome]:
        """One outcome per attempted channel; no retries"""
        now = now or datetime.now()
        channel_names = preferred_channels(appointment)
        if not channel_names:
            logger.debug(f"⚠️ Appointment {appointment.id} prefers phone contact, nothing sent")
            return []

        message = render_message(kind, appointment)
        outcomes = []
        for channel_name in channel_names:
            outcomes.append(await self._attempt(channel_name, kind, appointment, message, now))
        return outcomes
