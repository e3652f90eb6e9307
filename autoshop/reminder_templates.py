"""
Appointment Message Templates
Subject, SMS body and MJML email for confirmations and reminders
"""

from html import escape
from typing import Optional

from .config import SHOP_NAME
from .exceptions import InputValidationError
from .services.channels import ChannelMessage

THEME = {
    "primary": "#2563eb",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}

CONFIRMATION = "confirmation"
REMINDER_24H = "reminder_24h"
REMINDER_2H = "reminder_2h"
REMINDER_SAME_DAY = "reminder_same_day"


def get_base_template(title: str, preview_text: str, content_sections: str) -> str:
    """Base MJML template wrapper for all appointment emails"""
    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <!-- Main Content -->
        <mj-section background-color="{THEME['card_bg']}" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}

            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="32px 0 0 0" />
          </mj-column>
        </mj-section>

        <!-- Footer -->
        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="{THEME['text_muted']}" padding="0">
              {escape(SHOP_NAME)}
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details(appointment) -> dict:
    when = appointment.scheduled_datetime
    service_type = appointment.service_type
    return {
        "customer_name": appointment.customer.name if appointment.customer else "there",
        "date": when.strftime("%A, %B %d, %Y") if when else "",
        "time": appointment.scheduled_time or "",
        "vehicle": appointment.vehicle.description if appointment.vehicle else "your vehicle",
        "service": (service_type.name if service_type else None)
        or appointment.service_description
        or "Service",
    }


def _mjml(title: str, preview_text: str, d: dict, closing: Optional[str]) -> str:
    # Customer-entered values go into XML
    safe = {key: escape(str(value)) for key, value in d.items()}
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 24px 0">
      {preview_text}
    </mj-text>

    <mj-text>
      Hi {safe['customer_name']},
    </mj-text>

    <mj-text font-size="16px" color="{THEME['text_primary']}" padding="0 0 0 20px">
      📅 {safe['date']}<br/>
      ⏰ {safe['time']}<br/>
      🚗 {safe['vehicle']}<br/>
      🔧 {safe['service']}
    </mj-text>
    """
    if closing:
        content += f"""
    <mj-text>
      {closing}
    </mj-text>
    """
    return get_base_template(title, preview_text, content)


def confirmation_message(appointment) -> ChannelMessage:
    d = _details(appointment)
    return ChannelMessage(
        subject=f"Appointment Confirmed - {d['date']} at {d['time']}",
        body=(
            f"{SHOP_NAME}: Appointment confirmed for {d['date']} at {d['time']}. "
            f"Vehicle: {d['vehicle']}. Service: {d['service']}. Please arrive 10 min early."
        ),
        mjml=_mjml(
            "Your Appointment is Confirmed",
            "Your appointment has been confirmed.",
            d,
            "Please arrive 10 minutes early.",
        ),
    )


def reminder_24h_message(appointment) -> ChannelMessage:
    d = _details(appointment)
    return ChannelMessage(
        subject=f"Appointment Reminder - Tomorrow at {d['time']}",
        body=(
            f"{SHOP_NAME}: Reminder: Your appointment is tomorrow at {d['time']}. "
            f"Vehicle: {d['vehicle']}. Service: {d['service']}. "
            "Please call us if you need to reschedule."
        ),
        mjml=_mjml(
            "Appointment Reminder",
            "Your appointment is tomorrow.",
            d,
            "Please call us if you need to reschedule.",
        ),
    )


def reminder_2h_message(appointment) -> ChannelMessage:
    d = _details(appointment)
    return ChannelMessage(
        subject=f"Appointment Reminder - Today at {d['time']}",
        body=(
            f"{SHOP_NAME}: Reminder: Your appointment is in 2 hours at {d['time']}. "
            f"Vehicle: {d['vehicle']}. Service: {d['service']}. Please arrive 10 minutes early."
        ),
        mjml=_mjml(
            "Appointment Reminder",
            "Your appointment is in 2 hours.",
            d,
            "Please arrive 10 minutes early.",
        ),
    )


def reminder_same_day_message(appointment) -> ChannelMessage:
    d = _details(appointment)
    return ChannelMessage(
        subject=f"Appointment Reminder - Today at {d['time']}",
        body=(
            f"{SHOP_NAME}: Reminder: Your appointment is today at {d['time']}. "
            f"Vehicle: {d['vehicle']}. Service: {d['service']}."
        ),
        mjml=_mjml("Appointment Reminder", "Your appointment is today.", d, None),
    )


_RENDERERS = {
    CONFIRMATION: confirmation_message,
    REMINDER_24H: reminder_24h_message,
    REMINDER_2H: reminder_2h_message,
    REMINDER_SAME_DAY: reminder_same_day_message,
}


def render_message(kind: str, appointment) -> ChannelMessage:
    renderer = _RENDERERS.get(kind)
    if renderer is None:
        raise InputValidationError(f"Unknown message kind: {kind}")
    return renderer(appointment)
