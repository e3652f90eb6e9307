"""
Appointment Models
Service bookings, the parts they need, and their communication history
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from .config import APPROVAL_COST_THRESHOLD, DEFAULT_LABOR_RATE
from .database import Base
from .shared.money import to_decimal, to_money
from .shared.validators import validate_scheduled_time


class Appointment(Base):
    """A customer's service booking"""

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    version = Column(Integer, nullable=False, default=1)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    service_type_id = Column(Integer, ForeignKey("service_catalog.id"), nullable=True)
    technician_id = Column(Integer, ForeignKey("technicians.id"), nullable=True)
    service_description = Column(Text, nullable=True)

    # Scheduling
    scheduled_date = Column(DateTime, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # HH:MM format
    estimated_duration = Column(Integer, nullable=False, default=60)  # minutes

    # Status workflow: scheduled / pending_approval → confirmed → in-progress → completed
    # cancelled and no-show are terminal alongside completed
    status = Column(String(50), default="scheduled", nullable=False, index=True)

    # Approval workflow: pending, approved, declined, requires_followup
    approval_status = Column(String(50), default="pending", nullable=False)
    approval_date = Column(DateTime, nullable=True)
    approved_by = Column(String(255), nullable=True)
    approval_threshold = Column(Numeric(10, 2), nullable=True)
    priority = Column(String(20), default="medium", nullable=False)  # low, medium, high, urgent

    notes = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)

    # Communication preferences: email, sms, both, phone.
    # NULL defers to reminder_channel
    preferred_contact = Column(String(20), nullable=True)
    send_24h_reminder = Column(Boolean, default=True, nullable=False)
    send_2h_reminder = Column(Boolean, default=True, nullable=False)
    send_same_day_reminder = Column(Boolean, default=True, nullable=False)
    reminder_channel = Column(String(20), nullable=True)  # email, sms, both
    # {"reminder_2h": "2026-01-01T10:00:00", ...} - last send per reminder kind
    reminder_last_sent = Column(JSON, nullable=True)
    confirmation_sent = Column(Boolean, default=False, nullable=False)

    # Estimates
    estimated_parts_cost = Column(Numeric(10, 2), default=0)
    estimated_labor_cost = Column(Numeric(10, 2), default=0)
    estimated_total_cost = Column(Numeric(10, 2), default=0)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    vehicle = relationship("Vehicle")
    service_type = relationship("ServiceCatalog")
    technician = relationship("Technician")
    parts = relationship(
        "AppointmentPart",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentPart.id",
    )
    communication_history = relationship(
        "AppointmentCommunication",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentCommunication.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("scheduled_time")
    def _check_scheduled_time(self, _key, value):
        return validate_scheduled_time(value)

    @property
    def scheduled_datetime(self) -> Optional[datetime]:
        """Scheduled date combined with the HH:MM scheduled time"""
        if not self.scheduled_date:
            return None
        if not self.scheduled_time:
            return self.scheduled_date
        hours, minutes = self.scheduled_time.split(":")
        return self.scheduled_date.replace(
            hour=int(hours), minute=int(minutes), second=0, microsecond=0
        )

    @property
    def scheduled_end(self) -> Optional[datetime]:
        start = self.scheduled_datetime
        if start is None:
            return None
        return start + timedelta(minutes=self.estimated_duration or 0)

    def last_sent_at(self, kind: str) -> Optional[datetime]:
        """
        Most recent send time for a communication kind.
        Reads the per-kind map first and falls back to scanning the history
        for records written before the map existed.
        """
        stamp = (self.reminder_last_sent or {}).get(kind)
        if stamp:
            return datetime.fromisoformat(stamp)
        sent_times = [c.sent_at for c in self.communication_history if c.kind == kind and c.sent_at]
        return max(sent_times) if sent_times else None

    def mark_sent(self, kind: str, when: datetime) -> None:
        # Reassign so the JSON column registers as modified
        stamps = dict(self.reminder_last_sent or {})
        stamps[kind] = when.isoformat()
        self.reminder_last_sent = stamps

    def calculate_estimated_cost(self) -> dict:
        """Recompute estimated parts/labor/total from required parts and duration"""
        parts_cost = sum(
            (to_decimal(p.cost) * p.quantity for p in self.parts), to_decimal(0)
        )
        labor_cost = to_decimal(self.estimated_duration or 0) / 60 * to_decimal(DEFAULT_LABOR_RATE)

        self.estimated_parts_cost = to_money(parts_cost)
        self.estimated_labor_cost = to_money(labor_cost)
        self.estimated_total_cost = to_money(parts_cost + labor_cost)
        return {
            "parts": self.estimated_parts_cost,
            "labor": self.estimated_labor_cost,
            "total": self.estimated_total_cost,
        }

    def requires_approval(self) -> bool:
        """Whether the estimated total exceeds the approval threshold"""
        threshold = (
            self.approval_threshold
            if self.approval_threshold is not None
            else APPROVAL_COST_THRESHOLD
        )
        return to_decimal(self.estimated_total_cost) > to_decimal(threshold)


class AppointmentPart(Base):
    __tablename__ = "appointment_parts"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    part_number = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    cost = Column(Numeric(10, 2), nullable=True)  # unit cost
    in_stock = Column(Boolean, default=False, nullable=False)

    appointment = relationship("Appointment", back_populates="parts")


class AppointmentCommunication(Base):
    """Append-only log of confirmation/reminder attempts, one row per channel"""

    __tablename__ = "appointment_communications"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    # confirmation, reminder_24h, reminder_2h, reminder_same_day, follow_up
    kind = Column(String(50), nullable=False)
    channel = Column(String(20), nullable=False)  # email, sms
    sent_at = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="sent")  # sent, delivered, failed
    message_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)

    appointment = relationship("Appointment", back_populates="communication_history")
