"""
Notification Models
Scheduled customer communications produced by the batch notification jobs
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    # service_reminder, appointment_reminder, appointment_confirmation, payment_reminder,
    # maintenance_alert, warranty_expiry, follow_up, marketing, general
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(20), default="medium", nullable=False)  # low, medium, high, urgent
    channel = Column(String(20), default="email", nullable=False)  # email, sms, push, in_app

    # pending → sent → delivered → read, or failed
    status = Column(String(20), default="pending", nullable=False, index=True)
    scheduled_for = Column(DateTime, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)

    # Related entities
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    service_record_id = Column(Integer, ForeignKey("service_records.id"), nullable=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True)

    # mileage, service_type, due_date, amount
    details = Column(JSON, nullable=True)
    # condition:entity:period key; repeated batch runs skip keys that already exist.
    # NULL when idempotency is off
    dedup_key = Column(String(255), nullable=True, unique=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
