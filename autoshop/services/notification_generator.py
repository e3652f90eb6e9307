"""
Notification Generator
Daily batch jobs that turn shop conditions into customer notifications:
service reminders, appointment reminders, payment reminders and follow-ups.

Each job evaluates records one at a time (a bad record is logged and skipped),
then persists its notifications in a single insert. With idempotency on, every
notification carries a dedup key of condition:entity:day and a rerun on the
same day skips keys that already exist.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config import NOTIFICATION_IDEMPOTENCY
from ..exceptions import NotFoundError
from ..models import Customer, Invoice, ServiceRecord, Vehicle
from ..models_appointment import Appointment
from ..models_notification import Notification
from ..repositories import NotificationRepository
from ..schemas import NotificationJobSummary
from ..shared.money import to_money

logger = logging.getLogger(__name__)

OIL_CHANGE_MILES = 3000
MAJOR_SERVICE_MILES = 30000
ANNUAL_SERVICE_MONTHS = 12
SEASONAL_MAINTENANCE_MONTHS = 6
DAYS_PER_MONTH = 30


def dedup_key(condition: str, entity: str, entity_id, now: datetime) -> str:
    return f"{condition}:{entity}:{entity_id}:{now.date().isoformat()}"


def _day_start(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def vehicle_service_reminders(vehicle: Vehicle, now: datetime) -> List[Notification]:
    """Mileage and time based reminders for one vehicle; conditions may co-fire"""
    reminders = []
    description = vehicle.description
    mileage = vehicle.mileage or 0
    mileage_since_service = mileage - (vehicle.last_service_mileage or 0)

    def reminder(service_type, type_, title, message, priority, details):
        return Notification(
            customer_id=vehicle.customer_id,
            type=type_,
            title=title,
            message=message,
            priority=priority,
            channel="email",
            scheduled_for=now,
            vehicle_id=vehicle.id,
            details={"service_type": service_type, "due_date": now.isoformat(), **details},
            dedup_key=dedup_key(service_type, "vehicle", vehicle.id, now),
        )

    if mileage_since_service >= OIL_CHANGE_MILES:
        reminders.append(
            reminder(
                "oil_change",
                "service_reminder",
                "Oil Change Due",
                f"Your {description} is due for an oil change. "
                f"Current mileage: {mileage:,} miles.",
                "medium",
                {"mileage": mileage},
            )
        )

    if mileage_since_service >= MAJOR_SERVICE_MILES:
        reminders.append(
            reminder(
                "major_service",
                "service_reminder",
                "Major Service Due",
                f"Your {description} is due for a major service. "
                f"Current mileage: {mileage:,} miles.",
                "high",
                {"mileage": mileage},
            )
        )

    if vehicle.last_service_date:
        months_since_service = (now - vehicle.last_service_date).total_seconds() / (
            86400 * DAYS_PER_MONTH
        )

        if months_since_service >= ANNUAL_SERVICE_MONTHS:
            reminders.append(
                reminder(
                    "annual_service",
                    "service_reminder",
                    "Annual Service Due",
                    f"Your {description} is due for annual service.",
                    "medium",
                    {},
                )
            )

        if months_since_service >= SEASONAL_MAINTENANCE_MONTHS:
            reminders.append(
                reminder(
                    "seasonal_maintenance",
                    "maintenance_alert",
                    "Seasonal Maintenance Check",
                    f"Consider scheduling seasonal maintenance for your {description}.",
                    "low",
                    {},
                )
            )

    return reminders


class NotificationGenerator:
    def __init__(self, db: Session, idempotency: bool = NOTIFICATION_IDEMPOTENCY):
        self.db = db
        self.idempotency = idempotency

    def _run_job(
        self,
        job: str,
        records: Iterable,
        build: Callable[[object], List[Notification]],
        cancel_event: Optional[threading.Event] = None,
    ) -> NotificationJobSummary:
        summary = NotificationJobSummary(job=job)
        notifications = []

        for record in records:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                logger.info(f"⚠️ {job} cancelled after {len(notifications)} notification(s)")
                break
            try:
                notifications.extend(build(record))
            except Exception as e:
                summary.failed_records += 1
                logger.error(f"❌ {job}: failed to evaluate record {getattr(record, 'id', '?')}: {e}")

        if self.idempotency and notifications:
            existing = NotificationRepository.existing_dedup_keys(
                self.db, [n.dedup_key for n in notifications]
            )
            fresh = [n for n in notifications if n.dedup_key not in existing]
            summary.skipped_duplicates = len(notifications) - len(fresh)
            notifications = fresh
        elif not self.idempotency:
            for notification in notifications:
                notification.dedup_key = None

        if notifications:
            try:
                self.db.add_all(notifications)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ {job}: failed to save {len(notifications)} notification(s): {e}")
                raise
            summary.created = len(notifications)

        logger.info(f"📊 {job} summary: {summary.model_dump()}")
        return summary

    def generate_service_reminders(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> NotificationJobSummary:
        """Mileage and time based reminders for every active customer's active vehicles"""
        now = now or datetime.now()
        vehicles = (
            self.db.query(Vehicle)
            .join(Customer, Vehicle.customer_id == Customer.id)
            .filter(Customer.status == "active", Vehicle.status == "active")
            .order_by(Vehicle.id)
            .all()
        )
        return self._run_job(
            "service_reminders",
            vehicles,
            lambda vehicle: vehicle_service_reminders(vehicle, now),
            cancel_event,
        )

    def generate_appointment_reminders(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> NotificationJobSummary:
        """One reminder per scheduled appointment on the next calendar day"""
        now = now or datetime.now()
        tomorrow = _day_start(now) + timedelta(days=1)
        appointments = (
            self.db.query(Appointment)
            .filter(
                Appointment.status == "scheduled",
                Appointment.scheduled_date >= tomorrow,
                Appointment.scheduled_date < tomorrow + timedelta(days=1),
            )
            .order_by(Appointment.id)
            .all()
        )

        def build(appointment: Appointment) -> List[Notification]:
            service = appointment.service_description or (
                appointment.service_type.name if appointment.service_type else "your service"
            )
            return [
                Notification(
                    customer_id=appointment.customer_id,
                    type="appointment_reminder",
                    title="Appointment Reminder",
                    message=f"Reminder: You have an appointment tomorrow for {service}.",
                    priority="high",
                    channel="email",
                    scheduled_for=now,
                    appointment_id=appointment.id,
                    vehicle_id=appointment.vehicle_id,
                    details={
                        "service_type": service,
                        "due_date": appointment.scheduled_date.isoformat(),
                    },
                    dedup_key=dedup_key("appointment_reminder", "appointment", appointment.id, now),
                )
            ]

        return self._run_job("appointment_reminders", appointments, build, cancel_event)

    def generate_payment_reminders(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> NotificationJobSummary:
        """Urgent reminder for every pending invoice past its due date"""
        now = now or datetime.now()
        invoices = (
            self.db.query(Invoice)
            .filter(Invoice.status == "pending", Invoice.due_date < now)
            .order_by(Invoice.id)
            .all()
        )

        def build(invoice: Invoice) -> List[Notification]:
            amount = to_money(invoice.total)
            return [
                Notification(
                    customer_id=invoice.customer_id,
                    type="payment_reminder",
                    title="Payment Overdue",
                    message=(
                        f"Your invoice #{invoice.invoice_number} is overdue. "
                        f"Amount due: ${amount:.2f}."
                    ),
                    priority="urgent",
                    channel="email",
                    scheduled_for=now,
                    invoice_id=invoice.id,
                    details={"amount": str(amount), "due_date": invoice.due_date.isoformat()},
                    dedup_key=dedup_key("payment_reminder", "invoice", invoice.id, now),
                )
            ]

        return self._run_job("payment_reminders", invoices, build, cancel_event)

    def generate_follow_up_messages(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> NotificationJobSummary:
        """Low priority follow-up for services completed on the previous calendar day"""
        now = now or datetime.now()
        today = _day_start(now)
        services = (
            self.db.query(ServiceRecord)
            .filter(
                ServiceRecord.status == "completed",
                ServiceRecord.date >= today - timedelta(days=1),
                ServiceRecord.date < today,
            )
            .order_by(ServiceRecord.id)
            .all()
        )

        def build(service: ServiceRecord) -> List[Notification]:
            return [
                Notification(
                    customer_id=service.customer_id,
                    type="follow_up",
                    title="Service Follow-up",
                    message=(
                        "Thank you for choosing our service! How was your experience "
                        "with the recent service on your vehicle?"
                    ),
                    priority="low",
                    channel="email",
                    scheduled_for=now,
                    service_record_id=service.id,
                    vehicle_id=service.vehicle_id,
                    details={"service_type": service.service_type, "due_date": service.date.isoformat()},
                    dedup_key=dedup_key("follow_up", "service", service.id, now),
                )
            ]

        return self._run_job("follow_up_messages", services, build, cancel_event)

    def run_all(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> List[NotificationJobSummary]:
        """Every job in turn; a job that raises is logged and the rest still run"""
        now = now or datetime.now()
        summaries = []
        for name, job in (
            ("service_reminders", self.generate_service_reminders),
            ("appointment_reminders", self.generate_appointment_reminders),
            ("payment_reminders", self.generate_payment_reminders),
            ("follow_up_messages", self.generate_follow_up_messages),
        ):
            if cancel_event is not None and cancel_event.is_set():
                break
            try:
                summaries.append(job(now=now, cancel_event=cancel_event))
            except Exception as e:
                logger.error(f"❌ {name} failed, continuing with the remaining jobs: {e}")
                summaries.append(NotificationJobSummary(job=name, failed=True))
        return summaries

    # Read side

    def get_customer_notifications(self, customer_id: int, limit: int = 20) -> List[Notification]:
        """Newest first"""
        return NotificationRepository.for_customer(self.db, customer_id, limit)

    def mark_as_read(self, notification_id: int, now: Optional[datetime] = None) -> Notification:
        notification = NotificationRepository.find_by_id(self.db, notification_id)
        if not notification:
            raise NotFoundError("Notification", notification_id)
        return NotificationRepository.update_fields(
            self.db, notification, status="read", read_at=now or datetime.now()
        )

    def get_unread_count(self, customer_id: int) -> int:
        return NotificationRepository.count_unread(self.db, customer_id)
