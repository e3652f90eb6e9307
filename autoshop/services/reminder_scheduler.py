"""
Appointment reminders and confirmations
Should be run as a scheduled job (every 15 minutes from the worker)

Selection per appointment, first match wins:
    reminder_2h        0 < hours until ≤ 2
    reminder_24h      22 < hours until ≤ 24
    reminder_same_day  0 < hours until ≤ 4

A kind is suppressed while its last send is inside the dedup window, so the
same kind can go out again on a later pass once the window has elapsed.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config import REMINDER_CONCURRENCY, REMINDER_DEDUP_WINDOW_MINUTES, REMINDER_LOOKAHEAD_HOURS
from ..exceptions import ConcurrentUpdateError, NotFoundError
from ..models_appointment import Appointment
from ..reminder_templates import CONFIRMATION, REMINDER_2H, REMINDER_24H, REMINDER_SAME_DAY
from ..repositories import AppointmentRepository, commit_or_conflict
from ..schemas import CommunicationOutcome, ReminderPassResult, ReminderResult
from .communication_dispatcher import CommunicationDispatcher, record_outcomes

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = ("scheduled", "confirmed")


def select_reminder_kind(hours_until: float, appointment: Appointment) -> Optional[str]:
    if 0 < hours_until <= 2 and appointment.send_2h_reminder:
        return REMINDER_2H
    if 22 < hours_until <= 24 and appointment.send_24h_reminder:
        return REMINDER_24H
    if 0 < hours_until <= 4 and appointment.send_same_day_reminder:
        return REMINDER_SAME_DAY
    return None


def is_suppressed(appointment: Appointment, kind: str, now: datetime, window: timedelta) -> bool:
    """True while the last send of this kind is strictly inside the window"""
    last_sent = appointment.last_sent_at(kind)
    return last_sent is not None and last_sent > now - window


class ReminderScheduler:
    def __init__(
        self,
        db: Session,
        dispatcher: Optional[CommunicationDispatcher] = None,
        lookahead_hours: int = REMINDER_LOOKAHEAD_HOURS,
        dedup_window_minutes: int = REMINDER_DEDUP_WINDOW_MINUTES,
        concurrency: int = REMINDER_CONCURRENCY,
    ):
        self.db = db
        self.dispatcher = dispatcher or CommunicationDispatcher()
        self.lookahead = timedelta(hours=lookahead_hours)
        self.dedup_window = timedelta(minutes=dedup_window_minutes)
        self.concurrency = concurrency

    def candidates(self, now: datetime) -> List[Appointment]:
        """Scheduled/confirmed appointments from today 00:00 up to now + look-ahead"""
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        appointments = AppointmentRepository.find_in_window(
            self.db, REMINDABLE_STATUSES, day_start, now + self.lookahead
        )
        return [
            a
            for a in appointments
            if a.scheduled_datetime and timedelta(0) < a.scheduled_datetime - now <= self.lookahead
        ]

    def due_reminder(self, appointment: Appointment, now: datetime) -> Optional[str]:
        hours_until = (appointment.scheduled_datetime - now).total_seconds() / 3600
        kind = select_reminder_kind(hours_until, appointment)
        if kind is None:
            return None
        if is_suppressed(appointment, kind, now, self.dedup_window):
            logger.debug(f"Reminder {kind} for appointment {appointment.id} sent recently, skipping")
            return None
        return kind

    def _claim(self, appointment: Appointment, kind: str, now: datetime) -> bool:
        """Stamp the kind as sent under the version check; False if another pass won"""
        appointment.mark_sent(kind, now)
        try:
            commit_or_conflict(self.db, "Appointment", appointment.id)
        except ConcurrentUpdateError:
            logger.info(f"⚠️ Reminder {kind} for appointment {appointment.id} claimed elsewhere")
            return False
        return True

    def _record(
        self,
        appointment: Appointment,
        appointment_id: int,
        kind: str,
        outcomes: List[CommunicationOutcome],
    ) -> None:
        """Append outcomes to the history; a lost version check reloads and retries once"""
        record_outcomes(appointment, outcomes)
        try:
            commit_or_conflict(self.db, "Appointment", appointment_id)
            return
        except ConcurrentUpdateError:
            logger.warning(
                f"⚠️ Appointment {appointment_id} changed while {kind} was sending, "
                "recording outcomes again"
            )

        appointment = AppointmentRepository.find_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)
        record_outcomes(appointment, outcomes)
        commit_or_conflict(self.db, "Appointment", appointment_id)

    async def _process(
        self,
        appointment: Appointment,
        kind: str,
        now: datetime,
        semaphore: asyncio.Semaphore,
        cancel_event: Optional[threading.Event],
    ) -> Optional[ReminderResult]:
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                return None
            if not self._claim(appointment, kind, now):
                return None

            appointment_id = appointment.id
            customer_name = appointment.customer.name if appointment.customer else None
            outcomes = await self.dispatcher.dispatch(kind, appointment, now)

            self._record(appointment, appointment_id, kind, outcomes)

            return ReminderResult(
                appointment_id=appointment_id,
                customer_name=customer_name,
                reminder_kind=kind,
                results=outcomes,
            )

    async def run_pass(
        self, now: Optional[datetime] = None, cancel_event: Optional[threading.Event] = None
    ) -> ReminderPassResult:
        """
        Evaluate every appointment in the look-ahead window and send due reminders.

        Appointments are independent units processed concurrently; cancellation
        is honored before a unit starts, never part-way through one.
        """
        now = now or datetime.now()
        summary = ReminderPassResult()

        appointments = self.candidates(now)
        summary.evaluated = len(appointments)

        due = []
        for appointment in appointments:
            kind = self.due_reminder(appointment, now)
            if kind:
                due.append((appointment, kind))

        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(self._process(a, kind, now, semaphore, cancel_event) for a, kind in due),
            return_exceptions=True,
        )

        for (appointment, kind), result in zip(due, results):
            if isinstance(result, Exception):
                logger.error(f"❌ Reminder {kind} for appointment {appointment.id} failed: {result}")
                continue
            if result is None:
                continue
            summary.results.append(result)
            if result.delivered:
                summary.reminders_sent += 1

        summary.cancelled = cancel_event is not None and cancel_event.is_set()
        logger.info(
            f"📊 Reminder pass: {summary.evaluated} evaluated, {len(due)} due, "
            f"{summary.reminders_sent} sent"
            + (" (cancelled)" if summary.cancelled else "")
        )
        return summary


class AppointmentCommunicationService:
    """One-off appointment communications outside the reminder pass"""

    def __init__(self, db: Session, dispatcher: Optional[CommunicationDispatcher] = None):
        self.db = db
        self.dispatcher = dispatcher or CommunicationDispatcher()

    async def send_confirmation(
        self, appointment_id: int, now: Optional[datetime] = None
    ) -> List[CommunicationOutcome]:
        now = now or datetime.now()
        appointment = AppointmentRepository.find_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)

        outcomes = await self.dispatcher.dispatch(CONFIRMATION, appointment, now)

        record_outcomes(appointment, outcomes)
        appointment.mark_sent(CONFIRMATION, now)
        appointment.confirmation_sent = True
        commit_or_conflict(self.db, "Appointment", appointment_id)

        logger.info(
            f"✅ Confirmation for appointment {appointment_id}: "
            f"{sum(1 for o in outcomes if o.status == 'sent')}/{len(outcomes)} channel(s) sent"
        )
        return outcomes
