"""
Appointment Materializer
Turns an approved appointment into a single-line work order
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import DEFAULT_LABOR_RATE, WORK_ORDER_NUMBER_RETRIES
from ..exceptions import (
    AppointmentNotApprovedError,
    ConcurrentUpdateError,
    MissingServiceTypeError,
    NotFoundError,
    WorkOrderAlreadyExistsError,
)
from ..models_appointment import Appointment
from ..models_work_order import WorkOrder, WorkOrderLine, WorkOrderPart
from ..repositories import AppointmentRepository, WorkOrderRepository, commit_or_conflict
from ..schemas import PartsAvailability
from ..shared.money import to_decimal, to_money
from .parts_availability import PartsAvailabilityResolver, SqlInventoryLookup
from .work_order_state import ON_HOLD, PENDING

logger = logging.getLogger(__name__)

SOURCE_MARKER = "Created from appointment {appointment_id}"


@dataclass
class MaterializationResult:
    work_order: WorkOrder
    appointment: Appointment
    parts_availability: PartsAvailability


def next_work_order_number(db: Session, now: datetime) -> str:
    """
    Per-day monotonic number: WO-YYYYMMDD-NNN.
    Takes the highest suffix already issued for the day and adds one.
    """
    prefix = f"WO-{now.strftime('%Y%m%d')}-"
    last_number = WorkOrderRepository.last_number_for_prefix(db, prefix)

    if last_number:
        try:
            sequence = int(last_number[len(prefix):]) + 1
        except ValueError:
            sequence = 1
    else:
        sequence = 1

    return f"{prefix}{sequence:03d}"


def find_work_orders_for_appointment(db: Session, appointment_id: int) -> List[WorkOrder]:
    return WorkOrderRepository.find(db, source_appointment_id=appointment_id)


class AppointmentMaterializer:
    """Service for creating work orders from approved appointments"""

    def __init__(self, db: Session, resolver: Optional[PartsAvailabilityResolver] = None):
        self.db = db
        self.resolver = resolver or PartsAvailabilityResolver(SqlInventoryLookup(db))

    def _check_preconditions(self, appointment_id: int) -> Appointment:
        appointment = AppointmentRepository.find_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment", appointment_id)

        if appointment.approval_status != "approved":
            raise AppointmentNotApprovedError(appointment_id, appointment.approval_status)

        existing = WorkOrderRepository.find_by_source_appointment(self.db, appointment_id)
        if existing:
            raise WorkOrderAlreadyExistsError(appointment_id, existing.work_order_number)

        if not appointment.service_type:
            raise MissingServiceTypeError(appointment_id)

        return appointment

    def _build_work_order(
        self,
        appointment: Appointment,
        availability: PartsAvailability,
        approver_id: str,
        now: datetime,
    ) -> WorkOrder:
        service_type = appointment.service_type
        vehicle = appointment.vehicle

        labor_hours = math.ceil((appointment.estimated_duration or 0) / 60)
        labor_rate = (
            service_type.labor_rate
            if service_type.labor_rate is not None
            else DEFAULT_LABOR_RATE
        )

        line = WorkOrderLine(
            service_id=service_type.id,
            description=appointment.service_description or "Service from appointment",
            labor_hours=to_decimal(labor_hours),
            labor_rate=to_money(labor_rate),
        )
        for part in appointment.parts:
            line.parts.append(
                WorkOrderPart(
                    name=part.name,
                    part_number=part.part_number,
                    quantity=part.quantity or 1,
                    unit_price=to_money(part.cost),
                    in_stock=availability.is_available(part.part_number, part.name),
                )
            )

        marker = SOURCE_MARKER.format(appointment_id=appointment.id)
        notes = f"{marker}. {appointment.notes}" if appointment.notes else f"{marker}."

        return WorkOrder(
            work_order_number=next_work_order_number(self.db, now),
            customer_id=appointment.customer_id,
            source_appointment_id=appointment.id,
            technician_id=appointment.technician_id,
            # Snapshot; later vehicle edits do not flow into the work order
            vehicle_make=(vehicle.make if vehicle else None) or "Unknown",
            vehicle_model=(vehicle.model if vehicle else None) or "Unknown",
            vehicle_year=(vehicle.year if vehicle else None) or now.year,
            vehicle_vin=(vehicle.vin if vehicle else None) or "N/A",
            vehicle_license_plate=(vehicle.license_plate if vehicle else None) or "N/A",
            vehicle_mileage=(vehicle.mileage if vehicle else None) or 0,
            status=PENDING if availability.all_available else ON_HOLD,
            priority=appointment.priority or "medium",
            progress=0,
            estimated_start_date=appointment.scheduled_datetime,
            estimated_completion_date=appointment.scheduled_end,
            notes=notes,
            customer_notes=appointment.customer_notes,
            created_by=str(approver_id),
            lines=[line],
        )

    @staticmethod
    def _confirm_appointment(appointment: Appointment, approver_id: str, now: datetime) -> None:
        appointment.status = "confirmed"
        appointment.approval_status = "approved"
        if not appointment.approval_date:
            appointment.approval_date = now
        if not appointment.approved_by:
            appointment.approved_by = str(approver_id)

    def materialize(
        self, appointment_id: int, approver_id: str, now: Optional[datetime] = None
    ) -> MaterializationResult:
        """
        Create the work order for an approved appointment.

        Missing parts do not fail the call; the work order starts on_hold and
        the availability is returned for the caller to surface. A second call
        for the same appointment raises WorkOrderAlreadyExistsError.
        """
        now = now or datetime.now()
        appointment = self._check_preconditions(appointment_id)
        availability = self.resolver.resolve(appointment.parts)

        for attempt in range(1, WORK_ORDER_NUMBER_RETRIES + 1):
            work_order = self._build_work_order(appointment, availability, approver_id, now)
            self.db.add(work_order)
            self._confirm_appointment(appointment, approver_id, now)

            try:
                commit_or_conflict(self.db, "Appointment", appointment_id)
                break
            except IntegrityError as e:
                self.db.rollback()
                existing = WorkOrderRepository.find_by_source_appointment(
                    self.db, appointment_id
                )
                if existing:
                    raise WorkOrderAlreadyExistsError(
                        appointment_id, existing.work_order_number
                    ) from e
                logger.warning(
                    f"⚠️ Work order number {work_order.work_order_number} taken "
                    f"(attempt {attempt}/{WORK_ORDER_NUMBER_RETRIES})"
                )
                appointment = AppointmentRepository.find_by_id(self.db, appointment_id)
        else:
            raise ConcurrentUpdateError("Work order number", now.strftime("%Y%m%d"))

        self.db.refresh(work_order)
        self.db.refresh(appointment)

        if availability.all_available:
            logger.info(
                f"✅ Created work order {work_order.work_order_number} "
                f"from appointment {appointment_id}"
            )
        else:
            logger.info(
                f"⚠️ Created work order {work_order.work_order_number} on hold: "
                f"{len(availability.missing_parts)} part(s) missing"
            )

        return MaterializationResult(
            work_order=work_order,
            appointment=appointment,
            parts_availability=availability,
        )
