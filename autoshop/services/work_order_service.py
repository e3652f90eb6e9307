"""
Work Order Service
Drives work orders through their lifecycle: start, progress, completion
with quality control, generic status changes and the parts re-check.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..config import RECHECK_AUTO_RESUME
from ..exceptions import NotFoundError
from ..models import Technician
from ..models_work_order import WorkOrder
from ..repositories import WorkOrderRepository, commit_or_conflict
from ..schemas import PartsAvailability, QualityControlData
from ..shared.money import to_money
from . import work_order_state as state
from .parts_availability import PartsAvailabilityResolver, SqlInventoryLookup

logger = logging.getLogger(__name__)


class WorkOrderService:
    """Lifecycle operations on one work order at a time"""

    def __init__(self, db: Session, resolver: Optional[PartsAvailabilityResolver] = None):
        self.db = db
        self.resolver = resolver or PartsAvailabilityResolver(SqlInventoryLookup(db))

    def _load(self, work_order_id: int) -> WorkOrder:
        work_order = WorkOrderRepository.find_by_id(self.db, work_order_id)
        if not work_order:
            raise NotFoundError("Work order", work_order_id)
        return work_order

    def _apply(
        self, work_order: WorkOrder, result: state.Transition, now: datetime
    ) -> WorkOrder:
        for effect in result.effects:
            if effect.kind == state.SET_ACTUAL_START:
                work_order.actual_start_date = work_order.actual_start_date or now
            elif effect.kind == state.SET_ACTUAL_COMPLETION:
                work_order.actual_completion_date = work_order.actual_completion_date or now
            elif effect.kind == state.SET_PROGRESS:
                work_order.progress = effect.value
            elif effect.kind == state.APPEND_NOTE:
                work_order.append_note(effect.value)
            elif effect.kind == state.ASSIGN_TECHNICIAN:
                work_order.technician_id = effect.value
            elif effect.kind == state.SET_ACTUAL_COSTS:
                costs = effect.value
                if costs.parts is not None:
                    work_order.actual_parts_cost = to_money(costs.parts)
                if costs.labor is not None:
                    work_order.actual_labor_cost = to_money(costs.labor)
                if costs.total is not None:
                    work_order.actual_total_cost = to_money(costs.total)
        work_order.status = result.new_status

        commit_or_conflict(self.db, "Work order", work_order.id)
        self.db.refresh(work_order)

        if result.status_changed:
            logger.info(
                f"✅ Work order {work_order.work_order_number}: "
                f"{result.previous_status} → {result.new_status}"
            )
        return work_order

    def check_parts(self, work_order_id: int) -> PartsAvailability:
        """Run the availability resolver over every part on the work order"""
        work_order = self._load(work_order_id)
        return self.resolver.resolve(work_order.all_parts())

    def start(
        self, work_order_id: int, technician_id: int, now: Optional[datetime] = None
    ) -> WorkOrder:
        """
        Begin work. An on_hold work order only starts once every part is in
        stock; otherwise ResourceUnavailableError carries the availability.
        """
        now = now or datetime.now()
        work_order = self._load(work_order_id)

        if not self.db.get(Technician, technician_id):
            raise NotFoundError("Technician", technician_id)

        payload = {
            "technician_id": technician_id,
            "current_technician_id": work_order.technician_id,
        }
        if work_order.status == state.ON_HOLD:
            availability = self.resolver.resolve(work_order.all_parts())
            payload["parts_available"] = availability.all_available
            payload["availability"] = availability

        result = state.transition(work_order.status, "start", payload)
        return self._apply(work_order, result, now)

    def update_progress(
        self,
        work_order_id: int,
        percent: int,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WorkOrder:
        """Record progress; 100% completes the work order"""
        now = now or datetime.now()
        work_order = self._load(work_order_id)
        result = state.transition(
            work_order.status, "progress", {"percent": percent, "note": note}
        )
        return self._apply(work_order, result, now)

    def complete(
        self,
        work_order_id: int,
        quality_control: QualityControlData,
        now: Optional[datetime] = None,
    ) -> WorkOrder:
        now = now or datetime.now()
        work_order = self._load(work_order_id)
        result = state.transition(work_order.status, "complete", {"qc": quality_control})
        return self._apply(work_order, result, now)

    def update_status(
        self,
        work_order_id: int,
        new_status: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> WorkOrder:
        """Generic status move; same status only appends the note"""
        now = now or datetime.now()
        work_order = self._load(work_order_id)
        result = state.transition(
            work_order.status, "set_status", {"new_status": new_status, "note": note}
        )
        return self._apply(work_order, result, now)

    def recheck_parts(
        self,
        work_order_id: int,
        auto_resume: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> PartsAvailability:
        """
        Re-run the parts check and refresh each part's in_stock flag. When
        every part is available an on_hold work order returns to pending
        unless auto_resume is off.
        """
        now = now or datetime.now()
        work_order = self._load(work_order_id)
        availability = self.resolver.resolve(work_order.all_parts())

        for part in work_order.all_parts():
            part.in_stock = availability.is_available(part.part_number, part.name)

        result = state.transition(
            work_order.status,
            "parts_recheck",
            {
                "all_available": availability.all_available,
                "auto_resume": RECHECK_AUTO_RESUME if auto_resume is None else auto_resume,
            },
        )
        self._apply(work_order, result, now)
        return availability
