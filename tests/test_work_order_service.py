from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from autoshop.exceptions import (
    ConcurrentUpdateError,
    IllegalTransitionError,
    NotFoundError,
    ResourceUnavailableError,
)
from autoshop.models_work_order import WorkOrder
from autoshop.schemas import ActualCosts, QualityControlData
from autoshop.services.work_order_service import WorkOrderService
from autoshop.services.work_order_state import Transition

BRAKE_LINE = {
    "description": "Front brakes",
    "labor_hours": Decimal("1.5"),
    "labor_rate": Decimal("120.00"),
    "parts": [
        {"name": "Brake Pad", "part_number": "BP-1", "quantity": 2, "unit_price": Decimal("45.99")}
    ],
}


@pytest.fixture
def service(db):
    return WorkOrderService(db)


class TestTotals:
    def test_totals_follow_lines_on_save(self, factory, customer):
        work_order = factory.work_order(
            customer,
            lines=[
                dict(BRAKE_LINE, parts=list(BRAKE_LINE["parts"])),
                {
                    "description": "Fluid flush",
                    "labor_hours": Decimal("0.5"),
                    "labor_rate": Decimal("99.99"),
                    "parts": [
                        {"name": "Brake Fluid", "quantity": 3, "unit_price": Decimal("7.10")}
                    ],
                },
            ],
        )

        # 1.5 × 120 + 2 × 45.99 = 271.98 ; 0.5 × 99.99 + 3 × 7.10 = 71.295 → 71.30
        assert work_order.total_labor_hours == Decimal("2.00")
        assert work_order.total_labor_cost == Decimal("230.00")
        assert work_order.total_parts_cost == Decimal("113.28")
        assert work_order.total_cost == Decimal("343.28")
        assert [line.total_cost for line in work_order.lines] == [
            Decimal("271.98"),
            Decimal("71.30"),
        ]

    def test_changing_a_part_recomputes(self, db, factory, customer):
        work_order = factory.work_order(customer, lines=[dict(BRAKE_LINE, parts=list(BRAKE_LINE["parts"]))])

        work_order.lines[0].parts[0].quantity = 4
        db.commit()
        db.refresh(work_order)

        assert work_order.total_parts_cost == Decimal("183.96")
        assert work_order.total_cost == Decimal("363.96")


class TestStart:
    def test_start_pending(self, service, factory, customer, technician, now):
        work_order = factory.work_order(customer)

        started = service.start(work_order.id, technician.id, now=now)

        assert started.status == "in_progress"
        assert started.actual_start_date == now
        assert started.technician_id == technician.id
        assert started.notes.endswith(f"Work started by technician {technician.id}")

    def test_start_keeps_existing_start_date(self, service, factory, customer, technician, now):
        earlier = now - timedelta(days=1)
        work_order = factory.work_order(customer, actual_start_date=earlier)

        assert service.start(work_order.id, technician.id, now=now).actual_start_date == earlier

    def test_on_hold_blocked_until_parts_arrive(self, db, service, factory, customer, technician, now):
        pad = factory.inventory("Brake Pad", 1, part_number="BP-1")
        work_order = factory.work_order(
            customer, status="on_hold", lines=[dict(BRAKE_LINE, parts=list(BRAKE_LINE["parts"]))]
        )

        with pytest.raises(ResourceUnavailableError) as exc_info:
            service.start(work_order.id, technician.id, now=now)
        assert exc_info.value.availability.missing_parts[0].quantity_short == 1
        db.refresh(work_order)
        assert work_order.status == "on_hold"

        pad.current_stock = 5
        db.commit()

        assert service.start(work_order.id, technician.id, now=now).status == "in_progress"

    def test_unknown_work_order(self, service, technician):
        with pytest.raises(NotFoundError):
            service.start(999, technician.id)

    def test_unknown_technician(self, service, factory, customer):
        work_order = factory.work_order(customer)

        with pytest.raises(NotFoundError, match="Technician"):
            service.start(work_order.id, 999)

    def test_start_completed_fails_without_changes(self, db, service, factory, customer, technician):
        work_order = factory.work_order(customer, status="completed", progress=100)

        with pytest.raises(IllegalTransitionError):
            service.start(work_order.id, technician.id)
        db.refresh(work_order)
        assert work_order.status == "completed"
        assert work_order.notes is None


class TestProgressAndCompletion:
    def test_progress_to_completion(self, service, factory, customer, now):
        work_order = factory.work_order(customer, status="in_progress")

        service.update_progress(work_order.id, 25, now=now)
        done = service.update_progress(work_order.id, 100, now=now + timedelta(hours=2))

        assert done.status == "completed"
        assert done.progress == 100
        assert done.actual_completion_date == now + timedelta(hours=2)
        notes = done.notes.split("\n")
        assert notes.index("Progress updated to 25%") < notes.index("Progress updated to 100%")
        assert notes[-1] == "Work completed"

    @pytest.mark.parametrize("prior", [0, 60, 99])
    def test_any_full_progress_completes(self, service, factory, customer, prior):
        work_order = factory.work_order(customer, status="in_progress", progress=prior)

        done = service.update_progress(work_order.id, 100)

        assert (done.status, done.progress) == ("completed", 100)

    def test_progress_outside_in_progress(self, service, factory, customer):
        work_order = factory.work_order(customer, status="pending")

        with pytest.raises(IllegalTransitionError, match="not in progress"):
            service.update_progress(work_order.id, 50)

    def test_complete_with_quality_control(self, service, factory, customer, now):
        work_order = factory.work_order(customer, status="in_progress", progress=80)
        quality_control = QualityControlData(
            test_drive_ok=True,
            visual_inspection_ok=True,
            completed_by="Lead Tech",
            actual_costs=ActualCosts(parts=Decimal("91.98"), labor=Decimal("180"), total=Decimal("271.98")),
        )

        done = service.complete(work_order.id, quality_control, now=now)

        assert done.status == "completed"
        assert done.progress == 100
        assert done.actual_completion_date == now
        assert done.actual_labor_cost == Decimal("180.00")
        assert done.actual_total_cost == Decimal("271.98")
        assert "Quality Control Completed:" in done.notes


class TestUpdateStatus:
    def test_cancel_appends_note(self, service, factory, customer):
        work_order = factory.work_order(customer)

        cancelled = service.update_status(work_order.id, "cancelled", "customer declined")

        assert cancelled.status == "cancelled"
        assert cancelled.notes == "customer declined"

    def test_terminal_status_is_final(self, service, factory, customer):
        work_order = factory.work_order(customer, status="cancelled")

        with pytest.raises(IllegalTransitionError):
            service.update_status(work_order.id, "pending")


class TestRecheckParts:
    def test_resumes_on_hold_when_available(self, db, service, factory, customer):
        factory.inventory("Brake Pad", 4, part_number="BP-1")
        work_order = factory.work_order(
            customer, status="on_hold", lines=[dict(BRAKE_LINE, parts=[dict(BRAKE_LINE["parts"][0], in_stock=False)])]
        )

        availability = service.recheck_parts(work_order.id)
        db.refresh(work_order)

        assert availability.all_available is True
        assert work_order.status == "pending"
        assert work_order.all_parts()[0].in_stock is True
        assert work_order.notes == "Parts now available - status updated to pending"

    def test_still_missing_keeps_hold(self, db, service, factory, customer):
        work_order = factory.work_order(
            customer, status="on_hold", lines=[dict(BRAKE_LINE, parts=list(BRAKE_LINE["parts"]))]
        )

        availability = service.recheck_parts(work_order.id)
        db.refresh(work_order)

        assert availability.all_available is False
        assert work_order.status == "on_hold"

    def test_auto_resume_disabled(self, db, service, factory, customer):
        factory.inventory("Brake Pad", 4, part_number="BP-1")
        work_order = factory.work_order(
            customer, status="on_hold", lines=[dict(BRAKE_LINE, parts=list(BRAKE_LINE["parts"]))]
        )

        service.recheck_parts(work_order.id, auto_resume=False)
        db.refresh(work_order)

        assert work_order.status == "on_hold"


class TestOptimisticLocking:
    def test_stale_write_is_rejected(self, engine, db, factory, customer, technician):
        work_order = factory.work_order(customer)

        other = sessionmaker(bind=engine, autoflush=False)()
        try:
            rival = other.get(WorkOrder, work_order.id)
            rival.priority = "urgent"
            other.commit()
        finally:
            other.close()

        # db still holds the old version in its identity map
        work_order.notes = "stale edit"
        service = WorkOrderService(db)
        with pytest.raises(ConcurrentUpdateError):
            service._apply(work_order, Transition(work_order.status, work_order.status), now=None)
