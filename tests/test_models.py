from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from autoshop.exceptions import InputValidationError
from autoshop.models_appointment import Appointment, AppointmentPart
from autoshop.repositories import AppointmentRepository, InventoryRepository, WorkOrderRepository
from autoshop.shared.money import to_money


class TestAppointment:
    def test_scheduled_datetime_and_end(self):
        appointment = Appointment(
            scheduled_date=datetime(2026, 3, 11), scheduled_time="14:15", estimated_duration=45
        )

        assert appointment.scheduled_datetime == datetime(2026, 3, 11, 14, 15)
        assert appointment.scheduled_end == datetime(2026, 3, 11, 15, 0)

    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "noon"])
    def test_scheduled_time_must_be_hh_mm(self, value):
        with pytest.raises(InputValidationError):
            Appointment(scheduled_time=value)

    def test_estimated_cost(self):
        appointment = Appointment(estimated_duration=90)
        appointment.parts.append(AppointmentPart(name="Brake Pad", quantity=2, cost=Decimal("45.99")))
        appointment.parts.append(AppointmentPart(name="Shim Kit", quantity=1, cost=None))

        costs = appointment.calculate_estimated_cost()

        assert costs == {
            "parts": Decimal("91.98"),
            "labor": Decimal("150.00"),
            "total": Decimal("241.98"),
        }

    def test_requires_approval_uses_default_threshold(self):
        appointment = Appointment(estimated_total_cost=Decimal("500.01"))

        assert appointment.requires_approval() is True

    def test_requires_approval_uses_own_threshold(self):
        appointment = Appointment(
            estimated_total_cost=Decimal("300.00"), approval_threshold=Decimal("300.00")
        )

        assert appointment.requires_approval() is False

    def test_mark_sent_overrides_history(self, db, factory, customer, now):
        appointment = factory.appointment(customer, now + timedelta(hours=1))

        appointment.mark_sent("reminder_2h", now)
        db.commit()
        db.refresh(appointment)

        assert appointment.reminder_last_sent == {"reminder_2h": now.isoformat()}
        assert appointment.last_sent_at("reminder_2h") == now
        assert appointment.last_sent_at("reminder_24h") is None


def test_money_rounds_half_up():
    assert to_money(0.125) == Decimal("0.13")
    assert to_money("2.675") == Decimal("2.68")
    assert to_money(None) == Decimal("0.00")


class TestRepositories:
    def test_find_and_update_fields(self, db, factory, customer, now):
        appointment = factory.appointment(customer, now + timedelta(days=1))

        AppointmentRepository.update_fields(db, appointment, priority="urgent", not_a_column="x")

        assert [a.priority for a in AppointmentRepository.find(db, customer_id=customer.id)] == [
            "urgent"
        ]
        assert appointment.version == 2

    def test_delete_by_id(self, db, factory, customer):
        work_order = factory.work_order(customer)

        assert WorkOrderRepository.delete_by_id(db, work_order.id) is True
        assert WorkOrderRepository.delete_by_id(db, work_order.id) is False
        assert WorkOrderRepository.find_by_id(db, work_order.id) is None

    def test_inventory_lookup_without_identifiers(self, db):
        assert InventoryRepository.find_by_part_number_or_name(db, None, None) is None
