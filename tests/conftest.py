import itertools
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from autoshop import models_notification  # noqa: E402,F401
from autoshop.database import Base  # noqa: E402
from autoshop.exceptions import ChannelDeliveryError  # noqa: E402
from autoshop.models import (  # noqa: E402
    Customer,
    InventoryItem,
    Invoice,
    ServiceCatalog,
    ServiceRecord,
    Technician,
    Vehicle,
)
from autoshop.models_appointment import Appointment, AppointmentPart  # noqa: E402
from autoshop.models_work_order import WorkOrder, WorkOrderLine, WorkOrderPart  # noqa: E402
from autoshop.services.channels import ChannelReceipt  # noqa: E402

NOW = datetime(2026, 3, 10, 9, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


class FakeChannel:
    """In-process NotificationChannel; records sends or fails on demand"""

    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent = []

    async def send(self, target, message):
        if self.fail:
            raise ChannelDeliveryError(self.name, f"{self.name} transport down")
        self.sent.append((target, message))
        return ChannelReceipt(message_id=f"{self.name}-{len(self.sent)}")


@pytest.fixture
def email_channel():
    return FakeChannel("email")


@pytest.fixture
def sms_channel():
    return FakeChannel("sms")


class Factory:
    def __init__(self, db):
        self.db = db
        self._numbers = itertools.count(1)

    def _save(self, record):
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def customer(self, **kwargs):
        defaults = {
            "name": "Dana Whitfield",
            "email": "dana@example.com",
            "phone": "(555) 123-4567",
            "status": "active",
        }
        defaults.update(kwargs)
        return self._save(Customer(**defaults))

    def vehicle(self, customer, **kwargs):
        defaults = {
            "customer_id": customer.id,
            "year": 2019,
            "make": "Honda",
            "model": "Civic",
            "vin": "1HGCV1F30KA000001",
            "license_plate": "ABC123",
            "mileage": 42000,
            "last_service_mileage": 41000,
            "status": "active",
        }
        defaults.update(kwargs)
        return self._save(Vehicle(**defaults))

    def service_type(self, **kwargs):
        defaults = {
            "name": "Brake Service",
            "category": "brakes",
            "estimated_duration": 90,
            "labor_rate": Decimal("120.00"),
        }
        defaults.update(kwargs)
        return self._save(ServiceCatalog(**defaults))

    def technician(self, **kwargs):
        defaults = {"name": "Sam Ortiz", "email": "sam@example.com"}
        defaults.update(kwargs)
        return self._save(Technician(**defaults))

    def inventory(self, name, current_stock, part_number=None, **kwargs):
        return self._save(
            InventoryItem(name=name, part_number=part_number, current_stock=current_stock, **kwargs)
        )

    def appointment(self, customer, when, vehicle=None, service_type=None, parts=(), **kwargs):
        defaults = {
            "customer_id": customer.id,
            "vehicle_id": vehicle.id if vehicle else None,
            "service_type_id": service_type.id if service_type else None,
            "scheduled_date": when.replace(hour=0, minute=0, second=0, microsecond=0),
            "scheduled_time": when.strftime("%H:%M"),
            "estimated_duration": 90,
            "status": "scheduled",
            "approval_status": "approved",
            "preferred_contact": "email",
        }
        defaults.update(kwargs)
        appointment = Appointment(**defaults)
        for part in parts:
            appointment.parts.append(AppointmentPart(**part))
        return self._save(appointment)

    def work_order(self, customer, status="pending", lines=None, **kwargs):
        defaults = {
            "work_order_number": f"WO-20260301-{next(self._numbers):03d}",
            "customer_id": customer.id,
            "vehicle_make": "Honda",
            "vehicle_model": "Civic",
            "vehicle_year": 2019,
            "status": status,
            "progress": 0,
        }
        defaults.update(kwargs)
        work_order = WorkOrder(**defaults)
        for line in lines or []:
            parts = line.pop("parts", [])
            work_order_line = WorkOrderLine(**line)
            for part in parts:
                work_order_line.parts.append(WorkOrderPart(**part))
            work_order.lines.append(work_order_line)
        return self._save(work_order)

    def invoice(self, customer, **kwargs):
        defaults = {
            "customer_id": customer.id,
            "invoice_number": "INV-1001",
            "total": Decimal("249.50"),
            "status": "pending",
        }
        defaults.update(kwargs)
        return self._save(Invoice(**defaults))

    def service_record(self, customer, **kwargs):
        defaults = {"customer_id": customer.id, "service_type": "oil_change", "status": "completed"}
        defaults.update(kwargs)
        return self._save(ServiceRecord(**defaults))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def customer(factory):
    return factory.customer()


@pytest.fixture
def vehicle(factory, customer):
    return factory.vehicle(customer)


@pytest.fixture
def service_type(factory):
    return factory.service_type()


@pytest.fixture
def technician(factory):
    return factory.technician()


@pytest.fixture
def in_ninety_minutes(now):
    return now + timedelta(minutes=90)
