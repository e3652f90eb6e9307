"""
Shop reference data consumed by the work-order and notification engine:
customers, vehicles, the service catalog, technicians, inventory, invoices
and completed service records.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(50), default="active", nullable=False, index=True)  # active, inactive
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vehicles = relationship("Vehicle", back_populates="customer")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    year = Column(Integer, nullable=True)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    vin = Column(String(17), nullable=True)
    license_plate = Column(String(20), nullable=True)
    mileage = Column(Integer, default=0, nullable=False)
    last_service_mileage = Column(Integer, nullable=True)
    last_service_date = Column(DateTime, nullable=True)
    status = Column(String(50), default="active", nullable=False)  # active, sold, scrapped
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer", back_populates="vehicles")

    @property
    def description(self) -> str:
        """Human label such as '2019 Honda Civic'"""
        parts = [str(self.year) if self.year else None, self.make, self.model]
        return " ".join(p for p in parts if p) or "your vehicle"


class ServiceCatalog(Base):
    """A bookable service type with its default labor rate"""

    __tablename__ = "service_catalog"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # maintenance, repair, diagnostic, inspection, emergency, preventive, other
    category = Column(String(50), nullable=False, default="other")
    estimated_duration = Column(Integer, nullable=False, default=60)  # minutes
    labor_rate = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Technician(Base):
    __tablename__ = "technicians"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(50), nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    part_number = Column(String(100), unique=True, nullable=True, index=True)
    category = Column(String(50), nullable=True)
    current_stock = Column(Integer, default=0, nullable=False)
    minimum_stock = Column(Integer, default=0, nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=True)
    selling_price = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String(50), default="pending")  # pending, paid, overdue, cancelled
    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")


class ServiceRecord(Base):
    """A service performed on a vehicle (history entry, not a work order)"""

    __tablename__ = "service_records"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=True)
    service_type = Column(String(100), nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    status = Column(String(50), default="completed", nullable=False)

    customer = relationship("Customer")
    vehicle = relationship("Vehicle")
