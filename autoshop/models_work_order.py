"""
Work Order Models
Billable units of repair work, their service lines and parts
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Boolean,
    Numeric,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Session, relationship
from sqlalchemy.sql import func

from .database import Base
from .shared.money import to_decimal, to_money


class WorkOrder(Base):
    """A unit of billable work, driven through its lifecycle by WorkOrderService"""

    __tablename__ = "work_orders"

    id = Column(Integer, primary_key=True, index=True)
    version = Column(Integer, nullable=False, default=1)
    work_order_number = Column(String(32), unique=True, nullable=False, index=True)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    # One work order per appointment at most
    source_appointment_id = Column(
        Integer, ForeignKey("appointments.id"), unique=True, nullable=True
    )
    technician_id = Column(Integer, ForeignKey("technicians.id"), nullable=True, index=True)

    # Point-in-time vehicle snapshot, not a live reference
    vehicle_make = Column(String(100), nullable=False)
    vehicle_model = Column(String(100), nullable=False)
    vehicle_year = Column(Integer, nullable=False)
    vehicle_vin = Column(String(17), nullable=True)
    vehicle_license_plate = Column(String(20), nullable=True)
    vehicle_mileage = Column(Integer, default=0)

    # Status workflow: pending → in_progress → completed; pending ⇄ on_hold;
    # any non-terminal status → cancelled
    status = Column(String(20), default="pending", nullable=False, index=True)
    priority = Column(String(20), default="medium", nullable=False)  # low, medium, high, urgent
    progress = Column(Integer, default=0, nullable=False)  # 0-100

    estimated_start_date = Column(DateTime, nullable=True)
    estimated_completion_date = Column(DateTime, nullable=True)
    actual_start_date = Column(DateTime, nullable=True)
    actual_completion_date = Column(DateTime, nullable=True)

    # Append-only audit trail, one entry per line
    notes = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)

    # Aggregates, recomputed whenever lines or parts change
    total_labor_hours = Column(Numeric(8, 2), default=0)
    total_labor_cost = Column(Numeric(10, 2), default=0)
    total_parts_cost = Column(Numeric(10, 2), default=0)
    total_cost = Column(Numeric(10, 2), default=0)

    # Actual costs reported at quality control
    actual_parts_cost = Column(Numeric(10, 2), nullable=True)
    actual_labor_cost = Column(Numeric(10, 2), nullable=True)
    actual_total_cost = Column(Numeric(10, 2), nullable=True)

    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    lines = relationship(
        "WorkOrderLine",
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderLine.id",
    )
    customer = relationship("Customer")
    technician = relationship("Technician")
    source_appointment = relationship("Appointment")

    __mapper_args__ = {"version_id_col": version}

    def all_parts(self) -> list:
        """Every part across every service line"""
        return [part for line in self.lines for part in line.parts]

    def append_note(self, note: str) -> None:
        if not note:
            return
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def calculate_totals(self) -> "WorkOrder":
        """
        Recompute line and order aggregates.

        labor cost = Σ hours × rate, parts cost = Σ quantity × unit price,
        total = labor + parts; all rounded to cents.
        """
        labor_hours = to_decimal(0)
        labor_cost = to_decimal(0)
        parts_cost = to_decimal(0)

        for line in self.lines:
            line_labor = to_decimal(line.labor_hours) * to_decimal(line.labor_rate)
            line_parts = to_decimal(0)
            for part in line.parts:
                part_total = to_decimal(part.unit_price) * (part.quantity or 0)
                part.total_price = to_money(part_total)
                line_parts += part_total
            line.total_cost = to_money(line_labor + line_parts)

            labor_hours += to_decimal(line.labor_hours)
            labor_cost += line_labor
            parts_cost += line_parts

        self.total_labor_hours = to_money(labor_hours)
        self.total_labor_cost = to_money(labor_cost)
        self.total_parts_cost = to_money(parts_cost)
        self.total_cost = to_money(labor_cost + parts_cost)
        return self


class WorkOrderLine(Base):
    """One service performed as part of a work order"""

    __tablename__ = "work_order_lines"

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("service_catalog.id"), nullable=True)
    description = Column(Text, nullable=True)
    labor_hours = Column(Numeric(6, 2), nullable=False, default=0)
    labor_rate = Column(Numeric(10, 2), nullable=False, default=0)
    total_cost = Column(Numeric(10, 2), nullable=False, default=0)

    work_order = relationship("WorkOrder", back_populates="lines")
    service = relationship("ServiceCatalog")
    parts = relationship(
        "WorkOrderPart",
        back_populates="line",
        cascade="all, delete-orphan",
        order_by="WorkOrderPart.id",
    )


class WorkOrderPart(Base):
    __tablename__ = "work_order_parts"

    id = Column(Integer, primary_key=True, index=True)
    line_id = Column(Integer, ForeignKey("work_order_lines.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    part_number = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    in_stock = Column(Boolean, default=True, nullable=False)

    line = relationship("WorkOrderLine", back_populates="parts")


def _work_orders_with_changed_lines(session: Session) -> set:
    affected = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, WorkOrder):
            if obj in session.new or inspect(obj).attrs.lines.history.has_changes():
                affected.add(obj)
        elif isinstance(obj, WorkOrderLine):
            if obj.work_order is not None:
                affected.add(obj.work_order)
        elif isinstance(obj, WorkOrderPart):
            if obj.line is not None and obj.line.work_order is not None:
                affected.add(obj.line.work_order)
    return affected


@event.listens_for(Session, "before_flush")
def recalculate_work_order_totals(session, _flush_context, _instances):
    """Keep aggregates in step with service lines on every save"""
    for work_order in _work_orders_with_changed_lines(session):
        if work_order not in session.deleted:
            work_order.calculate_totals()
