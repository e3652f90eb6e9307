"""Repositories - plain CRUD over the engine's records"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import ConcurrentUpdateError
from .models import InventoryItem
from .models_appointment import Appointment
from .models_notification import Notification
from .models_work_order import WorkOrder

logger = logging.getLogger(__name__)


class Repository:
    """find_by_id / find / save / update_fields / delete_by_id for one model"""

    model = None
    entity = "Record"

    @classmethod
    def find_by_id(cls, db: Session, record_id: Any):
        return db.get(cls.model, record_id)

    @classmethod
    def find(cls, db: Session, **filters) -> list:
        query = db.query(cls.model)
        for column, value in filters.items():
            query = query.filter(getattr(cls.model, column) == value)
        return query.order_by(cls.model.id).all()

    @classmethod
    def save(cls, db: Session, record):
        db.add(record)
        commit_or_conflict(db, cls.entity, getattr(record, "id", None))
        db.refresh(record)
        return record

    @classmethod
    def update_fields(cls, db: Session, record, **updates):
        """Apply field updates under the record's version check"""
        for key, value in updates.items():
            if hasattr(record, key):
                setattr(record, key, value)
        commit_or_conflict(db, cls.entity, record.id)
        db.refresh(record)
        return record

    @classmethod
    def delete_by_id(cls, db: Session, record_id: Any) -> bool:
        record = cls.find_by_id(db, record_id)
        if not record:
            return False
        db.delete(record)
        db.commit()
        return True


def commit_or_conflict(db: Session, entity: str, entity_id: Any) -> None:
    """Commit, translating a lost optimistic lock into ConcurrentUpdateError"""
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"⚠️ Concurrent update on {entity} {entity_id}: {e}")
        raise ConcurrentUpdateError(entity, entity_id) from e


class AppointmentRepository(Repository):
    model = Appointment
    entity = "Appointment"

    @staticmethod
    def find_in_window(
        db: Session, statuses: tuple, start: datetime, end: datetime
    ) -> list[Appointment]:
        """Appointments in the given statuses whose scheduled date falls in [start, end]"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.status.in_(statuses),
                Appointment.scheduled_date >= start,
                Appointment.scheduled_date <= end,
            )
            .order_by(Appointment.scheduled_date, Appointment.id)
            .all()
        )


class WorkOrderRepository(Repository):
    model = WorkOrder
    entity = "Work order"

    @staticmethod
    def find_by_source_appointment(db: Session, appointment_id: int) -> Optional[WorkOrder]:
        return (
            db.query(WorkOrder)
            .filter(WorkOrder.source_appointment_id == appointment_id)
            .first()
        )

    @staticmethod
    def last_number_for_prefix(db: Session, prefix: str) -> Optional[str]:
        """
        Highest work order number starting with prefix, e.g. WO-20260101-.
        Longer suffixes rank first so -1000 beats -999.
        """
        row = (
            db.query(WorkOrder.work_order_number)
            .filter(WorkOrder.work_order_number.like(f"{prefix}%"))
            .order_by(
                func.length(WorkOrder.work_order_number).desc(),
                WorkOrder.work_order_number.desc(),
            )
            .first()
        )
        return row[0] if row else None


class NotificationRepository(Repository):
    model = Notification
    entity = "Notification"

    @staticmethod
    def existing_dedup_keys(db: Session, keys: list[str]) -> set[str]:
        if not keys:
            return set()
        rows = db.query(Notification.dedup_key).filter(Notification.dedup_key.in_(keys)).all()
        return {row[0] for row in rows}

    @staticmethod
    def for_customer(db: Session, customer_id: int, limit: int = 20) -> list[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.customer_id == customer_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def count_unread(db: Session, customer_id: int) -> int:
        return (
            db.query(func.count(Notification.id))
            .filter(
                Notification.customer_id == customer_id,
                Notification.status.in_(["sent", "delivered"]),
            )
            .scalar()
        )


class InventoryRepository(Repository):
    model = InventoryItem
    entity = "Inventory item"

    @staticmethod
    def find_by_part_number_or_name(
        db: Session, part_number: Optional[str], name: Optional[str]
    ) -> Optional[InventoryItem]:
        """Exact part number first, then a case-insensitive name match"""
        if part_number:
            item = db.query(InventoryItem).filter(InventoryItem.part_number == part_number).first()
            if item:
                return item
        if name:
            pattern = f"%{_escape_like(name.strip())}%"
            return (
                db.query(InventoryItem)
                .filter(InventoryItem.name.ilike(pattern, escape="\\"))
                .order_by(InventoryItem.id)
                .first()
            )
        return None


def _escape_like(value: str) -> str:
    return re.sub(r"([\\%_])", r"\\\1", value)
