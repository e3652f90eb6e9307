"""
Parts Availability Service
Classifies required parts as available or missing against inventory
"""

import logging
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy.orm import Session

from ..repositories import InventoryRepository
from ..schemas import AvailablePart, MissingPart, PartsAvailability, RequiredPart

logger = logging.getLogger(__name__)


class InventoryLookup(Protocol):
    """Anything that can find an inventory record exposing `id` and `current_stock`"""

    def find_by_part_number_or_name(self, part_number: Optional[str], name: str) -> Optional[Any]:
        ...


class SqlInventoryLookup:
    """InventoryLookup backed by the inventory_items table"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_part_number_or_name(self, part_number: Optional[str], name: str):
        return InventoryRepository.find_by_part_number_or_name(self.db, part_number, name)


def as_required_part(part: Any) -> RequiredPart:
    """Accept dicts, RequiredPart, or ORM part rows"""
    if isinstance(part, RequiredPart):
        return part
    if isinstance(part, dict):
        return RequiredPart(**part)
    return RequiredPart(
        name=part.name,
        part_number=getattr(part, "part_number", None),
        quantity=part.quantity or 1,
    )


class PartsAvailabilityResolver:
    """Query-and-classify; no stock is reserved and nothing is cached"""

    def __init__(self, lookup: InventoryLookup):
        self.lookup = lookup

    def resolve(self, required_parts: Iterable[Any]) -> PartsAvailability:
        availability = PartsAvailability()

        for raw_part in required_parts:
            part = as_required_part(raw_part)
            try:
                item = self.lookup.find_by_part_number_or_name(part.part_number, part.name)
            except Exception as e:
                # One failed lookup must not sink the rest of the batch
                logger.error(f"❌ Inventory lookup failed for part {part.name}: {e}")
                availability.missing_parts.append(
                    MissingPart(
                        **part.model_dump(), reason="lookup_error", quantity_short=part.quantity
                    )
                )
                availability.total_missing += part.quantity
                continue

            if item is None:
                availability.missing_parts.append(
                    MissingPart(
                        **part.model_dump(), reason="not_found", quantity_short=part.quantity
                    )
                )
                availability.total_missing += part.quantity
            elif (item.current_stock or 0) < part.quantity:
                stock = item.current_stock or 0
                availability.missing_parts.append(
                    MissingPart(
                        **part.model_dump(),
                        reason="insufficient_stock",
                        quantity_short=part.quantity - stock,
                        current_stock=stock,
                    )
                )
                availability.total_missing += part.quantity - stock
            else:
                availability.available_parts.append(
                    AvailablePart(
                        **part.model_dump(),
                        current_stock=item.current_stock,
                        inventory_item_id=item.id,
                    )
                )

        availability.all_available = not availability.missing_parts
        if not availability.all_available:
            logger.info(
                f"⚠️ Parts check: {len(availability.missing_parts)} missing, "
                f"{availability.total_missing} units short"
            )
        return availability
