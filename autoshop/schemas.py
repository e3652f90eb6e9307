from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class RequiredPart(BaseModel):
    name: str
    part_number: Optional[str] = None
    quantity: int = Field(default=1, ge=1)

    class Config:
        from_attributes = True


class MissingPart(RequiredPart):
    # not_found, insufficient_stock, lookup_error
    reason: Literal["not_found", "insufficient_stock", "lookup_error"]
    quantity_short: int
    current_stock: Optional[int] = None


class AvailablePart(RequiredPart):
    current_stock: int
    inventory_item_id: int


class PartsAvailability(BaseModel):
    """Result of one resolver run; never persisted, never cached"""

    all_available: bool = True
    missing_parts: List[MissingPart] = Field(default_factory=list)
    available_parts: List[AvailablePart] = Field(default_factory=list)
    total_missing: int = 0

    def is_available(self, part_number: Optional[str], name: str) -> bool:
        return any(
            p.part_number == part_number and p.name == name for p in self.available_parts
        )


class ActualCosts(BaseModel):
    parts: Optional[Decimal] = None
    labor: Optional[Decimal] = None
    total: Optional[Decimal] = None


class QualityControlData(BaseModel):
    test_drive_ok: bool
    visual_inspection_ok: bool
    notes: Optional[str] = None
    completed_by: str
    actual_costs: Optional[ActualCosts] = None


class CommunicationOutcome(BaseModel):
    """One channel attempt for one communication kind"""

    kind: str
    channel: Literal["email", "sms"]
    status: Literal["sent", "failed"]
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: datetime


class ReminderResult(BaseModel):
    appointment_id: int
    customer_name: Optional[str] = None
    reminder_kind: str
    results: List[CommunicationOutcome] = Field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return any(r.status == "sent" for r in self.results)


class ReminderPassResult(BaseModel):
    reminders_sent: int = 0
    evaluated: int = 0
    results: List[ReminderResult] = Field(default_factory=list)
    cancelled: bool = False


class NotificationJobSummary(BaseModel):
    job: str
    created: int = 0
    skipped_duplicates: int = 0
    failed_records: int = 0
    cancelled: bool = False
    # The job itself raised; nothing from it was saved
    failed: bool = False
