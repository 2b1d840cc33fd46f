"""Pydantic models for borrow, return, delivery and fine records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bookflow.status import FineStatus


class Record(BaseModel):
    """Base for all entities; instances are immutable values."""

    model_config = ConfigDict(frozen=True)


class StatusHistoryEntry(Record):
    """One status transition in a delivery's history."""

    status: str
    timestamp: datetime
    description: str = ""
    out_of_order: bool = False  # older than the entry before it


class DeliveryAssignment(Record):
    """Dispatch-side view of a purchase order or a borrow/return trip."""

    id: str
    raw_status: str | None = None
    delivery_type: str | None = None  # "purchase", "borrow", "return"
    order_id: str | None = None
    assigned_agent_id: str | None = None
    scheduled_at: datetime | None = None
    delivered_at: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    last_known_latitude: float | None = None
    last_known_longitude: float | None = None
    location_updated_at: datetime | None = None
    tracking_number: str | None = None
    failure_reason: str | None = None
    retry_count: int = Field(default=0, ge=0)
    eta: datetime | None = None
    status_history: tuple[StatusHistoryEntry, ...] = ()


class FineSources(Record):
    """Raw fine amounts as reported in different places of a payload.

    Kept unparsed; the fine engine picks the first present one in field order.
    """

    nested: Any = None  # the embedded fine object's amount
    owner: Any = None  # the owning borrow/return object's amount
    envelope: Any = None  # top-level amount on the response
    penalty: Any = None  # generic penalty amount


class BorrowRecord(Record):
    """One customer's borrow of one book."""

    id: str
    book_id: str | None = None
    customer_id: str | None = None
    duration_days: int = 0
    requested_at: datetime
    approved_at: datetime | None = None
    due_at: datetime | None = None
    returned_at: datetime | None = None
    raw_status: str | None = None
    raw_secondary_status: str | None = None  # borrow_status
    unified_delivery_status: str | None = None  # delivery_request_status
    delivery: DeliveryAssignment | None = None
    fine_sources: FineSources = FineSources()
    fine_id: str | None = None
    fine_payment_status: str | None = None
    payment_method: str | None = None
    days_late: int | None = None
    fine_paid_at: datetime | None = None


class ReturnRecord(Record):
    """The return trip of a previously borrowed book."""

    id: str
    borrow_record_id: str | None = None
    borrow: BorrowRecord | None = None
    raw_status: str | None = None
    unified_delivery_status: str | None = None
    fine_sources: FineSources = FineSources()
    overdue_days: int | None = None
    has_penalty: bool = False
    due_at: datetime | None = None
    requested_at: datetime
    accepted_at: datetime | None = None
    picked_up_at: datetime | None = None
    completed_at: datetime | None = None
    fine_id: str | None = None
    fine_days_late: int | None = None
    fine_payment_method: str | None = None
    fine_payment_status: str | None = None
    fine_paid_at: datetime | None = None


class FineRecord(Record):
    """A monetary penalty tied to a borrow or return."""

    id: str
    owner_record_id: str
    amount: float = Field(default=0.0, ge=0)
    status: FineStatus = FineStatus.UNPAID
    payment_method: str | None = None
    days_late: int = Field(default=0, ge=0)
    created_at: datetime
    paid_at: datetime | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == FineStatus.PAID

    @property
    def is_settled(self) -> bool:
        return self.status in (FineStatus.PAID, FineStatus.FAILED)


class ReasonCode(str, Enum):
    """Why a requested transition was not applied."""

    FINE_ALREADY_SETTLED = "fine_already_settled"
    ILLEGAL_TRANSITION = "illegal_transition"
    ALREADY_TERMINAL = "already_terminal"
    NOT_FAILED = "not_failed"


class TransitionResult(BaseModel):
    """Outcome of a state transition: the (possibly unchanged) record and why."""

    model_config = ConfigDict(frozen=True)

    record: FineRecord | DeliveryAssignment
    applied: bool = True
    reason: ReasonCode | None = None
