"""Canonical lifecycle statuses and the alias tables that feed them.

The backend's borrowing, returns and delivery subsystems each report status
text in their own vocabulary and casing. Everything in this package branches
on a :class:`CanonicalStatus` instead: a closed enumeration per domain plus an
``unknown`` value that keeps the unrecognized text so it can still be shown.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

from bookflow.observe import Observer, notify


class Domain(str, Enum):
    BORROW = "borrow"
    RETURN = "return"
    DELIVERY = "delivery"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_DELIVERY = "in_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class BorrowStatus(str, Enum):
    PAYMENT_PENDING = "payment_pending"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AWAITING_PICKUP = "awaiting_pickup"
    PENDING_DELIVERY = "pending_delivery"
    ASSIGNED_TO_DELIVERY = "assigned_to_delivery"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    ACTIVE = "active"
    EXTENDED = "extended"
    RETURN_REQUESTED = "return_requested"
    RETURN_APPROVED = "return_approved"
    RETURN_ASSIGNED = "return_assigned"
    OUT_FOR_RETURN_PICKUP = "out_for_return_pickup"
    RETURNED = "returned"
    LATE = "late"
    RETURNED_AFTER_DELAY = "returned_after_delay"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    LATE_RETURN = "late_return"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class FineStatus(str, Enum):
    UNPAID = "unpaid"
    PENDING_CASH_PAYMENT = "pending_cash_payment"
    PAID = "paid"
    FAILED = "failed"


ENUMS: dict[Domain, type[Enum]] = {
    Domain.BORROW: BorrowStatus,
    Domain.RETURN: ReturnStatus,
    Domain.DELIVERY: DeliveryStatus,
}

# Keys are folded text (see fold_status); values are canonical members.
DELIVERY_ALIASES = {
    "pending_assignment": DeliveryStatus.PENDING,
    "waiting_for_approval": DeliveryStatus.PENDING,
    "ready": DeliveryStatus.ACCEPTED,
    "in_progress": DeliveryStatus.IN_DELIVERY,
    "in_transit": DeliveryStatus.IN_DELIVERY,
    "out_for_delivery": DeliveryStatus.IN_DELIVERY,
    "picked_up": DeliveryStatus.IN_DELIVERY,
    "started": DeliveryStatus.IN_DELIVERY,
    "completed": DeliveryStatus.DELIVERED,
    "rejected": DeliveryStatus.FAILED,
    "delivery_failed": DeliveryStatus.FAILED,
    "canceled": DeliveryStatus.CANCELLED,
}

BORROW_ALIASES = {
    "under_review": BorrowStatus.PENDING,
    "assigned": BorrowStatus.ASSIGNED_TO_DELIVERY,
    "in_delivery": BorrowStatus.OUT_FOR_DELIVERY,
    "borrowed": BorrowStatus.ACTIVE,
    "overdue": BorrowStatus.LATE,
    "completed": BorrowStatus.RETURNED,
    "canceled": BorrowStatus.CANCELLED,
}

RETURN_ALIASES = {
    "in_return": ReturnStatus.IN_PROGRESS,
    "returning_to_library": ReturnStatus.IN_PROGRESS,
    "in_delivery": ReturnStatus.IN_PROGRESS,
    "return_requested": ReturnStatus.PENDING,
    "pending_pickup": ReturnStatus.PENDING,
    "return_approved": ReturnStatus.APPROVED,
    "return_assigned": ReturnStatus.ASSIGNED,
    "returned_successfully": ReturnStatus.COMPLETED,
    "returned": ReturnStatus.COMPLETED,
    "delivered": ReturnStatus.COMPLETED,
    "canceled": ReturnStatus.CANCELLED,
}

ALIASES = {
    Domain.BORROW: BORROW_ALIASES,
    Domain.RETURN: RETURN_ALIASES,
    Domain.DELIVERY: DELIVERY_ALIASES,
}

FINE_ALIASES = {
    "unpaid": FineStatus.UNPAID,
    "pending": FineStatus.UNPAID,
    "pending_cash_payment": FineStatus.PENDING_CASH_PAYMENT,
    "pending_cash": FineStatus.PENDING_CASH_PAYMENT,
    "paid": FineStatus.PAID,
    "completed": FineStatus.PAID,
    "failed": FineStatus.FAILED,
    "declined": FineStatus.FAILED,
}

TERMINAL = {
    Domain.DELIVERY: {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED},
    Domain.BORROW: {
        BorrowStatus.DELIVERED,
        BorrowStatus.RETURNED,
        BorrowStatus.RETURNED_AFTER_DELAY,
        BorrowStatus.REJECTED,
        BorrowStatus.CANCELLED,
    },
    Domain.RETURN: {
        ReturnStatus.COMPLETED,
        ReturnStatus.LATE_RETURN,
        ReturnStatus.REJECTED,
        ReturnStatus.CANCELLED,
    },
}

FAILURE = {DeliveryStatus.FAILED}

# Labels that differ from the title-cased value.
LABELS = {
    (Domain.BORROW, BorrowStatus.PENDING): "Under Review",
    (Domain.RETURN, ReturnStatus.LATE_RETURN): "Late Return (with Fine)",
    (Domain.DELIVERY, DeliveryStatus.IN_DELIVERY): "In Delivery",
}

# Delivery labels as worded for the return trip back to the library.
RETURN_TRIP_LABELS = {
    DeliveryStatus.IN_DELIVERY: "Returning to Library",
    DeliveryStatus.DELIVERED: "Returned",
}


def fold_status(raw) -> str:
    """Case-fold status text and collapse spaces/hyphens into underscores."""
    text = str(raw).strip().casefold()
    return re.sub(r"[\s\-]+", "_", text)


class CanonicalStatus(BaseModel):
    """A reconciled status: one enum value of a domain, or ``unknown`` + raw text."""

    model_config = ConfigDict(frozen=True)

    domain: Domain
    value: str
    raw: str | None = None

    @classmethod
    def default(cls, domain: Domain) -> "CanonicalStatus":
        return cls(domain=domain, value="pending")

    @property
    def member(self) -> Enum:
        return ENUMS[self.domain](self.value)

    @property
    def is_unknown(self) -> bool:
        return self.value == "unknown"

    @property
    def is_terminal(self) -> bool:
        return self.member in TERMINAL[self.domain]

    @property
    def is_failure(self) -> bool:
        return self.member in FAILURE

    @property
    def label(self) -> str:
        if self.is_unknown:
            return self.raw or "Unknown"
        override = LABELS.get((self.domain, self.member))
        if override:
            return override
        return self.value.replace("_", " ").title()

    def __str__(self) -> str:
        return self.value


def normalize(domain: Domain, raw, observer: Observer | None = None) -> CanonicalStatus | None:
    """Map raw status text to a canonical status of ``domain``.

    Returns None for absent or blank input so callers can fall back to another
    source. Text that matches neither the enum nor the alias table becomes an
    ``unknown`` status that keeps the original text.
    """
    if raw is None:
        return None
    folded = fold_status(raw)
    if not folded:
        return None

    enum = ENUMS[domain]
    try:
        member = enum(folded)
    except ValueError:
        member = ALIASES[domain].get(folded)

    if member is None or member.value == "unknown":
        notify(observer, "unknown_status", domain=domain.value, raw=str(raw))
        return CanonicalStatus(domain=domain, value="unknown", raw=str(raw).strip())
    return CanonicalStatus(domain=domain, value=member.value)


def normalize_fine_status(raw, payment_method: str | None = None) -> FineStatus:
    """Map raw fine/payment status text to a FineStatus, defaulting to unpaid.

    The backend reports an outstanding cash fine as plain "pending"; with a cash
    payment method selected that means the fine is awaiting collection.
    """
    if raw is None or not str(raw).strip():
        return FineStatus.UNPAID
    folded = fold_status(raw)
    status = FINE_ALIASES.get(folded, FineStatus.UNPAID)
    if folded == "pending" and is_cash(payment_method):
        return FineStatus.PENDING_CASH_PAYMENT
    return status


def is_cash(payment_method: str | None) -> bool:
    """Check whether a payment method names cash."""
    return payment_method is not None and fold_status(payment_method) == "cash"
