"""Fine amounts, fine state and payment transitions."""

import math
import re
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from bookflow.models import (
    BorrowRecord,
    FineRecord,
    FineSources,
    ReasonCode,
    ReturnRecord,
    TransitionResult,
)
from bookflow.observe import Observer, notify
from bookflow.status import FineStatus, is_cash, normalize_fine_status
from bookflow.temporal import utcnow

# Order in which fine amount sources are consulted.
AMOUNT_PRIORITY = ("nested", "owner", "envelope", "penalty")

# Legal moves, keyed by (current, target); the value is the payment path
# (cash or card) the move belongs to.
TRANSITIONS = {
    (FineStatus.UNPAID, FineStatus.PENDING_CASH_PAYMENT): "cash",
    (FineStatus.PENDING_CASH_PAYMENT, FineStatus.PAID): "cash",
    (FineStatus.UNPAID, FineStatus.PAID): "card",
    (FineStatus.UNPAID, FineStatus.FAILED): "card",
}


class FineSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = 0.0
    status: FineStatus = FineStatus.UNPAID
    is_paid: bool = False


class FineTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_unpaid: float = 0.0
    total_fines: int = 0
    has_unpaid_fines: bool = False


def parse_amount(raw, observer: Observer | None = None) -> float:
    """Parse a monetary amount; anything unusable is 0.0.

    Accepts numbers, numeric strings (optionally with "$" and thousands
    separators, like "$1,250.50") and None.
    """
    if raw is None or isinstance(raw, bool):
        return 0.0

    if isinstance(raw, (int, float, Decimal)):
        value = float(raw)
    else:
        text = re.sub(r"[\s$,]", "", str(raw))
        if not text:
            return 0.0
        try:
            value = float(text)
        except ValueError:
            notify(observer, "malformed_amount", raw=str(raw))
            return 0.0

    if math.isnan(value) or math.isinf(value):
        notify(observer, "malformed_amount", raw=str(raw))
        return 0.0
    return value


def resolve_amount(sources: FineSources, observer: Observer | None = None) -> float:
    """Amount from the first present source, in AMOUNT_PRIORITY order."""
    for name in AMOUNT_PRIORITY:
        raw = getattr(sources, name)
        if raw is not None:
            return parse_amount(raw, observer)
    return 0.0


def fine_state(record: BorrowRecord | ReturnRecord, observer: Observer | None = None) -> FineRecord:
    """Build the fine attached to a borrow or return record."""
    amount = max(0.0, resolve_amount(record.fine_sources, observer))

    if isinstance(record, ReturnRecord):
        method = record.fine_payment_method
        raw_status = record.fine_payment_status
        days_late = record.fine_days_late
        if days_late is None:
            days_late = record.overdue_days
        created_at = record.completed_at or record.requested_at
    else:
        method = record.payment_method
        raw_status = record.fine_payment_status
        days_late = record.days_late
        created_at = record.returned_at or record.requested_at

    status = normalize_fine_status(raw_status, method)
    paid_at = record.fine_paid_at if status == FineStatus.PAID else None
    return FineRecord(
        id=record.fine_id or f"fine-{record.id}",
        owner_record_id=record.id,
        amount=amount,
        status=status,
        payment_method=method,
        days_late=max(0, days_late or 0),
        created_at=created_at,
        paid_at=paid_at,
    )


def transition_fine(
    fine: FineRecord,
    target: FineStatus,
    method: str | None = None,
    at: datetime | None = None,
) -> TransitionResult:
    """Move a fine to ``target`` if the move is legal; otherwise a no-op result."""
    if fine.is_settled:
        return TransitionResult(record=fine, applied=False, reason=ReasonCode.FINE_ALREADY_SETTLED)

    method = method or fine.payment_method
    required = TRANSITIONS.get((fine.status, target))
    if required is None or (required == "cash") != is_cash(method):
        return TransitionResult(record=fine, applied=False, reason=ReasonCode.ILLEGAL_TRANSITION)

    update = {"status": target, "payment_method": method}
    if target == FineStatus.PAID:
        update["paid_at"] = at or utcnow()
    return TransitionResult(record=fine.model_copy(update=update))


def select_cash_payment(fine: FineRecord) -> TransitionResult:
    """Choose cash: the fine waits for collection at the library."""
    return transition_fine(fine, FineStatus.PENDING_CASH_PAYMENT, method="cash")


def confirm_cash_payment(fine: FineRecord, at: datetime | None = None) -> TransitionResult:
    """Mark a pending cash fine as collected."""
    return transition_fine(fine, FineStatus.PAID, method="cash", at=at)


def record_card_payment(
    fine: FineRecord,
    succeeded: bool,
    at: datetime | None = None,
    method: str = "card",
) -> TransitionResult:
    """Apply the synchronous outcome of a card payment."""
    if is_cash(method):
        method = "card"
    target = FineStatus.PAID if succeeded else FineStatus.FAILED
    return transition_fine(fine, target, method=method, at=at)


def fine_summary(fine: FineRecord) -> FineSummary:
    """Reduce a fine to what a view shows."""
    return FineSummary(amount=fine.amount, status=fine.status, is_paid=fine.is_paid)


def summarize_fines(fines: list[FineRecord]) -> FineTotals:
    """Totals across a customer's fines; only unpaid-side amounts count."""
    outstanding = [f for f in fines if not f.is_settled and f.amount > 0]
    total = round(sum(f.amount for f in outstanding), 2)
    return FineTotals(
        total_unpaid=total,
        total_fines=len(fines),
        has_unpaid_fines=bool(outstanding),
    )
