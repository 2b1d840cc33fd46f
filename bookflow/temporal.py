"""Overdue and day-count derivation from due dates."""

import math
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

from bookflow.status import CanonicalStatus

DAY = timedelta(days=1)


class TemporalState(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_overdue: bool = False
    days_remaining: int | None = None
    days_overdue: int | None = None


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware and naive values compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def derive_temporal(
    status: CanonicalStatus,
    due_at: datetime | None,
    completed_at: datetime | None = None,
    now: datetime | None = None,
) -> TemporalState:
    """Compute overdue state for a record with an optional due/scheduled date.

    A finished record (terminal status or a completion time) is never overdue;
    if both dates are known its lateness is still reported in days_overdue.
    """
    now = as_utc(now or utcnow())

    if status.is_terminal or completed_at is not None:
        days_overdue = None
        if due_at is not None and completed_at is not None:
            late = as_utc(completed_at) - as_utc(due_at)
            days_overdue = max(0, math.floor(late / DAY))
        return TemporalState(is_overdue=False, days_overdue=days_overdue)

    if due_at is None:
        return TemporalState()

    due_at = as_utc(due_at)
    return TemporalState(
        is_overdue=now > due_at,
        days_remaining=math.ceil((due_at - now) / DAY),
        days_overdue=max(0, math.floor((now - due_at) / DAY)),
    )
