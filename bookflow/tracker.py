"""Delivery assignment tracking: status history, retries and location gating.

Retry count, failure reason and delivered-at are a fold over the status
history, so replaying a fresh snapshot's history gives the same result as
appending its entries one at a time.
"""

import math
from datetime import datetime
from functools import reduce

from pydantic import BaseModel, ConfigDict

from bookflow.models import (
    DeliveryAssignment,
    ReasonCode,
    StatusHistoryEntry,
    TransitionResult,
)
from bookflow.observe import Observer, notify
from bookflow.reconcile import canonical_status
from bookflow.status import CanonicalStatus, DeliveryStatus, Domain, normalize
from bookflow.temporal import as_utc, utcnow


class LocationView(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_track: bool = False
    latitude: float | None = None
    longitude: float | None = None


def _delivery_status(raw) -> CanonicalStatus:
    return normalize(Domain.DELIVERY, raw) or CanonicalStatus.default(Domain.DELIVERY)


def _step(assignment: DeliveryAssignment, entry: StatusHistoryEntry) -> DeliveryAssignment:
    """Apply one history entry to an assignment.

    Out-of-order entries, and entries that arrive once the assignment is
    terminal, are kept in the history but leave the current state alone.
    """
    history = assignment.status_history + (entry,)
    previous = _delivery_status(assignment.raw_status)
    if entry.out_of_order or previous.is_terminal:
        return assignment.model_copy(update={"status_history": history})

    current = _delivery_status(entry.status)
    update = {"raw_status": entry.status, "status_history": history}
    if current.is_failure and not previous.is_failure:
        update["retry_count"] = assignment.retry_count + 1
        if entry.description:
            update["failure_reason"] = entry.description
    if current.value == DeliveryStatus.DELIVERED and assignment.delivered_at is None:
        update["delivered_at"] = entry.timestamp
    return assignment.model_copy(update=update)


def _flag_order(history: tuple[StatusHistoryEntry, ...], entry: StatusHistoryEntry) -> StatusHistoryEntry:
    if history and as_utc(entry.timestamp) < max(as_utc(e.timestamp) for e in history):
        return entry.model_copy(update={"out_of_order": True})
    return entry


def append_status_change(
    assignment: DeliveryAssignment,
    new_status: str,
    timestamp: datetime,
    description: str | None = None,
    observer: Observer | None = None,
) -> DeliveryAssignment:
    """Record a status change reported by the backend.

    Entries are never rejected: one older than the newest entry is appended
    with ``out_of_order`` set, since the backend may replay updates. Neither
    that entry nor anything after a terminal status changes the current state.
    """
    entry = _flag_order(
        assignment.status_history,
        StatusHistoryEntry(status=new_status, timestamp=timestamp, description=description or ""),
    )
    if entry.out_of_order:
        notify(
            observer,
            "out_of_order_history",
            assignment_id=assignment.id,
            status=new_status,
            timestamp=timestamp.isoformat(),
        )
    elif canonical_status(assignment).is_terminal:
        notify(observer, "status_after_terminal", assignment_id=assignment.id, status=new_status)
    return _step(assignment, entry)


def replay(
    history: list[StatusHistoryEntry],
    initial: DeliveryAssignment,
    observer: Observer | None = None,
) -> DeliveryAssignment:
    """Fold a full history onto ``initial`` (which should have no history)."""

    def _append(assignment, entry):
        return append_status_change(assignment, entry.status, entry.timestamp, entry.description, observer)

    return reduce(_append, history, initial)


def retry_assignment(assignment: DeliveryAssignment, at: datetime | None = None) -> TransitionResult:
    """Put a failed delivery back in the queue for reassignment."""
    status = canonical_status(assignment)
    if status.is_terminal:
        return TransitionResult(record=assignment, applied=False, reason=ReasonCode.ALREADY_TERMINAL)
    if not status.is_failure:
        return TransitionResult(record=assignment, applied=False, reason=ReasonCode.NOT_FAILED)
    updated = append_status_change(
        assignment, DeliveryStatus.PENDING.value, at or utcnow(), "Retry requested"
    )
    return TransitionResult(record=updated)


def _live_pair(a: DeliveryAssignment) -> tuple[float, float] | None:
    if a.latitude is not None and a.longitude is not None:
        return a.latitude, a.longitude
    return None


def _last_known_pair(a: DeliveryAssignment) -> tuple[float, float] | None:
    if a.last_known_latitude is not None and a.last_known_longitude is not None:
        return a.last_known_latitude, a.last_known_longitude
    return None


def has_coordinates(assignment: DeliveryAssignment) -> bool:
    """Check for a complete live or last-known coordinate pair."""
    return _live_pair(assignment) is not None or _last_known_pair(assignment) is not None


def can_track_location(assignment: DeliveryAssignment) -> bool:
    """Location is only exposed while the delivery is under way."""
    status = canonical_status(assignment)
    return status.value == DeliveryStatus.IN_DELIVERY and has_coordinates(assignment)


def tracked_location(assignment: DeliveryAssignment) -> LocationView:
    """Coordinates to show, live pair first, when tracking is allowed."""
    if not can_track_location(assignment):
        return LocationView()
    latitude, longitude = _live_pair(assignment) or _last_known_pair(assignment)
    return LocationView(can_track=True, latitude=latitude, longitude=longitude)


def eta_minutes(assignment: DeliveryAssignment, now: datetime | None = None) -> int | None:
    """Whole minutes until the ETA, or None once there is nothing to wait for."""
    if assignment.eta is None or canonical_status(assignment).is_terminal:
        return None
    remaining = as_utc(assignment.eta) - as_utc(now or utcnow())
    return max(0, math.ceil(remaining.total_seconds() / 60))
