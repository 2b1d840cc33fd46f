"""Read-only views handed to the presentation layer."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from bookflow.fines import FineSummary, fine_state, fine_summary
from bookflow.models import BorrowRecord, DeliveryAssignment, ReturnRecord
from bookflow.observe import Observer
from bookflow.reconcile import reconcile
from bookflow.status import RETURN_TRIP_LABELS, CanonicalStatus, Domain
from bookflow.temporal import TemporalState, derive_temporal
from bookflow.tracker import LocationView, eta_minutes, tracked_location


class View(BaseModel):
    model_config = ConfigDict(frozen=True)


class StatusView(View):
    value: str
    label: str
    domain: str
    is_unknown: bool = False

    @classmethod
    def of(cls, status: CanonicalStatus, label: str | None = None) -> "StatusView":
        return cls(
            value=status.value,
            label=label or status.label,
            domain=status.domain.value,
            is_unknown=status.is_unknown,
        )


class DeliveryView(View):
    id: str
    status: StatusView
    temporal: TemporalState
    location: LocationView
    retry_count: int = 0
    failure_reason: str | None = None
    eta_minutes: int | None = None
    tracking_number: str | None = None


class BorrowView(View):
    id: str
    status: StatusView
    secondary_status: StatusView
    status_source: str
    temporal: TemporalState
    fine: FineSummary
    delivery: DeliveryView | None = None


class ReturnView(View):
    id: str
    borrow_record_id: str | None = None
    status: StatusView
    status_source: str
    temporal: TemporalState
    fine: FineSummary
    has_penalty: bool = False


def delivery_view(
    assignment: DeliveryAssignment,
    now: datetime | None = None,
    observer: Observer | None = None,
) -> DeliveryView:
    status = reconcile(assignment, observer).primary
    return DeliveryView(
        id=assignment.id,
        status=StatusView.of(status),
        temporal=derive_temporal(status, assignment.scheduled_at, assignment.delivered_at, now),
        location=tracked_location(assignment),
        retry_count=assignment.retry_count,
        failure_reason=assignment.failure_reason,
        eta_minutes=eta_minutes(assignment, now),
        tracking_number=assignment.tracking_number,
    )


def borrow_view(
    record: BorrowRecord,
    now: datetime | None = None,
    observer: Observer | None = None,
) -> BorrowView:
    reconciled = reconcile(record, observer)
    delivery = None
    if record.delivery is not None:
        delivery = delivery_view(record.delivery, now, observer)
    return BorrowView(
        id=record.id,
        status=StatusView.of(reconciled.primary),
        secondary_status=StatusView.of(reconciled.secondary),
        status_source=reconciled.source,
        temporal=derive_temporal(reconciled.primary, record.due_at, record.returned_at, now),
        fine=fine_summary(fine_state(record, observer)),
        delivery=delivery,
    )


def return_view(
    record: ReturnRecord,
    now: datetime | None = None,
    observer: Observer | None = None,
) -> ReturnView:
    reconciled = reconcile(record, observer)
    label = None
    if reconciled.primary.domain == Domain.DELIVERY:
        label = RETURN_TRIP_LABELS.get(reconciled.primary.member)
    return ReturnView(
        id=record.id,
        borrow_record_id=record.borrow_record_id,
        status=StatusView.of(reconciled.primary, label),
        status_source=reconciled.source,
        temporal=derive_temporal(reconciled.primary, record.due_at, record.completed_at, now),
        fine=fine_summary(fine_state(record, observer)),
        has_penalty=record.has_penalty,
    )


def derive_view(entity, now: datetime | None = None, observer: Observer | None = None):
    """Dispatch to the view builder for the entity's type."""
    if isinstance(entity, BorrowRecord):
        return borrow_view(entity, now, observer)
    if isinstance(entity, ReturnRecord):
        return return_view(entity, now, observer)
    if isinstance(entity, DeliveryAssignment):
        return delivery_view(entity, now, observer)
    raise TypeError(f"Cannot derive a view for {type(entity).__name__}")
