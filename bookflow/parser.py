"""Build domain records from raw backend payloads.

The backend has renamed most fields at least once, and different endpoints
nest the same data differently. Each logical field therefore has one ordered
list of source keys below; the first key holding a value wins. Dotted keys
reach into nested objects ("fine.fine_amount").
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping

from bookflow.fines import resolve_amount
from bookflow.models import (
    BorrowRecord,
    DeliveryAssignment,
    FineRecord,
    FineSources,
    ReturnRecord,
    StatusHistoryEntry,
)
from bookflow.observe import Observer, notify
from bookflow.status import Domain, FineStatus, normalize_fine_status
from bookflow.temporal import utcnow
from bookflow.tracker import replay

BORROW_FIELDS = {
    "id": ("id", "borrow_request_id", "borrowing_id"),
    "book_id": ("book_id", "bookId", "book"),
    "customer_id": ("customer_id", "customerId", "user_id", "userId", "customer"),
    "duration_days": ("borrow_period_days", "duration_days", "durationDays"),
    "requested_at": ("request_date", "requested_at", "created_at", "createdAt"),
    "approved_at": ("approved_date", "approval_date", "approved_at"),
    "due_at": ("expected_return_date", "due_date", "dueDate"),
    "returned_at": ("actual_return_date", "return_date", "final_return_date"),
    "status": ("status",),
    "secondary_status": ("borrow_status",),
    "unified_status": ("delivery_request_status",),
    "delivery": ("delivery_request", "delivery_assignment"),
    "fine_id": ("fine.id",),
    "fine_nested_amount": ("fine.fine_amount", "fine.amount"),
    "fine_owner_amount": ("fine_amount",),
    "penalty_amount": ("penalty_amount",),
    "fine_status": ("fine_status", "fine.payment_status", "fine.fine_status"),
    "payment_method": ("payment_method", "fine.payment_method"),
    "days_late": ("fine.days_late", "days_overdue", "days_late"),
    "fine_paid_at": ("fine.paid_at", "fine.paid_date", "fine_paid_at"),
}

RETURN_FIELDS = {
    "id": ("id",),
    "borrow_record_id": ("borrowing_id", "borrowing", "borrow_request", "borrow_request_id"),
    "borrow": ("borrowing", "borrow_request"),
    "status": ("status",),
    "unified_status": ("delivery_request_status", "delivery_request.status"),
    "fine_nested_amount": ("fine.fine_amount", "fine.amount"),
    "fine_owner_amount": ("borrowing.fine_amount", "borrow_request.fine_amount"),
    "fine_envelope_amount": ("fine_amount",),
    "penalty_amount": ("penalty_amount",),
    "overdue_days": ("overdue_days", "days_overdue"),
    "has_penalty": ("has_penalty",),
    "due_at": (
        "due_date",
        "expected_return_date",
        "borrowing.expected_return_date",
        "borrowing.due_date",
    ),
    "requested_at": ("created_at", "requested_at", "createdAt"),
    "accepted_at": ("accepted_at",),
    "picked_up_at": ("picked_up_at",),
    "completed_at": ("completed_at",),
    "fine_id": ("fine.id", "fine_invoice_id"),
    "fine_days_late": ("fine.days_late",),
    "fine_payment_method": ("fine.payment_method", "payment_method"),
    "fine_payment_status": ("fine.payment_status", "fine.fine_status", "fine_status"),
    "fine_paid_at": ("fine.paid_at", "fine.paid_date"),
}

DELIVERY_FIELDS = {
    "id": ("id",),
    "status": ("status", "delivery_status"),
    "delivery_type": ("delivery_type", "deliveryType"),
    "order_id": ("order_id", "orderId", "order"),
    "agent_id": ("delivery_manager_id", "deliveryManagerId", "delivery_manager", "delivery_person_id"),
    "scheduled_at": ("scheduled_date", "scheduledDate"),
    "delivered_at": ("delivered_date", "deliveredDate", "completed_at"),
    "latitude": ("latitude", "current_latitude"),
    "longitude": ("longitude", "current_longitude"),
    "last_latitude": ("last_latitude", "lastLatitude"),
    "last_longitude": ("last_longitude", "lastLongitude"),
    "location_updated_at": ("location_updated_at", "locationUpdatedAt"),
    "tracking_number": ("tracking_number", "trackingNumber"),
    "failure_reason": ("failure_reason", "failureReason", "rejection_reason"),
    "retry_count": ("retry_count", "retryCount"),
    "eta": ("eta", "estimated_arrival", "estimatedArrival"),
    "status_history": ("status_history", "statusHistory"),
}

FINE_FIELDS = {
    "id": ("id", "fine.id"),
    "owner_id": ("borrow_request_id", "borrowRequestId", "borrowing_id", "borrowing", "return_request_id"),
    "nested_amount": ("fine.fine_amount", "fine.amount"),
    "owner_amount": ("borrowing.fine_amount", "borrow_request.fine_amount"),
    "envelope_amount": ("fine_amount", "amount"),
    "penalty_amount": ("penalty_amount",),
    "status": ("fine_status", "payment_status", "status"),
    "payment_method": ("payment_method", "paymentMethod"),
    "days_late": ("days_late", "overdue_days"),
    "created_at": ("created_at", "createdAt"),
    "paid_at": ("paid_at", "paidAt", "paid_date", "paidDate"),
}

HISTORY_FIELDS = {
    "status": ("status",),
    "timestamp": ("date", "timestamp", "created_at", "changed_at"),
    "description": ("description", "notes", "note"),
}

DATE_FORMATS = [
    "%m/%d/%Y",  # 02/15/2026
    "%m-%d-%Y",  # 02-15-2026
    "%Y-%m-%d %H:%M:%S",  # 2026-02-15 14:30:00
    "%B %d, %Y",  # February 15, 2026
    "%b %d, %Y",  # Feb 15, 2026
]


def lookup(payload: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted path through nested mappings; None if any step is missing."""
    value: Any = payload
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def resolve(payload: Mapping[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    """Return the value of the first key that is present and not None."""
    for key in keys:
        value = lookup(payload, key)
        if value is not None:
            return value
    return default


def parse_date(value, observer: Observer | None = None) -> datetime | None:
    """Parse the date formats the backend has used; naive results are UTC."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            notify(observer, "malformed_date", raw=str(value))
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_float(value, observer: Observer | None = None) -> float | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        notify(observer, "malformed_number", raw=str(value))
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_int(value, default: int | None = 0, observer: Observer | None = None) -> int | None:
    number = parse_float(value, observer)
    if number is None:
        return default
    return int(number)


def parse_bool(value) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


def parse_id(value) -> str | None:
    """Ids arrive as ints, strings or whole nested objects."""
    if isinstance(value, Mapping):
        value = value.get("id")
    if value is None or value == "":
        return None
    return str(value)


def _text(value) -> str | None:
    if value is None:
        return None
    return str(value)


def _mapping(value) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def assemble_history(entries, observer: Observer | None = None) -> list[StatusHistoryEntry]:
    """Parse status history entries, skipping ones without status or timestamp."""
    history = []
    if not isinstance(entries, list):
        return history
    for raw in entries:
        raw = _mapping(raw)
        status = resolve(raw, HISTORY_FIELDS["status"])
        timestamp = parse_date(resolve(raw, HISTORY_FIELDS["timestamp"]), observer)
        if status is None or timestamp is None:
            notify(observer, "malformed_history_entry", entry=dict(raw))
            continue
        history.append(
            StatusHistoryEntry(
                status=str(status),
                timestamp=timestamp,
                description=str(resolve(raw, HISTORY_FIELDS["description"], "")),
            )
        )
    return history


def assemble_delivery(payload, observer: Observer | None = None) -> DeliveryAssignment:
    """Build a DeliveryAssignment; counters are recomputed from its history."""
    payload = _mapping(payload)
    f = DELIVERY_FIELDS

    reported_retries = max(0, parse_int(resolve(payload, f["retry_count"]), 0, observer))
    reported_delivered = parse_date(resolve(payload, f["delivered_at"]), observer)
    reported_failure = _text(resolve(payload, f["failure_reason"]))

    base = DeliveryAssignment(
        id=parse_id(resolve(payload, f["id"])) or "",
        delivery_type=_text(resolve(payload, f["delivery_type"])),
        order_id=parse_id(resolve(payload, f["order_id"])),
        assigned_agent_id=parse_id(resolve(payload, f["agent_id"])),
        scheduled_at=parse_date(resolve(payload, f["scheduled_at"]), observer),
        latitude=parse_float(resolve(payload, f["latitude"]), observer),
        longitude=parse_float(resolve(payload, f["longitude"]), observer),
        last_known_latitude=parse_float(resolve(payload, f["last_latitude"]), observer),
        last_known_longitude=parse_float(resolve(payload, f["last_longitude"]), observer),
        location_updated_at=parse_date(resolve(payload, f["location_updated_at"]), observer),
        tracking_number=_text(resolve(payload, f["tracking_number"])),
        eta=parse_date(resolve(payload, f["eta"]), observer),
    )
    history = assemble_history(resolve(payload, f["status_history"]), observer)
    replayed = replay(history, base, observer)

    status = _text(resolve(payload, f["status"]))
    return replayed.model_copy(
        update={
            "raw_status": status if status is not None else replayed.raw_status,
            "retry_count": max(reported_retries, replayed.retry_count),
            "delivered_at": reported_delivered or replayed.delivered_at,
            "failure_reason": reported_failure or replayed.failure_reason,
        }
    )


def assemble_borrow(
    payload,
    observer: Observer | None = None,
    now: datetime | None = None,
) -> BorrowRecord:
    payload = _mapping(payload)
    f = BORROW_FIELDS

    record_id = parse_id(resolve(payload, f["id"])) or ""
    requested_at = parse_date(resolve(payload, f["requested_at"]), observer)
    if requested_at is None:
        notify(observer, "missing_request_date", record_id=record_id)
        requested_at = now or utcnow()
    duration_days = max(0, parse_int(resolve(payload, f["duration_days"]), 0, observer))
    approved_at = parse_date(resolve(payload, f["approved_at"]), observer)
    due_at = parse_date(resolve(payload, f["due_at"]), observer)

    if due_at is not None and approved_at is None:
        notify(observer, "due_without_approval", record_id=record_id)
    elif due_at is None and approved_at is not None and duration_days > 0:
        due_at = requested_at + timedelta(days=duration_days)

    delivery_payload = resolve(payload, f["delivery"])
    delivery = None
    if isinstance(delivery_payload, Mapping):
        delivery = assemble_delivery(delivery_payload, observer)

    days_late = parse_int(resolve(payload, f["days_late"]), None, observer)
    return BorrowRecord(
        id=record_id,
        book_id=parse_id(resolve(payload, f["book_id"])),
        customer_id=parse_id(resolve(payload, f["customer_id"])),
        duration_days=duration_days,
        requested_at=requested_at,
        approved_at=approved_at,
        due_at=due_at,
        returned_at=parse_date(resolve(payload, f["returned_at"]), observer),
        raw_status=_text(resolve(payload, f["status"])),
        raw_secondary_status=_text(resolve(payload, f["secondary_status"])),
        unified_delivery_status=_text(resolve(payload, f["unified_status"])),
        delivery=delivery,
        fine_sources=FineSources(
            nested=resolve(payload, f["fine_nested_amount"]),
            owner=resolve(payload, f["fine_owner_amount"]),
            penalty=resolve(payload, f["penalty_amount"]),
        ),
        fine_id=parse_id(resolve(payload, f["fine_id"])),
        fine_payment_status=_text(resolve(payload, f["fine_status"])),
        payment_method=_text(resolve(payload, f["payment_method"])),
        days_late=max(0, days_late) if days_late is not None else None,
        fine_paid_at=parse_date(resolve(payload, f["fine_paid_at"]), observer),
    )


def assemble_return(
    payload,
    observer: Observer | None = None,
    now: datetime | None = None,
) -> ReturnRecord:
    payload = _mapping(payload)
    f = RETURN_FIELDS

    record_id = parse_id(resolve(payload, f["id"])) or ""
    requested_at = parse_date(resolve(payload, f["requested_at"]), observer)
    if requested_at is None:
        notify(observer, "missing_request_date", record_id=record_id)
        requested_at = now or utcnow()

    borrow_payload = resolve(payload, f["borrow"])
    borrow = None
    if isinstance(borrow_payload, Mapping):
        borrow = assemble_borrow(borrow_payload, observer, now=now)

    sources = FineSources(
        nested=resolve(payload, f["fine_nested_amount"]),
        owner=resolve(payload, f["fine_owner_amount"]),
        envelope=resolve(payload, f["fine_envelope_amount"]),
        penalty=resolve(payload, f["penalty_amount"]),
    )
    has_penalty = parse_bool(resolve(payload, f["has_penalty"]))
    if has_penalty is None:
        has_penalty = resolve_amount(sources) > 0

    overdue_days = parse_int(resolve(payload, f["overdue_days"]), None, observer)
    fine_days_late = parse_int(resolve(payload, f["fine_days_late"]), None, observer)
    return ReturnRecord(
        id=record_id,
        borrow_record_id=parse_id(resolve(payload, f["borrow_record_id"])),
        borrow=borrow,
        raw_status=_text(resolve(payload, f["status"])),
        unified_delivery_status=_text(resolve(payload, f["unified_status"])),
        fine_sources=sources,
        overdue_days=max(0, overdue_days) if overdue_days is not None else None,
        has_penalty=has_penalty,
        due_at=parse_date(resolve(payload, f["due_at"]), observer),
        requested_at=requested_at,
        accepted_at=parse_date(resolve(payload, f["accepted_at"]), observer),
        picked_up_at=parse_date(resolve(payload, f["picked_up_at"]), observer),
        completed_at=parse_date(resolve(payload, f["completed_at"]), observer),
        fine_id=parse_id(resolve(payload, f["fine_id"])),
        fine_days_late=max(0, fine_days_late) if fine_days_late is not None else None,
        fine_payment_method=_text(resolve(payload, f["fine_payment_method"])),
        fine_payment_status=_text(resolve(payload, f["fine_payment_status"])),
        fine_paid_at=parse_date(resolve(payload, f["fine_paid_at"]), observer),
    )


def assemble_fine(
    payload,
    observer: Observer | None = None,
    now: datetime | None = None,
) -> FineRecord:
    """Build a FineRecord from a standalone fine listing entry."""
    payload = _mapping(payload)
    f = FINE_FIELDS

    record_id = parse_id(resolve(payload, f["id"])) or ""
    sources = FineSources(
        nested=resolve(payload, f["nested_amount"]),
        owner=resolve(payload, f["owner_amount"]),
        envelope=resolve(payload, f["envelope_amount"]),
        penalty=resolve(payload, f["penalty_amount"]),
    )
    method = _text(resolve(payload, f["payment_method"]))
    status = normalize_fine_status(resolve(payload, f["status"]), method)
    days_late = parse_int(resolve(payload, f["days_late"]), 0, observer)
    created_at = parse_date(resolve(payload, f["created_at"]), observer) or now or utcnow()
    paid_at = parse_date(resolve(payload, f["paid_at"]), observer)
    return FineRecord(
        id=record_id,
        owner_record_id=parse_id(resolve(payload, f["owner_id"])) or "",
        amount=max(0.0, resolve_amount(sources, observer)),
        status=status,
        payment_method=method,
        days_late=max(0, days_late),
        created_at=created_at,
        paid_at=paid_at if status == FineStatus.PAID else None,
    )


def assemble(payload, kind, observer: Observer | None = None, now: datetime | None = None):
    """Build the record for ``kind`` ("borrow", "return" or "delivery")."""
    kind = Domain(kind)
    if kind == Domain.BORROW:
        return assemble_borrow(payload, observer, now=now)
    if kind == Domain.RETURN:
        return assemble_return(payload, observer, now=now)
    return assemble_delivery(payload, observer)
