"""Pick the one canonical status of a record that carries several."""

from pydantic import BaseModel, ConfigDict

from bookflow.models import BorrowRecord, DeliveryAssignment, ReturnRecord
from bookflow.observe import Observer, notify
from bookflow.status import CanonicalStatus, Domain, normalize


class ReconciledStatus(BaseModel):
    """Primary and secondary status after precedence has been applied."""

    model_config = ConfigDict(frozen=True)

    primary: CanonicalStatus
    secondary: CanonicalStatus
    source: str  # "delivery", "primary" or "default"


def record_domain(record) -> Domain:
    """Return the status domain a record belongs to."""
    if isinstance(record, BorrowRecord):
        return Domain.BORROW
    if isinstance(record, ReturnRecord):
        return Domain.RETURN
    return Domain.DELIVERY


def unified_status(record) -> str | None:
    """The delivery subsystem's status for a record, if it has a delivery leg."""
    if isinstance(record, DeliveryAssignment):
        return record.raw_status
    if record.unified_delivery_status and record.unified_delivery_status.strip():
        return record.unified_delivery_status
    delivery = getattr(record, "delivery", None)
    if delivery is not None and delivery.raw_status and delivery.raw_status.strip():
        return delivery.raw_status
    return None


def reconcile(record, observer: Observer | None = None) -> ReconciledStatus:
    """Resolve a record's canonical status.

    Once a delivery leg exists, its status is authoritative: it replaces both
    the record's own status and any legacy secondary status. Without one the
    record's own status is used, and without that the domain's ``pending``.
    """
    domain = record_domain(record)

    unified = normalize(Domain.DELIVERY, unified_status(record), observer)
    if unified is not None:
        return ReconciledStatus(primary=unified, secondary=unified, source="delivery")

    primary = normalize(domain, record.raw_status, observer)
    if primary is not None:
        secondary = normalize(domain, getattr(record, "raw_secondary_status", None), observer)
        return ReconciledStatus(primary=primary, secondary=secondary or primary, source="primary")

    notify(observer, "missing_status", domain=domain.value, record_id=record.id)
    default = CanonicalStatus.default(domain)
    return ReconciledStatus(primary=default, secondary=default, source="default")


def canonical_status(record, observer: Observer | None = None) -> CanonicalStatus:
    """The single status the record should be shown and branched on."""
    return reconcile(record, observer).primary
