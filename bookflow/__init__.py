"""bookflow - status reconciliation and derived state for bookstore borrowing, returns and delivery."""

from bookflow.fines import fine_state, parse_amount
from bookflow.models import BorrowRecord, DeliveryAssignment, FineRecord, ReturnRecord
from bookflow.parser import assemble
from bookflow.reconcile import reconcile
from bookflow.status import CanonicalStatus
from bookflow.temporal import derive_temporal
from bookflow.tracker import append_status_change, can_track_location
from bookflow.views import derive_view

__all__ = [
    "BorrowRecord",
    "CanonicalStatus",
    "DeliveryAssignment",
    "FineRecord",
    "ReturnRecord",
    "append_status_change",
    "assemble",
    "can_track_location",
    "derive_temporal",
    "derive_view",
    "fine_state",
    "parse_amount",
    "reconcile",
]
__version__ = "0.1.0"
