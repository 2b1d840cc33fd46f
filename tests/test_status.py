import importlib

import pytest

from bookflow import fines, temporal, tracker
from bookflow import status as status_module

reconcile = importlib.import_module("bookflow.reconcile")

from bookflow.status import (
    CanonicalStatus,
    DeliveryStatus,
    Domain,
    FineStatus,
    ReturnStatus,
    fold_status,
    normalize,
    normalize_fine_status,
)


@pytest.mark.parametrize("raw", ["in progress", "IN_PROGRESS", "in_return", "Returning to Library", "in-progress"])
def test_return_aliases_collapse_to_in_progress(raw):
    status = normalize(Domain.RETURN, raw)
    assert status.value == ReturnStatus.IN_PROGRESS
    assert not status.is_unknown


def test_pending_assignment_is_pending_for_delivery():
    assert normalize(Domain.DELIVERY, "pending_assignment").value == DeliveryStatus.PENDING


def test_completed_delivery_is_delivered():
    status = normalize(Domain.DELIVERY, "Completed")
    assert status.value == DeliveryStatus.DELIVERED
    assert status.is_terminal


def test_unknown_keeps_raw_text(observer):
    status = normalize(Domain.BORROW, "  Lost In Space ", observer)
    assert status.is_unknown
    assert status.raw == "Lost In Space"
    assert status.label == "Lost In Space"
    assert observer.names() == ["unknown_status"]


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_input_has_no_status(raw):
    assert normalize(Domain.DELIVERY, raw) is None


def test_fold_status():
    assert fold_status(" In  Delivery ") == "in_delivery"
    assert fold_status("return-approved") == "return_approved"


def test_labels():
    assert normalize(Domain.DELIVERY, "in_delivery").label == "In Delivery"
    assert normalize(Domain.BORROW, "pending").label == "Under Review"
    assert normalize(Domain.RETURN, "late_return").label == "Late Return (with Fine)"
    assert normalize(Domain.BORROW, "out_for_delivery").label == "Out For Delivery"
    assert CanonicalStatus(domain=Domain.DELIVERY, value="unknown").label == "Unknown"


def test_failure_class():
    assert normalize(Domain.DELIVERY, "failed").is_failure
    assert normalize(Domain.DELIVERY, "rejected").is_failure
    assert not normalize(Domain.DELIVERY, "in_delivery").is_failure


def test_default_is_pending():
    status = CanonicalStatus.default(Domain.RETURN)
    assert status.value == "pending"
    assert str(status) == "pending"


@pytest.mark.parametrize(
    "raw, method, expected",
    [
        (None, None, FineStatus.UNPAID),
        ("PAID", None, FineStatus.PAID),
        ("completed", "card", FineStatus.PAID),
        ("pending", "cash", FineStatus.PENDING_CASH_PAYMENT),
        ("pending", "mastercard", FineStatus.UNPAID),
        ("pending_cash_payment", None, FineStatus.PENDING_CASH_PAYMENT),
        ("failed", "card", FineStatus.FAILED),
        ("something odd", None, FineStatus.UNPAID),
    ],
)
def test_normalize_fine_status(raw, method, expected):
    assert normalize_fine_status(raw, method) == expected


@pytest.mark.parametrize(
    "func",
    [
        status_module.is_cash,
        reconcile.record_domain,
        reconcile.canonical_status,
        fines.select_cash_payment,
        fines.confirm_cash_payment,
        fines.fine_summary,
        temporal.utcnow,
        tracker.has_coordinates,
        tracker.tracked_location,
    ],
)
def test_public_helpers_have_docstrings(func):
    assert func.__doc__ and func.__doc__.strip()
