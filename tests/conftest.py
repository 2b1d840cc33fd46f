from datetime import datetime, timezone

import pytest

from bookflow.observe import RecordingObserver

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def borrow_payload():
    return {
        "id": 41,
        "book": {"id": 9, "name": "Dune"},
        "customer": {"id": 3, "full_name": "Sam Lee"},
        "borrow_period_days": 14,
        "request_date": "2026-02-20T09:00:00Z",
        "approved_date": "2026-02-21T10:00:00Z",
        "expected_return_date": "2026-03-07T12:00:00Z",
        "status": "active",
        "borrow_status": "ACTIVE",
        "fine_amount": "4.50",
        "fine_status": "unpaid",
    }


@pytest.fixture
def return_payload():
    return {
        "id": 12,
        "borrowing": {
            "id": 41,
            "request_date": "2026-02-20T09:00:00Z",
            "status": "return_requested",
            "fine_amount": "2.00",
        },
        "status": "ASSIGNED",
        "delivery_request_status": "in_delivery",
        "fine_amount": 6,
        "penalty_amount": "7.25",
        "overdue_days": 3,
        "due_date": "2026-03-07T12:00:00Z",
        "created_at": "2026-03-08T08:00:00Z",
        "accepted_at": "2026-03-08T09:00:00Z",
        "fine": {
            "id": 88,
            "fine_amount": "5.00",
            "days_late": 3,
            "payment_method": "cash",
            "payment_status": "pending",
        },
    }


@pytest.fixture
def delivery_payload():
    return {
        "id": 501,
        "status": "in_delivery",
        "delivery_type": "borrow",
        "delivery_manager": {"id": 77, "name": "Rider"},
        "scheduled_date": "2026-03-11T12:00:00Z",
        "latitude": "31.95",
        "longitude": "35.91",
        "tracking_number": "TRK-501",
        "status_history": [
            {"status": "pending", "date": "2026-03-09T08:00:00Z", "description": "Created"},
            {"status": "assigned", "date": "2026-03-09T09:00:00Z", "description": "Assigned"},
            {"status": "in_delivery", "date": "2026-03-10T10:00:00Z", "description": "On the way"},
        ],
    }
