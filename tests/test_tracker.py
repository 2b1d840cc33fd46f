from datetime import datetime, timedelta, timezone

from bookflow.models import DeliveryAssignment, ReasonCode, StatusHistoryEntry
from bookflow.tracker import (
    append_status_change,
    can_track_location,
    eta_minutes,
    has_coordinates,
    replay,
    retry_assignment,
    tracked_location,
)

T0 = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def apply(assignment, statuses):
    for i, status in enumerate(statuses):
        assignment = append_status_change(assignment, status, T0 + timedelta(minutes=i))
    return assignment


def located(status):
    return DeliveryAssignment(
        id="1",
        raw_status=status,
        latitude=31.95,
        longitude=35.91,
        last_known_latitude=31.9,
        last_known_longitude=35.9,
    )


def test_retry_counts_each_entry_into_failure():
    start = DeliveryAssignment(id="1", raw_status="pending")
    result = apply(start, ["in_delivery", "failed", "in_delivery", "failed"])
    assert result.retry_count == 2


def test_repeated_failures_count_once():
    start = DeliveryAssignment(id="1")
    result = apply(start, ["pending", "failed", "failed"])
    assert result.retry_count == 1


def test_failure_reason_comes_from_failure_entry():
    start = DeliveryAssignment(id="1", raw_status="in_delivery")
    result = append_status_change(start, "failed", T0, "Customer not home")
    assert result.failure_reason == "Customer not home"


def test_history_is_append_only_and_input_untouched():
    start = DeliveryAssignment(id="1", raw_status="pending")
    result = apply(start, ["assigned", "accepted"])
    assert [e.status for e in result.status_history] == ["assigned", "accepted"]
    assert result.raw_status == "accepted"
    assert start.status_history == ()
    assert start.raw_status == "pending"


def test_out_of_order_entries_are_kept_and_flagged(observer):
    start = apply(DeliveryAssignment(id="1"), ["pending", "assigned"])
    result = append_status_change(start, "accepted", T0 - timedelta(hours=1), observer=observer)
    assert len(result.status_history) == 3
    assert result.status_history[-1].out_of_order
    assert not result.status_history[0].out_of_order
    assert observer.names() == ["out_of_order_history"]


def test_out_of_order_entries_leave_state_alone():
    start = apply(DeliveryAssignment(id="1"), ["pending", "in_delivery", "assigned"])
    result = append_status_change(start, "failed", T0 - timedelta(hours=1), "Stale failure")
    assert result.status_history[-1].out_of_order
    assert result.raw_status == "assigned"
    assert result.retry_count == 0
    assert result.failure_reason is None


def test_stale_entry_after_delivery_does_not_reopen_tracking(observer):
    delivered = append_status_change(located("in_delivery"), "delivered", T0)
    stale = append_status_change(delivered, "in_delivery", T0 - timedelta(hours=1), observer=observer)
    assert stale.status_history[-1].out_of_order
    assert stale.raw_status == "delivered"
    assert not can_track_location(stale)
    assert tracked_location(stale).latitude is None


def test_entries_after_terminal_status_are_recorded_only(observer):
    delivered = append_status_change(DeliveryAssignment(id="1", raw_status="in_delivery"), "delivered", T0)
    later = append_status_change(delivered, "failed", T0 + timedelta(hours=1), "Lost", observer)
    assert [e.status for e in later.status_history] == ["delivered", "failed"]
    assert later.raw_status == "delivered"
    assert later.retry_count == 0
    assert later.failure_reason is None
    assert later.delivered_at == T0
    assert observer.names() == ["status_after_terminal"]


def test_delivered_at_is_set_once():
    start = DeliveryAssignment(id="1", raw_status="in_delivery")
    first = append_status_change(start, "delivered", T0)
    again = append_status_change(first, "completed", T0 + timedelta(hours=2))
    assert first.delivered_at == T0
    assert again.delivered_at == T0


def test_replay_matches_incremental_appends():
    history = [
        StatusHistoryEntry(status=s, timestamp=T0 + timedelta(minutes=i))
        for i, s in enumerate(["pending", "in_delivery", "failed", "in_delivery", "failed", "in_delivery", "completed"])
    ]
    start = DeliveryAssignment(id="1")
    replayed = replay(history, start)
    incremental = apply(start, [e.status for e in history])
    assert replayed == incremental
    assert replayed.retry_count == 2
    assert replayed.delivered_at == history[-1].timestamp


def test_location_gate_follows_status():
    assert not can_track_location(located("assigned"))
    assert can_track_location(located("in_delivery"))
    assert not can_track_location(located("delivered"))


def test_location_gate_after_status_changes():
    assignment = located("assigned")
    assert not can_track_location(assignment)
    assignment = append_status_change(assignment, "in_delivery", T0)
    assert can_track_location(assignment)
    assignment = append_status_change(assignment, "delivered", T0 + timedelta(minutes=30))
    assert not can_track_location(assignment)


def test_location_needs_a_complete_pair():
    half = DeliveryAssignment(id="1", raw_status="in_delivery", latitude=1.0, last_known_longitude=2.0)
    assert not has_coordinates(half)
    assert not can_track_location(half)

    last_known = DeliveryAssignment(id="1", raw_status="in_delivery", last_known_latitude=1.0, last_known_longitude=2.0)
    assert can_track_location(last_known)
    view = tracked_location(last_known)
    assert (view.latitude, view.longitude) == (1.0, 2.0)


def test_tracked_location_prefers_live_pair():
    view = tracked_location(located("in_progress"))
    assert view.can_track
    assert (view.latitude, view.longitude) == (31.95, 35.91)
    assert tracked_location(located("accepted")).latitude is None


def test_retry_assignment():
    failed = DeliveryAssignment(id="1", raw_status="failed", retry_count=1)
    result = retry_assignment(failed, at=T0)
    assert result.applied
    assert result.record.raw_status == "pending"
    assert result.record.retry_count == 1
    assert result.record.status_history[-1].description == "Retry requested"


def test_retry_assignment_rejects_delivered_and_active():
    delivered = DeliveryAssignment(id="1", raw_status="delivered")
    result = retry_assignment(delivered, at=T0)
    assert not result.applied
    assert result.reason == ReasonCode.ALREADY_TERMINAL
    assert result.record == delivered

    active = DeliveryAssignment(id="1", raw_status="in_delivery")
    assert retry_assignment(active, at=T0).reason == ReasonCode.NOT_FAILED


def test_eta_minutes():
    assignment = DeliveryAssignment(id="1", raw_status="in_delivery", eta=T0 + timedelta(minutes=12, seconds=5))
    assert eta_minutes(assignment, T0) == 13
    assert eta_minutes(assignment, T0 + timedelta(hours=1)) == 0
    assert eta_minutes(assignment.model_copy(update={"raw_status": "delivered"}), T0) is None
    assert eta_minutes(DeliveryAssignment(id="1"), T0) is None
