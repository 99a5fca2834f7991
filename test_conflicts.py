from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from desk_scheduling.conflicts import LinearScanDetector, has_desk_conflict, has_user_conflict, overlaps

DAY_START = datetime(2030, 3, 15, tzinfo=timezone.utc)


def at(hour: int) -> datetime:
    return DAY_START + timedelta(hours=hour)


def reservation(id, desk_id, user_id, start_hour, end_hour, status="BOOKED"):
    return SimpleNamespace(
        id=id,
        desk_id=desk_id,
        user_id=user_id,
        start_time=at(start_hour) if start_hour is not None else None,
        end_time=at(end_hour) if end_hour is not None else None,
        status=status,
    )


def test_overlaps_is_half_open():
    assert overlaps(at(9), at(12), at(11), at(13))
    assert overlaps(at(9), at(12), at(10), at(11))
    assert not overlaps(at(9), at(12), at(12), at(13))
    assert not overlaps(at(12), at(13), at(9), at(12))


def test_desk_conflict_only_for_same_desk():
    existing = [reservation("r1", "desk-1", "alice", 9, 12)]

    assert has_desk_conflict("desk-1", at(11), at(13), existing)
    assert not has_desk_conflict("desk-2", at(11), at(13), existing)
    assert not has_desk_conflict("desk-1", at(12), at(14), existing)


def test_user_conflict_spans_desks():
    existing = [reservation("r1", "desk-1", "alice", 9, 12)]

    assert has_user_conflict("alice", at(10), at(11), existing)
    assert not has_user_conflict("bob", at(10), at(11), existing)


def test_released_and_malformed_reservations_are_ignored():
    existing = [
        reservation("r1", "desk-1", "alice", 9, 12, status="RELEASED"),
        reservation("r2", "desk-1", "alice", 9, None),
    ]

    assert not has_desk_conflict("desk-1", at(9), at(12), existing)
    assert not has_user_conflict("alice", at(9), at(12), existing)


def test_checked_in_reservation_still_blocks():
    existing = [reservation("r1", "desk-1", "alice", 9, 12, status="CHECKED_IN")]
    assert has_desk_conflict("desk-1", at(10), at(11), existing)


def test_exclude_id_skips_the_edited_reservation():
    existing = [
        reservation("r1", "desk-1", "alice", 9, 12),
        reservation("r2", "desk-1", "bob", 14, 16),
    ]
    detector = LinearScanDetector(existing)

    assert not detector.has_desk_conflict("desk-1", at(9), at(13), exclude_id="r1")
    assert detector.has_desk_conflict("desk-1", at(9), at(15), exclude_id="r1")
    assert not detector.has_user_conflict("alice", at(8), at(10), exclude_id="r1")
