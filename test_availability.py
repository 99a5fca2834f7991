from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from desk_scheduling.availability import (
    compute_availability,
    desk_label,
    format_desk_identifier,
    merge_intervals,
    subtract_intervals,
)

DAY_START = datetime(2030, 3, 15, tzinfo=timezone.utc)
DAY_END = DAY_START + timedelta(hours=24)


def at(hour: float) -> datetime:
    return DAY_START + timedelta(hours=hour)


def desk(id, public_desk_id, floor_name="Ground"):
    floor = SimpleNamespace(id=f"floor-{floor_name}", name=floor_name) if floor_name else None
    return SimpleNamespace(
        id=id,
        public_desk_id=public_desk_id,
        name=None,
        floor_id=floor.id if floor else None,
        floor=floor,
    )


def reservation(id, desk_id, start, end, status="BOOKED", whole_day=False, user=None):
    return SimpleNamespace(
        id=id,
        desk_id=desk_id,
        user_id=user.id if user else "user-x",
        user=user,
        start_time=start,
        end_time=end,
        whole_day=whole_day,
        status=status,
        check_in_deadline=start + timedelta(minutes=15),
        checked_in_at=None,
    )


def assert_exact_cover(result):
    pieces = [(p.start, p.end) for p in result.free_periods]
    pieces += [(max(p.start, DAY_START), min(p.end, DAY_END)) for p in result.used_periods]
    assert merge_intervals(pieces) == [(DAY_START, DAY_END)]
    for free in result.free_periods:
        assert free.end > free.start
        for used in result.used_periods:
            assert not (free.start < used.end and used.start < free.end)


def test_desk_without_reservations_is_free_all_day():
    result = compute_availability([desk("d1", "1")], [], DAY_START, DAY_END)["d1"]

    assert result.whole_day_free
    assert not result.fully_booked
    assert [(p.start, p.end) for p in result.free_periods] == [(DAY_START, DAY_END)]
    assert result.used_periods == []


def test_free_periods_complement_sorted_used_periods():
    alice = SimpleNamespace(id="alice", name="Alice", image="a.png")
    reservations = [
        reservation("late", "d1", at(14), at(16)),
        reservation("early", "d1", at(9), at(12), user=alice),
    ]

    result = compute_availability([desk("d1", "1")], reservations, DAY_START, DAY_END)["d1"]

    assert not result.whole_day_free
    assert [p.reservation_id for p in result.used_periods] == ["early", "late"]
    assert result.used_periods[0].user_name == "Alice"
    assert result.used_periods[0].user_image == "a.png"
    assert result.used_periods[1].user_name is None
    assert [(p.start, p.end) for p in result.free_periods] == [
        (DAY_START, at(9)),
        (at(12), at(14)),
        (at(16), DAY_END),
    ]
    assert_exact_cover(result)


def test_overlapping_and_touching_used_periods_are_merged():
    reservations = [
        reservation("a", "d1", at(9), at(12)),
        reservation("b", "d1", at(11), at(13)),
        reservation("c", "d1", at(13), at(15)),
    ]

    result = compute_availability([desk("d1", "1")], reservations, DAY_START, DAY_END)["d1"]

    assert [(p.start, p.end) for p in result.free_periods] == [(DAY_START, at(9)), (at(15), DAY_END)]
    assert_exact_cover(result)


def test_used_periods_outside_window_are_clipped():
    reservations = [
        reservation("carry", "d1", at(-3), at(2)),
        reservation("spill", "d1", at(22), at(26)),
    ]

    result = compute_availability([desk("d1", "1")], reservations, DAY_START, DAY_END)["d1"]

    assert [(p.start, p.end) for p in result.free_periods] == [(at(2), at(22))]
    assert_exact_cover(result)


def test_whole_day_reservation_leaves_no_free_period():
    reservations = [reservation("all", "d1", DAY_START, DAY_END, whole_day=True)]

    result = compute_availability([desk("d1", "1")], reservations, DAY_START, DAY_END)["d1"]

    assert result.fully_booked
    assert result.free_periods == []
    assert result.used_periods[0].whole_day is True


def test_released_and_other_day_reservations_are_ignored():
    reservations = [
        reservation("released", "d1", at(9), at(12), status="RELEASED"),
        reservation("tomorrow", "d1", at(30), at(32)),
        reservation("other-desk", "d2", at(9), at(12)),
        reservation("unknown-desk", "ghost", at(9), at(12)),
    ]

    result = compute_availability([desk("d1", "1"), desk("d2", "2")], reservations, DAY_START, DAY_END)

    assert set(result) == {"d1", "d2"}
    assert result["d1"].whole_day_free
    assert not result["d2"].whole_day_free


def test_desk_without_floor_gets_best_effort_label():
    result = compute_availability([desk("d1", "7", floor_name=None)], [], DAY_START, DAY_END)["d1"]

    assert result.label == "Desk 007"
    assert result.floor_name is None
    assert result.floor_id is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("7", "007"), (" 42 ", "042"), ("1234", "1234"), ("A-3", "A-3")],
)
def test_format_desk_identifier(raw, expected):
    assert format_desk_identifier(raw) == expected


def test_desk_label_includes_floor_name():
    assert desk_label(desk("d1", "5", floor_name="First")) == "First · Desk 005"


def test_subtract_intervals_discards_zero_length_gaps():
    assert subtract_intervals(at(0), at(24), [(at(0), at(9)), (at(9), at(24))]) == []
    assert subtract_intervals(at(0), at(24), [(at(5), at(5))]) == [(at(0), at(24))]
