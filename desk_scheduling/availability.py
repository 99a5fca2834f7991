"""Per-desk free and used periods for one office day."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from desk_scheduling.conflicts import overlaps
from desk_scheduling.schema import ReservationStatus

_NUMERIC_DESK_ID = re.compile(r"^\d+$")


@dataclass(frozen=True)
class FreePeriod:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class UsedPeriod:
    start: datetime
    end: datetime
    reservation_id: str
    user_id: str
    user_name: str | None
    user_image: str | None
    whole_day: bool
    status: str
    check_in_deadline: datetime | None
    checked_in_at: datetime | None


@dataclass
class DeskAvailability:
    desk_id: str
    public_desk_id: str
    label: str
    floor_id: str | None = None
    floor_name: str | None = None
    used_periods: list[UsedPeriod] = field(default_factory=list)
    free_periods: list[FreePeriod] = field(default_factory=list)

    @property
    def whole_day_free(self) -> bool:
        return not self.used_periods

    @property
    def fully_booked(self) -> bool:
        return not self.free_periods


def format_desk_identifier(value: str) -> str:
    trimmed = value.strip()
    if _NUMERIC_DESK_ID.match(trimmed):
        return trimmed.zfill(3)
    return trimmed


def desk_label(desk) -> str:
    raw = getattr(desk, "public_desk_id", None) or getattr(desk, "name", None) or desk.id
    label = f"Desk {format_desk_identifier(str(raw))}"
    floor = getattr(desk, "floor", None)
    floor_name = getattr(floor, "name", None) if floor is not None else None
    if not floor_name:
        return label
    return f"{floor_name} · {label}"


def merge_intervals(intervals: Iterable[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(intervals):
        if end <= start:
            continue
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(
    window_start: datetime,
    window_end: datetime,
    used: Iterable[tuple[datetime, datetime]],
) -> list[tuple[datetime, datetime]]:
    clipped = [(max(start, window_start), min(end, window_end)) for start, end in used]
    free: list[tuple[datetime, datetime]] = []
    cursor = window_start
    for start, end in merge_intervals(clipped):
        if start > cursor:
            free.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def _used_period(reservation) -> UsedPeriod:
    user = getattr(reservation, "user", None)
    return UsedPeriod(
        start=reservation.start_time,
        end=reservation.end_time,
        reservation_id=reservation.id,
        user_id=reservation.user_id,
        user_name=getattr(user, "name", None),
        user_image=getattr(user, "image", None),
        whole_day=bool(reservation.whole_day),
        status=reservation.status,
        check_in_deadline=reservation.check_in_deadline,
        checked_in_at=reservation.checked_in_at,
    )


def compute_availability(
    desks: Iterable,
    reservations: Iterable,
    day_start: datetime,
    day_end: datetime,
) -> dict[str, DeskAvailability]:
    by_desk: dict[str, list] = {}
    for reservation in reservations:
        if reservation.status == ReservationStatus.RELEASED.value:
            continue
        if reservation.start_time is None or reservation.end_time is None:
            continue
        if not overlaps(reservation.start_time, reservation.end_time, day_start, day_end):
            continue
        by_desk.setdefault(reservation.desk_id, []).append(reservation)

    result: dict[str, DeskAvailability] = {}
    for desk in desks:
        occupying = sorted(by_desk.get(desk.id, []), key=lambda r: r.start_time)
        floor = getattr(desk, "floor", None)
        free = subtract_intervals(day_start, day_end, [(r.start_time, r.end_time) for r in occupying])
        result[desk.id] = DeskAvailability(
            desk_id=desk.id,
            public_desk_id=getattr(desk, "public_desk_id", None) or "",
            label=desk_label(desk),
            floor_id=getattr(desk, "floor_id", None),
            floor_name=getattr(floor, "name", None) if floor is not None else None,
            used_periods=[_used_period(r) for r in occupying],
            free_periods=[FreePeriod(start=start, end=end) for start, end in free],
        )
    return result
