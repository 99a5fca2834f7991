"""Overlap checks for candidate reservations against a day's active ones."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from desk_scheduling.schema import ReservationStatus


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def _is_candidate(reservation, exclude_id) -> bool:
    if exclude_id is not None and reservation.id == exclude_id:
        return False
    if reservation.status == ReservationStatus.RELEASED.value:
        return False
    return reservation.start_time is not None and reservation.end_time is not None


class ConflictDetector(Protocol):
    def has_user_conflict(
        self,
        user_id: str,
        start_time: datetime,
        end_time: datetime,
        *,
        exclude_id: str | None = None,
    ) -> bool: ...

    def has_desk_conflict(
        self,
        desk_id: str,
        start_time: datetime,
        end_time: datetime,
        *,
        exclude_id: str | None = None,
    ) -> bool: ...


class LinearScanDetector:
    """Scans the already-loaded reservations of one office and day."""

    def __init__(self, reservations: Iterable):
        self.reservations = list(reservations)

    def has_user_conflict(self, user_id, start_time, end_time, *, exclude_id=None) -> bool:
        return any(
            existing.user_id == user_id and overlaps(existing.start_time, existing.end_time, start_time, end_time)
            for existing in self.reservations
            if _is_candidate(existing, exclude_id)
        )

    def has_desk_conflict(self, desk_id, start_time, end_time, *, exclude_id=None) -> bool:
        return any(
            existing.desk_id == desk_id and overlaps(existing.start_time, existing.end_time, start_time, end_time)
            for existing in self.reservations
            if _is_candidate(existing, exclude_id)
        )


def has_user_conflict(
    user_id: str,
    start_time: datetime,
    end_time: datetime,
    reservations: Iterable,
    exclude_id: str | None = None,
) -> bool:
    return LinearScanDetector(reservations).has_user_conflict(user_id, start_time, end_time, exclude_id=exclude_id)


def has_desk_conflict(
    desk_id: str,
    start_time: datetime,
    end_time: datetime,
    reservations: Iterable,
    exclude_id: str | None = None,
) -> bool:
    return LinearScanDetector(reservations).has_desk_conflict(desk_id, start_time, end_time, exclude_id=exclude_id)
