"""Rule evaluation for candidate reservation intervals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from desk_scheduling.time_window import hour_to_instant


@dataclass
class RuleCheckResult:
    allowed: bool
    reason: str | None = None


class IntervalRules:
    @staticmethod
    def resolve_candidate(
        *,
        whole_day: bool,
        day_start: datetime,
        day_end: datetime,
        start_hour: int | None = None,
        end_hour: int | None = None,
    ) -> tuple[datetime, datetime]:
        if whole_day:
            return day_start, day_end
        if start_hour is None or end_hour is None:
            raise ValueError("Select both start and end hours when the booking is not for the whole day.")
        return hour_to_instant(day_start, start_hour), hour_to_instant(day_start, end_hour)

    @staticmethod
    def check_interval_order(start_time: datetime, end_time: datetime) -> RuleCheckResult:
        if end_time <= start_time:
            return RuleCheckResult(allowed=False, reason="Invalid booking interval.")
        return RuleCheckResult(allowed=True)

    @staticmethod
    def check_within_day(end_time: datetime, day_end: datetime) -> RuleCheckResult:
        if end_time > day_end:
            return RuleCheckResult(allowed=False, reason="Bookings must end within the same day.")
        return RuleCheckResult(allowed=True)
