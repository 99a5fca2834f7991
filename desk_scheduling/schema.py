"""Pydantic schemas for desk reservations, availability and admin flows."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from desk_scheduling.time_window import civil_day


class ReservationStatus(str, Enum):
    BOOKED = "BOOKED"
    CHECKED_IN = "CHECKED_IN"
    RELEASED = "RELEASED"


class UserRole(str, Enum):
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"


def _validate_hours(whole_day: bool, start_hour: Optional[int], end_hour: Optional[int]) -> None:
    has_start = start_hour is not None
    has_end = end_hour is not None

    if whole_day:
        if has_start or has_end:
            raise ValueError("Start and end hours must be omitted when booking for the whole day.")
        return

    if not has_start or not has_end:
        raise ValueError("Select both start and end hours when the booking is not for the whole day.")
    if start_hour >= end_hour:
        raise ValueError("End hour must be greater than start hour.")


class BookingInterval(BaseModel):
    whole_day: bool = True
    start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    end_hour: Optional[int] = Field(default=None, ge=1, le=24)

    @model_validator(mode="after")
    def validate_hours(self):
        _validate_hours(self.whole_day, self.start_hour, self.end_hour)
        return self


class BookDeskRequest(BookingInterval):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1)
    desk_id: str = Field(min_length=1)
    day: date


class AdminBookDeskRequest(BookingInterval):
    model_config = ConfigDict(str_strip_whitespace=True)

    actor_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    desk_id: str = Field(min_length=1)
    day: date


class ReservationUpdate(BaseModel):
    """Partial admin edit; omitted fields keep the stored values."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: Optional[str] = None
    day: Optional[date] = None
    desk_id: Optional[str] = None
    whole_day: Optional[bool] = None
    start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    end_hour: Optional[int] = Field(default=None, ge=1, le=24)

    @model_validator(mode="after")
    def validate_hours(self):
        if self.whole_day is not None:
            _validate_hours(self.whole_day, self.start_hour, self.end_hour)
        return self


class AdminReservationUpdateRequest(ReservationUpdate):
    actor_id: str = Field(min_length=1)


class ReservationActorRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(min_length=1)


class ReservationItem(BaseModel):
    id: str
    desk_id: str
    user_id: str
    day: date
    start_time: datetime
    end_time: datetime
    whole_day: bool
    timezone: str
    status: ReservationStatus
    check_in_deadline: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    auto_released_at: Optional[datetime] = None

    @classmethod
    def from_schedule(cls, schedule) -> "ReservationItem":
        return cls(
            id=schedule.id,
            desk_id=schedule.desk_id,
            user_id=schedule.user_id,
            day=civil_day(schedule.date, schedule.timezone),
            start_time=schedule.start_time,
            end_time=schedule.end_time,
            whole_day=schedule.whole_day,
            timezone=schedule.timezone,
            status=schedule.status,
            check_in_deadline=schedule.check_in_deadline,
            checked_in_at=schedule.checked_in_at,
            auto_released_at=schedule.auto_released_at,
        )


class ReservationListResponse(BaseModel):
    reservations: list[ReservationItem]


class FreePeriodItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime


class UsedPeriodItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    reservation_id: str
    user_id: str
    user_name: Optional[str] = None
    user_image: Optional[str] = None
    whole_day: bool
    status: ReservationStatus
    check_in_deadline: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None


class DeskAvailabilityItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    desk_id: str
    public_desk_id: str
    label: str
    floor_id: Optional[str] = None
    floor_name: Optional[str] = None
    whole_day_free: bool
    fully_booked: bool
    used_periods: list[UsedPeriodItem]
    free_periods: list[FreePeriodItem]


class DayAvailabilityResponse(BaseModel):
    office_id: str
    day: date
    timezone: str
    day_start: datetime
    day_end: datetime
    desks: list[DeskAvailabilityItem]


class ReleaseExpiredResponse(BaseModel):
    released: int
