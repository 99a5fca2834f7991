"""Check-in deadlines, check-in transitions and no-show release.

A reservation starts ``BOOKED`` and ends either ``CHECKED_IN`` (the owner
showed up before the deadline) or ``RELEASED`` (the sweep found the deadline
passed). Neither terminal state has outgoing transitions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from desk_scheduling.errors import BadRequestError, ForbiddenError, NotFoundError
from desk_scheduling.models import DeskSchedule
from desk_scheduling.schema import ReservationStatus
from desk_scheduling.time_window import civil_day

logger = logging.getLogger(__name__)

CHECK_IN_GRACE = timedelta(minutes=15)
WHOLE_DAY_CHECK_IN_HOUR = 9


def compute_check_in_deadline(
    *,
    is_whole_day: bool,
    day_start: datetime,
    booking_start: datetime,
    tz_name: str,
    now: datetime,
) -> datetime:
    same_day = civil_day(day_start, tz_name) == civil_day(now, tz_name)

    if is_whole_day:
        deadline = day_start + timedelta(hours=WHOLE_DAY_CHECK_IN_HOUR)
    else:
        deadline = booking_start + CHECK_IN_GRACE

    # Same-day bookings made after the default deadline get a fresh grace window.
    if same_day and deadline <= now:
        return now + CHECK_IN_GRACE
    return deadline


def check_in(reservation: DeskSchedule | None, now: datetime) -> DeskSchedule:
    if reservation is None:
        raise NotFoundError("Reservation not found.")

    if reservation.status == ReservationStatus.CHECKED_IN.value:
        return reservation

    if reservation.status == ReservationStatus.RELEASED.value:
        raise ForbiddenError("Reservation already released.")

    if reservation.check_in_deadline is None:
        raise BadRequestError("Reservation cannot be checked in.")

    if reservation.check_in_deadline < now:
        raise ForbiddenError("Check-in deadline has already passed.")

    reference = reservation.date or reservation.start_time
    if civil_day(reference, reservation.timezone) != civil_day(now, reservation.timezone):
        raise ForbiddenError("Check-in is only available on the reservation day.")

    reservation.status = ReservationStatus.CHECKED_IN.value
    reservation.checked_in_at = now
    return reservation


def release_expired(db: Session, now: datetime) -> int:
    """Release every overdue ``BOOKED`` reservation, one committed row at a time.

    Rows are released with a conditional update so concurrent sweeps and
    check-ins never double-apply. A row that fails to update is rolled back,
    logged and left for the next sweep; the sweep itself never raises.
    """
    stmt = select(DeskSchedule.id).where(
        DeskSchedule.status == ReservationStatus.BOOKED.value,
        DeskSchedule.check_in_deadline.is_not(None),
        DeskSchedule.check_in_deadline < now,
    )
    try:
        expired_ids = list(db.scalars(stmt))
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not load expired reservations.")
        return 0

    released = 0
    for schedule_id in expired_ids:
        try:
            result = db.execute(
                update(DeskSchedule)
                .where(
                    DeskSchedule.id == schedule_id,
                    DeskSchedule.status == ReservationStatus.BOOKED.value,
                )
                .values(status=ReservationStatus.RELEASED.value, auto_released_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Skipping reservation %s during expiry sweep.", schedule_id, exc_info=True)
            continue
        released += result.rowcount

    if not expired_ids:
        db.rollback()
    if released:
        logger.info("Released %d no-show reservation(s).", released)
    return released
