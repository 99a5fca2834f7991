"""Transactional entry points for desk availability, booking and check-in."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from config import get_settings
from db.session import SessionLocal
from desk_scheduling.availability import compute_availability
from desk_scheduling.conflicts import ConflictDetector, LinearScanDetector
from desk_scheduling.errors import (
    BadRequestError,
    ConflictError,
    DeskScheduleError,
    ForbiddenError,
    NotFoundError,
    StoreError,
)
from desk_scheduling.lifecycle import check_in, compute_check_in_deadline, release_expired
from desk_scheduling.models import Desk, DeskSchedule, Floor, Office, User
from desk_scheduling.rules import IntervalRules
from desk_scheduling.schema import (
    BookingInterval,
    DayAvailabilityResponse,
    DeskAvailabilityItem,
    ReservationItem,
    ReservationListResponse,
    ReservationStatus,
    ReservationUpdate,
    UserRole,
)
from desk_scheduling.time_window import civil_day, day_window, parse_civil_day, relative_hours

logger = logging.getLogger(__name__)

DetectorFactory = Callable[[Iterable[DeskSchedule]], ConflictDetector]

DESK_CONFLICT_REASON = "Desk is not free for the selected period."
SELF_CONFLICT_REASON = "You already have a booking that overlaps this period."
USER_CONFLICT_REASON = "The selected user already has a booking in this period."
USER_START_INDEX = "uq_desk_schedules_active_user_start"


@dataclass
class _Candidate:
    day_start: datetime
    start_time: datetime
    end_time: datetime
    check_in_deadline: datetime
    tz_name: str


def _resolve_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _resolve_day(day: str | date) -> date:
    try:
        return parse_civil_day(day)
    except (TypeError, ValueError) as exc:
        raise BadRequestError(f"Invalid day: {day!r}.") from exc


def _office_timezone(office: Office | None, fallback: str | None = None) -> str:
    if office is not None and office.timezone:
        return office.timezone
    return fallback or get_settings().default_timezone


def _sweep(session_factory, now: datetime) -> int:
    with session_factory() as db:
        return release_expired(db, now)


def _assert_admin(actor: User | None) -> User:
    if actor is None:
        raise NotFoundError("User not found.")
    if actor.role != UserRole.ADMIN.value:
        raise ForbiddenError("You are not allowed to access this resource.")
    if not actor.organization_id:
        raise NotFoundError("You are not part of an organization.")
    return actor


def _load_member(db: Session, user_id: str) -> User:
    user = db.get(User, user_id, with_for_update=True)
    if not user or not user.organization_id:
        raise NotFoundError("You are not part of an organization.")
    return user


def _load_org_user(db: Session, user_id: str, organization_id: str) -> User | None:
    stmt = (
        select(User)
        .where(User.id == user_id, User.organization_id == organization_id)
        .with_for_update()
    )
    return db.scalar(stmt)


def _resolve_desk(db: Session, desk_id: str, organization_id: str, *, lock: bool = False) -> tuple[Desk, Office] | None:
    stmt = (
        select(Desk, Office)
        .join(Floor, Floor.id == Desk.floor_id)
        .join(Office, Office.id == Floor.office_id)
        .where(Desk.id == desk_id, Office.organization_id == organization_id)
    )
    if lock:
        stmt = stmt.with_for_update(of=Desk)
    row = db.execute(stmt).first()
    if row is None:
        return None
    return row[0], row[1]


def _office_desks(db: Session, office_id: str) -> list[Desk]:
    stmt = (
        select(Desk)
        .join(Floor, Floor.id == Desk.floor_id)
        .where(Floor.office_id == office_id)
        .options(selectinload(Desk.floor))
        .order_by(Floor.name.asc(), Desk.public_desk_id.asc())
    )
    return list(db.scalars(stmt))


def _active_reservations(
    db: Session,
    desk_ids: list[str],
    day_start: datetime,
    day_end: datetime,
    *,
    user_id: str | None = None,
) -> list[DeskSchedule]:
    """Active rows on the given desks, plus the user's own rows on any desk."""
    scopes = []
    if desk_ids:
        scopes.append(DeskSchedule.desk_id.in_(desk_ids))
    if user_id is not None:
        scopes.append(DeskSchedule.user_id == user_id)
    if not scopes:
        return []
    stmt = (
        select(DeskSchedule)
        .where(
            or_(*scopes),
            DeskSchedule.status != ReservationStatus.RELEASED.value,
            DeskSchedule.start_time < day_end,
            DeskSchedule.end_time > day_start,
        )
        .options(selectinload(DeskSchedule.user))
        .order_by(DeskSchedule.start_time.asc())
    )
    return list(db.scalars(stmt))


def _admit_candidate(
    db: Session,
    *,
    office: Office,
    tz_name: str,
    day: date,
    desk_id: str,
    user_id: str,
    whole_day: bool,
    start_hour: int | None,
    end_hour: int | None,
    now: datetime,
    detector_factory: DetectorFactory,
    user_conflict_reason: str,
    exclude_id: str | None = None,
) -> _Candidate:
    day_start, day_end = day_window(day, tz_name)

    try:
        start_time, end_time = IntervalRules.resolve_candidate(
            whole_day=whole_day,
            day_start=day_start,
            day_end=day_end,
            start_hour=start_hour,
            end_hour=end_hour,
        )
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc

    for check in (
        IntervalRules.check_interval_order(start_time, end_time),
        IntervalRules.check_within_day(end_time, day_end),
    ):
        if not check.allowed:
            raise BadRequestError(check.reason)

    office_desk_ids = [desk.id for desk in _office_desks(db, office.id)]
    detector = detector_factory(_active_reservations(db, office_desk_ids, day_start, day_end, user_id=user_id))

    if detector.has_user_conflict(user_id, start_time, end_time, exclude_id=exclude_id):
        raise ConflictError(user_conflict_reason)
    if detector.has_desk_conflict(desk_id, start_time, end_time, exclude_id=exclude_id):
        raise ConflictError(DESK_CONFLICT_REASON)

    deadline = compute_check_in_deadline(
        is_whole_day=whole_day,
        day_start=day_start,
        booking_start=start_time,
        tz_name=tz_name,
        now=now,
    )
    return _Candidate(
        day_start=day_start,
        start_time=start_time,
        end_time=end_time,
        check_in_deadline=deadline,
        tz_name=tz_name,
    )


def _coerce_interval(interval: BookingInterval | dict) -> BookingInterval:
    if isinstance(interval, BookingInterval):
        return interval
    try:
        return BookingInterval.model_validate(interval or {})
    except ValidationError as exc:
        raise BadRequestError(f"Invalid booking interval: {exc}") from exc


def _coerce_update(update: ReservationUpdate | dict) -> ReservationUpdate:
    if isinstance(update, ReservationUpdate):
        return update
    try:
        return ReservationUpdate.model_validate(update or {})
    except ValidationError as exc:
        raise BadRequestError(f"Invalid reservation update: {exc}") from exc


def _create_schedule(
    db: Session,
    *,
    desk_id: str,
    user_id: str,
    whole_day: bool,
    candidate: _Candidate,
) -> ReservationItem:
    schedule = DeskSchedule(
        desk_id=desk_id,
        user_id=user_id,
        date=candidate.day_start,
        start_time=candidate.start_time,
        end_time=candidate.end_time,
        whole_day=whole_day,
        timezone=candidate.tz_name,
        status=ReservationStatus.BOOKED.value,
        check_in_deadline=candidate.check_in_deadline,
        checked_in_at=None,
        auto_released_at=None,
    )
    db.add(schedule)
    db.flush()
    return ReservationItem.from_schedule(schedule)


def _integrity_reason(exc: IntegrityError, user_conflict_reason: str) -> str:
    # PostgreSQL names the index, SQLite names the columns.
    message = str(exc.orig)
    if USER_START_INDEX in message or "desk_schedules.user_id" in message:
        return user_conflict_reason
    return DESK_CONFLICT_REASON


def _run_mutation(
    session_factory,
    action: str,
    work: Callable[[Session], object],
    *,
    user_conflict_reason: str = SELF_CONFLICT_REASON,
):
    with session_factory() as db:
        try:
            with db.begin():
                return work(db)
        except DeskScheduleError:
            raise
        except IntegrityError as exc:
            logger.warning("Storage guard rejected %s: %s", action, exc.orig)
            raise ConflictError(_integrity_reason(exc, user_conflict_reason)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Database error while %s.", action)
            raise StoreError(f"Database error while {action}.") from exc


def get_availability(
    office_id: str,
    day: str | date,
    *,
    viewer_id: str | None = None,
    now: datetime | None = None,
    session_factory=None,
) -> DayAvailabilityResponse:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    civil_date = _resolve_day(day)
    _sweep(session_factory, now)

    with session_factory() as db:
        try:
            office = db.get(Office, office_id)
            if not office:
                raise NotFoundError("Office not found.")
            if viewer_id is not None:
                viewer = db.get(User, viewer_id)
                if not viewer or viewer.organization_id != office.organization_id:
                    raise NotFoundError("Office not found.")

            tz_name = _office_timezone(office)
            day_start, day_end = day_window(civil_date, tz_name)
            desks = _office_desks(db, office.id)
            reservations = _active_reservations(db, [desk.id for desk in desks], day_start, day_end)
            availability = compute_availability(desks, reservations, day_start, day_end)
        except SQLAlchemyError as exc:
            logger.exception("Database error while loading availability.")
            raise StoreError("Database error while loading availability.") from exc

        return DayAvailabilityResponse(
            office_id=office.id,
            day=civil_date,
            timezone=tz_name,
            day_start=day_start,
            day_end=day_end,
            desks=[DeskAvailabilityItem.model_validate(item) for item in availability.values()],
        )


def book_desk(
    user_id: str,
    desk_id: str,
    day: str | date,
    interval: BookingInterval | dict | None = None,
    *,
    now: datetime | None = None,
    session_factory=None,
    detector_factory: DetectorFactory = LinearScanDetector,
) -> ReservationItem:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    civil_date = _resolve_day(day)
    booking_interval = _coerce_interval(interval)
    _sweep(session_factory, now)

    def work(db: Session) -> ReservationItem:
        user = _load_member(db, user_id)
        resolved = _resolve_desk(db, desk_id, user.organization_id, lock=True)
        if resolved is None:
            raise NotFoundError("Desk not found.")
        desk, office = resolved

        candidate = _admit_candidate(
            db,
            office=office,
            tz_name=_office_timezone(office),
            day=civil_date,
            desk_id=desk.id,
            user_id=user.id,
            whole_day=booking_interval.whole_day,
            start_hour=booking_interval.start_hour,
            end_hour=booking_interval.end_hour,
            now=now,
            detector_factory=detector_factory,
            user_conflict_reason=SELF_CONFLICT_REASON,
        )
        return _create_schedule(
            db,
            desk_id=desk.id,
            user_id=user.id,
            whole_day=booking_interval.whole_day,
            candidate=candidate,
        )

    item = _run_mutation(session_factory, "booking desk", work, user_conflict_reason=SELF_CONFLICT_REASON)
    logger.info("Booked desk %s for user %s on %s.", desk_id, user_id, civil_date.isoformat())
    return item


def admin_book_desk(
    actor_id: str,
    target_user_id: str,
    desk_id: str,
    day: str | date,
    interval: BookingInterval | dict | None = None,
    *,
    now: datetime | None = None,
    session_factory=None,
    detector_factory: DetectorFactory = LinearScanDetector,
) -> ReservationItem:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    civil_date = _resolve_day(day)
    booking_interval = _coerce_interval(interval)
    _sweep(session_factory, now)

    def work(db: Session) -> ReservationItem:
        actor = _assert_admin(db.get(User, actor_id))
        target_user = _load_org_user(db, target_user_id, actor.organization_id)
        if not target_user:
            raise NotFoundError("Target user not found in organization.")

        resolved = _resolve_desk(db, desk_id, actor.organization_id, lock=True)
        if resolved is None:
            raise NotFoundError("Desk not found.")
        desk, office = resolved

        candidate = _admit_candidate(
            db,
            office=office,
            tz_name=_office_timezone(office),
            day=civil_date,
            desk_id=desk.id,
            user_id=target_user.id,
            whole_day=booking_interval.whole_day,
            start_hour=booking_interval.start_hour,
            end_hour=booking_interval.end_hour,
            now=now,
            detector_factory=detector_factory,
            user_conflict_reason=USER_CONFLICT_REASON,
        )
        return _create_schedule(
            db,
            desk_id=desk.id,
            user_id=target_user.id,
            whole_day=booking_interval.whole_day,
            candidate=candidate,
        )

    item = _run_mutation(session_factory, "booking desk for user", work, user_conflict_reason=USER_CONFLICT_REASON)
    logger.info("Admin %s booked desk %s for user %s on %s.", actor_id, desk_id, target_user_id, civil_date.isoformat())
    return item


def edit_reservation(
    actor_id: str,
    reservation_id: str,
    update: ReservationUpdate | dict | None = None,
    *,
    now: datetime | None = None,
    session_factory=None,
    detector_factory: DetectorFactory = LinearScanDetector,
) -> ReservationItem:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    changes = _coerce_update(update)
    _sweep(session_factory, now)

    def work(db: Session) -> ReservationItem:
        actor = _assert_admin(db.get(User, actor_id))

        existing = db.get(DeskSchedule, reservation_id, with_for_update=True)
        if not existing or _resolve_desk(db, existing.desk_id, actor.organization_id) is None:
            raise NotFoundError("Reservation not found.")

        resolved = _resolve_desk(db, changes.desk_id or existing.desk_id, actor.organization_id, lock=True)
        if resolved is None:
            raise NotFoundError("Desk not found.")
        desk, office = resolved

        target_user_id = changes.user_id or existing.user_id
        target_user = _load_org_user(db, target_user_id, actor.organization_id)
        if not target_user:
            raise NotFoundError("Target user not found in organization.")

        tz_name = _office_timezone(office, existing.timezone)
        stored_day = civil_day(existing.date, existing.timezone)
        civil_date = changes.day or stored_day

        hours_given = changes.start_hour is not None or changes.end_hour is not None
        if changes.whole_day is not None:
            whole_day = changes.whole_day
        else:
            whole_day = existing.whole_day and not hours_given

        start_hour = end_hour = None
        if not whole_day:
            stored_start, stored_end = day_window(stored_day, existing.timezone)
            default_start, default_end = relative_hours(existing.start_time, existing.end_time, stored_start, stored_end)
            start_hour = changes.start_hour if changes.start_hour is not None else default_start
            end_hour = changes.end_hour if changes.end_hour is not None else default_end

        candidate = _admit_candidate(
            db,
            office=office,
            tz_name=tz_name,
            day=civil_date,
            desk_id=desk.id,
            user_id=target_user.id,
            whole_day=whole_day,
            start_hour=start_hour,
            end_hour=end_hour,
            now=now,
            detector_factory=detector_factory,
            user_conflict_reason=USER_CONFLICT_REASON,
            exclude_id=existing.id,
        )

        existing.desk_id = desk.id
        existing.user_id = target_user.id
        existing.date = candidate.day_start
        existing.start_time = candidate.start_time
        existing.end_time = candidate.end_time
        existing.whole_day = whole_day
        existing.timezone = candidate.tz_name
        existing.status = ReservationStatus.BOOKED.value
        existing.check_in_deadline = candidate.check_in_deadline
        existing.checked_in_at = None
        existing.auto_released_at = None
        db.flush()
        return ReservationItem.from_schedule(existing)

    item = _run_mutation(session_factory, "updating reservation", work, user_conflict_reason=USER_CONFLICT_REASON)
    logger.info("Admin %s updated reservation %s.", actor_id, reservation_id)
    return item


def cancel_reservation(
    actor_id: str,
    reservation_id: str,
    *,
    session_factory=None,
) -> None:
    session_factory = session_factory or SessionLocal

    def work(db: Session) -> None:
        actor = db.get(User, actor_id)
        if not actor or not actor.organization_id:
            raise NotFoundError("You are not part of an organization.")

        schedule = db.get(DeskSchedule, reservation_id, with_for_update=True)
        if not schedule or _resolve_desk(db, schedule.desk_id, actor.organization_id) is None:
            raise ConflictError("You do not have a booking for this period.")

        is_owner = schedule.user_id == actor.id
        is_admin = actor.role == UserRole.ADMIN.value
        if not is_owner and not is_admin:
            raise ForbiddenError("You are not allowed to cancel this booking.")

        db.delete(schedule)

    _run_mutation(session_factory, "cancelling reservation", work)
    logger.info("User %s cancelled reservation %s.", actor_id, reservation_id)


def check_in_reservation(
    user_id: str,
    reservation_id: str,
    *,
    now: datetime | None = None,
    session_factory=None,
) -> ReservationItem:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    _sweep(session_factory, now)

    def work(db: Session) -> ReservationItem:
        _load_member(db, user_id)
        stmt = (
            select(DeskSchedule)
            .where(DeskSchedule.id == reservation_id, DeskSchedule.user_id == user_id)
            .with_for_update()
        )
        schedule = check_in(db.scalar(stmt), now)
        db.flush()
        return ReservationItem.from_schedule(schedule)

    item = _run_mutation(session_factory, "checking in", work)
    logger.info("User %s checked in to reservation %s.", user_id, reservation_id)
    return item


def list_user_reservations(
    user_id: str,
    *,
    include_past: bool = False,
    now: datetime | None = None,
    session_factory=None,
) -> ReservationListResponse:
    session_factory = session_factory or SessionLocal
    now = _resolve_now(now)
    _sweep(session_factory, now)

    with session_factory() as db:
        stmt = select(DeskSchedule).where(DeskSchedule.user_id == user_id)
        if include_past:
            stmt = stmt.order_by(DeskSchedule.start_time.desc())
        else:
            stmt = stmt.where(
                DeskSchedule.status != ReservationStatus.RELEASED.value,
                DeskSchedule.end_time > now,
            ).order_by(DeskSchedule.start_time.asc())
        try:
            schedules = list(db.scalars(stmt))
        except SQLAlchemyError as exc:
            logger.exception("Database error while listing reservations.")
            raise StoreError("Database error while listing reservations.") from exc
        return ReservationListResponse(reservations=[ReservationItem.from_schedule(s) for s in schedules])


def release_expired_reservations(*, now: datetime | None = None, session_factory=None) -> int:
    return _sweep(session_factory or SessionLocal, _resolve_now(now))
