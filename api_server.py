from __future__ import annotations

import hmac
import logging
from datetime import date
from typing import Literal, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import get_settings
from db.session import validate_db_compatibility
from desk_scheduling.engine import (
    admin_book_desk,
    book_desk,
    cancel_reservation,
    check_in_reservation,
    edit_reservation,
    get_availability,
    list_user_reservations,
    release_expired_reservations,
)
from desk_scheduling.errors import DeskScheduleError
from desk_scheduling.schema import (
    AdminBookDeskRequest,
    AdminReservationUpdateRequest,
    BookDeskRequest,
    BookingInterval,
    DayAvailabilityResponse,
    ReleaseExpiredResponse,
    ReservationActorRequest,
    ReservationItem,
    ReservationListResponse,
    ReservationUpdate,
)

settings = get_settings()

APP_NAME = settings.app_name
APP_VERSION = settings.app_version
API_KEY_HEADER = "X-API-Key"
ADMIN_API_KEY_HEADER = "X-Admin-API-Key"
CRON_SECRET_HEADER = "X-Cron-Secret"


def verify_api_key(x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER)):
    if not x_api_key or not hmac.compare_digest(x_api_key, settings.desk_booking_api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


def verify_admin_api_key(x_admin_api_key: Optional[str] = Header(default=None, alias=ADMIN_API_KEY_HEADER)):
    if not x_admin_api_key or not hmac.compare_digest(x_admin_api_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Invalid or missing admin API key.")


def verify_cron_secret(x_cron_secret: Optional[str] = Header(default=None, alias=CRON_SECRET_HEADER)):
    if not settings.cron_secret:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


class HealthResponse(BaseModel):
    status: Literal["ok", "error"]
    service: str
    version: str


app = FastAPI(title=APP_NAME, version=APP_VERSION)


@app.on_event("startup")
def startup_checks():
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _ = settings.desk_booking_api_key
    _ = settings.admin_api_key
    _ = settings.database_url
    validate_db_compatibility()


@app.exception_handler(DeskScheduleError)
def handle_desk_schedule_error(_, exc: DeskScheduleError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health/live", response_model=HealthResponse)
def health_live():
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get("/health/ready", response_model=HealthResponse)
def health_ready():
    try:
        validate_db_compatibility()
    except Exception as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return HealthResponse(status="ok", service=APP_NAME, version=APP_VERSION)


@app.get(
    "/v1/offices/{office_id}/availability",
    response_model=DayAvailabilityResponse,
    dependencies=[Depends(verify_api_key)],
)
def office_availability(office_id: str, day: date, user_id: Optional[str] = None):
    return get_availability(office_id, day, viewer_id=user_id)


@app.post(
    "/v1/reservations",
    response_model=ReservationItem,
    status_code=201,
    dependencies=[Depends(verify_api_key)],
)
def create_reservation(request: BookDeskRequest):
    interval = BookingInterval.model_validate(request.model_dump(include={"whole_day", "start_hour", "end_hour"}))
    return book_desk(request.user_id, request.desk_id, request.day, interval)


@app.get("/v1/reservations/my", response_model=ReservationListResponse, dependencies=[Depends(verify_api_key)])
def my_reservations(user_id: str, include_past: bool = False):
    return list_user_reservations(user_id, include_past=include_past)


@app.post("/v1/reservations/{reservation_id}/cancel", status_code=204, dependencies=[Depends(verify_api_key)])
def cancel_reservation_route(reservation_id: str, request: ReservationActorRequest):
    cancel_reservation(request.user_id, reservation_id)


@app.post(
    "/v1/reservations/{reservation_id}/check-in",
    response_model=ReservationItem,
    dependencies=[Depends(verify_api_key)],
)
def check_in_route(reservation_id: str, request: ReservationActorRequest):
    return check_in_reservation(request.user_id, reservation_id)


@app.post(
    "/v1/admin/reservations",
    response_model=ReservationItem,
    status_code=201,
    dependencies=[Depends(verify_admin_api_key)],
)
def admin_create_reservation(request: AdminBookDeskRequest):
    interval = BookingInterval.model_validate(request.model_dump(include={"whole_day", "start_hour", "end_hour"}))
    return admin_book_desk(request.actor_id, request.user_id, request.desk_id, request.day, interval)


@app.patch(
    "/v1/admin/reservations/{reservation_id}",
    response_model=ReservationItem,
    dependencies=[Depends(verify_admin_api_key)],
)
def admin_update_reservation(reservation_id: str, request: AdminReservationUpdateRequest):
    changes = ReservationUpdate.model_validate(request.model_dump(exclude={"actor_id"}))
    return edit_reservation(request.actor_id, reservation_id, changes)


@app.post("/v1/cron/release-no-shows", response_model=ReleaseExpiredResponse, dependencies=[Depends(verify_cron_secret)])
def release_no_shows():
    released = release_expired_reservations()
    return ReleaseExpiredResponse(released=released)
