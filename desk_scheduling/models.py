"""SQLAlchemy models for the desk scheduling domain."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator


def _new_id() -> str:
    return str(uuid.uuid4())


class UtcDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite has no timestamp type and hands back naive values, so instants are
    stored as naive UTC there and re-tagged on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UtcDateTime requires timezone-aware datetimes.")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    pass


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    organization_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)
    image: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="MEMBER")


class Office(Base):
    __tablename__ = "offices"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(
        String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str | None] = mapped_column(String, nullable=True)


class Floor(Base):
    __tablename__ = "floors"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    office_id: Mapped[str] = mapped_column(String, ForeignKey("offices.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    office: Mapped[Office] = relationship()


class Desk(Base):
    __tablename__ = "desks"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    floor_id: Mapped[str | None] = mapped_column(String, ForeignKey("floors.id", ondelete="CASCADE"), nullable=True, index=True)
    public_desk_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    floor: Mapped[Floor | None] = relationship()


class DeskSchedule(Base):
    __tablename__ = "desk_schedules"
    __table_args__ = (
        Index(
            "uq_desk_schedules_active_desk_start",
            "desk_id",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'RELEASED'"),
            sqlite_where=text("status <> 'RELEASED'"),
        ),
        Index(
            "uq_desk_schedules_active_user_start",
            "user_id",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'RELEASED'"),
            sqlite_where=text("status <> 'RELEASED'"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    desk_id: Mapped[str] = mapped_column(String, ForeignKey("desks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, index=True)
    whole_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    timezone: Mapped[str] = mapped_column(String, nullable=False, default="UTC")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="BOOKED", index=True)
    check_in_deadline: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True, index=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    auto_released_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime, server_default=func.now(), nullable=False)

    desk: Mapped[Desk] = relationship()
    user: Mapped[User] = relationship()
