import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DESK_BOOKING_API_KEY", "test-api-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from datetime import datetime, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import db.session as db_session
from desk_scheduling.models import Base, Desk, Floor, Office, Organization, User

OFFICE_TZ = "Europe/Berlin"

test_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)
db_session.engine = test_engine
db_session.SessionLocal.configure(bind=test_engine)


def local_time(year, month, day, hour=0, minute=0, tz_name=OFFICE_TZ) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(test_engine)
    yield
    Base.metadata.drop_all(test_engine)


@pytest.fixture
def session_factory():
    return db_session.SessionLocal


@pytest.fixture
def directory():
    with db_session.SessionLocal() as db:
        with db.begin():
            db.add_all(
                [
                    Organization(id="org-acme", name="Acme"),
                    Organization(id="org-other", name="Other"),
                ]
            )
            db.flush()
            db.add_all(
                [
                    Office(id="office-berlin", organization_id="org-acme", name="Berlin HQ", timezone=OFFICE_TZ),
                    Office(id="office-utc", organization_id="org-acme", name="Remote Hub", timezone=None),
                    Office(id="office-munich", organization_id="org-acme", name="Munich", timezone=OFFICE_TZ),
                    Office(id="office-other", organization_id="org-other", name="Elsewhere", timezone="UTC"),
                ]
            )
            db.flush()
            db.add_all(
                [
                    Floor(id="floor-ground", office_id="office-berlin", name="Ground"),
                    Floor(id="floor-first", office_id="office-berlin", name="First"),
                    Floor(id="floor-munich", office_id="office-munich", name="Ground"),
                    Floor(id="floor-other", office_id="office-other", name="Lobby"),
                ]
            )
            db.flush()
            db.add_all(
                [
                    Desk(id="desk-1", floor_id="floor-ground", public_desk_id="1"),
                    Desk(id="desk-2", floor_id="floor-ground", public_desk_id="2"),
                    Desk(id="desk-3", floor_id="floor-first", public_desk_id="A-3"),
                    Desk(id="desk-m", floor_id="floor-munich", public_desk_id="1"),
                    Desk(id="desk-foreign", floor_id="floor-other", public_desk_id="9"),
                ]
            )
            db.add_all(
                [
                    User(id="user-alice", organization_id="org-acme", name="Alice", image="alice.png", role="MEMBER"),
                    User(id="user-bob", organization_id="org-acme", name="Bob", role="MEMBER"),
                    User(id="user-admin", organization_id="org-acme", name="Ada Admin", role="ADMIN"),
                    User(id="user-outsider", organization_id="org-other", name="Olga", role="ADMIN"),
                    User(id="user-homeless", organization_id=None, name="Nobody", role="MEMBER"),
                ]
            )

    return SimpleNamespace(
        office_id="office-berlin",
        desk_1="desk-1",
        desk_2="desk-2",
        desk_3="desk-3",
        munich_desk="desk-m",
        foreign_desk="desk-foreign",
        alice="user-alice",
        bob="user-bob",
        admin="user-admin",
        outsider="user-outsider",
        homeless="user-homeless",
    )
