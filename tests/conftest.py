"""
Test configuration and fixtures.

Provides:
- In-memory SQLite engine shared through StaticPool (fresh per test)
- A Session for arranging/inspecting data
- FastAPI TestClient with get_db overridden
"""
import os
from datetime import date, time
from typing import Generator

# Settings se leen al importar booking.config: el entorno va primero
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_TOKEN"] = "test-admin"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ["TIMEZONE"] = "UTC"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from booking import models
from booking.database import Base, get_db
from booking.main import app
from booking.records import AppointmentStatus, UserRole, WorkingHours
from booking.services import store

ADMIN_HEADERS = {"X-Admin-Token": "test-admin"}
FUTURE_DAY = date(2099, 1, 5)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture()
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# =============================================================================
# Data Fixtures
# =============================================================================

@pytest.fixture()
def default_hours() -> WorkingHours:
    return WorkingHours(
        day_start=time(9, 0),
        day_end=time(17, 0),
        break_start=time(12, 0),
        break_end=time(13, 0),
        slot_minutes=60,
    )


@pytest.fixture()
def user(db) -> models.User:
    return store.create_user(db, "ana", "Ana Torres", phone="+15550001111")


@pytest.fixture()
def other_user(db) -> models.User:
    return store.create_user(db, "luis", "Luis Gomez")


@pytest.fixture()
def admin_user(db) -> models.User:
    return store.create_user(db, "head", "Administrator", role=UserRole.admin)


def add_appointment(
    db: Session,
    user_id: int,
    day: date,
    start: time,
    end: time,
    status: AppointmentStatus = AppointmentStatus.pending,
    title: str = "Consulta",
) -> models.Appointment:
    """Inserta una cita directo en la BD, sin pasar por el ciclo de vida."""
    row = models.Appointment(
        user_id=user_id,
        title=title,
        appointment_date=day,
        start_time=start,
        end_time=end,
        status=status,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def user_headers(u: models.User) -> dict:
    return {"X-User-Id": str(u.id)}
