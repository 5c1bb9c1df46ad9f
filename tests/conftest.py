"""Shared test fixtures: in-memory database, factories and a recording notifier."""

import os

os.environ.setdefault("DB_URL", "sqlite://")
os.environ.setdefault("EMAIL_PROVIDER", "log")

from datetime import date, time
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from artistry.config import settings
from artistry.database import Base, get_db
from artistry.deps import get_notifier
from artistry.main import app
from artistry.models.enquiry import Enquiry, EnquiryStatus
from artistry.models.slot import TimeSlot

SLOT_DAY = date(2024, 6, 1)


class RecordingNotifier:
    """Stands in for the email transport; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    def __call__(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise RuntimeError("mail transport down")
        self.sent.append((to, subject, html))

    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]

    def subjects_for(self, to: str) -> list[str]:
        return [subject for addr, subject, _ in self.sent if addr == to]


@pytest.fixture(autouse=True)
def staff_emails(monkeypatch):
    monkeypatch.setattr(settings, "STAFF_EMAILS", "studio@example.com")
    monkeypatch.setattr(settings, "ADMIN_API_KEY", None)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def make_slot(db):
    def _make(
        day: date = SLOT_DAY,
        start: time = time(9, 0),
        end: time = time(10, 30),
        available: bool = True,
    ) -> TimeSlot:
        s = TimeSlot(slot_date=day, start_time=start, end_time=end, is_available=available)
        db.add(s)
        db.commit()
        db.refresh(s)
        return s

    return _make


@pytest.fixture
def make_enquiry(db):
    def _make(
        slot: Optional[TimeSlot],
        name: str = "Ada",
        status: EnquiryStatus = EnquiryStatus.PENDING,
        service: str = "Soft Glam",
    ) -> Enquiry:
        e = Enquiry(
            service_option=service,
            booking_date=slot.slot_date if slot else None,
            time_slot_id=slot.id if slot else None,
            client_name=name,
            client_email=f"{name.lower()}@example.com",
            status=status,
        )
        db.add(e)
        db.commit()
        db.refresh(e)
        return e

    return _make


@pytest.fixture
def client(session_factory, notifier):
    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
