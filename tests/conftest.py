"""
Momentum Test Configuration

Shared fixtures for all tests. The app is pointed at a throwaway SQLite
file before any project module is imported.
"""
import os
import secrets
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="momentum-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'momentum.db')}"
os.environ.setdefault("APP_URL", "https://app.example.test")
os.environ["SMTP_HOST"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from core.database import Base, SessionLocal, engine  # noqa: E402
from models.booking import Booking, Client, Photographer  # noqa: E402
from utils.milestones import generate_standard_milestones  # noqa: E402

TEST_UID = "firebase-uid-1"


# =============================================================================
# FIXTURES: Database
# =============================================================================

@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# FIXTURES: Sample Data
# =============================================================================

@pytest.fixture
def photographer(db):
    row = Photographer(
        uid=TEST_UID,
        business_name="Golden Hour Studio",
        email="studio@example.com",
        username="goldenhour",
        auto_reminders_enabled=True,
        payments_account_id="acct_123",
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def client_row(db, photographer):
    row = Client(photographer_id=photographer.id, name="Ada Lovelace", email="ada@example.com")
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def make_booking(db, photographer, client_row):
    """Factory for bookings with the standard two-milestone plan."""

    def _make(**overrides):
        total = overrides.pop("total_price", Decimal("2000"))
        deposit = overrides.pop("deposit_amount", Decimal("400"))
        event_date = overrides.pop("event_date", (datetime.utcnow() + timedelta(days=90)).date())
        milestones = overrides.pop("payment_milestones", None)
        if milestones is None:
            milestones = generate_standard_milestones(total, deposit, event_date)
        values = dict(
            photographer_id=photographer.id,
            client_id=client_row.id,
            client_email=client_row.email,
            service_type="wedding",
            event_date=event_date,
            status="draft",
            total_price=total,
            deposit_amount=deposit,
            payment_status="pending_deposit",
            payment_milestones=milestones,
            portal_token=secrets.token_urlsafe(32),
        )
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make


# =============================================================================
# FIXTURES: HTTP
# =============================================================================

@pytest.fixture
def api():
    from main import app
    return TestClient(app)


@pytest.fixture
def signed_in(monkeypatch):
    """Treat any bearer token as the test photographer's Firebase session."""
    import routers.bookings

    def _uid(request):
        header = request.headers.get("authorization") or ""
        return TEST_UID if header.lower().startswith("bearer ") else None

    monkeypatch.setattr(routers.bookings, "get_uid_from_request", _uid)
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing reminder and notification emails instead of talking to SMTP."""
    import utils.notifications
    import utils.reminders

    outbox = []

    def _send(to_addr, subject, html, text=None, **kwargs):
        outbox.append({"to": to_addr, "subject": subject, "html": html, "text": text, **kwargs})
        return True

    monkeypatch.setattr(utils.reminders, "send_email_smtp", _send)
    monkeypatch.setattr(utils.notifications, "send_email_smtp", _send)
    return outbox
