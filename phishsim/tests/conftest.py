"""Shared fixtures: in-memory database, fake transport and an API client."""

import threading
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from ..config import Settings
from ..database import init_db, make_engine, make_session_factory
from ..main import create_app
from .. import crud
from ..models import Event, EventType


class FakeTransport:
    """Records every send; addresses in ``fail_for`` are refused."""

    def __init__(self, fail_for=(), on_send=None):
        self.fail_for = set(fail_for)
        self.on_send = on_send
        self.sent = []
        self.attempts = []
        self._lock = threading.Lock()

    def send(self, from_address, to_address, subject, html_body):
        with self._lock:
            self.attempts.append(to_address)
        if self.on_send:
            self.on_send(to_address)
        if to_address in self.fail_for:
            return False
        with self._lock:
            self.sent.append({
                "from": from_address,
                "to": to_address,
                "subject": subject,
                "body": html_body,
            })
        return True


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        public_base_url="http://phish.test",
        jwt_secret="test-secret",
        send_interval=0.0,
    )


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def app(settings, engine, transport):
    return create_app(settings=settings, engine=engine, transport=transport)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    """Register and sign in an operator; returns a Bearer header."""
    client.post("/api/register", json={"username": "operator", "password": "correct-horse", "role": "admin"})
    response = client.post("/api/login", json={"username": "operator", "password": "correct-horse"})
    assert response.status_code == 200
    # Requests below authenticate with the header only
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


# =============================================================================
# Data helpers
# =============================================================================

def make_campaign(db, name="Q3 Awareness", subject="Action needed, {{Name}}",
                  body='<p>Hi {{Name}}, please <a href="{{Link}}">review</a>.</p>',
                  from_address="it-support@corp.test"):
    return crud.create_campaign(db, name=name, email_subject=subject, email_body=body, from_address=from_address)


def make_targets(db, campaign_id, *rows):
    """Create targets from rows; a bare string is taken as the email."""
    rows = [{"email": row} if isinstance(row, str) else row for row in rows]
    return crud.bulk_create_targets(db, campaign_id, rows)


def add_event(db, target, event_type: EventType, created_at: datetime = None, **meta):
    event = Event(target_id=target.id, event_type=event_type, meta=meta or None)
    if created_at is not None:
        event.created_at = created_at
    db.add(event)
    db.commit()
    return event


def mark_sent(db, *targets):
    for target in targets:
        crud.mark_target_sent(db, target.id)
    db.expire_all()
