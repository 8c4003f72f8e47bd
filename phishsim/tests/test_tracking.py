"""Tests for event recording and the public tracking endpoints."""

import pytest
from pydantic import ValidationError

from ..models import Event, EventType
from ..routers.tracking import DISCLOSURE_MESSAGE, TRACKING_PIXEL
from ..schemas import ClickMeta, OpenMeta, SubmitMeta
from ..services import tracking
from .conftest import make_campaign, make_targets

UNKNOWN_TOKEN = "0" * 64


@pytest.fixture
def target(db):
    campaign = make_campaign(db)
    target, = make_targets(db, campaign.id, {"email": "ann@corp.test", "name": "Ann"})
    return target


def _events(db, event_type=None):
    db.expire_all()
    query = db.query(Event)
    if event_type is not None:
        query = query.filter(Event.event_type == event_type)
    return query.order_by(Event.id).all()


# =============================================================================
# Event recording
# =============================================================================

def test_record_event_appends_for_known_token(db, target):
    event = tracking.record_event(db, target.token, OpenMeta(ip="10.0.0.5", user_agent="Mail/1.0"))

    assert event.target_id == target.id
    assert event.event_type == EventType.OPEN
    assert event.meta == {"event_type": "open", "ip": "10.0.0.5", "user_agent": "Mail/1.0"}


def test_record_event_never_deduplicates(db, target):
    tracking.record_event(db, target.token, ClickMeta())
    tracking.record_event(db, target.token, ClickMeta())

    assert len(_events(db, EventType.CLICK)) == 2


def test_record_event_ignores_unknown_token(db, target):
    assert tracking.record_event(db, UNKNOWN_TOKEN, OpenMeta()) is None
    assert tracking.record_event(db, "", OpenMeta()) is None
    assert _events(db) == []


def test_event_metadata_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        SubmitMeta(username="ann", password_length=4, password="hunter2")
    with pytest.raises(ValidationError):
        OpenMeta(cookie="session=1")


# =============================================================================
# /open
# =============================================================================

def test_open_returns_pixel_and_records_event(client, db, target):
    response = client.get(f"/open/{target.token}", headers={"User-Agent": "Mail/1.0"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/gif"
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"
    assert response.content == TRACKING_PIXEL

    events = _events(db, EventType.OPEN)
    assert len(events) == 1
    assert events[0].meta["user_agent"] == "Mail/1.0"


def test_open_response_is_identical_for_unknown_token(client, db, target):
    valid = client.get(f"/open/{target.token}")
    invalid = client.get(f"/open/{UNKNOWN_TOKEN}")

    assert invalid.status_code == valid.status_code == 200
    assert invalid.content == valid.content
    assert invalid.headers["content-type"] == valid.headers["content-type"]
    assert len(_events(db)) == 1


# =============================================================================
# /t and /landing
# =============================================================================

def test_click_records_and_redirects_to_landing(client, db, target):
    response = client.get(f"/t/{target.token}", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == f"/landing/{target.token}"
    assert len(_events(db, EventType.CLICK)) == 1


def test_click_with_unknown_token_is_404(client, db, target):
    response = client.get(f"/t/{UNKNOWN_TOKEN}", follow_redirects=False)

    assert response.status_code == 404
    assert response.json()["detail"] == "Invalid link"
    assert _events(db) == []


def test_landing_page_embeds_token_and_posts_to_submit(client, target):
    response = client.get(f"/landing/{target.token}")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert f'value="{target.token}"' in response.text
    assert "fetch('/submit'" in response.text


def test_landing_page_unknown_token_is_404(client):
    assert client.get(f"/landing/{UNKNOWN_TOKEN}").status_code == 404


# =============================================================================
# /submit
# =============================================================================

def test_submit_records_username_and_password_length_only(client, db, target):
    response = client.post("/submit", json={
        "token": target.token,
        "username": "ann",
        "password": "s3cret!",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == DISCLOSURE_MESSAGE
    assert "simulated phishing page" in body["details"]

    event, = _events(db, EventType.SUBMIT)
    assert event.meta["username"] == "ann"
    assert event.meta["password_length"] == 7
    assert "password" not in event.meta
    assert "s3cret!" not in str(event.meta)


def test_submit_password_length_counts_utf8_bytes(client, db, target):
    response = client.post("/submit", json={
        "token": target.token,
        "username": "jörg",
        "password": "pässwörd",
    })

    assert response.status_code == 200
    event, = _events(db, EventType.SUBMIT)
    assert event.meta["username"] == "jörg"
    assert event.meta["password_length"] == 10


def test_submit_unknown_token_is_404(client, db, target):
    response = client.post("/submit", json={"token": UNKNOWN_TOKEN, "username": "x", "password": "y"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Invalid token"
    assert _events(db) == []


def test_submit_rejects_malformed_body(client, target):
    response = client.post("/submit", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
