"""Tests for campaign statistics."""

import asyncio

import pytest

from ..models import Event, EventType, Target
from ..services.dispatcher import CampaignDispatcher
from ..services.stats import (
    StatsAggregator, UNKNOWN_GROUP, UnsupportedDimension, calculate_rate
)
from .conftest import FakeTransport, add_event, make_campaign, make_targets, mark_sent


@pytest.fixture
def populated(db):
    """
    Engineering: ann (opened twice, clicked), bob (opened)
    Sales:       cat (sent, no events)
    blank dept:  dan (never sent, but has a stray open)
    """
    campaign = make_campaign(db)
    ann, bob, cat, dan = make_targets(
        db, campaign.id,
        {"email": "ann@corp.test", "department": "Engineering", "location": "Berlin"},
        {"email": "bob@corp.test", "department": "Engineering", "location": "Berlin"},
        {"email": "cat@corp.test", "department": "Sales", "location": "Lisbon"},
        {"email": "dan@corp.test", "department": "  ", "location": "Lisbon"},
    )
    mark_sent(db, ann, bob, cat)
    add_event(db, ann, EventType.OPEN)
    add_event(db, ann, EventType.OPEN)
    add_event(db, ann, EventType.CLICK)
    add_event(db, bob, EventType.OPEN)
    add_event(db, dan, EventType.OPEN)
    return campaign


def test_calculate_rate():
    assert calculate_rate(0, 0) == 0.0
    assert calculate_rate(5, 0) == 0.0
    assert calculate_rate(1, 3) == 33.33
    assert calculate_rate(2, 3) == 66.67
    assert calculate_rate(4, 4) == 100.0


def test_campaign_stats_count_distinct_sent_targets(db, populated):
    stats = StatsAggregator(db).campaign_stats(populated.id)

    assert stats.total_targets == 4
    assert stats.emails_sent == 3
    assert stats.opened == 2
    assert stats.clicked == 1
    assert stats.submitted == 0
    assert stats.open_rate == 66.67
    assert stats.click_rate == 33.33
    assert stats.submit_rate == 0.0


def test_rates_stay_within_bounds_when_unsent_targets_have_events(db):
    campaign = make_campaign(db)
    sent, unsent = make_targets(db, campaign.id, "a@corp.test", "b@corp.test")
    mark_sent(db, sent)
    for target in (sent, unsent):
        add_event(db, target, EventType.OPEN)
        add_event(db, target, EventType.CLICK)

    stats = StatsAggregator(db).campaign_stats(campaign.id)

    assert stats.emails_sent == 1
    assert stats.opened == stats.clicked == 1
    assert stats.open_rate == stats.click_rate == 100.0


def test_campaign_with_nothing_sent_has_zero_rates(db):
    campaign = make_campaign(db)
    make_targets(db, campaign.id, "a@corp.test")

    stats = StatsAggregator(db).campaign_stats(campaign.id)

    assert stats.total_targets == 1
    assert stats.emails_sent == 0
    assert (stats.open_rate, stats.click_rate, stats.submit_rate) == (0.0, 0.0, 0.0)


def test_grouped_stats_by_department(db, populated):
    groups = StatsAggregator(db).grouped_stats("department", populated.id)

    assert [g.group_value for g in groups] == ["Engineering", "Sales", UNKNOWN_GROUP]

    engineering, sales, unknown = groups
    assert (engineering.total_targets, engineering.emails_sent) == (2, 2)
    assert (engineering.opened, engineering.clicked) == (2, 1)
    assert (engineering.open_rate, engineering.click_rate) == (100.0, 50.0)

    assert (sales.emails_sent, sales.opened, sales.open_rate) == (1, 0, 0.0)

    assert (unknown.total_targets, unknown.emails_sent, unknown.opened) == (1, 0, 0)
    assert unknown.open_rate == 0.0


def test_grouped_stats_by_location(db, populated):
    groups = StatsAggregator(db).grouped_stats("location", populated.id)

    assert [(g.group_value, g.total_targets, g.emails_sent) for g in groups] == [
        ("Berlin", 2, 2),
        ("Lisbon", 2, 1),
    ]


def test_grouped_ties_break_by_group_value(db):
    campaign = make_campaign(db)
    targets = make_targets(
        db, campaign.id,
        {"email": "a@corp.test", "role": "Manager"},
        {"email": "b@corp.test", "role": "Analyst"},
        {"email": "c@corp.test", "role": "Contractor"},
    )
    mark_sent(db, *targets)

    groups = StatsAggregator(db).grouped_stats("role", campaign.id)

    assert [g.group_value for g in groups] == ["Analyst", "Contractor", "Manager"]


def test_unsupported_dimension_is_rejected(db, populated):
    aggregator = StatsAggregator(db)
    with pytest.raises(UnsupportedDimension):
        aggregator.grouped_stats("email", populated.id)
    with pytest.raises(UnsupportedDimension):
        aggregator.grouped_stats("department; DROP TABLE targets")


def test_grouped_stats_storage_error_yields_empty_list(db, engine, populated):
    Event.__table__.drop(engine)

    assert StatsAggregator(db).grouped_stats("department", populated.id) == []

    # Rolled back, so the session keeps working
    assert db.query(Target).filter(Target.campaign_id == populated.id).count() == 4


def test_overall_stats_span_campaigns(db, populated):
    other = make_campaign(db, name="Second wave")
    target, = make_targets(db, other.id, {"email": "eve@corp.test", "department": "Sales"})
    mark_sent(db, target)
    add_event(db, target, EventType.SUBMIT)

    result = StatsAggregator(db).overall_stats("department")

    overall = result["overall_stats"]
    assert (overall.total_targets, overall.emails_sent) == (5, 4)
    assert (overall.opened, overall.clicked, overall.submitted) == (2, 1, 1)
    assert overall.submit_rate == 25.0

    names = {s.campaign_name for s in result["campaign_stats"]}
    assert names == {"Q3 Awareness", "Second wave"}

    assert result["grouped_by"] == "department"
    by_value = {g.group_value: g for g in result["grouped_stats"]}
    assert by_value["Sales"].emails_sent == 2
    assert by_value["Sales"].submitted == 1


# =============================================================================
# API
# =============================================================================

def test_campaign_stats_endpoint(client, auth_headers, populated):
    response = client.get(f"/api/campaigns/{populated.id}/stats", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["grouped_by"] == "department"
    assert body["campaign"]["id"] == populated.id
    assert body["overall_stats"]["emails_sent"] == 3
    assert [g["group_value"] for g in body["department_stats"]] == ["Engineering", "Sales", UNKNOWN_GROUP]

    by_location = client.get(f"/api/campaigns/{populated.id}/stats?group_by=location", headers=auth_headers).json()
    assert by_location["grouped_by"] == "location"
    assert [g["group_value"] for g in by_location["department_stats"]] == ["Berlin", "Lisbon"]


def test_stats_endpoints_reject_unknown_group_by(client, auth_headers, populated):
    response = client.get(f"/api/campaigns/{populated.id}/stats?group_by=password", headers=auth_headers)
    assert response.status_code == 400

    response = client.get("/api/stats?group_by=password", headers=auth_headers)
    assert response.status_code == 400


def test_overall_stats_endpoint(client, auth_headers, populated):
    response = client.get("/api/stats?group_by=location", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["grouped_by"] == "location"
    assert body["overall_stats"]["total_targets"] == 4
    assert len(body["campaign_stats"]) == 1


def test_stats_require_authentication(client, populated):
    assert client.get("/api/stats").status_code == 401
    assert client.get(f"/api/campaigns/{populated.id}/stats").status_code == 401


def test_campaign_stats_missing_campaign_is_404(client, auth_headers):
    assert client.get("/api/campaigns/999/stats", headers=auth_headers).status_code == 404


def test_dispatch_then_stats(db, session_factory, settings):
    campaign = make_campaign(db)
    ann, bob, cat = make_targets(db, campaign.id, "ann@corp.test", "bob@corp.test", "cat@corp.test")
    # cat opened a preview before any send and the send to cat fails
    add_event(db, cat, EventType.OPEN)
    transport = FakeTransport(fail_for={"cat@corp.test"})
    asyncio.run(CampaignDispatcher(session_factory, transport, settings).run(campaign.id))

    aggregator = StatsAggregator(db)
    stats = aggregator.campaign_stats(campaign.id)
    assert (stats.emails_sent, stats.opened, stats.open_rate) == (2, 0, 0.0)

    add_event(db, ann, EventType.OPEN)
    add_event(db, ann, EventType.OPEN)
    stats = aggregator.campaign_stats(campaign.id)
    assert (stats.opened, stats.open_rate) == (1, 50.0)
