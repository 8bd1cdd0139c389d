"""
Route tests for dashboard counters, metrics and chart series.
"""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from helpers import (
    PUBLISHED,
    context_for,
    login,
    make_article,
    make_classification,
    make_org,
    make_pending,
    make_user,
)
from newsradar import analytics
from newsradar.context import RequestContext
from newsradar.errors import ValidationFailed
from newsradar.models import ClassificationStatus, utcnow


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def org(db):
    return make_org(db, "Acme")


@pytest.fixture
def alice(db, org):
    return make_user(db, org, "alice")


@pytest.fixture
def as_alice(client, alice):
    login(client, "alice")
    return client


# ---------------------------------------------------------------------------
# GET /api/stats
# ---------------------------------------------------------------------------

class TestStats:
    def test_counts_by_verdict(self, as_alice, db, org):
        make_classification(db, make_article(db), org, classification="Threat", starred=True)
        make_classification(db, make_article(db), org, classification="Threat")
        make_classification(db, make_article(db), org, classification="Opportunity")
        make_classification(db, make_article(db), org, classification="Neutral")
        make_pending(db, make_article(db), org)

        body = as_alice.get("/api/stats").json()
        assert body == {
            "total": 5,
            "threats": 2,
            "opportunities": 1,
            "neutral": 1,
            "unclassified": 1,
            "articlesToday": 0,
            "starred": 1,
        }

    def test_outdated_rows_are_not_counted(self, as_alice, db, org):
        make_classification(db, make_article(db), org, classification="Threat")
        make_classification(db, make_article(db), org, classification="Threat", status=ClassificationStatus.OUTDATED)
        make_classification(db, make_article(db), org, classification="OUTDATED")

        body = as_alice.get("/api/stats").json()
        assert body["total"] == 1
        assert body["threats"] == 1

    def test_articles_before_org_creation_are_not_counted(self, as_alice, db, org):
        old = make_article(db, date_published=datetime(2024, 12, 1, tzinfo=timezone.utc))
        make_classification(db, old, org)

        assert as_alice.get("/api/stats").json()["total"] == 0

    def test_articles_today(self, as_alice, db, org):
        make_classification(db, make_article(db, date_published=utcnow()), org)
        make_classification(db, make_article(db), org)

        assert as_alice.get("/api/stats").json()["articlesToday"] == 1

    def test_date_parameter_narrows_counters(self, as_alice, db, org):
        make_classification(db, make_article(db, date_published=PUBLISHED), org)
        make_classification(db, make_article(db, date_published=PUBLISHED + timedelta(days=1)), org)

        body = as_alice.get("/api/stats", params={"date": PUBLISHED.date().isoformat()}).json()
        assert body["total"] == 1

    def test_unknown_organization_gets_zeros(self, db, org):
        make_classification(db, make_article(db), org)
        ghost = RequestContext(user_id=1, username="ghost", organization_id=404)

        result = analytics.stats(db, ghost)
        assert result.total == 0
        assert result.threats == 0


# ---------------------------------------------------------------------------
# GET /api/metrics
# ---------------------------------------------------------------------------

class TestMetrics:
    def test_backlog_service_level_and_own_articles(self, as_alice, db, org):
        make_pending(db, make_article(db), org)
        make_classification(db, make_article(db), org, classification_date=PUBLISHED + timedelta(hours=1))
        make_classification(
            db, make_article(db, source="uploaded by alice"), org,
            classification_date=PUBLISHED + timedelta(hours=9),
        )

        body = as_alice.get("/api/metrics").json()
        assert body == {"backlog": 1, "serviceLevel": 50.0, "ownArticles": 1}

    def test_empty_organization(self, as_alice):
        assert as_alice.get("/api/metrics").json() == {"backlog": 0, "serviceLevel": 0.0, "ownArticles": 0}


# ---------------------------------------------------------------------------
# GET /api/chart-data and /api/activity-data
# ---------------------------------------------------------------------------

class TestChartData:
    def test_series_covers_every_day(self, as_alice):
        body = as_alice.get("/api/chart-data", params={"days": 6}).json()
        assert len(body) == 7
        assert body[-1]["date"] == analytics.local_today().isoformat()
        assert all(point["threats"] == 0 for point in body)

    def test_counts_todays_threats(self, as_alice, db, org):
        make_classification(db, make_article(db, date_published=utcnow()), org, classification="Threat")
        make_classification(db, make_article(db, date_published=utcnow()), org, classification="Opportunity")
        make_classification(db, make_article(db, date_published=utcnow()), org, classification="Neutral")

        today = as_alice.get("/api/chart-data", params={"days": 0}).json()
        assert today == [{"date": analytics.local_today().isoformat(), "threats": 1, "opportunities": 1}]

    def test_invalid_interval_is_400(self, as_alice):
        response = as_alice.get("/api/chart-data", params={"interval": "year"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid interval. Must be day, week, or month."}

    def test_negative_days_rejected(self, db, org, alice):
        with pytest.raises(ValidationFailed):
            analytics.chart_data(db, context_for(alice), days=-1)

    @pytest.mark.parametrize("interval,expected", [
        ("day", date(2025, 3, 12)),
        ("week", date(2025, 3, 10)),
        ("month", date(2025, 3, 1)),
    ])
    def test_truncate(self, interval, expected):
        assert analytics.truncate(date(2025, 3, 12), interval) == expected


class TestActivityData:
    def test_published_and_classified_today(self, as_alice, db, org):
        now = utcnow()
        make_classification(db, make_article(db, date_published=now), org, classification_date=now)
        make_article(db, date_published=now)  # not yet in the org's pipeline

        today = as_alice.get("/api/activity-data", params={"days": 0}).json()
        assert today == [{"date": analytics.local_today().isoformat(), "published": 2, "classified": 1}]


# ---------------------------------------------------------------------------
# GET /api/hourly-distribution
# ---------------------------------------------------------------------------

class TestHourlyDistribution:
    def test_buckets_by_local_hour(self, as_alice, db, org):
        # 09:30 UTC is 10:30 in Amsterdam in March (CET)
        make_classification(db, make_article(db, date_published=PUBLISHED.replace(hour=9, minute=30)), org)
        make_pending(db, make_article(db, date_published=PUBLISHED.replace(hour=9, minute=45)), org)

        body = as_alice.get("/api/hourly-distribution", params={"date": "2025-03-10"}).json()
        assert len(body["data"]) == 24
        ten = body["data"][10]
        assert ten == {"hour": 10, "threats": 1, "opportunities": 0, "neutral": 0, "unclassified": 1, "total": 2}
        assert body["meta"]["isFutureDate"] is False

    def test_future_date(self, as_alice):
        tomorrow = analytics.local_today() + timedelta(days=1)
        body = as_alice.get("/api/hourly-distribution", params={"date": tomorrow.isoformat()}).json()

        assert body["meta"]["isFutureDate"] is True
        assert all(point["total"] == 0 for point in body["data"])

    def test_date_before_org_creation(self, as_alice):
        body = as_alice.get("/api/hourly-distribution", params={"date": "2024-06-01"}).json()
        assert body["meta"]["isBeforeOrgCreation"] is True

    def test_defaults_to_today(self, as_alice, db, org):
        with patch("newsradar.analytics.local_today", return_value=date(2025, 3, 10)):
            make_classification(db, make_article(db, date_published=PUBLISHED), org)
            body = as_alice.get("/api/hourly-distribution").json()

        assert sum(point["total"] for point in body["data"]) == 1
