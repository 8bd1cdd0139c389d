"""
Unit tests for the classification lifecycle: transitions, enqueueing,
deletion semantics, backlog and service level.
"""
from datetime import timedelta

import pytest
from sqlalchemy import select

from helpers import (
    PUBLISHED,
    context_for,
    make_article,
    make_classification,
    make_org,
    make_pending,
    make_user,
)
from newsradar import lifecycle
from newsradar.errors import Forbidden, NotFound
from newsradar.models import Article, ArticleClassification, ClassificationStatus, Verdict
from newsradar.schemas import ClassificationVerdict


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def org(db):
    return make_org(db, "Acme")


@pytest.fixture
def other_org(db):
    return make_org(db, "Globex")


@pytest.fixture
def alice(db, org):
    return make_user(db, org, "alice")


@pytest.fixture
def ctx(alice):
    return context_for(alice)


def records(db, article_id):
    return db.execute(
        select(ArticleClassification)
        .where(ArticleClassification.article_id == article_id)
        .order_by(ArticleClassification.id)
    ).scalars().all()


def make_verdict(**kwargs) -> ClassificationVerdict:
    data = {
        "classification": "Opportunity",
        "explanation": "New market opens.",
        "reasoning": "Competitor exits.",
        "advice": "Expand sales team.",
        "criticality": {
            "score": 80,
            "explanation": "Solid",
            "correctness_factual_soundness": {"score": 90, "explanation": "ok"},
            "relevance_alignment": {"score": 85},
            "reasoning_transparency": {"score": 70},
            "practical_usefulness_actionability": {"score": 75},
            "clarity_communication_quality": {"score": 80},
            "safety_bias_appropriateness": {"score": 95},
        },
    }
    data.update(kwargs)
    return ClassificationVerdict.model_validate(data)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestTransitions:
    @pytest.mark.parametrize("current,target", [
        (ClassificationStatus.PENDING, ClassificationStatus.CLASSIFIED),
        (ClassificationStatus.PENDING, ClassificationStatus.OUTDATED),
        (ClassificationStatus.CLASSIFIED, ClassificationStatus.OUTDATED),
    ])
    def test_allowed(self, current, target):
        assert lifecycle.can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (ClassificationStatus.CLASSIFIED, ClassificationStatus.PENDING),
        (ClassificationStatus.OUTDATED, ClassificationStatus.PENDING),
        (ClassificationStatus.OUTDATED, ClassificationStatus.CLASSIFIED),
        (ClassificationStatus.CLASSIFIED, ClassificationStatus.CLASSIFIED),
    ])
    def test_rejected(self, current, target):
        assert not lifecycle.can_transition(current, target)

    def test_outdated_record_cannot_be_reopened(self, db, org):
        record = make_classification(db, make_article(db), org, status=ClassificationStatus.OUTDATED)
        with pytest.raises(lifecycle.InvalidTransition):
            lifecycle.transition(record, ClassificationStatus.CLASSIFIED)
        assert record.status == ClassificationStatus.OUTDATED


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------

class TestEnqueue:
    def test_creates_pending_record(self, db, org):
        article = make_article(db)
        record = lifecycle.enqueue(db, article, org)

        assert record.status == ClassificationStatus.PENDING
        assert record.classification == ""
        assert record.starred is False

    def test_returns_existing_record(self, db, org):
        article = make_article(db)
        first = lifecycle.enqueue(db, article, org)
        second = lifecycle.enqueue(db, article, org)

        assert first.id == second.id
        assert len(records(db, article.id)) == 1

    def test_does_not_resurrect_outdated_record(self, db, org):
        article = make_article(db)
        make_classification(db, article, org, status=ClassificationStatus.OUTDATED)

        record = lifecycle.enqueue(db, article, org)
        assert record.status == ClassificationStatus.OUTDATED
        assert len(records(db, article.id)) == 1

    def test_only_active_organizations(self, db, org):
        inactive = make_org(db, "Dormant", is_active=False)
        article = make_article(db)

        created = lifecycle.enqueue_for_active_organizations(db, article)
        assert [r.organization_id for r in created] == [org.id]
        assert inactive.id not in {r.organization_id for r in records(db, article.id)}


# ---------------------------------------------------------------------------
# Verdicts and reclassification
# ---------------------------------------------------------------------------

class TestRecordVerdict:
    def test_moves_pending_to_classified(self, db, org):
        record = make_pending(db, make_article(db), org)
        lifecycle.record_verdict(db, record, make_verdict())

        assert record.status == ClassificationStatus.CLASSIFIED
        assert record.classification == Verdict.OPPORTUNITY.value
        assert record.advice == "Expand sales team."
        assert record.classification_date is not None

    def test_stores_criticality_breakdown(self, db, org):
        record = make_pending(db, make_article(db), org)
        lifecycle.record_verdict(db, record, make_verdict())

        assert record.criti_score == 80
        assert record.detail.correctness_factual_soundness == 90
        assert record.detail.correctness_factual_soundness_explanation == "ok"
        assert record.detail.safety_bias_appropriateness == 95

    def test_verdict_without_criticality(self, db, org):
        record = make_pending(db, make_article(db), org)
        lifecycle.record_verdict(db, record, make_verdict(criticality=None))

        assert record.criti_score is None
        assert record.detail is None

    def test_classified_record_cannot_take_a_second_verdict(self, db, org):
        record = make_classification(db, make_article(db), org)
        with pytest.raises(lifecycle.InvalidTransition):
            lifecycle.record_verdict(db, record, make_verdict())


class TestReclassify:
    def test_old_record_outdated_and_new_one_pending(self, db, org):
        article = make_article(db)
        old = make_classification(db, article, org, starred=True)

        new = lifecycle.reclassify(db, old)
        db.commit()

        assert old.status == ClassificationStatus.OUTDATED
        assert new.status == ClassificationStatus.PENDING
        assert new.starred is True
        assert len(records(db, article.id)) == 2

    def test_find_record_returns_the_latest(self, db, org):
        article = make_article(db)
        old = make_classification(db, article, org)
        new = lifecycle.reclassify(db, old)
        db.commit()

        assert lifecycle.find_record(db, article.id, org.id).id == new.id


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

class TestDeleteArticle:
    def test_uploader_deletes_own_article(self, db, org, other_org, ctx):
        article = make_article(db, source="uploaded by alice")
        make_classification(db, article, org)
        make_classification(db, article, other_org)
        article_id = article.id

        assert lifecycle.delete_article(db, ctx, article_id) == "deleted"
        assert db.get(Article, article_id) is None
        assert records(db, article_id) == []

    def test_shared_article_is_only_outdated_for_caller(self, db, org, other_org, ctx):
        article = make_article(db, source="test-feed")
        mine = make_classification(db, article, org)
        theirs = make_classification(db, article, other_org)

        assert lifecycle.delete_article(db, ctx, article.id) == "outdated"
        assert db.get(Article, article.id) is not None
        assert mine.status == ClassificationStatus.OUTDATED
        assert theirs.status == ClassificationStatus.CLASSIFIED

    def test_legacy_uploaded_source_is_soft_deleted(self, db, org, ctx):
        article = make_article(db, source="uploaded")
        make_classification(db, article, org)

        assert lifecycle.delete_article(db, ctx, article.id) == "outdated"

    def test_another_users_upload_is_refused(self, db, org, ctx):
        article = make_article(db, source="uploaded by bob")
        make_classification(db, article, org)

        with pytest.raises(Forbidden):
            lifecycle.delete_article(db, ctx, article.id)
        assert db.get(Article, article.id) is not None

    def test_unprocessed_article_is_hidden_by_an_outdated_record(self, db, org, ctx):
        article = make_article(db)

        assert lifecycle.delete_article(db, ctx, article.id) == "outdated"
        (record,) = records(db, article.id)
        assert record.status == ClassificationStatus.OUTDATED

    def test_invisible_article_is_not_found(self, db, org, ctx):
        article = make_article(db)
        make_classification(db, article, org, status=ClassificationStatus.OUTDATED)

        with pytest.raises(NotFound):
            lifecycle.delete_article(db, ctx, article.id)


# ---------------------------------------------------------------------------
# Backlog and service level
# ---------------------------------------------------------------------------

class TestBacklog:
    def test_counts_pending_and_empty_verdicts(self, db, org, ctx):
        make_pending(db, make_article(db), org)
        make_classification(db, make_article(db), org, classification="")
        make_classification(db, make_article(db), org, classification="Threat")

        assert lifecycle.backlog_count(db, ctx) == 2

    def test_excludes_outdated(self, db, org, ctx):
        make_classification(
            db, make_article(db), org, classification="", status=ClassificationStatus.OUTDATED
        )
        assert lifecycle.backlog_count(db, ctx) == 0

    def test_scoped_to_caller_org(self, db, org, other_org, ctx):
        make_pending(db, make_article(db), other_org)
        assert lifecycle.backlog_count(db, ctx) == 0


class TestServiceLevel:
    def test_share_within_threshold(self, db, org, ctx):
        fast = make_article(db)
        slow = make_article(db)
        make_classification(db, fast, org, classification_date=PUBLISHED + timedelta(hours=2))
        make_classification(db, slow, org, classification_date=PUBLISHED + timedelta(hours=10))

        assert lifecycle.service_level(db, ctx) == 50.0

    def test_boundary_counts_as_within(self, db, org, ctx):
        make_classification(db, make_article(db), org, classification_date=PUBLISHED + timedelta(hours=6))
        assert lifecycle.service_level(db, ctx) == 100.0

    def test_ignores_records_without_classification_date(self, db, org, ctx):
        make_pending(db, make_article(db), org)
        make_classification(db, make_article(db), org, classification_date=PUBLISHED + timedelta(hours=1))

        assert lifecycle.service_level(db, ctx) == 100.0

    def test_ignores_outdated(self, db, org, ctx):
        make_classification(
            db, make_article(db), org,
            classification_date=PUBLISHED + timedelta(hours=30),
            status=ClassificationStatus.OUTDATED,
        )
        assert lifecycle.service_level(db, ctx) == 0.0

    def test_rounds_to_one_decimal(self, db, org, ctx):
        for hours in (1, 2, 20):
            make_classification(db, make_article(db), org, classification_date=PUBLISHED + timedelta(hours=hours))
        assert lifecycle.service_level(db, ctx) == 66.7
