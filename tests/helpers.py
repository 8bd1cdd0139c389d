"""Factories for rows inserted straight into the test database."""
from datetime import datetime, timezone
from itertools import count

from newsradar.auth import hash_password
from newsradar.context import RequestContext
from newsradar.models import (
    Article,
    ArticleClassification,
    ClassificationStatus,
    CriticalityDetail,
    Organization,
    User,
)

ORG_CREATED = datetime(2025, 1, 1, tzinfo=timezone.utc)
PUBLISHED = datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc)
PASSWORD = "password123"

_links = count(1)


def make_org(db, name="Acme", **kwargs) -> Organization:
    defaults = {
        "name": name,
        "company_context": f"{name} is a mid-sized logistics company.",
        "created_at": ORG_CREATED,
    }
    defaults.update(kwargs)
    org = Organization(**defaults)
    db.add(org)
    db.commit()
    return org


def make_user(db, org, username="alice", password=PASSWORD, **kwargs) -> User:
    user = User(
        username=username,
        password_hash=hash_password(password),
        organization_id=org.id,
        **kwargs,
    )
    db.add(user)
    db.commit()
    return user


def make_article(db, **kwargs) -> Article:
    defaults = {
        "title": "Test Article",
        "link": f"https://example.com/article-{next(_links)}",
        "summary": "Some article text.",
        "source": "test-feed",
        "date_published": PUBLISHED,
    }
    defaults.update(kwargs)
    article = Article(**defaults)
    db.add(article)
    db.commit()
    return article


def make_classification(db, article, org, **kwargs) -> ArticleClassification:
    """A CLASSIFIED 'Threat' record by default."""
    defaults = {
        "article_id": article.id,
        "organization_id": org.id,
        "classification": "Threat",
        "status": ClassificationStatus.CLASSIFIED,
        "explanation": "Explains the verdict.",
        "classification_date": PUBLISHED.replace(hour=12),
    }
    defaults.update(kwargs)
    record = ArticleClassification(**defaults)
    db.add(record)
    db.commit()
    return record


def make_pending(db, article, org) -> ArticleClassification:
    return make_classification(
        db, article, org,
        classification="",
        status=ClassificationStatus.PENDING,
        explanation=None,
        classification_date=None,
    )


def add_detail(db, record, score=70) -> CriticalityDetail:
    detail = CriticalityDetail(
        article_classification_id=record.id,
        correctness_factual_soundness=score,
        relevance_alignment=score,
        reasoning_transparency=score,
        practical_usefulness_actionability=score,
        clarity_communication_quality=score,
        safety_bias_appropriateness=score,
    )
    db.add(detail)
    db.commit()
    return detail


def context_for(user) -> RequestContext:
    return RequestContext(user_id=user.id, username=user.username, organization_id=user.organization_id)


def login(client, username="alice", password=PASSWORD):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response
