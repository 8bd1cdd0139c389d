"""
Classification lifecycle: one record per (article, organization).

    PENDING    --(LLM verdict)-------------------> CLASSIFIED
    PENDING    --(article/org deletion)----------> OUTDATED
    CLASSIFIED --(reclassification or deletion)--> OUTDATED

OUTDATED is terminal. OUTDATED rows stay in the table for audit and are hidden
by the visibility filter.
"""
import logging
from datetime import timedelta
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.errors import Conflict, Forbidden, NotFound
from newsradar.models import (
    Article,
    ArticleClassification,
    ClassificationStatus,
    CriticalityDetail,
    Organization,
    Verdict,
    utcnow,
)
from newsradar.schemas import ClassificationVerdict
from newsradar.visibility import UPLOADED_BY_PREFIX, ArticleQuery, as_utc

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[ClassificationStatus, FrozenSet[ClassificationStatus]] = {
    ClassificationStatus.PENDING: frozenset({ClassificationStatus.CLASSIFIED, ClassificationStatus.OUTDATED}),
    ClassificationStatus.CLASSIFIED: frozenset({ClassificationStatus.OUTDATED}),
    ClassificationStatus.OUTDATED: frozenset(),
}


class InvalidTransition(Conflict):
    pass


def can_transition(current: ClassificationStatus, target: ClassificationStatus) -> bool:
    return target in TRANSITIONS[ClassificationStatus(current)]


def transition(classification: ArticleClassification, target: ClassificationStatus) -> None:
    current = ClassificationStatus(classification.status)
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Classification {classification.id} cannot move from {current.value} to {target.value}"
        )
    classification.status = target
    logger.info(
        f"Classification {classification.id} (article={classification.article_id}, "
        f"org={classification.organization_id}): {current.value} -> {target.value}"
    )


# ---------------------------------------------------------------------------
# Entering the pipeline
# ---------------------------------------------------------------------------

def find_record(db: Session, article_id: int, organization_id: int) -> Optional[ArticleClassification]:
    """Most recent record for the pair, OUTDATED history included."""
    stmt = (
        select(ArticleClassification)
        .where(
            ArticleClassification.article_id == article_id,
            ArticleClassification.organization_id == organization_id,
        )
        .order_by(ArticleClassification.id.desc())
    )
    return db.execute(stmt).scalars().first()


def enqueue(db: Session, article: Article, organization: Organization) -> ArticleClassification:
    """
    Put an article into an organization's pipeline as PENDING.

    Returns the existing record instead when the pair already has one. That
    includes OUTDATED records, so a soft-deleted article is not brought back by
    a re-ingest.
    """
    existing = find_record(db, article.id, organization.id)
    if existing is not None:
        return existing

    record = ArticleClassification(
        article_id=article.id,
        organization_id=organization.id,
        classification=Verdict.UNRESOLVED.value,
        status=ClassificationStatus.PENDING,
    )
    db.add(record)
    db.flush()
    return record


def enqueue_for_active_organizations(db: Session, article: Article) -> List[ArticleClassification]:
    organizations = db.execute(
        select(Organization).where(Organization.is_active.is_(True))
    ).scalars().all()
    return [enqueue(db, article, org) for org in organizations]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def record_verdict(
    db: Session, classification: ArticleClassification, verdict: ClassificationVerdict
) -> ArticleClassification:
    """PENDING -> CLASSIFIED, storing the verdict, its reasoning and the criticality breakdown."""
    transition(classification, ClassificationStatus.CLASSIFIED)

    classification.classification = verdict.classification.value
    classification.explanation = verdict.explanation
    classification.reasoning = verdict.reasoning
    classification.advice = verdict.advice
    classification.classification_date = utcnow()

    if verdict.criticality is not None:
        crit = verdict.criticality
        classification.criti_score = crit.score
        classification.criti_explanation = crit.explanation
        detail = classification.detail or CriticalityDetail()
        for name, factor in crit.factors().items():
            setattr(detail, name, factor.score)
            setattr(detail, f"{name}_explanation", factor.explanation)
        classification.detail = detail

    db.flush()
    return classification


def mark_outdated(db: Session, classification: ArticleClassification) -> ArticleClassification:
    transition(classification, ClassificationStatus.OUTDATED)
    db.flush()
    return classification


def reclassify(db: Session, classification: ArticleClassification) -> ArticleClassification:
    """Supersede a verdict: the current record becomes OUTDATED and a fresh PENDING one replaces it."""
    mark_outdated(db, classification)
    replacement = ArticleClassification(
        article_id=classification.article_id,
        organization_id=classification.organization_id,
        classification=Verdict.UNRESOLVED.value,
        status=ClassificationStatus.PENDING,
        starred=classification.starred,
    )
    db.add(replacement)
    db.flush()
    return replacement


# ---------------------------------------------------------------------------
# Deletion by a user
# ---------------------------------------------------------------------------

def delete_article(db: Session, ctx: RequestContext, article_id: int) -> str:
    """
    Delete an article on behalf of a user.

    - Uploaded by this user ("uploaded by {username}"): the article row is
      removed, and with it every organization's classifications and ratings.
    - Uploaded by a different user: refused.
    - Anything else (feeds, legacy 'imported'/'uploaded'): only the caller's
      organization's record becomes OUTDATED. The article and other
      organizations' records are untouched.

    Returns "deleted" or "outdated".
    """
    query = ArticleQuery(db, ctx, include_unprocessed=True)
    found = query.article(article_id).first()
    if found is None:
        raise NotFound("Article not found")

    article, classification = found
    source = article.source or ""

    if source == ctx.owner_tag():
        db.delete(article)
        db.commit()
        logger.info(f"Article {article_id} deleted by its uploader '{ctx.username}'")
        return "deleted"

    if source.startswith(UPLOADED_BY_PREFIX):
        raise Forbidden("You can only delete articles you uploaded")

    if classification is None:
        # Not in this organization's pipeline yet; record it so it stays hidden
        classification = enqueue(db, article, query.organization)
    mark_outdated(db, classification)
    db.commit()
    logger.info(
        f"Article {article_id} hidden for organization {ctx.organization_id} by '{ctx.username}'"
    )
    return "outdated"


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def backlog_query(db: Session, ctx: RequestContext) -> ArticleQuery:
    """Unresolved records (empty verdict or PENDING) for the caller's organization."""
    return ArticleQuery(db, ctx).backlog()


def backlog_count(db: Session, ctx: RequestContext) -> int:
    return backlog_query(db, ctx).count()


def service_level(db: Session, ctx: RequestContext, hours: Optional[int] = None) -> float:
    """
    Percentage (one decimal) of visible classifications completed within `hours`
    of publication. Only records with both timestamps count.
    """
    hours = settings.service_level_hours if hours is None else hours
    limit = timedelta(hours=hours)

    pairs = ArticleQuery(db, ctx).where(
        ArticleClassification.classification_date.is_not(None),
        Article.date_published.is_not(None),
    ).values(ArticleClassification.classification_date, Article.date_published)

    if not pairs:
        return 0.0

    within = sum(1 for classified_at, published_at in pairs
                 if as_utc(classified_at) - as_utc(published_at) <= limit)
    return round(within / len(pairs) * 100, 1)
