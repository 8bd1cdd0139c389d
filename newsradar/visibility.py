"""
Tenant visibility filter and the query builder every read path goes through.

An article is visible to organization O when

    article.date_published >= O.created_at
    AND (classification IS NULL OR classification != 'OUTDATED')
    AND (status IS NULL OR status != 'OUTDATED')

where classification/status come from O's own classification row (or are NULL
when the article has not entered O's pipeline yet). The date cutoff applies to
the article itself, so it holds even without a classification row.

If the caller's organization does not resolve, ArticleQuery is fail-closed:
every terminal returns an empty result, never an unfiltered one.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from newsradar.context import RequestContext
from newsradar.models import (
    LEGACY_OUTDATED,
    Article,
    ArticleClassification,
    ArticleRating,
    ClassificationStatus,
    Organization,
    Verdict,
)

logger = logging.getLogger(__name__)

UPLOAD_SOURCES = ("imported", "uploaded")
UPLOADED_BY_PREFIX = "uploaded by "


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to aware UTC. Naive values are taken to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day in the given timezone."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def outdated_excluded():
    """Hide OUTDATED records, whichever field marks them, while keeping NULL (unprocessed) rows."""
    ac = ArticleClassification
    return and_(
        or_(ac.classification.is_(None), ac.classification != LEGACY_OUTDATED),
        or_(ac.status.is_(None), ac.status != ClassificationStatus.OUTDATED),
    )


def visibility_predicate(organization: Organization):
    """The canonical "visible to this organization" predicate."""
    return and_(
        Article.date_published >= organization.created_at,
        outdated_excluded(),
    )


def backlog_predicate():
    ac = ArticleClassification
    return or_(
        ac.classification.is_(None),
        ac.classification == Verdict.UNRESOLVED.value,
        ac.status == ClassificationStatus.PENDING,
    )


def uploaded_predicate():
    return or_(
        Article.source.in_(UPLOAD_SOURCES),
        Article.source.startswith(UPLOADED_BY_PREFIX, autoescape=True),
    )


def resolve_organization(db: Session, ctx: RequestContext) -> Optional[Organization]:
    if ctx.organization_id is None:
        return None
    return db.get(Organization, ctx.organization_id)


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------

class ArticleQuery:
    """
    Builds tenant-scoped article reads.

    The organization filter, the date cutoff and the OUTDATED exclusion are
    always applied; filter methods only narrow further. Filter methods mutate
    and return the builder so calls can be chained:

        ArticleQuery(db, ctx).classification(Verdict.THREAT).starred().rows()

    By default only articles with a classification row for the organization are
    returned. With ``include_unprocessed=True`` articles that have not entered
    the organization's pipeline yet are returned as well (classification None).
    """

    def __init__(self, db: Session, ctx: RequestContext, include_unprocessed: bool = False):
        self.db = db
        self.ctx = ctx
        self.include_unprocessed = include_unprocessed
        self.organization = resolve_organization(db, ctx)
        self._filters = []

        if self.organization is None:
            logger.warning(
                f"Organization {ctx.organization_id} for user '{ctx.username}' did not resolve; "
                "returning empty results"
            )

    @property
    def is_empty(self) -> bool:
        return self.organization is None

    # --- Filters ---------------------------------------------------------

    def where(self, *criteria) -> "ArticleQuery":
        self._filters.extend(criteria)
        return self

    def article(self, article_id: int) -> "ArticleQuery":
        return self.where(Article.id == article_id)

    def classification(self, value) -> "ArticleQuery":
        value = value.value if isinstance(value, Verdict) else value
        return self.where(ArticleClassification.classification == value)

    def classified(self) -> "ArticleQuery":
        return self.where(ArticleClassification.status == ClassificationStatus.CLASSIFIED)

    def starred(self) -> "ArticleQuery":
        return self.where(ArticleClassification.starred.is_(True))

    def backlog(self) -> "ArticleQuery":
        return self.where(backlog_predicate())

    def uploaded(self) -> "ArticleQuery":
        return self.where(uploaded_predicate())

    def uploaded_by(self, username: str) -> "ArticleQuery":
        return self.where(Article.source == f"{UPLOADED_BY_PREFIX}{username}")

    def published_between(self, start: datetime, end: datetime) -> "ArticleQuery":
        return self.where(Article.date_published >= as_utc(start), Article.date_published < as_utc(end))

    def published_on(self, day: date, tz: ZoneInfo) -> "ArticleQuery":
        return self.published_between(*day_bounds(day, tz))

    def classified_since(self, since: datetime) -> "ArticleQuery":
        return self.where(ArticleClassification.classification_date > as_utc(since))

    def search(self, term: str) -> "ArticleQuery":
        term = (term or "").strip()
        if not term:
            return self
        return self.where(or_(
            Article.title.icontains(term, autoescape=True),
            Article.summary.icontains(term, autoescape=True),
        ))

    def _rating_exists(self, user_id: int):
        return exists().where(
            ArticleRating.article_id == Article.id,
            ArticleRating.user_id == user_id,
            ArticleRating.organization_id == self.ctx.organization_id,
        )

    def rated_by(self, user_id: int) -> "ArticleQuery":
        return self.where(self._rating_exists(user_id))

    def unrated_by(self, user_id: int) -> "ArticleQuery":
        return self.where(~self._rating_exists(user_id))

    def rated_at(self, user_id: int):
        """When the user last rated each article, as an ORDER BY expression for ``rows``."""
        return (
            select(ArticleRating.updated_at)
            .where(
                ArticleRating.article_id == Article.id,
                ArticleRating.user_id == user_id,
                ArticleRating.organization_id == self.ctx.organization_id,
            )
            .correlate(Article)
            .scalar_subquery()
        )

    # --- Statement assembly ----------------------------------------------

    def statement(self, *columns):
        """
        SELECT of the given columns/entities over the visible article set.
        Only valid when the organization resolved.
        """
        ac = ArticleClassification
        on_clause = and_(ac.article_id == Article.id, ac.organization_id == self.organization.id)

        stmt = select(*columns).select_from(Article)
        if self.include_unprocessed:
            stmt = stmt.outerjoin(ac, on_clause)
        else:
            stmt = stmt.join(ac, on_clause)

        return stmt.where(visibility_predicate(self.organization), *self._filters)

    # --- Terminals -------------------------------------------------------

    def rows(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        order_by: Optional[Sequence] = None,
    ) -> List[Tuple[Article, Optional[ArticleClassification]]]:
        """Visible (article, classification) pairs, newest publication first by default."""
        if self.is_empty:
            return []

        if order_by is None:
            order_by = (Article.date_published.desc().nulls_last(), Article.id.desc())

        stmt = (
            self.statement(Article, ArticleClassification)
            .options(selectinload(ArticleClassification.detail))
            .order_by(*order_by)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [(row[0], row[1]) for row in self.db.execute(stmt).all()]

    def first(self) -> Optional[Tuple[Article, Optional[ArticleClassification]]]:
        found = self.rows(limit=1)
        return found[0] if found else None

    def count(self) -> int:
        if self.is_empty:
            return 0
        return self.db.execute(self.statement(func.count(Article.id))).scalar_one()

    def aggregate(self, *columns):
        """One row of aggregate expressions over the visible set, or None when fail-closed."""
        if self.is_empty:
            return None
        return self.db.execute(self.statement(*columns)).one()

    def values(self, *columns) -> list:
        """Plain column tuples over the visible set, for bucketing in Python."""
        if self.is_empty:
            return []
        return self.db.execute(self.statement(*columns)).all()
