import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from newsradar import lifecycle, ratings
from newsradar.analytics import display_tz, local_today
from newsradar.auth import admin_context, tenant_context
from newsradar.classifier import classifier
from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.database import get_db
from newsradar.errors import NotFound
from newsradar.fetcher import FetcherService, ingest_articles, upload_article
from newsradar.models import Article, ArticleClassification, User, Verdict
from newsradar.schemas import (
    ArticleIngest,
    ArticleListResponse,
    ArticleResponse,
    ArticleUpload,
    DeleteResponse,
    IngestResponse,
    NewSinceLastVisitResponse,
    Pagination,
    RatedArticleResponse,
    RatingEnvelope,
    RatingRequest,
    RatingResponse,
    StarResponse,
    UploadResponse,
)
from newsradar.visibility import ArticleQuery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Named dashboard lists: name -> narrowing applied on top of the tenant filter
ARTICLE_LISTS = {
    "threats": lambda q, ctx: q.classification(Verdict.THREAT),
    "opportunities": lambda q, ctx: q.classification(Verdict.OPPORTUNITY),
    "neutral": lambda q, ctx: q.classification(Verdict.NEUTRAL),
    "starred": lambda q, ctx: q.starred(),
    "today": lambda q, ctx: q.published_on(local_today(), display_tz()),
    "backlog": lambda q, ctx: q.backlog(),
    "uploaded": lambda q, ctx: q.uploaded(),
    "new": lambda q, ctx: q.unrated_by(ctx.user_id),
}

# Lists that read best in the order work happened rather than publication order
LIST_ORDER = {
    "backlog": (Article.date_added.desc(), Article.id.desc()),
    "uploaded": (Article.date_added.desc(), Article.id.desc()),
    "new": (ArticleClassification.classification_date.desc().nulls_last(), Article.id.desc()),
}


def _responses(rows) -> List[ArticleResponse]:
    return [ArticleResponse.from_row(article, classification) for article, classification in rows]


# ---------------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------------

@router.get("/articles", response_model=ArticleListResponse)
def list_articles(
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    classification: Optional[str] = None,
    starred: bool = False,
    search: Optional[str] = None,
    day: Optional[date] = Query(None, alias="date"),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """
    Articles visible to the caller's organization, newest first, with pagination.
    Optional filters: classification, starred, free-text search, publication date.
    """
    query = ArticleQuery(db, ctx)
    if classification:
        query.classification(classification)
    if starred:
        query.starred()
    if search:
        query.search(search)
    if day:
        query.published_on(day, display_tz())

    total = query.count()
    rows = query.rows(limit=limit, offset=offset)
    logger.info(f"[/api/articles] Returning {len(rows)} of {total} articles for organization {ctx.organization_id}")

    return ArticleListResponse(
        articles=_responses(rows),
        pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + limit < total),
    )


def _named_list(name: str):
    narrow = ARTICLE_LISTS[name]

    def handler(ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
        query = narrow(ArticleQuery(db, ctx), ctx)
        rows = query.rows(limit=settings.list_limit, order_by=LIST_ORDER.get(name))
        logger.info(f"[/api/articles/{name}] Returning {len(rows)} articles")
        return _responses(rows)

    handler.__name__ = f"list_{name.replace('-', '_')}"
    handler.__doc__ = f"Dashboard list '{name}' for the caller's organization."
    return handler


# Registered ahead of /articles/{article_id} so the names are not read as ids
for _name in ARTICLE_LISTS:
    router.add_api_route(
        f"/articles/{_name}",
        _named_list(_name),
        methods=["GET"],
        response_model=List[ArticleResponse],
    )


@router.get("/articles/reviewed", response_model=List[RatedArticleResponse])
def reviewed_articles(ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    """Articles the caller has rated, most recently rated first."""
    query = ArticleQuery(db, ctx).rated_by(ctx.user_id)
    rows = query.rows(
        limit=settings.list_limit,
        order_by=(query.rated_at(ctx.user_id).desc(), Article.id.desc()),
    )
    by_article = ratings.ratings_for(db, ctx, [article.id for article, _ in rows])

    return [
        RatedArticleResponse(
            **ArticleResponse.from_row(article, classification).model_dump(),
            user_rating=by_article[article.id].rating,
            user_review=by_article[article.id].review,
        )
        for article, classification in rows
    ]


@router.get("/articles/since-last-visit", response_model=NewSinceLastVisitResponse)
def since_last_visit(ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    """Classifications completed since the caller last opened the dashboard."""
    user = db.get(User, ctx.user_id)
    last_visit = user.last_dashboard_visit if user else None

    query = ArticleQuery(db, ctx).classified()
    if last_visit is not None:
        query.classified_since(last_visit)

    rows = query.rows(
        limit=settings.list_limit,
        order_by=(ArticleClassification.classification_date.desc(), Article.id.desc()),
    )
    return NewSinceLastVisitResponse(last_visit=last_visit, count=len(rows), articles=_responses(rows))


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

@router.get("/articles/ratings", response_model=RatingEnvelope)
def get_rating(
    article_id: int = Query(..., alias="articleId"),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    rating = ratings.get_rating(db, ctx, article_id)
    return RatingEnvelope(rating=RatingResponse.model_validate(rating) if rating else None)


@router.post("/articles/ratings", response_model=RatingEnvelope)
def submit_rating(
    payload: RatingRequest,
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Rate an article's classification (1-10) with an optional review. Resubmitting overwrites."""
    rating = ratings.upsert_rating(db, ctx, payload)
    logger.info(f"[/api/articles/ratings] User {ctx.user_id} rated article {payload.article_id}: {payload.rating}")
    return RatingEnvelope(rating=RatingResponse.model_validate(rating))


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

@router.post("/upload-article", response_model=UploadResponse)
def upload(
    payload: ArticleUpload,
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Store manually entered article text as owned by the caller."""
    article = upload_article(db, ctx, payload)
    return UploadResponse(
        message="Article uploaded successfully",
        article={"id": article.id, "title": article.title},
    )


@router.post("/ingest", response_model=IngestResponse)
def ingest(
    articles: List[ArticleIngest],
    ctx: RequestContext = Depends(admin_context),
    db: Session = Depends(get_db),
):
    """Accept a batch of articles from a feed or importer and enqueue them for every active organization."""
    logger.info(f"[/api/ingest] Received batch of {len(articles)} articles")
    created = ingest_articles(db, articles)
    return IngestResponse(received=len(articles), created=created)


@router.post("/fetch", response_model=IngestResponse)
def trigger_fetch(ctx: RequestContext = Depends(admin_context), db: Session = Depends(get_db)):
    """Pull every configured RSS feed now. Blocks until complete."""
    service = FetcherService()
    created = service.fetch_all(db)
    return IngestResponse(received=created, created=created)


@router.post("/articles/classify-pending")
def classify_pending(
    limit: int = Query(20, ge=1, le=200),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Classify the oldest PENDING articles of the caller's organization."""
    return {"status": "ok", "classified": classifier.classify_pending(db, ctx, limit)}


# ---------------------------------------------------------------------------
# Single article
# ---------------------------------------------------------------------------

@router.get("/articles/{article_id}", response_model=ArticleResponse)
def get_article(article_id: int, ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    found = ArticleQuery(db, ctx, include_unprocessed=True).article(article_id).first()
    if found is None:
        raise NotFound("Article not found")
    return ArticleResponse.from_row(*found)


@router.delete("/articles/{article_id}", response_model=DeleteResponse)
def delete_article(article_id: int, ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    """
    Uploaders delete their own articles outright. Any other article is only
    hidden from the caller's organization.
    """
    outcome = lifecycle.delete_article(db, ctx, article_id)
    if outcome == "deleted":
        return DeleteResponse(message="Article deleted successfully")
    return DeleteResponse(message="Article removed from your organization's feed")


@router.patch("/articles/{article_id}/star", response_model=StarResponse)
def toggle_star(article_id: int, ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    """Toggle the star for the caller's organization only."""
    found = ArticleQuery(db, ctx).article(article_id).first()
    if found is None:
        raise NotFound("Article not found or not accessible")

    _, classification = found
    classification.starred = not classification.starred
    db.commit()
    return StarResponse(starred=classification.starred)


@router.post("/articles/{article_id}/classify", response_model=ArticleResponse)
def classify_article(article_id: int, ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    """Run the LLM classifier on one article for the caller's organization (reclassifies if already done)."""
    article, classification = classifier.classify_article(db, ctx, article_id)
    return ArticleResponse.from_row(article, classification)
