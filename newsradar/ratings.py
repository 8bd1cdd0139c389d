from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from newsradar.context import RequestContext
from newsradar.errors import NotFound
from newsradar.models import ArticleRating, utcnow
from newsradar.schemas import RatingRequest
from newsradar.visibility import ArticleQuery


def get_rating(db: Session, ctx: RequestContext, article_id: int) -> Optional[ArticleRating]:
    stmt = select(ArticleRating).where(
        ArticleRating.article_id == article_id,
        ArticleRating.user_id == ctx.user_id,
        ArticleRating.organization_id == ctx.organization_id,
    )
    return db.execute(stmt).scalar_one_or_none()


def ratings_for(db: Session, ctx: RequestContext, article_ids: List[int]) -> Dict[int, ArticleRating]:
    if not article_ids:
        return {}
    stmt = select(ArticleRating).where(
        ArticleRating.article_id.in_(article_ids),
        ArticleRating.user_id == ctx.user_id,
        ArticleRating.organization_id == ctx.organization_id,
    )
    return {r.article_id: r for r in db.execute(stmt).scalars().all()}


def upsert_rating(db: Session, ctx: RequestContext, request: RatingRequest) -> ArticleRating:
    """
    Insert or overwrite the caller's rating of an article in one atomic
    statement, so concurrent resubmissions never produce two rows.
    """
    if ArticleQuery(db, ctx, include_unprocessed=True).article(request.article_id).count() == 0:
        raise NotFound("Article not found")

    insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
    now = utcnow()
    stmt = insert(ArticleRating).values(
        article_id=request.article_id,
        user_id=ctx.user_id,
        organization_id=ctx.organization_id,
        rating=request.rating,
        review=request.review,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["article_id", "user_id", "organization_id"],
        set_={
            "rating": stmt.excluded.rating,
            "review": stmt.excluded.review,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    db.commit()

    return get_rating(db, ctx, request.article_id)
