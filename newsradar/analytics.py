"""
Dashboard aggregates: counters, metrics and chart series for one organization.

Everything reads through ArticleQuery, so the date cutoff and the OUTDATED
exclusion apply to every number here. Day and hour buckets are computed in the
configured display timezone.
"""
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from newsradar import lifecycle
from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.errors import ValidationFailed
from newsradar.models import Article, ArticleClassification, ClassificationStatus, Verdict
from newsradar.schemas import (
    ActivityPoint,
    ChartPoint,
    HourlyMeta,
    HourlyPoint,
    HourlyResponse,
    MetricsResponse,
    StatsResponse,
)
from newsradar.visibility import ArticleQuery, as_utc, day_bounds

logger = logging.getLogger(__name__)

CHART_INTERVALS = ("day", "week", "month")

# Values counted as "unclassified" in the headline counters
UNCLASSIFIED_VALUES = ("Error: Unknown", Verdict.UNRESOLVED.value)


def display_tz() -> ZoneInfo:
    return ZoneInfo(settings.display_timezone)


def local_today(tz: Optional[ZoneInfo] = None) -> date:
    return datetime.now(tz or display_tz()).date()


def local_date(value: datetime, tz: ZoneInfo) -> date:
    return as_utc(value).astimezone(tz).date()


def _count_when(condition):
    return func.count(case((condition, 1)))


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

def stats(db: Session, ctx: RequestContext, day: Optional[date] = None) -> StatsResponse:
    """Headline counters, optionally restricted to articles published on `day`."""
    tz = display_tz()
    ac = ArticleClassification
    today_start, today_end = day_bounds(local_today(tz), tz)

    query = ArticleQuery(db, ctx)
    if day is not None:
        query.published_on(day, tz)

    row = query.aggregate(
        func.count(Article.id),
        _count_when(ac.classification == Verdict.THREAT.value),
        _count_when(ac.classification == Verdict.OPPORTUNITY.value),
        _count_when(ac.classification == Verdict.NEUTRAL.value),
        _count_when(ac.classification.in_(UNCLASSIFIED_VALUES)),
        _count_when(and_(Article.date_published >= today_start, Article.date_published < today_end)),
        _count_when(ac.starred.is_(True)),
    )
    values = [int(v or 0) for v in row] if row is not None else [0] * 7

    return StatsResponse(
        total=values[0],
        threats=values[1],
        opportunities=values[2],
        neutral=values[3],
        unclassified=values[4],
        articles_today=values[5],
        starred=values[6],
    )


def metrics(db: Session, ctx: RequestContext) -> MetricsResponse:
    return MetricsResponse(
        backlog=lifecycle.backlog_count(db, ctx),
        service_level=lifecycle.service_level(db, ctx),
        own_articles=ArticleQuery(db, ctx).uploaded().count(),
    )


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------

def _date_series(days: int, tz: ZoneInfo) -> List[date]:
    """Every calendar day from `days` ago through today, inclusive."""
    today = local_today(tz)
    return [today - timedelta(days=offset) for offset in range(days, -1, -1)]


def truncate(day: date, interval: str) -> date:
    if interval == "week":
        return day - timedelta(days=day.weekday())
    if interval == "month":
        return day.replace(day=1)
    return day


def chart_data(db: Session, ctx: RequestContext, days: int = 7, interval: str = "day") -> List[ChartPoint]:
    """
    Threat and opportunity counts per day. With a week or month interval the
    count for a whole period lands on the period's first day.
    """
    if interval not in CHART_INTERVALS:
        raise ValidationFailed("Invalid interval. Must be day, week, or month.")
    if days < 0:
        raise ValidationFailed("days must not be negative")

    tz = display_tz()
    series = _date_series(days, tz)
    window_start, _ = day_bounds(series[0], tz)
    _, window_end = day_bounds(series[-1], tz)

    ac = ArticleClassification
    rows = ArticleQuery(db, ctx).where(
        ac.classification.in_((Verdict.THREAT.value, Verdict.OPPORTUNITY.value))
    ).published_between(window_start, window_end).values(Article.date_published, ac.classification)

    counts = Counter(
        (truncate(local_date(published, tz), interval), verdict) for published, verdict in rows
    )
    return [
        ChartPoint(
            date=day.isoformat(),
            threats=counts[(day, Verdict.THREAT.value)],
            opportunities=counts[(day, Verdict.OPPORTUNITY.value)],
        )
        for day in series
    ]


def activity_data(db: Session, ctx: RequestContext, days: int = 7) -> List[ActivityPoint]:
    """Articles published vs. classifications completed, per day."""
    if days < 0:
        raise ValidationFailed("days must not be negative")

    tz = display_tz()
    series = _date_series(days, tz)
    window_start, _ = day_bounds(series[0], tz)
    _, window_end = day_bounds(series[-1], tz)

    published_rows = ArticleQuery(db, ctx, include_unprocessed=True).published_between(
        window_start, window_end
    ).values(Article.id, Article.date_published)
    published_by_article = {article_id: published for article_id, published in published_rows}
    published = Counter(local_date(ts, tz) for ts in published_by_article.values())

    ac = ArticleClassification
    classified_rows = ArticleQuery(db, ctx).where(
        ac.classification_date.is_not(None),
        ac.classification_date >= window_start,
        ac.classification_date < window_end,
    ).values(ac.classification_date)
    classified = Counter(local_date(ts, tz) for (ts,) in classified_rows)

    return [
        ActivityPoint(date=day.isoformat(), published=published[day], classified=classified[day])
        for day in series
    ]


def hourly_distribution(db: Session, ctx: RequestContext, day: Optional[date] = None) -> HourlyResponse:
    """Per-hour breakdown of articles published on `day` (default today)."""
    tz = display_tz()
    today = local_today(tz)
    day = day or today
    empty = [HourlyPoint(hour=h) for h in range(24)]

    query = ArticleQuery(db, ctx, include_unprocessed=True)
    if query.is_empty:
        return HourlyResponse(data=empty, meta=HourlyMeta())

    if day > today:
        return HourlyResponse(
            data=empty,
            meta=HourlyMeta(is_future_date=True, message="Selected date is in the future"),
        )
    if day < local_date(query.organization.created_at, tz):
        return HourlyResponse(
            data=empty,
            meta=HourlyMeta(
                is_before_org_creation=True,
                message="Selected date is before organization creation date",
            ),
        )

    ac = ArticleClassification
    rows = query.published_on(day, tz).values(Article.date_published, ac.classification, ac.status)

    buckets = {h: HourlyPoint(hour=h) for h in range(24)}
    for published, verdict, status in rows:
        point = buckets[as_utc(published).astimezone(tz).hour]
        point.total += 1
        if verdict == Verdict.THREAT.value:
            point.threats += 1
        elif verdict == Verdict.OPPORTUNITY.value:
            point.opportunities += 1
        elif verdict == Verdict.NEUTRAL.value:
            point.neutral += 1
        if not verdict or status == ClassificationStatus.PENDING:
            point.unclassified += 1

    logger.info(f"[hourly-distribution] Date: {day}, Total articles: {len(rows)}")
    return HourlyResponse(data=[buckets[h] for h in range(24)], meta=HourlyMeta())
