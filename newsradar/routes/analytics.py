import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from newsradar import analytics
from newsradar.auth import tenant_context
from newsradar.context import RequestContext
from newsradar.database import get_db
from newsradar.schemas import ActivityPoint, ChartPoint, HourlyResponse, MetricsResponse, StatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/stats", response_model=StatsResponse)
def stats(
    day: Optional[date] = Query(None, alias="date"),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Headline counters. With ?date= the counters cover only articles published that day."""
    return analytics.stats(db, ctx, day)


@router.get("/metrics", response_model=MetricsResponse)
def metrics(ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    return analytics.metrics(db, ctx)


@router.get("/chart-data", response_model=List[ChartPoint])
def chart_data(
    days: int = Query(7, ge=0, le=365),
    interval: str = "day",
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Threats and opportunities per day, week or month."""
    return analytics.chart_data(db, ctx, days, interval)


@router.get("/activity-data", response_model=List[ActivityPoint])
def activity_data(
    days: int = Query(7, ge=0, le=365),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    return analytics.activity_data(db, ctx, days)


@router.get("/hourly-distribution", response_model=HourlyResponse)
def hourly_distribution(
    day: Optional[date] = Query(None, alias="date"),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    return analytics.hourly_distribution(db, ctx, day)
