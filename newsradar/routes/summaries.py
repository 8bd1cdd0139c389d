import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from newsradar import summaries
from newsradar.auth import tenant_context
from newsradar.context import RequestContext
from newsradar.database import get_db
from newsradar.models import Summary
from newsradar.schemas import (
    DeleteResponse,
    SummaryGenerated,
    SummaryGenerateRequest,
    SummaryListResponse,
    SummaryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/summaries")


def _response(summary: Summary, article_count: Optional[int] = None) -> SummaryResponse:
    return SummaryResponse(
        id=summary.id,
        date=summary.summary_date,
        version=summary.version,
        content=summary.content,
        created_at=summary.created_at,
        updated_at=summary.updated_at,
        article_count=article_count,
    )


@router.get("")
def get_summaries(
    day: Optional[date] = Query(None, alias="date"),
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """
    Without ?date= returns every summary of the organization, newest first.
    With ?date= returns only the latest version for that date (404 if none).
    """
    if day is not None:
        summary = summaries.latest_summary(db, ctx, day)
        return _response(summary).model_dump(by_alias=True, mode="json")

    rows = summaries.list_summaries(db, ctx)
    return SummaryListResponse(summaries=[_response(s) for s in rows]).model_dump(by_alias=True, mode="json")


@router.post("/generate", response_model=SummaryGenerated)
def generate(
    payload: SummaryGenerateRequest,
    ctx: RequestContext = Depends(tenant_context),
    db: Session = Depends(get_db),
):
    """Generate the next summary version for a date. Blocks on the LLM call."""
    logger.info(f"[/api/summaries/generate] Generating summary for {payload.date}")
    summary, article_count = summaries.generate_summary(db, ctx, payload.date)
    return SummaryGenerated(summary=_response(summary, article_count))


@router.delete("/{summary_id}", response_model=DeleteResponse)
def delete(summary_id: int, ctx: RequestContext = Depends(tenant_context), db: Session = Depends(get_db)):
    summaries.delete_summary(db, ctx, summary_id)
    return DeleteResponse(message="Summary deleted successfully")
