"""
Daily executive summaries, versioned per (date, organization).

Generating again for the same date adds version max+1; older versions stay.
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from newsradar.analytics import display_tz
from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.errors import NotFound
from newsradar.llm import LLMClient, llm
from newsradar.models import Article, ArticleClassification, Summary, Verdict
from newsradar.visibility import ArticleQuery

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are an executive business analyst creating concise daily briefings for senior "
    "management. Your summaries follow a strict format, are clear, actionable, and focused "
    "on strategic implications.\n\n"
    "IMPORTANT: Your output must be ONLY the summary content in markdown format. Do not "
    "include any preamble, explanations, or meta-commentary. Start directly with the "
    "summary content."
)


def summary_user_prompt(articles_text: str, article_count: int, day: date) -> str:
    return f"""Create a comprehensive executive summary of the day's key business developments based on the analyzed articles below.

ARTICLES ANALYZED ({article_count} threats and opportunities):

{articles_text}

TASK:
Create a professional 1-2 page executive summary following this EXACT structure:

# Executive Summary: {day.isoformat()}

## 1. Executive Overview
2-3 sentences: the most critical developments, the overall risk/opportunity balance, key strategic implications.

## 2. Key Threats
For each major threat:
- **[Article Title]**: 1-2 sentences on what happened and why it matters
  - *Impact*: specific business impact
  - *Recommendation*: concrete action to take
If no threats: state "No significant threats identified today."

## 3. Key Opportunities
For each major opportunity:
- **[Article Title]**: 1-2 sentences on what happened and why it matters
  - *Potential Value*: specific business value
  - *Recommendation*: concrete action to take
If no opportunities: state "No significant opportunities identified today."

## 4. Priority Actions
A numbered list of 3-5 concrete actions with a clear owner and timeline.

Write the summary now (markdown only, no additional text):"""


def format_articles(rows) -> str:
    blocks = []
    for index, (article, classification) in enumerate(rows, start=1):
        blocks.append(
            f"Article {index}: {article.title}\n"
            f"Summary: {(article.summary or 'N/A')[:1500]}\n"
            f"Classification: {classification.classification}\n"
            f"Explanation: {classification.explanation or 'N/A'}\n"
            f"Reasoning: {classification.reasoning or 'N/A'}\n"
            f"Advice: {classification.advice or 'N/A'}\n"
            "---"
        )
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_summaries(db: Session, ctx: RequestContext, limit: int = 100) -> List[Summary]:
    stmt = (
        select(Summary)
        .where(Summary.organization_id == ctx.organization_id)
        .order_by(Summary.summary_date.desc(), Summary.version.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def latest_summary(db: Session, ctx: RequestContext, day: date) -> Summary:
    stmt = (
        select(Summary)
        .where(Summary.organization_id == ctx.organization_id, Summary.summary_date == day)
        .order_by(Summary.version.desc())
        .limit(1)
    )
    summary = db.execute(stmt).scalars().first()
    if summary is None:
        raise NotFound("Summary not found for this date")
    return summary


def next_version(db: Session, organization_id: int, day: date) -> int:
    current: Optional[int] = db.execute(
        select(func.max(Summary.version)).where(
            Summary.organization_id == organization_id, Summary.summary_date == day
        )
    ).scalar()
    return (current or 0) + 1


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def generate_summary(
    db: Session, ctx: RequestContext, day: date, client: Optional[LLMClient] = None
) -> Tuple[Summary, int]:
    """
    Summarize the day's classified threats and opportunities for the caller's
    organization and store the result as the next version.

    Returns (summary, article_count).
    """
    client = client or llm
    ac = ArticleClassification
    rows = (
        ArticleQuery(db, ctx)
        .classified()
        .where(ac.classification.in_((Verdict.THREAT.value, Verdict.OPPORTUNITY.value)))
        .published_on(day, display_tz())
        .rows(order_by=(ac.classification, Article.title))
    )
    if not rows:
        raise NotFound("No classified threats or opportunities found for this date")

    content = client.call(
        summary_user_prompt(format_articles(rows), len(rows), day),
        system=SUMMARY_SYSTEM_PROMPT,
        model=settings.summary_model,
        max_tokens=settings.summary_max_tokens,
        temperature=settings.summary_temperature,
    )

    summary = Summary(
        summary_date=day,
        version=next_version(db, ctx.organization_id, day),
        organization_id=ctx.organization_id,
        content=content,
    )
    db.add(summary)
    db.commit()
    db.refresh(summary)

    logger.info(
        f"Generated summary v{summary.version} for {day} (organization {ctx.organization_id}, "
        f"{len(rows)} articles)"
    )
    return summary, len(rows)


def delete_summary(db: Session, ctx: RequestContext, summary_id: int) -> None:
    summary = db.get(Summary, summary_id)
    if summary is None or summary.organization_id != ctx.organization_id:
        raise NotFound("Summary not found")
    db.delete(summary)
    db.commit()
    logger.info(f"Deleted summary {summary_id} (organization {ctx.organization_id})")
