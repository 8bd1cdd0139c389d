import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, List

import feedparser
from sqlalchemy import select
from sqlalchemy.orm import Session

from newsradar import lifecycle
from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.models import Article, utcnow
from newsradar.schemas import ArticleIngest, ArticleUpload
from newsradar.visibility import as_utc

logger = logging.getLogger(__name__)

# Link stored for uploads that came without one
NO_LINK = "not uploaded"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def strip_html(text: str) -> str:
    """Remove HTML tags from a string, returning clean plain text."""
    return re.sub(r"<[^>]+>", "", text or "").strip()


def parse_date(entry) -> datetime:
    """
    Extract a UTC datetime from a feedparser entry.
    Falls back to the current time if no date is found.
    """
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class BaseSource(ABC):
    """A feed of articles. `source_name` becomes the article's source tag."""
    source_name: str

    @abstractmethod
    def fetch(self) -> List[ArticleIngest]:
        pass


class RSSSource(BaseSource):
    """
    Generic RSS/Atom source. Handles parsing, HTML stripping, date extraction,
    and error logging.
    """

    def __init__(self, source_name: str, feed_url: str):
        self.source_name = source_name
        self.feed_url = feed_url

    def fetch(self) -> List[ArticleIngest]:
        try:
            feed = feedparser.parse(self.feed_url)
            articles = []

            for entry in feed.entries:
                link = entry.get("link") or entry.get("id")
                title = (entry.get("title") or "").strip()
                if not link or not title:
                    logger.warning(f"[{self.source_name}] Skipping entry with no link or title")
                    continue

                # RSS body may be in 'summary' or nested inside 'content'
                raw_body = (
                    entry.get("summary")
                    or (entry.get("content") or [{}])[0].get("value")
                    or ""
                )

                articles.append(ArticleIngest(
                    title=title,
                    link=link,
                    summary=strip_html(raw_body) or None,
                    source=self.source_name,
                    date_published=parse_date(entry),
                ))

            logger.info(f"[{self.source_name}] Fetched {len(articles)} articles")
            return articles

        except Exception as e:
            # One broken feed must not stop the others
            logger.error(f"[{self.source_name}] Failed to fetch: {e}")
            return []


def configured_sources() -> List[BaseSource]:
    return [RSSSource(name, url) for name, url in settings.rss_feeds]


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

def ingest_articles(db: Session, articles: Iterable[ArticleIngest]) -> int:
    """
    Store new articles and put them into every active organization's pipeline.
    Articles whose link is already stored are not duplicated; they are only
    enqueued for organizations that do not have them yet.

    Returns the number of article rows created.
    """
    created = 0
    for item in articles:
        article = db.execute(select(Article).where(Article.link == item.link)).scalars().first()
        if article is None:
            article = Article(
                title=item.title,
                link=item.link,
                summary=item.summary,
                source=item.source,
                date_published=as_utc(item.date_published),
            )
            db.add(article)
            db.flush()
            created += 1
        lifecycle.enqueue_for_active_organizations(db, article)

    db.commit()
    return created


def upload_article(db: Session, ctx: RequestContext, upload: ArticleUpload) -> Article:
    """Store manually uploaded text, owned by the uploading user."""
    article = Article(
        title=upload.title,
        link=upload.link or NO_LINK,
        summary=upload.summary,
        source=ctx.owner_tag(),
        date_published=as_utc(upload.date_published) or utcnow(),
    )
    db.add(article)
    db.flush()
    lifecycle.enqueue_for_active_organizations(db, article)
    db.commit()

    logger.info(f"Article {article.id} uploaded by '{ctx.username}'")
    return article


class FetcherService:
    """Pulls every configured feed once and ingests the results. Runs on demand only."""

    def __init__(self, sources: List[BaseSource] = None):
        self.sources = sources if sources is not None else configured_sources()

    def fetch_all(self, db: Session) -> int:
        logger.info("Starting fetch cycle")
        created = 0

        for source in self.sources:
            articles = source.fetch()  # errors are handled inside fetch()
            if articles:
                created += ingest_articles(db, articles)

        logger.info(f"Fetch cycle complete ({created} new articles)")
        return created
