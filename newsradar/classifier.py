import logging
from string import Template
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from newsradar import lifecycle
from newsradar.config import settings
from newsradar.context import RequestContext
from newsradar.errors import NotFound
from newsradar.llm import LLMClient, llm
from newsradar.models import Article, ArticleClassification, ClassificationStatus, Organization
from newsradar.schemas import ClassificationVerdict
from newsradar.visibility import ArticleQuery

logger = logging.getLogger(__name__)

# Article text beyond this many characters is cut before prompting
MAX_ARTICLE_CHARS = 12000

DEFAULT_SYSTEM_PROMPT = (
    "You are a strategic intelligence analyst. You read news articles and decide whether "
    "they are a Threat, an Opportunity or Neutral for one specific company. "
    "You answer with a single JSON object and nothing else."
)

# Placeholders use $name so organization-defined templates can contain JSON braces
DEFAULT_USER_PROMPT_TEMPLATE = """Company context:
$company_context

Article title: $title
Published: $date_published

Article text:
$summary

Classify the article for this company and return JSON with exactly these keys:
{
  "classification": "Threat" | "Opportunity" | "Neutral",
  "explanation": "one or two sentences on the verdict",
  "reasoning": "the reasoning that led to the verdict",
  "advice": "concrete advice for the company",
  "criticality": {
    "score": 0-100,
    "explanation": "why this score",
    "correctness_factual_soundness": {"score": 0-100, "explanation": "..."},
    "relevance_alignment": {"score": 0-100, "explanation": "..."},
    "reasoning_transparency": {"score": 0-100, "explanation": "..."},
    "practical_usefulness_actionability": {"score": 0-100, "explanation": "..."},
    "clarity_communication_quality": {"score": 0-100, "explanation": "..."},
    "safety_bias_appropriateness": {"score": 0-100, "explanation": "..."}
  }
}"""


class ClassifierService:
    """
    Classifies articles for one organization through the external LLM and moves
    the classification record from PENDING to CLASSIFIED.

    LLM failures propagate (as UpstreamFailure) and leave the record PENDING.
    """

    def __init__(self, client: Optional[LLMClient] = None):
        self._client = client or llm

    def build_prompt(self, article: Article, organization: Organization) -> Tuple[str, str]:
        """Return (system prompt, user prompt), honoring the organization's overrides."""
        system = organization.system_prompt or DEFAULT_SYSTEM_PROMPT
        template = Template(organization.user_prompt_template or DEFAULT_USER_PROMPT_TEMPLATE)
        text = (article.summary or "")[:MAX_ARTICLE_CHARS]
        user = template.safe_substitute(
            company_context=organization.company_context,
            title=article.title,
            date_published=article.date_published.isoformat() if article.date_published else "unknown",
            summary=text or "N/A",
        )
        return system, user

    def request_verdict(self, article: Article, organization: Organization) -> ClassificationVerdict:
        """Ask the LLM for a verdict on one article in the organization's context. Nothing is written."""
        system, prompt = self.build_prompt(article, organization)
        return self._client.call_structured(
            prompt,
            ClassificationVerdict,
            system=system,
            max_tokens=organization.max_tokens or settings.classification_max_tokens,
            temperature=(
                organization.temperature
                if organization.temperature is not None
                else settings.classification_temperature
            ),
        )

    def classify(
        self,
        db: Session,
        classification: ArticleClassification,
        verdict: Optional[ClassificationVerdict] = None,
    ) -> ArticleClassification:
        """Store a verdict on one PENDING record, asking the LLM when none is given."""
        article = classification.article
        organization = classification.organization
        if verdict is None:
            verdict = self.request_verdict(article, organization)

        lifecycle.record_verdict(db, classification, verdict)
        db.commit()

        score = verdict.criticality.score if verdict.criticality else None
        logger.info(
            f"[{organization.name}] [{verdict.classification.value}] '{article.title[:60]}' "
            f"(criticality={score})"
        )
        return classification

    def classify_article(
        self, db: Session, ctx: RequestContext, article_id: int
    ) -> Tuple[Article, ArticleClassification]:
        """
        Classify (or reclassify) one article for the caller's organization.
        A CLASSIFIED record is only superseded once the new verdict is in: it
        becomes OUTDATED and a new record carries the verdict, in one commit.
        If the LLM fails, the existing verdict stays in place.
        """
        query = ArticleQuery(db, ctx, include_unprocessed=True)
        found = query.article(article_id).first()
        if found is None:
            raise NotFound("Article not found")

        article, classification = found
        if classification is not None and classification.status == ClassificationStatus.CLASSIFIED:
            verdict = self.request_verdict(article, query.organization)
            classification = lifecycle.reclassify(db, classification)
            return article, self.classify(db, classification, verdict)

        if classification is None:
            classification = lifecycle.enqueue(db, article, query.organization)
            db.commit()
        return article, self.classify(db, classification)

    def classify_pending(self, db: Session, ctx: RequestContext, limit: int = 20) -> int:
        """Work through the oldest PENDING records of the caller's organization. Returns how many were classified."""
        rows = lifecycle.backlog_query(db, ctx).where(
            ArticleClassification.status == ClassificationStatus.PENDING
        ).rows(limit=limit, order_by=(Article.date_added.asc(), Article.id.asc()))

        for _, classification in rows:
            self.classify(db, classification)

        logger.info(f"Classified {len(rows)} pending articles for organization {ctx.organization_id}")
        return len(rows)


# Shared singleton, imported by the routes
classifier = ClassifierService()
