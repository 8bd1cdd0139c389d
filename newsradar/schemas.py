from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from newsradar.models import CRITICALITY_FACTORS, Verdict

USERNAME_RE = r"^[a-zA-Z0-9._]+$"


class ApiModel(BaseModel):
    """JSON bodies use camelCase keys; snake_case is accepted on input too."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


# ---------------------------------------------------------------------------
# Classifier output (parsed from the LLM's JSON, snake_case as prompted)
# ---------------------------------------------------------------------------

class CriticalityFactor(BaseModel):
    score: int = Field(ge=0, le=100)
    explanation: Optional[str] = None


class CriticalityAssessment(BaseModel):
    score: int = Field(ge=0, le=100)
    explanation: Optional[str] = None
    correctness_factual_soundness: CriticalityFactor
    relevance_alignment: CriticalityFactor
    reasoning_transparency: CriticalityFactor
    practical_usefulness_actionability: CriticalityFactor
    clarity_communication_quality: CriticalityFactor
    safety_bias_appropriateness: CriticalityFactor

    def factors(self) -> Dict[str, CriticalityFactor]:
        return {name: getattr(self, name) for name in CRITICALITY_FACTORS}


class ClassificationVerdict(BaseModel):
    classification: Verdict
    explanation: Optional[str] = None
    reasoning: Optional[str] = None
    advice: Optional[str] = None
    criticality: Optional[CriticalityAssessment] = None

    @field_validator("classification")
    @classmethod
    def must_be_resolved(cls, value: Verdict) -> Verdict:
        if value == Verdict.UNRESOLVED:
            raise ValueError("classification must be Threat, Opportunity or Neutral")
        return value


# ---------------------------------------------------------------------------
# Auth & profile
# ---------------------------------------------------------------------------

class LoginRequest(ApiModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SessionUser(ApiModel):
    id: int
    username: str
    organization_id: Optional[int] = None
    is_admin: bool = False


class ProfileResponse(ApiModel):
    username: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    organization_id: Optional[int] = None
    organization_name: Optional[str] = None
    last_dashboard_visit: Optional[datetime] = None


class ProfileUpdate(ApiModel):
    full_name: str = Field(min_length=1)
    email: EmailStr


# ---------------------------------------------------------------------------
# Articles
# ---------------------------------------------------------------------------

class ArticleIngest(ApiModel):
    """One article pushed by a feed or importer."""
    title: str = Field(min_length=1)
    link: str = Field(min_length=1)
    summary: Optional[str] = None
    source: str = Field(min_length=1)
    date_published: datetime


class ArticleUpload(ApiModel):
    """Manually uploaded article text."""
    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    link: Optional[str] = None
    date_published: Optional[datetime] = None


class CriticalityDetailResponse(ApiModel):
    correctness_factual_soundness: int
    relevance_alignment: int
    reasoning_transparency: int
    practical_usefulness_actionability: int
    clarity_communication_quality: int
    safety_bias_appropriateness: int
    correctness_factual_soundness_explanation: Optional[str] = None
    relevance_alignment_explanation: Optional[str] = None
    reasoning_transparency_explanation: Optional[str] = None
    practical_usefulness_actionability_explanation: Optional[str] = None
    clarity_communication_quality_explanation: Optional[str] = None
    safety_bias_appropriateness_explanation: Optional[str] = None


class ArticleResponse(ApiModel):
    """An article as seen by one organization."""
    id: int
    title: str
    link: str
    summary: Optional[str] = None
    source: Optional[str] = None
    date_published: Optional[datetime] = None
    date_added: Optional[datetime] = None

    # --- Organization-scoped classification (null when not processed yet) ---
    classification: Optional[str] = None
    status: Optional[str] = None
    explanation: Optional[str] = None
    reasoning: Optional[str] = None
    advice: Optional[str] = None
    classification_date: Optional[datetime] = None
    starred: bool = False
    criti_score: Optional[int] = None
    criti_explanation: Optional[str] = None
    criticality_detail: Optional[CriticalityDetailResponse] = None

    @classmethod
    def from_row(cls, article, classification) -> "ArticleResponse":
        data = {
            "id": article.id,
            "title": article.title,
            "link": article.link,
            "summary": article.summary,
            "source": article.source,
            "date_published": article.date_published,
            "date_added": article.date_added,
        }
        if classification is not None:
            data.update(
                classification=classification.classification,
                status=classification.status.value,
                explanation=classification.explanation,
                reasoning=classification.reasoning,
                advice=classification.advice,
                classification_date=classification.classification_date,
                starred=classification.starred,
                criti_score=classification.criti_score,
                criti_explanation=classification.criti_explanation,
                criticality_detail=(
                    CriticalityDetailResponse.model_validate(classification.detail)
                    if classification.detail is not None else None
                ),
            )
        return cls(**data)


class Pagination(ApiModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class ArticleListResponse(ApiModel):
    articles: List[ArticleResponse]
    pagination: Pagination


class StarResponse(ApiModel):
    starred: bool


class DeleteResponse(ApiModel):
    success: bool = True
    message: str


class IngestResponse(ApiModel):
    status: str = "ok"
    received: int
    created: int


class UploadResponse(ApiModel):
    success: bool = True
    message: str
    article: Dict[str, Any]


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

class RatingRequest(ApiModel):
    article_id: int
    rating: int = Field(ge=1, le=10)
    review: Optional[str] = None


class RatingResponse(ApiModel):
    id: int
    rating: int
    review: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RatingEnvelope(ApiModel):
    success: bool = True
    rating: Optional[RatingResponse] = None


class RatedArticleResponse(ArticleResponse):
    user_rating: int
    user_review: Optional[str] = None


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class StatsResponse(ApiModel):
    total: int
    threats: int
    opportunities: int
    neutral: int
    unclassified: int
    articles_today: int
    starred: int


class MetricsResponse(ApiModel):
    backlog: int
    service_level: float
    own_articles: int


class ChartPoint(ApiModel):
    date: str
    threats: int
    opportunities: int


class ActivityPoint(ApiModel):
    date: str
    published: int
    classified: int


class HourlyPoint(ApiModel):
    hour: int
    threats: int = 0
    opportunities: int = 0
    neutral: int = 0
    unclassified: int = 0
    total: int = 0


class HourlyMeta(ApiModel):
    is_future_date: bool = False
    is_before_org_creation: bool = False
    message: Optional[str] = None


class HourlyResponse(ApiModel):
    data: List[HourlyPoint]
    meta: HourlyMeta


class NewSinceLastVisitResponse(ApiModel):
    last_visit: Optional[datetime] = None
    count: int
    articles: List[ArticleResponse]


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

class SummaryGenerateRequest(ApiModel):
    date: date


class SummaryResponse(ApiModel):
    id: int
    date: date
    version: int
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    article_count: Optional[int] = None


class SummaryListResponse(ApiModel):
    summaries: List[SummaryResponse]


class SummaryGenerated(ApiModel):
    success: bool = True
    summary: SummaryResponse


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

class OrganizationRequest(ApiModel):
    name: str = Field(min_length=1)
    company_context: str = Field(min_length=1)


class OrganizationStatusRequest(ApiModel):
    is_active: bool = Field(strict=True)


class OrganizationResponse(ApiModel):
    id: int
    name: str
    company_context: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    user_count: int = 0


class OrganizationEnvelope(ApiModel):
    success: bool = True
    organization: OrganizationResponse


class OrganizationListResponse(ApiModel):
    organizations: List[OrganizationResponse]


class LLMConfigRequest(ApiModel):
    system_prompt: str = Field(min_length=1)
    user_prompt_template: Optional[str] = None
    max_tokens: int = Field(ge=1, le=8000)
    temperature: float = Field(ge=0, le=2)


class LLMConfigResponse(ApiModel):
    id: int
    name: str
    system_prompt: Optional[str] = None
    user_prompt_template: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    updated_at: datetime


class LLMConfigEnvelope(ApiModel):
    success: bool = True
    organization: LLMConfigResponse


class UserCreateRequest(ApiModel):
    username: str = Field(pattern=USERNAME_RE)
    password: str = Field(min_length=8)
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None


class UserResponse(ApiModel):
    id: int
    username: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    created_at: datetime
    last_login: Optional[datetime] = None


class UserEnvelope(ApiModel):
    success: bool = True
    user: UserResponse


class UserListResponse(ApiModel):
    users: List[UserResponse]
