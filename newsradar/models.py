import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from newsradar.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassificationStatus(str, enum.Enum):
    """Lifecycle of one (article, organization) classification record."""
    PENDING = "PENDING"
    CLASSIFIED = "CLASSIFIED"
    OUTDATED = "OUTDATED"   # terminal; hidden from every read path, kept for audit


class Verdict(str, enum.Enum):
    """Business verdict returned by the classifier. Never carries lifecycle state."""
    THREAT = "Threat"
    OPPORTUNITY = "Opportunity"
    NEUTRAL = "Neutral"
    UNRESOLVED = ""


# Value found in `classification` on rows written before status became the only
# soft-delete marker. Still excluded by the visibility filter.
LEGACY_OUTDATED = "OUTDATED"


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    company_context = Column(Text, nullable=False)   # fed to the LLM as prompt context
    is_active = Column(Boolean, nullable=False, default=True)

    # Articles published before this moment are never visible to the organization
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # --- Per-organization LLM overrides (null = use settings defaults) ---
    system_prompt = Column(Text, nullable=True)
    user_prompt_template = Column(Text, nullable=True)
    max_tokens = Column(Integer, nullable=True)
    temperature = Column(Float, nullable=True)

    users = relationship("User", back_populates="organization")
    classifications = relationship(
        "ArticleClassification", back_populates="organization", cascade="all, delete-orphan"
    )
    summaries = relationship("Summary", cascade="all, delete-orphan")


class Article(Base):
    """Shared across organizations. Per-tenant state lives in ArticleClassification."""
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    link = Column(String, nullable=False)
    summary = Column(Text, nullable=True)            # raw article text
    # 'imported' | 'uploaded' | 'uploaded by {username}' | scraper-assigned feed name
    source = Column(String, nullable=True)
    date_published = Column(DateTime(timezone=True), nullable=True, index=True)
    date_added = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    classifications = relationship(
        "ArticleClassification", back_populates="article", cascade="all, delete-orphan"
    )
    ratings = relationship("ArticleRating", cascade="all, delete-orphan")


class ArticleClassification(Base):
    __tablename__ = "article_classifications"

    id = Column(Integer, primary_key=True, index=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    classification = Column(String, nullable=False, default=Verdict.UNRESOLVED.value)
    status = Column(
        Enum(
            ClassificationStatus,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ClassificationStatus.PENDING,
    )
    explanation = Column(Text, nullable=True)
    reasoning = Column(Text, nullable=True)
    advice = Column(Text, nullable=True)
    classification_date = Column(DateTime(timezone=True), nullable=True)
    starred = Column(Boolean, nullable=False, default=False)

    # --- Criticality (0-100 composite, factor breakdown in CriticalityDetail) ---
    criti_score = Column(Integer, nullable=True)
    criti_explanation = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    article = relationship("Article", back_populates="classifications")
    organization = relationship("Organization", back_populates="classifications")
    detail = relationship(
        "CriticalityDetail", uselist=False, back_populates="classification", cascade="all, delete-orphan"
    )


# Only one live record per (article, organization); OUTDATED history may repeat
Index(
    "uq_classification_current",
    ArticleClassification.article_id,
    ArticleClassification.organization_id,
    unique=True,
    postgresql_where=text("status != 'OUTDATED'"),
    sqlite_where=text("status != 'OUTDATED'"),
)


CRITICALITY_FACTORS = (
    "correctness_factual_soundness",
    "relevance_alignment",
    "reasoning_transparency",
    "practical_usefulness_actionability",
    "clarity_communication_quality",
    "safety_bias_appropriateness",
)


class CriticalityDetail(Base):
    __tablename__ = "criticality_scores_detail"

    id = Column(Integer, primary_key=True)
    article_classification_id = Column(
        Integer,
        ForeignKey("article_classifications.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    correctness_factual_soundness = Column(Integer, nullable=False)
    relevance_alignment = Column(Integer, nullable=False)
    reasoning_transparency = Column(Integer, nullable=False)
    practical_usefulness_actionability = Column(Integer, nullable=False)
    clarity_communication_quality = Column(Integer, nullable=False)
    safety_bias_appropriateness = Column(Integer, nullable=False)

    correctness_factual_soundness_explanation = Column(Text, nullable=True)
    relevance_alignment_explanation = Column(Text, nullable=True)
    reasoning_transparency_explanation = Column(Text, nullable=True)
    practical_usefulness_actionability_explanation = Column(Text, nullable=True)
    clarity_communication_quality_explanation = Column(Text, nullable=True)
    safety_bias_appropriateness_explanation = Column(Text, nullable=True)

    classification = relationship("ArticleClassification", back_populates="detail")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)   # immutable; part of upload ownership tags
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_login = Column(DateTime(timezone=True), nullable=True)
    last_dashboard_visit = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", back_populates="users")


class ArticleRating(Base):
    __tablename__ = "article_ratings"
    __table_args__ = (
        UniqueConstraint("article_id", "user_id", "organization_id", name="uq_rating_article_user_org"),
    )

    id = Column(Integer, primary_key=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)   # 1-10
    review = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Summary(Base):
    __tablename__ = "summaries"
    __table_args__ = (
        UniqueConstraint("summary_date", "version", "organization_id", name="uq_summary_date_version_org"),
    )

    id = Column(Integer, primary_key=True)
    summary_date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
