"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class ProductStatus:
    """Lifecycle states. FLAGGED -> DRAFT -> PUBLISHED."""

    FLAGGED = "FLAGGED"
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"

    ALL = (FLAGGED, DRAFT, PUBLISHED)


class Product(Base):
    """A tracked real-world product."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    canonical_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Hard key extracted from the URL, e.g. "amazon:B0C1234567"
    external_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Scoring state (written only by the scoring engine)
    base_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    peak_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    days_trending: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_detected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decay_anchor_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_scored_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Primary source listing state
    on_primary_source: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_seen_on_primary_source: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(16), default=ProductStatus.FLAGGED, nullable=False
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    signals: Mapped[list["Signal"]] = relationship(
        "Signal", back_populates="product", cascade="all, delete-orphan"
    )
    score_history: Mapped[list["ScoreHistory"]] = relationship(
        "ScoreHistory", back_populates="product", cascade="all, delete-orphan"
    )
    content: Mapped[Optional["ProductContent"]] = relationship(
        "ProductContent", back_populates="product", cascade="all, delete-orphan", uselist=False
    )
    aliases: Mapped[list["ProductAlias"]] = relationship(
        "ProductAlias", back_populates="product", cascade="all, delete-orphan"
    )
    reviews: Mapped[list["ProductReview"]] = relationship(
        "ProductReview", back_populates="product", cascade="all, delete-orphan"
    )
    product_metadata: Mapped[Optional["ProductMetadata"]] = relationship(
        "ProductMetadata", back_populates="product", cascade="all, delete-orphan", uselist=False
    )
    status_audits: Mapped[list["StatusAudit"]] = relationship(
        "StatusAudit", back_populates="product", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("base_score >= 0 AND base_score <= 100", name="ck_product_base_score"),
        CheckConstraint("current_score >= 0 AND current_score <= 100", name="ck_product_current_score"),
        Index("ix_products_status_current_score", "status", "current_score"),
        Index("ix_products_on_primary_source", "on_primary_source"),
    )


class Signal(Base):
    """One observed data point about a product from one source."""

    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    signal_type: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    external_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="signals")

    __table_args__ = (
        UniqueConstraint("product_id", "source", "external_ref", name="uq_signal_idempotency"),
        Index("ix_signals_source_detected_at", "source", "detected_at"),
    )


class ScoreHistory(Base):
    """Point-in-time score snapshot for trend-line display."""

    __tablename__ = "score_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    run_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    base_score: Mapped[int] = mapped_column(Integer, nullable=False)
    current_score: Mapped[int] = mapped_column(Integer, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="score_history")

    __table_args__ = (
        Index("ix_score_history_product_recorded", "product_id", "recorded_at"),
    )


class ProductContent(Base):
    """Generated review content, owned by the content generation service."""

    __tablename__ = "product_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="content")

    @property
    def is_complete(self) -> bool:
        return bool(self.slug and self.slug.strip() and self.body and self.body.strip())


class ProductAlias(Base):
    """Historical slug kept after a merge so old links still resolve."""

    __tablename__ = "product_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="aliases")


class ProductReview(Base):
    """User quote harvested from a discussion source."""

    __tablename__ = "product_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    external_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    quote: Mapped[str] = mapped_column(Text, nullable=False)
    helpful_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("product_id", "source", "external_ref", name="uq_review_source_ref"),
    )


class ProductMetadata(Base):
    """Slow-changing primary source metadata (ratings, review counts)."""

    __tablename__ = "product_metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    star_rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    product: Mapped["Product"] = relationship("Product", back_populates="product_metadata")


class StatusAudit(Base):
    """Audit trail for lifecycle transitions."""

    __tablename__ = "status_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str] = mapped_column(String(16), nullable=False)
    to_status: Mapped[str] = mapped_column(String(16), nullable=False)
    actor: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="status_audits")


class JobRun(Base):
    """Tracks batch job runs and their summaries."""

    __tablename__ = "job_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)  # ingest, decay, metadata_refresh
    trigger: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # scheduled | manual
    status: Mapped[str] = mapped_column(String(20), default="running", nullable=False)  # running, completed, failed
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
