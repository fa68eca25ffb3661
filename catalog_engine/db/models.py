"""SQLAlchemy database models for Supplier Catalog Engine."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class JobDB(Base):
    """Catalog discovery job."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)

    # Params (including the cursor) and totals are JSON documents
    params_json: Mapped[str] = mapped_column(Text, default="{}")
    totals_json: Mapped[str] = mapped_column(Text, default="{}")
    error_text: Mapped[str] = mapped_column(Text, default="")

    # Bumped on every cursor write, used for optimistic locking
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    items: Mapped[list[JobItemDB]] = relationship(
        "JobItemDB", back_populates="job", cascade="all, delete-orphan"
    )


class JobItemDB(Base):
    """Supplier product discovered by a job."""

    __tablename__ = "job_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    supplier_product_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="success")

    name: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(200), default="")

    # Metrics
    stock_sum: Mapped[int] = mapped_column(Integer, default=0)
    min_retail_local: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    min_cost_foreign: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    variant_count: Mapped[int] = mapped_column(Integer, default=0)
    priced_variant_count: Mapped[int] = mapped_column(Integer, default=0)

    variants_json: Mapped[str] = mapped_column(Text, default="[]")
    raw_json: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    # Relationships
    job: Mapped[JobDB] = relationship("JobDB", back_populates="items")

    __table_args__ = (
        UniqueConstraint("job_id", "supplier_product_id", name="uq_job_item_product"),
    )


class PricingRuleDB(Base):
    """Category or default pricing rule."""

    __tablename__ = "pricing_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="category", index=True)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True, unique=True)

    margin_percent: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("40"))
    min_profit: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("35"))
    vat_percent: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("15"))
    payment_fee_percent: Mapped[Decimal] = mapped_column(Numeric(8, 4), default=Decimal("2.9"))
    smart_rounding_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    rounding_targets_json: Mapped[str] = mapped_column(Text, default="[]")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class ApiLogDB(Base):
    """API call log for diagnostics."""

    __tablename__ = "api_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(String(200), default="")
    method: Mapped[str] = mapped_column(String(10), default="GET")

    request_params: Mapped[str] = mapped_column(Text, default="")
    response_status: Mapped[int] = mapped_column(Integer, default=0)
    response_size_bytes: Mapped[int] = mapped_column(Integer, default=0)

    duration_ms: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str] = mapped_column(Text, default="")
    success: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True)

    __table_args__ = (Index("ix_api_logs_api_time", "api_name", "created_at"),)
