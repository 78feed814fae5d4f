"""
Database Models (SQLAlchemy ORM)
Audit tables (score_history, calculation_events) are insert-only - NO UPDATES, NO DELETES
"""

import uuid

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, JSON,
    Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from portfolio_engine.infrastructure.db.database import Base
from portfolio_engine.utils.time import now_utc_naive


def _uuid() -> str:
    return str(uuid.uuid4())


# Users & portfolio (read-only for the engine)

class UserModel(Base):
    """Investor account"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    base_currency = Column(String(3), nullable=False, default="USD")
    default_contribution = Column(Numeric(19, 4), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    portfolios = relationship("PortfolioModel", back_populates="user")


class PortfolioModel(Base):
    """User portfolio"""
    __tablename__ = "portfolios"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    user = relationship("UserModel", back_populates="portfolios")
    assets = relationship("PortfolioAssetModel", back_populates="portfolio")


class AssetClassModel(Base):
    """Asset class with optional target band"""
    __tablename__ = "asset_classes"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    target_min = Column(Numeric(7, 4), nullable=True)
    target_max = Column(Numeric(7, 4), nullable=True)
    min_allocation_value = Column(Numeric(19, 4), nullable=True)
    max_assets = Column(Integer, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)


class AssetSubclassModel(Base):
    """Subclass inside an asset class"""
    __tablename__ = "asset_subclasses"

    id = Column(String(36), primary_key=True, default=_uuid)
    class_id = Column(String(36), ForeignKey("asset_classes.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    target_min = Column(Numeric(7, 4), nullable=True)
    target_max = Column(Numeric(7, 4), nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)


class PortfolioAssetModel(Base):
    """Position held in a portfolio"""
    __tablename__ = "portfolio_assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)
    name = Column(String(100), nullable=True)
    quantity = Column(Numeric(19, 8), nullable=False)
    currency = Column(String(3), nullable=False)
    class_id = Column(String(36), ForeignKey("asset_classes.id"), nullable=True)
    subclass_id = Column(String(36), ForeignKey("asset_subclasses.id"), nullable=True)
    is_ignored = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    portfolio = relationship("PortfolioModel", back_populates="assets")

    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uq_portfolio_asset_symbol"),
    )


# Criteria

class CriteriaVersionModel(Base):
    """
    Published rule set.
    Rows are never edited: a change publishes version n+1. Only is_active flips.
    """
    __tablename__ = "criteria_versions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    name = Column(String(100), nullable=False)
    asset_type = Column(String(20), nullable=False, default="stock")
    target_market = Column(String(50), nullable=False, default="global")
    criteria = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        Index("ix_criteria_versions_user_active", "user_id", "is_active"),
        UniqueConstraint("user_id", "asset_type", "target_market", "version", name="uq_criteria_version"),
    )


# Market data (already fetched upstream)

class AssetFundamentalsModel(Base):
    """Fundamental metrics per symbol and date (metric -> decimal string or JSON number)"""
    __tablename__ = "asset_fundamentals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False)
    data_date = Column(Date, nullable=False)
    metrics = Column(JSON, nullable=False)
    source = Column(String(50), nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("symbol", "data_date", name="uq_fundamentals_symbol_date"),
    )


class AssetPriceModel(Base):
    """Closing price per symbol and date"""
    __tablename__ = "asset_prices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(20), nullable=False)
    price_date = Column(Date, nullable=False)
    close = Column(Numeric(19, 4), nullable=False)
    currency = Column(String(3), nullable=False)
    source = Column(String(50), nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("symbol", "price_date", name="uq_prices_symbol_date"),
    )


class ExchangeRateModel(Base):
    """Currency pair rate per date"""
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_currency = Column(String(3), nullable=False)
    target_currency = Column(String(3), nullable=False)
    rate = Column(Numeric(19, 8), nullable=False)
    rate_date = Column(Date, nullable=False)
    source = Column(String(50), nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("base_currency", "target_currency", "rate_date", name="uq_rates_pair_date"),
    )


# Scores

class AssetScoreModel(Base):
    """Current score per user and asset (upserted)"""
    __tablename__ = "asset_scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    asset_id = Column(String(36), nullable=False)
    symbol = Column(String(20), nullable=False)
    criteria_version_id = Column(String(36), ForeignKey("criteria_versions.id"), nullable=False)
    score = Column(Numeric(9, 4), nullable=False)
    max_possible_score = Column(Numeric(9, 4), nullable=False)
    breakdown = Column(JSON, nullable=False)
    calculated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "asset_id", name="uq_asset_scores_user_asset"),
    )


class ScoreHistoryModel(Base):
    """Append-only score history"""
    __tablename__ = "score_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    asset_id = Column(String(36), nullable=False)
    symbol = Column(String(20), nullable=False)
    criteria_version_id = Column(String(36), ForeignKey("criteria_versions.id"), nullable=False)
    score = Column(Numeric(9, 4), nullable=False)
    max_possible_score = Column(Numeric(9, 4), nullable=False)
    breakdown = Column(JSON, nullable=False)
    calculated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_score_history_user_asset_date", "user_id", "asset_id", "calculated_at"),
    )


# Audit trail

class CalculationEventModel(Base):
    """Append-only calculation event"""
    __tablename__ = "calculation_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    correlation_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=False)
    event_type = Column(String(50), nullable=False)
    sequence = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("correlation_id", "sequence", name="uq_calculation_events_sequence"),
        Index("ix_calculation_events_correlation", "correlation_id"),
        Index("ix_calculation_events_user_created", "user_id", "created_at"),
        Index("ix_calculation_events_user_type", "user_id", "event_type"),
    )


# Recommendations

class RecommendationModel(Base):
    """Recommendation session header; only status changes after insert"""
    __tablename__ = "recommendations"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False)
    correlation_id = Column(String(36), nullable=False, unique=True)
    criteria_version_id = Column(String(36), nullable=False)
    total_investable = Column(Numeric(19, 4), nullable=False)
    allocated_total = Column(Numeric(19, 4), nullable=False)
    unallocated = Column(Numeric(19, 4), nullable=False)
    base_currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    audit = Column(JSON, nullable=False)
    allocation_statuses = Column(JSON, nullable=False)
    generated_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)

    items = relationship(
        "RecommendationItemModel",
        back_populates="recommendation",
        order_by="RecommendationItemModel.sort_order",
    )

    __table_args__ = (
        Index("ix_recommendations_user_generated", "user_id", "generated_at"),
    )


class RecommendationItemModel(Base):
    """Per-asset recommended amount"""
    __tablename__ = "recommendation_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id"), nullable=False, index=True)
    asset_id = Column(String(36), nullable=False)
    symbol = Column(String(20), nullable=False)
    class_id = Column(String(36), nullable=False)
    score = Column(Numeric(9, 4), nullable=False)
    current_allocation = Column(Numeric(9, 4), nullable=False)
    target_allocation = Column(Numeric(9, 4), nullable=False)
    allocation_gap = Column(Numeric(9, 4), nullable=False)
    priority = Column(Numeric(19, 4), nullable=False)
    recommended_amount = Column(Numeric(19, 4), nullable=False)
    is_over_allocated = Column(Boolean, nullable=False, default=False)
    breakdown = Column(JSON, nullable=False)
    sort_order = Column(Integer, nullable=False)

    recommendation = relationship("RecommendationModel", back_populates="items")


# Jobs

class OvernightJobRunModel(Base):
    """Overnight job run tracking"""
    __tablename__ = "overnight_job_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    job_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    users_processed = Column(Integer, nullable=False, default=0)
    users_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    metrics = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_overnight_job_runs_started", "started_at"),
    )
