"""
Database models for Zcash Wallet Analytics

SQLAlchemy 2.0 models with full type hints
"""

from datetime import datetime, date, UTC
from typing import Optional

from sqlalchemy import (
    String,
    BigInteger,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    Date,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


def utcnow() -> datetime:
    return datetime.now(UTC)


# ===========================
# PROJECTS & WALLETS
# ===========================


class Project(Base):
    """
    Customer project - owns a set of tracked wallets

    All project-level analytics (funnel, conversion report, productivity
    summary, shielded comparison) aggregate over the project's wallets.
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, comment="Project name")
    owner: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="Owning account (email or user id)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    wallets: Mapped[list["Wallet"]] = relationship(back_populates="project")

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name})>"


class Wallet(Base):
    """
    Tracked on-chain address

    Immutable once created. address_type is transparent / shielded / unified.
    """

    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    address: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True, comment="Zcash address (t-, z- or u-)"
    )
    address_type: Mapped[str] = mapped_column(
        String(20), default="transparent", nullable=False, comment="transparent, shielded, unified"
    )
    network: Mapped[str] = mapped_column(
        String(10), default="mainnet", nullable=False, comment="mainnet or testnet"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    project: Mapped["Project"] = relationship(back_populates="wallets")

    def __repr__(self) -> str:
        return f"<Wallet(id={self.id}, address={self.address[:12]}...)>"


# ===========================
# TRANSACTIONS & DAILY ROLLUP
# ===========================


class ProcessedTransaction(Base):
    """
    Classified transaction as seen by one wallet

    Append-only. (wallet_id, txid) is unique; reprocessing is a no-op.
    value_zatoshi is the signed delta for the wallet (positive = received).
    """

    __tablename__ = "processed_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    txid: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    block_height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    block_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    tx_type: Mapped[str] = mapped_column(String(20), nullable=False, comment="transfer, swap, shielded...")
    tx_subtype: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True, comment="incoming, outgoing, self, multi_party"
    )

    value_zatoshi: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    fee_zatoshi: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    counterparty_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counterparty_type: Mapped[str] = mapped_column(String(20), default="unknown", nullable=False)
    feature_used: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    sequence_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    time_since_previous_tx_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_shielded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shielded_pool_entry: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shielded_pool_exit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    complexity_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", "txid", name="uq_processed_tx_wallet_txid"),
        Index("idx_processed_tx_wallet_timestamp", "wallet_id", "block_timestamp"),
    )


class WalletActivityMetric(Base):
    """
    Daily activity rollup - one row per wallet per UTC day
    """

    __tablename__ = "wallet_activity_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_volume_zatoshi: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_fees_paid: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    transfers_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    swaps_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bridges_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shielded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    sequence_complexity_score: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="25 per distinct tx type seen that day"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_returning: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="Wallet was active on an earlier date"
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", "activity_date", name="uq_activity_wallet_date"),
    )


# ===========================
# COHORTS
# ===========================


class WalletCohort(Base):
    """
    Time-based cohort with cached week 1-4 retention

    Retention columns are a cache, recomputed from wallet_activity_metrics.
    """

    __tablename__ = "wallet_cohorts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cohort_type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    cohort_period: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    wallet_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    retention_week_1: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    retention_week_2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    retention_week_3: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    retention_week_4: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("cohort_type", "cohort_period", name="uq_cohort_type_period"),
    )


class WalletCohortAssignment(Base):
    """Cohort membership. entry_date is the wallet's first active day."""

    __tablename__ = "wallet_cohort_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cohort_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallet_cohorts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", "cohort_id", name="uq_cohort_assignment"),
    )


# ===========================
# ADOPTION & PRODUCTIVITY
# ===========================


class WalletAdoptionStage(Base):
    """
    Adoption stage state per wallet

    achieved_at NULL = not yet achieved. Never cleared once set.
    """

    __tablename__ = "wallet_adoption_stages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stage_name: Mapped[str] = mapped_column(String(20), nullable=False)
    stage_order: Mapped[int] = mapped_column(Integer, nullable=False)
    achieved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    hours_to_achieve: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True, comment="Hours from wallet creation"
    )
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="0..1 heuristic")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", "stage_name", name="uq_wallet_stage"),
    )


class WalletProductivityScore(Base):
    """Current productivity score per wallet (overwritten on recompute)"""

    __tablename__ = "wallet_productivity_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total_score: Mapped[float] = mapped_column(Float, nullable=False)
    retention_score: Mapped[float] = mapped_column(Float, nullable=False)
    adoption_score: Mapped[float] = mapped_column(Float, nullable=False)
    churn_score: Mapped[float] = mapped_column(Float, nullable=False)
    frequency_score: Mapped[float] = mapped_column(Float, nullable=False)
    activity_score: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# ===========================
# SHIELDED POOL
# ===========================


class ShieldedPoolMetric(Base):
    """Daily shielded-pool usage per wallet"""

    __tablename__ = "shielded_pool_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    metric_date: Mapped[date] = mapped_column(Date, nullable=False)

    shielded_tx_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transparent_tx_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    transparent_to_shielded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shielded_to_transparent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    internal_shielded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    shielded_volume_zatoshi: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    transparent_to_shielded_volume: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    shielded_to_transparent_volume: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    avg_shielded_duration_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    privacy_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("wallet_id", "metric_date", name="uq_shielded_metric_wallet_date"),
    )


class WalletBehaviorFlow(Base):
    """Detected shielded flow (contiguous privacy-relevant sequence)"""

    __tablename__ = "wallet_behavior_flows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    flow_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    flow_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    flow_type: Mapped[str] = mapped_column(String(30), nullable=False)
    complexity: Mapped[str] = mapped_column(String(10), nullable=False)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False)
    shielded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_minutes: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    has_entry: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_exit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_behavior_flow_wallet_start", "wallet_id", "flow_start"),
    )
