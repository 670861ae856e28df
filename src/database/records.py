"""
Typed row records returned by AnalyticsRepository.

ORM rows never leave the repository; business logic works on these frozen
dataclasses. All datetimes are timezone-aware UTC.
"""

from dataclasses import dataclass
from datetime import date, datetime, UTC
from typing import Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo), convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class ProjectRecord:
    id: int
    name: str
    created_at: datetime


@dataclass(frozen=True)
class WalletRecord:
    id: int
    project_id: int
    address: str
    address_type: str
    network: str
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class TransactionRecord:
    """One classified transaction from the wallet's point of view."""

    id: int
    wallet_id: int
    txid: str
    block_height: Optional[int]
    block_timestamp: Optional[datetime]
    tx_type: str
    tx_subtype: Optional[str]
    value_zatoshi: int
    fee_zatoshi: int
    counterparty_address: Optional[str]
    counterparty_type: str
    is_shielded: bool
    shielded_pool_entry: bool
    shielded_pool_exit: bool
    complexity_score: int = 0

    @property
    def volume(self) -> int:
        return abs(self.value_zatoshi)


@dataclass(frozen=True)
class ActivityDayRecord:
    wallet_id: int
    activity_date: date
    transaction_count: int
    total_volume_zatoshi: int
    total_fees_paid: int
    transfers_count: int
    swaps_count: int
    bridges_count: int
    shielded_count: int
    sequence_complexity_score: int
    is_active: bool
    is_returning: bool


@dataclass(frozen=True)
class StageRecord:
    wallet_id: int
    stage_name: str
    stage_order: int
    achieved_at: Optional[datetime]
    hours_to_achieve: Optional[float]
    confidence: Optional[float]

    @property
    def achieved(self) -> bool:
        return self.achieved_at is not None


@dataclass(frozen=True)
class CohortRecord:
    id: int
    cohort_type: str
    cohort_period: date
    wallet_count: int
    retention_week_1: Optional[float]
    retention_week_2: Optional[float]
    retention_week_3: Optional[float]
    retention_week_4: Optional[float]

    def week(self, n: int) -> Optional[float]:
        return getattr(self, f"retention_week_{n}")


@dataclass(frozen=True)
class CohortMemberRecord:
    wallet_id: int
    cohort_id: int
    entry_date: date


@dataclass(frozen=True)
class ScoreRecord:
    wallet_id: int
    total_score: float
    retention_score: float
    adoption_score: float
    churn_score: float
    frequency_score: float
    activity_score: float
    status: str
    risk_level: str
    calculated_at: datetime


@dataclass(frozen=True)
class ShieldedMetricRecord:
    wallet_id: int
    metric_date: date
    shielded_tx_count: int
    transparent_tx_count: int
    transparent_to_shielded_count: int
    shielded_to_transparent_count: int
    internal_shielded_count: int
    shielded_volume_zatoshi: int
    transparent_to_shielded_volume: int
    shielded_to_transparent_volume: int
    avg_shielded_duration_hours: Optional[float]
    privacy_score: int
