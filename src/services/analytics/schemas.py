"""
Wallet Analytics Schemas - pydantic models for every analytics result.

Services return these models; the API layer serves them as response_model.
Rates and percentages are on a 0..100 scale unless the field says ratio.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from src.core.enums import AddressType, Network


# =============================================================================
# Common Types
# =============================================================================


class BatchItemResult(BaseModel):
    """Outcome of one item inside a batch operation."""

    id: int | str
    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None


class BatchResponse(BaseModel):
    total: int
    succeeded: int
    failed: int
    items: List[BatchItemResult] = Field(default_factory=list)

    @classmethod
    def from_items(cls, items: List[BatchItemResult]) -> "BatchResponse":
        succeeded = sum(1 for item in items if item.success)
        return cls(total=len(items), succeeded=succeeded, failed=len(items) - succeeded, items=items)


# =============================================================================
# Transaction ingest
# =============================================================================


class TxEndpoint(BaseModel):
    """Transaction input or output."""

    address: Optional[str] = None
    value: int = 0  # zatoshi


class RawTransaction(BaseModel):
    """Already-decoded chain transaction as produced by the indexer."""

    txid: str = Field(min_length=1, max_length=64)
    block_height: Optional[int] = None
    timestamp: Optional[datetime] = None
    fee: int = 0
    type: Optional[str] = None
    inputs: List[TxEndpoint] = Field(default_factory=list)
    outputs: List[TxEndpoint] = Field(default_factory=list)


class ClassifiedTransaction(BaseModel):
    """Classifier output for one (transaction, wallet) pair."""

    txid: str
    block_height: Optional[int] = None
    block_timestamp: Optional[datetime] = None
    tx_type: str
    tx_subtype: Optional[str] = None
    value_zatoshi: int
    fee_zatoshi: int
    counterparty_address: Optional[str] = None
    counterparty_type: str
    is_shielded: bool
    shielded_pool_entry: bool
    shielded_pool_exit: bool
    input_count: int
    output_count: int
    complexity_score: int


class ProcessedTransactionResult(BaseModel):
    wallet_id: int
    txid: str
    inserted: bool  # False when (wallet_id, txid) was already stored
    transaction: ClassifiedTransaction


# =============================================================================
# Adoption
# =============================================================================


class StageStatus(BaseModel):
    stage: str
    order: int
    achieved: bool
    achieved_at: Optional[datetime] = None
    hours_to_achieve: Optional[float] = None  # from wallet creation
    hours_from_previous: Optional[float] = None
    confidence: Optional[float] = None


class InitializeResult(BaseModel):
    wallet_id: int
    initialized: bool  # False = stages already existed (no-op)
    stages: List[StageStatus]


class StageUpdateResult(BaseModel):
    wallet_id: int
    newly_achieved: List[StageStatus]
    skipped_transactions: int = 0


class AdoptionStatus(BaseModel):
    wallet_id: int
    stages: List[StageStatus]
    current_stage: Optional[str] = None
    next_stage: Optional[str] = None
    achieved_count: int
    total_stages: int
    progress_percentage: float


class FunnelStageCount(BaseModel):
    stage: str
    wallets: int
    percentage: float  # of the project's wallets


class AdoptionFunnel(BaseModel):
    project_id: int
    total_wallets: int
    stages: List[FunnelStageCount]


class StageConversion(BaseModel):
    """Conversion between two adjacent funnel stages."""

    from_stage: str
    to_stage: str
    conversion_rate: float
    drop_off_rate: float
    wallets_converted: int
    wallets_dropped: int
    sample_size: int
    statistical_significance: bool


class StageConversions(BaseModel):
    project_id: int
    min_sample_size: int
    conversions: List[StageConversion]


class TimeToStage(BaseModel):
    stage: str
    samples: int
    avg_hours: Optional[float] = None
    median_hours: Optional[float] = None
    min_hours: Optional[float] = None
    max_hours: Optional[float] = None


class TimeToStageMetrics(BaseModel):
    project_id: int
    stages: List[TimeToStage]


class DropOffPoint(BaseModel):
    from_stage: str
    to_stage: str
    drop_off_rate: float
    wallets_dropped: int
    severity: str


class DropOffPoints(BaseModel):
    project_id: int
    drop_offs: List[DropOffPoint]


class SegmentedFunnel(BaseModel):
    project_id: int
    cohort_type: str
    segments: Dict[str, AdoptionFunnel]  # keyed by cohort period (ISO date)


# =============================================================================
# Conversion
# =============================================================================


class OverallConversionRates(BaseModel):
    project_id: int
    total_wallets: int
    stage_counts: Dict[str, int]
    rates: Dict[str, float]  # "created_to_first_tx" -> %


class DropOffAnalysis(BaseModel):
    from_stage: str
    to_stage: str
    drop_off_rate: float
    wallets_dropped: int
    sample_size: int
    statistical_significance: bool
    severity: str
    priority: int  # 1..3, 3 = act first
    impact_score: float
    recommendations: List[str] = Field(default_factory=list)


class SignificantDropOffs(BaseModel):
    project_id: int
    drop_offs: List[DropOffAnalysis]


class CohortFunnelSegment(BaseModel):
    cohort_period: date
    wallet_count: int
    significant: bool
    conversions: List[StageConversion]


class CohortFunnelAnalysis(BaseModel):
    project_id: int
    cohort_type: str
    segments: Dict[str, CohortFunnelSegment]


class TrendBucket(BaseModel):
    period_start: date
    wallets: int
    stage_counts: Dict[str, int]
    created_to_first_tx: float
    first_tx_to_feature_usage: float
    sufficient_sample: bool


class ConversionTrends(BaseModel):
    project_id: int
    period: str
    lookback_days: int
    buckets: List[TrendBucket]


class ConversionReport(BaseModel):
    project_id: int
    health_score: float
    status: str  # healthy, needs_attention, critical, insufficient_data
    average_conversion_rate: float
    significant_transitions: int
    conversions: List[StageConversion]
    drop_offs: List[DropOffAnalysis]
    priority_actions: List[DropOffAnalysis]
    suggestions: List[str]
    generated_at: datetime


# =============================================================================
# Cohorts & Retention
# =============================================================================


class CohortInfo(BaseModel):
    id: int
    cohort_type: str
    cohort_period: date
    wallet_count: int
    week_1: Optional[float] = None
    week_2: Optional[float] = None
    week_3: Optional[float] = None
    week_4: Optional[float] = None


class CohortAssignment(BaseModel):
    wallet_id: int
    entry_date: date
    cohorts: List[CohortInfo]


class CohortTypeStatistics(BaseModel):
    cohort_type: str
    total_cohorts: int
    total_wallets: int
    avg_cohort_size: float
    avg_week_1: Optional[float] = None
    avg_week_2: Optional[float] = None
    avg_week_3: Optional[float] = None
    avg_week_4: Optional[float] = None
    earliest_cohort: Optional[date] = None
    latest_cohort: Optional[date] = None


class RetentionHeatmap(BaseModel):
    cohort_type: str
    rows: List[CohortInfo]


class WeekTrend(BaseModel):
    week: int
    recent_average: Optional[float] = None
    older_average: Optional[float] = None
    change: Optional[float] = None
    direction: str  # improving, declining, stable, insufficient_data
    magnitude: float = 0.0


class RetentionTrends(BaseModel):
    cohort_type: str
    cohorts_analyzed: int
    direction: str  # week_1 direction
    weeks: List[WeekTrend]


class NewVsReturningGroup(BaseModel):
    wallet_count: int = 0
    activity_rate: float = 0.0
    active_days: int = 0


class NewVsReturningComparison(BaseModel):
    cohort_id: int
    window_days: int
    new_wallets: NewVsReturningGroup
    returning_wallets: NewVsReturningGroup


class RetentionAnomaly(BaseModel):
    cohort_id: int
    cohort_period: date
    week: int
    previous_value: float
    current_value: float
    change: float
    direction: str  # spike or drop


# =============================================================================
# Productivity
# =============================================================================


class ComponentScore(BaseModel):
    name: str
    score: float
    weight: float
    weighted: float  # score * weight
    color: str


class ProductivityScore(BaseModel):
    wallet_id: int
    total_score: float
    status: str
    risk_level: str
    color: str
    components: List[ComponentScore]
    calculated_at: datetime


class ProjectProductivitySummary(BaseModel):
    project_id: int
    total_wallets: int
    scored_wallets: int
    average_score: float
    health_percentage: float
    status_distribution: Dict[str, int]
    risk_distribution: Dict[str, int]


# =============================================================================
# Shielded
# =============================================================================


class ShieldedDailyMetrics(BaseModel):
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
    avg_shielded_duration_hours: Optional[float] = None
    privacy_score: int
    behavior_type: str


class WalletShieldedSummary(BaseModel):
    wallet_id: int
    days: int
    days_with_activity: int
    shielded_tx_count: int
    transparent_tx_count: int
    transparent_to_shielded_count: int
    shielded_to_transparent_count: int
    internal_shielded_count: int
    shielded_volume_zatoshi: int
    avg_privacy_score: float
    shielded_percentage: float
    behavior_type: str
    daily: List[ShieldedDailyMetrics]


class ShieldedPercentage(BaseModel):
    wallet_id: int
    days: int
    total_transactions: int
    shielded_transactions: int
    shielded_percentage: float
    user_type: str


class ProjectShieldedDay(BaseModel):
    metric_date: date
    wallets: int
    shielded_tx_count: int
    transparent_tx_count: int
    transparent_to_shielded_count: int
    shielded_to_transparent_count: int
    internal_shielded_count: int
    shielded_volume_zatoshi: int
    avg_privacy_score: float
    shielded_percentage: float


class ProjectShieldedAnalytics(BaseModel):
    project_id: int
    days: int
    total_wallets: int
    shielded_wallets: int
    shielded_percentage: float
    avg_privacy_score: float
    user_segments: Dict[str, int]
    daily: List[ProjectShieldedDay]


class GroupMetrics(BaseModel):
    wallet_count: int
    avg_transactions: float
    avg_volume_zatoshi: float
    avg_active_days: float
    avg_session_hours: float
    retention: Dict[str, float]  # "week_1".."week_4" -> %


class ShieldedComparison(BaseModel):
    project_id: int
    days: int
    shielded_users: GroupMetrics
    transparent_users: GroupMetrics
    insights: List[str]


class ShieldedFlow(BaseModel):
    flow_start: datetime
    flow_end: datetime
    flow_type: str
    complexity: str
    transaction_count: int
    shielded_count: int
    duration_minutes: float
    has_entry: bool
    has_exit: bool


class WalletFlowAnalysis(BaseModel):
    wallet_id: int
    start: datetime
    end: datetime
    total_transactions: int
    flows: List[ShieldedFlow]
    transitions: Dict[str, int]
    behavior_pattern: str
    pattern_confidence: float
    privacy_efficiency: float
    loyalty_prediction: float
    engagement_level: str
    retention_probability: float  # ratio 0..1
    positive_indicators: List[str]
    risk_factors: List[str]


class ProjectBehaviorInsights(BaseModel):
    project_id: int
    days: int
    wallets_analyzed: int
    wallets_failed: int
    pattern_distribution: Dict[str, int]
    average_loyalty: float
    high_loyalty_wallets: int
    shielded_adoption_rate: float
    common_characteristics: List[str]
    recommendations: List[str]


# =============================================================================
# API requests & registry
# =============================================================================


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    owner: Optional[str] = None


class ProjectInfo(BaseModel):
    id: int
    name: str
    created_at: datetime


class WalletCreate(BaseModel):
    address: str = Field(min_length=1, max_length=255)
    address_type: AddressType = AddressType.TRANSPARENT
    network: Network = Network.MAINNET
    created_at: Optional[datetime] = None


class WalletInfo(BaseModel):
    id: int
    project_id: int
    address: str
    address_type: str
    network: str
    is_active: bool
    created_at: datetime


class IngestRequest(BaseModel):
    transactions: List[RawTransaction] = Field(min_length=1, max_length=1000)


class BulkScoreRequest(BaseModel):
    wallet_ids: List[int] = Field(min_length=1, max_length=500)


class DateRangeRequest(BaseModel):
    start: date
    end: date
