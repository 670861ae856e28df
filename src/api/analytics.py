"""
Wallet Analytics API - REST endpoints over the analytics engine.

Endpoints (all under /api/analytics):
    POST /projects, /projects/{id}/wallets, /transactions  - registry & ingest
    /wallets/{id}/adoption..., /projects/{id}/adoption/... - adoption funnel
    /projects/{id}/conversion/...                          - conversion & drop-offs
    /cohorts..., /retention/...                            - cohorts & retention
    /wallets/{id}/productivity, /productivity/bulk, ...    - productivity scores
    /wallets/{id}/shielded..., /projects/{id}/shielded...  - shielded behavior

Auth: X-API-Key header (ANALYTICS_API_KEY)
Errors: AnalyticsError subclasses are mapped to status codes in api_server.py
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.api_key_auth import verify_api_key
from src.api.rate_limit import limiter
from src.core.enums import CohortType, TrendPeriod
from src.database.engine import get_session
from src.services.analytics import WalletAnalyticsService
from src.services.analytics.schemas import (
    AdoptionFunnel,
    AdoptionStatus,
    BatchResponse,
    BulkScoreRequest,
    CohortAssignment,
    CohortFunnelAnalysis,
    CohortInfo,
    CohortTypeStatistics,
    ConversionReport,
    ConversionTrends,
    DateRangeRequest,
    DropOffPoints,
    IngestRequest,
    InitializeResult,
    NewVsReturningComparison,
    OverallConversionRates,
    ProductivityScore,
    ProjectBehaviorInsights,
    ProjectCreate,
    ProjectInfo,
    ProjectProductivitySummary,
    ProjectShieldedAnalytics,
    RetentionAnomaly,
    RetentionHeatmap,
    RetentionTrends,
    SegmentedFunnel,
    ShieldedComparison,
    ShieldedDailyMetrics,
    ShieldedPercentage,
    SignificantDropOffs,
    StageConversions,
    StageUpdateResult,
    TimeToStageMetrics,
    WalletCreate,
    WalletFlowAnalysis,
    WalletInfo,
    WalletShieldedSummary,
)


router = APIRouter(
    prefix="/analytics",
    tags=["Wallet Analytics"],
    dependencies=[Depends(verify_api_key)],
)


async def get_analytics(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> WalletAnalyticsService:
    """Service bound to the request session; Redis comes from app state when configured."""
    redis = getattr(request.app.state, "redis", None)
    return WalletAnalyticsService(session, redis=redis)


# =============================================================================
# Registry & ingest
# =============================================================================


@router.post("/projects", response_model=ProjectInfo, status_code=201)
async def create_project(
    body: ProjectCreate,
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    project = await analytics.repo.create_project(body.name, body.owner)
    return ProjectInfo(id=project.id, name=project.name, created_at=project.created_at)


@router.post("/projects/{project_id}/wallets", response_model=WalletInfo, status_code=201)
async def register_wallet(
    project_id: int,
    body: WalletCreate,
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    """Register a wallet and create its adoption stage rows."""
    wallet = await analytics.register_wallet(
        project_id,
        body.address,
        address_type=body.address_type.value,
        network=body.network.value,
        created_at=body.created_at,
    )
    return WalletInfo(**asdict(wallet))


# Ingest is the only write path that scales with request size
@router.post("/transactions", response_model=BatchResponse)
@limiter.limit("30/minute")
async def ingest_transactions(
    request: Request,  # required by limiter
    body: IngestRequest,
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    """Classify decoded transactions for every tracked wallet they touch."""
    return await analytics.ingest_transactions(body.transactions)


# =============================================================================
# Adoption
# =============================================================================


@router.post("/wallets/{wallet_id}/adoption/initialize", response_model=InitializeResult)
async def initialize_adoption(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.adoption.initialize(wallet_id)


@router.post("/wallets/{wallet_id}/adoption/update", response_model=StageUpdateResult)
async def update_adoption_stages(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.update_adoption_stages(wallet_id)


@router.get("/wallets/{wallet_id}/adoption", response_model=AdoptionStatus)
async def get_adoption_status(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.adoption.get_status(wallet_id)


@router.get("/projects/{project_id}/adoption/funnel", response_model=AdoptionFunnel)
async def project_adoption_funnel(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.project_funnel(project_id)


@router.get("/projects/{project_id}/adoption/conversion-rates", response_model=StageConversions)
async def adoption_conversion_rates(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.adoption.conversion_rates(project_id)


@router.get("/projects/{project_id}/adoption/time-to-stage", response_model=TimeToStageMetrics)
async def time_to_stage_metrics(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.adoption.time_to_stage_metrics(project_id)


@router.get("/projects/{project_id}/adoption/drop-offs", response_model=DropOffPoints)
async def adoption_drop_off_points(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.adoption.drop_off_points(project_id)


@router.get("/projects/{project_id}/adoption/segments", response_model=SegmentedFunnel)
async def adoption_by_cohort(
    project_id: int,
    cohort_type: CohortType = Query(CohortType.WEEKLY),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.adoption.segmented_by_cohort(project_id, cohort_type)


# =============================================================================
# Conversion
# =============================================================================


@router.get("/projects/{project_id}/conversion/rates", response_model=OverallConversionRates)
async def conversion_rates(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.conversion.calculate_conversion_rates(project_id)


@router.get("/projects/{project_id}/conversion/stages", response_model=StageConversions)
async def stage_conversions(
    project_id: int,
    min_sample_size: Optional[int] = Query(None, ge=1, description="Minimum from-stage wallets"),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.conversion.stage_conversions(project_id, min_sample_size)


@router.get("/projects/{project_id}/conversion/drop-offs", response_model=SignificantDropOffs)
async def significant_drop_offs(
    project_id: int,
    min_sample_size: Optional[int] = Query(None, ge=1),
    include_insignificant: bool = Query(True),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.conversion.significant_drop_offs(project_id, min_sample_size, include_insignificant)


@router.get("/projects/{project_id}/conversion/cohorts", response_model=CohortFunnelAnalysis)
async def cohort_funnel_analysis(
    project_id: int,
    cohort_type: CohortType = Query(CohortType.WEEKLY),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.conversion.cohort_funnel_analysis(project_id, cohort_type)


@router.get("/projects/{project_id}/conversion/trends", response_model=ConversionTrends)
async def conversion_trends(
    project_id: int,
    period: TrendPeriod = Query(TrendPeriod.WEEKLY),
    lookback_days: Optional[int] = Query(None, ge=1, le=730),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.conversion.conversion_trends(project_id, period, lookback_days)


@router.get("/projects/{project_id}/conversion/report", response_model=ConversionReport)
async def conversion_report(
    project_id: int,
    min_sample_size: Optional[int] = Query(None, ge=1),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.conversion_report(project_id, min_sample_size)


# =============================================================================
# Cohorts
# =============================================================================


@router.get("/cohorts/statistics", response_model=Dict[str, CohortTypeStatistics])
async def cohort_statistics(analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.cohorts.cohort_statistics()


@router.post("/cohorts/process-unassigned", response_model=BatchResponse)
async def process_unassigned_wallets(analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.cohorts.process_unassigned_wallets()


@router.post("/cohorts/refresh-counts")
async def refresh_cohort_counts(analytics: WalletAnalyticsService = Depends(get_analytics)):
    return {"cohorts_updated": await analytics.cohorts.update_cohort_wallet_counts()}


@router.post("/cohorts/range", response_model=List[CohortInfo])
async def create_cohorts_for_range(
    body: DateRangeRequest,
    cohort_type: CohortType = Query(CohortType.WEEKLY),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.cohorts.create_cohorts_for_date_range(body.start, body.end, cohort_type)


@router.post("/wallets/{wallet_id}/cohorts", response_model=CohortAssignment)
async def assign_wallet_to_cohorts(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.cohorts.assign_wallet_to_cohorts(wallet_id)


@router.get("/cohorts", response_model=List[CohortInfo])
async def list_cohorts(
    cohort_type: Optional[CohortType] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.cohorts.list_cohorts(cohort_type, limit)


@router.get("/cohorts/{cohort_id}", response_model=CohortInfo)
async def get_cohort(cohort_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.cohorts.get_cohort_info(cohort_id)


# =============================================================================
# Retention
# =============================================================================


@router.post("/cohorts/{cohort_id}/retention", response_model=Optional[CohortInfo])
async def calculate_cohort_retention(cohort_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    """Null for a cohort without members."""
    return await analytics.retention.cohort_retention(cohort_id)


@router.get("/cohorts/{cohort_id}/new-vs-returning", response_model=NewVsReturningComparison)
async def compare_new_vs_returning(cohort_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.retention.compare_new_vs_returning(cohort_id)


@router.get("/retention/statistics", response_model=Dict[str, CohortTypeStatistics])
async def retention_statistics(analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.retention.retention_statistics()


@router.post("/retention/{cohort_type}/recalculate", response_model=BatchResponse)
async def calculate_all_cohort_retention(
    cohort_type: CohortType,
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.retention.all_cohort_retention(cohort_type)


@router.get("/retention/{cohort_type}/heatmap", response_model=RetentionHeatmap)
async def retention_heatmap(
    cohort_type: CohortType,
    limit: Optional[int] = Query(None, ge=1, le=200),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.retention.heatmap(cohort_type, limit)


@router.get("/retention/{cohort_type}/trends", response_model=RetentionTrends)
async def retention_trends(
    cohort_type: CohortType,
    periods: Optional[int] = Query(None, ge=2, le=104),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.retention.trends(cohort_type, periods)


@router.get("/retention/{cohort_type}/anomalies", response_model=List[RetentionAnomaly])
async def retention_anomalies(
    cohort_type: CohortType,
    threshold: Optional[float] = Query(None, ge=0),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.retention.anomalies(cohort_type, threshold)


# =============================================================================
# Productivity
# =============================================================================


@router.get("/wallets/{wallet_id}/productivity", response_model=ProductivityScore)
async def calculate_productivity(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    """Compute without storing."""
    return await analytics.productivity.calculate(wallet_id)


@router.post("/wallets/{wallet_id}/productivity", response_model=ProductivityScore)
async def update_productivity(wallet_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.update_productivity_score(wallet_id)


@router.post("/productivity/bulk", response_model=BatchResponse)
async def bulk_productivity(body: BulkScoreRequest, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.bulk_productivity_scores(body.wallet_ids)


@router.get("/projects/{project_id}/productivity/summary", response_model=ProjectProductivitySummary)
async def productivity_summary(project_id: int, analytics: WalletAnalyticsService = Depends(get_analytics)):
    return await analytics.productivity_summary(project_id)


# =============================================================================
# Shielded behavior
# =============================================================================


@router.post("/wallets/{wallet_id}/shielded/analyze", response_model=ShieldedDailyMetrics)
async def analyze_wallet_shielded_day(
    wallet_id: int,
    day: date = Query(..., description="UTC day to analyze"),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.shielded.analyze_wallet_day(wallet_id, day)


@router.get("/wallets/{wallet_id}/shielded", response_model=WalletShieldedSummary)
async def wallet_shielded_metrics(
    wallet_id: int,
    days: int = Query(30, ge=1, le=365),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.shielded.wallet_metrics(wallet_id, days)


@router.get("/wallets/{wallet_id}/shielded/percentage", response_model=ShieldedPercentage)
async def wallet_shielded_percentage(
    wallet_id: int,
    days: int = Query(30, ge=1, le=365),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.shielded.wallet_shielded_percentage(wallet_id, days)


@router.post("/wallets/{wallet_id}/flows", response_model=WalletFlowAnalysis)
async def track_wallet_flows(
    wallet_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.flows.track_wallet_flows(wallet_id, start, end)


@router.get("/projects/{project_id}/shielded", response_model=ProjectShieldedAnalytics)
async def project_shielded_analytics(
    project_id: int,
    days: int = Query(30, ge=1, le=365),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.shielded_analytics(project_id, days)


@router.get("/projects/{project_id}/shielded/comparison", response_model=ShieldedComparison)
async def compare_shielded_vs_transparent(
    project_id: int,
    days: int = Query(30, ge=1, le=365),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.shielded.compare_users(project_id, days)


@router.get("/projects/{project_id}/shielded/behaviors", response_model=ProjectBehaviorInsights)
async def project_shielded_behaviors(
    project_id: int,
    days: int = Query(30, ge=1, le=365),
    analytics: WalletAnalyticsService = Depends(get_analytics),
):
    return await analytics.flows.analyze_project_behaviors(project_id, days)
