"""
Conversion / Drop-off Analyzer - project-wide funnel conversion.

Aggregates adoption stage achievement across a project's wallets into
stage-to-stage conversion rates, ranks drop-offs by severity and impact,
and rolls everything into a funnel health report.

Significance here means sample size >= configured minimum, not a formal
hypothesis test. Small samples are returned flagged, never dropped.
"""

from datetime import date, datetime, timedelta, UTC
from typing import Dict, List, Optional

from loguru import logger

from src.core.enums import AdoptionStage, CohortType, Severity, TrendPeriod
from src.core.errors import NotFoundError, ValidationError
from src.database.repository import AnalyticsRepository
from src.services.analytics.adoption import conversions_from_counts
from src.services.analytics.config import AnalyticsConfig, ConversionPolicy, DEFAULT_CONFIG
from src.services.analytics.schemas import (
    CohortFunnelAnalysis,
    CohortFunnelSegment,
    ConversionReport,
    ConversionTrends,
    DropOffAnalysis,
    OverallConversionRates,
    SignificantDropOffs,
    StageConversion,
    StageConversions,
    TrendBucket,
)


# Canned guidance per funnel transition
TRANSITION_RECOMMENDATIONS: Dict[str, List[str]] = {
    "created_to_first_tx": [
        "Simplify onboarding so new wallets send their first transaction quickly",
        "Offer a guided first transaction or a small starter incentive",
        "Send a reminder to wallets that stay idle after creation",
    ],
    "first_tx_to_feature_usage": [
        "Surface additional features right after the first transaction",
        "Explain shielded transfers and other advanced features in-product",
        "Reward the second and third transaction",
    ],
    "feature_usage_to_recurring": [
        "Introduce recurring use cases such as scheduled payments",
        "Re-engage wallets that were active once and went quiet within a week",
        "Add weekly activity summaries to build a habit",
    ],
    "recurring_to_power_user": [
        "Create a loyalty tier for high-volume wallets",
        "Offer power-user tooling (batch payments, analytics exports)",
        "Identify what distinguishes existing power users and promote it",
    ],
}
GENERAL_HIGH_DROP_OFF = "Run user research on this step: more than 70% of wallets stop here"


def transition_key(from_stage: str, to_stage: str) -> str:
    return f"{from_stage}_to_{to_stage}"


def classify_severity(drop_off_rate: float, policy: ConversionPolicy) -> Severity:
    if drop_off_rate >= policy.severity_high:
        return Severity.HIGH
    if drop_off_rate >= policy.severity_medium:
        return Severity.MEDIUM
    return Severity.LOW


def analyze_drop_off(conv: StageConversion, policy: ConversionPolicy) -> DropOffAnalysis:
    """
    Severity, priority and impact for one transition.

    priority: high=3, medium=2, low=1; insignificant samples lose one level
    (never below 1).
    impact_score = drop_off_rate / 100 * wallets_dropped, i.e. the dropped
    wallet count weighted by how severe the drop is.
    """
    severity = classify_severity(conv.drop_off_rate, policy)
    priority = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}[severity]
    if not conv.statistical_significance:
        priority = max(1, priority - policy.insignificant_priority_penalty)

    recommendations = list(
        TRANSITION_RECOMMENDATIONS.get(transition_key(conv.from_stage, conv.to_stage), [])
    )
    if conv.drop_off_rate >= policy.severity_high:
        recommendations.append(GENERAL_HIGH_DROP_OFF)

    return DropOffAnalysis(
        from_stage=conv.from_stage,
        to_stage=conv.to_stage,
        drop_off_rate=conv.drop_off_rate,
        wallets_dropped=conv.wallets_dropped,
        sample_size=conv.sample_size,
        statistical_significance=conv.statistical_significance,
        severity=severity.value,
        priority=priority,
        impact_score=round(conv.drop_off_rate / 100 * conv.wallets_dropped, 2),
        recommendations=recommendations,
    )


def _bucket_start(day: date, period: TrendPeriod) -> date:
    if period == TrendPeriod.DAILY:
        return day
    if period == TrendPeriod.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


class ConversionAnalyzer:
    """Stage conversions, drop-off ranking and funnel health report."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.conversion

    async def _require_project(self, project_id: int) -> None:
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})

    async def calculate_conversion_rates(self, project_id: int) -> OverallConversionRates:
        """Rates from `created` to every later stage plus adjacent pairs."""
        await self._require_project(project_id)
        wallets = await self.repo.list_project_wallets(project_id)
        counts = await self.repo.get_stage_counts(project_id)

        rates: Dict[str, float] = {}
        for from_stage, to_stage in AdoptionStage.transitions():
            base = counts.get(from_stage.value, 0)
            reached = counts.get(to_stage.value, 0)
            rates[transition_key(from_stage.value, to_stage.value)] = (
                round(reached / base * 100, 2) if base > 0 else 0.0
            )

        created = counts.get(AdoptionStage.CREATED.value, 0)
        for stage in AdoptionStage.ordered()[2:]:
            reached = counts.get(stage.value, 0)
            rates[transition_key(AdoptionStage.CREATED.value, stage.value)] = (
                round(reached / created * 100, 2) if created > 0 else 0.0
            )

        return OverallConversionRates(
            project_id=project_id,
            total_wallets=len(wallets),
            stage_counts={s.value: counts.get(s.value, 0) for s in AdoptionStage.ordered()},
            rates=rates,
        )

    async def stage_conversions(
        self, project_id: int, min_sample_size: Optional[int] = None
    ) -> StageConversions:
        """Adjacent-stage conversions flagged by sample significance."""
        await self._require_project(project_id)
        if min_sample_size is not None and min_sample_size < 1:
            raise ValidationError("min_sample_size must be >= 1", {"min_sample_size": min_sample_size})

        min_sample = min_sample_size or self.policy.min_sample_size
        counts = await self.repo.get_stage_counts(project_id)
        return StageConversions(
            project_id=project_id,
            min_sample_size=min_sample,
            conversions=conversions_from_counts(counts, min_sample),
        )

    async def significant_drop_offs(
        self,
        project_id: int,
        min_sample_size: Optional[int] = None,
        include_insignificant: bool = True,
    ) -> SignificantDropOffs:
        """Drop-offs at or above the low severity tier, highest priority/impact first."""
        conversions = await self.stage_conversions(project_id, min_sample_size)

        drop_offs = []
        for conv in conversions.conversions:
            if conv.sample_size == 0 or conv.drop_off_rate < self.policy.severity_low:
                continue
            if not include_insignificant and not conv.statistical_significance:
                continue
            drop_offs.append(analyze_drop_off(conv, self.policy))

        drop_offs.sort(key=lambda d: (d.priority, d.impact_score), reverse=True)
        return SignificantDropOffs(project_id=project_id, drop_offs=drop_offs)

    async def cohort_funnel_analysis(
        self, project_id: int, cohort_type: CohortType = CohortType.WEEKLY
    ) -> CohortFunnelAnalysis:
        """Stage conversions per cohort, keyed by cohort period."""
        await self._require_project(project_id)
        members = await self.repo.get_project_cohort_members(project_id, cohort_type.value)
        min_sample = self.policy.min_segment_sample_size

        segments: Dict[str, CohortFunnelSegment] = {}
        for period, wallet_ids in members.items():
            counts = await self.repo.get_stage_counts(project_id, wallet_ids)
            segments[period.isoformat()] = CohortFunnelSegment(
                cohort_period=period,
                wallet_count=len(wallet_ids),
                significant=len(wallet_ids) >= min_sample,
                conversions=conversions_from_counts(counts, min_sample),
            )

        return CohortFunnelAnalysis(project_id=project_id, cohort_type=cohort_type.value, segments=segments)

    async def conversion_trends(
        self,
        project_id: int,
        period: TrendPeriod = TrendPeriod.WEEKLY,
        lookback_days: Optional[int] = None,
        as_of: Optional[datetime] = None,
    ) -> ConversionTrends:
        """Stage counts and early-funnel rates per wallet-creation bucket."""
        await self._require_project(project_id)
        lookback = lookback_days or self.policy.trend_lookback_days
        if lookback < 1:
            raise ValidationError("lookback_days must be >= 1", {"lookback_days": lookback})

        now = as_of or datetime.now(UTC)
        since = now - timedelta(days=lookback)
        wallets = [
            w for w in await self.repo.list_project_wallets(project_id)
            if since <= w.created_at <= now
        ]
        achieved_by_wallet: Dict[int, set] = {}
        for rec in await self.repo.get_project_stages(project_id):
            if rec.achieved:
                achieved_by_wallet.setdefault(rec.wallet_id, set()).add(rec.stage_name)

        buckets: Dict[date, Dict[str, int]] = {}
        sizes: Dict[date, int] = {}
        for wallet in wallets:
            start = _bucket_start(wallet.created_at.date(), period)
            sizes[start] = sizes.get(start, 0) + 1
            stage_counts = buckets.setdefault(start, {s.value: 0 for s in AdoptionStage.ordered()})
            for stage_name in achieved_by_wallet.get(wallet.id, set()):
                if stage_name in stage_counts:
                    stage_counts[stage_name] += 1

        def rate(counts: Dict[str, int], frm: AdoptionStage, to: AdoptionStage) -> float:
            base = counts.get(frm.value, 0)
            return round(counts.get(to.value, 0) / base * 100, 2) if base > 0 else 0.0

        result = [
            TrendBucket(
                period_start=start,
                wallets=sizes[start],
                stage_counts=counts,
                created_to_first_tx=rate(counts, AdoptionStage.CREATED, AdoptionStage.FIRST_TX),
                first_tx_to_feature_usage=rate(counts, AdoptionStage.FIRST_TX, AdoptionStage.FEATURE_USAGE),
                sufficient_sample=sizes[start] >= self.policy.min_trend_sample_size,
            )
            for start, counts in sorted(buckets.items())
        ]
        return ConversionTrends(
            project_id=project_id, period=period.value, lookback_days=lookback, buckets=result
        )

    async def generate_report(
        self, project_id: int, min_sample_size: Optional[int] = None
    ) -> ConversionReport:
        """
        Funnel health report.

        health = clamp(avg conversion over significant transitions
                       - 10 x significant high-severity drop-offs, 0, 100)
        """
        conversions = await self.stage_conversions(project_id, min_sample_size)
        drop_offs = await self.significant_drop_offs(project_id, min_sample_size)

        significant = [c for c in conversions.conversions if c.statistical_significance]
        avg_conversion = (
            round(sum(c.conversion_rate for c in significant) / len(significant), 2)
            if significant else 0.0
        )
        high_count = sum(
            1 for d in drop_offs.drop_offs
            if d.severity == Severity.HIGH.value and d.statistical_significance
        )
        health = min(max(avg_conversion - self.policy.high_severity_health_penalty * high_count, 0.0), 100.0)
        health = round(health, 2)

        if not significant:
            status = "insufficient_data"
        elif health < self.policy.health_critical:
            status = "critical"
        elif health < self.policy.health_needs_attention:
            status = "needs_attention"
        else:
            status = "healthy"

        suggestions: List[str] = []
        if status == "insufficient_data":
            suggestions.append("Collect more wallet activity before acting on conversion data")
        elif status == "critical":
            suggestions.append("Funnel is critical: focus on the top drop-off before anything else")
            suggestions.append("Review onboarding end to end with new users")
        elif status == "needs_attention":
            suggestions.append("Funnel needs attention: address the highest-priority drop-off")
            suggestions.append("A/B test improvements on the weakest transition")
        else:
            suggestions.append("Funnel is healthy: keep monitoring weekly cohorts for regressions")
        if any(d.impact_score > self.policy.impact_alert for d in drop_offs.drop_offs):
            suggestions.append("Address high-impact drop-off points immediately")

        logger.info(f"Conversion report for project {project_id}: health={health} status={status}")

        return ConversionReport(
            project_id=project_id,
            health_score=health,
            status=status,
            average_conversion_rate=avg_conversion,
            significant_transitions=len(significant),
            conversions=conversions.conversions,
            drop_offs=drop_offs.drop_offs,
            priority_actions=drop_offs.drop_offs[: self.policy.top_actions],
            suggestions=suggestions,
            generated_at=datetime.now(UTC),
        )
