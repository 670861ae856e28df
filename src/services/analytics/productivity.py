"""
Productivity Scoring Engine - five-component wallet health score.

    total = retention*0.30 + adoption*0.25 + churn*0.20 + frequency*0.15 + activity*0.10

Each component is 0..100 and rounded to 2 decimals before weighting, so the
total can always be recomputed from the persisted components.
"""

from datetime import date, datetime, timedelta, UTC
from typing import Dict, List, Optional, Sequence

from loguru import logger

from src.core.enums import AdoptionStage, ProductivityStatus, RiskLevel, ScoreColor
from src.core.errors import NotFoundError
from src.database.records import ActivityDayRecord, StageRecord, TransactionRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.config import (
    AnalyticsConfig,
    DEFAULT_CONFIG,
    ProductivityPolicy,
    ladder_points,
)
from src.services.analytics.schemas import (
    BatchItemResult,
    BatchResponse,
    ComponentScore,
    ProductivityScore,
    ProjectProductivitySummary,
)


COMPONENTS = ("retention", "adoption", "churn", "frequency", "activity")


def _clamp(value: float) -> float:
    return round(min(max(value, 0.0), 100.0), 2)


def _active_days(rows: Sequence[ActivityDayRecord], since: date, until: date) -> List[date]:
    return sorted(r.activity_date for r in rows if r.is_active and since <= r.activity_date <= until)


# =============================================================================
# Components
# =============================================================================


def retention_component(
    activity: Sequence[ActivityDayRecord],
    transactions: Sequence[TransactionRecord],
    today: date,
    policy: ProductivityPolicy,
) -> float:
    """Active days, recency, volume and counterparty diversity over the retention window."""
    since = today - timedelta(days=policy.retention_window_days - 1)
    window = [r for r in activity if r.is_active and since <= r.activity_date <= today]
    if not window:
        return 0.0

    last_active = max(r.activity_date for r in window)
    volume = sum(r.total_volume_zatoshi for r in window)
    counterparties = {
        tx.counterparty_address
        for tx in transactions
        if tx.counterparty_address
        and tx.block_timestamp is not None
        and since <= tx.block_timestamp.date() <= today
    }

    score = (
        ladder_points(len(window), policy.retention_active_days)
        + ladder_points((today - last_active).days, policy.retention_recency_days, "le")
        + ladder_points(volume, policy.retention_volume, "gt")
        + min(len(counterparties) * policy.counterparty_points, policy.counterparty_cap)
    )
    return _clamp(score)


def adoption_component(stages: Sequence[StageRecord], policy: ProductivityPolicy) -> float:
    """Share of funnel stages achieved plus a bonus per quickly reached stage."""
    total = len(AdoptionStage.ordered())
    achieved = [s for s in stages if s.achieved]
    if not achieved:
        return 0.0

    score = len(achieved) * 100 / total
    for rec in achieved:
        limit = policy.fast_stage_hours.get(AdoptionStage(rec.stage_name))
        if limit is not None and rec.hours_to_achieve is not None and rec.hours_to_achieve <= limit:
            score += policy.fast_stage_bonus
    return _clamp(score)


def churn_component(activity: Sequence[ActivityDayRecord], today: date, policy: ProductivityPolicy) -> float:
    """100 minus churn-risk penalties over the churn window; 0 without data."""
    window_days = policy.churn_window_days
    days = _active_days(activity, today - timedelta(days=window_days - 1), today)
    if not days:
        return 0.0

    half = window_days // 2
    recent = len([d for d in days if d > today - timedelta(days=half)])
    earlier = len(days) - recent
    last_week = len([d for d in days if d > today - timedelta(days=policy.activity_window_days)])

    penalty = (
        ladder_points((today - days[-1]).days, policy.churn_inactivity_days, "gt")
        + ladder_points(len(days) / window_days, policy.churn_activity_ratio, "lt")
        + ladder_points(last_week, policy.churn_quiet_week, "le")
    )
    if recent < earlier / 2:
        penalty += policy.churn_declining_penalty
    return _clamp(100 - penalty)


def frequency_component(activity: Sequence[ActivityDayRecord], today: date, policy: ProductivityPolicy) -> float:
    """Transaction count, active days and average gap between active days."""
    since = today - timedelta(days=policy.retention_window_days - 1)
    window = [r for r in activity if r.is_active and since <= r.activity_date <= today]
    if not window:
        return 0.0

    days = sorted(r.activity_date for r in window)
    score = (
        ladder_points(sum(r.transaction_count for r in window), policy.frequency_transactions)
        + ladder_points(len(days), policy.frequency_active_days)
    )
    if len(days) > 1:
        gaps = [(b - a).days * 24 for a, b in zip(days, days[1:])]
        score += ladder_points(sum(gaps) / len(gaps), policy.frequency_gap_hours, "le")
    return _clamp(score)


def activity_component(activity: Sequence[ActivityDayRecord], today: date, policy: ProductivityPolicy) -> float:
    """Raw recent activity: zero when the wallet was idle the whole window."""
    since = today - timedelta(days=policy.activity_window_days - 1)
    window = [r for r in activity if r.is_active and since <= r.activity_date <= today]
    if not window:
        return 0.0

    avg_complexity = sum(r.sequence_complexity_score for r in window) / len(window)
    score = (
        ladder_points(len(window), policy.activity_days)
        + ladder_points(sum(r.transaction_count for r in window), policy.activity_transactions)
        + ladder_points(avg_complexity, policy.activity_complexity)
    )
    return _clamp(score)


# =============================================================================
# Classification
# =============================================================================


def score_color(score: float, policy: ProductivityPolicy) -> ScoreColor:
    if score >= policy.color_green:
        return ScoreColor.GREEN
    if score >= policy.color_yellow:
        return ScoreColor.YELLOW
    return ScoreColor.RED


def classify_status(total: float, policy: ProductivityPolicy) -> ProductivityStatus:
    if total >= policy.status_healthy:
        return ProductivityStatus.HEALTHY
    if total >= policy.status_at_risk:
        return ProductivityStatus.AT_RISK
    return ProductivityStatus.CHURN


def classify_risk(churn: float, activity: float, policy: ProductivityPolicy) -> RiskLevel:
    mean = (churn + activity) / 2
    if mean >= policy.risk_low:
        return RiskLevel.LOW
    if mean >= policy.risk_medium:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def weighted_total(components: Dict[str, float], weights: Dict[str, float]) -> float:
    return round(sum(components[name] * weights[name] for name in COMPONENTS), 2)


def build_score(
    wallet_id: int,
    components: Dict[str, float],
    policy: ProductivityPolicy,
    calculated_at: datetime,
) -> ProductivityScore:
    total = weighted_total(components, policy.weights)
    return ProductivityScore(
        wallet_id=wallet_id,
        total_score=total,
        status=classify_status(total, policy).value,
        risk_level=classify_risk(components["churn"], components["activity"], policy).value,
        color=score_color(total, policy).value,
        components=[
            ComponentScore(
                name=name,
                score=components[name],
                weight=policy.weights[name],
                weighted=round(components[name] * policy.weights[name], 4),
                color=score_color(components[name], policy).value,
            )
            for name in COMPONENTS
        ],
        calculated_at=calculated_at,
    )


class ProductivityScorer:
    """Computes, persists and aggregates wallet productivity scores."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.productivity
        self.policy.validate()

    async def calculate(self, wallet_id: int, as_of: Optional[datetime] = None) -> ProductivityScore:
        """
        Score a wallet without persisting.

        Args:
            wallet_id: Wallet to score
            as_of: Reference time (defaults to now, UTC)
        """
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})

        now = as_of or datetime.now(UTC)
        today = now.date()
        lookback = max(self.policy.churn_window_days, self.policy.retention_window_days)

        activity = await self.repo.get_activity(
            [wallet_id], start=today - timedelta(days=lookback - 1), end=today
        )
        transactions = await self.repo.get_wallet_transactions(
            wallet_id, start=now - timedelta(days=self.policy.retention_window_days)
        )
        stages = await self.repo.get_stages(wallet_id)

        components = {
            "retention": retention_component(activity, transactions, today, self.policy),
            "adoption": adoption_component(stages, self.policy),
            "churn": churn_component(activity, today, self.policy),
            "frequency": frequency_component(activity, today, self.policy),
            "activity": activity_component(activity, today, self.policy),
        }
        return build_score(wallet_id, components, self.policy, now)

    async def update(self, wallet_id: int, as_of: Optional[datetime] = None) -> ProductivityScore:
        """Calculate and overwrite the stored score."""
        score = await self.calculate(wallet_id, as_of)
        values = {f"{c.name}_score": c.score for c in score.components}
        values.update(
            wallet_id=wallet_id,
            total_score=score.total_score,
            status=score.status,
            risk_level=score.risk_level,
            calculated_at=score.calculated_at,
        )
        await self.repo.upsert_score(values)
        logger.info(f"Wallet {wallet_id} productivity {score.total_score} ({score.status})")
        return score

    async def bulk(self, wallet_ids: List[int], persist: bool = True) -> BatchResponse:
        """Score many wallets; each entry succeeds or fails on its own."""
        items: List[BatchItemResult] = []
        for wallet_id in wallet_ids:
            try:
                score = await (self.update(wallet_id) if persist else self.calculate(wallet_id))
                items.append(BatchItemResult(id=wallet_id, success=True, result=score.model_dump(mode="json")))
            except Exception as e:
                await self.repo.rollback()
                logger.warning(f"Productivity scoring failed for wallet {wallet_id}: {e}")
                items.append(BatchItemResult(id=wallet_id, success=False, error=str(e)))

        response = BatchResponse.from_items(items)
        logger.info(f"Bulk productivity: {response.succeeded}/{response.total} wallets scored")
        return response

    async def project_summary(self, project_id: int) -> ProjectProductivitySummary:
        """Aggregate the stored scores of a project's wallets."""
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})

        wallets = await self.repo.list_project_wallets(project_id)
        scores = await self.repo.get_project_scores(project_id)

        status_distribution = {s.value: 0 for s in ProductivityStatus}
        risk_distribution = {r.value: 0 for r in RiskLevel}
        for score in scores:
            status_distribution[score.status] = status_distribution.get(score.status, 0) + 1
            risk_distribution[score.risk_level] = risk_distribution.get(score.risk_level, 0) + 1

        healthy = status_distribution[ProductivityStatus.HEALTHY.value]
        return ProjectProductivitySummary(
            project_id=project_id,
            total_wallets=len(wallets),
            scored_wallets=len(scores),
            average_score=round(sum(s.total_score for s in scores) / len(scores), 2) if scores else 0.0,
            health_percentage=round(healthy / len(scores) * 100, 2) if scores else 0.0,
            status_distribution=status_distribution,
            risk_distribution=risk_distribution,
        )
