"""
Adoption Stage Tracker - moves wallets through the ordered adoption funnel.

created -> first_tx -> feature_usage -> recurring -> power_user

Stage criteria are cumulative predicates over the wallet's transaction
history (see AdoptionPolicy). One evaluation pass may achieve several stages,
but a stage is only achieved once its predecessor is, and an achieved stage
is never cleared or moved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from src.core.enums import AdoptionStage, CohortType, Severity
from src.core.errors import NotFoundError
from src.database.records import StageRecord, TransactionRecord, WalletRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.config import (
    AdoptionPolicy,
    AnalyticsConfig,
    DEFAULT_CONFIG,
    StageCriteria,
)
from src.services.analytics.schemas import (
    AdoptionFunnel,
    AdoptionStatus,
    DropOffPoint,
    DropOffPoints,
    FunnelStageCount,
    InitializeResult,
    SegmentedFunnel,
    StageConversion,
    StageConversions,
    StageStatus,
    StageUpdateResult,
    TimeToStage,
    TimeToStageMetrics,
)


def _hours_between(later: datetime, earlier: datetime) -> float:
    return round(max((later - earlier).total_seconds(), 0.0) / 3600, 2)


@dataclass
class _Progress:
    """Cumulative counters while walking a wallet's history."""
    transactions: int = 0
    volume: int = 0
    active_days: set = field(default_factory=set)
    tx_types: set = field(default_factory=set)
    first_at: Optional[datetime] = None
    last_at: Optional[datetime] = None

    def add(self, tx: TransactionRecord) -> None:
        self.transactions += 1
        self.volume += tx.volume
        self.active_days.add(tx.block_timestamp.date())
        self.tx_types.add(tx.tx_type)
        if self.first_at is None:
            self.first_at = tx.block_timestamp
        self.last_at = tx.block_timestamp

    @property
    def span_days(self) -> float:
        if self.first_at is None or self.last_at is None:
            return 0.0
        return (self.last_at - self.first_at).total_seconds() / 86400

    def ratios(self, criteria: StageCriteria) -> List[float]:
        """actual / threshold for each enabled criterion."""
        pairs = [
            (self.transactions, criteria.min_transactions),
            (self.volume, criteria.min_volume_zatoshi),
            (len(self.active_days), criteria.min_active_days),
            (self.span_days, criteria.min_span_days),
            (len(self.tx_types), criteria.min_distinct_types),
        ]
        return [actual / threshold for actual, threshold in pairs if threshold > 0]

    def meets(self, criteria: StageCriteria) -> bool:
        return all(ratio >= 1.0 for ratio in self.ratios(criteria))


def stage_confidence(progress: _Progress, criteria: StageCriteria, saturation: float) -> float:
    """Smallest criterion margin, scaled so `saturation` x threshold = 1.0."""
    ratios = progress.ratios(criteria)
    if not ratios:
        return 1.0
    return round(min(max(min(ratios) / saturation, 0.0), 1.0), 4)


def evaluate_stages(
    wallet: WalletRecord,
    transactions: Sequence[TransactionRecord],
    existing: Sequence[StageRecord],
    policy: AdoptionPolicy,
) -> Tuple[List[Dict], int]:
    """
    Find stages newly satisfied by the wallet's history.

    Returns:
        (rows to mark achieved, number of transactions skipped for lacking a timestamp)
    """
    achieved: Dict[AdoptionStage, datetime] = {
        AdoptionStage(rec.stage_name): rec.achieved_at for rec in existing if rec.achieved
    }
    dated = [tx for tx in transactions if tx.block_timestamp is not None]
    skipped = len(transactions) - len(dated)
    dated.sort(key=lambda tx: tx.block_timestamp)

    pending = [s for s in AdoptionStage.ordered() if s not in achieved and s in policy.criteria]
    progress = _Progress()
    newly: List[Tuple[AdoptionStage, datetime]] = []

    for tx in dated:
        if not pending:
            break
        progress.add(tx)
        while pending:
            stage = pending[0]
            previous = stage.previous
            if previous is not None and previous not in achieved:
                break
            if not progress.meets(policy.criteria[stage]):
                break
            achieved_at = tx.block_timestamp
            if previous is not None and achieved[previous] > achieved_at:
                achieved_at = achieved[previous]
            achieved[stage] = achieved_at
            newly.append((stage, achieved_at))
            pending.pop(0)

    # confidence is judged on the full history, not the qualifying prefix
    full = _Progress()
    for tx in dated:
        full.add(tx)

    rows = [
        {
            "stage_name": stage.value,
            "stage_order": stage.order,
            "achieved_at": achieved_at,
            "hours_to_achieve": _hours_between(achieved_at, wallet.created_at),
            "confidence": stage_confidence(
                full, policy.criteria[stage], policy.confidence_saturation
            ),
        }
        for stage, achieved_at in newly
    ]
    return rows, skipped


def build_stage_statuses(stages: Sequence[StageRecord]) -> List[StageStatus]:
    """Full ordered stage list; stages without a row show as unachieved."""
    by_name = {rec.stage_name: rec for rec in stages}
    statuses: List[StageStatus] = []
    previous_at: Optional[datetime] = None

    for stage in AdoptionStage.ordered():
        rec = by_name.get(stage.value)
        achieved_at = rec.achieved_at if rec else None
        statuses.append(StageStatus(
            stage=stage.value,
            order=stage.order,
            achieved=achieved_at is not None,
            achieved_at=achieved_at,
            hours_to_achieve=rec.hours_to_achieve if rec else None,
            hours_from_previous=(
                _hours_between(achieved_at, previous_at)
                if achieved_at is not None and previous_at is not None
                else None
            ),
            confidence=rec.confidence if rec else None,
        ))
        previous_at = achieved_at
    return statuses


def conversions_from_counts(counts: Dict[str, int], min_sample_size: int) -> List[StageConversion]:
    """Adjacent-stage conversion rates from achieved counts.

    An empty from-stage yields 0% conversion, 0% drop-off and is insignificant.
    """
    conversions: List[StageConversion] = []
    for from_stage, to_stage in AdoptionStage.transitions():
        from_count = counts.get(from_stage.value, 0)
        to_count = min(counts.get(to_stage.value, 0), from_count)
        conversion_rate = round(to_count / from_count * 100, 2) if from_count > 0 else 0.0
        drop_off_rate = round(100 - conversion_rate, 2) if from_count > 0 else 0.0
        conversions.append(StageConversion(
            from_stage=from_stage.value,
            to_stage=to_stage.value,
            conversion_rate=conversion_rate,
            drop_off_rate=drop_off_rate,
            wallets_converted=to_count,
            wallets_dropped=from_count - to_count,
            sample_size=from_count,
            statistical_significance=from_count >= min_sample_size and from_count > 0,
        ))
    return conversions


class AdoptionStageTracker:
    """Per-wallet stage evaluation plus project-level funnel views."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.adoption

    async def _wallet(self, wallet_id: int) -> WalletRecord:
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})
        return wallet

    async def _require_project(self, project_id: int) -> None:
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})

    # =========================================================================
    # Per wallet
    # =========================================================================

    async def initialize(self, wallet_id: int) -> InitializeResult:
        """Create the stage rows if absent. `created` is achieved at wallet creation."""
        wallet = await self._wallet(wallet_id)
        existing = await self.repo.get_stages(wallet_id)
        present = {rec.stage_name for rec in existing}
        missing = [s for s in AdoptionStage.ordered() if s.value not in present]

        if not missing:
            return InitializeResult(
                wallet_id=wallet_id, initialized=False, stages=build_stage_statuses(existing)
            )

        rows = []
        for stage in missing:
            is_created = stage == AdoptionStage.CREATED
            rows.append({
                "stage_name": stage.value,
                "stage_order": stage.order,
                "achieved_at": wallet.created_at if is_created else None,
                "hours_to_achieve": 0.0 if is_created else None,
                "confidence": 1.0 if is_created else None,
            })
        await self.repo.insert_stages(wallet_id, rows)
        logger.debug(f"Initialized {len(rows)} adoption stages for wallet {wallet_id}")

        stages = await self.repo.get_stages(wallet_id)
        return InitializeResult(wallet_id=wallet_id, initialized=True, stages=build_stage_statuses(stages))

    async def update_stages(self, wallet_id: int) -> StageUpdateResult:
        """
        Re-evaluate every unachieved stage against the full history.

        Returns:
            StageUpdateResult listing only the stages achieved by this call
        """
        wallet = await self._wallet(wallet_id)
        await self.initialize(wallet_id)

        existing = await self.repo.get_stages(wallet_id)
        transactions = await self.repo.get_wallet_transactions(wallet_id)
        rows, skipped = evaluate_stages(wallet, transactions, existing, self.policy)

        if skipped:
            logger.warning(f"Wallet {wallet_id}: skipped {skipped} transactions without timestamp")

        if rows:
            await self.repo.mark_stages_achieved(wallet_id, rows)
            logger.info(
                f"Wallet {wallet_id} achieved stages: {', '.join(r['stage_name'] for r in rows)}"
            )

        stages = await self.repo.get_stages(wallet_id)
        achieved_names = {r["stage_name"] for r in rows}
        newly = [s for s in build_stage_statuses(stages) if s.stage in achieved_names]
        return StageUpdateResult(wallet_id=wallet_id, newly_achieved=newly, skipped_transactions=skipped)

    async def get_status(self, wallet_id: int) -> AdoptionStatus:
        await self._wallet(wallet_id)
        statuses = build_stage_statuses(await self.repo.get_stages(wallet_id))

        achieved = [s for s in statuses if s.achieved]
        unachieved = [s for s in statuses if not s.achieved]
        total = len(statuses)

        return AdoptionStatus(
            wallet_id=wallet_id,
            stages=statuses,
            current_stage=achieved[-1].stage if achieved else None,
            next_stage=unachieved[0].stage if unachieved else None,
            achieved_count=len(achieved),
            total_stages=total,
            progress_percentage=round(len(achieved) / total * 100, 2) if total > 0 else 0.0,
        )

    # =========================================================================
    # Project level
    # =========================================================================

    def _funnel(self, project_id: int, total: int, counts: Dict[str, int]) -> AdoptionFunnel:
        return AdoptionFunnel(
            project_id=project_id,
            total_wallets=total,
            stages=[
                FunnelStageCount(
                    stage=stage.value,
                    wallets=counts.get(stage.value, 0),
                    percentage=round(counts.get(stage.value, 0) / total * 100, 2) if total > 0 else 0.0,
                )
                for stage in AdoptionStage.ordered()
            ],
        )

    async def project_funnel(self, project_id: int) -> AdoptionFunnel:
        await self._require_project(project_id)
        wallets = await self.repo.list_project_wallets(project_id)
        counts = await self.repo.get_stage_counts(project_id)
        return self._funnel(project_id, len(wallets), counts)

    async def conversion_rates(self, project_id: int) -> StageConversions:
        await self._require_project(project_id)
        counts = await self.repo.get_stage_counts(project_id)
        min_sample = self.config.conversion.min_sample_size
        return StageConversions(
            project_id=project_id,
            min_sample_size=min_sample,
            conversions=conversions_from_counts(counts, min_sample),
        )

    async def time_to_stage_metrics(self, project_id: int) -> TimeToStageMetrics:
        await self._require_project(project_id)
        stages = await self.repo.get_project_stages(project_id)

        hours: Dict[str, List[float]] = {s.value: [] for s in AdoptionStage.ordered()}
        for rec in stages:
            if rec.achieved and rec.hours_to_achieve is not None and rec.stage_name in hours:
                hours[rec.stage_name].append(rec.hours_to_achieve)

        metrics = []
        for stage in AdoptionStage.ordered():
            values = np.array(hours[stage.value], dtype=float)
            if values.size == 0:
                metrics.append(TimeToStage(stage=stage.value, samples=0))
                continue
            metrics.append(TimeToStage(
                stage=stage.value,
                samples=int(values.size),
                avg_hours=round(float(np.mean(values)), 2),
                median_hours=round(float(np.median(values)), 2),
                min_hours=round(float(np.min(values)), 2),
                max_hours=round(float(np.max(values)), 2),
            ))
        return TimeToStageMetrics(project_id=project_id, stages=metrics)

    async def drop_off_points(self, project_id: int) -> DropOffPoints:
        rates = await self.conversion_rates(project_id)
        points = []
        for conv in rates.conversions:
            if conv.sample_size == 0 or conv.drop_off_rate <= 0:
                continue
            if conv.drop_off_rate > self.policy.drop_off_high:
                severity = Severity.HIGH
            elif conv.drop_off_rate > self.policy.drop_off_medium:
                severity = Severity.MEDIUM
            else:
                severity = Severity.LOW
            points.append(DropOffPoint(
                from_stage=conv.from_stage,
                to_stage=conv.to_stage,
                drop_off_rate=conv.drop_off_rate,
                wallets_dropped=conv.wallets_dropped,
                severity=severity.value,
            ))
        points.sort(key=lambda p: p.drop_off_rate, reverse=True)
        return DropOffPoints(project_id=project_id, drop_offs=points)

    async def segmented_by_cohort(
        self, project_id: int, cohort_type: CohortType = CohortType.WEEKLY
    ) -> SegmentedFunnel:
        """Funnel per cohort, keyed by cohort period (ISO date)."""
        await self._require_project(project_id)
        members = await self.repo.get_project_cohort_members(project_id, cohort_type.value)

        segments: Dict[str, AdoptionFunnel] = {}
        for period, wallet_ids in members.items():
            counts = await self.repo.get_stage_counts(project_id, wallet_ids)
            segments[period.isoformat()] = self._funnel(project_id, len(wallet_ids), counts)

        return SegmentedFunnel(project_id=project_id, cohort_type=cohort_type.value, segments=segments)
