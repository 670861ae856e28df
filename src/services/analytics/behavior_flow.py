"""
Behavior Flow Tracker - segments a wallet's history into shielded flows.

A flow starts at a shielded transaction and runs until a pool exit
(inclusive), a transparent transaction, an idle gap longer than
flow_idle_gap_minutes, or the end of the history. Consecutive transparent
transactions form transparent-only flows.

From the flows we derive a primary behavior pattern, a loyalty prediction
and a retention probability:

    loyalty = clamp(pattern base
                    + 15 if avg shielded flow duration > holding window
                    + 0.1 x privacy efficiency
                    + min(flows, 5) x 2
                    - 5 for a single flow
                    + 5 with any complex/advanced flow, 0, 100)
    retention_probability = clamp(loyalty x 0.8 + shielded flow ratio x 30, 0, 100) / 100
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from src.core.enums import (
    BehaviorPattern,
    EngagementLevel,
    FlowComplexity,
    FlowType,
    TransitionType,
)
from src.core.errors import NotFoundError, ValidationError
from src.database.records import TransactionRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG, ShieldedPolicy
from src.services.analytics.schemas import (
    ProjectBehaviorInsights,
    ShieldedFlow,
    WalletFlowAnalysis,
)


PATTERN_CONFIDENCE = {
    BehaviorPattern.SHIELDED_NATIVE: 90.0,
    BehaviorPattern.PRIVACY_ACCUMULATOR: 85.0,
    BehaviorPattern.PRIVACY_HOLDER: 80.0,
    BehaviorPattern.PRIVACY_CYCLER: 75.0,
    BehaviorPattern.PRIVACY_MIXER: 70.0,
}
WEAK_MIXER_CONFIDENCE = 60.0
TRANSPARENT_CONFIDENCE = 50.0

PATTERN_RECOMMENDATIONS = {
    BehaviorPattern.TRANSPARENT_ONLY: "Promote shielded transfers to transparent-only wallets",
    BehaviorPattern.PRIVACY_MIXER: "Make moving funds into the shielded pool a one-step action",
    BehaviorPattern.PRIVACY_CYCLER: "Offer shielded-to-shielded payments so cyclers can stay in the pool",
    BehaviorPattern.PRIVACY_HOLDER: "Add shielded spending options for wallets that hold funds privately",
    BehaviorPattern.PRIVACY_ACCUMULATOR: "Reward accumulators with shielded-only features",
    BehaviorPattern.SHIELDED_NATIVE: "Keep shielded-native wallets engaged with early access to privacy features",
}


@dataclass
class _Flow:
    transactions: List[TransactionRecord] = field(default_factory=list)

    @property
    def start(self) -> datetime:
        return self.transactions[0].block_timestamp

    @property
    def end(self) -> datetime:
        return self.transactions[-1].block_timestamp

    @property
    def shielded_count(self) -> int:
        return sum(1 for tx in self.transactions if tx.is_shielded)

    @property
    def duration_minutes(self) -> float:
        return round((self.end - self.start).total_seconds() / 60, 2)


def segment_flows(transactions: Sequence[TransactionRecord], idle_gap_minutes: float) -> List[_Flow]:
    """Split a chronologically sorted, timestamped history into flows."""
    flows: List[_Flow] = []
    current: Optional[_Flow] = None
    idle_gap = timedelta(minutes=idle_gap_minutes)

    for tx in transactions:
        if current is not None and tx.block_timestamp - current.end > idle_gap:
            flows.append(current)
            current = None

        if current is not None:
            in_shielded_flow = current.shielded_count > 0
            if in_shielded_flow and not tx.is_shielded:
                flows.append(current)
                current = None
            elif not in_shielded_flow and tx.is_shielded:
                flows.append(current)
                current = None

        if current is None:
            current = _Flow()
        current.transactions.append(tx)

        if tx.shielded_pool_exit and current.shielded_count > 0:
            flows.append(current)
            current = None

    if current is not None:
        flows.append(current)
    return flows


def classify_flow(flow: _Flow, holding_minutes: float) -> FlowType:
    if len(flow.transactions) == 1:
        return FlowType.SINGLE_TRANSACTION
    if flow.shielded_count == 0:
        return FlowType.TRANSPARENT_ONLY

    has_entry = any(tx.shielded_pool_entry for tx in flow.transactions)
    has_exit = any(tx.shielded_pool_exit for tx in flow.transactions)
    if has_entry and has_exit:
        if flow.duration_minutes > holding_minutes:
            return FlowType.PRIVACY_HOLDING
        return FlowType.PRIVACY_MIXING
    if has_entry:
        return FlowType.PRIVACY_ACCUMULATION
    if has_exit:
        return FlowType.PRIVACY_SPENDING
    return FlowType.INTERNAL_SHIELDED


def flow_complexity(transaction_count: int) -> FlowComplexity:
    if transaction_count <= 2:
        return FlowComplexity.SIMPLE
    if transaction_count <= 5:
        return FlowComplexity.MODERATE
    if transaction_count <= 10:
        return FlowComplexity.COMPLEX
    return FlowComplexity.ADVANCED


def count_transitions(transactions: Sequence[TransactionRecord]) -> Dict[str, int]:
    counts = {t.value: 0 for t in TransitionType}
    for previous, current in zip(transactions, transactions[1:]):
        key = {
            (False, True): TransitionType.T_TO_Z,
            (True, False): TransitionType.Z_TO_T,
            (False, False): TransitionType.T_TO_T,
            (True, True): TransitionType.Z_TO_Z,
        }[(previous.is_shielded, current.is_shielded)]
        counts[key.value] += 1
    return counts


def detect_pattern(
    shielded_ratio: float,
    transitions: Dict[str, int],
    avg_shielded_duration: float,
    policy: ShieldedPolicy,
) -> Tuple[BehaviorPattern, float]:
    """Primary pattern and its confidence (0..100)."""
    total = sum(transitions.values())
    share = {k: (v / total * 100 if total > 0 else 0.0) for k, v in transitions.items()}
    t_to_z = share[TransitionType.T_TO_Z.value]
    z_to_t = share[TransitionType.Z_TO_T.value]

    if shielded_ratio >= policy.full_privacy_ratio:
        pattern = BehaviorPattern.SHIELDED_NATIVE
    elif share[TransitionType.Z_TO_Z.value] > 50:
        pattern = BehaviorPattern.PRIVACY_ACCUMULATOR
    elif avg_shielded_duration > policy.holding_minutes:
        pattern = BehaviorPattern.PRIVACY_HOLDER
    elif t_to_z > 30 and z_to_t > 30:
        if abs(t_to_z - z_to_t) <= 10:
            pattern = BehaviorPattern.PRIVACY_CYCLER
        else:
            pattern = BehaviorPattern.PRIVACY_MIXER
    elif shielded_ratio > policy.mixed_privacy_ratio:
        return BehaviorPattern.PRIVACY_MIXER, WEAK_MIXER_CONFIDENCE
    else:
        return BehaviorPattern.TRANSPARENT_ONLY, TRANSPARENT_CONFIDENCE
    return pattern, PATTERN_CONFIDENCE[pattern]


def predict_loyalty(
    pattern: BehaviorPattern,
    avg_shielded_duration: float,
    privacy_efficiency: float,
    flows: Sequence[ShieldedFlow],
    policy: ShieldedPolicy,
) -> float:
    score = policy.pattern_base_loyalty[pattern.value]
    if avg_shielded_duration > policy.holding_minutes:
        score += policy.long_duration_bonus
    score += policy.efficiency_weight * privacy_efficiency
    score += min(len(flows), policy.flow_count_cap) * policy.flow_count_points
    if len(flows) == 1:
        score -= policy.single_flow_penalty
    if any(f.complexity in (FlowComplexity.COMPLEX.value, FlowComplexity.ADVANCED.value) for f in flows):
        score += policy.complex_flow_bonus
    return round(min(max(score, 0.0), 100.0), 2)


def engagement_level(loyalty: float, policy: ShieldedPolicy) -> EngagementLevel:
    if loyalty >= policy.high_loyalty:
        return EngagementLevel.HIGH
    if loyalty >= policy.medium_loyalty:
        return EngagementLevel.MEDIUM
    return EngagementLevel.LOW


def _indicators(
    pattern: BehaviorPattern,
    flows: Sequence[ShieldedFlow],
    shielded_ratio: float,
    privacy_efficiency: float,
) -> Tuple[List[str], List[str]]:
    positive, risks = [], []
    if shielded_ratio >= 0.5:
        positive.append("Majority of transactions are shielded")
    if privacy_efficiency >= 50:
        positive.append("Funds mostly stay inside the shielded pool")
    if len(flows) >= 5:
        positive.append("Consistent repeated activity")
    if any(f.flow_type == FlowType.PRIVACY_HOLDING.value for f in flows):
        positive.append("Holds funds privately for long periods")

    if pattern == BehaviorPattern.TRANSPARENT_ONLY:
        risks.append("No meaningful shielded usage")
    if len(flows) == 1:
        risks.append("Only one flow observed")
    if flows and all(f.complexity == FlowComplexity.SIMPLE.value for f in flows):
        risks.append("Only simple flows")
    if any(f.flow_type == FlowType.PRIVACY_SPENDING.value for f in flows) and not any(
        f.has_entry for f in flows
    ):
        risks.append("Leaves the shielded pool without re-entering")
    return positive, risks


def analyze_flows(
    wallet_id: int,
    start: datetime,
    end: datetime,
    transactions: Sequence[TransactionRecord],
    policy: ShieldedPolicy,
) -> WalletFlowAnalysis:
    """Pure flow analysis over a timestamped, sorted history."""
    if not transactions:
        return WalletFlowAnalysis(
            wallet_id=wallet_id,
            start=start,
            end=end,
            total_transactions=0,
            flows=[],
            transitions={t.value: 0 for t in TransitionType},
            behavior_pattern=BehaviorPattern.TRANSPARENT_ONLY.value,
            pattern_confidence=0.0,
            privacy_efficiency=0.0,
            loyalty_prediction=0.0,
            engagement_level=EngagementLevel.LOW.value,
            retention_probability=0.0,
            positive_indicators=[],
            risk_factors=["No transactions in range"],
        )

    raw_flows = segment_flows(transactions, policy.flow_idle_gap_minutes)
    flows = [
        ShieldedFlow(
            flow_start=flow.start,
            flow_end=flow.end,
            flow_type=classify_flow(flow, policy.holding_minutes).value,
            complexity=flow_complexity(len(flow.transactions)).value,
            transaction_count=len(flow.transactions),
            shielded_count=flow.shielded_count,
            duration_minutes=flow.duration_minutes,
            has_entry=any(tx.shielded_pool_entry for tx in flow.transactions),
            has_exit=any(tx.shielded_pool_exit for tx in flow.transactions),
        )
        for flow in raw_flows
    ]

    shielded = [tx for tx in transactions if tx.is_shielded]
    internal = [tx for tx in shielded if not tx.shielded_pool_entry and not tx.shielded_pool_exit]
    shielded_ratio = len(shielded) / len(transactions)
    privacy_efficiency = round(len(internal) / len(shielded) * 100, 2) if shielded else 0.0

    shielded_flows = [f for f in flows if f.shielded_count > 0]
    avg_duration = (
        sum(f.duration_minutes for f in shielded_flows) / len(shielded_flows) if shielded_flows else 0.0
    )
    transitions = count_transitions(transactions)

    pattern, confidence = detect_pattern(shielded_ratio, transitions, avg_duration, policy)
    loyalty = predict_loyalty(pattern, avg_duration, privacy_efficiency, flows, policy)
    shielded_flow_ratio = len(shielded_flows) / len(flows)
    retention = min(max(loyalty * 0.8 + shielded_flow_ratio * 30, 0.0), 100.0) / 100
    positive, risks = _indicators(pattern, flows, shielded_ratio, privacy_efficiency)

    return WalletFlowAnalysis(
        wallet_id=wallet_id,
        start=start,
        end=end,
        total_transactions=len(transactions),
        flows=flows,
        transitions=transitions,
        behavior_pattern=pattern.value,
        pattern_confidence=confidence,
        privacy_efficiency=privacy_efficiency,
        loyalty_prediction=loyalty,
        engagement_level=engagement_level(loyalty, policy).value,
        retention_probability=round(retention, 4),
        positive_indicators=positive,
        risk_factors=risks,
    )


class BehaviorFlowTracker:
    """Tracks and stores wallet flows, and summarizes behaviors per project."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.shielded

    async def track_wallet_flows(self, wallet_id: int, start: datetime, end: datetime) -> WalletFlowAnalysis:
        """
        Segment, classify and store the wallet's flows in [start, end].

        Stored flows starting inside the range are replaced.
        """
        if start >= end:
            raise ValidationError(
                "start must be before end",
                {"start": start.isoformat(), "end": end.isoformat()},
            )
        if await self.repo.get_wallet(wallet_id) is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})

        transactions = await self.repo.get_wallet_transactions(wallet_id, start=start, end=end)
        dated = [tx for tx in transactions if tx.block_timestamp is not None]
        if len(dated) < len(transactions):
            logger.warning(
                f"Wallet {wallet_id}: skipped {len(transactions) - len(dated)} transactions without timestamp"
            )

        analysis = analyze_flows(wallet_id, start, end, dated, self.policy)
        await self.repo.replace_behavior_flows(
            wallet_id, start, end, [flow.model_dump() for flow in analysis.flows]
        )
        return analysis

    async def analyze_project_behaviors(
        self, project_id: int, days: int = 30, as_of: Optional[datetime] = None
    ) -> ProjectBehaviorInsights:
        """Flow analysis for every wallet of a project; failing wallets are counted, not raised."""
        if days < 1:
            raise ValidationError("days must be >= 1", {"days": days})
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})

        end = as_of or datetime.now(UTC)
        start = end - timedelta(days=days)
        wallets = await self.repo.list_project_wallets(project_id)

        analyses: List[WalletFlowAnalysis] = []
        failed = 0
        for wallet in wallets:
            try:
                analyses.append(await self.track_wallet_flows(wallet.id, start, end))
            except Exception as e:
                failed += 1
                await self.repo.rollback()
                logger.warning(f"Behavior analysis failed for wallet {wallet.id}: {e}")

        distribution = {p.value: 0 for p in BehaviorPattern}
        indicator_counts: Dict[str, int] = {}
        for analysis in analyses:
            distribution[analysis.behavior_pattern] += 1
            for indicator in analysis.positive_indicators:
                indicator_counts[indicator] = indicator_counts.get(indicator, 0) + 1

        analyzed = len(analyses)
        common = sorted(
            indicator
            for indicator, count in indicator_counts.items()
            if analyzed > 0 and count / analyzed >= self.policy.common_characteristic_share
        )
        private = analyzed - distribution[BehaviorPattern.TRANSPARENT_ONLY.value]
        dominant = max(distribution, key=distribution.get) if analyzed else None

        recommendations = []
        if dominant is not None:
            recommendations.append(PATTERN_RECOMMENDATIONS[BehaviorPattern(dominant)])
        high_loyalty = sum(1 for a in analyses if a.loyalty_prediction >= self.policy.high_loyalty)
        if analyzed and high_loyalty / analyzed < 0.2:
            recommendations.append("Few wallets show high loyalty: focus on repeat shielded usage")

        logger.info(f"Project {project_id} behaviors: {analyzed} wallets analyzed, {failed} failed")
        return ProjectBehaviorInsights(
            project_id=project_id,
            days=days,
            wallets_analyzed=analyzed,
            wallets_failed=failed,
            pattern_distribution=distribution,
            average_loyalty=(
                round(sum(a.loyalty_prediction for a in analyses) / analyzed, 2) if analyzed else 0.0
            ),
            high_loyalty_wallets=high_loyalty,
            shielded_adoption_rate=round(private / analyzed * 100, 2) if analyzed else 0.0,
            common_characteristics=common,
            recommendations=recommendations,
        )
