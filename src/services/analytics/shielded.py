"""
Shielded-Behavior Analyzer - daily shielded pool metrics and privacy scores.

Daily rows are computed from processed transactions and upserted into
shielded_pool_metrics, so re-running a day simply overwrites it.
"""

from datetime import date, datetime, time, timedelta, UTC
from typing import Dict, List, Optional, Sequence

from loguru import logger

from src.core.enums import ShieldedBehaviorType, ShieldedUserType
from src.core.errors import NotFoundError, ValidationError
from src.database.records import CohortMemberRecord, TransactionRecord, WalletRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG, ShieldedPolicy
from src.services.analytics.retention import compute_week_retention
from src.services.analytics.schemas import (
    GroupMetrics,
    ProjectShieldedAnalytics,
    ProjectShieldedDay,
    ShieldedComparison,
    ShieldedDailyMetrics,
    ShieldedPercentage,
    WalletShieldedSummary,
)


# =============================================================================
# Pure helpers
# =============================================================================


def avg_shielded_duration_hours(transactions: Sequence[TransactionRecord]) -> Optional[float]:
    """Average hours from each pool entry to the next pool exit."""
    durations = []
    entry_at: Optional[datetime] = None
    for tx in transactions:
        if tx.block_timestamp is None:
            continue
        if tx.shielded_pool_entry and entry_at is None:
            entry_at = tx.block_timestamp
        elif tx.shielded_pool_exit and entry_at is not None:
            durations.append((tx.block_timestamp - entry_at).total_seconds() / 3600)
            entry_at = None
    return round(sum(durations) / len(durations), 2) if durations else None


def privacy_score(
    shielded: int,
    transparent: int,
    internal: int,
    entries: int,
    exits: int,
    avg_duration_hours: Optional[float],
) -> int:
    """
    0..100 heuristic.

    shielded share x 40 + internal share of shielded x 20
    + min(round trips x 5, 20) + duration bucket (>=24h 20, >=12h 15, >=6h 10, >=1h 5)
    """
    total = shielded + transparent
    if total == 0:
        return 0

    score = shielded / total * 40
    if shielded > 0:
        score += internal / shielded * 20
    score += min(min(entries, exits) * 5, 20)

    if avg_duration_hours is not None:
        if avg_duration_hours >= 24:
            score += 20
        elif avg_duration_hours >= 12:
            score += 15
        elif avg_duration_hours >= 6:
            score += 10
        elif avg_duration_hours >= 1:
            score += 5

    return int(round(min(max(score, 0), 100)))


def classify_behavior(
    shielded: int, transparent: int, entries: int, exits: int, policy: ShieldedPolicy
) -> ShieldedBehaviorType:
    total = shielded + transparent
    if total == 0:
        return ShieldedBehaviorType.TRANSPARENT_ONLY

    ratio = shielded / total
    if ratio >= policy.full_privacy_ratio:
        return ShieldedBehaviorType.FULL_PRIVACY
    if entries > 0 and entries >= 2 * exits:
        return ShieldedBehaviorType.ENTRY_FOCUSED
    if exits > 0 and exits >= 2 * entries:
        return ShieldedBehaviorType.EXIT_FOCUSED
    if ratio > policy.mixed_privacy_ratio:
        return ShieldedBehaviorType.MIXED_PRIVACY
    return ShieldedBehaviorType.TRANSPARENT_ONLY


def classify_user_type(shielded_percentage: float) -> ShieldedUserType:
    if shielded_percentage > 70:
        return ShieldedUserType.SHIELDED_HEAVY
    if shielded_percentage > 30:
        return ShieldedUserType.SHIELDED_MODERATE
    if shielded_percentage > 5:
        return ShieldedUserType.SHIELDED_LIGHT
    return ShieldedUserType.TRANSPARENT_ONLY


def daily_metrics(
    wallet_id: int,
    day: date,
    transactions: Sequence[TransactionRecord],
    policy: ShieldedPolicy,
) -> ShieldedDailyMetrics:
    """Shielded metrics for one wallet-day from that day's transactions."""
    shielded = [tx for tx in transactions if tx.is_shielded]
    entries = [tx for tx in transactions if tx.shielded_pool_entry]
    exits = [tx for tx in transactions if tx.shielded_pool_exit]
    internal = [tx for tx in shielded if not tx.shielded_pool_entry and not tx.shielded_pool_exit]
    transparent_count = len(transactions) - len(shielded)
    duration = avg_shielded_duration_hours(transactions)

    return ShieldedDailyMetrics(
        wallet_id=wallet_id,
        metric_date=day,
        shielded_tx_count=len(shielded),
        transparent_tx_count=transparent_count,
        transparent_to_shielded_count=len(entries),
        shielded_to_transparent_count=len(exits),
        internal_shielded_count=len(internal),
        shielded_volume_zatoshi=sum(tx.volume for tx in shielded),
        transparent_to_shielded_volume=sum(tx.volume for tx in entries),
        shielded_to_transparent_volume=sum(tx.volume for tx in exits),
        avg_shielded_duration_hours=duration,
        privacy_score=privacy_score(
            len(shielded), transparent_count, len(internal), len(entries), len(exits), duration
        ),
        behavior_type=classify_behavior(
            len(shielded), transparent_count, len(entries), len(exits), policy
        ).value,
    )


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


class ShieldedAnalyzer:
    """Per-wallet and per-project shielded pool analytics."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.shielded

    async def _wallet(self, wallet_id: int) -> WalletRecord:
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})
        return wallet

    async def _project_wallets(self, project_id: int) -> List[WalletRecord]:
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})
        return await self.repo.list_project_wallets(project_id)

    @staticmethod
    def _window(days: int, as_of: Optional[datetime]) -> tuple[datetime, datetime]:
        if days < 1:
            raise ValidationError("days must be >= 1", {"days": days})
        end = as_of or datetime.now(UTC)
        return end - timedelta(days=days), end

    async def _persist(self, metrics: ShieldedDailyMetrics) -> None:
        await self.repo.upsert_shielded_metric(metrics.model_dump(exclude={"behavior_type"}))

    async def _refresh_wallet(
        self, wallet_id: int, start: datetime, end: datetime
    ) -> List[ShieldedDailyMetrics]:
        """Recompute and store daily rows for every active day in [start, end]."""
        transactions = await self.repo.get_wallet_transactions(wallet_id, start=start, end=end)
        by_day: Dict[date, List[TransactionRecord]] = {}
        for tx in transactions:
            if tx.block_timestamp is not None:
                by_day.setdefault(tx.block_timestamp.date(), []).append(tx)

        rows = []
        for day in sorted(by_day):
            metrics = daily_metrics(wallet_id, day, by_day[day], self.policy)
            await self._persist(metrics)
            rows.append(metrics)
        return rows

    # =========================================================================
    # Wallet level
    # =========================================================================

    async def analyze_wallet_day(self, wallet_id: int, day: date) -> ShieldedDailyMetrics:
        """Shielded metrics for one day; stored only when the wallet transacted that day."""
        await self._wallet(wallet_id)
        start, end = _day_bounds(day)
        transactions = await self.repo.get_wallet_transactions(wallet_id, start=start, end=end)
        metrics = daily_metrics(wallet_id, day, transactions, self.policy)
        if transactions:
            await self._persist(metrics)
            logger.debug(f"Wallet {wallet_id} {day}: privacy score {metrics.privacy_score}")
        return metrics

    async def wallet_metrics(
        self, wallet_id: int, days: int = 30, as_of: Optional[datetime] = None
    ) -> WalletShieldedSummary:
        await self._wallet(wallet_id)
        start, end = self._window(days, as_of)
        daily = await self._refresh_wallet(wallet_id, start, end)

        shielded = sum(d.shielded_tx_count for d in daily)
        transparent = sum(d.transparent_tx_count for d in daily)
        entries = sum(d.transparent_to_shielded_count for d in daily)
        exits = sum(d.shielded_to_transparent_count for d in daily)

        return WalletShieldedSummary(
            wallet_id=wallet_id,
            days=days,
            days_with_activity=len(daily),
            shielded_tx_count=shielded,
            transparent_tx_count=transparent,
            transparent_to_shielded_count=entries,
            shielded_to_transparent_count=exits,
            internal_shielded_count=sum(d.internal_shielded_count for d in daily),
            shielded_volume_zatoshi=sum(d.shielded_volume_zatoshi for d in daily),
            avg_privacy_score=round(sum(d.privacy_score for d in daily) / len(daily), 2) if daily else 0.0,
            shielded_percentage=_pct(shielded, shielded + transparent),
            behavior_type=classify_behavior(shielded, transparent, entries, exits, self.policy).value,
            daily=daily,
        )

    async def wallet_shielded_percentage(
        self, wallet_id: int, days: int = 30, as_of: Optional[datetime] = None
    ) -> ShieldedPercentage:
        await self._wallet(wallet_id)
        start, end = self._window(days, as_of)
        transactions = await self.repo.get_wallet_transactions(wallet_id, start=start, end=end)
        shielded = sum(1 for tx in transactions if tx.is_shielded)
        percentage = _pct(shielded, len(transactions))
        return ShieldedPercentage(
            wallet_id=wallet_id,
            days=days,
            total_transactions=len(transactions),
            shielded_transactions=shielded,
            shielded_percentage=percentage,
            user_type=classify_user_type(percentage).value,
        )

    # =========================================================================
    # Project level
    # =========================================================================

    async def project_analytics(
        self, project_id: int, days: int = 30, as_of: Optional[datetime] = None
    ) -> ProjectShieldedAnalytics:
        """Per-day project totals and user segmentation by shielded share."""
        wallets = await self._project_wallets(project_id)
        start, end = self._window(days, as_of)

        per_day: Dict[date, List[ShieldedDailyMetrics]] = {}
        segments = {t.value: 0 for t in ShieldedUserType}
        shielded_wallets = 0
        shielded_total = 0
        tx_total = 0

        for wallet in wallets:
            daily = await self._refresh_wallet(wallet.id, start, end)
            for row in daily:
                per_day.setdefault(row.metric_date, []).append(row)
            shielded = sum(d.shielded_tx_count for d in daily)
            total = shielded + sum(d.transparent_tx_count for d in daily)
            if shielded > 0:
                shielded_wallets += 1
            shielded_total += shielded
            tx_total += total
            segments[classify_user_type(_pct(shielded, total)).value] += 1

        daily_rows = []
        for day in sorted(per_day):
            rows = per_day[day]
            shielded = sum(r.shielded_tx_count for r in rows)
            transparent = sum(r.transparent_tx_count for r in rows)
            daily_rows.append(ProjectShieldedDay(
                metric_date=day,
                wallets=len(rows),
                shielded_tx_count=shielded,
                transparent_tx_count=transparent,
                transparent_to_shielded_count=sum(r.transparent_to_shielded_count for r in rows),
                shielded_to_transparent_count=sum(r.shielded_to_transparent_count for r in rows),
                internal_shielded_count=sum(r.internal_shielded_count for r in rows),
                shielded_volume_zatoshi=sum(r.shielded_volume_zatoshi for r in rows),
                avg_privacy_score=round(sum(r.privacy_score for r in rows) / len(rows), 2),
                shielded_percentage=_pct(shielded, shielded + transparent),
            ))

        all_rows = [r for rows in per_day.values() for r in rows]
        return ProjectShieldedAnalytics(
            project_id=project_id,
            days=days,
            total_wallets=len(wallets),
            shielded_wallets=shielded_wallets,
            shielded_percentage=_pct(shielded_total, tx_total),
            avg_privacy_score=(
                round(sum(r.privacy_score for r in all_rows) / len(all_rows), 2) if all_rows else 0.0
            ),
            user_segments=segments,
            daily=daily_rows,
        )

    async def _group_metrics(
        self, wallets: List[WalletRecord], start: datetime, end: datetime
    ) -> GroupMetrics:
        weeks = self.config.retention.weeks
        if not wallets:
            return GroupMetrics(
                wallet_count=0,
                avg_transactions=0.0,
                avg_volume_zatoshi=0.0,
                avg_active_days=0.0,
                avg_session_hours=0.0,
                retention={f"week_{n}": 0.0 for n in range(1, weeks + 1)},
            )

        tx_counts, volumes, active_days, sessions = [], [], [], []
        members: List[CohortMemberRecord] = []
        for wallet in wallets:
            transactions = [
                tx for tx in await self.repo.get_wallet_transactions(wallet.id, start=start, end=end)
                if tx.block_timestamp is not None
            ]
            tx_counts.append(len(transactions))
            volumes.append(sum(tx.volume for tx in transactions))

            by_day: Dict[date, List[datetime]] = {}
            for tx in transactions:
                by_day.setdefault(tx.block_timestamp.date(), []).append(tx.block_timestamp)
            active_days.append(len(by_day))
            if by_day:
                spans = [(max(ts) - min(ts)).total_seconds() / 3600 for ts in by_day.values()]
                sessions.append(sum(spans) / len(spans))

            first_active = await self.repo.first_active_date(wallet.id)
            members.append(CohortMemberRecord(
                wallet_id=wallet.id,
                cohort_id=0,
                entry_date=first_active or wallet.created_at.date(),
            ))

        activity = await self.repo.get_activity([w.id for w in wallets])
        retention = compute_week_retention(members, activity, weeks)
        count = len(wallets)

        return GroupMetrics(
            wallet_count=count,
            avg_transactions=round(sum(tx_counts) / count, 2),
            avg_volume_zatoshi=round(sum(volumes) / count, 2),
            avg_active_days=round(sum(active_days) / count, 2),
            avg_session_hours=round(sum(sessions) / len(sessions), 2) if sessions else 0.0,
            retention={f"week_{n}": value or 0.0 for n, value in retention.items()},
        )

    def _insights(self, shielded: GroupMetrics, transparent: GroupMetrics) -> List[str]:
        if shielded.wallet_count == 0 or transparent.wallet_count == 0:
            return ["Not enough wallets in both groups to compare"]

        insights = []
        tx_diff = shielded.avg_transactions - transparent.avg_transactions
        if abs(tx_diff) > self.policy.tx_difference:
            more_or_less = "more" if tx_diff > 0 else "fewer"
            insights.append(f"Shielded users make {abs(tx_diff):.1f} {more_or_less} transactions on average")

        if transparent.avg_volume_zatoshi > 0:
            volume_diff = (
                (shielded.avg_volume_zatoshi - transparent.avg_volume_zatoshi)
                / transparent.avg_volume_zatoshi * 100
            )
            if abs(volume_diff) > self.policy.volume_difference_pct:
                higher_or_lower = "higher" if volume_diff > 0 else "lower"
                insights.append(f"Shielded users move {abs(volume_diff):.0f}% {higher_or_lower} volume")

        retention_diff = shielded.retention.get("week_1", 0.0) - transparent.retention.get("week_1", 0.0)
        if abs(retention_diff) > self.policy.retention_difference:
            better_or_worse = "better" if retention_diff > 0 else "worse"
            insights.append(
                f"Shielded users show {abs(retention_diff):.1f} points {better_or_worse} week 1 retention"
            )

        session_diff = shielded.avg_session_hours - transparent.avg_session_hours
        if abs(session_diff) > self.policy.session_difference_hours:
            longer_or_shorter = "longer" if session_diff > 0 else "shorter"
            insights.append(f"Shielded users have {abs(session_diff):.1f}h {longer_or_shorter} sessions")

        return insights or ["No material difference between shielded and transparent users"]

    async def compare_users(
        self, project_id: int, days: int = 30, as_of: Optional[datetime] = None
    ) -> ShieldedComparison:
        """Split wallets by whether they ever made a shielded transaction and compare."""
        wallets = await self._project_wallets(project_id)
        start, end = self._window(days, as_of)

        shielded_ids = await self.repo.get_shielded_wallet_ids([w.id for w in wallets])
        shielded_group = await self._group_metrics(
            [w for w in wallets if w.id in shielded_ids], start, end
        )
        transparent_group = await self._group_metrics(
            [w for w in wallets if w.id not in shielded_ids], start, end
        )

        return ShieldedComparison(
            project_id=project_id,
            days=days,
            shielded_users=shielded_group,
            transparent_users=transparent_group,
            insights=self._insights(shielded_group, transparent_group),
        )
