"""
Retention Engine - week 1..4 retention per cohort and derived views.

week_N retention = % of cohort members with at least one active day in the
7-day window starting N weeks after the member's entry date. Members with
no activity count as not retained; they stay in the denominator.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from loguru import logger

from src.core.enums import CohortType
from src.core.errors import InsufficientDataError, NotFoundError, ValidationError
from src.database.records import ActivityDayRecord, CohortMemberRecord, CohortRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.cohorts import cohort_info, summarize_cohorts
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG
from src.services.analytics.schemas import (
    BatchItemResult,
    BatchResponse,
    CohortInfo,
    CohortTypeStatistics,
    NewVsReturningComparison,
    NewVsReturningGroup,
    RetentionAnomaly,
    RetentionHeatmap,
    RetentionTrends,
    WeekTrend,
)


def week_window(entry_date: date, week: int) -> tuple[date, date]:
    start = entry_date + timedelta(days=7 * week)
    return start, start + timedelta(days=6)


def compute_week_retention(
    members: Sequence[CohortMemberRecord],
    activity: Sequence[ActivityDayRecord],
    weeks: int,
) -> Dict[int, Optional[float]]:
    """
    Retention % per week for a member set.

    Returns None for every week when there are no members.
    """
    if not members:
        return {n: None for n in range(1, weeks + 1)}

    active_days: Dict[int, set] = {}
    for row in activity:
        if row.is_active:
            active_days.setdefault(row.wallet_id, set()).add(row.activity_date)

    retention: Dict[int, Optional[float]] = {}
    for n in range(1, weeks + 1):
        retained = 0
        for member in members:
            start, end = week_window(member.entry_date, n)
            if any(start <= day <= end for day in active_days.get(member.wallet_id, ())):
                retained += 1
        retention[n] = round(retained / len(members) * 100, 2)
    return retention


def _direction(change: Optional[float], band: float) -> str:
    if change is None:
        return "insufficient_data"
    if change > band:
        return "improving"
    if change < -band:
        return "declining"
    return "stable"


def _mean(values: Sequence[float]) -> Optional[float]:
    return round(sum(values) / len(values), 2) if values else None


class RetentionEngine:
    """Computes and caches cohort retention, and serves derived read views."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG
        self.policy = self.config.retention

    async def _cohort(self, cohort_id: int) -> CohortRecord:
        cohort = await self.repo.get_cohort(cohort_id)
        if cohort is None:
            raise NotFoundError(f"Cohort {cohort_id} not found", {"cohort_id": cohort_id})
        return cohort

    async def cohort_retention(self, cohort_id: int) -> Optional[CohortInfo]:
        """
        Compute and persist week 1..N retention for one cohort.

        Returns:
            CohortInfo with retention filled in, or None for an empty cohort
        """
        await self._cohort(cohort_id)
        members = await self.repo.get_cohort_members(cohort_id)
        if not members:
            logger.debug(f"Cohort {cohort_id} has no members, retention not computed")
            return None

        earliest = min(m.entry_date for m in members)
        latest = max(m.entry_date for m in members)
        activity = await self.repo.get_activity(
            [m.wallet_id for m in members],
            start=earliest + timedelta(days=7),
            end=week_window(latest, self.policy.weeks)[1],
        )

        retention = compute_week_retention(members, activity, self.policy.weeks)
        await self.repo.update_cohort_retention(cohort_id, retention)
        return cohort_info(await self._cohort(cohort_id))

    async def all_cohort_retention(self, cohort_type: CohortType = CohortType.WEEKLY) -> BatchResponse:
        """Recompute every cohort of a type; one failing cohort does not stop the rest."""
        cohorts = await self.repo.list_cohorts(cohort_type.value, newest_first=False)
        items: List[BatchItemResult] = []

        for cohort in cohorts:
            try:
                info = await self.cohort_retention(cohort.id)
                items.append(BatchItemResult(
                    id=cohort.id,
                    success=True,
                    result=info.model_dump(mode="json") if info else None,
                ))
            except Exception as e:
                await self.repo.rollback()
                logger.warning(f"Retention failed for cohort {cohort.id}: {e}")
                items.append(BatchItemResult(id=cohort.id, success=False, error=str(e)))

        response = BatchResponse.from_items(items)
        logger.info(
            f"{cohort_type.value} retention: {response.succeeded}/{response.total} cohorts updated"
        )
        return response

    async def heatmap(
        self, cohort_type: CohortType = CohortType.WEEKLY, limit: Optional[int] = None
    ) -> RetentionHeatmap:
        """Newest cohorts first, stored retention values as-is."""
        limit = limit or self.policy.heatmap_limit
        if limit < 1:
            raise ValidationError("limit must be >= 1", {"limit": limit})
        cohorts = await self.repo.list_cohorts(cohort_type.value, limit=limit)
        return RetentionHeatmap(cohort_type=cohort_type.value, rows=[cohort_info(c) for c in cohorts])

    async def trends(
        self, cohort_type: CohortType = CohortType.WEEKLY, periods: Optional[int] = None
    ) -> RetentionTrends:
        """Compare the average retention of the recent half of cohorts to the older half."""
        periods = periods or self.policy.trend_periods
        if periods < 2:
            raise ValidationError("periods must be >= 2", {"periods": periods})

        cohorts = await self.repo.list_cohorts(cohort_type.value, limit=periods)
        cohorts = [c for c in cohorts if c.retention_week_1 is not None]
        half = len(cohorts) // 2
        recent, older = cohorts[:half], cohorts[half:]

        weeks: List[WeekTrend] = []
        for n in range(1, self.policy.weeks + 1):
            recent_avg = _mean([c.week(n) for c in recent if c.week(n) is not None])
            older_avg = _mean([c.week(n) for c in older if c.week(n) is not None])
            change = (
                round(recent_avg - older_avg, 2)
                if recent_avg is not None and older_avg is not None
                else None
            )
            weeks.append(WeekTrend(
                week=n,
                recent_average=recent_avg,
                older_average=older_avg,
                change=change,
                direction=_direction(change, self.policy.trend_stable_band),
                magnitude=abs(change) if change is not None else 0.0,
            ))

        return RetentionTrends(
            cohort_type=cohort_type.value,
            cohorts_analyzed=len(cohorts),
            direction=weeks[0].direction if weeks else "insufficient_data",
            weeks=weeks,
        )

    async def compare_new_vs_returning(self, cohort_id: int) -> NewVsReturningComparison:
        """Activity of the cohort's daily rows split by the is_returning flag."""
        cohort = await self._cohort(cohort_id)
        members = await self.repo.get_cohort_members(cohort_id)
        if not members:
            raise InsufficientDataError(
                f"Cohort {cohort_id} has no members", {"cohort_id": cohort_id}
            )
        window = self.policy.new_vs_returning_days

        activity = await self.repo.get_activity(
            [m.wallet_id for m in members],
            start=cohort.cohort_period,
            end=cohort.cohort_period + timedelta(days=window - 1),
        )

        def group(rows: List[ActivityDayRecord]) -> NewVsReturningGroup:
            if not rows:
                return NewVsReturningGroup()
            active = [r for r in rows if r.is_active]
            return NewVsReturningGroup(
                wallet_count=len({r.wallet_id for r in rows}),
                activity_rate=round(len(active) / len(rows) * 100, 2),
                active_days=len({r.activity_date for r in active}),
            )

        return NewVsReturningComparison(
            cohort_id=cohort_id,
            window_days=window,
            new_wallets=group([r for r in activity if not r.is_returning]),
            returning_wallets=group([r for r in activity if r.is_returning]),
        )

    async def retention_statistics(self) -> Dict[str, CohortTypeStatistics]:
        """Stored retention aggregated per cohort type, computed cohorts only."""
        stats: Dict[str, CohortTypeStatistics] = {}
        for cohort_type in CohortType:
            cohorts = await self.repo.list_cohorts(cohort_type.value)
            computed = [c for c in cohorts if c.retention_week_1 is not None]
            stats[cohort_type.value] = summarize_cohorts(cohort_type.value, computed)
        return stats

    async def anomalies(
        self, cohort_type: CohortType = CohortType.WEEKLY, threshold: Optional[float] = None
    ) -> List[RetentionAnomaly]:
        """Week-over-week retention jumps between consecutive cohorts larger than threshold points."""
        threshold = self.policy.anomaly_threshold if threshold is None else threshold
        if threshold < 0:
            raise ValidationError("threshold must be >= 0", {"threshold": threshold})

        cohorts = await self.repo.list_cohorts(cohort_type.value, newest_first=False)
        found: List[RetentionAnomaly] = []

        for previous, current in zip(cohorts, cohorts[1:]):
            for n in range(1, self.policy.weeks + 1):
                before, after = previous.week(n), current.week(n)
                if before is None or after is None:
                    continue
                change = round(after - before, 2)
                if abs(change) > threshold:
                    found.append(RetentionAnomaly(
                        cohort_id=current.id,
                        cohort_period=current.cohort_period,
                        week=n,
                        previous_value=before,
                        current_value=after,
                        change=change,
                        direction="spike" if change > 0 else "drop",
                    ))

        if found:
            logger.info(f"Found {len(found)} {cohort_type.value} retention anomalies (threshold {threshold})")
        return found
