"""
Cohort Service - groups wallets by the period of their first activity.

Weekly cohorts start on Monday, monthly cohorts on the 1st. Every wallet
joins one weekly and one monthly cohort; assignment is idempotent.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from loguru import logger

from src.core.enums import CohortType
from src.core.errors import NotFoundError, ValidationError
from src.database.records import CohortRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG
from src.services.analytics.schemas import (
    BatchItemResult,
    BatchResponse,
    CohortAssignment,
    CohortInfo,
    CohortTypeStatistics,
)


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def period_start(day: date, cohort_type: CohortType) -> date:
    if cohort_type == CohortType.WEEKLY:
        return week_start(day)
    return month_start(day)


def next_period(day: date, cohort_type: CohortType) -> date:
    if cohort_type == CohortType.WEEKLY:
        return day + timedelta(days=7)
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def cohort_info(cohort: CohortRecord) -> CohortInfo:
    return CohortInfo(
        id=cohort.id,
        cohort_type=cohort.cohort_type,
        cohort_period=cohort.cohort_period,
        wallet_count=cohort.wallet_count,
        week_1=cohort.retention_week_1,
        week_2=cohort.retention_week_2,
        week_3=cohort.retention_week_3,
        week_4=cohort.retention_week_4,
    )


def _average(values: Sequence[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return round(sum(present) / len(present), 2) if present else None


def summarize_cohorts(cohort_type: str, cohorts: Sequence[CohortRecord]) -> CohortTypeStatistics:
    """Size and average retention of one cohort type."""
    total_wallets = sum(c.wallet_count for c in cohorts)
    periods = [c.cohort_period for c in cohorts]
    return CohortTypeStatistics(
        cohort_type=cohort_type,
        total_cohorts=len(cohorts),
        total_wallets=total_wallets,
        avg_cohort_size=round(total_wallets / len(cohorts), 2) if cohorts else 0.0,
        avg_week_1=_average([c.retention_week_1 for c in cohorts]),
        avg_week_2=_average([c.retention_week_2 for c in cohorts]),
        avg_week_3=_average([c.retention_week_3 for c in cohorts]),
        avg_week_4=_average([c.retention_week_4 for c in cohorts]),
        earliest_cohort=min(periods) if periods else None,
        latest_cohort=max(periods) if periods else None,
    )


class CohortService:
    """Cohort creation, wallet assignment and cohort read views."""

    def __init__(self, repo: AnalyticsRepository, config: Optional[AnalyticsConfig] = None):
        self.repo = repo
        self.config = config or DEFAULT_CONFIG

    async def assign_wallet_to_cohorts(self, wallet_id: int) -> CohortAssignment:
        """
        Put the wallet into the weekly and monthly cohort of its first active day.

        Falls back to the wallet creation date when it has no activity yet.
        """
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})

        entry_date = await self.repo.first_active_date(wallet_id) or wallet.created_at.date()

        cohort_ids = []
        for cohort_type in CohortType:
            cohort = await self.repo.upsert_cohort(cohort_type.value, period_start(entry_date, cohort_type))
            await self.repo.add_cohort_member(wallet_id, cohort.id, entry_date)
            cohort_ids.append(cohort.id)

        await self.repo.refresh_cohort_counts(cohort_ids)

        cohorts = [cohort_info(await self.repo.get_cohort(cohort_id)) for cohort_id in cohort_ids]
        logger.debug(f"Wallet {wallet_id} assigned to cohorts {cohort_ids} (entry {entry_date})")
        return CohortAssignment(wallet_id=wallet_id, entry_date=entry_date, cohorts=cohorts)

    async def process_unassigned_wallets(self) -> BatchResponse:
        """Assign every wallet that has no cohort membership yet."""
        wallets = await self.repo.list_wallets_without_cohort()
        items: List[BatchItemResult] = []

        for wallet in wallets:
            try:
                assignment = await self.assign_wallet_to_cohorts(wallet.id)
                items.append(BatchItemResult(
                    id=wallet.id, success=True, result=assignment.model_dump(mode="json")
                ))
            except Exception as e:
                await self.repo.rollback()
                logger.warning(f"Failed to assign wallet {wallet.id} to cohorts: {e}")
                items.append(BatchItemResult(id=wallet.id, success=False, error=str(e)))

        response = BatchResponse.from_items(items)
        logger.info(f"Cohort assignment: {response.succeeded}/{response.total} wallets assigned")
        return response

    async def create_cohorts_for_date_range(
        self, start: date, end: date, cohort_type: CohortType = CohortType.WEEKLY
    ) -> List[CohortInfo]:
        """Ensure a cohort row exists for every period touching [start, end]."""
        if start > end:
            raise ValidationError(
                "start must not be after end",
                {"start": start.isoformat(), "end": end.isoformat()},
            )

        created: List[CohortInfo] = []
        current = period_start(start, cohort_type)
        while current <= end:
            cohort = await self.repo.upsert_cohort(cohort_type.value, current)
            created.append(cohort_info(cohort))
            current = next_period(current, cohort_type)

        logger.info(f"Ensured {len(created)} {cohort_type.value} cohorts from {start} to {end}")
        return created

    async def get_cohort_info(self, cohort_id: int) -> CohortInfo:
        cohort = await self.repo.get_cohort(cohort_id)
        if cohort is None:
            raise NotFoundError(f"Cohort {cohort_id} not found", {"cohort_id": cohort_id})
        return cohort_info(cohort)

    async def list_cohorts(
        self, cohort_type: Optional[CohortType] = None, limit: int = 50
    ) -> List[CohortInfo]:
        if limit < 1:
            raise ValidationError("limit must be >= 1", {"limit": limit})
        cohorts = await self.repo.list_cohorts(cohort_type.value if cohort_type else None, limit=limit)
        return [cohort_info(c) for c in cohorts]

    async def cohort_statistics(self) -> Dict[str, CohortTypeStatistics]:
        """Per cohort type: count, wallets, average size and average retention."""
        stats: Dict[str, CohortTypeStatistics] = {}
        for cohort_type in CohortType:
            cohorts = await self.repo.list_cohorts(cohort_type.value)
            stats[cohort_type.value] = summarize_cohorts(cohort_type.value, cohorts)
        return stats

    async def update_cohort_wallet_counts(self) -> int:
        updated = await self.repo.refresh_cohort_counts()
        logger.info(f"Refreshed wallet counts for {updated} cohorts")
        return updated
