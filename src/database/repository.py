"""
AnalyticsRepository - the single data-access seam of the analytics engine.

Wraps an AsyncSession, issues every SQL statement the engine needs and maps
ORM rows to frozen records (src.database.records) at the boundary.

Writes are upserts keyed on the tables' unique constraints, so re-running
any analytics operation is idempotent. The upsert statement is picked per
dialect (postgresql in production, sqlite in tests).

Usage:
    async with session_maker() as session:
        repo = AnalyticsRepository(session)
        wallet = await repo.get_wallet(42)
"""

from datetime import date, datetime, UTC
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import select, func, and_, update, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import (
    Project,
    Wallet,
    ProcessedTransaction,
    WalletActivityMetric,
    WalletCohort,
    WalletCohortAssignment,
    WalletAdoptionStage,
    WalletProductivityScore,
    ShieldedPoolMetric,
    WalletBehaviorFlow,
)
from src.database.records import (
    as_utc,
    ProjectRecord,
    WalletRecord,
    TransactionRecord,
    ActivityDayRecord,
    StageRecord,
    CohortRecord,
    CohortMemberRecord,
    ScoreRecord,
    ShieldedMetricRecord,
)


# =============================================================================
# Row mappers
# =============================================================================


def _project(row: Project) -> ProjectRecord:
    return ProjectRecord(id=row.id, name=row.name, created_at=as_utc(row.created_at))


def _wallet(row: Wallet) -> WalletRecord:
    return WalletRecord(
        id=row.id,
        project_id=row.project_id,
        address=row.address,
        address_type=row.address_type,
        network=row.network,
        is_active=row.is_active,
        created_at=as_utc(row.created_at),
    )


def _transaction(row: ProcessedTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        wallet_id=row.wallet_id,
        txid=row.txid,
        block_height=row.block_height,
        block_timestamp=as_utc(row.block_timestamp),
        tx_type=row.tx_type,
        tx_subtype=row.tx_subtype,
        value_zatoshi=row.value_zatoshi or 0,
        fee_zatoshi=row.fee_zatoshi or 0,
        counterparty_address=row.counterparty_address,
        counterparty_type=row.counterparty_type,
        is_shielded=row.is_shielded,
        shielded_pool_entry=row.shielded_pool_entry,
        shielded_pool_exit=row.shielded_pool_exit,
        complexity_score=row.complexity_score or 0,
    )


def _activity(row: WalletActivityMetric) -> ActivityDayRecord:
    return ActivityDayRecord(
        wallet_id=row.wallet_id,
        activity_date=row.activity_date,
        transaction_count=row.transaction_count,
        total_volume_zatoshi=row.total_volume_zatoshi,
        total_fees_paid=row.total_fees_paid,
        transfers_count=row.transfers_count,
        swaps_count=row.swaps_count,
        bridges_count=row.bridges_count,
        shielded_count=row.shielded_count,
        sequence_complexity_score=row.sequence_complexity_score,
        is_active=row.is_active,
        is_returning=row.is_returning,
    )


def _stage(row: WalletAdoptionStage) -> StageRecord:
    return StageRecord(
        wallet_id=row.wallet_id,
        stage_name=row.stage_name,
        stage_order=row.stage_order,
        achieved_at=as_utc(row.achieved_at),
        hours_to_achieve=row.hours_to_achieve,
        confidence=row.confidence,
    )


def _cohort(row: WalletCohort) -> CohortRecord:
    return CohortRecord(
        id=row.id,
        cohort_type=row.cohort_type,
        cohort_period=row.cohort_period,
        wallet_count=row.wallet_count,
        retention_week_1=row.retention_week_1,
        retention_week_2=row.retention_week_2,
        retention_week_3=row.retention_week_3,
        retention_week_4=row.retention_week_4,
    )


def _score(row: WalletProductivityScore) -> ScoreRecord:
    return ScoreRecord(
        wallet_id=row.wallet_id,
        total_score=row.total_score,
        retention_score=row.retention_score,
        adoption_score=row.adoption_score,
        churn_score=row.churn_score,
        frequency_score=row.frequency_score,
        activity_score=row.activity_score,
        status=row.status,
        risk_level=row.risk_level,
        calculated_at=as_utc(row.calculated_at),
    )


def _shielded_metric(row: ShieldedPoolMetric) -> ShieldedMetricRecord:
    return ShieldedMetricRecord(
        wallet_id=row.wallet_id,
        metric_date=row.metric_date,
        shielded_tx_count=row.shielded_tx_count,
        transparent_tx_count=row.transparent_tx_count,
        transparent_to_shielded_count=row.transparent_to_shielded_count,
        shielded_to_transparent_count=row.shielded_to_transparent_count,
        internal_shielded_count=row.internal_shielded_count,
        shielded_volume_zatoshi=row.shielded_volume_zatoshi,
        transparent_to_shielded_volume=row.transparent_to_shielded_volume,
        shielded_to_transparent_volume=row.shielded_to_transparent_volume,
        avg_shielded_duration_hours=row.avg_shielded_duration_hours,
        privacy_score=row.privacy_score,
    )


class AnalyticsRepository:
    """Data access for wallets, transactions, activity, stages, cohorts and scores."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Session control
    # =========================================================================

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    def _insert(self, model):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(model)
        return pg_insert(model)

    # =========================================================================
    # Projects & wallets
    # =========================================================================

    async def create_project(self, name: str, owner: Optional[str] = None) -> ProjectRecord:
        project = Project(name=name, owner=owner)
        self.session.add(project)
        await self.session.commit()
        await self.session.refresh(project)
        logger.info(f"Created project {project.id} ({name})")
        return _project(project)

    async def get_project(self, project_id: int) -> Optional[ProjectRecord]:
        row = await self.session.get(Project, project_id)
        return _project(row) if row else None

    async def create_wallet(
        self,
        project_id: int,
        address: str,
        address_type: str = "transparent",
        network: str = "mainnet",
        created_at: Optional[datetime] = None,
    ) -> WalletRecord:
        wallet = Wallet(
            project_id=project_id,
            address=address,
            address_type=address_type,
            network=network,
            created_at=created_at or datetime.now(UTC),
        )
        self.session.add(wallet)
        await self.session.commit()
        await self.session.refresh(wallet)
        return _wallet(wallet)

    async def get_wallet(self, wallet_id: int) -> Optional[WalletRecord]:
        row = await self.session.get(Wallet, wallet_id)
        return _wallet(row) if row else None

    async def list_project_wallets(self, project_id: int) -> List[WalletRecord]:
        result = await self.session.execute(
            select(Wallet).where(Wallet.project_id == project_id).order_by(Wallet.id)
        )
        return [_wallet(row) for row in result.scalars().all()]

    async def get_active_address_map(self) -> Dict[str, int]:
        """address -> wallet id for every active wallet."""
        result = await self.session.execute(
            select(Wallet.address, Wallet.id).where(Wallet.is_active == True)  # noqa: E712
        )
        return {row.address: row.id for row in result.all()}

    async def list_wallets_without_cohort(self) -> List[WalletRecord]:
        assigned = select(WalletCohortAssignment.wallet_id)
        result = await self.session.execute(
            select(Wallet).where(Wallet.id.not_in(assigned)).order_by(Wallet.id)
        )
        return [_wallet(row) for row in result.scalars().all()]

    # =========================================================================
    # Processed transactions
    # =========================================================================

    async def transaction_exists(self, wallet_id: int, txid: str) -> bool:
        result = await self.session.execute(
            select(ProcessedTransaction.id).where(
                and_(
                    ProcessedTransaction.wallet_id == wallet_id,
                    ProcessedTransaction.txid == txid,
                )
            )
        )
        return result.scalar() is not None

    async def insert_transaction(self, values: Dict[str, Any], commit: bool = True) -> bool:
        """Insert a classified transaction. Returns False if (wallet_id, txid) already stored."""
        if await self.transaction_exists(values["wallet_id"], values["txid"]):
            return False

        stmt = self._insert(ProcessedTransaction).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["wallet_id", "txid"])
        await self.session.execute(stmt)
        if commit:
            await self.session.commit()
        return True

    async def get_wallet_transactions(
        self,
        wallet_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TransactionRecord]:
        """Wallet transactions in chronological order (untimestamped rows first)."""
        conditions = [ProcessedTransaction.wallet_id == wallet_id]
        if start is not None:
            conditions.append(ProcessedTransaction.block_timestamp >= start)
        if end is not None:
            conditions.append(ProcessedTransaction.block_timestamp <= end)

        result = await self.session.execute(
            select(ProcessedTransaction)
            .where(and_(*conditions))
            .order_by(ProcessedTransaction.block_timestamp, ProcessedTransaction.id)
        )
        return [_transaction(row) for row in result.scalars().all()]

    async def get_previous_transaction(
        self, wallet_id: int, before: datetime
    ) -> Optional[TransactionRecord]:
        result = await self.session.execute(
            select(ProcessedTransaction)
            .where(
                and_(
                    ProcessedTransaction.wallet_id == wallet_id,
                    ProcessedTransaction.block_timestamp < before,
                )
            )
            .order_by(ProcessedTransaction.block_timestamp.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _transaction(row) if row else None

    async def count_wallet_transactions(self, wallet_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ProcessedTransaction)
            .where(ProcessedTransaction.wallet_id == wallet_id)
        )
        return result.scalar() or 0

    async def get_shielded_wallet_ids(self, wallet_ids: Sequence[int]) -> set[int]:
        """Wallets among wallet_ids with at least one shielded transaction."""
        if not wallet_ids:
            return set()
        result = await self.session.execute(
            select(ProcessedTransaction.wallet_id)
            .where(
                and_(
                    ProcessedTransaction.wallet_id.in_(list(wallet_ids)),
                    ProcessedTransaction.is_shielded == True,  # noqa: E712
                )
            )
            .distinct()
        )
        return set(result.scalars().all())

    # =========================================================================
    # Daily activity
    # =========================================================================

    async def get_activity_day(self, wallet_id: int, day: date) -> Optional[ActivityDayRecord]:
        result = await self.session.execute(
            select(WalletActivityMetric).where(
                and_(
                    WalletActivityMetric.wallet_id == wallet_id,
                    WalletActivityMetric.activity_date == day,
                )
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _activity(row) if row else None

    async def has_activity_before(self, wallet_id: int, day: date) -> bool:
        result = await self.session.execute(
            select(func.count())
            .select_from(WalletActivityMetric)
            .where(
                and_(
                    WalletActivityMetric.wallet_id == wallet_id,
                    WalletActivityMetric.activity_date < day,
                    WalletActivityMetric.is_active == True,  # noqa: E712
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def upsert_activity_day(self, values: Dict[str, Any], commit: bool = True) -> None:
        stmt = self._insert(WalletActivityMetric).values(**values)
        update_cols = {
            key: getattr(stmt.excluded, key)
            for key in values
            if key not in ("wallet_id", "activity_date")
        }
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_id", "activity_date"],
            set_=update_cols,
        )
        await self.session.execute(stmt)
        if commit:
            await self.session.commit()

    async def mark_returning_after(self, wallet_id: int, day: date) -> None:
        """Flag active days after day as returning (backfilled earlier activity)."""
        await self.session.execute(
            update(WalletActivityMetric)
            .where(
                and_(
                    WalletActivityMetric.wallet_id == wallet_id,
                    WalletActivityMetric.activity_date > day,
                    WalletActivityMetric.is_active == True,  # noqa: E712
                    WalletActivityMetric.is_returning == False,  # noqa: E712
                )
            )
            .values(is_returning=True)
        )

    async def get_activity(
        self,
        wallet_ids: Iterable[int],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[ActivityDayRecord]:
        """Daily rows for the given wallets, inclusive date bounds."""
        ids = list(wallet_ids)
        if not ids:
            return []
        conditions = [WalletActivityMetric.wallet_id.in_(ids)]
        if start is not None:
            conditions.append(WalletActivityMetric.activity_date >= start)
        if end is not None:
            conditions.append(WalletActivityMetric.activity_date <= end)

        result = await self.session.execute(
            select(WalletActivityMetric)
            .where(and_(*conditions))
            .order_by(WalletActivityMetric.wallet_id, WalletActivityMetric.activity_date)
            .execution_options(populate_existing=True)
        )
        return [_activity(row) for row in result.scalars().all()]

    async def first_active_date(self, wallet_id: int) -> Optional[date]:
        result = await self.session.execute(
            select(func.min(WalletActivityMetric.activity_date)).where(
                and_(
                    WalletActivityMetric.wallet_id == wallet_id,
                    WalletActivityMetric.is_active == True,  # noqa: E712
                )
            )
        )
        return result.scalar()

    # =========================================================================
    # Adoption stages
    # =========================================================================

    async def get_stages(self, wallet_id: int) -> List[StageRecord]:
        result = await self.session.execute(
            select(WalletAdoptionStage)
            .where(WalletAdoptionStage.wallet_id == wallet_id)
            .order_by(WalletAdoptionStage.stage_order)
            .execution_options(populate_existing=True)
        )
        return [_stage(row) for row in result.scalars().all()]

    async def insert_stages(self, wallet_id: int, rows: List[Dict[str, Any]]) -> None:
        """Create stage rows; existing (wallet_id, stage_name) rows are left alone."""
        for values in rows:
            stmt = self._insert(WalletAdoptionStage).values(wallet_id=wallet_id, **values)
            stmt = stmt.on_conflict_do_nothing(index_elements=["wallet_id", "stage_name"])
            await self.session.execute(stmt)
        await self.session.commit()

    async def mark_stages_achieved(self, wallet_id: int, rows: List[Dict[str, Any]]) -> None:
        """Set achieved_at/hours/confidence on stages that are still unachieved.

        The conflict update is guarded by achieved_at IS NULL so a concurrent
        evaluation can never move an achievement.
        """
        for values in rows:
            stmt = self._insert(WalletAdoptionStage).values(wallet_id=wallet_id, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["wallet_id", "stage_name"],
                set_={
                    "achieved_at": stmt.excluded.achieved_at,
                    "hours_to_achieve": stmt.excluded.hours_to_achieve,
                    "confidence": stmt.excluded.confidence,
                    "updated_at": datetime.now(UTC),
                },
                where=WalletAdoptionStage.achieved_at.is_(None),
            )
            await self.session.execute(stmt)
        await self.session.commit()

    async def get_stage_counts(
        self, project_id: int, wallet_ids: Optional[Sequence[int]] = None
    ) -> Dict[str, int]:
        """Wallets with the stage achieved, per stage name."""
        conditions = [
            Wallet.project_id == project_id,
            WalletAdoptionStage.achieved_at.isnot(None),
        ]
        if wallet_ids is not None:
            if not wallet_ids:
                return {}
            conditions.append(Wallet.id.in_(list(wallet_ids)))

        result = await self.session.execute(
            select(WalletAdoptionStage.stage_name, func.count().label("wallets"))
            .join(Wallet, Wallet.id == WalletAdoptionStage.wallet_id)
            .where(and_(*conditions))
            .group_by(WalletAdoptionStage.stage_name)
        )
        return {row.stage_name: row.wallets for row in result.all()}

    async def get_project_stages(self, project_id: int) -> List[StageRecord]:
        result = await self.session.execute(
            select(WalletAdoptionStage)
            .join(Wallet, Wallet.id == WalletAdoptionStage.wallet_id)
            .where(Wallet.project_id == project_id)
            .order_by(WalletAdoptionStage.wallet_id, WalletAdoptionStage.stage_order)
            .execution_options(populate_existing=True)
        )
        return [_stage(row) for row in result.scalars().all()]

    # =========================================================================
    # Cohorts
    # =========================================================================

    async def upsert_cohort(self, cohort_type: str, cohort_period: date) -> CohortRecord:
        stmt = self._insert(WalletCohort).values(
            cohort_type=cohort_type,
            cohort_period=cohort_period,
            wallet_count=0,
            created_at=datetime.now(UTC),
            updated_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["cohort_type", "cohort_period"])
        await self.session.execute(stmt)
        await self.session.commit()

        cohort = await self.find_cohort(cohort_type, cohort_period)
        return cohort

    async def find_cohort(self, cohort_type: str, cohort_period: date) -> Optional[CohortRecord]:
        result = await self.session.execute(
            select(WalletCohort).where(
                and_(
                    WalletCohort.cohort_type == cohort_type,
                    WalletCohort.cohort_period == cohort_period,
                )
            )
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _cohort(row) if row else None

    async def get_cohort(self, cohort_id: int) -> Optional[CohortRecord]:
        row = await self.session.get(WalletCohort, cohort_id, populate_existing=True)
        return _cohort(row) if row else None

    async def list_cohorts(
        self,
        cohort_type: Optional[str] = None,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> List[CohortRecord]:
        stmt = select(WalletCohort).execution_options(populate_existing=True)
        if cohort_type is not None:
            stmt = stmt.where(WalletCohort.cohort_type == cohort_type)
        order = WalletCohort.cohort_period.desc() if newest_first else WalletCohort.cohort_period
        stmt = stmt.order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [_cohort(row) for row in result.scalars().all()]

    async def add_cohort_member(self, wallet_id: int, cohort_id: int, entry_date: date) -> None:
        stmt = self._insert(WalletCohortAssignment).values(
            wallet_id=wallet_id,
            cohort_id=cohort_id,
            entry_date=entry_date,
            created_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["wallet_id", "cohort_id"])
        await self.session.execute(stmt)
        await self.session.commit()

    async def get_cohort_members(self, cohort_id: int) -> List[CohortMemberRecord]:
        result = await self.session.execute(
            select(WalletCohortAssignment)
            .where(WalletCohortAssignment.cohort_id == cohort_id)
            .order_by(WalletCohortAssignment.wallet_id)
        )
        return [
            CohortMemberRecord(wallet_id=row.wallet_id, cohort_id=row.cohort_id, entry_date=row.entry_date)
            for row in result.scalars().all()
        ]

    async def get_project_cohort_members(
        self, project_id: int, cohort_type: str
    ) -> Dict[date, List[int]]:
        """cohort_period -> wallet ids of the project's wallets in that cohort."""
        result = await self.session.execute(
            select(WalletCohort.cohort_period, WalletCohortAssignment.wallet_id)
            .join(WalletCohortAssignment, WalletCohortAssignment.cohort_id == WalletCohort.id)
            .join(Wallet, Wallet.id == WalletCohortAssignment.wallet_id)
            .where(
                and_(
                    Wallet.project_id == project_id,
                    WalletCohort.cohort_type == cohort_type,
                )
            )
            .order_by(WalletCohort.cohort_period)
        )
        members: Dict[date, List[int]] = {}
        for row in result.all():
            members.setdefault(row.cohort_period, []).append(row.wallet_id)
        return members

    async def update_cohort_retention(self, cohort_id: int, weeks: Dict[int, Optional[float]]) -> None:
        values = {f"retention_week_{n}": value for n, value in weeks.items()}
        values["updated_at"] = datetime.now(UTC)
        await self.session.execute(
            update(WalletCohort).where(WalletCohort.id == cohort_id).values(**values)
        )
        await self.session.commit()

    async def refresh_cohort_counts(self, cohort_ids: Optional[Sequence[int]] = None) -> int:
        """
        Set wallet_count from memberships. Returns number of cohorts updated.

        Only the given cohorts are refreshed when cohort_ids is passed.
        """
        counts_query = (
            select(WalletCohortAssignment.cohort_id, func.count().label("members"))
            .group_by(WalletCohortAssignment.cohort_id)
        )
        if cohort_ids is not None:
            counts_query = counts_query.where(WalletCohortAssignment.cohort_id.in_(cohort_ids))
        counts = await self.session.execute(counts_query)
        by_cohort = {row.cohort_id: row.members for row in counts.all()}

        if cohort_ids is None:
            cohort_ids = (await self.session.execute(select(WalletCohort.id))).scalars().all()
        for cohort_id in cohort_ids:
            await self.session.execute(
                update(WalletCohort)
                .where(WalletCohort.id == cohort_id)
                .values(wallet_count=by_cohort.get(cohort_id, 0), updated_at=datetime.now(UTC))
            )
        await self.session.commit()
        return len(cohort_ids)

    # =========================================================================
    # Productivity scores
    # =========================================================================

    async def upsert_score(self, values: Dict[str, Any]) -> None:
        stmt = self._insert(WalletProductivityScore).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_id"],
            set_={key: getattr(stmt.excluded, key) for key in values if key != "wallet_id"},
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def get_score(self, wallet_id: int) -> Optional[ScoreRecord]:
        result = await self.session.execute(
            select(WalletProductivityScore)
            .where(WalletProductivityScore.wallet_id == wallet_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return _score(row) if row else None

    async def get_project_scores(self, project_id: int) -> List[ScoreRecord]:
        result = await self.session.execute(
            select(WalletProductivityScore)
            .join(Wallet, Wallet.id == WalletProductivityScore.wallet_id)
            .where(Wallet.project_id == project_id)
            .execution_options(populate_existing=True)
        )
        return [_score(row) for row in result.scalars().all()]

    # =========================================================================
    # Shielded pool
    # =========================================================================

    async def upsert_shielded_metric(self, values: Dict[str, Any]) -> None:
        stmt = self._insert(ShieldedPoolMetric).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_id", "metric_date"],
            set_={
                key: getattr(stmt.excluded, key)
                for key in values
                if key not in ("wallet_id", "metric_date")
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()

    async def get_shielded_metrics(
        self,
        wallet_ids: Iterable[int],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[ShieldedMetricRecord]:
        ids = list(wallet_ids)
        if not ids:
            return []
        conditions = [ShieldedPoolMetric.wallet_id.in_(ids)]
        if start is not None:
            conditions.append(ShieldedPoolMetric.metric_date >= start)
        if end is not None:
            conditions.append(ShieldedPoolMetric.metric_date <= end)
        result = await self.session.execute(
            select(ShieldedPoolMetric)
            .where(and_(*conditions))
            .order_by(ShieldedPoolMetric.metric_date)
            .execution_options(populate_existing=True)
        )
        return [_shielded_metric(row) for row in result.scalars().all()]

    async def replace_behavior_flows(
        self,
        wallet_id: int,
        start: datetime,
        end: datetime,
        flows: List[Dict[str, Any]],
    ) -> None:
        """Replace stored flows that start inside [start, end]."""
        await self.session.execute(
            delete(WalletBehaviorFlow).where(
                and_(
                    WalletBehaviorFlow.wallet_id == wallet_id,
                    WalletBehaviorFlow.flow_start >= start,
                    WalletBehaviorFlow.flow_start <= end,
                )
            )
        )
        for values in flows:
            self.session.add(WalletBehaviorFlow(wallet_id=wallet_id, **values))
        await self.session.commit()
