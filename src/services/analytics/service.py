"""
Wallet Analytics Service - one entry point over the analytics engine.

Combines:
- classifier.py - transaction ingest and daily rollups
- adoption.py / conversion.py - adoption funnel and drop-offs
- cohorts.py / retention.py - cohorts and retention
- productivity.py - wallet productivity scores
- shielded.py / behavior_flow.py - shielded pool behavior
- cache.py - Redis caching of project-level views

Usage:
    async with session_maker() as session:
        analytics = WalletAnalyticsService(session, redis=redis_client)
        report = await analytics.conversion_report(project_id=1)
"""

from datetime import datetime
from typing import List, Optional

from loguru import logger
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import CohortType
from src.core.errors import NotFoundError
from src.database.records import WalletRecord
from src.database.repository import AnalyticsRepository
from src.services.analytics.adoption import AdoptionStageTracker
from src.services.analytics.behavior_flow import BehaviorFlowTracker
from src.services.analytics.cache import AnalyticsCacheLayer
from src.services.analytics.classifier import KnownAddresses, TransactionProcessor
from src.services.analytics.cohorts import CohortService
from src.services.analytics.config import AnalyticsConfig, DEFAULT_CONFIG
from src.services.analytics.conversion import ConversionAnalyzer
from src.services.analytics.productivity import ProductivityScorer
from src.services.analytics.retention import RetentionEngine
from src.services.analytics.schemas import (
    AdoptionFunnel,
    BatchResponse,
    ConversionReport,
    ProductivityScore,
    ProjectProductivitySummary,
    ProjectShieldedAnalytics,
    RawTransaction,
    StageUpdateResult,
)
from src.services.analytics.shielded import ShieldedAnalyzer


class WalletAnalyticsService:
    """Analytics engine facade with project-level caching."""

    def __init__(
        self,
        session: AsyncSession,
        redis: Optional[Redis] = None,
        config: Optional[AnalyticsConfig] = None,
        known: Optional[KnownAddresses] = None,
    ):
        self.session = session
        self.repo = AnalyticsRepository(session)
        self.config = config or DEFAULT_CONFIG
        self.cache = AnalyticsCacheLayer(redis)

        self.transactions = TransactionProcessor(self.repo, known)
        self.adoption = AdoptionStageTracker(self.repo, self.config)
        self.conversion = ConversionAnalyzer(self.repo, self.config)
        self.cohorts = CohortService(self.repo, self.config)
        self.retention = RetentionEngine(self.repo, self.config)
        self.productivity = ProductivityScorer(self.repo, self.config)
        self.shielded = ShieldedAnalyzer(self.repo, self.config)
        self.flows = BehaviorFlowTracker(self.repo, self.config)

    async def _invalidate_wallet_project(self, wallet_id: int, *views: str) -> None:
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            return
        for view in views:
            await self.cache.invalidate(view, wallet.project_id)

    # =========================================================================
    # Writes (invalidate cached project views)
    # =========================================================================

    async def register_wallet(
        self,
        project_id: int,
        address: str,
        address_type: str = "transparent",
        network: str = "mainnet",
        created_at: Optional[datetime] = None,
    ) -> WalletRecord:
        """Create a wallet with its adoption stage rows."""
        if await self.repo.get_project(project_id) is None:
            raise NotFoundError(f"Project {project_id} not found", {"project_id": project_id})

        wallet = await self.repo.create_wallet(
            project_id, address, address_type=address_type, network=network, created_at=created_at
        )
        await self.adoption.initialize(wallet.id)
        await self._invalidate_wallet_project(wallet.id, "funnel", "conversion", "productivity")
        logger.info(f"Registered wallet {wallet.id} in project {project_id}")
        return wallet

    async def ingest_transactions(self, transactions: List[RawTransaction]) -> BatchResponse:
        result = await self.transactions.process_batch(transactions)
        wallet_ids = {
            item.result["wallet_id"] for item in result.items if item.success and item.result
        }
        for wallet_id in wallet_ids:
            await self._invalidate_wallet_project(wallet_id, "shielded")
        return result

    async def update_adoption_stages(self, wallet_id: int) -> StageUpdateResult:
        result = await self.adoption.update_stages(wallet_id)
        if result.newly_achieved:
            await self._invalidate_wallet_project(wallet_id, "funnel", "conversion")
        return result

    async def update_productivity_score(self, wallet_id: int) -> ProductivityScore:
        score = await self.productivity.update(wallet_id)
        await self._invalidate_wallet_project(wallet_id, "productivity")
        return score

    async def bulk_productivity_scores(self, wallet_ids: List[int]) -> BatchResponse:
        result = await self.productivity.bulk(wallet_ids)
        for item in result.items:
            if item.success:
                await self._invalidate_wallet_project(int(item.id), "productivity")
        return result

    # =========================================================================
    # Cached project views
    # =========================================================================

    async def project_funnel(self, project_id: int) -> AdoptionFunnel:
        cached = await self.cache.get("funnel", project_id)
        if cached:
            return AdoptionFunnel(**cached)

        result = await self.adoption.project_funnel(project_id)
        await self.cache.set("funnel", project_id, result.model_dump(mode="json"))
        return result

    async def conversion_report(
        self, project_id: int, min_sample_size: Optional[int] = None
    ) -> ConversionReport:
        cache_params = {"min_sample_size": min_sample_size}
        cached = await self.cache.get("conversion", project_id, **cache_params)
        if cached:
            return ConversionReport(**cached)

        result = await self.conversion.generate_report(project_id, min_sample_size)
        await self.cache.set("conversion", project_id, result.model_dump(mode="json"), **cache_params)
        return result

    async def productivity_summary(self, project_id: int) -> ProjectProductivitySummary:
        cached = await self.cache.get("productivity", project_id)
        if cached:
            return ProjectProductivitySummary(**cached)

        result = await self.productivity.project_summary(project_id)
        await self.cache.set("productivity", project_id, result.model_dump(mode="json"))
        return result

    async def shielded_analytics(self, project_id: int, days: int = 30) -> ProjectShieldedAnalytics:
        cached = await self.cache.get("shielded", project_id, days=days)
        if cached:
            return ProjectShieldedAnalytics(**cached)

        result = await self.shielded.project_analytics(project_id, days)
        await self.cache.set("shielded", project_id, result.model_dump(mode="json"), days=days)
        return result

    # =========================================================================
    # Batch jobs
    # =========================================================================

    async def run_nightly_cohort_job(self) -> dict:
        """Assign new wallets, recompute weekly and monthly retention, refresh counts."""
        assigned = await self.cohorts.process_unassigned_wallets()
        retention = {
            cohort_type.value: (await self.retention.all_cohort_retention(cohort_type)).model_dump()
            for cohort_type in CohortType
        }
        refreshed = await self.cohorts.update_cohort_wallet_counts()

        summary = {
            "assigned": assigned.succeeded,
            "assignment_failures": assigned.failed,
            "retention": {k: {"succeeded": v["succeeded"], "failed": v["failed"]} for k, v in retention.items()},
            "cohorts_refreshed": refreshed,
        }
        logger.info(f"Nightly cohort job finished: {summary}")
        return summary
