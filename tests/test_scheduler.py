"""
Tests for the nightly cohort job and its scheduler
"""

import pytest

from src.services.analytics import WalletAnalyticsService
from src.tasks import analytics_scheduler
from src.tasks.analytics_scheduler import AnalyticsScheduler

from helpers import days_after


@pytest.mark.asyncio
async def test_nightly_job(db_session, make_wallet, make_activity):
    wallet = await make_wallet()
    await make_activity(wallet.id, days_after(0).date())
    await make_activity(wallet.id, days_after(8).date(), returning=True)

    summary = await WalletAnalyticsService(db_session).run_nightly_cohort_job()

    assert summary["assigned"] == 1
    assert summary["assignment_failures"] == 0
    assert summary["retention"]["weekly"] == {"succeeded": 1, "failed": 0}
    assert summary["retention"]["monthly"] == {"succeeded": 1, "failed": 0}
    assert summary["cohorts_refreshed"] == 2


@pytest.mark.asyncio
async def test_scheduler_registers_cohort_job():
    scheduler = AnalyticsScheduler(hour=4)
    scheduler.start()
    try:
        assert scheduler.running is True
        job = scheduler.scheduler.get_job("analytics_nightly_cohorts")
        assert job is not None
        assert "hour='4'" in str(job.trigger)

        # second start is a no-op
        scheduler.start()
        assert len(scheduler.scheduler.get_jobs()) == 1
    finally:
        scheduler.stop()
    assert scheduler.running is False


@pytest.mark.asyncio
async def test_trigger_now_uses_fresh_session(monkeypatch, session_maker, make_wallet):
    await make_wallet()
    monkeypatch.setattr(analytics_scheduler, "get_session_maker", lambda: session_maker)

    summary = await AnalyticsScheduler().trigger_cohorts_now()

    assert summary["assigned"] == 1


@pytest.mark.asyncio
async def test_job_failure_is_reported(monkeypatch):
    def broken():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(analytics_scheduler, "get_session_maker", broken)

    summary = await AnalyticsScheduler().trigger_cohorts_now()

    assert summary == {"error": "database unavailable"}
