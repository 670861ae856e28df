"""
Tests for cohort assignment and retention
"""

from datetime import date

import pytest

from src.core.enums import CohortType
from src.core.errors import InsufficientDataError, NotFoundError, ValidationError
from src.database.records import ActivityDayRecord, CohortMemberRecord
from src.services.analytics.cohorts import CohortService, next_period, period_start
from src.services.analytics.retention import RetentionEngine, compute_week_retention

from helpers import days_after


ENTRY = days_after(0).date()  # Monday 2026-01-05


def _active(wallet_id: int, day: date) -> ActivityDayRecord:
    return ActivityDayRecord(
        wallet_id=wallet_id,
        activity_date=day,
        transaction_count=1,
        total_volume_zatoshi=100_000,
        total_fees_paid=1000,
        transfers_count=1,
        swaps_count=0,
        bridges_count=0,
        shielded_count=0,
        sequence_complexity_score=25,
        is_active=True,
        is_returning=True,
    )


@pytest.fixture
async def weekly_cohort(repo, make_project, make_wallet, make_activity):
    """10 wallets entering on ENTRY, 6 of them active again in week 1."""
    project = await make_project("Cohorts")
    service = CohortService(repo)

    for i in range(10):
        wallet = await make_wallet(project.id)
        await make_activity(wallet.id, ENTRY)
        if i < 6:
            await make_activity(wallet.id, days_after(8).date(), returning=True)
        await service.assign_wallet_to_cohorts(wallet.id)

    return await repo.find_cohort("weekly", ENTRY)


# ===========================
# Period arithmetic
# ===========================


def test_period_boundaries():
    assert period_start(date(2026, 1, 8), CohortType.WEEKLY) == date(2026, 1, 5)
    assert period_start(date(2026, 1, 8), CohortType.MONTHLY) == date(2026, 1, 1)
    assert next_period(date(2025, 12, 1), CohortType.MONTHLY) == date(2026, 1, 1)
    assert next_period(date(2026, 1, 5), CohortType.WEEKLY) == date(2026, 1, 12)


def test_week_retention_counts_members_without_activity():
    members = [CohortMemberRecord(wallet_id=i, cohort_id=1, entry_date=ENTRY) for i in range(10)]
    activity = [_active(i, days_after(9).date()) for i in range(6)]
    activity.append(_active(0, days_after(15).date()))

    retention = compute_week_retention(members, activity, weeks=4)

    assert retention == {1: 60.0, 2: 10.0, 3: 0.0, 4: 0.0}


def test_week_retention_empty_cohort():
    assert compute_week_retention([], [], weeks=4) == {1: None, 2: None, 3: None, 4: None}


# ===========================
# Cohort service
# ===========================


@pytest.mark.asyncio
async def test_assignment_uses_first_active_day(repo, make_wallet, make_activity):
    wallet = await make_wallet()
    await make_activity(wallet.id, date(2026, 2, 11))
    await make_activity(wallet.id, date(2026, 2, 20))

    assignment = await CohortService(repo).assign_wallet_to_cohorts(wallet.id)

    assert assignment.entry_date == date(2026, 2, 11)
    periods = {c.cohort_type: c.cohort_period for c in assignment.cohorts}
    assert periods == {"weekly": date(2026, 2, 9), "monthly": date(2026, 2, 1)}


@pytest.mark.asyncio
async def test_assignment_is_idempotent(repo, make_wallet):
    wallet = await make_wallet()
    service = CohortService(repo)

    await service.assign_wallet_to_cohorts(wallet.id)
    assignment = await service.assign_wallet_to_cohorts(wallet.id)

    # no activity: falls back to the creation date
    assert assignment.entry_date == ENTRY
    assert all(c.wallet_count == 1 for c in assignment.cohorts)


@pytest.mark.asyncio
async def test_assignment_refreshes_only_touched_cohorts(repo, make_wallet, monkeypatch):
    wallet = await make_wallet()
    service = CohortService(repo)
    await service.create_cohorts_for_date_range(date(2026, 3, 2), date(2026, 3, 30))

    refreshed = []
    original_refresh = repo.refresh_cohort_counts

    async def spy_refresh(cohort_ids=None):
        refreshed.append(cohort_ids)
        return await original_refresh(cohort_ids)

    monkeypatch.setattr(repo, "refresh_cohort_counts", spy_refresh)

    assignment = await service.assign_wallet_to_cohorts(wallet.id)

    assert refreshed == [[c.id for c in assignment.cohorts]]
    assert all(c.wallet_count == 1 for c in assignment.cohorts)
    untouched = await repo.list_cohorts(CohortType.WEEKLY.value)
    assert all(c.wallet_count == 0 for c in untouched if c.id not in refreshed[0])


@pytest.mark.asyncio
async def test_process_unassigned(repo, make_wallet):
    await make_wallet()
    await make_wallet()
    service = CohortService(repo)

    first = await service.process_unassigned_wallets()
    second = await service.process_unassigned_wallets()

    assert first.total == 2
    assert first.succeeded == 2
    assert second.total == 0


@pytest.mark.asyncio
async def test_create_cohorts_for_date_range(repo):
    service = CohortService(repo)

    weekly = await service.create_cohorts_for_date_range(date(2026, 1, 7), date(2026, 1, 20))
    assert [c.cohort_period for c in weekly] == [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19)]

    monthly = await service.create_cohorts_for_date_range(
        date(2025, 12, 15), date(2026, 1, 2), CohortType.MONTHLY
    )
    assert [c.cohort_period for c in monthly] == [date(2025, 12, 1), date(2026, 1, 1)]

    again = await service.create_cohorts_for_date_range(date(2026, 1, 7), date(2026, 1, 20))
    assert [c.id for c in again] == [c.id for c in weekly]

    with pytest.raises(ValidationError):
        await service.create_cohorts_for_date_range(date(2026, 2, 1), date(2026, 1, 1))


@pytest.mark.asyncio
async def test_cohort_lookup_errors(repo):
    service = CohortService(repo)
    with pytest.raises(NotFoundError):
        await service.get_cohort_info(123)
    with pytest.raises(NotFoundError):
        await service.assign_wallet_to_cohorts(123)
    with pytest.raises(ValidationError):
        await service.list_cohorts(limit=0)


# ===========================
# Retention
# ===========================


@pytest.mark.asyncio
async def test_cohort_retention(repo, weekly_cohort):
    engine = RetentionEngine(repo)
    info = await engine.cohort_retention(weekly_cohort.id)

    assert info.wallet_count == 10
    assert info.week_1 == 60.0
    assert info.week_2 == 0.0

    stats = await CohortService(repo).cohort_statistics()
    assert stats["weekly"].total_wallets == 10
    assert stats["weekly"].avg_week_1 == 60.0
    assert stats["monthly"].total_cohorts == 1


@pytest.mark.asyncio
async def test_empty_cohort(repo):
    cohort = (await CohortService(repo).create_cohorts_for_date_range(ENTRY, ENTRY))[0]
    engine = RetentionEngine(repo)

    assert await engine.cohort_retention(cohort.id) is None
    with pytest.raises(InsufficientDataError):
        await engine.compare_new_vs_returning(cohort.id)


@pytest.mark.asyncio
async def test_new_vs_returning(repo, weekly_cohort):
    comparison = await RetentionEngine(repo).compare_new_vs_returning(weekly_cohort.id)

    assert comparison.window_days == 28
    assert comparison.new_wallets.wallet_count == 10
    assert comparison.new_wallets.activity_rate == 100.0
    assert comparison.returning_wallets.wallet_count == 6
    assert comparison.returning_wallets.active_days == 1


@pytest.mark.asyncio
async def test_recalculate_all(repo, weekly_cohort):
    result = await RetentionEngine(repo).all_cohort_retention(CohortType.MONTHLY)

    assert result.total == 1
    assert result.succeeded == 1
    assert result.items[0].result["week_1"] == 60.0


async def _seed_week_1(repo, values):
    for period, value in values:
        cohort = await repo.upsert_cohort("weekly", period)
        await repo.update_cohort_retention(cohort.id, {1: value, 2: None, 3: None, 4: None})


@pytest.mark.asyncio
async def test_trends_compare_recent_half(repo):
    await _seed_week_1(repo, [
        (date(2026, 1, 5), 50.0),
        (date(2026, 1, 12), 50.0),
        (date(2026, 1, 19), 60.0),
        (date(2026, 1, 26), 60.0),
    ])

    trends = await RetentionEngine(repo).trends(CohortType.WEEKLY)

    assert trends.cohorts_analyzed == 4
    assert trends.direction == "improving"
    assert trends.weeks[0].change == 10.0
    assert trends.weeks[1].direction == "insufficient_data"

    with pytest.raises(ValidationError):
        await RetentionEngine(repo).trends(CohortType.WEEKLY, periods=1)


@pytest.mark.asyncio
async def test_anomalies(repo):
    await _seed_week_1(repo, [
        (date(2026, 1, 5), 40.0),
        (date(2026, 1, 12), 42.0),
        (date(2026, 1, 19), 30.0),
    ])

    found = await RetentionEngine(repo).anomalies(CohortType.WEEKLY)

    assert len(found) == 1
    assert found[0].cohort_period == date(2026, 1, 19)
    assert found[0].change == -12.0
    assert found[0].direction == "drop"

    assert await RetentionEngine(repo).anomalies(CohortType.WEEKLY, threshold=20) == []


@pytest.mark.asyncio
async def test_heatmap_newest_first(repo):
    await _seed_week_1(repo, [(date(2026, 1, 5), 10.0), (date(2026, 1, 12), 20.0)])

    heatmap = await RetentionEngine(repo).heatmap(CohortType.WEEKLY, limit=1)

    assert [row.cohort_period for row in heatmap.rows] == [date(2026, 1, 12)]
