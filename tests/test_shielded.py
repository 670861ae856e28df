"""
Tests for shielded pool metrics
"""

from datetime import timedelta

import pytest

from src.core.errors import NotFoundError, ValidationError
from src.services.analytics.config import ShieldedPolicy
from src.services.analytics.shielded import (
    ShieldedAnalyzer,
    classify_behavior,
    classify_user_type,
    privacy_score,
)

from helpers import Z_ADDR, days_after


DAY = days_after(1).date()


@pytest.fixture
async def private_wallet(make_wallet, make_transaction):
    """One day: pool entry 12:00, transparent 14:24, internal 18:00, pool exit 21:00."""
    wallet = await make_wallet()
    await make_transaction(wallet.id, days_after(1), is_shielded=True, pool_entry=True)
    await make_transaction(wallet.id, days_after(1.1))
    await make_transaction(wallet.id, days_after(1.25), is_shielded=True, counterparty=Z_ADDR)
    await make_transaction(wallet.id, days_after(1.375), is_shielded=True, pool_exit=True)
    return wallet


# ===========================
# Scoring and classification
# ===========================


def test_privacy_score():
    assert privacy_score(0, 0, 0, 0, 0, None) == 0
    # fully shielded, all internal
    assert privacy_score(10, 0, 10, 0, 0, None) == 60
    # half shielded, one round trip held for a day
    assert privacy_score(2, 2, 0, 1, 1, 30.0) == 45
    assert privacy_score(10, 0, 10, 10, 10, 48.0) == 100


def test_classify_behavior():
    policy = ShieldedPolicy()
    assert classify_behavior(0, 0, 0, 0, policy).value == "transparent_only"
    assert classify_behavior(9, 1, 0, 0, policy).value == "full_privacy"
    assert classify_behavior(2, 8, 2, 0, policy).value == "entry_focused"
    assert classify_behavior(2, 8, 0, 2, policy).value == "exit_focused"
    assert classify_behavior(3, 7, 1, 1, policy).value == "mixed_privacy"
    assert classify_behavior(1, 9, 0, 0, policy).value == "transparent_only"


@pytest.mark.parametrize(
    "percentage,expected",
    [
        (71.0, "shielded_heavy"),
        (70.0, "shielded_moderate"),
        (30.5, "shielded_moderate"),
        (30.0, "shielded_light"),
        (5.0, "transparent_only"),
    ],
)
def test_user_type_thresholds(percentage, expected):
    assert classify_user_type(percentage).value == expected


# ===========================
# Wallet level
# ===========================


@pytest.mark.asyncio
async def test_analyze_wallet_day(repo, private_wallet):
    metrics = await ShieldedAnalyzer(repo).analyze_wallet_day(private_wallet.id, DAY)

    assert metrics.shielded_tx_count == 3
    assert metrics.transparent_tx_count == 1
    assert metrics.transparent_to_shielded_count == 1
    assert metrics.shielded_to_transparent_count == 1
    assert metrics.internal_shielded_count == 1
    assert metrics.shielded_volume_zatoshi == 300_000
    assert metrics.avg_shielded_duration_hours == 9.0
    assert metrics.privacy_score == 52
    assert metrics.behavior_type == "mixed_privacy"

    stored = await repo.get_shielded_metrics([private_wallet.id])
    assert len(stored) == 1
    assert stored[0].metric_date == DAY
    assert stored[0].privacy_score == 52


@pytest.mark.asyncio
async def test_idle_day_is_not_stored(repo, private_wallet):
    metrics = await ShieldedAnalyzer(repo).analyze_wallet_day(private_wallet.id, DAY + timedelta(days=3))

    assert metrics.privacy_score == 0
    assert metrics.behavior_type == "transparent_only"
    assert await repo.get_shielded_metrics([private_wallet.id]) == []


@pytest.mark.asyncio
async def test_wallet_summary_and_percentage(repo, private_wallet):
    analyzer = ShieldedAnalyzer(repo)

    summary = await analyzer.wallet_metrics(private_wallet.id, days=30, as_of=days_after(5))
    assert summary.days_with_activity == 1
    assert summary.shielded_percentage == 75.0
    assert summary.avg_privacy_score == 52.0

    percentage = await analyzer.wallet_shielded_percentage(private_wallet.id, days=30, as_of=days_after(5))
    assert percentage.total_transactions == 4
    assert percentage.shielded_transactions == 3
    assert percentage.user_type == "shielded_heavy"


@pytest.mark.asyncio
async def test_window_validation(repo, private_wallet):
    analyzer = ShieldedAnalyzer(repo)
    with pytest.raises(ValidationError):
        await analyzer.wallet_metrics(private_wallet.id, days=0)
    with pytest.raises(NotFoundError):
        await analyzer.wallet_shielded_percentage(31337)


# ===========================
# Project level
# ===========================


@pytest.mark.asyncio
async def test_project_analytics(repo, private_wallet, make_wallet, make_transaction):
    plain = await make_wallet(private_wallet.project_id)
    await make_transaction(plain.id, days_after(1))
    await make_transaction(plain.id, days_after(2))

    result = await ShieldedAnalyzer(repo).project_analytics(
        private_wallet.project_id, days=30, as_of=days_after(5)
    )

    assert result.total_wallets == 2
    assert result.shielded_wallets == 1
    assert result.shielded_percentage == 50.0
    assert result.user_segments["shielded_heavy"] == 1
    assert result.user_segments["transparent_only"] == 1
    assert [d.metric_date for d in result.daily] == [DAY, days_after(2).date()]
    assert result.daily[0].wallets == 2


@pytest.mark.asyncio
async def test_compare_users(repo, private_wallet, make_wallet, make_transaction):
    plain = await make_wallet(private_wallet.project_id)
    await make_transaction(plain.id, days_after(1))

    comparison = await ShieldedAnalyzer(repo).compare_users(
        private_wallet.project_id, days=30, as_of=days_after(5)
    )

    assert comparison.shielded_users.wallet_count == 1
    assert comparison.transparent_users.wallet_count == 1
    assert comparison.shielded_users.avg_transactions == 4.0
    assert comparison.shielded_users.avg_session_hours == 9.0
    assert comparison.insights


@pytest.mark.asyncio
async def test_compare_users_with_one_group(repo, private_wallet):
    comparison = await ShieldedAnalyzer(repo).compare_users(
        private_wallet.project_id, days=30, as_of=days_after(5)
    )

    assert comparison.transparent_users.wallet_count == 0
    assert comparison.insights == ["Not enough wallets in both groups to compare"]
