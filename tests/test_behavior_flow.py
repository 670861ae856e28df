"""
Tests for shielded behavior flow tracking
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from src.core.errors import NotFoundError, ValidationError
from src.database.models import WalletBehaviorFlow
from src.database.records import TransactionRecord
from src.services.analytics.behavior_flow import (
    BehaviorFlowTracker,
    analyze_flows,
    classify_flow,
    count_transitions,
    flow_complexity,
    segment_flows,
)
from src.services.analytics.config import ShieldedPolicy

from helpers import BASE_TIME, days_after


def _tx(n: int, minutes: float, shielded=False, pool_entry=False, pool_exit=False) -> TransactionRecord:
    return TransactionRecord(
        id=n,
        wallet_id=1,
        txid=f"flow{n}",
        block_height=None,
        block_timestamp=BASE_TIME + timedelta(minutes=minutes),
        tx_type="shielded" if shielded else "transfer",
        tx_subtype="outgoing",
        value_zatoshi=-100_000,
        fee_zatoshi=1000,
        counterparty_address=None,
        counterparty_type="unknown",
        is_shielded=shielded,
        shielded_pool_entry=pool_entry,
        shielded_pool_exit=pool_exit,
    )


def _history():
    """Two transparent sends, an entry/internal/exit round trip, then one internal transfer days later."""
    return [
        _tx(1, 0),
        _tx(2, 10),
        _tx(3, 20, shielded=True, pool_entry=True),
        _tx(4, 30, shielded=True),
        _tx(5, 40, shielded=True, pool_exit=True),
        _tx(6, 3 * 1440, shielded=True),
    ]


# ===========================
# Segmentation
# ===========================


def test_segment_flows():
    policy = ShieldedPolicy()
    flows = segment_flows(_history(), policy.flow_idle_gap_minutes)

    assert [[tx.id for tx in f.transactions] for f in flows] == [[1, 2], [3, 4, 5], [6]]
    assert [classify_flow(f, policy.holding_minutes).value for f in flows] == [
        "transparent_only",
        "privacy_mixing",
        "single_transaction",
    ]
    assert flows[1].duration_minutes == 20.0


def test_long_round_trip_is_holding():
    policy = ShieldedPolicy()
    history = [
        _tx(1, 0, shielded=True, pool_entry=True),
        _tx(2, 1000, shielded=True),
        _tx(3, 2000, shielded=True, pool_exit=True),
    ]
    flows = segment_flows(history, policy.flow_idle_gap_minutes)

    assert len(flows) == 1
    assert classify_flow(flows[0], policy.holding_minutes).value == "privacy_holding"


def test_idle_gap_splits_flows():
    flows = segment_flows([_tx(1, 0, shielded=True), _tx(2, 2000, shielded=True)], 1440)
    assert len(flows) == 2


def test_flow_complexity_and_transitions():
    assert [flow_complexity(n).value for n in (2, 5, 10, 11)] == ["simple", "moderate", "complex", "advanced"]

    transitions = count_transitions(_history())
    assert transitions == {"t_to_z": 1, "z_to_t": 0, "t_to_t": 1, "z_to_z": 3}


# ===========================
# Analysis
# ===========================


def test_analyze_flows():
    analysis = analyze_flows(1, BASE_TIME, days_after(5), _history(), ShieldedPolicy())

    assert analysis.total_transactions == 6
    assert len(analysis.flows) == 3
    assert analysis.privacy_efficiency == 50.0
    assert analysis.behavior_pattern == "privacy_accumulator"
    assert analysis.pattern_confidence == 85.0
    # 75 base + 5 efficiency + 3 flows x 2
    assert analysis.loyalty_prediction == 86.0
    assert analysis.engagement_level == "high"
    assert analysis.retention_probability == 0.888
    assert "Majority of transactions are shielded" in analysis.positive_indicators
    assert analysis.risk_factors == []


def test_analyze_empty_history():
    analysis = analyze_flows(1, BASE_TIME, days_after(1), [], ShieldedPolicy())

    assert analysis.flows == []
    assert analysis.behavior_pattern == "transparent_only"
    assert analysis.loyalty_prediction == 0.0
    assert analysis.risk_factors == ["No transactions in range"]


def test_transparent_wallet_pattern():
    analysis = analyze_flows(1, BASE_TIME, days_after(1), [_tx(1, 0), _tx(2, 5)], ShieldedPolicy())

    assert analysis.behavior_pattern == "transparent_only"
    assert analysis.pattern_confidence == 50.0
    assert "No meaningful shielded usage" in analysis.risk_factors


# ===========================
# Persistence
# ===========================


async def _stored_flows(db_session, wallet_id):
    result = await db_session.execute(
        select(func.count()).select_from(WalletBehaviorFlow).where(WalletBehaviorFlow.wallet_id == wallet_id)
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_track_wallet_flows_replaces_range(repo, db_session, make_wallet, make_transaction):
    wallet = await make_wallet()
    await make_transaction(wallet.id, days_after(1), is_shielded=True, pool_entry=True)
    await make_transaction(wallet.id, days_after(1.01), is_shielded=True)
    await make_transaction(wallet.id, days_after(2))

    tracker = BehaviorFlowTracker(repo)
    first = await tracker.track_wallet_flows(wallet.id, BASE_TIME, days_after(5))
    await tracker.track_wallet_flows(wallet.id, BASE_TIME, days_after(5))

    assert [f.flow_type for f in first.flows] == ["privacy_accumulation", "single_transaction"]
    assert await _stored_flows(db_session, wallet.id) == 2


@pytest.mark.asyncio
async def test_track_wallet_flows_validation(repo, make_wallet):
    wallet = await make_wallet()
    tracker = BehaviorFlowTracker(repo)

    with pytest.raises(ValidationError):
        await tracker.track_wallet_flows(wallet.id, days_after(2), days_after(1))
    with pytest.raises(ValidationError):
        await tracker.track_wallet_flows(wallet.id, days_after(1), days_after(1))
    with pytest.raises(NotFoundError):
        await tracker.track_wallet_flows(777, BASE_TIME, days_after(1))


@pytest.mark.asyncio
async def test_project_behaviors(repo, make_project, make_wallet, make_transaction):
    project = await make_project()
    private = await make_wallet(project.id)
    for i in range(3):
        await make_transaction(private.id, days_after(1 + i * 0.01), is_shielded=True)
    plain = await make_wallet(project.id)
    await make_transaction(plain.id, days_after(1))

    insights = await BehaviorFlowTracker(repo).analyze_project_behaviors(
        project.id, days=30, as_of=days_after(5)
    )

    assert insights.wallets_analyzed == 2
    assert insights.wallets_failed == 0
    assert insights.pattern_distribution["shielded_native"] == 1
    assert insights.pattern_distribution["transparent_only"] == 1
    assert insights.shielded_adoption_rate == 50.0
    assert insights.recommendations
