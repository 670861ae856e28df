"""
Tests for transaction classification and ingest
"""

import pytest

from src.core.errors import NotFoundError, ValidationError
from src.services.analytics.classifier import (
    KnownAddresses,
    TransactionProcessor,
    classify_counterparty,
    classify_transaction,
    classify_transaction_type,
    find_involved_wallets,
    transaction_complexity,
)

from helpers import T_ADDR, T_OTHER, Z_ADDR, days_after, raw_tx


# ===========================
# Pure classification
# ===========================


def test_simple_outgoing_transfer():
    tx = raw_tx("a1", [(T_ADDR, 1_000_000)], [(T_OTHER, 990_000)])
    result = classify_transaction(tx, T_ADDR)

    assert result.tx_type == "transfer"
    assert result.tx_subtype == "outgoing"
    assert result.value_zatoshi == -1_000_000
    assert result.counterparty_address == T_OTHER
    assert result.counterparty_type == "wallet"
    assert result.is_shielded is False
    assert result.shielded_pool_entry is False
    assert result.complexity_score == 10


def test_incoming_side_of_same_transfer():
    tx = raw_tx("a1", [(T_ADDR, 1_000_000)], [(T_OTHER, 990_000)])
    result = classify_transaction(tx, T_OTHER)

    assert result.tx_subtype == "incoming"
    assert result.value_zatoshi == 990_000


def test_pool_entry_and_exit():
    entry = raw_tx("z1", [(T_ADDR, 500_000)], [(Z_ADDR, 490_000)])
    exit_tx = raw_tx("z2", [(Z_ADDR, 500_000)], [(T_ADDR, 490_000)])

    classified_entry = classify_transaction(entry, T_ADDR)
    assert classified_entry.tx_type == "shielded"
    assert classified_entry.is_shielded is True
    assert classified_entry.shielded_pool_entry is True
    assert classified_entry.shielded_pool_exit is False
    assert classified_entry.complexity_score == 30

    classified_exit = classify_transaction(exit_tx, T_ADDR)
    assert classified_exit.shielded_pool_exit is True
    assert classified_exit.shielded_pool_entry is False


def test_type_precedence():
    # coinbase-like: nothing in
    assert classify_transaction_type(raw_tx("m", [], [(T_ADDR, 625_000_000)])) == "mint"
    # zero-value output marks a contract call
    assert classify_transaction_type(
        raw_tx("c", [(T_ADDR, 100_000)], [(T_OTHER, 0), (T_ADDR, 90_000)])
    ) == "contract"
    # almost nothing comes out
    assert classify_transaction_type(raw_tx("b", [(T_ADDR, 1_000_000)], [(T_OTHER, 1_000)])) == "burn"
    # one in, two out, tiny fee difference
    assert classify_transaction_type(
        raw_tx("s", [(T_ADDR, 1_000_000)], [(T_OTHER, 600_000), (T_ADDR, 399_000)])
    ) == "swap"


def test_known_addresses_drive_counterparty_and_type():
    exchange = "t1Exchange000000000000000000000000"
    bridge = "t1Bridge00000000000000000000000000"
    known = KnownAddresses(exchanges={exchange}, bridges={bridge})

    assert classify_counterparty(exchange, known) == "exchange"
    assert classify_counterparty(None, known) == "unknown"
    assert classify_transaction_type(
        raw_tx("br", [(T_ADDR, 1_000_000)], [(bridge, 990_000)]), known
    ) == "bridge"


def test_complexity_is_capped():
    many = [(f"t1Party{i:027d}", 10_000) for i in range(10)]
    tx = raw_tx("big", many, many + [(Z_ADDR, 10_000)])
    assert transaction_complexity(tx) == 100


def test_wallet_address_required():
    with pytest.raises(ValidationError):
        classify_transaction(raw_tx("x", [(T_ADDR, 1)], [(T_OTHER, 1)]), "")


def test_find_involved_wallets_dedupes():
    tx = raw_tx("d", [(T_ADDR, 1_000)], [(T_ADDR, 500), (T_OTHER, 400)])
    involved = find_involved_wallets(tx, {T_ADDR: 1, T_OTHER: 2})
    assert sorted(involved) == [(1, T_ADDR), (2, T_OTHER)]


# ===========================
# Persistence
# ===========================


@pytest.mark.asyncio
async def test_process_is_idempotent(repo, make_wallet):
    wallet = await make_wallet(address=T_ADDR)
    processor = TransactionProcessor(repo)
    tx = raw_tx("idem", [(T_ADDR, 1_000_000)], [(T_OTHER, 990_000)], timestamp=days_after(1))

    first = await processor.process_for_wallet(tx, wallet.id, T_ADDR)
    second = await processor.process_for_wallet(tx, wallet.id, T_ADDR)

    assert first.inserted is True
    assert second.inserted is False
    assert await repo.count_wallet_transactions(wallet.id) == 1

    day = await repo.get_activity_day(wallet.id, days_after(1).date())
    assert day.transaction_count == 1
    assert day.total_volume_zatoshi == 1_000_000
    assert day.transfers_count == 1
    assert day.sequence_complexity_score == 25
    assert day.is_active is True
    assert day.is_returning is False


@pytest.mark.asyncio
async def test_daily_rollup_accumulates_and_marks_returning(repo, make_wallet):
    wallet = await make_wallet(address=T_ADDR)
    processor = TransactionProcessor(repo)

    await processor.process_for_wallet(
        raw_tx("r1", [(T_ADDR, 100_000)], [(T_OTHER, 99_000)], timestamp=days_after(0)), wallet.id, T_ADDR
    )
    await processor.process_for_wallet(
        raw_tx("r2", [(T_ADDR, 200_000)], [(T_OTHER, 199_000)], timestamp=days_after(3)), wallet.id, T_ADDR
    )
    await processor.process_for_wallet(
        raw_tx("r3", [(T_ADDR, 500_000)], [(Z_ADDR, 490_000)], timestamp=days_after(3)), wallet.id, T_ADDR
    )

    day = await repo.get_activity_day(wallet.id, days_after(3).date())
    assert day.transaction_count == 2
    assert day.total_volume_zatoshi == 700_000
    assert day.transfers_count == 1
    assert day.shielded_count == 1
    assert day.sequence_complexity_score == 50
    assert day.is_returning is True

    transactions = await repo.get_wallet_transactions(wallet.id)
    assert [t.txid for t in transactions] == ["r1", "r2", "r3"]


@pytest.mark.asyncio
async def test_missing_timestamp_skips_rollup(repo, make_wallet):
    wallet = await make_wallet(address=T_ADDR)
    processor = TransactionProcessor(repo)

    result = await processor.process_for_wallet(
        raw_tx("nots", [(T_ADDR, 100_000)], [(T_OTHER, 99_000)], timestamp=None), wallet.id, T_ADDR
    )

    assert result.inserted is True
    assert await repo.get_activity([wallet.id]) == []


@pytest.mark.asyncio
async def test_unknown_wallet(repo):
    processor = TransactionProcessor(repo)
    with pytest.raises(NotFoundError):
        await processor.process_for_wallet(raw_tx("x", [(T_ADDR, 1)], [(T_OTHER, 1)]), 999, T_ADDR)


@pytest.mark.asyncio
async def test_batch_touches_every_tracked_wallet(repo, make_project, make_wallet):
    project = await make_project()
    sender = await make_wallet(project.id, address=T_ADDR)
    receiver = await make_wallet(project.id, address=T_OTHER)
    processor = TransactionProcessor(repo)

    result = await processor.process_batch([
        raw_tx("b1", [(T_ADDR, 1_000_000)], [(T_OTHER, 990_000)], timestamp=days_after(0)),
        raw_tx("b2", [("t1Untracked0000000000000000000000", 5)], [("t1Nobody000000000000000000000000", 4)]),
    ])

    assert result.total == 2
    assert result.succeeded == 2
    assert result.failed == 0
    assert {item.id for item in result.items} == {f"b1:{sender.id}", f"b1:{receiver.id}"}


@pytest.mark.asyncio
async def test_batch_without_wallets_is_empty(repo):
    result = await TransactionProcessor(repo).process_batch([raw_tx("x", [(T_ADDR, 1)], [(T_OTHER, 1)])])
    assert result.total == 0


@pytest.mark.asyncio
async def test_failed_rollup_keeps_transaction_retryable(repo, make_wallet, monkeypatch):
    wallet = await make_wallet(address=T_ADDR)
    processor = TransactionProcessor(repo)
    tx = raw_tx("retry", [(T_ADDR, 300_000)], [(T_OTHER, 299_000)], timestamp=days_after(2))

    original_upsert = repo.upsert_activity_day
    calls = {"n": 0}

    async def flaky_upsert(values, commit=True):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("rollup write failed")
        await original_upsert(values, commit=commit)

    monkeypatch.setattr(repo, "upsert_activity_day", flaky_upsert)

    first = await processor.process_batch([tx])
    assert first.failed == 1
    assert await repo.count_wallet_transactions(wallet.id) == 0
    assert await repo.get_activity_day(wallet.id, days_after(2).date()) is None

    retry = await processor.process_batch([tx])
    assert retry.succeeded == 1
    assert retry.items[0].result["inserted"] is True

    assert await repo.count_wallet_transactions(wallet.id) == 1
    day = await repo.get_activity_day(wallet.id, days_after(2).date())
    assert day is not None
    assert day.transaction_count == 1
    assert day.total_volume_zatoshi == 300_000


@pytest.mark.asyncio
async def test_backfilled_earlier_day_marks_later_days_returning(repo, make_wallet):
    wallet = await make_wallet(address=T_ADDR)
    processor = TransactionProcessor(repo)

    await processor.process_for_wallet(
        raw_tx("late", [(T_ADDR, 100_000)], [(T_OTHER, 99_000)], timestamp=days_after(10)), wallet.id, T_ADDR
    )
    day10 = await repo.get_activity_day(wallet.id, days_after(10).date())
    assert day10.is_returning is False

    await processor.process_for_wallet(
        raw_tx("early", [(T_ADDR, 100_000)], [(T_OTHER, 99_000)], timestamp=days_after(5)), wallet.id, T_ADDR
    )

    day5 = await repo.get_activity_day(wallet.id, days_after(5).date())
    day10 = await repo.get_activity_day(wallet.id, days_after(10).date())
    assert day5.is_returning is False
    assert day10.is_returning is True
