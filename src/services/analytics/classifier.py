"""
Transaction Classifier - derives analytics fields from decoded transactions.

Pure functions classify a RawTransaction from the point of view of one
tracked wallet; TransactionProcessor persists the result and maintains the
wallet's daily activity rollup.

Usage:
    processor = TransactionProcessor(AnalyticsRepository(session))
    result = await processor.process_for_wallet(raw_tx, wallet_id, address)
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC
from typing import Dict, List, Optional, Set, Tuple

from loguru import logger

from src.core.enums import CounterpartyType, TransactionSubtype, TransactionType
from src.core.errors import NotFoundError, ValidationError
from src.database.repository import AnalyticsRepository
from src.services.analytics.addresses import is_shielded_address, is_transparent_address
from src.services.analytics.schemas import (
    BatchItemResult,
    BatchResponse,
    ClassifiedTransaction,
    ProcessedTransactionResult,
    RawTransaction,
    TxEndpoint,
)


BRIDGE_SMALL_OUTPUT_ZATOSHI = 1_000_000  # 0.01 ZEC
CONTRACT_ADDRESS_MIN_LENGTH = 50
SWAP_MAX_VALUE_DIFF = 0.05
ROLLUP_TYPES = (
    TransactionType.TRANSFER,
    TransactionType.SWAP,
    TransactionType.BRIDGE,
    TransactionType.SHIELDED,
)


@dataclass
class KnownAddresses:
    """Counterparty address books (populated from ops data)."""
    exchanges: Set[str] = field(default_factory=set)
    defi: Set[str] = field(default_factory=set)
    bridges: Set[str] = field(default_factory=set)


# ===========================
# Pure classification
# ===========================


def _total(endpoints: List[TxEndpoint]) -> int:
    return sum(e.value or 0 for e in endpoints)


def _addresses(endpoints: List[TxEndpoint]) -> List[str]:
    return [e.address for e in endpoints if e.address]


def has_shielded_endpoints(inputs: List[TxEndpoint], outputs: List[TxEndpoint]) -> bool:
    return any(is_shielded_address(a) for a in _addresses(inputs) + _addresses(outputs))


def classify_transaction_type(
    raw: RawTransaction, known: Optional[KnownAddresses] = None
) -> TransactionType:
    """Semantic type, checked from most to least specific."""
    known = known or KnownAddresses()
    inputs, outputs = raw.inputs, raw.outputs

    if has_shielded_endpoints(inputs, outputs):
        return TransactionType.SHIELDED

    if raw.type == "contract" or any(
        o.value == 0 or (o.address and len(o.address) > CONTRACT_ADDRESS_MIN_LENGTH)
        for o in outputs
    ):
        return TransactionType.CONTRACT

    total_in, total_out = _total(inputs), _total(outputs)
    if total_in == 0 or total_out > total_in * 2:
        return TransactionType.MINT
    if total_in > 0 and (total_out == 0 or total_out < total_in * 0.1):
        return TransactionType.BURN

    if len(outputs) > 3 and any(o.value < BRIDGE_SMALL_OUTPUT_ZATOSHI for o in outputs):
        return TransactionType.BRIDGE
    if any(a in known.bridges for a in _addresses(outputs)):
        return TransactionType.BRIDGE

    if len(inputs) == 1 and len(outputs) == 2:
        diff = abs(total_in - total_out)
        if 0 < diff < total_in * SWAP_MAX_VALUE_DIFF:
            return TransactionType.SWAP
    if any(a in known.defi for a in _addresses(inputs) + _addresses(outputs)):
        return TransactionType.SWAP

    return TransactionType.TRANSFER


def classify_transaction_subtype(
    raw: RawTransaction, wallet_address: str
) -> Optional[TransactionSubtype]:
    """Direction relative to the wallet; None if the wallet is not involved."""
    has_input = wallet_address in _addresses(raw.inputs)
    has_output = wallet_address in _addresses(raw.outputs)

    if has_input and has_output:
        involved = set(_addresses(raw.inputs) + _addresses(raw.outputs))
        if involved == {wallet_address}:
            return TransactionSubtype.SELF
        return TransactionSubtype.MULTI_PARTY
    if has_input:
        return TransactionSubtype.OUTGOING
    if has_output:
        return TransactionSubtype.INCOMING
    return None


def wallet_value_delta(raw: RawTransaction, wallet_address: str) -> int:
    """Net change for the wallet in zatoshi. Positive = received."""
    received = sum(o.value for o in raw.outputs if o.address == wallet_address)
    sent = sum(i.value for i in raw.inputs if i.address == wallet_address)
    return received - sent


def find_counterparty(raw: RawTransaction, wallet_address: str) -> Optional[str]:
    """Most frequent non-wallet address (first seen wins ties)."""
    others = [
        a for a in _addresses(raw.inputs) + _addresses(raw.outputs) if a != wallet_address
    ]
    if not others:
        return None
    return Counter(others).most_common(1)[0][0]


def classify_counterparty(
    address: Optional[str], known: Optional[KnownAddresses] = None
) -> CounterpartyType:
    known = known or KnownAddresses()
    if not address:
        return CounterpartyType.UNKNOWN
    if address in known.exchanges:
        return CounterpartyType.EXCHANGE
    if address in known.defi:
        return CounterpartyType.DEFI
    if address in known.bridges:
        return CounterpartyType.CONTRACT
    if len(address) > CONTRACT_ADDRESS_MIN_LENGTH:
        return CounterpartyType.CONTRACT
    return CounterpartyType.WALLET


def is_pool_entry(raw: RawTransaction, wallet_address: str) -> bool:
    """Wallet's transparent funds moved into the shielded pool."""
    transparent_in = any(
        i.address == wallet_address and is_transparent_address(i.address) for i in raw.inputs
    )
    return transparent_in and any(is_shielded_address(o.address) for o in raw.outputs)


def is_pool_exit(raw: RawTransaction, wallet_address: str) -> bool:
    """Shielded funds landed on the wallet's transparent address."""
    shielded_in = any(is_shielded_address(i.address) for i in raw.inputs)
    return shielded_in and any(
        o.address == wallet_address and is_transparent_address(o.address) for o in raw.outputs
    )


def transaction_complexity(raw: RawTransaction) -> int:
    """0-100 heuristic from endpoint counts, shielding and party count."""
    complexity = min(len(raw.inputs) * 5, 25) + min(len(raw.outputs) * 5, 25)
    if has_shielded_endpoints(raw.inputs, raw.outputs):
        complexity += 20
    unique = set(_addresses(raw.inputs) + _addresses(raw.outputs))
    if len(unique) > 2:
        complexity += min((len(unique) - 2) * 10, 30)
    return min(complexity, 100)


def classify_transaction(
    raw: RawTransaction,
    wallet_address: str,
    known: Optional[KnownAddresses] = None,
) -> ClassifiedTransaction:
    """Full classification of raw for wallet_address."""
    if not wallet_address:
        raise ValidationError("wallet_address is required")

    counterparty = find_counterparty(raw, wallet_address)
    subtype = classify_transaction_subtype(raw, wallet_address)
    timestamp = raw.timestamp
    if timestamp is not None and timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)

    return ClassifiedTransaction(
        txid=raw.txid,
        block_height=raw.block_height,
        block_timestamp=timestamp,
        tx_type=classify_transaction_type(raw, known).value,
        tx_subtype=subtype.value if subtype else None,
        value_zatoshi=wallet_value_delta(raw, wallet_address),
        fee_zatoshi=raw.fee or 0,
        counterparty_address=counterparty,
        counterparty_type=classify_counterparty(counterparty, known).value,
        is_shielded=has_shielded_endpoints(raw.inputs, raw.outputs),
        shielded_pool_entry=is_pool_entry(raw, wallet_address),
        shielded_pool_exit=is_pool_exit(raw, wallet_address),
        input_count=len(raw.inputs),
        output_count=len(raw.outputs),
        complexity_score=transaction_complexity(raw),
    )


def find_involved_wallets(raw: RawTransaction, address_map: Dict[str, int]) -> List[Tuple[int, str]]:
    """Unique (wallet_id, address) pairs of tracked wallets touched by raw."""
    involved: Dict[int, str] = {}
    for address in _addresses(raw.inputs) + _addresses(raw.outputs):
        wallet_id = address_map.get(address)
        if wallet_id is not None:
            involved[wallet_id] = address
    return list(involved.items())


# ===========================
# Persistence
# ===========================


class TransactionProcessor:
    """Persists classified transactions and maintains daily rollups."""

    def __init__(
        self,
        repo: AnalyticsRepository,
        known: Optional[KnownAddresses] = None,
    ):
        self.repo = repo
        self.known = known or KnownAddresses()

    async def process_for_wallet(
        self, raw: RawTransaction, wallet_id: int, wallet_address: str
    ) -> ProcessedTransactionResult:
        """
        Classify and store raw for one wallet.

        Reprocessing a stored txid is a no-op for both the transaction row
        and the daily rollup.

        Raises:
            NotFoundError: wallet does not exist
        """
        wallet = await self.repo.get_wallet(wallet_id)
        if wallet is None:
            raise NotFoundError(f"Wallet {wallet_id} not found", {"wallet_id": wallet_id})

        classified = classify_transaction(raw, wallet_address, self.known)

        minutes_since_previous = None
        if classified.block_timestamp is not None:
            previous = await self.repo.get_previous_transaction(wallet_id, classified.block_timestamp)
            if previous is not None and previous.block_timestamp is not None:
                delta = classified.block_timestamp - previous.block_timestamp
                minutes_since_previous = int(delta.total_seconds() // 60)

        values = classified.model_dump(exclude={"input_count", "output_count"})
        values.update(
            wallet_id=wallet_id,
            sequence_position=await self.repo.count_wallet_transactions(wallet_id) + 1,
            time_since_previous_tx_minutes=minutes_since_previous,
        )
        # Transaction row and daily rollup commit together
        try:
            inserted = await self.repo.insert_transaction(values, commit=False)
            if inserted and classified.block_timestamp is not None:
                await self._update_daily_rollup(wallet_id, classified)
            elif inserted:
                logger.warning(f"Transaction {raw.txid} for wallet {wallet_id} has no timestamp, rollup skipped")
            await self.repo.commit()
        except Exception:
            await self.repo.rollback()
            raise

        return ProcessedTransactionResult(
            wallet_id=wallet_id,
            txid=raw.txid,
            inserted=inserted,
            transaction=classified,
        )

    async def _update_daily_rollup(self, wallet_id: int, tx: ClassifiedTransaction) -> None:
        day = tx.block_timestamp.astimezone(UTC).date()
        existing = await self.repo.get_activity_day(wallet_id, day)

        counts = {
            "transfers_count": existing.transfers_count if existing else 0,
            "swaps_count": existing.swaps_count if existing else 0,
            "bridges_count": existing.bridges_count if existing else 0,
            "shielded_count": existing.shielded_count if existing else 0,
        }
        type_column = {
            TransactionType.TRANSFER.value: "transfers_count",
            TransactionType.SWAP.value: "swaps_count",
            TransactionType.BRIDGE.value: "bridges_count",
            TransactionType.SHIELDED.value: "shielded_count",
        }.get(tx.tx_type)
        if type_column:
            counts[type_column] += 1

        distinct_types = sum(1 for value in counts.values() if value > 0)

        await self.repo.upsert_activity_day({
            "wallet_id": wallet_id,
            "activity_date": day,
            "transaction_count": (existing.transaction_count if existing else 0) + 1,
            "total_volume_zatoshi": (existing.total_volume_zatoshi if existing else 0) + abs(tx.value_zatoshi),
            "total_fees_paid": (existing.total_fees_paid if existing else 0) + tx.fee_zatoshi,
            **counts,
            "sequence_complexity_score": distinct_types * (100 // len(ROLLUP_TYPES)),
            "is_active": True,
            "is_returning": await self.repo.has_activity_before(wallet_id, day),
        }, commit=False)
        await self.repo.mark_returning_after(wallet_id, day)

    async def process_batch(self, transactions: List[RawTransaction]) -> BatchResponse:
        """
        Process transactions for every tracked wallet they touch.

        A failure for one (transaction, wallet) pair is logged and reported,
        the rest of the batch continues.
        """
        address_map = await self.repo.get_active_address_map()
        if not address_map:
            logger.info("No active wallets found, skipping transaction processing")
            return BatchResponse(total=0, succeeded=0, failed=0)

        items: List[BatchItemResult] = []
        for raw in transactions:
            for wallet_id, address in find_involved_wallets(raw, address_map):
                item_id = f"{raw.txid}:{wallet_id}"
                try:
                    result = await self.process_for_wallet(raw, wallet_id, address)
                    items.append(BatchItemResult(id=item_id, success=True, result=result.model_dump(mode="json")))
                except Exception as e:
                    await self.repo.rollback()
                    logger.warning(f"Failed to process transaction {raw.txid} for wallet {wallet_id}: {e}")
                    items.append(BatchItemResult(id=item_id, success=False, error=str(e)))

        response = BatchResponse.from_items(items)
        logger.info(
            f"Processed {response.succeeded}/{response.total} wallet transactions "
            f"from {len(transactions)} raw"
        )
        return response
