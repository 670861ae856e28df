"""
Shared test data builders
"""

from datetime import datetime, timedelta, UTC
from typing import Optional

from src.services.analytics.schemas import RawTransaction, TxEndpoint


# Syntactically plausible addresses; only the prefix matters to the engine
T_ADDR = "t1Wallet0000000000000000000000000a"
T_OTHER = "t1Other00000000000000000000000000b"
Z_ADDR = "zs1shielded0000000000000000000000000000000000000"

BASE_TIME = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)  # a Monday


def raw_tx(txid: str, inputs, outputs, timestamp: Optional[datetime] = BASE_TIME, fee: int = 1000) -> RawTransaction:
    """RawTransaction from (address, value) pairs."""
    return RawTransaction(
        txid=txid,
        block_height=2_500_000,
        timestamp=timestamp,
        fee=fee,
        inputs=[TxEndpoint(address=a, value=v) for a, v in inputs],
        outputs=[TxEndpoint(address=a, value=v) for a, v in outputs],
    )


def days_after(n: float) -> datetime:
    return BASE_TIME + timedelta(days=n)
