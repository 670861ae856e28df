"""
Pytest configuration and fixtures for the wallet analytics tests
"""

from datetime import date, datetime
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.database.models import Base
from src.database.repository import AnalyticsRepository

from helpers import BASE_TIME, T_OTHER


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repo(db_session) -> AnalyticsRepository:
    return AnalyticsRepository(db_session)


# ===========================
# Factories
# ===========================


@pytest.fixture
def make_project(repo):
    async def _make(name: str = "Test Project"):
        return await repo.create_project(name, owner="tests@example.com")
    return _make


@pytest.fixture
def make_wallet(repo, make_project):
    counter = {"n": 0}

    async def _make(project_id: Optional[int] = None, address: Optional[str] = None, created_at=BASE_TIME):
        if project_id is None:
            project_id = (await make_project()).id
        counter["n"] += 1
        return await repo.create_wallet(
            project_id,
            address or f"t1Fixture{counter['n']:025d}",
            created_at=created_at,
        )
    return _make


@pytest.fixture
def make_transaction(repo):
    """Insert a processed transaction row directly (bypasses the classifier)."""
    counter = {"n": 0}

    async def _make(
        wallet_id: int,
        timestamp: Optional[datetime],
        value: int = 100_000,
        tx_type: str = "transfer",
        counterparty: Optional[str] = T_OTHER,
        is_shielded: bool = False,
        pool_entry: bool = False,
        pool_exit: bool = False,
    ):
        counter["n"] += 1
        await repo.insert_transaction({
            "wallet_id": wallet_id,
            "txid": f"tx{counter['n']:08d}",
            "block_timestamp": timestamp,
            "tx_type": tx_type,
            "tx_subtype": "incoming",
            "value_zatoshi": value,
            "fee_zatoshi": 1000,
            "counterparty_address": counterparty,
            "counterparty_type": "wallet",
            "is_shielded": is_shielded,
            "shielded_pool_entry": pool_entry,
            "shielded_pool_exit": pool_exit,
        })
    return _make


@pytest.fixture
def make_activity(repo):
    """Upsert one active day for a wallet."""
    async def _make(wallet_id: int, day: date, transactions: int = 1, volume: int = 100_000, returning=False):
        await repo.upsert_activity_day({
            "wallet_id": wallet_id,
            "activity_date": day,
            "transaction_count": transactions,
            "total_volume_zatoshi": volume,
            "total_fees_paid": 1000 * transactions,
            "transfers_count": transactions,
            "swaps_count": 0,
            "bridges_count": 0,
            "shielded_count": 0,
            "sequence_complexity_score": 25,
            "is_active": True,
            "is_returning": returning,
        })
    return _make
