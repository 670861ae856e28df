"""
Tests for the Redis cache layer of project views
"""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.services.analytics import WalletAnalyticsService
from src.services.analytics.cache import AnalyticsCacheLayer


@pytest.mark.asyncio
async def test_disabled_without_client():
    cache = AnalyticsCacheLayer()

    assert cache.enabled is False
    assert await cache.get("funnel", 1) is None
    assert await cache.set("funnel", 1, {"a": 1}) is False
    assert await cache.invalidate("funnel", 1) is False


@pytest.mark.asyncio
async def test_keys_are_versioned():
    redis = AsyncMock()
    redis.get.return_value = "3"
    cache = AnalyticsCacheLayer(redis)

    key = await cache.cache_key("conversion", 7, min_sample_size=10)
    assert key.startswith("analytics:conversion:7:v3:")
    assert key != await cache.cache_key("conversion", 7, min_sample_size=20)


@pytest.mark.asyncio
async def test_invalidate_bumps_version():
    redis = AsyncMock()
    cache = AnalyticsCacheLayer(redis)

    await cache.invalidate_project(5)

    bumped = [call.args[0] for call in redis.incr.await_args_list]
    assert bumped == [f"analytics:v:{view}:5" for view in AnalyticsCacheLayer.VIEWS]


@pytest.mark.asyncio
async def test_redis_errors_are_cache_misses():
    redis = AsyncMock()
    redis.get.side_effect = RedisConnectionError("down")
    redis.setex.side_effect = RedisConnectionError("down")
    cache = AnalyticsCacheLayer(redis)

    assert await cache.get("funnel", 1) is None
    assert await cache.set("funnel", 1, {"a": 1}) is False


@pytest.mark.asyncio
async def test_service_serves_cached_funnel(db_session, make_project):
    project = await make_project()
    cached = {
        "project_id": project.id,
        "total_wallets": 99,
        "stages": [{"stage": "created", "wallets": 99, "percentage": 100.0}],
    }
    redis = AsyncMock()
    redis.get.side_effect = lambda key: None if key.startswith("analytics:v:") else json.dumps(cached)

    funnel = await WalletAnalyticsService(db_session, redis=redis).project_funnel(project.id)

    assert funnel.total_wallets == 99
    redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_service_fills_cache_on_miss(db_session, make_project):
    project = await make_project()
    redis = AsyncMock()
    redis.get.return_value = None

    funnel = await WalletAnalyticsService(db_session, redis=redis).project_funnel(project.id)

    assert funnel.total_wallets == 0
    key, ttl, payload = redis.setex.await_args.args
    assert key.startswith(f"analytics:funnel:{project.id}:v0:")
    assert json.loads(payload)["project_id"] == project.id


@pytest.mark.asyncio
async def test_register_wallet_invalidates_project_views(db_session, make_project):
    project = await make_project()
    redis = AsyncMock()
    redis.get.return_value = None
    analytics = WalletAnalyticsService(db_session, redis=redis)

    wallet = await analytics.register_wallet(project.id, "t1Registered000000000000000000000")

    bumped = {call.args[0] for call in redis.incr.await_args_list}
    assert bumped == {
        f"analytics:v:{view}:{project.id}" for view in ("funnel", "conversion", "productivity")
    }
    status = await analytics.adoption.get_status(wallet.id)
    assert status.current_stage == "created"
