"""
Analytics Cache Layer - Redis caching of project-level read views.

Versioned keys instead of wildcard deletes:
- invalidation increments the project's version for a view
- old keys expire by TTL

Disabled when no Redis client is injected. Redis failures are logged at
debug level and treated as a cache miss.
"""

import hashlib
import json
from datetime import timedelta
from typing import Any, Optional

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError


class AnalyticsCacheLayer:
    """Redis caching for project-level analytics views."""

    # TTL per view
    TTL_FUNNEL = 300
    TTL_CONVERSION = 600
    TTL_PRODUCTIVITY = 300
    TTL_SHIELDED = 900
    TTL_DEFAULT = 300

    VIEWS = ("funnel", "conversion", "productivity", "shielded")

    def __init__(self, redis: Optional[Redis] = None):
        self.redis = redis

    @property
    def enabled(self) -> bool:
        return self.redis is not None

    def _ttl(self, view: str) -> int:
        return {
            "funnel": self.TTL_FUNNEL,
            "conversion": self.TTL_CONVERSION,
            "productivity": self.TTL_PRODUCTIVITY,
            "shielded": self.TTL_SHIELDED,
        }.get(view, self.TTL_DEFAULT)

    @staticmethod
    def _version_key(view: str, project_id: int) -> str:
        return f"analytics:v:{view}:{project_id}"

    async def get_version(self, view: str, project_id: int) -> int:
        if not self.enabled:
            return 0
        try:
            version = await self.redis.get(self._version_key(view, project_id))
            return int(version) if version else 0
        except (RedisError, ValueError) as e:
            logger.debug(f"Cache version read failed for {view}/{project_id}: {e}")
            return 0

    async def cache_key(self, view: str, project_id: int, **params) -> str:
        """
        Versioned cache key.

        Format: analytics:{view}:{project_id}:v{version}:{hash}
        """
        version = await self.get_version(view, project_id)
        param_str = json.dumps(params, sort_keys=True, default=str)
        hash_val = hashlib.md5(param_str.encode()).hexdigest()[:8]
        return f"analytics:{view}:{project_id}:v{version}:{hash_val}"

    async def get(self, view: str, project_id: int, **params) -> Optional[dict]:
        if not self.enabled:
            return None
        try:
            data = await self.redis.get(await self.cache_key(view, project_id, **params))
            return json.loads(data) if data else None
        except (RedisError, ValueError) as e:
            logger.debug(f"Cache read failed for {view}/{project_id}: {e}")
            return None

    async def set(self, view: str, project_id: int, value: Any, **params) -> bool:
        if not self.enabled:
            return False
        try:
            key = await self.cache_key(view, project_id, **params)
            await self.redis.setex(key, timedelta(seconds=self._ttl(view)), json.dumps(value, default=str))
            return True
        except (RedisError, TypeError) as e:
            logger.debug(f"Cache write failed for {view}/{project_id}: {e}")
            return False

    async def invalidate(self, view: str, project_id: int) -> bool:
        """Bump the version; old keys expire by TTL. No SCAN, no DEL wildcard."""
        if not self.enabled:
            return False
        try:
            await self.redis.incr(self._version_key(view, project_id))
            return True
        except RedisError as e:
            logger.debug(f"Cache invalidation failed for {view}/{project_id}: {e}")
            return False

    async def invalidate_project(self, project_id: int) -> None:
        for view in self.VIEWS:
            await self.invalidate(view, project_id)
