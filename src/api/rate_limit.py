"""
Rate limiting shared by the app and its routers

API_RATE_LIMIT is the per-IP default for every route (SlowAPIMiddleware);
routes may add a tighter limit with @limiter.limit(...).
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from config.config import API_RATE_LIMIT


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[API_RATE_LIMIT],
    storage_uri="memory://",
)
