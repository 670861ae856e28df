"""
FastAPI Server for the Zcash wallet analytics API
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from redis import asyncio as aioredis
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from config.config import (
    ALLOWED_ORIGINS,
    ANALYTICS_SCHEDULER_ENABLED,
    REDIS_URL,
    validate_config,
)
from config.logging import setup_logging
from config.sentry import init_sentry
from src.api.rate_limit import limiter
from src.api.router import router as api_router
from src.core.errors import AnalyticsError, ComputationError
from src.database.engine import dispose_engine
from src.tasks.analytics_scheduler import AnalyticsScheduler

# Setup logging at module level (must run before app creation)
# This ensures logging works when uvicorn imports the module
setup_logging()


async def _connect_redis():
    if not REDIS_URL:
        logger.info("REDIS_URL not set - analytics cache disabled")
        return None
    client = aioredis.from_url(REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except RedisError as e:
        logger.warning(f"Redis unavailable, analytics cache disabled: {e}")
        await client.aclose()
        return None
    logger.info("Redis connected - analytics cache enabled")
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events
    """
    logger.info("Starting Wallet Analytics API Server...")
    init_sentry()

    # NOTE: Database tables managed by Alembic migrations
    # Run: alembic upgrade head

    app.state.redis = await _connect_redis()

    scheduler = None
    if ANALYTICS_SCHEDULER_ENABLED:
        scheduler = AnalyticsScheduler(redis=app.state.redis)
        scheduler.start()

    yield

    logger.info("Shutting down Wallet Analytics API Server...")

    if scheduler:
        scheduler.stop()

    if app.state.redis is not None:
        await app.state.redis.aclose()

    await dispose_engine()
    logger.info("Database connections closed")


app = FastAPI(
    title="Zcash Wallet Analytics API",
    description="Adoption, retention, productivity and shielded-usage analytics for Zcash wallets",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.state.redis = None
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
# default_limits only apply through the middleware
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# API router (includes all sub-routers) under /api
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """
    Root endpoint
    """
    return {
        "service": "Zcash Wallet Analytics API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """
    Health check endpoint
    """
    return {"status": "healthy"}


@app.exception_handler(AnalyticsError)
async def analytics_exception_handler(request: Request, exc: AnalyticsError):
    """
    Map engine errors to {"error", "message", "details"} with their status code
    """
    if exc.http_status >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.kind} on {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# Error handler for HTTPException (must be before generic Exception handler)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTPException properly - return correct status code and detail
    """
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {exc.detail}")

    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(
        status_code=exc.status_code,
        content=content
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unexpected failures inside a route become a 500 computation error
    """
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    error = ComputationError("Analytics computation failed", {"path": request.url.path})
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


if __name__ == "__main__":
    import uvicorn

    errors = validate_config()
    if errors:
        for error in errors:
            logger.error(f"Config: {error}")
        logger.error("Configuration validation failed. Please check your .env file.")
        exit(1)

    logger.info("Configuration validated successfully")

    # Listen on localhost only; external access goes through the reverse proxy
    uvicorn.run(
        "api_server:app",
        host="127.0.0.1",
        port=8003,
        reload=False,
        log_level="info",
    )
