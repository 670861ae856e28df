# coding: utf-8
"""
Sentry configuration for error monitoring
"""
import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from loguru import logger

from config.config import SENTRY_DSN, ENVIRONMENT


def init_sentry() -> bool:
    """
    Initialize Sentry SDK. No-op without SENTRY_DSN.

    Returns:
        True when Sentry was initialized
    """
    if not SENTRY_DSN:
        logger.warning("SENTRY_DSN not configured - error monitoring disabled")
        return False

    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=ENVIRONMENT,
        integrations=[
            AsyncioIntegration(),
            SqlalchemyIntegration(),
            FastApiIntegration(),
        ],
        traces_sample_rate=0.1 if ENVIRONMENT == "production" else 1.0,
        sample_rate=1.0,
        attach_stacktrace=True,
        send_default_pii=False,  # wallet addresses never leave the service
        max_breadcrumbs=50,
        before_send=before_send_hook,
    )
    logger.info(f"Sentry initialized successfully (Environment: {ENVIRONMENT})")
    return True


def before_send_hook(event, hint):
    """
    Drop KeyboardInterrupt, mask the API key header
    """
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, KeyboardInterrupt):
            return None

    if event.get("request"):
        headers = event["request"].get("headers", {})
        for header in ("X-API-Key", "x-api-key", "Authorization"):
            if header in headers:
                headers[header] = "[Filtered]"

    return event
