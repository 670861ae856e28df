# coding: utf-8
"""
Logging configuration with loguru for the wallet analytics service
"""
import logging
import sys
from pathlib import Path
from loguru import logger
import sentry_sdk

from config.config import LOG_LEVEL, ENVIRONMENT, SENTRY_DSN


LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(logs_dir: Path | None = None) -> None:
    """
    Setup loguru: colored console, daily-rotated files, Sentry for errors
    """
    logger.remove()

    logs_dir = logs_dir or Path(__file__).parent.parent / "logs"
    logs_dir.mkdir(exist_ok=True)

    # Console output with colors
    logger.add(
        sys.stdout,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=LOG_LEVEL,
        colorize=True,
    )

    # File output - all logs
    logger.add(
        logs_dir / "analytics_{time:YYYY-MM-DD}.log",
        format=LOG_FORMAT,
        level="DEBUG",
        rotation="00:00",  # Rotate at midnight
        retention="7 days",
        compression="zip",
        encoding="utf-8",
    )

    # File output - errors only
    logger.add(
        logs_dir / "error_{time:YYYY-MM-DD}.log",
        format=LOG_FORMAT,
        level="ERROR",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    if SENTRY_DSN:
        logger.add(sentry_sink, level="ERROR", format="{message}")

    # Suppress noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logger.info(f"Wallet analytics initialized | Environment: {ENVIRONMENT} | Log level: {LOG_LEVEL}")


def sentry_sink(message):
    """
    Send ERROR and CRITICAL records to Sentry
    """
    record = message.record
    sentry_level = {"ERROR": "error", "CRITICAL": "fatal"}.get(record["level"].name)

    if record["exception"]:
        sentry_sdk.capture_exception(record["exception"].value)
    elif sentry_level:
        sentry_sdk.capture_message(
            record["message"],
            level=sentry_level,
            extras={
                "function": record["function"],
                "file": record["file"].path,
                "line": record["line"],
            },
        )
