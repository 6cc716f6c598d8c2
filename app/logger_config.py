"""Loguru setup shared by the API, the ledger and the worker."""

import sys

from loguru import logger

from app.config import LOG_LEVEL

log_format = " | ".join(
    (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green>",
        "<level>{level:<8}</level>",
        "<cyan>{module}:{function}:{line}</cyan>",
        "{message}",
    )
)

# Drop the default handler so records are not printed twice
logger.remove()
logger.add(sys.stderr, format=log_format, level=LOG_LEVEL)

__all__ = ["logger"]
