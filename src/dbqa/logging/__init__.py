"""
Structured logging for the DB QA engine.

Usage:
    from dbqa.logging import configure_logging, get_logger, log_context

    configure_logging(level="INFO", format="json")
    logger = get_logger(__name__)

    with log_context(query_id="q-1", trigger="schedule"):
        logger.info("check_started")
"""

from dbqa.logging.config import configure_logging, is_configured
from dbqa.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    log_context,
)

__all__ = [
    "configure_logging",
    "is_configured",
    "get_logger",
    "get_context",
    "bind_context",
    "clear_context",
    "log_context",
    "LogContext",
]
