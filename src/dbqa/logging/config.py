"""Logging configuration.

``configure_logging`` wires structlog on top of stdlib logging so that
both ``get_logger`` loggers and third-party stdlib loggers end up on
stderr through the same renderer.

Resolution order for level and format: explicit arguments, then
``DBQA_LOG_LEVEL`` / ``DBQA_LOG_FORMAT``, then INFO / console.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from dbqa.logging.context import add_context_processor

LogFormat = Literal["json", "console"]

# Libraries that log every poll or request at INFO.
_CHATTY_LOGGERS = ("apscheduler", "httpx", "uvicorn.access")

_configured = False


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("DBQA_LOG_LEVEL") or "INFO").upper()
    value = getattr(logging, name, None)
    return value if isinstance(value, int) else logging.INFO


def _resolve_format(format: str | None) -> str:
    return (format or os.environ.get("DBQA_LOG_FORMAT") or "console").lower()


def _processor_chain(log_format: str) -> list[Processor]:
    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if log_format == "json":
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    return chain


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | str | None = None,
    format: LogFormat | str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging once per process.

    Args:
        level: Log level, overriding ``DBQA_LOG_LEVEL``.
        format: ``json`` or ``console``, overriding ``DBQA_LOG_FORMAT``.
        force: Reconfigure even if already configured.
    """
    global _configured
    if _configured and not force:
        return

    log_level = _resolve_level(level)
    structlog.configure(
        processors=_processor_chain(_resolve_format(format)),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level, force=True)
    logging.getLogger("dbqa").setLevel(log_level)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    _configured = True


def is_configured() -> bool:
    return _configured
