"""
structlog setup shared by the API and the ingestion background tasks.

Every module logs through ``logger`` with an event name and key/value
context, e.g. ``logger.info("Upload accepted", document_id=doc.id)``.
"""
import logging
import sys

import structlog

from .config import LOG_JSON, LOG_LEVEL

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
]


def _renderers(json_logs: bool):
    if json_logs:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)]


def setup_logging(log_level: str = "INFO", json_logs: bool = False):
    """Configure stdlib logging and structlog; returns the bound logger."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=_SHARED_PROCESSORS + _renderers(json_logs),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger()


logger = setup_logging(log_level=LOG_LEVEL, json_logs=LOG_JSON)
