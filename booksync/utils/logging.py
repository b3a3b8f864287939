"""
Structured logging for the book sync service.

structlog sits on top of the standard library so that records from
requests, SQLAlchemy, APScheduler and waitress share one stdout format.
"""

import logging
import os
import sys
from typing import Optional, Any

import structlog
from structlog.types import Processor

NOISY_LOGGERS = ("urllib3", "requests", "apscheduler", "waitress", "sqlalchemy.engine")


def get_log_level() -> str:
    """Get log level from environment."""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route structlog and stdlib logging through a single stdout handler.

    Args:
        level: Root level name, LOG_LEVEL when omitted
    """
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            # No colour codes when output goes to a file or a container log
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel((level or get_log_level()).upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


class SyncLogger:
    """Logger for one sync pass; every event carries ``sync_run_id``."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self._logger = get_logger("booksync.sync").bind(sync_run_id=run_id)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._logger.warning(event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._logger.error(event, **kwargs)
