"""
Centralized logging configuration.

Configure once from the application factory or a worker entry point.
Modules keep using ``logging.getLogger(__name__)``; in JSON mode their
records are rendered by structlog's processor chain, one object per line.
"""

import logging
import sys

import structlog

from .config import settings


TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Applied to records from both stdlib loggers and structlog loggers
SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
]


def json_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure Python logging for the entire application.

    Idempotent: does nothing when the root logger already has handlers.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    structlog.configure(
        processors=SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    if (log_format or settings.log_format) == "json":
        handler.setFormatter(json_formatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root_logger.addHandler(handler)
    root_logger.setLevel(level or settings.log_level)

    # Reduce noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )
