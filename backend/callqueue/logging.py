"""structlog setup shared by the API process and the CLI."""

import logging
import sys

import structlog
from structlog.typing import Processor

from callqueue.config import settings

# Third-party loggers and the level below which they are muted
QUIET_LOGGERS = {
    "httpx": logging.INFO,
    "httpcore": logging.WARNING,
    "asyncio": logging.INFO,
    "aiosqlite": logging.WARNING,
    # Every job execution is logged at INFO
    "apscheduler": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
}


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), exception_formatter=structlog.dev.plain_traceback)


def configure_logging(log_format: str | None = None, level: str | None = None) -> None:
    """Route structlog and stdlib logging through one handler on stdout.

    `log_format` is "console" (coloured, for humans) or "json" (one object
    per line, for log shipping). Defaults come from settings.
    """
    log_format = log_format or settings.log_format
    timestamper = (
        structlog.processors.TimeStamper(fmt="iso", utc=True)
        if log_format == "json"
        else structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False)
    )
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # uvicorn, apscheduler and sqlalchemy log through stdlib
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(log_format)],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


_configured = False


def setup_logging() -> None:
    """Configure logging once per process."""
    global _configured
    if not _configured:
        configure_logging()
        _configured = True
