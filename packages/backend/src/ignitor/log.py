"""Structured logging setup.

Learn: structlog is the logging front end, stdlib logging is the sink.
Every structlog event passes through a shared processor chain
(contextvars → level → timestamp → exception info) and is rendered by
ProcessorFormatter on the stdlib handler:

- development: colored console output on stdout
- everything else: one JSON object per line on stdout AND in a daily
  rotating file under settings.log_dir

The request ID bound by RequestIdMiddleware lives in structlog's
contextvars, so it shows up on every log line of that request.

There is no global logger object to reach for. Collaborators receive a
bound logger from get_logger() through their constructor, which lets
tests pass their own.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

from ignitor.config import Settings

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def _build_handlers(settings: Settings) -> list[logging.Handler]:
    if settings.is_development:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if not settings.is_development:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        rotating = logging.handlers.TimedRotatingFileHandler(
            log_dir / "app.log",
            when="midnight",
            backupCount=settings.log_retention_days,
            encoding="utf-8",
            utc=True,
        )
        rotating.setFormatter(formatter)
        handlers.append(rotating)

    return handlers


def configure_logging(settings: Settings) -> None:
    """Wire structlog into stdlib logging. Safe to call more than once."""
    level = settings.effective_log_level

    root = logging.getLogger()
    # Avoid duplicate handlers with --reload
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(settings):
        root.addHandler(handler)
    root.setLevel(level)

    # uvicorn logs through the same handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers = []
        uv_logger.propagate = True
        uv_logger.setLevel(level)

    # SQL echo only when explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def get_logger(name: str = "ignitor", **context):
    """Return a logger bound to `context` (e.g. service="Post")."""
    logger = structlog.get_logger(name)
    if context:
        return logger.bind(**context)
    return logger
