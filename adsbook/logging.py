"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
import sys
from typing import IO, TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from adsbook.context import AccountContext

# stdlib loggers that flood DEBUG output with SQL and migration chatter
_QUIET_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration")


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    *,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog and send stdlib records (uvicorn, SQLAlchemy, Alembic) through it.

    Records go to ``stream`` (stderr by default) so command output on stdout
    stays machine-readable.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        log_format: "console" for human-readable lines, "json" for one JSON object per line.
        stream: Text stream receiving every record.
    """
    out = stream or sys.stderr
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=out.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(out)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=shared_processors,
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_account(ctx: AccountContext) -> None:
    """Attach the account and marketplace to every record logged in this context."""
    structlog.contextvars.bind_contextvars(
        account_id=ctx.account_id, marketplace=ctx.marketplace
    )
