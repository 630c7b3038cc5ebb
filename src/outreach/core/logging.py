"""structlog setup for Branch Outreach.

Every classification or batch run gets a run_id, carried in a ContextVar and
stamped on each entry logged inside that run. Customer contact fields are
masked before rendering; only account numbers appear in logs.

Usage:
    from outreach.core.logging import get_logger, start_run

    logger = get_logger(__name__)
    run_id = start_run()
    logger.info("letter_generated", account_no="SBIN0001001", pdf=True)
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)

# Event keys whose values identify a customer beyond the account number
MASKED_KEYS = frozenset({"name", "customer_name", "email", "recipient", "mobile", "phone"})
MASK = "***"

# Third-party loggers that are only useful when debugging
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "multipart")


def start_run(run_id: str | None = None) -> str:
    """Begin a run in the current context and return its ID.

    Args:
        run_id: Explicit ID to use; a new UUID4 when omitted

    Returns:
        The run ID now attached to log entries from this context
    """
    run_id = run_id or str(uuid.uuid4())
    _run_id.set(run_id)
    return run_id


def current_run_id() -> str | None:
    return _run_id.get()


def add_run_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that stamps the current run_id on the entry."""
    run_id = _run_id.get()
    if run_id is not None:
        event_dict.setdefault("run_id", run_id)
    return event_dict


def mask_customer_fields(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that masks contact details passed as event keys."""
    for key in MASKED_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = MASK
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_output: JSON lines (API server) or colored console output (CLI)
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level == logging.DEBUG else logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_run_id,
        mask_customer_fields,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, typically named after the calling module."""
    return structlog.get_logger(name)
