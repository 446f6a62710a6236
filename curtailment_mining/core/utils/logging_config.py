"""Structured logging configuration for the curtailment mining engine.

Uses structlog with context variables and ISO timestamps. Console rendering
is the default; scheduler runs can switch to JSON lines so per-date outcomes
are machine-readable. Reconciliation workers bind the date being processed
via ``date_context`` so every event emitted inside a date's transaction
carries it.
"""

from contextlib import contextmanager
from datetime import date
from typing import Iterator

import structlog

_configured = False


def configure_logging(json_output: bool = False, force: bool = False) -> None:
    """Configure structlog processors once.

    Safe to call multiple times -- only the first invocation takes effect
    unless ``force`` is set (CLI entry points choosing the renderer).

    Args:
        json_output: Render JSON lines instead of the coloured console format.
        force: Reconfigure even if logging was already configured.
    """
    global _configured
    if _configured and not force:
        return

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a bound logger with the given name.

    Ensures logging is configured before returning.

    Args:
        name: Logger name, typically the component name.

    Returns:
        A structlog BoundLogger instance bound with the given name.
    """
    configure_logging()
    return structlog.get_logger(logger_name=name)


@contextmanager
def date_context(day: date) -> Iterator[None]:
    """Bind ``date`` into the structlog context for the enclosed block."""
    with structlog.contextvars.bound_contextvars(date=day.isoformat()):
        yield
