"""Structured logging setup.

Library modules log through plain ``logging.getLogger(__name__)``.
:func:`setup_logging` installs a structlog ``ProcessorFormatter`` on the
root logger so those stdlib records come out as JSON (or console) lines
carrying whatever aggregate scope is bound at the time.

:func:`aggregate_scope` binds the cache namespace and the permit event id
while an aggregate is being built, so factory and cache logs can be
correlated with the screen that asked for them.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Marks the handler installed by setup_logging so a second call replaces it.
_HANDLER_NAME = "permit_core"


@contextmanager
def aggregate_scope(namespace: str, identifier: Any) -> Iterator[None]:
    """Bind ``aggregate`` and ``identifier`` to every log line in the block."""
    with structlog.contextvars.bound_contextvars(
        aggregate=namespace, identifier=identifier,
    ):
        yield


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def setup_logging(
    level: str = "INFO",
    format: str = "json",
) -> logging.Handler:
    """Route stdlib and structlog records through one structured renderer.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for production, "console" for development.

    Returns the installed handler.  Calling again swaps it out instead of
    stacking a second one.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    shared = _shared_processors()

    # ConsoleRenderer formats tracebacks itself
    if format == "json":
        render: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        render = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *render,
            ],
        )
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)
    return handler
