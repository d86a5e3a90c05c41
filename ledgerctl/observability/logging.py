"""Structured logging for the controller, built on structlog.

Reconcile passes bind the resource identity into structlog's context
variables so every line emitted during a pass carries ``kind``,
``namespace`` and ``name`` without threading a logger through each call.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def setup_logging(level: str = "info", json_output: bool = True) -> None:
    """Configure structlog; JSON lines on stderr unless ``json_output`` is off."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


@contextmanager
def bound_resource(kind: str, namespace: str, name: str) -> Iterator[None]:
    """Bind a resource identity to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(kind=kind, namespace=namespace, name=name):
        yield
