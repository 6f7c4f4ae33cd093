"""Structured logging for recurring auto-apply.

Every component binds ``component=<name>`` on its logger. Components can be
muted individually, which is how the startup supervisor's ``enable_logging``
switch is honoured without touching the host's global log level.
"""

import logging
import sys
from collections.abc import Iterable
from typing import Any, Literal

import structlog

from recurring_autoapply.config.settings import get_settings

_muted_components: set[str] = set()


def set_component_logging(component: str, enabled: bool) -> None:
    """Mute or unmute every event bound with ``component=component``."""
    if enabled:
        _muted_components.discard(component)
    else:
        _muted_components.add(component)


def is_component_muted(component: str) -> bool:
    return component in _muted_components


def drop_muted_components(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Processor dropping events from muted components."""
    if event_dict.get("component") in _muted_components:
        raise structlog.DropEvent
    return event_dict


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    muted_components: Iterable[str] = (),
) -> None:
    """Route auto-apply events through stdlib logging.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` for log shippers, ``console`` for terminals. Defaults to ``LOG_FORMAT``.
        muted_components: Components to silence from the start.
    """
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level or settings.log_level),
    )

    for component in muted_components:
        set_component_logging(component, False)

    renderer: structlog.types.Processor
    if (format or settings.log_format) == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            drop_muted_components,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
