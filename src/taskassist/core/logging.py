"""
Structured logging for taskassist.

Modules log through structlog with snake_case event names and bound context::

    logger = structlog.get_logger()
    log = logger.bind(tab_id="tab-1", conversation_id="c-42")
    log.info("code_generation_started", iteration=2)

The CLI configures logging twice: once from the global flags when the group
starts, and again from the ``[logging]`` section once a command has loaded
its config file. Flags given on the command line win over the file.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from taskassist.core.config import LoggingConfig

_QUIET_LOGGERS = ("httpx", "httpcore")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def _renderers(json_output: bool, stream: TextIO) -> list[structlog.types.Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=stream.isatty())]


def _owned_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [
        h
        for h in root.handlers
        if isinstance(getattr(h, "formatter", None), structlog.stdlib.ProcessorFormatter)
    ]


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> None:
    """
    Route structlog and stdlib logging through one handler on *stream* (stderr).

    Unknown level names fall back to INFO. Calling this again swaps the
    handler instead of stacking a second one.
    """
    stream = stream or sys.stderr
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_renderers(json_output, stream),
            ],
            foreign_pre_chain=_PRE_CHAIN,
        )
    )

    root = logging.getLogger()
    for old in _owned_handlers(root):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def configure_from_config(
    config: LoggingConfig,
    *,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Apply a ``[logging]`` config section. Non-None arguments override it."""
    configure_logging(
        level=level or config.level,
        json_output=(config.format == "json") if json_output is None else json_output,
    )
