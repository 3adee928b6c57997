# src/httpfakes/logging.py
"""Logging setup for processes that serve fakes, such as the CLI.

Library modules only call ``structlog.get_logger(__name__)``. An entry point
calls ``configure_logging`` once; afterwards structlog events and uvicorn's
stdlib records share a single stdout handler and renderer.
"""

import logging
import sys
from enum import Enum
from typing import Any

import structlog


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# uvicorn installs its own handlers unless told otherwise; these are
# re-attached to the root handler.
SERVER_LOGGERS: tuple[str, ...] = ("uvicorn", "uvicorn.error", "uvicorn.access", "uvicorn.asgi")

# Connection chatter from the HTTP client, kept at WARNING or above.
CLIENT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def parse_level(level: LogLevel | str) -> int:
    """Resolve a level name to its stdlib number.

    Raises:
        ValueError: If ``level`` is not one of the LogLevel names.
    """
    if not isinstance(level, LogLevel):
        try:
            level = LogLevel(level.upper())
        except ValueError as exc:
            choices = ", ".join(member.value for member in LogLevel)
            raise ValueError(f"Unknown log level {level!r}, expected one of: {choices}") from exc
    return logging.getLevelNamesMapping()[level.value]


def _render_chain(json_output: bool) -> list[Any]:
    chain: list[Any] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if json_output:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def configure_logging(*, json_output: bool = False, level: LogLevel | str = LogLevel.INFO) -> None:
    """Send structlog events and stdlib records to stdout in one format.

    Args:
        json_output: Render one JSON object per line instead of console text.
        level: Minimum level for httpfakes and uvicorn records.
    """
    log_level = parse_level(level)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(foreign_pre_chain=pre_chain, processors=_render_chain(json_output)))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
        server_logger.setLevel(log_level)

    for name in CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
