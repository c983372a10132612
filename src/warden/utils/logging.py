"""
Warden · Structured Logging Setup.

One structlog pipeline, two outputs:
- stderr: coloured console lines (or JSON with ``json_logs``)
- ``<log_dir>/warden.jsonl``: always JSON lines, rotated, DEBUG and up

Agents bind ``agent``, ``action`` and ``action_id`` around every execute,
so each line can be traced back to the action that produced it.

Usage in every module:
    from warden.utils.logging import get_logger
    log = get_logger(__name__)
    log.info("event_name", key="value")
"""

from __future__ import annotations

import inspect
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from pathlib import Path

LOG_FILE_NAME = "warden.jsonl"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Path | None = None,
    json_logs: bool = False,
    console: bool = True,
) -> None:
    """Configure structlog and the root logger. Safe to call again.

    Args:
        level: Console level (DEBUG, INFO, WARNING, ERROR).
        log_dir: Directory for ``warden.jsonl``. None disables the file.
        json_logs: Render the console as JSON lines too.
        console: Write to stderr at all.
    """
    console_level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if console:
        stream = logging.StreamHandler(sys.stderr)
        stream.setLevel(console_level)
        stream.setFormatter(_formatter(_json_renderer() if json_logs else _console_renderer()))
        handlers.append(stream)
    if log_dir is not None:
        handlers.append(_file_handler(log_dir))

    # The root logger passes everything the most verbose handler wants
    root_level = min((h.level for h in handlers), default=console_level)
    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_PRE_CHAIN,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter(_json_renderer()))
    return handler


def _formatter(renderer: structlog.types.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        foreign_pre_chain=_PRE_CHAIN,
    )


def _json_renderer() -> structlog.types.Processor:
    return structlog.processors.JSONRenderer(ensure_ascii=False)


def _console_renderer() -> structlog.types.Processor:
    # structlog 25.5 renamed pad_event to pad_event_to
    params = inspect.signature(structlog.dev.ConsoleRenderer).parameters
    pad = "pad_event_to" if "pad_event_to" in params else "pad_event"
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), **{pad: 32})


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log messages of this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove previously bound context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
