"""Structured logging setup for loadscope."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO

# Extra attributes copied into JSON log lines when a call site passes them
# via ``logger.info(..., extra={"vu": 3})``.
_CONTEXT_FIELDS = ("run", "vu", "scenario", "endpoint", "stage")


class _JsonFormatter(logging.Formatter):
    """One-line JSON formatter.

    Emits objects with keys timestamp, level, logger, message, plus any of
    the known context fields present on the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field_name in _CONTEXT_FIELDS:
            value = getattr(record, field_name, None)
            if value is not None:
                entry[field_name] = value
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Configure and return the root loadscope logger.

    Installs one handler on the ``loadscope`` namespace. Calling it again
    only updates the level, so the engine and the CLI can both call it.
    aiohttp's own access and client loggers are capped at WARNING so a
    verbose run is not flooded by per-request connection chatter.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: Emit one JSON object per line instead of plain text.
        stream: Destination stream. Defaults to stderr.

    Returns:
        The configured ``loadscope`` root logger.
    """
    logger = logging.getLogger("loadscope")
    logger.setLevel(level)
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``loadscope`` namespace.

    Args:
        name: Dotted suffix, e.g. ``"engine.session"`` for
            ``loadscope.engine.session``.

    Returns:
        The child logger.
    """
    return logging.getLogger(f"loadscope.{name}")
