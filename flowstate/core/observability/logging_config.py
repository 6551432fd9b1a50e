"""
Logging configuration — one-time setup for the fsd command.

main.py calls ``setup_logging`` before dispatching a command; library
code only ever does ``logger = logging.getLogger(__name__)``.

Console level, highest precedence first:
    --debug  >  --verbose  >  --quiet  >  FSD_LOG_LEVEL  >  WARNING

A log file is opt-in through FSD_LOG_FILE, with its own threshold in
FSD_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import sys
from typing import NamedTuple

LOG_LEVEL_ENV = "FSD_LOG_LEVEL"
LOG_FILE_ENV = "FSD_LOG_FILE"
LOG_FILE_LEVEL_ENV = "FSD_LOG_FILE_LEVEL"


class _Style(NamedTuple):
    fmt: str
    datefmt: str | None


# ── Console styles, most detailed first ─────────────────────────

_DETAILED = _Style("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S")

_CONSOLE_STYLES: tuple[tuple[int, _Style], ...] = (
    (logging.DEBUG, _DETAILED),
    (logging.INFO, _Style("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S")),
)
_PLAIN = _Style("%(message)s", None)

_FILE_STYLE = _Style(_DETAILED.fmt, "%Y-%m-%d %H:%M:%S")

# Kept at WARNING unless the console runs at DEBUG
_CHATTY_LIBRARIES = ("jinja2", "asyncio")


def level_from_flags(debug: bool, verbose: bool, quiet: bool, env_level: str | None) -> str:
    """Pick the console level from CLI flags, then the env var."""
    for flag, name in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if flag:
            return name
    return env_level or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler (and optional file handler) on the root logger.

    Replaces whatever handlers the root logger had, so repeated calls
    never duplicate output. The root level is the lower of the console
    and file thresholds.
    """
    console_level = _to_level(level)
    handlers = [_handler(logging.StreamHandler(sys.stderr), console_level, _console_style(console_level))]

    if log_file:
        file_level = _to_level(log_file_level) if log_file_level else console_level
        handlers.append(_handler(logging.FileHandler(log_file, encoding="utf-8"), file_level, _FILE_STYLE))

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_style(level: int) -> _Style:
    for ceiling, style in _CONSOLE_STYLES:
        if level <= ceiling:
            return style
    return _PLAIN


def _handler(handler: logging.Handler, level: int, style: _Style) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(style.fmt, datefmt=style.datefmt))
    return handler


def _to_level(name: str | None) -> int:
    """Level name to its number; anything unrecognised is WARNING."""
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING
