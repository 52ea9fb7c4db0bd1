"""
Logging configuration — one-time setup for the picolayer CLI.

``main.cli`` calls ``setup_logging`` before any backend runs; modules
only ever do ``logger = logging.getLogger(__name__)``.

Console level comes from the CLI flags (``--debug``, ``-v``, ``-q``),
then ``PICOLAYER_LOG_LEVEL``, then WARNING.  A log file is written only
when ``PICOLAYER_LOG_FILE`` names one, so nothing lands in the image
layer unless asked for.
"""

from __future__ import annotations

import logging
import re
import sys
from pathlib import Path

# level threshold → (format, datefmt); first threshold >= level wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = "%(message)s"

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Library loggers that are noisy at INFO/DEBUG
_NOISY_LOGGERS = ("asyncio", "concurrent.futures")

# Bearer/Basic credentials and GitHub tokens must never reach a log
_SECRET_RE = re.compile(r"((?:Bearer|Basic)\s+)\S+|\bgh[pousr]_[A-Za-z0-9]{20,}\b")


class RedactSecrets(logging.Filter):
    """Mask credentials in formatted messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _SECRET_RE.sub(lambda m: (m.group(1) or "") + "***", message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def _level(name: str | None) -> int:
    if not name:
        return logging.WARNING
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _CONSOLE_DEFAULT, None
    for threshold, candidate, candidate_datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            fmt, datefmt = candidate, candidate_datefmt
            break
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handler.addFilter(RedactSecrets())
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    handler.addFilter(RedactSecrets())
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for this process.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Also log to this file (parents created).
        log_file_level: File level; defaults to ``level``.
        quiet_third_party: Hold library loggers at WARNING below DEBUG.
    """
    console_level = _level(level)
    handlers = [_console_handler(console_level)]
    root_level = console_level

    if log_file:
        file_level = _level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))
        root_level = min(root_level, file_level)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A broken stderr must not fail an install
    logging.raiseExceptions = False
