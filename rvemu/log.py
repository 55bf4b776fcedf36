"""Minimal coloured logger with a process-wide threshold set once."""

from __future__ import annotations

import os
import sys
from enum import IntEnum

RED = "\x1b[31m"
YELLOW = "\x1b[33m"
CYAN = "\x1b[36m"
BLACK = "\x1b[30m"
RESET = "\x1b[0m"


class Level(IntEnum):
    OFF = 0
    TRACE = 1
    DEBUG = 2
    WARN = 3
    ERROR = 4

    def as_str(self) -> str:
        """Upper-case name of the level."""
        return self.name

    @property
    def color_code(self) -> str:
        return _COLORS[self]


_COLORS = {
    Level.OFF: "",
    Level.TRACE: BLACK,
    Level.DEBUG: CYAN,
    Level.WARN: YELLOW,
    Level.ERROR: RED,
}

_threshold: Level | None = None


def get_threshold() -> Level:
    """Return the configured threshold; raises if logging was never initialised."""
    if _threshold is None:
        raise RuntimeError("Log level not initialized")
    return _threshold


def log_init(level: Level) -> None:
    """Set the threshold. May be called only once per process."""
    global _threshold
    if _threshold is not None:
        raise RuntimeError("Log level already set")
    _threshold = Level(level)


def _emit(level: Level, message: str, args: tuple, depth: int) -> None:
    # Only levels strictly above the threshold are printed; before
    # initialisation nothing is printed.
    if _threshold is None or level <= _threshold:
        return
    frame = sys._getframe(depth)
    text = message.format(*args) if args else message
    location = f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"
    print(f"{level.color_code}{level.as_str()}\t[{location}]\t{text}{RESET}")


def log(level: Level, message: str, *args) -> None:
    """Log ``message`` (formatted with ``str.format`` and ``args``) at ``level``."""
    _emit(Level(level), message, args, 2)


def trace(message: str, *args) -> None:
    _emit(Level.TRACE, message, args, 2)


def debug(message: str, *args) -> None:
    _emit(Level.DEBUG, message, args, 2)


def warn(message: str, *args) -> None:
    _emit(Level.WARN, message, args, 2)


def error(message: str, *args) -> None:
    _emit(Level.ERROR, message, args, 2)