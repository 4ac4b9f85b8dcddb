"""Logger hierarchy for ezburn.

Console output goes to stderr because ``ezburn build`` and ``ezburn
transform`` write their results to stdout. In verbose mode the console
format includes the thread name so calls handled by the worker backend can
be told apart from the caller's.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, Optional

ROOT_LOGGER = "ezburn"

_CONSOLE_FORMAT = "[ezburn] %(levelname)s %(message)s"
_VERBOSE_CONSOLE_FORMAT = "[ezburn] %(levelname)s (%(threadName)s) %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``ezburn.<name>``, or the package logger itself."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Install console and optional file handlers on the package logger.

    Calling this again replaces the handlers from the previous call.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_VERBOSE_CONSOLE_FORMAT if verbose else _CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)
        # The file sink always records debug output.
        logger.setLevel(logging.DEBUG)

    return logger


__all__ = ["ROOT_LOGGER", "configure_logging", "get_logger"]
