from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default

_LEVEL_PREFIXES = {
    logging.CRITICAL: ("Error:", "\033[31m"),
    logging.ERROR: ("Error:", "\033[31m"),
    logging.WARNING: ("Warning:", "\033[33m"),
    logging.INFO: ("Info:", "\033[36m"),
    logging.DEBUG: ("Debug:", "\033[37m"),
}


class ConsoleFormatter(logging.Formatter):
    """``Info: message`` lines, colored when writing to a terminal."""

    def __init__(self, color: bool) -> None:
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        prefix, ansi = _LEVEL_PREFIXES.get(record.levelno, (record.levelname + ":", ""))
        if self.color and ansi:
            prefix = f"{ansi}{prefix}\033[0m"
        return f"{prefix} {super().format(record)}"


def configure_logging(
    log_path: Optional[str] = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Configure logging.

    Console output carries user-facing messages at ``level``; the log file,
    when it can be opened, records everything including executed commands.

    Returns the file path being used, or None when only the console is active.
    """

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_chroot_helper_configured", False):
        return getattr(logger, "_chroot_helper_log_path", None)

    chosen_path: Optional[str] = None
    file_error: Optional[OSError] = None
    if log_path:
        try:
            Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
        except OSError as e:
            file_error = e
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S%z",
                )
            )
            logger.addHandler(file_handler)
            chosen_path = log_path

    if also_console:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level)
        console.setFormatter(ConsoleFormatter(color=sys.stdout.isatty()))
        logger.addHandler(console)

    setattr(logger, "_chroot_helper_configured", True)
    setattr(logger, "_chroot_helper_log_path", chosen_path)

    if file_error is not None:
        logging.getLogger(__name__).warning("Logging to %s disabled: %s", log_path, file_error)
    logging.getLogger(__name__).debug("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
