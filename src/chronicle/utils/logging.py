"""Logging setup for the Chronicle core."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


class ColorFormatter(logging.Formatter):
    """Formatter that tints the level name with ANSI colours."""

    COLORS = {
        logging.DEBUG: "\033[36m",      # cyan
        logging.INFO: "\033[32m",       # green
        logging.WARNING: "\033[33m",    # yellow
        logging.ERROR: "\033[31m",      # red
        logging.CRITICAL: "\033[1;31m", # bold red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if not color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(
    level: str | int = "INFO",
    log_file: Path | str | None = None,
    enable_color: bool = True,
) -> logging.Logger:
    """Configure the root logger and return the package logger.

    Args:
        level: Log level name or number.
        log_file: Optional file that receives an uncoloured copy of every record.
        enable_color: Tint level names when writing to a terminal.

    Returns:
        The ``src.chronicle`` logger.
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Drop handlers from a previous call so repeated setup does not duplicate output
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    if enable_color and sys.stderr.isatty():
        console.setFormatter(ColorFormatter(LOG_FORMAT, DATE_FORMAT))
    else:
        console.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root.addHandler(file_handler)

    return logging.getLogger("src.chronicle")
