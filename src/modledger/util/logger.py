"""
Logging setup shared by every Modledger module.

Each module asks for ``get_logger("component")``. The first call configures
two handlers on that logger: a coloured console handler that prints through
prompt_toolkit, and a size-rotated file under ``logs/`` shared by the whole
session. Console verbosity follows ``MODLEDGER_LOG_LEVEL`` (default INFO);
the file always gets DEBUG.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOGS_DIR: Path = Path(os.getenv("MODLEDGER_LOG_DIR") or Path(__file__).parents[3] / "logs").resolve()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H-%M-%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET = "\033[0m"

# Third-party loggers that only get to say something when it's an error
NOISY_LOGGERS = (
    "discord",
    "discord.client",
    "discord.gateway",
    "discord.http",
    "aiohttp",
    "aiosqlite",
    "websockets",
)

_session_log_file: Path | None = None


class ColorFormatter(logging.Formatter):
    """Wraps the formatted record in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{text}{RESET}" if color else text


class PromptToolkitHandler(logging.Handler):
    """Console handler that writes with prompt_toolkit so an active prompt is redrawn, not torn."""

    def __init__(self, formatter: logging.Formatter | None = None) -> None:
        super().__init__()
        if formatter is not None:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


def console_level() -> int:
    """Console threshold from ``MODLEDGER_LOG_LEVEL``; unknown names fall back to INFO."""
    level = logging.getLevelName((os.getenv("MODLEDGER_LOG_LEVEL") or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_log_filepath() -> Path:
    """The log file of this process, named after the time of the first call."""
    global _session_log_file
    if _session_log_file is None:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        _session_log_file = LOGS_DIR / f"{datetime.now().strftime(DATE_FORMAT)}.log"
    return _session_log_file


def setup_logger(logger_name: str) -> logging.Logger:
    """
    Attach the console and file handlers to ``logger_name`` once.

    Loggers are not propagated to root, so repeated setup never duplicates
    lines.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_formatter = ColorFormatter(LOG_FORMAT, DATE_FORMAT) if should_use_color() else logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console = PromptToolkitHandler(console_formatter)
    console.setLevel(console_level())
    logger.addHandler(console)

    file_handler = RotatingFileHandler(get_log_filepath(), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)
    return logger


def get_logger(logger_name: str) -> logging.Logger:
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` replacement: uncaught errors go to the log, Ctrl+C exits quietly."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


def quiet_noisy_loggers() -> None:
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers.clear()


quiet_noisy_loggers()
sys.excepthook = handle_exception
