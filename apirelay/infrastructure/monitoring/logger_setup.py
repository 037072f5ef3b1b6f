"""Centralized logging configuration for apirelay.

Sets up standard Python logging with a console handler (rendered by rich
when attached to a terminal) and an optional file handler.
"""

import logging
import sys
from typing import Optional, Union

from rich.logging import RichHandler

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
RICH_LOG_FORMAT = "%(name)s: %(message)s"

# Libraries that are chatty at DEBUG
NOISY_LOGGERS = ("httpx", "httpcore")


def resolve_level(level: Union[int, str, None]) -> int:
    """Accepts logging.INFO, 'info', 'DEBUG' or None."""
    if level is None:
        return DEFAULT_LOG_LEVEL
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), DEFAULT_LOG_LEVEL)


def setup_logging(
    log_level: Union[int, str, None] = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
    rich_console: Optional[bool] = None,
) -> None:
    """Configures the root logger for the application.

    Args:
        log_level: Minimum level, as a number or a level name.
        log_format: Format string for plain (non-rich) handlers.
        log_file: Optional path to a file for logging output.
        rich_console: Force rich console output on/off; defaults to
            whether stderr is a terminal.
    """
    level = resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers attached to the root logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    use_rich = sys.stderr.isatty() if rich_console is None else rich_console
    if use_rich:
        console_handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        console_handler.setFormatter(logging.Formatter(RICH_LOG_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(log_format))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger(__name__).debug(f"Logging configured. Level={logging.getLevelName(level)}")
