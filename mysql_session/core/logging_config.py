"""
Centralized logging configuration.

The library itself only obtains loggers via get_logger(); it never installs
handlers on import. Applications and scripts call setup_logging() once to
get console (and optionally file) output in a consistent format.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


# Module-level flag to prevent duplicate handler registration
_logging_configured = False

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure application-wide logging.

    This function should be called once at application startup.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for dated log files. No file handler if omitted.

    Returns:
        Configured root logger instance

    Example:
        >>> from mysql_session.core.logging_config import setup_logging
        >>> logger = setup_logging("DEBUG")
        >>> logger.info("Script started")
    """
    global _logging_configured

    # Prevent duplicate handler registration on repeated calls
    if _logging_configured:
        return logging.getLogger()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, log_level.upper()))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers decide what gets through
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"mysql_session_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File captures everything
        root_logger.addHandler(file_handler)

    # PyMySQL logs protocol chatter at DEBUG
    logging.getLogger("pymysql").setLevel(logging.WARNING)

    _logging_configured = True

    root_logger.debug(f"Logging configured: level={log_level}, file={log_file}")

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Logger instance for the specified name
    """
    return logging.getLogger(name)


class LoggerMixin:
    """
    Mixin class to add logging capability to any class.

    Provides a self.logger attribute named after the class, unless the
    instance sets ``_logger`` to a logger of its own.
    """

    _logger: Optional[logging.Logger] = None

    @property
    def logger(self) -> logging.Logger:
        """Get the instance logger, or one named after this class."""
        if self._logger is not None:
            return self._logger
        return get_logger(f"mysql_session.{self.__class__.__name__}")
