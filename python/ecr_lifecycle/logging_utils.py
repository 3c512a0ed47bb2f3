"""
Logging setup shared by the cleanup entry point and library modules.

Logging is configured once on the root logger. The level comes from the
LOG_LEVEL environment variable so the job can be made more verbose in a
CronJob without changing its arguments.
"""

import logging
import os
import traceback
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# SDK loggers that flood DEBUG output with request dumps
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "kubernetes")


def level_from_env(default: int = logging.INFO) -> int:
    """Resolve LOG_LEVEL (a level name such as DEBUG, or a number) to a logging level"""
    value = os.environ.get("LOG_LEVEL", "").strip()
    if not value:
        return default
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logging(level: Optional[int] = None, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls are no-ops."""
    if logging.getLogger().handlers:
        return
    if level is None:
        level = level_from_env()
    logging.basicConfig(level=level, format=fmt or DEFAULT_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name or "ecr_lifecycle")


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Log an error message followed by the exception and its traceback.

    Args:
        logger: Logger instance to use
        message: Error message logged first
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"Exception type: {type(exc_info).__name__}")
    logger.error("Full traceback:")
    logger.error(traceback.format_exc())
