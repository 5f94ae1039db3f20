"""Logging setup for pcmon."""

import logging
import logging.handlers
from pathlib import Path

LOGGER_NAME = "pcmon"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s"


def configure_logging(level: str | int = logging.INFO, log_file: Path | None = None) -> logging.Logger:
    """
    Configure the pcmon logger.

    The terminal belongs to the UI, so records only go to a rotating file.
    Without a log file a NullHandler is installed. Calling this again returns
    the already configured logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    logger.propagate = False
    if log_file is None:
        logger.addHandler(logging.NullHandler())
        return logger

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=str(log_file),
        maxBytes=1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.info("Logging to %s", log_file)
    return logger


def reset_logging() -> None:
    """Remove pcmon handlers so configure_logging() can run again."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
