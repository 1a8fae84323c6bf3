"""JSON logging configuration for devcert."""

import logging
import os

from pythonjsonlogger.json import JsonFormatter

LOG_LEVEL_ENV = "DEVCERT_LOG_LEVEL"

ALLOWED_FIELDS = frozenset({"timestamp", "level", "name", "message", "exc_info", "funcName", "lineno"})


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter emitting only ALLOWED_FIELDS.

    levelname is renamed to level; process and thread bookkeeping is dropped.
    """

    def add_fields(self, log_record, record, message_dict):
        """Override to include only ALLOWED_FIELDS.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in ALLOWED_FIELDS]:
            del log_record[key]


def _level_from_environment() -> int:
    name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _setup_logger() -> logging.Logger:
    """Attach the JSON handler to the "devcert" package logger.

    Library modules log to children of this logger (devcert.lib.*). The
    level comes from DEVCERT_LOG_LEVEL, INFO when unset or unknown.

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger("devcert")

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        CustomJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(name)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(_level_from_environment())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_verbose(verbose: bool) -> None:
    """Force DEBUG, or fall back to the environment-derived level."""
    LOGGER.setLevel(logging.DEBUG if verbose else _level_from_environment())


# Singleton logger instance - import this in scripts
LOGGER = _setup_logger()
