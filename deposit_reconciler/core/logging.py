"""Centralized logging configuration for the application."""

import logging
import sys

LOGGER_NAMESPACE = "deposit_reconciler"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the application logger.

    Attaches a single stdout handler to the ``deposit_reconciler`` namespace
    so API requests, scheduled runs and CLI invocations share one format.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The configured root application logger.
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        logger.addHandler(handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the application namespace.

    Usage:
        from deposit_reconciler.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Processing settlement %s", external_id)

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    if name.startswith(f"{LOGGER_NAMESPACE}.") or name == LOGGER_NAMESPACE:
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
