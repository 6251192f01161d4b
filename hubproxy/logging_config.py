"""Centralized logging configuration for hubproxy.

All modules log under the "hubproxy" namespace so a single call to
configure_hubproxy_logging() wires file and console output for the
whole process.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

# Environment variables
DEBUG_MODE = os.getenv("HUBPROXY_DEBUG", "0") == "1"
LOG_LEVEL = os.getenv("HUBPROXY_LOG_LEVEL", "DEBUG" if DEBUG_MODE else "INFO")

# Log directory configuration
HUBPROXY_LOG_DIR = Path(os.getenv("HUBPROXY_LOG_DIR", "logs/hubproxy"))

DETAILED_FORMAT = (
    "[%(asctime)s] [%(levelname)-8s] [%(name)s] [%(filename)s:%(lineno)d] %(message)s"
)
SIMPLE_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)s] %(message)s"

# Use detailed format in debug mode
LOG_FORMAT = DETAILED_FORMAT if DEBUG_MODE else SIMPLE_FORMAT


def _get_file_handler(log_file: Path, level: int) -> logging.FileHandler:
    """Create a rotating file handler for the given log file."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _get_console_handler(level: int) -> logging.StreamHandler:
    """Create a console handler.

    Writes to stderr: stdout carries the MCP stdio protocol.
    """
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_hubproxy_logging(
    log_level: Optional[str] = None,
    include_console: bool = True,
    include_file: bool = True,
) -> logging.Logger:
    """
    Configure logging for hubproxy.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_console: Whether to also log to stderr
        include_file: Whether to write logs/hubproxy/hubproxy.log

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = LOG_LEVEL

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger("hubproxy")
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    if include_file:
        logger.addHandler(_get_file_handler(HUBPROXY_LOG_DIR / "hubproxy.log", level))

    if include_console:
        logger.addHandler(_get_console_handler(level))

    return logger


def configure_module_logging(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    This creates a child logger under the "hubproxy" namespace that inherits
    its handlers and configuration.

    Args:
        module_name: Module name (e.g., "cache", "auth")

    Returns:
        Logger instance
    """
    return logging.getLogger(f"hubproxy.{module_name}")


def setup_all_logging(include_console: bool = True) -> logging.Logger:
    """Initialize logging (call once at application startup)."""
    logger = configure_hubproxy_logging(include_console=include_console)

    logger.info("=" * 70)
    logger.info("hubproxy logging initialized")
    logger.info("=" * 70)
    logger.info(f"Debug mode: {DEBUG_MODE}")
    logger.info(f"Log level: {LOG_LEVEL}")
    logger.info(f"Log file: {HUBPROXY_LOG_DIR / 'hubproxy.log'}")
    return logger
