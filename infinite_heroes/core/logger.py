"""
Infinite Heroes - Logging System
Provides structured logging with file rotation and multiple log levels.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from infinite_heroes.core.config import settings

# Create logs directory
LOGS_DIR = settings.LOGS_DIR
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Log format
DETAILED_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s'
SIMPLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# =========================
# MAIN APPLICATION LOGGER
# =========================

def setup_logger():
    """Setup the main application logger with console and file handlers."""

    logger = logging.getLogger("infinite_heroes")
    logger.setLevel(logging.DEBUG)  # Capture all levels

    # Prevent duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    # --- Console Handler (INFO and above) ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_formatter = logging.Formatter(SIMPLE_FORMAT, datefmt='%H:%M:%S')
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    # --- Main App Log File (rotating, max 5MB, keep 5 backups) ---
    app_log_file = LOGS_DIR / "app.log"
    app_handler = RotatingFileHandler(
        app_log_file,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=5,
        encoding='utf-8'
    )
    app_handler.setLevel(logging.DEBUG)
    app_formatter = logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT)
    app_handler.setFormatter(app_formatter)
    logger.addHandler(app_handler)

    # --- Error Log File (errors only) ---
    error_log_file = LOGS_DIR / "error.log"
    error_handler = RotatingFileHandler(
        error_log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(error_handler)

    return logger


# Initialize main logger
logger = setup_logger()


# =========================
# SPECIALIZED LOGGERS
# =========================

def get_logger(name: str) -> logging.Logger:
    """
    Returns a child logger (e.g. infinite_heroes.workflow).
    Inherits handlers from parent logger.
    """
    if name.startswith("infinite_heroes."):
        return logging.getLogger(name)
    return logging.getLogger(f"infinite_heroes.{name}")


# =========================
# CONVENIENCE FUNCTIONS
# =========================

def log_comic_event(epoch: int, page_index: int, event: str, details: str = ""):
    """Log page generation events for one session epoch."""
    comic_logger = get_logger("comic")
    page_info = f"Page:{page_index}" if page_index is not None else "Page:-"
    comic_logger.info(f"[Epoch:{epoch}] [{page_info}] {event} | {details}")


def log_agent_action(agent_name: str, action: str, details: str = "", success: bool = True):
    """Log agent actions (writer, painter, villain, etc.)."""
    agent_logger = get_logger(f"agent.{agent_name}")
    status = "✓" if success else "✗"
    agent_logger.info(f"[{status}] {action} | {details}")


def log_error(message: str, error: Exception = None, context: dict = None):
    """Log error with optional exception and context."""
    error_logger = get_logger("error")
    context_str = ""
    if context:
        context_str = " | " + " | ".join(f"{k}={v}" for k, v in context.items())
    if error:
        error_logger.error(f"{message}: {str(error)}{context_str}", exc_info=error)
    else:
        error_logger.error(f"{message}{context_str}")
