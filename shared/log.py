#!/usr/bin/env python3
"""
Line Chat Relay Logging Configuration

Centralized logging setup for consistent formatting across the project.
Supports both development (console + file) and production (console) modes.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Starting server...")
    logger.warning("Write failed", extra={"session_id": 7, "username": "Alatreon"})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional, Any
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            # other handlers share the same record
            record.levelname = levelname


class GenericFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        # Extract relay context fields from extra data
        context = []

        if getattr(record, 'session_id', None) is not None:
            context.append(f"session={record.session_id}")
        if getattr(record, 'username', None):
            context.append(f"user={record.username}")
        if getattr(record, 'msg_type', None):
            context.append(f"msg={record.msg_type}")
        if getattr(record, 'peer', None):
            context.append(f"peer={record.peer}")

        message = super().format(record)
        if context:
            return f"[{' '.join(context)}] {message}"
        return message


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_loggers_configured = set()

def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for the given module.

    Args:
        name: Usually __name__ from the calling module
        level: Override log level ("DEBUG", "INFO", "WARNING", "ERROR")

    Returns:
        Configured logger instance

    Examples:
        logger = get_logger(__name__)
        logger.info("Server starting")

        # With context
        logger.warning("Delivery failed", extra={
            "session_id": 3,
            "msg_type": "JOINED",
        })
    """
    logger = logging.getLogger(name)

    # Only configure each logger once
    if name not in _loggers_configured:
        _configure_logger(logger, level)
        _loggers_configured.add(name)

    return logger


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    """Configure a logger with appropriate handlers and formatters"""

    log_level = _get_log_level(level)
    logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    logger.handlers.clear()

    if _is_development():
        _add_console_handler(logger, colored=True)
    else:
        _add_console_handler(logger, colored=False)

    log_dir = _log_dir()
    if log_dir is not None:
        _add_file_handler(logger, log_dir)

    # Prevent duplicate messages from parent loggers
    logger.propagate = False


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""

    if level:
        return getattr(logging, level.upper(), logging.INFO)

    env_level = os.getenv('RELAY_LOG_LEVEL')
    if env_level:
        return getattr(logging, env_level.upper(), logging.INFO)

    # Default based on environment
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    """Detect if we're in development mode"""
    return (
        os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development'] or
        'pytest' in sys.modules
    )


def _log_dir() -> Optional[Path]:
    """Directory for the log file, or None when file logging is off"""
    configured = os.getenv('RELAY_LOG_DIR')
    if configured:
        return Path(configured)
    if os.getenv('PYTHON_ENV', '').lower() in ['dev', 'development']:
        return Path("logs")
    return None


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    fmt = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
    handler = logging.StreamHandler(sys.stdout)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(
            fmt=fmt,
            datefmt='%H:%M:%S'
        )
    else:
        formatter = GenericFormatter(
            fmt=fmt,
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_dir: Path) -> None:
    """Add file handler writing <log_dir>/relay.log"""

    log_dir.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_dir / "relay.log")

    formatter = GenericFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if terminal supports color output"""

    # stdout must be a terminal
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    # Windows-specific check
    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode" or "WindowsTerminal" in os.getenv("TERM", "")

    return True


# ========================================
#           CONVENIENCE FUNCTIONS
# ========================================

def configure_root_logging(level: str = "INFO") -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
    """
    root_logger = logging.getLogger()
    _configure_logger(root_logger, level)

    # Module loggers were configured at import time; align their level too
    for name in _loggers_configured:
        logging.getLogger(name).setLevel(_get_log_level(level))


def log_protocol_message(logger: logging.Logger, level: str, message: str,
                         **context: Any) -> None:
    """
    Log a relay protocol event with structured context.

    Args:
        logger: Logger instance
        level: Log level ("debug", "info", "warning", "error")
        message: Log message
        **context: Context fields (session_id, username, msg_type, peer)

    Example:
        log_protocol_message(logger, "debug", "<-- LOGIN",
                             session_id=link.session_id, msg_type="LOGIN")
    """
    log_func = getattr(logger, level.lower())
    log_func(message, extra=context)
