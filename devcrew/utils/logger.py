"""
devcrew Logging Framework

Centralized logging configuration for the agent runtime.
Provides consistent formatting, optional file rotation, and structured context.

Usage:
    from devcrew.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Session created", session_id="User_20250101_120000_ab12")
    logger.error("Tool failed", exc_info=True, tool_name="read_file")
"""

import logging
import logging.handlers
import os
import sys
from typing import Optional, Any, Dict


# =============================================================================
# Log Level Constants
# =============================================================================

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

ROOT_LOGGER_NAME = "devcrew"


# =============================================================================
# Custom Formatter with Context Support
# =============================================================================

class DevCrewFormatter(logging.Formatter):
    """
    Formatter that supports:
    - Automatic file location detection
    - Structured context fields
    - Color output for console (optional)
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = False):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not getattr(record, "location", None):
            filename = os.path.basename(record.pathname) if record.pathname else "unknown"
            record.location = f"{filename}:{record.funcName}:{record.lineno}"

        context_parts = []
        context = getattr(record, "context", None)
        if context:
            for key, value in context.items():
                context_parts.append(f"{key}={value}")
        record.context_str = " | " + " ".join(context_parts) if context_parts else ""

        if self.use_colors and record.levelname in self.COLORS:
            record.levelname_colored = (
                f"{self.COLORS[record.levelname]}{record.levelname:8}{self.COLORS['RESET']}"
            )
        else:
            record.levelname_colored = f"{record.levelname:8}"

        return super().format(record)


# =============================================================================
# Context-Aware Logger
# =============================================================================

class DevCrewLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into structured context.

    Example:
        logger.info("Message routed", agent="Analyst", next_agent="Designer")
        # 2025-01-04 12:00:00 | INFO | response_router.py:route:88 | Message routed | agent=Analyst next_agent=Designer
    """

    _STANDARD_KEYS = {"exc_info", "stack_info", "stacklevel", "extra"}

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        context = {}
        extra = kwargs.get("extra", {})

        for key in list(kwargs.keys()):
            if key not in self._STANDARD_KEYS:
                context[key] = kwargs.pop(key)

        context.update(self.extra)

        extra["context"] = context
        kwargs["extra"] = extra

        return msg, kwargs

    def bind(self, **context: Any) -> "DevCrewLogger":
        """Return a logger that always attaches the given context."""
        merged = dict(self.extra)
        merged.update(context)
        return DevCrewLogger(self.logger, merged)

    def exception(self, msg: str, *args, **kwargs) -> None:
        """Log exception with traceback."""
        kwargs["exc_info"] = True
        self.log(logging.ERROR, msg, *args, **kwargs)


# =============================================================================
# Logger Factory
# =============================================================================

_initialized = False


def configure_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    log_to_console: bool = True,
    use_colors: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 7,
    force: bool = False,
) -> None:
    """
    Configure the logging system. Called once at application startup.

    Args:
        log_level: Minimum console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log file. No file is written when None.
        log_to_console: Whether to output logs to stderr
        use_colors: Whether to use colors in console output
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of backup files to keep
        force: Reconfigure even if logging was already configured
    """
    global _initialized

    if _initialized and not force:
        return

    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)  # Filter at handler level
    root_logger.handlers.clear()

    console_format = "%(asctime)s | %(levelname_colored)s | %(location)s | %(message)s%(context_str)s"
    file_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(location)s | %(message)s%(context_str)s"

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(DevCrewFormatter(
            console_format,
            datefmt="%Y-%m-%d %H:%M:%S",
            use_colors=use_colors and sys.stderr.isatty(),
        ))
        root_logger.addHandler(console_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, "devcrew.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File captures everything
        file_handler.setFormatter(DevCrewFormatter(
            file_format,
            datefmt="%Y-%m-%d %H:%M:%S",
            use_colors=False,
        ))
        root_logger.addHandler(file_handler)

    # Third-party libraries we drive only report warnings and above
    for module_name in ["aiohttp", "anthropic", "sqlalchemy", "httpx"]:
        logging.getLogger(module_name).setLevel(logging.WARNING)

    _initialized = True


def get_logger(name: Optional[str] = None) -> DevCrewLogger:
    """
    Get a logger instance for the given module.

    Args:
        name: Module name (usually __name__). If None, returns the root logger.

    Returns:
        DevCrewLogger instance with context support
    """
    if not _initialized:
        configure_logging(
            log_level=os.getenv("DEVCREW_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("DEVCREW_LOG_DIR") or None,
        )

    if name:
        logger_name = name if name.startswith(ROOT_LOGGER_NAME) else f"{ROOT_LOGGER_NAME}.{name}"
    else:
        logger_name = ROOT_LOGGER_NAME

    return DevCrewLogger(logging.getLogger(logger_name))


__all__ = [
    "configure_logging",
    "get_logger",
    "DevCrewLogger",
    "DevCrewFormatter",
    "LOG_LEVELS",
]
