"""
Logging configuration for procpool.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any

LOGGER_NAME = "procpool"

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",  # Reset
}


class ColoredFormatter(logging.Formatter):
    """Formatter adding colors to console output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with color."""
        record.__dict__.setdefault("context", "")
        orig_levelname = record.levelname
        if record.levelname in COLORS:
            record.levelname = (
                f"{COLORS[record.levelname]}{record.levelname}{COLORS['RESET']}"
            )

        result = super().format(record)

        record.levelname = orig_levelname
        return result


class ContextFormatter(logging.Formatter):
    """Plain formatter that tolerates records without a context block."""

    def format(self, record: logging.LogRecord) -> str:
        record.__dict__.setdefault("context", "")
        return super().format(record)


class PoolLogger:
    """Logger for procpool."""

    def __init__(self):
        """Initialize the logger."""
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(logging.DEBUG)

    @property
    def is_setup(self) -> bool:
        return any(
            getattr(handler, "_procpool_handler", False)
            for handler in self.logger.handlers
        )

    def setup(self, debug: bool = False, log_dir: Optional[str] = None) -> None:
        """Set up logging handlers.

        Handlers are installed once per process; later calls are no-ops.

        Args:
            debug: Enable debug logging on the console
            log_dir: Directory for log files
        """
        if self.is_setup:
            return

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        console_handler.setFormatter(
            ColoredFormatter(
                "%(asctime)s %(levelname)-8s %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        console_handler._procpool_handler = True
        self.logger.addHandler(console_handler)

        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            log_file = os.path.join(log_dir, f"procpool-{timestamp}.log")

            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                ContextFormatter(
                    "%(asctime)s [%(levelname)s] %(message)s\n%(context)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            file_handler._procpool_handler = True
            self.logger.addHandler(file_handler)
            self.logger.debug("Log file created at: %s", log_file)

    def get_context_logger(self, **context) -> "ContextLogger":
        """Get a logger with context.

        Args:
            **context: Context key-value pairs

        Returns:
            ContextLogger instance
        """
        return ContextLogger(self.logger, context)


class ContextLogger:
    """Logger that includes context with each log message."""

    def __init__(self, logger: logging.Logger, context: Dict[str, Any]):
        self.logger = logger
        self.context = context

    def _format_context(self, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Format context dictionary for logging.

        Args:
            extra: Additional context to include

        Returns:
            Combined context dictionary
        """
        context = self.context.copy()
        if extra:
            context.update(extra)
        context_str = "\n".join(f"{k}: {v}" for k, v in context.items())
        return {"context": f"Context:\n{context_str}\n" if context_str else ""}

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def debug(self, msg: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs):
        """Log a debug message with context."""
        self.logger.debug(msg, *args, extra=self._format_context(extra), **kwargs)

    def info(self, msg: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs):
        """Log an info message with context."""
        self.logger.info(msg, *args, extra=self._format_context(extra), **kwargs)

    def warning(
        self, msg: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs
    ):
        """Log a warning message with context."""
        self.logger.warning(msg, *args, extra=self._format_context(extra), **kwargs)

    def error(self, msg: str, *args, extra: Optional[Dict[str, Any]] = None, **kwargs):
        """Log an error message with context."""
        self.logger.error(msg, *args, extra=self._format_context(extra), **kwargs)
