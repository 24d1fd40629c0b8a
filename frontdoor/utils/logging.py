"""
Logging utilities for sf-frontdoor.

Structured logging via structlog on top of the standard library, with a
Rich console handler for interactive use and JSON output for automation.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from frontdoor import __version__
from frontdoor.config.settings import get_settings


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    - JSON rendering when ``LOG_STRUCTURED`` is set
    - Rich console logging otherwise
    - Optional file handler from ``LOG_FILE``
    """
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_info,
            structlog.processors.JSONRenderer() if settings.logging.structured else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=getattr(logging, settings.logging.level),
        format="%(message)s",
        handlers=_get_handlers(settings),
    )

    _configure_module_loggers(settings)


def _get_handlers(settings) -> list:
    """Get logging handlers based on configuration."""
    handlers = []

    if not settings.logging.structured:
        handlers.append(
            RichHandler(
                console=Console(stderr=True),
                rich_tracebacks=True,
                show_time=True,
                show_path=settings.is_development(),
                markup=False,
            )
        )
    else:
        handlers.append(logging.StreamHandler(sys.stderr))

    if settings.logging.file:
        log_file = Path(settings.logging.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        handlers.append(file_handler)

    return handlers


def _configure_module_loggers(settings) -> None:
    """Configure loggers for specific modules."""
    # Reduce noise from external libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if settings.debug:
        logging.getLogger("frontdoor").setLevel(logging.DEBUG)


def _add_service_info(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service information to log entries."""
    event_dict.setdefault("service", "sf-frontdoor")
    event_dict.setdefault("version", __version__)
    return event_dict


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a configured logger for a specific module.

    Args:
        name: Logger name (usually __name__)
        component: Component name for categorization

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger(name)
    if component:
        logger = logger.bind(component=component)
    return logger


class LoggingMixin:
    """
    Mixin class to add logging capabilities to any class.

    Usage:
        class TokenResolver(LoggingMixin):
            def __init__(self):
                super().__init__()
                self.setup_logging("token_resolver")
    """

    def setup_logging(self, component: str) -> None:
        """
        Set up logging for the class instance.

        Args:
            component: Component name for log categorization
        """
        self.logger = get_logger(self.__class__.__module__, component)

    def log_method_call(self, method_name: str, **kwargs) -> None:
        """Log a method call with its parameters, masking credentials."""
        if hasattr(self, "logger"):
            safe_kwargs = {
                k: v if not _is_sensitive_key(k) else "[REDACTED]"
                for k, v in kwargs.items()
            }
            self.logger.debug(
                f"Calling {method_name}",
                method=method_name,
                parameters=safe_kwargs,
            )

    def log_method_result(self, method_name: str, result: Any = None, duration_ms: Optional[float] = None) -> None:
        """Log a method result."""
        if hasattr(self, "logger"):
            log_data = {"method": method_name}

            if duration_ms is not None:
                log_data["duration_ms"] = round(duration_ms, 2)

            if result is not None:
                if isinstance(result, (str, int, float, bool, list, dict)):
                    log_data["result"] = result
                else:
                    log_data["result_type"] = type(result).__name__

            self.logger.debug(f"Completed {method_name}", **log_data)

    def log_error(self, method_name: str, error: Exception, **context) -> None:
        """
        Log an error with context.

        Args:
            method_name: Name of the method where error occurred
            error: The exception that occurred
            **context: Additional context information
        """
        if hasattr(self, "logger"):
            self.logger.error(
                f"Error in {method_name}: {error}",
                method=method_name,
                error_type=type(error).__name__,
                error_message=str(error),
                **context,
            )


def _is_sensitive_key(key: str) -> bool:
    """Check if a key contains potentially sensitive information."""
    sensitive_keywords = {
        "password", "token", "secret", "credential", "sid",
        "access_token", "refresh_token", "session_id", "bearer",
    }
    key_lower = key.lower()
    return any(keyword in key_lower for keyword in sensitive_keywords)


class LogTimer:
    """Context manager for timing and logging operations."""

    def __init__(self, logger: structlog.BoundLogger, operation: str, **context):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.debug(f"Starting {self.operation}", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.monotonic() - self.start_time) * 1000

        if exc_type is None:
            self.logger.info(
                f"Completed {self.operation}",
                duration_ms=round(duration_ms, 2),
                **self.context,
            )
        else:
            self.logger.error(
                f"Failed {self.operation}",
                duration_ms=round(duration_ms, 2),
                error_type=exc_type.__name__,
                error_message=str(exc_val) if exc_val else None,
                **self.context,
            )


# Initialize logging when module is imported
try:
    setup_logging()
except Exception as e:
    # Fallback to basic logging if setup fails
    logging.basicConfig(level=logging.INFO)
    logging.getLogger(__name__).warning(f"Failed to setup structured logging: {e}")
