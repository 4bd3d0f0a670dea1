"""
Centralized logging configuration for the build resurrection toolkit.

All components log through loguru with a bound ``component`` field so that
compile runs, fix attempts and rollbacks can be correlated in one stream.
"""

import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from .telemetry import get_telemetry_manager

SERVICE_NAME = "build-resurrection"


class LoggingManager:
    """Owns the loguru sinks used by every resurrection component."""

    def __init__(self, service_name: str = SERVICE_NAME):
        """
        Initialize logging manager.

        Args:
            service_name: Name used for the log file and the ``service_name`` extra
        """
        self.service_name = service_name
        self.telemetry_manager = get_telemetry_manager()
        self._configured = False

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure_logging(
        self,
        level: str = "INFO",
        enable_file_logging: bool = True,
        log_file_path: Path | None = None,
        structured_format: bool = True,
    ) -> None:
        """
        Install the console sink and, optionally, a rotating file sink.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            enable_file_logging: Whether to also write ``logs/<service>.log``
            log_file_path: Explicit log file location
            structured_format: Serialize file records as JSON
        """
        if self._configured:
            return

        logger.remove()

        logger.add(
            sys.stderr,
            format=self._get_console_format(structured_format),
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

        if enable_file_logging:
            if log_file_path is None:
                log_file_path = Path.cwd() / "logs" / f"{self.service_name}.log"

            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            logger.add(
                str(log_file_path),
                format=self._get_file_format(structured_format),
                level=level,
                rotation="10 MB",
                retention="30 days",
                compression="gz",
                backtrace=True,
                diagnose=False,
                enqueue=True,
                serialize=structured_format,
            )

        logger.configure(
            extra={"service_name": self.service_name, "component": self.service_name}
        )

        self._configured = True
        logger.info(
            "Logging configured",
            service=self.service_name,
            level=level,
            file_logging=enable_file_logging,
            structured=structured_format,
        )

    def _get_console_format(self, structured: bool) -> str:
        if structured:
            return (
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[component]}</cyan> | "
                "<level>{message}</level> | "
                "{extra}"
            )
        return (
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>"
        )

    def _get_file_format(self, structured: bool) -> str:
        if structured:
            # serialize=True takes care of the JSON layout
            return "{time} | {level} | {name}:{function}:{line} | {message} | {extra}"
        return (
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
            "{name}:{function}:{line} | {message}"
        )

    def get_logger(self, name: str) -> Any:
        """
        Get a logger bound to a component name.

        Args:
            name: Component name (usually ``__name__``)

        Returns:
            Bound loguru logger
        """
        return logger.bind(component=name)

    def log_operation_start(self, operation: str, **kwargs) -> None:
        """Log the start of an operation with context."""
        logger.bind(component=operation).info(
            "Operation started", operation=operation, **kwargs
        )

    def log_operation_complete(self, operation: str, duration: float, **kwargs) -> None:
        """Log the completion of an operation with its duration."""
        logger.bind(component=operation).info(
            "Operation completed",
            operation=operation,
            duration_seconds=round(duration, 3),
            **kwargs,
        )

    def log_operation_error(self, operation: str, error: Exception, **kwargs) -> None:
        """Log an operation error with context."""
        logger.bind(component=operation).error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_message=str(error),
            **kwargs,
        )

    def log_compilation_result(
        self, label: str, success: bool, error_count: int, duration_ms: int
    ) -> None:
        """Log the outcome of a compile or proof run."""
        level = "INFO" if success else "WARNING"
        logger.bind(component="compilation").log(
            level,
            "Compilation finished",
            label=label,
            success=success,
            error_count=error_count,
            duration_ms=duration_ms,
        )


_logging_manager: LoggingManager | None = None


def get_logging_manager() -> LoggingManager:
    """Get or create the global logging manager instance."""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def configure_logging(
    level: str | None = None,
    structured: bool = True,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure application logging from the environment.

    Args:
        level: Logging level, defaults to ``LOG_LEVEL`` or INFO
        structured: Enable structured logging
        enable_file_logging: Defaults to ``ENABLE_FILE_LOGGING`` (false)
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    if enable_file_logging is None:
        enable_file_logging = (
            os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true"
        )

    get_logging_manager().configure_logging(
        level=level,
        structured_format=structured,
        enable_file_logging=enable_file_logging,
    )


def get_logger(name: str) -> Any:
    """
    Get a logger instance for the given component.

    Args:
        name: Component name (usually ``__name__``)

    Returns:
        Bound loguru logger
    """
    return get_logging_manager().get_logger(name)
