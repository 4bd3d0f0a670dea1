"""
Common utilities shared across the resurrection tools
"""

from .base_output_formatter import BaseOutputFormatter, OutputFormat, TableFormatter
from .errors import ProcessExecutionError, ResurrectionError
from .logging_config import configure_logging, get_logger, get_logging_manager
from .observer import (
    LoggingObserver,
    NullObserver,
    ObserverDispatcher,
    ResurrectionObserver,
    as_dispatcher,
)
from .process_runner import DEFAULT_MAX_OUTPUT_BYTES, ProcessOutcome, run_process
from .telemetry import get_telemetry_manager, trace_function, trace_operation

__all__ = [
    "configure_logging",
    "get_logger",
    "get_logging_manager",
    "get_telemetry_manager",
    "trace_function",
    "trace_operation",
    "BaseOutputFormatter",
    "OutputFormat",
    "TableFormatter",
    "ResurrectionError",
    "ProcessExecutionError",
    "ResurrectionObserver",
    "NullObserver",
    "LoggingObserver",
    "ObserverDispatcher",
    "as_dispatcher",
    "ProcessOutcome",
    "run_process",
    "DEFAULT_MAX_OUTPUT_BYTES",
]
