"""Cadence core: errors, result envelope, logging and settings."""

from cadence.core.errors import (
    CadenceError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ExecutionCancelled,
    OperationError,
    categorize_error,
)
from cadence.core.logging import LogContext, configure_logging, get_logger
from cadence.core.result import Err, Ok, Result, collect_results

__all__ = [
    "CadenceError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "ExecutionCancelled",
    "OperationError",
    "categorize_error",
    "LogContext",
    "configure_logging",
    "get_logger",
    "Err",
    "Ok",
    "Result",
    "collect_results",
]
