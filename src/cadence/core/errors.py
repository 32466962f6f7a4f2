"""
Structured error types for cadence.

Every failure the flow-control primitives raise on their own account is a
``CadenceError``. Errors raised *by caller operations* are never replaced:
they travel as ``cause`` inside an ``OperationError`` (executor) or are
re-raised untouched (retry, rate limiters).

Manifesto:
    - **Fail before work starts:** Bad limits, windows and attempt counts are
      rejected synchronously with ``ConfigurationError``
    - **Attributed failures:** ``OperationError`` names the input index and/or
      attempt that produced the underlying error
    - **Error chaining:** The original exception is kept as ``cause`` and
      ``__cause__`` so tracebacks stay intact

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                      CadenceError                         │
        │          (category, context, cause, to_dict)              │
        ├──────────────────────────────────────────────────────────┤
        │  ConfigurationError   OperationError   ExecutionCancelled │
        │  (CONFIG)             (OPERATION)      (CANCELLED)        │
        │  option, value        index, attempt   completed, total   │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = ConfigurationError("concurrency_limit must be positive",
    ...                          option="concurrency_limit", value=0)
    >>> err.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> err.to_dict()["context"]
    {'option': 'concurrency_limit', 'value': 0}

Tags:
    error-handling, exception-hierarchy, error-context, cadence

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories for classification and log routing.

    Attributes:
        CONFIG: Invalid limit, window, attempt count or callable
        OPERATION: A caller-supplied operation failed
        CANCELLED: Work was abandoned through an explicit cancel path
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors (plain exceptions)
    """

    CONFIG = "CONFIG"
    OPERATION = "OPERATION"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a ``CadenceError``.

    Only non-None fields end up in ``to_dict()``, so each error type sets
    what is relevant to it and nothing more.

    Attributes:
        component: Primitive that raised the error (``bounded``, ``retry``, ...)
        option: Configuration option name for configuration errors
        value: Offending configuration value
        index: Input index of the failing operation (executor)
        attempt: 1-based attempt number (retry)
        metadata: Additional key-value pairs
    """

    component: str | None = None
    option: str | None = None
    value: Any = None
    index: int | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["component", "option", "value", "index", "attempt"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CadenceError(Exception):
    """
    Base exception for all cadence errors.

    Subclasses set ``default_category``; instances may override it. The
    ``cause`` passed at construction is also installed as ``__cause__``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CadenceError:
        """
        Add context to this error (fluent API).

        Usage:
            raise OperationError("failed", cause=exc).with_context(batch="nightly")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "context": self.context.to_dict(),
        }
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ConfigurationError(CadenceError, ValueError):
    """Invalid configuration detected before any work was started."""

    default_category = ErrorCategory.CONFIG

    def __init__(
        self,
        message: str,
        *,
        option: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        if option is not None:
            self.context.option = option
            self.context.value = value

    @property
    def option(self) -> str | None:
        return self.context.option


class OperationError(CadenceError):
    """A caller-supplied operation failed.

    ``index`` is the operation's position in the executor's input.
    ``attempt`` is reserved for callers that wrap a retried failure;
    ``RetryExecutor`` re-raises the original error and never sets it.
    """

    default_category = ErrorCategory.OPERATION

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        attempt: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.context.index = index
        self.context.attempt = attempt

    @property
    def index(self) -> int | None:
        return self.context.index

    @property
    def attempt(self) -> int | None:
        return self.context.attempt


class ExecutionCancelled(CadenceError):
    """Queued work was abandoned because ``cancel()`` was requested."""

    default_category = ErrorCategory.CANCELLED

    def __init__(self, message: str, *, completed: int, total: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.completed = completed
        self.total = total
        self.context.metadata.update(completed=completed, total=total)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Best-effort category for any exception, cadence or not."""
    if isinstance(error, CadenceError):
        return error.category
    if isinstance(error, asyncio.CancelledError):
        return ErrorCategory.CANCELLED
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CadenceError",
    "ConfigurationError",
    "OperationError",
    "ExecutionCancelled",
    "categorize_error",
]
