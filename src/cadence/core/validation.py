"""Constructor argument checks shared by the primitives.

Each helper returns the validated value or raises ``ConfigurationError``
naming the offending option, so constructors fail before any work starts.
"""

from __future__ import annotations

from typing import Any, Callable

from cadence.core.errors import ConfigurationError


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def require_positive_int(option: str, value: Any) -> int:
    if not _is_int(value) or value < 1:
        raise ConfigurationError(
            f"{option} must be a positive integer, got {value!r}",
            option=option,
            value=value,
        )
    return value


def require_positive_duration(option: str, value: Any) -> float:
    if not _is_number(value) or value <= 0:
        raise ConfigurationError(
            f"{option} must be a positive number of seconds, got {value!r}",
            option=option,
            value=value,
        )
    return float(value)


def require_non_negative_duration(option: str, value: Any) -> float:
    if not _is_number(value) or value < 0:
        raise ConfigurationError(
            f"{option} must be a non-negative number of seconds, got {value!r}",
            option=option,
            value=value,
        )
    return float(value)


def require_callable(option: str, value: Any) -> Callable[..., Any]:
    if not callable(value):
        raise ConfigurationError(
            f"{option} must be callable, got {type(value).__name__}",
            option=option,
            value=value,
        )
    return value
