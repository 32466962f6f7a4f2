"""
Result envelope for settled operations.

``Ok[T]`` and ``Err[T]`` record how an operation settled without raising.
The bounded executor stores one per slot so that every outcome is kept
against its input position; ``collect_results`` then turns the slots into a
single value list or the first error in input order.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────┐
        │                     Result[T]                            │
        ├──────────────────┬──────────────────┬───────────────────┤
        │     Ok[T]        │     Err[T]       │   Utilities       │
        │ • value: T       │ • error: Exc     │ • try_result()    │
        │ • map()          │ • map_err()      │ • collect_results │
        │ • unwrap()       │ • unwrap_or()    │                   │
        └──────────────────┴──────────────────┴───────────────────┘

Examples:
    >>> from cadence.core.result import Ok, Err, collect_results
    >>> collect_results([Ok(1), Ok(2)])
    Ok([1, 2])
    >>> collect_results([Ok(1), Err(ValueError("x")), Err(KeyError("y"))])
    Err(ValueError('x'))

Tags:
    result-pattern, error-handling, cadence

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[BaseException], BaseException]) -> Result[T]:
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result carrying the exception that was raised."""

    error: BaseException

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Re-raise the stored error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def map_err(self, f: Callable[[BaseException], BaseException]) -> Result[T]:
        """Transform the error if Err."""
        return Err(f(self.error))

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error": str(self.error),
            "error_type": type(self.error).__name__,
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Union[Ok[T], Err[T]]


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call ``f`` and capture its return value or exception."""
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


def collect_results(results: list[Result[T]]) -> Result[list[T]]:
    """
    Collapse a list of results into one.

    Returns ``Ok`` with every value in order when all succeeded, otherwise
    the first ``Err`` by list position (not by the time it was produced).
    """
    values: list[T] = []
    for result in results:
        if isinstance(result, Err):
            return Err(result.error)
        values.append(result.value)
    return Ok(values)


def first_error(results: list[Result[T]]) -> tuple[int, BaseException] | None:
    """Position and error of the first ``Err`` in ``results``, or None."""
    for position, result in enumerate(results):
        if isinstance(result, Err):
            return position, result.error
    return None


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result",
    "collect_results",
    "first_error",
]
