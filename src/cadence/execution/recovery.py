"""Failure handler chains with tagged outcomes.

A chain is an ordered list of handlers. Each handler looks at the error and
answers ``Handled(value)`` (stop here, use ``value``) or ``NotHandled()``
(ask the next handler). When every handler declines, the original error is
re-raised. No handler needs to raise or re-raise to pass control along.

Example::

    def cached(error):
        if isinstance(error, TimeoutError) and key in cache:
            return Handled(cache[key])
        return NotHandled()

    value = await run_with_handlers(fetch, [cached, default_on_404])
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from cadence.core.awaitables import call_operation
from cadence.core.logging import get_logger
from cadence.core.validation import require_callable

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Handled(Generic[T]):
    """The handler recovered; ``value`` replaces the failed result."""

    value: T

    @property
    def handled(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class NotHandled:
    """The handler declined; the chain moves on."""

    @property
    def handled(self) -> bool:
        return False


HandlerOutcome = Union[Handled[Any], NotHandled]
FailureHandler = Callable[[BaseException], Any]


class FailureHandlerChain:
    """Ordered failure handlers, first ``Handled`` wins."""

    def __init__(self, handlers: Iterable[FailureHandler]) -> None:
        self._handlers = [require_callable("handler", h) for h in handlers]

    def __len__(self) -> int:
        return len(self._handlers)

    async def handle(self, error: BaseException) -> HandlerOutcome:
        """Offer ``error`` to each handler in order.

        Handlers may be sync or async. Returning anything other than
        ``Handled``/``NotHandled`` is a programming error and raises
        ``TypeError``.
        """
        for position, handler in enumerate(self._handlers):
            outcome = await call_operation(handler, error)
            if isinstance(outcome, Handled):
                logger.debug("recovery.handled", handler=position, error=repr(error))
                return outcome
            if not isinstance(outcome, NotHandled):
                raise TypeError(
                    f"failure handler {position} returned {type(outcome).__name__}; "
                    "expected Handled or NotHandled"
                )
        return NotHandled()

    async def run(self, operation: Callable[[], Any]) -> Any:
        """Run ``operation``; on failure recover through the chain or re-raise."""
        try:
            return await call_operation(operation)
        except Exception as e:
            outcome = await self.handle(e)
            if isinstance(outcome, Handled):
                return outcome.value
            logger.debug("recovery.unhandled", handlers=len(self), error=repr(e))
            raise


async def run_with_handlers(
    operation: Callable[[], Any],
    handlers: Iterable[FailureHandler],
) -> Any:
    """Shortcut for ``FailureHandlerChain(handlers).run(operation)``."""
    return await FailureHandlerChain(handlers).run(operation)


__all__ = [
    "Handled",
    "NotHandled",
    "HandlerOutcome",
    "FailureHandlerChain",
    "run_with_handlers",
]
