"""Calling caller-supplied operations that may or may not be async."""

from __future__ import annotations

import inspect
from typing import Any, Callable


async def call_operation(operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``operation`` and await the result when it is awaitable.

    Plain return values are passed through, so a synchronous callable acts
    as an operation that completed immediately.
    """
    result = operation(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
