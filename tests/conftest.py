"""
Shared pytest fixtures and configuration for cadence tests.

This module provides:
- Settings cache isolation between tests
- Logging context cleanup
- Helpers for building operations with controlled completion order

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure cadence package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cadence.core.logging import clear_context
from cadence.core.settings import get_settings


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _isolate_settings():
    """Drop the cached CadenceSettings so env changes are picked up."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clean_log_context():
    clear_context()
    yield
    clear_context()


class InFlightTracker:
    """Records how many tracked operations overlap."""

    def __init__(self) -> None:
        self.active = 0
        self.max_active = 0
        self.started: list[int] = []
        self.finished: list[int] = []

    def op(self, index: int, value: Any = None, delay: float = 0.01) -> Callable[[], Any]:
        """Operation that sleeps ``delay`` seconds then returns ``value``."""

        async def _run():
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.started.append(index)
            try:
                await asyncio.sleep(delay)
                return index if value is None else value
            finally:
                self.active -= 1
                self.finished.append(index)

        return _run

    def failing(self, index: int, error: BaseException, delay: float = 0.01) -> Callable[[], Any]:
        async def _run():
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.started.append(index)
            try:
                await asyncio.sleep(delay)
                raise error
            finally:
                self.active -= 1
                self.finished.append(index)

        return _run


@pytest.fixture
def tracker() -> InFlightTracker:
    return InFlightTracker()
