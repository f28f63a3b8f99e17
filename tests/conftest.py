# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import popguard  # noqa: F401
except ImportError:
    raise ImportError("popguard is not installed. Run: pip install -e '.[dev]'") from None

from unittest.mock import AsyncMock

import pytest

from popguard.engine import ClassificationEngine
from popguard.repository import InMemorySettingsRepository
from popguard.signals import SignalCollector


class FakeClock:
    """Manually advanced millisecond clock for the signal collector."""

    def __init__(self, start: float = 10_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller() -> AsyncMock:
    """TabController double; every effect is an awaitable mock."""
    ctl = AsyncMock()
    ctl.get_tab_url.return_value = ""
    return ctl


@pytest.fixture
def repository() -> InMemorySettingsRepository:
    return InMemorySettingsRepository()


@pytest.fixture
def engine(controller, clock, repository) -> ClassificationEngine:
    return ClassificationEngine(
        controller,
        collector=SignalCollector(clock=clock),
        repository=repository,
        wall_clock=lambda: 1_700_000_000.0,
    )
