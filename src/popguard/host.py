# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Host capability interfaces and the events they deliver.

The engine depends only on these types.  ``playwright_host.PlaywrightHost``
implements them for a real Chromium; tests implement them with mocks and
synthetic events.

Leaf module: imports only the package's plain data types.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from . import PageScan, TabInfo

if TYPE_CHECKING:
    from .overlay_detector import ElementSnapshot

# ---------------------------------------------------------------------------
# Host lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TabCreated:
    tab: TabInfo


@dataclass(frozen=True, slots=True)
class TabUpdated:
    tab_id: int
    url: str | None = None  # set only when the URL changed
    status: str | None = None  # "loading" | "complete"


@dataclass(frozen=True, slots=True)
class TabRemoved:
    tab_id: int


@dataclass(frozen=True, slots=True)
class TabActivated:
    tab_id: int


@dataclass(frozen=True, slots=True)
class WindowFocusChanged:
    focused: bool


@dataclass(frozen=True, slots=True)
class NavigationCommitted:
    tab_id: int
    transition_type: str  # "link" | "typed" | "generated" | "auto_bookmark" | ...


# ---------------------------------------------------------------------------
# Page-originated messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UserGesture:
    tab_id: int | None = None


@dataclass(frozen=True, slots=True)
class OverlaySignal:
    tab_id: int
    score: int


@dataclass(frozen=True, slots=True)
class HardOverlayClick:
    tab_id: int


@dataclass(frozen=True, slots=True)
class PageScanResult:
    tab_id: int
    scan: PageScan


# ---------------------------------------------------------------------------
# User commands (popup surface)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToggleEnabled:
    enabled: bool


@dataclass(frozen=True, slots=True)
class MarkSpam:
    domain: str
    url: str


@dataclass(frozen=True, slots=True)
class FalsePositive:
    pass


HostEvent = (
    TabCreated
    | TabUpdated
    | TabRemoved
    | TabActivated
    | WindowFocusChanged
    | NavigationCommitted
    | UserGesture
    | OverlaySignal
    | HardOverlayClick
    | PageScanResult
    | ToggleEnabled
    | MarkSpam
    | FalsePositive
)

TYPED_TRANSITIONS = frozenset({"typed", "generated"})

# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class TabController(Protocol):
    """Outbound effects the engine may request from the host."""

    async def close_tab(self, tab_id: int) -> None: ...

    async def get_tab_url(self, tab_id: int) -> str: ...

    async def request_page_scan(self, tab_id: int) -> None: ...

    async def open_tab(self, url: str) -> None: ...


@runtime_checkable
class HostEventSource(Protocol):
    """Yields host events in delivery order until the host shuts down."""

    def events(self) -> AsyncIterator[HostEvent]: ...


@runtime_checkable
class PageInspector(Protocol):
    """Element geometry/style notifications from one page."""

    def on_element_inserted(self, callback: Callable[[ElementSnapshot], None]) -> None: ...

    def on_click(self, callback: Callable[[Sequence[ElementSnapshot]], None]) -> None: ...
