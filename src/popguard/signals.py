# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Process-wide signal state and the handlers that update it.

Every per-tab entry is purged on tab removal so a long-lived process with
unbounded tab churn keeps bounded memory.  Handlers are idempotent and only
touch the state described here; decisions live in ``engine``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from . import ClosedTab, TabRecord

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


# ---------------------------------------------------------------------------
# Domain lists
# ---------------------------------------------------------------------------


class DomainLists:
    """User-curated block and safe lists.  A domain is in at most one of them."""

    __slots__ = ("blocked", "safe")

    def __init__(self, blocked: Iterable[object] = (), safe: Iterable[object] = ()) -> None:
        self.blocked: set[str] = set()
        self.safe: set[str] = set()
        for d in blocked:
            if d and isinstance(d, str):
                self.block(d)
        for d in safe:
            if d and isinstance(d, str):
                self.allow(d)

    def block(self, domain: str) -> str:
        normalized = domain.strip().lower()
        self.safe.discard(normalized)
        self.blocked.add(normalized)
        return normalized

    def allow(self, domain: str) -> str:
        normalized = domain.strip().lower()
        self.blocked.discard(normalized)
        self.safe.add(normalized)
        return normalized

    def is_blocked(self, host: str) -> bool:
        return bool(host) and host in self.blocked

    def is_safe(self, host: str) -> bool:
        return bool(host) and host in self.safe


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass
class SignalState:
    """Everything the engine knows; lives for the engine's run only."""

    last_user_gesture: float = 0.0  # ms on the collector clock, 0 = never seen
    current_active_tab_id: int | None = None
    window_focused: bool = True
    records: dict[int, TabRecord] = field(default_factory=dict)
    overlay_scores: dict[int, int] = field(default_factory=dict)
    trusted_typed_navigation: set[int] = field(default_factory=set)
    hard_overlay_clicks: dict[int, float] = field(default_factory=dict)
    latest_tab_urls: dict[int, str] = field(default_factory=dict)
    same_site_allowed: set[int] = field(default_factory=set)
    domains: DomainLists = field(default_factory=DomainLists)
    last_closed_tab: ClosedTab | None = None

    def per_tab_maps(self) -> tuple[dict | set, ...]:
        return (
            self.records,
            self.overlay_scores,
            self.trusted_typed_navigation,
            self.hard_overlay_clicks,
            self.latest_tab_urls,
            self.same_site_allowed,
        )

    @property
    def tracked_tab_count(self) -> int:
        return len(self.records)

    def is_empty(self) -> bool:
        """True when no per-tab entry of any kind remains."""
        return not any(self.per_tab_maps())


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


class SignalCollector:
    """Event handlers that fold host signals into ``SignalState``."""

    def __init__(self, state: SignalState | None = None, *, clock: Callable[[], float] = monotonic_ms) -> None:
        self.state = state or SignalState()
        self.clock = clock

    def now(self) -> float:
        return self.clock()

    def gesture_age(self) -> float | None:
        """Milliseconds since the last gesture, or None if none was observed."""
        if self.state.last_user_gesture <= 0:
            return None
        return self.now() - self.state.last_user_gesture

    def on_user_gesture(self) -> None:
        self.state.last_user_gesture = max(self.state.last_user_gesture, self.now())

    def on_tab_activated(self, tab_id: int) -> None:
        self.state.current_active_tab_id = tab_id

    def on_window_focus_changed(self, focused: bool) -> None:
        self.state.window_focused = bool(focused)

    def on_overlay_signal(self, tab_id: int, score: object) -> None:
        try:
            incoming = int(score)
        except (TypeError, ValueError):
            incoming = 0
        if incoming > self.state.overlay_scores.get(tab_id, 0):
            self.state.overlay_scores[tab_id] = incoming

    def on_hard_overlay_click(self, tab_id: int) -> None:
        self.state.hard_overlay_clicks[tab_id] = self.now()

    def on_typed_navigation_committed(self, tab_id: int) -> None:
        """Trust the tab for the rest of its life and drop prior suspicion."""
        self.state.trusted_typed_navigation.add(tab_id)
        if self.state.records.pop(tab_id, None) is not None:
            logger.info("Typed navigation in tab %d overrides suspicion", tab_id)
        self.state.overlay_scores.pop(tab_id, None)

    def on_tab_removed(self, tab_id: int) -> None:
        for store in self.state.per_tab_maps():
            if isinstance(store, dict):
                store.pop(tab_id, None)
            else:
                store.discard(tab_id)

    def remember_url(self, tab_id: int, url: str | None) -> None:
        if url:
            self.state.latest_tab_urls[tab_id] = url

    def is_trusted(self, tab_id: int) -> bool:
        return tab_id in self.state.trusted_typed_navigation

    def overlay_score(self, tab_id: int | None) -> int:
        if tab_id is None:
            return 0
        return self.state.overlay_scores.get(tab_id, 0)

    def hard_overlay_click_age(self, tab_id: int | None) -> float | None:
        if tab_id is None:
            return None
        ts = self.state.hard_overlay_clicks.get(tab_id)
        if not ts:
            return None
        return self.now() - ts
