# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright-backed browser host for the classification engine.

``PlaywrightHost`` adapts one ``BrowserContext`` to the engine's host
interfaces: it numbers tabs, resolves openers, injects the content script,
turns page and binding callbacks into ``HostEvent``s on a queue, and
performs the engine's tab effects.

Playwright has no notion of address-bar navigation, so a navigation
started through ``navigate()`` (the driver acting for the user) is
reported as a ``typed`` transition; everything else is a ``link``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import suppress
from typing import Any

from playwright.async_api import Browser, BrowserContext, Frame, Page, Playwright, async_playwright

from . import TabInfo
from .config import GuardConfig
from .content_script import (
    BINDING_NAME,
    EXTRACT_PAGE_SCAN_JS,
    build_content_script,
    chain_from_payload,
    scan_from_payload,
    snapshot_from_payload,
)
from .errors import HostError
from .host import (
    HostEvent,
    NavigationCommitted,
    PageScanResult,
    TabActivated,
    TabCreated,
    TabRemoved,
    TabUpdated,
    UserGesture,
    WindowFocusChanged,
)
from .overlay_detector import ElementSnapshot, OverlayMonitor

logger = logging.getLogger(__name__)


def _from_main_frame(source: dict[str, Any]) -> bool:
    frame = source.get("frame")
    page = source.get("page")
    return frame is None or page is None or frame == page.main_frame


class PlaywrightPageInspector:
    """``PageInspector`` fed by the content script of one page."""

    def __init__(self) -> None:
        self._insert_callbacks: list[Callable[[ElementSnapshot], None]] = []
        self._click_callbacks: list[Callable[[Sequence[ElementSnapshot]], None]] = []

    def on_element_inserted(self, callback: Callable[[ElementSnapshot], None]) -> None:
        self._insert_callbacks.append(callback)

    def on_click(self, callback: Callable[[Sequence[ElementSnapshot]], None]) -> None:
        self._click_callbacks.append(callback)

    def element_inserted(self, snapshot: ElementSnapshot) -> None:
        for callback in self._insert_callbacks:
            callback(snapshot)

    def clicked(self, chain: Sequence[ElementSnapshot]) -> None:
        for callback in self._click_callbacks:
            callback(chain)


class PlaywrightHost:
    """``TabController`` and ``HostEventSource`` over a Playwright context."""

    def __init__(self, context: BrowserContext, *, config: GuardConfig | None = None) -> None:
        self.context = context
        self.config = config or GuardConfig()
        self._queue: asyncio.Queue[HostEvent | None] = asyncio.Queue()
        self._next_id = 1
        self._tab_ids: dict[Page, int] = {}
        self._pages: dict[int, Page] = {}
        self._inspectors: dict[int, PlaywrightPageInspector] = {}
        self._monitors: dict[int, OverlayMonitor] = {}
        self._announced: set[int] = set()
        self._typed_pending: set[int] = set()
        self._focused: set[int] = set()
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    # ── Setup ────────────────────────────────────────────────────

    async def attach(self) -> PlaywrightHost:
        """Install the binding and content script, then start listening."""
        await self.context.expose_binding(BINDING_NAME, self._on_binding)
        await self.context.add_init_script(
            script=build_content_script(gesture_throttle_ms=self.config.gesture_throttle_ms)
        )
        self.context.on("page", self._on_page)
        self.context.on("close", lambda _ctx: self.stop())
        for page in self.context.pages:
            tab_id = self.register_page(page)
            self._announced.add(tab_id)
            if page.url:
                self.emit(TabUpdated(tab_id=tab_id, url=page.url))
        logger.info("Guard attached to browser context (%d existing tabs)", len(self._pages))
        return self

    def register_page(self, page: Page) -> int:
        """Assign a tab id to *page* (idempotent) and wire its events."""
        existing = self._tab_ids.get(page)
        if existing is not None:
            return existing

        tab_id = self._next_id
        self._next_id += 1
        self._tab_ids[page] = tab_id
        self._pages[tab_id] = page

        inspector = PlaywrightPageInspector()
        self._inspectors[tab_id] = inspector
        self._monitors[tab_id] = OverlayMonitor(
            tab_id,
            self.emit,
            threshold=self.config.overlay_score_threshold,
        ).attach(inspector)

        page.on("framenavigated", lambda frame: self._on_frame_navigated(tab_id, page, frame))
        page.on("load", lambda _page: self.emit(TabUpdated(tab_id=tab_id, status="complete")))
        page.on("close", lambda _page: self._on_close(tab_id, page))
        return tab_id

    # ── Event source ─────────────────────────────────────────────

    def emit(self, event: HostEvent) -> None:
        if not self._stopped:
            self._queue.put_nowait(event)

    def stop(self) -> None:
        """End the event stream; ``events()`` finishes after queued events."""
        if not self._stopped:
            self._stopped = True
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[HostEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    # ── Playwright callbacks ─────────────────────────────────────

    async def _on_page(self, page: Page) -> None:
        tab_id = self.register_page(page)
        if tab_id in self._announced:
            return
        self._announced.add(tab_id)

        opener_id = None
        with suppress(Exception):
            opener = await page.opener()
            if opener is not None:
                opener_id = self._tab_ids.get(opener)
        self.emit(TabCreated(tab=TabInfo(id=tab_id, url=page.url, opener_tab_id=opener_id)))
        # Chromium opens new tabs in the foreground; the page fires no focus event for that.
        self._focused = {tab_id}
        self.emit(TabActivated(tab_id=tab_id))
        logger.debug("Tab %d created (opener=%s): %s", tab_id, opener_id, page.url)

    def _on_frame_navigated(self, tab_id: int, page: Page, frame: Frame) -> None:
        if frame != page.main_frame:
            return
        if tab_id in self._typed_pending:
            self._typed_pending.discard(tab_id)
            transition = "typed"
        else:
            transition = "link"
        self.emit(NavigationCommitted(tab_id=tab_id, transition_type=transition))
        self.emit(TabUpdated(tab_id=tab_id, url=frame.url, status="loading"))

    def _on_close(self, tab_id: int, page: Page) -> None:
        self._tab_ids.pop(page, None)
        self._pages.pop(tab_id, None)
        self._inspectors.pop(tab_id, None)
        self._monitors.pop(tab_id, None)
        self._announced.discard(tab_id)
        self._typed_pending.discard(tab_id)
        self._focused.discard(tab_id)
        self.emit(TabRemoved(tab_id=tab_id))

    async def _on_binding(self, source: dict[str, Any], message_type: str, payload: Any = None) -> None:
        """Handle a message from the content script. Unknown input is ignored."""
        tab_id = self._tab_ids.get(source.get("page")) if isinstance(source, dict) else None
        if tab_id is None:
            return

        if message_type == "user-gesture":
            self.emit(UserGesture(tab_id=tab_id))
        elif message_type in ("element-inserted", "click-chain") and not _from_main_frame(source):
            return
        elif message_type == "element-inserted":
            snapshot = snapshot_from_payload(payload)
            inspector = self._inspectors.get(tab_id)
            if snapshot is not None and inspector is not None:
                inspector.element_inserted(snapshot)
        elif message_type == "click-chain":
            inspector = self._inspectors.get(tab_id)
            if inspector is not None:
                inspector.clicked(chain_from_payload(payload))
        elif message_type == "focus":
            if isinstance(payload, dict) and payload.get("focused") is True:
                self._set_focus(tab_id, True)
                self.emit(TabActivated(tab_id=tab_id))
            else:
                self._set_focus(tab_id, False)
        elif message_type == "activated":
            self.emit(TabActivated(tab_id=tab_id))
        else:
            logger.debug("Unknown content script message %r from tab %d", message_type, tab_id)

    def _set_focus(self, tab_id: int, focused: bool) -> None:
        """Report window focus. At most one page holds it; the window is unfocused once none does."""
        was_focused = bool(self._focused)
        if focused:
            self._focused = {tab_id}
        else:
            self._focused.discard(tab_id)
        if focused or was_focused != bool(self._focused):
            self.emit(WindowFocusChanged(focused=bool(self._focused)))

    # ── TabController ────────────────────────────────────────────

    def _page(self, tab_id: int) -> Page:
        page = self._pages.get(tab_id)
        if page is None or page.is_closed():
            raise HostError(f"tab {tab_id} is not open", tab_id=tab_id)
        return page

    async def close_tab(self, tab_id: int) -> None:
        await self._page(tab_id).close()

    async def get_tab_url(self, tab_id: int) -> str:
        return self._page(tab_id).url

    async def request_page_scan(self, tab_id: int) -> None:
        page = self._page(tab_id)
        task = asyncio.get_running_loop().create_task(self._scan(tab_id, page))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _scan(self, tab_id: int, page: Page) -> None:
        limit = self.config.scan_text_limit
        try:
            raw = await page.evaluate(EXTRACT_PAGE_SCAN_JS, limit)
        except Exception as e:
            logger.debug("Page scan of tab %d failed: %s", tab_id, e)
            return
        scan = scan_from_payload(raw, limit=limit)
        if scan is not None:
            self.emit(PageScanResult(tab_id=tab_id, scan=scan))

    async def open_tab(self, url: str) -> None:
        page = await self.context.new_page()
        await self.navigate(self.register_page(page), url)

    async def navigate(self, tab_id: int, url: str) -> None:
        """Navigate as if the user typed *url* into the address bar."""
        page = self._page(tab_id)
        self._typed_pending.add(tab_id)
        try:
            await page.goto(url)
        except Exception as e:
            self._typed_pending.discard(tab_id)
            raise HostError(f"navigation to {url} failed: {e}", tab_id=tab_id) from e

    def tab_id_for(self, page: Page) -> int | None:
        return self._tab_ids.get(page)


class GuardedBrowser:
    """Headful Chromium with a ``PlaywrightHost`` attached to its context.

    Usage::

        async with GuardedBrowser(config) as browser:
            await engine.run(browser.host)
    """

    def __init__(self, config: GuardConfig | None = None) -> None:
        self.config = config or GuardConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self.host: PlaywrightHost | None = None

    async def start(self) -> PlaywrightHost:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=["--disable-blink-features=AutomationControlled", "--no-first-run"],
        )
        self._context = await self._browser.new_context(no_viewport=not self.config.headless)
        self.host = await PlaywrightHost(self._context, config=self.config).attach()

        page = await self._context.new_page()
        if self.config.start_url and self.config.start_url != "about:blank":
            await self.host.navigate(self.host.register_page(page), self.config.start_url)
        self._browser.on("disconnected", lambda _b: self.host.stop())
        logger.info("Guarded browser started (headless=%s)", self.config.headless)
        return self.host

    async def stop(self) -> None:
        """Close browser and clean up. Safe to call on a crashed browser."""
        if self.host is not None:
            self.host.stop()
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Guarded browser stopped")

    async def __aenter__(self) -> GuardedBrowser:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()
