# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Suspicious-tab classification engine.

Combines host signals into three per-tab conditions and closes a tab when

    Condition 1 AND (Condition 2 OR Condition 3)

- Condition 1: the tab was opened without a genuine user gesture (decided
  once, at creation).
- Condition 2: URL or page content is spam (wordlist or external classifier).
- Condition 3: the URL carries affiliate/tracking markers.

Conditions 2 and 3 arrive asynchronously from several sources in any
order, so a ``TabRecord`` only accumulates them and the close rule is
re-evaluated after every update.  Any continuation that resumes after an
``await`` re-checks that the record it started with is still current.

Handlers never raise: collaborator failures count as "no evidence" and
host failures (tab already gone) are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from . import ClosedTab, PageScan, TabInfo, TabRecord
from .backend import ContentClassifier, NullClassifier, SpamReport, SpamReporter
from .config import GuardConfig
from .host import (
    TYPED_TRANSITIONS,
    FalsePositive,
    HardOverlayClick,
    HostEvent,
    HostEventSource,
    MarkSpam,
    NavigationCommitted,
    OverlaySignal,
    PageScanResult,
    TabActivated,
    TabController,
    TabCreated,
    TabRemoved,
    TabUpdated,
    ToggleEnabled,
    UserGesture,
    WindowFocusChanged,
)
from .logging_config import tab_context
from .matcher import matches_spam_wordlist, url_has_affiliate_params
from .repository import GuardSettings, SettingsRepository
from .signals import DomainLists, SignalCollector, SignalState
from .urls import are_same_site_urls, get_hostname, is_search_engine_url

logger = logging.getLogger(__name__)


class ClassificationEngine:
    """Owns all signal state and decides which new tabs to close."""

    def __init__(
        self,
        controller: TabController,
        *,
        config: GuardConfig | None = None,
        classifier: ContentClassifier | None = None,
        reporter: SpamReporter | None = None,
        repository: SettingsRepository | None = None,
        collector: SignalCollector | None = None,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self.controller = controller
        self.config = config or GuardConfig()
        self.classifier = classifier or NullClassifier()
        self.reporter = reporter
        self.repository = repository
        self.collector = collector or SignalCollector()
        self.enabled = True
        self.installation_id: str | None = None
        self._wall_clock = wall_clock
        self._tasks: set[asyncio.Task] = set()

    # ── State accessors ──────────────────────────────────────────

    @property
    def state(self) -> SignalState:
        return self.collector.state

    @property
    def domains(self) -> DomainLists:
        return self.state.domains

    def record_for(self, tab_id: int) -> TabRecord | None:
        return self.state.records.get(tab_id)

    def apply_settings(self, settings: GuardSettings) -> None:
        """Load persisted settings (startup only)."""
        self.enabled = settings.enabled
        self.state.domains = DomainLists(settings.blocked_domains, settings.safe_domains)
        self.installation_id = settings.installation_id or None

    async def load_settings(self) -> None:
        if self.repository is None:
            return
        self.apply_settings(await self.repository.load())
        logger.info(
            "Settings loaded: enabled=%s blocked=%d safe=%d",
            self.enabled,
            len(self.domains.blocked),
            len(self.domains.safe),
        )

    # ── Event loop ───────────────────────────────────────────────

    async def run(self, source: HostEventSource) -> None:
        """Consume *source* until it is exhausted, then wait for pending work."""
        try:
            async for event in source.events():
                await self.handle(event)
        finally:
            await self.drain()

    async def handle(self, event: HostEvent) -> None:
        """Dispatch one host event. Never raises."""
        with tab_context(_event_tab_id(event)):
            try:
                await self._dispatch(event)
            except Exception:
                logger.warning("Handler for %s failed", type(event).__name__, exc_info=True)

    async def _dispatch(self, event: HostEvent) -> None:
        c = self.collector
        if isinstance(event, TabCreated):
            await self.on_tab_created(event.tab)
        elif isinstance(event, TabUpdated):
            await self.on_tab_updated(event.tab_id, url=event.url, status=event.status)
        elif isinstance(event, TabRemoved):
            c.on_tab_removed(event.tab_id)
        elif isinstance(event, TabActivated):
            c.on_tab_activated(event.tab_id)
        elif isinstance(event, WindowFocusChanged):
            c.on_window_focus_changed(event.focused)
        elif isinstance(event, NavigationCommitted):
            if event.transition_type in TYPED_TRANSITIONS:
                c.on_typed_navigation_committed(event.tab_id)
        elif isinstance(event, UserGesture):
            c.on_user_gesture()
        elif isinstance(event, OverlaySignal):
            c.on_overlay_signal(event.tab_id, event.score)
        elif isinstance(event, HardOverlayClick):
            c.on_hard_overlay_click(event.tab_id)
        elif isinstance(event, PageScanResult):
            # The classifier round-trip must not hold up other tabs' events.
            self._spawn(self.on_page_scan_result(event.tab_id, event.scan), "page-scan")
        elif isinstance(event, ToggleEnabled):
            await self.set_enabled(event.enabled)
        elif isinstance(event, MarkSpam):
            await self.mark_spam(event.domain, event.url)
        elif isinstance(event, FalsePositive):
            await self.report_false_positive()
        else:
            logger.debug("Ignoring unknown event %r", event)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        async def _guarded() -> None:
            try:
                await coro
            except Exception:
                logger.warning("Background %s task failed", name, exc_info=True)

        task = asyncio.get_running_loop().create_task(_guarded(), name=f"popguard-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight scan and report tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Condition 1 ──────────────────────────────────────────────

    def condition1_reasons(self, tab: TabInfo) -> list[str]:
        """Why *tab* looks opened without a genuine gesture; empty = it does not."""
        if self.collector.is_trusted(tab.id):
            return []

        state = self.state
        opener = tab.opener_tab_id
        reasons: list[str] = []

        if opener is not None and state.current_active_tab_id is not None and opener != state.current_active_tab_id:
            reasons.append("opener_not_active")
        if not state.window_focused:
            reasons.append("window_unfocused")
        gesture_age = self.collector.gesture_age()
        if gesture_age is not None and gesture_age > self.config.gesture_window_ms:
            reasons.append("stale_gesture")
        if self.collector.overlay_score(opener) >= self.config.overlay_score_threshold:
            reasons.append("opener_overlay")
        return reasons

    def evaluate_condition1(self, tab: TabInfo) -> bool:
        return bool(self.condition1_reasons(tab))

    # ── Tab lifecycle ────────────────────────────────────────────

    async def on_tab_created(self, tab: TabInfo) -> None:
        if not self.enabled:
            return

        cfg = self.config
        state = self.state
        initial_url = tab.effective_url
        host = get_hostname(initial_url)
        opener = tab.opener_tab_id
        self.collector.remember_url(tab.id, initial_url)

        # (a) user-blocked domain opened right after a click: close unconditionally
        gesture_age = self.collector.gesture_age()
        if (
            self.domains.is_blocked(host)
            and opener is not None
            and gesture_age is not None
            and gesture_age < cfg.blocklist_gesture_window_ms
        ):
            logger.info("Tab %d opened block-listed %s", tab.id, host)
            await self.close_tab(tab.id, initial_url)
            return

        # (b) same site as the opener: never auto-close
        if opener is not None:
            opener_url = state.latest_tab_urls.get(opener, "")
            if are_same_site_urls(initial_url, opener_url, cfg.same_site_groups):
                state.same_site_allowed.add(tab.id)
                logger.debug("Tab %d is same-site with opener %d; exempt", tab.id, opener)
                return

        # (c) opened by a click on a hard overlay
        click_age = self.collector.hard_overlay_click_age(opener)
        if click_age is not None and click_age < cfg.hard_overlay_window_ms:
            logger.info("Tab %d opened by hard overlay click in tab %s", tab.id, opener)
            await self.close_tab(tab.id, initial_url)
            return

        reasons = self.condition1_reasons(tab)
        if not reasons:
            return

        if url_has_affiliate_params(initial_url, markers=cfg.affiliate_markers):
            logger.info("Tab %d suspicious (%s) with affiliate URL", tab.id, ",".join(reasons))
            await self.close_tab(tab.id, initial_url)
            return

        state.records[tab.id] = TabRecord(condition1=True)
        logger.debug("Tab %d tracked as suspicious (%s)", tab.id, ",".join(reasons))

    async def on_tab_updated(self, tab_id: int, *, url: str | None = None, status: str | None = None) -> None:
        self.collector.remember_url(tab_id, url)

        if not self.enabled or self.collector.is_trusted(tab_id):
            return
        record = self.record_for(tab_id)
        if record is None:
            return

        cfg = self.config
        if url:
            if is_search_engine_url(url, cfg.search_engine_hosts):
                return

            if matches_spam_wordlist(url, keywords=cfg.spam_keywords):
                record.mark_spam()
                if await self._maybe_close(tab_id, record, url):
                    return

            if url_has_affiliate_params(url, markers=cfg.affiliate_markers):
                record.mark_affiliate()
                if await self._maybe_close(tab_id, record, url):
                    return

        if status == "complete" and not record.scan_requested:
            record.scan_requested = True
            try:
                await self.controller.request_page_scan(tab_id)
            except Exception as e:
                logger.debug("Page scan request for tab %d failed: %s", tab_id, e)

    async def on_page_scan_result(self, tab_id: int, scan: PageScan) -> None:
        if not self.enabled or self.collector.is_trusted(tab_id):
            return
        record = self.record_for(tab_id)
        if record is None:
            # Content alone never closes a tab that was not suspicious at creation.
            return

        cfg = self.config
        url = scan.url or self.state.latest_tab_urls.get(tab_id, "")
        search_engine = is_search_engine_url(url, cfg.search_engine_hosts)
        affiliate = url_has_affiliate_params(url, markers=cfg.affiliate_markers)

        if not search_engine and matches_spam_wordlist(
            url, scan.title, scan.meta_description, scan.text_content, keywords=cfg.spam_keywords
        ):
            record.mark_spam()
            record.mark_affiliate(affiliate)
            await self._maybe_close(tab_id, record, url)
            return

        harmful = False
        if not search_engine:
            verdict = await self.classifier.classify(url, scan.title, scan.meta_description, scan.text_content)
            if self.record_for(tab_id) is not record:
                logger.debug("Tab %d changed while classifying; dropping verdict", tab_id)
                return
            harmful = verdict.is_harmful

        record.mark_spam(harmful)
        record.mark_affiliate(affiliate)
        await self._maybe_close(tab_id, record, url)

    # ── Close effect ─────────────────────────────────────────────

    async def _maybe_close(self, tab_id: int, record: TabRecord, known_url: str = "") -> bool:
        """Apply the close rule. True if the record is gone afterwards."""
        if not record.should_close:
            return False
        await self.close_tab(tab_id, known_url)
        return self.record_for(tab_id) is not record

    async def close_tab(self, tab_id: int, known_url: str = "") -> bool:
        """Close *tab_id* unless exempt or safe-listed. Returns True if closed."""
        state = self.state
        if tab_id in state.same_site_allowed:
            logger.debug("Tab %d is same-site exempt; not closing", tab_id)
            return False

        url = known_url or state.latest_tab_urls.get(tab_id, "")
        if not url:
            try:
                url = await self.controller.get_tab_url(tab_id) or ""
            except Exception as e:
                logger.debug("URL lookup for tab %d failed: %s", tab_id, e)
                url = ""

        host = get_hostname(url)
        if self.domains.is_safe(host):
            logger.info("Tab %d not closed: %s is safe-listed", tab_id, host)
            return False

        state.last_closed_tab = ClosedTab(url=url, domain=host) if url else None
        state.records.pop(tab_id, None)
        try:
            await self.controller.close_tab(tab_id)
        except Exception as e:
            logger.debug("Closing tab %d failed: %s", tab_id, e)
            return False
        logger.info("Closed tab %d (%s)", tab_id, host or "unknown host")
        return True

    # ── User commands ────────────────────────────────────────────

    async def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        logger.info("Guard %s", "enabled" if self.enabled else "disabled")
        if self.repository is None:
            return
        try:
            await self.repository.save_enabled(self.enabled)
        except Exception:
            logger.warning("Could not persist enabled flag", exc_info=True)

    async def _persist_domains(self) -> None:
        if self.repository is None:
            return
        try:
            await self.repository.save_domain_lists(sorted(self.domains.blocked), sorted(self.domains.safe))
        except Exception:
            logger.warning("Could not persist domain lists", exc_info=True)

    async def mark_spam(self, domain: str, url: str) -> str | None:
        """Block-list *domain* and report it. Returns the normalized domain."""
        if not self.enabled or not domain or not url:
            return None
        normalized = self.domains.block(domain)
        await self._persist_domains()
        logger.info("Marked %s as spam", normalized)

        if self.reporter is not None:
            report = SpamReport(
                domain=normalized,
                url=url,
                timestamp=int(self._wall_clock() * 1000),
                user_id=self.installation_id,
            )
            self._spawn(self.reporter.report(report), "spam-report")
        return normalized

    async def report_false_positive(self) -> ClosedTab | None:
        """Undo the last automatic closure: safe-list its domain and reopen it."""
        if not self.enabled:
            return None
        last = self.state.last_closed_tab
        if last is None or not last.url:
            return None
        domain = (last.domain or get_hostname(last.url)).lower()
        if not domain:
            return None

        self.domains.allow(domain)
        await self._persist_domains()
        logger.info("False positive: %s moved to safe list", domain)
        try:
            await self.controller.open_tab(last.url)
        except Exception as e:
            logger.debug("Reopening %s failed: %s", last.url, e)
        return last


def _event_tab_id(event: HostEvent) -> int | None:
    if isinstance(event, TabCreated):
        return event.tab.id
    return getattr(event, "tab_id", None)
