# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Click-catching overlay detection in the page that may open a popup.

Two independent heuristics over element snapshots captured in the page:

- ``score_element``: additive deception score for freshly inserted elements.
  Pages reporting a score >= 3 make any tab they open suspicious.
- ``is_hard_overlay``: near-invisible full-viewport layer with extreme
  z-index that still accepts clicks.  A click landing on one (target or
  any ancestor) closes the tab it opens outright.

Snapshots come from the in-page script in ``content_script``; the scoring
itself is pure Python so it can be tested without a browser.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .host import HardOverlayClick, OverlaySignal, PageInspector

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

MAX_Z_INDEX = 2147483647
EXTREME_Z_INDEX = 999999  # score heuristic: z-index above this
HARD_OVERLAY_Z_INDEX = 9999  # hard overlay: z-index above this
FULL_SCREEN_COVERAGE = 0.95
HARD_OVERLAY_COVERAGE = 0.8
CORNER_TOLERANCE_PX = 5.0
HARD_OVERLAY_MAX_OPACITY = 0.1
REPORT_THRESHOLD = 3

_POSITIONED = ("fixed", "absolute")

# ---------------------------------------------------------------------------
# Snapshot model
# ---------------------------------------------------------------------------


class ElementSnapshot(BaseModel):
    """Computed style and geometry of one element, as captured in the page.

    Field aliases match the camelCase keys produced by the content script.
    Style values stay raw strings ("auto", "0.05") and are parsed here.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    position: str = "static"
    z_index: str = Field(default="auto", alias="zIndex")
    opacity: str = "1"
    pointer_events: str = Field(default="auto", alias="pointerEvents")
    top: float = 0.0
    left: float = 0.0
    width: float = 0.0
    height: float = 0.0
    viewport_width: float = Field(default=0.0, alias="viewportWidth")
    viewport_height: float = Field(default=0.0, alias="viewportHeight")
    is_last_body_child: bool = Field(default=False, alias="isLastBodyChild")
    document_complete: bool = Field(default=False, alias="documentComplete")


def _parse_z_index(raw: str) -> int | None:
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _parse_opacity(raw: str) -> float | None:
    try:
        return float(str(raw).strip() or "1")
    except ValueError:
        return None


def _anchored_top_left(el: ElementSnapshot) -> bool:
    return el.top <= CORNER_TOLERANCE_PX and el.left <= CORNER_TOLERANCE_PX


def _covers_viewport(el: ElementSnapshot, ratio: float) -> bool:
    if el.viewport_width <= 0 or el.viewport_height <= 0:
        return False
    return el.width >= el.viewport_width * ratio and el.height >= el.viewport_height * ratio


def is_full_screen_overlay(el: ElementSnapshot) -> bool:
    return el.position in _POSITIONED and _covers_viewport(el, FULL_SCREEN_COVERAGE) and _anchored_top_left(el)


# ---------------------------------------------------------------------------
# Heuristics (pure functions)
# ---------------------------------------------------------------------------


def score_element(el: ElementSnapshot) -> int:
    """Sum the fixed weights of every overlay heuristic *el* triggers.

    +2 extreme z-index, +2 full-screen fixed/absolute at the top-left,
    +1 appended as last body child after load, +1 full-screen and clickable.
    """
    score = 0

    z_index = _parse_z_index(el.z_index)
    if z_index is not None and (z_index >= MAX_Z_INDEX or z_index > EXTREME_Z_INDEX):
        score += 2

    full_screen = is_full_screen_overlay(el)
    if full_screen:
        score += 2

    if el.document_complete and el.is_last_body_child:
        score += 1

    if full_screen and el.pointer_events != "none":
        score += 1

    return score


def is_hard_overlay(el: ElementSnapshot) -> bool:
    """Near-invisible (0 < opacity <= 0.1), full-viewport, top-z, clickable layer.

    Fully transparent layers (opacity 0) are excluded: they are commonly
    inert placeholders rather than click traps.
    """
    if el.position not in _POSITIONED:
        return False
    if not (_covers_viewport(el, HARD_OVERLAY_COVERAGE) and _anchored_top_left(el)):
        return False

    z_index = _parse_z_index(el.z_index)
    if z_index is None or z_index <= HARD_OVERLAY_Z_INDEX:
        return False

    opacity = _parse_opacity(el.opacity)
    if opacity is None or not (0 < opacity <= HARD_OVERLAY_MAX_OPACITY):
        return False

    return el.pointer_events != "none"


def find_hard_overlay(chain: Sequence[ElementSnapshot]) -> int | None:
    """Index of the first hard overlay in a target → ancestor chain, or None."""
    for index, el in enumerate(chain):
        if is_hard_overlay(el):
            return index
    return None


# ---------------------------------------------------------------------------
# Per-page monitor
# ---------------------------------------------------------------------------


class OverlayMonitor:
    """Tracks overlay evidence for one page and emits engine events.

    Reports an ``OverlaySignal`` only when an inserted element reaches the
    threshold and beats the best score already reported for this page.
    """

    def __init__(
        self,
        tab_id: int,
        emit: Callable[[OverlaySignal | HardOverlayClick], None],
        *,
        threshold: int = REPORT_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tab_id = tab_id
        self.threshold = threshold
        self.max_score = 0
        self.last_hard_click_at: float | None = None
        self._emit = emit
        self._clock = clock

    def attach(self, inspector: PageInspector) -> OverlayMonitor:
        inspector.on_element_inserted(self.on_element_inserted)
        inspector.on_click(self.on_click)
        return self

    def on_element_inserted(self, el: ElementSnapshot) -> int:
        score = score_element(el)
        if score >= self.threshold and score > self.max_score:
            self.max_score = score
            logger.debug("Overlay candidate in tab %d scored %d", self.tab_id, score)
            self._emit(OverlaySignal(tab_id=self.tab_id, score=score))
        return score

    def on_click(self, chain: Sequence[ElementSnapshot]) -> bool:
        if find_hard_overlay(chain) is None:
            return False
        self.last_hard_click_at = self._clock()
        logger.info("Click on hard overlay in tab %d", self.tab_id)
        self._emit(HardOverlayClick(tab_id=self.tab_id))
        return True
