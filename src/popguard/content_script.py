# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""In-page script and validation of the messages it sends back.

The script runs in every frame of every page and reports through a single
exposed binding, ``window.__popguardEmit(type, payload)``:

- ``user-gesture``: trusted mousedown/click/keydown, throttled
- ``element-inserted``: style/geometry snapshot of each added element (top frame only)
- ``click-chain``: snapshots of a click target and its ancestors (top frame only)
- ``focus`` / ``activated``: window focus and tab visibility (top frame only)

Page content is untrusted, so every payload is validated here before it
reaches the engine; invalid payloads are dropped.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import PageScan
from .overlay_detector import ElementSnapshot

logger = logging.getLogger(__name__)

BINDING_NAME = "__popguardEmit"
MAX_CLICK_CHAIN = 32

_WHITESPACE_RE = re.compile(r"\s+")

# ---------------------------------------------------------------------------
# JavaScript
# ---------------------------------------------------------------------------

_SNAPSHOT_FN_JS = """
  const snapshot = (el) => {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    const doc = document.documentElement;
    const body = document.body;
    return {
      position: style.position,
      zIndex: style.zIndex,
      opacity: style.opacity,
      pointerEvents: style.pointerEvents,
      top: rect.top,
      left: rect.left,
      width: rect.width,
      height: rect.height,
      viewportWidth: window.innerWidth || (doc && doc.clientWidth) || 0,
      viewportHeight: window.innerHeight || (doc && doc.clientHeight) || 0,
      isLastBodyChild: !!body && el.parentElement === body && el === body.lastElementChild,
      documentComplete: document.readyState === 'complete'
    };
  };
"""


def build_content_script(*, gesture_throttle_ms: float = 100.0) -> str:
    """Return the init script source with the given gesture throttle."""
    return (
        """(() => {
  if (window.__popguardInstalled) return;
  window.__popguardInstalled = true;

  const emit = (type, payload) => {
    try {
      const fn = window.%(binding)s;
      if (typeof fn === 'function') fn(type, payload || {});
    } catch (e) {}
  };
%(snapshot)s
  let lastGestureAt = 0;
  const onGesture = (event) => {
    if (!event.isTrusted) return;
    const now = Date.now();
    if (now - lastGestureAt < %(throttle)d) return;
    lastGestureAt = now;
    emit('user-gesture', {});
  };
  for (const name of ['mousedown', 'click', 'keydown']) {
    window.addEventListener(name, onGesture, true);
  }

  const isTop = window.top === window;

  window.addEventListener('click', (event) => {
    if (!isTop) return;
    const chain = [];
    let node = event.target;
    while (node && node !== document.body && chain.length < %(max_chain)d) {
      if (node instanceof Element) chain.push(snapshot(node));
      node = node.parentElement;
    }
    if (chain.length) emit('click-chain', { chain });
  }, true);

  const observe = () => {
    if (!isTop) return true;
    if (!document.body) return false;
    new MutationObserver((mutations) => {
      for (const mutation of mutations) {
        for (const node of mutation.addedNodes) {
          if (node instanceof Element) emit('element-inserted', snapshot(node));
        }
      }
    }).observe(document.body, { childList: true, subtree: true });
    return true;
  };
  if (!observe()) document.addEventListener('DOMContentLoaded', observe, { once: true });

  if (isTop) {
    window.addEventListener('focus', () => emit('focus', { focused: true }));
    // Switching tabs hides this page; only a visible page losing focus means the window did.
    window.addEventListener('blur', () => setTimeout(() => {
      if (document.visibilityState === 'visible' && !document.hasFocus()) emit('focus', { focused: false });
    }, 0));
    document.addEventListener('visibilitychange', () => {
      if (document.visibilityState === 'visible') emit('activated', {});
    });
  }
})();"""
        % {
            "binding": BINDING_NAME,
            "snapshot": _SNAPSHOT_FN_JS,
            "throttle": int(gesture_throttle_ms),
            "max_chain": MAX_CLICK_CHAIN,
        }
    )


EXTRACT_PAGE_SCAN_JS = """(limit) => {
  const safe = (fn) => { try { return fn() || ''; } catch (e) { return ''; } };
  const meta = safe(() => {
    const el = document.querySelector('meta[name="description"]');
    return el && el.getAttribute('content');
  });
  const text = safe(() => document.body && document.body.textContent);
  return {
    url: safe(() => window.location.href),
    title: safe(() => document.title),
    metaDescription: meta,
    textContent: text.replace(/\\s+/g, ' ').trim().slice(0, limit)
  };
}"""

# ---------------------------------------------------------------------------
# Payload validation
# ---------------------------------------------------------------------------


class _PageScanPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str = ""
    title: str = ""
    meta_description: str = Field(default="", alias="metaDescription")
    text_content: str = Field(default="", alias="textContent")


def normalize_text(text: str, limit: int) -> str:
    """Collapse whitespace runs and truncate to *limit* characters."""
    return _WHITESPACE_RE.sub(" ", text or "").strip()[:limit]


def scan_from_payload(raw: Any, *, limit: int = 500) -> PageScan | None:
    try:
        payload = _PageScanPayload.model_validate(raw)
    except ValidationError:
        logger.debug("Dropping malformed page scan payload")
        return None
    return PageScan(
        url=payload.url,
        title=payload.title,
        meta_description=payload.meta_description,
        text_content=normalize_text(payload.text_content, limit),
    )


def snapshot_from_payload(raw: Any) -> ElementSnapshot | None:
    try:
        return ElementSnapshot.model_validate(raw)
    except ValidationError:
        logger.debug("Dropping malformed element snapshot")
        return None


def chain_from_payload(raw: Any) -> list[ElementSnapshot]:
    """Validate a click-chain payload; malformed entries are skipped."""
    items = raw.get("chain") if isinstance(raw, dict) else None
    if not isinstance(items, list):
        return []
    chain = []
    for item in items[:MAX_CLICK_CHAIN]:
        snap = snapshot_from_payload(item)
        if snap is not None:
            chain.append(snap)
    return chain
