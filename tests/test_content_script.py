# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for popguard.content_script: script template and payload validation."""

from __future__ import annotations

import pytest

from popguard import PageScan
from popguard.content_script import (
    BINDING_NAME,
    EXTRACT_PAGE_SCAN_JS,
    MAX_CLICK_CHAIN,
    build_content_script,
    chain_from_payload,
    normalize_text,
    scan_from_payload,
    snapshot_from_payload,
)


class TestBuildContentScript:
    def test_is_iife_with_binding(self):
        script = build_content_script()
        assert script.startswith("(() => {")
        assert script.rstrip().endswith("})();")
        assert f"window.{BINDING_NAME}" in script

    def test_throttle_is_substituted(self):
        assert "< 250) return;" in build_content_script(gesture_throttle_ms=250)
        assert "< 100) return;" in build_content_script()

    def test_reports_every_message_type(self):
        script = build_content_script()
        for message in ("user-gesture", "click-chain", "element-inserted", "focus", "activated"):
            assert f"'{message}'" in script

    def test_snapshots_only_from_top_frame(self):
        script = build_content_script()
        assert "const isTop = window.top === window;" in script
        assert "if (!isTop) return true;" in script
        assert "if (!isTop) return;" in script

    def test_blur_reported_only_when_window_loses_focus(self):
        assert "document.visibilityState === 'visible' && !document.hasFocus()" in build_content_script()

    def test_only_trusted_gestures(self):
        assert "event.isTrusted" in build_content_script()

    def test_no_unfilled_placeholders(self):
        assert "%(" not in build_content_script()

    def test_extract_function_takes_limit(self):
        assert EXTRACT_PAGE_SCAN_JS.startswith("(limit) =>")
        assert "metaDescription" in EXTRACT_PAGE_SCAN_JS


class TestNormalizeText:
    def test_collapses_whitespace(self):
        assert normalize_text("  a\n\n b\t c  ", 100) == "a b c"

    def test_truncates(self):
        assert normalize_text("x" * 600, 500) == "x" * 500

    def test_none(self):
        assert normalize_text(None, 10) == ""


class TestScanFromPayload:
    def test_valid(self):
        raw = {
            "url": "https://a.example/",
            "title": "Hello",
            "metaDescription": "desc",
            "textContent": "  lots   of\ntext ",
        }
        assert scan_from_payload(raw) == PageScan(
            url="https://a.example/",
            title="Hello",
            meta_description="desc",
            text_content="lots of text",
        )

    def test_missing_fields_default_to_empty(self):
        assert scan_from_payload({}) == PageScan()

    def test_limit_enforced_even_if_page_ignores_it(self):
        scan = scan_from_payload({"textContent": "y" * 2000}, limit=500)
        assert len(scan.text_content) == 500

    @pytest.mark.parametrize("raw", [None, "text", 42, {"title": {"nested": 1}}])
    def test_malformed(self, raw):
        assert scan_from_payload(raw) is None


class TestSnapshots:
    def test_snapshot(self):
        snap = snapshot_from_payload({"position": "fixed", "zIndex": "10", "width": 100})
        assert snap.position == "fixed"
        assert snap.z_index == "10"
        assert snap.width == 100.0

    @pytest.mark.parametrize("raw", [None, [], {"width": "wide"}])
    def test_malformed_snapshot(self, raw):
        assert snapshot_from_payload(raw) is None

    def test_chain_skips_bad_entries(self):
        chain = chain_from_payload({"chain": [{"position": "fixed"}, "junk", {"top": "x"}, {}]})
        assert [s.position for s in chain] == ["fixed", "static"]

    def test_chain_is_capped(self):
        chain = chain_from_payload({"chain": [{}] * (MAX_CLICK_CHAIN + 10)})
        assert len(chain) == MAX_CLICK_CHAIN

    @pytest.mark.parametrize("raw", [None, {}, {"chain": "nope"}, [1, 2]])
    def test_malformed_chain(self, raw):
        assert chain_from_payload(raw) == []
