# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for popguard.matcher: keyword and affiliate-marker scans."""

from __future__ import annotations

import pytest

from popguard.filters import ALL_SPAM_KEYWORDS, GAMBLING_KEYWORDS
from popguard.matcher import includes_any_substring, matches_spam_wordlist, url_has_affiliate_params


class TestIncludesAnySubstring:
    def test_case_insensitive(self):
        assert includes_any_substring("Welcome to the CASINO", ["casino"]) is True

    def test_no_match(self):
        assert includes_any_substring("daily news", ["casino"]) is False

    @pytest.mark.parametrize("haystack", [None, "", 42, b"casino", ["casino"]])
    def test_non_string_or_empty_is_false(self, haystack):
        assert includes_any_substring(haystack, ["casino"]) is False

    def test_empty_keyword_never_matches(self):
        assert includes_any_substring("anything", ["", "zzz"]) is False


class TestSpamWordlist:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"url": "https://best-casino.example/"},
            {"title": "Hot Singles in your area"},
            {"meta_description": "WARNING: Virus detected on your device"},
            {"text_content": "Congratulations you have won a free iPhone"},
            {"text_content": "Are you 18 or older?"},
        ],
    )
    def test_each_field_is_scanned(self, kwargs):
        assert matches_spam_wordlist(**kwargs) is True

    def test_clean_page(self):
        assert (
            matches_spam_wordlist(
                "https://docs.python.org/3/",
                "Python documentation",
                "Official docs",
                "The Python Standard Library",
            )
            is False
        )

    def test_ordinary_words_do_not_trigger(self):
        # Only phrases are listed, so place names like Essex stay clean.
        assert matches_spam_wordlist(title="Weather in Essex and Sussex") is False

    def test_all_empty(self):
        assert matches_spam_wordlist() is False

    def test_non_string_fields_ignored(self):
        assert matches_spam_wordlist(None, 123, None, "jackpot!") is True

    def test_custom_keywords(self):
        assert matches_spam_wordlist(title="Buy widgets", keywords=("widgets",)) is True
        assert matches_spam_wordlist(title="Online casino", keywords=("widgets",)) is False

    def test_keyword_lists_are_lowercase(self):
        assert all(k == k.lower() for k in ALL_SPAM_KEYWORDS)
        assert set(GAMBLING_KEYWORDS) <= set(ALL_SPAM_KEYWORDS)


class TestAffiliateParams:
    @pytest.mark.parametrize(
        "url",
        [
            "https://shop.example/?affid=123",
            "https://shop.example/item?ref=1&AFFILIATE=me",
            "https://lander.example/?clickid=abc",
            "https://x.example/?utm_source=a&campaign=summer",
            "https://evil.z13.web.core.windows.net/index.html",
        ],
    )
    def test_markers_detected(self, url):
        assert url_has_affiliate_params(url) is True

    @pytest.mark.parametrize("url", ["https://example.org/", "https://example.org/?q=affiliate", "", None])
    def test_clean_urls(self, url):
        assert url_has_affiliate_params(url) is False

    def test_custom_markers(self):
        assert url_has_affiliate_params("https://a.example/?src=x", markers=("src=",)) is True
