# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Keyword and affiliate-parameter matching over URL and page text.

Pure functions, no state.  Matching is a lower-cased substring scan that
returns on the first hit; any non-string or empty input yields False.
"""

from __future__ import annotations

from collections.abc import Iterable

from .filters import AFFILIATE_PARAM_MARKERS, ALL_SPAM_KEYWORDS


def includes_any_substring(haystack: object, keywords: Iterable[str]) -> bool:
    """True if any non-empty keyword occurs in *haystack* (case-insensitive)."""
    if not haystack or not isinstance(haystack, str):
        return False
    text = haystack.lower()
    return any(keyword and keyword in text for keyword in keywords)


def matches_spam_wordlist(
    url: object = "",
    title: object = "",
    meta_description: object = "",
    text_content: object = "",
    *,
    keywords: Iterable[str] = ALL_SPAM_KEYWORDS,
) -> bool:
    """Scan URL, title, meta description and visible text for spam keywords.

    Fields are checked in that order and the scan stops at the first hit.
    """
    keywords = tuple(keywords)
    for field in (url, title, meta_description, text_content):
        if includes_any_substring(field, keywords):
            return True
    return False


def url_has_affiliate_params(url: object, *, markers: Iterable[str] = AFFILIATE_PARAM_MARKERS) -> bool:
    """True if *url* carries an affiliate, campaign or click-id marker."""
    return includes_any_substring(url, markers)
