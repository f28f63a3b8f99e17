# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Host extraction and site-equivalence helpers.

Every function degrades to the conservative answer ("" / False) on
malformed input instead of raising.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from urllib.parse import urlparse

from .filters import SAME_SITE_GROUPS, SEARCH_ENGINE_HOSTS


def get_hostname(url: object) -> str:
    """Return the lower-cased hostname of *url*, or ``""`` if it has none."""
    if not url or not isinstance(url, str):
        return ""
    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return ""
    return (host or "").lower()


def is_search_engine_url(url: object, hosts: Collection[str] = SEARCH_ENGINE_HOSTS) -> bool:
    host = get_hostname(url)
    return bool(host) and host in hosts


def _site_group(host: str, groups: Iterable[tuple[str, ...]]) -> int | None:
    for index, fragments in enumerate(groups):
        if any(fragment in host for fragment in fragments):
            return index
    return None


def are_same_site_urls(
    url_a: object,
    url_b: object,
    groups: Iterable[tuple[str, ...]] = SAME_SITE_GROUPS,
) -> bool:
    """True when both URLs resolve to the same host or the same equivalence group.

    Groups let distinct domains (mirrors across TLDs) count as one site.
    """
    host_a = get_hostname(url_a)
    host_b = get_hostname(url_b)
    if not host_a or not host_b:
        return False
    if host_a == host_b:
        return True

    groups = tuple(groups)
    group_a = _site_group(host_a, groups)
    return group_a is not None and group_a == _site_group(host_b, groups)
