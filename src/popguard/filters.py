# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Static wordlists for spam and affiliate detection.

Configuration data only: the matcher treats every entry as a lower-case
substring.  Entries must stay specific enough not to fire inside ordinary
words (``"sex"`` would match "Essex", so only phrases are listed).
Any list can be replaced from the config file (see ``config.load_config``).
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Spam keywords by category
# ---------------------------------------------------------------------------

GAMBLING_KEYWORDS: tuple[str, ...] = (
    "casino",
    "slot machine",
    "free spins",
    "sportsbook",
    "betting odds",
    "bet now",
    "place your bet",
    "poker room",
    "jackpot",
    "roulette",
    "blackjack online",
    "crypto casino",
)

ADULT_KEYWORDS: tuple[str, ...] = (
    "porn",
    "xxx",
    "sex chat",
    "adult chat",
    "cam girls",
    "live cams",
    "hot singles",
    "adult dating",
    "hookup",
    "nude",
    "milf",
    "onlyfans leak",
)

FAKE_SOFTWARE_KEYWORDS: tuple[str, ...] = (
    "your pc is infected",
    "virus detected",
    "viruses detected",
    "your computer is at risk",
    "driver update required",
    "flash player update",
    "update your browser now",
    "download cleaner",
    "system cleaner",
    "speed up your pc",
    "vpn required to continue",
)

SCAM_KEYWORDS: tuple[str, ...] = (
    "you won",
    "you have won",
    "you've been selected",
    "claim your prize",
    "claim your reward",
    "congratulations you",
    "free iphone",
    "gift card winner",
    "lucky visitor",
    "spin the wheel",
    "click allow to",
    "press allow to",
    "make money fast",
)

AGE_GATE_KEYWORDS: tuple[str, ...] = (
    "are you 18",
    "are you over 18",
    "i am 18 or older",
    "enter if you are 18",
    "age verification required",
)

ALL_SPAM_KEYWORDS: tuple[str, ...] = (
    *GAMBLING_KEYWORDS,
    *ADULT_KEYWORDS,
    *FAKE_SOFTWARE_KEYWORDS,
    *SCAM_KEYWORDS,
    *AGE_GATE_KEYWORDS,
)

# ---------------------------------------------------------------------------
# Affiliate / tracking markers
# ---------------------------------------------------------------------------

AFFILIATE_PARAM_MARKERS: tuple[str, ...] = (
    "affid=",
    "affiliate=",
    "aff=",
    "referral=",
    "refid=",
    "btag=",
    "psid=",
    "campaign=",
    "cid=",
    "tid=",
    "trk=",
    "tracking=",
    "__trctx=",
    "partner=",
    "offer=",
    "landing=",
    "irad=",
    "irmp=",
    "subid=",
    "subid1=",
    "partnerpropertyid=",
    # click-id parameters used by redirect landers
    "click_id=",
    "clickid=",
    # hosting pattern frequently abused for scam landing pages
    "web.core.windows.net",
)

# ---------------------------------------------------------------------------
# Hosts
# ---------------------------------------------------------------------------

SEARCH_ENGINE_HOSTS: frozenset[str] = frozenset(
    {
        "google.com",
        "www.google.com",
        "bing.com",
        "www.bing.com",
        "duckduckgo.com",
        "www.duckduckgo.com",
    }
)

# Distinct domains that belong to one logical site.  A host joins a group
# when it contains any of the group's fragments.
SAME_SITE_GROUPS: tuple[tuple[str, ...], ...] = (("methstreams", "crackstreams"),)
