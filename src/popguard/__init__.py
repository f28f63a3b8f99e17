# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PopGuard: automatic closing of deceptive popup and redirect tabs.

A newly created tab is closed when both hold:
- it was opened without a genuine, contextually consistent user gesture (Condition 1)
- its URL or content is spam (Condition 2) or carries affiliate markers (Condition 3)
"""

from __future__ import annotations

from dataclasses import dataclass

__version__ = "0.1.0"


@dataclass(frozen=True, slots=True)
class TabInfo:
    """Snapshot of a browser tab as reported by the host."""

    id: int
    url: str = ""
    pending_url: str = ""  # navigation target not yet committed
    opener_tab_id: int | None = None

    @property
    def effective_url(self) -> str:
        return self.pending_url or self.url or ""


@dataclass(slots=True)
class TabRecord:
    """Accumulated verdicts for a tab that was suspicious at creation.

    Conditions only ever flip from False to True.
    """

    condition1: bool = True
    condition2: bool = False
    condition3: bool = False
    scan_requested: bool = False

    @property
    def should_close(self) -> bool:
        return self.condition1 and (self.condition2 or self.condition3)

    def mark_spam(self, value: bool = True) -> None:
        self.condition2 = self.condition2 or bool(value)

    def mark_affiliate(self, value: bool = True) -> None:
        self.condition3 = self.condition3 or bool(value)


@dataclass(frozen=True, slots=True)
class PageScan:
    """Lightweight page content extracted after load."""

    url: str = ""
    title: str = ""
    meta_description: str = ""
    text_content: str = ""


@dataclass(frozen=True, slots=True)
class ClosedTab:
    """Undo buffer entry for the most recent automatic closure."""

    url: str
    domain: str = ""
