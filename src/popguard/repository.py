# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Settings repository: protocol-based persistence for user settings.

Defines ``SettingsRepository`` (enabled flag, block/safe domain lists,
installation id) and ``InMemorySettingsRepository`` for tests and
ephemeral runs.  ``repository_sqlite.SqliteSettingsRepository`` is the
persistent implementation.

Settings are loaded once at startup and written back on every mutation.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GuardSettings:
    """Persisted user settings as loaded at startup."""

    enabled: bool = True
    blocked_domains: frozenset[str] = field(default_factory=frozenset)
    safe_domains: frozenset[str] = field(default_factory=frozenset)
    installation_id: str = ""


def new_installation_id() -> str:
    """Random anonymous id; not derived from hardware or user identity."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class SettingsRepository(Protocol):
    """Interface for settings storage (in-memory or SQLite)."""

    async def load(self) -> GuardSettings: ...

    async def save_enabled(self, enabled: bool) -> None: ...

    async def save_domain_lists(self, blocked: Iterable[str], safe: Iterable[str]) -> None: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemorySettingsRepository:
    """Non-persistent repository. Suitable for tests and throwaway sessions."""

    def __init__(self, settings: GuardSettings | None = None) -> None:
        settings = settings or GuardSettings()
        self._enabled = settings.enabled
        self._blocked = set(settings.blocked_domains)
        self._safe = set(settings.safe_domains)
        self._installation_id = settings.installation_id or new_installation_id()
        self.writes = 0

    async def load(self) -> GuardSettings:
        return GuardSettings(
            enabled=self._enabled,
            blocked_domains=frozenset(self._blocked),
            safe_domains=frozenset(self._safe),
            installation_id=self._installation_id,
        )

    async def save_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        self.writes += 1

    async def save_domain_lists(self, blocked: Iterable[str], safe: Iterable[str]) -> None:
        self._blocked = set(blocked)
        self._safe = set(safe)
        self.writes += 1

    async def close(self) -> None:
        """No-op for in-memory repository."""
