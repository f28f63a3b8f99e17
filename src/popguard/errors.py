# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PopGuard exception hierarchy.

All PopGuard-specific errors inherit from PopGuardError. They are raised by
adapters (storage, host, classifier) and caught at the engine boundary, so
event handlers never propagate them to the host.
"""

from __future__ import annotations


class PopGuardError(Exception):
    """Base exception for all PopGuard errors."""


class ConfigError(PopGuardError):
    """Configuration file or environment override could not be applied."""


class StorageError(PopGuardError):
    """Settings repository read or write failure."""


class HostError(PopGuardError):
    """Browser host operation failed (tab gone, browser closed, etc.)."""

    def __init__(self, message: str, *, tab_id: int | None = None) -> None:
        super().__init__(message)
        self.tab_id = tab_id


class ClassifierError(PopGuardError):
    """External content classifier returned an unusable response."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
