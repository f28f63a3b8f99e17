# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SQLite-backed settings repository.

Uses ``aiosqlite`` with a single long-lived connection.  WAL journal mode;
schema versioned via ``PRAGMA user_version``.  A domain appears in exactly
one list because ``domains.domain`` is the primary key.
"""

from __future__ import annotations

from collections.abc import Iterable
from contextlib import suppress
from pathlib import Path

import aiosqlite

from .errors import StorageError
from .repository import GuardSettings, new_installation_id

_SCHEMA_VERSION = 1

_LIST_BLOCKED = "blocked"
_LIST_SAFE = "safe"

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_CREATE_SETTINGS = """
CREATE TABLE IF NOT EXISTS settings (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_CREATE_DOMAINS = """
CREATE TABLE IF NOT EXISTS domains (
    domain    TEXT PRIMARY KEY,
    list_name TEXT NOT NULL CHECK (list_name IN ('blocked', 'safe'))
)
"""


class SqliteSettingsRepository:
    """SQLite implementation of ``SettingsRepository``.

    Use the ``create()`` async classmethod factory; never instantiate directly.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    @classmethod
    async def create(cls, db_path: str | Path) -> SqliteSettingsRepository:
        """Open (or create) the database and initialise the schema.

        Resolves ``~`` and creates parent directories automatically.

        Raises:
            StorageError: If the database has a newer schema version or cannot be opened.
        """
        path = Path(db_path).expanduser().resolve()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(str(path))
        except (OSError, aiosqlite.Error) as e:
            raise StorageError(f"cannot open settings database {path}: {e}") from e

        try:
            await db.execute("PRAGMA journal_mode = WAL")
            cursor = await db.execute("PRAGMA user_version")
            row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > _SCHEMA_VERSION:
                raise StorageError(
                    f"Database schema version {current_version} is newer than supported version {_SCHEMA_VERSION}"
                )

            if current_version < _SCHEMA_VERSION:
                await db.execute(_CREATE_SETTINGS)
                await db.execute(_CREATE_DOMAINS)
                await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
                await db.commit()
        except BaseException:
            await db.close()
            raise

        return cls(db)

    async def _get_setting(self, key: str) -> str | None:
        cursor = await self._db.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row[0] if row else None

    async def _set_setting(self, key: str, value: str) -> None:
        await self._db.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value))

    async def installation_id(self) -> str:
        """Return the stored installation id, creating one on first use."""
        stored = await self._get_setting("installation_id")
        if stored:
            return stored
        install_id = new_installation_id()
        await self._set_setting("installation_id", install_id)
        await self._db.commit()
        return install_id

    async def load(self) -> GuardSettings:
        try:
            enabled_raw = await self._get_setting("enabled")
            cursor = await self._db.execute("SELECT domain, list_name FROM domains")
            rows = await cursor.fetchall()
            install_id = await self.installation_id()
        except aiosqlite.Error as e:
            raise StorageError(f"cannot load settings: {e}") from e

        return GuardSettings(
            enabled=enabled_raw != "0",
            blocked_domains=frozenset(r[0] for r in rows if r[1] == _LIST_BLOCKED),
            safe_domains=frozenset(r[0] for r in rows if r[1] == _LIST_SAFE),
            installation_id=install_id,
        )

    async def save_enabled(self, enabled: bool) -> None:
        try:
            await self._set_setting("enabled", "1" if enabled else "0")
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"cannot save enabled flag: {e}") from e

    async def save_domain_lists(self, blocked: Iterable[str], safe: Iterable[str]) -> None:
        """Replace both lists in one transaction. Safe wins on overlap."""
        rows = {d: _LIST_BLOCKED for d in blocked}
        rows.update({d: _LIST_SAFE for d in safe})
        try:
            await self._db.execute("DELETE FROM domains")
            await self._db.executemany(
                "INSERT INTO domains (domain, list_name) VALUES (?, ?)",
                sorted(rows.items()),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            with suppress(Exception):
                await self._db.rollback()
            raise StorageError(f"cannot save domain lists: {e}") from e

    async def close(self) -> None:
        """Close the database connection. Idempotent."""
        with suppress(Exception):
            await self._db.close()
