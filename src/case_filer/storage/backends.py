"""Key-value storage backends with different durability guarantees."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from threading import Lock
from types import TracebackType

from ..core.datetime_utils import serialize_datetime, utcnow
from ..core.errors import StorageError, StorageQuotaError, StorageUnavailableError

LOGGER = logging.getLogger(__name__)


class SqliteKeyValueStore:
    """Extension-runtime store: durable, fast and reliable.

    Blocking SQLite calls are pushed onto a worker thread so the event loop
    only suspends at storage boundaries.
    """

    name = "runtime"

    def __init__(self, db_path: Path | str) -> None:
        """Remember the database location; the connection opens lazily."""
        self._db_path = Path(db_path)
        self._connection: sqlite3.Connection | None = None
        self._lock = Lock()
        self._failed = False

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteKeyValueStore:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # KeyValueBackend API -----------------------------------------------------
    def is_available(self) -> bool:
        """Open the database on first use; unavailable after a failed open."""
        if self._failed:
            return False
        try:
            self._connect()
        except StorageUnavailableError:
            return False
        return True

    async def get(self, key: str) -> str | None:
        """Return the stored value for ``key``."""
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str) -> None:
        """Insert or replace the value for ``key``."""
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove(self, key: str) -> None:
        """Delete ``key`` if it exists."""
        await asyncio.to_thread(self._remove_sync, key)

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # Internal helpers --------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is not None:
                return self._connection
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                connection = sqlite3.connect(self._db_path, check_same_thread=False)
                with connection:
                    connection.execute(
                        """
                        CREATE TABLE IF NOT EXISTS kv_store (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TEXT NOT NULL
                        )
                        """
                    )
            except (sqlite3.Error, OSError) as exc:
                self._failed = True
                LOGGER.warning("Runtime store unavailable at %s: %s", self._db_path, exc)
                raise StorageUnavailableError(str(exc)) from exc
            self._connection = connection
            return connection

    def _get_sync(self, key: str) -> str | None:
        connection = self._connect()
        try:
            row = connection.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Runtime store read failed for {key}: {exc}") from exc
        return None if row is None else str(row[0])

    def _set_sync(self, key: str, value: str) -> None:
        connection = self._connect()
        try:
            with connection:
                connection.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value=excluded.value,
                        updated_at=excluded.updated_at
                    """,
                    (key, value, serialize_datetime(utcnow())),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Runtime store write failed for {key}: {exc}") from exc

    def _remove_sync(self, key: str) -> None:
        connection = self._connect()
        try:
            with connection:
                connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageError(f"Runtime store delete failed for {key}: {exc}") from exc


class RoamingSettingsStore:
    """Legacy per-profile settings document that syncs to a server.

    Every value is limited to ``value_limit`` bytes; larger payloads are
    rejected with :class:`StorageQuotaError`, which mirrors the server
    silently refusing oversized settings. ``sync_delay`` emulates the save
    round-trip after each write.
    """

    name = "roaming"

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        value_limit: int = 32 * 1024,
        sync_delay: float = 0.0,
        enabled: bool = True,
    ) -> None:
        """Load the settings document from ``path`` when it exists."""
        self._path = Path(path) if path is not None else None
        self._value_limit = value_limit
        self._sync_delay = sync_delay
        self._enabled = enabled
        self._data: dict[str, str] = self._load()

    def is_available(self) -> bool:
        """Whether the host exposes roaming settings."""
        return self._enabled

    async def get(self, key: str) -> str | None:
        """Return the synced value for ``key``."""
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` and save the document."""
        size = len(value.encode("utf-8"))
        if size > self._value_limit:
            raise StorageQuotaError(
                f"Value for {key} is {size} bytes, above the {self._value_limit} byte limit"
            )
        self._data[key] = value
        await self._save()

    async def remove(self, key: str) -> None:
        """Remove ``key`` and save the document."""
        if self._data.pop(key, None) is not None:
            await self._save()

    def _load(self) -> dict[str, str]:
        if self._path is None or not self._path.is_file():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable roaming settings %s: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(key): value for key, value in payload.items() if isinstance(value, str)}

    async def _save(self) -> None:
        if self._path is not None:
            try:
                await asyncio.to_thread(self._write_document)
            except OSError as exc:
                raise StorageError(f"Roaming settings save failed: {exc}") from exc
        if self._sync_delay:
            await asyncio.sleep(self._sync_delay)

    def _write_document(self) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data), encoding="utf-8")


class MemoryStore:
    """Local fallback store without cross-session persistence."""

    name = "local"

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        """Seed the store with optional initial values."""
        self._data: dict[str, str] = dict(initial or {})

    def is_available(self) -> bool:
        """The local store is always usable."""
        return True

    async def get(self, key: str) -> str | None:
        """Return the value for ``key``."""
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        self._data[key] = value

    async def remove(self, key: str) -> None:
        """Forget ``key``."""
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Return stored keys, mainly for diagnostics."""
        return list(self._data)


__all__ = ["MemoryStore", "RoamingSettingsStore", "SqliteKeyValueStore"]
