"""Bounded local cache of where emails were filed."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from ..core.datetime_utils import ensure_utc
from ..core.models import FiledCacheEntry
from ..storage import codec
from ..storage.keys import StorageKeys
from ..storage.tiered import TieredStorage
from ..suggest.text import normalize_subject

LOGGER = logging.getLogger(__name__)

SUBJECT_KEY_PREFIX = "subj:"
DEFAULT_MAX_ENTRIES = 20


def subject_key(subject: str | None) -> str:
    """Cache key for a subject; ``""`` when the subject is blank."""
    normalized = normalize_subject(subject)
    return f"{SUBJECT_KEY_PREFIX}{normalized}" if normalized else ""


class FiledCache:
    """Maps conversation ids or subject keys to the filing they resolved to.

    The whole cache lives in one serialised blob. It is capped so that the
    blob stays well below the smallest backend's per-value ceiling, keeping
    the newest entries by ``filed_at``.
    """

    def __init__(
        self,
        storage: TieredStorage,
        keys: StorageKeys,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if not 1 <= max_entries <= 100:
            msg = f"max_entries must be between 1 and 100, got {max_entries}"
            raise ValueError(msg)
        self._storage = storage
        self._key = keys.filed_cache
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    async def entries(self) -> dict[str, FiledCacheEntry]:
        """Decode the cache blob; corruption reads as an empty cache."""
        return codec.cache_blob_from_dict(await self._storage.read_json(self._key))

    async def get(self, primary_key: str | None) -> FiledCacheEntry | None:
        if not primary_key:
            return None
        return (await self.entries()).get(primary_key)

    async def get_by_normalized_subject(self, subject: str | None) -> FiledCacheEntry | None:
        key = subject_key(subject)
        if not key:
            return None
        return (await self.entries()).get(key)

    async def put(self, entry: FiledCacheEntry, primary_key: str) -> bool:
        """Store ``entry`` under ``primary_key``; return whether it verified."""
        if not primary_key:
            LOGGER.warning("Skipping filed cache write without a key")
            return False
        entry = replace(entry, filed_at=ensure_utc(entry.filed_at))
        async with self._lock:
            entries = await self.entries()
            entries[primary_key] = entry
            return await self._write(entries, primary_key)

    async def put_by_subject(self, entry: FiledCacheEntry) -> str:
        """Store ``entry`` under its subject key and return that key."""
        key = subject_key(entry.subject)
        if not key:
            LOGGER.warning("Skipping filed cache write for a blank subject")
            return ""
        await self.put(entry, key)
        return key

    async def upgrade_key(self, from_subject_key: str, to_conversation_key: str) -> bool:
        """Copy a subject-keyed entry under a conversation id; the original stays."""
        if not from_subject_key or not to_conversation_key:
            return False
        async with self._lock:
            entries = await self.entries()
            entry = entries.get(from_subject_key)
            if entry is None:
                return False
            entries[to_conversation_key] = entry
            verified = await self._write(entries, to_conversation_key)
        if verified:
            LOGGER.info("Upgraded filed cache entry %s to conversation key", from_subject_key)
        return verified

    async def remove(self, primary_key: str | None) -> None:
        if not primary_key:
            return
        async with self._lock:
            entries = await self.entries()
            if entries.pop(primary_key, None) is None:
                return
            await self._storage.write_json(self._key, codec.cache_blob_to_dict(entries))
        LOGGER.debug("Removed filed cache entry %s", primary_key)

    async def _write(self, entries: dict[str, FiledCacheEntry], expected_key: str) -> bool:
        if len(entries) > self._max_entries:
            ranked = sorted(entries.items(), key=lambda item: item[1].filed_at, reverse=True)
            LOGGER.debug("Pruning filed cache from %d to %d entries", len(entries), self._max_entries)
            entries = dict(ranked[: self._max_entries])
        await self._storage.write_json(self._key, codec.cache_blob_to_dict(entries))

        verified = expected_key in await self.entries()
        if not verified:
            LOGGER.warning("Filed cache write for %s did not verify", expected_key)
        return verified


__all__ = ["FiledCache", "subject_key"]
