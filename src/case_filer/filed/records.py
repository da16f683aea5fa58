"""Local filing records, deferred filings and uploaded document links."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from ..core.datetime_utils import utcnow
from ..core.errors import StorageError
from ..core.interfaces import KeyValueBackend
from ..core.models import FilingRecord, PendingFiling, UploadedDocument
from ..storage import codec
from ..storage.keys import StorageKeys
from ..storage.tiered import TieredStorage

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 10
MAX_UPLOADED_LINKS = 25


class FilingRecordStore:
    """Per-item record that an email was filed, kept in one bounded blob.

    Records are cleared by writing the ``sent=False`` sentinel so a later
    read can tell "explicitly unfiled" from "never seen".
    """

    def __init__(
        self,
        storage: TieredStorage,
        keys: StorageKeys,
        *,
        max_entries: int = DEFAULT_MAX_RECORDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._keys = keys
        self._key = keys.filing_records
        self._max_entries = max_entries
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _blob(self) -> dict[str, tuple[FilingRecord, datetime]]:
        return codec.filing_record_blob_from_dict(await self._storage.read_json(self._key))

    async def load(self, item_key: str | None) -> FilingRecord | None:
        """Return the record for ``item_key``, falling back to the legacy layout."""
        if not item_key:
            return None
        hit = (await self._blob()).get(item_key)
        if hit is not None:
            return hit[0]
        legacy = await self._storage.read_json(self._keys.legacy_filing_record(item_key))
        return codec.filing_record_from_dict(legacy)

    async def save(self, item_key: str | None, record: FilingRecord) -> None:
        if not item_key:
            return
        async with self._lock:
            blob = await self._blob()
            blob[item_key] = (record, self._clock())
            if len(blob) > self._max_entries:
                ranked = sorted(blob.items(), key=lambda item: item[1][1], reverse=True)
                blob = dict(ranked[: self._max_entries])
            await self._storage.write_json(self._key, codec.filing_record_blob_to_dict(blob))
        LOGGER.debug("Saved filing record for %s (filed=%s)", item_key, record.is_filed)

    async def clear(self, item_key: str | None) -> None:
        """Write the cleared sentinel and drop any legacy record."""
        if not item_key:
            return
        await self.save(item_key, FilingRecord.cleared())
        await self._storage.remove(self._keys.legacy_filing_record(item_key))


class PendingFilingStore:
    """Single deferred filing awaiting user confirmation."""

    def __init__(self, storage: TieredStorage, keys: StorageKeys) -> None:
        self._storage = storage
        self._key = keys.pending_filing

    async def get(self) -> PendingFiling | None:
        return codec.pending_from_dict(await self._storage.read_json(self._key))

    async def put(self, pending: PendingFiling) -> None:
        await self._storage.write_json(self._key, codec.pending_to_dict(pending))
        LOGGER.info("Deferred filing to case %s until confirmed", pending.case_id)

    async def clear(self) -> None:
        await self._storage.remove(self._key)


class UploadedLinksStore:
    """Documents uploaded for each filed item, newest email document first.

    Kept in the local backend only, one key per item, so they never count
    against the roaming store's quota.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        keys: StorageKeys,
        *,
        max_entries: int = MAX_UPLOADED_LINKS,
    ) -> None:
        self._backend = backend
        self._keys = keys
        self._max_entries = max_entries

    async def load(self, item_key: str | None) -> list[UploadedDocument]:
        if not item_key:
            return []
        try:
            raw = await self._backend.get(self._keys.uploaded_links(item_key))
        except (StorageError, OSError) as exc:
            LOGGER.warning("Reading uploaded documents for %s failed: %s", item_key, exc)
            return []
        return codec.uploaded_links_from_list(codec.loads(raw))

    async def merge(
        self, item_key: str | None, documents: Sequence[UploadedDocument]
    ) -> list[UploadedDocument]:
        """Prepend ``documents``; a new email document replaces the previous one."""
        if not item_key:
            return []
        new_ids = {document.id for document in documents}
        replaces_email = any(document.kind == "email" for document in documents)
        kept = [
            document
            for document in await self.load(item_key)
            if document.id not in new_ids and not (replaces_email and document.kind == "email")
        ]
        merged = [*documents, *kept][: self._max_entries]
        try:
            await self._backend.set(
                self._keys.uploaded_links(item_key),
                codec.dumps(codec.uploaded_links_to_list(merged)),
            )
        except (StorageError, OSError) as exc:
            LOGGER.warning("Saving uploaded documents for %s failed: %s", item_key, exc)
        return merged

    async def clear(self, item_key: str | None) -> None:
        if not item_key:
            return
        try:
            await self._backend.remove(self._keys.uploaded_links(item_key))
        except (StorageError, OSError) as exc:
            LOGGER.warning("Clearing uploaded documents for %s failed: %s", item_key, exc)


__all__ = ["FilingRecordStore", "PendingFilingStore", "UploadedLinksStore"]
