"""Determine whether the open email has already been filed."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..core.datetime_utils import utcnow
from ..core.errors import RemoteAuthorityError
from ..core.interfaces import RemoteAuthority
from ..core.models import (
    CurrentItemContext,
    FiledCacheEntry,
    FilingRecord,
    FilingState,
    Resolution,
)
from ..suggest.text import normalize_subject
from .cache import FiledCache, subject_key
from .labels import LabelState, LabelSynchronizer
from .records import FilingRecordStore, UploadedLinksStore

LOGGER = logging.getLogger(__name__)

MAX_CHECKED_DOCUMENTS = 5


class FiledStatusResolver:
    """Reconciles the local cache, filing records, the remote authority and labels.

    Evidence is consulted in decreasing order of speed: cache by conversation
    id, cache by subject, the local filing record, then the remote authority.
    The label is read independently and can only turn a filed finding into
    an explicit "don't file" override. Filed findings are finally checked
    against the remote documents so deleted documents are noticed.
    """

    def __init__(
        self,
        cache: FiledCache,
        records: FilingRecordStore,
        remote: RemoteAuthority | None = None,
        labels: LabelSynchronizer | None = None,
        *,
        links: UploadedLinksStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._records = records
        self._remote = remote
        self._labels = labels
        self._links = links
        self._clock = clock
        self._known_filed: dict[str, Resolution] = {}

    async def resolve(self, context: CurrentItemContext) -> Resolution:
        """Resolve the filing state of ``context``."""
        resolution = await self._resolve_evidence(context)
        resolution = await self._apply_labels(resolution)
        if resolution.state is FilingState.FILED:
            resolution = await self._check_documents(context, resolution)

        if resolution.state is FilingState.FILED:
            self._known_filed[resolution.item_key] = resolution
        elif resolution.state in (FilingState.UNFILED, FilingState.DELETED):
            self._known_filed.pop(resolution.item_key, None)
        LOGGER.debug(
            "Resolved %s as %s via %s", resolution.item_key, resolution.state, resolution.source
        )
        return resolution

    async def mark_filed(
        self,
        context: CurrentItemContext,
        case_id: str,
        document_id: str,
        *,
        case_name: str | None = None,
        case_key: str | None = None,
        revision_number: int | None = None,
        record_id: str | None = None,
        filed_by: str | None = None,
    ) -> Resolution:
        """Record that the user just filed ``context``."""
        now = self._clock()
        await self._records.save(
            context.item_key,
            FilingRecord(
                sent=True,
                case_id=case_id,
                document_id=document_id,
                revision_number=revision_number,
                record_id=record_id,
                filed_at=now,
                filed_by=filed_by,
            ),
        )
        entry = FiledCacheEntry(
            case_id=case_id,
            document_id=document_id,
            subject=context.subject,
            filed_at=now,
            case_name=case_name,
            case_key=case_key,
        )
        if context.conversation_id:
            await self._cache.put(entry, context.conversation_id)
        else:
            await self._cache.put_by_subject(entry)
        if self._labels is not None:
            await self._labels.toggle(True)

        resolution = Resolution(
            state=FilingState.FILED,
            item_key=context.item_key,
            case_id=case_id,
            document_id=document_id,
            source="user",
        )
        self._known_filed[resolution.item_key] = resolution
        return resolution

    async def mark_unfiled(self, context: CurrentItemContext) -> Resolution:
        """Record the user's "don't file" choice; the evidence itself is kept."""
        if self._labels is not None:
            await self._labels.toggle(False)
        self._known_filed.pop(context.item_key, None)
        return Resolution(
            state=FilingState.UNFILED_OVERRIDE, item_key=context.item_key, source="user"
        )

    # Evidence ----------------------------------------------------------------
    async def _resolve_evidence(self, context: CurrentItemContext) -> Resolution:
        item_key = context.item_key
        conversation_id = context.conversation_id.strip()

        entry = await self._cache.get(conversation_id)
        if entry is not None and self._subject_matches(entry, context):
            return self._filed(item_key, entry.case_id, entry.document_id, "cache")

        by_subject = subject_key(context.subject)
        entry = await self._cache.get(by_subject)
        if entry is not None and self._subject_matches(entry, context):
            if conversation_id:
                await self._cache.upgrade_key(by_subject, conversation_id)
            return self._filed(item_key, entry.case_id, entry.document_id, "cache_subject")

        record = await self._records.load(item_key)
        if record is not None and record.is_filed:
            return self._filed(item_key, record.case_id, record.document_id, "record")

        if self._remote is None:
            return Resolution(state=FilingState.UNFILED, item_key=item_key)

        try:
            filing = await self._remote.find_filing(conversation_id, context.subject)
        except RemoteAuthorityError as exc:
            previous = self._known_filed.get(item_key)
            if previous is not None:
                LOGGER.warning("Remote status check failed, keeping filed state: %s", exc)
                return previous
            LOGGER.warning("Remote status check failed: %s", exc)
            return Resolution(state=FilingState.UNKNOWN, item_key=item_key, source="remote")

        if filing is None:
            return Resolution(state=FilingState.UNFILED, item_key=item_key, source="remote")

        backfill = FiledCacheEntry(
            case_id=filing.case_id,
            document_id=filing.document_id,
            subject=filing.subject or context.subject,
            filed_at=self._clock(),
            case_name=filing.case_name,
            case_key=filing.case_key,
        )
        primary_key = conversation_id or by_subject
        if primary_key:
            await self._cache.put(backfill, primary_key)
        return self._filed(item_key, filing.case_id, filing.document_id, "remote")

    @staticmethod
    def _subject_matches(entry: FiledCacheEntry, context: CurrentItemContext) -> bool:
        current = normalize_subject(context.subject)
        cached = normalize_subject(entry.subject)
        if not current or not cached:
            return True
        if current != cached:
            LOGGER.debug("Ignoring cache hit for a different subject")
            return False
        return True

    @staticmethod
    def _filed(
        item_key: str, case_id: str | None, document_id: str | None, source: str
    ) -> Resolution:
        return Resolution(
            state=FilingState.FILED,
            item_key=item_key,
            case_id=case_id,
            document_id=document_id or None,
            source=source,
        )

    # Labels and documents ----------------------------------------------------
    async def _apply_labels(self, resolution: Resolution) -> Resolution:
        if self._labels is None:
            return resolution
        observed = await self._labels.read()
        if observed is LabelState.UNFILED:
            return Resolution(
                state=FilingState.UNFILED_OVERRIDE,
                item_key=resolution.item_key,
                case_id=resolution.case_id,
                document_id=resolution.document_id,
                source="label",
            )
        if observed is not LabelState.BOTH:
            return resolution
        if resolution.state is FilingState.UNKNOWN:
            LOGGER.warning(
                "Both filing labels present on %s and status unknown; clearing both",
                resolution.item_key,
            )
            await self._labels.clear()
            return resolution
        LOGGER.warning(
            "Both filing labels present on %s; re-applying %s",
            resolution.item_key,
            "filed" if resolution.is_filed else "unfiled",
        )
        await self._labels.toggle(resolution.is_filed)
        return resolution

    async def _document_ids_to_check(self, resolution: Resolution) -> list[str]:
        candidates = [resolution.document_id or ""]
        if self._links is not None:
            uploaded = await self._links.load(resolution.item_key)
            candidates.extend(document.id for document in uploaded)
        ids: list[str] = []
        for document_id in candidates:
            if document_id and document_id not in ids:
                ids.append(document_id)
        return ids[:MAX_CHECKED_DOCUMENTS]

    async def _check_documents(
        self, context: CurrentItemContext, resolution: Resolution
    ) -> Resolution:
        if self._remote is None:
            return resolution
        document_ids = await self._document_ids_to_check(resolution)
        if not document_ids:
            return resolution
        for document_id in document_ids:
            try:
                exists = await self._remote.document_exists(document_id)
            except RemoteAuthorityError as exc:
                LOGGER.info("Document check inconclusive, keeping filed state: %s", exc)
                return resolution
            if exists:
                return resolution

        LOGGER.info("None of the %d filed document(s) exist any more", len(document_ids))
        await self._cache.remove(context.conversation_id.strip())
        await self._cache.remove(subject_key(context.subject))
        await self._records.clear(resolution.item_key)
        if self._links is not None:
            await self._links.clear(resolution.item_key)
        return Resolution(
            state=FilingState.DELETED,
            item_key=resolution.item_key,
            case_id=resolution.case_id,
            document_id=resolution.document_id,
            source=resolution.source,
        )


__all__ = ["FiledStatusResolver"]
