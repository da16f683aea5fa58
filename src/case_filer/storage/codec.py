"""Normalisation of persisted JSON shapes at the storage boundary.

Every shape has exactly one ``*_from_dict`` reader, which tolerates the
spellings and value types older payloads used (camelCase field names,
numeric document ids, string revision numbers, epoch-millisecond
timestamps), and one ``*_to_dict`` writer producing the current layout.
Readers never raise: unusable input yields an empty value or ``None``.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from ..core.datetime_utils import coerce_timestamp, serialize_datetime
from ..core.models import (
    CaseStats,
    ComposeFilingIntent,
    FiledCacheEntry,
    FilingRecord,
    HistoryStats,
    PendingFiling,
    RecentCase,
    RecipientHistoryEntry,
    ThreadMapping,
    UploadedDocument,
)

LOGGER = logging.getLogger(__name__)

HISTORY_VERSION = 1
SAVED_AT_FIELD = "_saved_at"

_EPOCH = datetime.fromtimestamp(0, tz=UTC)


# JSON text ------------------------------------------------------------------
def loads(raw: str | None) -> Any | None:
    """Decode stored JSON text; corrupt or empty text yields ``None``."""
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        LOGGER.warning("Discarding unreadable stored payload (%d chars)", len(raw))
        return None


def dumps(payload: Any) -> str:
    """Encode a payload compactly."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


# Field helpers --------------------------------------------------------------
def _pick(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return None


def _text(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return None


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if math.isfinite(number) and number.is_integer() else None
    return None


def _count(value: Any) -> int:
    number = _int(value)
    return max(0, number) if number is not None else 0


# History --------------------------------------------------------------------
def _case_stats_map(raw: Any) -> dict[str, dict[str, CaseStats]]:
    if not isinstance(raw, Mapping):
        return {}
    result: dict[str, dict[str, CaseStats]] = {}
    for entity, per_case in raw.items():
        if not isinstance(per_case, Mapping):
            continue
        stats: dict[str, CaseStats] = {}
        for case_id, meta in per_case.items():
            if not case_id or not isinstance(meta, Mapping):
                continue
            stats[str(case_id)] = CaseStats(
                count=_count(meta.get("count")),
                last_seen_at=coerce_timestamp(_pick(meta, "last_seen_at", "lastSeenAt")),
            )
        if stats:
            result[str(entity)] = stats
    return result


def history_from_dict(raw: Any) -> HistoryStats:
    """Read the history document; wrong versions and junk read as empty."""
    if not isinstance(raw, Mapping):
        return HistoryStats()
    if raw.get("version") != HISTORY_VERSION:
        LOGGER.info("Ignoring history document with version %r", raw.get("version"))
        return HistoryStats()

    threads: dict[str, ThreadMapping] = {}
    raw_threads = _pick(raw, "thread_to_case", "threadToCase")
    if isinstance(raw_threads, Mapping):
        for key, meta in raw_threads.items():
            if not isinstance(meta, Mapping):
                continue
            case_id = _text(_pick(meta, "case_id", "caseId"))
            if not case_id:
                continue
            threads[str(key)] = ThreadMapping(
                case_id=case_id,
                last_seen_at=coerce_timestamp(_pick(meta, "last_seen_at", "lastSeenAt")),
            )

    recent: list[RecentCase] = []
    raw_recent = _pick(raw, "recent_cases", "recentCases")
    if isinstance(raw_recent, list):
        for item in raw_recent:
            if not isinstance(item, Mapping):
                continue
            case_id = _text(_pick(item, "case_id", "caseId"))
            if not case_id:
                continue
            recent.append(
                RecentCase(
                    case_id=case_id,
                    last_used_at=coerce_timestamp(_pick(item, "last_used_at", "lastUsedAt")),
                    use_count=_count(_pick(item, "use_count", "useCount")),
                )
            )

    return HistoryStats(
        thread_to_case=threads,
        sender_to_case=_case_stats_map(_pick(raw, "sender_to_case", "senderToCase")),
        domain_to_case=_case_stats_map(_pick(raw, "domain_to_case", "domainToCase")),
        recent_cases=recent,
    )


def _case_stats_map_to_dict(stats: Mapping[str, Mapping[str, CaseStats]]) -> dict[str, Any]:
    return {
        entity: {
            case_id: {
                "count": meta.count,
                "last_seen_at": serialize_datetime(meta.last_seen_at),
            }
            for case_id, meta in per_case.items()
        }
        for entity, per_case in stats.items()
    }


def history_to_dict(stats: HistoryStats) -> dict[str, Any]:
    """Serialise the history document."""
    return {
        "version": HISTORY_VERSION,
        "thread_to_case": {
            key: {
                "case_id": mapping.case_id,
                "last_seen_at": serialize_datetime(mapping.last_seen_at),
            }
            for key, mapping in stats.thread_to_case.items()
        },
        "sender_to_case": _case_stats_map_to_dict(stats.sender_to_case),
        "domain_to_case": _case_stats_map_to_dict(stats.domain_to_case),
        "recent_cases": [
            {
                "case_id": item.case_id,
                "last_used_at": serialize_datetime(item.last_used_at),
                "use_count": item.use_count,
            }
            for item in stats.recent_cases
        ],
    }


# Filed cache ----------------------------------------------------------------
def cache_entry_from_dict(raw: Any) -> FiledCacheEntry | None:
    """Read one cache entry; entries without a case are dropped."""
    if not isinstance(raw, Mapping):
        return None
    case_id = _text(_pick(raw, "case_id", "caseId"))
    if not case_id:
        return None
    return FiledCacheEntry(
        case_id=case_id,
        document_id=_text(_pick(raw, "document_id", "documentId")) or "",
        subject=str(raw.get("subject") or ""),
        filed_at=coerce_timestamp(_pick(raw, "filed_at", "filedAt")) or _EPOCH,
        case_name=_text(_pick(raw, "case_name", "caseName")),
        case_key=_text(_pick(raw, "case_key", "caseKey")),
    )


def cache_entry_to_dict(entry: FiledCacheEntry) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "case_id": entry.case_id,
        "document_id": entry.document_id,
        "subject": entry.subject,
        "filed_at": serialize_datetime(entry.filed_at),
    }
    if entry.case_name is not None:
        payload["case_name"] = entry.case_name
    if entry.case_key is not None:
        payload["case_key"] = entry.case_key
    return payload


def cache_blob_from_dict(raw: Any) -> dict[str, FiledCacheEntry]:
    if not isinstance(raw, Mapping):
        return {}
    entries: dict[str, FiledCacheEntry] = {}
    for key, value in raw.items():
        entry = cache_entry_from_dict(value)
        if entry is not None and key:
            entries[str(key)] = entry
    return entries


def cache_blob_to_dict(entries: Mapping[str, FiledCacheEntry]) -> dict[str, Any]:
    return {key: cache_entry_to_dict(entry) for key, entry in entries.items()}


# Filing records -------------------------------------------------------------
def filing_record_from_dict(raw: Any) -> FilingRecord | None:
    """Read a filing record written by any earlier layout."""
    if not isinstance(raw, Mapping):
        return None
    return FilingRecord(
        sent=bool(raw.get("sent")),
        case_id=_text(_pick(raw, "case_id", "caseId")),
        document_id=_text(_pick(raw, "document_id", "documentId")),
        revision_number=_int(_pick(raw, "revision_number", "revisionNumber")),
        record_id=_text(_pick(raw, "record_id", "singlecaseRecordId", "recordId")),
        filed_at=coerce_timestamp(_pick(raw, "filed_at", "atIso")),
        filed_by=_text(_pick(raw, "filed_by", "filedBy")),
    )


def filing_record_to_dict(record: FilingRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {"sent": record.sent}
    if record.case_id:
        payload["case_id"] = record.case_id
    if record.document_id:
        payload["document_id"] = record.document_id
    if record.revision_number is not None:
        payload["revision_number"] = record.revision_number
    if record.record_id:
        payload["record_id"] = record.record_id
    if record.filed_at is not None:
        payload["filed_at"] = serialize_datetime(record.filed_at)
    if record.filed_by:
        payload["filed_by"] = record.filed_by
    return payload


def filing_record_blob_from_dict(
    raw: Any,
) -> dict[str, tuple[FilingRecord, datetime]]:
    """Read the record blob as ``{item_key: (record, saved_at)}``."""
    if not isinstance(raw, Mapping):
        return {}
    entries: dict[str, tuple[FilingRecord, datetime]] = {}
    for key, value in raw.items():
        record = filing_record_from_dict(value)
        if record is None or not key:
            continue
        saved_at = coerce_timestamp(_pick(value, SAVED_AT_FIELD, "_savedAt")) or _EPOCH
        entries[str(key)] = (record, saved_at)
    return entries


def filing_record_blob_to_dict(
    entries: Mapping[str, tuple[FilingRecord, datetime]],
) -> dict[str, Any]:
    blob: dict[str, Any] = {}
    for key, (record, saved_at) in entries.items():
        payload = filing_record_to_dict(record)
        payload[SAVED_AT_FIELD] = serialize_datetime(saved_at)
        blob[key] = payload
    return blob


# Compose intents ------------------------------------------------------------
def intent_from_dict(raw: Any) -> ComposeFilingIntent | None:
    if not isinstance(raw, Mapping):
        return None
    case_id = _text(_pick(raw, "case_id", "caseId"))
    if not case_id:
        return None
    return ComposeFilingIntent(
        case_id=case_id,
        auto_file_on_send=bool(_pick(raw, "auto_file_on_send", "autoFileOnSend")),
        base_case_id=_text(_pick(raw, "base_case_id", "baseCaseId")),
        base_document_id=_text(_pick(raw, "base_document_id", "baseDocumentId")),
        filing_mode=_text(_pick(raw, "filing_mode", "filingMode")),
        duplicates=_text(raw.get("duplicates")),
    )


def intent_to_dict(intent: ComposeFilingIntent) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "case_id": intent.case_id,
        "auto_file_on_send": intent.auto_file_on_send,
    }
    if intent.base_case_id:
        payload["base_case_id"] = intent.base_case_id
    if intent.base_document_id:
        payload["base_document_id"] = intent.base_document_id
    if intent.filing_mode:
        payload["filing_mode"] = intent.filing_mode
    if intent.duplicates:
        payload["duplicates"] = intent.duplicates
    return payload


# Pending filing -------------------------------------------------------------
def pending_from_dict(raw: Any) -> PendingFiling | None:
    if not isinstance(raw, Mapping):
        return None
    case_id = _text(_pick(raw, "case_id", "caseId"))
    if not case_id:
        return None
    return PendingFiling(
        case_id=case_id,
        subject=str(raw.get("subject") or ""),
        conversation_id=_text(_pick(raw, "conversation_id", "conversationId")) or "",
        sent_at=coerce_timestamp(_pick(raw, "sent_at", "sentAt")) or _EPOCH,
    )


def pending_to_dict(pending: PendingFiling) -> dict[str, Any]:
    return {
        "case_id": pending.case_id,
        "subject": pending.subject,
        "conversation_id": pending.conversation_id,
        "sent_at": serialize_datetime(pending.sent_at),
    }


# Uploaded links -------------------------------------------------------------
def uploaded_links_from_list(raw: Any) -> list[UploadedDocument]:
    """Read the uploaded document list kept for one item."""
    if not isinstance(raw, list):
        return []
    documents: list[UploadedDocument] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        document_id = _text(item.get("id"))
        if not document_id:
            continue
        documents.append(
            UploadedDocument(
                id=document_id,
                name=str(item.get("name") or ""),
                kind="attachment" if item.get("kind") == "attachment" else "email",
                uploaded_at=coerce_timestamp(_pick(item, "uploaded_at", "atIso")),
            )
        )
    return documents


def uploaded_links_to_list(documents: list[UploadedDocument]) -> list[dict[str, Any]]:
    return [
        {
            "id": document.id,
            "name": document.name,
            "kind": document.kind,
            "uploaded_at": serialize_datetime(document.uploaded_at),
        }
        for document in documents
    ]


# Recipient history ----------------------------------------------------------
def recipient_history_from_dict(raw: Any) -> dict[str, RecipientHistoryEntry]:
    if not isinstance(raw, Mapping):
        return {}
    entries: dict[str, RecipientHistoryEntry] = {}
    for key, value in raw.items():
        if not isinstance(value, Mapping):
            continue
        email = (_text(value.get("email")) or str(key)).lower()
        case_id = _text(_pick(value, "case_id", "caseId"))
        if not email or not case_id:
            continue
        entries[email] = RecipientHistoryEntry(
            email=email,
            case_id=case_id,
            count=_count(value.get("count")),
            last_used_at=coerce_timestamp(_pick(value, "last_used_at", "lastUsedIso")),
        )
    return entries


def recipient_history_to_dict(
    entries: Mapping[str, RecipientHistoryEntry],
) -> dict[str, Any]:
    return {
        email: {
            "email": entry.email,
            "case_id": entry.case_id,
            "count": entry.count,
            "last_used_at": serialize_datetime(entry.last_used_at),
        }
        for email, entry in entries.items()
    }


__all__ = [
    "HISTORY_VERSION",
    "cache_blob_from_dict",
    "cache_blob_to_dict",
    "cache_entry_from_dict",
    "cache_entry_to_dict",
    "dumps",
    "filing_record_blob_from_dict",
    "filing_record_blob_to_dict",
    "filing_record_from_dict",
    "filing_record_to_dict",
    "history_from_dict",
    "history_to_dict",
    "intent_from_dict",
    "intent_to_dict",
    "loads",
    "pending_from_dict",
    "pending_to_dict",
    "recipient_history_from_dict",
    "recipient_history_to_dict",
    "uploaded_links_from_list",
    "uploaded_links_to_list",
]
