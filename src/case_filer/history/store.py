"""Persistent filing history feeding the suggestion engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from ..core.config import HistorySettings
from ..core.datetime_utils import utcnow
from ..core.models import CaseStats, HistoryStats, RecentCase, ThreadMapping
from ..storage import codec
from ..storage.keys import StorageKeys
from ..storage.tiered import TieredStorage

LOGGER = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=UTC)


def normalize_key(value: str | None) -> str:
    """Trim and lower-case an entity key."""
    return (value or "").strip().lower()


def domain_from_address(address: str | None) -> str:
    """Return the part after the last ``@`` of an address, or ``""``."""
    normalized = normalize_key(address)
    at = normalized.rfind("@")
    if at < 0:
        return ""
    return normalized[at + 1 :].strip()


def _bump(per_entity: dict[str, dict[str, CaseStats]], entity: str, case_id: str, now: datetime) -> None:
    per_case = per_entity.setdefault(entity, {})
    slot = per_case.get(case_id)
    if slot is None:
        per_case[case_id] = CaseStats(count=1, last_seen_at=now)
        return
    slot.count += 1
    slot.last_seen_at = now


def _seen(value: datetime | None) -> datetime:
    return value or _OLDEST


def prune_entity_stats(
    stats: dict[str, dict[str, CaseStats]], max_entities: int, max_cases_per_entity: int
) -> dict[str, dict[str, CaseStats]]:
    """Drop least-recently-touched entities, then excess cases per entity."""
    if len(stats) > max_entities:
        ranked = sorted(
            stats.items(),
            key=lambda item: max(
                (_seen(meta.last_seen_at) for meta in item[1].values()), default=_OLDEST
            ),
            reverse=True,
        )
        stats = dict(ranked[:max_entities])

    for entity, per_case in list(stats.items()):
        if len(per_case) <= max_cases_per_entity:
            continue
        ranked_cases = sorted(
            per_case.items(), key=lambda item: _seen(item[1].last_seen_at), reverse=True
        )
        stats[entity] = dict(ranked_cases[:max_cases_per_entity])
    return stats


def prune_history(stats: HistoryStats, settings: HistorySettings) -> HistoryStats:
    """Apply every size bound to ``stats`` in place and return it."""
    if len(stats.thread_to_case) > settings.max_threads:
        ranked_threads = sorted(
            stats.thread_to_case.items(),
            key=lambda item: _seen(item[1].last_seen_at),
            reverse=True,
        )
        stats.thread_to_case = dict(ranked_threads[: settings.max_threads])
    stats.sender_to_case = prune_entity_stats(
        stats.sender_to_case, settings.max_senders, settings.max_cases_per_sender
    )
    stats.domain_to_case = prune_entity_stats(
        stats.domain_to_case, settings.max_domains, settings.max_cases_per_domain
    )
    stats.recent_cases = sorted(
        stats.recent_cases, key=lambda item: _seen(item.last_used_at), reverse=True
    )[: settings.max_recent_cases]
    return stats


def apply_filing(
    stats: HistoryStats,
    case_id: str,
    conversation_key: str | None,
    sender_address: str | None,
    now: datetime,
) -> HistoryStats:
    """Record one filing into ``stats`` in place and return it."""
    conversation = normalize_key(conversation_key)
    if conversation:
        stats.thread_to_case[conversation] = ThreadMapping(case_id=case_id, last_seen_at=now)

    sender = normalize_key(sender_address)
    if sender:
        _bump(stats.sender_to_case, sender, case_id, now)
        domain = domain_from_address(sender)
        if domain:
            _bump(stats.domain_to_case, domain, case_id, now)

    for recent in stats.recent_cases:
        if recent.case_id == case_id:
            recent.use_count += 1
            recent.last_used_at = now
            break
    else:
        stats.recent_cases.append(RecentCase(case_id=case_id, last_used_at=now, use_count=1))
    return stats


class HistoryStore:
    """Conversation, sender, domain and recent-case statistics per profile."""

    def __init__(
        self,
        storage: TieredStorage,
        keys: StorageKeys,
        settings: HistorySettings | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._key = keys.history
        self._settings = settings or HistorySettings()
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get_stats(self) -> HistoryStats:
        """Return a freshly decoded snapshot of the stored statistics."""
        return codec.history_from_dict(await self._storage.read_json(self._key))

    async def get_mapped_case(self, conversation_key: str | None) -> str:
        """Return the case a conversation was filed under, or ``""``."""
        key = normalize_key(conversation_key)
        if not key:
            return ""
        mapping = (await self.get_stats()).thread_to_case.get(key)
        return mapping.case_id if mapping else ""

    async def record_successful_filing(
        self,
        case_id: str,
        conversation_key: str | None = None,
        sender_address: str | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        """Strengthen the signals linking this conversation and sender to ``case_id``."""
        case_id = (case_id or "").strip()
        if not case_id:
            return
        timestamp = now or self._clock()
        async with self._lock:
            stats = await self.get_stats()
            apply_filing(stats, case_id, conversation_key, sender_address, timestamp)
            prune_history(stats, self._settings)
            await self._storage.write_json(self._key, codec.history_to_dict(stats))
        LOGGER.debug(
            "Recorded filing to case %s (conversation=%s, sender=%s)",
            case_id,
            bool(conversation_key),
            bool(sender_address),
        )


__all__ = [
    "HistoryStore",
    "apply_filing",
    "domain_from_address",
    "normalize_key",
    "prune_entity_stats",
    "prune_history",
]
