"""Recipient to case history used to preselect a case while composing."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from ..core.datetime_utils import utcnow
from ..core.models import RecipientHistoryEntry
from ..storage import codec
from ..storage.keys import StorageKeys
from ..storage.tiered import TieredStorage
from .store import normalize_key

LOGGER = logging.getLogger(__name__)

MAX_VOTE_WEIGHT = 10


class RecipientHistory:
    """Remembers the last case each recipient address was filed under."""

    def __init__(
        self,
        storage: TieredStorage,
        keys: StorageKeys,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._key = keys.recipient_history
        self._clock = clock

    async def entries(self) -> dict[str, RecipientHistoryEntry]:
        return codec.recipient_history_from_dict(await self._storage.read_json(self._key))

    async def record_recipients_filed(self, emails: Iterable[str], case_id: str) -> None:
        """Point every recipient at ``case_id``; switching case resets the count."""
        case_id = (case_id or "").strip()
        if not case_id:
            return
        now = self._clock()
        entries = await self.entries()
        for raw in emails:
            email = normalize_key(raw)
            if not email:
                continue
            previous = entries.get(email)
            count = previous.count if previous and previous.case_id == case_id else 0
            entries[email] = RecipientHistoryEntry(
                email=email, case_id=case_id, count=count + 1, last_used_at=now
            )
        await self._storage.write_json(self._key, codec.recipient_history_to_dict(entries))

    async def find_best_case(self, emails: Iterable[str]) -> tuple[str, int] | None:
        """Return ``(case_id, votes)`` for the case most recipients point at."""
        entries = await self.entries()
        votes: dict[str, int] = {}
        for raw in emails:
            hit = entries.get(normalize_key(raw))
            if hit is None or not hit.case_id:
                continue
            weight = min(MAX_VOTE_WEIGHT, max(1, hit.count))
            votes[hit.case_id] = votes.get(hit.case_id, 0) + weight

        best_id, best_score = "", 0
        for case_id, score in votes.items():
            if score > best_score:
                best_id, best_score = case_id, score
        if not best_id:
            return None
        LOGGER.debug("Recipients vote for case %s with weight %d", best_id, best_score)
        return best_id, best_score


__all__ = ["RecipientHistory"]
