"""Filing intents recorded while composing and consumed at send time."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.models import ComposeFilingIntent, CurrentItemContext
from ..storage import codec
from ..storage.keys import StorageKeys
from ..storage.tiered import TieredStorage

LOGGER = logging.getLogger(__name__)

SINGLETON_DRAFT_KEY = "draft:current"


def candidate_keys(context: CurrentItemContext) -> list[str]:
    """Keys an intent may live under, most reliable first."""
    keys = [
        context.item_id.strip(),
        f"draft:{context.conversation_id.strip()}" if context.conversation_id.strip() else "",
        f"draft:{context.created_at.strip()}" if context.created_at.strip() else "",
        SINGLETON_DRAFT_KEY,
    ]
    ordered: list[str] = []
    for key in keys:
        if key and key not in ordered:
            ordered.append(key)
    return ordered


class ComposeIntentStore:
    """Stores one :class:`ComposeFilingIntent` per draft key."""

    def __init__(self, storage: TieredStorage, keys: StorageKeys) -> None:
        self._storage = storage
        self._keys = keys

    candidate_keys = staticmethod(candidate_keys)

    async def read(self, item_key: str) -> ComposeFilingIntent | None:
        if not item_key:
            return None
        return codec.intent_from_dict(
            await self._storage.read_json(self._keys.compose_intent(item_key))
        )

    async def write(self, item_key: str, intent: ComposeFilingIntent) -> None:
        if not item_key:
            return
        await self._storage.write_json(
            self._keys.compose_intent(item_key), codec.intent_to_dict(intent)
        )
        LOGGER.debug("Stored filing intent for %s (case %s)", item_key, intent.case_id)

    async def clear(self, item_key: str) -> None:
        if item_key:
            await self._storage.remove(self._keys.compose_intent(item_key))

    async def read_any(
        self, keys: Iterable[str]
    ) -> tuple[str, ComposeFilingIntent] | None:
        """Return the first ``(key, intent)`` found across ``keys``."""
        for key in keys:
            intent = await self.read(key)
            if intent is not None:
                return key, intent
        LOGGER.debug("No filing intent stored for this draft")
        return None

    async def migrate(self, from_key: str, to_key: str) -> bool:
        """Move an intent from a fallback key onto the real item id."""
        if not from_key or not to_key or from_key == to_key:
            return False
        intent = await self.read(from_key)
        if intent is None:
            return False
        await self.write(to_key, intent)
        await self.clear(from_key)
        LOGGER.info("Moved filing intent from %s to the sent item id", from_key)
        return True


__all__ = ["SINGLETON_DRAFT_KEY", "ComposeIntentStore", "candidate_keys"]
