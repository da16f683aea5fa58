"""Tiered storage facade over several key-value backends."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..core.errors import StorageError
from ..core.interfaces import KeyValueBackend
from . import codec
from .backends import MemoryStore

LOGGER = logging.getLogger(__name__)

_TIER_ERRORS = (StorageError, OSError)


class TieredStorage:
    """Use the first available backend, falling back tier by tier.

    The local store is always the last tier and receives a copy of every
    successful write, so reads still find data when a preferred tier later
    disappears or silently drops a value. Callers never see storage errors.
    """

    def __init__(
        self,
        backends: Sequence[KeyValueBackend],
        local: KeyValueBackend | None = None,
    ) -> None:
        self._backends = list(backends)
        self._local: KeyValueBackend = local if local is not None else MemoryStore()
        self._chain: list[KeyValueBackend] | None = None
        self._fresh_from: dict[str, int] = {}

    @property
    def local(self) -> KeyValueBackend:
        return self._local

    @property
    def backends(self) -> tuple[KeyValueBackend, ...]:
        """Configured backends, available or not, in lookup order."""
        return tuple(self._backends)

    @property
    def primary(self) -> KeyValueBackend:
        """The backend currently preferred for reads and writes."""
        return self._tiers()[0]

    def _tiers(self) -> list[KeyValueBackend]:
        if self._chain is None:
            available: list[KeyValueBackend] = []
            for backend in self._backends:
                if backend is self._local:
                    continue
                try:
                    usable = backend.is_available()
                except _TIER_ERRORS as exc:
                    LOGGER.warning("Availability check of %s storage failed: %s", backend.name, exc)
                    usable = False
                if usable:
                    available.append(backend)
            available.append(self._local)
            self._chain = available
            LOGGER.debug(
                "Storage tiers: %s", ", ".join(backend.name for backend in available)
            )
        return self._chain

    async def get(self, key: str) -> str | None:
        """Return the first value found walking the tiers in order.

        Tiers that rejected the latest write of ``key`` are skipped.
        """
        tiers = self._tiers()
        for backend in tiers[self._fresh_from.get(key, 0) :]:
            try:
                value = await backend.get(key)
            except _TIER_ERRORS as exc:
                LOGGER.warning("Read of %s from %s storage failed: %s", key, backend.name, exc)
                continue
            if value is not None:
                return value
        return None

    async def set(self, key: str, value: str) -> str:
        """Write ``value`` and return the name of the tier that accepted it."""
        tiers = self._tiers()
        accepted: int | None = None
        for index, backend in enumerate(tiers):
            try:
                await backend.set(key, value)
            except _TIER_ERRORS as exc:
                LOGGER.warning(
                    "Write of %s to %s storage failed, trying next tier: %s",
                    key,
                    backend.name,
                    exc,
                )
                continue
            accepted = index
            break

        if accepted is None:
            LOGGER.error("Write of %s failed on every storage tier", key)
            return ""
        if accepted:
            self._fresh_from[key] = accepted
            await self._drop_stale(key, tiers[:accepted])
        else:
            self._fresh_from.pop(key, None)

        written = tiers[accepted]
        if written is not self._local:
            try:
                await self._local.set(key, value)
            except _TIER_ERRORS as exc:
                LOGGER.warning("Mirror of %s into local storage failed: %s", key, exc)
        return written.name

    async def _drop_stale(self, key: str, backends: Sequence[KeyValueBackend]) -> None:
        for backend in backends:
            try:
                await backend.remove(key)
            except _TIER_ERRORS as exc:
                LOGGER.warning(
                    "Could not drop stale %s from %s storage: %s", key, backend.name, exc
                )

    async def remove(self, key: str) -> None:
        """Remove ``key`` from every tier so no stale copy resurfaces."""
        self._fresh_from.pop(key, None)
        for backend in self._tiers():
            try:
                await backend.remove(key)
            except _TIER_ERRORS as exc:
                LOGGER.warning("Removal of %s from %s storage failed: %s", key, backend.name, exc)

    async def read_json(self, key: str) -> Any | None:
        """Read and decode a JSON payload; corrupt payloads read as ``None``."""
        return codec.loads(await self.get(key))

    async def write_json(self, key: str, payload: Any) -> str:
        """Encode and write a JSON payload."""
        return await self.set(key, codec.dumps(payload))


__all__ = ["TieredStorage"]
