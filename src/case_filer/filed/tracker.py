"""Follow the open mail item and resolve its filing state once per change."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from ..core.interfaces import MailHost
from ..core.models import Resolution
from .resolver import FiledStatusResolver

LOGGER = logging.getLogger(__name__)

ResolutionCallback = Callable[[Resolution], Awaitable[None] | None]


class CurrentItemTracker:
    """Converges host notifications and a fixed poll onto one item key.

    Both triggers call :meth:`sync`, which takes a fresh snapshot from the
    host, skips the pass when the derived key equals the last processed key,
    and drops any resolution whose key is no longer current when it finishes.
    """

    def __init__(
        self,
        host: MailHost,
        resolver: FiledStatusResolver,
        *,
        poll_interval: float = 0.45,
        on_resolution: ResolutionCallback | None = None,
    ) -> None:
        self._host = host
        self._resolver = resolver
        self._poll_interval = poll_interval
        self._on_resolution = on_resolution
        self._current_key: str | None = None
        self._last_processed_key: str | None = None
        self._latest: Resolution | None = None
        self.discarded = 0

    @property
    def current_key(self) -> str | None:
        return self._current_key

    @property
    def latest(self) -> Resolution | None:
        """Last resolution that was still current when it completed."""
        return self._latest

    async def sync(self, *, force: bool = False) -> Resolution | None:
        """Resolve the open item if it changed; return the applied resolution."""
        context = await self._host.current_context()
        if context is None:
            self._current_key = None
            self._last_processed_key = None
            return None

        key = context.item_key
        self._current_key = key
        if key == self._last_processed_key and not force:
            return None
        self._last_processed_key = key

        resolution = await self._resolver.resolve(context)
        if self._current_key != key:
            self.discarded += 1
            LOGGER.debug("Discarding stale resolution for %s", key)
            return None

        self._latest = resolution
        if self._on_resolution is not None:
            result = self._on_resolution(resolution)
            if inspect.isawaitable(result):
                await result
        return resolution

    async def item_changed(self) -> Resolution | None:
        """Entry point for the host's item-changed notification."""
        return await self.sync()

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.sync()
            except Exception:  # pylint: disable=broad-except
                self._last_processed_key = None
                LOGGER.exception("Current item sync failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._poll_interval)
            except TimeoutError:
                continue


__all__ = ["CurrentItemTracker"]
