"""Two-valued filed/unfiled label on the open mail item."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..core.config import ResolverSettings
from ..core.interfaces import MailHost

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LabelState(StrEnum):
    """What the host currently reports for the two labels."""

    NONE = "none"
    FILED = "filed"
    UNFILED = "unfiled"
    BOTH = "both"


@dataclass(slots=True)
class LabelSync:
    """Progress of one toggle: the bounded verification state machine."""

    target: LabelState
    attempt: int = 0
    observed: LabelState | None = None
    converged: bool = False


def label_state(labels: Sequence[str], filed_label: str, unfiled_label: str) -> LabelState:
    """Classify the host's label list."""
    names = {name.strip().lower() for name in labels}
    has_filed = filed_label.lower() in names
    has_unfiled = unfiled_label.lower() in names
    if has_filed and has_unfiled:
        return LabelState.BOTH
    if has_filed:
        return LabelState.FILED
    if has_unfiled:
        return LabelState.UNFILED
    return LabelState.NONE


class LabelSynchronizer:
    """Applies the filed or unfiled label and waits for the host to agree.

    Hosts propagate label changes with a delay and occasionally report both
    labels at once. ``toggle`` clears both, applies the target, then polls a
    bounded number of times, re-applying whenever the read is inconsistent.
    If the host never converges the optimistic target is kept.
    """

    def __init__(
        self,
        host: MailHost,
        settings: ResolverSettings | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._host = host
        self._settings = settings or ResolverSettings()
        self._sleep = sleep

    @property
    def filed_label(self) -> str:
        return self._settings.filed_label

    @property
    def unfiled_label(self) -> str:
        return self._settings.unfiled_label

    async def read(self) -> LabelState | None:
        """Return the current label state, ``None`` when the host cannot say."""
        try:
            labels = await self._host.get_labels()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Reading labels failed: %s", exc)
            return None
        return label_state(labels, self.filed_label, self.unfiled_label)

    async def toggle(self, filed: bool) -> LabelSync:
        """Drive the labels to the filed or unfiled state; never raises."""
        target = LabelState.FILED if filed else LabelState.UNFILED
        sync = LabelSync(target=target)
        target_label = self.filed_label if filed else self.unfiled_label

        await self._call(self._host.remove_labels, [self.filed_label, self.unfiled_label])
        await self._sleep(self._settings.label_clear_delay)
        await self._call(self._host.add_labels, [target_label])

        while sync.attempt < self._settings.label_verify_attempts:
            sync.attempt += 1
            await self._sleep(self._settings.label_verify_delay)
            sync.observed = await self.read()
            if sync.observed is target:
                sync.converged = True
                break
            if sync.observed is LabelState.BOTH:
                other = self.unfiled_label if filed else self.filed_label
                await self._call(self._host.remove_labels, [other])
            await self._call(self._host.add_labels, [target_label])

        if not sync.converged:
            LOGGER.warning(
                "Label did not settle on %s after %d checks (last seen %s); keeping it",
                target,
                sync.attempt,
                sync.observed,
            )
        return sync

    async def clear(self) -> None:
        """Remove both labels without applying either."""
        await self._call(self._host.remove_labels, [self.filed_label, self.unfiled_label])

    async def _call(
        self, action: Callable[[Sequence[str]], Awaitable[None]], names: list[str]
    ) -> None:
        try:
            await action(names)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Label update %s failed: %s", names, exc)


__all__ = ["LabelState", "LabelSync", "LabelSynchronizer", "label_state"]
