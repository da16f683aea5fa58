"""Tests for the filed/unfiled label synchroniser."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from case_filer.core.config import ResolverSettings
from case_filer.filed import LabelState, LabelSynchronizer
from case_filer.filed.labels import label_state

FILED = "SC: Filed"
UNFILED = "SC: Unfiled"


class LabelHost:
    """Mail host keeping labels in a set, with optional misbehaviour."""

    def __init__(
        self,
        labels: Sequence[str] = (),
        *,
        ignored_removals: int = 0,
        ignore_adds: bool = False,
    ) -> None:
        self.labels = set(labels)
        self.ignored_removals = ignored_removals
        self.ignore_adds = ignore_adds
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    async def current_context(self):
        return None

    async def get_labels(self) -> list[str]:
        return sorted(self.labels)

    async def add_labels(self, names: Sequence[str]) -> None:
        self.calls.append(("add", tuple(names)))
        if not self.ignore_adds:
            self.labels.update(names)

    async def remove_labels(self, names: Sequence[str]) -> None:
        self.calls.append(("remove", tuple(names)))
        if self.ignored_removals:
            self.ignored_removals -= 1
            return
        self.labels.difference_update(names)

    async def notify(self, message: str) -> None:
        return None


class BrokenHost(LabelHost):
    async def get_labels(self) -> list[str]:
        raise RuntimeError("host offline")

    async def add_labels(self, names: Sequence[str]) -> None:
        raise RuntimeError("host offline")


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_label_state_classification() -> None:
    assert label_state([], FILED, UNFILED) is LabelState.NONE
    assert label_state(["sc: filed"], FILED, UNFILED) is LabelState.FILED
    assert label_state([UNFILED, "Other"], FILED, UNFILED) is LabelState.UNFILED
    assert label_state([FILED, UNFILED], FILED, UNFILED) is LabelState.BOTH


def test_toggle_converges_on_first_check() -> None:
    host = LabelHost([UNFILED])
    sleep = SleepRecorder()
    labels = LabelSynchronizer(host, sleep=sleep)

    sync = asyncio.run(labels.toggle(True))
    assert sync.converged is True
    assert sync.attempt == 1
    assert host.labels == {FILED}
    assert host.calls[:2] == [("remove", (FILED, UNFILED)), ("add", (FILED,))]
    assert sleep.delays == [0.15, 0.25]


def test_toggle_repairs_both_labels() -> None:
    host = LabelHost([UNFILED], ignored_removals=1)
    labels = LabelSynchronizer(host, sleep=SleepRecorder())

    sync = asyncio.run(labels.toggle(True))
    assert sync.converged is True
    assert sync.attempt == 2
    assert host.labels == {FILED}
    assert ("remove", (UNFILED,)) in host.calls


def test_toggle_gives_up_after_bounded_attempts() -> None:
    host = LabelHost(ignore_adds=True)
    settings = ResolverSettings(label_verify_attempts=3)
    labels = LabelSynchronizer(host, settings, sleep=SleepRecorder())

    sync = asyncio.run(labels.toggle(False))
    assert sync.converged is False
    assert sync.attempt == 3
    assert sync.target is LabelState.UNFILED
    assert sync.observed is LabelState.NONE


def test_host_errors_are_absorbed() -> None:
    labels = LabelSynchronizer(
        BrokenHost(), ResolverSettings(label_verify_attempts=2), sleep=SleepRecorder()
    )

    assert asyncio.run(labels.read()) is None
    sync = asyncio.run(labels.toggle(True))
    assert sync.converged is False
    assert sync.observed is None


def test_clear_removes_both_labels_without_applying() -> None:
    host = LabelHost([FILED, UNFILED, "Other"])
    labels = LabelSynchronizer(host, sleep=SleepRecorder())

    asyncio.run(labels.clear())
    assert host.labels == {"Other"}
    assert host.calls == [("remove", (FILED, UNFILED))]
