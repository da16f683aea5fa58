"""Policy for applying an auto-selected case to the user's current choice."""

from __future__ import annotations

from enum import StrEnum


class SelectionSource(StrEnum):
    """Where the currently selected case came from."""

    NONE = ""
    REMEMBERED = "remembered"
    LAST_CASE = "last_case"
    SUGGESTED = "suggested"
    MANUAL = "manual"


_OVERRIDABLE = frozenset({SelectionSource.NONE, SelectionSource.REMEMBERED, SelectionSource.SUGGESTED})


class AutoSelectGuard:
    """Decides whether an auto-selected case may replace the current selection.

    A manual choice is never replaced. The same (item, case) pick is applied
    at most once in a row so repeated scoring passes do not fight the user.
    """

    def __init__(self) -> None:
        self._last_pick: tuple[str, str] | None = None

    def should_apply(
        self,
        item_id: str,
        selected_case_id: str,
        selected_source: str | None,
        auto_case_id: str,
    ) -> bool:
        source = (selected_source or "").strip().lower()
        if source == SelectionSource.MANUAL:
            return False
        if selected_case_id and source not in _OVERRIDABLE:
            return False
        if not auto_case_id or selected_case_id == auto_case_id:
            return False
        pick = (item_id or "", auto_case_id)
        if pick == self._last_pick:
            return False
        self._last_pick = pick
        return True

    def reset(self) -> None:
        """Forget the last pick, e.g. when the open item changes."""
        self._last_pick = None


__all__ = ["AutoSelectGuard", "SelectionSource"]
