"""Adapter from external case records to :class:`Case`."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..core.models import Case

TITLE_FIELDS = (
    "title",
    "name",
    "label",
    "caseTitle",
    "case_name",
    "caseName",
    "case_name_visible",
    "caseNameVisible",
)
REFERENCE_FIELDS = ("case_id_visible", "caseIdVisible", "caseIdVisibleText", "visibleId")
CLIENT_FIELDS = ("client", "clientName", "client_name")
ID_FIELDS = ("id", "case_id", "caseId")
STATUS_FIELDS = ("status", "state")


def _read(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def _first_text(raw: Any, names: Iterable[str]) -> str:
    for name in names:
        value = _read(raw, name)
        if isinstance(value, Mapping):
            value = value.get("name")
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def adapt_case(raw: Any) -> Case | None:
    """Map a mapping or object into a :class:`Case`; ``None`` without an id."""
    if isinstance(raw, Case):
        return raw
    if raw is None:
        return None
    case_id = _first_text(raw, ID_FIELDS)
    if not case_id:
        return None
    return Case(
        id=case_id,
        title=_first_text(raw, TITLE_FIELDS),
        visible_reference=_first_text(raw, REFERENCE_FIELDS),
        client_name=_first_text(raw, CLIENT_FIELDS),
        status=_first_text(raw, STATUS_FIELDS),
    )


def adapt_cases(records: Iterable[Any] | None) -> tuple[Case, ...]:
    """Adapt many records, dropping those without an id and duplicate ids."""
    adapted: list[Case] = []
    seen: set[str] = set()
    for raw in records or ():
        case = adapt_case(raw)
        if case is None or case.id in seen:
            continue
        seen.add(case.id)
        adapted.append(case)
    return tuple(adapted)


__all__ = ["adapt_case", "adapt_cases"]
