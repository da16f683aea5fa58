"""Decide between a new document, a new version, blocking or deferring."""

from __future__ import annotations

from ..core.models import DocumentMatch, DuplicateDecision, DuplicatePolicy

_LEGACY_POLICIES = {"ask": DuplicatePolicy.WARN}

_DECISIONS = {
    DuplicatePolicy.OFF: DuplicateDecision.CREATE_VERSION,
    DuplicatePolicy.WARN: DuplicateDecision.DEFER,
    DuplicatePolicy.BLOCK: DuplicateDecision.BLOCK,
}


def coerce_policy(value: DuplicatePolicy | str | None) -> DuplicatePolicy:
    """Read a stored policy name; unknown values fall back to ``warn``."""
    if isinstance(value, DuplicatePolicy):
        return value
    name = (value or "").strip().lower()
    if name in _LEGACY_POLICIES:
        return _LEGACY_POLICIES[name]
    try:
        return DuplicatePolicy(name)
    except ValueError:
        return DuplicatePolicy.WARN


def decide(
    existing_document: DocumentMatch | bool | None,
    policy: DuplicatePolicy | str | None,
) -> DuplicateDecision:
    """Return what to do with an email given any matching document in the case."""
    if not existing_document:
        return DuplicateDecision.CREATE_DOCUMENT
    return _DECISIONS[coerce_policy(policy)]


__all__ = ["coerce_policy", "decide"]
