"""Text normalisation and similarity helpers used by the scoring engine."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Sequence

_DISALLOWED = re.compile(r"[^a-z0-9\s.:-]")
_WHITESPACE = re.compile(r"\s+")
_REPLY_PREFIX = re.compile(r"^(?:re|fw|fwd)\s*:\s*", re.IGNORECASE)

MIN_TOKEN_LENGTH = 3
MIN_SIMILARITY_LENGTH = 5


def strip_diacritics(value: str) -> str:
    """Remove combining marks so ``Příloha`` compares equal to ``Priloha``."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def norm_text(value: str | None) -> str:
    """Strict normalisation; hyphens survive so ``2023-0006`` stays intact."""
    lowered = strip_diacritics(value or "").strip().lower()
    cleaned = _DISALLOWED.sub(" ", lowered)
    return _WHITESPACE.sub(" ", cleaned).strip()


def norm_loose(value: str | None) -> str:
    """Like :func:`norm_text` but ``know-how`` matches ``know how``."""
    return _WHITESPACE.sub(" ", norm_text(value).replace("-", " ")).strip()


def tokenize(value: str | None) -> list[str]:
    """Loose tokens of at least three characters."""
    return [token for token in norm_loose(value).split(" ") if len(token) >= MIN_TOKEN_LENGTH]


def token_overlap(tokens: Sequence[str], text: str | None) -> tuple[int, int]:
    """Return ``(hits, total)`` counting tokens found as whole words in ``text``."""
    if not tokens:
        return 0, 0
    haystack = f" {norm_loose(text)} "
    hits = sum(1 for token in tokens if f" {token} " in haystack)
    return hits, len(tokens)


def levenshtein(left: str, right: str) -> int:
    """Classic edit distance with unit costs."""
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    if len(left) < len(right):
        left, right = right, left

    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
            )
        previous = current
    return previous[-1]


def _ratio(left: str, right: str) -> float:
    longest = max(len(left), len(right))
    if longest == 0:
        return 0.0
    return 1.0 - levenshtein(left, right) / longest


def similarity(left: str, right: str) -> float:
    """Edit-distance similarity in ``[0, 1]``.

    Compares the full strings and both strings cut to the shorter length, and
    keeps the better of the two so a long title is not penalised against a
    short subject. Strings shorter than five characters score zero.
    """
    if len(left) < MIN_SIMILARITY_LENGTH or len(right) < MIN_SIMILARITY_LENGTH:
        return 0.0
    shortest = min(len(left), len(right))
    return max(_ratio(left, right), _ratio(left[:shortest], right[:shortest]))


def normalize_subject(subject: str | None) -> str:
    """Lower-cased subject without reply/forward prefixes."""
    text = _WHITESPACE.sub(" ", (subject or "").strip().lower())
    while True:
        stripped = _REPLY_PREFIX.sub("", text, count=1)
        if stripped == text:
            return text.strip()
        text = stripped.strip()


__all__ = [
    "levenshtein",
    "norm_loose",
    "norm_text",
    "normalize_subject",
    "similarity",
    "strip_diacritics",
    "token_overlap",
    "tokenize",
]
