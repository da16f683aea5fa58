"""Deterministic case scoring for a single email."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import datetime

from ..core.config import SuggestionSettings
from ..core.datetime_utils import age_in_days, ensure_utc, utcnow
from ..core.models import (
    Case,
    CaseStats,
    CaseSuggestion,
    HistoryStats,
    SuggestionRequest,
    SuggestionResult,
)
from ..history.store import domain_from_address, normalize_key
from .text import norm_loose, norm_text, similarity, token_overlap, tokenize

LOGGER = logging.getLogger(__name__)

# Consumer mail providers say nothing about which client an email belongs to.
GENERIC_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "outlook.com",
        "hotmail.com",
        "live.com",
        "yahoo.com",
        "yahoo.co.uk",
        "icloud.com",
        "me.com",
        "mac.com",
        "protonmail.com",
        "proton.me",
        "aol.com",
        "msn.com",
    }
)

THREAD_WEIGHT = 100.0
REFERENCE_WEIGHT = 95.0
SUBJECT_MATCH_WEIGHT = 98.0
SENDER_WEIGHT = 65.0
SENDER_FRESH_BONUS = 30.0
SENDER_FRESH_DAYS = 2.0
DOMAIN_WEIGHT = 40.0
RECENT_WEIGHT = 12.0
RECENT_WINDOW_DAYS = 14.0
HISTORY_HALF_LIFE_DAYS = 30.0
COUNT_SATURATION = 5
BODY_LIMIT = 1500
MIN_SUBSTRING_LENGTH = 4

# (minimum similarity, bonus), checked in order
FUZZY_BANDS = ((0.88, 70.0), (0.78, 55.0), (0.70, 40.0))

REASON_THREAD = "Same email thread previously filed to this case."
REASON_REFERENCE = "Case reference found in the email."
REASON_SUBJECT = "Email subject matches the case name."
REASON_SUBJECT_TOKENS = "Case name matches the email subject."
REASON_PARTIAL = "Email subject partially matches the case name."
REASON_FUZZY = "Email subject closely resembles the case name."
REASON_BODY = "Case name mentioned in the email body."
REASON_SENDER = "You often file emails from this sender to this case."
REASON_DOMAIN = "This domain often maps to this case."
REASON_RECENT = "Recently used."


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round halves upwards so ``69.5`` becomes ``70``."""
    return math.floor(value + 0.5)


def confidence_pct(sorted_scores: Sequence[float], index: int) -> int:
    """Confidence for the suggestion at ``index`` of a descending score list.

    Blends absolute strength (score out of 120) with separation from the
    competition: the leader is compared with the runner-up, every other entry
    with the leader.
    """
    score = sorted_scores[index] if index < len(sorted_scores) else 0.0
    top = sorted_scores[0] if sorted_scores else 0.0
    second = sorted_scores[1] if len(sorted_scores) > 1 else 0.0

    base = clamp(score / 120.0)
    reference = second if index == 0 else top
    separation = clamp(max(0.0, score - reference) / 60.0)
    pct = round_half_up(100.0 * (0.65 * base + 0.35 * separation))
    return int(clamp(pct, 0, 100))


def history_boost(weight: float, stats: CaseStats, now: datetime) -> tuple[int, float]:
    """Return ``(boost, age_days)`` for a sender or domain statistic."""
    age = max(0.0, age_in_days(ensure_utc(stats.last_seen_at), now))
    recency = math.exp(-age / HISTORY_HALF_LIFE_DAYS)
    count_weight = math.log1p(max(0, stats.count)) / math.log1p(COUNT_SATURATION)
    boost = round_half_up(weight * (0.65 * clamp(count_weight) + 0.35 * recency))
    return boost, age


class _Scoreboard:
    """Accumulates additive scores and de-duplicated reasons per case."""

    def __init__(self) -> None:
        self.scores: dict[str, float] = {}
        self.reasons: dict[str, list[str]] = {}

    def add(self, case_id: str, delta: float, reason: str) -> None:
        if not case_id:
            return
        self.scores[case_id] = self.scores.get(case_id, 0.0) + delta
        reasons = self.reasons.setdefault(case_id, [])
        if reason not in reasons:
            reasons.append(reason)

    def ranked(self) -> list[tuple[str, float, tuple[str, ...]]]:
        ordered = sorted(self.scores.items(), key=lambda item: item[1], reverse=True)
        return [
            (case_id, score, tuple(self.reasons.get(case_id, ())))
            for case_id, score in ordered
        ]


class SuggestionEngine:
    """Combine history and content signals into ranked case suggestions."""

    def __init__(self, settings: SuggestionSettings | None = None) -> None:
        self._settings = settings or SuggestionSettings()

    @property
    def settings(self) -> SuggestionSettings:
        return self._settings

    def suggest(
        self,
        request: SuggestionRequest,
        history: HistoryStats | None = None,
        *,
        now: datetime | None = None,
    ) -> SuggestionResult:
        """Score every candidate case for ``request`` using all signals."""
        history = history or HistoryStats()
        current = ensure_utc(now) or utcnow()
        board = _Scoreboard()

        conversation = normalize_key(request.conversation_key)
        if conversation:
            mapping = history.thread_to_case.get(conversation)
            if mapping is not None:
                board.add(mapping.case_id, THREAD_WEIGHT, REASON_THREAD)

        self._score_content(board, request, include_attachments=True)
        self._score_sender(board, request.sender_address, history, current)
        self._score_recent(board, history, current)

        top_k = request.top_k if request.top_k is not None else self._settings.top_k
        suggestions = self._finalize(board, top_k)
        auto_select = ""
        if suggestions and suggestions[0].confidence_pct >= self._settings.auto_select_pct:
            auto_select = suggestions[0].case_id
        return SuggestionResult(suggestions=suggestions, auto_select_case_id=auto_select)

    def suggest_by_content(self, request: SuggestionRequest) -> SuggestionResult:
        """Score using subject and body only; never auto-selects."""
        board = _Scoreboard()
        self._score_content(board, request, include_attachments=False)
        top_k = request.top_k if request.top_k is not None else self._settings.content_top_k
        return SuggestionResult(suggestions=self._finalize(board, top_k))

    # Signals -----------------------------------------------------------------
    def _score_content(
        self,
        board: _Scoreboard,
        request: SuggestionRequest,
        *,
        include_attachments: bool,
    ) -> None:
        subject_raw = request.subject or ""
        subject_strict = norm_text(subject_raw)
        subject_loose = norm_loose(subject_raw)
        body_raw = (request.body_excerpt or "")[:BODY_LIMIT]
        body_strict = norm_text(body_raw)
        body_loose = norm_loose(body_raw)
        attachments = (
            [norm_text(name) for name in request.attachment_names]
            if include_attachments
            else []
        )

        for case in request.cases:
            reference = norm_text(case.visible_reference)
            if not case.id or not reference:
                continue
            if (
                reference in subject_strict
                or reference in body_strict
                or any(reference in name for name in attachments)
            ):
                board.add(case.id, REFERENCE_WEIGHT, REASON_REFERENCE)

        for case in request.cases:
            if case.id:
                self._score_title(board, case, subject_raw, subject_loose, body_raw, body_loose)

    def _score_title(
        self,
        board: _Scoreboard,
        case: Case,
        subject_raw: str,
        subject_loose: str,
        body_raw: str,
        body_loose: str,
    ) -> None:
        title_loose = norm_loose(case.title)
        if not title_loose:
            return

        if subject_loose and _loose_match(title_loose, subject_loose):
            board.add(case.id, SUBJECT_MATCH_WEIGHT, REASON_SUBJECT)
            return

        title_tokens = tokenize(case.title)
        if title_tokens and subject_raw:
            hits, total = token_overlap(title_tokens, subject_raw)
            if hits >= 2:
                board.add(case.id, 60.0 + 30.0 * clamp(hits / total), REASON_SUBJECT_TOKENS)
            else:
                ratio = _partial_title_ratio(title_tokens, title_loose, subject_raw)
                if ratio > 0:
                    board.add(case.id, 40.0 + 20.0 * ratio, REASON_PARTIAL)

        if subject_loose:
            score = similarity(title_loose, subject_loose)
            for threshold, bonus in FUZZY_BANDS:
                if score >= threshold:
                    board.add(case.id, bonus, REASON_FUZZY)
                    break

        if body_raw and title_tokens:
            body_has_exact = len(title_loose) >= MIN_SUBSTRING_LENGTH and title_loose in body_loose
            if len(title_tokens) <= 2:
                if body_has_exact:
                    board.add(case.id, 45.0, REASON_BODY)
            else:
                hits, total = token_overlap(title_tokens, body_raw)
                if hits >= 2:
                    board.add(case.id, 35.0 + 25.0 * clamp(hits / total), REASON_BODY)
                elif body_has_exact:
                    board.add(case.id, 40.0, REASON_BODY)

    def _score_sender(
        self,
        board: _Scoreboard,
        sender_address: str,
        history: HistoryStats,
        now: datetime,
    ) -> None:
        sender = normalize_key(sender_address)
        if not sender:
            return
        for case_id, stats in history.sender_to_case.get(sender, {}).items():
            boost, age = history_boost(SENDER_WEIGHT, stats, now)
            if age < SENDER_FRESH_DAYS:
                boost += SENDER_FRESH_BONUS
            if boost > 0:
                board.add(case_id, boost, REASON_SENDER)

        domain = domain_from_address(sender)
        if not domain or domain in GENERIC_DOMAINS:
            return
        for case_id, stats in history.domain_to_case.get(domain, {}).items():
            boost, _ = history_boost(DOMAIN_WEIGHT, stats, now)
            if boost > 0:
                board.add(case_id, boost, REASON_DOMAIN)

    def _score_recent(self, board: _Scoreboard, history: HistoryStats, now: datetime) -> None:
        for recent in history.recent_cases:
            age = max(0.0, age_in_days(ensure_utc(recent.last_used_at), now))
            boost = RECENT_WEIGHT * clamp(1.0 - age / RECENT_WINDOW_DAYS)
            if boost > 0:
                board.add(recent.case_id, boost, REASON_RECENT)

    # Post-processing ---------------------------------------------------------
    def _finalize(self, board: _Scoreboard, top_k: int) -> tuple[CaseSuggestion, ...]:
        ranked = board.ranked()
        if not ranked:
            LOGGER.debug("No case scored any points")
            return ()
        scores = [score for _, score, _ in ranked]
        LOGGER.debug(
            "Top scores before filtering: %s",
            ", ".join(f"{case_id}={score:.1f}" for case_id, score, _ in ranked[:5]),
        )
        suggestions = [
            CaseSuggestion(
                case_id=case_id,
                score=score,
                confidence_pct=confidence_pct(scores, index),
                reasons=reasons,
            )
            for index, (case_id, score, reasons) in enumerate(ranked)
        ]
        kept = [
            suggestion
            for suggestion in suggestions
            if suggestion.confidence_pct >= self._settings.min_confidence_pct
        ]
        return tuple(kept[: max(0, top_k)])


def _loose_match(title_loose: str, subject_loose: str) -> bool:
    if title_loose == subject_loose:
        return True
    shorter = min(len(title_loose), len(subject_loose))
    if shorter < MIN_SUBSTRING_LENGTH:
        return False
    return subject_loose in title_loose or title_loose in subject_loose


def _partial_title_ratio(title_tokens: Sequence[str], title_loose: str, subject_raw: str) -> float:
    """Best hit ratio of long subject tokens in the title or long title tokens in the subject."""
    best = 0.0
    subject_tokens = [token for token in tokenize(subject_raw) if len(token) >= 5]
    if subject_tokens:
        hits, total = token_overlap(subject_tokens, title_loose)
        if hits:
            best = max(best, hits / total)
    long_title_tokens = [token for token in title_tokens if len(token) >= 6]
    if long_title_tokens:
        hits, total = token_overlap(long_title_tokens, subject_raw)
        if hits:
            best = max(best, hits / total)
    return clamp(best)


__all__ = [
    "GENERIC_DOMAINS",
    "SuggestionEngine",
    "clamp",
    "confidence_pct",
    "history_boost",
    "round_half_up",
]
