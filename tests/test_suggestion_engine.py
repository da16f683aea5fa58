"""Tests for the case suggestion engine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from case_filer.core.config import SuggestionSettings
from case_filer.core.models import (
    Case,
    CaseStats,
    CurrentItemContext,
    HistoryStats,
    RecentCase,
    SuggestionRequest,
    ThreadMapping,
)
from case_filer.history import HistoryStore, RecipientHistory
from case_filer.storage import StorageKeys, TieredStorage
from case_filer.suggest import (
    AutoSelectGuard,
    SelectionSource,
    SuggestionEngine,
    SuggestionService,
    request_from_context,
)
from case_filer.suggest.engine import (
    REASON_DOMAIN,
    REASON_FUZZY,
    REASON_PARTIAL,
    REASON_RECENT,
    REASON_REFERENCE,
    REASON_SENDER,
    REASON_SUBJECT,
    REASON_THREAD,
    confidence_pct,
    round_half_up,
)

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)

CASES = (
    Case(id="c1", title="Acme v. Widget", visible_reference="2025-0001"),
    Case(id="c2", title="Human Ressource"),
    Case(id="c3", title="Know-how licensing agreement", visible_reference="2025-0003"),
    Case(id="c4", title="Estate of Smith"),
)


def _sender_history(sender: str, case_id: str, age_days: float, count: int = 5) -> HistoryStats:
    return HistoryStats(
        sender_to_case={
            sender: {case_id: CaseStats(count=count, last_seen_at=NOW - timedelta(days=age_days))}
        }
    )


def test_thread_history_dominates() -> None:
    engine = SuggestionEngine()
    history = HistoryStats(
        thread_to_case={"conv-1": ThreadMapping(case_id="c4", last_seen_at=NOW)}
    )
    request = SuggestionRequest(cases=CASES, conversation_key="CONV-1", subject="Hello")

    result = engine.suggest(request, history, now=NOW)
    assert result.suggestions[0].case_id == "c4"
    assert REASON_THREAD in result.suggestions[0].reasons
    assert result.auto_select_case_id == "c4"


def test_reference_in_subject_or_attachment() -> None:
    engine = SuggestionEngine()

    in_subject = engine.suggest(
        SuggestionRequest(cases=CASES, subject="Invoice for 2025-0003"), now=NOW
    )
    assert in_subject.suggestions[0].case_id == "c3"
    assert REASON_REFERENCE in in_subject.suggestions[0].reasons

    in_attachment = engine.suggest(
        SuggestionRequest(cases=CASES, subject="Invoice", attachment_names=("Scan 2025-0001.pdf",)),
        now=NOW,
    )
    assert in_attachment.suggestions[0].case_id == "c1"


def test_subject_match_on_case_title() -> None:
    engine = SuggestionEngine()
    result = engine.suggest(
        SuggestionRequest(cases=CASES, subject="RE: Know how licensing agreement"), now=NOW
    )
    top = result.suggestions[0]
    assert top.case_id == "c3"
    assert REASON_SUBJECT in top.reasons


def test_results_sorted_and_bounded() -> None:
    engine = SuggestionEngine()
    history = HistoryStats(
        sender_to_case={
            "jane@acme.com": {
                "c1": CaseStats(count=2, last_seen_at=NOW - timedelta(days=10)),
                "c4": CaseStats(count=1, last_seen_at=NOW - timedelta(days=40)),
            }
        },
        domain_to_case={"acme.com": {"c3": CaseStats(count=3, last_seen_at=NOW)}},
        recent_cases=[RecentCase(case_id="c2", last_used_at=NOW, use_count=1)],
    )
    request = SuggestionRequest(
        cases=CASES,
        subject="Estate of Smith: inventory",
        sender_address="jane@acme.com",
        top_k=4,
    )

    result = engine.suggest(request, history, now=NOW)
    scores = [suggestion.score for suggestion in result.suggestions]
    assert scores == sorted(scores, reverse=True)
    assert 1 <= len(result.suggestions) <= 4
    for suggestion in result.suggestions:
        assert 0 <= suggestion.confidence_pct <= 100
        assert suggestion.reasons


def test_default_top_k_applies() -> None:
    engine = SuggestionEngine(SuggestionSettings(min_confidence_pct=0))
    history = HistoryStats(
        recent_cases=[
            RecentCase(case_id=case.id, last_used_at=NOW, use_count=1) for case in CASES
        ]
    )
    result = engine.suggest(SuggestionRequest(cases=CASES), history, now=NOW)
    assert len(result.suggestions) == 2
    assert all(suggestion.reasons == (REASON_RECENT,) for suggestion in result.suggestions)


@pytest.mark.parametrize(
    ("age_days", "expected_pct", "auto_selected"),
    [(3.0, 69, False), (2.02, 70, True)],
)
def test_auto_select_threshold(age_days: float, expected_pct: int, auto_selected: bool) -> None:
    engine = SuggestionEngine()
    history = _sender_history("someone@gmail.com", "c4", age_days)
    request = SuggestionRequest(cases=CASES, subject="Quick question", sender_address="someone@gmail.com")

    result = engine.suggest(request, history, now=NOW)
    top = result.suggestions[0]
    assert top.case_id == "c4"
    assert top.reasons == (REASON_SENDER,)
    assert top.confidence_pct == expected_pct
    assert (result.auto_select_case_id == "c4") is auto_selected


def test_fresh_sender_gets_bonus() -> None:
    engine = SuggestionEngine()
    stale = engine.suggest(
        SuggestionRequest(cases=CASES, sender_address="a@gmail.com"),
        _sender_history("a@gmail.com", "c1", 2.5, count=1),
        now=NOW,
    )
    fresh = engine.suggest(
        SuggestionRequest(cases=CASES, sender_address="a@gmail.com"),
        _sender_history("a@gmail.com", "c1", 0.5, count=1),
        now=NOW,
    )
    assert fresh.suggestions[0].score - stale.suggestions[0].score >= 30


def test_generic_domains_are_ignored() -> None:
    engine = SuggestionEngine()
    history = HistoryStats(
        domain_to_case={
            "gmail.com": {"c1": CaseStats(count=5, last_seen_at=NOW)},
            "acme.com": {"c1": CaseStats(count=5, last_seen_at=NOW)},
        }
    )

    generic = engine.suggest(
        SuggestionRequest(cases=CASES, sender_address="new@gmail.com"), history, now=NOW
    )
    assert generic.suggestions == ()
    assert generic.auto_select_case_id == ""

    corporate = engine.suggest(
        SuggestionRequest(cases=CASES, sender_address="new@acme.com"), history, now=NOW
    )
    assert corporate.suggestions[0].case_id == "c1"
    assert corporate.suggestions[0].reasons == (REASON_DOMAIN,)


def test_misspelled_title_matches_through_fuzzy_path() -> None:
    engine = SuggestionEngine()
    result = engine.suggest(SuggestionRequest(cases=CASES, subject="Human Recources"), now=NOW)

    top = result.suggestions[0]
    assert top.case_id == "c2"
    assert top.confidence_pct > 0
    assert REASON_PARTIAL in top.reasons
    assert REASON_FUZZY in top.reasons
    assert top.score == pytest.approx(105.0)
    assert result.auto_select_case_id == "c2"


def test_body_mentions_short_title() -> None:
    engine = SuggestionEngine()
    result = engine.suggest(
        SuggestionRequest(
            cases=CASES,
            subject="Hello",
            body_excerpt="Please see the notes about the Estate of Smith meeting.",
        ),
        now=NOW,
    )
    assert result.suggestions[0].case_id == "c4"


def test_content_only_ignores_history_and_attachments() -> None:
    engine = SuggestionEngine()
    request = SuggestionRequest(
        cases=CASES,
        conversation_key="conv-1",
        subject="Know-how licensing agreement",
        attachment_names=("2025-0001.pdf",),
    )

    result = engine.suggest_by_content(request)
    assert [suggestion.case_id for suggestion in result.suggestions] == ["c3"]
    assert result.auto_select_case_id == ""


def test_suggestion_service_reads_stored_history() -> None:
    history = HistoryStore(TieredStorage([]), StorageKeys())
    service = SuggestionService(SuggestionEngine(), history)

    async def scenario():
        await history.record_successful_filing("c1", "conv-9", "jane@acme.com", now=NOW)
        return await service.suggest(
            SuggestionRequest(cases=CASES, conversation_key="conv-9"), now=NOW
        )

    result = asyncio.run(scenario())
    assert result.suggestions[0].case_id == "c1"
    assert result.auto_select_case_id == "c1"


def test_min_confidence_drops_weak_suggestions() -> None:
    engine = SuggestionEngine(SuggestionSettings(min_confidence_pct=50))
    history = HistoryStats(
        recent_cases=[RecentCase(case_id="c2", last_used_at=NOW, use_count=1)]
    )
    result = engine.suggest(SuggestionRequest(cases=CASES), history, now=NOW)
    assert result.suggestions == ()


def test_confidence_rounds_half_up() -> None:
    assert round_half_up(69.5) == 70
    assert round_half_up(2.4) == 2
    assert confidence_pct([120.0, 60.0], 0) == 100
    assert confidence_pct([120.0, 60.0], 1) == 33
    assert confidence_pct([], 0) == 0


def test_auto_select_guard_respects_manual_choice() -> None:
    guard = AutoSelectGuard()
    assert guard.should_apply("item-1", "", SelectionSource.NONE, "c1") is True
    assert guard.should_apply("item-1", "", SelectionSource.NONE, "c1") is False
    assert guard.should_apply("item-1", "c9", SelectionSource.MANUAL, "c1") is False
    assert guard.should_apply("item-1", "c9", SelectionSource.LAST_CASE, "c2") is False
    assert guard.should_apply("item-1", "c9", "remembered", "c2") is True
    assert guard.should_apply("item-1", "c2", "suggested", "c2") is False

    guard.reset()
    assert guard.should_apply("item-1", "", None, "c2") is True


def test_request_from_context_copies_open_item() -> None:
    context = CurrentItemContext(
        conversation_id="conv-3",
        subject="Invoice",
        sender="jane@acme.com",
        attachment_names=("scan.pdf",),
    )
    request = request_from_context(context, [{"id": "c1", "title": "Acme"}], top_k=3)
    assert request.cases == (Case(id="c1", title="Acme"),)
    assert (request.conversation_key, request.sender_address, request.top_k) == ("conv-3", "jane@acme.com", 3)
    assert request.attachment_names == ("scan.pdf",)
    assert request.recipient_addresses == ()


def test_compose_request_carries_recipients() -> None:
    context = CurrentItemContext(subject="Offer", recipients=("client@acme.com", "cfo@acme.com"))
    request = request_from_context(context, [], compose=True)
    assert request.recipient_addresses == ("client@acme.com", "cfo@acme.com")


def _recipient_service() -> tuple[SuggestionService, HistoryStore, RecipientHistory]:
    storage = TieredStorage([])
    keys = StorageKeys()
    history = HistoryStore(storage, keys)
    recipients = RecipientHistory(storage, keys, clock=lambda: NOW)
    return SuggestionService(SuggestionEngine(), history, recipients=recipients), history, recipients


def test_recipient_case_is_preselected_when_composing() -> None:
    service, _, recipients = _recipient_service()

    async def scenario():
        await recipients.record_recipients_filed(["Client@Acme.com"], "c4")
        return await service.suggest(
            SuggestionRequest(cases=CASES, recipient_addresses=("client@acme.com",)), now=NOW
        )

    result = asyncio.run(scenario())
    assert result.recipient_case_id == "c4"
    assert result.auto_select_case_id == "c4"


def test_history_auto_select_wins_over_recipient_case() -> None:
    service, history, recipients = _recipient_service()

    async def scenario():
        await history.record_successful_filing("c1", "conv-9", "jane@acme.com", now=NOW)
        await recipients.record_recipients_filed(["client@acme.com"], "c4")
        return await service.suggest(
            SuggestionRequest(
                cases=CASES, conversation_key="conv-9", recipient_addresses=("client@acme.com",)
            ),
            now=NOW,
        )

    result = asyncio.run(scenario())
    assert result.auto_select_case_id == "c1"
    assert result.recipient_case_id == "c4"


def test_recipient_case_outside_candidates_is_ignored() -> None:
    service, _, recipients = _recipient_service()

    async def scenario():
        await recipients.record_recipients_filed(["client@acme.com"], "c99")
        return await service.suggest(
            SuggestionRequest(cases=CASES, recipient_addresses=("client@acme.com",)), now=NOW
        )

    result = asyncio.run(scenario())
    assert result.recipient_case_id == ""
    assert result.auto_select_case_id == ""
