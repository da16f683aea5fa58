"""Tests for text normalisation helpers."""

from __future__ import annotations

import pytest

from case_filer.suggest.cases import adapt_case, adapt_cases
from case_filer.suggest.text import (
    levenshtein,
    norm_loose,
    norm_text,
    normalize_subject,
    similarity,
    token_overlap,
    tokenize,
)


def test_norm_text_strips_diacritics_and_keeps_references() -> None:
    assert norm_text("  Příloha č. 2023-0006!  ") == "priloha c. 2023-0006"


def test_norm_loose_splits_hyphenated_words() -> None:
    assert norm_loose("Know-How  transfer") == "know how transfer"


def test_tokenize_drops_short_tokens() -> None:
    assert tokenize("An IP know-how deal") == ["know", "how", "deal"]


def test_token_overlap_counts_whole_words() -> None:
    assert token_overlap(["human", "resources"], "Re: Human Resources update") == (2, 2)
    assert token_overlap(["human"], "inhuman conditions") == (0, 1)
    assert token_overlap([], "anything") == (0, 0)


@pytest.mark.parametrize(
    ("left", "right", "expected"),
    [("kitten", "sitting", 3), ("", "abc", 3), ("same", "same", 0), ("flaw", "lawn", 2)],
)
def test_levenshtein(left: str, right: str, expected: int) -> None:
    assert levenshtein(left, right) == expected


def test_similarity_ignores_short_strings() -> None:
    assert similarity("abcd", "abcd") == 0.0
    assert similarity("contract", "contract") == 1.0
    assert similarity("human resources", "human resources department") == 1.0


def test_normalize_subject_removes_nested_prefixes() -> None:
    assert normalize_subject("RE: Fwd:  FW:Quarterly   Report ") == "quarterly report"
    assert normalize_subject(None) == ""


def test_adapt_case_reads_alternative_field_names() -> None:
    case = adapt_case(
        {"caseId": 17, "caseName": "Acme v. Widget", "caseIdVisible": "2025-0017", "client": {"name": "Acme"}}
    )
    assert case is not None
    assert (case.id, case.title, case.visible_reference, case.client_name) == (
        "17",
        "Acme v. Widget",
        "2025-0017",
        "Acme",
    )


def test_adapt_cases_drops_records_without_id_and_duplicates() -> None:
    cases = adapt_cases([{"id": "1", "title": "One"}, {"title": "No id"}, {"id": "1", "title": "Dup"}])
    assert [case.title for case in cases] == ["One"]
