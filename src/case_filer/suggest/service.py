"""Async entry point combining stored history with the scoring engine."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.models import CurrentItemContext, SuggestionRequest, SuggestionResult
from ..history.recipients import RecipientHistory
from ..history.store import HistoryStore
from .cases import adapt_cases
from .engine import SuggestionEngine

LOGGER = logging.getLogger(__name__)


def request_from_context(
    context: CurrentItemContext,
    cases: Iterable[Any],
    *,
    top_k: int | None = None,
    compose: bool = False,
) -> SuggestionRequest:
    """Build a scoring request for the open item.

    Recipients only take part while composing, where they are the people the
    user is writing to.
    """
    return SuggestionRequest(
        cases=adapt_cases(cases),
        conversation_key=context.conversation_id,
        subject=context.subject,
        body_excerpt=context.body_excerpt,
        attachment_names=context.attachment_names,
        sender_address=context.sender,
        top_k=top_k,
        recipient_addresses=context.recipients if compose else (),
    )


class SuggestionService:
    """Loads a history snapshot and runs the engine against it."""

    def __init__(
        self,
        engine: SuggestionEngine,
        history: HistoryStore,
        *,
        recipients: RecipientHistory | None = None,
    ) -> None:
        self._engine = engine
        self._history = history
        self._recipients = recipients

    async def suggest(
        self, request: SuggestionRequest, *, now: datetime | None = None
    ) -> SuggestionResult:
        stats = await self._history.get_stats()
        result = self._engine.suggest(request, stats, now=now)
        result = await self._with_recipient_case(request, result)
        LOGGER.debug(
            "Suggested %d case(s), auto-select=%s",
            len(result.suggestions),
            result.auto_select_case_id or "-",
        )
        return result

    def suggest_by_content(self, request: SuggestionRequest) -> SuggestionResult:
        return self._engine.suggest_by_content(request)

    async def _with_recipient_case(
        self, request: SuggestionRequest, result: SuggestionResult
    ) -> SuggestionResult:
        """Preselect the case the recipients were last filed under."""
        if self._recipients is None or not request.recipient_addresses:
            return result
        best = await self._recipients.find_best_case(request.recipient_addresses)
        if best is None:
            return result
        case_id = best[0]
        if request.cases and case_id not in {case.id for case in request.cases}:
            LOGGER.debug("Recipient case %s is not among the candidates", case_id)
            return result
        return replace(
            result,
            recipient_case_id=case_id,
            auto_select_case_id=result.auto_select_case_id or case_id,
        )


__all__ = ["SuggestionService", "request_from_context"]
