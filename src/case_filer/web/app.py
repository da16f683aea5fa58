"""FastAPI application exposing suggestions and duplicate decisions as JSON."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from pydantic import BaseModel, Field

from case_filer.core import AppSettings, ServiceContainer, load_app_settings
from case_filer.core.models import SuggestionRequest, SuggestionResult
from case_filer.filing import coerce_policy, decide
from case_filer.suggest import adapt_cases
from case_filer.wiring import build_container

LOGGER = logging.getLogger(__name__)


class SuggestionPayload(BaseModel):
    """Request body for the suggestion endpoints."""

    cases: list[dict[str, Any]] = Field(default_factory=list)
    conversation_key: str = ""
    subject: str = ""
    body_excerpt: str = ""
    attachment_names: list[str] = Field(default_factory=list)
    sender_address: str = ""
    top_k: int | None = Field(default=None, ge=1)
    recipients: list[str] = Field(default_factory=list)

    def to_request(self) -> SuggestionRequest:
        return SuggestionRequest(
            cases=adapt_cases(self.cases),
            conversation_key=self.conversation_key,
            subject=self.subject,
            body_excerpt=self.body_excerpt,
            attachment_names=tuple(self.attachment_names),
            sender_address=self.sender_address,
            top_k=self.top_k,
            recipient_addresses=tuple(self.recipients),
        )


class DecisionPayload(BaseModel):
    """Request body for the duplicate decision endpoint."""

    existing: bool
    policy: str | None = None


def result_to_dict(result: SuggestionResult) -> dict[str, Any]:
    return {
        "suggestions": [
            {
                "case_id": suggestion.case_id,
                "score": round(suggestion.score, 2),
                "confidence_pct": suggestion.confidence_pct,
                "reasons": list(suggestion.reasons),
            }
            for suggestion in result.suggestions
        ],
        "auto_select_case_id": result.auto_select_case_id,
        "recipient_case_id": result.recipient_case_id,
    }


def create_app(
    settings: AppSettings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    services = container or build_container(app_settings)
    app = FastAPI(title="Case Filer API")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Release storage connections and HTTP clients."""
        await services.aclose()
        LOGGER.info("Services closed")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        storage = services.resolve("storage")
        return {
            "status": "ok",
            "storage": storage.primary.name,
            "remote_configured": bool(app_settings.remote.base_url),
        }

    @app.post("/suggestions")
    async def suggestions(payload: SuggestionPayload) -> dict[str, Any]:
        """Rank candidate cases using history and content."""
        result = await services.resolve("suggestions").suggest(payload.to_request())
        return result_to_dict(result)

    @app.post("/suggestions/content")
    async def content_suggestions(payload: SuggestionPayload) -> dict[str, Any]:
        """Rank candidate cases using subject and body only."""
        result = services.resolve("suggestions").suggest_by_content(payload.to_request())
        return result_to_dict(result)

    @app.post("/duplicates/decision")
    async def duplicate_decision(payload: DecisionPayload) -> dict[str, str]:
        policy = coerce_policy(payload.policy or app_settings.filing.duplicate_policy)
        return {"policy": policy.value, "decision": decide(payload.existing, policy).value}

    @app.get("/history/mapped/{conversation_key}")
    async def mapped_case(conversation_key: str) -> dict[str, str]:
        case_id = await services.resolve("history").get_mapped_case(conversation_key)
        return {"conversation_key": conversation_key, "case_id": case_id}

    return app


__all__ = ["DecisionPayload", "SuggestionPayload", "create_app", "result_to_dict"]
