"""Case suggestion scoring."""

from .autoselect import AutoSelectGuard, SelectionSource
from .cases import adapt_case, adapt_cases
from .engine import SuggestionEngine, confidence_pct
from .service import SuggestionService, request_from_context

__all__ = [
    "AutoSelectGuard",
    "SelectionSource",
    "SuggestionEngine",
    "SuggestionService",
    "adapt_case",
    "adapt_cases",
    "confidence_pct",
    "request_from_context",
]
