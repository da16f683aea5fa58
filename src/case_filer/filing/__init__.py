"""Duplicate decisions and filing execution."""

from .duplicates import coerce_policy, decide
from .guards import is_internal_email
from .intents import ComposeIntentStore, candidate_keys
from .service import FilingService

__all__ = [
    "ComposeIntentStore",
    "FilingService",
    "candidate_keys",
    "coerce_policy",
    "decide",
    "is_internal_email",
]
