"""History of past filings."""

from .recipients import RecipientHistory
from .store import HistoryStore, domain_from_address

__all__ = ["HistoryStore", "RecipientHistory", "domain_from_address"]
