"""Namespaced storage keys."""

from __future__ import annotations

from dataclasses import dataclass

HISTORY = "case_suggest"
FILED_CACHE = "filed_cache"
FILING_RECORDS = "filing_records"
LEGACY_FILING_RECORD_PREFIX = "sent:"
RECIPIENT_HISTORY = "recipient_history"
PENDING_FILING = "pending_filing"
COMPOSE_INTENT_PREFIX = "compose_intent:"
UPLOADED_LINKS_PREFIX = "uploaded_links:"


def profile_from_address(address: str | None) -> str:
    """Return the profile segment for a mailbox address."""
    profile = (address or "").strip().lower()
    return profile or "default"


@dataclass(frozen=True, slots=True)
class StorageKeys:
    """Builds ``<prefix>:<profile>:<name>`` keys for one local profile."""

    prefix: str = "cf"
    profile: str = "default"

    def key(self, name: str) -> str:
        """Return the fully-qualified key for ``name``."""
        return f"{self.prefix}:{profile_from_address(self.profile)}:{name}"

    @property
    def history(self) -> str:
        return self.key(HISTORY)

    @property
    def filed_cache(self) -> str:
        return self.key(FILED_CACHE)

    @property
    def filing_records(self) -> str:
        return self.key(FILING_RECORDS)

    @property
    def recipient_history(self) -> str:
        return self.key(RECIPIENT_HISTORY)

    @property
    def pending_filing(self) -> str:
        return self.key(PENDING_FILING)

    def legacy_filing_record(self, item_key: str) -> str:
        """Key used by the older one-record-per-key layout."""
        return self.key(f"{LEGACY_FILING_RECORD_PREFIX}{item_key}")

    def compose_intent(self, item_key: str) -> str:
        return self.key(f"{COMPOSE_INTENT_PREFIX}{item_key}")

    def uploaded_links(self, item_key: str) -> str:
        return self.key(f"{UPLOADED_LINKS_PREFIX}{item_key}")


__all__ = ["StorageKeys", "profile_from_address"]
