"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class FilingState(StrEnum):
    """Resolved filing status of an email."""

    UNFILED = "unfiled"
    UNFILED_OVERRIDE = "unfiled_override"
    FILED = "filed"
    DELETED = "deleted"
    UNKNOWN = "unknown"


class DuplicatePolicy(StrEnum):
    """Configured behaviour when a matching document already exists."""

    OFF = "off"
    WARN = "warn"
    BLOCK = "block"


class DuplicateDecision(StrEnum):
    """What to do with an email about to be filed."""

    CREATE_DOCUMENT = "create_document"
    CREATE_VERSION = "create_version"
    BLOCK = "block"
    DEFER = "defer"


@dataclass(frozen=True, slots=True)
class Case:
    """Canonical case record; every external shape is adapted into this."""

    id: str
    title: str
    visible_reference: str = ""
    client_name: str = ""
    status: str = ""


@dataclass(frozen=True, slots=True)
class CaseSuggestion:
    """A ranked candidate case for one email."""

    case_id: str
    score: float
    confidence_pct: int
    reasons: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SuggestionResult:
    """Ranked suggestions plus the case to auto-select, if any."""

    suggestions: tuple[CaseSuggestion, ...]
    auto_select_case_id: str = ""
    recipient_case_id: str = ""


@dataclass(frozen=True, slots=True)
class SuggestionRequest:
    """Inputs for one scoring pass."""

    cases: tuple[Case, ...]
    conversation_key: str = ""
    subject: str = ""
    body_excerpt: str = ""
    attachment_names: tuple[str, ...] = ()
    sender_address: str = ""
    top_k: int | None = None
    recipient_addresses: tuple[str, ...] = ()


@dataclass(slots=True)
class CaseStats:
    """Counter and last-seen timestamp for one entity/case pair."""

    count: int
    last_seen_at: datetime | None


@dataclass(slots=True)
class ThreadMapping:
    """Case a conversation was last filed under."""

    case_id: str
    last_seen_at: datetime | None


@dataclass(slots=True)
class RecentCase:
    """Entry of the recently-used cases list."""

    case_id: str
    last_used_at: datetime | None
    use_count: int


@dataclass(slots=True)
class HistoryStats:
    """Decaying per-entity statistics feeding the suggestion engine."""

    thread_to_case: dict[str, ThreadMapping] = field(default_factory=dict)
    sender_to_case: dict[str, dict[str, CaseStats]] = field(default_factory=dict)
    domain_to_case: dict[str, dict[str, CaseStats]] = field(default_factory=dict)
    recent_cases: list[RecentCase] = field(default_factory=list)


@dataclass(slots=True)
class RecipientHistoryEntry:
    """Last case a recipient address was filed under."""

    email: str
    case_id: str
    count: int
    last_used_at: datetime | None


@dataclass(frozen=True, slots=True)
class FiledCacheEntry:
    """Local record of where an email was filed."""

    case_id: str
    document_id: str
    subject: str
    filed_at: datetime
    case_name: str | None = None
    case_key: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class FilingRecord:
    """Authoritative local record that an email was filed."""

    sent: bool
    case_id: str | None = None
    document_id: str | None = None
    revision_number: int | None = None
    record_id: str | None = None
    filed_at: datetime | None = None
    filed_by: str | None = None

    @classmethod
    def cleared(cls) -> FilingRecord:
        """Return the sentinel written instead of deleting a record."""
        return cls(sent=False)

    @property
    def is_filed(self) -> bool:
        """Whether the record points at a case."""
        return self.sent and bool(self.case_id)


@dataclass(frozen=True, slots=True)
class UploadedDocument:
    """Document uploaded to a case for an email or one of its attachments."""

    id: str
    name: str = ""
    kind: str = "email"
    uploaded_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ComposeFilingIntent:
    """Filing requested while composing, consumed at send time."""

    case_id: str
    auto_file_on_send: bool
    base_case_id: str | None = None
    base_document_id: str | None = None
    filing_mode: str | None = None
    duplicates: str | None = None


@dataclass(frozen=True, slots=True)
class PendingFiling:
    """Filing deferred until the user confirms it."""

    case_id: str
    subject: str
    conversation_id: str
    sent_at: datetime


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class CurrentItemContext:
    """Snapshot of the email that is open right now.

    The context is recomputed from the host on every pass and handed to the
    resolver and engine explicitly; nothing reads ambient host state.
    """

    item_id: str = ""
    conversation_id: str = ""
    subject: str = ""
    sender: str = ""
    recipients: tuple[str, ...] = ()
    attachment_names: tuple[str, ...] = ()
    body_excerpt: str = ""
    created_at: str = ""
    internet_message_id: str = ""

    @property
    def item_key(self) -> str:
        """Most reliable identity key available for this item."""
        if self.item_id.strip():
            return self.item_id.strip()
        if self.conversation_id.strip():
            return f"draft:{self.conversation_id.strip()}"
        if self.created_at.strip():
            return f"draft:{self.created_at.strip()}"
        return "draft:current"


@dataclass(frozen=True, slots=True)
class RemoteFiling:
    """Filing found by the remote authority."""

    case_id: str
    document_id: str
    case_name: str | None = None
    case_key: str | None = None
    subject: str | None = None


@dataclass(frozen=True, slots=True)
class DocumentMatch:
    """Existing email document in a case."""

    id: str
    name: str
    subject: str | None = None


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of a filed-status resolution pass."""

    state: FilingState
    item_key: str
    case_id: str | None = None
    document_id: str | None = None
    source: str = "none"

    @property
    def is_filed(self) -> bool:
        """Whether the email counts as filed."""
        return self.state is FilingState.FILED


@dataclass(frozen=True, slots=True)
class FilingOutcome:
    """Result of executing a filing request."""

    decision: DuplicateDecision
    case_id: str
    document_id: str | None = None
    message: str | None = None


__all__ = [
    "Case",
    "CaseStats",
    "CaseSuggestion",
    "ComposeFilingIntent",
    "CurrentItemContext",
    "DocumentMatch",
    "DuplicateDecision",
    "DuplicatePolicy",
    "FiledCacheEntry",
    "FilingOutcome",
    "FilingRecord",
    "FilingState",
    "HistoryStats",
    "PendingFiling",
    "RecentCase",
    "RecipientHistoryEntry",
    "RemoteFiling",
    "Resolution",
    "SuggestionRequest",
    "SuggestionResult",
    "ThreadMapping",
    "UploadedDocument",
]
