"""Protocol interfaces for decoupling the core from its collaborators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol

from .models import CurrentItemContext, DocumentMatch, RemoteFiling


class KeyValueBackend(Protocol):
    """Asynchronous string key-value store."""

    name: str

    def is_available(self) -> bool:
        """Return ``True`` when the backend can be used in this environment."""
        raise NotImplementedError

    async def get(self, key: str) -> str | None:
        """Return the stored value for ``key`` or ``None``."""
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError


class RemoteAuthority(Protocol):
    """Source of truth for filed documents in the case-management system."""

    async def find_filing(
        self, conversation_id: str, subject: str
    ) -> RemoteFiling | None:
        """Return the filing for a conversation/subject, ``None`` when absent."""
        raise NotImplementedError

    async def document_exists(self, document_id: str) -> bool:
        """Return ``False`` only when the document is confirmed gone."""
        raise NotImplementedError

    async def find_document_by_subject(
        self, case_id: str, subject: str
    ) -> DocumentMatch | None:
        """Return an email document in ``case_id`` with a matching subject."""
        raise NotImplementedError

    async def create_document(
        self,
        case_id: str,
        file_name: str,
        payload: bytes,
        metadata: Mapping[str, str],
    ) -> str:
        """Upload a new document and return its identifier."""
        raise NotImplementedError

    async def create_version(
        self, document_id: str, file_name: str, payload: bytes
    ) -> str:
        """Upload a new version of an existing document."""
        raise NotImplementedError


class MailHost(Protocol):
    """Host mail client exposing the open item and its labels."""

    async def current_context(self) -> CurrentItemContext | None:
        """Return a fresh snapshot of the open item, ``None`` when none is open."""
        raise NotImplementedError

    async def get_labels(self) -> Sequence[str]:
        """Return the labels currently applied to the open item."""
        raise NotImplementedError

    async def add_labels(self, names: Sequence[str]) -> None:
        """Apply labels to the open item."""
        raise NotImplementedError

    async def remove_labels(self, names: Sequence[str]) -> None:
        """Remove labels from the open item."""
        raise NotImplementedError

    async def notify(self, message: str) -> None:
        """Show an informational message to the user."""
        raise NotImplementedError


__all__ = ["KeyValueBackend", "MailHost", "RemoteAuthority"]
