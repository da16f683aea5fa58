"""Tests for filing execution and send-time handling."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from case_filer.core.config import FilingSettings
from case_filer.core.errors import RemoteAuthorityError
from case_filer.core.models import (
    ComposeFilingIntent,
    CurrentItemContext,
    DocumentMatch,
    DuplicateDecision,
    UploadedDocument,
)
from case_filer.filed import (
    FiledCache,
    FilingRecordStore,
    PendingFilingStore,
    UploadedLinksStore,
)
from case_filer.filing import ComposeIntentStore, FilingService
from case_filer.filing.service import (
    BLOCKED_MESSAGE,
    CONFIRM_MESSAGE,
    DEFERRED_MESSAGE,
    FAILED_MESSAGE,
    build_eml,
    eml_file_name,
)
from case_filer.history import HistoryStore, RecipientHistory
from case_filer.storage import MemoryStore, StorageKeys, TieredStorage

NOW = datetime(2025, 8, 4, 15, 0, tzinfo=timezone.utc)

SENT = CurrentItemContext(
    item_id="item-7",
    conversation_id="conv-7",
    subject="Signed contract",
    sender="jane@lawfirm.com",
    recipients=("client@acme.com",),
    body_excerpt="Please find the signed contract attached.",
    internet_message_id="<abc@lawfirm.com>",
)


class StubRemote:
    def __init__(
        self,
        existing: DocumentMatch | None = None,
        *,
        fail_upload: bool = False,
        rejected: frozenset[str] = frozenset(),
    ) -> None:
        self.existing = existing
        self.fail_upload = fail_upload
        self.rejected = rejected
        self.documents: list[tuple[str, str, bytes, dict[str, str]]] = []
        self.versions: list[tuple[str, str]] = []

    async def find_document_by_subject(self, case_id: str, subject: str) -> DocumentMatch | None:
        return self.existing

    async def create_document(
        self, case_id: str, file_name: str, payload: bytes, metadata: Mapping[str, str]
    ) -> str:
        if self.fail_upload or file_name in self.rejected:
            raise RemoteAuthorityError("upload failed")
        self.documents.append((case_id, file_name, payload, dict(metadata)))
        return f"doc-{len(self.documents)}"

    async def create_version(self, document_id: str, file_name: str, payload: bytes) -> str:
        self.versions.append((document_id, file_name))
        return "3"


class NotifyingHost:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def notify(self, message: str) -> None:
        self.messages.append(message)


@dataclass
class Harness:
    service: FilingService
    remote: StubRemote
    host: NotifyingHost
    history: HistoryStore
    recipients: RecipientHistory
    cache: FiledCache
    records: FilingRecordStore
    pending: PendingFilingStore
    intents: ComposeIntentStore
    links: UploadedLinksStore


def _harness(remote: StubRemote | None = None, settings: FilingSettings | None = None) -> Harness:
    storage = TieredStorage([])
    keys = StorageKeys()
    remote = remote or StubRemote()
    host = NotifyingHost()
    history = HistoryStore(storage, keys)
    recipients = RecipientHistory(storage, keys, clock=lambda: NOW)
    cache = FiledCache(storage, keys)
    records = FilingRecordStore(storage, keys, clock=lambda: NOW)
    pending = PendingFilingStore(storage, keys)
    intents = ComposeIntentStore(storage, keys)
    links = UploadedLinksStore(MemoryStore(), keys)
    service = FilingService(
        remote,
        history,
        recipients,
        cache,
        records,
        pending,
        intents,
        host=host,
        links=links,
        settings=settings,
        clock=lambda: NOW,
    )
    return Harness(
        service, remote, host, history, recipients, cache, records, pending, intents, links
    )


def test_new_document_updates_local_state() -> None:
    harness = _harness()

    async def scenario():
        outcome = await harness.service.file_email(SENT, "c1")
        return (
            outcome,
            await harness.history.get_mapped_case("conv-7"),
            await harness.recipients.find_best_case(["client@acme.com"]),
            await harness.cache.get("conv-7"),
            await harness.records.load("item-7"),
        )

    outcome, mapped, best, cached, record = asyncio.run(scenario())
    assert outcome.decision is DuplicateDecision.CREATE_DOCUMENT
    assert outcome.document_id == "doc-1"
    assert mapped == "c1"
    assert best == ("c1", 1)
    assert cached is not None and cached.document_id == "doc-1"
    assert record is not None and record.is_filed and record.filed_at == NOW

    case_id, file_name, payload, metadata = harness.remote.documents[0]
    assert (case_id, file_name) == ("c1", "Signed contract.eml")
    assert b"Subject: Signed contract" in payload
    assert metadata["conversation_id"] == "conv-7"


def test_existing_document_with_policy_off_creates_version() -> None:
    existing = DocumentMatch(id="d9", name="Signed contract.eml", subject="Signed contract")
    harness = _harness(StubRemote(existing))

    async def scenario():
        outcome = await harness.service.file_email(SENT, "c1", "off")
        return outcome, await harness.records.load("item-7")

    outcome, record = asyncio.run(scenario())
    assert outcome.decision is DuplicateDecision.CREATE_VERSION
    assert outcome.document_id == "d9"
    assert harness.remote.versions == [("d9", "Signed contract.eml")]
    assert harness.remote.documents == []
    assert record is not None and record.revision_number == 3


def test_block_policy_notifies_and_skips_upload() -> None:
    existing = DocumentMatch(id="d9", name="Signed contract.eml")
    harness = _harness(StubRemote(existing))

    outcome = asyncio.run(harness.service.file_email(SENT, "c1", "block"))
    assert outcome.decision is DuplicateDecision.BLOCK
    assert harness.host.messages == [BLOCKED_MESSAGE]
    assert harness.remote.documents == [] and harness.remote.versions == []


def test_warn_policy_defers_filing() -> None:
    existing = DocumentMatch(id="d9", name="Signed contract.eml")
    harness = _harness(StubRemote(existing))

    async def scenario():
        outcome = await harness.service.file_email(SENT, "c1")
        return outcome, await harness.pending.get()

    outcome, pending = asyncio.run(scenario())
    assert outcome.decision is DuplicateDecision.DEFER
    assert pending is not None
    assert (pending.case_id, pending.conversation_id, pending.sent_at) == ("c1", "conv-7", NOW)
    assert outcome.message == DEFERRED_MESSAGE
    assert harness.host.messages == [DEFERRED_MESSAGE]


def test_send_consumes_intent_stored_under_singleton_key() -> None:
    harness = _harness()

    async def scenario():
        await harness.intents.write(
            "draft:current", ComposeFilingIntent(case_id="c4", auto_file_on_send=True)
        )
        outcome = await harness.service.handle_send(SENT)
        return outcome, await harness.intents.read_any(["item-7", "draft:current"])

    outcome, leftover = asyncio.run(scenario())
    assert outcome is not None
    assert outcome.decision is DuplicateDecision.CREATE_DOCUMENT
    assert outcome.case_id == "c4"
    assert leftover is None


def test_send_with_ask_mode_defers() -> None:
    harness = _harness()

    async def scenario():
        await harness.intents.write(
            "item-7", ComposeFilingIntent(case_id="c4", auto_file_on_send=True, filing_mode="ask")
        )
        return await harness.service.handle_send(SENT), await harness.pending.get()

    outcome, pending = asyncio.run(scenario())
    assert outcome is not None and outcome.decision is DuplicateDecision.DEFER
    assert pending is not None and pending.case_id == "c4"
    assert harness.remote.documents == []
    assert harness.host.messages == [CONFIRM_MESSAGE]


def test_send_applies_duplicate_policy_from_intent() -> None:
    existing = DocumentMatch(id="d9", name="Signed contract.eml")
    harness = _harness(StubRemote(existing))

    async def scenario():
        await harness.intents.write(
            "item-7",
            ComposeFilingIntent(case_id="c4", auto_file_on_send=True, duplicates="block"),
        )
        return await harness.service.handle_send(SENT)

    outcome = asyncio.run(scenario())
    assert outcome is not None and outcome.decision is DuplicateDecision.BLOCK
    assert harness.host.messages == [BLOCKED_MESSAGE]
    assert harness.remote.documents == [] and harness.remote.versions == []


def test_attachments_are_uploaded_and_linked() -> None:
    harness = _harness(StubRemote(rejected=frozenset({"broken.docx"})))
    attachments = {"contract.pdf": b"%PDF-1.7", "broken.docx": b"PK", "notes.bin": b"\x00"}

    async def scenario():
        outcome = await harness.service.file_email(SENT, "c1", attachments=attachments)
        return outcome, await harness.links.load("item-7")

    outcome, links = asyncio.run(scenario())
    assert outcome.document_id == "doc-1"
    assert [(name, metadata["mime_type"]) for _, name, _, metadata in harness.remote.documents] == [
        ("Signed contract.eml", "message/rfc822"),
        ("contract.pdf", "application/pdf"),
        ("notes.bin", "application/octet-stream"),
    ]
    assert links == [
        UploadedDocument(id="doc-1", name="Signed contract.eml", kind="email", uploaded_at=NOW),
        UploadedDocument(id="doc-2", name="contract.pdf", kind="attachment", uploaded_at=NOW),
        UploadedDocument(id="doc-3", name="notes.bin", kind="attachment", uploaded_at=NOW),
    ]


def test_refiling_replaces_previous_email_link() -> None:
    harness = _harness()

    async def scenario():
        await harness.service.file_email(SENT, "c1", attachments={"contract.pdf": b"%PDF"})
        await harness.service.file_email(SENT, "c2")
        return await harness.links.load("item-7")

    links = asyncio.run(scenario())
    assert [(link.id, link.kind) for link in links] == [
        ("doc-3", "email"),
        ("doc-2", "attachment"),
    ]


def test_send_without_auto_file_does_nothing() -> None:
    harness = _harness()

    async def scenario():
        await harness.intents.write("item-7", ComposeFilingIntent(case_id="c4", auto_file_on_send=False))
        return await harness.service.handle_send(SENT)

    assert asyncio.run(scenario()) is None
    assert harness.remote.documents == []


def test_send_to_internal_recipients_is_not_filed() -> None:
    harness = _harness(settings=FilingSettings(internal_domains=("acme.com",)))

    async def scenario():
        await harness.intents.write("item-7", ComposeFilingIntent(case_id="c4", auto_file_on_send=True))
        return await harness.service.handle_send(SENT)

    assert asyncio.run(scenario()) is None
    assert harness.remote.documents == []


def test_send_failure_notifies_and_keeps_intent() -> None:
    harness = _harness(StubRemote(fail_upload=True))

    async def scenario():
        await harness.intents.write("item-7", ComposeFilingIntent(case_id="c4", auto_file_on_send=True))
        outcome = await harness.service.handle_send(SENT)
        return outcome, await harness.intents.read("item-7")

    outcome, intent = asyncio.run(scenario())
    assert outcome is None
    assert harness.host.messages == [FAILED_MESSAGE]
    assert intent is not None and intent.case_id == "c4"


def test_eml_helpers() -> None:
    assert eml_file_name("Re: offer/counter-offer?") == "Re  offer counter-offer.eml"
    assert eml_file_name("") == "email.eml"
    rendered = build_eml(SENT, sent_at=NOW)
    assert b"Message-ID: <abc@lawfirm.com>" in rendered
    assert b"To: client@acme.com" in rendered
