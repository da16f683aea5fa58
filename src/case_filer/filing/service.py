"""Execute filings and bookkeeping around them."""

from __future__ import annotations

import logging
import mimetypes
import re
from collections.abc import Callable, Mapping
from datetime import datetime
from email.mime.text import MIMEText
from email.utils import format_datetime

from ..core.config import FilingSettings
from ..core.datetime_utils import utcnow
from ..core.errors import RemoteAuthorityError
from ..core.interfaces import MailHost, RemoteAuthority
from ..core.models import (
    CurrentItemContext,
    DocumentMatch,
    DuplicateDecision,
    DuplicatePolicy,
    FiledCacheEntry,
    FilingOutcome,
    FilingRecord,
    PendingFiling,
    UploadedDocument,
)
from ..filed.cache import FiledCache
from ..filed.records import FilingRecordStore, PendingFilingStore, UploadedLinksStore
from ..history.recipients import RecipientHistory
from ..history.store import HistoryStore
from .duplicates import coerce_policy, decide
from .guards import is_internal_email
from .intents import SINGLETON_DRAFT_KEY, ComposeIntentStore, candidate_keys

LOGGER = logging.getLogger(__name__)

EML_MIME_TYPE = "message/rfc822"
ATTACHMENT_MIME_TYPE = "application/octet-stream"
BLOCKED_MESSAGE = "This email already exists in the case. Filing was skipped (duplicate blocked)."
DEFERRED_MESSAGE = (
    "A duplicate of this email was detected in the case. Open the panel to confirm filing."
)
CONFIRM_MESSAGE = "The email was sent. Open the panel to confirm filing it."
FAILED_MESSAGE = "Filing the email failed. It was sent but not filed."

_UNSAFE_FILE_CHARS = re.compile(r'[\\/:*?"<>|\r\n\t]+')
_ALWAYS_MODE = "always"
_DEFER_MODES = frozenset({"warn", "ask"})


def eml_file_name(subject: str | None) -> str:
    """File name for an email document derived from its subject."""
    cleaned = _UNSAFE_FILE_CHARS.sub(" ", subject or "").strip(" .")
    return f"{cleaned[:120] or 'email'}.eml"


def build_eml(context: CurrentItemContext, *, sent_at: datetime | None = None) -> bytes:
    """Render a minimal RFC 822 message for the open item."""
    message = MIMEText(context.body_excerpt or "", "plain", "utf-8")
    message["Subject"] = context.subject
    if context.sender:
        message["From"] = context.sender
    if context.recipients:
        message["To"] = ", ".join(context.recipients)
    message["Date"] = format_datetime(sent_at or utcnow())
    if context.internet_message_id:
        message["Message-ID"] = context.internet_message_id
    return message.as_bytes()


class FilingService:
    """Files emails into cases and keeps local state in step with the result."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        remote: RemoteAuthority,
        history: HistoryStore,
        recipients: RecipientHistory,
        cache: FiledCache,
        records: FilingRecordStore,
        pending: PendingFilingStore,
        intents: ComposeIntentStore,
        *,
        host: MailHost | None = None,
        links: UploadedLinksStore | None = None,
        settings: FilingSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._remote = remote
        self._history = history
        self._recipients = recipients
        self._cache = cache
        self._records = records
        self._pending = pending
        self._intents = intents
        self._host = host
        self._links = links
        self._settings = settings or FilingSettings()
        self._clock = clock

    async def find_existing(self, case_id: str, subject: str) -> DocumentMatch | None:
        """Existing email document in the case; lookup failures count as none."""
        try:
            return await self._remote.find_document_by_subject(case_id, subject)
        except RemoteAuthorityError as exc:
            LOGGER.warning("Duplicate lookup in case %s failed: %s", case_id, exc)
            return None

    async def file_email(
        self,
        context: CurrentItemContext,
        case_id: str,
        policy: DuplicatePolicy | str | None = None,
        *,
        payload: bytes | None = None,
        attachments: Mapping[str, bytes] | None = None,
    ) -> FilingOutcome:
        """File ``context`` into ``case_id`` according to the duplicate policy.

        ``attachments`` maps file names to content; each is uploaded as its
        own document once the email itself is filed. A failed attachment
        upload is logged and skipped.

        Raises:
            RemoteAuthorityError: if uploading the document or version fails.
        """
        effective = coerce_policy(policy or self._settings.duplicate_policy)
        existing = await self.find_existing(case_id, context.subject)
        decision = decide(existing, effective)
        LOGGER.info("Filing decision for case %s: %s (policy=%s)", case_id, decision, effective)

        if decision is DuplicateDecision.BLOCK:
            await self._notify(BLOCKED_MESSAGE)
            return FilingOutcome(decision=decision, case_id=case_id, message=BLOCKED_MESSAGE)
        if decision is DuplicateDecision.DEFER:
            await self._defer(context, case_id, DEFERRED_MESSAGE)
            return FilingOutcome(decision=decision, case_id=case_id, message=DEFERRED_MESSAGE)

        now = self._clock()
        file_name = eml_file_name(context.subject)
        data = payload if payload is not None else build_eml(context, sent_at=now)
        revision: int | None = None
        if decision is DuplicateDecision.CREATE_VERSION and existing is not None:
            document_id = existing.id
            version_id = await self._remote.create_version(document_id, file_name, data)
            revision = int(version_id) if version_id.isdigit() else None
        else:
            document_id = await self._remote.create_document(
                case_id,
                file_name,
                data,
                {
                    "subject": context.subject,
                    "conversation_id": context.conversation_id,
                    "internet_message_id": context.internet_message_id,
                    "mime_type": EML_MIME_TYPE,
                },
            )

        uploaded = [UploadedDocument(id=document_id, name=file_name, uploaded_at=now)]
        uploaded.extend(await self._upload_attachments(context, case_id, attachments or {}, now))
        await self._record_success(context, case_id, document_id, revision, now, uploaded)
        return FilingOutcome(decision=decision, case_id=case_id, document_id=document_id)

    async def handle_send(self, context: CurrentItemContext) -> FilingOutcome | None:
        """Consume the draft's filing intent when the email is sent.

        Never raises: sending must not be blocked by filing problems.
        """
        found = await self._intents.read_any(candidate_keys(context))
        if found is None:
            return None
        intent_key, intent = found

        mode = (intent.filing_mode or "").strip().lower()
        if mode in _DEFER_MODES:
            await self._defer(context, intent.case_id, CONFIRM_MESSAGE)
            return FilingOutcome(
                decision=DuplicateDecision.DEFER,
                case_id=intent.case_id,
                message=CONFIRM_MESSAGE,
            )
        if not intent.auto_file_on_send and mode != _ALWAYS_MODE:
            LOGGER.info("Filing on send not requested; skipping")
            return None
        if self._settings.skip_internal_on_send and is_internal_email(
            context.sender, context.recipients, self._settings.internal_domains
        ):
            LOGGER.info("Internal-only recipients; not filing on send")
            return None

        if intent_key == SINGLETON_DRAFT_KEY and context.item_id.strip():
            await self._intents.migrate(intent_key, context.item_id.strip())
            intent_key = context.item_id.strip()

        try:
            outcome = await self.file_email(context, intent.case_id, intent.duplicates)
        except RemoteAuthorityError as exc:
            LOGGER.error("Filing on send failed for case %s: %s", intent.case_id, exc)
            await self._notify(FAILED_MESSAGE)
            return None

        await self._intents.clear(intent_key)
        return outcome

    async def _record_success(
        self,
        context: CurrentItemContext,
        case_id: str,
        document_id: str,
        revision: int | None,
        now: datetime,
        uploaded: list[UploadedDocument],
    ) -> None:
        await self._history.record_successful_filing(
            case_id, context.conversation_id, context.sender, now=now
        )
        if context.recipients:
            await self._recipients.record_recipients_filed(context.recipients, case_id)

        entry = FiledCacheEntry(
            case_id=case_id, document_id=document_id, subject=context.subject, filed_at=now
        )
        if context.conversation_id.strip():
            await self._cache.put(entry, context.conversation_id.strip())
        else:
            await self._cache.put_by_subject(entry)

        await self._records.save(
            context.item_key,
            FilingRecord(
                sent=True,
                case_id=case_id,
                document_id=document_id,
                revision_number=revision,
                filed_at=now,
            ),
        )
        if self._links is not None:
            await self._links.merge(context.item_key, uploaded)
        LOGGER.info("Filed email into case %s as document %s", case_id, document_id)

    async def _upload_attachments(
        self,
        context: CurrentItemContext,
        case_id: str,
        attachments: Mapping[str, bytes],
        now: datetime,
    ) -> list[UploadedDocument]:
        uploaded: list[UploadedDocument] = []
        for name, data in attachments.items():
            mime_type = mimetypes.guess_type(name)[0] or ATTACHMENT_MIME_TYPE
            try:
                document_id = await self._remote.create_document(
                    case_id,
                    name,
                    data,
                    {"conversation_id": context.conversation_id, "mime_type": mime_type},
                )
            except RemoteAuthorityError as exc:
                LOGGER.warning("Uploading attachment %s to case %s failed: %s", name, case_id, exc)
                continue
            uploaded.append(
                UploadedDocument(id=document_id, name=name, kind="attachment", uploaded_at=now)
            )
        return uploaded

    async def _defer(self, context: CurrentItemContext, case_id: str, message: str) -> None:
        await self._pending.put(
            PendingFiling(
                case_id=case_id,
                subject=context.subject,
                conversation_id=context.conversation_id,
                sent_at=self._clock(),
            )
        )
        await self._notify(message)

    async def _notify(self, message: str) -> None:
        if self._host is None:
            LOGGER.info("Notification: %s", message)
            return
        try:
            await self._host.notify(message)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Could not show notification: %s", exc)


__all__ = ["FilingService", "build_eml", "eml_file_name"]
