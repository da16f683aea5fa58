"""Assemble the application services from settings."""

from __future__ import annotations

import logging

from .core.config import AppSettings
from .core.container import ServiceContainer
from .core.errors import ConfigurationError
from .core.interfaces import KeyValueBackend, MailHost
from .filed import (
    FiledCache,
    FiledStatusResolver,
    FilingRecordStore,
    LabelSynchronizer,
    PendingFilingStore,
    UploadedLinksStore,
)
from .filing import ComposeIntentStore, FilingService
from .history import HistoryStore, RecipientHistory
from .remote import HttpRemoteAuthority
from .storage import (
    MemoryStore,
    RoamingSettingsStore,
    SqliteKeyValueStore,
    StorageKeys,
    TieredStorage,
)
from .suggest import SuggestionEngine, SuggestionService

LOGGER = logging.getLogger(__name__)


def build_storage(settings: AppSettings) -> TieredStorage:
    """Create the backends in the configured lookup order."""
    storage_settings = settings.storage
    local = MemoryStore()
    backends: list[KeyValueBackend] = []
    for name in storage_settings.backend_order:
        if name == "runtime":
            backends.append(SqliteKeyValueStore(storage_settings.db_path))
        elif name == "roaming":
            backends.append(
                RoamingSettingsStore(
                    storage_settings.roaming_path,
                    value_limit=storage_settings.roaming_value_limit,
                    enabled=storage_settings.roaming_path is not None,
                )
            )
        elif name == "local":
            backends.append(local)
    return TieredStorage(backends, local=local)


def _device_backend(storage: TieredStorage) -> KeyValueBackend:
    """Backend for per-item data that stays on this device."""
    for backend in storage.backends:
        if isinstance(backend, SqliteKeyValueStore) and backend.is_available():
            return backend
    return storage.local


async def _close_storage(storage: TieredStorage) -> None:
    for backend in storage.backends:
        if isinstance(backend, SqliteKeyValueStore):
            backend.close()


# pylint: disable=too-many-locals
def build_container(settings: AppSettings, *, host: MailHost | None = None) -> ServiceContainer:
    """Register every service lazily; nothing connects until resolved."""
    container = ServiceContainer()
    container.register("settings", lambda _: settings)
    container.register(
        "keys",
        lambda _: StorageKeys(prefix=settings.storage.key_prefix, profile=settings.storage.profile),
    )
    container.register("storage", lambda _: build_storage(settings), close=_close_storage)
    container.register(
        "history",
        lambda c: HistoryStore(c.resolve("storage"), c.resolve("keys"), settings.history),
    )
    container.register(
        "recipients", lambda c: RecipientHistory(c.resolve("storage"), c.resolve("keys"))
    )
    container.register("engine", lambda _: SuggestionEngine(settings.suggestion))
    container.register(
        "suggestions",
        lambda c: SuggestionService(
            c.resolve("engine"), c.resolve("history"), recipients=c.resolve("recipients")
        ),
    )
    container.register(
        "cache",
        lambda c: FiledCache(
            c.resolve("storage"),
            c.resolve("keys"),
            max_entries=settings.storage.filed_cache_max_entries,
        ),
    )
    container.register(
        "records",
        lambda c: FilingRecordStore(
            c.resolve("storage"),
            c.resolve("keys"),
            max_entries=settings.storage.filing_record_max_entries,
        ),
    )
    container.register(
        "pending", lambda c: PendingFilingStore(c.resolve("storage"), c.resolve("keys"))
    )
    container.register(
        "intents", lambda c: ComposeIntentStore(c.resolve("storage"), c.resolve("keys"))
    )
    container.register(
        "links",
        lambda c: UploadedLinksStore(_device_backend(c.resolve("storage")), c.resolve("keys")),
    )
    container.register("remote", lambda _: _build_remote(settings), close=_close_remote)
    container.register(
        "labels",
        lambda _: LabelSynchronizer(host, settings.resolver) if host is not None else None,
    )
    container.register(
        "resolver",
        lambda c: FiledStatusResolver(
            c.resolve("cache"),
            c.resolve("records"),
            c.resolve("remote"),
            c.resolve("labels"),
            links=c.resolve("links"),
        ),
    )
    container.register("filing", lambda c: _build_filing(c, settings, host))
    return container


def _build_remote(settings: AppSettings) -> HttpRemoteAuthority | None:
    if not settings.remote.base_url:
        LOGGER.info("Remote base URL not configured; running local-only")
        return None
    return HttpRemoteAuthority(settings.remote)


async def _close_remote(remote: HttpRemoteAuthority | None) -> None:
    if remote is not None:
        await remote.aclose()


def _build_filing(
    container: ServiceContainer, settings: AppSettings, host: MailHost | None
) -> FilingService:
    remote = container.resolve("remote")
    if remote is None:
        raise ConfigurationError("Filing requires CASE_FILER_REMOTE__BASE_URL")
    return FilingService(
        remote,
        container.resolve("history"),
        container.resolve("recipients"),
        container.resolve("cache"),
        container.resolve("records"),
        container.resolve("pending"),
        container.resolve("intents"),
        host=host,
        links=container.resolve("links"),
        settings=settings.filing,
    )


__all__ = ["build_container", "build_storage"]
