"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

DuplicatePolicyName = Literal["off", "warn", "block"]
BackendName = Literal["runtime", "roaming", "local"]


class StorageSettings(BaseModel):
    """Settings for the tiered key-value storage."""

    db_path: Path = Field(
        default=Path("./case_filer.db"), description="SQLite runtime store path"
    )
    roaming_path: Path | None = Field(
        default=None, description="JSON document backing the roaming settings store"
    )
    key_prefix: str = Field(default="cf", description="Namespace prefix for keys")
    profile: str = Field(
        default="default", description="Per-profile discriminator (mailbox address)"
    )
    backend_order: tuple[BackendName, ...] = Field(
        default=("runtime", "roaming", "local"),
        description="Lookup order for storage backends",
    )
    roaming_value_limit: int = Field(
        default=32 * 1024,
        ge=1024,
        description="Hard ceiling in bytes for a single roaming value",
    )
    filed_cache_max_entries: int = Field(
        default=20, ge=1, le=100, description="Entries kept in the filed cache"
    )
    filing_record_max_entries: int = Field(
        default=10, ge=1, le=100, description="Filing records kept per profile"
    )

    @field_validator("backend_order", mode="before")
    @classmethod
    def _split_order(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip().lower() for part in value.split(",") if part.strip())
        return value


class HistorySettings(BaseModel):
    """Caps for the suggestion history store."""

    max_threads: int = Field(default=400, ge=1)
    max_senders: int = Field(default=300, ge=1)
    max_domains: int = Field(default=200, ge=1)
    max_cases_per_sender: int = Field(default=30, ge=1)
    max_cases_per_domain: int = Field(default=30, ge=1)
    max_recent_cases: int = Field(default=30, ge=1)


class SuggestionSettings(BaseModel):
    """Thresholds applied after scoring."""

    top_k: int = Field(default=2, ge=1, description="Suggestions returned")
    content_top_k: int = Field(
        default=5, ge=1, description="Suggestions returned by content-only scoring"
    )
    auto_select_pct: int = Field(
        default=70, ge=0, le=100, description="Confidence needed to auto-select"
    )
    min_confidence_pct: int = Field(
        default=10, ge=0, le=100, description="Suggestions below this are dropped"
    )


class ResolverSettings(BaseModel):
    """Settings for filed-status resolution and label handling."""

    filed_label: str = Field(default="SC: Filed")
    unfiled_label: str = Field(default="SC: Unfiled")
    poll_interval_seconds: float = Field(default=0.45, gt=0.0)
    label_verify_attempts: int = Field(default=12, ge=1)
    label_verify_delay: float = Field(default=0.25, ge=0.0)
    label_clear_delay: float = Field(default=0.15, ge=0.0)


class FilingSettings(BaseModel):
    """Settings governing filing on send and duplicates."""

    duplicate_policy: DuplicatePolicyName = Field(
        default="warn", description="Behaviour when a matching document exists"
    )
    internal_domains: tuple[str, ...] = Field(
        default=(), description="Extra domains treated as internal"
    )
    skip_internal_on_send: bool = Field(
        default=True, description="Do not auto-file internal-only mail on send"
    )

    @field_validator("duplicate_policy", mode="before")
    @classmethod
    def _migrate_legacy_policy(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() == "ask":
            return "warn"
        return value

    @field_validator("internal_domains", mode="before")
    @classmethod
    def _split_domains(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value


class RemoteSettings(BaseModel):
    """Settings for the case-management HTTP API."""

    base_url: str | None = Field(default=None, description="API base URL")
    token: str | None = Field(default=None, description="API token")
    timeout_seconds: float = Field(default=10.0, gt=0.0)


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    suggestion: SuggestionSettings = Field(default_factory=SuggestionSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    filing: FilingSettings = Field(default_factory=FilingSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "CASE_FILER_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "FilingSettings",
    "HistorySettings",
    "LoggingSettings",
    "RemoteSettings",
    "ResolverSettings",
    "StorageSettings",
    "SuggestionSettings",
    "load_app_settings",
]
