"""Exception hierarchy shared by the filing core."""

from __future__ import annotations


class CaseFilerError(Exception):
    """Base exception for all case filer errors."""


class ConfigurationError(CaseFilerError):
    """Raised when required configuration is missing or invalid."""


class StorageError(CaseFilerError):
    """Raised by a storage backend when an operation fails."""


class StorageUnavailableError(StorageError):
    """Raised when a backend cannot be used in the current environment."""


class StorageQuotaError(StorageError):
    """Raised when a value exceeds the backend's size ceiling."""


class RemoteAuthorityError(CaseFilerError):
    """Raised when the case-management API fails or times out."""


__all__ = [
    "CaseFilerError",
    "ConfigurationError",
    "RemoteAuthorityError",
    "StorageError",
    "StorageQuotaError",
    "StorageUnavailableError",
]
