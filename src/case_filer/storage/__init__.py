"""Storage backends and the tiered facade."""

from .backends import MemoryStore, RoamingSettingsStore, SqliteKeyValueStore
from .keys import StorageKeys, profile_from_address
from .tiered import TieredStorage

__all__ = [
    "MemoryStore",
    "RoamingSettingsStore",
    "SqliteKeyValueStore",
    "StorageKeys",
    "TieredStorage",
    "profile_from_address",
]
