"""Simple service container for dependency management."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

LOGGER = logging.getLogger(__name__)

Closer = Callable[[Any], Awaitable[None] | None]


class ServiceContainer:
    """Minimal dependency container with lazy singleton semantics."""

    def __init__(self) -> None:
        """Initialise container storage."""
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._closers: dict[str, Closer] = {}
        self._instances: dict[str, Any] = {}

    def register(
        self,
        key: str,
        factory: Callable[[ServiceContainer], T],
        *,
        close: Closer | None = None,
    ) -> None:
        """Register a factory, and optionally a release hook, under ``key``."""
        self._factories[key] = factory
        if close is not None:
            self._closers[key] = close

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    def try_resolve(self, key: str) -> Any | None:
        """Resolve a dependency if available; return None otherwise."""
        try:
            return self.resolve(key)
        except KeyError:
            return None

    async def aclose(self) -> None:
        """Release instantiated services in reverse creation order."""
        for key in reversed(list(self._instances)):
            closer = self._closers.get(key)
            if closer is None:
                continue
            try:
                result = closer(self._instances[key])
                if inspect.isawaitable(result):
                    await result
            except Exception:  # pylint: disable=broad-except
                LOGGER.warning("Failed to close service '%s'", key, exc_info=True)
        self._instances.clear()


__all__ = ["ServiceContainer"]
