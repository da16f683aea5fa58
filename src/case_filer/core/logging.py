"""Logging configuration helpers."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import LoggingSettings

_NOISY_LOGGERS = ("httpx", "httpcore")


class ProfileFilter(logging.Filter):
    """Stamp records with the mailbox profile the process works for.

    Records that already carry a ``profile`` (passed via ``extra``) keep it.
    """

    def __init__(self, profile: str = "default") -> None:
        super().__init__()
        self.profile = profile or "default"

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "profile", None):
            record.profile = self.profile
        return True


def _structured_formatter() -> dict[str, Any]:
    return {
        "format": "{asctime} {levelname} {name} profile={profile} {message}",
        "style": "{",
    }


def _plain_formatter() -> dict[str, Any]:
    return {
        "format": "%(asctime)s %(levelname)s [%(profile)s] %(name)s %(message)s",
    }


def configure_logging(settings: LoggingSettings, *, profile: str = "default") -> None:
    """Send application logs to the console, tagged with ``profile``."""
    formatter = _structured_formatter() if settings.structured else _plain_formatter()

    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "profile": {"()": ProfileFilter, "profile": profile},
        },
        "formatters": {
            "default": formatter,
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["profile"],
                "level": settings.level,
            },
        },
        "loggers": {
            name: {"level": "WARNING", "propagate": True} for name in _NOISY_LOGGERS
        },
        "root": {
            "handlers": ["console"],
            "level": settings.level,
        },
    }

    logging.config.dictConfig(dict_config)


__all__ = ["ProfileFilter", "configure_logging"]
