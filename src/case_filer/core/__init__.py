"""Core utilities for configuration, logging, models and dependency wiring."""

from .config import AppSettings, load_app_settings
from .container import ServiceContainer
from .errors import CaseFilerError
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "CaseFilerError",
    "ServiceContainer",
    "configure_logging",
    "load_app_settings",
]
