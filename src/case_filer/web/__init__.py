"""Web application entry point for the case filer API."""

from .app import create_app

__all__ = ["create_app"]
