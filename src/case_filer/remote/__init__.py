"""Case-management API client."""

from .client import HttpRemoteAuthority

__all__ = ["HttpRemoteAuthority"]
