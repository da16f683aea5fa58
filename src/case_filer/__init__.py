"""Case suggestion and filed-status reconciliation for email filing."""

__version__ = "0.1.0"
