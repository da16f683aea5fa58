"""Filed-status detection and reconciliation."""

from .cache import FiledCache, subject_key
from .labels import LabelState, LabelSynchronizer
from .records import FilingRecordStore, PendingFilingStore, UploadedLinksStore
from .resolver import FiledStatusResolver
from .tracker import CurrentItemTracker

__all__ = [
    "CurrentItemTracker",
    "FiledCache",
    "FiledStatusResolver",
    "FilingRecordStore",
    "LabelState",
    "LabelSynchronizer",
    "PendingFilingStore",
    "UploadedLinksStore",
    "subject_key",
]
