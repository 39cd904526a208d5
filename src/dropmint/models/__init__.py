"""Domain entities and value objects.

All models are imported here so callers can use `from dropmint.models import ...`.
"""

from dropmint.models.folder_event import EventKind, FolderEvent
from dropmint.models.folder_task import FolderState, FolderTask, InvalidStateTransition
from dropmint.models.metadata import Creator, MetadataDocument
from dropmint.models.results import (
    FolderContents,
    MediaFile,
    MintedNFT,
    MintRequest,
    MintResult,
    RunStatistics,
    UploadResult,
)

__all__ = [
    "Creator",
    "EventKind",
    "FolderContents",
    "FolderEvent",
    "FolderState",
    "FolderTask",
    "InvalidStateTransition",
    "MediaFile",
    "MetadataDocument",
    "MintedNFT",
    "MintRequest",
    "MintResult",
    "RunStatistics",
    "UploadResult",
]
