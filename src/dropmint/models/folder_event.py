"""Filesystem notifications delivered by the inbox watcher."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class EventKind(str, Enum):
    FOLDER_APPEARED = "folder_appeared"
    FILE_APPEARED = "file_appeared"
    ERROR = "error"


@dataclass(frozen=True)
class FolderEvent:
    """One raw watcher notification.

    `path` is the directory for FOLDER_APPEARED, the file for FILE_APPEARED
    and optional for ERROR.
    """

    kind: EventKind
    path: Optional[Path] = None
    error: Optional[str] = None

    @classmethod
    def folder_appeared(cls, path: Path) -> "FolderEvent":
        return cls(EventKind.FOLDER_APPEARED, Path(path))

    @classmethod
    def file_appeared(cls, path: Path) -> "FolderEvent":
        return cls(EventKind.FILE_APPEARED, Path(path))

    @classmethod
    def failure(cls, error: str, path: Optional[Path] = None) -> "FolderEvent":
        return cls(EventKind.ERROR, Path(path) if path is not None else None, error)
