"""Folder content loader.

Reads a candidate folder (non-recursive) and extracts its single media file and
single JSON metadata document.
"""

import json
from pathlib import Path

import structlog

from dropmint.models.results import FolderContents, MediaFile
from dropmint.services.exceptions import (
    InvalidMetadataError,
    MissingFolderError,
    MissingMediaError,
    MissingMetadataError,
)

logger = structlog.get_logger()

MEDIA_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".webm": "video/webm",
    ".mp4": "video/mp4",
}
METADATA_EXTENSION = ".json"


def is_media_file(path: Path) -> bool:
    return path.suffix.lower() in MEDIA_CONTENT_TYPES


def is_metadata_file(path: Path) -> bool:
    return path.suffix.lower() == METADATA_EXTENSION


class FolderContentLoader:
    """Classifies a folder's files into media, metadata and ignored."""

    def load(self, folder_path: Path) -> FolderContents:
        """Load the media file and parsed metadata from a folder.

        When several candidates of one kind exist, the lexicographically first
        file name wins and the others are logged as ignored.

        Args:
            folder_path: Folder directly under the inbox

        Returns:
            FolderContents with media descriptor and raw metadata object

        Raises:
            MissingFolderError: Folder was removed or is not a directory
            MissingMediaError: No allow-listed media file
            MissingMetadataError: No .json file
            InvalidMetadataError: Metadata is not valid JSON or not an object
        """
        folder_name = folder_path.name
        try:
            children = sorted(
                (p for p in folder_path.iterdir() if p.is_file() and not p.name.startswith(".")),
                key=lambda p: p.name,
            )
        except (FileNotFoundError, NotADirectoryError) as e:
            raise MissingFolderError(
                f"Folder {folder_name} no longer exists", folder=folder_name, cause=str(e)
            ) from e

        media_candidates = [p for p in children if is_media_file(p)]
        metadata_candidates = [p for p in children if is_metadata_file(p)]

        if not media_candidates:
            raise MissingMediaError(
                f"No media file found in folder {folder_name}", folder=folder_name
            )
        if not metadata_candidates:
            raise MissingMetadataError(
                f"No metadata JSON file found in folder {folder_name}", folder=folder_name
            )

        media_path = self._pick(folder_name, "media", media_candidates)
        metadata_path = self._pick(folder_name, "metadata", metadata_candidates)

        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidMetadataError(
                f"Metadata file {metadata_path.name} is not valid JSON",
                folder=folder_name,
                cause=str(e),
            ) from e
        except FileNotFoundError as e:
            raise MissingMetadataError(
                f"Metadata file {metadata_path.name} disappeared", folder=folder_name, cause=str(e)
            ) from e

        if not isinstance(metadata, dict):
            raise InvalidMetadataError(
                f"Metadata file {metadata_path.name} must contain a JSON object",
                folder=folder_name,
                cause=f"got {type(metadata).__name__}",
            )

        media = MediaFile(
            path=media_path,
            name=media_path.name,
            content_type=MEDIA_CONTENT_TYPES[media_path.suffix.lower()],
            size=media_path.stat().st_size,
        )

        logger.debug(
            "loader.folder_loaded",
            folder=folder_name,
            media_file=media.name,
            media_size=media.size,
            metadata_file=metadata_path.name,
        )

        return FolderContents(media=media, metadata=metadata, metadata_file=metadata_path)

    @staticmethod
    def _pick(folder_name: str, kind: str, candidates: list[Path]) -> Path:
        chosen = candidates[0]
        if len(candidates) > 1:
            logger.warning(
                "loader.multiple_candidates",
                folder=folder_name,
                kind=kind,
                chosen=chosen.name,
                ignored=[p.name for p in candidates[1:]],
            )
        return chosen
