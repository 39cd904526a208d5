"""Metadata validation.

Checks the minimum needed before any network cost is incurred: a non-blank
name. Everything else has a safe default applied later.
"""

from typing import Any

from pydantic import ValidationError

from dropmint.models.metadata import MetadataDocument
from dropmint.services.exceptions import InvalidMetadataError


def is_valid_metadata(metadata: Any) -> bool:
    """Return True if metadata is an object with a non-blank string name."""
    if not isinstance(metadata, dict):
        return False
    name = metadata.get("name")
    return isinstance(name, str) and len(name.strip()) > 0


def validate_metadata(metadata: Any) -> MetadataDocument:
    """Validate raw metadata and parse it into a MetadataDocument.

    Args:
        metadata: Parsed JSON from the folder's sidecar

    Returns:
        MetadataDocument with the source keys preserved

    Raises:
        InvalidMetadataError: If name is missing, not a string, or blank
    """
    if not is_valid_metadata(metadata):
        name = metadata.get("name") if isinstance(metadata, dict) else None
        raise InvalidMetadataError(
            "Metadata must have a non-empty string 'name'",
            cause=f"name={name!r}",
        )

    try:
        return MetadataDocument.model_validate(metadata)
    except ValidationError as e:
        raise InvalidMetadataError("Metadata has invalid field types", cause=str(e)) from e
