"""Metadata document parsed from a folder's JSON sidecar."""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MAX_ROYALTY_BASIS_POINTS = 10000
CREATOR_ADDRESS_MIN_LENGTH = 32
CREATOR_ADDRESS_MAX_LENGTH = 44


class Creator(BaseModel):
    """Creator entry passed to the minter."""

    model_config = ConfigDict(extra="allow")

    address: str
    share: int = Field(default=0, ge=0, le=100)
    verified: bool = False


class MetadataDocument(BaseModel):
    """Metadata sidecar with a required name and loosely typed optional fields.

    Optional fields keep whatever the author wrote. Defaults, clamping and
    filtering are applied by the mint orchestrator (royalty, creators) and by
    offchain_json() (attributes), not here.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    symbol: Any = None
    description: Any = None
    seller_fee_basis_points: Any = None
    creators: Any = None
    attributes: Any = None

    def offchain_json(self, image_uri: str) -> dict[str, Any]:
        """Build the JSON document uploaded to storage.

        Keeps every non-null key from the source file (including unknown
        ones), prunes empty attributes and points `image` at the uploaded
        media.
        """
        document = self.model_dump(exclude_none=True)
        if "attributes" in document:
            attributes = prune_attributes(self.attributes)
            if attributes is None:
                del document["attributes"]
            else:
                document["attributes"] = attributes
        document["image"] = image_uri
        return document


def normalize_royalty(value: Any) -> int:
    """Convert a raw seller_fee_basis_points value to an int in [0, 10000].

    Numbers (not bools) and numeric strings are truncated to an integer and
    clamped. Anything else, including None, becomes 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(0, min(MAX_ROYALTY_BASIS_POINTS, int(value)))


def filter_creators(creators: Any) -> list[Creator] | None:
    """Keep creators whose trimmed address length is in [32, 44].

    Returns None (not an empty list) when nothing survives, so the minter
    falls back to its default creator.
    """
    if not isinstance(creators, list):
        return None

    valid: list[Creator] = []
    for entry in creators:
        if not isinstance(entry, dict):
            continue
        address = entry.get("address")
        if not isinstance(address, str):
            continue
        address = address.strip()
        if not CREATOR_ADDRESS_MIN_LENGTH <= len(address) <= CREATOR_ADDRESS_MAX_LENGTH:
            continue
        share = entry.get("share", 0)
        if isinstance(share, bool) or not isinstance(share, int) or not 0 <= share <= 100:
            share = 0
        extra = {k: v for k, v in entry.items() if k not in ("address", "share", "verified")}
        valid.append(
            Creator(
                address=address,
                share=share,
                verified=bool(entry.get("verified", False)),
                **extra,
            )
        )

    return valid or None


def prune_attributes(attributes: Any) -> list[dict[str, Any]] | None:
    """Drop attributes with an empty trait_type or an empty/missing value."""
    if not isinstance(attributes, list):
        return None

    kept = []
    for attribute in attributes:
        if not isinstance(attribute, dict):
            continue
        trait_type = attribute.get("trait_type")
        if not isinstance(trait_type, str) or not trait_type.strip():
            continue
        value = attribute.get("value")
        if value is None or value == "":
            continue
        kept.append(attribute)
    return kept
