"""Value objects passed between pipeline steps."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from dropmint.models.metadata import Creator


@dataclass(frozen=True)
class MediaFile:
    """Media asset found in a folder."""

    path: Path
    name: str
    content_type: str
    size: int


@dataclass(frozen=True)
class FolderContents:
    """Result of loading a folder: one media file and one parsed JSON document."""

    media: MediaFile
    metadata: Any  # Raw JSON object, validated separately
    metadata_file: Path


@dataclass(frozen=True)
class UploadResult:
    """Content-addressed URIs of the uploaded media and metadata."""

    media_uri: str
    metadata_uri: str


class MintRequest(BaseModel):
    """Normalized create-asset call sent to the minter."""

    name: str
    symbol: str = ""
    uri: str
    royalty_basis_points: int = 0
    seller_fee_percent: float = 0.0
    creators: Optional[list[Creator]] = None


@dataclass(frozen=True)
class MintResult:
    """Confirmed on-chain creation."""

    signature: str
    mint_address: str


@dataclass(frozen=True)
class MintedNFT:
    """Entry in the minted NFT log."""

    name: str
    folder: str
    signature: str
    mint_address: str
    media_uri: str
    metadata_uri: str
    minted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    explorer_url: Optional[str] = None


@dataclass
class RunStatistics:
    """Aggregate counters for one process lifetime. Never decremented."""

    total_processed: int = 0
    total_minted: int = 0
    errors: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def snapshot(self, **extra: Any) -> dict[str, Any]:
        uptime = (datetime.now(UTC) - self.started_at).total_seconds()
        return {
            "total_processed": self.total_processed,
            "total_minted": self.total_minted,
            "errors": self.errors,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": uptime,
            **extra,
        }
