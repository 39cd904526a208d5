"""Collaborator interfaces consumed by the pipeline.

The pipeline only depends on these protocols. PinataClient and Web3Minter are
the production implementations; tests use in-memory fakes.
"""

from dataclasses import dataclass, field
from typing import Protocol

from dropmint.models.results import MintRequest, MintResult


@dataclass(frozen=True)
class FetchResponse:
    """Raw response used to verify an uploaded artifact."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Uploader(Protocol):
    """Content-addressed storage."""

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Store bytes and return their URI (e.g. ipfs://<cid>)."""
        ...

    async def fetch(self, uri: str) -> FetchResponse:
        """Retrieve a previously returned URI. Must not raise on HTTP status."""
        ...


class Minter(Protocol):
    """On-chain token creation."""

    async def create_asset(self, request: MintRequest) -> MintResult:
        """Submit the create transaction and wait for confirmation."""
        ...
