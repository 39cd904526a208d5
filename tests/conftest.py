"""pytest fixtures for dropmint tests.

Provides:
- FakeUploader / FakeMinter: in-memory collaborators recording every call
- inbox / processed: tmp_path based folders
- make_folder: helper that writes a candidate folder into the inbox
- controller_factory: PipelineController wired to the fakes with a tiny debounce
"""

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import pytest

from dropmint.models.results import MintRequest, MintResult
from dropmint.services.blockchain.mint_orchestrator import MintOrchestrator
from dropmint.services.folder_loader import FolderContentLoader
from dropmint.services.interfaces import FetchResponse
from dropmint.services.ipfs.upload_pipeline import UploadPipeline
from dropmint.services.ipfs.verification import UploadVerifier
from dropmint.services.ledger import CompletionLedger
from dropmint.services.retry import RetryPolicy
from dropmint.workers.pipeline_controller import PipelineController

TEST_DEBOUNCE_SECONDS = 0.05

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
    "0000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


class FakeUploader:
    """Content-addressed in-memory store.

    `failures` is a list of exceptions raised by successive upload() calls
    before uploads start succeeding.
    """

    def __init__(self, failures: list[Exception] | None = None):
        self.failures = list(failures or [])
        self.uploads: list[dict[str, Any]] = []
        self.store: dict[str, tuple[bytes, str]] = {}
        self.fetches: list[str] = []

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        self.uploads.append({"data": data, "filename": filename, "content_type": content_type})
        if self.failures:
            raise self.failures.pop(0)
        uri = "ipfs://" + hashlib.sha256(data).hexdigest()[:46]
        self.store[uri] = (data, content_type)
        return uri

    async def fetch(self, uri: str) -> FetchResponse:
        self.fetches.append(uri)
        if uri not in self.store:
            return FetchResponse(status=404)
        data, content_type = self.store[uri]
        return FetchResponse(status=200, headers={"Content-Type": content_type}, content=data)


class FakeMinter:
    """Minter that confirms every request unless `error` is set."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.requests: list[MintRequest] = []

    async def create_asset(self, request: MintRequest) -> MintResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        token_id = len(self.requests)
        return MintResult(
            signature=f"0x{token_id:064x}",
            mint_address=f"0x000000000000000000000000000000000000dEaD:{token_id}",
        )


@pytest.fixture(scope="session", autouse=True)
def test_environment():
    """Keep Settings validation off for every test."""
    os.environ["APP_ENV"] = "test"
    yield


@pytest.fixture
def inbox(tmp_path: Path) -> Path:
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def processed(tmp_path: Path) -> Path:
    return tmp_path / "processed"


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def minter() -> FakeMinter:
    return FakeMinter()


@pytest.fixture
def make_folder(inbox: Path):
    """Write a candidate folder. Pass metadata=None or media=None to omit a file."""

    def _make(
        name: str,
        metadata: Any = None,
        media: bytes | None = PNG_BYTES,
        media_name: str = "image.png",
        metadata_name: str = "metadata.json",
        root: Path | None = None,
    ) -> Path:
        folder = (root or inbox) / name
        folder.mkdir(parents=True)
        if media is not None:
            (folder / media_name).write_bytes(media)
        if metadata is not None:
            payload = metadata if isinstance(metadata, str) else json.dumps(metadata)
            (folder / metadata_name).write_text(payload, encoding="utf-8")
        return folder

    return _make


@pytest.fixture
def controller_factory(inbox: Path, processed: Path):
    def _factory(
        uploader: FakeUploader,
        minter: FakeMinter,
        verify: bool = False,
        debounce_seconds: float = TEST_DEBOUNCE_SECONDS,
        retry_policy: RetryPolicy | None = None,
    ) -> PipelineController:
        verifier = None
        if verify:
            verifier = UploadVerifier(uploader, timeout_seconds=1, initial_interval=0)
        pipeline = UploadPipeline(
            uploader,
            retry_policy=retry_policy or RetryPolicy(max_attempts=3, base_delay=0),
            verifier=verifier,
        )
        return PipelineController(
            inbox_path=inbox,
            loader=FolderContentLoader(),
            upload_pipeline=pipeline,
            mint_orchestrator=MintOrchestrator(minter),
            ledger=CompletionLedger(processed),
            debounce_seconds=debounce_seconds,
            explorer_base_url="https://sepolia.basescan.org",
        )

    return _factory
