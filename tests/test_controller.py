"""Pipeline controller tests (end-to-end with in-memory collaborators).

Tests cover:
- drop/cat happy path: upload, mint, marker, archive, statistics
- Missing media fails without any network call
- Marker folders are never loaded
- Failed folders stay put and are re-entered only after a new event
- Upload and mint failures leave the folder untouched
- Events for a folder already in flight are ignored
- Startup scan and queue consumption
- Changes made while a folder is in flight re-run it once if that run fails
"""

import asyncio
import json
from unittest.mock import Mock

import pytest
from conftest import TEST_DEBOUNCE_SECONDS, FakeMinter, FakeUploader

from dropmint.models.folder_event import FolderEvent
from dropmint.models.folder_task import FolderState
from dropmint.models.results import MintRequest, MintResult
from dropmint.services.exceptions import IPFSNetworkError, TransactionRevertError
from dropmint.services.ledger import MARKER_NAME

CAT_METADATA = {
    "name": "Cat",
    "symbol": "CAT",
    "seller_fee_basis_points": 500,
    "attributes": [{"trait_type": "color", "value": "orange"}],
}


async def drop(controller, folder):
    controller.handle_event(FolderEvent.folder_appeared(folder))
    await controller.wait_idle()


@pytest.mark.asyncio
async def test_drop_cat_end_to_end(controller_factory, make_folder, inbox, processed):
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter, verify=True)
    folder = make_folder("cat", metadata=CAT_METADATA)

    await drop(controller, folder)

    # Folder archived with marker
    assert not folder.exists()
    archived = processed / "cat"
    assert (archived / MARKER_NAME).is_file()
    assert (archived / "image.png").is_file()

    # Media uploaded first, metadata references it
    assert [u["filename"] for u in uploader.uploads] == ["image.png", "metadata.json"]
    offchain = json.loads(uploader.uploads[1]["data"])
    assert offchain["image"].startswith("ipfs://")

    # One mint with normalized royalty
    assert len(minter.requests) == 1
    request = minter.requests[0]
    assert request.name == "Cat"
    assert request.royalty_basis_points == 500
    assert request.seller_fee_percent == 5.0

    # Minted log and statistics
    minted = controller.minted
    assert len(minted) == 1
    assert minted[0].folder == "cat"
    assert minted[0].metadata_uri == request.uri
    assert minted[0].media_uri == offchain["image"]
    assert minted[0].explorer_url == f"https://sepolia.basescan.org/tx/{minted[0].signature}"

    stats = controller.get_stats()
    assert stats["total_processed"] == 1
    assert stats["total_minted"] == 1
    assert stats["errors"] == 0
    assert stats["uptime_seconds"] >= 0
    assert controller.tasks == {}


@pytest.mark.asyncio
async def test_minimal_metadata_uses_defaults(controller_factory, make_folder, processed):
    """cat.png + cat.json with only a name: symbol "" and royalty 0."""
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder(
        "cat", metadata={"name": "Cat #1"}, media_name="cat.png", metadata_name="cat.json"
    )

    await drop(controller, folder)

    offchain = json.loads(uploader.uploads[1]["data"])
    assert offchain == {"name": "Cat #1", "image": controller.minted[0].media_uri}

    request = minter.requests[0]
    assert request.name == "Cat #1"
    assert request.symbol == ""
    assert request.royalty_basis_points == 0
    assert request.creators is None

    assert (processed / "cat" / MARKER_NAME).is_file()
    assert (processed / "cat" / "cat.json").is_file()
    assert controller.stats.total_minted == 1


@pytest.mark.asyncio
async def test_missing_media_makes_no_network_calls(controller_factory, make_folder, processed):
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder("nomedia", metadata={"name": "X"}, media=None)

    await drop(controller, folder)

    assert uploader.uploads == []
    assert minter.requests == []
    assert controller.stats.errors == 1
    assert folder.exists()
    assert not (folder / MARKER_NAME).exists()
    assert not (processed / "nomedia").exists()


@pytest.mark.asyncio
async def test_invalid_metadata_makes_no_network_calls(controller_factory, make_folder):
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder("noname", metadata={"name": "  "})

    await drop(controller, folder)

    assert uploader.uploads == []
    assert controller.stats.errors == 1


@pytest.mark.asyncio
async def test_marker_folder_is_never_loaded(controller_factory, make_folder):
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter)
    controller.loader = Mock(wraps=controller.loader)
    folder = make_folder("old", metadata=CAT_METADATA)
    (folder / MARKER_NAME).write_text("2024-01-01T00:00:00+00:00")

    await drop(controller, folder)
    assert await controller.process_folder(folder) is None

    controller.loader.load.assert_not_called()
    assert uploader.uploads == []
    assert controller.stats.errors == 0
    assert folder.exists()


@pytest.mark.asyncio
async def test_failed_folder_reentered_only_after_new_event(controller_factory, make_folder):
    uploader, minter = FakeUploader(), FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder("late", metadata=None)

    await drop(controller, folder)
    assert controller.stats.errors == 1

    # No new event: nothing happens
    await asyncio.sleep(TEST_DEBOUNCE_SECONDS * 3)
    assert controller.stats.errors == 1
    assert uploader.uploads == []

    # Author adds the missing file; the watcher reports it
    metadata_file = folder / "metadata.json"
    metadata_file.write_text(json.dumps(CAT_METADATA))
    controller.handle_event(FolderEvent.file_appeared(metadata_file))
    await controller.wait_idle()

    assert controller.stats.total_minted == 1
    assert controller.stats.errors == 1
    assert not folder.exists()


@pytest.mark.asyncio
async def test_upload_failure_leaves_folder_untouched(controller_factory, make_folder):
    uploader = FakeUploader(failures=[IPFSNetworkError(str(n)) for n in range(3)])
    minter = FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder("flaky", metadata=CAT_METADATA)

    await drop(controller, folder)

    assert len(uploader.uploads) == 3
    assert minter.requests == []
    assert controller.stats.errors == 1
    assert controller.stats.total_processed == 0
    assert folder.exists()
    assert not (folder / MARKER_NAME).exists()


@pytest.mark.asyncio
async def test_upload_recovers_after_two_failures(controller_factory, make_folder):
    uploader = FakeUploader(failures=[IPFSNetworkError("a"), IPFSNetworkError("b")])
    controller = controller_factory(uploader, FakeMinter())
    folder = make_folder("flaky", metadata=CAT_METADATA)

    await drop(controller, folder)

    assert controller.stats.total_minted == 1
    assert controller.stats.errors == 0


@pytest.mark.asyncio
async def test_mint_failure_is_not_retried(controller_factory, make_folder):
    uploader = FakeUploader()
    minter = FakeMinter(error=TransactionRevertError("reverted"))
    controller = controller_factory(uploader, minter)
    folder = make_folder("revert", metadata=CAT_METADATA)

    await drop(controller, folder)

    assert len(minter.requests) == 1
    assert controller.stats.errors == 1
    assert controller.stats.total_minted == 0
    assert controller.minted == []
    assert folder.exists()
    assert not (folder / MARKER_NAME).exists()


@pytest.mark.asyncio
async def test_same_name_is_minted_once_per_process(controller_factory, make_folder):
    minter = FakeMinter()
    controller = controller_factory(FakeUploader(), minter)

    await drop(controller, make_folder("cat", metadata=CAT_METADATA))
    again = make_folder("cat", metadata=CAT_METADATA)
    await drop(controller, again)

    assert len(minter.requests) == 1
    assert again.exists()


class GatedMinter(FakeMinter):
    """Minter that blocks until `release` is set."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def create_asset(self, request: MintRequest) -> MintResult:
        self.started.set()
        await self.release.wait()
        return await super().create_asset(request)


@pytest.mark.asyncio
async def test_events_for_in_flight_folder_are_ignored(controller_factory, make_folder):
    minter = GatedMinter()
    controller = controller_factory(FakeUploader(), minter)
    folder = make_folder("slow", metadata=CAT_METADATA)

    controller.handle_event(FolderEvent.folder_appeared(folder))
    await asyncio.wait_for(minter.started.wait(), timeout=2)
    assert controller.tasks["slow"].state == FolderState.MINTING

    controller.handle_event(FolderEvent.file_appeared(folder / "extra.png"))
    assert controller.scheduler.pending == frozenset()

    minter.release.set()
    await controller.wait_idle()

    assert len(minter.requests) == 1
    assert controller.stats.total_minted == 1


@pytest.mark.asyncio
async def test_folders_run_independently(controller_factory, make_folder):
    minter = FakeMinter()
    controller = controller_factory(FakeUploader(), minter)
    good = make_folder("good", metadata=CAT_METADATA)
    bad = make_folder("bad", metadata=None)

    controller.handle_event(FolderEvent.folder_appeared(good))
    controller.handle_event(FolderEvent.folder_appeared(bad))
    await controller.wait_idle()

    assert controller.stats.total_minted == 1
    assert controller.stats.errors == 1
    assert not good.exists()
    assert bad.exists()


@pytest.mark.asyncio
async def test_scan_inbox_submits_existing_folders(controller_factory, make_folder, inbox):
    controller = controller_factory(FakeUploader(), FakeMinter())
    make_folder("a", metadata=CAT_METADATA)
    make_folder("b", metadata=CAT_METADATA)
    done = make_folder("c", metadata=CAT_METADATA)
    (done / MARKER_NAME).write_text("2024-01-01T00:00:00+00:00")
    (inbox / ".hidden").mkdir()
    (inbox / "loose.png").write_bytes(b"\x89PNG")

    assert controller.scan_inbox() == 2

    await controller.wait_idle()
    assert controller.stats.total_minted == 2


@pytest.mark.asyncio
async def test_consume_until_sentinel(controller_factory, make_folder):
    controller = controller_factory(FakeUploader(), FakeMinter())
    folder = make_folder("queued", metadata=CAT_METADATA)
    events: asyncio.Queue = asyncio.Queue()

    events.put_nowait(FolderEvent.failure("inotify limit reached"))
    events.put_nowait(FolderEvent.folder_appeared(folder))
    events.put_nowait(None)

    await asyncio.wait_for(controller.consume(events), timeout=2)
    await controller.wait_idle()

    assert controller.stats.total_minted == 1


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_timers(controller_factory, make_folder):
    minter = FakeMinter()
    controller = controller_factory(FakeUploader(), minter, debounce_seconds=10)
    folder = make_folder("pending", metadata=CAT_METADATA)

    controller.handle_event(FolderEvent.folder_appeared(folder))
    assert controller.scheduler.pending

    await controller.shutdown()

    assert controller.scheduler.pending == frozenset()
    assert controller.tasks == {}
    assert minter.requests == []


class GatedUploader(FakeUploader):
    """Uploader whose first call blocks until `release` is set."""

    def __init__(self, failures=None):
        super().__init__(failures)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        self.started.set()
        await self.release.wait()
        return await super().upload(data, filename, content_type)


@pytest.mark.asyncio
async def test_change_during_failed_run_triggers_one_rerun(controller_factory, make_folder):
    uploader = GatedUploader(failures=[IPFSNetworkError(str(n)) for n in range(3)])
    minter = FakeMinter()
    controller = controller_factory(uploader, minter)
    folder = make_folder("fixed", metadata=CAT_METADATA)

    controller.handle_event(FolderEvent.folder_appeared(folder))
    await asyncio.wait_for(uploader.started.wait(), timeout=2)
    assert controller.tasks["fixed"].state == FolderState.UPLOADING

    # Operator replaces the media while the upload is still running
    (folder / "image.png").write_bytes(b"\x89PNG fixed")
    assert controller.handle_event(FolderEvent.file_appeared(folder / "image.png")) is False
    assert controller.tasks["fixed"].dirty
    assert controller.scheduler.pending == frozenset()

    uploader.release.set()
    await controller.wait_idle()

    assert controller.stats.errors == 1
    assert controller.stats.total_minted == 1
    assert len(minter.requests) == 1
    assert not folder.exists()


@pytest.mark.asyncio
async def test_failed_run_without_changes_is_not_rerun(controller_factory, make_folder):
    uploader = GatedUploader(failures=[IPFSNetworkError(str(n)) for n in range(3)])
    controller = controller_factory(uploader, FakeMinter())
    folder = make_folder("broken", metadata=CAT_METADATA)

    controller.handle_event(FolderEvent.folder_appeared(folder))
    await asyncio.wait_for(uploader.started.wait(), timeout=2)
    uploader.release.set()
    await controller.wait_idle()

    assert controller.stats.errors == 1
    assert controller.scheduler.pending == frozenset()
    assert len(uploader.uploads) == 3


@pytest.mark.asyncio
async def test_scan_inbox_does_not_count_in_flight_folders(controller_factory, make_folder):
    minter = GatedMinter()
    controller = controller_factory(FakeUploader(), minter)
    make_folder("slow", metadata=CAT_METADATA)

    assert controller.scan_inbox() == 1
    await asyncio.wait_for(minter.started.wait(), timeout=2)

    assert controller.scan_inbox() == 0

    minter.release.set()
    await controller.wait_idle()
    assert len(minter.requests) == 1


@pytest.mark.asyncio
async def test_consume_survives_a_failing_event(controller_factory, make_folder):
    controller = controller_factory(FakeUploader(), FakeMinter())
    folder = make_folder("after", metadata=CAT_METADATA)
    real_handle_event = controller.handle_event
    seen = []

    def flaky_handle_event(event):
        seen.append(event)
        if len(seen) == 1:
            raise RuntimeError("bad event")
        return real_handle_event(event)

    controller.handle_event = flaky_handle_event

    events: asyncio.Queue = asyncio.Queue()
    events.put_nowait(FolderEvent.folder_appeared(folder))
    events.put_nowait(FolderEvent.folder_appeared(folder))
    events.put_nowait(None)

    await asyncio.wait_for(controller.consume(events), timeout=2)
    await controller.wait_idle()

    assert len(seen) == 2
    assert controller.stats.total_minted == 1


def test_watcher_active_follows_observer(controller_factory):
    controller = controller_factory(FakeUploader(), FakeMinter())
    assert controller.get_stats()["watcher_active"] is False

    controller.watcher = Mock(is_active=True)
    assert controller.get_stats()["watcher_active"] is True

    # Observer thread died
    controller.watcher.is_active = False
    assert controller.get_stats()["watcher_active"] is False
