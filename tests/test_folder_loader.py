"""Folder content loader tests.

Tests cover:
- Media/metadata classification by extension (case-insensitive)
- Missing folder, missing media, missing metadata, invalid JSON
- Lexicographic choice among multiple candidates
- Hidden files (including the .done marker) are ignored
"""

import pytest

from dropmint.services.exceptions import (
    InvalidMetadataError,
    MissingFolderError,
    MissingMediaError,
    MissingMetadataError,
)
from dropmint.services.folder_loader import FolderContentLoader, is_media_file


def test_load_valid_folder(make_folder):
    folder = make_folder("cat", metadata={"name": "Cat"})

    contents = FolderContentLoader().load(folder)

    assert contents.media.name == "image.png"
    assert contents.media.content_type == "image/png"
    assert contents.media.size == contents.media.path.stat().st_size
    assert contents.metadata == {"name": "Cat"}
    assert contents.metadata_file.name == "metadata.json"


def test_extensions_are_case_insensitive(make_folder):
    folder = make_folder("clip", metadata={"name": "Clip"}, media_name="CLIP.MP4")

    contents = FolderContentLoader().load(folder)

    assert contents.media.content_type == "video/mp4"


def test_missing_folder_raises(inbox):
    with pytest.raises(MissingFolderError) as exc_info:
        FolderContentLoader().load(inbox / "gone")

    assert exc_info.value.folder == "gone"


def test_missing_media_raises(make_folder):
    folder = make_folder("nomedia", metadata={"name": "X"}, media=None)
    (folder / "notes.txt").write_text("not media")

    with pytest.raises(MissingMediaError):
        FolderContentLoader().load(folder)


def test_missing_metadata_raises(make_folder):
    folder = make_folder("nometa", metadata=None)

    with pytest.raises(MissingMetadataError):
        FolderContentLoader().load(folder)


def test_invalid_json_raises(make_folder):
    folder = make_folder("broken", metadata="{not json")

    with pytest.raises(InvalidMetadataError) as exc_info:
        FolderContentLoader().load(folder)

    assert exc_info.value.cause


def test_non_object_json_raises(make_folder):
    folder = make_folder("list", metadata="[1, 2, 3]")

    with pytest.raises(InvalidMetadataError):
        FolderContentLoader().load(folder)


def test_multiple_candidates_pick_first_by_name(make_folder):
    folder = make_folder(
        "multi", metadata={"name": "B"}, media_name="b.png", metadata_name="b.json"
    )
    (folder / "a.gif").write_bytes(b"GIF89a")
    (folder / "a.json").write_text('{"name": "A"}')

    contents = FolderContentLoader().load(folder)

    assert contents.media.name == "a.gif"
    assert contents.metadata == {"name": "A"}


def test_hidden_files_ignored(make_folder):
    folder = make_folder("hidden", metadata={"name": "H"})
    (folder / ".done").write_text("2024-01-01T00:00:00+00:00")
    (folder / ".secret.json").write_text('{"name": "secret"}')
    (folder / ".DS_Store").write_bytes(b"\x00")

    contents = FolderContentLoader().load(folder)

    assert contents.metadata == {"name": "H"}


def test_subdirectories_are_not_scanned(make_folder):
    folder = make_folder("nested", metadata={"name": "N"}, media=None)
    sub = folder / "sub"
    sub.mkdir()
    (sub / "image.png").write_bytes(b"\x89PNG")

    with pytest.raises(MissingMediaError):
        FolderContentLoader().load(folder)


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("a.png", True),
        ("a.JPEG", True),
        ("a.webm", True),
        ("a.svg", False),
        ("a.txt", False),
    ],
)
def test_is_media_file(tmp_path, filename, expected):
    assert is_media_file(tmp_path / filename) is expected
