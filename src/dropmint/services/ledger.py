"""Completion ledger: at-most-once minting per folder name.

A folder is done when its name is in the in-memory set or a `.done` marker
exists inside it. The marker survives restarts; the set is rebuilt lazily
from marker presence.
"""

import shutil
from datetime import UTC, datetime
from pathlib import Path

import structlog

logger = structlog.get_logger()

MARKER_NAME = ".done"


class CompletionLedger:
    """Marks minted folders done and moves them to the processed root."""

    def __init__(self, processed_root: Path):
        self.processed_root = Path(processed_root)
        self._done: set[str] = set()

    @property
    def processed_names(self) -> frozenset[str]:
        return frozenset(self._done)

    def ensure_processed_root(self) -> None:
        self.processed_root.mkdir(parents=True, exist_ok=True)

    def is_done(self, folder_path: Path) -> bool:
        """Return True if the folder was already minted.

        A marker found on disk is remembered in the in-memory set.
        """
        name = folder_path.name
        if name in self._done:
            return True
        if (folder_path / MARKER_NAME).is_file():
            self._done.add(name)
            logger.debug("ledger.marker_found", folder=name)
            return True
        return False

    def mark_done(self, folder_path: Path) -> Path:
        """Write the completion marker. Call only after a confirmed mint.

        The name is recorded in memory before the marker is written, so a
        failed write still blocks reprocessing for the rest of this process.

        Returns:
            Path of the written marker
        """
        self._done.add(folder_path.name)
        marker = folder_path / MARKER_NAME
        marker.write_text(datetime.now(UTC).isoformat(), encoding="utf-8")
        logger.debug("ledger.marked_done", folder=folder_path.name, marker=str(marker))
        return marker

    def archive(self, folder_path: Path) -> Path:
        """Move the folder into the processed root without overwriting.

        Name collisions get `_1`, `_2`, ... suffixes.

        Returns:
            Final path of the archived folder
        """
        self.ensure_processed_root()
        base_name = folder_path.name
        target = self.processed_root / base_name
        counter = 0
        while target.exists():
            counter += 1
            target = self.processed_root / f"{base_name}_{counter}"

        shutil.move(str(folder_path), str(target))
        logger.info("ledger.archived", folder=base_name, destination=str(target))
        return target

    def clear(self) -> None:
        """Forget in-memory state (markers on disk are untouched)."""
        self._done.clear()
