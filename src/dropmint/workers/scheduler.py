"""Debounce scheduler.

Turns bursts of raw filesystem events into one "folder ready" signal per
folder, emitted after a quiet period that restarts on every new event.

Timers are asyncio TimerHandles on the running loop; all state is touched
from the loop only.
"""

import asyncio
from pathlib import Path
from typing import Callable

import structlog

from dropmint.models.folder_event import EventKind, FolderEvent
from dropmint.services.ledger import CompletionLedger

logger = structlog.get_logger()


class DebounceScheduler:
    """Maintains at most one pending timer per folder."""

    def __init__(
        self,
        inbox_path: Path,
        ledger: CompletionLedger,
        on_ready: Callable[[Path], None],
        debounce_seconds: float = 3.0,
    ):
        """
        Args:
            inbox_path: Watched root directory
            ledger: Used to skip folders that were already minted
            on_ready: Called on the loop with the folder path when its timer fires
            debounce_seconds: Quiet period required after the last event
        """
        self.inbox_path = Path(inbox_path).resolve()
        self.ledger = ledger
        self.on_ready = on_ready
        self.debounce_seconds = debounce_seconds
        self._timers: dict[Path, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> frozenset[Path]:
        return frozenset(self._timers)

    def folder_for(self, event: FolderEvent) -> Path | None:
        """Map an event to the top-level inbox folder it concerns.

        Returns None for the inbox root, files directly in the inbox, paths
        outside the inbox and hidden folders.
        """
        if event.path is None or event.kind == EventKind.ERROR:
            return None

        path = Path(event.path).resolve()
        try:
            relative = path.relative_to(self.inbox_path)
        except ValueError:
            return None

        parts = relative.parts
        if not parts:
            return None
        if event.kind == EventKind.FILE_APPEARED and len(parts) == 1:
            # File dropped directly into the inbox root
            return None

        folder = self.inbox_path / parts[0]
        if folder.name.startswith("."):
            return None
        return folder

    def submit(self, event: FolderEvent) -> Path | None:
        """Start or restart the timer for the event's folder.

        Returns:
            Folder path that is now pending, or None if the event was filtered
        """
        folder = self.folder_for(event)
        if folder is None:
            return None

        if self.ledger.is_done(folder):
            self.cancel(folder)
            logger.info("scheduler.folder_skipped", folder=folder.name, reason="already_processed")
            return None

        loop = asyncio.get_running_loop()
        restarted = self.cancel(folder)
        self._timers[folder] = loop.call_later(self.debounce_seconds, self._fire, folder)

        logger.debug(
            "scheduler.folder_scheduled",
            folder=folder.name,
            event_kind=event.kind.value,
            restarted=restarted,
            delay_seconds=self.debounce_seconds,
        )
        return folder

    def cancel(self, folder: Path) -> bool:
        """Cancel a folder's pending timer. Returns True if one existed."""
        handle = self._timers.pop(folder, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        count = len(self._timers)
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        return count

    def _fire(self, folder: Path) -> None:
        self._timers.pop(folder, None)
        logger.debug("scheduler.folder_ready", folder=folder.name)
        try:
            self.on_ready(folder)
        except Exception as e:
            logger.error(
                "scheduler.ready_callback_failed",
                folder=folder.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
