"""Inbox watcher built on watchdog.

The observer runs in its own thread; every notification is handed to the
event loop with call_soon_threadsafe so the controller only ever sees
FolderEvents on the loop.
"""

import asyncio
from pathlib import Path

import structlog
from watchdog.events import (
    DirCreatedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from dropmint.models.folder_event import FolderEvent

logger = structlog.get_logger()

IGNORED_NAMES = frozenset({".DS_Store", "Thumbs.db"})


def is_ignored(path: Path) -> bool:
    """Hidden files, OS junk and the completion marker are never reported."""
    return path.name in IGNORED_NAMES or path.name.startswith(".")


class InboxEventHandler(FileSystemEventHandler):
    """Translates watchdog events into FolderEvents on an asyncio queue."""

    def __init__(self, queue: asyncio.Queue, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.queue = queue
        self.loop = loop

    def _emit(self, event: FolderEvent) -> None:
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, event)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    def dispatch(self, event: FileSystemEvent) -> None:
        # An exception here would end the observer thread
        try:
            super().dispatch(event)
        except Exception as e:
            logger.error(
                "watcher.handler_failed",
                path=str(event.src_path),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._emit(FolderEvent.failure(str(e)))

    def _dispatch_path(self, raw_path, is_directory: bool) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        path = Path(raw_path)
        if is_ignored(path):
            return
        if is_directory:
            self._emit(FolderEvent.folder_appeared(path))
        else:
            self._emit(FolderEvent.file_appeared(path))

    def on_created(self, event: FileSystemEvent) -> None:
        if isinstance(event, (DirCreatedEvent, FileCreatedEvent)):
            self._dispatch_path(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications are echoes of child changes
        if isinstance(event, FileModifiedEvent):
            self._dispatch_path(event.src_path, False)

    def on_moved(self, event: FileSystemEvent) -> None:
        if isinstance(event, (DirMovedEvent, FileMovedEvent)):
            self._dispatch_path(event.dest_path, event.is_directory)


class InboxWatcher:
    """Recursive watchdog observer on the inbox directory."""

    def __init__(self, inbox_path: Path, queue: asyncio.Queue, loop: asyncio.AbstractEventLoop):
        self.inbox_path = Path(inbox_path)
        self.queue = queue
        self.loop = loop
        self.handler = InboxEventHandler(queue, loop)
        self._observer: Observer | None = None

    @property
    def is_active(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> bool:
        """Start watching. Failures are reported as an ERROR event.

        Returns:
            True if the observer is running
        """
        if self.is_active:
            return True

        observer = Observer()
        try:
            self.inbox_path.mkdir(parents=True, exist_ok=True)
            observer.schedule(self.handler, str(self.inbox_path), recursive=True)
            observer.start()
        except OSError as e:
            logger.error("watcher.start_failed", inbox=str(self.inbox_path), error=str(e))
            self.handler._emit(FolderEvent.failure(str(e), self.inbox_path))
            return False

        self._observer = observer
        logger.info("watcher.started", inbox=str(self.inbox_path))
        return True

    def stop(self, timeout: float = 5.0) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=timeout)
        self._observer = None
        logger.info("watcher.stopped", inbox=str(self.inbox_path))

    def ensure_running(self) -> bool:
        """Restart the observer if its thread died after a successful start.

        Returns:
            True if the observer is running afterwards
        """
        if self._observer is None or self._observer.is_alive():
            return self.is_active
        logger.warning("watcher.observer_died", inbox=str(self.inbox_path))
        self._observer = None
        return self.start()
