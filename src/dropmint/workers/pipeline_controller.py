"""Pipeline controller: one state machine per inbox folder.

Consumes FolderEvents, debounces them through the DebounceScheduler and runs
each ready folder through load -> validate -> upload -> mint -> mark done ->
archive. Folders run as independent asyncio tasks; every failure is caught at
the per-folder boundary, counted and logged with the folder name and cause.

The controller owns all process-wide state: the scheduler's pending timers,
the ledger's processed-name set, run statistics, the task table and the
minted NFT log. It is created at startup and torn down by shutdown().
"""

import asyncio
import time
from pathlib import Path
from typing import Any

import structlog

from dropmint.models.folder_event import EventKind, FolderEvent
from dropmint.models.folder_task import FolderState, FolderTask
from dropmint.models.results import MintedNFT, RunStatistics
from dropmint.services.blockchain.mint_orchestrator import MintOrchestrator
from dropmint.services.exceptions import PipelineError
from dropmint.services.folder_loader import FolderContentLoader
from dropmint.services.ipfs.upload_pipeline import UploadPipeline
from dropmint.services.ledger import CompletionLedger
from dropmint.services.metadata_validator import validate_metadata
from dropmint.workers.scheduler import DebounceScheduler
from dropmint.workers.watcher import InboxWatcher

logger = structlog.get_logger()


class PipelineController:
    """Drives inbox folders from discovery to a terminal state."""

    def __init__(
        self,
        inbox_path: Path,
        loader: FolderContentLoader,
        upload_pipeline: UploadPipeline,
        mint_orchestrator: MintOrchestrator,
        ledger: CompletionLedger,
        debounce_seconds: float = 3.0,
        explorer_base_url: str | None = None,
    ):
        self.inbox_path = Path(inbox_path).resolve()
        self.loader = loader
        self.upload_pipeline = upload_pipeline
        self.mint_orchestrator = mint_orchestrator
        self.ledger = ledger
        self.explorer_base_url = explorer_base_url.rstrip("/") if explorer_base_url else None

        self.scheduler = DebounceScheduler(
            inbox_path=self.inbox_path,
            ledger=ledger,
            on_ready=self._on_folder_ready,
            debounce_seconds=debounce_seconds,
        )
        self.stats = RunStatistics()
        self.watcher: InboxWatcher | None = None
        self._closing = False
        self._tasks: dict[str, FolderTask] = {}
        self._running: set[asyncio.Task] = set()
        self._minted: list[MintedNFT] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def minted(self) -> list[MintedNFT]:
        """Minted NFT log in completion order."""
        return list(self._minted)

    @property
    def tasks(self) -> dict[str, FolderTask]:
        return dict(self._tasks)

    @property
    def watcher_active(self) -> bool:
        """True while the attached observer thread is alive."""
        return self.watcher is not None and self.watcher.is_active

    def get_stats(self) -> dict[str, Any]:
        return self.stats.snapshot(
            watcher_active=self.watcher_active,
            in_flight=sum(1 for t in self._tasks.values() if t.is_in_flight),
            pending=len(self.scheduler.pending),
        )

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def handle_event(self, event: FolderEvent) -> bool:
        """Route one watcher event. Must be called on the event loop.

        Events for a folder that is already in flight are not scheduled; the
        folder is flagged instead and resubmitted if that run fails.

        Returns:
            True if a debounce timer was started or restarted
        """
        if event.kind == EventKind.ERROR:
            logger.error(
                "watcher.error",
                error=event.error,
                path=str(event.path) if event.path else None,
            )
            return False

        folder = self.scheduler.folder_for(event)
        if folder is None:
            return False

        task = self._tasks.get(folder.name)
        if task is not None and task.is_in_flight:
            task.dirty = True
            logger.debug("pipeline.folder_busy", folder=folder.name, state=task.state.value)
            return False

        if self.scheduler.submit(event) is None:
            # Filtered by the ledger
            self._tasks.pop(folder.name, None)
            return False

        if task is None:
            task = FolderTask.for_path(folder)
            self._tasks[folder.name] = task
            logger.info("pipeline.folder_discovered", folder=folder.name)
        task.mark_debouncing()
        return True

    async def consume(self, events: asyncio.Queue) -> None:
        """Handle events from the queue until a None sentinel arrives."""
        while True:
            event = await events.get()
            try:
                if event is None:
                    return
                self.handle_event(event)
            except Exception as e:
                logger.error(
                    "pipeline.event_failed",
                    raw_event=repr(event),
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            finally:
                events.task_done()

    def scan_inbox(self) -> int:
        """Submit every existing subfolder of the inbox (startup scan).

        Returns:
            Number of folders submitted to the scheduler
        """
        try:
            entries = sorted(self.inbox_path.iterdir())
        except OSError as e:
            logger.warning("pipeline.scan_failed", inbox=str(self.inbox_path), error=str(e))
            return 0

        logger.info("pipeline.scan_started", inbox=str(self.inbox_path), items=len(entries))
        submitted = 0
        for entry in entries:
            try:
                if not entry.is_dir() or entry.name.startswith("."):
                    continue
            except OSError:
                continue
            if self.handle_event(FolderEvent.folder_appeared(entry)):
                submitted += 1
        return submitted

    def _on_folder_ready(self, folder: Path) -> None:
        task = self._tasks.get(folder.name)
        if task is not None and task.is_in_flight:
            return
        running = asyncio.create_task(self.process_folder(folder), name=f"folder:{folder.name}")
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    # ------------------------------------------------------------------
    # Folder pipeline
    # ------------------------------------------------------------------

    async def process_folder(self, folder_path: Path) -> MintedNFT | None:
        """Run one folder to a terminal state.

        Returns:
            The MintedNFT record on success, None if skipped or failed
        """
        folder_name = folder_path.name

        existing = self._tasks.get(folder_name)
        if existing is not None and existing.is_in_flight:
            logger.info("pipeline.folder_busy", folder=folder_name, state=existing.state.value)
            return None
        if self.ledger.is_done(folder_path):
            self._tasks.pop(folder_name, None)
            logger.info("pipeline.folder_skipped", folder=folder_name, reason="already_processed")
            return None

        task = existing or FolderTask.for_path(folder_path)
        self._tasks[folder_name] = task
        start_time = time.time()

        try:
            task.mark_loading()
            logger.info("pipeline.folder_started", folder=folder_name)
            contents = self.loader.load(folder_path)

            task.mark_validating()
            document = validate_metadata(contents.metadata)

            task.mark_uploading()
            upload = await self.upload_pipeline.upload(contents, document)

            task.mark_minting()
            result = await self.mint_orchestrator.mint(upload.metadata_uri, document)

            minted = MintedNFT(
                name=document.name,
                folder=folder_name,
                signature=result.signature,
                mint_address=result.mint_address,
                media_uri=upload.media_uri,
                metadata_uri=upload.metadata_uri,
                explorer_url=self._explorer_url(result.signature),
            )
            self._minted.append(minted)
            self.stats.total_minted += 1

            self.ledger.mark_done(folder_path)
            archived_to = self.ledger.archive(folder_path)

            self.stats.total_processed += 1
            task.mark_completed()
            logger.info(
                "pipeline.folder_completed",
                folder=folder_name,
                name=document.name,
                signature=result.signature,
                mint_address=result.mint_address,
                explorer_url=minted.explorer_url,
                archived_to=str(archived_to),
                duration_seconds=round(time.time() - start_time, 2),
            )
            return minted

        except PipelineError as e:
            self._record_failure(task, e, cause=e.cause or str(e))
            return None

        except Exception as e:
            self._record_failure(task, e, cause=str(e), exc_info=True)
            return None

        finally:
            self._tasks.pop(folder_name, None)
            if task.state == FolderState.FAILED and task.dirty and not self._closing:
                logger.info("pipeline.folder_resubmitted", folder=folder_name)
                self.handle_event(FolderEvent.folder_appeared(folder_path))

    def _record_failure(
        self, task: FolderTask, error: Exception, *, cause: str, exc_info: bool = False
    ) -> None:
        failed_state = task.state
        if isinstance(error, PipelineError) and error.folder is None:
            error.folder = task.name
        self.stats.errors += 1
        if task.is_in_flight:
            task.mark_failed(cause)

        logger.error(
            "pipeline.folder_failed",
            folder=task.name,
            failed_state=failed_state.value,
            error_type=type(error).__name__,
            error_message=str(error),
            cause=cause,
            exc_info=exc_info,
        )
        if failed_state == FolderState.MINTING:
            logger.warning(
                "pipeline.mint_outcome_unknown",
                folder=task.name,
                message="Transaction may have landed; verify on-chain before reprocessing",
            )

    def _explorer_url(self, signature: str) -> str | None:
        if not self.explorer_base_url:
            return None
        return f"{self.explorer_base_url}/tx/{signature}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self, poll_interval: float = 0.05) -> None:
        """Wait until no timers are pending and no folder is running."""
        while self.scheduler.pending or self._running:
            if self._running:
                await asyncio.gather(*list(self._running), return_exceptions=True)
            else:
                await asyncio.sleep(poll_interval)

    async def shutdown(self) -> None:
        """Cancel pending timers and let in-flight folders finish."""
        self._closing = True
        cancelled = self.scheduler.cancel_all()
        in_flight = len(self._running)
        logger.info("pipeline.shutdown", cancelled_timers=cancelled, in_flight=in_flight)
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
        self._tasks.clear()
        self.ledger.clear()
