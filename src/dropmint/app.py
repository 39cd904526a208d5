"""Service wiring and lifecycle.

Builds the pipeline from Settings, starts the inbox watcher and runs the
event consumer until the shutdown event is set.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

import structlog
from web3 import Web3

from dropmint.core.config import Settings
from dropmint.services.blockchain.mint_orchestrator import MintOrchestrator
from dropmint.services.blockchain.minter import Web3Minter
from dropmint.services.folder_loader import FolderContentLoader
from dropmint.services.interfaces import Minter, Uploader
from dropmint.services.ipfs.pinata_client import PinataClient
from dropmint.services.ipfs.upload_pipeline import UploadPipeline
from dropmint.services.ipfs.verification import UploadVerifier
from dropmint.services.ledger import CompletionLedger
from dropmint.services.retry import RetryPolicy
from dropmint.workers.pipeline_controller import PipelineController
from dropmint.workers.watcher import InboxWatcher

logger = structlog.get_logger()

WATCHER_CHECK_SECONDS = 5.0


def create_uploader(settings: Settings) -> PinataClient:
    return PinataClient(jwt_token=settings.pinata_jwt, gateway_domain=settings.pinata_gateway)


def create_minter(settings: Settings) -> Web3Minter:
    """Connect to the configured network and build the minter.

    Raises:
        ConnectionError: If the RPC endpoint is unreachable
    """
    rpc_url = settings.resolved_rpc_url
    w3 = Web3(Web3.HTTPProvider(rpc_url))
    if not w3.is_connected():
        raise ConnectionError(f"Failed to connect to {settings.network} RPC endpoint")

    logger.info("app.web3_connected", network=settings.network)
    return Web3Minter(
        w3=w3,
        contract_address=settings.nft_contract_address,
        minter_private_key=settings.minter_private_key,
        gas_buffer_percentage=settings.mint_gas_buffer - 1.0,
        transaction_timeout=settings.transaction_timeout_seconds,
    )


def build_controller(
    settings: Settings, uploader: Uploader, minter: Minter
) -> PipelineController:
    """Assemble the pipeline around the given collaborators."""
    retry_policy = RetryPolicy(
        max_attempts=settings.upload_max_attempts,
        base_delay=settings.upload_retry_base_seconds,
        max_delay=settings.upload_retry_max_seconds,
    )

    verifier = None
    if settings.verify_uploads:
        verifier = UploadVerifier(
            uploader,
            timeout_seconds=settings.verify_timeout_seconds,
            initial_interval=settings.verify_initial_interval_seconds,
            max_interval=settings.verify_max_interval_seconds,
            byte_compare_limit=settings.verify_byte_compare_limit,
        )

    return PipelineController(
        inbox_path=Path(settings.inbox_path),
        loader=FolderContentLoader(),
        upload_pipeline=UploadPipeline(uploader, retry_policy=retry_policy, verifier=verifier),
        mint_orchestrator=MintOrchestrator(minter),
        ledger=CompletionLedger(Path(settings.processed_path)),
        debounce_seconds=settings.debounce_seconds,
        explorer_base_url=settings.resolved_explorer_url,
    )


async def log_wallet_status(minter: Any, settings: Settings) -> None:
    """Log the minter wallet address and balance. Never fatal."""
    get_balance = getattr(minter, "get_balance_eth", None)
    if get_balance is None:
        return

    try:
        balance = await asyncio.to_thread(get_balance)
    except Exception as e:
        logger.warning("app.wallet_balance_failed", error=str(e), error_type=type(e).__name__)
        return

    address = minter.get_minter_address()
    logger.info("app.wallet_status", address=address, balance_eth=str(balance))
    if balance < settings.low_balance_threshold_eth:
        logger.warning(
            "app.wallet_low_balance",
            address=address,
            balance_eth=str(balance),
            threshold_eth=settings.low_balance_threshold_eth,
        )


def create_resilient_task(
    coro_func: Callable[[], Awaitable[None]],
    task_name: str,
    shutdown_event: asyncio.Event,
    restart_delay: float = 1.0,
) -> asyncio.Task:
    """Run a long-lived coroutine, restarting it after a crash.

    Args:
        coro_func: Zero-argument coroutine function (e.g. controller.consume bound to a queue)
        task_name: Human-readable task name for logging
        shutdown_event: Event to signal graceful shutdown
        restart_delay: Seconds to wait before restarting

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """

    def on_task_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("task.shutdown_complete", task=task_name)
            return

        if task.cancelled():
            logger.info("task.cancelled", task=task_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "task.crashed",
                task=task_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=restart_delay,
                exc_info=exc,
            )
        else:
            # Consumer returned without a sentinel from us
            logger.warning(
                "task.stopped_unexpectedly", task=task_name, retry_in_seconds=restart_delay
            )
            return

        async def restart_task():
            await asyncio.sleep(restart_delay)
            if shutdown_event.is_set():
                return
            logger.info("task.restarting", task=task_name)
            new_task = asyncio.create_task(coro_func())
            new_task.add_done_callback(on_task_done)

        asyncio.create_task(restart_task())

    task = asyncio.create_task(coro_func())
    task.add_done_callback(on_task_done)
    return task


async def monitor_watcher(
    watcher: InboxWatcher, shutdown_event: asyncio.Event, interval: float = WATCHER_CHECK_SECONDS
) -> None:
    """Restart the observer if its thread dies while the service is running."""
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            watcher.ensure_running()


async def run_service(
    settings: Settings,
    shutdown_event: asyncio.Event,
    once: bool = False,
    uploader: Uploader | None = None,
    minter: Minter | None = None,
) -> PipelineController:
    """Run the minter until shutdown_event is set.

    With once=True the existing inbox folders are processed and the function
    returns without starting the watcher.

    Returns:
        The controller, for statistics and the minted NFT log
    """
    uploader = uploader or create_uploader(settings)
    if minter is None:
        minter = await asyncio.to_thread(create_minter, settings)
    await log_wallet_status(minter, settings)

    controller = build_controller(settings, uploader, minter)
    Path(settings.inbox_path).mkdir(parents=True, exist_ok=True)
    controller.ledger.ensure_processed_root()

    logger.info(
        "app.started",
        inbox=str(controller.inbox_path),
        processed=str(controller.ledger.processed_root),
        debounce_seconds=settings.debounce_seconds,
        verify_uploads=settings.verify_uploads,
        once=once,
    )

    if once:
        controller.scan_inbox()
        await controller.wait_idle()
        await controller.shutdown()
        logger.info("app.stopped", **controller.get_stats())
        return controller

    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()
    watcher = InboxWatcher(controller.inbox_path, events, loop)
    controller.watcher = watcher
    watcher.start()

    consumer = create_resilient_task(
        lambda: controller.consume(events), "event_consumer", shutdown_event
    )
    monitor = create_resilient_task(
        lambda: monitor_watcher(watcher, shutdown_event), "watcher_monitor", shutdown_event
    )

    try:
        controller.scan_inbox()
        await shutdown_event.wait()
    finally:
        shutdown_event.set()
        logger.info("app.stopping")
        watcher.stop()
        events.put_nowait(None)
        monitor.cancel()
        if not consumer.done():
            try:
                await asyncio.wait_for(consumer, timeout=5)
            except asyncio.TimeoutError:
                logger.warning("app.consumer_stop_timeout")
        await controller.shutdown()
        logger.info("app.stopped", **controller.get_stats())

    return controller
