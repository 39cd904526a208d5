"""CLI command for running the folder-watching minter.

Usage:
    python -m dropmint.cli [OPTIONS]

Examples:
    # Watch ./inbox and mint every folder dropped into it
    python -m dropmint.cli

    # Custom folders, shorter quiet period
    python -m dropmint.cli --inbox ./drops --processed ./done --debounce 1

    # Process folders already in the inbox, then exit
    python -m dropmint.cli --once

    # Skip gateway verification, verbose logging
    python -m dropmint.cli --no-verify -v
"""

import asyncio
import signal
import sys
from argparse import ArgumentParser, Namespace
from typing import Sequence

import structlog
from pydantic import ValidationError

from dropmint.app import run_service
from dropmint.core.config import Settings, configure_logging
from dropmint.workers.pipeline_controller import PipelineController

logger = structlog.get_logger()


def parse_args(argv: Sequence[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Watch an inbox folder and mint one NFT per dropped folder",
        epilog="Each folder needs one media file (png/jpg/gif/webp/webm/mp4) and one .json file",
    )

    parser.add_argument("--inbox", help="Folder to watch (default: INBOX_PATH)")
    parser.add_argument("--processed", help="Archive folder (default: PROCESSED_PATH)")
    parser.add_argument(
        "--debounce",
        type=float,
        help="Seconds of quiet before a folder is processed (default: DEBOUNCE_SECONDS)",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip gateway verification of uploaded files",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process folders already in the inbox, then exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: Namespace) -> Settings:
    if args.inbox:
        settings.inbox_path = args.inbox
    if args.processed:
        settings.processed_path = args.processed
    if args.debounce is not None:
        settings.debounce_seconds = args.debounce
    if args.no_verify:
        settings.verify_uploads = False
    if args.verbose:
        settings.log_level = "DEBUG"
    return settings


def print_summary(controller: PipelineController) -> None:
    stats = controller.get_stats()
    print("\n" + "=" * 60)
    print("Minting Summary")
    print("=" * 60)
    print(f"Folders processed: {stats['total_processed']}")
    print(f"NFTs minted: {stats['total_minted']}")
    print(f"Errors: {stats['errors']}")
    print(f"Uptime: {stats['uptime_seconds']:.0f}s")

    minted = controller.minted
    if minted:
        print("\nMinted:")
        for nft in minted:
            print(f"  - {nft.name} ({nft.folder})")
            print(f"      token: {nft.mint_address}")
            print(f"      metadata: {nft.metadata_uri}")
            if nft.explorer_url:
                print(f"      explorer: {nft.explorer_url}")
    print("=" * 60 + "\n")


def install_signal_handlers(shutdown_event: asyncio.Event, interrupted: list[bool]) -> None:
    loop = asyncio.get_running_loop()

    def request_shutdown(signame: str) -> None:
        logger.info("cli.signal_received", signal=signame)
        interrupted.append(signame == "SIGINT")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown, sig.name)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; KeyboardInterrupt still applies
            pass


async def async_main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (errors or configuration failure), 130 (interrupted)
    """
    args = parse_args(argv)

    try:
        settings = apply_overrides(Settings(), args)  # type: ignore[call-arg]
    except (ValidationError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings)

    logger.info(
        "cli.started",
        inbox=settings.inbox_path,
        processed=settings.processed_path,
        network=settings.network,
        contract_address=settings.nft_contract_address,
        once=args.once,
    )

    shutdown_event = asyncio.Event()
    interrupted: list[bool] = []
    install_signal_handlers(shutdown_event, interrupted)

    try:
        controller = await run_service(settings, shutdown_event, once=args.once)

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nMinter interrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    print_summary(controller)

    if any(interrupted):
        return 130
    if controller.stats.errors:
        logger.warning("cli.finished_with_errors", errors=controller.stats.errors)
        return 1
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
