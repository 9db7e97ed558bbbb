"""Referendum Tally - process entry point"""
import argparse
import asyncio
import signal
import sys
from typing import List, Optional

import httpx
import structlog

from referendum.config import Settings, get_settings
from referendum.exceptions import ReferendumError
from referendum.logging_config import configure_logging
from referendum.services.chain_client import ChainClient
from referendum.services.scheduler import PassScheduler
from referendum.services.storage import SnapshotStore
from referendum.services.sync import ReferendumSync

logger = structlog.get_logger()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Referendum vote tally")
    parser.add_argument("--once", action="store_true", help="run one full pass and exit")
    parser.add_argument("--data-dir", help="directory for JSON snapshots")
    parser.add_argument("--rpc-url", help="chain node HTTP endpoint")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply command-line overrides to the environment settings."""
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    settings = get_settings()
    return settings.model_copy(update=overrides) if overrides else settings


async def main(
    settings: Settings,
    once: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Run the initial pass, then the quick and long schedulers until stopped."""
    logger.info("Starting Referendum Tally", version=settings.app_version, chain_id=settings.chain_id)

    store = SnapshotStore(settings.data_dir, settings.chain_id)

    async with ChainClient(settings=settings, transport=transport) as client:
        sync = ReferendumSync(client, store, settings=settings)

        try:
            head_block_num = await client.get_head_block_num()
            await sync.run_initial(head_block_num)
        except ReferendumError as e:
            logger.error("Initial pass failed", error=str(e), error_type=type(e).__name__)
            return 1

        if once:
            return 0

        quick = PassScheduler(
            "quick",
            sync.run_quick,
            client.get_head_block_num,
            interval_seconds=settings.quick_interval_seconds,
        )
        slow = PassScheduler(
            "long",
            sync.run_long,
            client.get_head_block_num,
            interval_seconds=settings.long_interval_seconds,
        )

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

        await quick.start()
        await slow.start()
        try:
            await stop_event.wait()
        finally:
            await quick.stop()
            await slow.stop()

    logger.info("Referendum Tally shutdown complete")
    return 0


def run(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    args = parse_args(argv)
    settings = build_settings(args)
    configure_logging(settings.log_level, settings.json_logs)
    sys.exit(asyncio.run(main(settings, once=args.once)))


if __name__ == "__main__":
    run()
