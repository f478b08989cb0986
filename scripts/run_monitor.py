#!/usr/bin/env python
"""
Monitor Entry Point

Starts the option board monitor: live (or replayed) ticker ingestion plus
periodic chain analysis and chart output.

Usage:
    python scripts/run_monitor.py --config config/monitor.yaml
    OPTBOARD_FEED_SOURCE=replay OPTBOARD_REPLAY_PATH=data/tickers.jsonl python scripts/run_monitor.py
"""

import argparse
import asyncio
import signal
import sys

from loguru import logger

from optboard.config import configure_logging, load_monitor_config
from optboard.orchestration import BoardMonitor


def setup_signal_handlers(monitor: BoardMonitor) -> None:
    """
    Set up signal handlers for graceful shutdown.

    Args:
        monitor: BoardMonitor instance
    """
    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        monitor.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the option board monitor")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to monitor YAML config (default: config/monitor.yaml)",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """
    Main monitor entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    try:
        config = load_monitor_config(args.config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.logging)

    logger.info("=" * 60)
    logger.info(f"Option Board Monitor - {config.feed.currency} ({config.feed.source})")
    logger.info("=" * 60)

    try:
        monitor = BoardMonitor(config)
        setup_signal_handlers(monitor)

        await monitor.start()
        await monitor.run()
        await monitor.stop()

        logger.info("✓ Monitor stopped cleanly")
        return 0

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
        return 0

    except Exception as e:
        logger.exception(f"Monitor failed: {e}")
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
