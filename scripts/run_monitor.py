#!/usr/bin/env python3
"""
Run the Wallet Flow Monitor

Polls the trading activity feed, tracks positions built by watched wallets
and reports buys and sells on the console and (optionally) Telegram.

Usage:
    # Run with config.json from the project root
    python scripts/run_monitor.py

    # Use a different settings document
    python scripts/run_monitor.py --config /etc/flowwatch/config.json

    # Verbose output
    python scripts/run_monitor.py --verbose

Settings (config.json, re-read while running):
    DATA_API - Feed endpoint
    BOT_TOKEN - Telegram bot token
    CHAT_ID - Telegram chat receiving alerts
    SEND_TO_TG - true/false
    PER_BUY_LOWER_BOUND - Minimum amount spent for a buy to be tracked

Environment Variables:
    FLOWWATCH_CONFIG - Default settings path
    MONITOR_INTERVAL_SECONDS - Poll interval (default 3)
    IGNORED_TRADER_ADDRS - Comma separated wallets to ignore
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from flowwatch.config import CONFIG_FILE, IGNORED_TRADER_ADDRS, LOGS_DIR, MONITOR_INTERVAL_SECONDS
from flowwatch.monitor import FlowMonitor, SettingsProvider


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the monitor."""
    level = logging.DEBUG if verbose else logging.INFO

    # Create formatters
    console_format = "%(asctime)s [%(levelname)s] %(message)s"
    file_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(console_format, datefmt="%H:%M:%S"))

    # File handler
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOGS_DIR / f"monitor_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(file_format))

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    print(f"Logs will be written to: {log_file}")


async def run_monitor(config_path: Path) -> None:
    """
    Run the monitor until interrupted.

    Args:
        config_path: Settings document to load and watch
    """
    print("\n" + "=" * 70)
    print("Starting Wallet Flow Monitor")
    print("=" * 70)
    print(f"\nConfiguration:")
    print(f"  Settings: {config_path}")
    print(f"  Poll Interval: {MONITOR_INTERVAL_SECONDS}s")
    print(f"  Ignored Wallets: {len(IGNORED_TRADER_ADDRS)}")
    print(f"\nPress Ctrl+C to stop\n")

    monitor = FlowMonitor(SettingsProvider(config_path))

    try:
        await monitor.run()
    except KeyboardInterrupt:
        print("\nShutdown requested by user...")
    finally:
        monitor.stop()
        monitor.feed_client.close()

        # Print final status
        print("\n" + "=" * 70)
        print("Final Status")
        print("=" * 70)

        status = monitor.get_status()
        state = status["monitor_state"]
        print(f"\nSession Summary:")
        print(f"  Cycles completed: {state['cycle_count']}")
        print(f"  Failed cycles: {state['failed_cycles']}")
        print(f"  Skipped transactions: {state['failed_records']}")
        print(f"  Orders processed: {state['orders_processed']}")
        print(f"  Buys tracked: {status['buys_tracked']}")
        print(f"  Sells tracked: {status['sells_tracked']}")
        print(f"  Uptime: {state['uptime_seconds']} seconds")

        if state.get("last_error"):
            print(f"\nLast Error: {state['last_error']}")

        positions = status["open_positions"]
        if positions:
            print(f"\nOpen Positions ({len(positions)}):")
            for key, amount in positions.items():
                print(f"  {key}: {amount}")

        print("\n" + "=" * 70)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the Wallet Flow Monitor")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_FILE,
        help=f"Settings document (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        asyncio.run(run_monitor(args.config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
