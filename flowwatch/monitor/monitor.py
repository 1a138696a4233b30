"""
Poll loop for the wallet flow monitor.

Each cycle:
1. Take the current settings snapshot
2. Fetch the latest feed batch (newest first)
3. Skip transactions at or below the watermark
4. Classify the rest and apply them to the position ledger in feed order
5. Advance the watermark to the newest block time in the batch
6. Print a heartbeat line every few minutes

A failed cycle is logged and skipped; the next cycle runs on schedule.
Cycles never overlap: the next one is scheduled after the current one ends.

Example:
    >>> monitor = FlowMonitor(SettingsProvider(CONFIG_FILE))
    >>> await monitor.run()
"""

import asyncio
import logging
import signal
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Union

from ..api.feed import FeedBatch, FeedClient, FeedError, MalformedPayloadError
from ..config import (
    CONFIG_RELOAD_INTERVAL_SECONDS,
    HEARTBEAT_INTERVAL_SECONDS,
    IGNORED_TRADER_ADDRS,
    MONITOR_INTERVAL_SECONDS,
)
from .alerts import AlertDispatcher
from .classifier import TransactionClassifier
from .formatting import current_formatted_time
from .ledger import PositionLedger
from .position_tracker import PositionTracker
from .settings import Settings, SettingsProvider

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class MonitorState:
    """
    Current state of the monitor.

    Attributes:
        is_running: Whether the main loop is running.
        watermark: Newest block time already processed.
        cycle_count: Number of cycles attempted.
        orders_processed: Orders classified and handed to the tracker.
        failed_cycles: Cycles skipped because of an error.
        failed_records: Transactions skipped because they could not be applied.
        last_cycle_time: When the last cycle finished.
        last_error: Last cycle error message (if any).
        start_time: When the main loop started.
        last_heartbeat: Wall-clock seconds of the last heartbeat line.
    """

    is_running: bool = False
    watermark: Union[int, float] = 0
    cycle_count: int = 0
    orders_processed: int = 0
    failed_cycles: int = 0
    failed_records: int = 0
    last_cycle_time: Optional[datetime] = None
    last_error: Optional[str] = None
    start_time: Optional[datetime] = None
    last_heartbeat: float = 0.0

    def advance_watermark(self, batch_times: Iterable[Union[int, float]]) -> None:
        """Move the watermark to the newest time seen; it never goes back."""
        newest = max(batch_times, default=None)
        if newest is not None and newest > self.watermark:
            self.watermark = newest

    def to_dict(self) -> dict[str, Any]:
        """Convert state to dictionary."""
        return {
            "is_running": self.is_running,
            "watermark": self.watermark,
            "cycle_count": self.cycle_count,
            "orders_processed": self.orders_processed,
            "failed_cycles": self.failed_cycles,
            "failed_records": self.failed_records,
            "last_cycle_time": self.last_cycle_time.isoformat() if self.last_cycle_time else None,
            "last_error": self.last_error,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "uptime_seconds": (
                int((_utc_now() - self.start_time).total_seconds())
                if self.start_time
                else 0
            ),
        }


class FlowMonitor:
    """
    Main orchestrator: polls the feed and drives classifier and tracker.

    Attributes:
        settings_provider: Source of the hot-reloaded settings snapshot.
        feed_client: Data source for transaction batches.
        classifier: Raw transaction -> Order.
        tracker: Buy/sell handling over the position ledger.
        state: Watermark and counters.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        feed_client: Optional[FeedClient] = None,
        classifier: Optional[TransactionClassifier] = None,
        tracker: Optional[PositionTracker] = None,
        poll_interval: float = MONITOR_INTERVAL_SECONDS,
        reload_interval: float = CONFIG_RELOAD_INTERVAL_SECONDS,
        heartbeat_interval: int = HEARTBEAT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.settings_provider = settings_provider
        self.feed_client = feed_client or FeedClient()
        self.classifier = classifier or TransactionClassifier(IGNORED_TRADER_ADDRS)
        self.tracker = tracker or PositionTracker(PositionLedger(), AlertDispatcher())
        self.poll_interval = poll_interval
        self.reload_interval = reload_interval
        self.heartbeat_interval = heartbeat_interval
        self._clock = clock

        self.state = MonitorState()
        self._shutdown_event = asyncio.Event()

        logger.info(
            f"FlowMonitor initialized: poll_interval={poll_interval}s, "
            f"ignored_wallets={len(self.classifier.ignored_addresses)}"
        )

    @property
    def ledger(self) -> PositionLedger:
        return self.tracker.ledger

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for clean shutdown."""
        try:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)
        except (ValueError, RuntimeError):
            # Signal handlers can only be set in main thread
            pass

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, initiating shutdown...")
        self.stop()

    async def _fetch(self, url: str) -> FeedBatch:
        return await asyncio.to_thread(self.feed_client.fetch, url)

    async def process_batch(self, batch: FeedBatch, settings: Settings) -> int:
        """
        Process a parsed batch against the watermark.

        A record that fails to classify or apply is logged and skipped, so
        the watermark still moves past the whole batch and earlier records
        are never applied twice.

        Returns:
            Number of orders handed to the tracker.
        """
        watermark = self.state.watermark
        processed = 0

        for raw in batch.transactions:
            if raw.block_time <= watermark:
                continue

            try:
                order = self.classifier.classify(raw, batch.address_labels)
                if order is None:
                    continue

                await self.tracker.handle(order, settings, batch.token_symbols)
                processed += 1
            except Exception as e:
                self.state.failed_records += 1
                logger.error(
                    f"Skipping transaction at block_time={raw.block_time} "
                    f"from {raw.trader}: {e}",
                    exc_info=True,
                )

        self.state.advance_watermark(tx.block_time for tx in batch.transactions)
        self.state.orders_processed += processed
        return processed

    def _maybe_heartbeat(self) -> None:
        now = self._clock()
        if now - self.state.last_heartbeat >= self.heartbeat_interval:
            self.tracker.dispatcher.heartbeat(current_formatted_time())
            self.state.last_heartbeat = now

    async def run_cycle(self) -> dict[str, Any]:
        """
        Run one poll cycle.

        Errors are recorded in the result and logged; they never propagate.

        Returns:
            Dictionary with cycle results
        """
        self.state.cycle_count += 1
        cycle_result = {
            "timestamp": _utc_now().isoformat(),
            "cycle_number": self.state.cycle_count,
            "fetched": 0,
            "processed": 0,
            "errors": [],
        }

        settings = self.settings_provider.current
        if settings is None:
            cycle_result["errors"].append("No settings loaded")
            logger.warning("No settings loaded - skipping cycle")
            self.state.failed_cycles += 1
            return cycle_result

        try:
            batch = await self._fetch(settings.data_api)
            cycle_result["fetched"] = len(batch)
            cycle_result["processed"] = await self.process_batch(batch, settings)
            self._maybe_heartbeat()

        except MalformedPayloadError as e:
            error_msg = f"Malformed feed payload: {e}"
            cycle_result["errors"].append(error_msg)
            self.state.last_error = error_msg
            self.state.failed_cycles += 1
            logger.warning(error_msg)

        except FeedError as e:
            error_msg = str(e)
            cycle_result["errors"].append(error_msg)
            self.state.last_error = error_msg
            self.state.failed_cycles += 1
            logger.warning(f"Feed fetch failed: {error_msg}")

        except Exception as e:
            error_msg = f"Cycle failed: {e}"
            cycle_result["errors"].append(error_msg)
            self.state.last_error = error_msg
            self.state.failed_cycles += 1
            logger.error(error_msg, exc_info=True)

        self.state.last_cycle_time = _utc_now()
        return cycle_result

    async def run(self) -> None:
        """
        Main monitor loop.

        Loads settings, starts the settings reloader and polls until stopped.
        """
        self._setup_signal_handlers()
        self.settings_provider.reload()

        logger.info("Starting FlowMonitor main loop")
        self.state.is_running = True
        self.state.start_time = _utc_now()

        reloader = asyncio.create_task(
            self.settings_provider.run(self.reload_interval, self._shutdown_event)
        )

        try:
            while not self._shutdown_event.is_set():
                await self.run_cycle()

                # Wait for next cycle
                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self.poll_interval,
                    )
                except asyncio.TimeoutError:
                    pass  # Normal timeout, continue to next cycle

        except asyncio.CancelledError:
            logger.info("Monitor run cancelled")
        finally:
            self._shutdown_event.set()
            reloader.cancel()
            try:
                await reloader
            except asyncio.CancelledError:
                pass
            self.state.is_running = False
            logger.info("FlowMonitor stopped")

    def stop(self) -> None:
        """Signal the main loop to exit."""
        logger.info("Stopping FlowMonitor...")
        self._shutdown_event.set()

    def start(self) -> asyncio.Task:
        """
        Start the monitor as a background task.

        Returns:
            asyncio.Task that can be awaited or cancelled
        """
        return asyncio.create_task(self.run())

    def get_status(self) -> dict[str, Any]:
        """Monitor state, tracker counters and open positions."""
        return {
            "monitor_state": self.state.to_dict(),
            "buys_tracked": self.tracker.buys_tracked,
            "sells_tracked": self.tracker.sells_tracked,
            "chat_messages_sent": self.tracker.dispatcher.messages_sent,
            "chat_messages_failed": self.tracker.dispatcher.messages_failed,
            "open_positions": self.ledger.to_dict(),
        }
