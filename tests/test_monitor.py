"""
Integration tests for the FlowMonitor poll loop.

These tests verify:
- End-to-end buy -> sell -> ignored sell across polls
- Watermark dedup across overlapping batches
- Failed cycles leave ledger and watermark untouched
- A record that cannot be applied is skipped and never replayed
- Heartbeat cadence
- Main loop start/stop

All feed and chat calls are mocked.
"""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from conftest import SOL, TOKEN, WALLET, RecordingNotifier, make_payload, make_tx
from flowwatch.api.feed import FeedClient, FeedError, MalformedPayloadError, parse_feed_payload
from flowwatch.monitor.alerts import AlertDispatcher
from flowwatch.monitor.classifier import TransactionClassifier
from flowwatch.monitor.ledger import PositionLedger
from flowwatch.monitor.monitor import FlowMonitor, MonitorState
from flowwatch.monitor.position_tracker import PositionTracker
from flowwatch.monitor.settings import SettingsProvider


# =============================================================================
# Fixtures
# =============================================================================


def batch_of(*transactions):
    return parse_feed_payload(make_payload(list(transactions)))


def buy_tx(block_time, spent=100, received=100, wallet=WALLET):
    return make_tx(
        block_time=block_time,
        wallet=wallet,
        input_amount=spent,
        output_amount=received,
    )


def sell_tx(block_time, sold, gained=1, wallet=WALLET):
    return make_tx(
        kind="token:sell",
        block_time=block_time,
        wallet=wallet,
        input_token=TOKEN,
        input_amount=sold,
        output_token=SOL,
        output_amount=gained,
    )


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def feed_client():
    return MagicMock(spec=FeedClient)


@pytest.fixture
def settings_provider(settings):
    provider = MagicMock(spec=SettingsProvider)
    provider.current = settings
    return provider


@pytest.fixture
def printed():
    return []


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monitor(settings_provider, feed_client, printed, notifier, clock):
    dispatcher = AlertDispatcher(notifier_factory=lambda token: notifier, printer=printed.append)
    return FlowMonitor(
        settings_provider,
        feed_client=feed_client,
        classifier=TransactionClassifier(),
        tracker=PositionTracker(PositionLedger(), dispatcher),
        poll_interval=0.01,
        reload_interval=0.01,
        heartbeat_interval=300,
        clock=clock,
    )


# =============================================================================
# Test: End-to-end scenario
# =============================================================================


class TestEndToEnd:
    """Buy, then a closing sell, then a sell on a closed position."""

    @pytest.mark.asyncio
    async def test_buy_sell_ignore_sequence(self, monitor, feed_client):
        feed_client.fetch.side_effect = [
            batch_of(buy_tx(1700000100, spent=100, received=100)),
            batch_of(sell_tx(1700000200, sold=95), buy_tx(1700000100)),
            batch_of(sell_tx(1700000300, sold=1), sell_tx(1700000200, sold=95)),
        ]

        await monitor.run_cycle()
        assert monitor.ledger.get(WALLET, TOKEN) == 100
        assert monitor.tracker.buys_tracked == 1

        await monitor.run_cycle()
        assert monitor.ledger.get(WALLET, TOKEN) == 0
        assert monitor.tracker.sells_tracked == 1

        await monitor.run_cycle()
        assert monitor.ledger.get(WALLET, TOKEN) == 0
        assert monitor.tracker.sells_tracked == 1
        assert monitor.state.watermark == 1700000300

    @pytest.mark.asyncio
    async def test_chat_receives_one_alert_per_tracked_order(
        self, monitor, feed_client, settings_provider, tg_settings, notifier
    ):
        settings_provider.current = tg_settings
        feed_client.fetch.side_effect = [
            batch_of(buy_tx(1700000100)),
            batch_of(sell_tx(1700000200, sold=95)),
            batch_of(sell_tx(1700000300, sold=1)),
        ]

        for _ in range(3):
            await monitor.run_cycle()

        headers = [text for _, text in notifier.sent if text.startswith("---")]
        assert len(headers) == 2
        assert headers[0].endswith("[BUY] ---")
        assert headers[1].endswith("[SELL] ---")

    @pytest.mark.asyncio
    async def test_fetch_uses_snapshot_url(self, monitor, feed_client):
        feed_client.fetch.return_value = batch_of()

        await monitor.run_cycle()

        feed_client.fetch.assert_called_once_with("https://feed.example/api")


# =============================================================================
# Test: Watermark dedup
# =============================================================================


class TestWatermark:
    """Tests for watermark based dedup."""

    @pytest.mark.asyncio
    async def test_same_batch_twice_is_processed_once(self, monitor, feed_client):
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100))

        first = await monitor.run_cycle()
        second = await monitor.run_cycle()

        assert first["processed"] == 1
        assert second["processed"] == 0
        assert monitor.ledger.get(WALLET, TOKEN) == 100

    @pytest.mark.asyncio
    async def test_overlapping_batches(self, monitor, feed_client):
        feed_client.fetch.side_effect = [
            batch_of(buy_tx(1700000200), buy_tx(1700000100)),
            batch_of(buy_tx(1700000300), buy_tx(1700000200), buy_tx(1700000100)),
        ]

        await monitor.run_cycle()
        result = await monitor.run_cycle()

        assert result["processed"] == 1
        assert monitor.ledger.get(WALLET, TOKEN) == 300

    @pytest.mark.asyncio
    async def test_watermark_is_newest_time(self, monitor, feed_client):
        feed_client.fetch.return_value = batch_of(buy_tx(1700000200), buy_tx(1700000100))

        await monitor.run_cycle()

        assert monitor.state.watermark == 1700000200

    @pytest.mark.asyncio
    async def test_watermark_never_decreases(self, monitor, feed_client):
        feed_client.fetch.side_effect = [
            batch_of(buy_tx(1700000200)),
            batch_of(buy_tx(1700000100)),
        ]

        await monitor.run_cycle()
        await monitor.run_cycle()

        assert monitor.state.watermark == 1700000200
        assert monitor.ledger.get(WALLET, TOKEN) == 100

    @pytest.mark.asyncio
    async def test_out_of_order_batch_uses_max(self, monitor, feed_client):
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100), buy_tx(1700000300))

        await monitor.run_cycle()

        assert monitor.state.watermark == 1700000300

    @pytest.mark.asyncio
    async def test_empty_batch_keeps_watermark(self, monitor, feed_client):
        feed_client.fetch.side_effect = [batch_of(buy_tx(1700000100)), batch_of()]

        await monitor.run_cycle()
        await monitor.run_cycle()

        assert monitor.state.watermark == 1700000100

    @pytest.mark.asyncio
    async def test_ignored_wallets_still_advance_watermark(
        self, settings_provider, feed_client, printed
    ):
        monitor = FlowMonitor(
            settings_provider,
            feed_client=feed_client,
            classifier=TransactionClassifier(ignored_addresses={WALLET}),
            tracker=PositionTracker(PositionLedger(), AlertDispatcher(printer=printed.append)),
        )
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100))

        result = await monitor.run_cycle()

        assert result["processed"] == 0
        assert len(monitor.ledger) == 0
        assert monitor.state.watermark == 1700000100

    def test_advance_watermark(self):
        state = MonitorState(watermark=10)

        state.advance_watermark([5, 8])
        assert state.watermark == 10

        state.advance_watermark([12, 11])
        assert state.watermark == 12

        state.advance_watermark([])
        assert state.watermark == 12


# =============================================================================
# Test: Failed cycles
# =============================================================================


class TestFailedCycles:
    """Errors skip the iteration without committing state."""

    @pytest.mark.asyncio
    async def test_malformed_payload(self, monitor, feed_client):
        feed_client.fetch.side_effect = MalformedPayloadError("Missing 'events'")

        result = await monitor.run_cycle()

        assert "Malformed feed payload" in result["errors"][0]
        assert monitor.state.watermark == 0
        assert len(monitor.ledger) == 0
        assert monitor.state.failed_cycles == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_then_recovery(self, monitor, feed_client):
        feed_client.fetch.side_effect = [
            FeedError("Feed request failed: timeout"),
            batch_of(buy_tx(1700000100)),
        ]

        failed = await monitor.run_cycle()
        recovered = await monitor.run_cycle()

        assert failed["errors"] == ["Feed request failed: timeout"]
        assert recovered["errors"] == []
        assert monitor.ledger.get(WALLET, TOKEN) == 100
        assert monitor.state.cycle_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, monitor, feed_client):
        feed_client.fetch.side_effect = RuntimeError("surprise")

        result = await monitor.run_cycle()

        assert result["errors"] == ["Cycle failed: surprise"]
        assert monitor.state.last_error == "Cycle failed: surprise"

    @pytest.mark.asyncio
    async def test_bad_record_does_not_replay_earlier_buys(
        self, settings_provider, feed_client, printed
    ):
        class FailingClassifier(TransactionClassifier):
            def classify(self, raw, address_labels):
                if raw.block_time == 1700000100:
                    raise ValueError("cannot convert float NaN to integer")
                return super().classify(raw, address_labels)

        monitor = FlowMonitor(
            settings_provider,
            feed_client=feed_client,
            classifier=FailingClassifier(),
            tracker=PositionTracker(PositionLedger(), AlertDispatcher(printer=printed.append)),
        )
        feed_client.fetch.return_value = batch_of(buy_tx(1700000200), buy_tx(1700000100))

        for _ in range(3):
            result = await monitor.run_cycle()
            assert result["errors"] == []

        assert monitor.ledger.get(WALLET, TOKEN) == 100
        assert monitor.tracker.buys_tracked == 1
        assert monitor.state.watermark == 1700000200
        assert monitor.state.failed_records == 1
        assert monitor.get_status()["monitor_state"]["failed_records"] == 1

    @pytest.mark.asyncio
    async def test_out_of_range_timestamp_is_processed_once(self, monitor, feed_client):
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100000000))

        await monitor.run_cycle()
        await monitor.run_cycle()

        assert monitor.ledger.get(WALLET, TOKEN) == 100
        assert monitor.state.watermark == 1700000100000000
        assert monitor.state.failed_records == 0

    @pytest.mark.asyncio
    async def test_negative_amount_fails_cycle_without_ledger_change(self, monitor, feed_client):
        feed_client.fetch.side_effect = lambda url: batch_of(
            buy_tx(1700000100, received=-500)
        )

        result = await monitor.run_cycle()

        assert "Malformed feed payload" in result["errors"][0]
        assert len(monitor.ledger) == 0
        assert monitor.state.watermark == 0

    @pytest.mark.asyncio
    async def test_no_settings_skips_fetch(self, monitor, feed_client, settings_provider):
        settings_provider.current = None

        result = await monitor.run_cycle()

        assert result["errors"] == ["No settings loaded"]
        feed_client.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_chat_failure_does_not_fail_cycle(
        self, monitor, feed_client, settings_provider, tg_settings, notifier
    ):
        settings_provider.current = tg_settings
        notifier.fail_on = {1, 2, 3, 4}
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100))

        result = await monitor.run_cycle()

        assert result["errors"] == []
        assert monitor.ledger.get(WALLET, TOKEN) == 100
        assert monitor.state.watermark == 1700000100


# =============================================================================
# Test: Heartbeat
# =============================================================================


class TestHeartbeat:
    """Tests for the periodic heartbeat line."""

    @pytest.mark.asyncio
    async def test_heartbeat_cadence(self, monitor, feed_client, printed, clock):
        feed_client.fetch.return_value = batch_of()

        await monitor.run_cycle()
        assert len(printed) == 1

        clock.now += 60
        await monitor.run_cycle()
        assert len(printed) == 1

        clock.now += 300
        await monitor.run_cycle()
        assert len(printed) == 2
        assert printed[-1].startswith("\033[1m")


# =============================================================================
# Test: Main loop
# =============================================================================


class TestRunLoop:
    """Tests for run/stop."""

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, tmp_path, feed_client, printed):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({
            "DATA_API": "https://feed.example/api",
            "BOT_TOKEN": "123:abc",
            "CHAT_ID": "-100",
            "SEND_TO_TG": False,
            "PER_BUY_LOWER_BOUND": 50,
        }))
        feed_client.fetch.return_value = batch_of(buy_tx(1700000100))

        monitor = FlowMonitor(
            SettingsProvider(config_path),
            feed_client=feed_client,
            classifier=TransactionClassifier(),
            tracker=PositionTracker(PositionLedger(), AlertDispatcher(printer=printed.append)),
            poll_interval=0.01,
            reload_interval=0.01,
        )

        with patch.object(FlowMonitor, "_setup_signal_handlers"):
            task = monitor.start()
            await asyncio.sleep(0.1)
            monitor.stop()
            await asyncio.wait_for(task, timeout=1)

        assert monitor.state.cycle_count >= 2
        assert monitor.state.is_running is False
        assert monitor.ledger.get(WALLET, TOKEN) == 100

        status = monitor.get_status()
        assert status["buys_tracked"] == 1
        assert status["open_positions"] == {f"{WALLET}--{TOKEN}": 100}
