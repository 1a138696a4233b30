"""
Position-tracking monitor for on-chain wallet flow.

This module provides:
- Poll loop with watermark dedup (FlowMonitor)
- Transaction classification (TransactionClassifier)
- Observed-flow position ledger (PositionLedger)
- Buy/sell handling (PositionTracker)
- Console and chat alerts (AlertDispatcher)
- Hot-reloaded settings (SettingsProvider)
"""

from .alerts import AlertDispatcher, TradeAlert, build_buy_alert, build_sell_alert
from .classifier import TransactionClassifier
from .ledger import PositionLedger
from .models import Order, OrderKind
from .monitor import FlowMonitor, MonitorState
from .position_tracker import PositionTracker
from .settings import Settings, SettingsError, SettingsProvider

__all__ = [
    # Main loop
    "FlowMonitor",
    "MonitorState",
    # Classification
    "TransactionClassifier",
    "Order",
    "OrderKind",
    # Position tracking
    "PositionLedger",
    "PositionTracker",
    # Alerts
    "AlertDispatcher",
    "TradeAlert",
    "build_buy_alert",
    "build_sell_alert",
    # Settings
    "Settings",
    "SettingsError",
    "SettingsProvider",
]
