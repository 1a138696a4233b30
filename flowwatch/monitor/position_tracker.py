"""Buy/sell handling on top of the position ledger."""
import logging
from typing import Mapping

from .alerts import AlertDispatcher, build_buy_alert, build_sell_alert
from .ledger import PositionLedger
from .models import Order
from .settings import Settings

logger = logging.getLogger(__name__)


class PositionTracker:
    """
    Applies classified orders to the ledger and raises alerts.

    Buys are tracked only when the amount spent is strictly above
    ``PER_BUY_LOWER_BOUND``. Sells are reported only when they unwind a
    position this process saw being bought.

    Example:
        tracker = PositionTracker(PositionLedger(), AlertDispatcher())
        await tracker.handle(order, settings, batch.token_symbols)
    """

    def __init__(self, ledger: PositionLedger, dispatcher: AlertDispatcher):
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.buys_tracked = 0
        self.sells_tracked = 0

    async def handle_buy(
        self,
        order: Order,
        settings: Settings,
        token_symbols: Mapping[str, str],
    ) -> bool:
        """
        Track a buy if it spends more than the configured lower bound.

        Returns:
            True if the buy was tracked.
        """
        if order.from_leg.amount <= settings.per_buy_lower_bound:
            return False

        position = self.ledger.add(order.wallet, order.to_leg.token, order.to_leg.amount)
        self.buys_tracked += 1
        logger.info(
            f"BUY {order.wallet_label} {order.from_leg.amount} -> "
            f"{order.to_leg.amount} of {order.to_leg.token} (position={position})"
        )

        await self.dispatcher.dispatch(build_buy_alert(order, token_symbols), settings)
        return True

    async def handle_sell(
        self,
        order: Order,
        settings: Settings,
        token_symbols: Mapping[str, str],
    ) -> bool:
        """
        Reduce a tracked position by the sold amount.

        Returns:
            True if the sell hit a tracked position.
        """
        remaining = self.ledger.reduce(order.wallet, order.from_leg.token, order.from_leg.amount)
        if remaining is None:
            return False

        self.sells_tracked += 1
        logger.info(
            f"SELL {order.wallet_label} {order.from_leg.amount} of "
            f"{order.from_leg.token} (position={remaining})"
        )

        await self.dispatcher.dispatch(build_sell_alert(order, token_symbols), settings)
        return True

    async def handle(
        self,
        order: Order,
        settings: Settings,
        token_symbols: Mapping[str, str],
    ) -> bool:
        """Route an order to the buy or sell handler."""
        if order.is_buy:
            return await self.handle_buy(order, settings, token_symbols)
        if order.is_sell:
            return await self.handle_sell(order, settings, token_symbols)
        return False
