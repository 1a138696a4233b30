"""
Buy/sell alerts for the console and the chat channel.

Every alert is printed to the console. When ``SEND_TO_TG`` is enabled the
same event is also sent to the configured chat as four short messages:

    --- 2024-03-01 14:05:09 [BUY] ---
    [BUY] PEPE (whale-1)
    0xTokenAddress
    <spacer>

Chat delivery failures are logged per message and never propagate.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from ..api.telegram import NotifierError, TelegramNotifier
from .formatting import BLUE, BOLD, YELLOW, colorize, format_amount, short_address
from .models import Order
from .settings import Settings

logger = logging.getLogger(__name__)

CHAT_SPACER = "\t\t"


def token_symbol(token: str, token_symbols: Mapping[str, str]) -> str:
    """Symbol for a token, falling back to a short address."""
    return token_symbols.get(token) or short_address(token)


@dataclass
class TradeAlert:
    """
    A rendered buy or sell notification.

    Attributes:
        label: "BUY" or "SELL".
        console_lines: Lines printed to stdout (already colored).
        chat_messages: Messages sent to the chat, in order.
    """

    label: str
    console_lines: list[str] = field(default_factory=list)
    chat_messages: list[str] = field(default_factory=list)


def build_buy_alert(order: Order, token_symbols: Mapping[str, str]) -> TradeAlert:
    """Render a buy: symbol bought, who, amount spent, amount received, token."""
    bought = token_symbol(order.to_leg.token, token_symbols)
    spent = token_symbol(order.from_leg.token, token_symbols)
    return TradeAlert(
        label="BUY",
        console_lines=[
            colorize(order.time, YELLOW),
            colorize(
                f"[buy]\t({bought}) {order.wallet_label}  "
                f"{format_amount(order.from_leg.amount)} {spent}",
                YELLOW,
            ),
            f"\tbuy {format_amount(order.to_leg.amount)} {bought}",
            f"\t[{order.to_leg.token}]",
            "",
        ],
        chat_messages=[
            f"--- {order.time} [BUY] ---",
            f"[BUY] {bought} ({order.wallet_label})",
            order.to_leg.token,
            CHAT_SPACER,
        ],
    )


def build_sell_alert(order: Order, token_symbols: Mapping[str, str]) -> TradeAlert:
    """Render a sell: symbol sold, who, amount sold, amount gained, token."""
    sold = token_symbol(order.from_leg.token, token_symbols)
    gained = token_symbol(order.to_leg.token, token_symbols)
    return TradeAlert(
        label="SELL",
        console_lines=[
            colorize(f"({order.time})", BLUE),
            colorize(
                f"[sell]\t({sold}) {order.wallet_label}  {format_amount(order.from_leg.amount)}",
                BLUE,
            ),
            f"\tgain {format_amount(order.to_leg.amount)} {gained}",
            f"\t[{order.from_leg.token}]",
            "",
        ],
        chat_messages=[
            f"--- {order.time} [SELL] ---",
            f"[SELL] {sold} ({order.wallet_label})",
            order.from_leg.token,
            CHAT_SPACER,
        ],
    )


class AlertDispatcher:
    """
    Sends alerts to the console and, if enabled, to Telegram.

    The Telegram client is rebuilt whenever the bot token in the settings
    snapshot changes.

    Example:
        dispatcher = AlertDispatcher()
        await dispatcher.dispatch(build_buy_alert(order, symbols), settings)
    """

    def __init__(
        self,
        notifier_factory: Callable[[str], TelegramNotifier] = TelegramNotifier,
        printer: Callable[[str], None] = print,
    ):
        self._notifier_factory = notifier_factory
        self._printer = printer
        self._notifier: Optional[TelegramNotifier] = None
        self._notifier_token: Optional[str] = None
        self.messages_sent = 0
        self.messages_failed = 0

    def _get_notifier(self, bot_token: str) -> TelegramNotifier:
        if self._notifier is None or self._notifier_token != bot_token:
            self._notifier = self._notifier_factory(bot_token)
            self._notifier_token = bot_token
        return self._notifier

    def print_console(self, alert: TradeAlert) -> None:
        for line in alert.console_lines:
            self._printer(line)

    def heartbeat(self, formatted_time: str) -> None:
        self._printer(colorize(formatted_time, BOLD))

    async def send_chat(self, alert: TradeAlert, settings: Settings) -> int:
        """
        Send the chat messages of an alert one after another.

        Returns:
            Number of messages delivered.
        """
        try:
            notifier = self._get_notifier(settings.bot_token)
        except NotifierError as e:
            logger.error(f"Telegram notification failed: {e}")
            self.messages_failed += len(alert.chat_messages)
            return 0

        delivered = 0
        for text in alert.chat_messages:
            try:
                await notifier.send_message(settings.chat_id, text)
                delivered += 1
            except NotifierError as e:
                self.messages_failed += 1
                logger.error(f"Telegram notification failed ({alert.label}): {e}")
            except Exception as e:
                self.messages_failed += 1
                logger.error(f"Unexpected error sending {alert.label} notification: {e}", exc_info=True)
        self.messages_sent += delivered
        return delivered

    async def dispatch(self, alert: TradeAlert, settings: Settings) -> None:
        """Print the alert and forward it to the chat when enabled."""
        self.print_console(alert)
        if settings.send_to_tg:
            await self.send_chat(alert, settings)
