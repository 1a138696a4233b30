"""
Order model shared by the classifier, the position tracker and the alerts.

An Order is derived from the first trade event of a raw feed transaction and
lives only for the duration of a single poll cycle.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from ..api.feed import TokenAmount


class OrderKind(Enum):
    """Trade direction as reported by the feed."""

    BUY = "token:buy"
    SELL = "token:sell"

    @classmethod
    def from_feed(cls, kind: str) -> Optional["OrderKind"]:
        """Map a feed event kind to an OrderKind, or None if unsupported."""
        try:
            return cls(kind)
        except ValueError:
            return None


@dataclass(frozen=True)
class Order:
    """
    Normalized buy/sell order for a watched wallet.

    Attributes:
        wallet: Address of the trading wallet.
        wallet_label: Human-readable label for the wallet.
        kind: BUY or SELL.
        from_leg: Token and amount given up.
        to_leg: Token and amount received.
        time: Formatted block time (YYYY-MM-DD HH:MM:SS).
        raw_time: Block time exactly as delivered by the feed.
    """

    wallet: str
    wallet_label: str
    kind: OrderKind
    from_leg: TokenAmount
    to_leg: TokenAmount
    time: str
    raw_time: Union[int, float]

    @property
    def is_buy(self) -> bool:
        return self.kind is OrderKind.BUY

    @property
    def is_sell(self) -> bool:
        return self.kind is OrderKind.SELL
