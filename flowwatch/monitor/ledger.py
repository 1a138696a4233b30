"""
Position ledger for watched wallets.

Positions are derived only from flow observed since the monitor started: a
buy adds the received amount to ``(wallet, token)``, a sell subtracts the
sold amount. Each entry is either zero (untracked) or positive (tracked).

Note:
    Amounts are raw feed units. No token-decimal normalization is applied,
    so the dust threshold means different things for different tokens.
"""

import logging
from typing import Any, Iterator, Optional

from ..config import DUST_THRESHOLD

logger = logging.getLogger(__name__)

PositionKey = tuple[str, str]


class PositionLedger:
    """
    Running (wallet, token) -> amount mapping.

    Attributes:
        dust_threshold: Positions left below this after a sell become 0.

    Example:
        >>> ledger = PositionLedger()
        >>> ledger.add("0xwallet", "0xtoken", 100)
        100.0
        >>> ledger.reduce("0xwallet", "0xtoken", 95)
        0.0
        >>> ledger.reduce("0xwallet", "0xtoken", 1) is None
        True
    """

    def __init__(self, dust_threshold: float = DUST_THRESHOLD):
        self.dust_threshold = float(dust_threshold)
        self._positions: dict[PositionKey, float] = {}

    def get(self, wallet: str, token: str) -> float:
        """Current position (0 when untracked)."""
        return self._positions.get((wallet, token), 0.0)

    def is_tracked(self, wallet: str, token: str) -> bool:
        """True if the position is strictly positive."""
        return self.get(wallet, token) > 0

    def add(self, wallet: str, token: str, amount: float) -> float:
        """
        Record a buy.

        Returns:
            The new position.
        """
        key = (wallet, token)
        self._positions[key] = self._positions.get(key, 0.0) + float(amount)
        logger.debug(f"Position {wallet}/{token} += {amount} -> {self._positions[key]}")
        return self._positions[key]

    def reduce(self, wallet: str, token: str, amount: float) -> Optional[float]:
        """
        Record a sell against a tracked position.

        Sells against untracked (zero or absent) positions are ignored. A
        result below the dust threshold is snapped to exactly 0.

        Returns:
            The new position, or None if the position was not tracked.
        """
        key = (wallet, token)
        current = self._positions.get(key, 0.0)
        if current <= 0:
            return None

        remaining = current - float(amount)
        if remaining < self.dust_threshold:
            remaining = 0.0
        self._positions[key] = remaining
        logger.debug(f"Position {wallet}/{token} -= {amount} -> {remaining}")
        return remaining

    def open_positions(self) -> dict[PositionKey, float]:
        """All strictly positive positions."""
        return {key: amount for key, amount in self._positions.items() if amount > 0}

    def to_dict(self) -> dict[str, Any]:
        """Report of open positions keyed by ``wallet--token``."""
        return {
            f"{wallet}--{token}": amount
            for (wallet, token), amount in self.open_positions().items()
        }

    def clear(self) -> None:
        self._positions.clear()

    def __contains__(self, key: PositionKey) -> bool:
        return key in self._positions

    def __iter__(self) -> Iterator[PositionKey]:
        return iter(self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    def __repr__(self) -> str:
        return f"PositionLedger(entries={len(self._positions)}, open={len(self.open_positions())})"
