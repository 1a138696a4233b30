"""Turns raw feed transactions into normalized Orders."""
import logging
from typing import Iterable, Mapping, Optional

from ..api.feed import RawTransaction
from .formatting import format_timestamp, short_address
from .models import Order, OrderKind

logger = logging.getLogger(__name__)


class TransactionClassifier:
    """
    Classifies raw transactions as buy or sell orders.

    The ignore set is fixed for the lifetime of the classifier.

    Example:
        classifier = TransactionClassifier(ignored_addresses={"0xdead"})
        order = classifier.classify(raw_tx, batch.address_labels)
        if order is not None and order.is_buy:
            ...
    """

    def __init__(self, ignored_addresses: Optional[Iterable[str]] = None):
        self.ignored_addresses = frozenset(ignored_addresses or ())

    def is_ignored(self, address: str) -> bool:
        return address in self.ignored_addresses

    def classify(
        self,
        raw: RawTransaction,
        address_labels: Mapping[str, str],
    ) -> Optional[Order]:
        """
        Build an Order from the first event of a transaction.

        Args:
            raw: Parsed feed transaction.
            address_labels: Wallet address -> display label.

        Returns:
            The Order, or None if the wallet is ignored or the event kind is
            neither a buy nor a sell.
        """
        event = raw.first_event
        wallet = event.address

        if self.is_ignored(wallet):
            return None

        kind = OrderKind.from_feed(event.kind)
        if kind is None:
            logger.debug(f"Skipping unsupported event kind {event.kind!r} from {wallet}")
            return None

        return Order(
            wallet=wallet,
            wallet_label=address_labels.get(wallet) or short_address(wallet),
            kind=kind,
            from_leg=event.input,
            to_leg=event.output,
            time=format_timestamp(raw.block_time),
            raw_time=raw.block_time,
        )
