"""External data source and chat transport clients."""
from .feed import (
    FeedBatch,
    FeedClient,
    FeedError,
    MalformedPayloadError,
    RawTransaction,
    TokenAmount,
    TradeEvent,
    parse_feed_payload,
)
from .telegram import NotifierError, TelegramNotifier

__all__ = [
    "FeedBatch",
    "FeedClient",
    "FeedError",
    "MalformedPayloadError",
    "RawTransaction",
    "TokenAmount",
    "TradeEvent",
    "parse_feed_payload",
    "NotifierError",
    "TelegramNotifier",
]
