"""
Feed client for on-chain trading activity.

The feed is a batched RPC-style endpoint. A single GET returns a list whose
first element wraps the payload we care about:

    [{"result": {"data": {"json": {"data": {
        "parsedTransactions": [...],          # newest first
        "renderContext": {
            "addressLabelMap": {address: label},
            "tokenSymbolMap": {token: {"symbol": "ABC"}},
        },
    }}}}}]

Each transaction carries a ``block_time`` and a list of ``events``; only the
first event is meaningful for classification:

    {"address": "...", "kind": "token:buy",
     "data": {"input": {"token": "...", "uni_amount": 1.5},
              "output": {"token": "...", "uni_amount": 1000}}}

The whole payload is parsed into typed structures before anything else sees
it, so a malformed batch fails as a unit with ``MalformedPayloadError``.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import requests

from ..config import REQUEST_TIMEOUT

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Raised when the feed cannot be fetched."""

    pass


class MalformedPayloadError(FeedError):
    """Raised when the feed payload does not have the expected shape."""

    pass


@dataclass(frozen=True)
class TokenAmount:
    """A token identifier and an amount in raw feed units."""

    token: str
    amount: float


@dataclass(frozen=True)
class TradeEvent:
    """One swap leg pair inside a transaction."""

    address: str
    kind: str
    input: TokenAmount
    output: TokenAmount


@dataclass(frozen=True)
class RawTransaction:
    """A transaction record as delivered by the feed."""

    block_time: Union[int, float]
    events: tuple

    @property
    def trader(self) -> str:
        """Address that initiated the trade (first event)."""
        return self.events[0].address

    @property
    def first_event(self) -> TradeEvent:
        return self.events[0]


@dataclass
class FeedBatch:
    """
    One poll worth of feed data.

    Attributes:
        transactions: Transactions in feed order (newest first).
        address_labels: Wallet address -> display label.
        token_symbols: Token address -> ticker symbol.
    """

    transactions: List[RawTransaction] = field(default_factory=list)
    address_labels: Dict[str, str] = field(default_factory=dict)
    token_symbols: Dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.transactions)


def _require(container: Any, key: Union[str, int], where: str) -> Any:
    try:
        return container[key]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedPayloadError(f"Missing {key!r} in {where}") from e


def _parse_number(value: Any, where: str) -> Union[int, float]:
    """Parse a non-negative finite amount or timestamp."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        # Some feeds serialize big amounts as strings
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError as e:
                raise MalformedPayloadError(f"Invalid number {value!r} in {where}") from e
        else:
            raise MalformedPayloadError(f"Invalid number {value!r} in {where}")
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedPayloadError(f"Non-finite number {value!r} in {where}")
    if value < 0:
        raise MalformedPayloadError(f"Negative number {value!r} in {where}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _parse_leg(data: Any, where: str) -> TokenAmount:
    token = _require(data, "token", where)
    if not isinstance(token, str):
        raise MalformedPayloadError(f"Invalid token {token!r} in {where}")
    amount = _parse_number(_require(data, "uni_amount", where), where)
    return TokenAmount(token=token, amount=float(amount))


def _parse_event(data: Any, where: str) -> TradeEvent:
    address = _require(data, "address", where)
    kind = _require(data, "kind", where)
    if not isinstance(address, str) or not isinstance(kind, str):
        raise MalformedPayloadError(f"Invalid address/kind in {where}")
    legs = _require(data, "data", where)
    return TradeEvent(
        address=address,
        kind=kind,
        input=_parse_leg(_require(legs, "input", where), f"{where}.input"),
        output=_parse_leg(_require(legs, "output", where), f"{where}.output"),
    )


def parse_transaction(data: Any, index: int = 0) -> RawTransaction:
    """
    Parse a single raw transaction record.

    Raises:
        MalformedPayloadError: If required fields are missing or invalid.
    """
    where = f"parsedTransactions[{index}]"
    block_time = _parse_number(_require(data, "block_time", where), where)
    events = _require(data, "events", where)
    if not isinstance(events, list) or not events:
        raise MalformedPayloadError(f"No events in {where}")
    return RawTransaction(
        block_time=block_time,
        events=tuple(_parse_event(evt, f"{where}.events[{i}]") for i, evt in enumerate(events)),
    )


def parse_feed_payload(payload: Any) -> FeedBatch:
    """
    Parse a full feed response into a FeedBatch.

    Args:
        payload: Decoded JSON body of the feed response.

    Returns:
        FeedBatch with typed transactions and label maps.

    Raises:
        MalformedPayloadError: If any part of the payload is invalid.
    """
    data = _require(payload, 0, "response")
    for key in ("result", "data", "json", "data"):
        data = _require(data, key, "response envelope")

    raw_transactions = _require(data, "parsedTransactions", "payload")
    if not isinstance(raw_transactions, list):
        raise MalformedPayloadError("parsedTransactions is not a list")

    render_context = _require(data, "renderContext", "payload")
    if not isinstance(render_context, dict):
        raise MalformedPayloadError("renderContext is not an object")
    address_labels = render_context.get("addressLabelMap") or {}
    token_map = render_context.get("tokenSymbolMap") or {}
    if not isinstance(address_labels, dict) or not isinstance(token_map, dict):
        raise MalformedPayloadError("renderContext maps are missing or invalid")

    token_symbols = {}
    for token, info in token_map.items():
        if isinstance(info, dict) and isinstance(info.get("symbol"), str):
            token_symbols[token] = info["symbol"]

    transactions = [parse_transaction(tx, i) for i, tx in enumerate(raw_transactions)]

    return FeedBatch(
        transactions=transactions,
        address_labels={k: str(v) for k, v in address_labels.items() if v is not None},
        token_symbols=token_symbols,
    )


class FeedClient:
    """
    HTTP client for the trading activity feed.

    Example:
        client = FeedClient()
        batch = client.fetch("https://example.com/api/trpc/...")
        for tx in batch.transactions:
            print(tx.trader, tx.block_time)
    """

    def __init__(self, timeout: float = REQUEST_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "flowwatch/1.0",
        })

    def fetch(self, url: str) -> FeedBatch:
        """
        Fetch and parse the latest batch from the feed.

        Args:
            url: Feed endpoint (DATA_API).

        Returns:
            Parsed FeedBatch.

        Raises:
            FeedError: On network or HTTP errors.
            MalformedPayloadError: If the body is not the expected shape.
        """
        if not url:
            raise FeedError("No feed URL configured")

        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FeedError(f"Feed request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"Feed returned invalid JSON: {e}") from e

        batch = parse_feed_payload(payload)
        logger.debug(f"Fetched {len(batch)} transactions from feed")
        return batch

    def close(self) -> None:
        self.session.close()
