"""Shared fixtures: feed payload builders and a recording notifier."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from flowwatch.api.telegram import NotifierError
from flowwatch.monitor.settings import Settings

WALLET = "0xWalletAAAA1111"
TOKEN = "0xTokenTTTT2222"
SOL = "So11111111111111111111111111111111111111112"


def make_tx(
    kind: str = "token:buy",
    wallet: str = WALLET,
    block_time: int = 1700000000,
    input_token: str = SOL,
    input_amount: float = 100,
    output_token: str = TOKEN,
    output_amount: float = 100,
) -> dict:
    """Raw feed transaction dict."""
    return {
        "block_time": block_time,
        "events": [
            {
                "address": wallet,
                "kind": kind,
                "data": {
                    "input": {"token": input_token, "uni_amount": input_amount},
                    "output": {"token": output_token, "uni_amount": output_amount},
                },
            }
        ],
    }


def make_payload(transactions: list, labels: dict = None, symbols: dict = None) -> list:
    """Full feed response body wrapping the given transactions."""
    return [
        {
            "result": {
                "data": {
                    "json": {
                        "data": {
                            "parsedTransactions": transactions,
                            "renderContext": {
                                "addressLabelMap": labels if labels is not None else {WALLET: "whale-1"},
                                "tokenSymbolMap": symbols
                                if symbols is not None
                                else {TOKEN: {"symbol": "PEPE"}, SOL: {"symbol": "SOL"}},
                            },
                        }
                    }
                }
            }
        }
    ]


class RecordingNotifier:
    """Stands in for TelegramNotifier and records sent messages."""

    def __init__(self, bot_token: str = "token", fail_on: set = None):
        self.bot_token = bot_token
        self.sent = []
        self.fail_on = fail_on or set()
        self._calls = 0

    async def send_message(self, chat_id: str, text: str) -> None:
        self._calls += 1
        if self._calls in self.fail_on:
            raise NotifierError(f"boom on call {self._calls}")
        self.sent.append((chat_id, text))


@pytest.fixture
def settings():
    """Settings with chat disabled and a lower bound of 50."""
    return Settings(
        data_api="https://feed.example/api",
        bot_token="123:abc",
        chat_id="-100",
        send_to_tg=False,
        per_buy_lower_bound=50,
    )


@pytest.fixture
def tg_settings(settings):
    """Same settings with chat notifications enabled."""
    return Settings(
        data_api=settings.data_api,
        bot_token=settings.bot_token,
        chat_id=settings.chat_id,
        send_to_tg=True,
        per_buy_lower_bound=settings.per_buy_lower_bound,
    )
