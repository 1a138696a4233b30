"""Telegram Bot API client used for chat notifications."""
import asyncio
import logging
from typing import Optional

import requests

from ..config import REQUEST_TIMEOUT, TELEGRAM_API_URL

logger = logging.getLogger(__name__)


class NotifierError(Exception):
    """Raised when a chat message could not be delivered."""

    pass


class TelegramNotifier:
    """
    Minimal Telegram sender.

    Only ``sendMessage`` is used. The blocking HTTP call runs in a worker
    thread so the monitor loop stays responsive.

    Example:
        notifier = TelegramNotifier(bot_token="123:abc")
        await notifier.send_message("-100123", "hello")
    """

    def __init__(
        self,
        bot_token: str,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        if not bot_token:
            raise NotifierError("Telegram bot token is empty")
        self.bot_token = bot_token
        self.timeout = timeout
        self.session = session or requests.Session()
        self._api = f"{TELEGRAM_API_URL}/bot{bot_token}"

    def _post_message(self, chat_id: str, text: str) -> dict:
        try:
            response = self.session.post(
                f"{self._api}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": text,
                    "disable_web_page_preview": True,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise NotifierError(f"sendMessage failed: {e}") from e
        except ValueError as e:
            raise NotifierError(f"sendMessage returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise NotifierError(f"sendMessage returned unexpected body: {body!r}")
        if not body.get("ok", False):
            raise NotifierError(f"sendMessage rejected: {body.get('description', 'unknown error')}")
        return body

    async def send_message(self, chat_id: str, text: str) -> None:
        """
        Send a text message to a chat.

        Raises:
            NotifierError: If the Bot API call fails.
        """
        await asyncio.to_thread(self._post_message, chat_id, text)
        logger.debug(f"Sent message to chat {chat_id}")
