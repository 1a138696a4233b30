"""
Hot-reloadable runtime settings.

Settings live in a JSON document (``config.json``) that operators may edit
while the monitor is running:

    {
        "DATA_API": "https://...",
        "BOT_TOKEN": "123:abc",
        "CHAT_ID": "-100123",
        "SEND_TO_TG": true,
        "PER_BUY_LOWER_BOUND": 50
    }

The provider keeps one immutable ``Settings`` snapshot and replaces it as a
whole on every successful reload. A failed reload keeps the last good
snapshot.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("DATA_API", "BOT_TOKEN", "CHAT_ID", "SEND_TO_TG", "PER_BUY_LOWER_BOUND")


class SettingsError(Exception):
    """Raised when the settings document cannot be loaded."""

    pass


@dataclass(frozen=True)
class Settings:
    """
    Snapshot of the settings document.

    Attributes:
        data_api: Feed endpoint URL.
        bot_token: Telegram bot token.
        chat_id: Telegram chat receiving notifications.
        send_to_tg: Whether chat notifications are enabled.
        per_buy_lower_bound: Buys spending this much or less are ignored.
    """

    data_api: str
    bot_token: str
    chat_id: str
    send_to_tg: bool
    per_buy_lower_bound: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Build settings from the raw JSON document.

        Raises:
            SettingsError: If required keys are missing or have bad values.
        """
        if not isinstance(data, dict):
            raise SettingsError("Settings document must be a JSON object")

        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise SettingsError(f"Missing settings keys: {', '.join(missing)}")

        try:
            lower_bound = float(data["PER_BUY_LOWER_BOUND"])
        except (TypeError, ValueError) as e:
            raise SettingsError(
                f"PER_BUY_LOWER_BOUND must be numeric, got {data['PER_BUY_LOWER_BOUND']!r}"
            ) from e

        return cls(
            data_api=str(data["DATA_API"] or ""),
            bot_token=str(data["BOT_TOKEN"] or ""),
            chat_id=str(data["CHAT_ID"] or ""),
            send_to_tg=bool(data["SEND_TO_TG"]),
            per_buy_lower_bound=lower_bound,
        )

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        """Convert to dictionary, hiding the bot token by default."""
        result = asdict(self)
        if redact and self.bot_token:
            result["bot_token"] = f"{self.bot_token[:4]}***"
        return result


class SettingsProvider:
    """
    Loads settings from disk and serves the current snapshot.

    Readers call ``current`` once per poll cycle and use that object for the
    whole cycle, so a reload in the middle of a cycle cannot mix values from
    two documents.

    Example:
        provider = SettingsProvider(Path("config.json"))
        provider.reload()
        settings = provider.current
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._current: Optional[Settings] = None
        self.reload_failures = 0

    @property
    def current(self) -> Optional[Settings]:
        """Last successfully loaded snapshot (None before the first load)."""
        return self._current

    def load(self) -> Settings:
        """
        Read and parse the settings document.

        Raises:
            SettingsError: If the file is missing, unreadable or invalid.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise SettingsError(f"Settings file not found: {self.path}") from e
        except (OSError, ValueError) as e:
            # ValueError covers bad JSON and undecodable bytes
            raise SettingsError(f"Failed to read settings from {self.path}: {e}") from e

        return Settings.from_dict(data)

    def reload(self) -> bool:
        """
        Reload settings, keeping the previous snapshot on failure.

        Returns:
            True if a new snapshot was loaded, False otherwise.
        """
        try:
            settings = self.load()
        except SettingsError as e:
            self.reload_failures += 1
            logger.error(f"Settings reload failed, keeping previous settings: {e}")
            return False

        if settings != self._current:
            logger.info("--- settings update ---")
            logger.info(json.dumps(settings.to_dict(), indent=4))
        self._current = settings
        return True

    async def run(self, interval: float, shutdown_event: asyncio.Event) -> None:
        """Reload every ``interval`` seconds until ``shutdown_event`` is set."""
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.reload()
