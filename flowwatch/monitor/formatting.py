"""Timestamp, address and console formatting helpers."""
import time
from datetime import datetime
from typing import Union

# ANSI styles used for console output
BOLD = "\033[1m"
YELLOW = "\033[93m"
BLUE = "\033[34m"
RESET = "\033[0m"

ADDRESS_DISPLAY_LENGTH = 8


def to_milliseconds(timestamp: Union[int, float]) -> float:
    """
    Normalize a feed timestamp to milliseconds.

    Feeds mix units: a timestamp whose integral part has exactly 10 digits
    is seconds since the epoch, anything else is already milliseconds.
    """
    digits = str(abs(int(timestamp)))
    if len(digits) == 10:
        return timestamp * 1000
    return timestamp


def format_timestamp(timestamp: Union[int, float]) -> str:
    """
    Format a feed timestamp as local 24h time, e.g. 2024-03-01 14:05:09.

    Timestamps outside the platform's datetime range are rendered as the
    raw number instead.
    """
    try:
        dt = datetime.fromtimestamp(to_milliseconds(timestamp) / 1000)
    except (OverflowError, ValueError, OSError):
        return str(timestamp)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def current_formatted_time() -> str:
    """Current local time in the same format as order times."""
    return format_timestamp(int(time.time() * 1000))


def short_address(address: str) -> str:
    """Shorten an address for display."""
    if len(address) <= ADDRESS_DISPLAY_LENGTH:
        return address
    return f"{address[:ADDRESS_DISPLAY_LENGTH]}..."


def format_amount(amount: float) -> str:
    """Render raw feed amounts without float noise (100.0 -> 100)."""
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.6f}".rstrip("0").rstrip(".")


def colorize(text: str, style: str) -> str:
    return f"{style}{text}{RESET}"
