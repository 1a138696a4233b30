"""Configuration management for the wallet flow monitor."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

LOGS_DIR = PROJECT_ROOT / "logs"

# Hot-reloaded settings document (DATA_API, BOT_TOKEN, CHAT_ID, ...)
CONFIG_FILE = Path(os.getenv("FLOWWATCH_CONFIG", str(PROJECT_ROOT / "config.json")))

# =============================================================================
# POLLING
# =============================================================================

# Seconds between feed polls
MONITOR_INTERVAL_SECONDS = float(os.getenv("MONITOR_INTERVAL_SECONDS", "3"))

# Settings are re-read twice per poll interval
CONFIG_RELOAD_INTERVAL_SECONDS = MONITOR_INTERVAL_SECONDS / 2

# Heartbeat line on the console (seconds)
HEARTBEAT_INTERVAL_SECONDS = int(os.getenv("HEARTBEAT_INTERVAL_SECONDS", "300"))

# HTTP timeout for feed and chat requests
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))

# =============================================================================
# POSITION TRACKING
# =============================================================================

# Positions below this (raw feed units) are snapped to zero after a sell
DUST_THRESHOLD = 10.0

# Wallets excluded from all processing, comma separated. Read once at startup.
IGNORED_TRADER_ADDRS = frozenset(
    addr.strip()
    for addr in os.getenv("IGNORED_TRADER_ADDRS", "").split(",")
    if addr.strip()
)

# =============================================================================
# API ENDPOINTS
# =============================================================================

TELEGRAM_API_URL = "https://api.telegram.org"
