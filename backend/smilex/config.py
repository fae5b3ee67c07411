"""
Runtime configuration, read once from the environment at import time.
"""
import os

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


DATA_DIR = os.environ.get("SMILEX_DATA_DIR") or os.path.join(_BACKEND_DIR, "data")
STORE_FILE = os.path.join(DATA_DIR, "store.json")
STORAGE_PREFIX = "smilex-fund"

HTTP_TIMEOUT = _env_float("SMILEX_HTTP_TIMEOUT", 10.0)
SAVE_DEBOUNCE = _env_float("SMILEX_SAVE_DEBOUNCE", 0.5)

TRACKER_REFRESH_INTERVAL = _env_int("SMILEX_REFRESH_INTERVAL", 300)   # 5 min
TRADING_CHECK_INTERVAL = 60
TRADING_START_HOUR = _env_int("SMILEX_TRADING_START", 10)
TRADING_END_HOUR = _env_int("SMILEX_TRADING_END", 15)
MARKET_TZ = os.environ.get("SMILEX_TZ", "Asia/Shanghai")

ENABLE_BACKGROUND_REFRESH = os.environ.get("SMILEX_BACKGROUND", "1").lower() not in ("0", "false", "no")

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "SMILEX_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if o.strip()
]

BATCH_LIMIT = 10
MAX_HOLDING_AMOUNT = 1_000_000

BROWSER_HEADERS = {
    "Accept": "*/*",
    "User-Agent": ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                   "AppleWebKit/537.36 (KHTML, like Gecko) "
                   "Chrome/120.0.0.0 Safari/537.36"),
}
