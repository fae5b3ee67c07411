"""
Market indices: multi-source with retry.

Priority order:
  1. yfinance 5-day history (retry + backoff)
  2. Google Finance scraping (fallback)
  3. Last stored entry / built-in defaults
"""
import random
import re
import time
from typing import List, Optional, Tuple

import requests as _requests
import yfinance as yf

from . import config, settings_manager, storage
from .models import MarketIndex

MAX_RETRIES = 3

INDEX_META = [
    {"name": "上证指数", "yahoo": "000001.SS", "google": "000001:SHA"},
    {"name": "深证成指", "yahoo": "399001.SZ", "google": "399001:SHE"},
    {"name": "创业板指", "yahoo": "399006.SZ", "google": "399006:SHE"},
    {"name": "恒生指数", "yahoo": "^HSI", "google": "HSI:INDEXHANGSENG"},
]

_DEFAULT_INDICES = [
    ("上证指数", "3,258.63", "+0.82%", True),
    ("深证成指", "10,824.36", "+1.25%", True),
    ("创业板指", "2,156.78", "-0.35%", False),
    ("恒生指数", "18,245.67", "+0.56%", True),
]

_GOOGLE_HEADERS = dict(config.BROWSER_HEADERS, **{"Accept-Language": "en-US,en;q=0.9"})


def default_indices() -> List[MarketIndex]:
    return [MarketIndex(name=n, value=v, change=c, is_up=up) for n, v, c, up in _DEFAULT_INDICES]


def _key() -> str:
    return storage.storage_key(storage.KEYS["MARKET_INDICES"])


def get_market_indices() -> List[MarketIndex]:
    raw = storage.get_store().read(_key(), None)
    if not raw:
        return default_indices()
    indices = []
    for item in raw:
        try:
            indices.append(MarketIndex.model_validate(item))
        except ValueError as e:
            print(f"[MarketIndex] Dropping unreadable entry: {e}")
    return indices


def save_market_indices(indices: List[MarketIndex]):
    storage.get_store().write(_key(), [i.model_dump() for i in indices])


def build_index(name: str, price: float, prev: float, source: str) -> MarketIndex:
    pct = ((price - prev) / prev * 100) if prev > 0 else 0.0
    return MarketIndex(
        name=name,
        value=f"{price:,.2f}",
        change=settings_manager.format_percentage(pct),
        is_up=pct >= 0,
        source=source,
    )


# ═══════════════════════════════════════════════════════════
#  SOURCES
# ═══════════════════════════════════════════════════════════

def _fetch_yahoo(symbol: str) -> Optional[Tuple[float, float]]:
    """(last close, previous close) from a 5-day history, with retry."""
    for attempt in range(MAX_RETRIES):
        try:
            hist = yf.Ticker(symbol).history(period="5d")
            if hist is not None and not hist.empty:
                closes = hist["Close"].dropna()
                if len(closes) > 0:
                    price = float(closes.iloc[-1])
                    prev = float(closes.iloc[-2]) if len(closes) >= 2 else 0.0
                    return price, prev
        except Exception as e:
            if attempt == MAX_RETRIES - 1:
                print(f"[MarketIndex] Yahoo failed for {symbol}: {e}")
        if attempt < MAX_RETRIES - 1:
            time.sleep((attempt + 1) * 1.5 + random.uniform(0, 0.5))
    return None


def _fetch_google(gf_symbol: str) -> Optional[Tuple[float, float]]:
    """Scrape (price, previous close) from a Google Finance quote page."""
    url = f"https://www.google.com/finance/quote/{gf_symbol}"
    for attempt in range(2):
        try:
            resp = _requests.get(url, headers=_GOOGLE_HEADERS, timeout=config.HTTP_TIMEOUT)
            if resp.status_code == 200:
                match = re.search(r'data-last-price="([\d,.]+)"', resp.text)
                prev_match = re.search(r'data-previous-close="([\d,.]+)"', resp.text)
                if match:
                    price = float(match.group(1).replace(",", ""))
                    prev = float(prev_match.group(1).replace(",", "")) if prev_match else 0.0
                    return price, prev
        except (_requests.RequestException, ValueError) as e:
            print(f"[MarketIndex] Google Finance error for {gf_symbol}: {e}")
        if attempt < 1:
            time.sleep(1)
    return None


def fetch_index(meta: dict) -> Optional[MarketIndex]:
    """Fetch one index: yfinance → Google Finance → None."""
    result = _fetch_yahoo(meta["yahoo"])
    if result:
        return build_index(meta["name"], result[0], result[1], "yahoo")
    gf_sym = meta.get("google")
    if gf_sym:
        result = _fetch_google(gf_sym)
        if result:
            return build_index(meta["name"], result[0], result[1], "google")
    return None


def refresh_indices() -> List[MarketIndex]:
    """Refresh every known index; unreachable ones keep their last entry."""
    current = {i.name: i for i in get_market_indices()}
    defaults = {i.name: i for i in default_indices()}
    refreshed = []
    live = 0
    for meta in INDEX_META:
        idx = fetch_index(meta)
        if idx:
            live += 1
        else:
            idx = current.get(meta["name"]) or defaults[meta["name"]]
        refreshed.append(idx)
    save_market_indices(refreshed)
    print(f"[MarketIndex] Refresh: {live} live / {len(INDEX_META)}")
    return refreshed
