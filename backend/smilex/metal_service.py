"""
Precious metals: the xxapi gold-price feed plus stored quotes and a daily
price history per metal.

When the feed is unreachable fetch_gold_price() answers with a fixed default
payload instead of an error, so the metals tab always has something to show.
That default is display-only: refresh_gold_quote() never stores it as a quote.
"""
import copy
import random
import threading
from datetime import date, datetime, timedelta
from typing import List, Optional

import requests as _requests

from . import config, settings_manager, storage
from .models import PreciousMetal, PreciousMetalHistory

GOLD_PRICE_URL = "https://v2.xxapi.cn/api/goldprice"

DISPLAY_METALS = ("黄金", "白银")

DEFAULT_GOLD_PRICE = {
    "code": 200,
    "msg": "数据请求成功",
    "data": {
        "bank_gold_bar_price": [
            {"bank": "浦发银行投资金条", "price": "1204.0"},
        ],
        "gold_recycle_price": [
            {"gold_type": "黄金回收", "recycle_price": "1106.0", "updated_date": "2026-02-09"},
        ],
        "precious_metal_price": [
            {"brand": "周大福", "bullion_price": "1367", "gold_price": "1560",
             "platinum_price": "-", "updated_date": "2026-02-09"},
        ],
    },
}

_DEFAULT_METALS = [
    ("黄金", "412.56", "+0.32%", True),
    ("白银", "5.23", "-0.15%", False),
    ("铂金", "235.67", "+0.58%", True),
    ("钯金", "312.45", "-0.24%", False),
]

_sync_lock = threading.Lock()
_last_sync: Optional[str] = None
_last_sync_live = False


def default_metals() -> List[PreciousMetal]:
    return [PreciousMetal(name=n, value=v, change=c, is_up=up) for n, v, c, up in _DEFAULT_METALS]


# ═══════════════════════════════════════════════════════════
#  GOLD PRICE FEED
# ═══════════════════════════════════════════════════════════

def _mark_synced(live: bool):
    global _last_sync, _last_sync_live
    with _sync_lock:
        _last_sync = datetime.now().isoformat(timespec="seconds")
        _last_sync_live = live


def get_sync_status() -> dict:
    with _sync_lock:
        return {"last_sync": _last_sync, "live": _last_sync_live}


def _fetch_live_gold_price() -> Optional[dict]:
    """Raw feed payload, or None when the feed is unreachable or malformed."""
    try:
        resp = _requests.get(GOLD_PRICE_URL, headers=config.BROWSER_HEADERS,
                             timeout=config.HTTP_TIMEOUT)
        if resp.status_code != 200:
            raise ValueError(f"HTTP {resp.status_code}")
        payload = resp.json()
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ValueError("unexpected payload shape")
    except (_requests.RequestException, ValueError) as e:
        print(f"[Metals] Gold price fetch failed: {e}")
        _mark_synced(live=False)
        return None
    _mark_synced(live=True)
    return payload


def fetch_gold_price() -> dict:
    """Raw feed payload, or DEFAULT_GOLD_PRICE on any failure."""
    payload = _fetch_live_gold_price()
    if payload is None:
        print("[Metals] Serving default gold price payload")
        return copy.deepcopy(DEFAULT_GOLD_PRICE)
    return payload


def bank_gold_bar_price(payload: dict) -> Optional[float]:
    """First parseable bank gold-bar price in a feed payload."""
    rows = (payload.get("data") or {}).get("bank_gold_bar_price") or []
    for row in rows:
        try:
            price = float(row.get("price"))
        except (TypeError, ValueError):
            continue
        if price > 0:
            return price
    return None


# ═══════════════════════════════════════════════════════════
#  QUOTES
# ═══════════════════════════════════════════════════════════

def _quotes_key() -> str:
    return storage.storage_key(storage.KEYS["PRECIOUS_METALS"])


def get_precious_metals() -> List[PreciousMetal]:
    raw = storage.get_store().read(_quotes_key(), None)
    if not raw:
        return default_metals()
    metals = []
    for item in raw:
        try:
            metals.append(PreciousMetal.model_validate(item))
        except ValueError as e:
            print(f"[Metals] Dropping unreadable quote: {e}")
    return metals


def save_precious_metals(metals: List[PreciousMetal]):
    storage.get_store().write(_quotes_key(), [m.model_dump() for m in metals])


def display_metals(metals: Optional[List[PreciousMetal]] = None) -> List[PreciousMetal]:
    """Only gold and silver are shown on the metals tab."""
    metals = get_precious_metals() if metals is None else metals
    return [m for m in metals if m.name in DISPLAY_METALS]


def _parse_value(text: str) -> float:
    try:
        return float(str(text).replace(",", ""))
    except ValueError:
        return 0.0


def refresh_gold_quote() -> PreciousMetal:
    """Move the 黄金 quote to the feed's bank gold-bar price and record it.

    With the feed down the stored quote is returned untouched.
    """
    payload = _fetch_live_gold_price()
    price = bank_gold_bar_price(payload) if payload is not None else None
    metals = get_precious_metals()
    gold = next((m for m in metals if m.name == "黄金"), None)
    if gold is None:
        gold = PreciousMetal(name="黄金", value="0", change="+0.00%", is_up=True)
        metals.insert(0, gold)
    if price is None:
        return gold

    prev = _parse_value(gold.value)
    pct = (price - prev) / prev * 100 if prev > 0 else 0.0
    updated = gold.model_copy(update={
        "value": f"{price:,.2f}",
        "change": settings_manager.format_percentage(pct),
        "is_up": pct >= 0,
    })
    metals = [updated if m.name == "黄金" else m for m in metals]
    save_precious_metals(metals)
    record_history("黄金", price)
    return updated


# ═══════════════════════════════════════════════════════════
#  DAILY HISTORY
# ═══════════════════════════════════════════════════════════

def _history_key(name: str) -> str:
    return storage.storage_key(f"preciousMetalHistory:{name}")


def demo_history(name: str, days: int = 30, today: Optional[date] = None,
                 rng: Optional[random.Random] = None) -> List[PreciousMetalHistory]:
    """Random-walk series of ``days + 1`` daily points ending today."""
    rng = rng or random.Random()
    today = today or date.today()
    value = 100 + rng.random() * 300
    points = []
    for i in range(days, -1, -1):
        value *= 1 + (rng.random() - 0.5) * 0.02
        day = (today - timedelta(days=i)).isoformat()
        points.append(PreciousMetalHistory(name=name, date=day, value=round(value, 2)))
    return points


def _load_history(name: str) -> Optional[List[PreciousMetalHistory]]:
    raw = storage.get_store().read(_history_key(name), None)
    if raw is None:
        return None
    points = []
    for item in raw:
        try:
            points.append(PreciousMetalHistory.model_validate(item))
        except ValueError:
            continue
    points.sort(key=lambda p: p.date)
    return points


def get_history(name: str, days: int = 30) -> List[PreciousMetalHistory]:
    """Up to ``days`` most recent daily points, oldest first.

    A metal with nothing recorded yet gets a demo series, which is not stored.
    """
    points = _load_history(name)
    if points is None:
        return demo_history(name, days)
    if days > 0:
        points = points[-days:]
    return points


def record_history(name: str, value: float, day: Optional[date] = None,
                   keep_days: int = 365) -> List[PreciousMetalHistory]:
    """Store one point per metal per day; a second call on the same day overwrites."""
    day_str = (day or date.today()).isoformat()
    points = [p for p in (_load_history(name) or []) if p.date != day_str]
    points.append(PreciousMetalHistory(name=name, date=day_str, value=round(value, 2)))
    points.sort(key=lambda p: p.date)
    points = points[-keep_days:]
    storage.get_store().write(_history_key(name), [p.model_dump() for p in points])
    return points

