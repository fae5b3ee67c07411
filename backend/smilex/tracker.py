"""
Tracked funds: a watch list of intraday estimates with a polling refresh.

The background poller wakes every TRADING_CHECK_INTERVAL seconds. Auto refresh
is enabled while the list is non-empty and the market clock is inside trading
hours; on enable it refreshes at once, then every TRACKER_REFRESH_INTERVAL.
"""
import threading
import time
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from . import config, fund_catalogue, fund_service, storage
from .models import FundRealTimeData

SORT_FIELDS = {
    "change_rate": "change_rate",
    "changeRate": "change_rate",
    "estimated_value": "estimated_value",
    "estimatedValue": "estimated_value",
    "net_value": "net_value",
    "netValue": "net_value",
}


def _key() -> str:
    return storage.storage_key(storage.KEYS["TRACKED_FUNDS"])


def get_tracked() -> List[FundRealTimeData]:
    raw = storage.get_store().read(_key(), None) or []
    funds = []
    for item in raw:
        try:
            funds.append(FundRealTimeData.model_validate(item))
        except ValueError as e:
            print(f"[Tracker] Dropping unreadable entry: {e}")
    return funds


def save_tracked(funds: List[FundRealTimeData]):
    storage.get_store().write(_key(), [f.model_dump() for f in funds])


def parse_code_input(text: str) -> List[str]:
    """Comma-separated codes (full-width commas accepted); keeps 6-digit ones."""
    codes = []
    for part in (text or "").replace("，", ",").split(","):
        code = part.strip()
        if fund_service.validate_fund_code(code) and code not in codes:
            codes.append(code)
    return codes


def add_codes(text: str) -> dict:
    """Start tracking the given codes.

    Raises ValueError if no valid code was given or all are already tracked.
    Codes whose fetch fails are reported under ``failed``.
    """
    codes = parse_code_input(text)
    if not codes:
        raise ValueError("Enter at least one valid 6-digit fund code")
    tracked = get_tracked()
    have = {f.code for f in tracked}
    new_codes = [c for c in codes if c not in have]
    skipped = [c for c in codes if c in have]
    if not new_codes:
        raise ValueError("All of these funds are already tracked")

    fetched = fund_service.fetch_batch_realtime(new_codes)
    got = {f.code for f in fetched}
    if fetched:
        save_tracked(tracked + fetched)
    failed = [c for c in new_codes if c not in got]
    print(f"[Tracker] Added {len(fetched)} funds, {len(failed)} failed, {len(skipped)} skipped")
    return {
        "added": [f.model_dump() for f in fetched],
        "failed": failed,
        "skipped": skipped,
    }


def remove(code: str) -> bool:
    tracked = get_tracked()
    kept = [f for f in tracked if f.code != code]
    if len(kept) == len(tracked):
        return False
    save_tracked(kept)
    return True


def sorted_funds(field: str = "change_rate", direction: str = "desc",
                 funds: Optional[List[FundRealTimeData]] = None) -> List[FundRealTimeData]:
    funds = get_tracked() if funds is None else funds
    attr = SORT_FIELDS.get(field)
    if attr is None:
        return list(funds)

    def value(f):
        v = getattr(f, attr, 0)
        return v if isinstance(v, (int, float)) else 0

    return sorted(funds, key=value, reverse=(direction == "desc"))


def is_trading_hours(now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(ZoneInfo(config.MARKET_TZ))
    return config.TRADING_START_HOUR <= now.hour < config.TRADING_END_HOUR


# ═══════════════════════════════════════════════════════════
#  REFRESH
# ═══════════════════════════════════════════════════════════

_state_lock = threading.Lock()
_last_refresh_time = 0.0
_last_refresh_status = "not_started"
_auto_enabled = False
_next_refresh_at = 0.0


def refresh() -> List[FundRealTimeData]:
    """Re-fetch every tracked fund; funds that fail drop out of the list."""
    global _last_refresh_time, _last_refresh_status
    tracked = get_tracked()
    if not tracked:
        raise ValueError("No funds are being tracked")
    with _state_lock:
        _last_refresh_status = "refreshing"
    fresh = fund_service.fetch_batch_realtime([f.code for f in tracked])
    save_tracked(fresh)
    with _state_lock:
        _last_refresh_time = time.time()
        _last_refresh_status = f"ok: {len(fresh)}/{len(tracked)}"
    return fresh


def tick(now: Optional[float] = None, clock: Optional[datetime] = None) -> bool:
    """One poller step. Returns True when a refresh ran."""
    global _auto_enabled, _next_refresh_at, _last_refresh_status
    now = time.time() if now is None else now
    enabled = bool(get_tracked()) and is_trading_hours(clock)
    with _state_lock:
        was_enabled = _auto_enabled
        _auto_enabled = enabled
        due = enabled and (not was_enabled or now >= _next_refresh_at)
        if not enabled and was_enabled:
            _last_refresh_status = "paused"
    if not due:
        return False
    try:
        refresh()
        fund_catalogue.refresh_valuations()
    except ValueError as e:
        print(f"[Tracker] Refresh skipped: {e}")
    with _state_lock:
        _next_refresh_at = now + config.TRACKER_REFRESH_INTERVAL
    return True


def status() -> dict:
    with _state_lock:
        return {
            "enabled": _auto_enabled,
            "status": _last_refresh_status,
            "last_refresh": _last_refresh_time,
            "seconds_ago": (round(time.time() - _last_refresh_time, 1)
                            if _last_refresh_time > 0 else None),
            "refresh_interval": config.TRACKER_REFRESH_INTERVAL,
            "check_interval": config.TRADING_CHECK_INTERVAL,
            "tracked_count": len(get_tracked()),
        }


def reset_state():
    global _last_refresh_time, _last_refresh_status, _auto_enabled, _next_refresh_at
    with _state_lock:
        _last_refresh_time = 0.0
        _last_refresh_status = "not_started"
        _auto_enabled = False
        _next_refresh_at = 0.0


# ═══════════════════════════════════════════════════════════
#  BACKGROUND POLLER
# ═══════════════════════════════════════════════════════════

_bg_thread: Optional[threading.Thread] = None
_bg_running = False


def _bg_loop():
    global _last_refresh_status
    print(f"[Tracker] Poller started (check every {config.TRADING_CHECK_INTERVAL}s, "
          f"refresh every {config.TRACKER_REFRESH_INTERVAL}s)")
    while _bg_running:
        try:
            tick()
        except Exception as e:
            print(f"[Tracker] Refresh error: {e}")
            with _state_lock:
                _last_refresh_status = f"error: {e}"

        for _ in range(config.TRADING_CHECK_INTERVAL):
            if not _bg_running:
                break
            time.sleep(1)


def start_background_refresh():
    global _bg_thread, _bg_running
    if _bg_running:
        return
    _bg_running = True
    _bg_thread = threading.Thread(target=_bg_loop, daemon=True)
    _bg_thread.start()


def stop_background_refresh():
    global _bg_running
    _bg_running = False
