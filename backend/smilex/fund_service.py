"""
Fund data service: proxies the public fund endpoints.

Sources:
  1. fundgz (1234567.com.cn) JSONP      → intraday valuation estimate
  2. eastmoney fund-suggest JSONP        → fund name / type / manager / themes
  3. eastmoney F10 "lsjz" JSON           → published NAV history

Every fetcher swallows network and parse failures (logged) and returns None
or an empty list, so one bad fund never breaks a batch.
"""
import json
import re
import threading
import time
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

import requests as _requests

from . import config
from .models import FundHistoryPoint, FundRealTimeData, FundSearchResult

_REALTIME_URL = "https://fundgz.1234567.com.cn/js/{code}.js"
_SEARCH_URL = "https://fundsuggest.eastmoney.com/FundSearch/api/FundSearchAPI.ashx"
_HISTORY_URL = "https://api.fund.eastmoney.com/f10/lsjz"

_CODE_RE = re.compile(r"\d{6}")
_REALTIME_JSONP_RE = re.compile(r"^jsonpgz\((.*)\);$", re.S)
_SEARCH_JSONP_RE = re.compile(r"^\w+\((.*)\)$", re.S)

TIME_RANGES = {"1d": 1, "1w": 7, "1m": 30, "3m": 90, "1y": 365}


def validate_fund_code(code: Optional[str]) -> bool:
    """Fund codes are exactly six digits."""
    return bool(code) and bool(_CODE_RE.fullmatch(code)) and code.isascii()


def _to_float(val, default: float = 0.0) -> float:
    if val is None or val == "":
        return default
    try:
        return float(val)
    except (ValueError, TypeError):
        return default


# ═══════════════════════════════════════════════════════════
#  REALTIME CACHE
# ═══════════════════════════════════════════════════════════

_realtime_cache: Dict[str, FundRealTimeData] = {}
_cache_lock = threading.Lock()


def _cache_set(data: FundRealTimeData):
    with _cache_lock:
        _realtime_cache[data.code] = data


def get_cached_realtime(code: str) -> Optional[FundRealTimeData]:
    with _cache_lock:
        return _realtime_cache.get(code)


def prime_cache(funds: List[FundRealTimeData]):
    """Seed the cache from persisted data (no network)."""
    for f in funds:
        _cache_set(f)


def clear_cache():
    with _cache_lock:
        _realtime_cache.clear()


# ═══════════════════════════════════════════════════════════
#  REALTIME VALUATION (fundgz)
# ═══════════════════════════════════════════════════════════

def parse_realtime_payload(text: str) -> Optional[FundRealTimeData]:
    """Unwrap ``jsonpgz({...});`` and map it to FundRealTimeData."""
    match = _REALTIME_JSONP_RE.match(text.strip())
    if not match:
        return None
    try:
        raw = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict) or not raw.get("fundcode"):
        return None
    return FundRealTimeData(
        code=raw["fundcode"],
        name=raw.get("name", ""),
        net_value=_to_float(raw.get("dwjz")),
        estimated_value=_to_float(raw.get("gsz")),
        change_rate=_to_float(raw.get("gszzl")),
        update_time=raw.get("gztime", "") or "",
        net_value_date=raw.get("jzrq", "") or "",
    )


def fetch_realtime(code: str) -> Optional[FundRealTimeData]:
    """Fetch the intraday estimate for one fund.

    Raises ValueError for a malformed code; returns None when the upstream
    call fails or the body is not the expected JSONP wrapper.
    """
    if not validate_fund_code(code):
        raise ValueError("Invalid fund code format")
    url = _REALTIME_URL.format(code=code)
    try:
        resp = _requests.get(url, headers=config.BROWSER_HEADERS, timeout=config.HTTP_TIMEOUT)
    except _requests.RequestException as e:
        print(f"[FundService] Realtime request failed for {code}: {e}")
        return None
    if resp.status_code != 200:
        print(f"[FundService] Realtime HTTP {resp.status_code} for {code}")
        return None
    data = parse_realtime_payload(resp.text)
    if data is None:
        print(f"[FundService] Unexpected realtime payload for {code}")
        return None
    _cache_set(data)
    return data


def fetch_batch_realtime(codes: List[str]) -> List[FundRealTimeData]:
    """Fetch several funds in order; failures are skipped."""
    results: List[FundRealTimeData] = []
    for code in codes:
        try:
            data = fetch_realtime(code)
        except ValueError as e:
            print(f"[FundService] Skipping {code!r}: {e}")
            continue
        if data:
            results.append(data)
    print(f"[FundService] Batch realtime: {len(results)}/{len(codes)} OK")
    return results


# ═══════════════════════════════════════════════════════════
#  SEARCH (eastmoney fund-suggest)
# ═══════════════════════════════════════════════════════════

def parse_search_payload(text: str) -> Optional[FundSearchResult]:
    match = _SEARCH_JSONP_RE.match(text.strip())
    if not match:
        return None
    try:
        raw = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    if raw.get("ErrCode", 0) != 0:
        print(f"[FundService] Search error: {raw.get('ErrMsg') or 'unknown'}")
        return None
    datas = raw.get("Datas") or []
    if not isinstance(datas, list) or not datas or not isinstance(datas[0], dict):
        return None
    first = dict(datas[0])
    base = first.get("FundBaseInfo")
    if isinstance(base, dict):
        # Upstream sends "" for missing numbers
        first["FundBaseInfo"] = {k: (None if v == "" else v) for k, v in base.items()}
    try:
        return FundSearchResult.model_validate(first)
    except ValueError as e:
        print(f"[FundService] Unusable search record: {e}")
        return None


def search_fund(code: str) -> Optional[FundSearchResult]:
    """Look a fund up by code; returns the first match or None."""
    if not validate_fund_code(code):
        raise ValueError("Invalid fund code format")
    ts = int(time.time() * 1000)
    params = {"m": 1, "key": code, "callback": f"SuggestData_{ts}", "_": ts}
    try:
        resp = _requests.get(_SEARCH_URL, params=params,
                             headers=config.BROWSER_HEADERS, timeout=config.HTTP_TIMEOUT)
    except _requests.RequestException as e:
        print(f"[FundService] Search request failed for {code}: {e}")
        return None
    if resp.status_code != 200:
        print(f"[FundService] Search HTTP {resp.status_code} for {code}")
        return None
    return parse_search_payload(resp.text)


def extract_industry_info(result: FundSearchResult) -> str:
    """Theme/industry tags from ZTJJInfo, comma-joined; "未知" when absent."""
    names = []
    for item in result.ZTJJInfo or []:
        if not isinstance(item, dict):
            continue
        for field in ("INDUSTRY", "name", "TTYPENAME", "industry"):
            if item.get(field):
                names.append(str(item[field]))
                break
    return ", ".join(names) or "未知"


def extract_fund_type(result: FundSearchResult) -> str:
    base = result.FundBaseInfo
    if base and base.FTYPE:
        return base.FTYPE
    return result.CATEGORYDESC or "未知类型"


# ═══════════════════════════════════════════════════════════
#  NAV HISTORY (eastmoney F10)
# ═══════════════════════════════════════════════════════════

def fetch_history(code: str, days: int = 30) -> List[FundHistoryPoint]:
    """Published NAV points for the last ``days`` calendar days, oldest first."""
    if not validate_fund_code(code):
        raise ValueError("Invalid fund code format")
    end = date.today()
    start = end - timedelta(days=max(days, 1))
    params = {
        "fundCode": code,
        "pageIndex": 1,
        "pageSize": max(days, 1) + 1,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
    }
    headers = dict(config.BROWSER_HEADERS)
    headers["Referer"] = "https://fundf10.eastmoney.com/"
    try:
        resp = _requests.get(_HISTORY_URL, params=params, headers=headers,
                             timeout=config.HTTP_TIMEOUT)
        if resp.status_code != 200:
            print(f"[FundService] History HTTP {resp.status_code} for {code}")
            return []
        payload = resp.json()
    except (_requests.RequestException, ValueError) as e:
        print(f"[FundService] History fetch error for {code}: {e}")
        return []

    data = payload.get("Data") if isinstance(payload, dict) else None
    rows = data.get("LSJZList") if isinstance(data, dict) else None
    if not isinstance(rows, list):
        return []
    points = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        value = _to_float(row.get("DWJZ"), default=-1)
        if not row.get("FSRQ") or value <= 0:
            continue
        points.append(FundHistoryPoint(date=row["FSRQ"], value=value))
    points.sort(key=lambda p: p.date)
    return points


def compute_change_rates(history: List[FundHistoryPoint], current: float,
                         today: Optional[date] = None) -> Dict[str, float]:
    """Weekly and monthly % change of ``current`` against the history.

    Each baseline is the latest point on or before 7 / 30 days ago.
    """
    result = {"weekly_change_rate": 0.0, "monthly_change_rate": 0.0}
    if current <= 0 or not history:
        return result
    today = today or date.today()
    targets = {
        "weekly_change_rate": today - timedelta(days=7),
        "monthly_change_rate": today - timedelta(days=30),
    }
    for key, target in targets.items():
        best_date = None
        best_value = 0.0
        for p in history:
            try:
                d = datetime.strptime(p.date, "%Y-%m-%d").date()
            except ValueError:
                continue
            if d <= target and (best_date is None or d > best_date):
                best_date, best_value = d, p.value
        if best_value > 0:
            result[key] = round((current - best_value) / best_value * 100, 2)
    return result


def history_change_rate(points: List[FundHistoryPoint]) -> float:
    """Change % from the first to the last point of a history window."""
    if len(points) < 2 or points[0].value == 0:
        return 0.0
    return round((points[-1].value - points[0].value) / points[0].value * 100, 2)


def days_for_range(range_key: str) -> int:
    if range_key not in TIME_RANGES:
        raise ValueError(f"Unknown time range: {range_key}")
    return TIME_RANGES[range_key]
