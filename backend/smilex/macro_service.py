"""
Macro-economic indicators (money supply M1/M2, GDP) from the eastmoney
datacenter, cached in the store for a day.

Lookup order for get_macro_data():
  1. fresh stored copy (younger than MAX_AGE_HOURS)
  2. live datacenter fetch
  3. stale stored copy
  4. generated demo series
"""
import random
from datetime import date, datetime, timedelta
from typing import List, Optional

import requests as _requests
from dateutil.relativedelta import relativedelta

from . import config, storage
from .models import MacroEconomicCumulative, MacroEconomicData

DATACENTER_URL = "https://datacenter-web.eastmoney.com/api/data/v1/get"
MONEY_SUPPLY_REPORT = "RPT_ECONOMY_CURRENCY_SUPPLY"
GDP_REPORT = "RPT_ECONOMY_GDP"

MAX_AGE_HOURS = 24


def _num(val) -> Optional[float]:
    if val is None or val == "":
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def is_cache_stale(updated_iso: Optional[str], max_age_hours: float = MAX_AGE_HOURS) -> bool:
    """True if a cache entry is older than max_age_hours (or undated)."""
    if not updated_iso:
        return True
    try:
        updated = datetime.fromisoformat(updated_iso)
    except (ValueError, TypeError):
        return True
    return (datetime.now() - updated) > timedelta(hours=max_age_hours)


# ═══════════════════════════════════════════════════════════
#  DATACENTER FETCH
# ═══════════════════════════════════════════════════════════

def _fetch_report(report: str, page_size: int) -> List[dict]:
    params = {
        "reportName": report,
        "columns": "ALL",
        "pageNumber": 1,
        "pageSize": page_size,
        "sortColumns": "REPORT_DATE",
        "sortTypes": -1,
        "source": "WEB",
        "client": "WEB",
    }
    try:
        resp = _requests.get(DATACENTER_URL, params=params,
                             headers=config.BROWSER_HEADERS, timeout=config.HTTP_TIMEOUT)
        if resp.status_code != 200:
            print(f"[Macro] {report} HTTP {resp.status_code}")
            return []
        payload = resp.json()
    except (_requests.RequestException, ValueError) as e:
        print(f"[Macro] {report} fetch error: {e}")
        return []
    if not isinstance(payload, dict):
        print(f"[Macro] {report} unexpected payload: {type(payload).__name__}")
        return []
    if not payload.get("success"):
        print(f"[Macro] {report} rejected: {payload.get('message')}")
        return []
    result = payload.get("result")
    rows = result.get("data") if isinstance(result, dict) else None
    if not isinstance(rows, list):
        return []
    return [r for r in rows if isinstance(r, dict)]


def fetch_money_supply(months: int = 24) -> List[dict]:
    """Monthly M1/M2 rows, oldest first: {date, m1, m1_change_rate, m2, m2_change_rate}."""
    rows = []
    for row in _fetch_report(MONEY_SUPPLY_REPORT, months + 1):
        month = str(row.get("REPORT_DATE") or "")[:7]
        m1, m2 = _num(row.get("CURRENCY")), _num(row.get("BASIC_CURRENCY"))
        if not month or m1 is None or m2 is None:
            continue
        rows.append({
            "date": month,
            "m1": m1,
            "m1_change_rate": _num(row.get("CURRENCY_SAME")) or 0.0,
            "m2": m2,
            "m2_change_rate": _num(row.get("BASIC_CURRENCY_SAME")) or 0.0,
        })
    rows.sort(key=lambda r: r["date"])
    return rows


def fetch_gdp(quarters: int = 12) -> List[dict]:
    """Quarterly GDP rows, oldest first: {date, gdp, gdp_change_rate}."""
    rows = []
    for row in _fetch_report(GDP_REPORT, quarters):
        month = str(row.get("REPORT_DATE") or "")[:7]
        gdp = _num(row.get("DOMESTICL_PRODUCT_BASE"))
        if not month or gdp is None:
            continue
        rows.append({"date": month, "gdp": gdp,
                     "gdp_change_rate": _num(row.get("SUM_SAME")) or 0.0})
    rows.sort(key=lambda r: r["date"])
    return rows


def merge_series(money: List[dict], gdp: List[dict]) -> List[MacroEconomicData]:
    """Attach to each month the latest GDP quarter reported on or before it."""
    merged = []
    for m in money:
        quarter = None
        for g in gdp:
            if g["date"] <= m["date"]:
                quarter = g
        merged.append(MacroEconomicData(
            date=m["date"],
            m1=round(m["m1"], 2),
            m1_change_rate=round(m["m1_change_rate"], 2),
            m2=round(m["m2"], 2),
            m2_change_rate=round(m["m2_change_rate"], 2),
            gdp=round(quarter["gdp"], 2) if quarter else 0.0,
            gdp_change_rate=round(quarter["gdp_change_rate"], 2) if quarter else 0.0,
        ))
    return merged


def fetch_macro_data(months: int = 24) -> List[MacroEconomicData]:
    money = fetch_money_supply(months)
    if not money:
        return []
    gdp = fetch_gdp(months // 3 + 4)
    return merge_series(money[-(months + 1):], gdp)


# ═══════════════════════════════════════════════════════════
#  DEMO SERIES
# ═══════════════════════════════════════════════════════════

def demo_series(months: int = 24, today: Optional[date] = None,
                rng: Optional[random.Random] = None) -> List[MacroEconomicData]:
    """Random-walk series of ``months + 1`` monthly points ending this month."""
    rng = rng or random.Random()
    today = today or date.today()
    m1 = 60000 + rng.random() * 20000
    m2 = 200000 + rng.random() * 50000
    gdp = 100000 + rng.random() * 50000
    data = []
    for i in range(months, -1, -1):
        month = (today - relativedelta(months=i)).strftime("%Y-%m")
        m1 *= 1 + (rng.random() - 0.5) * 0.05
        m2 *= 1 + (rng.random() - 0.5) * 0.03
        gdp *= 1 + (rng.random() - 0.5) * 0.04
        data.append(MacroEconomicData(
            date=month,
            m1=round(m1, 2),
            m1_change_rate=round((rng.random() - 0.3) * 20, 2),
            m2=round(m2, 2),
            m2_change_rate=round((rng.random() - 0.2) * 15, 2),
            gdp=round(gdp, 2),
            gdp_change_rate=round((rng.random() - 0.1) * 10 + 5, 2),
            buffett_indicator=round(rng.random() * 0.8 + 0.7, 2),
        ))
    return data


# ═══════════════════════════════════════════════════════════
#  CACHED ACCESS
# ═══════════════════════════════════════════════════════════

def _key(months: int) -> str:
    return storage.storage_key(f"macroEconomicData:{months}")


def _load(entry) -> List[MacroEconomicData]:
    out = []
    for item in (entry or {}).get("data") or []:
        try:
            out.append(MacroEconomicData.model_validate(item))
        except ValueError:
            continue
    return out


def get_macro_data(months: int = 24, max_age_hours: float = MAX_AGE_HOURS) -> List[MacroEconomicData]:
    store = storage.get_store()
    entry = store.read(_key(months), None)
    stored = _load(entry) if isinstance(entry, dict) else []
    if stored and not is_cache_stale(entry.get("updated"), max_age_hours):
        return stored

    live = fetch_macro_data(months)
    if live:
        store.write(_key(months), {
            "updated": datetime.now().isoformat(),
            "data": [d.model_dump() for d in live],
        })
        print(f"[Macro] Cached {len(live)} months")
        return live
    if stored:
        print("[Macro] Live fetch failed, serving stale cache")
        return stored
    print("[Macro] No data available, serving demo series")
    return demo_series(months)


def compute_cumulative(data: List[MacroEconomicData]) -> List[MacroEconomicCumulative]:
    """Running sum of M1 month-over-month % change; the first point is 0."""
    out = []
    total = 0.0
    for i, item in enumerate(data):
        if i > 0:
            prev = data[i - 1].m1
            if prev:
                total += (item.m1 - prev) / prev * 100
        out.append(MacroEconomicCumulative(date=item.date, cumulative_change=round(total, 2)))
    return out


def get_macro_cumulative(months: int = 24) -> List[MacroEconomicCumulative]:
    return compute_cumulative(get_macro_data(months))
