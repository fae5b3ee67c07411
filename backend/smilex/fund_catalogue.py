"""
Fund catalogue: the list of funds shown on the valuation board.

Entries pair static fund facts (type, risk level, manager) with the latest
valuation. The list is persisted in the store and seeded with a handful of
well-known funds on first use.
"""
from datetime import datetime
from typing import List, Optional

from . import fund_service, storage
from .models import FundBasic, FundInfo, FundValuation

SORT_FIELDS = ("valuation", "dailyChangeRate", "name")

_DEFAULT_FUNDS = [
    # code, name, type, risk, manager, established, size, valuation, net, change, rate, week, month
    ("000001", "华夏成长混合", "混合型", "中高风险", "巩怀志", "2001-12-18", "32.56亿",
     1.5678, 1.5432, 0.0246, 1.60, 2.30, 4.50),
    ("110022", "易方达消费行业股票", "股票型", "高风险", "萧楠", "2010-08-20", "156.78亿",
     2.3456, 2.3123, 0.0333, 1.44, 1.80, 3.20),
    ("001475", "易方达国防军工混合", "混合型", "高风险", "何崇恺", "2015-06-19", "89.34亿",
     1.8976, 1.8654, 0.0322, 1.73, 2.10, 5.60),
    ("000209", "信诚新兴产业混合", "混合型", "中高风险", "孙浩中", "2013-07-24", "15.67亿",
     1.2345, 1.2123, 0.0222, 1.83, 1.50, 3.80),
    ("003095", "中欧医疗健康混合A", "混合型", "中高风险", "葛兰", "2016-09-29", "234.56亿",
     2.6789, 2.6456, 0.0333, 1.26, 2.80, 4.20),
]


def default_funds() -> List[FundInfo]:
    now = datetime.now().strftime("%H:%M:%S")
    funds = []
    for (code, name, ftype, risk, manager, est, size,
         val, net, chg, rate, week, month) in _DEFAULT_FUNDS:
        funds.append(FundInfo(
            code=code, name=name, type=ftype, risk_level=risk, manager=manager,
            established_date=est, fund_size=size,
            valuation=FundValuation(
                code=code, valuation=val, net_value=net, daily_change=chg,
                daily_change_rate=rate, weekly_change_rate=week,
                monthly_change_rate=month, update_time=now,
            ),
        ))
    return funds


def _key() -> str:
    return storage.storage_key(storage.KEYS["FUNDS"])


def get_all_funds() -> List[FundInfo]:
    raw = storage.get_store().read(_key(), None)
    if raw is None:
        return default_funds()
    funds = []
    for item in raw:
        try:
            funds.append(FundInfo.model_validate(item))
        except ValueError as e:
            print(f"[Catalogue] Dropping unreadable fund entry: {e}")
    return funds


def save_all_funds(funds: List[FundInfo]):
    storage.get_store().write(_key(), [f.model_dump() for f in funds])


def get_fund_by_code(code: str) -> Optional[FundInfo]:
    return next((f for f in get_all_funds() if f.code == code), None)


def add_fund(code: str) -> FundInfo:
    """Look a fund up upstream and append it to the catalogue."""
    if not fund_service.validate_fund_code(code):
        raise ValueError("Invalid fund code format")
    funds = get_all_funds()
    if any(f.code == code for f in funds):
        raise ValueError(f"Fund {code} is already in the catalogue")
    result = fund_service.search_fund(code)
    if not result:
        raise LookupError(f"No fund found for code {code}")

    base = result.FundBaseInfo
    basic = FundBasic(
        code=result.CODE,
        name=result.NAME,
        type=fund_service.extract_fund_type(result),
        manager=(base.JJJL if base and base.JJJL else ""),
    )
    valuation = FundValuation(code=code, net_value=(base.DWJZ or 0.0) if base else 0.0)
    live = fund_service.fetch_realtime(code)
    if live:
        valuation = _valuation_from_live(valuation, live)
    fund = FundInfo(**basic.model_dump(), valuation=valuation)
    funds.append(fund)
    save_all_funds(funds)
    print(f"[Catalogue] Added {code} {fund.name}")
    return fund


def remove_fund(code: str) -> bool:
    funds = get_all_funds()
    kept = [f for f in funds if f.code != code]
    if len(kept) == len(funds):
        return False
    save_all_funds(kept)
    return True


def _valuation_from_live(current: FundValuation, live) -> FundValuation:
    net = live.net_value or current.net_value
    estimate = live.estimated_value or net
    return current.model_copy(update={
        "valuation": estimate,
        "net_value": net,
        "daily_change": round(estimate - net, 4) if net else 0.0,
        "daily_change_rate": live.change_rate,
        "update_time": live.update_time,
    })


def refresh_valuations() -> int:
    """Refresh every catalogue entry from fundgz. Returns how many updated."""
    funds = get_all_funds()
    if not funds:
        return 0
    live_map = {d.code: d for d in fund_service.fetch_batch_realtime([f.code for f in funds])}
    updated = 0
    for i, fund in enumerate(funds):
        live = live_map.get(fund.code)
        if live:
            funds[i] = fund.model_copy(update={
                "valuation": _valuation_from_live(fund.valuation, live)})
            updated += 1
    if updated:
        save_all_funds(funds)
    print(f"[Catalogue] Valuations refreshed: {updated}/{len(funds)}")
    return updated


def apply_change_rates(fund: FundInfo) -> FundInfo:
    """Fill weekly/monthly change from the published NAV history."""
    history = fund_service.fetch_history(fund.code, 40)
    if not history:
        return fund
    rates = fund_service.compute_change_rates(
        history, fund.valuation.valuation or fund.valuation.net_value)
    return fund.model_copy(update={
        "valuation": fund.valuation.model_copy(update=rates)})


# ═══════════════════════════════════════════════════════════
#  FILTER / SORT
# ═══════════════════════════════════════════════════════════

def filter_funds(funds: List[FundInfo], query: str = "", fund_type: str = "",
                 risk_level: str = "") -> List[FundInfo]:
    result = list(funds)
    q = (query or "").strip().lower()
    if q:
        result = [f for f in result if q in f.name.lower() or q in f.code]
    if fund_type:
        result = [f for f in result if f.type == fund_type]
    if risk_level:
        result = [f for f in result if f.risk_level == risk_level]
    return result


def sort_funds(sort_by: str, sort_order: str, funds: List[FundInfo]) -> List[FundInfo]:
    """Sorted copy; an unknown sort field leaves the order untouched."""
    if sort_by == "valuation":
        key = lambda f: f.valuation.valuation
    elif sort_by == "dailyChangeRate":
        key = lambda f: f.valuation.daily_change_rate
    elif sort_by == "name":
        key = lambda f: f.name
    else:
        return list(funds)
    return sorted(funds, key=key, reverse=(sort_order == "desc"))


def toggle_sort(current_by: str, current_order: str, new_by: str):
    """Clicking the active column flips direction; a new column starts desc."""
    if new_by == current_by:
        return current_by, ("desc" if current_order == "asc" else "asc")
    return new_by, "desc"
