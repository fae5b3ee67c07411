"""
Wallets and fund holdings with profit/loss bookkeeping.

A wallet is a named bucket of holdings; a holding is unique per
(fund code, wallet). The "summary" wallet is never stored: its view is built
on the fly by merging holdings of every real wallet by fund code.
All writes go through the store's debounced save.
"""
import math
import uuid
from typing import Dict, List, Optional

from . import config, fund_service, storage
from .models import (
    BatchAddItem, BatchAddResult, BatchValidation, HoldingView,
    IndustrySummaryItem, UserHolding, Wallet, WalletTotals, WalletView,
)

SUMMARY_WALLET_ID = "summary"
DEFAULT_WALLET_ID = "default"
SUMMARY_WALLET_NAME = "汇总"
DEFAULT_WALLET_NAME = "默认钱包"



# ═══════════════════════════════════════════════════════════
#  PERSISTENCE
# ═══════════════════════════════════════════════════════════

def _wallets_key() -> str:
    return storage.storage_key(storage.KEYS["WALLETS"])


def _holdings_key() -> str:
    return storage.storage_key(storage.KEYS["USER_HOLDINGS"])


def _load_wallets() -> List[Wallet]:
    raw = storage.get_store().read(_wallets_key(), None) or []
    wallets = []
    for w in raw:
        try:
            wallet = Wallet.model_validate(w)
        except ValueError as e:
            print(f"[Wallets] Dropping unreadable wallet: {e}")
            continue
        if wallet.id != SUMMARY_WALLET_ID:
            wallets.append(wallet)
    if not any(w.id == DEFAULT_WALLET_ID for w in wallets):
        wallets.insert(0, Wallet(id=DEFAULT_WALLET_ID, name=DEFAULT_WALLET_NAME))
    return wallets


def _save_wallets(wallets: List[Wallet]):
    storage.get_store().save_debounced(
        _wallets_key(), [w.model_dump() for w in wallets if w.id != SUMMARY_WALLET_ID])


def get_all_holdings() -> List[UserHolding]:
    raw = storage.get_store().read(_holdings_key(), None) or []
    holdings = []
    for h in raw:
        try:
            holdings.append(UserHolding.model_validate(h))
        except ValueError as e:
            print(f"[Wallets] Dropping unreadable holding: {e}")
    return holdings


def _save_holdings(holdings: List[UserHolding]):
    storage.get_store().save_debounced(_holdings_key(), [h.model_dump() for h in holdings])


# ═══════════════════════════════════════════════════════════
#  WALLETS
# ═══════════════════════════════════════════════════════════

def summary_wallet() -> Wallet:
    return Wallet(id=SUMMARY_WALLET_ID, name=SUMMARY_WALLET_NAME)


def list_wallets() -> List[Wallet]:
    """Summary wallet first, then the stored wallets in creation order."""
    return [summary_wallet()] + _load_wallets()


def get_wallet(wallet_id: str) -> Optional[Wallet]:
    if wallet_id == SUMMARY_WALLET_ID:
        return summary_wallet()
    return next((w for w in _load_wallets() if w.id == wallet_id), None)


def create_wallet(name: str) -> Wallet:
    name = (name or "").strip()
    if not name:
        raise ValueError("Wallet name must not be empty")
    wallets = _load_wallets()
    if name == SUMMARY_WALLET_NAME or any(w.name == name for w in wallets):
        raise ValueError(f"A wallet named '{name}' already exists")
    wallet = Wallet(id=uuid.uuid4().hex[:8], name=name)
    wallets.append(wallet)
    _save_wallets(wallets)
    print(f"[Wallets] Created wallet {wallet.id} '{name}'")
    return wallet


def rename_wallet(wallet_id: str, name: str) -> Optional[Wallet]:
    if wallet_id == SUMMARY_WALLET_ID:
        raise ValueError("The summary wallet cannot be renamed")
    name = (name or "").strip()
    if not name:
        raise ValueError("Wallet name must not be empty")
    wallets = _load_wallets()
    if any(w.name == name and w.id != wallet_id for w in wallets):
        raise ValueError(f"A wallet named '{name}' already exists")
    for i, w in enumerate(wallets):
        if w.id == wallet_id:
            wallets[i] = w.model_copy(update={"name": name})
            _save_wallets(wallets)
            return wallets[i]
    return None


def delete_wallet(wallet_id: str) -> bool:
    """Delete a wallet together with its holdings."""
    if wallet_id in (SUMMARY_WALLET_ID, DEFAULT_WALLET_ID):
        raise ValueError(f"Wallet '{wallet_id}' cannot be deleted")
    wallets = _load_wallets()
    kept = [w for w in wallets if w.id != wallet_id]
    if len(kept) == len(wallets):
        return False
    _save_wallets(kept)
    holdings = get_all_holdings()
    remaining = [h for h in holdings if h.wallet_id != wallet_id]
    if len(remaining) != len(holdings):
        _save_holdings(remaining)
    print(f"[Wallets] Deleted wallet {wallet_id} "
          f"({len(holdings) - len(remaining)} holdings removed)")
    return True


def _require_real_wallet(wallet_id: str):
    if wallet_id == SUMMARY_WALLET_ID:
        raise ValueError("Holdings cannot be edited in the summary wallet")
    if get_wallet(wallet_id) is None:
        raise LookupError(f"Wallet {wallet_id} not found")


# ═══════════════════════════════════════════════════════════
#  P/L ARITHMETIC
# ═══════════════════════════════════════════════════════════

def profit_rate(amount: float, profit: float) -> float:
    """Profit as % of cost, where cost = amount - profit."""
    cost = amount - profit
    if cost <= 0:
        return 0.0
    return round(profit / cost * 100, 2)


def validate_holding_input(amount, profit):
    if amount is None or not isinstance(amount, (int, float)) or not math.isfinite(amount) or amount < 0:
        raise ValueError("Holding amount must be a number >= 0")
    if profit is None or not isinstance(profit, (int, float)) or not math.isfinite(profit):
        raise ValueError("Holding profit must be a number")


def compute_totals(holdings: List[UserHolding]) -> WalletTotals:
    total_amount = sum(h.holding_amount for h in holdings)
    total_profit = sum(h.holding_profit for h in holdings)
    return WalletTotals(
        total_amount=round(total_amount, 2),
        total_profit=round(total_profit, 2),
        profit_rate=profit_rate(total_amount, total_profit),
        holding_count=len(holdings),
    )


def aggregate_by_code(holdings: List[UserHolding]) -> List[HoldingView]:
    """Merge holdings across wallets by fund code (summary wallet rows)."""
    merged: Dict[str, HoldingView] = {}
    for h in holdings:
        row = merged.get(h.code)
        if row is None:
            merged[h.code] = HoldingView(**h.model_dump(exclude={"wallet_id"}),
                                         wallet_id=SUMMARY_WALLET_ID)
            continue
        row.holding_amount += h.holding_amount
        row.holding_profit += h.holding_profit
        row.wallet_count += 1
    for row in merged.values():
        row.holding_amount = round(row.holding_amount, 2)
        row.holding_profit = round(row.holding_profit, 2)
        row.profit_rate = profit_rate(row.holding_amount, row.holding_profit)
    return list(merged.values())


def _with_valuation(row: HoldingView) -> HoldingView:
    live = fund_service.get_cached_realtime(row.code)
    if live:
        row.estimated_value = live.estimated_value
        row.change_rate = live.change_rate
        row.update_time = live.update_time
        row.current_price = live.estimated_value or live.net_value or row.current_price
    return row


def get_wallet_view(wallet_id: str) -> Optional[WalletView]:
    wallet = get_wallet(wallet_id)
    if wallet is None:
        return None
    holdings = get_all_holdings()
    if wallet_id == SUMMARY_WALLET_ID:
        real_ids = {w.id for w in _load_wallets()}
        members = [h for h in holdings if h.wallet_id in real_ids]
        rows = aggregate_by_code(members)
    else:
        members = [h for h in holdings if h.wallet_id == wallet_id]
        rows = [HoldingView(**h.model_dump()) for h in members]
    rows = [_with_valuation(r) for r in rows]
    totals = compute_totals(members)
    # Summary rows are merged by code, so count funds rather than holdings.
    totals.holding_count = len(rows)
    return WalletView(
        wallet=wallet,
        is_summary=(wallet_id == SUMMARY_WALLET_ID),
        holdings=rows,
        totals=totals,
    )


# ═══════════════════════════════════════════════════════════
#  HOLDINGS
# ═══════════════════════════════════════════════════════════

def find_holding(wallet_id: str, code: str) -> Optional[UserHolding]:
    return next((h for h in get_all_holdings()
                 if h.wallet_id == wallet_id and h.code == code), None)


def add_holding(wallet_id: str, code: str, amount: float, profit: float = 0.0) -> UserHolding:
    """Add a fund to a wallet; the fund is looked up for name/type/industry."""
    _require_real_wallet(wallet_id)
    if not fund_service.validate_fund_code(code):
        raise ValueError("Invalid fund code format")
    validate_holding_input(amount, profit)
    holdings = get_all_holdings()
    if any(h.wallet_id == wallet_id and h.code == code for h in holdings):
        raise ValueError(f"Fund {code} is already held in this wallet")

    result = fund_service.search_fund(code)
    if not result:
        raise LookupError(f"No fund found for code {code}")
    holding = UserHolding(
        code=code,
        fund_name=result.NAME,
        holding_amount=float(amount),
        holding_profit=float(profit),
        profit_rate=profit_rate(amount, profit),
        type=fund_service.extract_fund_type(result),
        industry_info=fund_service.extract_industry_info(result),
        wallet_id=wallet_id,
    )
    holdings.append(holding)
    _save_holdings(holdings)
    print(f"[Wallets] Added {code} to {wallet_id}: amount={amount}, profit={profit}")
    return holding


def edit_holding(wallet_id: str, code: str, amount: float, profit: float) -> Optional[UserHolding]:
    _require_real_wallet(wallet_id)
    validate_holding_input(amount, profit)
    holdings = get_all_holdings()
    for i, h in enumerate(holdings):
        if h.wallet_id == wallet_id and h.code == code:
            holdings[i] = h.model_copy(update={
                "holding_amount": float(amount),
                "holding_profit": float(profit),
                "profit_rate": profit_rate(amount, profit),
            })
            _save_holdings(holdings)
            return holdings[i]
    return None


def remove_holding(wallet_id: str, code: str) -> bool:
    _require_real_wallet(wallet_id)
    holdings = get_all_holdings()
    kept = [h for h in holdings if not (h.wallet_id == wallet_id and h.code == code)]
    if len(kept) == len(holdings):
        return False
    _save_holdings(kept)
    return True


def batch_delete(wallet_id: str, codes: List[str]) -> int:
    """Remove every listed fund from the wallet. Returns how many went."""
    _require_real_wallet(wallet_id)
    codes = set(codes)
    holdings = get_all_holdings()
    kept = [h for h in holdings if not (h.wallet_id == wallet_id and h.code in codes)]
    removed = len(holdings) - len(kept)
    if removed:
        _save_holdings(kept)
    return removed


def validate_batch_items(items: List[BatchAddItem]) -> BatchValidation:
    errors: List[str] = []
    if not items:
        return BatchValidation(valid=False, errors=["Add at least one holding"])
    if len(items) > config.BATCH_LIMIT:
        return BatchValidation(
            valid=False, errors=[f"At most {config.BATCH_LIMIT} holdings per batch"])

    codes = [item.code for item in items]
    if len(codes) != len(set(codes)):
        errors.append("Duplicate fund codes in batch")
    for i, item in enumerate(items, 1):
        if not fund_service.validate_fund_code(item.code):
            errors.append(f"Item {i}: invalid fund code format")
        if item.holding_amount < 0:
            errors.append(f"Item {i}: holding amount must not be negative")
    return BatchValidation(valid=not errors, errors=errors)


def _check_batch_item(item: BatchAddItem):
    """Returns (result, search record or None)."""
    if not fund_service.validate_fund_code(item.code):
        return BatchAddResult(success=False, code=item.code, error="Invalid fund code format"), None
    if item.holding_amount < 0:
        return BatchAddResult(success=False, code=item.code,
                              error="Holding amount must not be negative"), None
    if item.holding_amount > config.MAX_HOLDING_AMOUNT:
        return BatchAddResult(
            success=False, code=item.code,
            error=f"Holding amount must not exceed {config.MAX_HOLDING_AMOUNT:,}"), None
    try:
        found = fund_service.search_fund(item.code)
    except ValueError as e:
        return BatchAddResult(success=False, code=item.code, error=f"Add failed: {e}"), None
    if not found:
        return BatchAddResult(success=False, code=item.code, error="Fund not found"), None
    return BatchAddResult(success=True, code=item.code, name=found.NAME), found


def batch_add(wallet_id: str, items: List[BatchAddItem]) -> List[BatchAddResult]:
    """Validate, look up and add up to BATCH_LIMIT holdings.

    Raises ValueError when the batch as a whole is invalid. Otherwise every
    item gets a result and the successful ones are written.
    """
    _require_real_wallet(wallet_id)
    validation = validate_batch_items(items)
    if not validation.valid:
        raise ValueError("; ".join(validation.errors))

    held = {h.code for h in get_all_holdings() if h.wallet_id == wallet_id}
    already = [item.code for item in items if item.code in held]
    if already:
        raise ValueError(f"Already held in this wallet: {', '.join(already)}")

    results: List[BatchAddResult] = []
    new_holdings: List[UserHolding] = []
    for item in items:
        res, found = _check_batch_item(item)
        results.append(res)
        if not res.success:
            continue
        new_holdings.append(UserHolding(
            code=item.code,
            fund_name=found.NAME,
            holding_amount=item.holding_amount,
            holding_profit=item.holding_profit,
            profit_rate=profit_rate(item.holding_amount, item.holding_profit),
            type=fund_service.extract_fund_type(found),
            industry_info=fund_service.extract_industry_info(found),
            wallet_id=wallet_id,
        ))

    if new_holdings:
        _save_holdings(get_all_holdings() + new_holdings)
    print(f"[Wallets] Batch add to {wallet_id}: "
          f"{len(new_holdings)}/{len(results)} added")
    return results


# ═══════════════════════════════════════════════════════════
#  INDUSTRY BREAKDOWN
# ═══════════════════════════════════════════════════════════

def industry_summary(holdings: Optional[List[UserHolding]] = None) -> List[IndustrySummaryItem]:
    """Share of money per industry, keyed on each holding's first tag."""
    if holdings is None:
        holdings = get_all_holdings()
    total = sum(h.holding_amount for h in holdings)
    groups: Dict[str, Dict[str, float]] = {}
    for h in holdings:
        industry = (h.industry_info or "未知").split(",")[0].strip() or "未知"
        g = groups.setdefault(industry, {"amount": 0.0, "count": 0})
        g["amount"] += h.holding_amount
        g["count"] += 1
    items = [
        IndustrySummaryItem(
            industry=name,
            proportion=round(g["amount"] / total * 100, 2) if total > 0 else 0.0,
            count=int(g["count"]),
        )
        for name, g in groups.items()
    ]
    items.sort(key=lambda i: i.proportion, reverse=True)
    return items
