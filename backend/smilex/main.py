"""
SmileX Fund Dashboard - FastAPI Backend
"""
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import List, Optional
import traceback

from .models import (
    AddFundRequest, AddHoldingRequest, BatchAddRequest, BatchAddResult,
    BatchDeleteRequest, CreateWalletRequest, EditHoldingRequest, FundDetail,
    FundHistoryPoint, FundInfo, FundRealTimeData, FundSearchResult,
    IndustrySummaryItem, MacroEconomicCumulative, MacroEconomicData, MarketIndex,
    PreciousMetal, PreciousMetalHistory, Settings, SettingsUpdate,
    TrackFundsRequest, UserHolding, Wallet, WalletView,
)
from . import (
    config, fund_catalogue, fund_service, macro_service, market_service,
    metal_service, settings_manager, storage, tracker, wallet_service, xlsx_export,
)
from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import JSONResponse

app = FastAPI(title="SmileX Fund Dashboard", version="1.0.0")


class FundCodesRequest(BaseModel):
    codes: List[str]


# ── Global exception handler: logs unhandled errors to console ──
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    print(f"[ERROR] {request.method} {request.url.path} → {type(exc).__name__}: {exc}")
    traceback.print_exc()
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal error: {str(exc)[:200]}"},
    )


def initialize_defaults() -> dict:
    """Seed the store with default wallets, funds, quotes and settings.

    Keys that already hold data are left alone.
    """
    store = storage.get_store()
    seeded = []

    def seed(name: str, value):
        key = storage.storage_key(storage.KEYS[name])
        if store.read(key, None) is None:
            store.write(key, value)
            seeded.append(name)

    seed("WALLETS", [w.model_dump() for w in wallet_service.list_wallets()
                     if w.id != wallet_service.SUMMARY_WALLET_ID])
    seed("FUNDS", [f.model_dump() for f in fund_catalogue.default_funds()])
    seed("MARKET_INDICES", [i.model_dump() for i in market_service.default_indices()])
    seed("PRECIOUS_METALS", [m.model_dump() for m in metal_service.default_metals()])
    seed("SETTINGS", Settings().model_dump())

    # Tracked estimates double as the valuation cache until the first refresh
    fund_service.prime_cache(tracker.get_tracked())
    if seeded:
        print(f"[App] Initialized defaults: {', '.join(seeded)}")
    return {"seeded": seeded}


# ══════════════════════════════════════════════════════════
#  STARTUP / SHUTDOWN: background poller
# ══════════════════════════════════════════════════════════

@app.on_event("startup")
def on_startup():
    try:
        initialize_defaults()
    except OSError as e:
        print(f"[App] Could not initialize store at {config.STORE_FILE}: {e}")
    if config.ENABLE_BACKGROUND_REFRESH:
        tracker.start_background_refresh()
        print("[App] Background tracker refresh started")
    else:
        print("[App] Background refresh DISABLED (SMILEX_BACKGROUND=0)")


@app.on_event("shutdown")
def on_shutdown():
    tracker.stop_background_refresh()
    storage.get_store().flush()
    print("[App] Background refresh stopped, store flushed")


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ══════════════════════════════════════════════════════════
#  FUND DATA (realtime estimate / search / history)
# ══════════════════════════════════════════════════════════

@app.get("/api/fund/realtime/{code}", response_model=FundRealTimeData)
def get_fund_realtime(code: str):
    try:
        data = fund_service.fetch_realtime(code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if data is None:
        raise HTTPException(status_code=404, detail=f"No valuation available for {code}")
    return data


@app.post("/api/fund/realtime/batch", response_model=List[FundRealTimeData])
def get_fund_realtime_batch(req: FundCodesRequest):
    return fund_service.fetch_batch_realtime(req.codes)


@app.get("/api/fund/search/{code}", response_model=FundSearchResult)
def search_fund(code: str):
    try:
        result = fund_service.search_fund(code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail=f"No fund found for code {code}")
    return result


@app.get("/api/fund/history/{code}", response_model=List[FundHistoryPoint])
def get_fund_history(code: str, range: str = "1m"):
    try:
        return fund_service.fetch_history(code, fund_service.days_for_range(range))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ══════════════════════════════════════════════════════════
#  FUND CATALOGUE
# ══════════════════════════════════════════════════════════

@app.get("/api/funds", response_model=List[FundInfo])
def list_funds(q: str = "", type: str = "", risk: str = "",
               sort_by: str = "", sort_order: str = "desc"):
    funds = fund_catalogue.filter_funds(fund_catalogue.get_all_funds(), q, type, risk)
    if sort_by:
        funds = fund_catalogue.sort_funds(sort_by, sort_order, funds)
    return funds


@app.post("/api/funds", response_model=FundInfo)
def add_fund(req: AddFundRequest):
    try:
        return fund_catalogue.add_fund(req.code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/api/funds/refresh")
def refresh_funds():
    updated = fund_catalogue.refresh_valuations()
    return {"updated": updated}


@app.get("/api/funds/{code}", response_model=FundDetail)
def get_fund_detail(code: str, range: str = "1m"):
    fund = fund_catalogue.get_fund_by_code(code)
    if fund is None:
        raise HTTPException(status_code=404, detail=f"Fund {code} not in catalogue")
    try:
        days = fund_service.days_for_range(range)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    history = fund_service.fetch_history(code, days)
    return FundDetail(
        fund=fund_catalogue.apply_change_rates(fund),
        range=range,
        history=history,
        change_rate=fund_service.history_change_rate(history),
    )


@app.delete("/api/funds/{code}")
def remove_fund(code: str):
    if not fund_catalogue.remove_fund(code):
        raise HTTPException(status_code=404, detail=f"Fund {code} not in catalogue")
    return {"message": f"Removed {code}"}


# ══════════════════════════════════════════════════════════
#  PRECIOUS METALS
# ══════════════════════════════════════════════════════════

@app.get("/api/metals/gold-price")
def get_gold_price():
    """Raw gold-price feed (default payload when the feed is down)."""
    return metal_service.fetch_gold_price()


@app.get("/api/metals", response_model=List[PreciousMetal])
def get_metals(all: bool = False):
    metals = metal_service.get_precious_metals()
    return metals if all else metal_service.display_metals(metals)


@app.post("/api/metals/refresh", response_model=PreciousMetal)
def refresh_metals():
    return metal_service.refresh_gold_quote()


@app.get("/api/metals/status")
def get_metals_status():
    return metal_service.get_sync_status()


@app.get("/api/metals/{name}/history", response_model=List[PreciousMetalHistory])
def get_metal_history(name: str, days: int = Query(30, ge=1, le=365)):
    return metal_service.get_history(name, days)


# ══════════════════════════════════════════════════════════
#  MARKET INDICES / MACRO
# ══════════════════════════════════════════════════════════

@app.get("/api/market/indices", response_model=List[MarketIndex])
def get_market_indices():
    return market_service.get_market_indices()


@app.post("/api/market/indices/refresh", response_model=List[MarketIndex])
def refresh_market_indices():
    return market_service.refresh_indices()


@app.get("/api/macro", response_model=List[MacroEconomicData])
def get_macro(months: int = Query(24, ge=1, le=120)):
    return macro_service.get_macro_data(months)


@app.get("/api/macro/cumulative", response_model=List[MacroEconomicCumulative])
def get_macro_cumulative(months: int = Query(24, ge=1, le=120)):
    return macro_service.get_macro_cumulative(months)


# ══════════════════════════════════════════════════════════
#  WALLETS / HOLDINGS
# ══════════════════════════════════════════════════════════

@app.get("/api/wallets", response_model=List[Wallet])
def list_wallets():
    return wallet_service.list_wallets()


@app.post("/api/wallets", response_model=Wallet)
def create_wallet(req: CreateWalletRequest):
    try:
        return wallet_service.create_wallet(req.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/api/wallets/{wallet_id}", response_model=Wallet)
def rename_wallet(wallet_id: str, req: CreateWalletRequest):
    try:
        wallet = wallet_service.rename_wallet(wallet_id, req.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if wallet is None:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return wallet


@app.delete("/api/wallets/{wallet_id}")
def delete_wallet(wallet_id: str):
    try:
        deleted = wallet_service.delete_wallet(wallet_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return {"message": f"Deleted wallet {wallet_id}"}


@app.get("/api/wallets/{wallet_id}/holdings", response_model=WalletView)
def get_wallet_holdings(wallet_id: str):
    view = wallet_service.get_wallet_view(wallet_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return view


@app.post("/api/wallets/{wallet_id}/holdings", response_model=UserHolding)
def add_holding(wallet_id: str, req: AddHoldingRequest):
    try:
        return wallet_service.add_holding(
            wallet_id, req.code, req.holding_amount, req.holding_profit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/api/wallets/{wallet_id}/holdings/{code}", response_model=UserHolding)
def edit_holding(wallet_id: str, code: str, req: EditHoldingRequest):
    try:
        holding = wallet_service.edit_holding(
            wallet_id, code, req.holding_amount, req.holding_profit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if holding is None:
        raise HTTPException(status_code=404, detail="Holding not found")
    return holding


@app.delete("/api/wallets/{wallet_id}/holdings/{code}")
def remove_holding(wallet_id: str, code: str):
    try:
        removed = wallet_service.remove_holding(wallet_id, code)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail="Holding not found")
    return {"message": f"Removed {code}"}


@app.post("/api/wallets/{wallet_id}/holdings/batch", response_model=List[BatchAddResult])
def batch_add_holdings(wallet_id: str, req: BatchAddRequest):
    try:
        return wallet_service.batch_add(wallet_id, req.items)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/api/wallets/{wallet_id}/holdings/batch-delete")
def batch_delete_holdings(wallet_id: str, req: BatchDeleteRequest):
    try:
        removed = wallet_service.batch_delete(wallet_id, req.codes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"removed": removed}


@app.get("/api/holdings/industry-summary", response_model=List[IndustrySummaryItem])
def get_industry_summary():
    return wallet_service.industry_summary()


@app.get("/api/export/holdings.xlsx")
def export_holdings(wallet_id: Optional[str] = None):
    try:
        data = xlsx_export.export_holdings(wallet_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(
        content=data,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="holdings.xlsx"'},
    )


# ══════════════════════════════════════════════════════════
#  TRACKER
# ══════════════════════════════════════════════════════════

@app.get("/api/tracker", response_model=List[FundRealTimeData])
def get_tracked_funds(sort: str = "change_rate", direction: str = "desc"):
    return tracker.sorted_funds(sort, direction)


@app.post("/api/tracker")
def track_funds(req: TrackFundsRequest):
    try:
        result = tracker.add_codes(req.codes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not result["added"]:
        raise HTTPException(status_code=502, detail="Could not fetch any of the requested funds")
    return result


@app.delete("/api/tracker/{code}")
def untrack_fund(code: str):
    if not tracker.remove(code):
        raise HTTPException(status_code=404, detail=f"{code} is not tracked")
    return {"message": f"Stopped tracking {code}"}


@app.post("/api/tracker/refresh", response_model=List[FundRealTimeData])
def refresh_tracked_funds():
    try:
        return tracker.refresh()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/tracker/status")
def get_tracker_status():
    return tracker.status()


# ══════════════════════════════════════════════════════════
#  SETTINGS / INIT
# ══════════════════════════════════════════════════════════

@app.get("/api/settings", response_model=Settings)
def get_settings():
    return settings_manager.get_settings()


@app.put("/api/settings", response_model=Settings)
def update_settings(req: SettingsUpdate):
    try:
        return settings_manager.update_settings(req)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/initialize")
def initialize():
    return initialize_defaults()
