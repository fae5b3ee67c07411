from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional
from datetime import datetime


def _now_iso() -> str:
    return datetime.now().isoformat()


# ═══════════════════════════════════════════════════════════
#  FUND MODELS
# ═══════════════════════════════════════════════════════════

class FundRealTimeData(BaseModel):
    """Intraday estimate for one fund, as served by fundgz."""
    code: str
    name: str
    net_value: float = 0.0          # last published NAV (dwjz)
    estimated_value: float = 0.0    # intraday estimate (gsz)
    change_rate: float = 0.0        # estimated change % (gszzl)
    update_time: str = ""           # estimate timestamp (gztime)
    net_value_date: str = ""        # date of net_value (jzrq)


class FundBaseRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    FCODE: Optional[str] = ""
    SHORTNAME: Optional[str] = ""
    FTYPE: Optional[str] = ""
    FUNDTYPE: Optional[str] = ""
    JJGS: Optional[str] = ""          # fund company
    JJJL: Optional[str] = ""          # fund manager
    DWJZ: Optional[float] = 0.0       # latest NAV
    FSRQ: Optional[str] = ""          # NAV date
    ISBUY: Optional[str] = ""
    MINSG: Optional[float] = 0.0


class FundSearchResult(BaseModel):
    """First hit of the eastmoney fund-suggest API; upstream field names kept."""
    model_config = ConfigDict(extra="allow")

    CODE: str
    NAME: str
    JP: Optional[str] = ""
    CATEGORY: Optional[int] = 0
    CATEGORYDESC: Optional[str] = ""
    FundBaseInfo: Optional[FundBaseRecord] = None
    ZTJJInfo: Optional[List[Any]] = None


class FundBasic(BaseModel):
    code: str
    name: str
    type: str = "未知类型"
    risk_level: str = "未知"
    manager: str = ""
    established_date: str = ""
    fund_size: str = ""


class FundValuation(BaseModel):
    code: str
    valuation: float = 0.0            # intraday estimate
    net_value: float = 0.0
    daily_change: float = 0.0
    daily_change_rate: float = 0.0
    weekly_change_rate: float = 0.0
    monthly_change_rate: float = 0.0
    update_time: str = ""


class FundInfo(FundBasic):
    valuation: FundValuation


class FundHistoryPoint(BaseModel):
    date: str
    value: float


class FundDetail(BaseModel):
    fund: FundInfo
    range: str
    history: List[FundHistoryPoint] = Field(default_factory=list)
    change_rate: float = 0.0


# ═══════════════════════════════════════════════════════════
#  MARKET / METAL / MACRO MODELS
# ═══════════════════════════════════════════════════════════

class MarketIndex(BaseModel):
    name: str
    value: str          # display string, e.g. "3,258.63"
    change: str         # display string, e.g. "+0.82%"
    is_up: bool
    source: str = "default"


class PreciousMetal(BaseModel):
    name: str
    value: str
    change: str
    is_up: bool
    unit: str = "元/克"


class PreciousMetalHistory(BaseModel):
    name: str
    date: str
    value: float


class MacroEconomicData(BaseModel):
    date: str                       # YYYY-MM
    m1: float
    m1_change_rate: float
    m2: float
    m2_change_rate: float
    gdp: float
    gdp_change_rate: float
    buffett_indicator: Optional[float] = None


class MacroEconomicCumulative(BaseModel):
    date: str
    cumulative_change: float


# ═══════════════════════════════════════════════════════════
#  WALLET / HOLDING MODELS
# ═══════════════════════════════════════════════════════════

class Wallet(BaseModel):
    id: str
    name: str
    created_at: str = Field(default_factory=_now_iso)


class UserHolding(BaseModel):
    code: str
    fund_name: str
    holding_amount: float           # money currently in the fund
    holding_profit: float = 0.0     # cumulative profit, may be negative
    current_price: float = 0.0
    profit_rate: float = 0.0
    type: str = "未知类型"
    industry_info: str = "未知"
    wallet_id: str


class HoldingView(UserHolding):
    """Holding enriched with the latest cached valuation."""
    estimated_value: float = 0.0
    change_rate: float = 0.0
    update_time: str = ""
    wallet_count: int = 1           # >1 only in the summary wallet


class WalletTotals(BaseModel):
    total_amount: float = 0.0
    total_profit: float = 0.0
    profit_rate: float = 0.0
    holding_count: int = 0


class WalletView(BaseModel):
    wallet: Wallet
    is_summary: bool = False
    holdings: List[HoldingView] = Field(default_factory=list)
    totals: WalletTotals = Field(default_factory=WalletTotals)


class IndustrySummaryItem(BaseModel):
    industry: str
    proportion: float
    count: int


class BatchAddItem(BaseModel):
    code: str
    holding_amount: float = 0.0
    holding_profit: float = 0.0


class BatchAddResult(BaseModel):
    success: bool
    code: str
    name: Optional[str] = None
    error: Optional[str] = None


class BatchValidation(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════
#  REQUEST BODIES
# ═══════════════════════════════════════════════════════════

class CreateWalletRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Wallet display name")


class AddHoldingRequest(BaseModel):
    code: str = Field(..., description="6-digit fund code")
    holding_amount: float = Field(..., ge=0, description="Amount currently held")
    holding_profit: float = Field(default=0.0, description="Cumulative profit, may be negative")


class EditHoldingRequest(BaseModel):
    holding_amount: float = Field(..., ge=0)
    holding_profit: float = 0.0


class BatchAddRequest(BaseModel):
    items: List[BatchAddItem]


class BatchDeleteRequest(BaseModel):
    codes: List[str]


class TrackFundsRequest(BaseModel):
    codes: str = Field(..., description="Comma-separated fund codes")


class AddFundRequest(BaseModel):
    code: str


class Settings(BaseModel):
    metal_items_per_row: int = 2
    market_items_per_row: int = 2
    color_scheme: str = "red-up"


class SettingsUpdate(BaseModel):
    metal_items_per_row: Optional[int] = None
    market_items_per_row: Optional[int] = None
    color_scheme: Optional[str] = None
