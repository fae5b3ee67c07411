"""
Holdings workbook export: one sheet per wallet plus a Summary sheet.
"""
import io
import re
from typing import List, Optional

import openpyxl
from openpyxl.styles import Font

from . import wallet_service
from .models import HoldingView, WalletView

HEADERS = ["Code", "Fund", "Type", "Industry", "Amount", "Profit", "Profit %"]

_BAD_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def sheet_title(name: str, used: set) -> str:
    """Excel-safe, unique sheet title (max 31 chars)."""
    base = _BAD_TITLE_CHARS.sub("_", name or "Wallet")[:31] or "Wallet"
    title, n = base, 2
    while title in used:
        suffix = f" ({n})"
        title = base[:31 - len(suffix)] + suffix
        n += 1
    used.add(title)
    return title


def _write_sheet(ws, view: WalletView):
    hdr_font = Font(bold=True)
    for i, h in enumerate(HEADERS, 1):
        ws.cell(1, i, h).font = hdr_font
    row = 2
    for h in view.holdings:
        _write_row(ws, row, h)
        row += 1
    # Totals
    ws.cell(row + 1, 1, "Total")
    ws.cell(row + 1, 5, view.totals.total_amount)
    ws.cell(row + 1, 6, view.totals.total_profit)
    ws.cell(row + 1, 7, view.totals.profit_rate)


def _write_row(ws, row: int, h: HoldingView):
    ws.cell(row, 1, h.code)
    ws.cell(row, 2, h.fund_name)
    ws.cell(row, 3, h.type)
    ws.cell(row, 4, h.industry_info)
    ws.cell(row, 5, h.holding_amount)
    ws.cell(row, 6, h.holding_profit)
    ws.cell(row, 7, h.profit_rate)


def export_holdings(wallet_id: Optional[str] = None) -> bytes:
    """Build the workbook and return it as xlsx bytes.

    With ``wallet_id`` only that wallet is exported; otherwise every real
    wallet gets a sheet, followed by the Summary sheet.
    """
    if wallet_id:
        view = wallet_service.get_wallet_view(wallet_id)
        if view is None:
            raise LookupError(f"Wallet {wallet_id} not found")
        views: List[WalletView] = [view]
    else:
        views = [wallet_service.get_wallet_view(w.id)
                 for w in wallet_service.list_wallets()
                 if w.id != wallet_service.SUMMARY_WALLET_ID]
        views.append(wallet_service.get_wallet_view(wallet_service.SUMMARY_WALLET_ID))

    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    used = set()
    for view in views:
        title = "Summary" if view.is_summary else view.wallet.name
        _write_sheet(wb.create_sheet(sheet_title(title, used)), view)

    buf = io.BytesIO()
    wb.save(buf)
    wb.close()
    print(f"[Export] Wrote {len(views)} sheets")
    return buf.getvalue()
