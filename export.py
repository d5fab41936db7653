"""
export.py - Excel export for the franchise growth forecast
"""
import io

import pandas as pd
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

from engine import (
    ForecastResult, brand_frame, brand_yearly_frame, monthly_frame, yearly_frame,
)


_HEADER_FILL = PatternFill("solid", fgColor="1F4E79")
_HEADER_FONT = Font(color="FFFFFF", bold=True)
_ALT_FILL    = PatternFill("solid", fgColor="D9E1F2")


def _fmt_sheet(ws, col_widths=None):
    """Style the header row, size columns and shade alternate rows."""
    ws.freeze_panes = "A2"
    for cell in ws[1]:
        cell.font      = _HEADER_FONT
        cell.fill      = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center")

    if col_widths:
        for i, w in enumerate(col_widths, 1):
            ws.column_dimensions[get_column_letter(i)].width = w
    else:
        for col in ws.columns:
            max_len = max(
                (len(str(cell.value)) if cell.value is not None else 0)
                for cell in col
            )
            ws.column_dimensions[col[0].column_letter].width = min(max_len + 4, 30)

    # Alternate row shading
    for i, row in enumerate(ws.iter_rows(min_row=2), start=2):
        if i % 2 == 0:
            for cell in row:
                if cell.fill.fill_type is None:
                    cell.fill = _ALT_FILL


def _write(writer, df: pd.DataFrame, sheet: str, col_widths=None):
    df.to_excel(writer, sheet_name=sheet, index=False)
    _fmt_sheet(writer.sheets[sheet], col_widths)


def build_excel(result: ForecastResult,
                sensitivity_tables: dict | None = None) -> bytes:
    """
    Build an Excel workbook and return as bytes.

    Parameters
    ----------
    result             : output from run_forecast
    sensitivity_tables : dict {sheet_name: pd.DataFrame}
    """
    output = io.BytesIO()

    with pd.ExcelWriter(output, engine="openpyxl") as writer:

        # ── Inputs ───────────────────────────────────────────────────
        t = result.totals
        inputs = pd.DataFrame([
            {"Parameter": "base_ads_budget",    "Value": result.base_ads_budget},
            {"Parameter": "reinvestment_rate",  "Value": result.reinvestment_rate},
            {"Parameter": "months",             "Value": len(result.monthly)},
            {"Parameter": "total_locations",    "Value": t.locations},
            {"Parameter": "franchisor_revenue", "Value": t.franchisor_revenue},
            {"Parameter": "total_ad_spend",     "Value": t.ad_spend},
            {"Parameter": "net_return",         "Value": t.net_return},
            {"Parameter": "roi",                "Value": t.roi},
        ])
        _write(writer, inputs, "Inputs", col_widths=[24, 18])

        # ── Catalog ──────────────────────────────────────────────────
        cat = pd.DataFrame([{
            "brand_id":      b.id,
            "name":          b.name,
            "priority":      b.priority,
            "weight":        result.catalog.weight(b),
            "cac":           b.cac,
            "annual_sales":  b.annual_sales,
            "franchise_fee": b.franchise_fee,
        } for b in result.catalog])
        _write(writer, cat, "Catalog")

        # ── Monthly ──────────────────────────────────────────────────
        monthly_cols = [
            "period", "month", "year",
            "ads_budget", "base_budget", "reinvestment", "reinvestment_share",
            "new_signings", "cumulative_signings", "open_locations",
            "monthly_franchise_fees", "monthly_royalties", "monthly_ad_fees",
            "monthly_system_sales",
            "cumulative_franchise_fees", "cumulative_royalties", "cumulative_ad_fees",
            "cumulative_system_sales", "cumulative_ad_spend",
        ]
        _write(writer, monthly_frame(result)[monthly_cols], "Monthly")

        # ── Yearly ───────────────────────────────────────────────────
        _write(writer, yearly_frame(result), "Yearly")

        # ── Brands ───────────────────────────────────────────────────
        _write(writer, brand_frame(result).drop(columns=["color"]), "Brands")
        _write(writer, brand_yearly_frame(result), "Brand Yearly")

        # ── Sensitivity tables ───────────────────────────────────────
        if sensitivity_tables:
            for sheet_name, sdf in sensitivity_tables.items():
                safe = sheet_name[:31]
                _write(writer, sdf, safe)

    output.seek(0)
    return output.read()
