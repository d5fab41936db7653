"""
formatting.py - Display formatting for currency and counts
"""
import numpy as np


def _missing(v) -> bool:
    return v is None or (isinstance(v, float) and (np.isnan(v) or np.isinf(v)))


def fmt_dollar(v):
    if _missing(v): return "—"
    if abs(v) >= 1_000_000: return f"${v/1_000_000:.2f}M"
    if abs(v) >= 1_000:     return f"${v/1_000:.1f}K"
    return f"${v:,.0f}"


def fmt_count(v):
    if _missing(v): return "—"
    return f"{v:,.0f}"


def fmt_rate(v):
    """Reinvestment rates are already percentages: 0.5 -> '0.50%'."""
    if _missing(v): return "—"
    return f"{v:.2f}%"


def fmt_pct(v):
    """Fractions to percent: 1.5 -> '150%'."""
    if _missing(v): return "—"
    return f"{v:.0%}"
