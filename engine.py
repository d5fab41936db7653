"""
engine.py - Monthly franchise growth engine for the franchise growth forecast
"""
from dataclasses import dataclass, field, fields
from math import ceil, floor
from types import MappingProxyType
from typing import Mapping

import numpy as np
import pandas as pd

from catalog import (
    AD_FEE_RATE, HORIZON_MONTHS, LOCATION_LIFESPAN, MAX_LOCATIONS_PER_BRAND,
    MONTHS_TO_OPEN, ROYALTY_RATE, Brand, Catalog, default_catalog,
)
from log_config import get_logger

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PendingLocation:
    signed_month: int
    opens_month: int
    annual_sales: float


@dataclass(frozen=True)
class OpenLocation:
    opened_month: int
    closes_month: int
    annual_sales: float

    def is_active(self, month: int) -> bool:
        return self.opened_month <= month < self.closes_month


@dataclass(frozen=True)
class Signing:
    brand_id: str
    annual_sales: float


@dataclass
class BrandState:
    """Mutable per-brand state; one slot per catalog brand for the whole run."""
    total_signed: int = 0
    pending_locations: list = field(default_factory=list)
    open_locations: list = field(default_factory=list)
    accumulated_fractional: float = 0.0
    total_franchise_fees: float = 0.0
    total_royalties: float = 0.0
    total_ad_fees: float = 0.0
    total_system_sales: float = 0.0
    total_ad_spend: float = 0.0


@dataclass(frozen=True)
class BrandMonth:
    brand_id: str
    signed: int
    new_signed: int
    pending: int
    open: int
    accumulated_fractional: float
    monthly_ad_spend: float
    monthly_franchise_fees: float
    monthly_revenue: float
    monthly_royalties: float
    monthly_ad_fees: float
    total_franchise_fees: float
    total_royalties: float
    total_ad_fees: float
    total_system_sales: float
    total_ad_spend: float


@dataclass(frozen=True)
class CumulativeTotals:
    locations: int = 0
    franchise_fees: float = 0.0
    royalties: float = 0.0
    ad_fees: float = 0.0
    ad_spend: float = 0.0
    system_sales: float = 0.0

    def __add__(self, other: "CumulativeTotals") -> "CumulativeTotals":
        return CumulativeTotals(
            locations      = self.locations      + other.locations,
            franchise_fees = self.franchise_fees + other.franchise_fees,
            royalties      = self.royalties      + other.royalties,
            ad_fees        = self.ad_fees        + other.ad_fees,
            ad_spend       = self.ad_spend       + other.ad_spend,
            system_sales   = self.system_sales   + other.system_sales,
        )

    # ROI analysis
    @property
    def franchisor_revenue(self) -> float:
        return self.franchise_fees + self.royalties + self.ad_fees

    @property
    def net_return(self) -> float:
        return self.franchisor_revenue - self.ad_spend

    @property
    def roi(self) -> float:
        return self.franchisor_revenue / self.ad_spend - 1 if self.ad_spend > 0 else 0.0


@dataclass(frozen=True)
class MonthlySnapshot:
    month: int
    year: int
    month_label: str
    ads_budget: float
    base_budget: float
    reinvestment: float
    new_signings: int
    new_signings_detail: tuple
    cumulative_signings: int
    open_locations: int
    monthly_franchise_fees: float
    cumulative_franchise_fees: float
    monthly_royalties: float
    cumulative_royalties: float
    monthly_ad_fees: float
    cumulative_ad_fees: float
    monthly_system_sales: float
    cumulative_system_sales: float
    cumulative_ad_spend: float
    brands: tuple

    def brand(self, brand_id: str) -> BrandMonth:
        for b in self.brands:
            if b.brand_id == brand_id:
                return b
        raise KeyError(brand_id)


@dataclass(frozen=True)
class YearlySummary:
    year: int
    new_locations: int
    total_locations: int
    open_locations: int
    franchise_fees: float
    royalties: float
    ad_fees: float
    system_sales: float
    ad_spend: float
    reinvestment: float


@dataclass(frozen=True)
class BrandYear:
    year: int
    new_signed: int
    total_signed: int
    open_locations: int
    franchise_fees: float
    system_sales: float
    royalties: float
    ad_fees: float
    ad_spend: float


@dataclass(frozen=True)
class BrandSummary:
    brand: Brand
    total_signed: int
    open_locations: int
    pending_locations: int
    total_franchise_fees: float
    total_royalties: float
    total_ad_fees: float
    total_system_sales: float
    total_ad_spend: float


@dataclass(frozen=True)
class ForecastResult:
    base_ads_budget: float
    reinvestment_rate: float
    catalog: Catalog
    monthly: tuple
    yearly: tuple
    brands: tuple
    brand_yearly: Mapping[str, tuple]
    totals: CumulativeTotals
    # Audit trail: every location ever opened or still pending, per brand
    open_locations: Mapping[str, tuple]
    pending_locations: Mapping[str, tuple]


# ---------------------------------------------------------------------------
# Budget allocation & reinvestment
# ---------------------------------------------------------------------------

def allocate_budget(total_budget: float, catalog: Catalog) -> dict:
    return {b.id: total_budget * catalog.weight(b) for b in catalog}


def reinvestment_from(signings, reinvestment_rate: float) -> float:
    """Next month's bonus: each prior-month signing's annual sales x rate%."""
    bonus = 0.0
    for s in signings:
        bonus += s.annual_sales * (reinvestment_rate / 100)
    return bonus


def reinvestment_preview(reinvestment_rate: float, catalog: Catalog | None = None) -> float:
    """Bonus a single signing of the top-priority brand adds to next month's budget."""
    if catalog is None:
        catalog = default_catalog()
    return catalog.top_brand.annual_sales * (reinvestment_rate / 100)


# ---------------------------------------------------------------------------
# Per-brand steps
# ---------------------------------------------------------------------------

def activate_pending(state: BrandState, month: int,
                     lifespan: int = LOCATION_LIFESPAN) -> int:
    """Move pendings due this month to open. Returns how many opened."""
    opening = [p for p in state.pending_locations if p.opens_month == month]
    for p in opening:
        state.open_locations.append(
            OpenLocation(opened_month=month, closes_month=month + lifespan,
                         annual_sales=p.annual_sales)
        )
    state.pending_locations = [p for p in state.pending_locations if p.opens_month != month]
    return len(opening)


def sign_locations(state: BrandState, brand: Brand, allocation: float, month: int,
                   capacity: int = MAX_LOCATIONS_PER_BRAND,
                   open_lag: int = MONTHS_TO_OPEN) -> tuple:
    """
    Convert this month's allocation into whole signings.

    Fractional signings carry over in ``accumulated_fractional``; the amount
    added each month is clamped to remaining capacity. A brand at capacity
    still spends its allocation but signs nothing.
    """
    remaining = capacity - state.total_signed
    if remaining <= 0:
        return ()

    potential = allocation / brand.cac
    state.accumulated_fractional += min(potential, remaining)
    whole = floor(state.accumulated_fractional)

    signed = []
    for _ in range(max(0, min(whole, remaining))):
        state.total_signed += 1
        state.total_franchise_fees += brand.franchise_fee
        state.pending_locations.append(
            PendingLocation(signed_month=month, opens_month=month + open_lag,
                            annual_sales=brand.annual_sales)
        )
        signed.append(Signing(brand.id, brand.annual_sales))

    state.accumulated_fractional -= whole
    # A tiny negative carry (negative budgets only) can round up to 1.0 here
    if state.accumulated_fractional >= 1.0:
        state.accumulated_fractional = 0.0

    assert 0.0 <= state.accumulated_fractional < 1.0, state.accumulated_fractional
    assert state.total_signed <= capacity, (brand.id, state.total_signed)
    return tuple(signed)


def accrue_revenue(state: BrandState, month: int) -> tuple:
    """Sales, royalties, ad fees and active count from locations open this month."""
    sales = 0.0
    active = 0
    for loc in state.open_locations:
        if loc.is_active(month):
            sales += loc.annual_sales / 12
            active += 1

    royalties = sales * ROYALTY_RATE
    ad_fees   = sales * AD_FEE_RATE

    state.total_royalties    += royalties
    state.total_ad_fees      += ad_fees
    state.total_system_sales += sales
    return sales, royalties, ad_fees, active


def _run_brand_month(brand: Brand, state: BrandState, allocation: float,
                     month: int, capacity: int) -> tuple:
    state.total_ad_spend += allocation
    signed = sign_locations(state, brand, allocation, month, capacity)
    sales, royalties, ad_fees, active = accrue_revenue(state, month)

    row = BrandMonth(
        brand_id               = brand.id,
        signed                 = state.total_signed,
        new_signed             = len(signed),
        pending                = len(state.pending_locations),
        open                   = active,
        accumulated_fractional = state.accumulated_fractional,
        monthly_ad_spend       = allocation,
        monthly_franchise_fees = len(signed) * brand.franchise_fee,
        monthly_revenue        = sales,
        monthly_royalties      = royalties,
        monthly_ad_fees        = ad_fees,
        total_franchise_fees   = state.total_franchise_fees,
        total_royalties        = state.total_royalties,
        total_ad_fees          = state.total_ad_fees,
        total_system_sales     = state.total_system_sales,
        total_ad_spend         = state.total_ad_spend,
    )
    return row, signed


# ---------------------------------------------------------------------------
# Main engine
# ---------------------------------------------------------------------------

def run_forecast(base_ads_budget: float, reinvestment_rate: float,
                 catalog: Catalog | None = None, *,
                 horizon: int = HORIZON_MONTHS,
                 capacity: int = MAX_LOCATIONS_PER_BRAND) -> ForecastResult:
    """
    Run the month-by-month franchise growth forecast.

    Parameters
    ----------
    base_ads_budget   : fixed monthly marketing budget ($)
    reinvestment_rate : % of a signing's projected annual sales added to the
                        following month's budget (0.5 means 0.5%)
    catalog           : brand table; the default nine brands if omitted
    """
    if catalog is None:
        catalog = default_catalog()
    states  = [BrandState() for _ in catalog.brands]

    totals = CumulativeTotals()
    prev_signings = ()
    monthly = []

    for month in range(1, horizon + 1):
        # STEP 1: open locations whose lag has elapsed
        for state in states:
            activate_pending(state, month)

        # STEP 2: reinvestment from last month's signings only
        reinvestment = reinvestment_from(prev_signings, reinvestment_rate) if month > 1 else 0.0
        total_budget = base_ads_budget + reinvestment

        # STEP 3-5: allocate, sign, accrue, brand by brand in catalog order
        allocations = allocate_budget(total_budget, catalog)
        rows = []
        signings = []
        for brand, state in zip(catalog.brands, states):
            row, signed = _run_brand_month(brand, state, allocations[brand.id], month, capacity)
            rows.append(row)
            signings.extend(signed)

        # STEP 6: fold this month's delta into the running totals
        delta = CumulativeTotals(
            locations      = len(signings),
            franchise_fees = sum(r.monthly_franchise_fees for r in rows),
            royalties      = sum(r.monthly_royalties for r in rows),
            ad_fees        = sum(r.monthly_ad_fees for r in rows),
            ad_spend       = total_budget,
            system_sales   = sum(r.monthly_revenue for r in rows),
        )
        totals = totals + delta

        # STEP 7: snapshot
        year = ceil(month / 12)
        monthly.append(MonthlySnapshot(
            month                     = month,
            year                      = year,
            month_label               = f"Y{year}M{(month - 1) % 12 + 1}",
            ads_budget                = total_budget,
            base_budget               = base_ads_budget,
            reinvestment              = reinvestment,
            new_signings              = delta.locations,
            new_signings_detail       = tuple(signings),
            cumulative_signings       = totals.locations,
            open_locations            = sum(r.open for r in rows),
            monthly_franchise_fees    = delta.franchise_fees,
            cumulative_franchise_fees = totals.franchise_fees,
            monthly_royalties         = delta.royalties,
            cumulative_royalties      = totals.royalties,
            monthly_ad_fees           = delta.ad_fees,
            cumulative_ad_fees        = totals.ad_fees,
            monthly_system_sales      = delta.system_sales,
            cumulative_system_sales   = totals.system_sales,
            cumulative_ad_spend       = totals.ad_spend,
            brands                    = tuple(rows),
        ))
        prev_signings = tuple(signings)

    monthly = tuple(monthly)
    result = ForecastResult(
        base_ads_budget   = base_ads_budget,
        reinvestment_rate = reinvestment_rate,
        catalog           = catalog,
        monthly           = monthly,
        yearly            = _build_yearly(monthly),
        brands            = _build_brand_summary(monthly, catalog),
        brand_yearly      = _build_brand_yearly(monthly, catalog),
        totals            = totals,
        open_locations    = MappingProxyType({b.id: tuple(s.open_locations)
                                              for b, s in zip(catalog.brands, states)}),
        pending_locations = MappingProxyType({b.id: tuple(s.pending_locations)
                                              for b, s in zip(catalog.brands, states)}),
    )
    log.debug("forecast_complete",
              base_ads_budget=base_ads_budget, reinvestment_rate=reinvestment_rate,
              months=horizon, total_locations=totals.locations,
              franchise_fees=totals.franchise_fees, royalties=totals.royalties,
              ad_spend=totals.ad_spend)
    return result


# ---------------------------------------------------------------------------
# Yearly & per-brand rollups
# ---------------------------------------------------------------------------

def _year_windows(monthly) -> list:
    """Contiguous 12-month windows: year y covers months 12y-11..12y."""
    return [monthly[i:i + 12] for i in range(0, len(monthly), 12)]


def _build_yearly(monthly) -> tuple:
    out = []
    prev_end = 0
    for year, window in enumerate(_year_windows(monthly), start=1):
        last = window[-1]
        out.append(YearlySummary(
            year            = year,
            new_locations   = last.cumulative_signings - prev_end,
            total_locations = last.cumulative_signings,
            open_locations  = last.open_locations,
            franchise_fees  = sum(m.monthly_franchise_fees for m in window),
            royalties       = sum(m.monthly_royalties for m in window),
            ad_fees         = sum(m.monthly_ad_fees for m in window),
            system_sales    = sum(m.monthly_system_sales for m in window),
            ad_spend        = sum(m.ads_budget for m in window),
            reinvestment    = sum(m.reinvestment for m in window),
        ))
        prev_end = last.cumulative_signings
    return tuple(out)


def _build_brand_yearly(monthly, catalog: Catalog) -> Mapping:
    breakdown = {}
    for brand in catalog:
        rows = []
        prev_signed = 0
        for year, window in enumerate(_year_windows(monthly), start=1):
            bm = [m.brand(brand.id) for m in window]
            end = bm[-1]
            rows.append(BrandYear(
                year           = year,
                new_signed     = end.signed - prev_signed,
                total_signed   = end.signed,
                open_locations = end.open,
                franchise_fees = sum(b.monthly_franchise_fees for b in bm),
                system_sales   = sum(b.monthly_revenue for b in bm),
                royalties      = sum(b.monthly_royalties for b in bm),
                ad_fees        = sum(b.monthly_ad_fees for b in bm),
                ad_spend       = sum(b.monthly_ad_spend for b in bm),
            ))
            prev_signed = end.signed
        breakdown[brand.id] = tuple(rows)
    return MappingProxyType(breakdown)


def _build_brand_summary(monthly, catalog: Catalog) -> tuple:
    """Per-brand position at the final month of the horizon."""
    if not monthly:
        return ()
    last = monthly[-1]
    out = []
    for brand in catalog:
        b = last.brand(brand.id)
        out.append(BrandSummary(
            brand                = brand,
            total_signed         = b.signed,
            open_locations       = b.open,
            pending_locations    = b.pending,
            total_franchise_fees = b.total_franchise_fees,
            total_royalties      = b.total_royalties,
            total_ad_fees        = b.total_ad_fees,
            total_system_sales   = b.total_system_sales,
            total_ad_spend       = b.total_ad_spend,
        ))
    return tuple(out)


# ---------------------------------------------------------------------------
# DataFrame views
# ---------------------------------------------------------------------------

_SNAPSHOT_SKIP = ("new_signings_detail", "brands")


def monthly_frame(result: ForecastResult) -> pd.DataFrame:
    cols = [f.name for f in fields(MonthlySnapshot) if f.name not in _SNAPSHOT_SKIP]
    df = pd.DataFrame([{c: getattr(m, c) for c in cols} for m in result.monthly], columns=cols)
    df["period"] = df["month_label"]
    df["reinvestment_share"] = np.where(df["ads_budget"] > 0,
                                        df["reinvestment"] / df["ads_budget"], 0.0)
    df["monthly_franchisor_revenue"] = (df["monthly_franchise_fees"]
                                        + df["monthly_royalties"] + df["monthly_ad_fees"])
    return df


def yearly_frame(result: ForecastResult) -> pd.DataFrame:
    cols = [f.name for f in fields(YearlySummary)]
    df = pd.DataFrame([{c: getattr(y, c) for c in cols} for y in result.yearly], columns=cols)
    df["franchisor_revenue"] = df["franchise_fees"] + df["royalties"] + df["ad_fees"]
    return df


def brand_frame(result: ForecastResult) -> pd.DataFrame:
    rows = []
    for s in result.brands:
        b = s.brand
        rows.append({
            "brand_id":             b.id,
            "name":                 b.name,
            "priority":             b.priority,
            "color":                b.color,
            "cac":                  b.cac,
            "annual_sales":         b.annual_sales,
            "franchise_fee":        b.franchise_fee,
            "weight":               result.catalog.weight(b),
            "total_signed":         s.total_signed,
            "open_locations":       s.open_locations,
            "pending_locations":    s.pending_locations,
            "total_franchise_fees": s.total_franchise_fees,
            "total_royalties":      s.total_royalties,
            "total_ad_fees":        s.total_ad_fees,
            "total_system_sales":   s.total_system_sales,
            "total_ad_spend":       s.total_ad_spend,
        })
    df = pd.DataFrame(rows).sort_values("priority").reset_index(drop=True)
    df["franchisor_revenue"] = df["total_franchise_fees"] + df["total_royalties"] + df["total_ad_fees"]
    df["roi"] = np.where(df["total_ad_spend"] > 0,
                         df["franchisor_revenue"] / df["total_ad_spend"] - 1, 0.0)
    return df


def brand_yearly_frame(result: ForecastResult) -> pd.DataFrame:
    cols = [f.name for f in fields(BrandYear)]
    rows = []
    for brand in result.catalog:
        for y in result.brand_yearly[brand.id]:
            rows.append({"brand_id": brand.id, "name": brand.name,
                         **{c: getattr(y, c) for c in cols}})
    return pd.DataFrame(rows, columns=["brand_id", "name"] + cols)


def brand_monthly_frame(result: ForecastResult) -> pd.DataFrame:
    cols = [f.name for f in fields(BrandMonth) if f.name != "brand_id"]
    names = {b.id: b.name for b in result.catalog}
    rows = []
    for m in result.monthly:
        for b in m.brands:
            rows.append({"month": m.month, "period": m.month_label,
                         "brand_id": b.brand_id, "name": names[b.brand_id],
                         **{c: getattr(b, c) for c in cols}})
    return pd.DataFrame(rows, columns=["month", "period", "brand_id", "name"] + cols)


# ---------------------------------------------------------------------------
# Sensitivity helper
# ---------------------------------------------------------------------------

SENSITIVITY_PARAMS = ("base_ads_budget", "reinvestment_rate")


def run_sensitivity(param: str, values: list,
                    base_ads_budget: float = 10_000.0,
                    reinvestment_rate: float = 0.5,
                    catalog: Catalog | None = None) -> pd.DataFrame:
    """
    Run the forecast once per value in `values` for the given `param`.
    Returns a DataFrame with one row per value and headline totals.
    """
    if param not in SENSITIVITY_PARAMS:
        raise ValueError(f"unknown sensitivity parameter {param!r}; expected one of {SENSITIVITY_PARAMS}")

    rows = []
    for v in values:
        inputs = {"base_ads_budget": base_ads_budget, "reinvestment_rate": reinvestment_rate}
        inputs[param] = v
        r = run_forecast(inputs["base_ads_budget"], inputs["reinvestment_rate"], catalog)
        t = r.totals
        rows.append({
            "value":              v,
            "total_locations":    t.locations,
            "open_locations":     r.monthly[-1].open_locations,
            "franchise_fees":     t.franchise_fees,
            "royalties":          t.royalties,
            "ad_fees":            t.ad_fees,
            "system_sales":       t.system_sales,
            "ad_spend":           t.ad_spend,
            "franchisor_revenue": t.franchisor_revenue,
            "net_return":         t.net_return,
            "roi":                t.roi,
            "final_budget":       r.monthly[-1].ads_budget,
        })
    return pd.DataFrame(rows)
