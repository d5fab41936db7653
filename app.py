"""
Franchise Growth Forecast, 5-year multi-brand dashboard
"""
from __future__ import annotations
import hashlib, json
from datetime import datetime

import pandas as pd
import plotly.graph_objects as go
import plotly.express as px
import streamlit as st

from catalog import HORIZON_MONTHS, MONTHS_TO_OPEN, ROYALTY_RATE, AD_FEE_RATE, default_catalog
from engine import (
    run_forecast, run_sensitivity, reinvestment_preview,
    monthly_frame, yearly_frame, brand_frame, brand_yearly_frame,
)
from export import build_excel
from formatting import fmt_dollar, fmt_count, fmt_rate, fmt_pct
from log_config import configure_logging, get_logger
from settings import get_settings

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
log = get_logger(__name__)

st.set_page_config(
    page_title="Franchise Growth Forecast",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── CSS ──────────────────────────────────────────────────────────────────────
st.markdown("""
<style>
#MainMenu, footer { visibility: hidden; }
.block-container { padding-top: 1.25rem; padding-bottom: 0.75rem; }

.kpi-card {
    background: #161B2E; border: 1px solid #283154; border-radius: 8px;
    padding: 12px 16px; text-align: left; height: 100%;
}
.kpi-label { color: #94A3B8; font-size: 11px; text-transform: uppercase; letter-spacing: 0.8px; }
.kpi-value { color: #F8FAFC; font-size: 24px; font-weight: 700; margin-top: 2px; }
.kpi-sub   { color: #818CF8; font-size: 11px; margin-top: 2px; }

.stale-box, .info-box { padding: 8px 12px; border-radius: 6px; font-size: 13px; margin-bottom: 8px; }
.stale-box { background: #2A2110; border-left: 4px solid #F59E0B; }
.info-box  { background: #172036; border-left: 4px solid #6366F1; }

.sec-hdr {
    color: #94A3B8; font-size: 11px; font-weight: 600; text-transform: uppercase;
    letter-spacing: 1.2px; margin: 10px 0 4px 0;
    border-bottom: 1px solid #283154;
}

[data-testid="stSidebar"] { min-width: 300px !important; max-width: 340px !important; }
</style>
""", unsafe_allow_html=True)

PC  = ["#3B82F6", "#22C55E", "#8B5CF6", "#F59E0B", "#EC4899", "#06B6D4"]
TPL = "plotly_dark"

CATALOG = default_catalog()


# ── Session state ─────────────────────────────────────────────────────────────
if "base_ads_budget"   not in st.session_state: st.session_state.base_ads_budget   = settings.base_ads_budget
if "reinvestment_rate" not in st.session_state: st.session_state.reinvestment_rate = settings.reinvestment_rate
if "results"           not in st.session_state: st.session_state.results           = None
if "run_hash"          not in st.session_state: st.session_state.run_hash          = None
if "run_ts"            not in st.session_state: st.session_state.run_ts            = None

# Widget keys; the on_change callbacks below keep each slider and text box in step
if "budget_slider" not in st.session_state:
    st.session_state.budget_slider = settings.clamp_budget(st.session_state.base_ads_budget)
if "budget_exact"  not in st.session_state:
    st.session_state.budget_exact  = f"{st.session_state.base_ads_budget:.0f}"
if "rate_slider"   not in st.session_state:
    st.session_state.rate_slider   = settings.clamp_rate(st.session_state.reinvestment_rate)
if "rate_exact"    not in st.session_state:
    st.session_state.rate_exact    = f"{st.session_state.reinvestment_rate:.2f}"


# ── Input callbacks ───────────────────────────────────────────────────────────
def _set_budget(value):
    st.session_state.base_ads_budget = value
    st.session_state.budget_slider   = settings.clamp_budget(value)
    st.session_state.budget_exact    = f"{value:.0f}"

def _set_rate(value):
    st.session_state.reinvestment_rate = value
    st.session_state.rate_slider       = settings.clamp_rate(value)
    st.session_state.rate_exact        = f"{value:.2f}"

def _on_budget_slider():
    _set_budget(st.session_state.budget_slider)

def _on_budget_exact():
    # Out-of-range or unparseable text snaps back to the current budget
    _set_budget(settings.accept_budget(st.session_state.budget_exact,
                                       st.session_state.base_ads_budget))

def _on_rate_slider():
    _set_rate(st.session_state.rate_slider)

def _on_rate_exact():
    _set_rate(settings.accept_rate(st.session_state.rate_exact,
                                   st.session_state.reinvestment_rate))


# ── Helpers ───────────────────────────────────────────────────────────────────
def _hash_inputs():
    d = json.dumps({
        "b": st.session_state.base_ads_budget,
        "r": st.session_state.reinvestment_rate,
    }, sort_keys=True)
    return hashlib.md5(d.encode()).hexdigest()

def kpi(col, label, value, sub=None):
    sub_h = f'<div class="kpi-sub">{sub}</div>' if sub else ""
    col.markdown(
        f'<div class="kpi-card"><div class="kpi-label">{label}</div>'
        f'<div class="kpi-value">{value}</div>{sub_h}</div>',
        unsafe_allow_html=True
    )

def section(label):
    st.markdown(f'<div class="sec-hdr">{label}</div>', unsafe_allow_html=True)

def run_and_store():
    with st.spinner("Calculating…"):
        try:
            st.session_state.results  = run_forecast(st.session_state.base_ads_budget,
                                                     st.session_state.reinvestment_rate, CATALOG)
            st.session_state.run_hash = _hash_inputs()
            st.session_state.run_ts   = datetime.now().strftime("%I:%M %p")
        except Exception as e:
            log.exception("forecast_failed")
            st.error(f"Calculation failed: {e}")
            st.session_state.results = None

def results_ready(): return st.session_state.results is not None
def is_stale():      return results_ready() and st.session_state.run_hash != _hash_inputs()

def _select(df, cols):
    return df[[c for c in cols if c in df.columns]].reset_index(drop=True)

def _line(df, x, ys, names, title, pct_y=False):
    fig = go.Figure()
    for y, nm, c in zip(ys, names, PC):
        if y in df.columns:
            fig.add_trace(go.Scatter(x=df[x], y=df[y], name=nm, mode="lines",
                                     line=dict(color=c, width=2)))
    fig.update_layout(template=TPL, title=title, height=300,
                      margin=dict(l=10, r=10, t=36, b=10),
                      legend=dict(orientation="h", y=-0.25),
                      yaxis=dict(tickformat=".0%" if pct_y else "$,.0f"))
    return fig

def _area(df, x, ys, names, title, stacked=False, money=True):
    fig = go.Figure()
    for y, nm, c in zip(ys, names, PC):
        fig.add_trace(go.Scatter(x=df[x], y=df[y], name=nm, mode="lines",
                                 stackgroup="one" if stacked else None,
                                 fill=None if stacked else "tozeroy",
                                 line=dict(color=c, width=2)))
    fig.update_layout(template=TPL, title=title, height=320,
                      margin=dict(l=10, r=10, t=36, b=10),
                      legend=dict(orientation="h", y=-0.25),
                      yaxis=dict(tickformat="$,.0f" if money else ",.0f"))
    return fig

def _fmt_table(df, dollar_cols=None, pct_cols=None, height=380):
    fmt = {}
    for c in (dollar_cols or []):
        if c in df.columns: fmt[c] = "${:,.0f}"
    for c in (pct_cols or []):
        if c in df.columns: fmt[c] = "{:.1%}"
    st.dataframe(df.style.format(fmt), use_container_width=True, height=height)


# ── Auto-run on first load ────────────────────────────────────────────────────
if st.session_state.results is None and st.session_state.run_hash is None:
    run_and_store()


# ════════════════════════════════════════════════════════════════════════════
# SIDEBAR - Model parameters
# ════════════════════════════════════════════════════════════════════════════
with st.sidebar:
    btn_lbl = "▶  Calculate" + (f"  ·  {st.session_state.run_ts}" if st.session_state.run_ts else "")
    if st.button(btn_lbl, type="primary", use_container_width=True):
        run_and_store()
        st.rerun()

    if is_stale():
        st.markdown(
            '<div class="stale-box">Inputs changed. Click <b>Calculate</b> to update.</div>',
            unsafe_allow_html=True
        )

    st.divider()

    # ── Base budget ───────────────────────────────────────────────────────────
    section("Monthly Base Ads Budget")
    st.slider(
        "Base budget ($/month)",
        min_value=settings.budget_min, max_value=settings.budget_max,
        step=settings.budget_step, format="$%.0f",
        key="budget_slider", on_change=_on_budget_slider,
        help="Fixed marketing budget spent every month before any reinvestment bonus."
    )
    st.text_input(
        "Exact amount", key="budget_exact", on_change=_on_budget_exact,
        help=f"Type any value between ${settings.budget_min:,.0f} and ${settings.budget_max:,.0f}. "
             "Values outside the range are ignored."
    )

    st.divider()

    # ── Reinvestment rate ─────────────────────────────────────────────────────
    section("Reinvestment Rate")
    st.slider(
        "% of projected annual sales per signing",
        min_value=settings.rate_min, max_value=settings.rate_max,
        step=settings.rate_step, format="%.2f%%",
        key="rate_slider", on_change=_on_rate_slider,
        help="Each signing adds this share of the location's projected annual sales "
             "to the NEXT month's ads budget."
    )
    st.text_input(
        "Exact rate", key="rate_exact", on_change=_on_rate_exact,
        help=f"Type any value between {settings.rate_min} and {settings.rate_max}."
    )

    st.divider()

    # ── Active parameters ─────────────────────────────────────────────────────
    section("Active Parameters")
    _top = CATALOG.top_brand
    st.caption(
        f"Base budget **${st.session_state.base_ads_budget:,.0f}** · "
        f"Reinvestment **{fmt_rate(st.session_state.reinvestment_rate)}**"
    )
    st.caption(
        f"One {_top.name} signing adds "
        f"**+{fmt_dollar(reinvestment_preview(st.session_state.reinvestment_rate, CATALOG))}** "
        f"to next month's budget"
    )
    if results_ready():
        st.caption(f"Month {HORIZON_MONTHS} budget: "
                   f"**{fmt_dollar(st.session_state.results.monthly[-1].ads_budget)}**")


# ════════════════════════════════════════════════════════════════════════════
# MAIN AREA - Header + KPIs
# ════════════════════════════════════════════════════════════════════════════
st.markdown("## Franchise Growth Forecast")
st.caption(f"5-year dynamic projection · {len(CATALOG)} brands · {HORIZON_MONTHS}-month horizon")

if is_stale():
    st.markdown(
        '<div class="stale-box">You have changed inputs since the last calculation. '
        'Click <b>Calculate</b> in the sidebar to update results.</div>',
        unsafe_allow_html=True
    )

if not results_ready():
    st.markdown('<div class="info-box">Click <b>Calculate</b> in the sidebar to generate results.</div>', unsafe_allow_html=True)
    st.stop()

res    = st.session_state.results
totals = res.totals
mo     = monthly_frame(res)
yr     = yearly_frame(res)
br     = brand_frame(res)
by     = brand_yearly_frame(res)

k1, k2, k3, k4, k5 = st.columns(5)
kpi(k1, "Total Locations",   fmt_count(totals.locations),        "signed")
kpi(k2, "Franchise Fees",    fmt_dollar(totals.franchise_fees),  "one-time")
kpi(k3, "Total Royalties",   fmt_dollar(totals.royalties),       f"{ROYALTY_RATE:.0%} of sales")
kpi(k4, "Ad Fees Collected", fmt_dollar(totals.ad_fees),         f"{AD_FEE_RATE:.0%} of sales")
kpi(k5, "System Sales",      fmt_dollar(totals.system_sales),    "all open locations")
st.divider()


tab_over, tab_mo, tab_br, tab_rev, tab_sens = st.tabs([
    "Overview", "Monthly", "Brands", "Revenue", "Sensitivity"
])


# ════════════════════════════════════════════════════════════════════════════
# OVERVIEW
# ════════════════════════════════════════════════════════════════════════════
with tab_over:
    section("5-Year Summary by Year")
    ytab = yr[["year", "new_locations", "total_locations", "open_locations",
               "franchise_fees", "system_sales", "royalties", "ad_fees", "ad_spend"]].copy()
    ytab["year"] = ytab["year"].map(lambda y: f"Year {y}")
    ytab.loc[len(ytab)] = ["TOTAL", totals.locations, totals.locations,
                           int(res.monthly[-1].open_locations),
                           totals.franchise_fees, totals.system_sales,
                           totals.royalties, totals.ad_fees, totals.ad_spend]
    _fmt_table(ytab, dollar_cols=["franchise_fees", "system_sales", "royalties", "ad_fees", "ad_spend"],
               height=250)
    st.caption(
        f"Timing: locations open {MONTHS_TO_OPEN} months after signing. "
        "Reinvestment from a signing lands in the following month's budget."
    )

    section("5-Year Breakdown by Brand")
    for _, b in br.iterrows():
        label = (f"{b['name']} · {int(b['total_signed'])} signed · "
                 f"{int(b['open_locations'])} open · {fmt_dollar(b['total_franchise_fees'])} fees")
        with st.expander(label):
            _fmt_table(_select(by[by["brand_id"] == b["brand_id"]],
                               ["year", "new_signed", "total_signed", "open_locations",
                                "franchise_fees", "system_sales", "royalties", "ad_fees", "ad_spend"]),
                       dollar_cols=["franchise_fees", "system_sales", "royalties", "ad_fees", "ad_spend"],
                       height=220)

    c1, c2 = st.columns(2)
    with c1:
        section(f"Signed vs Open Locations ({MONTHS_TO_OPEN}-month lag)")
        st.plotly_chart(_area(mo, "period", ["cumulative_signings", "open_locations"],
                              ["Total Signed", "Open Locations"], "", money=False),
                        use_container_width=True)
    with c2:
        section("Monthly Ads Budget Growth")
        fig_b = go.Figure()
        fig_b.add_trace(go.Bar(x=mo["period"], y=mo["base_budget"], name="Base Budget", marker_color=PC[0]))
        fig_b.add_trace(go.Bar(x=mo["period"], y=mo["reinvestment"], name="Reinvestment (from signings)",
                               marker_color=PC[2]))
        fig_b.add_trace(go.Scatter(x=mo["period"], y=mo["ads_budget"], name="Total Budget",
                                   mode="lines", line=dict(color=PC[1], width=2)))
        fig_b.update_layout(template=TPL, barmode="stack", height=320,
                            margin=dict(l=10, r=10, t=10, b=10),
                            legend=dict(orientation="h", y=-0.25), yaxis=dict(tickformat="$,.0f"))
        st.plotly_chart(fig_b, use_container_width=True)

    st.divider()

    section("Export to Excel")
    if st.button("Build Excel Report"):
        with st.spinner("Building…"):
            xlsx = build_excel(res)
        st.download_button(
            "Download Excel", data=xlsx,
            file_name="franchise_growth_forecast.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )


# ════════════════════════════════════════════════════════════════════════════
# MONTHLY
# ════════════════════════════════════════════════════════════════════════════
with tab_mo:
    section("Monthly Revenue Streams")
    st.plotly_chart(_area(mo, "period", ["monthly_royalties", "monthly_ad_fees"],
                          [f"Royalties ({ROYALTY_RATE:.0%})", f"Ad Fees ({AD_FEE_RATE:.0%})"],
                          "", stacked=True),
                    use_container_width=True)

    section("Monthly Data (every 6th month)")
    sample = mo[(mo.index % 6 == 0) | (mo["month"] == mo["month"].max())]
    _fmt_table(_select(sample, ["period", "ads_budget", "reinvestment", "new_signings",
                                "cumulative_signings", "open_locations", "monthly_franchise_fees",
                                "monthly_royalties", "monthly_ad_fees", "monthly_system_sales"]),
               dollar_cols=["ads_budget", "reinvestment", "monthly_franchise_fees",
                            "monthly_royalties", "monthly_ad_fees", "monthly_system_sales"])
    st.caption(f"Open locations start generating sales {MONTHS_TO_OPEN} months after signing.")

    with st.expander("All months"):
        _fmt_table(mo.drop(columns=["month_label"]),
                   dollar_cols=[c for c in mo.columns if c.startswith(("monthly_", "cumulative_"))
                                and c != "cumulative_signings"]
                               + ["ads_budget", "base_budget", "reinvestment"],
                   pct_cols=["reinvestment_share"], height=500)


# ════════════════════════════════════════════════════════════════════════════
# BRANDS
# ════════════════════════════════════════════════════════════════════════════
with tab_br:
    c1, c2 = st.columns(2)
    with c1:
        section(f"Locations by Brand (End of Y{len(res.yearly)})")
        fig_l = px.bar(br, x="total_signed", y="name", orientation="h", template=TPL,
                       color="name", color_discrete_sequence=br["color"].tolist())
        fig_l.update_layout(height=350, showlegend=False, margin=dict(l=10, r=10, t=10, b=10),
                            yaxis=dict(autorange="reversed", title=None),
                            xaxis=dict(title="Signed Locations"))
        st.plotly_chart(fig_l, use_container_width=True)
    with c2:
        section("Franchise Fees by Brand")
        paying = br[br["total_franchise_fees"] > 0]
        fig_f = px.pie(paying, values="total_franchise_fees", names="name", template=TPL,
                       color="name", color_discrete_sequence=paying["color"].tolist())
        fig_f.update_layout(height=350, margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig_f, use_container_width=True)

    section("Brand Performance Summary")
    _fmt_table(_select(br, ["name", "priority", "weight", "cac", "total_signed", "open_locations",
                            "pending_locations", "total_franchise_fees", "total_royalties",
                            "total_system_sales", "total_ad_spend", "roi"]),
               dollar_cols=["cac", "total_franchise_fees", "total_royalties",
                            "total_system_sales", "total_ad_spend"],
               pct_cols=["weight", "roi"], height=380)


# ════════════════════════════════════════════════════════════════════════════
# REVENUE
# ════════════════════════════════════════════════════════════════════════════
with tab_rev:
    section("Cumulative Revenue Streams")
    st.plotly_chart(_line(mo, "period",
                          ["cumulative_franchise_fees", "cumulative_royalties", "cumulative_ad_fees"],
                          ["Franchise Fees", "Royalties", "Ad Fees"], ""),
                    use_container_width=True)

    section("ROI Analysis")
    r1, r2, r3, r4 = st.columns(4)
    kpi(r1, "Franchisor Revenue", fmt_dollar(totals.franchisor_revenue), "fees + royalties + ad fees")
    kpi(r2, "Total Ad Spend",     fmt_dollar(totals.ad_spend),           "base + reinvestment")
    kpi(r3, "Net Return",         fmt_dollar(totals.net_return),         "revenue − ad spend")
    kpi(r4, "ROI",                fmt_pct(totals.roi),                   "on ad spend")

    section("System-Wide Sales Growth")
    st.plotly_chart(_area(mo, "period", ["monthly_system_sales"], ["Monthly Sales"], ""),
                    use_container_width=True)


# ════════════════════════════════════════════════════════════════════════════
# SENSITIVITY
# ════════════════════════════════════════════════════════════════════════════
with tab_sens:
    section("Base Budget Sweep")
    st.caption("Holds the current reinvestment rate and varies the base budget across its range.")
    _b_vals = [settings.budget_min + i * (settings.budget_max - settings.budget_min) / 8 for i in range(9)]
    sens_b = run_sensitivity("base_ads_budget", _b_vals,
                             st.session_state.base_ads_budget, st.session_state.reinvestment_rate, CATALOG)
    _fmt_table(sens_b, dollar_cols=["value", "franchise_fees", "royalties", "ad_fees", "system_sales",
                                    "ad_spend", "franchisor_revenue", "net_return", "final_budget"],
               pct_cols=["roi"], height=360)

    section("Reinvestment Rate Sweep")
    st.caption("Holds the current base budget and varies the reinvestment rate across its range.")
    _r_vals = [round(settings.rate_min + i * (settings.rate_max - settings.rate_min) / 9, 4) for i in range(10)]
    sens_r = run_sensitivity("reinvestment_rate", _r_vals,
                             st.session_state.base_ads_budget, st.session_state.reinvestment_rate, CATALOG)
    _fmt_table(sens_r, dollar_cols=["franchise_fees", "royalties", "ad_fees", "system_sales",
                                    "ad_spend", "franchisor_revenue", "net_return", "final_budget"],
               pct_cols=["roi"], height=380)

    st.plotly_chart(_line(sens_r, "value", ["franchisor_revenue", "ad_spend"],
                          ["Franchisor Revenue", "Ad Spend"], "Revenue vs Spend by Reinvestment Rate"),
                    use_container_width=True)

    if st.button("Build Excel Report with Sensitivity"):
        with st.spinner("Building…"):
            xlsx = build_excel(res, {"Sens - Base Budget": sens_b, "Sens - Reinvestment": sens_r})
        st.download_button(
            "Download Excel", data=xlsx,
            file_name="franchise_growth_forecast_sensitivity.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
