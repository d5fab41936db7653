"""Tests for yearly / per-brand rollups, DataFrame views and sensitivity."""

import pytest

from engine import (
    brand_frame, brand_monthly_frame, brand_yearly_frame, monthly_frame,
    run_sensitivity, yearly_frame,
)


def _window(forecast, year):
    return forecast.monthly[(year - 1) * 12: year * 12]


class TestYearlySummary:

    def test_five_years(self, forecast):
        assert [y.year for y in forecast.yearly] == [1, 2, 3, 4, 5]

    def test_flows_equal_sum_of_months_exactly(self, forecast):
        for y in forecast.yearly:
            months = _window(forecast, y.year)
            assert y.franchise_fees == sum(m.monthly_franchise_fees for m in months)
            assert y.royalties == sum(m.monthly_royalties for m in months)
            assert y.ad_fees == sum(m.monthly_ad_fees for m in months)
            assert y.system_sales == sum(m.monthly_system_sales for m in months)
            assert y.ad_spend == sum(m.ads_budget for m in months)
            assert y.reinvestment == sum(m.reinvestment for m in months)

    def test_stock_values_taken_at_window_end(self, forecast):
        for y in forecast.yearly:
            last = _window(forecast, y.year)[-1]
            assert y.total_locations == last.cumulative_signings
            assert y.open_locations == last.open_locations

    def test_new_locations_add_up(self, forecast):
        assert sum(y.new_locations for y in forecast.yearly) == forecast.totals.locations
        assert forecast.yearly[0].new_locations == forecast.yearly[0].total_locations

    def test_yearly_flows_reconcile_with_totals(self, forecast):
        t = forecast.totals
        assert sum(y.franchise_fees for y in forecast.yearly) == pytest.approx(t.franchise_fees)
        assert sum(y.royalties for y in forecast.yearly) == pytest.approx(t.royalties)
        assert sum(y.ad_spend for y in forecast.yearly) == pytest.approx(t.ad_spend)
        assert sum(y.system_sales for y in forecast.yearly) == pytest.approx(t.system_sales)


class TestBrandRollups:

    def test_breakdown_for_every_brand(self, forecast, catalog):
        assert set(forecast.brand_yearly) == {b.id for b in catalog}
        assert all(len(rows) == 5 for rows in forecast.brand_yearly.values())

    def test_new_signed_is_difference_of_year_ends(self, forecast):
        for brand_id, rows in forecast.brand_yearly.items():
            prev = 0
            for row in rows:
                end = _window(forecast, row.year)[-1].brand(brand_id).signed
                assert row.total_signed == end
                assert row.new_signed == end - prev
                prev = end

    def test_fees_follow_new_signings(self, forecast, catalog):
        for brand in catalog:
            for row in forecast.brand_yearly[brand.id]:
                assert row.franchise_fees == row.new_signed * brand.franchise_fee

    def test_brand_flows_equal_sum_of_months(self, forecast):
        for brand_id, rows in forecast.brand_yearly.items():
            for row in rows:
                bm = [m.brand(brand_id) for m in _window(forecast, row.year)]
                assert row.system_sales == sum(b.monthly_revenue for b in bm)
                assert row.royalties == sum(b.monthly_royalties for b in bm)
                assert row.ad_fees == sum(b.monthly_ad_fees for b in bm)
                assert row.ad_spend == sum(b.monthly_ad_spend for b in bm)

    def test_final_summary_at_month_sixty(self, forecast):
        last = forecast.monthly[-1]
        for s in forecast.brands:
            b = last.brand(s.brand.id)
            assert s.total_signed == b.signed
            assert s.open_locations == b.open
            assert s.pending_locations == b.pending
            assert s.total_franchise_fees == b.total_franchise_fees
            assert s.total_system_sales == b.total_system_sales
            assert s.total_ad_spend == b.total_ad_spend

    def test_brands_add_up_to_network(self, forecast):
        t = forecast.totals
        assert sum(s.total_signed for s in forecast.brands) == t.locations
        assert sum(s.total_franchise_fees for s in forecast.brands) == pytest.approx(t.franchise_fees)
        assert sum(s.total_system_sales for s in forecast.brands) == pytest.approx(t.system_sales)
        assert sum(s.total_ad_spend for s in forecast.brands) == pytest.approx(t.ad_spend)

    def test_higher_priority_signs_at_least_as_many(self, forecast):
        signed = {s.brand.id: s.total_signed for s in forecast.brands}
        assert signed["tcb"] >= signed["glasskitchen"]


class TestRoi:

    def test_roi_identities(self, forecast):
        t = forecast.totals
        assert t.franchisor_revenue == t.franchise_fees + t.royalties + t.ad_fees
        assert t.net_return == pytest.approx(t.franchisor_revenue - t.ad_spend)
        assert t.roi == pytest.approx(t.franchisor_revenue / t.ad_spend - 1)

    def test_roi_zero_without_spend(self):
        from engine import CumulativeTotals
        assert CumulativeTotals().roi == 0.0


class TestFrames:

    def test_monthly_frame(self, forecast):
        df = monthly_frame(forecast)
        assert len(df) == 60
        assert df.loc[0, "period"] == "Y1M1"
        assert df.loc[0, "reinvestment_share"] == 0.0
        assert "brands" not in df.columns
        assert df["cumulative_signings"].iloc[-1] == forecast.totals.locations

    def test_yearly_frame(self, forecast):
        df = yearly_frame(forecast)
        assert list(df["year"]) == [1, 2, 3, 4, 5]
        assert df["franchisor_revenue"].sum() == pytest.approx(forecast.totals.franchisor_revenue)

    def test_brand_frame_sorted_by_priority(self, forecast):
        df = brand_frame(forecast)
        assert list(df["priority"]) == list(range(1, 10))
        assert df.loc[0, "brand_id"] == "tcb"
        assert df["weight"].sum() == pytest.approx(1.0)
        assert (df["total_ad_spend"] > 0).all()

    def test_long_frames(self, forecast):
        assert len(brand_yearly_frame(forecast)) == 9 * 5
        bm = brand_monthly_frame(forecast)
        assert len(bm) == 9 * 60
        tcb = bm[bm["brand_id"] == "tcb"]
        assert tcb["signed"].is_monotonic_increasing


class TestSensitivity:

    def test_budget_sweep(self):
        df = run_sensitivity("base_ads_budget", [8_000, 10_000, 12_000], reinvestment_rate=0.5)
        assert list(df["value"]) == [8_000, 10_000, 12_000]
        assert df["ad_spend"].is_monotonic_increasing

    def test_rate_sweep_matches_direct_run(self):
        from engine import run_forecast
        df = run_sensitivity("reinvestment_rate", [0.1, 1.0], base_ads_budget=10_000)
        direct = run_forecast(10_000, 1.0)
        assert df.loc[1, "total_locations"] == direct.totals.locations
        assert df.loc[1, "final_budget"] == direct.monthly[-1].ads_budget

    def test_unknown_param(self):
        with pytest.raises(ValueError, match="unknown sensitivity parameter"):
            run_sensitivity("capacity", [1, 2])
