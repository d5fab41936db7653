"""Pytest configuration and fixtures for forecast tests."""

import pytest

from catalog import Brand, Catalog, default_catalog
from engine import run_forecast


@pytest.fixture(scope="session")
def catalog():
    return default_catalog()


@pytest.fixture(scope="session")
def forecast(catalog):
    """Default dashboard scenario: $10K base budget, 0.5% reinvestment."""
    return run_forecast(10_000, 0.5, catalog)


@pytest.fixture
def make_brand():
    def _make(**overrides):
        fields = dict(id="test", name="Test Brand", cac=1_000.0, annual_sales=1_200_000.0,
                      franchise_fee=40_000.0, priority=1)
        fields.update(overrides)
        return Brand(**fields)
    return _make


@pytest.fixture
def single_brand_catalog(make_brand):
    """One brand receiving the whole budget."""
    def _make(**overrides):
        return Catalog((make_brand(**overrides),), {1: 1.0})
    return _make
