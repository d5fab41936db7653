"""Tests for the brand catalog and its validation."""

import pytest

from catalog import (
    BRANDS, PRIORITY_WEIGHTS, Brand, Catalog, CatalogError, default_catalog,
)


class TestDefaultCatalog:
    """The shipped nine-brand table."""

    def test_nine_brands_with_unique_priorities(self, catalog):
        assert len(catalog) == 9
        assert sorted(b.priority for b in catalog) == list(range(1, 10))

    def test_weights_sum_to_one(self):
        assert sum(PRIORITY_WEIGHTS.values()) == pytest.approx(1.0)

    def test_weight_lookup_by_priority(self, catalog):
        assert catalog.weight(catalog.get("tcb")) == 0.22
        assert catalog.weight(catalog.get("glasskitchen")) == 0.04

    def test_top_brand_is_priority_one(self, catalog):
        top = catalog.top_brand
        assert top.id == "tcb"
        assert top.cac == 2551
        assert top.franchise_fee == 50_000

    def test_unknown_brand_raises_key_error(self, catalog):
        with pytest.raises(KeyError):
            catalog.get("nope")

    def test_weights_are_read_only(self, catalog):
        with pytest.raises(TypeError):
            catalog.weights[1] = 0.5

    def test_default_catalog_is_equal_each_call(self):
        assert default_catalog().brands == default_catalog().brands == BRANDS


class TestCatalogValidation:
    """Bad catalogs fail at construction, never mid-run."""

    def test_missing_priority_weight(self, make_brand):
        with pytest.raises(CatalogError, match="no budget weight for priority 2"):
            Catalog((make_brand(priority=2),), {1: 1.0})

    def test_zero_cac_rejected(self, make_brand):
        with pytest.raises(CatalogError, match="cac must be positive"):
            Catalog((make_brand(cac=0),), {1: 1.0})

    def test_negative_cac_rejected(self, make_brand):
        with pytest.raises(CatalogError, match="cac must be positive"):
            Catalog((make_brand(cac=-10),), {1: 1.0})

    def test_duplicate_priorities_rejected(self, make_brand):
        brands = (make_brand(id="a"), make_brand(id="b"))
        with pytest.raises(CatalogError, match="duplicate priorities"):
            Catalog(brands, {1: 1.0})

    def test_duplicate_ids_rejected(self, make_brand):
        brands = (make_brand(priority=1), make_brand(priority=2))
        with pytest.raises(CatalogError, match="duplicate brand ids"):
            Catalog(brands, {1: 0.5, 2: 0.5})

    def test_omitted_priority_level_rejected(self):
        # Drop the priority-9 brand but keep its weight
        with pytest.raises(CatalogError, match="no brand"):
            Catalog(BRANDS[:-1], PRIORITY_WEIGHTS)

    def test_weights_must_sum_to_one(self, make_brand):
        with pytest.raises(CatalogError, match="expected 1.0"):
            Catalog((make_brand(),), {1: 0.9})

    def test_all_problems_reported_together(self, make_brand):
        with pytest.raises(CatalogError) as exc:
            Catalog((make_brand(cac=0, priority=3),), {1: 1.0})
        msg = str(exc.value)
        assert "cac must be positive" in msg
        assert "no budget weight" in msg

    def test_catalog_error_is_value_error(self):
        assert issubclass(CatalogError, ValueError)

    def test_brand_is_immutable(self, make_brand):
        b = make_brand()
        with pytest.raises(AttributeError):
            b.cac = 1
        assert isinstance(b, Brand)
