"""
catalog.py - Brand catalog and fixed constants for the franchise growth forecast
"""
from dataclasses import dataclass, field
from math import isclose
from types import MappingProxyType
from typing import Mapping

from log_config import get_logger

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Fixed constants
# ---------------------------------------------------------------------------

HORIZON_MONTHS          = 60
MAX_LOCATIONS_PER_BRAND = 100
MONTHS_TO_OPEN          = 10
LOCATION_LIFESPAN_YEARS = 10
LOCATION_LIFESPAN       = LOCATION_LIFESPAN_YEARS * 12
ROYALTY_RATE            = 0.06
AD_FEE_RATE             = 0.02

# Budget share by priority rank. Sums to 1.0, never renormalised.
PRIORITY_WEIGHTS = MappingProxyType({
    1: 0.22, 2: 0.18, 3: 0.15, 4: 0.12, 5: 0.10,
    6: 0.08, 7: 0.06, 8: 0.05, 9: 0.04,
})


class CatalogError(ValueError):
    """Raised when a brand catalog cannot drive a forecast."""


@dataclass(frozen=True)
class Brand:
    id: str
    name: str
    cac: float               # marketing $ per signed location
    annual_sales: float      # projected sales per open location
    franchise_fee: float     # one-time, credited at signing
    priority: int            # 1 = highest share of budget
    color: str = "#4F8BF9"


@dataclass(frozen=True)
class Catalog:
    """
    Ordered brand table plus the priority -> weight table used to split budget.

    Construction validates everything the engine relies on, so a bad catalog
    fails here instead of part-way through a run.
    """
    brands: tuple
    weights: Mapping[int, float] = field(default_factory=lambda: PRIORITY_WEIGHTS)

    def __post_init__(self):
        object.__setattr__(self, "brands", tuple(self.brands))
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        validate_catalog(self.brands, self.weights)

    def __iter__(self):
        return iter(self.brands)

    def __len__(self):
        return len(self.brands)

    def weight(self, brand: Brand) -> float:
        return self.weights[brand.priority]

    def get(self, brand_id: str) -> Brand:
        for b in self.brands:
            if b.id == brand_id:
                return b
        raise KeyError(brand_id)

    @property
    def top_brand(self) -> Brand:
        return min(self.brands, key=lambda b: b.priority)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_catalog(brands, weights) -> None:
    """Raise CatalogError if the brands and weights cannot be simulated."""
    problems = []

    ids = [b.id for b in brands]
    if len(set(ids)) != len(ids):
        problems.append(f"duplicate brand ids: {sorted(i for i in set(ids) if ids.count(i) > 1)}")

    prios = [b.priority for b in brands]
    if len(set(prios)) != len(prios):
        problems.append(f"duplicate priorities: {sorted(p for p in set(prios) if prios.count(p) > 1)}")

    for b in brands:
        if b.priority not in weights:
            problems.append(f"no budget weight for priority {b.priority} ({b.id})")
        if not b.cac > 0:
            problems.append(f"cac must be positive ({b.id}: {b.cac})")

    unused = sorted(set(weights) - set(prios))
    if unused:
        problems.append(f"weights for priorities with no brand: {unused}")

    total = sum(weights.values())
    if not isclose(total, 1.0, abs_tol=1e-9):
        problems.append(f"weights sum to {total}, expected 1.0")

    if problems:
        log.error("catalog_invalid", problems=problems)
        raise CatalogError("; ".join(problems))


# ---------------------------------------------------------------------------
# Default catalog
# ---------------------------------------------------------------------------

BRANDS = (
    Brand("tcb",          "The Captain's Boil", 2551, 1_700_000, 50_000, 1, "#E63946"),
    Brand("midori",       "Midori",             2532, 1_200_000, 50_000, 2, "#2A9D8F"),
    Brand("hiyogurt",     "Hi Yogurt",          2491,   600_000, 30_000, 3, "#F4A261"),
    Brand("altitude",     "Altitude Golf",      4000, 1_300_000, 30_000, 4, "#264653"),
    Brand("noodlebar",    "Noodle Bar",         2532, 1_500_000, 30_000, 5, "#E9C46A"),
    Brand("dearsaigon",   "Dear Saigon",        2500, 1_000_000, 50_000, 6, "#F77F00"),
    Brand("rumble",       "Rumble Boxing",      6000, 1_500_000, 75_000, 7, "#D62828"),
    Brand("bakebe",       "Bakebe",             6000,   600_000, 30_000, 8, "#FCBF49"),
    Brand("glasskitchen", "Glass Kitchen",      6000, 1_500_000, 50_000, 9, "#003049"),
)


def default_catalog() -> Catalog:
    return Catalog(BRANDS, PRIORITY_WEIGHTS)
