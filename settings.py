"""
settings.py - Dashboard defaults and accepted input ranges
"""
import math
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Values the dashboard starts from and the ranges it will accept.

    The engine trusts whatever it is handed; every range check lives here.
    """
    model_config = SettingsConfigDict(
        env_prefix="FRANCHISE_FORECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Monthly base ads budget ($)
    base_ads_budget: float = 10_000.0
    budget_min:      float = 8_000.0
    budget_max:      float = 12_000.0
    budget_step:     float = 100.0

    # Reinvestment, % of projected annual sales per signing
    reinvestment_rate: float = 0.5
    rate_min:          float = 0.1
    rate_max:          float = 1.0
    rate_step:         float = 0.01

    log_level: str = "INFO"
    log_json:  bool = False

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}")
        return v

    # ── Boundary-layer input rules ──────────────────────────────────────────
    def accept_budget(self, raw, current: float) -> float:
        return _accept(raw, self.budget_min, self.budget_max, current)

    def accept_rate(self, raw, current: float) -> float:
        return _accept(raw, self.rate_min, self.rate_max, current)

    def clamp_budget(self, value: float) -> float:
        return min(max(float(value), self.budget_min), self.budget_max)

    def clamp_rate(self, value: float) -> float:
        return min(max(float(value), self.rate_min), self.rate_max)


def _accept(raw, lo: float, hi: float, current: float) -> float:
    """Typed entry wins only if it parses and sits inside [lo, hi]; else keep current."""
    try:
        v = float(str(raw).strip())
    except ValueError:
        return current
    if math.isnan(v) or not lo <= v <= hi:
        return current
    return v


@lru_cache()
def get_settings() -> Settings:
    return Settings()
