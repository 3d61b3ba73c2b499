"""
Plain data passed between the data feed, the fitter and the pricers.

Everything here is a frozen dataclass: observations are immutable once
fetched, and pricing requests are built per valuation call.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from . import config


class OptionKind(str, Enum):
    CALL = "call"
    PUT = "put"

    @classmethod
    def parse(cls, value) -> "OptionKind":
        """Accept an OptionKind or one of 'c', 'call', 'p', 'put' (any case)."""
        if isinstance(value, cls):
            return value
        key = str(value).lower()
        if key in ("c", "call"):
            return cls.CALL
        if key in ("p", "put"):
            return cls.PUT
        raise ValueError(f"Unknown option kind: {value}. Use 'call' or 'put'.")


@dataclass(frozen=True)
class Observation:
    """One (expiry, implied vol) point. expiry is a Unix timestamp in seconds."""

    expiry: int
    implied_volatility: float

    def __post_init__(self):
        if self.expiry < 0:
            raise ValueError(f"expiry must be non-negative, got {self.expiry}")


@dataclass(frozen=True)
class MarketSnapshot:
    spot_price: float
    risk_free_rate: float
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if not self.spot_price > 0:
            raise ValueError("spot_price must be strictly positive")
        if self.timestamp is None:
            object.__setattr__(self, "timestamp", datetime.now(timezone.utc))


@dataclass(frozen=True)
class PricingRequest:
    """
    Inputs to a single valuation.

    Domain checks (T > 0, sigma > 0, ...) live in the pricers, not here,
    so a request can be built before the volatility is known and
    completed with with_volatility().
    """

    spot: float
    strike: float
    time_to_maturity: float
    rate: float
    volatility: float
    option_kind: OptionKind = OptionKind.CALL

    def __post_init__(self):
        object.__setattr__(self, "option_kind", OptionKind.parse(self.option_kind))

    @property
    def is_call(self) -> bool:
        return self.option_kind is OptionKind.CALL

    def with_volatility(self, volatility: float) -> "PricingRequest":
        return replace(self, volatility=float(volatility))

    def with_kind(self, option_kind) -> "PricingRequest":
        return replace(self, option_kind=OptionKind.parse(option_kind))


@dataclass(frozen=True)
class Greeks:
    """First/second order sensitivities in trader units (theta per day, vega/rho per point)."""

    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float


@dataclass(frozen=True)
class SimulationResult:
    price: float
    standard_error: float
    sample_count: int
    terminal_prices: Optional[np.ndarray] = None
    paths: Optional[np.ndarray] = None

    def confidence_interval(self, z: float = 1.96):
        half = z * self.standard_error
        return self.price - half, self.price + half


# ════════════════════════════════════════════════════════════════════════
#  HELPERS
# ════════════════════════════════════════════════════════════════════════

def time_to_expiry(expiry: int, now: Optional[datetime] = None) -> float:
    """Year-fraction (ACT/365) from now until a Unix-seconds expiry, floored at 0."""
    if now is None:
        now = datetime.now(timezone.utc)
    seconds = expiry - now.timestamp()
    return max(seconds, 0.0) / config.SECONDS_PER_YEAR


def observations_from_frame(
    df: pd.DataFrame,
    expiry_col: str = "expiry",
    iv_col: str = "iv",
) -> List[Observation]:
    """Build observations from a DataFrame, keeping row order."""
    return [
        Observation(expiry=int(e), implied_volatility=float(v))
        for e, v in zip(df[expiry_col].values, df[iv_col].values)
    ]


def observations_to_frame(observations: Iterable[Observation]) -> pd.DataFrame:
    rows = [{"expiry": o.expiry, "iv": o.implied_volatility} for o in observations]
    return pd.DataFrame(rows, columns=["expiry", "iv"])
