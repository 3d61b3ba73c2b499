"""
Shared test fixtures and pytest configuration.
"""

import pytest
import numpy as np

from src.models import Observation, PricingRequest

BASE_TS = 1_700_000_000
DAY = 86400
TERM_DAYS = [7, 14, 30, 60, 90, 180, 365]

# exact reciprocal curve: iv = A + B / (z + C)
TRUE_A, TRUE_B, TRUE_C = 0.18, 0.06, 1.5


def exact_observations(a=TRUE_A, b=TRUE_B, c=TRUE_C, days=TERM_DAYS):
    x = np.array([BASE_TS + d * DAY for d in days], dtype=float)
    z = (x - x.mean()) / np.sqrt(np.mean((x - x.mean()) ** 2))
    iv = a + b / (z + c)
    return [Observation(expiry=int(e), implied_volatility=float(v)) for e, v in zip(x, iv)]


@pytest.fixture
def rng():
    """Fresh seeded generator per test."""
    return np.random.default_rng(42)


@pytest.fixture
def term_observations():
    return exact_observations()


@pytest.fixture
def noisy_observations():
    noise = np.random.default_rng(7).normal(0, 0.003, len(TERM_DAYS))
    return [
        Observation(o.expiry, o.implied_volatility + float(n))
        for o, n in zip(exact_observations(), noise)
    ]


@pytest.fixture
def atm_request():
    """Textbook case: S=K=100, T=1, r=5%, sigma=20%."""
    return PricingRequest(spot=100.0, strike=100.0, time_to_maturity=1.0,
                          rate=0.05, volatility=0.20, option_kind="call")
