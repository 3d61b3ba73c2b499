"""
Tests for the Black-Scholes pricing module.

Covers: textbook reference prices, put-call parity, greek signs,
call/put greek relationships, IV round-trip consistency, and the
fail-fast policy for inputs outside the formula's domain.

Run with: pytest tests/ -v
"""

import pytest
import numpy as np
from src.black_scholes import (
    call_price, put_price, bs_price, price, greeks,
    delta, gamma, vega, theta, rho,
    implied_vol, d1, d2,
)
from src.errors import InvalidPricingInput
from src.models import PricingRequest


# ── fixtures ─────────────────────────────────────────────────────────

# standard test parameters: ATM option, 3 months
S = 600.0
K = 600.0
T = 0.25
r = 0.05
sigma = 0.20


class TestPricing:
    """Basic pricing correctness."""

    def test_reference_call(self):
        """S=K=100, T=1, r=5%, sigma=20% -> 10.4506."""
        assert call_price(100, 100, 1.0, 0.05, 0.2) == pytest.approx(10.4506, abs=1e-4)

    def test_reference_put(self):
        assert put_price(100, 100, 1.0, 0.05, 0.2) == pytest.approx(5.5735, abs=1e-4)

    def test_request_pricing(self, atm_request):
        assert price(atm_request) == pytest.approx(10.4506, abs=1e-4)
        assert price(atm_request.with_kind("put")) == pytest.approx(5.5735, abs=1e-4)

    def test_put_call_parity(self):
        """
        Put-call parity: C - P = S - K*e^{-rT}

        Model-independent for European options. If this fails,
        something fundamental is wrong with the pricing formulas.
        """
        c = call_price(S, K, T, r, sigma)
        p = put_price(S, K, T, r, sigma)
        assert abs((c - p) - (S - K * np.exp(-r * T))) < 1e-10

    def test_put_call_parity_otm(self):
        """Put-call parity holds for OTM options too."""
        for K_test in [500.0, 550.0, 650.0, 700.0]:
            c = call_price(S, K_test, T, r, sigma)
            p = put_price(S, K_test, T, r, sigma)
            rhs = S - K_test * np.exp(-r * T)
            assert abs((c - p) - rhs) < 1e-10, f"PCP failed at K={K_test}"

    def test_call_lower_bound(self):
        """Call price >= max(S - K*e^{-rT}, 0)."""
        c = call_price(S, 550.0, T, r, sigma)
        assert c >= max(S - 550.0 * np.exp(-r * T), 0) - 1e-10

    def test_put_lower_bound(self):
        p = put_price(S, 700.0, T, r, sigma)
        assert p >= max(700.0 * np.exp(-r * T) - S, 0) - 1e-10

    def test_d2_definition(self):
        assert d2(S, K, T, r, sigma) == pytest.approx(d1(S, K, T, r, sigma) - sigma * np.sqrt(T))

    def test_bs_price_dispatch(self):
        """bs_price dispatches correctly to call/put."""
        assert bs_price(S, K, T, r, sigma, "call") == call_price(S, K, T, r, sigma)
        assert bs_price(S, K, T, r, sigma, "put") == put_price(S, K, T, r, sigma)
        assert bs_price(S, K, T, r, sigma, "c") == call_price(S, K, T, r, sigma)
        assert bs_price(S, K, T, r, sigma, "P") == put_price(S, K, T, r, sigma)

    def test_bs_price_invalid_type(self):
        with pytest.raises(ValueError):
            bs_price(S, K, T, r, sigma, "invalid")


class TestInvalidInputs:
    """Inputs where sigma*sqrt(T) <= 0 are rejected, never patched."""

    @pytest.mark.parametrize("T_bad", [0.0, -0.5])
    def test_non_positive_maturity(self, T_bad):
        with pytest.raises(InvalidPricingInput):
            call_price(S, K, T_bad, r, sigma)

    @pytest.mark.parametrize("sigma_bad", [0.0, -0.1])
    def test_non_positive_vol(self, sigma_bad):
        with pytest.raises(InvalidPricingInput):
            put_price(S, K, T, r, sigma_bad)

    def test_non_positive_spot_and_strike(self):
        with pytest.raises(InvalidPricingInput):
            call_price(0.0, K, T, r, sigma)
        with pytest.raises(InvalidPricingInput):
            call_price(S, -1.0, T, r, sigma)

    def test_nan_input(self):
        with pytest.raises(InvalidPricingInput):
            call_price(S, K, T, float("nan"), sigma)

    def test_greeks_reject_too(self):
        req = PricingRequest(S, K, 0.0, r, sigma, "call")
        with pytest.raises(InvalidPricingInput):
            greeks(req)

    def test_is_value_error(self):
        """Callers catching ValueError still see the failure."""
        with pytest.raises(ValueError):
            gamma(S, K, T, r, 0.0)


class TestGreeks:
    """Greek signs, bounds, and symmetries."""

    def test_reference_values(self, atm_request):
        g = greeks(atm_request)
        assert g.delta == pytest.approx(0.636831, abs=1e-5)
        assert g.gamma == pytest.approx(0.018762, abs=1e-5)
        assert g.vega == pytest.approx(0.375240, abs=1e-5)
        assert g.theta == pytest.approx(-6.414028 / 365, rel=1e-4)

    def test_put_theta_reference(self, atm_request):
        g = greeks(atm_request.with_kind("put"))
        assert g.theta == pytest.approx(-1.657880 / 365, rel=1e-3)

    def test_call_delta_bounds(self):
        """Call delta is in [0, 1]."""
        for K_test in [500, 550, 600, 650, 700]:
            d = delta(S, K_test, T, r, sigma, "call")
            assert 0 <= d <= 1, f"Call delta out of bounds at K={K_test}: {d}"

    def test_put_delta_bounds(self):
        """Put delta is in [-1, 0]."""
        for K_test in [500, 550, 600, 650, 700]:
            d = delta(S, K_test, T, r, sigma, "put")
            assert -1 <= d <= 0, f"Put delta out of bounds at K={K_test}: {d}"

    def test_call_put_delta_differ_by_one(self):
        for K_test in [500, 600, 700]:
            diff = delta(S, K_test, T, r, sigma, "call") - delta(S, K_test, T, r, sigma, "put")
            assert diff == pytest.approx(1.0, abs=1e-12)

    def test_gamma_vega_kind_independent(self, atm_request):
        """Gamma and vega carry no option kind."""
        call = greeks(atm_request)
        put = greeks(atm_request.with_kind("put"))
        assert call.gamma == put.gamma
        assert call.vega == put.vega

    def test_gamma_positive(self):
        for K_test in [500, 550, 600, 650, 700]:
            assert gamma(S, K_test, T, r, sigma) > 0

    def test_gamma_peaks_atm(self):
        """Gamma should be highest at ATM."""
        g_atm = gamma(S, 600, T, r, sigma)
        assert g_atm > gamma(S, 550, T, r, sigma)
        assert g_atm > gamma(S, 650, T, r, sigma)

    def test_vega_is_per_vol_point(self):
        """Bumping vol by one point moves the price by about vega."""
        bumped = call_price(S, K, T, r, sigma + 0.01) - call_price(S, K, T, r, sigma)
        assert bumped == pytest.approx(vega(S, K, T, r, sigma), rel=1e-2)

    def test_theta_is_per_day(self):
        """One calendar day of decay is about theta."""
        day = 1.0 / 365
        decay = call_price(S, K, T - day, r, sigma) - call_price(S, K, T, r, sigma)
        assert decay == pytest.approx(theta(S, K, T, r, sigma, "call"), rel=2e-2)

    def test_long_call_theta_negative(self):
        assert theta(S, K, T, r, sigma, "call") < 0

    def test_rho_signs(self):
        assert rho(S, K, T, r, sigma, "call") > 0
        assert rho(S, K, T, r, sigma, "put") < 0


class TestImpliedVol:
    """Implied volatility solver tests."""

    def test_iv_round_trip_call(self):
        """Price a call, then invert -> should recover the input vol."""
        p = call_price(S, K, T, r, sigma)
        assert abs(implied_vol(p, S, K, T, r, "call") - sigma) < 1e-6

    def test_iv_round_trip_put(self):
        p = put_price(S, K, T, r, sigma)
        assert abs(implied_vol(p, S, K, T, r, "put") - sigma) < 1e-6

    def test_iv_round_trip_various_vols(self):
        for test_sigma in [0.05, 0.10, 0.25, 0.50, 1.0, 2.0]:
            p = call_price(S, K, T, r, test_sigma)
            iv_recovered = implied_vol(p, S, K, T, r, "call")
            assert abs(iv_recovered - test_sigma) < 1e-5, \
                f"Round-trip failed for sigma={test_sigma}: got {iv_recovered}"

    def test_iv_zero_price(self):
        assert np.isnan(implied_vol(0.0, S, K, T, r, "put"))

    def test_iv_expired(self):
        assert np.isnan(implied_vol(10.0, S, K, 0, r, "put"))

    def test_iv_below_intrinsic(self):
        """A call quoted well under intrinsic cannot be inverted."""
        assert np.isnan(implied_vol(1.0, 600, 500, 0.25, 0.05, "call"))


class TestEdgeCases:
    """Numerical stability."""

    def test_very_short_maturity(self):
        assert call_price(600, 590, 0.001, r, 0.20) > 0

    def test_very_high_vol(self):
        c = call_price(100, 100, 1.0, 0.05, 5.0)
        assert np.isfinite(c)
        assert c > 0

    def test_very_low_vol(self):
        """Near-zero vol: call approaches discounted intrinsic."""
        c = call_price(600, 550, 1.0, 0.05, 0.001)
        assert abs(c - (600 - 550 * np.exp(-0.05))) < 0.5
