"""
Black-Scholes pricing, greeks, and implied volatility inversion.

Everything here is closed-form except the IV solver, which uses
Brent's root-finding method for unconditional convergence.

Inputs outside the formula's domain (T <= 0, sigma <= 0, non-positive
spot or strike) raise InvalidPricingInput rather than being mapped to
intrinsic value. The Monte Carlo pricer applies the same check, so the
two engines always accept and reject the same requests.

Greeks are quoted in trader units: theta per calendar day, vega per
one vol point, rho per one rate point.

References:
    Black, F. & Scholes, M. (1973). The Pricing of Options and Corporate Liabilities.
    Hull, J.C. (2018). Options, Futures, and Other Derivatives. 10th ed.
"""

import math

import numpy as np
from scipy.stats import norm
from scipy.optimize import brentq

from . import config
from .errors import InvalidPricingInput
from .models import Greeks, OptionKind, PricingRequest


def validate_inputs(S: float, K: float, T: float, r: float, sigma: float) -> None:
    """Raise InvalidPricingInput unless sigma * sqrt(T) > 0 and S, K > 0."""
    for name, value in (("spot", S), ("strike", K), ("time_to_maturity", T),
                        ("rate", r), ("volatility", sigma)):
        if not math.isfinite(value):
            raise InvalidPricingInput(f"{name} must be finite, got {value}")
    if S <= 0:
        raise InvalidPricingInput(f"spot must be positive, got {S}")
    if K <= 0:
        raise InvalidPricingInput(f"strike must be positive, got {K}")
    if T <= 0:
        raise InvalidPricingInput(f"time_to_maturity must be positive, got {T}")
    if sigma <= 0:
        raise InvalidPricingInput(f"volatility must be positive, got {sigma}")


def validate_request(request: PricingRequest) -> None:
    validate_inputs(request.spot, request.strike, request.time_to_maturity,
                    request.rate, request.volatility)


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def d1(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Compute d1 in the Black-Scholes formula.

    Parameters
    ----------
    S : spot price
    K : strike price
    T : time to expiry in years
    r : risk-free rate (annualized, continuous compounding)
    sigma : volatility (annualized)

    Returns
    -------
    float
    """
    validate_inputs(S, K, T, r, sigma)
    return (np.log(S / K) + (r + 0.5 * sigma**2) * T) / (sigma * np.sqrt(T))


def d2(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """Compute d2 = d1 - sigma * sqrt(T)."""
    return d1(S, K, T, r, sigma) - sigma * np.sqrt(T)


def call_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    European call price: S N(d1) - K e^{-rT} N(d2).

    Returns
    -------
    float : theoretical call price
    """
    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)
    return float(S * norm.cdf(_d1) - K * np.exp(-r * T) * norm.cdf(_d2))


def put_price(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """European put price: K e^{-rT} N(-d2) - S N(-d1)."""
    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)
    return float(K * np.exp(-r * T) * norm.cdf(-_d2) - S * norm.cdf(-_d1))


def bs_price(S: float, K: float, T: float, r: float, sigma: float,
             option_type="call") -> float:
    """Dispatch to call_price or put_price based on option_type."""
    if OptionKind.parse(option_type) is OptionKind.CALL:
        return call_price(S, K, T, r, sigma)
    return put_price(S, K, T, r, sigma)


def price(request: PricingRequest) -> float:
    """Closed-form price for a pricing request."""
    return bs_price(request.spot, request.strike, request.time_to_maturity,
                    request.rate, request.volatility, request.option_kind)


# ════════════════════════════════════════════════════════════════════════
#  GREEKS
# ════════════════════════════════════════════════════════════════════════

def delta(S: float, K: float, T: float, r: float, sigma: float,
          option_type="call") -> float:
    """
    Option delta: dV/dS.

    Call delta is N(d1) in [0, 1]; put delta is N(d1) - 1 in [-1, 0],
    so the two always differ by exactly one.
    """
    _d1 = d1(S, K, T, r, sigma)
    if OptionKind.parse(option_type) is OptionKind.CALL:
        return float(norm.cdf(_d1))
    return float(norm.cdf(_d1) - 1.0)


def gamma(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Option gamma: d²V/dS².

    Same for calls and puts. Peaks at ATM and increases as T → 0.
    """
    _d1 = d1(S, K, T, r, sigma)
    return float(norm.pdf(_d1) / (S * sigma * np.sqrt(T)))


def vega(S: float, K: float, T: float, r: float, sigma: float) -> float:
    """
    Option vega per one vol point (0.20 -> 0.21), same for calls and puts.

    Multiply by 100 for the sensitivity per unit of volatility.
    """
    _d1 = d1(S, K, T, r, sigma)
    return float(S * norm.pdf(_d1) * np.sqrt(T) / config.PERCENT)


def theta(S: float, K: float, T: float, r: float, sigma: float,
          option_type="call") -> float:
    """
    Option theta per calendar day.

    Typically negative for long positions: options lose value as time
    passes, all else equal.
    """
    _d1 = d1(S, K, T, r, sigma)
    _d2 = _d1 - sigma * np.sqrt(T)

    # common term: time decay from gamma
    time_decay = -(S * norm.pdf(_d1) * sigma) / (2 * np.sqrt(T))

    if OptionKind.parse(option_type) is OptionKind.CALL:
        annual = time_decay - r * K * np.exp(-r * T) * norm.cdf(_d2)
    else:
        annual = time_decay + r * K * np.exp(-r * T) * norm.cdf(-_d2)
    return float(annual / config.DAYS_PER_YEAR)


def rho(S: float, K: float, T: float, r: float, sigma: float,
        option_type="call") -> float:
    """
    Option rho per one rate point.

    Usually small for short-dated options but matters for LEAPS.
    """
    _d2 = d2(S, K, T, r, sigma)
    if OptionKind.parse(option_type) is OptionKind.CALL:
        annual = K * T * np.exp(-r * T) * norm.cdf(_d2)
    else:
        annual = -K * T * np.exp(-r * T) * norm.cdf(-_d2)
    return float(annual / config.PERCENT)


def greeks(request: PricingRequest) -> Greeks:
    """All sensitivities for a pricing request."""
    args = (request.spot, request.strike, request.time_to_maturity,
            request.rate, request.volatility)
    kind = request.option_kind
    return Greeks(
        delta=delta(*args, kind),
        gamma=gamma(*args),
        theta=theta(*args, kind),
        vega=vega(*args),
        rho=rho(*args, kind),
    )


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED VOLATILITY
# ════════════════════════════════════════════════════════════════════════

def implied_vol(
    market_price: float,
    S: float,
    K: float,
    T: float,
    r: float,
    option_type="put",
    vol_lower: float = 1e-4,
    vol_upper: float = 5.0,
    tol: float = 1e-8,
) -> float:
    """
    Compute implied volatility by inverting Black-Scholes.

    Used by the data feed for quotes that come without an IV. Brent's
    method never diverges inside the bracket, which matters more than
    speed when a chain has a few stale quotes in it.

    Parameters
    ----------
    market_price : observed option price (ideally mid = (bid+ask)/2)
    S, K, T, r : as for bs_price
    option_type : "call" or "put"
    vol_lower, vol_upper : search bracket
    tol : solver tolerance

    Returns
    -------
    float : implied volatility, or NaN if the price cannot be inverted
    """
    if market_price <= 0 or T <= 0 or S <= 0 or K <= 0:
        return np.nan

    if OptionKind.parse(option_type) is OptionKind.CALL:
        intrinsic = max(S - K * np.exp(-r * T), 0.0)
    else:
        intrinsic = max(K * np.exp(-r * T) - S, 0.0)

    if market_price < intrinsic * 0.99:
        # below intrinsic: stale quote or bad data
        return np.nan

    def objective(sigma):
        return bs_price(S, K, T, r, sigma, option_type) - market_price

    try:
        return brentq(objective, vol_lower, vol_upper, xtol=tol)
    except ValueError:
        # f(a) and f(b) have the same sign: price outside the BS range
        return np.nan
    except RuntimeError:
        return np.nan
