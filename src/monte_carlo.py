"""
Monte Carlo valuation of European options under risk-neutral GBM.

Terminal prices are drawn directly, one independent uniform per sample:

    Z   = N^{-1}(U),   U ~ Uniform[0, 1)
    S_T = S * exp((r - sigma^2 / 2) T + sigma * sqrt(T) * Z)

and the price is e^{-rT} times the mean payoff. No variance reduction is
applied, so the standard error falls as 1 / sqrt(n) and the estimate can
be checked against the closed-form price.

Randomness always comes from an explicit numpy Generator (or a seed that
builds one). For a given seed, sample count and worker count the
estimate is reproducible. With n_workers > 1 the generator is split with
Generator.spawn and each worker sums its own share of the samples.

Full discretized paths are only produced for charts. They use a
generator spawned after the pricing draws, so they never change the
price.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np
from scipy.stats import norm

from . import config
from .black_scholes import validate_request
from .errors import InvalidPricingInput
from .models import PricingRequest, SimulationResult

logger = logging.getLogger(__name__)

# (sum of payoffs, sum of squared payoffs, count, kept terminal prices)
Partial = Tuple[float, float, int, Optional[np.ndarray]]


def _split(total: int, parts: int) -> List[int]:
    base, extra = divmod(total, parts)
    return [base + (1 if i < extra else 0) for i in range(parts)]


def _check_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidPricingInput(f"{name} must be a positive integer, got {value!r}")
    if not np.isfinite(value) or int(value) != value or value <= 0:
        raise InvalidPricingInput(f"{name} must be a positive integer, got {value}")
    return int(value)


# ════════════════════════════════════════════════════════════════════════
#  TERMINAL SAMPLING
# ════════════════════════════════════════════════════════════════════════

def sample_terminal_prices(
    request: PricingRequest, n: int, rng: np.random.Generator
) -> np.ndarray:
    """Draw n terminal prices by inverse-CDF transform of uniforms."""
    T = request.time_to_maturity
    sigma = request.volatility
    drift = (request.rate - 0.5 * sigma**2) * T
    diffusion = sigma * np.sqrt(T)
    # U = 0 maps to Z = -inf, i.e. S_T = 0, which still has a finite payoff
    z = norm.ppf(rng.random(n))
    return request.spot * np.exp(drift + diffusion * z)


def payoff(request: PricingRequest, terminal: np.ndarray) -> np.ndarray:
    if request.is_call:
        return np.maximum(terminal - request.strike, 0.0)
    return np.maximum(request.strike - terminal, 0.0)


def _accumulate(
    request: PricingRequest,
    n: int,
    rng: np.random.Generator,
    keep_samples: bool,
) -> Partial:
    """Sum payoffs over n samples in bounded-size batches."""
    total = 0.0
    total_sq = 0.0
    kept = []
    for size in _split(n, -(-n // config.MC_BATCH_SIZE)):
        terminal = sample_terminal_prices(request, size, rng)
        pay = payoff(request, terminal)
        total += float(pay.sum())
        total_sq += float(pay @ pay)
        if keep_samples:
            kept.append(terminal)
    samples = np.concatenate(kept) if keep_samples else None
    return total, total_sq, n, samples


def simulate(
    request: PricingRequest,
    sample_count: int = None,
    rng=None,
    n_workers: int = None,
    keep_samples: bool = False,
    n_paths: int = 0,
    n_steps: int = None,
) -> SimulationResult:
    """
    Monte Carlo price with its standard error.

    Parameters
    ----------
    request : pricing inputs; rejected with InvalidPricingInput on the
              same conditions as the closed-form pricer
    sample_count : number of terminal samples (default: config.MC_SAMPLES)
    rng : numpy Generator, int seed, or None for fresh OS entropy
    n_workers : threads sharing the samples (default: config.MC_WORKERS)
    keep_samples : return the raw terminal prices as well
    n_paths : if > 0, also simulate this many diagnostic paths
    n_steps : time steps per diagnostic path (default: config.MC_PATH_STEPS)

    Returns
    -------
    SimulationResult
    """
    validate_request(request)
    if sample_count is None:
        sample_count = config.MC_SAMPLES
    sample_count = _check_count("sample_count", sample_count)
    if n_workers is None:
        n_workers = config.MC_WORKERS
    n_workers = max(1, min(int(n_workers), sample_count))
    rng = np.random.default_rng(rng)

    if n_workers == 1:
        partials = [_accumulate(request, sample_count, rng, keep_samples)]
    else:
        counts = _split(sample_count, n_workers)
        streams = rng.spawn(n_workers)
        with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="vol-mc") as pool:
            partials = list(pool.map(
                lambda job: _accumulate(request, job[0], job[1], keep_samples),
                zip(counts, streams),
            ))

    total = sum(p[0] for p in partials)
    total_sq = sum(p[1] for p in partials)
    n = sum(p[2] for p in partials)

    mean = total / n
    if n > 1:
        variance = max(total_sq / n - mean**2, 0.0) * n / (n - 1)
    else:
        variance = 0.0
    discount = np.exp(-request.rate * request.time_to_maturity)
    estimate = float(discount * mean)
    std_error = float(discount * np.sqrt(variance / n))

    logger.debug(
        "mc %s: n=%d workers=%d price=%.6f se=%.6f",
        request.option_kind.value, n, n_workers, estimate, std_error,
    )

    samples = None
    if keep_samples:
        samples = np.concatenate([p[3] for p in partials])

    paths = None
    if n_paths:
        # spawned after pricing so the path draws cannot touch the pricing stream
        paths = simulate_paths(request, n_paths, n_steps, rng.spawn(1)[0])

    return SimulationResult(
        price=estimate,
        standard_error=std_error,
        sample_count=n,
        terminal_prices=samples,
        paths=paths,
    )


def price(
    request: PricingRequest,
    sample_count: int = None,
    rng=None,
    n_workers: int = None,
) -> float:
    """Discounted expected payoff; see simulate() for the parameters."""
    return simulate(request, sample_count, rng=rng, n_workers=n_workers).price


# ════════════════════════════════════════════════════════════════════════
#  PATHS (charts only)
# ════════════════════════════════════════════════════════════════════════

def simulate_paths(
    request: PricingRequest,
    n_paths: int = None,
    n_steps: int = None,
    rng=None,
) -> np.ndarray:
    """
    Discretized GBM paths for plotting.

    Returns
    -------
    np.ndarray of shape (n_paths, n_steps + 1); column 0 is the spot
    """
    validate_request(request)
    n_paths = _check_count("n_paths", config.MC_PATHS if n_paths is None else n_paths)
    n_steps = _check_count("n_steps", config.MC_PATH_STEPS if n_steps is None else n_steps)
    rng = np.random.default_rng(rng)

    sigma = request.volatility
    dt = request.time_to_maturity / n_steps
    z = rng.standard_normal((n_paths, n_steps))
    log_steps = (request.rate - 0.5 * sigma**2) * dt + sigma * np.sqrt(dt) * z

    log_paths = np.zeros((n_paths, n_steps + 1))
    log_paths[:, 1:] = np.cumsum(log_steps, axis=1)
    return request.spot * np.exp(log_paths)


def gbm_quantile_price(s0: float, mu: float, sigma: float, t: float, quantile: float) -> float:
    """Terminal GBM price at a given quantile of the log-normal distribution."""
    if not 0.0 < quantile < 1.0:
        raise ValueError(f"quantile must be in (0, 1), got {quantile}")
    z = norm.ppf(quantile)
    return float(s0 * np.exp((mu - 0.5 * sigma**2) * t + sigma * np.sqrt(t) * z))
