"""
Term structure fitting: from a handful of scattered (expiry, IV) quotes
to a continuous curve that can be read at any expiry.

The model is

    iv(x) = max(0, a + b / (z + c)),    z = (x - x_mean) / x_std

The reciprocal term lets the curve fall steeply at the front and flatten
out for long maturities, which is what listed term structures usually
look like. For a fixed shape c the model is linear in (a, b), so each
candidate reduces to a 2x2 normal-equations solve. Only c is searched:

    RECIPROCAL : c on the grid 0.01, 0.02, ..., 9.99 (999 candidates)
    HYPERBOLIC : c fixed at 1.0

Candidates are independent of each other. The grid is split into chunks
that are solved on a thread pool, and the reduction keeps the smallest
residual sum of squares, breaking ties on the smaller c so that repeated
fits of the same data give identical parameters.

The zero clamp is applied when the curve is read, never when it is fitted.
The raw regression is free to go negative away from the data.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from . import config
from .errors import DegenerateFit, InsufficientData
from .models import Observation

logger = logging.getLogger(__name__)

# (sse, c, a, b) for one solved candidate
Solution = Tuple[float, float, float, float]

# condition number above which XtX is treated as singular
_COND_LIMIT = 1.0 / np.finfo(float).eps


class ModelFamily(str, Enum):
    RECIPROCAL = "reciprocal"
    HYPERBOLIC = "hyperbolic"

    @classmethod
    def parse(cls, value) -> "ModelFamily":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown model family: {value}. Use 'reciprocal' or 'hyperbolic'."
            ) from None


@dataclass(frozen=True)
class FittedCurve:
    """
    Parameters of a fitted term structure.

    Immutable and side-effect free, so one curve can be evaluated from
    any number of threads. Expiries are Unix timestamps in seconds.
    """

    x_mean: float
    x_std: float
    a: float
    b: float
    c: float
    family: ModelFamily = ModelFamily.RECIPROCAL
    sse: float = float("nan")
    n_obs: int = 0

    def __post_init__(self):
        if not self.x_std > 0:
            raise DegenerateFit(f"x_std must be positive, got {self.x_std}")

    def normalize(self, expiry):
        return (np.asarray(expiry, dtype=float) - self.x_mean) / self.x_std

    def raw(self, expiry):
        """Unclamped model value; may be negative away from the data."""
        z = self.normalize(expiry)
        if self.b == 0.0:
            # flat curve, no pole
            return _as_scalar(np.full_like(z, self.a))
        # z + c can only hit zero for expiries far outside the data
        with np.errstate(divide="ignore", invalid="ignore"):
            out = self.a + self.b / (z + self.c)
        return _as_scalar(out)

    def evaluate(self, expiry):
        """Implied volatility at expiry (scalar or array), clamped at zero."""
        # fmax: a NaN raw value clamps to 0 as well
        return _as_scalar(np.fmax(0.0, self.raw(expiry)))

    __call__ = evaluate

    @property
    def rmse(self) -> float:
        if self.n_obs <= 0:
            return float("nan")
        return float(np.sqrt(self.sse / self.n_obs))

    def params(self) -> dict:
        return {
            "family": self.family.value,
            "x_mean": self.x_mean,
            "x_std": self.x_std,
            "a": self.a,
            "b": self.b,
            "c": self.c,
        }


def _as_scalar(values):
    arr = np.asarray(values)
    return float(arr) if arr.ndim == 0 else arr


# ════════════════════════════════════════════════════════════════════════
#  GRID SEARCH
# ════════════════════════════════════════════════════════════════════════

def candidate_grid(family=ModelFamily.RECIPROCAL) -> np.ndarray:
    """Shape parameters tried for a model family, in ascending order."""
    family = ModelFamily.parse(family)
    if family is ModelFamily.HYPERBOLIC:
        return np.array([config.HYPERBOLIC_C])
    n = int(round((config.C_GRID_STOP - config.C_GRID_START) / config.C_GRID_STEP)) + 1
    # rounding keeps 0.07 == 0.07 rather than 0.07000000000000001
    return np.round(config.C_GRID_START + config.C_GRID_STEP * np.arange(n), 10)


def solve_candidate(c: float, z: np.ndarray, y: np.ndarray) -> Optional[Solution]:
    """
    Least-squares (a, b) for one fixed shape c.

    Returns None when the design matrix is not finite (an observation
    sitting on the pole z = -c) or when XtX is numerically singular. The
    singularity test is a conditioning limit: cond(XtX) above 1/eps is
    skipped even if LU would still return an answer.
    """
    with np.errstate(divide="ignore"):
        col = 1.0 / (z + c)
    if not np.all(np.isfinite(col)):
        return None

    X = np.column_stack([np.ones_like(z), col])
    xtx = X.T @ X
    xty = X.T @ y

    with np.errstate(divide="ignore", invalid="ignore"):
        cond = np.linalg.cond(xtx)
    if not np.isfinite(cond) or cond > _COND_LIMIT:
        return None

    try:
        beta = np.linalg.solve(xtx, xty)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(beta)):
        return None

    resid = y - X @ beta
    return float(resid @ resid), float(c), float(beta[0]), float(beta[1])


def _rank(solution: Solution):
    sse, c, _, _ = solution
    return sse, c


def _solve_chunk(
    candidates: np.ndarray, z: np.ndarray, y: np.ndarray
) -> Tuple[Optional[Solution], int]:
    """Best solution within a chunk, plus how many candidates were skipped."""
    solved = [s for s in (solve_candidate(c, z, y) for c in candidates) if s is not None]
    skipped = len(candidates) - len(solved)
    if not solved:
        return None, skipped
    return min(solved, key=_rank), skipped


def grid_search(
    candidates: np.ndarray,
    z: np.ndarray,
    y: np.ndarray,
    n_workers: Optional[int] = None,
) -> Optional[Solution]:
    """
    Map the candidates over a thread pool and reduce to the best solution.

    The result does not depend on n_workers: the reduction orders by
    (sse, c), so equal residuals always resolve to the smallest c.
    """
    if n_workers is None:
        n_workers = config.FIT_WORKERS
    n_workers = max(1, min(int(n_workers), len(candidates)))
    chunks = np.array_split(candidates, n_workers)

    if n_workers == 1:
        partials = [_solve_chunk(chunks[0], z, y)]
    else:
        with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="vol-fit") as pool:
            partials = list(pool.map(lambda chunk: _solve_chunk(chunk, z, y), chunks))

    skipped = sum(n for _, n in partials)
    if skipped:
        logger.debug("skipped %d of %d shape candidates (singular)", skipped, len(candidates))

    best = [s for s, _ in partials if s is not None]
    if not best:
        return None
    return min(best, key=_rank)


# ════════════════════════════════════════════════════════════════════════
#  FIT / PREDICT
# ════════════════════════════════════════════════════════════════════════

def _sorted_arrays(observations: Sequence[Observation]) -> Tuple[np.ndarray, np.ndarray]:
    x = np.array([o.expiry for o in observations], dtype=float)
    y = np.array([o.implied_volatility for o in observations], dtype=float)
    # stable, so equal expiries keep their input order
    order = np.argsort(x, kind="stable")
    return x[order], y[order]


def fit(
    observations: Sequence[Observation],
    family=ModelFamily.RECIPROCAL,
    n_workers: Optional[int] = None,
) -> FittedCurve:
    """
    Fit a term structure to (expiry, IV) observations.

    Parameters
    ----------
    observations : at least config.MIN_OBSERVATIONS points
    family : ModelFamily or its string name
    n_workers : threads for the grid search (default: config.FIT_WORKERS)

    Returns
    -------
    FittedCurve

    Raises
    ------
    InsufficientData : fewer than three observations
    DegenerateFit : all expiries identical, or every candidate singular
    """
    family = ModelFamily.parse(family)
    observations = list(observations)
    if len(observations) < config.MIN_OBSERVATIONS:
        raise InsufficientData(len(observations), config.MIN_OBSERVATIONS)

    x, y = _sorted_arrays(observations)
    x_mean = float(np.mean(x))
    x_std = float(np.sqrt(np.mean((x - x_mean) ** 2)))
    if not x_std > 0:
        raise DegenerateFit(
            f"all {len(observations)} observations share expiry {int(x[0])}; "
            "cannot normalize"
        )
    z = (x - x_mean) / x_std

    candidates = candidate_grid(family)
    best = grid_search(candidates, z, y, n_workers)
    if best is None:
        raise DegenerateFit(
            f"all {len(candidates)} shape candidates produced a singular system"
        )

    sse, c, a, b = best
    logger.info(
        "fitted %s curve on %d points: a=%.6f b=%.6f c=%.2f sse=%.3e",
        family.value, len(observations), a, b, c, sse,
    )
    return FittedCurve(
        x_mean=x_mean, x_std=x_std, a=a, b=b, c=c,
        family=family, sse=sse, n_obs=len(observations),
    )


def mean_implied_vol(observations: Sequence[Observation]) -> float:
    observations = list(observations)
    if not observations:
        raise InsufficientData(0, 1)
    return float(np.mean([o.implied_volatility for o in observations]))


def predict_iv(
    observations: Sequence[Observation],
    expiry: int,
    family=ModelFamily.RECIPROCAL,
    allow_mean_fallback: bool = False,
    n_workers: Optional[int] = None,
) -> float:
    """
    Fit and read the curve at one expiry.

    With allow_mean_fallback=True a DegenerateFit is replaced by the mean
    observed IV (logged as a warning). InsufficientData always propagates.
    """
    try:
        curve = fit(observations, family=family, n_workers=n_workers)
    except DegenerateFit as e:
        if not allow_mean_fallback:
            raise
        fallback = mean_implied_vol(observations)
        logger.warning("degenerate fit (%s); using mean IV %.4f", e, fallback)
        return fallback
    return curve.evaluate(expiry)


# ════════════════════════════════════════════════════════════════════════
#  TABULATION / DIAGNOSTICS
# ════════════════════════════════════════════════════════════════════════

def curve_frame(
    curve: FittedCurve,
    start: float,
    stop: float,
    steps: int = None,
) -> pd.DataFrame:
    """
    Evaluate the curve on an even expiry grid.

    Returns
    -------
    DataFrame with columns [expiry, iv, iv_raw], steps + 1 rows
    """
    if steps is None:
        steps = config.CURVE_STEPS
    expiries = np.linspace(start, stop, steps + 1)
    return pd.DataFrame({
        "expiry": expiries,
        "iv": np.atleast_1d(curve.evaluate(expiries)),
        "iv_raw": np.atleast_1d(curve.raw(expiries)),
    })


def summarize_fit(observations: Sequence[Observation], curve: FittedCurve) -> dict:
    """
    Quick diagnostics for a fit.

    Returns
    -------
    dict with keys:
        n_points      : number of observations
        expiry_range  : (min, max) Unix seconds
        iv_range      : (min, max) observed IV
        rmse          : root mean squared residual
        max_abs_error : largest |fitted - observed|
        params        : curve.params()
    """
    x, y = _sorted_arrays(list(observations))
    fitted = np.atleast_1d(curve.evaluate(x))
    return {
        "n_points": len(x),
        "expiry_range": (int(x.min()), int(x.max())),
        "iv_range": (float(y.min()), float(y.max())),
        "rmse": curve.rmse,
        "max_abs_error": float(np.max(np.abs(fitted - y))),
        "params": curve.params(),
    }
