"""
Market data for the term structure fit.

Supports two modes:
    1. Live: option chains from yfinance, risk-free rate from FRED
    2. Synthetic: a seeded reciprocal-shaped term structure (offline)

Either way the output is the same: a list of Observation (one per expiry)
and a MarketSnapshot. The selection policy lives here, not in the fitter:

    - one option kind (calls or puts)
    - in-the-money rows only, nonzero IV only
    - per expiry, the strike closest to the target

A single expiry that fails to download or has no usable row is logged
and skipped. Only when fewer than three expiries survive does the whole
pull fail.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from . import config
from .black_scholes import implied_vol
from .errors import DataFeedError, InsufficientData
from .models import MarketSnapshot, Observation, OptionKind, time_to_expiry

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════
#  RISK-FREE RATE (FRED)
# ════════════════════════════════════════════════════════════════════════

def parse_fred_rate(payload: dict) -> float:
    """Latest observation of a FRED series response, percent -> fraction."""
    try:
        value = payload["observations"][0]["value"]
        return float(value) / 100.0
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise DataFeedError("Failed to parse risk-free rate from FRED response") from e


def fetch_risk_free_rate(
    api_key: str = None,
    series_id: str = None,
    timeout: float = None,
) -> float:
    """
    Fetch the latest annualized risk-free rate from FRED.

    Parameters
    ----------
    api_key : FRED API key (default: config.FRED_API_KEY, from $FRED_API_KEY)
    series_id : FRED series (default: config.FRED_SERIES_ID, 1y treasury)
    timeout : request timeout in seconds (default: config.HTTP_TIMEOUT)

    Raises
    ------
    ImportError : if requests is not installed
    DataFeedError : network failure or unparseable response
    """
    if api_key is None:
        api_key = config.FRED_API_KEY
    if series_id is None:
        series_id = config.FRED_SERIES_ID
    if timeout is None:
        timeout = config.HTTP_TIMEOUT

    try:
        import requests
    except ImportError:
        raise ImportError(
            "requests is required for live rates. Install with: pip install requests\n"
            "Or pass --rate explicitly."
        )

    params = {
        "series_id": series_id,
        "api_key": api_key,
        "file_type": "json",
        "sort_order": "desc",
        "limit": 1,
    }
    try:
        resp = requests.get(config.FRED_URL, params=params, timeout=timeout)
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as e:
        raise DataFeedError(f"FRED request failed: {e}") from e
    except ValueError as e:
        raise DataFeedError("FRED response was not valid JSON") from e

    return parse_fred_rate(payload)


def resolve_risk_free_rate(api_key: str = None) -> float:
    """FRED rate, or config.RISK_FREE_RATE (with a warning) if it can't be fetched."""
    try:
        return fetch_risk_free_rate(api_key)
    except DataFeedError as e:
        logger.warning("%s; using fallback rate %.4f", e, config.RISK_FREE_RATE)
        return config.RISK_FREE_RATE


# ════════════════════════════════════════════════════════════════════════
#  LIVE CHAIN (yfinance)
# ════════════════════════════════════════════════════════════════════════

def expiry_timestamp(expiry_str: str) -> int:
    """'YYYY-MM-DD' -> Unix seconds at 00:00 UTC, the convention Yahoo uses."""
    dt = datetime.strptime(expiry_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def fill_missing_iv(
    chain: pd.DataFrame,
    S: float,
    T: float,
    r: float,
    option_kind,
) -> pd.DataFrame:
    """
    Invert a mid (or last) price wherever the chain has no IV.

    Rows whose IV is present, including explicit zeros, are left alone.
    """
    chain = chain.copy()
    missing = chain["impliedVolatility"].isna()
    if not missing.any() or T <= 0:
        return chain

    mid = (chain["bid"] + chain["ask"]) / 2
    price_used = np.where(mid > 0, mid, chain["lastPrice"])
    for idx in chain.index[missing]:
        pos = chain.index.get_loc(idx)
        chain.at[idx, "impliedVolatility"] = implied_vol(
            price_used[pos], S, chain.at[idx, "strike"], T, r, option_kind,
        )
    return chain


def select_closest_itm_iv(chain: pd.DataFrame, strike: float) -> float:
    """
    IV of the in-the-money row whose strike is closest to the target.

    Expects yfinance chain columns [strike, impliedVolatility, inTheMoney].
    On a tie the first row (lower strike, as yfinance sorts) wins.

    Raises
    ------
    DataFeedError : no in-the-money row with a positive IV
    """
    usable = chain[chain["inTheMoney"].astype(bool) & (chain["impliedVolatility"] > 0)]
    if usable.empty:
        raise DataFeedError("no in-the-money rows with nonzero IV")
    distance = (usable["strike"] - strike).abs()
    return float(usable.loc[distance.idxmin(), "impliedVolatility"])


def pull_live_observations(
    ticker: str = None,
    strike: float = None,
    option_kind=None,
    r: float = None,
) -> Tuple[List[Observation], MarketSnapshot]:
    """
    One observation per listed expiry for the given strike and kind.

    Parameters
    ----------
    ticker : underlying symbol (default: config.TICKER)
    strike : target strike (default: config.STRIKE)
    option_kind : "call" or "put" (default: config.OPTION_KIND)
    r : risk-free rate (default: FRED, falling back to config.RISK_FREE_RATE)

    Returns
    -------
    observations : list of Observation, in listing order
    snapshot : MarketSnapshot with spot and rate

    Raises
    ------
    ImportError : if yfinance is not installed
    DataFeedError : no spot price or no expiries
    InsufficientData : fewer than three expiries produced an observation
    """
    if ticker is None:
        ticker = config.TICKER
    if strike is None:
        strike = config.STRIKE
    kind = OptionKind.parse(config.OPTION_KIND if option_kind is None else option_kind)

    try:
        import yfinance as yf
    except ImportError:
        raise ImportError(
            "yfinance is required for live data. Install with: pip install yfinance\n"
            "Or use --source synthetic for offline mode."
        )

    tk = yf.Ticker(ticker)

    # last 5 days to get a close over weekends
    hist = tk.history(period="5d")
    if hist.empty:
        raise DataFeedError(f"Failed to get price data for {ticker}. Check ticker symbol and network.")
    S = float(hist["Close"].iloc[-1])

    if r is None:
        r = resolve_risk_free_rate()

    expiries = list(tk.options)
    if not expiries:
        raise DataFeedError(f"No option expiries found for {ticker}.")

    now = datetime.now(timezone.utc)
    observations = []
    for expiry_str in expiries:
        ts = expiry_timestamp(expiry_str)
        try:
            chain = tk.option_chain(expiry_str)
            table = chain.calls if kind is OptionKind.CALL else chain.puts
            table = fill_missing_iv(table, S, time_to_expiry(ts, now), r, kind)
            iv = select_closest_itm_iv(table, strike)
        except (DataFeedError, KeyError, ValueError, OSError) as e:
            logger.warning("expiry %s (%d): skipped, %s", expiry_str, ts, e)
            continue
        logger.info("expiry %s (%d): closest IV = %.2f%%", expiry_str, ts, iv * 100)
        observations.append(Observation(expiry=ts, implied_volatility=iv))

    if len(observations) < config.MIN_OBSERVATIONS:
        raise InsufficientData(len(observations), config.MIN_OBSERVATIONS)

    return observations, MarketSnapshot(spot_price=S, risk_free_rate=r, timestamp=now)


# ════════════════════════════════════════════════════════════════════════
#  SYNTHETIC TERM STRUCTURE
# ════════════════════════════════════════════════════════════════════════

SYNTH_DAYS = np.array([7, 14, 21, 30, 45, 60, 90, 120, 180, 270, 365, 540])


def generate_synthetic_observations(
    spot: float = None,
    n_expiries: int = None,
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[Observation], MarketSnapshot]:
    """
    Offline term structure with a steep front end that flattens out.

        iv(d) = IV_LONG + IV_SHORT * exp(-d / DECAY_DAYS) + noise

    Parameters
    ----------
    spot : spot price (default: config.SYNTH_SPOT)
    n_expiries : number of listed expiries, at most len(SYNTH_DAYS)
    seed : noise seed (default: config.SEED)
    now : reference time for the expiry timestamps (default: now, UTC)

    Returns
    -------
    observations, snapshot : same shape as pull_live_observations
    """
    if spot is None:
        spot = config.SYNTH_SPOT
    if n_expiries is None:
        n_expiries = config.SYNTH_N_EXPIRIES
    if now is None:
        now = datetime.now(timezone.utc)
    rng = np.random.default_rng(config.SEED if seed is None else seed)

    days = SYNTH_DAYS[:n_expiries]
    iv = config.SYNTH_IV_LONG + config.SYNTH_IV_SHORT * np.exp(-days / config.SYNTH_DECAY_DAYS)
    iv = iv + rng.normal(0.0, config.SYNTH_NOISE_STD, size=len(days))
    iv = np.clip(iv, 0.01, None)

    base = int(now.timestamp())
    observations = [
        Observation(expiry=base + int(d) * 86400, implied_volatility=float(v))
        for d, v in zip(days, iv)
    ]
    snapshot = MarketSnapshot(spot_price=spot, risk_free_rate=config.RISK_FREE_RATE, timestamp=now)
    return observations, snapshot


# ════════════════════════════════════════════════════════════════════════
#  UNIFIED INTERFACE
# ════════════════════════════════════════════════════════════════════════

def get_market_data(
    source: str = "synthetic",
    ticker: str = None,
    strike: float = None,
    option_kind=None,
    spot: float = None,
    r: float = None,
) -> Tuple[List[Observation], MarketSnapshot]:
    """
    Main entry point for getting observations.

    Parameters
    ----------
    source : "live" or "synthetic"
    ticker, strike, option_kind : live selection (ignored in synthetic mode)
    spot : spot for synthetic data (ignored in live mode)
    r : risk-free rate override

    Returns
    -------
    observations, snapshot
    """
    if source == "live":
        return pull_live_observations(ticker=ticker, strike=strike, option_kind=option_kind, r=r)
    elif source == "synthetic":
        observations, snapshot = generate_synthetic_observations(spot=spot)
        if r is not None:
            snapshot = MarketSnapshot(snapshot.spot_price, r, snapshot.timestamp)
        return observations, snapshot
    else:
        raise ValueError(f"Unknown source: {source}. Use 'live' or 'synthetic'.")
