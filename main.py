#!/usr/bin/env python3
"""
main.py: fit an IV term structure and price an option off it.

Usage:
    python main.py                                           # synthetic (default)
    python main.py --source live --ticker AAPL --strike 320 --kind put
    python main.py --expiry 1767225600 --samples 2000000 --family hyperbolic
"""

import argparse
import logging
import sys
import time
from datetime import datetime, timezone

from src import config
from src import black_scholes, monte_carlo
from src.data_feed import get_market_data
from src.errors import DegenerateFit, VolTermStructureError
from src.models import PricingRequest, time_to_expiry
from src.term_structure import ModelFamily, fit, predict_iv, summarize_fit
from src.visualization import (
    plot_term_structure_matplotlib, plot_term_structure_plotly, plot_paths_matplotlib,
)


def parse_args():
    p = argparse.ArgumentParser(description="Fit an implied volatility term structure and price an option.")
    p.add_argument("--source", choices=["live", "synthetic"], default="synthetic")
    p.add_argument("--ticker", type=str, default=None)
    p.add_argument("--strike", type=float, default=None)
    p.add_argument("--kind", choices=["call", "put"], default=config.OPTION_KIND)
    p.add_argument("--expiry", type=int, default=None,
                   help="target expiry, Unix seconds (default: ~60 days out)")
    p.add_argument("--spot", type=float, default=None, help="spot for synthetic data")
    p.add_argument("--rate", type=float, default=None, help="override the risk-free rate")
    p.add_argument("--family", choices=[f.value for f in ModelFamily], default=ModelFamily.RECIPROCAL.value)
    p.add_argument("--samples", type=int, default=config.MC_SAMPLES)
    p.add_argument("--workers", type=int, default=config.MC_WORKERS)
    p.add_argument("--seed", type=int, default=config.SEED)
    p.add_argument("--mean-fallback", action="store_true",
                   help="use the mean observed IV if the fit is degenerate")
    p.add_argument("--no-html", action="store_true")
    return p.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    ticker = args.ticker or config.TICKER

    print(f"\n{'='*60}")
    print(f"  Implied Volatility Term Structure")
    print(f"  Source: {args.source}  |  Ticker: {ticker}  |  Kind: {args.kind}")
    print(f"{'='*60}\n")

    t0 = time.time()
    try:
        # step 1: data
        print("[1/4] Fetching observations...")
        observations, snapshot = get_market_data(
            source=args.source, ticker=ticker, strike=args.strike,
            option_kind=args.kind, spot=args.spot, r=args.rate,
        )
        S = snapshot.spot_price
        K = args.strike if args.strike is not None else round(S)
        print(f"       Spot: ${S:.2f}   Rate: {snapshot.risk_free_rate:.3%}")
        print(f"       Expiries: {len(observations)}")

        # step 2: fit and predict
        print(f"\n[2/4] Fitting {args.family} term structure...")
        now = datetime.now(timezone.utc)
        expiry = args.expiry if args.expiry is not None else int(now.timestamp()) + 60 * 86400
        try:
            curve = fit(observations, family=args.family)
            sigma = curve.evaluate(expiry)
            stats = summarize_fit(observations, curve)
            print(f"       a={curve.a:.5f}  b={curve.b:.5f}  c={curve.c:.2f}  rmse={stats['rmse']:.4%}")
        except DegenerateFit:
            if not args.mean_fallback:
                raise
            curve = None
            sigma = predict_iv(observations, expiry, family=args.family, allow_mean_fallback=True)
            print("       Degenerate fit, using mean observed IV")
        print(f"       Predicted IV at {expiry}: {sigma:.2%}")

        # step 3: price
        T = time_to_expiry(expiry, now)
        request = PricingRequest(S, K, T, snapshot.risk_free_rate, sigma, args.kind)
        print(f"\n[3/4] Pricing {args.kind} K={K:g} T={T:.4f}y...")
        bs = black_scholes.price(request)
        g = black_scholes.greeks(request)
        mc = monte_carlo.simulate(request, args.samples, rng=args.seed,
                                  n_workers=args.workers, n_paths=config.MC_PATHS)
        print(f"       Black-Scholes: {bs:.4f}")
        print(f"       Monte Carlo:   {mc.price:.4f}  (± {mc.standard_error:.4f}, n={mc.sample_count})")
        print(f"       Delta {g.delta:.4f}  Gamma {g.gamma:.5f}  Theta {g.theta:.4f}/day  "
              f"Vega {g.vega:.4f}/pt  Rho {g.rho:.4f}/pt")
    except VolTermStructureError as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    # step 4: charts
    print("\n[4/4] Generating charts...")
    print(f"       -> {plot_paths_matplotlib(mc.paths, K, T, ticker)}")
    if curve is not None:
        print(f"       -> {plot_term_structure_matplotlib(observations, curve, expiry, sigma, ticker)}")
    if curve is not None and not args.no_html:
        print(f"       -> {plot_term_structure_plotly(observations, curve, expiry, sigma, ticker)}")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.1f}s. Charts are in output/\n")


if __name__ == "__main__":
    main()
