"""
vol-term-structure
==================
Implied volatility term structure fitting and option valuation.

Modules:
    term_structure     - Reciprocal / hyperbolic curve fit over expiry
    black_scholes      - Closed-form pricing, greeks, implied vol inversion
    monte_carlo        - GBM terminal sampling and path simulation
    models             - Observations, market snapshot, pricing requests
    errors             - Exception hierarchy
    data_feed          - Live (yfinance / FRED) and synthetic observations
    visualization      - Term structure and path charts (matplotlib + plotly)
    config             - Global constants and defaults
"""

__version__ = "0.1.0"
__author__ = "Leo"
