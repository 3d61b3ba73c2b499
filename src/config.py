"""
Global configuration for the term structure pipeline.

Keeps all magic numbers in one place. Override via CLI args in main.py
or by editing this file directly for persistent changes.
"""

import os
from pathlib import Path


# ── paths ────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"


# ── market parameters ────────────────────────────────────────────────────
TICKER = "AAPL"
STRIKE = 320.0
OPTION_KIND = "put"
RISK_FREE_RATE = 0.043          # fallback when FRED is unavailable
FRED_API_KEY = os.environ.get("FRED_API_KEY", "")
FRED_SERIES_ID = "GS1"          # 1-year treasury constant maturity
FRED_URL = "https://api.stlouisfed.org/fred/series/observations"
HTTP_TIMEOUT = 10.0             # seconds, per request


# ── curve fitting ────────────────────────────────────────────────────────
MIN_OBSERVATIONS = 3            # two free parameters plus one degree of freedom
C_GRID_START = 0.01             # shape parameter search range, inclusive
C_GRID_STOP = 9.99
C_GRID_STEP = 0.01
HYPERBOLIC_C = 1.0              # fixed shape for the hyperbolic family
FIT_WORKERS = 4                 # threads for the grid search
CURVE_STEPS = 200               # points when tabulating a curve for charts


# ── pricing conventions ──────────────────────────────────────────────────
DAYS_PER_YEAR = 365.0           # theta is quoted per calendar day
SECONDS_PER_YEAR = 365.0 * 24 * 3600
PERCENT = 100.0                 # vega/rho are quoted per 1 vol/rate point


# ── monte carlo ──────────────────────────────────────────────────────────
MC_SAMPLES = 1_000_000
MC_BATCH_SIZE = 500_000         # caps memory per draw
MC_WORKERS = 1
MC_PATHS = 50                   # diagnostic paths for charts only
MC_PATH_STEPS = 100


# ── synthetic data ───────────────────────────────────────────────────────
SYNTH_SPOT = 300.0
SYNTH_N_EXPIRIES = 12
SYNTH_IV_LONG = 0.24            # long-dated IV level
SYNTH_IV_SHORT = 0.10           # extra IV at the front of the curve
SYNTH_DECAY_DAYS = 30.0         # e-folding time of the front-end premium
SYNTH_NOISE_STD = 0.004


# ── visualization ────────────────────────────────────────────────────────
DARK_BG = "#0c0c16"
GRID_COLOR_ALPHA = 0.12
DPI = 200                       # matplotlib export resolution
FIG_WIDTH_2D = 12
FIG_HEIGHT_2D = 6
OBS_COLOR = "#ff6b6b"
CURVE_COLOR = "#4d96ff"
PREDICT_COLOR = "#6bcb77"
STRIKE_COLOR = "#ffd93d"
PATH_ALPHA = 0.5
COLORMAP = "viridis"             # per-path colors


# ── logging ──────────────────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("VOL_TERM_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


# ── random seed ──────────────────────────────────────────────────────────
SEED = 42  # reproducibility for synthetic data and simulation
