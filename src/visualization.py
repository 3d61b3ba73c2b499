"""
Visualization module: term structure and simulated path charts.

Two backends:
    - matplotlib: static PNGs (term structure, Monte Carlo paths)
    - plotly: interactive HTML term structure with hover tooltips

Charts only read what the core hands them (observations, a fitted
curve, a predicted point, a path matrix) and never feed anything back.

Both use the same dark theme. Expiries are Unix seconds in the core and
are converted to dates here for the x-axis.
"""

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for server/CI environments
import matplotlib.pyplot as plt

import plotly.graph_objects as go

from . import config
from .models import Observation, observations_to_frame
from .term_structure import FittedCurve, curve_frame


def _output_path(output_path, default_name: str) -> str:
    if output_path is None:
        config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        return str(config.OUTPUT_DIR / default_name)
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    return str(output_path)


def _as_dates(expiries) -> pd.DatetimeIndex:
    return pd.to_datetime(np.asarray(expiries, dtype=float), unit="s", utc=True)


def term_structure_frames(
    observations: Sequence[Observation],
    curve: FittedCurve,
    predict_expiry: Optional[int] = None,
):
    """
    Observation and curve tables covering the data and the predicted point.

    Returns
    -------
    obs_df : DataFrame [expiry, iv, date]
    curve_df : DataFrame [expiry, iv, iv_raw, date]
    """
    obs_df = observations_to_frame(observations).sort_values("expiry", kind="stable")
    lo, hi = obs_df["expiry"].min(), obs_df["expiry"].max()
    if predict_expiry is not None:
        lo, hi = min(lo, predict_expiry), max(hi, predict_expiry)
    curve_df = curve_frame(curve, float(lo), float(hi))
    obs_df["date"] = _as_dates(obs_df["expiry"])
    curve_df["date"] = _as_dates(curve_df["expiry"])
    return obs_df, curve_df


def _style_axes(fig, ax):
    fig.patch.set_facecolor(config.DARK_BG)
    ax.set_facecolor(config.DARK_BG)
    ax.tick_params(colors="white", labelsize=10)
    ax.grid(True, alpha=config.GRID_COLOR_ALPHA, color="white")
    for spine in ax.spines.values():
        spine.set_color("#333355")


def _legend(ax):
    ax.legend(loc="upper right", fontsize=10, facecolor="#191930",
              edgecolor="#ffffff30", labelcolor="white")


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB — TERM STRUCTURE (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_term_structure_matplotlib(
    observations: Sequence[Observation],
    curve: FittedCurve,
    predict_expiry: Optional[int] = None,
    predicted_iv: Optional[float] = None,
    ticker: str = None,
    output_path: str = None,
) -> str:
    """
    Observed IVs, the fitted curve, and the predicted point.

    Parameters
    ----------
    observations : the points the curve was fitted to
    curve : fitted term structure
    predict_expiry, predicted_iv : optional highlighted prediction
    ticker : symbol for title (default: config.TICKER)
    output_path : PNG save path (default: config.OUTPUT_DIR / "iv_<family>.png")

    Returns
    -------
    str : path written
    """
    if ticker is None:
        ticker = config.TICKER
    output_path = _output_path(output_path, f"iv_{curve.family.value}.png")

    obs_df, curve_df = term_structure_frames(observations, curve, predict_expiry)

    fig, ax = plt.subplots(figsize=(config.FIG_WIDTH_2D, config.FIG_HEIGHT_2D))
    _style_axes(fig, ax)

    ax.plot(curve_df["date"], curve_df["iv"] * 100, color=config.CURVE_COLOR,
            linewidth=2.2, label=f"{curve.family.value} fit (c={curve.c:.2f})")
    ax.scatter(obs_df["date"], obs_df["iv"] * 100, color=config.OBS_COLOR,
               s=36, zorder=3, label="observed")
    if predict_expiry is not None and predicted_iv is not None:
        ax.scatter(_as_dates([predict_expiry]), [predicted_iv * 100],
                   color=config.PREDICT_COLOR, s=90, zorder=4,
                   label=f"predicted {predicted_iv:.1%}")

    ax.set_xlabel("Expiry", fontsize=13, color="white")
    ax.set_ylabel("Implied Volatility (σ) %", fontsize=13, color="white")
    ax.set_title(
        f"{ticker} — Implied Volatility Term Structure",
        fontsize=17, fontweight="bold", color="white",
    )
    _legend(ax)
    fig.autofmt_xdate()

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close(fig)
    return output_path


# ════════════════════════════════════════════════════════════════════════
#  MATPLOTLIB — SIMULATED PATHS (static PNG)
# ════════════════════════════════════════════════════════════════════════

def plot_paths_matplotlib(
    paths: np.ndarray,
    strike: float,
    T: float,
    ticker: str = None,
    output_path: str = None,
) -> str:
    """
    Monte Carlo GBM paths against the strike.

    Parameters
    ----------
    paths : (n_paths, n_steps + 1) array from monte_carlo.simulate_paths
    strike : drawn as a horizontal reference line
    T : horizon in years (x-axis)
    """
    if ticker is None:
        ticker = config.TICKER
    output_path = _output_path(output_path, "stock_price_paths.png")

    paths = np.asarray(paths)
    t_axis = np.linspace(0.0, T, paths.shape[1])
    colors = plt.get_cmap(config.COLORMAP)(np.linspace(0, 1, len(paths)))

    fig, ax = plt.subplots(figsize=(config.FIG_WIDTH_2D, config.FIG_HEIGHT_2D))
    _style_axes(fig, ax)

    for path, color in zip(paths, colors):
        ax.plot(t_axis, path, color=color, alpha=config.PATH_ALPHA, linewidth=1)
    ax.axhline(strike, color=config.STRIKE_COLOR, alpha=0.7, linestyle="--",
               linewidth=2, label=f"Strike K={strike:g}")

    ax.set_xlabel("Time (years)", fontsize=13, color="white")
    ax.set_ylabel("Price", fontsize=13, color="white")
    ax.set_title(
        f"{ticker} — Monte Carlo Price Paths ({len(paths)} paths)",
        fontsize=17, fontweight="bold", color="white",
    )
    _legend(ax)

    plt.tight_layout()
    plt.savefig(output_path, dpi=config.DPI, bbox_inches="tight",
                facecolor=config.DARK_BG, edgecolor="none")
    plt.close(fig)
    return output_path


# ════════════════════════════════════════════════════════════════════════
#  PLOTLY — TERM STRUCTURE (interactive HTML)
# ════════════════════════════════════════════════════════════════════════

def plot_term_structure_plotly(
    observations: Sequence[Observation],
    curve: FittedCurve,
    predict_expiry: Optional[int] = None,
    predicted_iv: Optional[float] = None,
    ticker: str = None,
    output_path: str = None,
) -> str:
    """Render the term structure chart as interactive HTML."""
    if ticker is None:
        ticker = config.TICKER
    output_path = _output_path(output_path, f"iv_{curve.family.value}.html")

    obs_df, curve_df = term_structure_frames(observations, curve, predict_expiry)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=curve_df["date"], y=curve_df["iv"],
        mode="lines", name=f"{curve.family.value} fit",
        line=dict(color=config.CURVE_COLOR, width=2.5),
        hovertemplate="%{x|%Y-%m-%d}  IV=%{y:.1%}<extra></extra>",
    ))
    fig.add_trace(go.Scatter(
        x=obs_df["date"], y=obs_df["iv"],
        mode="markers", name="observed",
        marker=dict(color=config.OBS_COLOR, size=9),
        hovertemplate="%{x|%Y-%m-%d}  IV=%{y:.1%}<extra></extra>",
    ))
    if predict_expiry is not None and predicted_iv is not None:
        fig.add_trace(go.Scatter(
            x=_as_dates([predict_expiry]), y=[predicted_iv],
            mode="markers", name="predicted",
            marker=dict(color=config.PREDICT_COLOR, size=14),
            hovertemplate="%{x|%Y-%m-%d}  IV=%{y:.2%}<extra></extra>",
        ))

    fig.update_layout(
        title=dict(
            text=f"<b>{ticker} — IV Term Structure</b>",
            font=dict(size=20, color="white"), x=0.5,
        ),
        xaxis=dict(
            title=dict(text="Expiry", font=dict(size=14, color="#ddd")),
            tickfont=dict(size=11, color="#ccc"),
            gridcolor="rgba(200,200,200,0.1)",
        ),
        yaxis=dict(
            title=dict(text="Implied Volatility (σ)", font=dict(size=14, color="#ddd")),
            tickformat=".0%",
            tickfont=dict(size=11, color="#ccc"),
            gridcolor="rgba(200,200,200,0.1)",
        ),
        plot_bgcolor=config.DARK_BG,
        paper_bgcolor=config.DARK_BG,
        font=dict(color="white"),
        legend=dict(
            x=0.74, y=0.97, bgcolor="rgba(25,25,45,0.85)",
            bordercolor="rgba(255,255,255,0.15)", borderwidth=1,
            font=dict(size=12),
        ),
        width=1000, height=550,
        margin=dict(l=60, r=30, t=60, b=50),
    )

    fig.write_html(output_path)
    return output_path
