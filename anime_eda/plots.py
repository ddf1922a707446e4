"""
Figures for the anime score report.

Each function draws one SVG and returns its path. Callers choose the output
directory; nothing is shown interactively.
"""

import logging
from pathlib import Path
from typing import List, Optional

# Select a non-interactive backend before pyplot is imported so rendering
# works in headless runs and under pytest.
import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .modeling import BoxCoxProfile, DiagnosticsReport

logger = logging.getLogger(__name__)


def _save(fig, output_path: Path) -> str:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(output_path, format="svg")
    plt.close(fig)
    logger.info("Wrote plot: %s", str(output_path))
    return str(output_path)


def plot_histogram(
    values: pd.Series,
    output_path: Path,
    title: str,
    xlabel: str,
    bins: int = 40,
) -> str:
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.hist(values.dropna().to_numpy(dtype=float), bins=bins, color="#4c72b0", edgecolor="white")
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Count")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_score_vs_scored_by(df: pd.DataFrame, output_path: Path) -> str:
    """Score against number of ratings, log-scaled x."""
    x = pd.to_numeric(df["scored_by"], errors="coerce")
    y = pd.to_numeric(df["score"], errors="coerce")
    mask = x.notna() & y.notna() & (x > 0)
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.scatter(x[mask], y[mask], s=6, alpha=0.35, color="#55a868")
    ax.set_xscale("log")
    ax.set_title("Score vs number of ratings")
    ax.set_xlabel("scored_by (log scale)")
    ax.set_ylabel("score")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_genre_counts(counts: pd.Series, output_path: Path, top: int = 25) -> str:
    data = counts.sort_values(ascending=False).head(top)[::-1]
    fig, ax = plt.subplots(figsize=(8, max(4, 0.3 * len(data) + 1)))
    ax.barh(data.index.astype(str), data.to_numpy(), color="#8172b2")
    ax.set_title(f"Most common genres (top {len(data)})")
    ax.set_xlabel("Records")
    return _save(fig, output_path)


def plot_boxcox_profile(profile: BoxCoxProfile, output_path: Path) -> str:
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(profile.grid, profile.loglik, color="#4c72b0")
    ax.axvline(profile.lam, color="#c44e52", linestyle="--", label=f"λ = {profile.lam:.3f}")
    ax.axvspan(profile.ci_low, profile.ci_high, color="#c44e52", alpha=0.12, label="95% interval")
    ax.set_title("Box-Cox profile log-likelihood")
    ax.set_xlabel("λ")
    ax.set_ylabel("log-likelihood")
    ax.legend(loc="best")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_residuals_vs_fitted(diag: DiagnosticsReport, output_path: Path) -> str:
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.scatter(diag.fitted, diag.residuals, s=6, alpha=0.4, color="#4c72b0")
    ax.axhline(0.0, color="black", linewidth=0.8)
    ax.set_title(f"Residuals vs fitted: {diag.label}")
    ax.set_xlabel("Fitted value")
    ax.set_ylabel("Residual")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def plot_leverage(diag: DiagnosticsReport, output_path: Path, n_params: int) -> str:
    """Leave-one-out residual against leverage with the 2p/n guide line."""
    n = len(diag.leverage)
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.scatter(diag.leverage, diag.loo_residuals, s=6, alpha=0.4, color="#dd8452")
    if n:
        ax.axvline(2.0 * n_params / n, color="#c44e52", linestyle="--", label="2p/n")
        ax.legend(loc="best")
    ax.set_title("Leave-one-out residual vs leverage")
    ax.set_xlabel("Leverage (hat diagonal)")
    ax.set_ylabel("LOO residual")
    ax.grid(True, alpha=0.3)
    return _save(fig, output_path)


def render_report_plots(
    df_filtered: pd.DataFrame,
    genre_counts: pd.Series,
    diag: DiagnosticsReport,
    n_params: int,
    short_hash: str,
    output_dir: str | Path,
    profile: Optional[BoxCoxProfile] = None,
    transformed_column: Optional[str] = None,
) -> List[str]:
    """
    Render the full figure set into output_dir. Returns artifact paths.

    Filenames: plot-{short_hash}-{ii}-{name}.svg with a zero-based index.
    """
    out = Path(output_dir)
    jobs = [
        ("score_hist", lambda p: plot_histogram(df_filtered["score"], p, "Score distribution", "score")),
        ("score_vs_scored_by", lambda p: plot_score_vs_scored_by(df_filtered, p)),
        ("genre_counts", lambda p: plot_genre_counts(genre_counts, p)),
    ]
    if transformed_column and transformed_column in df_filtered.columns:
        jobs.append(
            (
                "score_transformed_hist",
                lambda p: plot_histogram(
                    df_filtered[transformed_column], p, "Box-Cox transformed score", transformed_column
                ),
            )
        )
    if profile is not None and np.isfinite(profile.loglik).any():
        jobs.append(("boxcox_profile", lambda p: plot_boxcox_profile(profile, p)))
    jobs.append(("residuals_vs_fitted", lambda p: plot_residuals_vs_fitted(diag, p)))
    jobs.append(("leverage", lambda p: plot_leverage(diag, p, n_params)))

    artifact_paths: List[str] = []
    for idx, (name, draw) in enumerate(jobs):
        artifact_paths.append(draw(out / f"plot-{short_hash}-{idx:02}-{name}.svg"))
    return artifact_paths
