"""Figures for the gout / coronary heart disease analysis."""

from __future__ import annotations

import logging

import matplotlib

matplotlib.use("Agg")  # headless
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
from matplotlib.figure import Figure  # noqa: E402

from .analysis import ModelResult  # noqa: E402


def _has_columns(df: pd.DataFrame | None, cols: list[str]) -> bool:
    return df is not None and not df.empty and set(cols).issubset(df.columns)


def plot_prevalence_by_exposure(df: pd.DataFrame, exposure_col: str, outcome: str) -> Figure | None:
    if not _has_columns(df, [exposure_col, outcome]):
        return None
    prev = df.groupby(exposure_col, observed=False)[outcome].mean()

    fig, ax = plt.subplots(figsize=(6, 5))
    ax.bar([str(x) for x in prev.index], prev.fillna(0.0).values * 100.0, color=["#4C72B0", "#DD8452"][: len(prev)])
    ax.set_xlabel(exposure_col)
    ax.set_ylabel(f"{outcome} prevalence (%)")
    ax.set_title(f"{outcome.upper()} prevalence by {exposure_col}")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    return fig


def plot_prevalence_by_age_group(
    df: pd.DataFrame,
    exposure_col: str,
    outcome: str,
    age_col: str = "age_group",
) -> Figure | None:
    if not _has_columns(df, [exposure_col, outcome, age_col]):
        return None
    prev = df.groupby([age_col, exposure_col], observed=False)[outcome].mean().unstack(exposure_col)
    if prev.empty:
        return None

    fig, ax = plt.subplots(figsize=(8, 5))
    x = np.arange(len(prev.index))
    width = 0.8 / max(len(prev.columns), 1)
    for i, level in enumerate(prev.columns):
        ax.bar(x + i * width, prev[level].fillna(0.0).values * 100.0, width, label=f"{exposure_col}={level}")
    ax.set_xticks(x + width * (len(prev.columns) - 1) / 2)
    ax.set_xticklabels([str(v) for v in prev.index])
    ax.set_xlabel(age_col)
    ax.set_ylabel(f"{outcome} prevalence (%)")
    ax.set_title(f"{outcome.upper()} prevalence by {age_col} and {exposure_col}")
    ax.legend()
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    return fig


def plot_bmi_distribution(df: pd.DataFrame, exposure_col: str, bmi_col: str = "bmi") -> Figure | None:
    if not _has_columns(df, [exposure_col, bmi_col]):
        return None
    groups = [
        (str(level), g[bmi_col].dropna().to_numpy())
        for level, g in df.groupby(exposure_col, observed=False)
    ]
    groups = [(label, values) for label, values in groups if len(values)]
    if not groups:
        return None

    fig, ax = plt.subplots(figsize=(6, 5))
    ax.boxplot([values for _, values in groups])
    ax.set_xticks(range(1, len(groups) + 1))
    ax.set_xticklabels([label for label, _ in groups])
    ax.set_xlabel(exposure_col)
    ax.set_ylabel("BMI (kg/m^2)")
    ax.set_title(f"BMI by {exposure_col}")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    return fig


def plot_forest(forest_ready: pd.DataFrame, title: str = "Gout odds ratio for CHD by model") -> Figure | None:
    if not _has_columns(forest_ready, ["model", "estimate", "ci_low", "ci_high"]):
        return None
    data = forest_ready.iloc[::-1].reset_index(drop=True)
    y = np.arange(len(data))
    err = np.vstack([data["estimate"] - data["ci_low"], data["ci_high"] - data["estimate"]])

    fig, ax = plt.subplots(figsize=(8, 1.0 + 0.6 * len(data)))
    ax.errorbar(data["estimate"], y, xerr=err, fmt="o", capsize=3)
    ax.axvline(1.0, linestyle="--", color="grey", alpha=0.7)
    ax.set_xscale("log")
    ax.set_yticks(y)
    ax.set_yticklabels(data["model"])
    ax.set_xlabel("Odds ratio (95% CI, log scale)")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_residuals(result: ModelResult | None) -> Figure | None:
    """Deviance residuals against fitted probability for a fitted model."""
    if result is None or not result.fitted:
        return None
    fit = result.fit
    fitted = np.asarray(fit.predict())
    resid = np.asarray(fit.resid_dev)

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(fitted, resid, s=12, alpha=0.5)
    ax.axhline(0.0, linestyle="--", color="red", alpha=0.7)
    ax.set_xlabel("Fitted probability")
    ax.set_ylabel("Deviance residual")
    ax.set_title(f"Residuals vs fitted: {result.name}")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def build_figures(
    cohort_df: pd.DataFrame,
    models: dict[str, ModelResult],
    forest_ready: pd.DataFrame,
    *,
    exposure_col: str,
    outcome: str,
    notes: list[str] | None = None,
) -> dict[str, Figure | None]:
    """Return {file_name: figure or None} for every figure the run exports.

    A builder that raises leaves None in its slot and records a warning.
    """
    builders = {
        "chd_prevalence_by_gout.png": lambda: plot_prevalence_by_exposure(cohort_df, exposure_col, outcome),
        "chd_prevalence_by_age_group.png": lambda: plot_prevalence_by_age_group(cohort_df, exposure_col, outcome),
        "bmi_by_gout.png": lambda: plot_bmi_distribution(cohort_df, exposure_col),
        "forest_gout_odds_ratios.png": lambda: plot_forest(forest_ready),
        "residuals_adjusted.png": lambda: plot_residuals(models.get("adjusted")),
    }
    figures: dict[str, Figure | None] = {}
    for file_name, build in builders.items():
        try:
            figures[file_name] = build()
        except (ValueError, RuntimeError, TypeError, KeyError) as exc:
            msg = f"Figure {file_name} not built: {exc}"
            logging.warning(msg)
            if notes is not None:
                notes.append(msg)
            figures[file_name] = None
    return figures
