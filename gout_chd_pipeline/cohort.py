"""Cohort construction for the gout / coronary heart disease analysis."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import CONFIG
from .derive import derive_age_band
from .schema import COHORT_SCHEMA, check_schema, schema_columns
from .variables import AGE_GROUP, BINARY_LABELS, BINARY_VARIABLES, status_column


@dataclass
class CohortData:
    cohort_flow: pd.DataFrame
    analytic_df: pd.DataFrame


def _note(msg: str, notes: list[str] | None) -> None:
    logging.warning(msg)
    if notes is not None:
        notes.append(msg)


def filter_by_age(df: pd.DataFrame, min_age: float) -> pd.DataFrame:
    # Missing age is kept here; age-adjusted models drop it via complete cases.
    age = pd.to_numeric(df["age"], errors="coerce")
    keep = (age >= min_age) | age.isna()
    return df.loc[keep].reset_index(drop=True)


def filter_known_exposure_outcome(df: pd.DataFrame, exposure: str, outcome: str) -> pd.DataFrame:
    keep = df[exposure].notna() & df[outcome].notna()
    return df.loc[keep].reset_index(drop=True)


def _status_factor(values: pd.Series) -> pd.Series:
    labels = pd.Series(np.where(values == 1, BINARY_LABELS[1], BINARY_LABELS[0]), index=values.index)
    labels = labels.where(values.notna())
    return pd.Series(pd.Categorical(labels, categories=list(BINARY_LABELS)), index=values.index)


def add_factor_columns(df: pd.DataFrame, config: dict | None = None) -> pd.DataFrame:
    """Attach No/Yes status factors for every binary variable plus the age band."""
    cfg = CONFIG if config is None else config
    out = df.copy()
    for var in BINARY_VARIABLES:
        name = var["canonical"]
        out[status_column(name)] = _status_factor(out[name])
    out[AGE_GROUP["canonical"]] = derive_age_band(
        out["age"],
        tuple(cfg["age_band_edges"]),
        tuple(cfg["age_band_labels"]),
    )
    return out


def relevel(
    df: pd.DataFrame,
    column: str,
    reference: str,
    notes: list[str] | None = None,
) -> pd.DataFrame:
    """Move reference to the first category of column.

    A missing or non-categorical column, or a reference level nobody has,
    leaves the frame unchanged and records a warning.
    """
    if column not in df.columns:
        _note(f"relevel: column {column} not present; reference {reference!r} not set.", notes)
        return df
    col = df[column]
    if not isinstance(col.dtype, pd.CategoricalDtype):
        _note(f"relevel: column {column} is not categorical; reference {reference!r} not set.", notes)
        return df
    if not (col == reference).any():
        _note(f"relevel: reference level {reference!r} not observed in {column}; level order unchanged.", notes)
        return df

    categories = [reference, *[c for c in col.cat.categories if c != reference]]
    out = df.copy()
    out[column] = col.cat.reorder_categories(categories)
    return out


def _flow_row(step: str, df: pd.DataFrame) -> dict[str, object]:
    return {"step": step, "n": int(len(df))}


def build_cohort(
    derived: pd.DataFrame,
    config: dict | None = None,
    notes: list[str] | None = None,
) -> CohortData:
    """Apply the age and known-exposure/outcome filters and build model factors.

    Running build_cohort on its own analytic_df returns the same frame.
    """
    cfg = CONFIG if config is None else config
    exposure, outcome = cfg["exposure"], cfg["outcome"]

    flow = [_flow_row("01_merged_subjects", derived)]
    df = filter_by_age(derived, float(cfg["min_age"]))
    flow.append(_flow_row(f"02_age_ge_{cfg['min_age']}_or_missing", df))
    df = filter_known_exposure_outcome(df, exposure, outcome)
    flow.append(_flow_row(f"03_known_{exposure}_and_{outcome}", df))

    df = add_factor_columns(df, cfg)
    if not df.empty:
        for column, reference in cfg["reference_levels"].items():
            df = relevel(df, column, reference, notes)

    df = df[schema_columns(COHORT_SCHEMA)]
    check_schema(df, COHORT_SCHEMA, stage="build_cohort")

    logging.info("Analysis cohort: %s participants (from %s).", len(df), len(derived))
    if df.empty:
        _note("Analysis cohort is empty; descriptive and model steps will be skipped.", notes)

    return CohortData(cohort_flow=pd.DataFrame(flow), analytic_df=df)
