"""Recode raw NHANES fields into the canonical analysis variables."""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
import pandas as pd

from .config import CONFIG
from .schema import DERIVED_SCHEMA, check_schema, schema_columns
from .variables import DERIVED_VARIABLES, SUBJECT_ID


def normalize_code(x: object) -> object:
    """Return an int for numeric-looking codes, a lower-cased label otherwise.

    ``1``, ``1.0``, ``"1"`` and ``" 1 "`` all normalize to ``1``; ``" Yes"``
    normalizes to ``"yes"``. Missing values and blanks return None.
    """
    if x is None:
        return None
    if isinstance(x, bytes):
        x = x.decode("utf-8", errors="replace")
    if isinstance(x, str):
        s = x.strip()
        if not s:
            return None
        try:
            num = float(s)
        except ValueError:
            return s.lower()
        x = num
    if isinstance(x, (bool, np.bool_)):
        return None
    if isinstance(x, (int, np.integer)):
        return int(x)
    if isinstance(x, (float, np.floating)):
        if not np.isfinite(x) or float(x) != int(x):
            return None
        return int(x)
    if pd.isna(x):
        return None
    return str(x).strip().lower() or None


def recode_binary(series: pd.Series, codes: Mapping[object, int]) -> pd.Series:
    """Map yes/no codes to 1.0/0.0; every other code becomes NaN."""
    def _one(x: object) -> float:
        key = normalize_code(x)
        if key is None or key not in codes:
            return np.nan
        return float(codes[key])

    return series.map(_one).astype(float)


def recode_categorical(
    series: pd.Series,
    codes: Mapping[object, str],
    levels: tuple[str, ...],
) -> pd.Series:
    """Map codes to labels with a fixed level order; unknown codes become missing."""
    def _one(x: object) -> object:
        key = normalize_code(x)
        if key is None:
            return np.nan
        return codes.get(key, np.nan)

    return pd.Series(
        pd.Categorical(series.map(_one), categories=list(levels)),
        index=series.index,
    )


def derive_age_band(age: pd.Series, edges: tuple[float, ...], labels: tuple[str, ...]) -> pd.Series:
    """Partition age into right-closed bands; values outside every band become missing."""
    return pd.cut(
        pd.to_numeric(age, errors="coerce"),
        bins=list(edges),
        labels=list(labels),
        right=True,
    )


def _source_column(df: pd.DataFrame, field: str, notes: list[str] | None) -> pd.Series:
    if field in df.columns:
        return df[field]
    msg = f"derive_variables: source field {field} missing; derived column set to missing."
    logging.warning(msg)
    if notes is not None:
        notes.append(msg)
    return pd.Series(np.nan, index=df.index, dtype=float)


def derive_variables(
    merged: pd.DataFrame,
    config: dict | None = None,
    notes: list[str] | None = None,
) -> pd.DataFrame:
    """Build the canonical derived table from the merged raw table.

    The output has exactly the derived schema columns and one row per input
    row. Raw fields missing from the merged table yield all-missing columns.

    Raises:
        ValueError: if the identifier is absent or no row has both the
            exposure and the outcome known.
    """
    cfg = CONFIG if config is None else config
    id_field = cfg["id_field"]
    if id_field not in merged.columns:
        raise ValueError(f"derive_variables: identifier {id_field} missing from merged table.")

    out = pd.DataFrame(index=merged.index)
    out[SUBJECT_ID["canonical"]] = merged[id_field]

    for var in DERIVED_VARIABLES:
        raw = _source_column(merged, var["field"], notes)
        name = var["canonical"]
        if var["kind"] == "binary":
            out[name] = recode_binary(raw, var["codes"])
        elif var["kind"] == "categorical":
            out[name] = recode_categorical(raw, var["codes"], tuple(var["levels"]))
        else:
            out[name] = pd.to_numeric(raw, errors="coerce").astype(float)

    out = out[schema_columns(DERIVED_SCHEMA)]
    check_schema(out, DERIVED_SCHEMA, stage="derive_variables")

    exposure, outcome = cfg["exposure"], cfg["outcome"]
    n_overlap = int((out[exposure].notna() & out[outcome].notna()).sum())
    logging.info("Rows with both %s and %s known: %s of %s", exposure, outcome, n_overlap, len(out))
    if n_overlap == 0:
        raise ValueError("no overlap between exposure and outcome — cannot proceed")
    return out
