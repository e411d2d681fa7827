"""Full outer join of per-subject survey tables on the identifier."""

from __future__ import annotations

import logging
from functools import reduce
from typing import Mapping, Sequence, Union

import pandas as pd

_DUP_SUFFIX = "__dup"

Tables = Union[Mapping[str, pd.DataFrame], Sequence[pd.DataFrame]]


def _named_tables(tables: Tables) -> list[tuple[str, pd.DataFrame]]:
    if isinstance(tables, Mapping):
        return [(str(name), df) for name, df in tables.items()]
    return [(f"table_{i}", df) for i, df in enumerate(tables)]


def _dedupe_ids(name: str, df: pd.DataFrame, id_column: str) -> pd.DataFrame:
    dup_mask = df[id_column].duplicated(keep="first")
    n_dup = int(dup_mask.sum())
    if n_dup:
        logging.warning("%s: dropping %s duplicate %s rows (first kept).", name, n_dup, id_column)
        return df.loc[~dup_mask]
    return df


def _outer_join(left: pd.DataFrame, right: pd.DataFrame, id_column: str) -> pd.DataFrame:
    merged = left.merge(right, on=id_column, how="outer", suffixes=("", _DUP_SUFFIX))
    # Coalesce columns present in both: the earlier table wins where it has a value.
    for col in [c for c in merged.columns if c.endswith(_DUP_SUFFIX)]:
        base = col[: -len(_DUP_SUFFIX)]
        merged[base] = merged[base].combine_first(merged[col])
        merged = merged.drop(columns=col)
    return merged


def merge_tables(tables: Tables, id_column: str) -> pd.DataFrame:
    """Left-reduce tables into one wide table keyed on id_column.

    The result holds the union of subjects and the union of columns; values
    are missing wherever a table lacked that subject or column.

    Raises:
        ValueError: if no tables are given, or a table lacks id_column.
    """
    named = _named_tables(tables)
    if not named:
        raise ValueError("no input data")

    for name, df in named:
        if id_column not in df.columns:
            raise ValueError(f"merge precondition: identifier missing ({id_column} not in {name})")

    frames = [_dedupe_ids(name, df, id_column) for name, df in named]
    merged = reduce(lambda left, right: _outer_join(left, right, id_column), frames)
    merged = merged.sort_values(id_column, kind="mergesort").reset_index(drop=True)

    logging.info(
        "Merged %s tables: subjects=%s columns=%s",
        len(frames),
        len(merged),
        len(merged.columns),
    )
    return merged
