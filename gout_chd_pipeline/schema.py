"""Typed column schemas checked at each pipeline stage boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import pandas as pd

from .variables import (
    AGE_GROUP,
    BINARY_LABELS,
    BINARY_VARIABLES,
    DERIVED_VARIABLES,
    SUBJECT_ID,
    status_column,
)


class FieldKind(str, Enum):
    IDENTIFIER = "identifier"
    BINARY = "binary"
    CATEGORICAL = "categorical"
    CONTINUOUS = "continuous"


@dataclass(frozen=True)
class SchemaField:
    name: str
    kind: FieldKind
    levels: tuple[str, ...] = ()


def _field_from_definition(var: dict) -> SchemaField:
    kind = FieldKind(var["kind"])
    return SchemaField(var["canonical"], kind, tuple(var.get("levels", ())))


DERIVED_SCHEMA: tuple[SchemaField, ...] = (
    SchemaField(SUBJECT_ID["canonical"], FieldKind.IDENTIFIER),
    *(_field_from_definition(var) for var in DERIVED_VARIABLES),
)

COHORT_SCHEMA: tuple[SchemaField, ...] = (
    *DERIVED_SCHEMA,
    *(
        SchemaField(status_column(var["canonical"]), FieldKind.CATEGORICAL, BINARY_LABELS)
        for var in BINARY_VARIABLES
    ),
    SchemaField(AGE_GROUP["canonical"], FieldKind.CATEGORICAL, tuple(AGE_GROUP["levels"])),
)


def schema_columns(schema: tuple[SchemaField, ...]) -> list[str]:
    return [f.name for f in schema]


def check_schema(df: pd.DataFrame, schema: tuple[SchemaField, ...], *, stage: str) -> None:
    """Raise ValueError if df does not conform to schema.

    Every field must be present. Binary fields may only hold 0, 1 or missing;
    categorical fields must be pandas Categoricals whose observed values lie in
    the declared levels; continuous fields must be numeric.
    """
    missing = [f.name for f in schema if f.name not in df.columns]
    if missing:
        raise ValueError(f"{stage}: schema violation, missing columns: {', '.join(missing)}")

    problems: list[str] = []
    for f in schema:
        col = df[f.name]
        if f.kind is FieldKind.BINARY:
            observed = set(pd.unique(col.dropna()))
            if not observed <= {0, 1}:
                problems.append(f"{f.name} has non-binary values {sorted(observed - {0, 1})}")
        elif f.kind is FieldKind.CATEGORICAL:
            if not isinstance(col.dtype, pd.CategoricalDtype):
                problems.append(f"{f.name} is not categorical (dtype={col.dtype})")
            elif f.levels:
                unexpected = set(col.dropna().unique()) - set(f.levels)
                if unexpected:
                    problems.append(f"{f.name} has undeclared levels {sorted(map(str, unexpected))}")
        elif f.kind is FieldKind.CONTINUOUS:
            if not pd.api.types.is_numeric_dtype(col):
                problems.append(f"{f.name} is not numeric (dtype={col.dtype})")

    if problems:
        raise ValueError(f"{stage}: schema violation, " + "; ".join(problems))
