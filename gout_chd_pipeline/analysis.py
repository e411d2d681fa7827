"""Logistic models, bivariable association and descriptive tables."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy.stats import chi2_contingency, random_table
from statsmodels.tools.sm_exceptions import PerfectSeparationError, PerfectSeparationWarning

from .config import CONFIG
from .variables import BINARY_LABELS, status_column

ADJUSTMENT_COVARIATES = (
    "age",
    "gender",
    "race",
    "bmi",
    "diabetes_status",
    "smoking_status",
    "hypertension_status",
)
SECONDARY_COVARIATES = ("age", "gender", "race", "bmi")

TABLE1_NUMERIC = ["age", "bmi"]
TABLE1_CATEGORICAL = [
    "gender",
    "race",
    "age_group",
    "chd_status",
    "diabetes_status",
    "smoking_status",
    "hypertension_status",
]

# Tolerance R's chisq.test applies when counting simulated statistics >= observed.
_SIM_TOLERANCE = 64 * np.finfo(float).eps


class ModelState(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    FITTED = "fitted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ModelSpec:
    """Declarative description of one logistic model.

    subset is an optional (column, level) rule applied before complete cases
    are taken. When drop_degenerate_factors is set, categorical covariates with
    too few observed levels are excluded instead of skipping the model; names
    in protected are never excluded.
    """

    name: str
    outcome: str
    predictors: tuple[str, ...]
    min_rows: int
    min_levels: int = 2
    subset: tuple[str, str] | None = None
    interactions: tuple[tuple[str, str], ...] = ()
    drop_degenerate_factors: bool = False
    protected: tuple[str, ...] = ()

    def required_columns(self) -> list[str]:
        cols = [self.outcome, *self.predictors]
        for pair in self.interactions:
            cols.extend(pair)
        if self.subset is not None:
            cols.append(self.subset[0])
        return list(dict.fromkeys(cols))


@dataclass
class ModelResult:
    spec: ModelSpec
    state: ModelState = ModelState.PENDING
    predictors: tuple[str, ...] = ()
    interactions: tuple[tuple[str, str], ...] = ()
    excluded: tuple[str, ...] = ()
    n: int = 0
    events: int = 0
    formula: str | None = None
    data: pd.DataFrame | None = None
    fit: object | None = None
    coefficients: pd.DataFrame = field(default_factory=pd.DataFrame)
    reason: str | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def fitted(self) -> bool:
        return self.state is ModelState.FITTED


@dataclass
class ChiSquareResult:
    statistic: float
    dof: float
    p_value: float
    method: str
    min_expected: float
    simulated: bool
    n_simulations: int = 0


@dataclass
class AnalysisBundle:
    table1: pd.DataFrame
    contingency: pd.DataFrame | None
    chi_square: ChiSquareResult | None
    models: dict[str, ModelResult]
    model_summary: pd.DataFrame
    coefficients: pd.DataFrame
    forest_ready: pd.DataFrame
    notes: list[str]


def _note(msg: str, notes: list[str] | None) -> None:
    logging.warning(msg)
    if notes is not None:
        notes.append(msg)


def _is_categorical(series: pd.Series) -> bool:
    return isinstance(series.dtype, pd.CategoricalDtype)


def build_model_specs(config: dict | None = None) -> list[ModelSpec]:
    cfg = CONFIG if config is None else config
    min_rows = cfg["min_rows"]
    min_levels = int(cfg["min_factor_levels"])
    outcome = cfg["outcome"]
    exposure = status_column(cfg["exposure"])
    adjusted = (exposure, *ADJUSTMENT_COVARIATES)
    without_gender = tuple(p for p in adjusted if p != "gender")
    age_banded = tuple("age_group" if p == "age" else p for p in adjusted)

    return [
        ModelSpec("unadjusted", outcome, (exposure,), int(min_rows["unadjusted"]), min_levels),
        ModelSpec(
            "adjusted",
            outcome,
            adjusted,
            int(min_rows["adjusted"]),
            min_levels,
            drop_degenerate_factors=True,
            protected=(exposure,),
        ),
        ModelSpec(
            "interaction",
            outcome,
            adjusted,
            int(min_rows["interaction"]),
            min_levels,
            interactions=((exposure, "gender"),),
        ),
        ModelSpec(
            "stratified_male",
            outcome,
            without_gender,
            int(min_rows["stratified_male"]),
            min_levels,
            subset=("gender", "Male"),
        ),
        ModelSpec(
            "stratified_female",
            outcome,
            without_gender,
            int(min_rows["stratified_female"]),
            min_levels,
            subset=("gender", "Female"),
        ),
        ModelSpec(
            "sensitivity_age_group",
            outcome,
            age_banded,
            int(min_rows["sensitivity_age_group"]),
            min_levels,
        ),
        ModelSpec(
            "secondary_diabetes",
            "diabetes",
            (exposure, *SECONDARY_COVARIATES),
            int(min_rows["secondary_diabetes"]),
            min_levels,
        ),
    ]


def complete_case_subset(df: pd.DataFrame, spec: ModelSpec) -> pd.DataFrame:
    """Rows passing the subset rule with every model column observed."""
    data = df
    if spec.subset is not None:
        column, level = spec.subset
        data = data.loc[data[column] == level]
    cols = [c for c in spec.required_columns() if spec.subset is None or c != spec.subset[0]]
    data = data.dropna(subset=cols).copy()
    for col in cols:
        if _is_categorical(data[col]):
            data[col] = data[col].cat.remove_unused_categories()
    return data.reset_index(drop=True)


def _skip(result: ModelResult, reason: str, notes: list[str] | None) -> ModelResult:
    result.state = ModelState.SKIPPED
    result.reason = reason
    _note(f"{result.name}: skipped ({reason}).", notes)
    return result


def validate_model(df: pd.DataFrame, spec: ModelSpec, notes: list[str] | None = None) -> ModelResult:
    """Run the precondition checks in order; return a VALIDATED or SKIPPED result."""
    result = ModelResult(spec=spec, predictors=spec.predictors, interactions=spec.interactions)

    missing = [c for c in spec.required_columns() if c not in df.columns]
    if missing:
        return _skip(result, f"missing columns: {', '.join(missing)}", notes)
    if spec.subset is not None:
        column, level = spec.subset
        if not (df[column] == level).any():
            return _skip(result, f"subset level {level!r} not observed in {column}", notes)

    data = complete_case_subset(df, spec)
    result.n = int(len(data))
    result.events = int(data[spec.outcome].sum())
    if result.n < spec.min_rows:
        return _skip(result, f"{result.n} complete cases, {spec.min_rows} required", notes)

    if data[spec.outcome].nunique() < 2:
        return _skip(result, f"outcome {spec.outcome} has a single observed value", notes)

    degenerate = [
        p for p in spec.predictors if _is_categorical(data[p]) and data[p].nunique() < spec.min_levels
    ]
    if degenerate:
        if not spec.drop_degenerate_factors:
            return _skip(result, f"fewer than {spec.min_levels} observed levels in {', '.join(degenerate)}", notes)
        blocked = [p for p in degenerate if p in spec.protected]
        if blocked:
            return _skip(result, f"fewer than {spec.min_levels} observed levels in {', '.join(blocked)}", notes)
        result.excluded = tuple(degenerate)
        result.predictors = tuple(p for p in spec.predictors if p not in degenerate)
        result.interactions = tuple(
            pair for pair in spec.interactions if not set(pair) & set(degenerate)
        )
        _note(f"{spec.name}: excluded single-level covariates {', '.join(degenerate)}.", notes)

    result.data = data
    result.formula = build_formula(spec.outcome, result.predictors, result.interactions)
    result.state = ModelState.VALIDATED
    return result


def build_formula(outcome: str, predictors, interactions=()) -> str:
    terms = list(predictors) + [f"{a}:{b}" for a, b in interactions]
    return f"{outcome} ~ " + " + ".join(terms)


def coefficient_table(fit, label: str) -> pd.DataFrame:
    conf = fit.conf_int()
    out = pd.DataFrame(
        {
            "model": label,
            "term": fit.params.index,
            "coef": fit.params.values,
            "std_error": fit.bse.values,
            "z_value": fit.tvalues.values,
            "p_value": fit.pvalues.values,
            "ci_low": conf[0].values,
            "ci_high": conf[1].values,
            "odds_ratio": np.exp(fit.params.values),
            "or_ci_low": np.exp(conf[0].values),
            "or_ci_high": np.exp(conf[1].values),
        }
    )
    return out


def fit_model(result: ModelResult, notes: list[str] | None = None) -> ModelResult:
    """Fit a VALIDATED model by maximum likelihood; failures end as SKIPPED."""
    if result.state is not ModelState.VALIDATED:
        raise ValueError(f"{result.name}: cannot fit a model in state {result.state.value}")

    logging.info("%s: n=%s events=%s formula=%s", result.name, result.n, result.events, result.formula)
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("error", category=PerfectSeparationWarning)
            fit = smf.logit(formula=result.formula, data=result.data).fit(disp=False)
    except (
        PerfectSeparationError,
        PerfectSeparationWarning,
        np.linalg.LinAlgError,
        ValueError,
        OverflowError,
    ) as exc:
        return _skip(result, f"fit failed: {exc}", notes)

    if not bool(fit.mle_retvals.get("converged", True)):
        _note(f"{result.name}: maximum likelihood did not converge; estimates reported as-is.", notes)

    result.fit = fit
    result.coefficients = coefficient_table(fit, result.name)
    result.state = ModelState.FITTED
    return result


def run_model(df: pd.DataFrame, spec: ModelSpec, notes: list[str] | None = None) -> ModelResult:
    result = validate_model(df, spec, notes)
    if result.state is ModelState.VALIDATED:
        result = fit_model(result, notes)
    return result


def run_models(
    df: pd.DataFrame,
    specs: list[ModelSpec],
    notes: list[str] | None = None,
) -> dict[str, ModelResult]:
    return {spec.name: run_model(df, spec, notes) for spec in specs}


def model_summary_table(models: dict[str, ModelResult]) -> pd.DataFrame:
    rows: list[dict[str, object]] = []
    for result in models.values():
        row: dict[str, object] = {
            "model": result.name,
            "state": result.state.value,
            "outcome": result.spec.outcome,
            "formula": result.formula,
            "n": result.n,
            "events": result.events,
            "min_rows": result.spec.min_rows,
            "excluded_predictors": ";".join(result.excluded),
            "reason": result.reason or "",
            "log_likelihood": np.nan,
            "deviance": np.nan,
            "null_deviance": np.nan,
            "aic": np.nan,
            "bic": np.nan,
            "pseudo_r2": np.nan,
            "converged": np.nan,
        }
        if result.fitted:
            fit = result.fit
            row.update(
                {
                    "log_likelihood": float(fit.llf),
                    "deviance": float(-2.0 * fit.llf),
                    "null_deviance": float(-2.0 * fit.llnull),
                    "aic": float(fit.aic),
                    "bic": float(fit.bic),
                    "pseudo_r2": float(fit.prsquared),
                    "converged": bool(fit.mle_retvals.get("converged", True)),
                }
            )
        rows.append(row)
    return pd.DataFrame(rows)


def combined_coefficients(models: dict[str, ModelResult]) -> pd.DataFrame:
    frames = [r.coefficients for r in models.values() if r.fitted and not r.coefficients.empty]
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True, sort=False)


def build_forest_ready(coefficients: pd.DataFrame, exposure_term: str) -> pd.DataFrame:
    """Exposure odds ratio from every fitted model, one row per model."""
    if coefficients.empty or "term" not in coefficients.columns:
        return pd.DataFrame()
    tmp = coefficients.loc[coefficients["term"] == exposure_term]
    tmp = tmp[["model", "term", "odds_ratio", "or_ci_low", "or_ci_high", "p_value"]]
    return tmp.rename(columns={"odds_ratio": "estimate", "or_ci_low": "ci_low", "or_ci_high": "ci_high"}).reset_index(drop=True)


def build_contingency_table(df: pd.DataFrame, exposure_col: str, outcome_col: str) -> pd.DataFrame:
    """2x2 counts, exposure No/Yes by outcome No/Yes; both levels always present."""
    table = pd.crosstab(df[exposure_col], df[outcome_col])
    table = table.reindex(index=list(BINARY_LABELS), columns=list(BINARY_LABELS), fill_value=0)
    table.index.name = exposure_col
    table.columns.name = outcome_col
    return table.astype(int)


def _pearson_statistic(observed: np.ndarray, expected: np.ndarray) -> np.ndarray:
    return ((observed - expected) ** 2 / expected).sum(axis=(-2, -1))


def chi_square_test(
    table: pd.DataFrame,
    config: dict | None = None,
    notes: list[str] | None = None,
) -> ChiSquareResult | None:
    """Chi-squared test of independence with continuity correction.

    When any expected count falls below the configured minimum the p-value is
    instead estimated from random tables sharing the observed margins. Returns
    None when a margin is entirely zero.
    """
    cfg = CONFIG if config is None else config
    observed = table.to_numpy(dtype=int)
    row_sums = observed.sum(axis=1)
    col_sums = observed.sum(axis=0)
    if (row_sums == 0).any() or (col_sums == 0).any():
        _note("Chi-squared test not computed: contingency table has an all-zero row or column.", notes)
        return None

    stat, p_value, dof, expected = chi2_contingency(observed, correction=True)
    min_expected = float(expected.min())
    if min_expected >= float(cfg["chi2_min_expected"]):
        return ChiSquareResult(
            statistic=float(stat),
            dof=float(dof),
            p_value=float(p_value),
            method="Pearson chi-squared with Yates continuity correction",
            min_expected=min_expected,
            simulated=False,
        )

    n_sim = int(cfg["chi2_simulations"])
    _note(
        f"Chi-squared approximation may be incorrect (minimum expected count {min_expected:.2f}); "
        f"p-value simulated from {n_sim} tables.",
        notes,
    )
    rng = np.random.default_rng(int(cfg["random_seed"]))
    sims = random_table(row_sums, col_sums, seed=rng).rvs(size=n_sim)
    obs_stat = float(_pearson_statistic(observed.astype(float), expected))
    sim_stats = _pearson_statistic(sims.astype(float), expected)
    hits = int((sim_stats >= obs_stat * (1.0 - _SIM_TOLERANCE)).sum())
    return ChiSquareResult(
        statistic=obs_stat,
        dof=np.nan,
        p_value=(1.0 + hits) / (n_sim + 1.0),
        method=f"Pearson chi-squared with simulated p-value (B={n_sim})",
        min_expected=min_expected,
        simulated=True,
        n_simulations=n_sim,
    )


def chi_square_frame(result: ChiSquareResult | None) -> pd.DataFrame:
    if result is None:
        return pd.DataFrame(columns=["method", "statistic", "dof", "p_value", "min_expected", "simulated", "n_simulations"])
    return pd.DataFrame(
        [
            {
                "method": result.method,
                "statistic": result.statistic,
                "dof": result.dof,
                "p_value": result.p_value,
                "min_expected": result.min_expected,
                "simulated": result.simulated,
                "n_simulations": result.n_simulations,
            }
        ]
    )


def _table1_rows(group_name: str, g: pd.DataFrame) -> list[dict[str, object]]:
    rows: list[dict[str, object]] = [
        {
            "group": group_name,
            "variable": "N",
            "level": "overall",
            "n": int(len(g)),
            "value": float(len(g)),
            "stat": "count",
        }
    ]
    for var in TABLE1_NUMERIC:
        if var not in g.columns:
            continue
        non_null = g[var].dropna()
        rows.append(
            {
                "group": group_name,
                "variable": var,
                "level": "mean",
                "n": int(non_null.shape[0]),
                "value": float(non_null.mean()) if len(non_null) else np.nan,
                "stat": "mean",
            }
        )
        rows.append(
            {
                "group": group_name,
                "variable": var,
                "level": "sd",
                "n": int(non_null.shape[0]),
                "value": float(non_null.std(ddof=1)) if len(non_null) > 1 else np.nan,
                "stat": "sd",
            }
        )
    for var in TABLE1_CATEGORICAL:
        if var not in g.columns:
            continue
        counts = g[var].value_counts(dropna=False, sort=False)
        for level, cnt in counts.items():
            rows.append(
                {
                    "group": group_name,
                    "variable": var,
                    "level": "Missing" if pd.isna(level) else str(level),
                    "n": int(cnt),
                    "value": float(cnt / len(g)) if len(g) else np.nan,
                    "stat": "proportion",
                }
            )
    return rows


def build_table1(df: pd.DataFrame, group_col: str) -> pd.DataFrame:
    """Baseline characteristics by group_col level, followed by the whole cohort."""
    rows: list[dict[str, object]] = []
    for level, g in df.groupby(group_col, dropna=False, observed=False):
        rows.extend(_table1_rows(f"{group_col}={level}", g))
    rows.extend(_table1_rows("Overall", df))
    return pd.DataFrame(rows)


def run_all_analyses(
    cohort_df: pd.DataFrame,
    config: dict | None = None,
    notes: list[str] | None = None,
) -> AnalysisBundle:
    cfg = CONFIG if config is None else config
    notes = [] if notes is None else notes
    exposure_col = status_column(cfg["exposure"])
    outcome_col = status_column(cfg["outcome"])

    if cohort_df.empty:
        _note("Descriptive tables and chi-squared test skipped: analysis cohort is empty.", notes)
        table1 = pd.DataFrame()
        contingency = None
        chi_square = None
    else:
        table1 = build_table1(cohort_df, exposure_col)
        contingency = build_contingency_table(cohort_df, exposure_col, outcome_col)
        chi_square = chi_square_test(contingency, cfg, notes)

    models = run_models(cohort_df, build_model_specs(cfg), notes)
    fitted = [name for name, r in models.items() if r.fitted]
    logging.info("Models fitted: %s of %s (%s)", len(fitted), len(models), ", ".join(fitted) or "none")

    coefficients = combined_coefficients(models)
    forest_ready = build_forest_ready(coefficients, f"{exposure_col}[T.{BINARY_LABELS[1]}]")

    return AnalysisBundle(
        table1=table1,
        contingency=contingency,
        chi_square=chi_square,
        models=models,
        model_summary=model_summary_table(models),
        coefficients=coefficients,
        forest_ready=forest_ready,
        notes=notes,
    )
