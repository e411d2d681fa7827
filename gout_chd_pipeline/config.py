"""Configuration for the NHANES gout / coronary heart disease analysis."""

from __future__ import annotations

from pathlib import Path

from .variables import AGE_GROUP, GENDER, RACE_ETHNICITY, SUBJECT_ID, source_fields_by_table

SURVEY_CYCLE = "2017-2018"
OUTPUT_DIR_NAME = "gout_chd_outputs"


def cycle_parts(cycle: str) -> tuple[int, str]:
    """Return (start year, data file suffix) for an NHANES cycle such as "2017-2018".

    Continuous NHANES releases a lettered file set every two years from
    2001-2002 (B) onward, so 2017-2018 maps to J.
    """
    try:
        start, end = (int(part) for part in cycle.split("-"))
    except ValueError:
        raise ValueError(f"survey cycle must look like 'YYYY-YYYY', got {cycle!r}") from None
    if end != start + 1 or start < 2001 or start % 2 == 0:
        raise ValueError(f"{cycle!r} is not a two-year NHANES cycle starting in an odd year from 2001")
    return start, chr(ord("A") + (start - 1999) // 2)


CYCLE_START_YEAR, CYCLE_SUFFIX = cycle_parts(SURVEY_CYCLE)

ASSUMPTIONS = [
    f"Source tables are the NHANES {SURVEY_CYCLE} public-use SAS transport files (suffix {CYCLE_SUFFIX}), downloaded without survey weights.",
    "Gout (MCQ160N) and coronary heart disease (MCQ160C) are self-reported doctor diagnoses; Refused/Don't know are missing.",
    "Diabetes (DIQ010) Borderline responses are treated as missing, never as No.",
    "Smoking is ever-smoking (SMQ020, at least 100 cigarettes in life); hypertension is ever told high blood pressure (BPQ020).",
    "Participants with missing age pass the age filter and are dropped by each age-adjusted model's complete-case subset.",
    "All models are unweighted maximum-likelihood logistic regressions on complete cases; no imputation is performed.",
]

CONFIG = {
    "survey_cycle": SURVEY_CYCLE,
    "cycle_suffix": CYCLE_SUFFIX,
    "cycle_start_year": CYCLE_START_YEAR,
    "base_url": "https://wwwn.cdc.gov/Nchs/Data/Nhanes/Public/{start_year}/DataFiles/{code}.xpt",
    "request_timeout_seconds": 120,
    "source_tables": source_fields_by_table(),
    "id_field": SUBJECT_ID["field"],
    "id_column": SUBJECT_ID["canonical"],
    "exposure": "gout",
    "outcome": "chd",
    "min_age": 20,
    "age_band_edges": AGE_GROUP["edges"],
    "age_band_labels": AGE_GROUP["levels"],
    "reference_levels": {
        "gender": GENDER["reference"],
        "race": RACE_ETHNICITY["reference"],
        "age_group": AGE_GROUP["reference"],
        "chd_status": "No",
        "gout_status": "No",
        "diabetes_status": "No",
        "smoking_status": "No",
        "hypertension_status": "No",
    },
    "min_rows": {
        # Unadjusted requires strictly more than 10 complete cases.
        "unadjusted": 11,
        "adjusted": 20,
        "interaction": 20,
        "stratified_male": 10,
        "stratified_female": 10,
        "sensitivity_age_group": 10,
        "secondary_diabetes": 10,
    },
    "min_factor_levels": 2,
    "chi2_min_expected": 5.0,
    "chi2_simulations": 2000,
    "random_seed": 42,
    "plot_dpi": 150,
    "print_tables": True,
    "print_table_max_rows": 30,
    "output_dir": str(Path(__file__).resolve().parents[1] / OUTPUT_DIR_NAME),
}

REQUIRED_OUTPUT_FILES = [
    "cohort_flow.csv",
    "table1_by_gout.csv",
    "contingency_gout_chd.csv",
    "chi_square_gout_chd.csv",
    "model_summary.csv",
    "model_coefficients.csv",
    "analysis_cohort.pkl",
    "REPORT.md",
]


def validate_config(config: dict | None = None) -> None:
    cfg = CONFIG if config is None else config
    if not cfg.get("source_tables"):
        raise ValueError("No source tables configured.")
    if int(cfg["min_age"]) < 0:
        raise ValueError(f"min_age must be non-negative, got {cfg['min_age']}")
    edges = list(cfg["age_band_edges"])
    if len(edges) != len(cfg["age_band_labels"]) + 1 or edges != sorted(edges):
        raise ValueError("age_band_edges must be increasing with one more edge than labels.")


def ensure_output_dir(config: dict | None = None) -> Path:
    cfg = CONFIG if config is None else config
    out_dir = Path(cfg["output_dir"]).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir
