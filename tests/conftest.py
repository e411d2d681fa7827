"""Pytest configuration and shared fixtures for the gout / CHD pipeline tests.

Synthetic NHANES-shaped tables stand in for the CDC downloads so that every
stage can run offline.
"""
import numpy as np
import pandas as pd
import pytest

from gout_chd_pipeline.cohort import build_cohort
from gout_chd_pipeline.config import CONFIG
from gout_chd_pipeline.derive import derive_variables
from gout_chd_pipeline.merge import merge_tables


def _synthetic_tables(n=1200, seed=2018):
    rng = np.random.default_rng(seed)
    seqn = np.arange(93703, 93703 + n, dtype=float)
    age = rng.integers(12, 81, size=n).astype(float)
    sex = rng.choice([1.0, 2.0], size=n)
    race = rng.choice([1.0, 2.0, 3.0, 4.0, 5.0], size=n)
    bmi = np.round(rng.normal(29.0, 6.0, size=n), 1)
    male = sex == 1.0

    gout = np.where(rng.random(n) < 0.08 + 0.06 * male, 1.0, 2.0)
    lin = -3.0 + 0.04 * (age - 20) + 0.4 * male + 0.8 * (gout == 1.0)
    chd = np.where(rng.random(n) < 1.0 / (1.0 + np.exp(-lin)), 1.0, 2.0)
    diabetes = np.where(rng.random(n) < 0.15, 1.0, 2.0)
    smoking = np.where(rng.random(n) < 0.40, 1.0, 2.0)
    hypertension = np.where(rng.random(n) < 0.35, 1.0, 2.0)

    adult = age >= 20
    return {
        "DEMO_J": pd.DataFrame({"SEQN": seqn, "RIDAGEYR": age, "RIAGENDR": sex, "RIDRETH1": race}),
        "MCQ_J": pd.DataFrame({"SEQN": seqn[adult], "MCQ160N": gout[adult], "MCQ160C": chd[adult]}),
        "DIQ_J": pd.DataFrame({"SEQN": seqn[adult], "DIQ010": diabetes[adult]}),
        "SMQ_J": pd.DataFrame({"SEQN": seqn[adult], "SMQ020": smoking[adult]}),
        "BPQ_J": pd.DataFrame({"SEQN": seqn[adult], "BPQ020": hypertension[adult]}),
        "BMX_J": pd.DataFrame({"SEQN": seqn, "BMXBMI": bmi}),
    }


@pytest.fixture(scope="session")
def raw_tables():
    """Six synthetic source tables keyed by dataset code."""
    return _synthetic_tables()


@pytest.fixture
def make_fetcher():
    """Return a factory building fetchers that serve the given tables.

    Codes listed in ``failing`` return None, like a failed download.
    """

    def _factory(tables, failing=()):
        calls = []

        def _fetch(code, fields):
            calls.append(code)
            if code in failing or code not in tables:
                return None
            df = tables[code]
            return df[[f for f in fields if f in df.columns]].copy()

        _fetch.calls = calls
        return _fetch

    return _factory


@pytest.fixture
def test_config(tmp_path):
    """CONFIG with output redirected to a temporary directory."""
    return dict(CONFIG, output_dir=str(tmp_path / "outputs"), print_tables=False)


@pytest.fixture(scope="session")
def synthetic_cohort(raw_tables):
    """Analysis cohort built from the synthetic tables."""
    merged = merge_tables(raw_tables, CONFIG["id_field"])
    derived = derive_variables(merged, CONFIG, [])
    return build_cohort(derived, CONFIG, []).analytic_df


@pytest.fixture
def four_subject_tables():
    """Four adults covering every gout/CHD combination once."""
    seqn = [1.0, 2.0, 3.0, 4.0]
    return {
        "DEMO_J": pd.DataFrame(
            {"SEQN": seqn, "RIDAGEYR": [30.0, 45.0, 52.0, 67.0], "RIAGENDR": [1.0, 2.0, 1.0, 2.0], "RIDRETH1": [3.0, 4.0, 1.0, 3.0]}
        ),
        "MCQ_J": pd.DataFrame({"SEQN": seqn, "MCQ160N": [2.0, 2.0, 1.0, 1.0], "MCQ160C": [2.0, 1.0, 2.0, 1.0]}),
        "DIQ_J": pd.DataFrame({"SEQN": seqn, "DIQ010": [2.0, 1.0, 2.0, 2.0]}),
        "SMQ_J": pd.DataFrame({"SEQN": seqn, "SMQ020": [1.0, 2.0, 2.0, 1.0]}),
        "BPQ_J": pd.DataFrame({"SEQN": seqn, "BPQ020": [2.0, 1.0, 1.0, 2.0]}),
        "BMX_J": pd.DataFrame({"SEQN": seqn, "BMXBMI": [24.1, 31.5, 28.0, 35.2]}),
    }
