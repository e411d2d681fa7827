"""Unit tests for gout_chd_pipeline.derive."""
import numpy as np
import pandas as pd
import pytest

from gout_chd_pipeline.config import CONFIG
from gout_chd_pipeline.derive import (
    derive_age_band,
    derive_variables,
    normalize_code,
    recode_binary,
    recode_categorical,
)
from gout_chd_pipeline.merge import merge_tables
from gout_chd_pipeline.schema import DERIVED_SCHEMA, schema_columns
from gout_chd_pipeline.variables import RACE_ETHNICITY, YES_NO_CODES


class TestNormalizeCode:
    """Tests for normalize_code."""

    @pytest.mark.parametrize("value", [1, 1.0, "1", " 1 ", np.int64(1), np.float64(1.0)])
    def test_numeric_forms(self, value):
        assert normalize_code(value) == 1

    def test_text_is_lowercased(self):
        assert normalize_code("  Yes ") == "yes"

    @pytest.mark.parametrize("value", [None, np.nan, "", "   ", 1.5])
    def test_missing_or_fractional(self, value):
        assert normalize_code(value) is None


class TestRecodeBinary:
    """Tests for yes/no recoding."""

    def test_total_over_codes(self):
        """Every input maps to 1, 0 or missing; only Yes/No are non-missing."""
        raw = pd.Series([1, 2, 7, 9, 3, None, "Yes", " no ", "maybe", 1.0, "2", "Refused"], dtype=object)

        out = recode_binary(raw, YES_NO_CODES)

        expected = [1.0, 0.0, np.nan, np.nan, np.nan, np.nan, 1.0, 0.0, np.nan, 1.0, 0.0, np.nan]
        np.testing.assert_array_equal(out.to_numpy(), np.array(expected))
        assert set(out.dropna().unique()) <= {0.0, 1.0}

    def test_never_infers_no(self):
        """Don't-know answers stay missing rather than becoming 0."""
        out = recode_binary(pd.Series([9.0, 9.0]), YES_NO_CODES)
        assert out.isna().all()

    def test_preserves_index(self):
        raw = pd.Series([1.0, 2.0], index=[10, 20])
        assert list(recode_binary(raw, YES_NO_CODES).index) == [10, 20]


class TestRecodeCategorical:
    """Tests for categorical recoding."""

    def test_numeric_and_text_codes(self):
        raw = pd.Series([3, "Non-Hispanic Black", 6, None, "other race - including multi-racial"], dtype=object)

        out = recode_categorical(raw, RACE_ETHNICITY["codes"], RACE_ETHNICITY["levels"])

        assert list(out.cat.categories) == list(RACE_ETHNICITY["levels"])
        assert out.iloc[0] == "Non-Hispanic White"
        assert out.iloc[1] == "Non-Hispanic Black"
        assert pd.isna(out.iloc[2])
        assert pd.isna(out.iloc[3])
        assert out.iloc[4] == "Other Race"


class TestDeriveAgeBand:
    """Tests for right-closed age banding."""

    def test_band_edges(self):
        age = pd.Series([19.0, 20.0, 39.0, 39.5, 59.0, 60.0, 80.0, np.nan])

        out = derive_age_band(age, CONFIG["age_band_edges"], CONFIG["age_band_labels"])

        assert pd.isna(out.iloc[0])
        assert list(out.iloc[1:7]) == ["20-39", "20-39", "40-59", "40-59", "60+", "60+"]
        assert pd.isna(out.iloc[7])


class TestDeriveVariables:
    """Tests for derive_variables."""

    def test_output_matches_schema(self, raw_tables):
        merged = merge_tables(raw_tables, "SEQN")

        derived = derive_variables(merged, CONFIG, [])

        assert list(derived.columns) == schema_columns(DERIVED_SCHEMA)
        assert len(derived) == len(merged)
        assert derived["gender"].dtype == "category"

    def test_missing_source_field_becomes_missing_column(self, raw_tables):
        tables = {k: v for k, v in raw_tables.items() if k != "BMX_J"}
        merged = merge_tables(tables, "SEQN")
        notes = []

        derived = derive_variables(merged, CONFIG, notes)

        assert "bmi" in derived.columns
        assert derived["bmi"].isna().all()
        assert any("BMXBMI" in n for n in notes)

    def test_text_and_numeric_codes_agree(self):
        merged = pd.DataFrame(
            {
                "SEQN": [1.0, 2.0],
                "MCQ160N": ["Yes", 1.0],
                "MCQ160C": ["no", 2.0],
                "RIAGENDR": ["Female", 2.0],
            }
        )

        derived = derive_variables(merged, CONFIG, [])

        assert list(derived["gout"]) == [1.0, 1.0]
        assert list(derived["chd"]) == [0.0, 0.0]
        assert list(derived["gender"]) == ["Female", "Female"]

    def test_no_overlap_is_fatal(self):
        merged = pd.DataFrame(
            {
                "SEQN": [1.0, 2.0],
                "MCQ160N": [1.0, np.nan],
                "MCQ160C": [np.nan, 2.0],
            }
        )
        with pytest.raises(ValueError, match="no overlap between exposure and outcome"):
            derive_variables(merged, CONFIG, [])

    def test_identifier_required(self):
        with pytest.raises(ValueError, match="identifier"):
            derive_variables(pd.DataFrame({"MCQ160N": [1.0]}), CONFIG, [])
