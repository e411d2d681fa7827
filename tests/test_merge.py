"""Unit tests for gout_chd_pipeline.merge."""
import numpy as np
import pandas as pd
import pytest

from gout_chd_pipeline.merge import merge_tables


class TestMergeTables:
    """Tests for the full outer join on the participant identifier."""

    def test_identifier_set_is_union(self):
        """Every participant from every table appears exactly once."""
        a = pd.DataFrame({"SEQN": [3, 1, 2], "A": [30, 10, 20]})
        b = pd.DataFrame({"SEQN": [2, 4], "B": ["x", "y"]})
        c = pd.DataFrame({"SEQN": [5], "C": [1.5]})

        merged = merge_tables({"a": a, "b": b, "c": c}, "SEQN")

        assert list(merged["SEQN"]) == [1, 2, 3, 4, 5]
        assert set(merged.columns) == {"SEQN", "A", "B", "C"}

    def test_missing_where_table_lacks_subject(self):
        """A subject absent from a table gets missing values for its fields."""
        a = pd.DataFrame({"SEQN": [1, 2], "A": [10, 20]})
        b = pd.DataFrame({"SEQN": [2, 3], "B": [200, 300]})

        merged = merge_tables([a, b], "SEQN").set_index("SEQN")

        assert np.isnan(merged.loc[1, "B"])
        assert np.isnan(merged.loc[3, "A"])
        assert merged.loc[2, "A"] == 20
        assert merged.loc[2, "B"] == 200

    def test_overlapping_columns_are_coalesced(self):
        """The earlier table wins; the later table fills its gaps."""
        a = pd.DataFrame({"SEQN": [1, 2], "X": [np.nan, 7.0]})
        b = pd.DataFrame({"SEQN": [1, 2], "X": [5.0, 99.0]})

        merged = merge_tables([a, b], "SEQN")

        assert list(merged.columns) == ["SEQN", "X"]
        assert list(merged["X"]) == [5.0, 7.0]

    def test_duplicate_identifiers_keep_first(self):
        """Duplicate identifiers inside a table keep their first row."""
        a = pd.DataFrame({"SEQN": [1, 1, 2], "A": ["first", "second", "other"]})

        merged = merge_tables([a], "SEQN")

        assert len(merged) == 2
        assert merged.loc[merged["SEQN"] == 1, "A"].item() == "first"

    def test_single_table_passes_through(self):
        a = pd.DataFrame({"SEQN": [2, 1], "A": [2, 1]})
        merged = merge_tables({"only": a}, "SEQN")
        assert list(merged["SEQN"]) == [1, 2]


class TestMergeErrors:
    """Tests for fatal merge preconditions."""

    def test_no_tables(self):
        with pytest.raises(ValueError, match="no input data"):
            merge_tables({}, "SEQN")

    def test_no_tables_sequence(self):
        with pytest.raises(ValueError, match="no input data"):
            merge_tables([], "SEQN")

    def test_identifier_missing(self):
        a = pd.DataFrame({"SEQN": [1], "A": [1]})
        b = pd.DataFrame({"ID": [1], "B": [1]})
        with pytest.raises(ValueError, match="merge precondition: identifier missing"):
            merge_tables({"a": a, "b": b}, "SEQN")
