"""Unit tests for gout_chd_pipeline.reporting."""
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from gout_chd_pipeline.reporting import (  # noqa: E402
    COHORT_PICKLE,
    load_cohort,
    save_cohort,
    save_descriptive_table,
    save_figure,
    save_table,
    write_report,
)


class TestCohortPickle:
    """Tests for the serialized analysis cohort."""

    def test_round_trip(self, synthetic_cohort, tmp_path):
        path = save_cohort(synthetic_cohort, tmp_path)

        assert path.name == COHORT_PICKLE
        reloaded = load_cohort(path)
        pd.testing.assert_frame_equal(reloaded, synthetic_cohort)
        assert list(reloaded["race"].cat.categories) == list(synthetic_cohort["race"].cat.categories)


class TestSaveHelpers:
    """Tests for table and figure export."""

    def test_save_table(self, tmp_path):
        df = pd.DataFrame({"step": ["a"], "n": [3]})
        path = save_table(df, tmp_path, "flow.csv")
        assert pd.read_csv(path).equals(df)

    def test_save_table_failure_is_logged_not_raised(self, tmp_path):
        notes = []
        out = save_table(pd.DataFrame({"a": [1]}), tmp_path / "missing_dir", "x.csv", notes)
        assert out is None
        assert "x.csv" in notes[0]

    def test_descriptive_table_falls_back_to_text(self, tmp_path, monkeypatch):
        def _fail(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(pd.DataFrame, "to_csv", _fail)
        notes = []

        path = save_descriptive_table(pd.DataFrame({"variable": ["N"], "n": [4]}), tmp_path, "table1.csv", notes)

        assert path.suffix == ".txt"
        assert "variable" in path.read_text(encoding="utf-8")
        assert notes

    def test_save_figure_closes(self, tmp_path):
        fig, ax = plt.subplots()
        ax.plot([0, 1], [0, 1])

        path = save_figure(fig, tmp_path, "line.png")

        assert path.exists()
        assert not plt.fignum_exists(fig.number)

    def test_missing_figure_is_skipped(self, tmp_path):
        assert save_figure(None, tmp_path, "none.png") is None


class TestWriteReport:
    """Tests for REPORT.md."""

    def test_sections(self, tmp_path):
        summary = pd.DataFrame(
            [
                {"model": "unadjusted", "state": "skipped", "n": 4, "events": 2, "reason": "4 complete cases, 11 required"},
                {"model": "adjusted", "state": "fitted", "n": 900, "events": 120, "reason": ""},
            ]
        )
        path = write_report(
            output_dir=tmp_path,
            survey_cycle="2017-2018",
            assumptions=["Unweighted."],
            cohort_flow=pd.DataFrame({"step": ["01_merged_subjects"], "n": [10]}),
            model_summary=summary,
            generated_files=["model_summary.csv"],
            notes=["Table BPQ_J unavailable."],
        )

        text = path.read_text(encoding="utf-8")
        assert path.name == "REPORT.md"
        assert "NHANES 2017-2018" in text
        assert "- 01_merged_subjects: 10" in text
        assert "unadjusted: skipped (4 complete cases, 11 required)" in text
        assert "adjusted: fitted (n=900, events=120)" in text
        assert "Table BPQ_J unavailable." in text
