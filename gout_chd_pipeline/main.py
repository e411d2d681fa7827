"""Main entrypoint for the gout / coronary heart disease pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

import pandas as pd

from .analysis import AnalysisBundle, chi_square_frame, run_all_analyses
from .cohort import CohortData, build_cohort
from .config import ASSUMPTIONS, CONFIG, REQUIRED_OUTPUT_FILES, ensure_output_dir, validate_config
from .derive import derive_variables
from .fetch import TableFetcher, dataset_code, fetch_all_tables
from .merge import merge_tables
from .plots import build_figures
from .reporting import (
    save_cohort,
    save_descriptive_table,
    save_figure,
    save_table,
    write_report,
)
from .variables import status_column


@dataclass
class PipelineRunResult:
    output_dir: Path
    generated_files: list[str]
    cohort_data: CohortData
    analyses: AnalysisBundle
    notes: list[str]


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def _print_df(label: str, df: pd.DataFrame, max_rows: int = 30) -> None:
    print(f"\n===== {label} =====")
    if df.empty:
        print("[empty]")
        return
    if len(df) > max_rows:
        print(df.head(max_rows).to_string(index=False))
        print(f"... ({len(df)} rows total)")
    else:
        print(df.to_string(index=False))


def _verify_outputs(output_dir: Path, notes: list[str]) -> None:
    for file_name in REQUIRED_OUTPUT_FILES:
        if file_name == "REPORT.md":
            continue
        if not (output_dir / file_name).exists():
            notes.append(f"Missing expected output artifact: {file_name}")


def run_pipeline(fetcher: TableFetcher | None = None, config: dict | None = None) -> PipelineRunResult:
    """Fetch, merge, derive, filter, model and export one full run.

    Raises:
        ValueError: if no table could be fetched, a table lacks the
            identifier, or no participant has both exposure and outcome.
    """
    cfg = CONFIG if config is None else config
    validate_config(cfg)
    output_dir = ensure_output_dir(cfg)
    print_tables = bool(cfg.get("print_tables", False))
    print_max_rows = int(cfg.get("print_table_max_rows", 30))
    dpi = int(cfg.get("plot_dpi", 150))
    notes: list[str] = []

    logging.info("Starting gout/CHD pipeline. survey_cycle=%s", cfg["survey_cycle"])
    logging.info("Output directory: %s", output_dir)

    tables = fetch_all_tables(cfg["source_tables"], fetcher, cfg)
    for table in cfg["source_tables"]:
        code = dataset_code(table, cfg)
        if code not in tables:
            notes.append(f"Table {code} unavailable; its fields are missing for every participant.")

    merged = merge_tables(tables, cfg["id_field"])
    derived = derive_variables(merged, cfg, notes)
    cohort_data = build_cohort(derived, cfg, notes)
    cohort_df = cohort_data.analytic_df

    generated_files: list[str] = []

    def _record(path: Path | None, df: pd.DataFrame | None = None) -> None:
        if path is None:
            return
        generated_files.append(path.name)
        if print_tables and df is not None:
            _print_df(path.name, df, max_rows=print_max_rows)

    _record(save_table(cohort_data.cohort_flow, output_dir, "cohort_flow.csv", notes), cohort_data.cohort_flow)

    analyses = run_all_analyses(cohort_df, cfg, notes)

    _record(save_descriptive_table(analyses.table1, output_dir, "table1_by_gout.csv", notes), analyses.table1)
    if analyses.contingency is not None:
        _record(
            save_table(analyses.contingency, output_dir, "contingency_gout_chd.csv", notes, index=True),
            analyses.contingency.reset_index(),
        )
    chi_df = chi_square_frame(analyses.chi_square)
    _record(save_table(chi_df, output_dir, "chi_square_gout_chd.csv", notes), chi_df)
    _record(save_table(analyses.model_summary, output_dir, "model_summary.csv", notes), analyses.model_summary)
    _record(save_table(analyses.coefficients, output_dir, "model_coefficients.csv", notes), analyses.coefficients)
    for name, result in analyses.models.items():
        if result.fitted:
            _record(save_table(result.coefficients, output_dir, f"coefficients_{name}.csv", notes))
    _record(save_table(analyses.forest_ready, output_dir, "forest_plot_ready.csv", notes))

    figures = build_figures(
        cohort_df,
        analyses.models,
        analyses.forest_ready,
        exposure_col=status_column(cfg["exposure"]),
        outcome=cfg["outcome"],
        notes=notes,
    )
    for file_name, fig in figures.items():
        _record(save_figure(fig, output_dir, file_name, notes, dpi=dpi))

    if cohort_df.empty:
        notes.append("Analysis cohort is empty; cohort pickle not written.")
    else:
        _record(save_cohort(cohort_df, output_dir, notes))

    _verify_outputs(output_dir, notes)

    try:
        report_path = write_report(
            output_dir=output_dir,
            survey_cycle=cfg["survey_cycle"],
            assumptions=ASSUMPTIONS,
            cohort_flow=cohort_data.cohort_flow,
            model_summary=analyses.model_summary,
            generated_files=generated_files,
            notes=notes,
        )
        generated_files.append(report_path.name)
    except OSError as exc:
        logging.warning("Export failed for REPORT.md: %s", exc)

    logging.info("Pipeline complete. Generated files:")
    for fp in sorted(generated_files):
        logging.info("- %s", fp)

    return PipelineRunResult(
        output_dir=output_dir,
        generated_files=sorted(generated_files),
        cohort_data=cohort_data,
        analyses=analyses,
        notes=notes,
    )


def main() -> PipelineRunResult:
    _configure_logging()
    return run_pipeline()


if __name__ == "__main__":
    main()
