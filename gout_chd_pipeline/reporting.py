"""Artifact export and report generation for the gout / CHD analysis."""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.figure import Figure

COHORT_PICKLE = "analysis_cohort.pkl"


def _export_failed(file_name: str, exc: Exception, notes: list[str] | None) -> None:
    msg = f"Export failed for {file_name}: {exc}"
    logging.warning(msg)
    if notes is not None:
        notes.append(msg)


def save_table(
    df: pd.DataFrame,
    output_dir: Path,
    file_name: str,
    notes: list[str] | None = None,
    *,
    index: bool = False,
) -> Path | None:
    out_path = output_dir / file_name
    try:
        df.to_csv(out_path, index=index)
    except (OSError, ValueError) as exc:
        _export_failed(file_name, exc, notes)
        return None
    logging.info("Saved %s (%s rows)", file_name, len(df))
    return out_path


def save_descriptive_table(
    df: pd.DataFrame,
    output_dir: Path,
    file_name: str,
    notes: list[str] | None = None,
) -> Path | None:
    """Write df as CSV, or as a plain-text rendering if the CSV write fails."""
    out_path = output_dir / file_name
    try:
        df.to_csv(out_path, index=False)
        logging.info("Saved %s (%s rows)", file_name, len(df))
        return out_path
    except (OSError, ValueError) as exc:
        _export_failed(file_name, exc, notes)

    txt_path = out_path.with_suffix(".txt")
    try:
        txt_path.write_text(df.to_string(index=False), encoding="utf-8")
    except (OSError, ValueError) as exc:
        _export_failed(txt_path.name, exc, notes)
        return None
    logging.info("Saved %s as plain text fallback", txt_path.name)
    return txt_path


def save_figure(
    fig: Figure | None,
    output_dir: Path,
    file_name: str,
    notes: list[str] | None = None,
    *,
    dpi: int = 150,
) -> Path | None:
    if fig is None:
        logging.info("Figure %s not produced (inputs unavailable).", file_name)
        return None
    out_path = output_dir / file_name
    try:
        fig.savefig(out_path, dpi=dpi)
    except (OSError, ValueError, RuntimeError) as exc:
        _export_failed(file_name, exc, notes)
        return None
    finally:
        plt.close(fig)
    logging.info("Saved %s", file_name)
    return out_path


def save_cohort(df: pd.DataFrame, output_dir: Path, notes: list[str] | None = None) -> Path | None:
    out_path = output_dir / COHORT_PICKLE
    try:
        df.to_pickle(out_path)
    except (OSError, ValueError) as exc:
        _export_failed(COHORT_PICKLE, exc, notes)
        return None
    logging.info("Saved %s (%s rows)", COHORT_PICKLE, len(df))
    return out_path


def load_cohort(path: Path | str) -> pd.DataFrame:
    return pd.read_pickle(path)


def write_report(
    *,
    output_dir: Path,
    survey_cycle: str,
    assumptions: list[str],
    cohort_flow: pd.DataFrame,
    model_summary: pd.DataFrame,
    generated_files: list[str],
    notes: list[str],
) -> Path:
    report_path = output_dir / "REPORT.md"

    lines: list[str] = []
    lines.append(f"# Gout and Coronary Heart Disease: NHANES {survey_cycle}")
    lines.append("")

    lines.append("## Assumptions")
    for entry in assumptions:
        lines.append(f"- {entry}")
    lines.append("")

    lines.append("## Cohort Flow")
    if cohort_flow.empty:
        lines.append("- Cohort flow unavailable.")
    else:
        for _, row in cohort_flow.iterrows():
            step = row.get("step", "step")
            n = row.get("n", "NA")
            lines.append(f"- {step}: {n}")
    lines.append("")

    lines.append("## Models")
    if model_summary.empty:
        lines.append("- No models were specified.")
    else:
        for _, row in model_summary.iterrows():
            if row.get("state") == "fitted":
                lines.append(f"- {row['model']}: fitted (n={row['n']}, events={row['events']})")
            else:
                lines.append(f"- {row['model']}: {row.get('state')} ({row.get('reason', '')})")
    lines.append("")

    lines.append("## Generated Artifacts")
    for fp in sorted(generated_files):
        lines.append(f"- `{fp}`")
    lines.append("")

    lines.append("## Notes")
    if not notes:
        lines.append("- None.")
    else:
        for note in notes:
            lines.append(f"- {note}")
    lines.append("")

    lines.append("## Interpretation Guardrails")
    lines.append("- Estimates are unweighted and do not account for the NHANES complex sampling design.")
    lines.append("- Cross-sectional self-reported diagnoses support association, not causation.")
    lines.append("- Skipped models are not interpreted.")

    report_path.write_text("\n".join(lines), encoding="utf-8")
    return report_path
