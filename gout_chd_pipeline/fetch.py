"""Download helpers for NHANES public-use SAS transport tables."""

from __future__ import annotations

import io
import logging
import re
from typing import Callable, Mapping, Optional, Sequence

import pandas as pd
import requests

from .config import CONFIG

DATASET_PATTERN = re.compile(r"^[A-Z0-9_]+$")

TableFetcher = Callable[[str, Sequence[str]], Optional[pd.DataFrame]]


def validate_dataset_code(code: str) -> str:
    if not code:
        raise ValueError("Dataset code is empty.")
    if not DATASET_PATTERN.match(code):
        raise ValueError(
            f"Invalid dataset code {code!r}. Allowed characters: upper-case letters, numbers, underscore."
        )
    return code


def dataset_code(table: str, config: dict | None = None) -> str:
    cfg = CONFIG if config is None else config
    return validate_dataset_code(f"{table}_{cfg['cycle_suffix']}")


def build_table_url(code: str, config: dict | None = None) -> str:
    cfg = CONFIG if config is None else config
    code = validate_dataset_code(code)
    return cfg["base_url"].format(start_year=cfg["cycle_start_year"], code=code)


def fetch_table(
    code: str,
    fields: Sequence[str],
    *,
    config: dict | None = None,
    session: requests.Session | None = None,
) -> pd.DataFrame | None:
    """Download one table and keep only the requested fields.

    Returns None when the download or parse fails, or when the table is empty.
    The identifier field is retained whenever the table carries it.
    """
    cfg = CONFIG if config is None else config
    url = build_table_url(code, cfg)
    http = session if session is not None else requests
    logging.info("Downloading table: %s", code)
    try:
        resp = http.get(url, timeout=float(cfg["request_timeout_seconds"]))
        resp.raise_for_status()
        raw = pd.read_sas(io.BytesIO(resp.content), format="xport")
    except requests.RequestException as exc:
        logging.warning("Table fetch failed: %s (%s)", code, exc)
        return None
    except (ValueError, EOFError) as exc:
        logging.warning("Table parse failed: %s (%s)", code, exc)
        return None

    if raw is None or raw.empty:
        logging.warning("Table fetch returned no rows: %s", code)
        return None

    id_field = cfg["id_field"]
    wanted = [id_field, *[f for f in fields if f != id_field]]
    absent = [f for f in wanted if f not in raw.columns]
    if absent:
        logging.warning("%s: requested fields absent from table: %s", code, ", ".join(absent))
    keep = [f for f in wanted if f in raw.columns]
    out = raw[keep].copy()
    logging.info("Finished download: %s | rows=%s cols=%s", code, len(out), len(keep))
    return out


def fetch_all_tables(
    sources: Mapping[str, Sequence[str]],
    fetcher: TableFetcher | None = None,
    config: dict | None = None,
) -> dict[str, pd.DataFrame]:
    """Fetch every source table; one failure never aborts the others."""
    cfg = CONFIG if config is None else config
    if fetcher is None:
        def fetcher(code: str, fields: Sequence[str]) -> pd.DataFrame | None:
            return fetch_table(code, fields, config=cfg)

    tables: dict[str, pd.DataFrame] = {}
    failed: list[str] = []
    for table, fields in sources.items():
        code = dataset_code(table, cfg)
        result = fetcher(code, list(fields))
        if result is None or result.empty:
            failed.append(code)
            continue
        tables[code] = result

    if failed:
        logging.warning("Continuing without %s table(s): %s", len(failed), ", ".join(failed))
    logging.info("Fetched %s of %s tables.", len(tables), len(sources))
    return tables
