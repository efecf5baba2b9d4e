"""Adapters for tabulated time-series files (storage ``.sto``/``.mot`` and CSV).

Every reader returns a :class:`pandas.DataFrame` indexed by time with one
column per labeled signal, the form consumed by
:class:`~synergy_control.controllers.PrescribedController` and by the
factorizer.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

STORAGE_SUFFIXES = {".sto", ".mot"}
END_HEADER = "endheader"


def _check_file(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(
            f"Time-series file not found at: {path}\n"
            f"Check the path, or export the data as .sto or .csv first."
        )
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    if path.stat().st_size == 0:
        raise ValueError(f"Time-series file is empty: {path}")


def _finalize(table: pd.DataFrame, path: Path) -> pd.DataFrame:
    columns = {str(c).strip(): c for c in table.columns}
    if "time" not in columns:
        raise ValueError(
            f"No 'time' column in {path}.\n"
            f"Found columns: {', '.join(columns) or '(none)'}"
        )
    table = table.rename(columns={v: k for k, v in columns.items()})
    table = table.set_index("time")
    table = table.apply(pd.to_numeric, errors="coerce")
    if table.empty:
        raise ValueError(f"{path} has a header but no data rows.")
    times = table.index.to_numpy(dtype=float)
    if times.size > 1 and np.any(np.diff(times) <= 0):
        raise ValueError(
            f"Time column of {path} must be strictly increasing.\n"
            f"Sort the rows and remove duplicated time stamps."
        )
    table.index = pd.Index(times, name="time")
    return table


def read_storage(path: str | Path) -> pd.DataFrame:
    """Read a tab-delimited storage file whose header ends with ``endheader``."""
    path = Path(path)
    _check_file(path)
    with path.open("r", encoding="utf-8") as handle:
        lines = handle.readlines()
    header_end = next(
        (i for i, line in enumerate(lines) if line.strip().lower() == END_HEADER),
        None,
    )
    if header_end is None:
        raise ValueError(
            f"Storage file {path} has no '{END_HEADER}' line.\n"
            f"The file may be truncated or in an unexpected format."
        )
    try:
        table = pd.read_csv(path, sep="\t", skiprows=header_end + 1)
    except Exception as e:
        raise ValueError(
            f"Failed to parse storage data in {path}.\n"
            f"Error: {e}"
        ) from e
    return _finalize(table, path)


def read_table(path: str | Path) -> pd.DataFrame:
    """Read ``.sto``/``.mot`` through :func:`read_storage`, anything else as CSV."""
    path = Path(path)
    if path.suffix.lower() in STORAGE_SUFFIXES:
        return read_storage(path)
    _check_file(path)
    try:
        table = pd.read_csv(path)
    except Exception as e:
        raise ValueError(f"Failed to parse CSV data in {path}.\nError: {e}") from e
    return _finalize(table, path)


def write_storage(table: pd.DataFrame, path: str | Path, name: str | None = None) -> Path:
    """Write a time-indexed table as a storage file and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    n_rows, n_columns = table.shape
    header = [
        name or path.stem,
        "version=1",
        f"nRows={n_rows}",
        f"nColumns={n_columns + 1}",
        "inDegrees=no",
        END_HEADER,
    ]
    out = table.copy()
    out.index.name = "time"
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write("\n".join(header) + "\n")
        out.to_csv(handle, sep="\t", float_format="%.10g")
    return path
