"""Chunked CSV reading shared by every MovieLens loader."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pandas as pd

from movielens_etl.config import CSV_CHUNK_SIZE


def iter_csv_chunks(
    path: Path | str,
    columns: list[str],
    chunksize: int = CSV_CHUNK_SIZE,
) -> Iterator[pd.DataFrame]:
    """Stream a headered CSV as DataFrames with canonical column names.

    Each requested column is taken from the header by name when present,
    otherwise by its position in ``columns``. All values arrive as strings;
    rows with too many fields are dropped by the parser and short rows come
    through with NaN in the missing columns.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{path} not found.")

    reader = pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        on_bad_lines="skip",
        chunksize=chunksize,
    )
    with reader:
        for chunk in reader:
            yield _select_columns(chunk, columns)


def _select_columns(chunk: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    header = [str(c).strip() for c in chunk.columns]
    selected = {}
    for pos, name in enumerate(columns):
        if name in header:
            selected[name] = chunk.iloc[:, header.index(name)]
        elif pos < len(header):
            selected[name] = chunk.iloc[:, pos]
        else:
            selected[name] = pd.Series(pd.NA, index=chunk.index, dtype=object)
    return pd.DataFrame(selected, index=chunk.index)


def coerce_numeric(
    df: pd.DataFrame,
    int_cols: list[str] | tuple[str, ...] = (),
    float_cols: list[str] | tuple[str, ...] = (),
) -> pd.DataFrame:
    """Parse numeric columns, dropping rows where any of them is malformed."""
    parsed = {
        col: pd.to_numeric(text_column(df, col).str.strip(), errors="coerce")
        for col in [*int_cols, *float_cols]
    }
    mask = pd.Series(True, index=df.index, dtype=bool)
    for values in parsed.values():
        mask &= values.notna()
    for col in int_cols:
        mask &= parsed[col] % 1 == 0

    df = df.loc[mask].copy()
    for col in int_cols:
        df[col] = parsed[col][mask].astype("int64")
    for col in float_cols:
        df[col] = parsed[col][mask].astype("float64")
    return df


def text_column(df: pd.DataFrame, col: str) -> pd.Series:
    """Return a string column with missing values as empty strings."""
    return df[col].fillna("").astype(str)
