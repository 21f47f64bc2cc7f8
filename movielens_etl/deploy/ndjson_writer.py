"""Write ETL documents as newline-delimited JSON, ready for mongoimport."""

from __future__ import annotations

import csv
import json
from collections.abc import Iterable
from pathlib import Path

import pandas as pd

from movielens_etl.features.neighbors import NeighborTableBuilder

PASSWORD_LOG_COLUMNS = [
    "userId",
    "uIdx",
    "firstName",
    "lastName",
    "username",
    "email",
    "password",
    "passwordHash",
]


def write_ndjson(path: Path | str, docs: Iterable[dict]) -> int:
    """Write one JSON document per line.

    Returns:
        Number of documents written.
    """
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for doc in docs:
            f.write(json.dumps(doc, ensure_ascii=False))
            f.write("\n")
            count += 1
    return count


def rating_docs(chunks: Iterable[pd.DataFrame]) -> Iterable[dict]:
    """One rating event per parsed ratings.csv row."""
    for chunk in chunks:
        for user_id, movie_id, rating, ts in zip(
            chunk["userId"].tolist(),
            chunk["movieId"].tolist(),
            chunk["rating"].tolist(),
            chunk["timestamp"].tolist(),
        ):
            yield {"userId": user_id, "movieId": movie_id, "rating": rating, "timestamp": ts}


def similarity_docs(
    builder: NeighborTableBuilder,
    reverse_index: dict[int, int],
    now: str,
    metric: str = "cosine",
) -> Iterable[dict]:
    """One neighbor-list document per source iIdx, ``_id`` = ``{iIdx}_{metric}_k{k}``."""
    for i_idx in builder.sources():
        neighbors = builder.neighbors_for(i_idx)
        doc: dict = {"_id": f"{i_idx}_{metric}_k{builder.top_k}"}
        movie_id = reverse_index.get(i_idx)
        if movie_id is not None:
            doc["movieId"] = movie_id
        doc["iIdx"] = i_idx
        doc["metric"] = metric
        doc["k"] = len(neighbors)
        doc["neighbors"] = [n.to_doc() for n in neighbors]
        doc["updatedAt"] = now
        yield doc


class PasswordLogWriter:
    """CSV log of generated credentials, written alongside users.ndjson."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._file = None
        self._writer: csv.DictWriter | None = None

    def __enter__(self) -> "PasswordLogWriter":
        self._file = open(self.path, "w", encoding="utf-8", newline="")
        self._writer = csv.DictWriter(
            self._file, fieldnames=PASSWORD_LOG_COLUMNS, extrasaction="ignore"
        )
        self._writer.writeheader()
        return self

    def write(self, row: dict) -> None:
        u_idx = row.get("uIdx")
        self._writer.writerow({**row, "uIdx": "null" if u_idx is None else u_idx})

    def __exit__(self, *exc) -> None:
        self._file.close()

