"""Item-item neighbor lists keyed by dense movie index."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

import pandas as pd

from movielens_etl.config import TOP_NEIGHBORS


@dataclass(frozen=True)
class Neighbor:
    movie_id: int | None
    i_idx: int
    sim: float

    def to_doc(self) -> dict:
        doc = {}
        if self.movie_id is not None:
            doc["movieId"] = self.movie_id
        doc["iIdx"] = self.i_idx
        doc["sim"] = self.sim
        return doc


class NeighborTableBuilder:
    """Groups (source iIdx, target iIdx, weight) rows by source.

    ``reverse_index`` maps iIdx -> movieId and is built once by the caller.
    Lists keep the order rows were read in and are cut to the first
    ``top_k`` at emission without re-sorting; an input that is not already
    sorted by weight therefore may not yield the true top-k, which is
    reported through ``unsorted_sources()``.
    """

    def __init__(self, reverse_index: dict[int, int], top_k: int = TOP_NEIGHBORS):
        self.reverse_index = reverse_index
        self.top_k = top_k
        self._neighbors: dict[int, list[Neighbor]] = defaultdict(list)

    def add(self, source: int, target: int, weight: float) -> None:
        if source <= 0 or target <= 0:
            return
        self._neighbors[source].append(
            Neighbor(movie_id=self.reverse_index.get(target), i_idx=target, sim=weight)
        )

    def add_frame(self, df: pd.DataFrame) -> None:
        """Add a chunk with integer ``iIdx``/``jIdx`` and float ``sim`` columns."""
        kept = df[(df["iIdx"] > 0) & (df["jIdx"] > 0)]
        for source, target, sim in zip(
            kept["iIdx"].tolist(), kept["jIdx"].tolist(), kept["sim"].tolist()
        ):
            self._neighbors[source].append(
                Neighbor(movie_id=self.reverse_index.get(target), i_idx=target, sim=sim)
            )

    def sources(self) -> list[int]:
        return list(self._neighbors)

    def neighbors_for(self, source: int) -> list[Neighbor]:
        """Truncated neighbor list for ``source``, in input order."""
        return self._neighbors.get(source, [])[: self.top_k]

    def unsorted_sources(self) -> int:
        """How many sources have neighbors not in descending weight order."""
        unsorted = 0
        for neighbors in self._neighbors.values():
            if any(a.sim < b.sim for a, b in zip(neighbors, neighbors[1:])):
                unsorted += 1
        return unsorted

    def __len__(self) -> int:
        return len(self._neighbors)
