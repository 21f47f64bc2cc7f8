"""Genome relevance filtering: keep strong movie/tag associations, best first."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

import pandas as pd

from movielens_etl.config import MIN_RELEVANCE


@dataclass(frozen=True)
class GenomeTag:
    tag: str
    relevance: float

    def to_doc(self) -> dict:
        return {"tag": self.tag, "relevance": self.relevance}


class RelevanceFilter:
    """Groups (movieId, tagId, relevance) rows by movie above a threshold.

    Rows whose tagId has no label are dropped. Lists are sorted by relevance
    descending; equal scores keep the order they were read in. Truncation is
    left to the caller so it happens after sorting.
    """

    def __init__(self, labels: dict[int, str], threshold: float = MIN_RELEVANCE):
        self.labels = labels
        self.threshold = threshold
        self._entries: dict[int, list[GenomeTag]] = defaultdict(list)

    def add(self, key: int, sub_key: int, score: float) -> None:
        if score < self.threshold:
            return
        label = self.labels.get(sub_key)
        if label is None:
            return
        self._entries[key].append(GenomeTag(tag=label, relevance=score))

    def add_frame(self, df: pd.DataFrame) -> None:
        """Add a chunk with ``movieId``, ``tagId`` and float ``relevance`` columns."""
        kept = df[df["relevance"] >= self.threshold]
        labels = kept["tagId"].map(self.labels)
        kept = kept[labels.notna()]
        labels = labels[labels.notna()]
        for movie_id, label, relevance in zip(
            kept["movieId"].tolist(), labels.tolist(), kept["relevance"].tolist()
        ):
            self._entries[movie_id].append(GenomeTag(tag=label, relevance=relevance))

    def ranked(self) -> dict[int, list[GenomeTag]]:
        return {
            key: sorted(entries, key=lambda e: e.relevance, reverse=True)
            for key, entries in self._entries.items()
        }
