"""Free-text user tag normalization and per-movie tag ranking."""

from __future__ import annotations

import re
from collections import defaultdict

import pandas as pd

from movielens_etl.config import TOP_USER_TAGS

_WHITESPACE = re.compile(r"\s+")
_EDGE_PUNCTUATION = ".,;:!?\"'`-_"


def normalize_tag(raw: str) -> str:
    """Canonical form of a user tag.

    Lowercases, trims, collapses whitespace runs to one space, then strips
    punctuation from both ends, so "Pixar", " pixar " and "pixar!" collapse
    to the same tag.
    """
    tag = raw.strip().lower()
    tag = _WHITESPACE.sub(" ", tag)
    return tag.strip(_EDGE_PUNCTUATION)


class TagFrequencyRanker:
    """Counts distinct users per (movie, tag) and keeps the most popular tags.

    A user tagging the same movie with the same (normalized) tag several
    times counts once.
    """

    def __init__(self, top_n: int = TOP_USER_TAGS):
        self.top_n = top_n
        self._contributors: dict[int, dict[str, set[int]]] = defaultdict(
            lambda: defaultdict(set)
        )

    def add(self, contributor: int, key: int, raw_tag: str) -> None:
        tag = normalize_tag(raw_tag)
        if not tag or key <= 0 or contributor <= 0:
            return
        self._contributors[key][tag].add(contributor)

    def add_frame(self, df: pd.DataFrame) -> None:
        """Add a chunk with integer ``userId``/``movieId`` and a raw ``tag`` column."""
        tags = df["tag"].fillna("").astype(str).map(normalize_tag)
        mask = (tags != "") & (df["movieId"] > 0) & (df["userId"] > 0)
        for user_id, movie_id, tag in zip(
            df.loc[mask, "userId"].tolist(),
            df.loc[mask, "movieId"].tolist(),
            tags[mask].tolist(),
        ):
            self._contributors[movie_id][tag].add(user_id)

    def frequencies(self, key: int) -> dict[str, int]:
        """Distinct-contributor count per tag for one key."""
        return {tag: len(users) for tag, users in self._contributors.get(key, {}).items()}

    def ranked(self) -> dict[int, list[str]]:
        """Top tags per key: most contributors first, ties alphabetical."""
        result: dict[int, list[str]] = {}
        for key, tags in self._contributors.items():
            ordered = sorted(tags.items(), key=lambda item: (-len(item[1]), item[0]))
            result[key] = [tag for tag, _ in ordered[: self.top_n]]
        return result
