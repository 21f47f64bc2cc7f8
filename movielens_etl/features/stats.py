"""One-pass rating statistics per movie."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import pandas as pd


def iso_utc(ts: int | float) -> str:
    """Render a Unix timestamp as ``YYYY-MM-DDTHH:MM:SSZ``."""
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _last_rated_at(ts: int) -> str | None:
    # Timestamps outside the datetime range leave the field unset.
    if ts <= 0:
        return None
    try:
        return iso_utc(ts)
    except (ValueError, OverflowError, OSError):
        return None


@dataclass(frozen=True)
class RatingStats:
    average: float
    count: int
    last_rated_at: str | None = None

    def to_doc(self) -> dict:
        doc = {"average": self.average, "count": self.count}
        if self.last_rated_at is not None:
            doc["lastRatedAt"] = self.last_rated_at
        return doc


class RatingStatsAccumulator:
    """Running sum, count and newest timestamp per movie.

    The newest timestamp is the numerically largest one seen, independent
    of the order rows arrive in.
    """

    def __init__(self):
        self._sums: dict[int, float] = {}
        self._counts: dict[int, int] = {}
        self._last_ts: dict[int, int] = {}

    def add(self, key: int, rating: float, timestamp: int) -> None:
        self._sums[key] = self._sums.get(key, 0.0) + rating
        self._counts[key] = self._counts.get(key, 0) + 1
        if timestamp > self._last_ts.get(key, 0):
            self._last_ts[key] = timestamp

    def add_frame(self, df: pd.DataFrame) -> None:
        """Fold a chunk with parsed ``movieId``, ``rating``, ``timestamp`` columns."""
        if df.empty:
            return
        grouped = df.groupby("movieId").agg(
            total=("rating", "sum"),
            n=("rating", "size"),
            last=("timestamp", "max"),
        )
        for movie_id, total, n, last in zip(
            grouped.index.tolist(),
            grouped["total"].tolist(),
            grouped["n"].tolist(),
            grouped["last"].tolist(),
        ):
            self._sums[movie_id] = self._sums.get(movie_id, 0.0) + total
            self._counts[movie_id] = self._counts.get(movie_id, 0) + n
            if last > self._last_ts.get(movie_id, 0):
                self._last_ts[movie_id] = last

    def finalize(self) -> dict[int, RatingStats]:
        stats: dict[int, RatingStats] = {}
        for key, count in self._counts.items():
            if count <= 0:
                continue
            stats[key] = RatingStats(
                average=self._sums[key] / count,
                count=count,
                last_rated_at=_last_rated_at(self._last_ts.get(key, 0)),
            )
        return stats
