"""MovieLens CSV loaders: one side table per source file."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from movielens_etl.config import (
    CSV_CHUNK_SIZE,
    MIN_RELEVANCE,
    NO_GENRES,
    TOP_NEIGHBORS,
    TOP_USER_TAGS,
)
from movielens_etl.data.id_mapper import IdMapper
from movielens_etl.data.readers import coerce_numeric, iter_csv_chunks, text_column
from movielens_etl.features.neighbors import NeighborTableBuilder
from movielens_etl.features.relevance import GenomeTag, RelevanceFilter
from movielens_etl.features.stats import RatingStats, RatingStatsAccumulator
from movielens_etl.features.tags import TagFrequencyRanker

T = TypeVar("T")

MOVIELENS_URL = "https://movielens.org/movies/{}"
IMDB_URL = "http://www.imdb.com/title/tt{}/"
TMDB_URL = "https://www.themoviedb.org/movie/{}"


@dataclass(frozen=True)
class Links:
    movielens: str | None = None
    imdb: str | None = None
    tmdb: str | None = None
    tmdb_id: str | None = None

    def to_doc(self) -> dict:
        doc = {}
        if self.movielens:
            doc["movielens"] = self.movielens
        if self.imdb:
            doc["imdb"] = self.imdb
        if self.tmdb:
            doc["tmdb"] = self.tmdb
        return doc


def load_optional(label: str, loader: Callable[..., T], default: T, *args, **kwargs) -> T:
    """Run a loader for a non-essential source, falling back to ``default``.

    An unreadable or empty file is reported as a warning instead of
    aborting the run.
    """
    try:
        return loader(*args, **kwargs)
    except (OSError, EmptyDataError, ParserError) as e:
        print(f"Warning: could not load {label}: {e}")
        return default


def load_links(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> dict[int, Links]:
    """Load links.csv (movieId, imdbId, tmdbId) into per-movie URL sets."""
    links: dict[int, Links] = {}
    for chunk in iter_csv_chunks(path, ["movieId", "imdbId", "tmdbId"], chunksize):
        chunk = coerce_numeric(chunk, int_cols=["movieId"])
        chunk = chunk[chunk["movieId"] > 0]
        imdb_ids = text_column(chunk, "imdbId").str.strip()
        tmdb_ids = text_column(chunk, "tmdbId").str.strip()
        for movie_id, imdb_id, tmdb_id in zip(
            chunk["movieId"].tolist(), imdb_ids.tolist(), tmdb_ids.tolist()
        ):
            links[movie_id] = Links(
                movielens=MOVIELENS_URL.format(movie_id),
                imdb=IMDB_URL.format(imdb_id) if imdb_id else None,
                tmdb=TMDB_URL.format(tmdb_id) if tmdb_id else None,
                tmdb_id=tmdb_id or None,
            )
    return links


def load_genome_tags(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> dict[int, str]:
    """Load genome-tags.csv (tagId, tag) as a tagId -> label lookup."""
    labels: dict[int, str] = {}
    for chunk in iter_csv_chunks(path, ["tagId", "tag"], chunksize):
        chunk = coerce_numeric(chunk, int_cols=["tagId"])
        labels.update(zip(chunk["tagId"].tolist(), text_column(chunk, "tag").str.strip().tolist()))
    return labels


def load_genome_scores(
    path: Path | str,
    labels: dict[int, str],
    min_relevance: float = MIN_RELEVANCE,
    chunksize: int = CSV_CHUNK_SIZE,
) -> dict[int, list[GenomeTag]]:
    """Load genome-scores.csv, keeping labelled tags with relevance >= min_relevance."""
    relevance = RelevanceFilter(labels, threshold=min_relevance)
    for chunk in iter_csv_chunks(path, ["movieId", "tagId", "relevance"], chunksize):
        relevance.add_frame(
            coerce_numeric(chunk, int_cols=["movieId", "tagId"], float_cols=["relevance"])
        )
    return relevance.ranked()


def load_user_tags(
    path: Path | str,
    top_n: int = TOP_USER_TAGS,
    chunksize: int = CSV_CHUNK_SIZE,
) -> dict[int, list[str]]:
    """Load tags.csv (userId, movieId, tag, timestamp) into top tags per movie."""
    ranker = TagFrequencyRanker(top_n=top_n)
    for chunk in iter_csv_chunks(path, ["userId", "movieId", "tag", "timestamp"], chunksize):
        ranker.add_frame(coerce_numeric(chunk, int_cols=["userId", "movieId"]))
    return ranker.ranked()


def iter_rating_rows(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> Iterator[pd.DataFrame]:
    """Stream parsed ratings.csv chunks (userId, movieId, rating, timestamp)."""
    for chunk in iter_csv_chunks(path, ["userId", "movieId", "rating", "timestamp"], chunksize):
        yield coerce_numeric(
            chunk, int_cols=["userId", "movieId", "timestamp"], float_cols=["rating"]
        )


def load_rating_stats(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> dict[int, RatingStats]:
    """Average, count and last rating time per movie, in one pass over ratings.csv."""
    accumulator = RatingStatsAccumulator()
    for chunk in iter_rating_rows(path, chunksize):
        accumulator.add_frame(chunk)
    return accumulator.finalize()


def iter_user_ids(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> list[int]:
    """Distinct positive userIds in ratings.csv, ascending."""
    users: set[int] = set()
    for chunk in iter_csv_chunks(path, ["userId"], chunksize):
        chunk = coerce_numeric(chunk, int_cols=["userId"])
        users.update(chunk.loc[chunk["userId"] > 0, "userId"].tolist())
    return sorted(users)


def load_id_map(path: Path | str, key_column: str, index_column: str) -> IdMapper:
    """Load item_map.csv (movieId, iIdx) or user_map.csv (userId, uIdx)."""
    return IdMapper.from_csv(path, key_column=key_column, index_column=index_column)


def load_similarities(
    path: Path | str,
    reverse_index: dict[int, int],
    top_k: int = TOP_NEIGHBORS,
    chunksize: int = CSV_CHUNK_SIZE,
) -> NeighborTableBuilder:
    """Load item_topk_cosine_conc.csv (iIdx, jIdx, sim) grouped by source iIdx."""
    builder = NeighborTableBuilder(reverse_index, top_k=top_k)
    for chunk in iter_csv_chunks(path, ["iIdx", "jIdx", "sim"], chunksize):
        builder.add_frame(coerce_numeric(chunk, int_cols=["iIdx", "jIdx"], float_cols=["sim"]))
    return builder


def split_genres(raw: str) -> list[str]:
    """Split a pipe-delimited genre string, ignoring the no-genre placeholder."""
    raw = raw.strip()
    if not raw or raw == NO_GENRES:
        return []
    return [g.strip() for g in raw.split("|") if g.strip() and g.strip() != NO_GENRES]


def iter_catalog_rows(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> Iterator[pd.DataFrame]:
    """Stream movies.csv chunks (movieId, title, genres), keeping positive movieIds."""
    for chunk in iter_csv_chunks(path, ["movieId", "title", "genres"], chunksize):
        chunk = coerce_numeric(chunk, int_cols=["movieId"])
        chunk = chunk[chunk["movieId"] > 0]
        yield chunk.assign(
            title=text_column(chunk, "title"),
            genres=text_column(chunk, "genres"),
        )


def extract_unique_genres(path: Path | str, chunksize: int = CSV_CHUNK_SIZE) -> list[str]:
    """Sorted set of every genre used in movies.csv."""
    genres: set[str] = set()
    for chunk in iter_catalog_rows(path, chunksize):
        for raw in chunk["genres"].tolist():
            genres.update(split_genres(raw))
    return sorted(genres)
