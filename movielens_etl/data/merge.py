"""Join the catalog with every side table into movie documents."""

from __future__ import annotations

import re
import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from movielens_etl.config import CSV_CHUNK_SIZE, ENRICHMENT_WORKERS, TOP_GENOME_TAGS
from movielens_etl.data.id_mapper import IdMapper
from movielens_etl.data.movielens import Links, iter_catalog_rows, split_genres
from movielens_etl.data.tmdb import EnrichmentError, ExternalData, TMDBClient
from movielens_etl.deploy.ndjson_writer import write_ndjson
from movielens_etl.features.relevance import GenomeTag
from movielens_etl.features.stats import RatingStats

YEAR_RE = re.compile(r"\(([0-9]{4})\)\s*$")


def parse_title_and_year(raw: str) -> tuple[str, int | None]:
    """Split "Toy Story (1995)" into ("Toy Story", 1995).

    Only a parenthesised four-digit group at the very end counts as a year;
    the title is whatever precedes the last opening parenthesis.
    """
    raw = raw.strip()
    match = YEAR_RE.search(raw)
    if not match:
        return raw, None

    year = int(match.group(1))
    idx = raw.rfind("(")
    if idx > 0:
        return raw[:idx].strip(), year
    return raw, year


@dataclass
class SideTables:
    """Per-movie lookups built in the first pass, read-only afterwards."""

    links: dict[int, Links] = field(default_factory=dict)
    genome_tags: dict[int, list[GenomeTag]] = field(default_factory=dict)
    user_tags: dict[int, list[str]] = field(default_factory=dict)
    rating_stats: dict[int, RatingStats] = field(default_factory=dict)


@dataclass
class MovieDoc:
    movie_id: int
    title: str
    genres: list[str]
    created_at: str
    updated_at: str
    i_idx: int | None = None
    year: int | None = None
    links: Links | None = None
    genome_tags: list[GenomeTag] | None = None
    user_tags: list[str] | None = None
    rating_stats: RatingStats | None = None
    external_data: ExternalData | None = None

    def to_doc(self) -> dict:
        doc: dict = {"movieId": self.movie_id}
        if self.i_idx is not None:
            doc["iIdx"] = self.i_idx
        doc["title"] = self.title
        if self.year is not None:
            doc["year"] = self.year
        doc["genres"] = self.genres
        if self.links is not None:
            doc["links"] = self.links.to_doc()
        if self.genome_tags:
            doc["genomeTags"] = [t.to_doc() for t in self.genome_tags]
        if self.user_tags:
            doc["userTags"] = self.user_tags
        if self.rating_stats is not None:
            doc["ratingStats"] = self.rating_stats.to_doc()
        if self.external_data is not None:
            doc["externalData"] = self.external_data.to_doc()
        doc["createdAt"] = self.created_at
        doc["updatedAt"] = self.updated_at
        return doc


class MovieAssembler:
    """Builds one MovieDoc per catalog row. Safe to call from worker threads."""

    def __init__(
        self,
        tables: SideTables,
        item_mapper: IdMapper,
        now: str,
        top_genome_tags: int = TOP_GENOME_TAGS,
        tmdb_client: TMDBClient | None = None,
    ):
        self.tables = tables
        self.item_mapper = item_mapper
        self.now = now
        self.top_genome_tags = top_genome_tags
        self.tmdb_client = tmdb_client
        self.fetched_count = 0
        self.error_count = 0
        self._counter_lock = threading.Lock()

    def assemble(self, movie_id: int, title_raw: str, genres_raw: str) -> MovieDoc:
        title, year = parse_title_and_year(title_raw)
        doc = MovieDoc(
            movie_id=movie_id,
            title=title,
            year=year,
            genres=split_genres(genres_raw),
            created_at=self.now,
            updated_at=self.now,
            i_idx=self.item_mapper.get_or_create(movie_id),
            links=self.tables.links.get(movie_id),
            user_tags=self.tables.user_tags.get(movie_id),
            rating_stats=self.tables.rating_stats.get(movie_id),
        )

        # Genome lists are already sorted by relevance, so the cut keeps the best.
        genome_tags = self.tables.genome_tags.get(movie_id)
        if genome_tags:
            doc.genome_tags = genome_tags[: self.top_genome_tags]

        if self.tmdb_client is not None and doc.links is not None and doc.links.tmdb_id:
            doc.external_data = self._enrich(doc.links.tmdb_id)

        return doc

    def _enrich(self, tmdb_id: str) -> ExternalData | None:
        try:
            data = self.tmdb_client.fetch_movie_data(tmdb_id)
        except EnrichmentError:
            with self._counter_lock:
                self.error_count += 1
                if self.error_count % 100 == 0:
                    print(f"  Warning: {self.error_count} TMDB errors so far...")
            return None

        if not data.fetched:
            return None
        with self._counter_lock:
            self.fetched_count += 1
            if self.fetched_count % 100 == 0:
                print(f"  Enriched {self.fetched_count} movies with TMDB...")
        return data


def build_movies(
    movies_path: Path | str,
    out_path: Path | str,
    assembler: MovieAssembler,
    workers: int = ENRICHMENT_WORKERS,
    chunksize: int = CSV_CHUNK_SIZE,
) -> int:
    """Second pass over movies.csv: assemble and write movies.ndjson.

    Rows are assembled by a thread pool (enrichment waits on the network),
    and written in catalog order.

    Returns:
        Number of documents written.
    """
    movies_path = Path(movies_path)
    if not movies_path.exists():
        raise FileNotFoundError(f"{movies_path} not found.")

    def _assemble(row: tuple[int, str, str]) -> dict:
        return assembler.assemble(*row).to_doc()

    def _docs() -> Iterator[dict]:
        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            for chunk in iter_catalog_rows(movies_path, chunksize):
                rows = zip(
                    chunk["movieId"].tolist(), chunk["title"].tolist(), chunk["genres"].tolist()
                )
                yield from executor.map(_assemble, rows)

    return write_ndjson(out_path, _docs())
