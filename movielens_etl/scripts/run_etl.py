"""MovieLens -> NDJSON export: movies, ratings, users and item similarities."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

from movielens_etl.config import (
    MOVIES_OUT,
    PASSWORD_LOG_OUT,
    RATINGS_OUT,
    SIMILARITIES_OUT,
    TOP_NEIGHBORS,
    USERS_OUT,
    EtlConfig,
)
from movielens_etl.data.id_mapper import IdMapper
from movielens_etl.data.merge import MovieAssembler, SideTables, build_movies
from movielens_etl.data.movielens import (
    extract_unique_genres,
    iter_rating_rows,
    iter_user_ids,
    load_genome_scores,
    load_genome_tags,
    load_id_map,
    load_links,
    load_optional,
    load_rating_stats,
    load_similarities,
    load_user_tags,
)
from movielens_etl.data.tmdb import TMDBClient
from movielens_etl.deploy.ndjson_writer import rating_docs, similarity_docs, write_ndjson
from movielens_etl.features.neighbors import NeighborTableBuilder
from movielens_etl.features.stats import iso_now
from movielens_etl.features.users import UserGenerator, build_users


@dataclass
class EtlSummary:
    movies: int = 0
    ratings: int = 0
    users: int = 0
    similarities: int = 0
    enriched: int = 0
    enrichment_errors: int = 0
    item_map_saved: bool = False
    user_map_saved: bool = False


def load_side_tables(config: EtlConfig) -> SideTables:
    """First pass: scan every optional source into an in-memory lookup."""
    chunksize = config.chunksize

    print("Loading links...")
    links = load_optional(
        "links", load_links, {}, config.path_for(config.links_file), chunksize
    )
    print(f"  Links: {len(links):,} movies")

    print("Loading genome tags...")
    labels = load_optional(
        "genome tags", load_genome_tags, {}, config.path_for(config.genome_tags_file), chunksize
    )
    print(f"  Genome tags: {len(labels):,}")

    print("Loading genome scores...")
    genome_tags = load_optional(
        "genome scores",
        load_genome_scores,
        {},
        config.path_for(config.genome_scores_file),
        labels,
        config.min_relevance,
        chunksize,
    )
    print(f"  Genome scores: {len(genome_tags):,} movies (relevance >= {config.min_relevance:.2f})")

    print("Loading user tags...")
    user_tags = load_optional(
        "user tags", load_user_tags, {}, config.path_for(config.tags_file), chunksize=chunksize
    )
    print(f"  User tags: {len(user_tags):,} movies")

    print("Computing rating stats...")
    rating_stats = load_optional(
        "rating stats", load_rating_stats, {}, config.path_for(config.ratings_file), chunksize
    )
    print(f"  Rating stats: {len(rating_stats):,} movies")

    return SideTables(
        links=links,
        genome_tags=genome_tags,
        user_tags=user_tags,
        rating_stats=rating_stats,
    )


def run_etl(config: EtlConfig) -> EtlSummary:
    """Run every export in order and return what was written.

    Raises:
        ValueError: if external enrichment is requested without an API key.
        FileNotFoundError: if movies.csv or ratings.csv is missing.
    """
    summary = EtlSummary()
    config.out_dir.mkdir(parents=True, exist_ok=True)
    now = iso_now()

    tmdb_client = None
    if config.fetch_external:
        if not config.tmdb_api_key:
            raise ValueError("--fetch-external requires a TMDB API key (--tmdb-api-key or TMDB_API_KEY)")
        tmdb_client = TMDBClient(config.tmdb_api_key, requests_per_second=config.tmdb_rate_limit)
        print(f"TMDB client ready (rate limit: {config.tmdb_rate_limit:g} req/s)\n")

    for required in (config.movies_file, config.ratings_file):
        path = config.path_for(required)
        if not path.exists():
            raise FileNotFoundError(f"{path} not found.")

    tables = load_side_tables(config)

    print("Loading item map...")
    item_map_path = config.path_for(config.item_map_file)
    item_mapper = load_optional(
        "item map", load_id_map, IdMapper(key_column="movieId", index_column="iIdx"),
        item_map_path, "movieId", "iIdx",
    )
    print(f"  Item map: {item_mapper.count():,} movies")

    print("Loading user map...")
    user_map_path = config.path_for(config.user_map_file)
    user_mapper = load_optional(
        "user map", load_id_map, IdMapper(key_column="userId", index_column="uIdx"),
        user_map_path, "userId", "uIdx",
    )
    print(f"  User map: {user_mapper.count():,} users\n")

    # ── Movies ───────────────────────────────────────────────────────────────
    movies_path = config.path_for(config.movies_file)
    if tmdb_client is not None:
        print(f"Processing movies with TMDB enrichment: {movies_path}")
        print("  This can take a long time because of the TMDB rate limit...")
    else:
        print(f"Processing movies: {movies_path}")
    assembler = MovieAssembler(
        tables,
        item_mapper,
        now=now,
        top_genome_tags=config.top_genome_tags,
        tmdb_client=tmdb_client,
    )
    movies_out = config.out_path(MOVIES_OUT)
    summary.movies = build_movies(
        movies_path,
        movies_out,
        assembler,
        workers=config.workers if tmdb_client is not None else 1,
        chunksize=config.chunksize,
    )
    summary.enriched = assembler.fetched_count
    summary.enrichment_errors = assembler.error_count
    print(f"  Wrote {summary.movies:,} movies to {movies_out}")
    if tmdb_client is not None:
        print(f"  {summary.enriched:,} movies enriched with TMDB data")
        if summary.enrichment_errors:
            print(f"  Warning: {summary.enrichment_errors:,} TMDB errors")
    print()

    # ── Ratings ──────────────────────────────────────────────────────────────
    ratings_path = config.path_for(config.ratings_file)
    print(f"Processing ratings: {ratings_path}")
    ratings_out = config.out_path(RATINGS_OUT)
    summary.ratings = write_ndjson(ratings_out, rating_docs(iter_rating_rows(ratings_path, config.chunksize)))
    print(f"  Wrote {summary.ratings:,} ratings to {ratings_out}\n")

    # ── Users ────────────────────────────────────────────────────────────────
    print("Generating users...")
    generator = UserGenerator(
        user_mapper,
        extract_unique_genres(movies_path, config.chunksize),
        now=now,
        hash_passwords=config.hash_passwords,
    )
    users_out = config.out_path(USERS_OUT)
    summary.users = build_users(
        iter_user_ids(ratings_path, config.chunksize),
        users_out,
        config.out_path(PASSWORD_LOG_OUT),
        generator,
    )
    print(f"  Wrote {summary.users:,} users to {users_out}")
    print("  Passwords hashed with bcrypt" if config.hash_passwords else "  Warning: passwords stored unhashed")
    print(f"  Password log saved to {config.out_path(PASSWORD_LOG_OUT)}\n")

    # ── Similarities ─────────────────────────────────────────────────────────
    reverse_index = item_mapper.reverse()
    similarities_path = config.path_for(config.similarities_file)
    print(f"Loading similarities from {similarities_path}...")
    builder = load_optional(
        "similarities",
        load_similarities,
        NeighborTableBuilder(reverse_index),
        similarities_path,
        reverse_index,
        TOP_NEIGHBORS,
        config.chunksize,
    )
    print(f"  Similarities: {len(builder):,} movies")
    unsorted = builder.unsorted_sources()
    if unsorted:
        print(
            f"  Warning: {unsorted:,} movies have neighbors not sorted by similarity; "
            f"keeping the first {builder.top_k} as listed"
        )
    similarities_out = config.out_path(SIMILARITIES_OUT)
    summary.similarities = write_ndjson(similarities_out, similarity_docs(builder, reverse_index, now))
    print(f"  Wrote {summary.similarities:,} similarity docs to {similarities_out}\n")

    # ── Mappings ─────────────────────────────────────────────────────────────
    if config.persist_mappings:
        if item_mapper.has_changed():
            item_mapper.save_csv(item_map_path)
            summary.item_map_saved = True
            print(f"Saved item map ({item_mapper.count():,} movies) to {item_map_path}")
        if user_mapper.has_changed():
            user_mapper.save_csv(user_map_path)
            summary.user_map_saved = True
            print(f"Saved user map ({user_mapper.count():,} users) to {user_map_path}")

    return summary


def parse_args(argv: list[str] | None = None) -> EtlConfig:
    defaults = EtlConfig()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data-dir", default=defaults.data_dir)
    parser.add_argument("--movies-file", default=defaults.movies_file)
    parser.add_argument("--ratings-file", default=defaults.ratings_file)
    parser.add_argument("--links-file", default=defaults.links_file)
    parser.add_argument("--tags-file", default=defaults.tags_file)
    parser.add_argument("--genome-tags-file", default=defaults.genome_tags_file)
    parser.add_argument("--genome-scores-file", default=defaults.genome_scores_file)
    parser.add_argument("--item-map-file", default=defaults.item_map_file)
    parser.add_argument("--user-map-file", default=defaults.user_map_file)
    parser.add_argument("--similarities-file", default=defaults.similarities_file)
    parser.add_argument("--out-dir", default=defaults.out_dir)
    parser.add_argument("--min-relevance", type=float, default=defaults.min_relevance,
                        help="Minimum genome tag relevance (0.0-1.0)")
    parser.add_argument("--top-genome-tags", type=int, default=defaults.top_genome_tags)
    parser.add_argument("--hash-passwords", action=argparse.BooleanOptionalAction,
                        default=defaults.hash_passwords, help="Hash passwords with bcrypt (slow)")
    parser.add_argument("--fetch-external", action="store_true",
                        help="Enrich movies with TMDB details and credits")
    parser.add_argument("--tmdb-api-key", default=defaults.tmdb_api_key)
    parser.add_argument("--tmdb-rate-limit", type=float, default=defaults.tmdb_rate_limit,
                        help="TMDB requests per second")
    parser.add_argument("--workers", type=int, default=defaults.workers,
                        help="Worker threads for TMDB enrichment")
    parser.add_argument("--no-persist-mappings", dest="persist_mappings", action="store_false",
                        help="Do not write grown item/user maps back to the data dir")
    args = parser.parse_args(argv)
    return EtlConfig(**vars(args))


def main(argv: list[str] | None = None) -> int:
    config = parse_args(argv)
    phase = "with TMDB enrichment" if config.fetch_external else "base export"
    print(f"=== MovieLens NDJSON ETL ({phase}) ===\n")

    if config.fetch_external and not config.tmdb_api_key:
        print("Error: --fetch-external requires --tmdb-api-key or TMDB_API_KEY", file=sys.stderr)
        print("Get an API key at https://www.themoviedb.org/settings/api", file=sys.stderr)
        return 1

    summary = run_etl(config)

    print("\nSummary:")
    print(f"  Movies:       {summary.movies:,}")
    print(f"  Ratings:      {summary.ratings:,}")
    print(f"  Users:        {summary.users:,}")
    print(f"  Similarities: {summary.similarities:,}")
    if config.fetch_external:
        print(f"  Enriched:     {summary.enriched:,} ({summary.enrichment_errors:,} errors)")
    print("\nETL complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
