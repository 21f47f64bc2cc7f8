"""Constants, paths and per-run configuration for the MovieLens ETL."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ────────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("MOVIELENS_DATA_DIR", PROJECT_ROOT / "data"))
OUT_DIR = Path(os.getenv("ETL_OUT_DIR", PROJECT_ROOT / "out"))

# ── Input files ──────────────────────────────────────────────────────────────
MOVIES_FILE = "movies.csv"
RATINGS_FILE = "ratings.csv"
LINKS_FILE = "links.csv"
TAGS_FILE = "tags.csv"
GENOME_TAGS_FILE = "genome-tags.csv"
GENOME_SCORES_FILE = "genome-scores.csv"
ITEM_MAP_FILE = "item_map.csv"
USER_MAP_FILE = "user_map.csv"
SIMILARITIES_FILE = "item_topk_cosine_conc.csv"

# ── Output files ─────────────────────────────────────────────────────────────
MOVIES_OUT = "movies.ndjson"
RATINGS_OUT = "ratings.ndjson"
USERS_OUT = "users.ndjson"
SIMILARITIES_OUT = "similarities.ndjson"
PASSWORD_LOG_OUT = "passwords_log.csv"

# ── TMDB ─────────────────────────────────────────────────────────────────────
TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
TMDB_PROFILE_BASE = "https://image.tmdb.org/t/p/w185"
TMDB_REQUESTS_PER_SECOND = 4
TMDB_TIMEOUT_SECONDS = 10
ENRICHMENT_WORKERS = 4

# ── Side tables ──────────────────────────────────────────────────────────────
MIN_RELEVANCE = 0.5
TOP_GENOME_TAGS = 10
TOP_USER_TAGS = 10
TOP_NEIGHBORS = 20
MAX_CAST = 10
NO_GENRES = "(no genres listed)"
CSV_CHUNK_SIZE = 500_000


@dataclass
class EtlConfig:
    """Values for one ETL run. Defaults mirror the module constants."""

    data_dir: Path = DATA_DIR
    out_dir: Path = OUT_DIR
    movies_file: str = MOVIES_FILE
    ratings_file: str = RATINGS_FILE
    links_file: str = LINKS_FILE
    tags_file: str = TAGS_FILE
    genome_tags_file: str = GENOME_TAGS_FILE
    genome_scores_file: str = GENOME_SCORES_FILE
    item_map_file: str = ITEM_MAP_FILE
    user_map_file: str = USER_MAP_FILE
    similarities_file: str = SIMILARITIES_FILE
    min_relevance: float = MIN_RELEVANCE
    top_genome_tags: int = TOP_GENOME_TAGS
    hash_passwords: bool = True
    fetch_external: bool = False
    tmdb_api_key: str = field(default_factory=lambda: TMDB_API_KEY)
    tmdb_rate_limit: float = TMDB_REQUESTS_PER_SECOND
    workers: int = ENRICHMENT_WORKERS
    persist_mappings: bool = True
    chunksize: int = CSV_CHUNK_SIZE

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.out_dir = Path(self.out_dir)

    def path_for(self, name: str) -> Path:
        """Resolve an input file name against the data directory."""
        return self.data_dir / name

    def out_path(self, name: str) -> Path:
        """Resolve an output file name against the output directory."""
        return self.out_dir / name
