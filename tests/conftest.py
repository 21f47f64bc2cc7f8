"""Shared fixtures: a tiny MovieLens dump written to a temp directory."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

MOVIES_CSV = """movieId,title,genres
1,Toy Story (1995),Adventure|Comedy
2,Some Title,Drama
3,"Heat, The (1995)",Action|Crime
4,Untitled,(no genres listed)
"""

LINKS_CSV = """movieId,imdbId,tmdbId
1,0114709,862
2,0113497,
3,0113277,949
"""

TAGS_CSV = """userId,movieId,tag,timestamp
1,1,Pixar,1139045764
2,1,pixar ,1139045765
1,1,pixar,1139045766
2,1,funny,1139045767
"""

GENOME_TAGS_CSV = """tagId,tag
1,007
2,animation
3,pixar animation
"""

GENOME_SCORES_CSV = """movieId,tagId,relevance
1,1,0.02
1,2,0.99
1,3,0.98
3,1,0.10
"""

RATINGS_CSV = """userId,movieId,rating,timestamp
1,1,4.0,964982703
1,3,5.0,964981247
2,1,3.0,964982224
2,x,4.0,964982000
3,2,2.5,964983000
"""

ITEM_MAP_CSV = """movieId,iIdx
1,0
2,1
3,2
"""

USER_MAP_CSV = """userId,uIdx
1,0
2,1
"""

SIMILARITIES_CSV = """iIdx,jIdx,sim
1,2,0.9
2,1,0.9
2,3,0.5
0,1,0.3
"""

SAMPLE_FILES = {
    "movies.csv": MOVIES_CSV,
    "links.csv": LINKS_CSV,
    "tags.csv": TAGS_CSV,
    "genome-tags.csv": GENOME_TAGS_CSV,
    "genome-scores.csv": GENOME_SCORES_CSV,
    "ratings.csv": RATINGS_CSV,
    "item_map.csv": ITEM_MAP_CSV,
    "user_map.csv": USER_MAP_CSV,
    "item_topk_cosine_conc.csv": SIMILARITIES_CSV,
}


def write_csv(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def read_ndjson(path: Path) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.fixture
def data_dir(tmp_path):
    """Directory holding every input file of a full run."""
    root = tmp_path / "data"
    root.mkdir()
    for name, text in SAMPLE_FILES.items():
        write_csv(root / name, text)
    return root


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"
