"""End-to-end tests for the ETL run and its command line."""

import pandas as pd
import pytest
import requests_mock

from conftest import read_ndjson
from movielens_etl.config import EtlConfig
from movielens_etl.scripts.run_etl import main, parse_args, run_etl

TMDB = "https://api.themoviedb.org/3"


def make_config(data_dir, out_dir, **overrides):
    values = dict(
        data_dir=data_dir,
        out_dir=out_dir,
        hash_passwords=False,
        tmdb_api_key="",
        chunksize=2,
    )
    values.update(overrides)
    return EtlConfig(**values)


class TestRunEtl:
    """Full runs over the sample dump."""

    def test_full_run(self, data_dir, out_dir):
        summary = run_etl(make_config(data_dir, out_dir))

        assert summary.movies == 4
        assert summary.ratings == 4
        assert summary.users == 3
        assert summary.similarities == 2

        movies = {d["movieId"]: d for d in read_ndjson(out_dir / "movies.ndjson")}
        toy_story = movies[1]
        assert toy_story["iIdx"] == 0
        assert toy_story["title"] == "Toy Story"
        assert toy_story["links"] == {
            "movielens": "https://movielens.org/movies/1",
            "imdb": "http://www.imdb.com/title/tt0114709/",
            "tmdb": "https://www.themoviedb.org/movie/862",
        }
        assert toy_story["genomeTags"] == [
            {"tag": "animation", "relevance": 0.99},
            {"tag": "pixar animation", "relevance": 0.98},
        ]
        assert toy_story["userTags"] == ["pixar", "funny"]
        assert toy_story["ratingStats"] == {
            "average": 3.5,
            "count": 2,
            "lastRatedAt": "2000-07-30T18:45:03Z",
        }
        assert "externalData" not in toy_story
        assert "tmdb" not in movies[2]["links"]
        assert "genomeTags" not in movies[3]
        assert movies[4]["iIdx"] == 3
        assert movies[4]["genres"] == []
        assert "ratingStats" not in movies[4]

        ratings = read_ndjson(out_dir / "ratings.ndjson")
        assert ratings[0] == {"userId": 1, "movieId": 1, "rating": 4.0, "timestamp": 964982703}
        assert all(r["movieId"] != "x" for r in ratings)

        users = read_ndjson(out_dir / "users.ndjson")
        assert [(u["userId"], u["uIdx"]) for u in users] == [(1, 0), (2, 1), (3, 2)]
        assert set(users[0]["preferredGenres"]) <= {"Action", "Adventure", "Comedy", "Crime", "Drama"}

        sims = {d["_id"]: d for d in read_ndjson(out_dir / "similarities.ndjson")}
        assert set(sims) == {"1_cosine_k20", "2_cosine_k20"}
        assert sims["1_cosine_k20"]["movieId"] == 2
        assert sims["2_cosine_k20"]["neighbors"] == [
            {"movieId": 2, "iIdx": 1, "sim": 0.9},
            {"movieId": 4, "iIdx": 3, "sim": 0.5},
        ]

        assert (out_dir / "passwords_log.csv").exists()

    def test_grown_mappings_are_persisted(self, data_dir, out_dir):
        summary = run_etl(make_config(data_dir, out_dir))

        assert summary.item_map_saved and summary.user_map_saved
        items = pd.read_csv(data_dir / "item_map.csv")
        assert items["movieId"].tolist() == [1, 2, 3, 4]
        assert items["iIdx"].tolist() == [0, 1, 2, 3]
        users = pd.read_csv(data_dir / "user_map.csv")
        assert users.columns.tolist() == ["userId", "uIdx"]
        assert users["userId"].tolist() == [1, 2, 3]

    def test_persistence_can_be_disabled(self, data_dir, out_dir):
        before = (data_dir / "item_map.csv").read_text()
        summary = run_etl(make_config(data_dir, out_dir, persist_mappings=False))
        assert not summary.item_map_saved
        assert (data_dir / "item_map.csv").read_text() == before

    def test_missing_optional_sources_only_warn(self, data_dir, out_dir, capsys):
        for name in ["links.csv", "genome-scores.csv", "tags.csv",
                     "item_map.csv", "item_topk_cosine_conc.csv"]:
            (data_dir / name).unlink()

        summary = run_etl(make_config(data_dir, out_dir))

        assert "Warning: could not load links" in capsys.readouterr().out
        movies = read_ndjson(out_dir / "movies.ndjson")
        assert [m["iIdx"] for m in movies] == [0, 1, 2, 3]
        assert all("links" not in m and "userTags" not in m for m in movies)
        assert summary.similarities == 0
        assert (data_dir / "item_map.csv").exists()

    @pytest.mark.parametrize("name", ["movies.csv", "ratings.csv"])
    def test_missing_required_source_raises(self, data_dir, out_dir, name):
        (data_dir / name).unlink()
        with pytest.raises(FileNotFoundError):
            run_etl(make_config(data_dir, out_dir))

    def test_missing_ratings_fails_before_any_output(self, data_dir, out_dir, capsys):
        (data_dir / "ratings.csv").unlink()
        with pytest.raises(FileNotFoundError):
            run_etl(make_config(data_dir, out_dir))
        assert not (out_dir / "movies.ndjson").exists()
        assert "Warning" not in capsys.readouterr().out

    def test_out_of_range_timestamp_does_not_abort_run(self, data_dir, out_dir):
        with open(data_dir / "ratings.csv", "a", encoding="utf-8") as f:
            f.write("3,4,3.0,1700000000000000\n")

        summary = run_etl(make_config(data_dir, out_dir))

        assert summary.similarities == 2
        movies = {d["movieId"]: d for d in read_ndjson(out_dir / "movies.ndjson")}
        assert movies[4]["ratingStats"] == {"average": 3.0, "count": 1}

    def test_fetch_external_requires_key(self, data_dir, out_dir):
        with pytest.raises(ValueError):
            run_etl(make_config(data_dir, out_dir, fetch_external=True))

    def test_enrichment_run(self, data_dir, out_dir):
        config = make_config(
            data_dir, out_dir,
            fetch_external=True, tmdb_api_key="test-key", tmdb_rate_limit=1000, workers=2,
        )
        with requests_mock.Mocker() as m:
            m.get(f"{TMDB}/movie/862", json={"overview": "Toys.", "runtime": 81})
            m.get(f"{TMDB}/movie/862/credits", json={"cast": [], "crew": [
                {"name": "John Lasseter", "job": "Director"},
            ]})
            m.get(f"{TMDB}/movie/949", status_code=404)

            summary = run_etl(config)

        assert summary.enriched == 1
        assert summary.enrichment_errors == 0
        movies = {d["movieId"]: d for d in read_ndjson(out_dir / "movies.ndjson")}
        assert movies[1]["externalData"] == {
            "overview": "Toys.",
            "director": "John Lasseter",
            "runtime": 81,
            "tmdbFetched": True,
        }
        assert "externalData" not in movies[3]


class TestCommandLine:

    def test_parse_args(self, tmp_path):
        config = parse_args([
            "--data-dir", str(tmp_path),
            "--no-hash-passwords",
            "--no-persist-mappings",
            "--min-relevance", "0.8",
            "--workers", "8",
        ])
        assert config.data_dir == tmp_path
        assert config.hash_passwords is False
        assert config.persist_mappings is False
        assert config.min_relevance == 0.8
        assert config.workers == 8
        assert config.fetch_external is False

    def test_fetch_external_without_key_exits_with_error(self, data_dir, out_dir, capsys):
        code = main([
            "--data-dir", str(data_dir), "--out-dir", str(out_dir),
            "--fetch-external", "--tmdb-api-key", "",
        ])
        assert code == 1
        assert "TMDB_API_KEY" in capsys.readouterr().err
        assert not out_dir.exists()

    def test_main(self, data_dir, out_dir, capsys):
        code = main([
            "--data-dir", str(data_dir), "--out-dir", str(out_dir), "--no-hash-passwords",
        ])
        assert code == 0
        assert "ETL complete!" in capsys.readouterr().out
        assert (out_dir / "movies.ndjson").exists()
