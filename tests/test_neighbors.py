"""Tests for neighbor list grouping and similarity documents."""

import pandas as pd

from movielens_etl.deploy.ndjson_writer import similarity_docs
from movielens_etl.features.neighbors import Neighbor, NeighborTableBuilder


class TestNeighborTableBuilder:
    """Grouping, truncation and index filtering."""

    def test_truncates_to_top_k_in_input_order(self):
        builder = NeighborTableBuilder({}, top_k=20)
        for target in range(1, 26):
            builder.add(10, target, target / 100)

        neighbors = builder.neighbors_for(10)
        assert len(neighbors) == 20
        assert [n.i_idx for n in neighbors] == list(range(1, 21))
        assert builder.unsorted_sources() == 1

    def test_sorted_input_is_not_reported(self):
        builder = NeighborTableBuilder({})
        builder.add(1, 2, 0.9)
        builder.add(1, 3, 0.9)
        builder.add(1, 4, 0.1)
        assert builder.unsorted_sources() == 0

    def test_zero_indices_are_skipped(self):
        builder = NeighborTableBuilder({})
        builder.add(0, 1, 0.3)
        builder.add(1, 0, 0.3)
        assert len(builder) == 0

    def test_add_frame_resolves_movie_ids(self):
        builder = NeighborTableBuilder({1: 2, 2: 3})
        builder.add_frame(pd.DataFrame({"iIdx": [1, 0, 2], "jIdx": [2, 1, 7], "sim": [0.9, 0.3, 0.5]}))
        assert builder.sources() == [1, 2]
        assert builder.neighbors_for(1) == [Neighbor(3, 2, 0.9)]
        assert builder.neighbors_for(2) == [Neighbor(None, 7, 0.5)]

    def test_neighbor_doc_omits_unknown_movie(self):
        assert Neighbor(None, 7, 0.5).to_doc() == {"iIdx": 7, "sim": 0.5}


def test_similarity_docs():
    reverse_index = {1: 2, 2: 3}
    builder = NeighborTableBuilder(reverse_index)
    builder.add(1, 2, 0.9)
    builder.add(5, 1, 0.4)

    docs = list(similarity_docs(builder, reverse_index, now="2024-01-01T00:00:00Z"))
    assert docs[0] == {
        "_id": "1_cosine_k20",
        "movieId": 2,
        "iIdx": 1,
        "metric": "cosine",
        "k": 1,
        "neighbors": [{"movieId": 3, "iIdx": 2, "sim": 0.9}],
        "updatedAt": "2024-01-01T00:00:00Z",
    }
    assert "movieId" not in docs[1]
    assert docs[1]["neighbors"] == [{"movieId": 2, "iIdx": 1, "sim": 0.4}]
