"""Key -> dense index mapping for movies (iIdx) and users (uIdx)."""

from __future__ import annotations

import threading
from pathlib import Path

import pandas as pd

from movielens_etl.data.readers import coerce_numeric, iter_csv_chunks


class IdMapper:
    """Bijection between external keys (>= 1) and dense indices (>= 0).

    Loaded once from a persisted table and grown at runtime as new keys are
    discovered. New indices start one past the largest index ever seen, so
    they never collide with loaded ones and are never reused.
    """

    def __init__(
        self,
        mapping: dict[int, int] | None = None,
        key_column: str = "key",
        index_column: str = "index",
    ):
        self.key_column = key_column
        self.index_column = index_column
        self._mapping: dict[int, int] = dict(mapping or {})
        self._next_index = max(self._mapping.values(), default=-1) + 1
        self._changed = False
        self._lock = threading.Lock()

    @classmethod
    def from_csv(
        cls,
        path: Path | str,
        key_column: str,
        index_column: str,
    ) -> "IdMapper":
        """Load a ``key,index`` table. Rows with a non-positive key are ignored."""
        mapping: dict[int, int] = {}
        for chunk in iter_csv_chunks(path, [key_column, index_column]):
            chunk = coerce_numeric(chunk, int_cols=[key_column, index_column])
            chunk = chunk[chunk[key_column] > 0]
            mapping.update(zip(chunk[key_column].tolist(), chunk[index_column].tolist()))
        return cls(mapping, key_column=key_column, index_column=index_column)

    def get_or_create(self, key: int) -> int:
        """Return the index for ``key``, assigning the next free one if unseen."""
        index = self._mapping.get(key)
        if index is not None:
            return index

        with self._lock:
            index = self._mapping.get(key)
            if index is None:
                index = self._next_index
                self._mapping[key] = index
                self._next_index += 1
                self._changed = True
            return index

    def get(self, key: int) -> int | None:
        return self._mapping.get(key)

    def has_changed(self) -> bool:
        return self._changed

    def snapshot(self) -> dict[int, int]:
        """Copy of the current key -> index table."""
        with self._lock:
            return dict(self._mapping)

    def reverse(self) -> dict[int, int]:
        """Build the index -> key lookup from the current table."""
        return {index: key for key, index in self.snapshot().items()}

    def count(self) -> int:
        return len(self._mapping)

    def __len__(self) -> int:
        return self.count()

    def save_csv(self, path: Path | str) -> None:
        """Write the table back, ordered by index, with the original header."""
        rows = sorted(self.snapshot().items(), key=lambda kv: kv[1])
        df = pd.DataFrame(rows, columns=[self.key_column, self.index_column])
        df.to_csv(path, index=False)
        self._changed = False
