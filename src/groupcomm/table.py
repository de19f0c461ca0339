"""Sparse row tables and deduplicated lists of integer sets.

A ``Table`` stores rows of integers in compressed form: row ``i`` is
``J[I[i]:I[i+1]]``. Group membership, group dofs and neighbor-group lists
are all stored this way.
"""

from __future__ import annotations

from typing import Iterable, Optional

import numpy as np


IDX_DTYPE = np.int64


class Table:
    """Row-structured sparse table (CSR offsets ``I`` and entries ``J``)."""

    def __init__(self, I=None, J=None):
        self.I = np.zeros(1, dtype=IDX_DTYPE) if I is None else np.asarray(I, dtype=IDX_DTYPE)
        self.J = np.zeros(0, dtype=IDX_DTYPE) if J is None else np.asarray(J, dtype=IDX_DTYPE)
        if self.I.ndim != 1 or self.I.size == 0 or self.I[0] != 0:
            raise ValueError("Table offsets must be a 1-D array starting at 0")
        if self.I[-1] != self.J.size:
            raise ValueError(f"Table offsets end at {self.I[-1]}, expected {self.J.size}")

    @classmethod
    def from_rows(cls, rows: Iterable[Iterable[int]]) -> "Table":
        """Build a table from an iterable of rows."""
        rows = [np.asarray(list(r), dtype=IDX_DTYPE) for r in rows]
        I = np.zeros(len(rows) + 1, dtype=IDX_DTYPE)
        I[1:] = np.cumsum([r.size for r in rows])
        J = np.concatenate(rows) if rows else np.zeros(0, dtype=IDX_DTYPE)
        return cls(I, J.astype(IDX_DTYPE))

    @classmethod
    def from_assignment(
        cls, row_of_item, n_rows: int, exclude_row: Optional[int] = None
    ) -> "Table":
        """Invert an item -> row map into a row -> items table.

        Items keep their input order within each row. Items assigned to
        ``exclude_row`` are left out.
        """
        row_of_item = np.asarray(row_of_item, dtype=IDX_DTYPE)
        if row_of_item.size and (row_of_item.min() < 0 or row_of_item.max() >= n_rows):
            raise ValueError(f"Row index out of range [0, {n_rows})")

        items = np.arange(row_of_item.size, dtype=IDX_DTYPE)
        if exclude_row is not None:
            keep = row_of_item != exclude_row
            items, row_of_item = items[keep], row_of_item[keep]

        order = np.argsort(row_of_item, kind="stable")
        I = np.zeros(n_rows + 1, dtype=IDX_DTYPE)
        I[1:] = np.cumsum(np.bincount(row_of_item, minlength=n_rows))
        return cls(I, items[order])

    @classmethod
    def from_pairs(cls, rows, cols, n_rows: int) -> "Table":
        """Build a table from (row, column) connection pairs, kept in pair order per row."""
        rows = np.asarray(rows, dtype=IDX_DTYPE)
        cols = np.asarray(cols, dtype=IDX_DTYPE)
        order = np.argsort(rows, kind="stable")
        I = np.zeros(n_rows + 1, dtype=IDX_DTYPE)
        I[1:] = np.cumsum(np.bincount(rows, minlength=n_rows))
        return cls(I, cols[order])

    @property
    def size(self) -> int:
        """Number of rows."""
        return self.I.size - 1

    @property
    def size_of_connections(self) -> int:
        return int(self.I[-1])

    def row_size(self, i: int) -> int:
        return int(self.I[i + 1] - self.I[i])

    def row(self, i: int) -> np.ndarray:
        """Entries of row ``i`` (a view into ``J``)."""
        return self.J[self.I[i]:self.I[i + 1]]

    def copy(self) -> "Table":
        return Table(self.I.copy(), self.J.copy())

    def __eq__(self, other):
        if not isinstance(other, Table):
            return NotImplemented
        return np.array_equal(self.I, other.I) and np.array_equal(self.J, other.J)

    def __repr__(self):
        return f"Table(rows={self.size}, connections={self.size_of_connections})"


class ListOfIntegerSets:
    """Ordered list of distinct integer sets with O(1) lookup.

    Sets are normalized to sorted tuples; inserting a set that is already
    present returns its existing index.
    """

    def __init__(self, sets: Iterable[Iterable[int]] = ()):
        self._sets = []
        self._index = {}
        for s in sets:
            self.insert(s)

    @staticmethod
    def normalize(s: Iterable[int]) -> tuple:
        return tuple(sorted({int(x) for x in s}))

    def insert(self, s: Iterable[int]) -> int:
        key = self.normalize(s)
        idx = self._index.get(key)
        if idx is None:
            idx = len(self._sets)
            self._sets.append(key)
            self._index[key] = idx
        return idx

    def lookup(self, s: Iterable[int]) -> int:
        """Index of set ``s``; raises KeyError if it was never inserted."""
        return self._index[self.normalize(s)]

    def pick_element_in_set(self, i: int) -> int:
        """First (smallest) element of set ``i``."""
        return self._sets[i][0]

    def as_table(self) -> Table:
        return Table.from_rows(self._sets)

    def __len__(self):
        return len(self._sets)

    def __getitem__(self, i: int) -> tuple:
        return self._sets[i]

    def __iter__(self):
        return iter(self._sets)

    def __contains__(self, s):
        return self.normalize(s) in self._index
