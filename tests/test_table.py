"""Tests for sparse tables and integer set lists."""

import numpy as np
import pytest
from groupcomm import ListOfIntegerSets, Table


class TestTable:
    """Tests for CSR row tables."""

    def test_from_rows(self):
        t = Table.from_rows([[0], [3, 1], [], [2]])
        assert t.size == 4
        assert t.size_of_connections == 4
        assert t.row(1).tolist() == [3, 1]
        assert t.row_size(2) == 0

    def test_from_assignment_keeps_input_order(self):
        """Items keep their input order within each row."""
        t = Table.from_assignment([2, 0, 2, 1, 2], n_rows=3)
        assert t.row(2).tolist() == [0, 2, 4]
        assert t.row(0).tolist() == [1]

    def test_from_assignment_excludes_row(self):
        t = Table.from_assignment([0, 1, 0, 1], n_rows=2, exclude_row=0)
        assert t.row_size(0) == 0
        assert t.row(1).tolist() == [1, 3]
        assert t.I[1] == 0

    def test_from_assignment_out_of_range(self):
        with pytest.raises(ValueError):
            Table.from_assignment([0, 3], n_rows=3)

    def test_from_pairs(self):
        t = Table.from_pairs([2, 1, 2], [5, 6, 7], n_rows=3)
        assert t.row(0).tolist() == []
        assert t.row(1).tolist() == [6]
        assert t.row(2).tolist() == [5, 7]

    def test_from_pairs_empty(self):
        t = Table.from_pairs([], [], n_rows=2)
        assert t.size == 2
        assert t.size_of_connections == 0

    def test_invalid_offsets(self):
        with pytest.raises(ValueError):
            Table(np.array([0, 3]), np.array([1, 2]))

    def test_copy_is_independent(self):
        t = Table.from_rows([[1, 2]])
        c = t.copy()
        c.J[0] = 9
        assert t.row(0).tolist() == [1, 2]
        assert c != t


class TestListOfIntegerSets:
    """Tests for deduplicated set lists."""

    def test_insert_deduplicates(self):
        sets = ListOfIntegerSets()
        assert sets.insert([3, 1]) == 0
        assert sets.insert([1, 3, 3]) == 0
        assert sets.insert([2]) == 1
        assert len(sets) == 2

    def test_lookup(self):
        sets = ListOfIntegerSets([[0], [2, 1]])
        assert sets.lookup((1, 2)) == 1
        with pytest.raises(KeyError):
            sets.lookup([5])

    def test_pick_element_is_smallest(self):
        sets = ListOfIntegerSets([[7, 4, 5]])
        assert sets.pick_element_in_set(0) == 4

    def test_as_table(self):
        t = ListOfIntegerSets([[1], [2, 0]]).as_table()
        assert t.row(1).tolist() == [0, 2]
