"""Tests for Morton keys and Z-curve rank reordering."""

import numpy as np
import pytest
from mpi4py import MPI
from groupcomm import morton_keys, physical_coordinates, reorder_ranks_zcurve


class TestMortonKeys:
    """Bit interleaving."""

    def test_2d_z_order(self):
        """The 2x2 block is visited in Z order, first coordinate most significant."""
        keys = morton_keys([(0, 0), (0, 1), (1, 0), (1, 1)])
        assert keys.tolist() == [0, 1, 2, 3]

    def test_interleaving(self):
        # x = 0b11, y = 0b00 -> 0b1010
        assert morton_keys([(3, 0)]).tolist() == [10]
        assert morton_keys([(0, 3)]).tolist() == [5]

    def test_1d_is_identity(self):
        assert morton_keys([[5], [2]]).tolist() == [5, 2]

    def test_locality(self):
        """Points of one quadrant come before the next quadrant."""
        pts = [(x, y) for x in range(4) for y in range(4)]
        keys = morton_keys(pts)
        order = [pts[i] for i in np.argsort(keys)]
        assert order[:4] == [(0, 0), (0, 1), (1, 0), (1, 1)]

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            morton_keys([(-1, 0)])

    def test_too_large_rejected(self):
        with pytest.raises(ValueError):
            morton_keys([(2 ** 32, 0)])


class TestReorder:
    """Reordering on a single rank."""

    def test_unavailable_coordinates_keep_comm(self):
        comm = MPI.COMM_SELF
        assert reorder_ranks_zcurve(comm, lambda c: None) is comm

    def test_split_single_rank(self):
        comm = reorder_ranks_zcurve(MPI.COMM_SELF, lambda c: (3, 1))
        assert comm is not MPI.COMM_SELF
        assert comm.Get_size() == 1
        assert comm.Get_rank() == 0
        comm.Free()

    def test_physical_coordinates(self):
        coords = physical_coordinates(MPI.COMM_SELF)
        if coords is not None:
            node, cpu = coords
            assert node == 0
            assert cpu >= 0
