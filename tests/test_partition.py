"""Tests for the structured block partition."""

import numpy as np
import pytest
from groupcomm import BlockPartition, PartitionError
from groupcomm.partition import split_elements


def test_split_elements():
    counts, starts = split_elements(10, 3)
    assert counts == [4, 3, 3]
    assert starts == [0, 4, 7]


class TestSingleRank:
    """One rank owns everything."""

    def test_all_local(self):
        part = BlockPartition([4, 3], rank=0, size=1)
        assert part.local_shape == (5, 4)
        assert len(part.groups) == 1
        assert np.all(part.ldof_group == 0)
        assert part.n_true_dofs == part.n_ldofs == 20
        assert part.ldof_ltdof.tolist() == list(range(20))


class Test1D:
    """8 elements over 2 ranks share vertex 4."""

    def test_rank0(self):
        part = BlockPartition([8], rank=0, size=2)
        assert part.global_ids.tolist() == [0, 1, 2, 3, 4]
        assert part.groups[1] == (0, 1)
        assert part.ldof_group.tolist() == [0, 0, 0, 0, 1]
        assert part.owners.tolist() == [0] * 5
        assert part.ldof_ltdof.tolist() == [0, 1, 2, 3, 4]

    def test_rank1(self):
        part = BlockPartition([8], rank=1, size=2)
        assert part.global_ids.tolist() == [4, 5, 6, 7, 8]
        assert part.ldof_group.tolist() == [1, 0, 0, 0, 0]
        assert part.owners[0] == 0
        assert part.ldof_ltdof.tolist() == [-1, 0, 1, 2, 3]
        assert part.ldof_ranks(0) == (0, 1)


class Test2D:
    """4x4 elements over a 2x2 processor grid."""

    @pytest.fixture(params=range(4))
    def part(self, request):
        return BlockPartition([4, 4], rank=request.param, size=4, dims=[2, 2])

    def test_local_shape(self, part):
        assert part.local_shape == (3, 3)

    def test_groups(self, part):
        """Two edge groups with one neighbor each and the corner group of all ranks."""
        sizes = sorted(len(s) for s in part.groups)
        assert sizes == [1, 2, 2, 4]
        assert (0, 1, 2, 3) in part.groups

    def test_centre_vertex(self, part):
        centre = int(np.nonzero(part.global_ids == 2 * 5 + 2)[0][0])
        assert part.ldof_ranks(centre) == (0, 1, 2, 3)
        assert part.owners[centre] == 0

    def test_true_dofs_cover_mesh(self):
        parts = [BlockPartition([4, 4], rank=r, size=4, dims=[2, 2]) for r in range(4)]
        owned = np.concatenate([p.global_ids[p.owned] for p in parts])
        assert sorted(owned.tolist()) == list(range(25))


class TestInvalid:
    """Rejected partitions."""

    def test_too_few_elements(self):
        with pytest.raises(PartitionError):
            BlockPartition([2], rank=0, size=3)

    def test_bad_axes(self):
        with pytest.raises(PartitionError):
            BlockPartition([2, 2, 2, 2], rank=0, size=1)

    def test_grid_mismatch(self):
        with pytest.raises(PartitionError):
            BlockPartition([4, 4], rank=0, size=4, dims=[2, 3])
