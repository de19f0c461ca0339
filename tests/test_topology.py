"""Tests for GroupTopology construction, queries and persistence."""

import copy
import io

import numpy as np
import pytest
from mpi4py import MPI

from groupcomm import GroupTopology, ListOfIntegerSets, PartitionError
from conftest import MockComm, RANK1_TOPOLOGY


class TestCreateSingleRank:
    """create() on COMM_SELF: no communication happens."""

    def test_no_shared_groups(self):
        gtopo = GroupTopology(MPI.COMM_SELF)
        gtopo.create([])
        assert gtopo.n_groups == 1
        assert gtopo.n_neighbors == 1
        assert gtopo.neighbor_rank(0) == 0
        assert gtopo.is_master(0)
        assert gtopo.group(0).tolist() == [0]
        assert gtopo.group_master_group(0) == 0

    def test_duplicate_local_set_collapses(self):
        gtopo = GroupTopology(MPI.COMM_SELF)
        gtopo.create([[0], [0]])
        assert gtopo.n_groups == 1

    def test_rank_out_of_range(self):
        with pytest.raises(PartitionError):
            GroupTopology(MPI.COMM_SELF).create([[0, 1]])

    def test_set_zero_must_be_local(self):
        with pytest.raises(PartitionError):
            GroupTopology(MPI.COMM_SELF).create(ListOfIntegerSets())

    def test_empty_set_rejected(self):
        sets = ListOfIntegerSets([[0]])
        sets.insert([])
        with pytest.raises(PartitionError):
            GroupTopology(MPI.COMM_SELF).create(sets)


class TestQueries:
    """Queries on a loaded three-rank topology (rank 1)."""

    def test_neighbors(self, rank1_topology):
        assert rank1_topology.n_neighbors == 3
        assert [rank1_topology.neighbor_rank(i) for i in range(3)] == [1, 0, 2]

    def test_masters(self, rank1_topology):
        g = rank1_topology
        assert g.is_master(0)
        assert not g.is_master(1)
        assert g.is_master(2)
        assert g.group_master(1) == 1
        assert g.group_master_rank(3) == 0

    def test_master_group_index(self, rank1_topology):
        assert rank1_topology.group_master_group(1) == 4
        assert rank1_topology.group_master_group(2) == 2

    def test_group_members(self, rank1_topology):
        assert rank1_topology.group_size(3) == 3
        assert rank1_topology.group(2).tolist() == [0, 2]

    def test_group_is_read_only(self, rank1_topology):
        with pytest.raises(ValueError):
            rank1_topology.group(1)[0] = 5


class TestPersistence:
    """save()/load() text format."""

    def test_round_trip(self, rank1_topology, mock_comm):
        out = io.StringIO()
        rank1_topology.save(out)
        loaded = GroupTopology(mock_comm)
        loaded.load(io.StringIO(out.getvalue()))

        assert loaded.group_lproc == rank1_topology.group_lproc
        assert np.array_equal(loaded.lproc_proc, rank1_topology.lproc_proc)
        assert np.array_equal(loaded.groupmaster_lproc, rank1_topology.groupmaster_lproc)
        assert np.array_equal(loaded.group_mgroup, rank1_topology.group_mgroup)

    def test_save_header(self, rank1_topology):
        out = io.StringIO()
        rank1_topology.save(out)
        text = out.getvalue()
        assert "communication_groups" in text
        assert "number_of_groups 4" in text
        assert "number_of_neighbors 3" in text

    def test_load_without_comm(self):
        gtopo = GroupTopology()
        gtopo.load(io.StringIO(RANK1_TOPOLOGY))
        assert gtopo.n_groups == 4

    def test_load_wrong_rank(self):
        gtopo = GroupTopology(MockComm(rank=0))
        with pytest.raises(PartitionError):
            gtopo.load(io.StringIO(RANK1_TOPOLOGY))

    def test_load_truncated(self):
        with pytest.raises(PartitionError):
            GroupTopology().load(io.StringIO("communication_groups\nnumber_of_groups 2\n"))

    def test_load_bad_header(self):
        with pytest.raises(PartitionError):
            GroupTopology().load(io.StringIO("groups\n"))


class TestCopy:
    """Copies are independent of the original."""

    @pytest.mark.parametrize("make_copy", [lambda g: g.copy(), copy.copy, copy.deepcopy])
    def test_copy_independent(self, rank1_topology, make_copy):
        c = make_copy(rank1_topology)
        c.group_mgroup[1] = 99
        c.lproc_proc[1] = 7
        assert rank1_topology.group_master_group(1) == 4
        assert rank1_topology.neighbor_rank(1) == 0
        assert c.comm is rank1_topology.comm
