"""Shared fixtures: a loaded three-rank topology seen from rank 1."""

import io

import pytest

from groupcomm import GroupTopology


class MockComm:
    """Mock MPI communicator: rank, size and TAG_UB only, no messaging."""

    def __init__(self, rank=1, size=3, tag_ub=32767):
        self._rank = rank
        self._size = size
        self.tag_ub = tag_ub

    def Get_rank(self):
        return self._rank

    def Get_size(self):
        return self._size

    def Get_attr(self, keyval):
        return self.tag_ub


# Rank 1 of 3. Groups: {1}, {0,1}, {1,2}, {0,1,2}; neighbors 1, 0, 2.
# Rank 0 masters {0,1} as its group 4 and {0,1,2} as its group 2.
RANK1_TOPOLOGY = """
communication_groups
number_of_groups 4
number_of_neighbors 3
1 0 2

# number of neighbors in each group, followed by neighbor ids
1 0
2 1 0
2 0 2
3 1 0 2

# master neighbor id of each group
0 1 0 1

# group index in its master
0 4 2 2
"""


@pytest.fixture
def mock_comm():
    return MockComm()


@pytest.fixture
def rank1_topology(mock_comm):
    gtopo = GroupTopology(mock_comm)
    gtopo.load(io.StringIO(RANK1_TOPOLOGY))
    return gtopo
