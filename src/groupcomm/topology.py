"""Group topology: which processes share which groups, and who masters them.

Shared entities (vertices, edges, faces, dofs, ...) are split into groups,
each group determined by the set of participating ranks. Ranks are numbered
locally as neighbors ("lproc"). Conventions:

- group 0 is the local group ``{my_rank}``
- neighbor 0 is the local process, ``lproc_proc[0] == my_rank``
- ``groupmaster_lproc[0] == 0``
- the master of a group is its smallest global rank, so every member
  computes the same master independently
"""

from __future__ import annotations

import logging
from typing import Iterable, TextIO, Union

import numpy as np
from mpi4py import MPI

from .errors import PartitionError
from .message import VarMessage
from .table import IDX_DTYPE, ListOfIntegerSets, Table

log = logging.getLogger(__name__)

DEFAULT_TOPOLOGY_TAG = 822


class _MasterGroupMessage(VarMessage):
    """List of (group index in master, member ranks) sent by a master to a neighbor."""

    def __init__(self):
        super().__init__()
        self.groups = []

    def encode(self, rank: int):
        words = []
        for mgroup, ranks in self.groups:
            words.extend((mgroup, len(ranks)))
            words.extend(ranks)
        self.data = np.asarray(words, dtype=np.int32).tobytes()

    def decode(self, rank: int):
        words = np.frombuffer(self.data, dtype=np.int32)
        self.groups = []
        pos = 0
        while pos < words.size:
            mgroup, n = int(words[pos]), int(words[pos + 1])
            self.groups.append((mgroup, tuple(int(r) for r in words[pos + 2:pos + 2 + n])))
            pos += 2 + n


class GroupTopology:
    """Group membership, neighbor ranks and master information for one process.

    Parameters
    ----------
    comm : MPI.Comm, optional
        Communicator the groups are defined on. Needed by ``create``; a
        topology restored with ``load`` only needs it for communication.
    """

    def __init__(self, comm: MPI.Comm = None):
        self._comm = comm
        # Neighbor ids in each group
        self.group_lproc = Table.from_rows([[0]])
        # Master neighbor id of each group
        self.groupmaster_lproc = np.zeros(1, dtype=IDX_DTYPE)
        # Global rank of each neighbor
        self.lproc_proc = np.zeros(1, dtype=IDX_DTYPE)
        if comm is not None:
            self.lproc_proc[0] = comm.Get_rank()
        # Group number in its master
        self.group_mgroup = np.zeros(1, dtype=IDX_DTYPE)

    @property
    def comm(self) -> MPI.Comm:
        return self._comm

    def set_comm(self, comm: MPI.Comm):
        self._comm = comm

    @property
    def my_rank(self) -> int:
        return self._comm.Get_rank()

    @property
    def n_ranks(self) -> int:
        return self._comm.Get_size()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def create(
        self,
        groups: Union[ListOfIntegerSets, Iterable[Iterable[int]]],
        tag: int = DEFAULT_TOPOLOGY_TAG,
    ):
        """Build the topology from the rank sets that co-own shared entities.

        Collective over the neighbors: every master tells each member the
        index it uses for their common groups.

        Parameters
        ----------
        groups : ListOfIntegerSets or iterable of rank sets
            A ``ListOfIntegerSets`` must hold ``{my_rank}`` as set 0. Any other
            iterable is deduplicated in order, after ``{my_rank}``.
        tag : int
            Message tag used for the master-group exchange.
        """
        rank, size = self.my_rank, self.n_ranks
        if not isinstance(groups, ListOfIntegerSets):
            sets = ListOfIntegerSets([(rank,)])
            for s in groups:
                sets.insert(s)
            groups = sets
        self._validate(groups, rank, size)

        group_proc = groups.as_table()
        master_proc = np.array(
            [groups.pick_element_in_set(g) for g in range(len(groups))], dtype=IDX_DTYPE
        )
        self._proc_to_lproc(group_proc, master_proc, size)
        self._exchange_master_groups(groups, tag)

        log.debug(
            f"Rank {rank}: {self.n_groups} groups, {self.n_neighbors} neighbors, "
            f"{sum(self.is_master(g) for g in range(1, self.n_groups))} mastered"
        )

    @staticmethod
    def _validate(groups: ListOfIntegerSets, rank: int, size: int):
        if len(groups) == 0 or groups[0] != (rank,):
            raise PartitionError(f"Rank {rank}: group 0 must be the local group ({rank},)")
        for g, members in enumerate(groups):
            if not members:
                raise PartitionError(f"Rank {rank}: group {g} is empty")
            if members[0] < 0 or members[-1] >= size:
                raise PartitionError(
                    f"Rank {rank}: group {g} has ranks outside [0, {size}): {members}"
                )
            if rank not in members:
                raise PartitionError(f"Rank {rank}: group {g} does not contain the local rank")

    def _proc_to_lproc(self, group_proc: Table, master_proc: np.ndarray, size: int):
        """Number neighbors by first appearance and translate ranks to neighbor ids."""
        procs, first = np.unique(group_proc.J, return_index=True)
        self.lproc_proc = procs[np.argsort(first)].astype(IDX_DTYPE)

        proc_lproc = np.full(size, -1, dtype=IDX_DTYPE)
        proc_lproc[self.lproc_proc] = np.arange(self.lproc_proc.size, dtype=IDX_DTYPE)

        self.group_lproc = Table(group_proc.I.copy(), proc_lproc[group_proc.J])
        self.groupmaster_lproc = proc_lproc[master_proc]

    def _exchange_master_groups(self, groups: ListOfIntegerSets, tag: int):
        """Fill ``group_mgroup`` by asking each master for its group numbering."""
        channel = _MasterGroupMessage.with_tag(tag)
        self.group_mgroup = np.full(self.n_groups, -1, dtype=IDX_DTYPE)
        self.group_mgroup[0] = 0

        send_msgs, recv_msgs = {}, {}
        for g in range(1, self.n_groups):
            if self.is_master(g):
                self.group_mgroup[g] = g
                for lproc in self.group(g):
                    if lproc != 0:
                        msg = send_msgs.setdefault(int(self.lproc_proc[lproc]), channel())
                        msg.groups.append((g, groups[g]))
            else:
                recv_msgs.setdefault(self.group_master_rank(g), channel())

        channel.isend_all(send_msgs, self._comm)
        channel.recv_all(recv_msgs, self._comm)

        for source, msg in recv_msgs.items():
            for mgroup, ranks in msg.groups:
                try:
                    g = groups.lookup(ranks)
                except KeyError:
                    raise PartitionError(
                        f"Rank {self.my_rank}: rank {source} sent unknown group {ranks}"
                    ) from None
                if self.group_master_rank(g) != source:
                    raise PartitionError(
                        f"Rank {self.my_rank}: group {ranks} received from rank {source}, "
                        f"expected its master {self.group_master_rank(g)}"
                    )
                self.group_mgroup[g] = mgroup

        channel.wait_all_sent(send_msgs)

        missing = np.nonzero(self.group_mgroup < 0)[0]
        if missing.size:
            raise PartitionError(
                f"Rank {self.my_rank}: no master group index received for groups {missing.tolist()}"
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def n_groups(self) -> int:
        return self.group_lproc.size

    @property
    def n_neighbors(self) -> int:
        """Number of neighbors, including the local process."""
        return self.lproc_proc.size

    def neighbor_rank(self, i: int) -> int:
        return int(self.lproc_proc[i])

    def is_master(self, g: int) -> bool:
        return bool(self.groupmaster_lproc[g] == 0)

    def group_master(self, g: int) -> int:
        """Neighbor id of the master of group ``g``."""
        return int(self.groupmaster_lproc[g])

    def group_master_rank(self, g: int) -> int:
        return int(self.lproc_proc[self.groupmaster_lproc[g]])

    def group_master_group(self, g: int) -> int:
        """Index of group ``g`` in its master's numbering."""
        return int(self.group_mgroup[g])

    def group_size(self, g: int) -> int:
        return self.group_lproc.row_size(g)

    def group(self, g: int) -> np.ndarray:
        """Neighbor ids of the members of group ``g``."""
        row = self.group_lproc.row(g)
        row.flags.writeable = False
        return row

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, out: TextIO):
        """Write the group tables to a text stream."""
        out.write("\ncommunication_groups\n")
        out.write(f"number_of_groups {self.n_groups}\n")
        out.write(f"number_of_neighbors {self.n_neighbors}\n")
        out.write(" ".join(str(p) for p in self.lproc_proc) + "\n\n")
        out.write("# number of neighbors in each group, followed by neighbor ids\n")
        for g in range(self.n_groups):
            out.write(" ".join(str(x) for x in (self.group_size(g), *self.group(g))) + "\n")
        out.write("\n# master neighbor id of each group\n")
        out.write(" ".join(str(m) for m in self.groupmaster_lproc) + "\n")
        out.write("\n# group index in its master\n")
        out.write(" ".join(str(m) for m in self.group_mgroup) + "\n")

    def load(self, inp: TextIO):
        """Read group tables written by ``save``. No communication is performed."""
        tokens = [
            tok
            for line in inp
            if not line.lstrip().startswith("#")
            for tok in line.split()
        ]
        it = iter(tokens)
        try:
            if next(it) != "communication_groups":
                raise PartitionError("Missing 'communication_groups' header")
            n_groups = _expect_keyword(it, "number_of_groups")
            n_nbrs = _expect_keyword(it, "number_of_neighbors")
            lproc_proc = [int(next(it)) for _ in range(n_nbrs)]
            rows = []
            for _ in range(n_groups):
                n = int(next(it))
                rows.append([int(next(it)) for _ in range(n)])
            masters = [int(next(it)) for _ in range(n_groups)]
            mgroups = [int(next(it)) for _ in range(n_groups)]
        except StopIteration:
            raise PartitionError("Truncated communication_groups data") from None

        if self._comm is not None and lproc_proc[0] != self.my_rank:
            raise PartitionError(
                f"Loaded topology belongs to rank {lproc_proc[0]}, not {self.my_rank}"
            )
        self.lproc_proc = np.array(lproc_proc, dtype=IDX_DTYPE)
        self.group_lproc = Table.from_rows(rows)
        self.groupmaster_lproc = np.array(masters, dtype=IDX_DTYPE)
        self.group_mgroup = np.array(mgroups, dtype=IDX_DTYPE)

    def copy(self) -> "GroupTopology":
        """Independent copy sharing only the communicator."""
        new = GroupTopology(self._comm)
        new.group_lproc = self.group_lproc.copy()
        new.groupmaster_lproc = self.groupmaster_lproc.copy()
        new.lproc_proc = self.lproc_proc.copy()
        new.group_mgroup = self.group_mgroup.copy()
        return new

    __copy__ = copy

    def __deepcopy__(self, memo):
        return self.copy()


def _expect_keyword(it, keyword: str) -> int:
    word = next(it)
    if word != keyword:
        raise PartitionError(f"Expected '{keyword}', found '{word}'")
    return int(next(it))
