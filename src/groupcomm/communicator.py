"""Split-phase broadcast and reduce within process groups.

A GroupCommunicator moves the values of shared local dofs between each
group's master and its other members:

- Bcast: master -> members (``bcast_begin`` / ``bcast_end``)
- Reduce: members -> master, combined with a reduce operation
  (``reduce_begin`` / ``reduce_end``)

Local data layouts (the ``layout`` argument):

- 0: ``ldata`` is an array on all ldofs; group entries are
  ``ldata[group_ldof.row(g)]``
- 1: ``ldata`` is an array on the shared ldofs only; group entries are
  ``ldata[group_ldof.I[g]:group_ldof.I[g+1]]``
- 2: ``ldata`` is an array on the true ldofs; group entries are
  ``ldata[group_ltdof.row(g)]`` (master groups only)

Messages are aggregated either per group or per neighbor; see
``ByGroupExchange`` and ``ByNeighborExchange``.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from typing import TextIO

import numpy as np
from mpi4py import MPI

from .datastructures import CommParams, CommStats
from .errors import CommLockError, LayoutError, NotFinalizedError, PartitionError
from .kernels import create_kernel
from .reductions import OpData, Sum
from .table import IDX_DTYPE, Table
from .topology import GroupTopology
from .typemap import mpi_type

log = logging.getLogger(__name__)

BY_GROUP = "by_group"
BY_NEIGHBOR = "by_neighbor"

# Tag bases stay below 32767, the smallest TAG_UB MPI allows
BCAST_TAG = 10822
REDUCE_TAG = 20822
INFO_TAG = 30800

# Lock states
_UNLOCKED = 0
_LOCKED_BCAST = 1
_LOCKED_REDUCE = 2

# Request marker for send requests
_SEND = -1

# Payload size assumed by the statistics (double precision values)
_STATS_ITEMSIZE = 8


class GroupExchange(ABC):
    """Abstract base for the message aggregation strategies."""

    name = ""

    def setup(self, gc: "GroupCommunicator"):
        """Attach to the communicator whose tables and buffers are used."""
        self.gc = gc
        self.gtopo = gc.gtopo

    @abstractmethod
    def bcast_begin(self, ldata: np.ndarray, layout: int, mtype: MPI.Datatype):
        """Post the broadcast sends and receives."""

    @abstractmethod
    def bcast_end(self, ldata: np.ndarray, layout: int):
        """Complete the broadcast, copying received data into ``ldata``."""

    @abstractmethod
    def reduce_begin(self, ldata: np.ndarray, mtype: MPI.Datatype):
        """Post the reduce sends (members) and receives (masters)."""

    @abstractmethod
    def reduce_end(self, ldata: np.ndarray, layout: int, op):
        """Complete the reduce, combining received data into ``ldata``."""

    @abstractmethod
    def count_messages(self, stats: CommStats):
        """Fill the message counts of ``stats`` for one operation."""


class ByGroupExchange(GroupExchange):
    """One message per group and member; the tag carries the master's group index."""

    name = BY_GROUP

    def bcast_begin(self, ldata, layout, mtype):
        gc, gtopo, comm = self.gc, self.gtopo, self.gtopo.comm
        buf = ldata if layout == 1 else gc._typed_buffer(ldata.dtype)

        for gr in range(1, gc.group_ldof.size):
            nldofs = gc.group_ldof.row_size(gr)
            # ignore groups without dofs
            if nldofs == 0:
                continue

            tag = BCAST_TAG + gtopo.group_master_group(gr)
            if not gtopo.is_master(gr):
                req = comm.Irecv([buf[:nldofs], mtype], source=gtopo.group_master_rank(gr), tag=tag)
                gc._post(req, gr)
            else:
                if layout != 1:
                    gc.copy_group_to_buffer(ldata, buf, gr, layout)
                for nbr in gtopo.group(gr):
                    if nbr != 0:
                        req = comm.Isend([buf[:nldofs], mtype], dest=gtopo.neighbor_rank(nbr), tag=tag)
                        gc._post(req, _SEND)
            buf = buf[nldofs:]

    def bcast_end(self, ldata, layout):
        gc = self.gc
        if layout == 1:
            # received directly into ldata
            MPI.Request.Waitall(gc._active_requests())
            return

        base = gc._typed_buffer(ldata.dtype)
        for gr in gc._completed_markers():
            offset = gc.group_ldof.I[gr]
            gc.copy_group_from_buffer(base[offset:], ldata, gr, layout)

    def reduce_begin(self, ldata, mtype):
        gc, gtopo, comm = self.gc, self.gtopo, self.gtopo.comm
        base = buf = gc._typed_buffer(ldata.dtype)

        for gr in range(1, gc.group_ldof.size):
            nldofs = gc.group_ldof.row_size(gr)
            if nldofs == 0:
                continue

            tag = REDUCE_TAG + gtopo.group_master_group(gr)
            if not gtopo.is_master(gr):
                send = buf[:nldofs]
                buf = gc.copy_group_to_buffer(ldata, buf, gr, 0)
                req = comm.Isend([send, mtype], dest=gtopo.group_master_rank(gr), tag=tag)
                gc._post(req, _SEND)
            else:
                gc.buf_offsets[gr] = base.size - buf.size
                for nbr in gtopo.group(gr):
                    if nbr != 0:
                        req = comm.Irecv([buf[:nldofs], mtype], source=gtopo.neighbor_rank(nbr), tag=tag)
                        gc._post(req, gr)
                        buf = buf[nldofs:]

    def reduce_end(self, ldata, layout, op):
        gc, gtopo = self.gc, self.gtopo
        base = gc._typed_buffer(ldata.dtype)
        group_num_req = np.zeros(gc.group_ldof.size, dtype=IDX_DTYPE)
        for gr in range(1, gc.group_ldof.size):
            group_num_req[gr] = gtopo.group_size(gr) - 1 if gtopo.is_master(gr) else 0

        for gr in gc._completed_markers():
            # process a group once all of its receives are done
            group_num_req[gr] -= 1
            if group_num_req[gr] != 0:
                continue
            opd = OpData(
                nldofs=gc.group_ldof.row_size(gr),
                nb=gtopo.group_size(gr) - 1,
                ldofs=gc._layout_ldofs(gr, layout),
                ldata=ldata,
                buf=base[gc.buf_offsets[gr]:],
            )
            gc._kernel.reduce(op, opd)

    def count_messages(self, stats):
        gc, gtopo = self.gc, self.gtopo
        for gr in range(1, gc.group_ldof.size):
            nldofs = gc.group_ldof.row_size(gr)
            if nldofs == 0:
                stats.num_empty_groups += 1
                continue
            if gtopo.is_master(gr):
                n_members = gtopo.group_size(gr) - 1
                stats.num_sends += n_members
                stats.mem_sends += _STATS_ITEMSIZE * nldofs * n_members
                stats.num_master_groups += 1
            else:
                stats.num_recvs += 1
                stats.mem_recvs += _STATS_ITEMSIZE * nldofs


class ByNeighborExchange(GroupExchange):
    """One message per neighbor, concatenating all groups shared with it."""

    name = BY_NEIGHBOR

    def _exchange_begin(self, ldata, layout, mtype, send_groups: Table, recv_groups: Table, tag: int):
        gc, gtopo, comm = self.gc, self.gtopo, self.gtopo.comm
        base = buf = gc._typed_buffer(ldata.dtype)

        for nbr in range(1, gtopo.n_neighbors):
            nbr_rank = gtopo.neighbor_rank(nbr)
            groups = send_groups.row(nbr)
            if groups.size > 0:
                start = buf
                for gr in groups:
                    buf = gc.copy_group_to_buffer(ldata, buf, gr, layout)
                count = start.size - buf.size
                req = comm.Isend([start[:count], mtype], dest=nbr_rank, tag=tag)
                gc._post(req, _SEND)

            groups = recv_groups.row(nbr)
            if groups.size > 0:
                recv_size = int(sum(gc.group_ldof.row_size(gr) for gr in groups))
                req = comm.Irecv([buf[:recv_size], mtype], source=nbr_rank, tag=tag)
                gc._post(req, nbr)
                gc.buf_offsets[nbr] = base.size - buf.size
                buf = buf[recv_size:]

        assert base.size - buf.size == gc.group_buf_size

    def bcast_begin(self, ldata, layout, mtype):
        self._exchange_begin(
            ldata, layout, mtype, self.gc.nbr_send_groups, self.gc.nbr_recv_groups, BCAST_TAG
        )

    def bcast_end(self, ldata, layout):
        gc = self.gc
        base = gc._typed_buffer(ldata.dtype)
        # copy the received data as it arrives
        for nbr in gc._completed_markers():
            buf = base[gc.buf_offsets[nbr]:]
            for gr in gc.nbr_recv_groups.row(nbr):
                buf = gc.copy_group_from_buffer(buf, ldata, gr, layout)

    def reduce_begin(self, ldata, mtype):
        # In reduce: send_groups <--> recv_groups
        self._exchange_begin(
            ldata, 0, mtype, self.gc.nbr_recv_groups, self.gc.nbr_send_groups, REDUCE_TAG
        )

    def reduce_end(self, ldata, layout, op):
        gc = self.gc
        MPI.Request.Waitall(gc._active_requests())

        base = gc._typed_buffer(ldata.dtype)
        for nbr in range(1, self.gtopo.n_neighbors):
            groups = gc.nbr_send_groups.row(nbr)
            if groups.size > 0:
                buf = base[gc.buf_offsets[nbr]:]
                for gr in groups:
                    buf = gc.reduce_group_from_buffer(buf, ldata, gr, layout, op)

    def count_messages(self, stats):
        gc, gtopo = self.gc, self.gtopo
        for gr in range(1, gc.group_ldof.size):
            if gc.group_ldof.row_size(gr) == 0:
                stats.num_empty_groups += 1
            elif gtopo.is_master(gr):
                stats.num_master_groups += 1

        for nbr in range(1, gtopo.n_neighbors):
            send_groups = gc.nbr_send_groups.row(nbr)
            recv_groups = gc.nbr_recv_groups.row(nbr)
            if send_groups.size > 0:
                stats.num_sends += 1
                stats.mem_sends += _STATS_ITEMSIZE * sum(gc.group_ldof.row_size(g) for g in send_groups)
            if recv_groups.size > 0:
                stats.num_recvs += 1
                stats.mem_recvs += _STATS_ITEMSIZE * sum(gc.group_ldof.row_size(g) for g in recv_groups)
            if send_groups.size > 0 or recv_groups.size > 0:
                stats.num_active_neighbors += 1


def create_group_exchange(mode: str) -> GroupExchange:
    """Factory: 'by_group' for per-group messages, 'by_neighbor' for aggregated."""
    if mode == BY_GROUP:
        return ByGroupExchange()
    elif mode == BY_NEIGHBOR:
        return ByNeighborExchange()
    else:
        raise ValueError(f"Unknown communication mode: {mode}. Use '{BY_GROUP}' or '{BY_NEIGHBOR}'.")


class GroupCommunicator:
    """Communicator performing operations within the groups of a GroupTopology.

    The object must be initialized before it can be used, either by calling
    ``create(ldof_group)`` or by setting the group -> ldof table with
    ``set_group_ldof_table`` and then calling ``finalize()``.

    Only one split-phase operation may be in flight at a time: every
    ``*_begin`` must be followed by the matching ``*_end`` before the next
    ``*_begin``.

    Parameters
    ----------
    gtopo : GroupTopology
        Group topology the communication is defined on.
    mode : str
        'by_neighbor' aggregates all groups shared with a neighbor into one
        message (default); 'by_group' sends one message per group.
    use_numba : bool
        Use compiled copy/reduce kernels.

    Example
    -------
    >>> gc = GroupCommunicator(gtopo, mode="by_group")
    >>> gc.create(ldof_group)
    >>> gc.reduce(x, Sum)   # masters accumulate member contributions
    >>> gc.bcast(x)         # members receive the master values
    """

    def __init__(self, gtopo: GroupTopology, mode: str = BY_NEIGHBOR, use_numba: bool = False):
        self.gtopo = gtopo
        self.mode = mode
        self._exchange = create_group_exchange(mode)
        self._exchange.setup(self)
        self._kernel = create_kernel(use_numba)

        self.group_ldof = None
        # only for groups for which this processor is master
        self.group_ltdof = None
        self.nbr_send_groups = None
        self.nbr_recv_groups = None

        self.group_buf_size = 0
        self._group_buf = np.empty(0, dtype=np.uint8)
        self.buf_offsets = None
        self._requests = None
        self._request_marker = None
        self._num_requests = 0

        self._comm_lock = _UNLOCKED
        self._dtype = None
        self._begin_layout = None

    @classmethod
    def from_params(cls, gtopo: GroupTopology, params: CommParams) -> "GroupCommunicator":
        return cls(gtopo, mode=params.mode, use_numba=params.use_numba)

    @property
    def group_topology(self) -> GroupTopology:
        return self.gtopo

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create(self, ldof_group):
        """Initialize from a local dof -> group map and call ``finalize()``."""
        try:
            self.group_ldof = Table.from_assignment(ldof_group, self.gtopo.n_groups, exclude_row=0)
        except ValueError as e:
            raise PartitionError(f"Invalid ldof -> group map: {e}") from e
        self.finalize()

    def set_group_ldof_table(self, group_ldof: Table):
        """Set the group -> ldof table directly; call ``finalize()`` afterwards."""
        self.group_ldof = group_ldof

    def finalize(self):
        """Size the message buffer and requests, and build the neighbor tables."""
        if self.group_ldof is None:
            raise NotFinalizedError("group -> ldof table is not set")
        gtopo = self.gtopo
        if self.group_ldof.size != gtopo.n_groups:
            raise PartitionError(
                f"group -> ldof table has {self.group_ldof.size} rows, topology has {gtopo.n_groups} groups"
            )
        self._check_tag_range()

        request_counter = 0
        self.group_buf_size = 0
        send_pairs, recv_pairs = [], []
        for gr in range(1, self.group_ldof.size):
            nldofs = self.group_ldof.row_size(gr)
            if nldofs == 0:
                continue
            if not gtopo.is_master(gr):
                gr_requests = 1
                recv_pairs.append((gtopo.group_master(gr), gr))
            else:
                gr_requests = gtopo.group_size(gr) - 1
                send_pairs.extend((int(nbr), gr) for nbr in gtopo.group(gr) if nbr != 0)
            request_counter += gr_requests
            self.group_buf_size += gr_requests * nldofs

        self._requests = [MPI.REQUEST_NULL] * request_counter
        self._request_marker = np.full(request_counter, _SEND, dtype=IDX_DTYPE)
        self.buf_offsets = np.zeros(max(gtopo.n_groups, gtopo.n_neighbors), dtype=IDX_DTYPE)

        n_nbrs = gtopo.n_neighbors
        self.nbr_send_groups = Table.from_pairs(*_unzip(send_pairs), n_nbrs)
        self.nbr_recv_groups = Table.from_pairs(*_unzip(recv_pairs), n_nbrs)

        # Both ends must concatenate groups in the same order: sort the
        # received groups by their index in the master, which is the order
        # the master uses for its send rows.
        for nbr in range(1, n_nbrs):
            row = self.nbr_recv_groups.row(nbr)
            if row.size > 1:
                row[:] = row[np.argsort(gtopo.group_mgroup[row], kind="stable")]

        log.debug(
            f"Rank {gtopo.my_rank}: finalized {self.mode}, {request_counter} requests, "
            f"buffer of {self.group_buf_size} values"
        )

    def _check_tag_range(self):
        """By-group tags add the master's group index; they must fit MPI_TAG_UB."""
        tag_ub = self.gtopo.comm.Get_attr(MPI.TAG_UB)
        if tag_ub is None:
            return
        max_tag = REDUCE_TAG
        if self.mode == BY_GROUP and self.gtopo.n_groups > 1:
            max_tag += int(self.gtopo.group_mgroup[1:].max())
        if max_tag > tag_ub:
            raise PartitionError(
                f"Tag {max_tag} exceeds MPI_TAG_UB={tag_ub}; use mode='{BY_NEIGHBOR}' for this many groups"
            )

    def set_ltdof_table(self, ldof_ltdof):
        """Build the group -> true dof table used by layout 2.

        ``ldof_ltdof[i]`` is the true dof index of local dof ``i``; it only
        needs to be valid for dofs of groups this process masters.
        """
        if self.group_ldof is None:
            raise NotFinalizedError("group -> ldof table is not set")
        if self.group_ltdof is not None and self.group_ltdof.size == self.group_ldof.size:
            return
        ldof_ltdof = np.asarray(ldof_ltdof, dtype=IDX_DTYPE)
        rows = [np.zeros(0, dtype=IDX_DTYPE)]
        for gr in range(1, self.group_ldof.size):
            if self.gtopo.is_master(gr):
                ltdofs = ldof_ltdof[self.group_ldof.row(gr)]
                if ltdofs.size and ltdofs.min() < 0:
                    raise PartitionError(f"Master group {gr} has ldofs without a true dof")
                rows.append(ltdofs)
            else:
                rows.append(np.zeros(0, dtype=IDX_DTYPE))
        self.group_ltdof = Table.from_rows(rows)

    def warmup(self):
        """Compile the copy/reduce kernels ahead of the first operation."""
        self._kernel.warmup()

    # ------------------------------------------------------------------
    # Copy primitives
    # ------------------------------------------------------------------

    def _layout_ldofs(self, group: int, layout: int) -> np.ndarray:
        if layout == 0:
            return self.group_ldof.row(group)
        if layout == 2:
            if self.group_ltdof is None:
                raise NotFinalizedError("layout 2 requires set_ltdof_table()")
            return self.group_ltdof.row(group)
        raise LayoutError(f"invalid layout: {layout}")

    def copy_group_to_buffer(self, ldata: np.ndarray, buf: np.ndarray, group: int, layout: int) -> np.ndarray:
        """Copy the entries of ``group`` from ``ldata`` to the front of ``buf``.

        Returns ``buf`` advanced past the copied entries.
        """
        if layout == 1:
            lo, hi = self.group_ldof.I[group], self.group_ldof.I[group + 1]
            buf[: hi - lo] = ldata[lo:hi]
            return buf[hi - lo:]
        ldofs = self._layout_ldofs(group, layout)
        self._kernel.gather(ldata, ldofs, buf[: ldofs.size])
        return buf[ldofs.size:]

    def copy_group_from_buffer(self, buf: np.ndarray, ldata: np.ndarray, group: int, layout: int) -> np.ndarray:
        """Copy the entries of ``group`` from the front of ``buf`` to ``ldata``.

        Returns ``buf`` advanced past the copied entries.
        """
        nldofs = self.group_ldof.row_size(group)
        if layout == 1:
            lo = self.group_ldof.I[group]
            ldata[lo:lo + nldofs] = buf[:nldofs]
        else:
            self._kernel.scatter(buf[:nldofs], ldata, self._layout_ldofs(group, layout))
        return buf[nldofs:]

    def reduce_group_from_buffer(self, buf: np.ndarray, ldata: np.ndarray, group: int, layout: int, op) -> np.ndarray:
        """Combine the entries of ``group`` in ``buf`` into ``ldata`` with ``op``.

        Returns ``buf`` advanced past the consumed entries.
        """
        if layout == 1:
            raise LayoutError("layout 1 is not supported for reduce")
        nldofs = self.group_ldof.row_size(group)
        opd = OpData(nldofs=nldofs, nb=1, ldofs=self._layout_ldofs(group, layout), ldata=ldata, buf=buf)
        self._kernel.reduce(op, opd)
        return buf[nldofs:]

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def bcast_begin(self, ldata: np.ndarray, layout: int = 0):
        """Begin a broadcast within each group where the master is the root.

        Input ``layout`` may be 0, 1 or 2.
        """
        self._begin(ldata, layout, (0, 1, 2))
        self._exchange.bcast_begin(ldata, layout, mpi_type(ldata.dtype))
        self._comm_lock = _LOCKED_BCAST

    def bcast_end(self, ldata: np.ndarray, layout: int = 0):
        """Finish a broadcast started with ``bcast_begin``.

        Output ``layout`` 0 writes into an array on all ldofs (input layout 0
        or 2); output layout 1 requires input layout 1 and the same array.
        """
        self._end(ldata, layout, _LOCKED_BCAST, "Bcast", (0, 1))
        if (layout == 1) != (self._begin_layout == 1):
            raise LayoutError(
                f"output layout {layout} does not match input layout {self._begin_layout}"
            )
        self._exchange.bcast_end(ldata, layout)
        self._release()

    def bcast(self, ldata: np.ndarray, layout: int = 0):
        """Broadcast within each group where the master is the root (layout 0 or 1)."""
        self.bcast_begin(ldata, layout)
        self.bcast_end(ldata, layout)

    # ------------------------------------------------------------------
    # Reduce
    # ------------------------------------------------------------------

    def reduce_begin(self, ldata: np.ndarray):
        """Begin a reduction within each group where the master is the root.

        The input is always an array on all ldofs (layout 0); the operation
        is chosen in ``reduce_end``.
        """
        self._begin(ldata, 0, (0,))
        self._exchange.reduce_begin(ldata, mpi_type(ldata.dtype))
        self._comm_lock = _LOCKED_REDUCE

    def reduce_end(self, ldata: np.ndarray, layout: int = 0, op=Sum):
        """Finish a reduction started with ``reduce_begin``.

        Output ``layout`` may be 0 or 2. With layout 2 the master values are
        taken from the ``ldata`` given here, not the one given to
        ``reduce_begin``, so the two must agree on master-owned entries.
        """
        self._end(ldata, layout, _LOCKED_REDUCE, "Reduce", (0, 2))
        if layout == 2 and self.group_ltdof is None:
            raise NotFinalizedError("layout 2 requires set_ltdof_table()")
        check_dtype = getattr(op, "check_dtype", None)
        if check_dtype is not None:
            check_dtype(ldata.dtype)
        self._exchange.reduce_end(ldata, layout, op)
        self._release()

    def reduce(self, ldata: np.ndarray, op=Sum):
        """Reduce within each group where the master is the root."""
        self.reduce_begin(ldata)
        self.reduce_end(ldata, 0, op)

    # ------------------------------------------------------------------
    # Lock, buffer and request bookkeeping
    # ------------------------------------------------------------------

    def _begin(self, ldata: np.ndarray, layout: int, layouts: tuple):
        if self._requests is None:
            raise NotFinalizedError("GroupCommunicator used before finalize()")
        if self._comm_lock != _UNLOCKED:
            raise CommLockError("object is already in use")
        if layout not in layouts:
            raise LayoutError(f"invalid layout: {layout}")
        if layout == 2 and self.group_ltdof is None:
            raise NotFinalizedError("layout 2 requires set_ltdof_table()")
        _check_array(ldata)
        self._dtype = ldata.dtype
        self._begin_layout = layout
        self._num_requests = 0

    def _end(self, ldata: np.ndarray, layout: int, lock: int, what: str, layouts: tuple):
        if self._comm_lock != lock:
            raise CommLockError(f"object is NOT locked for {what}")
        if layout not in layouts:
            raise LayoutError(f"invalid layout: {layout}")
        _check_array(ldata)
        if ldata.dtype != self._dtype:
            raise TypeError(f"{what} started with {self._dtype}, finished with {ldata.dtype}")

    def _release(self):
        self._requests[: self._num_requests] = [MPI.REQUEST_NULL] * self._num_requests
        self._num_requests = 0
        self._comm_lock = _UNLOCKED

    def _typed_buffer(self, dtype) -> np.ndarray:
        """The shared message buffer viewed as ``group_buf_size`` values of ``dtype``."""
        nbytes = self.group_buf_size * np.dtype(dtype).itemsize
        if self._group_buf.size < nbytes:
            self._group_buf = np.empty(nbytes, dtype=np.uint8)
        return self._group_buf[:nbytes].view(dtype)

    def _post(self, request: MPI.Request, marker: int):
        i = self._num_requests
        self._requests[i] = request
        self._request_marker[i] = marker
        self._num_requests = i + 1

    def _active_requests(self) -> list:
        return self._requests[: self._num_requests]

    def _completed_markers(self):
        """Yield the markers of completed receive requests as they finish."""
        active = self._active_requests()
        while True:
            idx = MPI.Request.Waitany(active)
            if idx == MPI.UNDEFINED:
                return
            marker = int(self._request_marker[idx])
            if marker == _SEND:
                continue
            yield marker

    @property
    def locked(self) -> bool:
        return self._comm_lock != _UNLOCKED

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def stats(self) -> CommStats:
        """Message statistics for one Bcast (a Reduce mirrors sends and receives)."""
        if self.group_ldof is None:
            raise NotFinalizedError("group -> ldof table is not set")
        stats = CommStats(
            rank=self.gtopo.my_rank,
            mode=self.mode,
            num_groups=self.group_ldof.size - 1,
            num_neighbors=self.gtopo.n_neighbors - 1,
        )
        self._exchange.count_messages(stats)
        return stats

    def print_info(self, out: TextIO = None):
        """Print the statistics of every rank, in rank order. Collective."""
        out = out if out is not None else sys.stdout
        comm = self.gtopo.comm
        myid, nranks = comm.Get_rank(), comm.Get_size()
        token = bytearray(1)

        if myid != 0:
            comm.Recv([token, MPI.BYTE], source=myid - 1, tag=INFO_TAG)
        else:
            out.write("\nGroupCommunicator:\n")
        out.write(self.stats().format())
        out.flush()
        if myid != nranks - 1:
            comm.Send([token, MPI.BYTE], dest=myid + 1, tag=INFO_TAG)
        else:
            out.write("\n")
            out.flush()
        comm.Barrier()


def _check_array(ldata):
    if not isinstance(ldata, np.ndarray) or ldata.ndim != 1 or not ldata.flags.c_contiguous:
        raise TypeError("local data must be a contiguous 1-D numpy array")


def _unzip(pairs):
    if not pairs:
        return np.zeros(0, dtype=IDX_DTYPE), np.zeros(0, dtype=IDX_DTYPE)
    rows, cols = zip(*pairs)
    return np.array(rows, dtype=IDX_DTYPE), np.array(cols, dtype=IDX_DTYPE)
