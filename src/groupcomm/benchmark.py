"""Benchmark and verification of group broadcast/reduce on a block partition."""

from __future__ import annotations

import logging
import os

import numpy as np
from mpi4py import MPI

from .communicator import GroupCommunicator
from .datastructures import BenchmarkMetrics, CommParams, BenchmarkParams, RankInfo
from .partition import BlockPartition
from .reductions import get_reduce_op
from .reorder import reorder_ranks_zcurve
from .topology import GroupTopology

log = logging.getLogger(__name__)


# ============================================================================
# Setup
# ============================================================================


def build_communicator(
    shape, comm: MPI.Comm, params: CommParams = None
) -> tuple[BlockPartition, GroupCommunicator]:
    """Partition the mesh over ``comm`` and create a finalized communicator."""
    params = params if params is not None else CommParams()
    part = BlockPartition(shape, comm.Get_rank(), comm.Get_size())
    gtopo = GroupTopology(comm)
    gtopo.create(part.groups, tag=params.topology_tag)
    gc = GroupCommunicator.from_params(gtopo, params)
    gc.create(part.ldof_group)
    gc.set_ltdof_table(part.ldof_ltdof)
    return part, gc


# ============================================================================
# Verification
# ============================================================================


def local_values(part: BlockPartition, dtype) -> np.ndarray:
    """Distinct value per (vertex, rank): ``global_id * size + rank``."""
    return (part.global_ids * part.size + part.rank).astype(dtype)


def expected_reduce(part: BlockPartition, op_name: str, dtype) -> np.ndarray:
    """Result of reducing ``local_values`` (``bit_values`` for 'bor') on all ldofs."""
    if op_name == "bor":
        result = bit_values(part, dtype)
    else:
        result = local_values(part, dtype)
    for i in np.nonzero(part.owned)[0]:
        ranks = np.asarray(part.ldof_ranks(i), dtype=np.int64)
        gid = int(part.global_ids[i])
        if op_name == "sum":
            result[i] = gid * part.size * ranks.size + ranks.sum()
        elif op_name == "min":
            result[i] = gid * part.size + ranks.min()
        elif op_name == "max":
            result[i] = gid * part.size + ranks.max()
        elif op_name == "bor":
            result[i] = int(np.bitwise_or.reduce(np.left_shift(1, ranks)))
        else:
            raise ValueError(f"No expected result for reduce operation: {op_name}")
    return result


def bit_values(part: BlockPartition, dtype) -> np.ndarray:
    return np.full(part.n_ldofs, 1 << part.rank, dtype=dtype)


def check_bcast(gc: GroupCommunicator, part: BlockPartition, layout: int = 0, dtype=np.float64) -> bool:
    """Broadcast owner values and compare against the global vertex ids.

    Input layout 0 or 2 is broadcast into a full local array (layout 0);
    input layout 1 into the shared array itself.
    """
    gids = part.global_ids.astype(dtype)
    owned = part.owned

    if layout == 1:
        shared = gc.group_ldof.J
        sdata = np.where(owned[shared], gids[shared], -1).astype(dtype)
        gc.bcast(sdata, layout=1)
        return bool(np.array_equal(sdata, gids[shared]))

    if layout == 2:
        ldata = np.full(part.n_ldofs, -1, dtype=dtype)
        tdata = gids[owned].copy()
        gc.bcast_begin(tdata, layout=2)
        gc.bcast_end(ldata, layout=0)
        # master entries are not written by a broadcast
        expected = np.where(owned, -1, gids).astype(dtype)
    else:
        ldata = np.where(owned, gids, -1).astype(dtype)
        gc.bcast(ldata)
        expected = gids
    return bool(np.array_equal(ldata, expected))


def check_reduce(gc: GroupCommunicator, part: BlockPartition, op_name: str = "sum", layout: int = 0, dtype=np.float64) -> bool:
    """Reduce per-rank values and compare the master entries with the exact result."""
    op = get_reduce_op(op_name)
    ldata = bit_values(part, dtype) if op_name == "bor" else local_values(part, dtype)
    expected = expected_reduce(part, op_name, dtype)

    if layout == 2:
        owned = part.owned
        tdata = ldata[owned].copy()
        gc.reduce_begin(ldata)
        gc.reduce_end(tdata, layout=2, op=op)
        return bool(np.array_equal(tdata, expected[owned]))

    gc.reduce(ldata, op)
    return bool(np.array_equal(ldata, expected))


# ============================================================================
# Benchmark
# ============================================================================


def get_rank_info(part: BlockPartition, gc: GroupCommunicator) -> RankInfo:
    """Topology summary of this rank (for the MLflow rank table)."""
    try:
        cpu_ids = sorted(os.sched_getaffinity(0))
    except (AttributeError, OSError):
        cpu_ids = None  # Not available on all platforms (e.g., macOS)

    gtopo = gc.group_topology
    return RankInfo(
        rank=gtopo.my_rank,
        hostname=MPI.Get_processor_name(),
        n_groups=gtopo.n_groups,
        n_master_groups=sum(gtopo.is_master(g) for g in range(1, gtopo.n_groups)),
        n_neighbors=gtopo.n_neighbors - 1,
        n_ldofs=part.n_ldofs,
        n_shared_ldofs=gc.group_ldof.size_of_connections,
        cpu_ids=cpu_ids,
    )


def _time_op(comm: MPI.Comm, fn, n_iter: int, n_warmup: int) -> float:
    """Mean time of ``fn()`` over n_iter calls, max over ranks."""
    for _ in range(n_warmup):
        fn()
    comm.Barrier()
    t0 = MPI.Wtime()
    for _ in range(n_iter):
        fn()
    elapsed = (MPI.Wtime() - t0) / max(n_iter, 1)
    return comm.allreduce(elapsed, op=MPI.MAX)


def run_benchmark(params: BenchmarkParams, comm: MPI.Comm = None):
    """Time bcast and reduce rounds on a block partition.

    Returns
    -------
    metrics : BenchmarkMetrics
        Identical on all ranks.
    rank_info : list of RankInfo or None
        Gathered on rank 0, None elsewhere.
    """
    comm = comm if comm is not None else MPI.COMM_WORLD
    if params.layout not in (0, 2):
        raise ValueError(f"Benchmark layout must be 0 or 2, got {params.layout}")
    dtype = np.dtype(params.dtype)
    op = get_reduce_op(params.op)
    op.check_dtype(dtype)

    t0 = MPI.Wtime()
    if params.reorder:
        comm = reorder_ranks_zcurve(comm)
    part, gc = build_communicator(
        params.shape, comm, CommParams(mode=params.mode, use_numba=params.use_numba)
    )
    gc.warmup()
    setup_time = comm.allreduce(MPI.Wtime() - t0, op=MPI.MAX)

    # both checks communicate, so every rank runs both
    bcast_ok = check_bcast(gc, part, params.layout, dtype)
    reduce_ok = check_reduce(gc, part, params.op, params.layout, dtype)
    verified = comm.allreduce(bcast_ok and reduce_ok, op=MPI.LAND)
    if not verified and comm.Get_rank() == 0:
        log.warning("Verification failed")

    ldata = local_values(part, dtype)
    tdata = ldata[part.owned].copy()
    layout = params.layout

    def bcast():
        gc.bcast_begin(tdata if layout == 2 else ldata, layout)
        gc.bcast_end(ldata, 0)

    def reduce():
        gc.reduce_begin(ldata)
        gc.reduce_end(tdata if layout == 2 else ldata, layout, op)

    bcast_time = _time_op(comm, bcast, params.n_iter, params.n_warmup)
    reduce_time = _time_op(comm, reduce, params.n_iter, params.n_warmup)

    stats = gc.stats()
    info = get_rank_info(part, gc)
    metrics = BenchmarkMetrics(
        verified=bool(verified),
        n_groups_total=comm.allreduce(stats.num_master_groups, op=MPI.SUM),
        n_shared_dofs_total=comm.allreduce(
            int(sum(gc.group_ldof.row_size(g) for g in range(1, gc.group_ldof.size) if gc.gtopo.is_master(g))),
            op=MPI.SUM,
        ),
        bcast_time=bcast_time,
        reduce_time=reduce_time,
        setup_time=setup_time,
        messages_per_op=comm.allreduce(stats.num_sends, op=MPI.SUM),
        bytes_per_op=comm.allreduce(stats.mem_sends // 8 * dtype.itemsize, op=MPI.SUM),
    )
    return metrics, comm.gather(info, root=0)
