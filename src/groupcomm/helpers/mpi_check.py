"""MPI worker - invoked via: mpiexec -n X python -m groupcomm.helpers.mpi_check '{config}'"""

import io
import json
import logging
import sys

import numpy as np
from mpi4py import MPI

from groupcomm import CommParams, GroupTopology, VarMessage, reorder_ranks_zcurve
from groupcomm.benchmark import build_communicator, check_bcast, check_reduce, local_values

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

config = json.loads(sys.argv[1]) if len(sys.argv) > 1 else {}
comm = MPI.COMM_WORLD
rank, size = comm.Get_rank(), comm.Get_size()

shape = config.get("shape", [8, 8])
mode = config.get("mode", "by_neighbor")
use_numba = config.get("use_numba", False)

if config.get("reorder"):
    # reverse the ranks through the Z-curve with a fake coordinate
    reordered = reorder_ranks_zcurve(comm, lambda c: (c.Get_size() - 1 - c.Get_rank(),))
    reorder_ok = reordered.Get_rank() == size - 1 - rank
    comm = reordered
    rank = comm.Get_rank()
else:
    reorder_ok = True

part, gc = build_communicator(shape, comm, CommParams(mode=mode, use_numba=use_numba))
gtopo = gc.group_topology
checks = {"reorder": reorder_ok}


# Topology: every member agrees with the master on the group's ranks
local_groups = [
    (g, part.groups[g], gtopo.group_master_rank(g), gtopo.group_master_group(g))
    for g in range(gtopo.n_groups)
]
all_groups = comm.allgather(local_groups)
topology_ok = gtopo.n_groups == len(part.groups) and gtopo.group(0).tolist() == [0]
for g, ranks, master, mgroup in local_groups:
    master_groups = {mg: r for mg, r, _, _ in all_groups[master]}
    topology_ok &= master == min(ranks) and master_groups.get(mgroup) == ranks
    topology_ok &= gtopo.is_master(g) == (master == comm.Get_rank())
checks["topology"] = bool(topology_ok)

# Save / load round trip
out = io.StringIO()
gtopo.save(out)
loaded = GroupTopology(comm)
loaded.load(io.StringIO(out.getvalue()))
checks["save_load"] = bool(
    loaded.group_lproc == gtopo.group_lproc
    and np.array_equal(loaded.lproc_proc, gtopo.lproc_proc)
    and np.array_equal(loaded.groupmaster_lproc, gtopo.groupmaster_lproc)
    and np.array_equal(loaded.group_mgroup, gtopo.group_mgroup)
)

# Broadcast, all layouts and a second dtype
for layout in (0, 1, 2):
    checks[f"bcast_layout{layout}"] = check_bcast(gc, part, layout)
checks["bcast_int32"] = check_bcast(gc, part, 0, np.int32)

# Local-only dofs are never touched
ldata = local_values(part, np.float64)
before = ldata.copy()
gc.bcast(ldata)
gc.reduce(ldata)
local_only = part.ldof_group == 0
checks["group0_untouched"] = bool(np.array_equal(ldata[local_only], before[local_only]))

# Reduce, every built-in operator, layouts 0 and 2
for op_name, dtype in (("sum", np.float64), ("min", np.float64), ("max", np.int64), ("bor", np.int64)):
    for layout in (0, 2):
        checks[f"reduce_{op_name}_layout{layout}"] = check_reduce(gc, part, op_name, layout, dtype)

# VarMessage ring over its own channel
Ring = VarMessage.with_tag(7)
send = {(rank + 1) % size: Ring(f"from {rank}".encode())}
recv = {(rank - 1) % size: Ring()}
Ring.isend_all(send, comm)
Ring.recv_all(recv, comm)
Ring.wait_all_sent(send)
checks["message_ring"] = recv[(rank - 1) % size].data == f"from {(rank - 1) % size}".encode()

# Statistics and ordered printing
stats = gc.stats()
checks["stats_balanced"] = comm.allreduce(stats.num_sends) == comm.allreduce(stats.num_recvs)
info = io.StringIO()
gc.print_info(info)
checks["print_info"] = f"Rank {rank}:" in info.getvalue()

results = {name: bool(comm.allreduce(ok, op=MPI.LAND)) for name, ok in checks.items()}
results["n_groups_total"] = comm.allreduce(stats.num_master_groups)
results["n_ranks"] = size

if rank == 0:
    print(f"RESULT:{json.dumps(results)}")
