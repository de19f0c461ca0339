"""Group communication package.

Synchronizes values shared across partition boundaries with MPI. Every
shared entity belongs to a group of processes with one master; values are
broadcast master -> group or reduced group -> master, in split-phase
(begin/end) operations.

Components
----------
Topology:
- GroupTopology: groups, neighbors, masters and master group indices
- ListOfIntegerSets, Table: rank sets and sparse row tables

Communication:
- GroupCommunicator: bcast/reduce engine ('by_group' or 'by_neighbor')
- Sum, Min, Max, BitOR: reduce operations
- VarMessage: variable-length tagged point-to-point message

Utilities:
- reorder_ranks_zcurve: rank reordering by physical locality
- BlockPartition: structured block partition for benchmarks and checks
"""

from .communicator import GroupCommunicator, create_group_exchange
from .datastructures import (
    CommParams,
    CommStats,
    BenchmarkParams,
    BenchmarkMetrics,
    RankInfo,
)
from .errors import (
    GroupCommError,
    PartitionError,
    CommLockError,
    NotFinalizedError,
    LayoutError,
    PendingSendError,
    UnexpectedMessageError,
    MessageSizeError,
)
from .kernels import NumPyKernel, NumbaKernel
from .message import VarMessage
from .partition import BlockPartition
from .reductions import OpData, ReduceOp, Sum, Min, Max, BitOR, get_reduce_op
from .reorder import morton_keys, physical_coordinates, reorder_ranks_zcurve
from .runner import run_checks
from .table import ListOfIntegerSets, Table
from .topology import GroupTopology
from .typemap import mpi_type

__all__ = [
    # Topology
    "GroupTopology",
    "ListOfIntegerSets",
    "Table",
    # Communication
    "GroupCommunicator",
    "create_group_exchange",
    "VarMessage",
    "OpData",
    "ReduceOp",
    "Sum",
    "Min",
    "Max",
    "BitOR",
    "get_reduce_op",
    "mpi_type",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    # Data structures
    "CommParams",
    "CommStats",
    "BenchmarkParams",
    "BenchmarkMetrics",
    "RankInfo",
    # Errors
    "GroupCommError",
    "PartitionError",
    "CommLockError",
    "NotFinalizedError",
    "LayoutError",
    "PendingSendError",
    "UnexpectedMessageError",
    "MessageSizeError",
    # Utilities
    "BlockPartition",
    "morton_keys",
    "physical_coordinates",
    "reorder_ranks_zcurve",
    "run_checks",
]
