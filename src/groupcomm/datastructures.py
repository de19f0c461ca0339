"""Data structures for communicator configuration, statistics and benchmarks.

Architecture: Params vs Metrics × Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           CommParams,                   BenchmarkMetrics
(same across     BenchmarkParams               bcast/reduce times,
ranks / agg)     mode, layout, op...           messages, bytes...

Local            RankInfo                      CommStats
(per-rank)       rank, hostname,               sends, recvs, groups...
                 neighbors, groups...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass
class CommParams:
    """GroupCommunicator configuration."""

    mode: str = "by_neighbor"  # "by_group" | "by_neighbor"
    use_numba: bool = False
    topology_tag: int = 822


@dataclass
class BenchmarkParams:
    """Benchmark configuration - validated by Hydra, logged to MLflow as params.

    Identical across all MPI ranks.
    """

    # Mesh: number of elements per axis (1 to 3 axes)
    shape: List[int] = field(default_factory=lambda: [64, 64])

    # Communication
    n_ranks: int = 1
    mode: str = "by_neighbor"
    layout: int = 0  # 0 (full local array) | 2 (true dofs)
    op: str = "sum"
    dtype: str = "float64"
    use_numba: bool = False
    reorder: bool = False

    # Timing
    n_iter: int = 100
    n_warmup: int = 5

    # Experiment tracking
    experiment_name: str = "groupcomm"

    # Auto-detected at runtime when left empty
    environment: str = ""

    def __post_init__(self):
        if not self.environment:
            self.environment = (
                "hpc"
                if os.environ.get("LSB_JOBID") or os.environ.get("SLURM_JOB_ID")
                else "local"
            )

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible params dict (bools as int, lists as str)."""
        return {
            k: (int(v) if isinstance(v, bool) else "x".join(map(str, v)) if isinstance(v, list) else v)
            for k, v in self.__dict__.items()
        }


@dataclass
class BenchmarkMetrics:
    """Aggregated benchmark results - logged to MLflow as metrics."""

    verified: bool = False
    n_groups_total: int = 0
    n_shared_dofs_total: int = 0

    # Mean wall time per operation (max over ranks)
    bcast_time: Optional[float] = None
    reduce_time: Optional[float] = None
    setup_time: Optional[float] = None

    # Traffic per operation (sum over ranks)
    messages_per_op: Optional[int] = None
    bytes_per_op: Optional[int] = None

    def to_mlflow(self) -> dict:
        """Convert to MLflow-compatible dict (no None, bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass
class RankInfo:
    """Per-rank topology summary - gathered to rank 0, logged as a table."""

    rank: int
    hostname: str = ""
    n_groups: int = 0
    n_master_groups: int = 0
    n_neighbors: int = 0
    n_ldofs: int = 0
    n_shared_ldofs: int = 0
    cpu_ids: Optional[List[int]] = None


@dataclass
class CommStats:
    """Message statistics of one GroupCommunicator (one Bcast or Reduce)."""

    rank: int
    mode: str
    num_sends: int = 0
    num_recvs: int = 0
    mem_sends: int = 0  # bytes, assuming float64 payloads
    mem_recvs: int = 0
    num_groups: int = 0
    num_master_groups: int = 0
    num_empty_groups: int = 0
    num_neighbors: int = 0
    num_active_neighbors: int = 0

    @property
    def num_slave_groups(self) -> int:
        return self.num_groups - self.num_master_groups - self.num_empty_groups

    def format(self) -> str:
        """Human readable multi-line summary."""
        lines = [
            f"Rank {self.rank}:",
            f"   mode             = {self.mode}",
            f"   number of sends  = {self.num_sends} ({self.mem_sends} bytes)",
            f"   number of recvs  = {self.num_recvs} ({self.mem_recvs} bytes)",
            f"   num groups       = {self.num_groups} = {self.num_master_groups} + "
            f"{self.num_slave_groups} + {self.num_empty_groups} (master + slave + empty)",
        ]
        if self.mode == "by_neighbor":
            lines.append(
                f"   num neighbors    = {self.num_neighbors} = {self.num_active_neighbors} + "
                f"{self.num_neighbors - self.num_active_neighbors} (active + inactive)"
            )
        return "\n".join(lines) + "\n"
