"""Structured block partition of a vertex mesh over a processor grid.

The mesh has ``shape[a]`` elements (``shape[a] + 1`` vertices) along each
axis. Elements are split into contiguous blocks over an ``MPI.Compute_dims``
processor grid; every rank holds the vertices of its element block, so
vertices on block interfaces are shared by all ranks whose blocks touch
them. Each vertex is one local dof.
"""

from __future__ import annotations

from itertools import product

import numpy as np
from mpi4py import MPI

from .errors import PartitionError
from .table import IDX_DTYPE, ListOfIntegerSets


def split_elements(n_elements: int, n_parts: int):
    """Split n_elements among n_parts ranks: (counts, starts)."""
    base = n_elements // n_parts
    rem = n_elements % n_parts
    counts = [base + (1 if i < rem else 0) for i in range(n_parts)]
    starts = [sum(counts[:i]) for i in range(n_parts)]
    return counts, starts


class BlockPartition:
    """Vertex ownership and sharing for one rank of a block partition.

    Parameters
    ----------
    shape : sequence of int
        Number of elements per axis (1 to 3 axes).
    rank, size : int
        This process and the number of processes.
    dims : sequence of int, optional
        Processor grid; computed with ``MPI.Compute_dims`` if not given.

    Attributes
    ----------
    groups : ListOfIntegerSets
        Rank sets of the shared vertices, set 0 is ``{rank}``.
    ldof_group : np.ndarray
        Group index of each local dof.
    ldof_ltdof : np.ndarray
        True dof index of each local dof owned by this rank, -1 otherwise.
    global_ids : np.ndarray
        Global vertex index of each local dof.
    owners : np.ndarray
        Owning rank (smallest sharing rank) of each local dof.
    """

    def __init__(self, shape, rank: int, size: int, dims=None):
        self.shape = tuple(int(n) for n in shape)
        self.rank = rank
        self.size = size
        ndim = len(self.shape)
        if not 1 <= ndim <= 3:
            raise PartitionError(f"Mesh must have 1 to 3 axes, got {ndim}")

        self.dims = tuple(int(p) for p in (dims if dims is not None else MPI.Compute_dims(size, ndim)))
        if len(self.dims) != ndim or int(np.prod(self.dims)) != size:
            raise PartitionError(f"Processor grid {self.dims} does not match {size} ranks")
        for n, p in zip(self.shape, self.dims):
            if n < p:
                raise PartitionError(f"Cannot split {n} elements over {p} ranks: {self.shape} / {self.dims}")

        self.proc_coords = tuple(int(c) for c in np.unravel_index(rank, self.dims))
        splits = [split_elements(n, p) for n, p in zip(self.shape, self.dims)]
        self.elem_start = tuple(starts[c] for (_, starts), c in zip(splits, self.proc_coords))
        self.elem_end = tuple(
            starts[c] + counts[c] for (counts, starts), c in zip(splits, self.proc_coords)
        )
        self.local_shape = tuple(e - s + 1 for s, e in zip(self.elem_start, self.elem_end))
        self.vertex_shape = tuple(n + 1 for n in self.shape)

        self._build(splits)

    def _build(self, splits):
        # Per axis: processor coordinates touching each local vertex index
        axis_sets, axis_ids = [], []
        for a, (counts, starts) in enumerate(splits):
            sets = ListOfIntegerSets()
            ids = np.empty(self.local_shape[a], dtype=IDX_DTYPE)
            for i, v in enumerate(range(self.elem_start[a], self.elem_end[a] + 1)):
                touching = [p for p in range(self.dims[a]) if starts[p] <= v <= starts[p] + counts[p]]
                ids[i] = sets.insert(touching)
            axis_sets.append(sets)
            axis_ids.append(ids)

        # Combined per-vertex key over the axes, ldofs in C order
        mesh = np.meshgrid(*axis_ids, indexing="ij")
        keys = np.stack([m.ravel() for m in mesh], axis=1)
        combos, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
        inverse = np.asarray(inverse).ravel()

        self.groups = ListOfIntegerSets([(self.rank,)])
        combo_group = np.empty(len(combos), dtype=IDX_DTYPE)
        combo_owner = np.empty(len(combos), dtype=IDX_DTYPE)
        for c in np.argsort(first):
            per_axis = [axis_sets[a][combos[c][a]] for a in range(len(self.shape))]
            ranks = [int(np.ravel_multi_index(pc, self.dims)) for pc in product(*per_axis)]
            combo_group[c] = self.groups.insert(ranks)
            combo_owner[c] = min(ranks)

        self.ldof_group = combo_group[inverse]
        self.owners = combo_owner[inverse]

        local_index = np.indices(self.local_shape).reshape(len(self.shape), -1)
        global_index = local_index + np.asarray(self.elem_start, dtype=IDX_DTYPE)[:, None]
        self.global_ids = np.ravel_multi_index(tuple(global_index), self.vertex_shape).astype(IDX_DTYPE)

        owned = self.owners == self.rank
        self.ldof_ltdof = np.full(self.n_ldofs, -1, dtype=IDX_DTYPE)
        self.ldof_ltdof[owned] = np.arange(int(owned.sum()), dtype=IDX_DTYPE)

    @property
    def n_ldofs(self) -> int:
        return int(np.prod(self.local_shape))

    @property
    def n_true_dofs(self) -> int:
        return int((self.owners == self.rank).sum())

    @property
    def owned(self) -> np.ndarray:
        """Mask of the local dofs this rank owns."""
        return self.owners == self.rank

    def ldof_ranks(self, i: int) -> tuple:
        """Ranks sharing local dof ``i``."""
        return self.groups[int(self.ldof_group[i])]
