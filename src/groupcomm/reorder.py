"""Rank reordering along a Z-order (Morton) curve of physical coordinates.

Ranks that are close in hardware (same node, nearby cores) end up close
in the new numbering, which keeps the groups of a block partition mostly
on-node.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional, Sequence

import numpy as np
from mpi4py import MPI

log = logging.getLogger(__name__)

_KEY_BITS = 64


def morton_keys(coords) -> np.ndarray:
    """Interleave the bits of non-negative integer coordinates.

    Parameters
    ----------
    coords : array_like, shape (n, dim)
        One row of coordinates per point. The first coordinate is the most
        significant within each bit level.

    Returns
    -------
    np.ndarray of uint64, shape (n,)
    """
    coords = np.atleast_2d(np.asarray(coords, dtype=np.int64))
    n, dim = coords.shape
    if dim == 0:
        raise ValueError("Coordinates must have at least one component")
    if coords.size and coords.min() < 0:
        raise ValueError("Coordinates must be non-negative")

    nbits = _KEY_BITS // dim
    if coords.size and int(coords.max()) >= 2 ** nbits:
        raise ValueError(f"Coordinates do not fit in {nbits} bits per component")

    coords = coords.astype(np.uint64)
    keys = np.zeros(n, dtype=np.uint64)
    one = np.uint64(1)
    for bit in range(nbits):
        for d in range(dim):
            b = (coords[:, d] >> np.uint64(bit)) & one
            keys |= b << np.uint64(bit * dim + (dim - 1 - d))
    return keys


def physical_coordinates(comm: MPI.Comm) -> Optional[tuple]:
    """(node index, first bound cpu) of the calling process. Collective.

    The node index is the position of this host in the sorted list of
    distinct processor names. Returns None where CPU affinity is not
    available (e.g., macOS).
    """
    name = MPI.Get_processor_name()
    names = sorted(set(comm.allgather(name)))
    node = names.index(name)

    try:
        cpu_ids = sorted(os.sched_getaffinity(0))
    except (AttributeError, OSError):
        return None
    if not cpu_ids:
        return None
    return (node, cpu_ids[0])


def reorder_ranks_zcurve(
    comm: MPI.Comm,
    coords_provider: Callable[[MPI.Comm], Optional[Sequence[int]]] = physical_coordinates,
) -> MPI.Comm:
    """Return a communicator whose ranks follow the Z-curve of the coordinates.

    Collective over ``comm``. If any rank has no coordinates, ``comm``
    itself is returned; otherwise a new communicator from ``comm.Split``.
    Ties between equal keys are broken by the original rank.
    """
    all_coords = comm.allgather(coords_provider(comm))
    if any(c is None for c in all_coords):
        log.debug("Physical coordinates unavailable on some rank, keeping rank order")
        return comm

    keys = morton_keys(all_coords)
    order = np.lexsort((np.arange(len(all_coords)), keys))
    new_rank = int(np.nonzero(order == comm.Get_rank())[0][0])
    log.debug(f"Rank {comm.Get_rank()} -> {new_rank} (Z-curve)")
    return comm.Split(0, new_rank)
