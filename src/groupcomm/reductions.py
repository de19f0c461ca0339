"""Reduction operators applied to one group of dofs at a time."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from mpi4py import MPI

from .typemap import is_integer


@dataclass
class OpData:
    """Data on which a reduce operation is defined for a single group.

    ``buf`` holds ``nb`` consecutive blocks of ``nldofs`` incoming values;
    block ``j`` entry ``i`` is combined into ``ldata[ldofs[i]]``.
    """

    nldofs: int
    nb: int
    ldofs: np.ndarray
    ldata: np.ndarray
    buf: np.ndarray


class ReduceOp:
    """Associative, commutative elementwise operator backed by a numpy ufunc.

    Parameters
    ----------
    name : str
        Short name, also used to select compiled kernels.
    ufunc : numpy.ufunc
        Binary ufunc combining two values.
    mpi_op : MPI.Op
        The transport's equivalent operator, for collective fallbacks.
    integer_only : bool
        Reject floating point payloads.
    """

    def __init__(self, name: str, ufunc: np.ufunc, mpi_op: MPI.Op, integer_only: bool = False):
        self.name = name
        self.ufunc = ufunc
        self.mpi_op = mpi_op
        self.integer_only = integer_only

    def check_dtype(self, dtype):
        if self.integer_only and not is_integer(dtype):
            raise TypeError(f"Reduce operation '{self.name}' requires integer data, got {np.dtype(dtype)}")

    def __call__(self, opd: OpData):
        self.check_dtype(opd.ldata.dtype)
        incoming = opd.buf[: opd.nb * opd.nldofs].reshape(opd.nb, opd.nldofs)
        opd.ldata[opd.ldofs] = self.ufunc(opd.ldata[opd.ldofs], self.ufunc.reduce(incoming, axis=0))

    def __repr__(self):
        return f"ReduceOp({self.name!r})"


Sum = ReduceOp("sum", np.add, MPI.SUM)
Min = ReduceOp("min", np.minimum, MPI.MIN)
Max = ReduceOp("max", np.maximum, MPI.MAX)
BitOR = ReduceOp("bor", np.bitwise_or, MPI.BOR, integer_only=True)

REDUCE_OPS = {op.name: op for op in (Sum, Min, Max, BitOR)}


def get_reduce_op(name: str) -> ReduceOp:
    """Look up a built-in operator by name ('sum', 'min', 'max', 'bor')."""
    try:
        return REDUCE_OPS[name]
    except KeyError:
        raise ValueError(f"Unknown reduce operation: {name}. Use one of {sorted(REDUCE_OPS)}") from None
