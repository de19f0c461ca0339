"""Gather, scatter and reduce kernels between local arrays and message buffers.

Simple kernel implementations - buffer bookkeeping is handled by the
communicator.
"""

import numpy as np
from numba import njit


@njit
def _gather_numba(ldata, ldofs, buf):
    for j in range(ldofs.shape[0]):
        buf[j] = ldata[ldofs[j]]


@njit
def _scatter_numba(buf, ldata, ldofs):
    for j in range(ldofs.shape[0]):
        ldata[ldofs[j]] = buf[j]


@njit
def _reduce_sum_numba(ldata, ldofs, buf, nb):
    n = ldofs.shape[0]
    for i in range(n):
        acc = ldata[ldofs[i]]
        for j in range(nb):
            acc += buf[j * n + i]
        ldata[ldofs[i]] = acc


@njit
def _reduce_min_numba(ldata, ldofs, buf, nb):
    n = ldofs.shape[0]
    for i in range(n):
        acc = ldata[ldofs[i]]
        for j in range(nb):
            if buf[j * n + i] < acc:
                acc = buf[j * n + i]
        ldata[ldofs[i]] = acc


@njit
def _reduce_max_numba(ldata, ldofs, buf, nb):
    n = ldofs.shape[0]
    for i in range(n):
        acc = ldata[ldofs[i]]
        for j in range(nb):
            if buf[j * n + i] > acc:
                acc = buf[j * n + i]
        ldata[ldofs[i]] = acc


@njit
def _reduce_bor_numba(ldata, ldofs, buf, nb):
    n = ldofs.shape[0]
    for i in range(n):
        acc = ldata[ldofs[i]]
        for j in range(nb):
            acc |= buf[j * n + i]
        ldata[ldofs[i]] = acc


_NUMBA_REDUCERS = {
    "sum": _reduce_sum_numba,
    "min": _reduce_min_numba,
    "max": _reduce_max_numba,
    "bor": _reduce_bor_numba,
}


class NumPyKernel:
    """NumPy fancy-indexing kernels."""

    name = "numpy"

    def gather(self, ldata: np.ndarray, ldofs: np.ndarray, buf: np.ndarray):
        """buf[j] = ldata[ldofs[j]]"""
        np.take(ldata, ldofs, out=buf)

    def scatter(self, buf: np.ndarray, ldata: np.ndarray, ldofs: np.ndarray):
        """ldata[ldofs[j]] = buf[j]"""
        ldata[ldofs] = buf

    def reduce(self, op, opd):
        """Apply reduce operation ``op`` to one group."""
        op(opd)

    def warmup(self):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel:
    """Numba JIT-compiled kernels.

    Built-in operators run compiled loops; any other operator falls back
    to calling it directly.
    """

    name = "numba"

    def gather(self, ldata: np.ndarray, ldofs: np.ndarray, buf: np.ndarray):
        _gather_numba(ldata, ldofs, buf)

    def scatter(self, buf: np.ndarray, ldata: np.ndarray, ldofs: np.ndarray):
        _scatter_numba(buf, ldata, ldofs)

    def reduce(self, op, opd):
        compiled = _NUMBA_REDUCERS.get(getattr(op, "name", None))
        if compiled is None:
            op(opd)
            return
        op.check_dtype(opd.ldata.dtype)
        compiled(opd.ldata, opd.ldofs, opd.buf, opd.nb)

    def warmup(self, warmup_size: int = 8):
        """Trigger JIT compilation for float64 and int32 payloads."""
        ldofs = np.arange(warmup_size, dtype=np.int64)
        for dtype in (np.float64, np.int32):
            ldata = np.zeros(warmup_size, dtype=dtype)
            buf = np.ones(2 * warmup_size, dtype=dtype)
            _gather_numba(ldata, ldofs, buf)
            _scatter_numba(buf, ldata, ldofs)
            for name, fn in _NUMBA_REDUCERS.items():
                if name == "bor" and dtype is np.float64:
                    continue
                fn(ldata, ldofs, buf, 2)


def create_kernel(use_numba: bool = False):
    """Factory: compiled kernels if ``use_numba``, NumPy otherwise."""
    return NumbaKernel() if use_numba else NumPyKernel()
