"""Tests for reduce operators and the copy/reduce kernels."""

import numpy as np
import pytest
from mpi4py import MPI
from groupcomm import BitOR, Max, Min, NumbaKernel, NumPyKernel, OpData, Sum, get_reduce_op


def make_opd(dtype=np.float64):
    """Two incoming blocks for ldofs [3, 0] of a 5-entry array."""
    ldata = np.array([5, 1, 1, 2, 1], dtype=dtype)
    buf = np.array([1, 7, 4, 3, 99], dtype=dtype)
    return OpData(nldofs=2, nb=2, ldofs=np.array([3, 0], dtype=np.int64), ldata=ldata, buf=buf)


class TestReduceOps:
    """Per-group reduce semantics: ldata[ldofs[i]] op= buf[j * nldofs + i]."""

    @pytest.mark.parametrize("op, expected", [
        (Sum, [5 + 7 + 3, 1, 1, 2 + 1 + 4, 1]),
        (Min, [3, 1, 1, 1, 1]),
        (Max, [7, 1, 1, 4, 1]),
    ])
    def test_ops(self, op, expected):
        opd = make_opd()
        op(opd)
        assert opd.ldata.tolist() == expected

    def test_bitor(self):
        opd = make_opd(np.int32)
        BitOR(opd)
        assert opd.ldata.tolist() == [5 | 7 | 3, 1, 1, 2 | 1 | 4, 1]

    def test_bitor_rejects_float(self):
        with pytest.raises(TypeError):
            BitOR(make_opd(np.float64))

    def test_trailing_buffer_ignored(self):
        opd = make_opd()
        Sum(opd)
        assert 99 not in opd.ldata

    def test_mpi_ops(self):
        assert Sum.mpi_op == MPI.SUM
        assert BitOR.mpi_op == MPI.BOR

    def test_get_reduce_op(self):
        assert get_reduce_op("max") is Max
        with pytest.raises(ValueError):
            get_reduce_op("prod")


class TestKernels:
    """NumPy and Numba kernels should produce identical results."""

    @pytest.fixture(scope="class")
    def numba_kernel(self):
        kernel = NumbaKernel()
        kernel.warmup()
        return kernel

    def test_gather(self, numba_kernel):
        ldata = np.arange(10, dtype=np.float64)
        ldofs = np.array([7, 2, 5], dtype=np.int64)
        a, b = np.zeros(3), np.zeros(3)
        NumPyKernel().gather(ldata, ldofs, a)
        numba_kernel.gather(ldata, ldofs, b)
        assert a.tolist() == [7.0, 2.0, 5.0]
        assert np.array_equal(a, b)

    def test_scatter(self, numba_kernel):
        ldofs = np.array([4, 1], dtype=np.int64)
        a, b = np.zeros(5), np.zeros(5)
        NumPyKernel().scatter(np.array([8.0, 9.0]), a, ldofs)
        numba_kernel.scatter(np.array([8.0, 9.0]), b, ldofs)
        assert a.tolist() == [0.0, 9.0, 0.0, 0.0, 8.0]
        assert np.array_equal(a, b)

    @pytest.mark.parametrize("op, dtype", [
        (Sum, np.float64), (Min, np.float64), (Max, np.int32), (BitOR, np.int64),
    ])
    def test_reduce(self, numba_kernel, op, dtype):
        a, b = make_opd(dtype), make_opd(dtype)
        NumPyKernel().reduce(op, a)
        numba_kernel.reduce(op, b)
        assert np.array_equal(a.ldata, b.ldata)

    def test_custom_op_falls_back(self, numba_kernel):
        calls = []
        opd = make_opd()
        numba_kernel.reduce(calls.append, opd)
        assert calls == [opd]

    def test_numba_rejects_float_bitor(self, numba_kernel):
        with pytest.raises(TypeError):
            numba_kernel.reduce(BitOR, make_opd(np.float64))
