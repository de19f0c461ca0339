"""Tests for numpy dtype -> MPI datatype mapping."""

import numpy as np
import pytest
from mpi4py import MPI
from groupcomm import mpi_type
from groupcomm.typemap import is_integer


@pytest.mark.parametrize("dtype, expected", [
    (np.float64, MPI.DOUBLE),
    (np.float32, MPI.FLOAT),
    (np.int32, MPI.INT32_T),
    (np.int64, MPI.INT64_T),
    (np.uint8, MPI.UINT8_T),
])
def test_mpi_type(dtype, expected):
    assert mpi_type(dtype) == expected


def test_unsupported_dtype():
    with pytest.raises(TypeError):
        mpi_type(np.complex128)


def test_is_integer():
    assert is_integer(np.int16)
    assert is_integer(np.uint64)
    assert not is_integer(np.float32)
