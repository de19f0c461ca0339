"""Mapping from numpy element types to MPI datatypes."""

from __future__ import annotations

import numpy as np
from mpi4py import MPI


_MPI_TYPES = {
    np.dtype(np.int8): MPI.INT8_T,
    np.dtype(np.int16): MPI.INT16_T,
    np.dtype(np.int32): MPI.INT32_T,
    np.dtype(np.int64): MPI.INT64_T,
    np.dtype(np.uint8): MPI.UINT8_T,
    np.dtype(np.uint16): MPI.UINT16_T,
    np.dtype(np.uint32): MPI.UINT32_T,
    np.dtype(np.uint64): MPI.UINT64_T,
    np.dtype(np.float32): MPI.FLOAT,
    np.dtype(np.float64): MPI.DOUBLE,
}


def mpi_type(dtype) -> MPI.Datatype:
    """Return the MPI datatype for a numpy dtype (native byte order only)."""
    dt = np.dtype(dtype)
    try:
        return _MPI_TYPES[dt]
    except KeyError:
        raise TypeError(f"No MPI datatype for element type: {dt}") from None


def is_integer(dtype) -> bool:
    """True for the integer element types supported by the transport."""
    return np.dtype(dtype).kind in "iu"
