# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Enums for element types and memory formats."""

from __future__ import annotations

__all__ = [
    "DataType",
    "MemoryFormat",
]

import enum

import numpy as np


class DataType(enum.IntEnum):
    """Element data type of a tensor."""

    UNDEFINED = 0
    FLOAT = 1
    UINT8 = 2
    INT8 = 3
    INT32 = 6
    INT64 = 7
    BOOL = 9
    FLOAT16 = 10
    DOUBLE = 11

    @classmethod
    def from_numpy(cls, dtype: np.dtype) -> DataType:
        """Returns the DataType corresponding to the numpy dtype.

        Raises:
            TypeError: If the numpy dtype has no corresponding DataType.
        """
        dtype = np.dtype(dtype)
        if dtype in _NP_TYPE_TO_DATA_TYPE:
            return cls(_NP_TYPE_TO_DATA_TYPE[dtype])
        raise TypeError(f"Unsupported numpy data type: {dtype}")

    def numpy(self) -> np.dtype:
        """Returns the numpy dtype for this DataType.

        Raises:
            TypeError: If this DataType has no numpy equivalent.
        """
        if self not in _DATA_TYPE_TO_NP_TYPE:
            raise TypeError(f"Numpy does not support data type: {self}")
        return _DATA_TYPE_TO_NP_TYPE[self]

    def __repr__(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.__repr__()


class MemoryFormat(enum.IntEnum):
    """Physical layout tag of a tensor.

    Shape-only operators never interpret the tag, they only propagate it
    from input to output.
    """

    NCHW = 0
    NHWC = 1
    NC4HW4 = 2

    def __repr__(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.__repr__()


_DATA_TYPE_TO_NP_TYPE = {
    DataType.FLOAT: np.dtype("float32"),
    DataType.UINT8: np.dtype("uint8"),
    DataType.INT8: np.dtype("int8"),
    DataType.INT32: np.dtype("int32"),
    DataType.INT64: np.dtype("int64"),
    DataType.BOOL: np.dtype("bool"),
    DataType.FLOAT16: np.dtype("float16"),
    DataType.DOUBLE: np.dtype("float64"),
}

_NP_TYPE_TO_DATA_TYPE = {v: k for k, v in _DATA_TYPE_TO_NP_TYPE.items()}
