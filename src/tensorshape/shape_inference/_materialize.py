# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Reading constant parameter tensors as host integers.

Parameter tensors such as slice bounds may live in device memory. Before shape
inference can use them they must be materialized: host tensors are read in place,
device tensors are transferred once into a freshly owned host buffer.
"""

from __future__ import annotations

__all__ = [
    "HostCopyMaterializer",
    "Materializer",
    "read_host_ints",
]

import logging
from typing import Protocol

import numpy as np

import tensorshape as ts
from tensorshape.shape_inference import _errors

logger = logging.getLogger(__name__)


class Materializer(Protocol):
    """Transfers the contents of a device tensor to host memory."""

    def materialize(self, tensor: ts.DeviceTensor) -> np.ndarray:
        """Return the contents of ``tensor`` as a host numpy array."""
        ...


class HostCopyMaterializer:
    """Materializes device tensors with a synchronous copy to host."""

    def materialize(self, tensor: ts.DeviceTensor) -> np.ndarray:
        logger.debug(
            "Copying %s from device %d to host", tensor.name or "tensor", tensor.device_id
        )
        return tensor.fetch().numpy()


def read_host_ints(value: ts.Value | None, materializer: Materializer) -> list[int] | None:
    """Read a constant integer tensor as a flat list of Python ints.

    Args:
        value: The value to read. Only values with a ``const_value`` can be read.
        materializer: Used when the constant is not host-readable.

    Returns:
        The integers in row-major order, or None if the value is missing or not
        a constant.

    Raises:
        InvalidOpUsageError: If the constant does not hold integers.
        MaterializationError: If the device transfer fails.
    """
    if value is None or value.const_value is None:
        return None
    const = value.const_value
    if const.is_host_readable:
        array = const.numpy()
    else:
        try:
            array = materializer.materialize(const)
        except ValueError as e:
            raise _errors.MaterializationError(
                f"Failed to read {value.name!r} from device {const.device_id}: {e}"
            ) from e
    if not np.issubdtype(array.dtype, np.integer):
        raise _errors.InvalidOpUsageError(
            f"Expected an integer tensor for {value.name!r}, got elements of type {array.dtype}"
        )
    return [int(x) for x in array.flatten()]
