# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Common test infrastructure for op-level shape inference tests."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np

import tensorshape as ts
from tensorshape.shape_inference._context import ShapeInferenceContext
from tensorshape.shape_inference._registry import create_default_registry


def type_shape(
    dtype: ts.DataType | None = None,
    shape: Sequence[int] | None = None,
    memory_format: ts.MemoryFormat | None = None,
) -> ts.TypeAndShape:
    """Create a :class:`ts.TypeAndShape` from a dtype and a shape list.

    This is a concise helper for specifying input / expected-output type-and-shape
    in parameterized tests.

    Examples::

        type_shape(ts.DataType.FLOAT, [3, 4])   # FLOAT, Shape([3, 4])
        type_shape(ts.DataType.FLOAT)           # FLOAT, shape=None
        type_shape()                            # dtype=None, shape=None

    Args:
        dtype: Element data type.  ``None`` means unset.
        shape: Shape dimensions.  ``None`` means unknown rank (unset).
        memory_format: Memory format tag.  ``None`` means unset.
    """
    shape_ = ts.Shape(shape) if shape is not None else None
    return ts.TypeAndShape(dtype, shape_, memory_format)


def const_value(values: Sequence[int], name: str | None = None) -> ts.Value:
    """Create a host-resident constant INT32 value."""
    tensor = ts.Tensor(np.array(values, dtype=np.int32), name=name)
    return ts.Value(name=name, const_value=tensor)


class FetchCounter:
    """A device fetch function that counts how often it was called."""

    def __init__(self, values: Sequence[int]) -> None:
        self.values = list(values)
        self.calls = 0

    def __call__(self) -> np.ndarray:
        self.calls += 1
        return np.array(self.values, dtype=np.int32)


def device_value(values: Sequence[int], name: str | None = None) -> tuple[ts.Value, FetchCounter]:
    """Create a device-resident constant INT32 value.

    Returns:
        The value and the fetch function, which records the number of transfers.
    """
    fetch = FetchCounter(values)
    tensor = ts.DeviceTensor(
        fetch, dtype=ts.DataType.INT32, shape=ts.Shape([len(values)]), name=name
    )
    return ts.Value(name=name, const_value=tensor), fetch


def run_shape_inference_with_values(
    domain: str,
    op_type: str,
    inputs: Sequence[ts.Value | None],
    attributes: Mapping[str, Any] | None = None,
    *,
    opset_version: int = 1,
    num_outputs: int = 1,
    ctx: ShapeInferenceContext | None = None,
) -> list[ts.TypeAndShape]:
    """Run the registered shape inference function for an op on the given values.

    The inference function is invoked directly (no pass), so the host input
    declaration of the operator is not applied.

    Returns:
        A list of :class:`ts.TypeAndShape`, one per output.
    """
    output_values = [ts.Value(name=f"output_{i}") for i in range(num_outputs)]
    node = ts.Node(
        domain,
        op_type,
        inputs=inputs,
        attributes=attributes,
        outputs=output_values,
    )

    if ctx is None:
        ctx = ShapeInferenceContext({domain: opset_version}, policy="override")

    entry = create_default_registry().get(domain, op_type, version=opset_version)
    if entry is None:
        raise ValueError(
            f"No shape inference registered for {domain}::{op_type} version {opset_version}"
        )
    entry(ctx, node)

    return [ts.TypeAndShape(v.dtype, v.shape, v.memory_format) for v in output_values]
