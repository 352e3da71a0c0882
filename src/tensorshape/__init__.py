# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Graph IR and shape inference for tensor operators.

Example::

    import numpy as np
    import tensorshape as ts

    data = ts.Value(name="data", shape=ts.Shape([4, 5]), dtype=ts.DataType.FLOAT)
    begin = ts.Value(name="begin", const_value=ts.Tensor(np.array([0], dtype=np.int32)))
    end = ts.Value(name="end", const_value=ts.Tensor(np.array([2], dtype=np.int32)))
    strides = ts.Value(name="strides", const_value=ts.Tensor(np.array([1], dtype=np.int32)))
    node = ts.Node("", "StridedSlice", [data, begin, end, strides])
    graph = ts.Graph([data], node.outputs, nodes=[node])

    result = ts.shape_inference.infer_shapes(graph)
    print(node.outputs[0].shape)  # [2,5]
"""

from __future__ import annotations

__all__ = [
    # Enums
    "DataType",
    "MemoryFormat",
    # Core IR
    "Attributes",
    "DeviceTensor",
    "Graph",
    "Node",
    "Shape",
    "Tensor",
    "TypeAndShape",
    "Value",
    # Modules
    "passes",
    "shape_inference",
]

from tensorshape._core import (
    Attributes,
    DeviceTensor,
    Graph,
    Node,
    Shape,
    Tensor,
    TypeAndShape,
    Value,
)
from tensorshape._enums import DataType, MemoryFormat

# Submodules use the core types above, so they are imported last
from tensorshape import passes, shape_inference  # noqa: E402  # isort: skip

__version__ = "0.1.0"


def __set_module() -> None:
    """Set the module of all functions in this module to this public module."""
    global_dict = globals()
    for name in __all__:
        obj = global_dict[name]
        if hasattr(obj, "__module__"):
            obj.__module__ = __name__


__set_module()
