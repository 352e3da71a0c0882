# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference operators.

:func:`register_builtin_ops` registers every built-in operator with a registry.
"""

from __future__ import annotations

__all__ = [
    "infer_strided_slice",
    "register_builtin_ops",
]

from typing import TYPE_CHECKING

from tensorshape.shape_inference._ops._strided_slice import infer_strided_slice

if TYPE_CHECKING:
    from tensorshape.shape_inference._registry import OpShapeInferenceRegistry


def register_builtin_ops(registry: OpShapeInferenceRegistry) -> None:
    """Register the built-in shape inference functions with ``registry``."""
    # begin, end and strides are read as host integers
    registry.register("", "StridedSlice", host_inputs=(1, 2, 3))(infer_strided_slice)
