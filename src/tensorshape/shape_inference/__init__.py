# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference for the graph IR.

Shape inference computes every operator's output shape, dtype and memory
format before execution, so that buffers can be planned. Operators are looked
up in a registry owned by the caller.

Example::

    import tensorshape as ts
    from tensorshape.shape_inference import infer_shapes

    result = infer_shapes(graph)
    if result.deferred:
        ...  # retry once upstream shapes are known

Registering custom shape inference::

    from tensorshape.shape_inference import create_default_registry

    registry = create_default_registry()

    @registry.register("com.custom", "MyOp", versions=1)
    def infer_my_op(ctx, node):
        input_shape = node.inputs[0].shape
        ctx.set_shape(node.outputs[0], ts.Shape([...]))
        return True

    infer_shapes(graph, registry=registry)

Shapes of a single strided slice can be computed without a graph::

    from tensorshape.shape_inference import compute_strided_slice_shape

    compute_strided_slice_shape([4, 5], [0], [0], [1], shrink_axis_mask=1)  # Shape([5])
"""

from __future__ import annotations

__all__ = [
    # Main API
    "compute_strided_slice_shape",
    "infer_shapes",
    # Context and policy
    "ShapeInferenceContext",
    "ShapeInferenceError",
    "ShapeMergePolicy",
    # Registry
    "OpShapeInference",
    "OpShapeInferenceRegistry",
    "create_default_registry",
    # Materialization
    "HostCopyMaterializer",
    "Materializer",
    "read_host_ints",
    # Errors
    "GraphShapeInferenceError",
    "InvalidOpUsageError",
    "MalformedSliceSpecError",
    "MaterializationError",
    "RankUnresolved",
    "ShapeConflictError",
    "ShapeInferenceFailure",
    "UnsupportedMaskError",
    "UnsupportedRankError",
    "ZeroStrideError",
    # Utilities
    "check_inputs",
]

from typing import TYPE_CHECKING

from tensorshape.shape_inference._context import (
    ShapeInferenceContext,
    ShapeInferenceError,
    ShapeMergePolicy,
    check_inputs,
)
from tensorshape.shape_inference._errors import (
    GraphShapeInferenceError,
    InvalidOpUsageError,
    MalformedSliceSpecError,
    MaterializationError,
    RankUnresolved,
    ShapeConflictError,
    ShapeInferenceFailure,
    UnsupportedMaskError,
    UnsupportedRankError,
    ZeroStrideError,
)
from tensorshape.shape_inference._materialize import (
    HostCopyMaterializer,
    Materializer,
    read_host_ints,
)
from tensorshape.shape_inference._ops._strided_slice import compute_strided_slice_shape
from tensorshape.shape_inference._registry import (
    OpShapeInference,
    OpShapeInferenceRegistry,
    create_default_registry,
)

if TYPE_CHECKING:
    import tensorshape as ts
    from tensorshape.passes.shape_inference import ShapeInferenceResult


def infer_shapes(
    graph: ts.Graph,
    *,
    registry: OpShapeInferenceRegistry | None = None,
    policy: ShapeMergePolicy = "override",
    warn_on_missing: bool = True,
    materializer: Materializer | None = None,
) -> ShapeInferenceResult:
    """Perform shape inference on the graph.

    Convenience function that creates and runs a ShapeInferencePass.

    Args:
        graph: The graph to perform shape inference on. It is modified in place.
        registry: Registry to look operators up in. Defaults to a new registry
            with the built-in operators.
        policy: How to merge inferred shapes with existing shapes.
        warn_on_missing: If True, log warnings for ops without registered
            shape inference.
        materializer: Used to read device-resident parameter tensors.

    Returns:
        The result of the pass, listing the nodes whose inference was deferred.

    Raises:
        GraphShapeInferenceError: If inference fails for a node.
    """
    from tensorshape.passes.shape_inference import ShapeInferencePass

    return ShapeInferencePass(
        registry=registry,
        policy=policy,
        warn_on_missing=warn_on_missing,
        materializer=materializer,
    )(graph)


def __set_module() -> None:
    """Set the module of all functions in this module to this public module."""
    global_dict = globals()
    for name in __all__:
        obj = global_dict[name]
        if hasattr(obj, "__module__"):
            obj.__module__ = __name__


__set_module()
