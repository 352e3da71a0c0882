# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference pass."""

from __future__ import annotations

__all__ = [
    "ShapeInferencePass",
    "ShapeInferenceResult",
]

import dataclasses
import logging

import tensorshape as ts
from tensorshape.passes import _pass_infra
from tensorshape.shape_inference import _context, _errors, _materialize, _registry

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class ShapeInferenceResult(_pass_infra.PassResult):
    """Result of the shape inference pass.

    Attributes:
        deferred: Nodes whose inference was deferred because an input shape
            or parameter was not resolved yet. Run the pass again once they are.
        errors: Errors recorded during inference.
    """

    deferred: list[ts.Node] = dataclasses.field(default_factory=list)
    errors: list[_context.ShapeInferenceError] = dataclasses.field(default_factory=list)


class ShapeInferencePass(_pass_infra.InPlacePass):
    """Pass that performs shape inference on the graph.

    This pass traverses the graph in topological order and applies the
    shape inference function registered for each node:

    - Input positions an operator declares as host inputs are materialized
      once per node before its inference function runs.
    - Nodes whose input shapes are not resolved yet are reported as deferred.
    - The first failing node aborts the pass with :class:`GraphShapeInferenceError`.

    Example::

        import tensorshape as ts
        from tensorshape.passes import ShapeInferencePass

        result = ShapeInferencePass()(graph)
    """

    def __init__(
        self,
        registry: _registry.OpShapeInferenceRegistry | None = None,
        policy: _context.ShapeMergePolicy = "override",
        warn_on_missing: bool = True,
        materializer: _materialize.Materializer | None = None,
    ) -> None:
        """Initialize the shape inference pass.

        Args:
            registry: Registry to look operators up in. Defaults to a new
                registry populated with the built-in operators.
            policy: How to merge inferred shapes with existing shapes.
            warn_on_missing: If True, log warnings for ops without registered
                shape inference.
            materializer: Used to read device-resident parameter tensors.
        """
        super().__init__()
        self.registry = registry if registry is not None else _registry.create_default_registry()
        self.policy = policy
        self.warn_on_missing = warn_on_missing
        self.materializer = materializer

    def call(self, graph: ts.Graph) -> ShapeInferenceResult:
        """Run shape inference on the graph.

        Raises:
            GraphShapeInferenceError: If inference fails for a node.
        """
        ctx = _context.ShapeInferenceContext(
            graph.opset_imports, policy=self.policy, materializer=self.materializer
        )
        result = ShapeInferenceResult(graph, modified=False)
        warned_ops: set[tuple[str, str]] = set()

        for node in graph:
            domain = node.domain or ""
            op_type = node.op_type
            entry = self.registry.get(domain, op_type, version=ctx.get_opset_version(domain))

            if entry is None:
                key = (domain, op_type)
                if self.warn_on_missing and key not in warned_ops:
                    logger.warning(
                        "No shape inference registered for %s::%s", domain or "default", op_type
                    )
                    warned_ops.add(key)
                continue

            # Track which outputs had shapes, dtypes and formats before
            old_states = [
                (
                    out.shape.copy() if out.shape is not None else None,
                    out.dtype,
                    out.memory_format,
                )
                for out in node.outputs
            ]

            try:
                with ctx.node_scope(node, entry.host_inputs):
                    inferred = entry(ctx, node)
            except _errors.ShapeInferenceFailure as e:
                record = ctx.record_error(node, e)
                raise _errors.GraphShapeInferenceError(
                    f"Shape inference failed for {record}", node
                ) from e

            if not inferred:
                logger.debug("Shape inference deferred for %s", node)
                result.deferred.append(node)

            for out, (old_shape, old_dtype, old_format) in zip(node.outputs, old_states):
                if (
                    out.shape != old_shape
                    or out.dtype != old_dtype
                    or out.memory_format != old_format
                ):
                    result.modified = True

        result.errors = list(ctx.errors)
        if result.deferred:
            logger.info(
                "Shape inference deferred for %d of %d nodes", len(result.deferred), len(graph)
            )
        return result
