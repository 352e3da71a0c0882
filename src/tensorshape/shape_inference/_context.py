# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference context and merge policies."""

from __future__ import annotations

__all__ = [
    "ShapeInferenceContext",
    "ShapeInferenceError",
    "ShapeMergePolicy",
    "check_inputs",
]

import contextlib
import dataclasses
import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import Literal

import tensorshape as ts
from tensorshape.shape_inference import _errors, _materialize

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ShapeInferenceError:
    """A recorded error from shape inference.

    Attributes:
        node_name: The name of the node (or ``None`` if unnamed).
        op_type: The operator type (e.g. ``"StridedSlice"``).
        domain: The operator domain.
        message: Human-readable description of the error.
        axis: The offending axis, if the error is specific to one axis.
    """

    node_name: str | None
    op_type: str
    domain: str
    message: str
    axis: int | None = None

    def __str__(self) -> str:
        op_id = f"{self.domain}::{self.op_type}" if self.domain else self.op_type
        node_desc = f" (node {self.node_name!r})" if self.node_name else ""
        return f"{op_id}{node_desc}: {self.message}"


ShapeMergePolicy = Literal["skip", "override", "strict"]
"""Policy for merging inferred shapes/dtypes with existing values.

* ``"skip"``: Don't update if shape/dtype already exists.
* ``"override"``: Always replace with inferred shape/dtype.
* ``"strict"``: Fail if inferred shape/dtype conflicts with existing.
"""


def check_inputs(node: ts.Node, *names: str) -> tuple[ts.Value, ...]:
    """Check that the node has the required inputs and return them.

    Args:
        node: The node to check.
        *names: Names of the required inputs, used in error messages.

    Returns:
        The first ``len(names)`` inputs of the node.

    Raises:
        InvalidOpUsageError: If an input is missing or None.
    """
    if len(node.inputs) < len(names):
        raise _errors.InvalidOpUsageError(
            f"{node.op_type} expects {len(names)} inputs ({', '.join(names)}), "
            f"got {len(node.inputs)}"
        )
    inputs = []
    for i, name in enumerate(names):
        value = node.inputs[i]
        if value is None:
            raise _errors.InvalidOpUsageError(
                f"{node.op_type} input {i} ({name!r}) is required but missing"
            )
        inputs.append(value)
    return tuple(inputs)


class ShapeInferenceContext:
    """Context for shape and type inference operations.

    Records errors, applies the merge policy when writing inferred shapes, and
    reads constant parameter tensors as host integers.

    Attributes:
        opset_imports: Mapping from domain to opset version.
        policy: The shape merge policy.
        materializer: Transfers device-resident constants to host memory.
    """

    def __init__(
        self,
        opset_imports: Mapping[str, int] | None = None,
        policy: ShapeMergePolicy = "override",
        materializer: _materialize.Materializer | None = None,
    ) -> None:
        """Initialize the shape inference context.

        Args:
            opset_imports: Mapping from domain to opset version
                (e.g. ``{"": 1}``).  When ``None``, defaults to ``{"": 1}``.
            policy: The shape merge policy to use.
            materializer: Used to read device-resident constants. Defaults to
                :class:`HostCopyMaterializer`.
        """
        self.opset_imports: Mapping[str, int] = opset_imports or {"": 1}
        self.policy = policy
        self.materializer = materializer or _materialize.HostCopyMaterializer()
        # Recorded errors from shape inference
        self._errors: list[ShapeInferenceError] = []
        # Host integers read during the current node scope, keyed by value id
        self._host_ints: dict[int, list[int] | None] | None = None

    @property
    def opset(self) -> int:
        """Get the default opset version for inference."""
        return self.opset_imports.get("", 1)

    def get_opset_version(self, domain: str) -> int:
        """Get the opset version for a specific domain."""
        if domain in self.opset_imports:
            return self.opset_imports[domain]
        if domain == "":
            return self.opset
        return 1

    @contextlib.contextmanager
    def node_scope(self, node: ts.Node, host_inputs: Sequence[int] = ()) -> Iterator[None]:
        """Scope in which host reads for ``node`` are materialized at most once.

        The inputs at positions ``host_inputs`` are materialized on entry. The
        host buffers are released when the scope exits.
        """
        self._host_ints = {}
        try:
            for position in host_inputs:
                if position < len(node.inputs):
                    self.read_host_ints(node.inputs[position])
            yield
        finally:
            self._host_ints = None

    def read_host_ints(self, value: ts.Value | None) -> list[int] | None:
        """Read a constant integer tensor as a list of ints.

        Inside :meth:`node_scope` the result is kept until the scope exits, so a
        device transfer happens at most once per value.

        Returns:
            The integers, or None if ``value`` is not a constant.
        """
        if self._host_ints is None:
            return _materialize.read_host_ints(value, self.materializer)
        key = id(value)
        if key not in self._host_ints:
            self._host_ints[key] = _materialize.read_host_ints(value, self.materializer)
        return self._host_ints[key]

    def record_error(
        self, node: ts.Node, error: _errors.ShapeInferenceFailure
    ) -> ShapeInferenceError:
        """Record a shape inference error for a node.

        The error is appended to an internal list that can be inspected via
        :attr:`errors`.

        Args:
            node: The node that caused the error.
            error: The failure raised by the inference function.

        Returns:
            The recorded error.
        """
        record = ShapeInferenceError(
            node_name=node.name,
            op_type=node.op_type,
            domain=node.domain,
            message=str(error),
            axis=error.axis,
        )
        self._errors.append(record)
        logger.warning("Shape inference error: %s", record)
        return record

    @property
    def errors(self) -> Sequence[ShapeInferenceError]:
        """All errors recorded during shape inference."""
        return self._errors

    def set_shape(self, value: ts.Value, shape: ts.Shape) -> bool:
        """Set the shape of a value according to the merge policy.

        Args:
            value: The value to set the shape on.
            shape: The inferred shape.

        Returns:
            True if the shape was updated, False otherwise.

        Raises:
            ShapeConflictError: If policy is ``"strict"`` and shapes conflict.
        """
        existing = value.shape

        if existing is None:
            value.shape = shape
            return True

        if self.policy == "skip":
            return False

        if self.policy == "strict":
            if existing.rank() != shape.rank():
                raise _errors.ShapeConflictError(
                    f"Shape rank mismatch for {value.name}: "
                    f"existing {existing.rank()} vs inferred {shape.rank()}"
                )
            for i, (e_dim, i_dim) in enumerate(zip(existing.dims, shape.dims)):
                if e_dim != i_dim:
                    raise _errors.ShapeConflictError(
                        f"Shape conflict for {value.name} at dim {i}: "
                        f"existing {e_dim} vs inferred {i_dim}"
                    )
            return False

        # "override" policy
        if existing == shape:
            return False
        value.shape = shape
        return True

    def set_dtype(self, value: ts.Value, dtype: ts.DataType) -> bool:
        """Set the dtype of a value according to the merge policy.

        Returns:
            True if the dtype was updated, False otherwise.

        Raises:
            ShapeConflictError: If policy is ``"strict"`` and dtypes conflict.
        """
        existing = value.dtype

        if existing is None:
            value.dtype = dtype
            return True

        if self.policy == "skip":
            return False

        if self.policy == "strict":
            if existing != dtype:
                raise _errors.ShapeConflictError(
                    f"Dtype conflict for {value.name}: existing {existing} vs inferred {dtype}"
                )
            return False

        if existing == dtype:
            return False
        value.dtype = dtype
        return True

    def set_memory_format(self, value: ts.Value, memory_format: ts.MemoryFormat) -> bool:
        """Set the memory format tag of a value according to the merge policy."""
        existing = value.memory_format

        if existing is None:
            value.memory_format = memory_format
            return True

        if self.policy == "skip":
            return False

        if self.policy == "strict":
            if existing != memory_format:
                raise _errors.ShapeConflictError(
                    f"Memory format conflict for {value.name}: "
                    f"existing {existing} vs inferred {memory_format}"
                )
            return False

        if existing == memory_format:
            return False
        value.memory_format = memory_format
        return True

    def set_shape_and_dtype(
        self,
        value: ts.Value,
        shape: ts.Shape | None = None,
        dtype: ts.DataType | None = None,
        memory_format: ts.MemoryFormat | None = None,
    ) -> bool:
        """Set the shape, dtype and memory format of a value.

        Arguments that are None are left untouched.

        Returns:
            True if any of them was updated.
        """
        modified = False
        if shape is not None:
            modified = self.set_shape(value, shape) or modified
        if dtype is not None:
            modified = self.set_dtype(value, dtype) or modified
        if memory_format is not None:
            modified = self.set_memory_format(value, memory_format) or modified
        return modified
