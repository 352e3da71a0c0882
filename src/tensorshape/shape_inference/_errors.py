# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Exceptions raised by shape inference."""

from __future__ import annotations

__all__ = [
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
]


class RankUnresolved(Exception):
    """The input rank is not known yet.

    This is not a failure: shape inference for the node is deferred and can be
    retried once the upstream shapes are resolved.
    """


class ShapeInferenceFailure(ValueError):
    """Shape inference for a node cannot proceed.

    Attributes:
        axis: The offending axis, when the failure is specific to one axis.
    """

    def __init__(self, message: str, *, axis: int | None = None) -> None:
        if axis is not None:
            message = f"{message} (axis {axis})"
        super().__init__(message)
        self.axis = axis


class InvalidOpUsageError(ShapeInferenceFailure):
    """The node does not have the inputs or attributes the operator requires."""


class UnsupportedRankError(ShapeInferenceFailure):
    """The input rank is outside the range the operator supports."""


class UnsupportedMaskError(ShapeInferenceFailure):
    """An ellipsis or new-axis mask was requested."""


class MalformedSliceSpecError(ShapeInferenceFailure):
    """The begin, end and stride parameters are inconsistent with each other or the input."""


class ZeroStrideError(ShapeInferenceFailure):
    """A stride of zero was supplied."""

    def __init__(self, axis: int) -> None:
        super().__init__("Stride cannot be 0", axis=axis)


class ShapeConflictError(ShapeInferenceFailure):
    """An inferred shape, dtype or memory format conflicts with the existing one.

    Only raised under the ``"strict"`` merge policy.
    """


class MaterializationError(ShapeInferenceFailure):
    """A device tensor could not be read back to host memory."""


class GraphShapeInferenceError(RuntimeError):
    """Shape inference for a graph was aborted because a node failed.

    The original :class:`ShapeInferenceFailure` is available as ``__cause__``.

    Attributes:
        node: The node whose inference failed.
    """

    def __init__(self, message: str, node) -> None:
        super().__init__(message)
        self.node = node
