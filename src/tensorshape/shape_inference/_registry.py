# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Registry for shape inference functions."""

from __future__ import annotations

__all__ = [
    "OpShapeInference",
    "OpShapeInferenceRegistry",
    "ShapeInferenceFunc",
    "create_default_registry",
]

import dataclasses
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import tensorshape as ts
    from tensorshape.shape_inference._context import ShapeInferenceContext

logger = logging.getLogger(__name__)

# Type alias for shape inference functions. A function returns False when
# inference was deferred because an input shape is not resolved yet.
ShapeInferenceFunc = Callable[["ShapeInferenceContext", "ts.Node"], bool]


@dataclasses.dataclass(frozen=True)
class OpShapeInference:
    """A registered shape inference implementation for one operator.

    Attributes:
        func: The shape inference function.
        host_inputs: Input positions whose constant values must be readable on
            the host before or during inference.
    """

    func: ShapeInferenceFunc
    host_inputs: tuple[int, ...] = ()

    def __call__(self, ctx: ShapeInferenceContext, node: ts.Node) -> bool:
        return self.func(ctx, node)


class OpShapeInferenceRegistry:
    """Registry for operator shape inference functions.

    Supports registration by (domain, op_type) with optional opset version filtering.
    When looking up a function, falls back to the closest lower opset version if
    an exact match is not found.

    A registry is an ordinary object owned by whoever drives inference. Use
    :func:`create_default_registry` for one populated with the built-in operators.

    Example::

        registry = OpShapeInferenceRegistry()

        @registry.register("", "StridedSlice", host_inputs=(1, 2, 3))
        def infer_strided_slice(ctx, node):
            ...

        entry = registry.get("", "StridedSlice", version=1)
    """

    def __init__(self) -> None:
        # Exact version registrations: {(domain, op_type): {version: entry}}
        # Key 0 is used as wildcard (all versions)
        self._versioned: dict[tuple[str, str], dict[int, OpShapeInference]] = {}
        # Minimum version registrations: {(domain, op_type): [(min_version, entry), ...]}
        # Sorted by min_version descending for efficient lookup
        self._min_versioned: dict[tuple[str, str], list[tuple[int, OpShapeInference]]] = {}

    def register(
        self,
        domain: str,
        op_type: str,
        versions: range | int | None = None,
        *,
        host_inputs: Sequence[int] = (),
    ) -> Callable[[ShapeInferenceFunc], ShapeInferenceFunc]:
        """Register a shape inference function for an operator.

        Can be used as a decorator or called directly.

        Args:
            domain: Operator domain (``""`` for the default domain).
            op_type: Operator type (e.g., "StridedSlice").
            versions: Opset versions to register for. Can be:
                - None: Register for all versions (stored as version 0)
                - int: Register for this version and all versions above (minimum version)
                - range: Register for a specific range of versions
            host_inputs: Input positions that must be materialized to host memory
                for inference. Whoever drives inference must honor this.

        Returns:
            A decorator that registers the function.
        """

        def decorator(func: ShapeInferenceFunc) -> ShapeInferenceFunc:
            key = (domain, op_type)
            entry = OpShapeInference(func, tuple(host_inputs))

            if versions is None:
                # None means all versions - use 0 as a wildcard
                self._versioned.setdefault(key, {})[0] = entry
            elif isinstance(versions, int):
                # int means this version and above
                self._min_versioned.setdefault(key, []).append((versions, entry))
                self._min_versioned[key].sort(key=lambda x: x[0], reverse=True)
            else:
                # range - register for each version in range
                for version in versions:
                    self._versioned.setdefault(key, {})[version] = entry

            logger.debug(
                "Registered shape inference for %s::%s (versions=%s, host_inputs=%s)",
                domain or "default",
                op_type,
                versions,
                entry.host_inputs,
            )
            return func

        return decorator

    def get(
        self,
        domain: str,
        op_type: str,
        version: int,
    ) -> OpShapeInference | None:
        """Get the shape inference implementation for an operator.

        Args:
            domain: Operator domain.
            op_type: Operator type.
            version: Opset version to look up.

        Returns:
            The registered implementation, or None if not found.
            Falls back to the closest lower opset version if exact match not found.
        """
        key = (domain, op_type)

        # Check exact version registrations first
        if key in self._versioned:
            versions = self._versioned[key]

            # Check for wildcard (version 0)
            if 0 in versions:
                return versions[0]

            if version in versions:
                return versions[version]

            # Fallback to closest lower version
            available = sorted(v for v in versions if 0 < v <= version)
            if available:
                return versions[available[-1]]

        # Check minimum version registrations
        if key in self._min_versioned:
            # List is sorted by min_version descending, so first match is most specific
            for min_ver, entry in self._min_versioned[key]:
                if min_ver <= version:
                    return entry

        return None

    def host_inputs(self, domain: str, op_type: str, version: int) -> tuple[int, ...]:
        """Input positions the operator declares must be host-readable."""
        entry = self.get(domain, op_type, version)
        return entry.host_inputs if entry is not None else ()

    def has(self, domain: str, op_type: str) -> bool:
        """Check if any shape inference function is registered for an operator."""
        key = (domain, op_type)
        return key in self._versioned or key in self._min_versioned

    def clear(self) -> None:
        """Clear all registered functions."""
        self._versioned.clear()
        self._min_versioned.clear()


def create_default_registry() -> OpShapeInferenceRegistry:
    """Create a registry populated with the built-in operators."""
    from tensorshape.shape_inference import _ops

    registry = OpShapeInferenceRegistry()
    _ops.register_builtin_ops(registry)
    return registry
