# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Passes over the graph IR."""

from __future__ import annotations

__all__ = [
    "InPlacePass",
    "PassBase",
    "PassError",
    "PassResult",
    "PostconditionError",
    "PreconditionError",
    "ShapeInferencePass",
    "ShapeInferenceResult",
]

from tensorshape.passes._pass_infra import (
    InPlacePass,
    PassBase,
    PassError,
    PassResult,
    PostconditionError,
    PreconditionError,
)
from tensorshape.passes.shape_inference import ShapeInferencePass, ShapeInferenceResult


def __set_module() -> None:
    """Set the module of all functions in this module to this public module."""
    global_dict = globals()
    for name in __all__:
        global_dict[name].__module__ = __name__


__set_module()
