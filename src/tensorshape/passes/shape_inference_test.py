# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Tests for the shape inference pass."""

from __future__ import annotations

import unittest

import tensorshape as ts
from tensorshape.passes import PassResult, ShapeInferencePass, ShapeInferenceResult
from tensorshape.shape_inference import (
    GraphShapeInferenceError,
    MaterializationError,
    OpShapeInferenceRegistry,
    ShapeConflictError,
    UnsupportedMaskError,
    create_default_registry,
)
from tensorshape.shape_inference._ops._testing import FetchCounter, const_value, device_value

FLOAT = ts.DataType.FLOAT


def _strided_slice(data, begin, end, strides, name=None, **masks):
    params = [
        v if isinstance(v, ts.Value) else const_value(v, f"{name}_{label}")
        for v, label in ((begin, "begin"), (end, "end"), (strides, "strides"))
    ]
    return ts.Node("", "StridedSlice", [data, *params], masks, name=name)


class ShapeInferencePassTest(unittest.TestCase):
    def test_chained_slices_propagate_shapes(self):
        data = ts.Value(
            name="data", shape=ts.Shape([8, 6]), dtype=FLOAT, memory_format=ts.MemoryFormat.NCHW
        )
        first = _strided_slice(data, [2], [8], [2], name="first")
        second = _strided_slice(
            first.outputs[0], [0, 1], [0, 5], [1, 2], name="second", shrink_axis_mask=1
        )
        graph = ts.Graph([data], second.outputs, nodes=[first, second])

        result = ShapeInferencePass()(graph)

        self.assertIsInstance(result, ShapeInferenceResult)
        self.assertIs(result.graph, graph)
        self.assertTrue(result.modified)
        self.assertEqual(result.deferred, [])
        self.assertEqual(first.outputs[0].shape, [3, 6])
        self.assertEqual(second.outputs[0].shape, [2])
        self.assertEqual(second.outputs[0].dtype, FLOAT)
        self.assertEqual(second.outputs[0].memory_format, ts.MemoryFormat.NCHW)

    def test_second_run_is_not_modified(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        node = _strided_slice(data, [2], [8], [2])
        graph = ts.Graph([data], node.outputs, nodes=[node])

        first = ShapeInferencePass()(graph)
        second = ShapeInferencePass()(first)

        self.assertTrue(first.modified)
        self.assertFalse(second.modified)
        self.assertEqual(node.outputs[0].shape, [3])

    def test_unresolved_input_is_deferred(self):
        data = ts.Value(name="data", dtype=FLOAT)
        node = _strided_slice(data, [0], [1], [1])
        graph = ts.Graph([data], node.outputs, nodes=[node])

        result = ShapeInferencePass()(graph)

        self.assertEqual(result.deferred, [node])
        self.assertIsNone(node.outputs[0].shape)

        # Retry once the upstream shape is known
        data.shape = ts.Shape([4])
        result = ShapeInferencePass()(graph)
        self.assertEqual(result.deferred, [])
        self.assertEqual(node.outputs[0].shape, [1])

    def test_failure_aborts_graph_inference(self):
        data = ts.Value(name="data", shape=ts.Shape([4, 5]), dtype=FLOAT)
        bad = _strided_slice(data, [0], [1], [1], name="bad", ellipsis_mask=1)
        after = _strided_slice(bad.outputs[0], [0], [1], [1], name="after")
        graph = ts.Graph([data], after.outputs, nodes=[bad, after])

        with self.assertRaises(GraphShapeInferenceError) as cm:
            ShapeInferencePass()(graph)

        self.assertIs(cm.exception.node, bad)
        self.assertIsInstance(cm.exception.__cause__, UnsupportedMaskError)
        self.assertIn("'bad'", str(cm.exception))
        self.assertIsNone(bad.outputs[0].shape)
        self.assertIsNone(after.outputs[0].shape)

    def test_declared_host_inputs_are_materialized_once(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        begin, begin_fetch = device_value([1], "begin")
        end, end_fetch = device_value([9], "end")
        strides, strides_fetch = device_value([4], "strides")
        node = _strided_slice(data, begin, end, strides)
        graph = ts.Graph([data], node.outputs, nodes=[node])

        ShapeInferencePass()(graph)

        self.assertEqual(node.outputs[0].shape, [2])
        self.assertEqual((begin_fetch.calls, end_fetch.calls, strides_fetch.calls), (1, 1, 1))

    def test_unknown_ops_are_skipped(self):
        data = ts.Value(name="data", shape=ts.Shape([4]), dtype=FLOAT)
        node = ts.Node("", "Unknown", [data])
        graph = ts.Graph([data], node.outputs, nodes=[node])

        with self.assertLogs("tensorshape.passes.shape_inference", level="WARNING") as logs:
            result = ShapeInferencePass()(graph)

        self.assertFalse(result.modified)
        self.assertEqual(len(logs.records), 1)
        self.assertIsNone(node.outputs[0].shape)

    def test_custom_registry_is_used(self):
        registry = OpShapeInferenceRegistry()

        @registry.register("com.custom", "Identity")
        def infer_identity(ctx, node):
            ctx.set_shape_and_dtype(node.outputs[0], node.inputs[0].shape, node.inputs[0].dtype)
            return True

        data = ts.Value(name="data", shape=ts.Shape([4]), dtype=FLOAT)
        node = ts.Node("com.custom", "Identity", [data])
        graph = ts.Graph([data], node.outputs, nodes=[node], opset_imports={"com.custom": 1})

        result = ShapeInferencePass(registry=registry, warn_on_missing=False)(graph)

        self.assertTrue(result.modified)
        self.assertEqual(node.outputs[0].shape, [4])

    def test_strict_policy_rejects_conflicting_existing_shape(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        node = _strided_slice(data, [2], [8], [2])
        node.outputs[0].shape = ts.Shape([4])
        graph = ts.Graph([data], node.outputs, nodes=[node])

        with self.assertLogs("tensorshape.shape_inference", level="WARNING") as logs:
            with self.assertRaises(GraphShapeInferenceError) as cm:
                ShapeInferencePass(registry=create_default_registry(), policy="strict")(graph)

        self.assertIs(cm.exception.node, node)
        self.assertIsInstance(cm.exception.__cause__, ShapeConflictError)
        self.assertEqual(node.outputs[0].shape, [4])
        self.assertEqual(len(logs.records), 1)

    def test_failed_device_transfer_aborts_graph_inference(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        begin = ts.Value(
            name="begin",
            const_value=ts.DeviceTensor(
                FetchCounter([1, 2]), dtype=ts.DataType.INT32, shape=ts.Shape([1])
            ),
        )
        node = _strided_slice(data, begin, [9], [4], name="slice")
        graph = ts.Graph([data], node.outputs, nodes=[node])

        with self.assertRaises(GraphShapeInferenceError) as cm:
            ShapeInferencePass()(graph)

        self.assertIsInstance(cm.exception.__cause__, MaterializationError)
        self.assertIsNone(node.outputs[0].shape)

    def test_pass_accepts_previous_result(self):
        graph = ts.Graph([], [], nodes=[])
        result = ShapeInferencePass()(PassResult(graph, modified=False))
        self.assertIs(result.graph, graph)


if __name__ == "__main__":
    unittest.main()
