# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for StridedSlice shape inference."""

from __future__ import annotations

import unittest

import numpy as np
import parameterized

import tensorshape as ts
from tensorshape.shape_inference import (
    InvalidOpUsageError,
    MalformedSliceSpecError,
    RankUnresolved,
    ShapeInferenceContext,
    ShapeInferenceFailure,
    UnsupportedMaskError,
    UnsupportedRankError,
    ZeroStrideError,
)
from tensorshape.shape_inference._ops import _strided_slice
from tensorshape.shape_inference._ops._testing import (
    const_value,
    device_value,
    run_shape_inference_with_values,
    type_shape,
)

FLOAT = ts.DataType.FLOAT


class ComputeStridedSliceShapeTest(unittest.TestCase):
    @parameterized.parameterized.expand(
        [
            ("step_2", [10], [2], [8], [2], {}, [3]),
            ("negative_indices", [10], [-3], [-1], [1], {}, [2]),
            ("shrink_first_axis", [4, 5], [0], [0], [1], {"shrink_axis_mask": 1}, [5]),
            ("negative_stride", [6], [5], [1], [-1], {}, [4]),
            ("reverse_to_start", [5], [2], [-6], [-1], {}, [3]),
            ("pass_through_axes", [2, 3, 4], [0], [1], [1], {}, [1, 3, 4]),
            ("begin_mask", [10], [7], [10], [1], {"begin_mask": 1}, [10]),
            ("end_mask", [10], [2], [0], [1], {"end_mask": 1}, [8]),
            ("giant_end", [3, 2], [0, 0], [3, 2147483647], [1, 1], {}, [3, 2]),
            ("begin_below_range", [5], [-100], [5], [1], {}, [5]),
            ("stride_larger_than_range", [10], [0], [10], [20], {}, [1]),
            (
                "rank_4",
                [1, 3, 8, 8],
                [0, 0, 2, 2],
                [1, 3, 6, 6],
                [1, 1, 2, 2],
                {},
                [1, 3, 2, 2],
            ),
            (
                "shrink_middle_axis",
                [2, 3, 4],
                [0, 1, 0],
                [2, 2, 4],
                [1, 1, 2],
                {"shrink_axis_mask": 2},
                [2, 2],
            ),
            ("shrink_all_axes", [4, 5], [1, 2], [2, 3], [1, 1], {"shrink_axis_mask": 3}, []),
            ("shrink_negative_begin", [4, 5], [-1], [0], [1], {"shrink_axis_mask": 1}, [5]),
            ("mask_bits_beyond_axes", [4, 5], [1], [3], [1], {"shrink_axis_mask": 2}, [2, 5]),
            ("empty_slice_spec", [4, 5], [], [], [], {}, [4, 5]),
            ("empty_input_axis", [0, 3], [0], [0], [1], {}, [0, 3]),
            ("empty_input_axis_reversed", [3, 0], [0, 2], [3, -1], [1, -1], {}, [3, 0]),
        ]
    )
    def test_strided_slice(self, _name, shape, begin, end, strides, masks, expected_shape):
        actual = _strided_slice.compute_strided_slice_shape(shape, begin, end, strides, **masks)
        self.assertEqual(actual, expected_shape)

    def test_reversed_range_with_positive_stride_collapses_to_one_element(self):
        actual = _strided_slice.compute_strided_slice_shape([6], [5], [1], [1])
        self.assertEqual(actual, [1])

    def test_rank_5_is_unsupported(self):
        with self.assertRaises(UnsupportedRankError):
            _strided_slice.compute_strided_slice_shape([1, 1, 1, 1, 1], [0], [1], [1])

    @parameterized.parameterized.expand([("unknown", None), ("rank_0", [])])
    def test_unresolved_rank_is_deferred(self, _name, shape):
        with self.assertRaises(RankUnresolved):
            _strided_slice.compute_strided_slice_shape(shape, [], [], [])

    def test_rank_unresolved_is_not_a_failure(self):
        self.assertFalse(issubclass(RankUnresolved, ShapeInferenceFailure))

    @parameterized.parameterized.expand(
        [
            ("ellipsis_axis_0", {"ellipsis_mask": 1}, 0),
            ("ellipsis_axis_1", {"ellipsis_mask": 2}, 1),
            ("new_axis", {"new_axis_mask": 4}, 2),
        ]
    )
    def test_unsupported_masks(self, _name, masks, axis):
        with self.assertRaises(UnsupportedMaskError) as cm:
            _strided_slice.compute_strided_slice_shape([4, 5], [0, 0], [4, 5], [1, 1], **masks)
        self.assertEqual(cm.exception.axis, axis)

    def test_parameter_lengths_must_match(self):
        with self.assertRaises(MalformedSliceSpecError):
            _strided_slice.compute_strided_slice_shape([4, 5], [0, 0], [4], [1, 1])

    def test_slice_cannot_cover_more_axes_than_input(self):
        with self.assertRaises(MalformedSliceSpecError):
            _strided_slice.compute_strided_slice_shape([4], [0, 0], [4, 4], [1, 1])

    def test_zero_stride_names_axis(self):
        with self.assertRaises(ZeroStrideError) as cm:
            _strided_slice.compute_strided_slice_shape([4, 5], [0, 0], [4, 5], [1, 0])
        self.assertEqual(cm.exception.axis, 1)
        self.assertIn("axis 1", str(cm.exception))

    def test_zero_stride_on_shrunk_axis_is_rejected(self):
        with self.assertRaises(ZeroStrideError):
            _strided_slice.compute_strided_slice_shape(
                [4, 5], [0], [1], [0], shrink_axis_mask=1
            )


class DecodeMasksTest(unittest.TestCase):
    def test_decodes_one_flag_per_axis(self):
        flags = _strided_slice.decode_masks(
            3, begin_mask=0b101, end_mask=0b010, shrink_axis_mask=0b100
        )
        self.assertEqual(
            flags,
            [
                _strided_slice.AxisFlags(begin_default=True),
                _strided_slice.AxisFlags(end_default=True),
                _strided_slice.AxisFlags(begin_default=True, shrink=True),
            ],
        )

    def test_zero_axes(self):
        self.assertEqual(_strided_slice.decode_masks(0, begin_mask=1), [])

    def test_nonzero_ellipsis_mask_is_rejected_beyond_axis_count(self):
        with self.assertRaises(UnsupportedMaskError):
            _strided_slice.decode_masks(1, ellipsis_mask=8)


class NormalizeAxisTest(unittest.TestCase):
    def test_in_range_values_are_unchanged(self):
        actual = _strided_slice.normalize_axis(0, 10, 2, 8, 2, _strided_slice.AxisFlags())
        self.assertEqual(actual, _strided_slice.NormalizedRange(2, 8, 2))
        self.assertEqual(actual.extent(), 3)

    def test_end_equal_to_extent_is_kept(self):
        actual = _strided_slice.normalize_axis(0, 10, 0, 10, 1, _strided_slice.AxisFlags())
        self.assertEqual((actual.begin, actual.end), (0, 10))

    def test_begin_is_clamped_to_last_index(self):
        actual = _strided_slice.normalize_axis(0, 10, 15, 20, 1, _strided_slice.AxisFlags())
        self.assertEqual((actual.begin, actual.end), (9, 10))

    def test_masks_ignore_raw_values(self):
        flags = _strided_slice.AxisFlags(begin_default=True, end_default=True)
        actual = _strided_slice.normalize_axis(0, 7, 5, -3, 1, flags)
        self.assertEqual((actual.begin, actual.end), (0, 7))

    def test_negative_stride_is_flipped_after_swap(self):
        actual = _strided_slice.normalize_axis(0, 6, 5, 1, -1, _strided_slice.AxisFlags())
        self.assertEqual(actual, _strided_slice.NormalizedRange(1, 5, 1))
        self.assertFalse(actual.collapsed)

    def test_reversed_range_with_positive_stride_is_collapsed(self):
        actual = _strided_slice.normalize_axis(0, 6, 5, 1, 2, _strided_slice.AxisFlags())
        self.assertEqual(actual, _strided_slice.NormalizedRange(5, 5, 2, collapsed=True))
        self.assertEqual(actual.extent(), 1)

    def test_shrink_forces_unit_stride(self):
        flags = _strided_slice.AxisFlags(shrink=True)
        actual = _strided_slice.normalize_axis(0, 6, 2, 3, 4, flags)
        self.assertEqual(actual.stride, 1)

    def test_empty_range_reports_one_element(self):
        actual = _strided_slice.normalize_axis(0, 6, 3, 3, 1, _strided_slice.AxisFlags())
        self.assertTrue(actual.selects_nothing)
        self.assertEqual(actual.extent(), 1)

    def test_reversed_range_past_first_element_starts_before_zero(self):
        actual = _strided_slice.normalize_axis(0, 5, 2, -6, -1, _strided_slice.AxisFlags())
        self.assertEqual(actual, _strided_slice.NormalizedRange(-1, 2, 1))
        self.assertEqual(actual.extent(), 3)

    def test_empty_axis_reports_no_elements(self):
        actual = _strided_slice.normalize_axis(0, 0, 0, 0, 1, _strided_slice.AxisFlags())
        self.assertTrue(actual.empty_axis)
        self.assertEqual(actual.extent(), 0)

    def test_zero_stride_on_empty_axis_is_rejected(self):
        with self.assertRaises(ZeroStrideError):
            _strided_slice.normalize_axis(0, 0, 0, 0, 0, _strided_slice.AxisFlags())


class InferStridedSliceTest(unittest.TestCase):
    def _run(self, data, begin, end, strides, attributes=None, ctx=None):
        inputs = [data]
        for values, name in ((begin, "begin"), (end, "end"), (strides, "strides")):
            inputs.append(values if isinstance(values, ts.Value) else const_value(values, name))
        return run_shape_inference_with_values(
            "", "StridedSlice", inputs, attributes, ctx=ctx
        )

    def test_dtype_and_memory_format_are_propagated(self):
        data = ts.Value(
            name="data",
            shape=ts.Shape([4, 5]),
            dtype=FLOAT,
            memory_format=ts.MemoryFormat.NHWC,
        )
        actual = self._run(data, [0], [0], [1], {"shrink_axis_mask": 1})
        self.assertEqual(actual, [type_shape(FLOAT, [5], ts.MemoryFormat.NHWC)])

    def test_masks_are_read_from_attributes(self):
        data = ts.Value(name="data", shape=ts.Shape([10, 3]), dtype=FLOAT)
        actual = self._run(data, [4, 0], [0, 0], [1, 1], {"end_mask": 3})
        self.assertEqual(actual[0].shape, [6, 3])

    def test_missing_input_shape_propagates_dtype_only(self):
        data = ts.Value(name="data", dtype=FLOAT)
        actual = self._run(data, [0], [5], [1])
        self.assertEqual(actual, [type_shape(FLOAT)])

    def test_rank_0_input_is_deferred(self):
        data = ts.Value(name="data", shape=ts.Shape([]), dtype=FLOAT)
        node = ts.Node(
            "",
            "StridedSlice",
            [data, const_value([0]), const_value([1]), const_value([1])],
        )
        inferred = _strided_slice.infer_strided_slice(ShapeInferenceContext(), node)
        self.assertFalse(inferred)
        self.assertIsNone(node.outputs[0].shape)

    def test_non_constant_parameters_are_deferred(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        begin = ts.Value(name="begin", shape=ts.Shape([1]), dtype=ts.DataType.INT32)
        actual = self._run(data, begin, [5], [1])
        self.assertIsNone(actual[0].shape)
        self.assertEqual(actual[0].dtype, FLOAT)

    def test_device_parameters_are_materialized_once(self):
        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        begin, begin_fetch = device_value([2], "begin")
        end, end_fetch = device_value([8], "end")
        strides, strides_fetch = device_value([2], "strides")
        actual = self._run(data, begin, end, strides)
        self.assertEqual(actual[0].shape, [3])
        self.assertEqual(
            (begin_fetch.calls, end_fetch.calls, strides_fetch.calls), (1, 1, 1)
        )

    def test_host_parameters_are_not_copied(self):
        class FailingMaterializer:
            def materialize(self, tensor):
                raise AssertionError(f"Unexpected transfer of {tensor}")

        data = ts.Value(name="data", shape=ts.Shape([10]), dtype=FLOAT)
        ctx = ShapeInferenceContext(materializer=FailingMaterializer())
        actual = self._run(data, [2], [8], [2], ctx=ctx)
        self.assertEqual(actual[0].shape, [3])

    def test_parameters_must_be_1d(self):
        data = ts.Value(name="data", shape=ts.Shape([4, 5]), dtype=FLOAT)
        begin = ts.Value(
            name="begin", const_value=ts.Tensor(np.zeros((1, 2), dtype=np.int32))
        )
        with self.assertRaises(MalformedSliceSpecError):
            self._run(data, begin, [4, 5], [1, 1])

    def test_float_parameters_are_rejected(self):
        data = ts.Value(name="data", shape=ts.Shape([4]), dtype=FLOAT)
        begin = ts.Value(name="begin", const_value=ts.Tensor(np.array([0.5], dtype=np.float32)))
        with self.assertRaises(InvalidOpUsageError):
            self._run(data, begin, [4], [1])

    def test_non_integer_mask_is_rejected(self):
        data = ts.Value(name="data", shape=ts.Shape([4]), dtype=FLOAT)
        with self.assertRaises(InvalidOpUsageError):
            self._run(data, [0], [4], [1], {"begin_mask": "1"})

    def test_missing_input_is_rejected(self):
        data = ts.Value(name="data", shape=ts.Shape([4]), dtype=FLOAT)
        with self.assertRaises(InvalidOpUsageError):
            run_shape_inference_with_values(
                "", "StridedSlice", [data, const_value([0]), const_value([4])]
            )

    def test_none_input_is_rejected(self):
        with self.assertRaises(InvalidOpUsageError):
            run_shape_inference_with_values(
                "",
                "StridedSlice",
                [None, const_value([0]), const_value([4]), const_value([1])],
            )

    def test_rank_5_input_is_rejected_without_partial_shape(self):
        data = ts.Value(name="data", shape=ts.Shape([1, 1, 1, 1, 1]), dtype=FLOAT)
        node = ts.Node(
            "",
            "StridedSlice",
            [data, const_value([0]), const_value([1]), const_value([1])],
        )
        with self.assertRaises(UnsupportedRankError):
            _strided_slice.infer_strided_slice(ShapeInferenceContext(), node)
        self.assertIsNone(node.outputs[0].shape)


if __name__ == "__main__":
    unittest.main()
