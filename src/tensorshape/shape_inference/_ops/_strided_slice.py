# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Shape inference for StridedSlice operator.

StridedSlice takes four inputs ``(input, begin, end, strides)`` and five integer
bit-mask attributes. Bit ``i`` of a mask applies to axis ``i``:

* ``begin_mask``: ignore ``begin[i]`` and start at 0.
* ``end_mask``: ignore ``end[i]`` and stop at the extent of the axis.
* ``shrink_axis_mask``: take exactly one element and remove the axis.
* ``ellipsis_mask`` / ``new_axis_mask``: not supported.

Axes beyond ``len(begin)`` are passed through unchanged. Inputs of rank 1 to 4
are supported.
"""

from __future__ import annotations

__all__ = [
    "AxisFlags",
    "NormalizedRange",
    "assemble_output_shape",
    "compute_strided_slice_shape",
    "decode_masks",
    "infer_strided_slice",
    "normalize_axis",
]

import dataclasses
import logging
from collections.abc import Sequence

import tensorshape as ts
from tensorshape.shape_inference import _context, _errors

logger = logging.getLogger(__name__)

MAX_RANK = 4

_MASK_ATTRIBUTES = (
    "begin_mask",
    "end_mask",
    "shrink_axis_mask",
    "ellipsis_mask",
    "new_axis_mask",
)


@dataclasses.dataclass(frozen=True)
class AxisFlags:
    """Slicing modifiers of one axis, decoded from the bit masks."""

    begin_default: bool = False
    end_default: bool = False
    shrink: bool = False


@dataclasses.dataclass(frozen=True)
class NormalizedRange:
    """The resolved range of one sliced axis.

    ``begin`` and ``end`` are offsets in ``[0, extent]``, except that a
    reversed range running past the first element is swapped into
    ``begin == -1``.

    Attributes:
        begin: First offset visited.
        end: Exclusive end offset.
        stride: Step between visited offsets, never zero.
        collapsed: True if a reversed range with a non-negative stride was
            collapsed to a single element.
        empty_axis: True if the input axis has no elements.
    """

    begin: int
    end: int
    stride: int
    collapsed: bool = False
    empty_axis: bool = False

    @property
    def selects_nothing(self) -> bool:
        """Whether stepping from begin towards end by stride visits no offset."""
        return self.begin == self.end or self.stride < 0

    def extent(self) -> int:
        """Number of elements along the axis in the output.

        A range over a non-empty axis that selects nothing still reports one
        element. A range over an empty axis reports none.
        """
        if self.empty_axis:
            return 0
        return max(1, (self.end - self.begin - 1) // self.stride + 1)


def _lowest_set_bit(mask: int) -> int:
    return (mask & -mask).bit_length() - 1


def decode_masks(
    num_axes: int,
    *,
    begin_mask: int = 0,
    end_mask: int = 0,
    shrink_axis_mask: int = 0,
    ellipsis_mask: int = 0,
    new_axis_mask: int = 0,
) -> list[AxisFlags]:
    """Decode the bit masks into per-axis flags for the first ``num_axes`` axes.

    Raises:
        UnsupportedMaskError: If ``ellipsis_mask`` or ``new_axis_mask`` is nonzero.
    """
    for name, mask in (("ellipsis_mask", ellipsis_mask), ("new_axis_mask", new_axis_mask)):
        if mask != 0:
            raise _errors.UnsupportedMaskError(
                f"{name}={mask} is not supported", axis=_lowest_set_bit(mask)
            )
    return [
        AxisFlags(
            begin_default=bool(begin_mask & (1 << i)),
            end_default=bool(end_mask & (1 << i)),
            shrink=bool(shrink_axis_mask & (1 << i)),
        )
        for i in range(num_axes)
    ]


def _clamp_index(index: int, extent: int, exclusive: bool) -> int:
    """Clamp a possibly negative index to the axis and make it non-negative.

    Begin offsets (``exclusive=False``) are clamped to ``[-extent, extent - 1]``.
    End offsets (``exclusive=True``) are clamped to ``[-extent - 1, extent]``.
    """
    max_index = extent - 1
    min_index = -extent
    if exclusive:
        max_index += 1
        min_index -= 1
    index = min(index, max_index)
    index = max(index, min_index)
    if index < 0:
        index += extent
    return index


def normalize_axis(
    axis: int,
    extent: int,
    begin: int,
    end: int,
    stride: int,
    flags: AxisFlags,
) -> NormalizedRange:
    """Resolve the begin, end and stride of one axis.

    Args:
        axis: Index of the axis, used in error messages.
        extent: Extent of the axis in the input.
        begin: Raw begin value, possibly negative.
        end: Raw end value, possibly negative.
        stride: Raw stride value.
        flags: The decoded mask flags of the axis.

    Returns:
        The normalized range.

    Raises:
        ZeroStrideError: If ``stride`` is zero.
    """
    if stride == 0:
        raise _errors.ZeroStrideError(axis)
    if extent == 0:
        return NormalizedRange(0, 0, 1 if flags.shrink else stride, empty_axis=True)

    begin = 0 if flags.begin_default else _clamp_index(begin, extent, exclusive=False)
    end = extent if flags.end_default else _clamp_index(end, extent, exclusive=True)
    if flags.shrink:
        stride = 1

    collapsed = False
    if end < begin:
        begin, end = end, begin
        if stride < 0:
            stride = -stride
        else:
            # Some exported models rely on a reversed range with a positive
            # stride producing a single element.
            begin = end
            collapsed = True
            logger.debug(
                "Reversed range on axis %d with non-negative stride %d collapsed to one element",
                axis,
                stride,
            )

    normalized = NormalizedRange(begin, end, stride, collapsed)
    if not collapsed and not flags.shrink and normalized.selects_nothing:
        logger.debug(
            "Range [%d, %d) with stride %d on axis %d selects no elements; using extent 1",
            begin,
            end,
            stride,
            axis,
        )
    return normalized


def assemble_output_shape(
    input_shape: Sequence[int],
    ranges: Sequence[NormalizedRange],
    flags: Sequence[AxisFlags],
) -> ts.Shape:
    """Build the output shape from the sliced axes and the pass-through axes.

    Shrunk axes are dropped. Axes from ``len(ranges)`` on keep their input extent.
    """
    dims = [
        axis_range.extent()
        for axis_range, axis_flags in zip(ranges, flags)
        if not axis_flags.shrink
    ]
    dims.extend(input_shape[len(ranges) :])
    return ts.Shape(dims)


def _check_input_rank(input_shape: Sequence[int] | None) -> int:
    if input_shape is None or len(input_shape) == 0:
        raise _errors.RankUnresolved("The input rank is not known yet")
    rank = len(input_shape)
    if rank > MAX_RANK:
        raise _errors.UnsupportedRankError(
            f"StridedSlice supports inputs of rank 1 to {MAX_RANK}, got rank {rank}"
        )
    return rank


def compute_strided_slice_shape(
    input_shape: Sequence[int] | None,
    begin: Sequence[int],
    end: Sequence[int],
    strides: Sequence[int],
    *,
    begin_mask: int = 0,
    end_mask: int = 0,
    shrink_axis_mask: int = 0,
    ellipsis_mask: int = 0,
    new_axis_mask: int = 0,
) -> ts.Shape:
    """Compute the output shape of a strided slice.

    Example::

        >>> compute_strided_slice_shape([10], [2], [8], [2])
        Shape([3])

    Args:
        input_shape: Extents of the input, or None if unknown.
        begin: Begin offset per sliced axis.
        end: Exclusive end offset per sliced axis.
        strides: Stride per sliced axis.
        begin_mask: Bit ``i`` set means axis ``i`` starts at 0.
        end_mask: Bit ``i`` set means axis ``i`` ends at its extent.
        shrink_axis_mask: Bit ``i`` set means axis ``i`` is removed.
        ellipsis_mask: Must be 0.
        new_axis_mask: Must be 0.

    Returns:
        The output shape.

    Raises:
        RankUnresolved: If the input rank is unknown or 0.
        UnsupportedRankError: If the input rank is greater than 4.
        MalformedSliceSpecError: If begin, end and strides differ in length or
            are longer than the input rank.
        UnsupportedMaskError: If an ellipsis or new-axis mask is set.
        ZeroStrideError: If a stride is zero.
    """
    rank = _check_input_rank(input_shape)
    assert input_shape is not None

    if not len(begin) == len(end) == len(strides):
        raise _errors.MalformedSliceSpecError(
            f"begin, end and strides must have the same length, got "
            f"{len(begin)}, {len(end)} and {len(strides)}"
        )
    num_axes = len(begin)
    if num_axes > rank:
        raise _errors.MalformedSliceSpecError(
            f"Slice covers {num_axes} axes but the input has rank {rank}"
        )

    flags = decode_masks(
        num_axes,
        begin_mask=begin_mask,
        end_mask=end_mask,
        shrink_axis_mask=shrink_axis_mask,
        ellipsis_mask=ellipsis_mask,
        new_axis_mask=new_axis_mask,
    )
    ranges = [
        normalize_axis(i, input_shape[i], begin[i], end[i], strides[i], flags[i])
        for i in range(num_axes)
    ]
    return assemble_output_shape(input_shape, ranges, flags)


def _read_slice_parameter(
    ctx: _context.ShapeInferenceContext, value: ts.Value, name: str
) -> list[int] | None:
    const = value.const_value
    if const is not None and const.shape.rank() != 1:
        raise _errors.MalformedSliceSpecError(
            f"{name} must be a 1-D tensor, got rank {const.shape.rank()}"
        )
    return ctx.read_host_ints(value)


def _read_masks(node: ts.Node) -> dict[str, int]:
    masks = {}
    for name in _MASK_ATTRIBUTES:
        try:
            masks[name] = node.attributes.get_int(name, 0)
        except TypeError as e:
            raise _errors.InvalidOpUsageError(str(e)) from e
    return masks


def infer_strided_slice(ctx: _context.ShapeInferenceContext, node: ts.Node) -> bool:
    """Infer shape, dtype and memory format for StridedSlice operator.

    The output dtype and memory format are copied from the input.

    Returns:
        True if the output shape was inferred, False if inference was deferred
        because the input rank or the slice parameters are not known yet.
    """
    (data, begin, end, strides) = _context.check_inputs(
        node, "input", "begin", "end", "strides"
    )
    if len(node.outputs) < 1:
        raise _errors.InvalidOpUsageError("StridedSlice must have an output")
    output = node.outputs[0]

    try:
        _check_input_rank(data.shape)
    except _errors.RankUnresolved:
        logger.debug("Deferring StridedSlice %r: input rank unresolved", node.name)
        ctx.set_shape_and_dtype(output, None, data.dtype, data.memory_format)
        return False

    begin_ints = _read_slice_parameter(ctx, begin, "begin")
    end_ints = _read_slice_parameter(ctx, end, "end")
    strides_ints = _read_slice_parameter(ctx, strides, "strides")
    if begin_ints is None or end_ints is None or strides_ints is None:
        logger.debug("Deferring StridedSlice %r: slice parameters are not constant", node.name)
        ctx.set_shape_and_dtype(output, None, data.dtype, data.memory_format)
        return False

    output_shape = compute_strided_slice_shape(
        data.shape, begin_ints, end_ints, strides_ints, **_read_masks(node)
    )
    ctx.set_shape_and_dtype(output, output_shape, data.dtype, data.memory_format)
    return True
