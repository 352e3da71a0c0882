# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Core data structures for the graph IR.

The IR is intentionally small: values carry the shape, dtype and memory format
that shape inference reads and writes, nodes connect values, and a graph holds
nodes in topological order. Constant values can live on the host (:class:`Tensor`)
or on a compute device (:class:`DeviceTensor`), in which case they must be
materialized before their contents can be read.
"""

from __future__ import annotations

__all__ = [
    "Attributes",
    "DeviceTensor",
    "Graph",
    "Node",
    "Shape",
    "Tensor",
    "TypeAndShape",
    "Value",
]

import dataclasses
import operator
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, Union

import numpy as np

from tensorshape._enums import DataType, MemoryFormat


class Shape(Sequence[int]):
    """The shape of a tensor, as a sequence of non-negative extents.

    A shape compares equal to another :class:`Shape` or to any list or tuple of
    the same extents::

        >>> Shape([2, 3]) == [2, 3]
        True

    Shapes can be frozen to prevent accidental modification when they are
    shared, e.g. by a constant tensor.
    """

    __slots__ = ("_dims", "_frozen")

    def __init__(self, dims: Iterable[int], /, frozen: bool = False) -> None:
        self._dims: list[int] = [_normalize_dim(dim) for dim in dims]
        self._frozen = frozen

    @property
    def dims(self) -> tuple[int, ...]:
        """All extents of the shape."""
        return tuple(self._dims)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def rank(self) -> int:
        """The rank of the shape."""
        return len(self._dims)

    def numel(self) -> int:
        """The number of elements described by the shape."""
        return int(np.prod(self._dims, dtype=np.int64))

    def copy(self, frozen: bool = False) -> Shape:
        return Shape(self._dims, frozen=frozen)

    def __len__(self) -> int:
        return len(self._dims)

    def __iter__(self) -> Iterator[int]:
        return iter(self._dims)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return tuple(self._dims[index])
        return self._dims[index]

    def __setitem__(self, index: int, value: int) -> None:
        if self._frozen:
            raise TypeError("The shape is frozen and cannot be modified.")
        self._dims[index] = _normalize_dim(value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Shape):
            return self._dims == other._dims
        if isinstance(other, (list, tuple)):
            return self._dims == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._dims!r})"

    def __str__(self) -> str:
        return f"[{','.join(str(dim) for dim in self._dims)}]"


def _normalize_dim(dim: int) -> int:
    try:
        value = operator.index(dim)
    except TypeError:
        raise TypeError(f"Expected an integer extent, got {type(dim).__name__}: {dim!r}") from None
    if value < 0:
        raise ValueError(f"Extents must be non-negative, got {value}")
    return value


class Tensor:
    """A host-resident constant tensor backed by a numpy array.

    Attributes:
        name: Optional name of the tensor.
    """

    __slots__ = ("_array", "_dtype", "_shape", "name")

    def __init__(
        self,
        value: np.ndarray | Sequence[Any],
        dtype: DataType | None = None,
        *,
        name: str | None = None,
    ) -> None:
        array = np.asarray(value) if dtype is None else np.asarray(value, dtype=dtype.numpy())
        self._array = array
        self._dtype = DataType.from_numpy(array.dtype) if dtype is None else dtype
        self._shape = Shape(array.shape, frozen=True)
        self.name = name

    @property
    def dtype(self) -> DataType:
        return self._dtype

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def is_host_readable(self) -> bool:
        """Host tensors can always be read without a transfer."""
        return True

    def numpy(self) -> np.ndarray:
        """Return the backing numpy array without copying."""
        return self._array

    def tolist(self) -> Any:
        return self._array.tolist()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}<{self._dtype},{self._shape}>(name={self.name!r})"


class DeviceTensor:
    """A constant tensor whose contents live in compute-device memory.

    The contents are not host-readable. :meth:`fetch` performs a synchronous
    transfer by calling the ``fetch`` function given at construction and returns
    a freshly owned host :class:`Tensor`. The tensor itself never caches the
    transferred data.

    Example::

        def copy_from_gpu():
            return np.array([0, 1, 2], dtype=np.int32)

        tensor = DeviceTensor(copy_from_gpu, dtype=DataType.INT32, shape=Shape([3]))
        host = tensor.fetch()
    """

    __slots__ = ("_dtype", "_fetch", "_shape", "device_id", "name")

    def __init__(
        self,
        fetch: Callable[[], np.ndarray],
        *,
        dtype: DataType,
        shape: Shape | Sequence[int],
        device_id: int = 1,
        name: str | None = None,
    ) -> None:
        if device_id == 0:
            raise ValueError("Device id 0 is reserved for host memory")
        self._fetch = fetch
        self._dtype = dtype
        self._shape = Shape(shape, frozen=True)
        self.device_id = device_id
        self.name = name

    @property
    def dtype(self) -> DataType:
        return self._dtype

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def is_host_readable(self) -> bool:
        return False

    def fetch(self) -> Tensor:
        """Copy the contents to host memory.

        Raises:
            ValueError: If the transferred data does not match the declared shape.
        """
        array = np.asarray(self._fetch(), dtype=self._dtype.numpy())
        if array.shape != self._shape.dims:
            raise ValueError(
                f"Device tensor {self.name!r} declared shape {self._shape} "
                f"but the transfer produced {list(array.shape)}"
            )
        return Tensor(array, self._dtype, name=self.name)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}<{self._dtype},{self._shape}>"
            f"(name={self.name!r}, device_id={self.device_id})"
        )


TensorLike = Union[Tensor, DeviceTensor]


@dataclasses.dataclass
class TypeAndShape:
    """Type and shape of a value, used to describe expected values in tests and APIs."""

    dtype: DataType | None
    shape: Shape | None
    memory_format: MemoryFormat | None = None


class Value:
    """A tensor descriptor flowing through the graph.

    A value is either a graph input, the output of a :class:`Node`, or a constant
    (``const_value`` is set). Shape inference reads the shape, dtype and memory
    format of input values and writes them on output values.
    """

    __slots__ = (
        "_index",
        "_producer",
        "const_value",
        "dtype",
        "memory_format",
        "name",
        "shape",
    )

    def __init__(
        self,
        producer: Node | None = None,
        *,
        index: int | None = None,
        name: str | None = None,
        shape: Shape | None = None,
        dtype: DataType | None = None,
        memory_format: MemoryFormat | None = None,
        const_value: TensorLike | None = None,
    ) -> None:
        self._producer = producer
        self._index = index
        self.name = name
        self.shape = shape
        self.dtype = dtype
        self.memory_format = memory_format
        self.const_value = const_value
        if const_value is not None:
            if shape is None:
                self.shape = const_value.shape.copy()
            if dtype is None:
                self.dtype = const_value.dtype

    def producer(self) -> Node | None:
        """The node that produces this value, or None for graph inputs and constants."""
        return self._producer

    def index(self) -> int | None:
        """The output index of this value in its producer."""
        return self._index

    def __repr__(self) -> str:
        producer = self._producer.op_type if self._producer is not None else None
        return (
            f"{self.__class__.__name__}(name={self.name!r}, shape={self.shape!r}, "
            f"dtype={self.dtype!r}, memory_format={self.memory_format!r}, producer={producer})"
        )


class Attributes(dict):
    """Node attributes: a mapping from attribute name to plain Python value."""

    def get_int(self, name: str, default: int | None = None) -> int | None:
        """Get an integer attribute, or ``default`` when it is absent.

        Raises:
            TypeError: If the attribute is present but not an integer.
        """
        if name not in self:
            return default
        value = self[name]
        if isinstance(value, bool):
            raise TypeError(f"Attribute {name!r} must be an integer, got bool")
        try:
            return operator.index(value)
        except TypeError:
            raise TypeError(
                f"Attribute {name!r} must be an integer, got {type(value).__name__}"
            ) from None


class Node:
    """An operator instance.

    Creating a node creates its output values unless ``outputs`` is provided, in
    which case the given values are adopted as the node's outputs.
    """

    __slots__ = ("_inputs", "_outputs", "attributes", "domain", "name", "op_type")

    def __init__(
        self,
        domain: str,
        op_type: str,
        inputs: Iterable[Value | None],
        attributes: Mapping[str, Any] | None = None,
        *,
        num_outputs: int | None = None,
        outputs: Sequence[Value] | None = None,
        name: str | None = None,
    ) -> None:
        if outputs is not None and num_outputs is not None and len(outputs) != num_outputs:
            raise ValueError(
                f"num_outputs ({num_outputs}) does not match the number of outputs ({len(outputs)})"
            )
        self.domain = domain
        self.op_type = op_type
        self.name = name
        self._inputs: tuple[Value | None, ...] = tuple(inputs)
        self.attributes = Attributes(attributes or {})
        if outputs is None:
            outputs = [Value() for _ in range(1 if num_outputs is None else num_outputs)]
        for i, output in enumerate(outputs):
            output._producer = self
            output._index = i
        self._outputs: tuple[Value, ...] = tuple(outputs)

    @property
    def inputs(self) -> Sequence[Value | None]:
        return self._inputs

    @property
    def outputs(self) -> Sequence[Value]:
        return self._outputs

    def __repr__(self) -> str:
        op_id = f"{self.domain}::{self.op_type}" if self.domain else self.op_type
        return f"{self.__class__.__name__}({op_id}, name={self.name!r})"


class Graph:
    """A computation graph with nodes stored in topological order.

    Attributes:
        opset_imports: Mapping from domain to opset version (e.g. ``{"": 1}``).
    """

    def __init__(
        self,
        inputs: Sequence[Value],
        outputs: Sequence[Value],
        *,
        nodes: Iterable[Node],
        opset_imports: Mapping[str, int] | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name
        self.inputs = list(inputs)
        self.outputs = list(outputs)
        self._nodes: list[Node] = list(nodes)
        self.opset_imports: dict[str, int] = dict(opset_imports or {"": 1})

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, len={len(self._nodes)})"
