"""Type definitions shared by the tensorsafe engine."""

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Hashable, Mapping, Optional, Tuple, Union

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import InvalidInput, ShapeMismatch

# Type aliases
ShapeType = Tuple[int, ...]
MetadataDict = Dict[str, str]
BytesLike = Union[bytes, bytearray, memoryview]

METADATA_KEY = "__metadata__"


def normalize_name(key: Any) -> str:
    """Normalize a tensor key to its canonical string form.

    ``str`` keys (and subclasses) are kept by content, ``bytes`` are decoded
    as UTF-8 and enum members are named by their ``name``.

    Raises:
        InvalidInput: If the key has no canonical string form
    """
    if isinstance(key, str):
        return str.__str__(key)
    if isinstance(key, Enum):
        return key.name
    if isinstance(key, bytes):
        try:
            return key.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInput(f"Tensor name {key!r} is not valid UTF-8: {e}") from e
    raise InvalidInput(
        f"Tensor names must be strings, received {type(key).__name__}: {key!r}"
    )


@dataclass(frozen=True)
class TensorInfo:
    """Layout of one tensor in a container header."""

    dtype: DType
    shape: ShapeType
    data_offsets: Tuple[int, int]  # (start, end) relative to the data region

    @property
    def num_elements(self) -> int:
        return math.prod(self.shape)

    @property
    def byte_size(self) -> int:
        """Number of bytes between the two data offsets."""
        return self.data_offsets[1] - self.data_offsets[0]

    @property
    def expected_byte_size(self) -> int:
        """Number of bytes implied by dtype and shape."""
        return self.num_elements * self.dtype.itemsize

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary stored in the header.

        Returns:
            Dictionary representation
        """
        return {
            "dtype": self.dtype.tag,
            "shape": list(self.shape),
            "data_offsets": list(self.data_offsets),
        }


@dataclass(frozen=True)
class Header:
    """Decoded container header: tensor layouts plus optional metadata."""

    tensors: Mapping[str, TensorInfo]
    metadata: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        # read-only snapshots, so a decoded header cannot be edited afterwards
        object.__setattr__(self, "tensors", MappingProxyType(dict(self.tensors)))
        if self.metadata is not None:
            object.__setattr__(
                self, "metadata", MappingProxyType(dict(self.metadata))
            )

    def sorted_items(self):
        """Tensor entries in storage order (ascending start offset)."""
        return sorted(
            self.tensors.items(), key=lambda item: (item[1].data_offsets, item[0])
        )


@dataclass(frozen=True, eq=False)
class TensorView:
    """Framework-agnostic reference to a tensor's dtype, shape and bytes.

    A view borrows its bytes; it never copies them unless :meth:`tobytes` is
    called. ``storage_key`` identifies the allocation the bytes come from and
    is what the shared-storage guard groups on. When it is not supplied the
    object exporting the buffer is used, except for immutable ``bytes``,
    which never alias another view.

    Views returned by a reader are only valid while that reader is open.
    """

    dtype: DType
    shape: ShapeType
    data: memoryview
    storage_key: Optional[Hashable] = field(default=None)

    def __post_init__(self) -> None:
        dtype = DType.from_tag(self.dtype)
        shape = tuple(self.shape)
        for dim in shape:
            if isinstance(dim, bool) or not isinstance(dim, int) or dim < 0:
                raise InvalidInput(
                    f"Shape must contain non-negative integers, got {list(shape)}"
                )

        try:
            view = memoryview(self.data)
        except TypeError as e:
            raise InvalidInput(
                f"TensorView data must support the buffer protocol: {e}"
            ) from e
        if not view.contiguous:
            raise InvalidInput("TensorView data must be a contiguous buffer")
        if view.format != "B" or view.ndim != 1:
            try:
                view = view.cast("B")
            except (TypeError, ValueError) as e:
                raise InvalidInput(f"Cannot view tensor data as bytes: {e}") from e
        if view.nbytes != math.prod(shape) * dtype.itemsize:
            raise ShapeMismatch(
                f"Buffer of {view.nbytes} bytes does not match dtype {dtype.tag} "
                f"with shape {list(shape)} "
                f"({math.prod(shape) * dtype.itemsize} bytes expected)"
            )
        if not view.readonly:
            view = view.toreadonly()

        storage_key = self.storage_key
        if storage_key is None:
            # the interpreter may share equal bytes objects between unrelated
            # values, so immutable bytes are never grouped with each other
            if isinstance(view.obj, bytes):
                storage_key = ("view", id(view))
            else:
                storage_key = id(view.obj)

        object.__setattr__(self, "dtype", dtype)
        object.__setattr__(self, "shape", shape)
        object.__setattr__(self, "data", view)
        object.__setattr__(self, "storage_key", storage_key)

    @property
    def nbytes(self) -> int:
        return self.data.nbytes

    def is_contiguous(self) -> bool:
        return self.data.contiguous

    def byte_view(self) -> memoryview:
        """Read-only view over the tensor's bytes."""
        return self.data

    def tobytes(self) -> bytes:
        """Materialize an owned copy of the tensor's bytes."""
        return self.data.tobytes()

    def __repr__(self) -> str:
        return (
            f"TensorView(dtype={self.dtype.tag}, shape={list(self.shape)}, "
            f"nbytes={self.nbytes})"
        )
