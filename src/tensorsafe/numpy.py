"""numpy adapter: convert arrays to and from tensorsafe views.

Example Usage:
    from tensorsafe.numpy import save_file, load_file

    save_file({"embedding": np.zeros((4, 8), dtype=np.float32)}, "model.tensorsafe")
    tensors = load_file("model.tensorsafe")
"""

import logging
from pathlib import Path
from typing import Any, Dict, Hashable, Mapping, Optional, Union

import ml_dtypes
import numpy as np

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import DuplicateTensorName, InvalidInput
from tensorsafe.reader import TensorReader
from tensorsafe.serializer import serialize, serialize_to_file
from tensorsafe.types import BytesLike, TensorView, normalize_name

logger = logging.getLogger(__name__)

_NUMPY_DTYPES: Dict[DType, np.dtype] = {
    DType.BOOL: np.dtype(np.bool_),
    DType.U8: np.dtype(np.uint8),
    DType.I8: np.dtype(np.int8),
    DType.U16: np.dtype(np.uint16),
    DType.I16: np.dtype(np.int16),
    DType.U32: np.dtype(np.uint32),
    DType.I32: np.dtype(np.int32),
    DType.U64: np.dtype(np.uint64),
    DType.I64: np.dtype(np.int64),
    DType.F16: np.dtype(np.float16),
    DType.F32: np.dtype(np.float32),
    DType.F64: np.dtype(np.float64),
    DType.BF16: np.dtype(ml_dtypes.bfloat16),
    DType.F8_E4M3: np.dtype(ml_dtypes.float8_e4m3fn),
    DType.F8_E5M2: np.dtype(ml_dtypes.float8_e5m2),
}
_FROM_NUMPY: Dict[np.dtype, DType] = {v: k for k, v in _NUMPY_DTYPES.items()}


def to_dtype(dtype: np.dtype) -> DType:
    """Convert a numpy dtype to the format's DType.

    Raises:
        InvalidInput: If the dtype is not supported
    """
    dtype = np.dtype(dtype)
    if dtype.byteorder == ">":
        dtype = dtype.newbyteorder("<")
    try:
        return _FROM_NUMPY[dtype]
    except KeyError:
        raise InvalidInput(f"Unsupported dtype: {dtype}") from None


def to_numpy_dtype(dtype: DType) -> np.dtype:
    """Convert the format's DType to a numpy dtype."""
    return _NUMPY_DTYPES[DType.from_tag(dtype)]


def _storage_key(array: np.ndarray) -> Hashable:
    # arrays sharing memory share the root of their base chain
    root: Any = array
    while getattr(root, "base", None) is not None:
        root = root.base
    return id(root)


def to_view(name: str, array: np.ndarray) -> TensorView:
    """Wrap a numpy array as a TensorView without copying it.

    Big-endian arrays are converted to little-endian first, which copies them.

    Args:
        name: Tensor name, used in error messages
        array: Array to wrap

    Raises:
        InvalidInput: If the array is unsupported or not C-contiguous
    """
    if not isinstance(array, np.ndarray):
        raise InvalidInput(
            f"Key `{name}` is invalid, expected numpy.ndarray but received "
            f"{type(array).__name__}"
        )
    if array.dtype == np.object_:
        raise InvalidInput(f"Tensor `{name}` has object dtype, which is not supported")
    try:
        dtype = to_dtype(array.dtype)
    except InvalidInput as e:
        raise InvalidInput(f"Tensor `{name}` has unsupported dtype: {e}") from e
    if not array.flags.c_contiguous:
        raise InvalidInput(
            f"You are trying to save a non contiguous tensor: `{name}` which is "
            "not allowed. Call `np.ascontiguousarray()` on it to pack it "
            "before saving."
        )

    storage_key = _storage_key(array)
    if array.dtype.byteorder == ">":
        array = array.astype(array.dtype.newbyteorder("<"))

    data = array.reshape(-1).view(np.uint8)
    return TensorView(
        dtype=dtype, shape=array.shape, data=memoryview(data), storage_key=storage_key
    )


def from_view(view: TensorView, copy: bool = True) -> np.ndarray:
    """Build a numpy array from a TensorView.

    Args:
        view: View to convert
        copy: Whether to copy the bytes (True) or return a read-only array
            over the view's buffer (False). A zero-copy array is only valid
            while the reader that produced the view is open.

    Returns:
        NumPy array with the view's dtype and shape
    """
    dtype = to_numpy_dtype(view.dtype)
    if view.nbytes == 0:
        return np.empty(view.shape, dtype=dtype)

    array = np.frombuffer(view.data, dtype=dtype).reshape(view.shape)
    if copy:
        return array.copy()
    return array


def _flatten(tensors: Mapping[Any, np.ndarray]) -> Dict[str, TensorView]:
    if not isinstance(tensors, Mapping):
        raise InvalidInput(
            "Expected a mapping of [str, numpy.ndarray] but received "
            f"{type(tensors).__name__}"
        )

    views: Dict[str, TensorView] = {}
    for key, array in tensors.items():
        name = normalize_name(key)
        if name in views:
            raise DuplicateTensorName(name)
        views[name] = to_view(name, array)
    return views


def save(
    tensors: Mapping[Any, np.ndarray], metadata: Optional[Mapping[str, str]] = None
) -> bytes:
    """Serialize numpy arrays into a container buffer.

    Args:
        tensors: Mapping of tensor name to array
        metadata: Optional flat string-to-string metadata

    Returns:
        The encoded container
    """
    return serialize(_flatten(tensors), metadata=metadata)


def save_file(
    tensors: Mapping[Any, np.ndarray],
    filename: Union[str, Path],
    metadata: Optional[Mapping[str, str]] = None,
    atomic: bool = True,
) -> None:
    """Serialize numpy arrays into a container file."""
    serialize_to_file(_flatten(tensors), filename, metadata=metadata, atomic=atomic)


def load(data: BytesLike) -> Dict[str, np.ndarray]:
    """Load every tensor of a container buffer as independent numpy arrays."""
    with TensorReader(data) as reader:
        return {name: from_view(view) for name, view in reader.items()}


def load_file(filename: Union[str, Path], use_mmap: bool = True) -> Dict[str, np.ndarray]:
    """Load every tensor of a container file as independent numpy arrays."""
    with TensorReader(filename, use_mmap=use_mmap) as reader:
        tensors = {name: from_view(view) for name, view in reader.items()}
    logger.debug(f"Loaded {len(tensors)} tensors from {filename}")
    return tensors
