"""PyTorch adapter for tensorsafe containers."""

import logging
from pathlib import Path
from typing import Any, Dict, Hashable, Mapping, Optional, Union

try:
    import torch

    TORCH_AVAILABLE = True
except ImportError:
    TORCH_AVAILABLE = False

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import DuplicateTensorName, InvalidInput
from tensorsafe.reader import TensorReader
from tensorsafe.serializer import serialize, serialize_to_file
from tensorsafe.types import BytesLike, TensorView, normalize_name

logger = logging.getLogger(__name__)

_DTYPE_NAMES = {
    DType.BOOL: "bool",
    DType.U8: "uint8",
    DType.I8: "int8",
    DType.U16: "uint16",
    DType.I16: "int16",
    DType.U32: "uint32",
    DType.I32: "int32",
    DType.U64: "uint64",
    DType.I64: "int64",
    DType.F16: "float16",
    DType.BF16: "bfloat16",
    DType.F32: "float32",
    DType.F64: "float64",
    DType.F8_E4M3: "float8_e4m3fn",
    DType.F8_E5M2: "float8_e5m2",
}


def _require_torch() -> None:
    if not TORCH_AVAILABLE:
        raise ImportError(
            "PyTorch is not installed. Install it with: pip install tensorsafe[torch]"
        )


def _dtype_table() -> Dict[DType, "torch.dtype"]:
    # older torch releases lack the unsigned and float8 types
    return {
        dtype: getattr(torch, name)
        for dtype, name in _DTYPE_NAMES.items()
        if hasattr(torch, name)
    }


def to_dtype(dtype: "torch.dtype") -> DType:
    """Convert a torch dtype to the format's DType.

    Raises:
        InvalidInput: If the dtype has no counterpart in the format
    """
    _require_torch()
    for candidate, torch_dtype in _dtype_table().items():
        if torch_dtype == dtype:
            return candidate
    raise InvalidInput(f"Unsupported dtype: {dtype}")


def to_torch_dtype(dtype: DType) -> "torch.dtype":
    """Convert the format's DType to a torch dtype."""
    _require_torch()
    dtype = DType.from_tag(dtype)
    table = _dtype_table()
    if dtype not in table:
        raise InvalidInput(f"Dtype {dtype.tag} is not supported by this PyTorch version")
    return table[dtype]


def _storage_key(tensor: "torch.Tensor") -> Hashable:
    return ("torch", str(tensor.device), tensor.untyped_storage().data_ptr())


def to_view(name: str, tensor: "torch.Tensor") -> TensorView:
    """Wrap a torch tensor as a TensorView.

    CPU tensors are wrapped without copying. Tensors on other devices are
    copied to the CPU first.

    Raises:
        InvalidInput: If the tensor is sparse, non-contiguous or of an
            unsupported dtype
    """
    _require_torch()
    if not isinstance(tensor, torch.Tensor):
        raise InvalidInput(
            f"Key `{name}` is invalid, expected torch.Tensor but received "
            f"{type(tensor).__name__}"
        )
    if tensor.layout != torch.strided:
        raise InvalidInput(
            f"You are trying to save a sparse tensor: `{name}` which this "
            "library does not support. You can make it a dense tensor before "
            "saving with `.to_dense()` but be aware this might make a much "
            "larger file than needed."
        )
    if not tensor.is_contiguous():
        raise InvalidInput(
            f"You are trying to save a non contiguous tensor: `{name}` which "
            "is not allowed. It either means you are trying to save tensors "
            "which are reference of each other in which case it's recommended "
            "to save only the full tensors, and reslice at load time, or "
            "simply call `.contiguous()` on your tensor to pack it before "
            "saving."
        )
    dtype = to_dtype(tensor.dtype)

    storage_key = _storage_key(tensor)
    tensor = tensor.detach()
    if tensor.device.type != "cpu":
        tensor = tensor.to("cpu")

    data = tensor.reshape(-1).view(torch.uint8).numpy()
    return TensorView(
        dtype=dtype,
        shape=tuple(tensor.shape),
        data=memoryview(data),
        storage_key=storage_key,
    )


def from_view(view: TensorView, device: Union[str, "torch.device"] = "cpu") -> "torch.Tensor":
    """Build a torch tensor owning a copy of the view's bytes.

    Args:
        view: View to convert
        device: Device to place the tensor on

    Returns:
        Tensor with the view's dtype and shape
    """
    _require_torch()
    dtype = to_torch_dtype(view.dtype)
    if view.nbytes == 0:
        tensor = torch.empty(view.shape, dtype=dtype)
    else:
        tensor = torch.frombuffer(bytearray(view.data), dtype=dtype).reshape(view.shape)
    if str(device) != "cpu":
        tensor = tensor.to(device)
    return tensor


def _flatten(tensors: Mapping[Any, "torch.Tensor"]) -> Dict[str, TensorView]:
    if not isinstance(tensors, Mapping):
        raise InvalidInput(
            "Expected a mapping of [str, torch.Tensor] but received "
            f"{type(tensors).__name__}"
        )

    views: Dict[str, TensorView] = {}
    for key, tensor in tensors.items():
        name = normalize_name(key)
        if name in views:
            raise DuplicateTensorName(name)
        views[name] = to_view(name, tensor)
    return views


def save(
    tensors: Mapping[Any, "torch.Tensor"], metadata: Optional[Mapping[str, str]] = None
) -> bytes:
    """Serialize torch tensors into a container buffer."""
    return serialize(_flatten(tensors), metadata=metadata)


def save_file(
    tensors: Mapping[Any, "torch.Tensor"],
    filename: Union[str, Path],
    metadata: Optional[Mapping[str, str]] = None,
    atomic: bool = True,
) -> None:
    """Serialize torch tensors into a container file.

    Args:
        tensors: Mapping of tensor name to tensor
        filename: Destination file
        metadata: Optional flat string-to-string metadata
        atomic: Whether to stage the write in a temporary file
    """
    serialize_to_file(_flatten(tensors), filename, metadata=metadata, atomic=atomic)


def load(data: BytesLike, device: Union[str, "torch.device"] = "cpu") -> Dict[str, "torch.Tensor"]:
    """Load every tensor of a container buffer."""
    with TensorReader(data) as reader:
        return {name: from_view(view, device=device) for name, view in reader.items()}


def load_file(
    filename: Union[str, Path], device: Union[str, "torch.device"] = "cpu"
) -> Dict[str, "torch.Tensor"]:
    """Load every tensor of a container file.

    Args:
        filename: Container file
        device: Device to place the tensors on

    Returns:
        Mapping of tensor name to tensor
    """
    with TensorReader(filename) as reader:
        tensors = {name: from_view(view, device=device) for name, view in reader.items()}
    logger.debug(f"Loaded {len(tensors)} tensors from {filename} onto {device}")
    return tensors
