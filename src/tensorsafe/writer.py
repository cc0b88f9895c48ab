"""
Buffered container writer.

This module provides the TensorWriter class, which collects numpy arrays and
metadata and writes them out as a single tensorsafe container.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from tensorsafe.exceptions import DuplicateTensorName, InvalidInput, KeyNotFound
from tensorsafe.numpy import to_dtype, to_view
from tensorsafe.serializer import serialize_to_file
from tensorsafe.types import METADATA_KEY, MetadataDict, normalize_name

logger = logging.getLogger(__name__)


class TensorWriter:
    """
    Writer that collects tensors and writes them in one pass.

    Example:
        with TensorWriter("model.tensorsafe") as writer:
            writer.add_tensor("embedding.weight", embedding_array)
            writer.add_tensor("linear.bias", bias_array)
            writer.set_metadata({"model_type": "transformer"})
        # written on clean exit
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        metadata: Optional[Dict[str, Any]] = None,
        use_temp_file: bool = True,
    ):
        """
        Initialize the writer.

        Args:
            file_path: Path where the container will be written
            metadata: Optional global metadata; non-string values are
                converted to strings when written
            use_temp_file: Whether to stage the write in a temporary file

        Raises:
            InvalidInput: If the path exists and is not a file
        """
        self.file_path = Path(file_path)
        self.use_temp_file = use_temp_file

        self._tensors: Dict[str, np.ndarray] = {}
        self._metadata: Dict[str, Any] = dict(metadata) if metadata else {}
        self._written = False
        self._closed = False

        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        if self.file_path.exists() and not self.file_path.is_file():
            raise InvalidInput(f"Output path exists but is not a file: {self.file_path}")

    def __enter__(self) -> "TensorWriter":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Write pending tensors on a clean exit, then close."""
        try:
            if exc_type is None and not self._written and self._tensors:
                self.write()
        finally:
            self.close()

    def close(self) -> None:
        """Close the writer and drop the collected tensors."""
        if not self._closed:
            self._tensors.clear()
            self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def tensor_count(self) -> int:
        return len(self._tensors)

    @property
    def metadata(self) -> Dict[str, Any]:
        """Get a copy of the current global metadata."""
        return self._metadata.copy()

    def add_tensor(self, name: Any, data: np.ndarray) -> None:
        """
        Add a tensor to be written.

        Non-contiguous arrays are packed with ``np.ascontiguousarray``.

        Args:
            name: Name of the tensor
            data: Array holding the tensor data

        Raises:
            InvalidInput: If the name or array is invalid, or the writer is closed
            DuplicateTensorName: If the name was already added
        """
        self._ensure_open()
        key = normalize_name(name)
        if not key:
            raise InvalidInput("Tensor names must be non-empty strings")
        if key == METADATA_KEY:
            raise InvalidInput(f"{METADATA_KEY!r} is reserved for metadata")
        if key in self._tensors:
            raise DuplicateTensorName(key)
        if not isinstance(data, np.ndarray):
            raise InvalidInput(
                f"Key `{key}` is invalid, expected numpy.ndarray but received "
                f"{type(data).__name__}"
            )
        # checks the dtype up front rather than at write time
        to_dtype(data.dtype)

        if not data.flags.c_contiguous:
            data = np.ascontiguousarray(data)
        self._tensors[key] = data

    def add_tensors(self, tensors: Dict[Any, np.ndarray]) -> None:
        """Add multiple tensors at once."""
        for name, data in tensors.items():
            self.add_tensor(name, data)

    def remove_tensor(self, name: Any) -> None:
        """
        Remove a tensor from the writer.

        Raises:
            KeyNotFound: If the tensor was never added
        """
        self._ensure_open()
        key = normalize_name(name)
        if key not in self._tensors:
            raise KeyNotFound(key)
        del self._tensors[key]

    def set_metadata(self, metadata: Dict[str, Any]) -> None:
        """Set or update global metadata."""
        self._ensure_open()
        self._metadata.update(metadata)

    def get_tensor_names(self) -> List[str]:
        return list(self._tensors.keys())

    def has_tensor(self, name: Any) -> bool:
        return normalize_name(name) in self._tensors

    def write(self) -> None:
        """
        Write all tensors and metadata to the file.

        Raises:
            InvalidInput: If no tensors were added or the writer is closed
            SharedStorageError: If added arrays share memory
            TensorsafeIOError: If the file cannot be written
        """
        self._ensure_open()
        if not self._tensors:
            raise InvalidInput("No tensors to write")

        views = {name: to_view(name, data) for name, data in self._tensors.items()}
        metadata = stringify_metadata(self._metadata) if self._metadata else None
        serialize_to_file(
            views, self.file_path, metadata=metadata, atomic=self.use_temp_file
        )
        self._written = True

    def get_write_info(self) -> Dict[str, Any]:
        """
        Get information about what will be written.

        Returns:
            Dictionary with write information
        """
        total_params = sum(tensor.size for tensor in self._tensors.values())
        total_size = sum(tensor.nbytes for tensor in self._tensors.values())

        dtype_counts: Dict[str, int] = {}
        for tensor in self._tensors.values():
            tag = to_dtype(tensor.dtype).tag
            dtype_counts[tag] = dtype_counts.get(tag, 0) + 1

        return {
            "output_file": str(self.file_path),
            "tensor_count": len(self._tensors),
            "total_parameters": total_params,
            "total_size_bytes": total_size,
            "dtype_distribution": dtype_counts,
            "tensor_names": list(self._tensors.keys()),
            "metadata_keys": list(self._metadata.keys()),
        }

    def _ensure_open(self) -> None:
        if self._closed:
            raise InvalidInput("Writer is closed")

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        written_status = "written" if self._written else "not written"
        return (
            f"TensorWriter(file='{self.file_path}', "
            f"status={status}, tensors={len(self._tensors)}, {written_status})"
        )


def stringify_metadata(metadata: Dict[str, Any]) -> MetadataDict:
    """
    Convert metadata values to strings.

    Containers only hold string values, so scalars are converted with ``str``
    and other values are JSON-encoded. ``None`` values are dropped.
    """
    serialized: MetadataDict = {}
    for key, value in metadata.items():
        if isinstance(value, str):
            serialized[str(key)] = value
        elif isinstance(value, (int, float, bool)):
            serialized[str(key)] = str(value)
        elif value is None:
            continue
        else:
            try:
                serialized[str(key)] = json.dumps(value, sort_keys=True)
            except (TypeError, ValueError):
                serialized[str(key)] = str(value)
    return serialized
