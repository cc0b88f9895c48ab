"""Lazy, zero-copy reading of tensorsafe containers."""

import importlib
import logging
import mmap
import os
import threading
import weakref
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from tensorsafe.endian import ensure_little_endian
from tensorsafe.exceptions import (
    InvalidInput,
    KeyNotFound,
    ReaderClosed,
    TensorsafeIOError,
)
from tensorsafe.header import HEADER_LENGTH_SIZE, MAX_HEADER_SIZE, decode_header
from tensorsafe.types import (
    BytesLike,
    Header,
    MetadataDict,
    TensorInfo,
    TensorView,
    normalize_name,
)
from tensorsafe.validation import validate_layout

# Configure logger
logger = logging.getLogger(__name__)

Source = Union[str, os.PathLike, BytesLike]

_FRAMEWORKS = {
    "np": "tensorsafe.numpy",
    "numpy": "tensorsafe.numpy",
    "pt": "tensorsafe.torch",
    "torch": "tensorsafe.torch",
    "pytorch": "tensorsafe.torch",
}


class TensorReader:
    """Reader for tensorsafe containers.

    The header is decoded and validated eagerly when the reader is created;
    tensor bytes are only touched when a tensor is requested. Files are
    memory-mapped read-only, so :meth:`get_tensor` returns views straight into
    the mapping without copying.

    Views returned by :meth:`get_tensor` borrow from the reader and are only
    valid while it is open. Closing the reader releases them; a view that has
    been exported further (for example wrapped by ``np.frombuffer``) keeps the
    mapping alive until that export is garbage collected.

    Usage::

        with TensorReader("model.tensorsafe") as reader:
            for name in reader.keys():
                view = reader.get_tensor(name)

    Attributes:
        file_path: Path of the file being read, or ``None`` for buffers
    """

    def __init__(
        self,
        source: Source,
        use_mmap: bool = True,
        max_header_size: int = MAX_HEADER_SIZE,
    ) -> None:
        """Initialize TensorReader.

        Args:
            source: Path of a container file, or a bytes-like container
            use_mmap: Whether to memory-map files instead of reading them
            max_header_size: Largest header length accepted

        Raises:
            TensorsafeIOError: If the file cannot be opened
            MalformedHeader: If the header cannot be decoded
            UnsupportedEndianness: On big-endian hosts
        """
        self.file_path: Optional[Path] = None
        self.use_mmap = use_mmap
        self._file_handle: Optional[Any] = None
        self._mmap: Optional[mmap.mmap] = None
        self._buffer: Optional[memoryview] = None
        self._views: "weakref.WeakSet[memoryview]" = weakref.WeakSet()
        self._lock = threading.Lock()
        self._closed = False

        try:
            ensure_little_endian()
            if isinstance(source, (str, os.PathLike)):
                self.file_path = Path(source)
                self._open_file()
            else:
                self._open_buffer(source)

            self._header, self._data_offset = decode_header(
                self._buffer, max_header_size=max_header_size
            )
            validate_layout(self._header, len(self._buffer) - self._data_offset)
        except BaseException:
            self._closed = True
            self._release()
            raise

        logger.debug(
            f"Opened {self.file_path or 'buffer'} with {len(self._header.tensors)} tensors"
        )

    def _open_file(self) -> None:
        """Open the file and map it into memory.

        Raises:
            TensorsafeIOError: If the file cannot be opened or mapped
        """
        if not self.file_path.is_file():
            raise TensorsafeIOError(f"No such file or directory: {self.file_path}")

        try:
            self._file_handle = open(self.file_path, "rb")
            file_size = os.fstat(self._file_handle.fileno()).st_size
            # an empty file cannot be mapped; let the header check reject it
            if self.use_mmap and file_size >= HEADER_LENGTH_SIZE:
                self._mmap = mmap.mmap(
                    self._file_handle.fileno(), 0, access=mmap.ACCESS_READ
                )
                self._buffer = memoryview(self._mmap)
                logger.debug(f"Opened memory map for file: {self.file_path}")
            else:
                self._buffer = memoryview(self._file_handle.read())
                self._file_handle.close()
                self._file_handle = None
        except OSError as e:
            logger.error(f"Failed to open {self.file_path}: {e}")
            raise TensorsafeIOError(f"Failed to open {self.file_path}: {e}") from e

    def _open_buffer(self, source: BytesLike) -> None:
        try:
            buffer = memoryview(source)
        except TypeError as e:
            raise InvalidInput(
                "Expected a file path or a bytes-like object but received "
                f"{type(source).__name__}"
            ) from e
        if buffer.format != "B" or buffer.ndim != 1:
            try:
                buffer = buffer.cast("B")
            except (TypeError, ValueError) as e:
                raise InvalidInput(f"Cannot read container bytes from buffer: {e}") from e
        self._buffer = buffer

    def _release(self) -> None:
        """Release views, the buffer, the memory map and the file handle."""
        pinned = False
        with self._lock:
            views = list(self._views)
            self._views.clear()
        for view in views:
            try:
                view.release()
            except BufferError:
                pinned = True

        if self._buffer is not None:
            try:
                self._buffer.release()
            except BufferError:
                pinned = True
            self._buffer = None

        if self._mmap is not None:
            if pinned:
                logger.warning(
                    f"Tensors read from {self.file_path} are still referenced; "
                    "the memory map is released once they are garbage collected"
                )
            else:
                try:
                    self._mmap.close()
                except BufferError as e:
                    logger.warning(f"Error closing memory map: {e}")
            self._mmap = None

        if self._file_handle is not None:
            try:
                self._file_handle.close()
            except OSError as e:
                logger.warning(f"Error closing file handle: {e}")
            self._file_handle = None

    def _ensure_open(self) -> None:
        if self._closed:
            raise ReaderClosed()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def header(self) -> Header:
        """The validated header."""
        self._ensure_open()
        return self._header

    @property
    def data_offset(self) -> int:
        """Absolute offset at which the data region starts."""
        return self._data_offset

    def keys(self) -> List[str]:
        """Get the tensor names, sorted.

        Returns:
            List of tensor names
        """
        self._ensure_open()
        return sorted(self._header.tensors)

    def metadata(self) -> MetadataDict:
        """Get the container metadata.

        Returns:
            Copy of the metadata, empty if the container has none
        """
        self._ensure_open()
        return dict(self._header.metadata or {})

    def get_tensor_info(self, name: Any) -> TensorInfo:
        """Get the layout of a tensor.

        Raises:
            KeyNotFound: If the tensor is not in the container
        """
        self._ensure_open()
        key = normalize_name(name)
        info = self._header.tensors.get(key)
        if info is None:
            raise KeyNotFound(key)
        return info

    def get_tensor(self, name: Any) -> TensorView:
        """Get a zero-copy view of a tensor.

        Args:
            name: Tensor name

        Returns:
            TensorView over exactly the tensor's bytes

        Raises:
            KeyNotFound: If the tensor is not in the container
            ReaderClosed: If the reader has been closed
        """
        info = self.get_tensor_info(name)
        start = self._data_offset + info.data_offsets[0]
        end = self._data_offset + info.data_offsets[1]

        # validated ranges never overlap, so the start offset identifies the allocation
        view = TensorView(
            dtype=info.dtype,
            shape=info.shape,
            data=self._buffer[start:end],
            storage_key=(id(self), start),
        )
        with self._lock:
            self._views.add(view.data)
        return view

    def items(self) -> List[Tuple[str, TensorView]]:
        """Get name-view pairs for every tensor."""
        return [(name, self.get_tensor(name)) for name in self.keys()]

    def get_file_info(self) -> Dict[str, Any]:
        """Get information about the container.

        Returns:
            Dictionary containing file information including:
            - file_size: Total container size in bytes
            - header_size: Size of the header in bytes
            - num_tensors: Number of tensors in the container
            - total_parameters: Total number of elements across all tensors
            - memory_usage: Size of the data region in bytes
            - tensors: Per-tensor summaries in storage order
        """
        self._ensure_open()
        tensors = []
        total_params = 0
        memory_usage = 0
        for name, info in self._header.sorted_items():
            total_params += info.num_elements
            memory_usage += info.byte_size
            tensors.append({
                "name": name,
                "dtype": info.dtype.tag,
                "shape": list(info.shape),
                "parameters": info.num_elements,
                "data_offsets": list(info.data_offsets),
                "bytes": info.byte_size,
            })

        return {
            "file_path": str(self.file_path) if self.file_path else None,
            "file_size": len(self._buffer),
            "header_size": self._data_offset - HEADER_LENGTH_SIZE,
            "num_tensors": len(tensors),
            "total_parameters": total_params,
            "memory_usage": memory_usage,
            "metadata": self.metadata(),
            "tensors": tensors,
        }

    def close(self) -> None:
        """Close the reader and release resources."""
        if self._closed:
            return
        self._closed = True
        self._release()
        logger.debug(f"Closed TensorReader for {self.file_path or 'buffer'}")

    def __enter__(self) -> "TensorReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            self.close()

    def __contains__(self, name: Any) -> bool:
        self._ensure_open()
        try:
            return normalize_name(name) in self._header.tensors
        except InvalidInput:
            return False

    def __len__(self) -> int:
        self._ensure_open()
        return len(self._header.tensors)

    def __iter__(self):
        return iter(self.keys())

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"TensorReader(source='{self.file_path or 'buffer'}', status={status})"


class SafeOpen(TensorReader):
    """Reader whose :meth:`get_tensor` returns framework tensors."""

    def __init__(
        self,
        source: Source,
        converter: Callable[[TensorView], Any],
        **kwargs: Any,
    ) -> None:
        super().__init__(source, **kwargs)
        self._convert = converter

    def get_tensor(self, name: Any) -> Any:
        return self._convert(super().get_tensor(name))

    def get_view(self, name: Any) -> TensorView:
        """Get the underlying zero-copy view instead of a framework tensor."""
        return super().get_tensor(name)


def safe_open(
    filename: Union[str, os.PathLike],
    framework: Optional[str] = None,
    device: str = "cpu",
    **kwargs: Any,
) -> TensorReader:
    """Open a container file for lazy reading.

    Args:
        filename: Path of the container file
        framework: ``None`` for TensorViews, ``"np"``/``"numpy"`` for numpy
            arrays or ``"pt"``/``"torch"``/``"pytorch"`` for torch tensors
        device: Device for torch tensors
        **kwargs: Passed on to :class:`TensorReader`

    Returns:
        An open reader; use it as a context manager to close it

    Raises:
        InvalidInput: If the framework or device is not supported
    """
    if framework is None:
        if device != "cpu":
            raise InvalidInput(f"Device {device} requires a framework")
        return TensorReader(filename, **kwargs)

    module_name = _FRAMEWORKS.get(framework)
    if module_name is None:
        raise InvalidInput(f"framework {framework} is invalid")
    adapter = importlib.import_module(module_name)
    if module_name == "tensorsafe.torch":
        converter = partial(adapter.from_view, device=device)
    elif device != "cpu":
        raise InvalidInput(f"Device {device} is not supported for framework {framework}")
    else:
        converter = adapter.from_view
    return SafeOpen(filename, converter, **kwargs)


def deserialize(data: BytesLike) -> Dict[str, TensorView]:
    """Eagerly decode a whole container buffer.

    Every returned view owns a copy of its bytes, so the result stays valid
    independently of ``data``.

    Args:
        data: Encoded container

    Returns:
        Mapping of tensor name to view, in storage order
    """
    with TensorReader(data) as reader:
        return {
            name: TensorView(
                dtype=info.dtype,
                shape=info.shape,
                data=reader.get_tensor(name).tobytes(),
            )
            for name, info in reader.header.sorted_items()
        }
