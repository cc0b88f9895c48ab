"""
tensorsafe: safe, lazily readable storage for named tensors
"""

__version__ = "1.0.0"

from tensorsafe.config import (
    TensorsafeConfig,
    get_default_config,
    load_config,
    validate_config,
)
from tensorsafe.dtypes import DType
from tensorsafe.exceptions import (
    DuplicateTensorName,
    ErrorKind,
    InvalidInput,
    KeyNotFound,
    MalformedHeader,
    OverlappingTensors,
    ReaderClosed,
    ShapeMismatch,
    SharedStorageError,
    SizeMismatch,
    TensorsafeError,
    TensorsafeIOError,
    UnknownDtype,
    UnsupportedEndianness,
)
from tensorsafe.reader import TensorReader, deserialize, safe_open
from tensorsafe.serializer import serialize, serialize_to_file
from tensorsafe.shared import check_shared_tensors, find_shared_tensors
from tensorsafe.types import Header, TensorInfo, TensorView
from tensorsafe.writer import TensorWriter

__all__ = [
    # Engine
    "serialize",
    "serialize_to_file",
    "deserialize",
    "safe_open",
    "TensorReader",
    "TensorWriter",
    "find_shared_tensors",
    "check_shared_tensors",
    # Types
    "DType",
    "TensorView",
    "TensorInfo",
    "Header",
    # Errors
    "ErrorKind",
    "TensorsafeError",
    "InvalidInput",
    "UnknownDtype",
    "MalformedHeader",
    "ShapeMismatch",
    "OverlappingTensors",
    "SizeMismatch",
    "DuplicateTensorName",
    "SharedStorageError",
    "KeyNotFound",
    "UnsupportedEndianness",
    "ReaderClosed",
    "TensorsafeIOError",
    # Configuration
    "TensorsafeConfig",
    "load_config",
    "get_default_config",
    "validate_config",
]
