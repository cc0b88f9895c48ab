"""Exception hierarchy for tensorsafe.

Every failure raised by the engine derives from :class:`TensorsafeError` and
carries an :class:`ErrorKind` so callers can branch on the kind of failure
without matching on class names or messages.
"""

from enum import Enum
from typing import Iterable, List, Optional, Set


class ErrorKind(str, Enum):
    """Kinds of failure surfaced by the engine."""

    INVALID_INPUT = "invalid_input"
    UNKNOWN_DTYPE = "unknown_dtype"
    MALFORMED_HEADER = "malformed_header"
    SHAPE_MISMATCH = "shape_mismatch"
    OVERLAPPING_TENSORS = "overlapping_tensors"
    SIZE_MISMATCH = "size_mismatch"
    DUPLICATE_TENSOR_NAME = "duplicate_tensor_name"
    SHARED_STORAGE = "shared_storage"
    KEY_NOT_FOUND = "key_not_found"
    UNSUPPORTED_ENDIANNESS = "unsupported_endianness"
    READER_CLOSED = "reader_closed"
    IO = "io"


class TensorsafeError(Exception):
    """Base exception for tensorsafe operations."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT


class InvalidInput(TensorsafeError, ValueError):
    """Raised when caller-supplied structures have the wrong shape or type."""

    kind = ErrorKind.INVALID_INPUT


class UnknownDtype(TensorsafeError):
    """Raised when a dtype tag is not part of the format."""

    kind = ErrorKind.UNKNOWN_DTYPE


class MalformedHeader(TensorsafeError):
    """Raised when the length prefix or header text cannot be decoded."""

    kind = ErrorKind.MALFORMED_HEADER

    PREFIX = "Error while deserializing header"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"{self.PREFIX}: {reason}")


class ShapeMismatch(TensorsafeError):
    """Raised when a tensor's byte range disagrees with its dtype and shape."""

    kind = ErrorKind.SHAPE_MISMATCH

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.name = name


class OverlappingTensors(TensorsafeError):
    """Raised when two tensors claim overlapping byte ranges."""

    kind = ErrorKind.OVERLAPPING_TENSORS

    def __init__(self, first: str, second: str, message: str) -> None:
        super().__init__(message)
        self.names = (first, second)


class SizeMismatch(TensorsafeError):
    """Raised when the data region length does not match the header."""

    kind = ErrorKind.SIZE_MISMATCH


class DuplicateTensorName(TensorsafeError):
    """Raised when a tensor name appears more than once."""

    kind = ErrorKind.DUPLICATE_TENSOR_NAME

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate tensor name: {name!r}")
        self.name = name


class SharedStorageError(TensorsafeError):
    """Raised when several tensors to be saved share one backing allocation."""

    kind = ErrorKind.SHARED_STORAGE

    def __init__(self, groups: Iterable[Set[str]]) -> None:
        self.groups: List[List[str]] = [sorted(group) for group in groups]
        super().__init__(
            "Some tensors share memory, this will lead to duplicate memory on "
            "disk and potential differences when loading them again: "
            f"{self.groups}. Save only one tensor per allocation and reslice "
            "it at load time, or copy the aliased tensors before saving."
        )


class KeyNotFound(TensorsafeError, KeyError):
    """Raised when a tensor name is not present in a container."""

    kind = ErrorKind.KEY_NOT_FOUND

    def __init__(self, name: str) -> None:
        super().__init__(f"File does not contain tensor {name}")
        self.name = name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class UnsupportedEndianness(TensorsafeError):
    """Raised on hosts whose native byte order is not little-endian."""

    kind = ErrorKind.UNSUPPORTED_ENDIANNESS


class ReaderClosed(TensorsafeError):
    """Raised when a closed reader handle is used."""

    kind = ErrorKind.READER_CLOSED

    def __init__(self) -> None:
        super().__init__("File is closed")


class TensorsafeIOError(TensorsafeError, OSError):
    """Raised when a file cannot be opened, mapped or written."""

    kind = ErrorKind.IO

