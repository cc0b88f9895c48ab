"""Encoding and decoding of the length-prefixed container header.

The container layout is::

    [8 bytes little-endian uint64 N][N bytes UTF-8 JSON header][data region]

The JSON header maps tensor names to ``{"dtype", "shape", "data_offsets"}``
objects and may hold a flat string-to-string metadata object under the
reserved ``__metadata__`` key.
"""

import json
import logging
import struct
from typing import Any, Dict, List, Optional, Tuple

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import DuplicateTensorName, MalformedHeader
from tensorsafe.types import METADATA_KEY, BytesLike, Header, TensorInfo

logger = logging.getLogger(__name__)

HEADER_LENGTH_FORMAT = "<Q"
HEADER_LENGTH_SIZE = struct.calcsize(HEADER_LENGTH_FORMAT)
HEADER_ALIGNMENT = 8  # data region starts on this boundary
MAX_HEADER_SIZE = 100_000_000
REQUIRED_FIELDS = ("dtype", "shape", "data_offsets")


class _JSONObject(list):
    """Key/value pairs of a JSON object, kept in document order."""


def encode_header(header: Header) -> bytes:
    """Encode a header into its length prefix and canonical JSON text.

    Tensor entries are written in ascending order of their start offset so that
    a sequential read of the header follows the storage order. The text is
    padded with spaces so the data region starts on an 8-byte boundary.

    Args:
        header: Header to encode

    Returns:
        Length prefix followed by the encoded header text
    """
    document: Dict[str, Any] = {}
    if header.metadata is not None:
        document[METADATA_KEY] = dict(header.metadata)
    for name, info in header.sorted_items():
        document[name] = info.to_dict()

    text = json.dumps(document, separators=(",", ":"), ensure_ascii=False)
    encoded = text.encode("utf-8")
    padding = (HEADER_ALIGNMENT - len(encoded) % HEADER_ALIGNMENT) % HEADER_ALIGNMENT
    encoded += b" " * padding

    return struct.pack(HEADER_LENGTH_FORMAT, len(encoded)) + encoded


def read_header_length(buffer: BytesLike) -> int:
    """Read the length prefix from the start of ``buffer``.

    Raises:
        MalformedHeader: If fewer than 8 bytes are available
    """
    if len(buffer) < HEADER_LENGTH_SIZE:
        raise MalformedHeader(
            f"header too small: expected at least {HEADER_LENGTH_SIZE} bytes, "
            f"got {len(buffer)}"
        )
    return struct.unpack_from(HEADER_LENGTH_FORMAT, buffer, 0)[0]


def decode_header(
    buffer: BytesLike, max_header_size: int = MAX_HEADER_SIZE
) -> Tuple[Header, int]:
    """Decode the header at the start of ``buffer``.

    Args:
        buffer: Whole container, or at least its prefix and header
        max_header_size: Largest header length accepted

    Returns:
        Tuple of the decoded header and the offset at which the data region
        starts

    Raises:
        MalformedHeader: If the prefix or header text is invalid
        DuplicateTensorName: If a tensor name appears twice
        UnknownDtype: If a tensor uses a dtype outside the registry
    """
    with memoryview(buffer) as view:
        length = read_header_length(view)
        if length > max_header_size:
            raise MalformedHeader(
                f"header too large: {length} bytes exceeds the limit of "
                f"{max_header_size} bytes"
            )

        data_start = HEADER_LENGTH_SIZE + length
        if data_start > view.nbytes:
            raise MalformedHeader(
                f"invalid header length: header declares {length} bytes but only "
                f"{view.nbytes - HEADER_LENGTH_SIZE} remain in the buffer"
            )
        raw = view[HEADER_LENGTH_SIZE:data_start].tobytes()

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedHeader(f"header is not valid UTF-8: {e}") from e

    if not text.startswith("{"):
        raise MalformedHeader("header does not start with '{'")

    try:
        document = json.loads(text, object_pairs_hook=_JSONObject)
    except json.JSONDecodeError as e:
        raise MalformedHeader(f"invalid JSON in header: {e}") from e
    except RecursionError:
        raise MalformedHeader("header nesting is too deep") from None

    header = parse_header(document)
    logger.debug(f"Decoded header of {length} bytes with {len(header.tensors)} tensors")
    return header, data_start


def parse_header(document: Any) -> Header:
    """Turn the parsed JSON document into a Header."""
    entries = _as_object(document, "header", top_level=True)

    metadata: Optional[Dict[str, str]] = None
    tensors: Dict[str, TensorInfo] = {}
    for name, value in entries.items():
        if name == METADATA_KEY:
            metadata = _parse_metadata(value)
            continue
        if not name:
            raise MalformedHeader("tensor names must be non-empty")
        tensors[name] = _parse_tensor_info(name, value)

    return Header(tensors=tensors, metadata=metadata)


def _as_object(value: Any, what: str, top_level: bool = False) -> Dict[str, Any]:
    if not isinstance(value, _JSONObject):
        raise MalformedHeader(f"{what} must be a JSON object")

    result: Dict[str, Any] = {}
    for key, item in value:
        if key in result:
            if top_level:
                raise DuplicateTensorName(key)
            raise MalformedHeader(f"duplicate key {key!r} in {what}")
        result[key] = item
    return result


def _parse_metadata(value: Any) -> Dict[str, str]:
    metadata = _as_object(value, f"'{METADATA_KEY}'")
    for key, item in metadata.items():
        if not isinstance(item, str):
            raise MalformedHeader(
                f"metadata value for {key!r} must be a string, "
                f"got {type(item).__name__}"
            )
    return metadata


def _parse_tensor_info(name: str, value: Any) -> TensorInfo:
    fields = _as_object(value, f"tensor {name!r}")
    for field_name in REQUIRED_FIELDS:
        if field_name not in fields:
            raise MalformedHeader(
                f"missing required field '{field_name}' for tensor {name!r}"
            )

    dtype = fields["dtype"]
    if not isinstance(dtype, str):
        raise MalformedHeader(f"dtype of tensor {name!r} must be a string")

    shape = _parse_int_list(name, "shape", fields["shape"])
    offsets = _parse_int_list(name, "data_offsets", fields["data_offsets"])
    if len(offsets) != 2:
        raise MalformedHeader(
            f"data_offsets of tensor {name!r} must hold exactly two integers, "
            f"got {offsets}"
        )

    return TensorInfo(
        dtype=DType.from_tag(dtype),
        shape=tuple(shape),
        data_offsets=(offsets[0], offsets[1]),
    )


def _parse_int_list(name: str, field_name: str, value: Any) -> List[int]:
    if not isinstance(value, list) or isinstance(value, _JSONObject):
        raise MalformedHeader(f"{field_name} of tensor {name!r} must be an array")
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or item < 0:
            raise MalformedHeader(
                f"{field_name} of tensor {name!r} must contain non-negative "
                f"integers, got {value}"
            )
    return value
