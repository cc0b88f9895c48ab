"""Serialization of tensor views into the tensorsafe container layout."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Tuple, Union

from tensorsafe.endian import ensure_little_endian
from tensorsafe.exceptions import (
    DuplicateTensorName,
    InvalidInput,
    TensorsafeIOError,
)
from tensorsafe.header import encode_header
from tensorsafe.shared import check_shared_tensors
from tensorsafe.types import (
    METADATA_KEY,
    Header,
    MetadataDict,
    TensorInfo,
    TensorView,
    normalize_name,
)

logger = logging.getLogger(__name__)

PreparedTensors = Tuple[Header, List[Tuple[str, TensorView]]]


def prepare(
    tensors: Mapping[Any, TensorView], metadata: Optional[Mapping[str, str]] = None
) -> PreparedTensors:
    """Check the inputs and assign every tensor its byte range.

    Tensors are laid out by descending element width, then by name, so each
    tensor starts on a multiple of its own element width once the header has
    been padded to 8 bytes.

    Args:
        tensors: Mapping of tensor name to view
        metadata: Optional flat string-to-string metadata

    Returns:
        Tuple of the header and the views in storage order

    Raises:
        InvalidInput: If the inputs have the wrong types
        DuplicateTensorName: If two keys normalize to the same name
        UnsupportedEndianness: On big-endian hosts
        SharedStorageError: If tensors share a backing allocation
    """
    if not isinstance(tensors, Mapping):
        raise InvalidInput(
            "Expected a mapping of [str, TensorView] but received "
            f"{type(tensors).__name__}"
        )

    views: Dict[str, TensorView] = {}
    for key, value in tensors.items():
        name = normalize_name(key)
        if not name:
            raise InvalidInput("Tensor names must be non-empty strings")
        if name == METADATA_KEY:
            raise InvalidInput(f"{METADATA_KEY!r} is reserved for metadata")
        if not isinstance(value, TensorView):
            raise InvalidInput(
                f"Key `{name}` is invalid, expected TensorView but received "
                f"{type(value).__name__}"
            )
        if name in views:
            raise DuplicateTensorName(name)
        views[name] = value

    checked_metadata = _check_metadata(metadata)

    ensure_little_endian()
    check_shared_tensors(views)

    ordered = sorted(views.items(), key=lambda item: (-item[1].dtype.itemsize, item[0]))
    infos: Dict[str, TensorInfo] = {}
    offset = 0
    for name, view in ordered:
        infos[name] = TensorInfo(
            dtype=view.dtype,
            shape=view.shape,
            data_offsets=(offset, offset + view.nbytes),
        )
        offset += view.nbytes

    return Header(tensors=infos, metadata=checked_metadata), ordered


def serialize(
    tensors: Mapping[Any, TensorView], metadata: Optional[Mapping[str, str]] = None
) -> bytes:
    """Serialize tensor views into a single container buffer.

    Args:
        tensors: Mapping of tensor name to view
        metadata: Optional flat string-to-string metadata

    Returns:
        The encoded container
    """
    header, ordered = prepare(tensors, metadata)
    parts = [encode_header(header)]
    parts.extend(view.data for _, view in ordered)
    result = b"".join(parts)
    logger.debug(f"Serialized {len(ordered)} tensors into {len(result)} bytes")
    return result


def serialize_to_file(
    tensors: Mapping[Any, TensorView],
    path: Union[str, Path],
    metadata: Optional[Mapping[str, str]] = None,
    atomic: bool = True,
) -> None:
    """Serialize tensor views into a file.

    All input checks run before the destination is touched. With ``atomic``
    the container is written to a temporary file in the destination directory
    and moved into place only once it is complete.

    Args:
        tensors: Mapping of tensor name to view
        path: Destination file
        metadata: Optional flat string-to-string metadata
        atomic: Whether to stage the write in a temporary file

    Raises:
        TensorsafeIOError: If the file cannot be written
    """
    header, ordered = prepare(tensors, metadata)
    path = Path(path)
    encoded_header = encode_header(header)

    try:
        if atomic:
            _write_with_temp_file(path, encoded_header, ordered)
        else:
            with open(path, "wb") as f:
                _write_container(f, encoded_header, ordered)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise TensorsafeIOError(f"Failed to write {path}: {e}") from e

    logger.info(f"Wrote {len(ordered)} tensors to {path}")


def _write_container(
    f: BinaryIO, encoded_header: bytes, ordered: List[Tuple[str, TensorView]]
) -> None:
    f.write(encoded_header)
    for _, view in ordered:
        f.write(view.data)


def _write_with_temp_file(
    path: Path, encoded_header: bytes, ordered: List[Tuple[str, TensorView]]
) -> None:
    """Write using a temporary file for atomic operation."""
    temp_file = tempfile.NamedTemporaryFile(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_file.name)
    try:
        with temp_file:
            _write_container(temp_file, encoded_header, ordered)
        # temporary files are created 0600; match what open() would have made
        os.chmod(temp_path, 0o666 & ~_current_umask())
        temp_path.replace(path)
    except BaseException:
        if temp_path.exists():
            temp_path.unlink()
        raise


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def _check_metadata(metadata: Optional[Mapping[str, str]]) -> Optional[MetadataDict]:
    if metadata is None:
        return None
    if not isinstance(metadata, Mapping):
        raise InvalidInput(
            "Expected metadata as a mapping of [str, str] but received "
            f"{type(metadata).__name__}"
        )
    for key, value in metadata.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidInput(
                f"Metadata must map strings to strings, got {key!r}: {value!r}"
            )
    return dict(metadata)
