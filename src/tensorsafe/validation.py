"""Consistency checks for decoded headers.

A header is checked once, against the length of the data region actually
present, before any tensor bytes are handed out.
"""

import logging
from typing import List, Tuple

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import (
    MalformedHeader,
    OverlappingTensors,
    ShapeMismatch,
    SizeMismatch,
)
from tensorsafe.types import Header, TensorInfo

logger = logging.getLogger(__name__)


def validate_layout(header: Header, data_length: int) -> None:
    """Validate tensor layouts against each other and the data region.

    Checks, in order: every dtype is known, every offset pair is ordered,
    every byte range matches its dtype and shape, no two non-empty ranges
    overlap, and the largest end offset equals ``data_length``. Gaps between
    ranges are allowed.

    Args:
        header: Decoded header
        data_length: Number of bytes following the header

    Raises:
        UnknownDtype: If a dtype is outside the registry
        MalformedHeader: If an offset pair is reversed
        ShapeMismatch: If a byte range disagrees with dtype and shape
        OverlappingTensors: If two byte ranges overlap
        SizeMismatch: If the data region is longer or shorter than declared
    """
    for name, info in header.tensors.items():
        _validate_tensor(name, info)

    _check_overlaps(header)

    max_end = max(
        (info.data_offsets[1] for info in header.tensors.values()), default=0
    )
    if max_end != data_length:
        raise SizeMismatch(
            f"Data region is {data_length} bytes but the header describes "
            f"{max_end} bytes"
        )

    logger.debug(f"Validated layout of {len(header.tensors)} tensors")


def _validate_tensor(name: str, info: TensorInfo) -> None:
    dtype = DType.from_tag(info.dtype)
    start, end = info.data_offsets
    if not 0 <= start <= end:
        raise MalformedHeader(
            f"invalid data_offsets for tensor {name!r}: [{start}, {end}]"
        )

    expected = 1
    for dim in info.shape:
        expected *= dim
    expected *= dtype.itemsize
    if end - start != expected:
        raise ShapeMismatch(
            f"Tensor {name!r} with dtype {dtype.tag} and shape {list(info.shape)} "
            f"needs {expected} bytes, but data_offsets [{start}, {end}] span "
            f"{end - start} bytes",
            name=name,
        )


def _check_overlaps(header: Header) -> None:
    ranges: List[Tuple[int, int, str]] = sorted(
        (info.data_offsets[0], info.data_offsets[1], name)
        for name, info in header.tensors.items()
        if info.data_offsets[1] > info.data_offsets[0]
    )

    # sorted by start, so tracking the furthest end seen is enough
    furthest_end = 0
    furthest_name = None
    for start, end, name in ranges:
        if furthest_name is not None and start < furthest_end:
            raise OverlappingTensors(
                furthest_name,
                name,
                f"Tensors {furthest_name!r} and {name!r} have overlapping "
                f"data_offsets (byte {start} is claimed by both)",
            )
        if end > furthest_end:
            furthest_end = end
            furthest_name = name
