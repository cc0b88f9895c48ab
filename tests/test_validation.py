"""Tests for the layout validator."""

import pytest

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import (
    ErrorKind,
    MalformedHeader,
    OverlappingTensors,
    ShapeMismatch,
    SizeMismatch,
)
from tensorsafe.types import Header, TensorInfo
from tensorsafe.validation import validate_layout


def make_header(**entries):
    return Header(
        tensors={
            name: TensorInfo(dtype, shape, offsets)
            for name, (dtype, shape, offsets) in entries.items()
        }
    )


class TestValidateLayout:
    """Tests for validate_layout."""

    def test_valid_layout(self):
        header = make_header(
            a=(DType.F32, (2,), (0, 8)),
            b=(DType.U8, (3,), (8, 11)),
        )
        validate_layout(header, 11)

    def test_empty_header_needs_empty_data(self):
        validate_layout(Header(tensors={}), 0)
        with pytest.raises(SizeMismatch):
            validate_layout(Header(tensors={}), 4)

    def test_gaps_are_tolerated(self):
        header = make_header(
            a=(DType.U8, (2,), (0, 2)),
            b=(DType.U8, (2,), (6, 8)),
        )
        validate_layout(header, 8)

    def test_zero_size_tensors_never_overlap(self):
        header = make_header(
            a=(DType.F32, (4,), (0, 16)),
            empty=(DType.F32, (0,), (4, 4)),
        )
        validate_layout(header, 16)

    def test_reversed_offsets(self):
        header = make_header(a=(DType.U8, (0,), (4, 2)))
        with pytest.raises(MalformedHeader, match="'a'"):
            validate_layout(header, 4)

    def test_shape_mismatch_names_tensor(self):
        header = make_header(w=(DType.F32, (2, 2), (0, 12)))
        with pytest.raises(ShapeMismatch) as exc_info:
            validate_layout(header, 12)

        message = str(exc_info.value)
        assert "'w'" in message
        assert "16 bytes" in message
        assert "12 bytes" in message
        assert exc_info.value.name == "w"
        assert exc_info.value.kind is ErrorKind.SHAPE_MISMATCH

    def test_overlap_names_both_tensors(self):
        header = make_header(
            first=(DType.U8, (4,), (0, 4)),
            second=(DType.U8, (4,), (3, 7)),
        )
        with pytest.raises(OverlappingTensors) as exc_info:
            validate_layout(header, 7)

        assert set(exc_info.value.names) == {"first", "second"}
        assert "'first'" in str(exc_info.value)
        assert "'second'" in str(exc_info.value)

    def test_overlap_with_contained_range(self):
        header = make_header(
            outer=(DType.U8, (10,), (0, 10)),
            middle=(DType.U8, (2,), (12, 14)),
            inner=(DType.U8, (2,), (4, 6)),
        )
        with pytest.raises(OverlappingTensors) as exc_info:
            validate_layout(header, 14)
        assert set(exc_info.value.names) == {"outer", "inner"}

    def test_identical_ranges_overlap(self):
        header = make_header(
            a=(DType.F32, (1,), (0, 4)),
            b=(DType.I32, (1,), (0, 4)),
        )
        with pytest.raises(OverlappingTensors):
            validate_layout(header, 4)

    def test_data_region_too_long(self):
        header = make_header(a=(DType.U8, (2,), (0, 2)))
        with pytest.raises(SizeMismatch, match="3 bytes.*2 bytes"):
            validate_layout(header, 3)

    def test_data_region_too_short(self):
        header = make_header(a=(DType.U8, (2,), (0, 2)))
        with pytest.raises(SizeMismatch) as exc_info:
            validate_layout(header, 1)
        assert exc_info.value.kind is ErrorKind.SIZE_MISMATCH
