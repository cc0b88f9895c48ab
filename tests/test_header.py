"""Tests for the header codec."""

import json
import struct

import pytest

from tensorsafe.dtypes import DType
from tensorsafe.exceptions import (
    DuplicateTensorName,
    ErrorKind,
    MalformedHeader,
    UnknownDtype,
)
from tensorsafe.header import (
    HEADER_ALIGNMENT,
    decode_header,
    encode_header,
    read_header_length,
)
from tensorsafe.types import Header, TensorInfo


def raw_header(text: str) -> bytes:
    """Length-prefix a header text without any checks."""
    encoded = text.encode("utf-8")
    return struct.pack("<Q", len(encoded)) + encoded


class TestEncodeHeader:
    """Tests for encode_header."""

    def test_empty_header(self):
        assert encode_header(Header(tensors={})) == struct.pack("<Q", 8) + b"{}      "

    def test_padding_aligns_data_region(self):
        header = Header(tensors={"x": TensorInfo(DType.U8, (3,), (0, 3))})
        encoded = encode_header(header)
        (length,) = struct.unpack("<Q", encoded[:8])

        assert length == len(encoded) - 8
        assert len(encoded) % HEADER_ALIGNMENT == 0
        assert encoded[8:].rstrip(b" ") == (
            b'{"x":{"dtype":"U8","shape":[3],"data_offsets":[0,3]}}'
        )

    def test_entries_sorted_by_offset(self):
        header = Header(
            tensors={
                "late": TensorInfo(DType.F32, (1,), (8, 12)),
                "early": TensorInfo(DType.F64, (1,), (0, 8)),
            },
            metadata={"format": "pt"},
        )
        document = json.loads(encode_header(header)[8:])
        assert list(document) == ["__metadata__", "early", "late"]
        assert document["__metadata__"] == {"format": "pt"}

    def test_non_ascii_names_are_utf8(self):
        header = Header(tensors={"größe": TensorInfo(DType.U8, (1,), (0, 1))})
        encoded = encode_header(header)
        assert "größe".encode("utf-8") in encoded

    def test_round_trip(self):
        header = Header(
            tensors={
                "a": TensorInfo(DType.BF16, (2, 2), (0, 8)),
                "b": TensorInfo(DType.BOOL, (), (8, 9)),
            },
            metadata={"hello": "world"},
        )
        decoded, data_start = decode_header(encode_header(header) + bytes(9))

        assert data_start == len(encode_header(header))
        assert dict(decoded.tensors) == dict(header.tensors)
        assert decoded.metadata == {"hello": "world"}


class TestDecodeHeader:
    """Tests for decode_header failure modes."""

    def test_empty_buffer(self):
        with pytest.raises(MalformedHeader, match="deserializing header") as exc_info:
            decode_header(b"")
        assert exc_info.value.kind is ErrorKind.MALFORMED_HEADER

    def test_short_prefix(self):
        with pytest.raises(MalformedHeader, match="header too small"):
            read_header_length(b"\x01\x00")

    def test_length_beyond_buffer(self):
        data = struct.pack("<Q", 100) + b"{}"
        with pytest.raises(MalformedHeader, match="invalid header length"):
            decode_header(data)

    def test_length_over_limit(self):
        data = raw_header("{}")
        with pytest.raises(MalformedHeader, match="header too large"):
            decode_header(data, max_header_size=1)

    def test_invalid_utf8(self):
        data = struct.pack("<Q", 4) + b"{\xff\xfe}"
        with pytest.raises(MalformedHeader, match="UTF-8"):
            decode_header(data)

    def test_must_start_with_brace(self):
        with pytest.raises(MalformedHeader, match="start with"):
            decode_header(raw_header(" {}"))

    def test_invalid_json(self):
        with pytest.raises(MalformedHeader, match="invalid JSON"):
            decode_header(raw_header('{"a": '))

    def test_deeply_nested_json(self):
        depth = 200_000
        text = '{"a":' + "[" * depth + "]" * depth + "}"
        with pytest.raises(MalformedHeader, match="nesting is too deep"):
            decode_header(raw_header(text))

    def test_missing_field(self):
        text = '{"w":{"dtype":"F32","shape":[1]}}'
        with pytest.raises(MalformedHeader, match="data_offsets"):
            decode_header(raw_header(text))

    def test_tensor_entry_not_object(self):
        with pytest.raises(MalformedHeader, match="JSON object"):
            decode_header(raw_header('{"w":[1,2]}'))

    def test_negative_shape(self):
        text = '{"w":{"dtype":"F32","shape":[-1],"data_offsets":[0,0]}}'
        with pytest.raises(MalformedHeader, match="non-negative"):
            decode_header(raw_header(text))

    def test_float_offsets(self):
        text = '{"w":{"dtype":"F32","shape":[1],"data_offsets":[0,4.0]}}'
        with pytest.raises(MalformedHeader, match="non-negative"):
            decode_header(raw_header(text))

    def test_offsets_need_two_values(self):
        text = '{"w":{"dtype":"F32","shape":[1],"data_offsets":[0,4,8]}}'
        with pytest.raises(MalformedHeader, match="exactly two"):
            decode_header(raw_header(text))

    def test_unknown_dtype(self):
        text = '{"w":{"dtype":"C64","shape":[1],"data_offsets":[0,8]}}'
        with pytest.raises(UnknownDtype, match="C64"):
            decode_header(raw_header(text) + bytes(8))

    def test_metadata_values_must_be_strings(self):
        with pytest.raises(MalformedHeader, match="must be a string"):
            decode_header(raw_header('{"__metadata__":{"epochs":3}}'))

    def test_duplicate_tensor_names(self):
        entry = '{"dtype":"U8","shape":[1],"data_offsets":[0,1]}'
        text = '{"w":' + entry + ',"w":' + entry + "}"
        with pytest.raises(DuplicateTensorName, match="'w'") as exc_info:
            decode_header(raw_header(text))
        assert exc_info.value.name == "w"

    def test_duplicate_field_in_entry(self):
        text = '{"w":{"dtype":"U8","dtype":"U8","shape":[1],"data_offsets":[0,1]}}'
        with pytest.raises(MalformedHeader, match="duplicate key"):
            decode_header(raw_header(text))

    def test_empty_tensor_name(self):
        text = '{"":{"dtype":"U8","shape":[1],"data_offsets":[0,1]}}'
        with pytest.raises(MalformedHeader, match="non-empty"):
            decode_header(raw_header(text))

    def test_trailing_spaces_are_accepted(self):
        header, data_start = decode_header(raw_header("{}      "))
        assert header.tensors == {}
        assert header.metadata is None
        assert data_start == 16
