"""Tests for the dtype registry."""

import pytest

from tensorsafe.dtypes import DType, itemsize_of
from tensorsafe.exceptions import ErrorKind, UnknownDtype


class TestDType:
    """Tests for DType lookups."""

    @pytest.mark.parametrize(
        "tag,itemsize",
        [
            ("BOOL", 1),
            ("U8", 1),
            ("I8", 1),
            ("F8_E4M3", 1),
            ("F8_E5M2", 1),
            ("U16", 2),
            ("I16", 2),
            ("F16", 2),
            ("BF16", 2),
            ("U32", 4),
            ("I32", 4),
            ("F32", 4),
            ("U64", 8),
            ("I64", 8),
            ("F64", 8),
        ],
    )
    def test_itemsize(self, tag, itemsize):
        assert DType.from_tag(tag).itemsize == itemsize
        assert itemsize_of(tag) == itemsize

    def test_registry_is_closed(self):
        assert len(DType) == 15

    def test_tag_round_trip(self):
        for dtype in DType:
            assert DType.from_tag(dtype.tag) is dtype

    def test_member_passes_through(self):
        assert DType.from_tag(DType.F32) is DType.F32

    def test_unknown_tag(self):
        with pytest.raises(UnknownDtype, match="F128") as exc_info:
            DType.from_tag("F128")
        assert exc_info.value.kind is ErrorKind.UNKNOWN_DTYPE

    def test_tags_are_case_sensitive(self):
        with pytest.raises(UnknownDtype):
            itemsize_of("f32")
