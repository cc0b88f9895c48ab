"""Supported element types of the tensorsafe format."""

from enum import Enum
from typing import Dict

from tensorsafe.exceptions import UnknownDtype


class DType(Enum):
    """Element types understood by the format.

    The value of each member is the tag written to the header, which is also
    the identity token shared by every framework adapter.
    """

    BOOL = "BOOL"
    U8 = "U8"
    I8 = "I8"
    F8_E5M2 = "F8_E5M2"
    F8_E4M3 = "F8_E4M3"
    I16 = "I16"
    U16 = "U16"
    F16 = "F16"
    BF16 = "BF16"
    I32 = "I32"
    U32 = "U32"
    F32 = "F32"
    F64 = "F64"
    I64 = "I64"
    U64 = "U64"

    @classmethod
    def from_tag(cls, tag: str) -> "DType":
        """Look up a dtype by its header tag.

        Args:
            tag: Header tag such as ``"F32"``

        Returns:
            The matching DType

        Raises:
            UnknownDtype: If the tag is not part of the format
        """
        if isinstance(tag, cls):
            return tag
        try:
            return cls(tag)
        except ValueError:
            raise UnknownDtype(f"Unknown dtype: {tag!r}") from None

    @property
    def tag(self) -> str:
        return self.value

    @property
    def itemsize(self) -> int:
        """Width of one element in bytes."""
        return _ITEMSIZES[self]


_ITEMSIZES: Dict[DType, int] = {
    DType.BOOL: 1,
    DType.U8: 1,
    DType.I8: 1,
    DType.F8_E5M2: 1,
    DType.F8_E4M3: 1,
    DType.I16: 2,
    DType.U16: 2,
    DType.F16: 2,
    DType.BF16: 2,
    DType.I32: 4,
    DType.U32: 4,
    DType.F32: 4,
    DType.F64: 8,
    DType.I64: 8,
    DType.U64: 8,
}


def itemsize_of(tag: str) -> int:
    """Byte width for a header tag, raising UnknownDtype for foreign tags."""
    return DType.from_tag(tag).itemsize
