"""Byte order checks.

Multi-byte values are always stored little-endian. The host byte order is
computed once at import and only read afterwards.
"""

import logging
import sys

from tensorsafe.exceptions import UnsupportedEndianness

logger = logging.getLogger(__name__)

HOST_BYTEORDER: str = sys.byteorder
IS_LITTLE_ENDIAN: bool = HOST_BYTEORDER == "little"


def ensure_little_endian() -> None:
    """Fail fast on big-endian hosts.

    Raises:
        UnsupportedEndianness: If the host is not little-endian
    """
    if not IS_LITTLE_ENDIAN:
        logger.error(f"Refusing to process tensors on a {HOST_BYTEORDER}-endian host")
        raise UnsupportedEndianness(
            f"Host byte order is {HOST_BYTEORDER!r}; tensorsafe containers are "
            "little-endian and byte-swapping is not supported"
        )
