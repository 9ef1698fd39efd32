"""
SMBFuzzer Byte Field Utilities

Little-endian integer conversion, zero buffers, flag unions and the
alignment padding rule shared by the SMB2 encoders and decoders.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Iterable, Type, TypeVar, Union

from smbfuzzer.core.exceptions import DecodeError


E = TypeVar("E", bound=IntEnum)
F = TypeVar("F", bound=IntFlag)


def int_to_le(value: int, width: int) -> bytes:
    """Encode an unsigned integer as `width` little-endian bytes."""
    return value.to_bytes(width, "little")


def le_to_int(data: bytes) -> int:
    """Decode a little-endian byte sequence. Empty input decodes to 0."""
    return int.from_bytes(data, "little")


def zeros(width: int) -> bytes:
    """Fixed-size zero buffer."""
    return bytes(width)


def flag_union(flags: Iterable[Union[int, IntFlag]]) -> int:
    """
    Bitwise union of the given flag values.

    Duplicates collapse, so drawing the same flag twice has no effect.
    """
    combined = 0
    for flag in flags:
        combined |= int(flag)
    return combined


def encode_flags(flags: Iterable[Union[int, IntFlag]], width: int) -> bytes:
    """Pack a collection of flags into a little-endian field."""
    return int_to_le(flag_union(flags), width)


def decode_enum(enum_type: Type[E], data: bytes) -> E:
    """
    Map a little-endian wire code to its enum member.

    Raises:
        DecodeError: If the code has no mapping
    """
    code = le_to_int(data)
    try:
        return enum_type(code)
    except ValueError:
        raise DecodeError(
            f"Invalid {enum_type.__name__} code 0x{code:X}"
        ) from None


def alignment_padding(unpadded_end: int) -> bytes:
    """
    Zero padding inserted after an unaligned structure.

    The length is 8 - (unpadded_end % 8), which yields a full 8 bytes when
    the end is already aligned. Peers observe this on the wire, so it is
    kept as is.
    """
    return zeros(8 - unpadded_end % 8)


def utf16le(text: str) -> bytes:
    """UTF-16LE encoding used for SMB2 paths and NTLM strings."""
    return text.encode("utf-16-le")
