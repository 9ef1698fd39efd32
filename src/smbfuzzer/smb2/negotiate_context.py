"""
SMBFuzzer Negotiate Contexts

SMB 3.1.1 NEGOTIATE context list (MS-SMB2 2.2.3.1).

The six context kinds form a closed union. Each kind is a plain value
type; serialization, deserialization and type tagging each dispatch in
exactly one place (`encode_context_data`, `decode_context_data`,
`context_type_of`).

Layout of one entry:
    ContextType (2) | DataLength (2) | Reserved (4) | Data (DataLength)

Non-terminal entries are followed by zero padding whose length is
8 - (unpadded_end % 8), measured from the start of the SMB2 header.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import attrs

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import (
    alignment_padding,
    decode_enum,
    int_to_le,
    le_to_int,
    utf16le,
    zeros,
)


CONTEXT_HEADER_LENGTH = 8


# =============================================================================
# ENUMERATIONS
# =============================================================================


class ContextType(IntEnum):
    """Negotiate context type codes."""

    PREAUTH_INTEGRITY_CAPABILITIES = 0x0001
    ENCRYPTION_CAPABILITIES = 0x0002
    COMPRESSION_CAPABILITIES = 0x0003
    NETNAME_NEGOTIATE_CONTEXT_ID = 0x0005
    TRANSPORT_CAPABILITIES = 0x0006
    RDMA_TRANSFORM_CAPABILITIES = 0x0007


class HashAlgorithm(IntEnum):
    """Preauth integrity hash algorithms."""

    SHA512 = 0x0001


class Cipher(IntEnum):
    """Encryption ciphers."""

    AES128_CCM = 0x0001
    AES128_GCM = 0x0002
    AES256_CCM = 0x0003
    AES256_GCM = 0x0004


class CompressionAlgorithm(IntEnum):
    """Compression algorithms."""

    NONE = 0x0000
    LZNT1 = 0x0001
    LZ77 = 0x0002
    LZ77_HUFFMAN = 0x0003
    PATTERN_V1 = 0x0004


class CompressionFlags(IntEnum):
    """Compression capability flags."""

    NONE = 0x00000000
    CHAINED = 0x00000001


class RdmaTransformId(IntEnum):
    """RDMA transform identifiers."""

    NONE = 0x0000
    ENCRYPTION = 0x0001


def _codes(values: Iterable[int]) -> Tuple[bytes, ...]:
    return tuple(int_to_le(v, 2) for v in values)


# =============================================================================
# CONTEXT DATA
# =============================================================================


@attrs.define(frozen=True, slots=True)
class PreauthIntegrityCapabilities:
    """SMB2_PREAUTH_INTEGRITY_CAPABILITIES."""

    hash_algorithm_count: bytes = zeros(2)
    salt_length: bytes = zeros(2)
    hash_algorithms: Tuple[bytes, ...] = ()
    salt: bytes = b""

    @classmethod
    def create(
        cls, hash_algorithms: Sequence[HashAlgorithm], salt: bytes
    ) -> "PreauthIntegrityCapabilities":
        """Build with counts derived from the collections."""
        return cls(
            hash_algorithm_count=int_to_le(len(hash_algorithms), 2),
            salt_length=int_to_le(len(salt), 2),
            hash_algorithms=_codes(hash_algorithms),
            salt=salt,
        )


@attrs.define(frozen=True, slots=True)
class EncryptionCapabilities:
    """SMB2_ENCRYPTION_CAPABILITIES."""

    cipher_count: bytes = zeros(2)
    ciphers: Tuple[bytes, ...] = ()

    @classmethod
    def create(cls, ciphers: Sequence[Cipher]) -> "EncryptionCapabilities":
        return cls(cipher_count=int_to_le(len(ciphers), 2), ciphers=_codes(ciphers))


@attrs.define(frozen=True, slots=True)
class CompressionCapabilities:
    """SMB2_COMPRESSION_CAPABILITIES."""

    compression_algorithm_count: bytes = zeros(2)
    padding: bytes = zeros(2)
    flags: bytes = zeros(4)
    compression_algorithms: Tuple[bytes, ...] = ()

    @classmethod
    def create(
        cls,
        algorithms: Sequence[CompressionAlgorithm],
        flags: CompressionFlags = CompressionFlags.NONE,
    ) -> "CompressionCapabilities":
        return cls(
            compression_algorithm_count=int_to_le(len(algorithms), 2),
            flags=int_to_le(flags, 4),
            compression_algorithms=_codes(algorithms),
        )


@attrs.define(frozen=True, slots=True)
class NetnameNegotiateContextId:
    """SMB2_NETNAME_NEGOTIATE_CONTEXT_ID. net_name is UTF-16LE."""

    net_name: bytes = b""

    @classmethod
    def create(cls, name: str) -> "NetnameNegotiateContextId":
        return cls(net_name=utf16le(name))


@attrs.define(frozen=True, slots=True)
class TransportCapabilities:
    """SMB2_TRANSPORT_CAPABILITIES."""

    reserved: bytes = zeros(4)


@attrs.define(frozen=True, slots=True)
class RdmaTransformCapabilities:
    """SMB2_RDMA_TRANSFORM_CAPABILITIES."""

    transform_count: bytes = zeros(2)
    reserved1: bytes = zeros(2)
    reserved2: bytes = zeros(4)
    rdma_transform_ids: Tuple[bytes, ...] = ()

    @classmethod
    def create(cls, transform_ids: Sequence[RdmaTransformId]) -> "RdmaTransformCapabilities":
        return cls(
            transform_count=int_to_le(len(transform_ids), 2),
            rdma_transform_ids=_codes(transform_ids),
        )


ContextData = Union[
    PreauthIntegrityCapabilities,
    EncryptionCapabilities,
    CompressionCapabilities,
    NetnameNegotiateContextId,
    TransportCapabilities,
    RdmaTransformCapabilities,
]


# =============================================================================
# DISPATCH
# =============================================================================


def context_type_of(data: ContextData) -> ContextType:
    """Type tag of a context payload."""
    if isinstance(data, PreauthIntegrityCapabilities):
        return ContextType.PREAUTH_INTEGRITY_CAPABILITIES
    if isinstance(data, EncryptionCapabilities):
        return ContextType.ENCRYPTION_CAPABILITIES
    if isinstance(data, CompressionCapabilities):
        return ContextType.COMPRESSION_CAPABILITIES
    if isinstance(data, NetnameNegotiateContextId):
        return ContextType.NETNAME_NEGOTIATE_CONTEXT_ID
    if isinstance(data, TransportCapabilities):
        return ContextType.TRANSPORT_CAPABILITIES
    if isinstance(data, RdmaTransformCapabilities):
        return ContextType.RDMA_TRANSFORM_CAPABILITIES
    raise TypeError(f"Not a negotiate context payload: {type(data).__name__}")


def encode_context_data(data: ContextData) -> bytes:
    """Serialize a context payload (without the 8-byte context header)."""
    if isinstance(data, PreauthIntegrityCapabilities):
        return b"".join(
            (data.hash_algorithm_count, data.salt_length, *data.hash_algorithms, data.salt)
        )
    if isinstance(data, EncryptionCapabilities):
        return b"".join((data.cipher_count, *data.ciphers))
    if isinstance(data, CompressionCapabilities):
        return b"".join(
            (
                data.compression_algorithm_count,
                data.padding,
                data.flags,
                *data.compression_algorithms,
            )
        )
    if isinstance(data, NetnameNegotiateContextId):
        return data.net_name
    if isinstance(data, TransportCapabilities):
        return data.reserved
    if isinstance(data, RdmaTransformCapabilities):
        return b"".join(
            (data.transform_count, data.reserved1, data.reserved2, *data.rdma_transform_ids)
        )
    raise TypeError(f"Not a negotiate context payload: {type(data).__name__}")


def _read_codes(data: bytes, start: int, count: int, enum_type: type) -> Tuple[bytes, ...]:
    codes = []
    for index in range(count):
        code = data[start + 2 * index : start + 2 * index + 2]
        if len(code) != 2:
            raise DecodeError(f"Truncated {enum_type.__name__} list")
        decode_enum(enum_type, code)
        codes.append(code)
    return tuple(codes)


def decode_context_data(context_type: ContextType, data: bytes) -> ContextData:
    """
    Parse a context payload of the given type.

    Raises:
        DecodeError: If an algorithm, cipher or transform id is unmapped,
            or the payload is truncated
    """
    if context_type == ContextType.PREAUTH_INTEGRITY_CAPABILITIES:
        count = le_to_int(data[0:2])
        salt_length = le_to_int(data[2:4])
        salt_start = 4 + 2 * count
        return PreauthIntegrityCapabilities(
            hash_algorithm_count=data[0:2],
            salt_length=data[2:4],
            hash_algorithms=_read_codes(data, 4, count, HashAlgorithm),
            salt=data[salt_start : salt_start + salt_length],
        )
    if context_type == ContextType.ENCRYPTION_CAPABILITIES:
        count = le_to_int(data[0:2])
        return EncryptionCapabilities(
            cipher_count=data[0:2],
            ciphers=_read_codes(data, 2, count, Cipher),
        )
    if context_type == ContextType.COMPRESSION_CAPABILITIES:
        count = le_to_int(data[0:2])
        return CompressionCapabilities(
            compression_algorithm_count=data[0:2],
            padding=data[2:4],
            flags=data[4:8],
            compression_algorithms=_read_codes(data, 8, count, CompressionAlgorithm),
        )
    if context_type == ContextType.NETNAME_NEGOTIATE_CONTEXT_ID:
        return NetnameNegotiateContextId(net_name=data)
    if context_type == ContextType.TRANSPORT_CAPABILITIES:
        return TransportCapabilities(reserved=data[0:4])
    if context_type == ContextType.RDMA_TRANSFORM_CAPABILITIES:
        count = le_to_int(data[0:2])
        return RdmaTransformCapabilities(
            transform_count=data[0:2],
            reserved1=data[2:4],
            reserved2=data[4:8],
            rdma_transform_ids=_read_codes(data, 8, count, RdmaTransformId),
        )
    raise DecodeError(f"Invalid negotiate context type {context_type!r}")


# =============================================================================
# CONTEXT ENTRY
# =============================================================================


@attrs.define(frozen=True, slots=True)
class NegotiateContext:
    """
    One entry of the negotiate context list.

    Use `wrap` to build an entry; it derives context_type and data_length
    from the payload.
    """

    context_type: bytes
    data_length: bytes
    reserved: bytes = zeros(4)
    data: Optional[ContextData] = None

    @classmethod
    def wrap(cls, data: ContextData) -> "NegotiateContext":
        """Build an entry whose tag and length match the payload."""
        return cls(
            context_type=int_to_le(context_type_of(data), 2),
            data_length=int_to_le(len(encode_context_data(data)), 2),
            data=data,
        )

    def to_bytes(self) -> bytes:
        """Serialize header and payload (no trailing padding)."""
        payload = encode_context_data(self.data) if self.data is not None else b""
        return self.context_type + self.data_length + self.reserved + payload


def encode_context_list(contexts: Sequence[NegotiateContext], start_offset: int) -> bytes:
    """
    Serialize a context list.

    Args:
        contexts: Entries in order
        start_offset: Frame-relative offset (from header start) of the
            first entry, i.e. the NegotiateContextOffset value

    Returns:
        Entries with alignment padding between non-terminal entries
    """
    encoded = b""
    for index, context in enumerate(contexts):
        encoded += context.to_bytes()
        if index < len(contexts) - 1:
            encoded += alignment_padding(start_offset + len(encoded))
    return encoded


def decode_context_list(
    body: bytes,
    start: int,
    count: int,
    header_length: int = 64,
) -> List[NegotiateContext]:
    """
    Walk a context list.

    Args:
        body: Message body (bytes following the SMB2 header)
        start: Body-relative offset of the first entry
        count: Number of entries to read
        header_length: Bytes preceding the body, used for alignment

    Raises:
        DecodeError: For unmapped context types or payload codes, or when
            fewer than `count` complete entries are present
    """
    contexts: List[NegotiateContext] = []
    position = start
    for index in range(count):
        if position + CONTEXT_HEADER_LENGTH > len(body):
            raise DecodeError(
                f"Negotiate context {index} of {count} truncated at offset {position}"
            )
        raw_type = body[position : position + 2]
        raw_length = body[position + 2 : position + 4]
        reserved = body[position + 4 : position + 8]
        data_start = position + CONTEXT_HEADER_LENGTH
        data_end = data_start + le_to_int(raw_length)
        if data_end > len(body):
            raise DecodeError(
                f"Negotiate context {index} data truncated: need {data_end}, have {len(body)}"
            )

        context_type = decode_enum(ContextType, raw_type)
        data = decode_context_data(context_type, body[data_start:data_end])
        contexts.append(
            NegotiateContext(
                context_type=raw_type,
                data_length=raw_length,
                reserved=reserved,
                data=data,
            )
        )

        if index < count - 1:
            position = data_end + len(alignment_padding(header_length + data_end))
    return contexts
