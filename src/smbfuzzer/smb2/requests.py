"""
SMBFuzzer SMB2 Request Bodies

The seven request bodies the fuzzer sends: NEGOTIATE, SESSION_SETUP,
TREE_CONNECT, CREATE, QUERY_INFO, CLOSE and ECHO.

Each body is a frozen value whose fields are raw byte strings in wire
order. `WIRE_FIELDS` lists (name, width) pairs; a width of None marks the
trailing variable-length buffer. Keeping raw bytes lets the fuzzing
engine resize any field, including ones with a fixed protocol width.

Offset fields (name_offset, security_buffer_offset, path_offset) are
frame-relative: counted from the first byte of the SMB2 header.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Sequence, Tuple, Type, TypeVar, Union

import attrs

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import int_to_le, le_to_int, zeros
from smbfuzzer.smb2.header import HEADER_LENGTH, Command
from smbfuzzer.smb2.negotiate_context import (
    NegotiateContext,
    decode_context_list,
    encode_context_list,
)


WireFields = Tuple[Tuple[str, Optional[int]], ...]

B = TypeVar("B")


def _encode_fields(body: object, wire_fields: WireFields) -> bytes:
    return b"".join(getattr(body, name) for name, _ in wire_fields)


def _decode_fields(cls: Type[B], body: bytes, wire_fields: WireFields) -> B:
    values: Dict[str, bytes] = {}
    position = 0
    for name, width in wire_fields:
        if width is None:
            values[name] = body[position:]
            position = len(body)
        else:
            if position + width > len(body):
                raise DecodeError(
                    f"{cls.__name__} body truncated at field {name}: {len(body)} bytes"
                )
            values[name] = body[position : position + width]
            position += width
    return cls(**values)


def fixed_length(wire_fields: WireFields) -> int:
    """Length of the fixed-width part of a body."""
    return sum(width for _, width in wire_fields if width is not None)


# =============================================================================
# NEGOTIATE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Negotiate:
    """
    SMB2 NEGOTIATE request (MS-SMB2 2.2.3).

    Dialects follow the 36-byte fixed part. When contexts are present,
    padding aligns the first context to the offset in
    negotiate_context_offset.
    """

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("dialect_count", 2),
        ("security_mode", 2),
        ("reserved", 2),
        ("capabilities", 4),
        ("client_guid", 16),
        ("negotiate_context_offset", 4),
        ("negotiate_context_count", 2),
        ("reserved2", 2),
    )

    structure_size: bytes = b"\x24\x00"
    dialect_count: bytes = zeros(2)
    security_mode: bytes = zeros(2)
    reserved: bytes = zeros(2)
    capabilities: bytes = zeros(4)
    client_guid: bytes = zeros(16)
    negotiate_context_offset: bytes = zeros(4)
    negotiate_context_count: bytes = zeros(2)
    reserved2: bytes = zeros(2)
    dialects: Tuple[bytes, ...] = ()
    padding: bytes = b""
    negotiate_context_list: Tuple[NegotiateContext, ...] = ()

    def to_bytes(self) -> bytes:
        encoded = _encode_fields(self, self.WIRE_FIELDS)
        encoded += b"".join(self.dialects) + self.padding
        encoded += encode_context_list(
            self.negotiate_context_list, le_to_int(self.negotiate_context_offset)
        )
        return encoded

    @classmethod
    def from_bytes(cls, body: bytes) -> "Negotiate":
        fixed = _decode_fields(cls, body[: fixed_length(cls.WIRE_FIELDS)], cls.WIRE_FIELDS)
        count = le_to_int(fixed.dialect_count)
        dialects_start = fixed_length(cls.WIRE_FIELDS)
        dialects_end = dialects_start + 2 * count
        dialects = tuple(
            body[dialects_start + 2 * i : dialects_start + 2 * i + 2] for i in range(count)
        )

        context_count = le_to_int(fixed.negotiate_context_count)
        if context_count == 0:
            return attrs.evolve(fixed, dialects=dialects, padding=body[dialects_end:])

        context_start = le_to_int(fixed.negotiate_context_offset) - HEADER_LENGTH
        contexts = decode_context_list(body, context_start, context_count)
        return attrs.evolve(
            fixed,
            dialects=dialects,
            padding=body[dialects_end:context_start],
            negotiate_context_list=tuple(contexts),
        )


# =============================================================================
# SESSION SETUP
# =============================================================================


@attrs.define(frozen=True, slots=True)
class SessionSetup:
    """SMB2 SESSION_SETUP request (MS-SMB2 2.2.5)."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("flags", 1),
        ("security_mode", 1),
        ("capabilities", 4),
        ("channel", 4),
        ("security_buffer_offset", 2),
        ("security_buffer_length", 2),
        ("previous_session_id", 8),
        ("buffer", None),
    )

    structure_size: bytes = b"\x19\x00"
    flags: bytes = zeros(1)
    security_mode: bytes = zeros(1)
    capabilities: bytes = zeros(4)
    channel: bytes = zeros(4)
    security_buffer_offset: bytes = zeros(2)
    security_buffer_length: bytes = zeros(2)
    previous_session_id: bytes = zeros(8)
    buffer: bytes = b""

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "SessionSetup":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


# =============================================================================
# TREE CONNECT
# =============================================================================


@attrs.define(frozen=True, slots=True)
class TreeConnect:
    """SMB2 TREE_CONNECT request (MS-SMB2 2.2.9). buffer is the UTF-16LE share path."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("flags", 2),
        ("path_offset", 2),
        ("path_length", 2),
        ("buffer", None),
    )

    structure_size: bytes = b"\x09\x00"
    flags: bytes = zeros(2)
    path_offset: bytes = zeros(2)
    path_length: bytes = zeros(2)
    buffer: bytes = b""

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "TreeConnect":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


# =============================================================================
# CREATE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Create:
    """SMB2 CREATE request (MS-SMB2 2.2.13). buffer is the UTF-16LE file name."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("security_flag", 1),
        ("requested_oplock_level", 1),
        ("impersonation_level", 4),
        ("smb_create_flags", 8),
        ("reserved", 8),
        ("desired_access", 4),
        ("file_attributes", 4),
        ("share_access", 4),
        ("create_disposition", 4),
        ("create_options", 4),
        ("name_offset", 2),
        ("name_length", 2),
        ("create_contexts_offset", 4),
        ("create_contexts_length", 4),
        ("buffer", None),
    )

    structure_size: bytes = b"\x39\x00"
    security_flag: bytes = zeros(1)
    requested_oplock_level: bytes = zeros(1)
    impersonation_level: bytes = zeros(4)
    smb_create_flags: bytes = zeros(8)
    reserved: bytes = zeros(8)
    desired_access: bytes = zeros(4)
    file_attributes: bytes = zeros(4)
    share_access: bytes = zeros(4)
    create_disposition: bytes = zeros(4)
    create_options: bytes = zeros(4)
    name_offset: bytes = zeros(2)
    name_length: bytes = zeros(2)
    create_contexts_offset: bytes = zeros(4)
    create_contexts_length: bytes = zeros(4)
    buffer: bytes = b""

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "Create":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


# =============================================================================
# QUERY INFO
# =============================================================================


@attrs.define(frozen=True, slots=True)
class QueryInfo:
    """SMB2 QUERY_INFO request (MS-SMB2 2.2.37)."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("info_type", 1),
        ("file_info_class", 1),
        ("output_buffer_length", 4),
        ("input_buffer_offset", 2),
        ("reserved", 2),
        ("input_buffer_length", 4),
        ("additional_information", 4),
        ("flags", 4),
        ("file_id", 16),
        ("buffer", None),
    )

    structure_size: bytes = b"\x29\x00"
    info_type: bytes = zeros(1)
    file_info_class: bytes = zeros(1)
    output_buffer_length: bytes = zeros(4)
    input_buffer_offset: bytes = zeros(2)
    reserved: bytes = zeros(2)
    input_buffer_length: bytes = zeros(4)
    additional_information: bytes = zeros(4)
    flags: bytes = zeros(4)
    file_id: bytes = zeros(16)
    buffer: bytes = b""

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "QueryInfo":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


# =============================================================================
# CLOSE / ECHO
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Close:
    """SMB2 CLOSE request (MS-SMB2 2.2.15)."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("flags", 2),
        ("reserved", 4),
        ("file_id", 16),
    )

    structure_size: bytes = b"\x18\x00"
    flags: bytes = zeros(2)
    reserved: bytes = zeros(4)
    file_id: bytes = zeros(16)

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "Close":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


@attrs.define(frozen=True, slots=True)
class Echo:
    """SMB2 ECHO request (MS-SMB2 2.2.28)."""

    WIRE_FIELDS = (
        ("structure_size", 2),
        ("reserved", 2),
    )

    structure_size: bytes = b"\x04\x00"
    reserved: bytes = zeros(2)

    def to_bytes(self) -> bytes:
        return _encode_fields(self, self.WIRE_FIELDS)

    @classmethod
    def from_bytes(cls, body: bytes) -> "Echo":
        return _decode_fields(cls, body, cls.WIRE_FIELDS)


RequestBody = Union[Negotiate, SessionSetup, TreeConnect, Create, QueryInfo, Close, Echo]


# =============================================================================
# MESSAGE TYPES
# =============================================================================


class MessageType(Enum):
    """
    Request kinds the fuzzer can target.

    SESSION_SETUP appears twice: the NTLM NEGOTIATE leg and the NTLM
    AUTHENTICATE leg share a body type but not a handshake position.
    """

    NEGOTIATE = "negotiate"
    SESSION_SETUP_NEGOTIATE = "session_setup_neg"
    SESSION_SETUP_AUTHENTICATE = "session_setup_auth"
    TREE_CONNECT = "tree_connect"
    CREATE = "create"
    QUERY_INFO = "query_info"
    CLOSE = "close"
    ECHO = "echo"

    @property
    def command(self) -> Command:
        return _MESSAGE_COMMANDS[self]

    @property
    def body_type(self) -> type:
        return _COMMAND_BODIES[self.command]


_MESSAGE_COMMANDS: Dict[MessageType, Command] = {
    MessageType.NEGOTIATE: Command.NEGOTIATE,
    MessageType.SESSION_SETUP_NEGOTIATE: Command.SESSION_SETUP,
    MessageType.SESSION_SETUP_AUTHENTICATE: Command.SESSION_SETUP,
    MessageType.TREE_CONNECT: Command.TREE_CONNECT,
    MessageType.CREATE: Command.CREATE,
    MessageType.QUERY_INFO: Command.QUERY_INFO,
    MessageType.CLOSE: Command.CLOSE,
    MessageType.ECHO: Command.ECHO,
}

_COMMAND_BODIES: Dict[Command, type] = {
    Command.NEGOTIATE: Negotiate,
    Command.SESSION_SETUP: SessionSetup,
    Command.TREE_CONNECT: TreeConnect,
    Command.CREATE: Create,
    Command.QUERY_INFO: QueryInfo,
    Command.CLOSE: Close,
    Command.ECHO: Echo,
}


def decode_request_body(command: Command, body: bytes) -> RequestBody:
    """
    Parse a request body for the given command.

    Raises:
        DecodeError: If no request body is defined for the command
    """
    body_type = _COMMAND_BODIES.get(command)
    if body_type is None:
        raise DecodeError(f"No request body for command {command.name}")
    return body_type.from_bytes(body)


def with_derived_lengths(
    body: Union[SessionSetup, TreeConnect, Create],
) -> Union[SessionSetup, TreeConnect, Create]:
    """
    Recompute a body's buffer offset/length fields from its buffer.

    Offsets are frame-relative: header length plus the fixed part.

    Raises:
        TypeError: For a body without buffer offset fields
    """
    if not isinstance(body, (SessionSetup, TreeConnect, Create)):
        raise TypeError(f"No buffer offset fields on {type(body).__name__}")

    offset = int_to_le(HEADER_LENGTH + fixed_length(body.WIRE_FIELDS), 2)
    length = int_to_le(len(body.buffer), 2)
    if isinstance(body, SessionSetup):
        return attrs.evolve(body, security_buffer_offset=offset, security_buffer_length=length)
    if isinstance(body, TreeConnect):
        return attrs.evolve(body, path_offset=offset, path_length=length)
    # name_length excludes the terminating NUL
    name_length = len(body.buffer)
    if body.buffer.endswith(b"\x00\x00"):
        name_length -= 2
    return attrs.evolve(body, name_offset=offset, name_length=int_to_le(name_length, 2))


def dialect_codes(dialects: Sequence[int]) -> Tuple[bytes, ...]:
    """Two-byte little-endian dialect codes."""
    return tuple(int_to_le(d, 2) for d in dialects)
