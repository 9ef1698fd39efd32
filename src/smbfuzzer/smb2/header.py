"""
SMBFuzzer SMB2 Header

The 64-byte synchronous SMB2 packet header (MS-SMB2 2.2.1.2).

Every field is held as raw bytes so that fuzzed headers can carry
fields of any width. `to_bytes` of a well-formed header is always
exactly 64 bytes.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Optional

import attrs

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import decode_enum, int_to_le, le_to_int, zeros


PROTOCOL_ID = b"\xfeSMB"
HEADER_STRUCTURE_SIZE = b"\x40\x00"
HEADER_LENGTH = 64


# =============================================================================
# ENUMERATIONS
# =============================================================================


class Command(IntEnum):
    """SMB2 command codes."""

    NEGOTIATE = 0x0000
    SESSION_SETUP = 0x0001
    LOGOFF = 0x0002
    TREE_CONNECT = 0x0003
    TREE_DISCONNECT = 0x0004
    CREATE = 0x0005
    CLOSE = 0x0006
    FLUSH = 0x0007
    READ = 0x0008
    WRITE = 0x0009
    LOCK = 0x000A
    IOCTL = 0x000B
    CANCEL = 0x000C
    ECHO = 0x000D
    QUERY_DIRECTORY = 0x000E
    CHANGE_NOTIFY = 0x000F
    QUERY_INFO = 0x0010
    SET_INFO = 0x0011
    OPLOCK_BREAK = 0x0012


class HeaderFlags(IntFlag):
    """SMB2 header flags."""

    SERVER_TO_REDIR = 0x00000001
    ASYNC_COMMAND = 0x00000002
    RELATED_OPERATIONS = 0x00000004
    SIGNED = 0x00000008
    PRIORITY_MASK = 0x00000070
    DFS_OPERATIONS = 0x10000000
    REPLAY_OPERATION = 0x20000000


# =============================================================================
# HEADER
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Header:
    """
    SMB2 synchronous packet header.

    In responses the channel_sequence and reserved fields together hold
    the 4-byte NT status code.
    """

    protocol_id: bytes = PROTOCOL_ID
    structure_size: bytes = HEADER_STRUCTURE_SIZE
    credit_charge: bytes = zeros(2)
    channel_sequence: bytes = zeros(2)
    reserved: bytes = zeros(2)
    command: bytes = zeros(2)
    credit: bytes = zeros(2)
    flags: bytes = zeros(4)
    next_command: bytes = zeros(4)
    message_id: bytes = zeros(8)
    reserved2: bytes = zeros(4)
    tree_id: bytes = zeros(4)
    session_id: bytes = zeros(8)
    signature: bytes = zeros(16)

    @property
    def command_code(self) -> Command:
        """Decoded command. Raises DecodeError for unmapped codes."""
        return decode_enum(Command, self.command)

    @property
    def header_flags(self) -> HeaderFlags:
        """Decoded flag set."""
        return HeaderFlags(le_to_int(self.flags))

    @property
    def status(self) -> int:
        """NT status of a response header."""
        return le_to_int(self.channel_sequence + self.reserved)

    def to_bytes(self) -> bytes:
        """Serialize fields in wire order."""
        return b"".join(
            (
                self.protocol_id,
                self.structure_size,
                self.credit_charge,
                self.channel_sequence,
                self.reserved,
                self.command,
                self.credit,
                self.flags,
                self.next_command,
                self.message_id,
                self.reserved2,
                self.tree_id,
                self.session_id,
                self.signature,
            )
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Header":
        """
        Parse a header from a 64-byte slice.

        Fields are copied verbatim; no field is validated here. Use
        `command_code` to map the command.

        Raises:
            DecodeError: If fewer than 64 bytes are supplied
        """
        if len(data) < HEADER_LENGTH:
            raise DecodeError(f"Header too short: {len(data)} bytes")

        return cls(
            protocol_id=data[0:4],
            structure_size=data[4:6],
            credit_charge=data[6:8],
            channel_sequence=data[8:10],
            reserved=data[10:12],
            command=data[12:14],
            credit=data[14:16],
            flags=data[16:20],
            next_command=data[20:24],
            message_id=data[24:32],
            reserved2=data[32:36],
            tree_id=data[36:40],
            session_id=data[40:48],
            signature=data[48:64],
        )


def build_sync_header(
    command: Command,
    credit_charge: int,
    credit_request: int,
    tree_id: Optional[bytes] = None,
    session_id: Optional[bytes] = None,
    message_id: int = 0,
) -> Header:
    """
    Build a synchronous request header.

    Tree and session ids default to zero until a response has supplied
    them. The DFS flag is always set.
    """
    return Header(
        credit_charge=int_to_le(credit_charge, 2),
        command=int_to_le(command, 2),
        credit=int_to_le(credit_request, 2),
        flags=int_to_le(HeaderFlags.DFS_OPERATIONS, 4),
        message_id=int_to_le(message_id, 8),
        tree_id=tree_id if tree_id is not None else zeros(4),
        session_id=session_id if session_id is not None else zeros(8),
    )


def decode_header(data: bytes) -> Header:
    """Decode the 64 header bytes that follow the transport prefix."""
    return Header.from_bytes(data[:HEADER_LENGTH])
