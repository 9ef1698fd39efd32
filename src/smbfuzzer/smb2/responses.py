"""
SMBFuzzer SMB2 Response Bodies

Decoders for the server responses the handshake reads: NEGOTIATE,
SESSION_SETUP, TREE_CONNECT and CREATE. Fields are taken from fixed byte
ranges of the body (the bytes after the 64-byte header).
"""

from __future__ import annotations

from typing import Optional, Tuple

import attrs

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import decode_enum, le_to_int
from smbfuzzer.smb2.enums import (
    Dialect,
    SecurityMode,
    SessionFlags,
    ShareCapabilities,
    ShareFlags,
    ShareType,
)
from smbfuzzer.smb2.header import HEADER_LENGTH
from smbfuzzer.smb2.negotiate_context import NegotiateContext, decode_context_list


def _require(body: bytes, length: int, name: str) -> None:
    if len(body) < length:
        raise DecodeError(f"{name} response truncated: {len(body)} bytes")


# =============================================================================
# NEGOTIATE RESPONSE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class NegotiateResponse:
    """SMB2 NEGOTIATE response (MS-SMB2 2.2.4)."""

    structure_size: bytes
    security_mode: SecurityMode
    dialect_revision: Dialect
    negotiate_context_count: bytes
    server_guid: bytes
    capabilities: bytes
    max_transact_size: bytes
    max_read_size: bytes
    max_write_size: bytes
    system_time: bytes
    server_start_time: bytes
    security_buffer_offset: bytes
    security_buffer_length: bytes
    negotiate_context_offset: bytes
    buffer: bytes
    padding: bytes = b""
    negotiate_context_list: Tuple[NegotiateContext, ...] = ()

    @classmethod
    def from_bytes(cls, body: bytes) -> "NegotiateResponse":
        """
        Decode a NEGOTIATE response body.

        Contexts are only present for dialect 3.1.1.

        Raises:
            DecodeError: For an unmapped security mode, dialect or context
        """
        _require(body, 64, "NEGOTIATE")
        security_mode = decode_enum(SecurityMode, body[2:4])
        dialect = decode_enum(Dialect, body[4:6])
        buffer_length = le_to_int(body[58:60])
        buffer_end = 64 + buffer_length
        context_offset = le_to_int(body[60:64])

        padding = b""
        contexts: Tuple[NegotiateContext, ...] = ()
        if dialect == Dialect.SMB_3_1_1:
            context_start = context_offset - HEADER_LENGTH
            padding = body[buffer_end:context_start]
            contexts = tuple(
                decode_context_list(body, context_start, le_to_int(body[6:8]))
            )

        return cls(
            structure_size=body[0:2],
            security_mode=security_mode,
            dialect_revision=dialect,
            negotiate_context_count=body[6:8],
            server_guid=body[8:24],
            capabilities=body[24:28],
            max_transact_size=body[28:32],
            max_read_size=body[32:36],
            max_write_size=body[36:40],
            system_time=body[40:48],
            server_start_time=body[48:56],
            security_buffer_offset=body[56:58],
            security_buffer_length=body[58:60],
            negotiate_context_offset=body[60:64],
            buffer=body[64:buffer_end],
            padding=padding,
            negotiate_context_list=contexts,
        )


# =============================================================================
# SESSION SETUP RESPONSE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class SessionSetupResponse:
    """SMB2 SESSION_SETUP response (MS-SMB2 2.2.6). buffer holds the SPNEGO token."""

    structure_size: bytes
    session_flags: bytes
    security_buffer_offset: bytes
    security_buffer_length: bytes
    buffer: bytes

    @property
    def flags(self) -> SessionFlags:
        return SessionFlags(le_to_int(self.session_flags))

    @classmethod
    def from_bytes(cls, body: bytes) -> "SessionSetupResponse":
        _require(body, 8, "SESSION_SETUP")
        return cls(
            structure_size=body[0:2],
            session_flags=body[2:4],
            security_buffer_offset=body[4:6],
            security_buffer_length=body[6:8],
            buffer=body[8 : 8 + le_to_int(body[6:8])],
        )


# =============================================================================
# TREE CONNECT RESPONSE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class TreeConnectResponse:
    """SMB2 TREE_CONNECT response (MS-SMB2 2.2.10)."""

    structure_size: bytes
    share_type: ShareType
    reserved: bytes
    share_flags: bytes
    capabilities: bytes
    maximal_access: bytes

    @property
    def flags(self) -> ShareFlags:
        """Share flags; caching policy values overlap the flag bits."""
        return ShareFlags(le_to_int(self.share_flags))

    @property
    def share_capabilities(self) -> ShareCapabilities:
        return ShareCapabilities(le_to_int(self.capabilities))

    @classmethod
    def from_bytes(cls, body: bytes) -> "TreeConnectResponse":
        _require(body, 16, "TREE_CONNECT")
        return cls(
            structure_size=body[0:2],
            share_type=decode_enum(ShareType, body[2:3]),
            reserved=body[3:4],
            share_flags=body[4:8],
            capabilities=body[8:12],
            maximal_access=body[12:16],
        )


# =============================================================================
# CREATE RESPONSE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class CreateResponse:
    """SMB2 CREATE response (MS-SMB2 2.2.14). file_id is body[64:80]."""

    structure_size: bytes
    oplock_level: bytes
    flags: bytes
    create_action: bytes
    creation_time: bytes
    last_access_time: bytes
    last_write_time: bytes
    change_time: bytes
    allocation_size: bytes
    end_of_file: bytes
    file_attributes: bytes
    reserved2: bytes
    file_id: bytes
    create_contexts_offset: bytes
    create_contexts_length: bytes
    buffer: bytes

    @classmethod
    def from_bytes(cls, body: bytes) -> "CreateResponse":
        _require(body, 88, "CREATE")
        return cls(
            structure_size=body[0:2],
            oplock_level=body[2:3],
            flags=body[3:4],
            create_action=body[4:8],
            creation_time=body[8:16],
            last_access_time=body[16:24],
            last_write_time=body[24:32],
            change_time=body[32:40],
            allocation_size=body[40:48],
            end_of_file=body[48:56],
            file_attributes=body[56:60],
            reserved2=body[60:64],
            file_id=body[64:80],
            create_contexts_offset=body[80:84],
            create_contexts_length=body[84:88],
            buffer=body[88:],
        )


def extract_file_id(body: bytes) -> Optional[bytes]:
    """File id of a CREATE response body, or None if the body is too short."""
    if len(body) < 80:
        return None
    return body[64:80]
