"""
SMBFuzzer Frame Codec

Direct-TCP transport framing (MS-SMB2 2.1): one zero byte followed by a
3-byte big-endian length, then the SMB2 header and body.
"""

from __future__ import annotations

from typing import Tuple

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.smb2.header import HEADER_LENGTH, Header, decode_header
from smbfuzzer.smb2.requests import RequestBody, decode_request_body


TRANSPORT_PREFIX_LENGTH = 4
MAX_FRAME_PAYLOAD = 0xFFFFFF


def encode_transport_prefix(length: int) -> bytes:
    """
    Transport header for a payload of `length` bytes.

    Payloads longer than 0xFFFFFF cannot be represented; the length is
    truncated to 24 bits so oversized fuzzed frames are still sent.
    """
    return b"\x00" + (length & MAX_FRAME_PAYLOAD).to_bytes(3, "big")


def decode_transport_prefix(data: bytes) -> int:
    """Payload length announced by a transport header."""
    if len(data) < TRANSPORT_PREFIX_LENGTH:
        raise DecodeError(f"Transport header too short: {len(data)} bytes")
    return int.from_bytes(data[1:4], "big")


def encode(header: Header, body: RequestBody) -> bytes:
    """Serialize a complete frame: transport prefix + header + body."""
    payload = header.to_bytes() + body.to_bytes()
    return encode_transport_prefix(len(payload)) + payload


def split_frame(frame: bytes) -> Tuple[Header, bytes]:
    """
    Split a received frame into its header and raw body.

    The body is bounded by the transport length when the frame holds
    that many bytes; a short read yields whatever was received.

    Raises:
        DecodeError: If the frame cannot hold a header
    """
    if len(frame) < TRANSPORT_PREFIX_LENGTH + HEADER_LENGTH:
        raise DecodeError(f"Frame too short: {len(frame)} bytes")
    length = decode_transport_prefix(frame)
    header = decode_header(frame[TRANSPORT_PREFIX_LENGTH:])
    body_end = TRANSPORT_PREFIX_LENGTH + max(length, HEADER_LENGTH)
    body = frame[TRANSPORT_PREFIX_LENGTH + HEADER_LENGTH : body_end]
    return header, body


def decode_request(frame: bytes) -> Tuple[Header, RequestBody]:
    """Decode a request frame produced by `encode`."""
    header, body = split_frame(frame)
    return header, decode_request_body(header.command_code, body)
