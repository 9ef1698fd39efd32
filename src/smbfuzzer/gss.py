"""
SMBFuzzer GSS Envelope

Minimal SPNEGO handling for SESSION_SETUP security buffers. The fuzzer
does not speak ASN.1; it strips and prepends the fixed-shape DER headers
that wrap the NTLM messages.
"""

from __future__ import annotations

from returns.result import Failure, Result, Success

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.ntlm.types import ChallengeMessage


# NegTokenInit wrapping an NTLM NEGOTIATE_MESSAGE (flags 0x00000205, version 6.1 rev 15)
INITIAL_SECURITY_BLOB = (
    b"\x60\x48\x06\x06\x2b\x06\x01\x05\x05\x02\xa0\x3e\x30\x3c\xa0\x0e"
    b"\x30\x0c\x06\x0a\x2b\x06\x01\x04\x01\x82\x37\x02\x02\x0a\xa2\x2a"
    b"\x04\x28\x4e\x54\x4c\x4d\x53\x53\x50\x00\x01\x00\x00\x00\x05\x02"
    b"\x00\x00\x00\x00\x00\x00\x28\x00\x00\x00\x00\x00\x00\x00\x28\x00"
    b"\x00\x00\x06\x01\x00\x00\x00\x00\x00\x0f"
)

# NegTokenResp header ahead of the server's CHALLENGE_MESSAGE
NEG_TOKEN_RESP_HEADER_LENGTH = 31


def _der_long_form(tag: int, length: int) -> bytes:
    return bytes([tag, 0x82]) + (length & 0xFFFF).to_bytes(2, "big")


def auth_prefix(ntlm_length: int) -> bytes:
    """
    NegTokenResp header for an AUTHENTICATE of `ntlm_length` bytes.

    [1] negTokenResp, SEQUENCE, [2] responseToken, OCTET STRING; each with
    a two-byte long-form length.
    """
    return (
        _der_long_form(0xA1, ntlm_length + 12)
        + _der_long_form(0x30, ntlm_length + 8)
        + _der_long_form(0xA2, ntlm_length + 4)
        + _der_long_form(0x04, ntlm_length)
    )


def wrap_authenticate(ntlm_message: bytes) -> bytes:
    """GSS-wrap an NTLM AUTHENTICATE_MESSAGE for the SESSION_SETUP buffer."""
    return auth_prefix(len(ntlm_message)) + ntlm_message


def strip_neg_token_resp(security_buffer: bytes) -> bytes:
    """NTLM bytes of a server NegTokenResp security buffer."""
    return security_buffer[NEG_TOKEN_RESP_HEADER_LENGTH:]


def parse_challenge(security_buffer: bytes) -> Result[ChallengeMessage, DecodeError]:
    """
    Parse the server CHALLENGE_MESSAGE from a SESSION_SETUP response buffer.

    Returns:
        Success(ChallengeMessage) or Failure(DecodeError)
    """
    try:
        return Success(ChallengeMessage.from_bytes(strip_neg_token_resp(security_buffer)))
    except DecodeError as e:
        return Failure(e)
