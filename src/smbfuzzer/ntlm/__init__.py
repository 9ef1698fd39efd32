"""
SMBFuzzer NTLM Module

NTLM message types and the AUTHENTICATE builder used during
SESSION_SETUP.
"""

from smbfuzzer.ntlm.authenticate import (
    CLIENT_NONCE,
    build_authenticate,
    get_server_timestamp,
)
from smbfuzzer.ntlm.types import (
    NTLM_SIGNATURE,
    AuthenticateMessage,
    AvId,
    AVPair,
    ChallengeMessage,
    MessageType,
    NegotiateFlags,
    NTLMv2ClientChallenge,
    NTLMv2Response,
    Version,
    decode_target_info,
    encode_av_pairs,
    find_av_pair,
)

__all__ = [
    "NTLM_SIGNATURE",
    "CLIENT_NONCE",
    "AuthenticateMessage",
    "AvId",
    "AVPair",
    "ChallengeMessage",
    "MessageType",
    "NegotiateFlags",
    "NTLMv2ClientChallenge",
    "NTLMv2Response",
    "Version",
    "build_authenticate",
    "decode_target_info",
    "encode_av_pairs",
    "find_av_pair",
    "get_server_timestamp",
]
