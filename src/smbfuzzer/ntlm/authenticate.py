"""
SMBFuzzer NTLM Authenticate Builder

Builds the default NTLMv2 AUTHENTICATE_MESSAGE answering a server
CHALLENGE_MESSAGE.

The fuzzer holds no credentials and does not sign, so the NT proof and
the MIC are zero-filled. The server still has to parse the whole
structure, which is what the fuzzer exercises.
"""

from __future__ import annotations

import structlog
from returns.result import Failure, Result, Success

from smbfuzzer.core.exceptions import MissingTimestampError
from smbfuzzer.ntlm.types import (
    AuthenticateMessage,
    AvId,
    AVPair,
    ChallengeMessage,
    NegotiateFlags,
    NTLMv2ClientChallenge,
    NTLMv2Response,
    Version,
    find_av_pair,
)

logger = structlog.get_logger()


CLIENT_NONCE = b"\x22\x10\x50\xcd\x22\xf4\xa4\x14"
DEFAULT_DOMAIN = "WORKGROUP"
DEFAULT_USER = "tom"
DEFAULT_WORKSTATION = "TOM"
# The LM response is 24 zero bytes, not empty. Its location fields say 24,
# and the 326-byte message size and every later payload offset depend on it.
LM_RESPONSE_LENGTH = 24


def get_server_timestamp(challenge: ChallengeMessage) -> Result[bytes, MissingTimestampError]:
    """Timestamp from the server's MsvAvTimestamp pair."""
    pair = find_av_pair(list(challenge.target_info), AvId.MsvAvTimestamp)
    if pair is None:
        return Failure(MissingTimestampError())
    return Success(pair.value)


def service_target_name(host: str) -> AVPair:
    """MsvAvTargetName pair for the CIFS service on `host`."""
    return AVPair(AvId.MsvAvTargetName, f"cifs/{host}".encode("utf-16-le"))


def build_ntlmv2_response(
    challenge: ChallengeMessage, timestamp: bytes, host: str
) -> NTLMv2Response:
    """
    NTLMv2 response echoing the server's AV pairs.

    The server pairs are repeated in order without their EOL, followed by
    the service target name and a fresh EOL.
    """
    pairs = [pair for pair in challenge.target_info if pair.av_id != AvId.MsvAvEOL]
    pairs.append(service_target_name(host))
    pairs.append(AVPair.eol())

    return NTLMv2Response(
        client_challenge=NTLMv2ClientChallenge(
            timestamp=timestamp,
            challenge_from_client=CLIENT_NONCE,
            av_pairs=tuple(pairs),
        ),
    )


def build_authenticate(
    challenge: ChallengeMessage,
    host: str,
    domain: str = DEFAULT_DOMAIN,
    user: str = DEFAULT_USER,
    workstation: str = DEFAULT_WORKSTATION,
) -> Result[AuthenticateMessage, MissingTimestampError]:
    """
    Build the default AUTHENTICATE_MESSAGE for a server challenge.

    The LM response is LM_RESPONSE_LENGTH zero bytes; the NT response is
    the NTLMv2 response echoing the server pairs.

    Args:
        challenge: Parsed server CHALLENGE_MESSAGE
        host: Server address used in the cifs/<host> target name
        domain: Domain name sent in the message
        user: User name sent in the message
        workstation: Workstation name sent in the message

    Returns:
        Success(AuthenticateMessage), or Failure(MissingTimestampError) when
        the challenge carries no MsvAvTimestamp
    """
    timestamp_result = get_server_timestamp(challenge)
    if isinstance(timestamp_result, Failure):
        logger.warning("challenge_missing_timestamp", av_pairs=len(challenge.target_info))
        return Failure(timestamp_result.failure())

    nt_response = build_ntlmv2_response(challenge, timestamp_result.unwrap(), host)
    authenticate = AuthenticateMessage(
        lm_response=bytes(LM_RESPONSE_LENGTH),
        nt_response=nt_response,
        domain_name=domain,
        user_name=user,
        workstation_name=workstation,
        negotiate_flags=NegotiateFlags.default_authenticate_flags(),
        version=Version(),
    )

    logger.debug(
        "authenticate_built",
        nt_response_length=nt_response.declared_length(),
        av_pairs=len(nt_response.client_challenge.av_pairs),
    )
    return Success(authenticate)
