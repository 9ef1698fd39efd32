"""
Unit tests for smbfuzzer.ntlm and smbfuzzer.gss.

Tests CHALLENGE decoding, AV pair handling and the layout of the
AUTHENTICATE message the handshake sends.
"""

import attrs
import pytest
from returns.result import Failure, Success

from smbfuzzer.core.exceptions import DecodeError, MissingTimestampError
from smbfuzzer.core.fields import le_to_int
from smbfuzzer.gss import (
    auth_prefix,
    parse_challenge,
    strip_neg_token_resp,
    wrap_authenticate,
)
from smbfuzzer.ntlm.authenticate import (
    CLIENT_NONCE,
    LM_RESPONSE_LENGTH,
    build_authenticate,
    build_ntlmv2_response,
    get_server_timestamp,
    service_target_name,
)
from smbfuzzer.ntlm.types import (
    NTLM_SIGNATURE,
    AuthenticateMessage,
    AvId,
    AVPair,
    ChallengeMessage,
    NegotiateFlags,
    Version,
    decode_target_info,
    encode_av_pairs,
    find_av_pair,
)


RASPBERRYPI_UPPER = "RASPBERRYPI".encode("utf-16-le")
TIMESTAMP = b"\x60\x16\xad\x6d\x47\x21\xd7\x01"

# Recorded NegTokenResp header ahead of a 326-byte AUTHENTICATE
RECORDED_AUTH_PREFIX = b"\xa1\x82\x01\x52\x30\x82\x01\x4e\xa2\x82\x01\x4a\x04\x82\x01\x46"


@pytest.fixture
def challenge(challenge_ntlm) -> ChallengeMessage:
    return ChallengeMessage.from_bytes(challenge_ntlm)


@pytest.fixture
def authenticate_bytes(challenge) -> bytes:
    return build_authenticate(challenge, "192.168.0.171").unwrap().to_bytes()


# =============================================================================
# AV PAIRS
# =============================================================================


class TestAVPair:
    """Tests for AV_PAIR encoding and decoding."""

    def test_to_bytes(self):
        pair = AVPair(AvId.MsvAvDnsDomainName, b"\x00\x00")
        assert pair.to_bytes() == b"\x04\x00\x02\x00\x00\x00"
        assert pair.av_len == 2

    def test_eol(self):
        assert AVPair.eol().to_bytes() == b"\x00\x00\x00\x00"

    def test_from_bytes(self):
        """Test parsing reports the bytes consumed."""
        pair, consumed = AVPair.from_bytes(b"\x07\x00\x08\x00" + TIMESTAMP + b"\xff")
        assert pair == AVPair(AvId.MsvAvTimestamp, TIMESTAMP)
        assert consumed == 12

    def test_truncated_value(self):
        with pytest.raises(DecodeError):
            AVPair.from_bytes(b"\x07\x00\x08\x00\x01\x02")

    def test_unknown_av_id(self):
        """Test an unmapped AvId is a DecodeError."""
        with pytest.raises(DecodeError):
            AVPair.from_bytes(b"\x42\x00\x00\x00")

    def test_find_av_pair(self):
        pairs = [AVPair(AvId.MsvAvFlags, b"\x02\x00\x00\x00"), AVPair.eol()]
        assert find_av_pair(pairs, AvId.MsvAvFlags) == pairs[0]
        assert find_av_pair(pairs, AvId.MsvAvTimestamp) is None


class TestTargetInfo:
    """Tests for decode_target_info on the recorded CHALLENGE."""

    def test_decode_target_info(self, challenge_ntlm):
        """Test all six pairs are decoded, EOL included."""
        pairs = decode_target_info(challenge_ntlm, 78, 178)

        assert [p.av_id for p in pairs] == [
            AvId.MsvAvNbDomainName,
            AvId.MsvAvNbComputerName,
            AvId.MsvAvDnsDomainName,
            AvId.MsvAvDnsComputerName,
            AvId.MsvAvTimestamp,
            AvId.MsvAvEOL,
        ]
        assert pairs[0].value == RASPBERRYPI_UPPER
        assert pairs[1].value == RASPBERRYPI_UPPER
        assert pairs[2].value == b"\x00\x00"
        assert pairs[3].value == "raspberrypi".encode("utf-16-le")
        assert pairs[4].value == TIMESTAMP
        assert pairs[5].value == b""

    def test_stops_after_eol(self):
        """Test bytes after the EOL are ignored."""
        data = AVPair.eol().to_bytes() + b"\x42\x00\x00\x00"
        assert decode_target_info(data, 0, len(data)) == [AVPair.eol()]

    def test_encode_round_trip(self, challenge_ntlm):
        pairs = decode_target_info(challenge_ntlm, 78, 178)
        assert encode_av_pairs(pairs) == challenge_ntlm[78:178]


# =============================================================================
# CHALLENGE
# =============================================================================


class TestChallengeMessage:
    """Tests for CHALLENGE_MESSAGE decoding."""

    def test_decode(self, challenge):
        """Test the recorded CHALLENGE."""
        assert challenge.target_name == RASPBERRYPI_UPPER
        assert challenge.negotiate_flags == NegotiateFlags(0x628A8215)
        assert challenge.server_challenge == b"\x8d\x51\x0b\x30\x2d\x45\x71\xe0"
        assert len(challenge.target_info) == 6
        assert challenge.version == Version(6, 1, 0, 0x0F)

    def test_flags(self, challenge):
        assert challenge.negotiate_flags & NegotiateFlags.NEGOTIATE_UNICODE
        assert challenge.negotiate_flags & NegotiateFlags.NEGOTIATE_TARGET_INFO

    def test_bad_signature(self, challenge_ntlm):
        with pytest.raises(DecodeError):
            ChallengeMessage.from_bytes(b"NTLMSSX\x00" + challenge_ntlm[8:])

    def test_wrong_message_type(self, challenge_ntlm):
        """Test a message type other than 2 is rejected."""
        data = challenge_ntlm[:8] + b"\x03\x00\x00\x00" + challenge_ntlm[12:]
        with pytest.raises(DecodeError):
            ChallengeMessage.from_bytes(data)

    def test_big_endian_type_rejected(self, challenge_ntlm):
        """Test the message type is read little-endian."""
        data = challenge_ntlm[:8] + b"\x00\x00\x00\x02" + challenge_ntlm[12:]
        with pytest.raises(DecodeError):
            ChallengeMessage.from_bytes(data)

    def test_too_short(self):
        with pytest.raises(DecodeError):
            ChallengeMessage.from_bytes(NTLM_SIGNATURE + b"\x02\x00\x00\x00")


# =============================================================================
# AUTHENTICATE
# =============================================================================


class TestServerTimestamp:
    """Tests for reading MsvAvTimestamp."""

    def test_present(self, challenge):
        assert get_server_timestamp(challenge) == Success(TIMESTAMP)

    def test_missing(self, challenge):
        """Test a challenge without a timestamp gives a Failure."""
        without = attrs.evolve(
            challenge,
            target_info=tuple(
                p for p in challenge.target_info if p.av_id != AvId.MsvAvTimestamp
            ),
        )
        result = get_server_timestamp(without)
        assert isinstance(result, Failure)
        assert isinstance(result.failure(), MissingTimestampError)


class TestNTLMv2Response:
    """Tests for the NTLMv2 response echoing the server pairs."""

    def test_pairs(self, challenge):
        """Test server pairs without EOL, then the target name, then EOL."""
        response = build_ntlmv2_response(challenge, TIMESTAMP, "192.168.0.171")
        pairs = response.client_challenge.av_pairs

        assert [p.av_id for p in pairs[:5]] == [p.av_id for p in challenge.target_info[:5]]
        assert pairs[5] == service_target_name("192.168.0.171")
        assert pairs[5].value == "cifs/192.168.0.171".encode("utf-16-le")
        assert pairs[6] == AVPair.eol()

    def test_declared_length(self, challenge):
        """Test 44 bytes plus 4 + len(value) per pair."""
        response = build_ntlmv2_response(challenge, TIMESTAMP, "192.168.0.171")
        assert response.declared_length() == 184
        assert len(response.to_bytes()) == 184

    def test_client_challenge_layout(self, challenge):
        response = build_ntlmv2_response(challenge, TIMESTAMP, "h")
        blob = response.to_bytes()
        assert blob[:16] == bytes(16)
        assert blob[16:18] == b"\x01\x01"
        assert blob[24:32] == TIMESTAMP
        assert blob[32:40] == CLIENT_NONCE


class TestAuthenticateMessage:
    """Tests for the default AUTHENTICATE_MESSAGE."""

    def test_missing_timestamp_is_failure(self, challenge):
        """Test building without a server timestamp fails instead of guessing."""
        without = attrs.evolve(challenge, target_info=(AVPair.eol(),))
        result = build_authenticate(without, "192.168.0.171")
        assert isinstance(result, Failure)
        assert isinstance(result.failure(), MissingTimestampError)

    def test_total_length(self, authenticate_bytes):
        assert len(authenticate_bytes) == 326

    def test_header(self, authenticate_bytes):
        """Test signature, little-endian type, flags and version."""
        assert authenticate_bytes[:8] == NTLM_SIGNATURE
        assert authenticate_bytes[8:12] == b"\x03\x00\x00\x00"
        flags = NegotiateFlags(le_to_int(authenticate_bytes[60:64]))
        assert flags == NegotiateFlags.default_authenticate_flags()
        assert authenticate_bytes[64:72] == b"\x06\x01\x00\x00\x0f\x00\x00\x00"
        assert authenticate_bytes[72:88] == bytes(16)

    def test_field_offsets(self, authenticate_bytes):
        """Test each (length, offset) pair points at its payload."""
        fields = AuthenticateMessage.parse_fields(authenticate_bytes)
        assert fields == [
            (24, 0x58),
            (184, 0x70),
            (18, 0x128),
            (6, 0x13A),
            (6, 0x140),
            (0, 0x146),
        ]

    def test_payloads(self, authenticate_bytes):
        assert authenticate_bytes[0x58:0x70] == bytes(24)
        assert authenticate_bytes[0x128:0x13A] == "WORKGROUP".encode("utf-16-le")
        assert authenticate_bytes[0x13A:0x140] == "tom".encode("utf-16-le")
        assert authenticate_bytes[0x140:0x146] == "TOM".encode("utf-16-le")

    def test_lm_response_is_24_zero_bytes(self, challenge):
        """Test the LM response is zero-valued but not empty."""
        message = build_authenticate(challenge, "192.168.0.171").unwrap()
        assert message.lm_response == bytes(24)
        assert LM_RESPONSE_LENGTH == 24
        lm_length, lm_offset = AuthenticateMessage.parse_fields(message.to_bytes())[0]
        assert (lm_length, lm_offset) == (24, 0x58)

    def test_max_length_equals_length(self, authenticate_bytes):
        for i in range(6):
            start = 12 + 8 * i
            assert authenticate_bytes[start : start + 2] == authenticate_bytes[start + 2 : start + 4]

    def test_parse_fields_too_short(self):
        with pytest.raises(DecodeError):
            AuthenticateMessage.parse_fields(NTLM_SIGNATURE)


# =============================================================================
# GSS
# =============================================================================


class TestGSS:
    """Tests for the SPNEGO envelope."""

    def test_auth_prefix_for_default_message(self):
        """Test the derived header equals the recorded one for 326 bytes."""
        assert auth_prefix(326) == RECORDED_AUTH_PREFIX

    def test_auth_prefix_tracks_length(self):
        assert auth_prefix(300) == (
            b"\xa1\x82\x01\x38\x30\x82\x01\x34\xa2\x82\x01\x30\x04\x82\x01\x2c"
        )

    def test_wrap(self, authenticate_bytes):
        wrapped = wrap_authenticate(authenticate_bytes)
        assert wrapped == RECORDED_AUTH_PREFIX + authenticate_bytes

    def test_strip(self, challenge_blob, challenge_ntlm):
        assert strip_neg_token_resp(challenge_blob) == challenge_ntlm
        assert challenge_ntlm.startswith(NTLM_SIGNATURE)

    def test_parse_challenge(self, challenge_blob, challenge):
        assert parse_challenge(challenge_blob) == Success(challenge)

    def test_parse_garbage(self):
        """Test an undecodable buffer is a Failure, not an exception."""
        result = parse_challenge(b"\x00" * 40)
        assert isinstance(result, Failure)
        assert isinstance(result.failure(), DecodeError)
