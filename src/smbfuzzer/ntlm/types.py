"""
SMBFuzzer NTLM Types

NTLM message structures per MS-NLMP: AV pairs, negotiate flags, the
server CHALLENGE_MESSAGE and the client AUTHENTICATE_MESSAGE.

Only the pieces the SMB2 handshake needs are modelled. Integers are
little-endian on the wire, including the 4-byte message type.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import List, Optional, Tuple

import attrs
from attrs import field

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import decode_enum, int_to_le, le_to_int, zeros


NTLM_SIGNATURE = b"NTLMSSP\x00"


class MessageType(IntEnum):
    """NTLM message type carried after the signature."""

    NEGOTIATE = 0x00000001
    CHALLENGE = 0x00000002
    AUTHENTICATE = 0x00000003


# =============================================================================
# NTLM FLAGS
# =============================================================================


class NegotiateFlags(IntFlag):
    """NTLM negotiate flags per MS-NLMP 2.2.2.5."""

    NEGOTIATE_UNICODE = 0x00000001
    NEGOTIATE_OEM = 0x00000002
    REQUEST_TARGET = 0x00000004
    NEGOTIATE_SIGN = 0x00000010
    NEGOTIATE_SEAL = 0x00000020
    NEGOTIATE_DATAGRAM = 0x00000040
    NEGOTIATE_LM_KEY = 0x00000080
    NEGOTIATE_NTLM = 0x00000200
    ANONYMOUS = 0x00000800
    NEGOTIATE_OEM_DOMAIN_SUPPLIED = 0x00001000
    NEGOTIATE_OEM_WORKSTATION_SUPPLIED = 0x00002000
    NEGOTIATE_ALWAYS_SIGN = 0x00008000
    TARGET_TYPE_DOMAIN = 0x00010000
    TARGET_TYPE_SERVER = 0x00020000
    NEGOTIATE_EXTENDED_SESSIONSECURITY = 0x00080000
    NEGOTIATE_IDENTIFY = 0x00100000
    REQUEST_NON_NT_SESSION_KEY = 0x00400000
    NEGOTIATE_TARGET_INFO = 0x00800000
    NEGOTIATE_VERSION = 0x02000000
    NEGOTIATE_128 = 0x20000000
    NEGOTIATE_KEY_EXCH = 0x40000000
    NEGOTIATE_56 = 0x80000000

    @classmethod
    def default_authenticate_flags(cls) -> "NegotiateFlags":
        """Flags sent in the fuzzer's AUTHENTICATE message."""
        return cls.NEGOTIATE_NTLM | cls.NEGOTIATE_UNICODE | cls.NEGOTIATE_VERSION


# =============================================================================
# AV PAIR STRUCTURES
# =============================================================================


class AvId(IntEnum):
    """AV_PAIR types per MS-NLMP 2.2.2.1."""

    MsvAvEOL = 0x0000
    MsvAvNbComputerName = 0x0001
    MsvAvNbDomainName = 0x0002
    MsvAvDnsComputerName = 0x0003
    MsvAvDnsDomainName = 0x0004
    MsvAvDnsTreeName = 0x0005
    MsvAvFlags = 0x0006
    MsvAvTimestamp = 0x0007
    MsvAvSingleHost = 0x0008
    MsvAvTargetName = 0x0009
    MsvAvChannelBindings = 0x000A


@attrs.define(frozen=True, slots=True)
class AVPair:
    """AV_PAIR structure per MS-NLMP 2.2.2.1."""

    av_id: AvId
    value: bytes = b""

    @property
    def av_len(self) -> int:
        return len(self.value)

    @classmethod
    def eol(cls) -> "AVPair":
        return cls(AvId.MsvAvEOL)

    @classmethod
    def from_bytes(cls, data: bytes) -> Tuple["AVPair", int]:
        """
        Parse one AV_PAIR from the start of `data`.

        Returns:
            The pair and the number of bytes consumed

        Raises:
            DecodeError: For a short buffer or an unknown AvId
        """
        if len(data) < 4:
            raise DecodeError("AV_PAIR too short")

        av_id = decode_enum(AvId, data[0:2])
        av_len = le_to_int(data[2:4])

        if len(data) < 4 + av_len:
            raise DecodeError(
                f"AV_PAIR value truncated: need {av_len}, have {len(data) - 4}"
            )

        return cls(av_id=av_id, value=data[4 : 4 + av_len]), 4 + av_len

    def to_bytes(self) -> bytes:
        return int_to_le(self.av_id, 2) + int_to_le(len(self.value), 2) + self.value


def decode_target_info(data: bytes, offset: int, end: int) -> List[AVPair]:
    """
    Parse the AV_PAIRs between `offset` and `end` of an NTLM message.

    Stops at `end` or after the EOL pair, whichever comes first. The EOL
    pair is included in the result.
    """
    pairs: List[AVPair] = []

    while offset + 4 <= end:
        pair, consumed = AVPair.from_bytes(data[offset:end])
        pairs.append(pair)
        offset += consumed

        if pair.av_id == AvId.MsvAvEOL:
            break

    return pairs


def encode_av_pairs(pairs: List[AVPair]) -> bytes:
    """Serialize a list of AV_PAIRs. No EOL is appended."""
    return b"".join(pair.to_bytes() for pair in pairs)


def find_av_pair(pairs: List[AVPair], av_id: AvId) -> Optional[AVPair]:
    """First pair with the given id, or None."""
    for pair in pairs:
        if pair.av_id == av_id:
            return pair
    return None


# =============================================================================
# NTLM MESSAGES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Version:
    """
    VERSION structure.

    Serialized as major, minor, 2-byte build, then a 4-byte revision
    field.
    """

    product_major_version: int = 6
    product_minor_version: int = 1
    product_build: int = 0
    ntlm_revision_current: int = 0x0F

    def to_bytes(self) -> bytes:
        return (
            int_to_le(self.product_major_version, 1)
            + int_to_le(self.product_minor_version, 1)
            + int_to_le(self.product_build, 2)
            + int_to_le(self.ntlm_revision_current, 4)
        )

    @classmethod
    def from_challenge_bytes(cls, data: bytes) -> "Version":
        """Parse the 8-byte VERSION of a CHALLENGE (revision in the last byte)."""
        return cls(
            product_major_version=data[0],
            product_minor_version=data[1],
            product_build=le_to_int(data[2:4]),
            ntlm_revision_current=data[7],
        )


@attrs.define(frozen=True, slots=True)
class ChallengeMessage:
    """
    NTLM CHALLENGE_MESSAGE (Type 2).

    Server -> Client: Contains server challenge and target info.
    """

    target_name: bytes = b""
    negotiate_flags: NegotiateFlags = NegotiateFlags(0)
    server_challenge: bytes = field(factory=lambda: zeros(8))
    target_info: Tuple[AVPair, ...] = ()
    version: Version = field(factory=Version)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ChallengeMessage":
        """
        Parse from wire format.

        Raises:
            DecodeError: If the signature, type or any AV pair is invalid
        """
        if len(data) < 56:
            raise DecodeError(f"CHALLENGE_MESSAGE too short: {len(data)} bytes")

        if data[:8] != NTLM_SIGNATURE:
            raise DecodeError("Invalid NTLM signature")

        msg_type = le_to_int(data[8:12])
        if msg_type != MessageType.CHALLENGE:
            raise DecodeError(f"Expected CHALLENGE_MESSAGE, got type {msg_type}")

        # Target name
        target_len = le_to_int(data[12:14])
        target_offset = le_to_int(data[16:20])
        target_name = data[target_offset : target_offset + target_len]

        flags = NegotiateFlags(le_to_int(data[20:24]))
        server_challenge = data[24:32]

        # Target info
        target_info_len = le_to_int(data[40:42])
        target_info_offset = le_to_int(data[44:48])
        target_info = decode_target_info(
            data, target_info_offset, target_info_offset + target_info_len
        )

        return cls(
            target_name=target_name,
            negotiate_flags=flags,
            server_challenge=server_challenge,
            target_info=tuple(target_info),
            version=Version.from_challenge_bytes(data[48:56]),
        )


@attrs.define(frozen=True, slots=True)
class NTLMv2ClientChallenge:
    """NTLMv2_CLIENT_CHALLENGE per MS-NLMP 2.2.2.7."""

    timestamp: bytes
    challenge_from_client: bytes
    av_pairs: Tuple[AVPair, ...] = ()
    resp_type: int = 0x01
    hi_resp_type: int = 0x01

    def to_bytes(self) -> bytes:
        return (
            int_to_le(self.resp_type, 1)
            + int_to_le(self.hi_resp_type, 1)
            + zeros(2)  # Reserved1
            + zeros(4)  # Reserved2
            + self.timestamp
            + self.challenge_from_client
            + zeros(4)  # Reserved3
            + encode_av_pairs(list(self.av_pairs))
        )


@attrs.define(frozen=True, slots=True)
class NTLMv2Response:
    """NTLMv2_RESPONSE: 16-byte proof followed by the client challenge."""

    client_challenge: NTLMv2ClientChallenge
    response: bytes = field(factory=lambda: zeros(16))

    def to_bytes(self) -> bytes:
        return self.response + self.client_challenge.to_bytes()

    def declared_length(self) -> int:
        """
        Length announced in the NT response fields.

        44 bytes of fixed structure plus 4 + len(value) per AV pair.
        """
        return 44 + sum(4 + pair.av_len for pair in self.client_challenge.av_pairs)


@attrs.define(frozen=True, slots=True)
class AuthenticateMessage:
    """
    NTLM AUTHENTICATE_MESSAGE (Type 3).

    Client -> Server: Contains authentication response. Strings are
    UTF-16LE. Payload offsets are computed from the actual layout, so
    they always agree with the serialized bytes.
    """

    HEADER_SIZE = 88

    lm_response: bytes = b""
    nt_response: Optional[NTLMv2Response] = None
    domain_name: str = ""
    user_name: str = ""
    workstation_name: str = ""
    encrypted_session_key: bytes = b""
    negotiate_flags: NegotiateFlags = NegotiateFlags(0)
    version: Version = field(factory=Version)
    mic: bytes = field(factory=lambda: zeros(16))

    def to_bytes(self) -> bytes:
        """Serialize to wire format."""
        nt_bytes = self.nt_response.to_bytes() if self.nt_response else b""
        nt_len = self.nt_response.declared_length() if self.nt_response else 0
        domain_bytes = self.domain_name.encode("utf-16-le")
        user_bytes = self.user_name.encode("utf-16-le")
        workstation_bytes = self.workstation_name.encode("utf-16-le")

        offset = self.HEADER_SIZE
        fields = b""
        payload = b""
        for length, data in (
            (len(self.lm_response), self.lm_response),
            (nt_len, nt_bytes),
            (len(domain_bytes), domain_bytes),
            (len(user_bytes), user_bytes),
            (len(workstation_bytes), workstation_bytes),
            (len(self.encrypted_session_key), self.encrypted_session_key),
        ):
            # Len, MaxLen, BufferOffset
            fields += int_to_le(length, 2) + int_to_le(length, 2) + int_to_le(offset, 4)
            payload += data
            offset += len(data)

        msg = NTLM_SIGNATURE
        msg += int_to_le(MessageType.AUTHENTICATE, 4)
        msg += fields
        msg += int_to_le(self.negotiate_flags, 4)
        msg += self.version.to_bytes()
        msg += self.mic[:16].ljust(16, b"\x00")

        return msg + payload

    @classmethod
    def parse_fields(cls, data: bytes) -> List[Tuple[int, int]]:
        """
        (length, offset) of each of the six payload fields.

        Raises:
            DecodeError: If the data is shorter than the fixed header
        """
        if len(data) < cls.HEADER_SIZE:
            raise DecodeError(f"AUTHENTICATE_MESSAGE too short: {len(data)} bytes")
        if data[:8] != NTLM_SIGNATURE:
            raise DecodeError("Invalid NTLM signature")
        return [
            (le_to_int(data[12 + 8 * i : 14 + 8 * i]), le_to_int(data[16 + 8 * i : 20 + 8 * i]))
            for i in range(6)
        ]
