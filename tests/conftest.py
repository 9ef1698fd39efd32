"""
Pytest configuration and shared fixtures for SMBFuzzer tests.
"""

from typing import Callable, List, Optional

import attrs
import pytest

from smbfuzzer.core.config import ENV_PREFIX, EnvSettings, FuzzerConfig
from smbfuzzer.core.exceptions import ConnectError
from smbfuzzer.core.fields import int_to_le, zeros
from smbfuzzer.fuzzer.random_source import RandomSource
from smbfuzzer.smb2.builders import CarriedIds
from smbfuzzer.smb2.codec import encode_transport_prefix
from smbfuzzer.smb2.header import Command, Header, HeaderFlags


# =============================================================================
# RECORDED WIRE DATA
# =============================================================================

# SESSION_SETUP response security buffer: NegTokenResp around a CHALLENGE_MESSAGE
CHALLENGE_SECURITY_BLOB = (
    b"\xa1\x81\xce\x30\x81\xcb\xa0\x03\x0a\x01\x01\xa1\x0c\x06\x0a\x2b"
    b"\x06\x01\x04\x01\x82\x37\x02\x02\x0a\xa2\x81\xb5\x04\x81\xb2\x4e"
    b"\x54\x4c\x4d\x53\x53\x50\x00\x02\x00\x00\x00\x16\x00\x16\x00\x38"
    b"\x00\x00\x00\x15\x82\x8a\x62\x8d\x51\x0b\x30\x2d\x45\x71\xe0\x00"
    b"\x00\x00\x00\x00\x00\x00\x00\x64\x00\x64\x00\x4e\x00\x00\x00\x06"
    b"\x01\x00\x00\x00\x00\x00\x0f\x52\x00\x41\x00\x53\x00\x50\x00\x42"
    b"\x00\x45\x00\x52\x00\x52\x00\x59\x00\x50\x00\x49\x00\x02\x00\x16"
    b"\x00\x52\x00\x41\x00\x53\x00\x50\x00\x42\x00\x45\x00\x52\x00\x52"
    b"\x00\x59\x00\x50\x00\x49\x00\x01\x00\x16\x00\x52\x00\x41\x00\x53"
    b"\x00\x50\x00\x42\x00\x45\x00\x52\x00\x52\x00\x59\x00\x50\x00\x49"
    b"\x00\x04\x00\x02\x00\x00\x00\x03\x00\x16\x00\x72\x00\x61\x00\x73"
    b"\x00\x70\x00\x62\x00\x65\x00\x72\x00\x72\x00\x79\x00\x70\x00\x69"
    b"\x00\x07\x00\x08\x00\x60\x16\xad\x6d\x47\x21\xd7\x01\x00\x00\x00"
    b"\x00"
)

# NEGOTIATE response body for dialect 3.1.1 with preauth and encryption contexts
NEGOTIATE_RESPONSE_BODY = (
    b"\x41\x00\x01\x00\x11\x03\x02\x00\x72\x61\x73\x70\x62\x65\x72\x72"
    b"\x79\x70\x69\x00\x00\x00\x00\x00\x07\x00\x00\x00\x00\x00\x80\x00"
    b"\x00\x00\x80\x00\x00\x00\x80\x00\x9e\xfb\x27\x7c\x52\x1e\xd7\x01"
    b"\x00\x00\x00\x00\x00\x00\x00\x00\x80\x00\x4a\x00\xd0\x00\x00\x00"
    b"\x60\x48\x06\x06\x2b\x06\x01\x05\x05\x02\xa0\x3e\x30\x3c\xa0\x0e"
    b"\x30\x0c\x06\x0a\x2b\x06\x01\x04\x01\x82\x37\x02\x02\x0a\xa3\x2a"
    b"\x30\x28\xa0\x26\x1b\x24\x6e\x6f\x74\x5f\x64\x65\x66\x69\x6e\x65"
    b"\x64\x5f\x69\x6e\x5f\x52\x46\x43\x34\x31\x37\x38\x40\x70\x6c\x65"
    b"\x61\x73\x65\x5f\x69\x67\x6e\x6f\x72\x65\x00\x00\x00\x00\x00\x00"
    b"\x01\x00\x26\x00\x00\x00\x00\x00\x01\x00\x20\x00\x01\x00\x8c\x24"
    b"\x4b\x62\x9b\x11\xba\x46\x2c\x73\x00\xeb\x9f\x9a\xf3\xfc\xc7\x3d"
    b"\xf4\x86\xb6\x8c\x5b\x4d\x7d\x61\xf0\x86\x1c\x1f\xaf\x90\x00\x00"
    b"\x02\x00\x04\x00\x00\x00\x00\x00\x01\x00\x01\x00"
)

CREATE_FILE_ID = b"\x25\x96\x72\xb3\x00\x00\x00\x00\x26\xb0\x76\xe9\x00\x00\x00\x00"

# CREATE response body opening an existing 14-byte file
CREATE_RESPONSE_BODY = (
    b"\x59\x00\x00\x00\x01\x00\x00\x00\xb4\x10\x04\xf4\x3e\x25\xd7\x01"
    b"\xb4\x10\x04\xf4\x3e\x25\xd7\x01\xb4\x10\x04\xf4\x3e\x25\xd7\x01"
    b"\xb4\x10\x04\xf4\x3e\x25\xd7\x01\x00\x00\x10\x00\x00\x00\x00\x00"
    b"\x0e\x00\x00\x00\x00\x00\x00\x00\x80\x00\x00\x00\x00\x00\x00\x00"
    + CREATE_FILE_ID
    + b"\x00\x00\x00\x00\x00\x00\x00\x00"
)

SESSION_ID = b"\x01\x00\x00\x00\x00\xb4\x00\x00"
TREE_ID = b"\x05\x00\x00\x00"


# =============================================================================
# RESPONSE FRAMES
# =============================================================================


def response_frame(
    command: Command,
    body: bytes,
    session_id: bytes = zeros(8),
    tree_id: bytes = zeros(4),
) -> bytes:
    """Server response frame: transport prefix, header and body."""
    header = Header(
        command=int_to_le(command, 2),
        credit=int_to_le(1, 2),
        flags=int_to_le(HeaderFlags.SERVER_TO_REDIR, 4),
        tree_id=tree_id,
        session_id=session_id,
    )
    payload = header.to_bytes() + body
    return encode_transport_prefix(len(payload)) + payload


def session_setup_body(security_buffer: bytes) -> bytes:
    return (
        b"\x09\x00\x00\x00\x48\x00"
        + int_to_le(len(security_buffer), 2)
        + security_buffer
    )


def handshake_frames() -> List[bytes]:
    """One response per handshake step, NEGOTIATE through CLOSE."""
    return [
        response_frame(Command.NEGOTIATE, NEGOTIATE_RESPONSE_BODY),
        response_frame(
            Command.SESSION_SETUP,
            session_setup_body(CHALLENGE_SECURITY_BLOB),
            session_id=SESSION_ID,
        ),
        response_frame(Command.SESSION_SETUP, session_setup_body(b""), session_id=SESSION_ID),
        response_frame(
            Command.TREE_CONNECT,
            b"\x10\x00\x01\x00\x00\x00\x00\x00\x00\x00\x00\x00\xff\x01\x1f\x00",
            session_id=SESSION_ID,
            tree_id=TREE_ID,
        ),
        response_frame(
            Command.CREATE, CREATE_RESPONSE_BODY, session_id=SESSION_ID, tree_id=TREE_ID
        ),
        response_frame(
            Command.CLOSE, b"\x3c\x00" + zeros(58), session_id=SESSION_ID, tree_id=TREE_ID
        ),
    ]


# =============================================================================
# FAKE TRANSPORT
# =============================================================================


@attrs.define
class FakeTransport:
    """
    In-memory transport.

    Records every frame written and replays canned responses in order;
    once they run out every read is empty. Writes listed in
    `failing_writes` (0-based) fail.
    """

    responses: List[bytes] = attrs.Factory(list)
    failing_writes: List[int] = attrs.Factory(list)
    sent: List[bytes] = attrs.Factory(list)
    writes: int = 0

    def send(self, data: bytes) -> bool:
        index = self.writes
        self.writes += 1
        if index in self.failing_writes:
            return False
        self.sent.append(data)
        return True

    def receive(self) -> bytes:
        if not self.responses:
            return b""
        return self.responses.pop(0)


@attrs.define
class FakeConnection(FakeTransport):
    """FakeTransport with the connect/close lifecycle of SMBConnection."""

    refuse: bool = False
    connects: int = 0
    closes: int = 0

    def connect(self) -> None:
        if self.refuse:
            raise ConnectError("Connection refused")
        self.connects += 1

    def close(self) -> None:
        self.closes += 1


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Keep SMBFUZZ_* settings from the environment out of the tests."""
    for name in EnvSettings.model_fields:
        monkeypatch.delenv(ENV_PREFIX + name.upper(), raising=False)


@pytest.fixture
def fuzzer_config() -> FuzzerConfig:
    """Deterministic configuration with no reconnect delay."""
    return FuzzerConfig(host="192.168.0.171", iterations=3, reconnect_delay=0.0, seed=1234)


@pytest.fixture
def rng() -> RandomSource:
    """Seeded random source."""
    return RandomSource(seed=42)


# =============================================================================
# WIRE DATA FIXTURES
# =============================================================================


@pytest.fixture
def challenge_blob() -> bytes:
    """Server NegTokenResp carrying a CHALLENGE_MESSAGE."""
    return CHALLENGE_SECURITY_BLOB


@pytest.fixture
def challenge_ntlm(challenge_blob: bytes) -> bytes:
    """The CHALLENGE_MESSAGE without its GSS header."""
    return challenge_blob[31:]


@pytest.fixture
def negotiate_response_body() -> bytes:
    return NEGOTIATE_RESPONSE_BODY


@pytest.fixture
def create_response_body() -> bytes:
    return CREATE_RESPONSE_BODY


@pytest.fixture
def handshake_responses() -> List[bytes]:
    """Server responses for the full handshake, NEGOTIATE through CLOSE."""
    return handshake_frames()


@pytest.fixture
def carried_ids() -> CarriedIds:
    """Identifiers as they stand after a CREATE."""
    from smbfuzzer.gss import parse_challenge

    return CarriedIds(
        session_id=SESSION_ID,
        tree_id=TREE_ID,
        file_id=CREATE_FILE_ID,
        challenge=parse_challenge(CHALLENGE_SECURITY_BLOB).unwrap(),
    )


# =============================================================================
# TRANSPORT FIXTURES
# =============================================================================


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for fake transports."""

    def factory(
        responses: Optional[List[bytes]] = None,
        failing_writes: Optional[List[int]] = None,
    ) -> FakeTransport:
        return FakeTransport(
            responses=list(responses or []),
            failing_writes=list(failing_writes or []),
        )

    return factory


@pytest.fixture
def make_connection() -> Callable[..., FakeConnection]:
    """Factory for fake connections with the SMBConnection lifecycle."""

    def factory(
        responses: Optional[List[bytes]] = None,
        refuse: bool = False,
    ) -> FakeConnection:
        return FakeConnection(responses=list(responses or []), refuse=refuse)

    return factory


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests requiring a reachable SMB2 server"
    )
