"""
SMBFuzzer Core Module

Shared infrastructure: exceptions, byte-field helpers, configuration
and logging setup.
"""

from smbfuzzer.core.exceptions import (
    SMBFuzzerError,
    ValidationError,
    ProtocolError,
    DecodeError,
    MissingTimestampError,
    StateError,
    TransportError,
    ConnectError,
)
from smbfuzzer.core.config import FuzzerConfig

__all__ = [
    "SMBFuzzerError",
    "ValidationError",
    "ProtocolError",
    "DecodeError",
    "MissingTimestampError",
    "StateError",
    "TransportError",
    "ConnectError",
    "FuzzerConfig",
]
