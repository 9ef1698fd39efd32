"""
SMBFuzzer Exception Types

Custom exceptions for codec, handshake and transport errors.
"""

from typing import Optional


class SMBFuzzerError(Exception):
    """Base exception for all SMBFuzzer errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(SMBFuzzerError):
    """
    Invalid fuzzing directive.

    Raised for unknown command line tokens, missing directive fields or a
    message that is not legal in the requested state. Always raised before
    any network activity.
    """

    pass


class ProtocolError(SMBFuzzerError):
    """
    Protocol-level error.

    This indicates an error in the protocol exchange itself,
    such as malformed messages or unexpected responses.
    """

    pass


class DecodeError(ProtocolError):
    """
    Wire decoding failed.

    An enumerated field carried a code with no mapping, or a required
    sub-value was absent. The decoder never substitutes a default.
    """

    pass


class MissingTimestampError(DecodeError):
    """
    Server challenge has no MsvAvTimestamp attribute.

    An NTLMv2 AUTHENTICATE message cannot be built without it.
    """

    def __init__(self, message: str = "Missing timestamp from server challenge") -> None:
        super().__init__(message)


class StateError(SMBFuzzerError):
    """
    Invalid state transition.

    This indicates an attempt to perform an operation that is
    not valid in the current handshake state.
    """

    pass


class TransportError(SMBFuzzerError):
    """Error on the underlying byte stream."""

    pass


class ConnectError(TransportError):
    """
    Connection could not be established.

    The only error class that stops the driver's reconnect loop.
    """

    pass
