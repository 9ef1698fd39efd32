"""
SMBFuzzer Transport

Blocking TCP connection to the SMB2 server.

Writes and reads never raise: a fuzzer has to survive a peer that resets
or stops answering. A failed write is logged as `connection_reset` and
reported through the return value; a failed or timed-out read yields an
empty response. Only establishing the connection raises.
"""

from __future__ import annotations

import socket
from typing import Any, Optional, Protocol

import attrs
import structlog

from smbfuzzer.core.config import DEFAULT_READ_BUFFER_SIZE, DEFAULT_READ_TIMEOUT
from smbfuzzer.core.exceptions import ConnectError


class Transport(Protocol):
    """Byte stream the handshake and fuzzer write frames to."""

    def send(self, data: bytes) -> bool:
        ...

    def receive(self) -> bytes:
        ...


# =============================================================================
# SMB CONNECTION
# =============================================================================


@attrs.define
class SMBConnection:
    """
    Direct-TCP connection to an SMB2 server.

    One read per request: at most `read_buffer_size` bytes, waiting at
    most `read_timeout` seconds.
    """

    host: str
    port: int = 445
    read_timeout: float = DEFAULT_READ_TIMEOUT
    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE

    _socket: Optional[socket.socket] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @property
    def connected(self) -> bool:
        return self._socket is not None

    def connect(self) -> None:
        """
        Establish the TCP connection.

        Raises:
            ConnectError: If the connection cannot be established
        """
        if self._socket:
            return

        try:
            self._socket = socket.create_connection((self.host, self.port))
            self._socket.settimeout(self.read_timeout)
        except OSError as e:
            self._socket = None
            self._logger.error(
                "connect_failed",
                host=self.host,
                port=self.port,
                error=str(e),
            )
            raise ConnectError(f"Failed to connect to {self.host}:{self.port}: {e}") from e

        self._logger.debug("connected", host=self.host, port=self.port)

    def close(self) -> None:
        """Close connection."""
        if self._socket:
            try:
                self._socket.close()
            except OSError as e:
                self._logger.debug("close_failed", error=str(e))
            self._socket = None
            self._logger.debug("connection_closed", host=self.host)

    def send(self, data: bytes) -> bool:
        """
        Write a complete frame.

        Returns:
            False if the write failed; the failure is logged
        """
        if not self._socket:
            self._logger.warning("connection_reset", reason="not connected")
            return False

        try:
            self._socket.sendall(data)
        except OSError as e:
            self._logger.warning("connection_reset", error=str(e), length=len(data))
            return False

        self._logger.debug("frame_sent", length=len(data))
        return True

    def receive(self) -> bytes:
        """
        Read one response.

        Returns:
            Up to read_buffer_size bytes; empty on timeout, error or a
            closed peer
        """
        if not self._socket:
            return b""

        try:
            response = self._socket.recv(self.read_buffer_size)
        except socket.timeout:
            self._logger.info("response_read_timeout", timeout=self.read_timeout)
            return b""
        except OSError as e:
            self._logger.warning("response_read_failed", error=str(e))
            return b""

        self._logger.debug("frame_received", length=len(response))
        return response

    def __enter__(self) -> "SMBConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
