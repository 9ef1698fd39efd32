"""
SMBFuzzer Transport Module

TCP byte stream used to talk to the SMB2 server.
"""

from smbfuzzer.transport.connection import SMBConnection, Transport

__all__ = [
    "SMBConnection",
    "Transport",
]
