"""
SMBFuzzer SMB2 Module

Wire codec for SMB2: header, request and response bodies, negotiate
contexts, transport framing and the default request builders.
"""

from smbfuzzer.smb2.builders import (
    STEP_HEADERS,
    CarriedIds,
    build_default_body,
    build_request_header,
)
from smbfuzzer.smb2.codec import decode_request, encode, split_frame
from smbfuzzer.smb2.header import HEADER_LENGTH, Command, Header, HeaderFlags, build_sync_header
from smbfuzzer.smb2.requests import (
    Close,
    Create,
    Echo,
    MessageType,
    Negotiate,
    QueryInfo,
    RequestBody,
    SessionSetup,
    TreeConnect,
)

__all__ = [
    "HEADER_LENGTH",
    "STEP_HEADERS",
    "CarriedIds",
    "Close",
    "Command",
    "Create",
    "Echo",
    "Header",
    "HeaderFlags",
    "MessageType",
    "Negotiate",
    "QueryInfo",
    "RequestBody",
    "SessionSetup",
    "TreeConnect",
    "build_default_body",
    "build_request_header",
    "build_sync_header",
    "decode_request",
    "encode",
    "split_frame",
]
