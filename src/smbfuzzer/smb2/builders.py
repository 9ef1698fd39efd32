"""
SMBFuzzer Default Request Builders

Working default requests for every handshake step. Each builder returns a
body that a conforming server accepts; the fuzzer starts from these and
the state machine sends them unchanged to reach a state.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import DecodeError, SMBFuzzerError
from smbfuzzer.core.fields import alignment_padding, int_to_le, utf16le
from smbfuzzer.gss import INITIAL_SECURITY_BLOB, wrap_authenticate
from smbfuzzer.ntlm.authenticate import build_authenticate
from smbfuzzer.ntlm.types import AuthenticateMessage, ChallengeMessage
from smbfuzzer.smb2.enums import (
    FILE_ALL_INFORMATION,
    Capabilities,
    CreateDisposition,
    CreateOptions,
    Dialect,
    FileAccessMask,
    ImpersonationLevel,
    InfoType,
    OplockLevel,
    SecurityMode,
    SessionSetupFlags,
    ShareAccess,
)
from smbfuzzer.smb2.header import HEADER_LENGTH, Header, build_sync_header
from smbfuzzer.smb2.negotiate_context import (
    Cipher,
    CompressionAlgorithm,
    CompressionCapabilities,
    ContextType,
    EncryptionCapabilities,
    HashAlgorithm,
    NegotiateContext,
    NetnameNegotiateContextId,
    PreauthIntegrityCapabilities,
    RdmaTransformCapabilities,
    RdmaTransformId,
    TransportCapabilities,
)
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
    dialect_codes,
    fixed_length,
    with_derived_lengths,
)

logger = structlog.get_logger()


# =============================================================================
# CARRIED IDENTIFIERS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class CarriedIds:
    """
    Identifiers handed forward from one handshake response to later requests.

    All start absent. session_id comes from the SESSION_SETUP response
    header, tree_id from the TREE_CONNECT response header, file_id from
    the CREATE response body and challenge from the first SESSION_SETUP
    response buffer.
    """

    session_id: Optional[bytes] = None
    tree_id: Optional[bytes] = None
    file_id: Optional[bytes] = None
    challenge: Optional[ChallengeMessage] = None

    def require_file_id(self) -> Result[bytes, SMBFuzzerError]:
        if self.file_id is None:
            return Failure(DecodeError("No file id from a CREATE response"))
        return Success(self.file_id)

    def require_challenge(self) -> Result[ChallengeMessage, SMBFuzzerError]:
        if self.challenge is None:
            return Failure(DecodeError("No server challenge from SESSION_SETUP"))
        return Success(self.challenge)


# =============================================================================
# HEADERS
# =============================================================================


# (credit_charge, credit_request, message_id) per step
STEP_HEADERS: Dict[MessageType, Tuple[int, int, int]] = {
    MessageType.NEGOTIATE: (0, 0, 0),
    MessageType.SESSION_SETUP_NEGOTIATE: (1, 8192, 1),
    MessageType.SESSION_SETUP_AUTHENTICATE: (1, 8192, 2),
    MessageType.TREE_CONNECT: (1, 8064, 3),
    MessageType.CREATE: (1, 7968, 4),
    MessageType.QUERY_INFO: (1, 7936, 5),
    MessageType.ECHO: (1, 7968, 6),
    MessageType.CLOSE: (1, 7872, 7),
}


def build_request_header(message: MessageType, ids: CarriedIds) -> Header:
    """Header for a step, carrying whichever session and tree ids are known."""
    credit_charge, credit_request, message_id = STEP_HEADERS[message]
    return build_sync_header(
        message.command,
        credit_charge,
        credit_request,
        tree_id=ids.tree_id,
        session_id=ids.session_id,
        message_id=message_id,
    )


# =============================================================================
# NEGOTIATE
# =============================================================================


DEFAULT_DIALECTS = (
    Dialect.SMB_2_0_2,
    Dialect.SMB_2_1,
    Dialect.SMB_3_0,
    Dialect.SMB_3_0_2,
    Dialect.SMB_3_1_1,
)

PREAUTH_SALT = (
    b"\x79\x13\x02\xd4\xd7\x0c\x2a\x12\x50\x84\xba\xa6\x03\xae\xda\xe4"
    b"\x12\xe8\x0b\x6e\x96\xf7\xdb\xa9\x46\xdf\x3e\xdc\x16\xe8\x4a\x5a"
)


def default_preauth_context() -> NegotiateContext:
    return NegotiateContext.wrap(
        PreauthIntegrityCapabilities.create([HashAlgorithm.SHA512], PREAUTH_SALT)
    )


def default_encryption_context() -> NegotiateContext:
    return NegotiateContext.wrap(
        EncryptionCapabilities.create([Cipher.AES128_GCM, Cipher.AES128_CCM])
    )


def default_compression_context() -> NegotiateContext:
    return NegotiateContext.wrap(
        CompressionCapabilities.create(
            [
                CompressionAlgorithm.LZ77,
                CompressionAlgorithm.LZ77_HUFFMAN,
                CompressionAlgorithm.LZNT1,
            ]
        )
    )


def default_netname_context(netname: str) -> NegotiateContext:
    return NegotiateContext.wrap(NetnameNegotiateContextId.create(netname))


def default_context(context_type: ContextType, netname: str) -> NegotiateContext:
    """Working default entry for any context type."""
    if context_type == ContextType.PREAUTH_INTEGRITY_CAPABILITIES:
        return default_preauth_context()
    if context_type == ContextType.ENCRYPTION_CAPABILITIES:
        return default_encryption_context()
    if context_type == ContextType.COMPRESSION_CAPABILITIES:
        return default_compression_context()
    if context_type == ContextType.NETNAME_NEGOTIATE_CONTEXT_ID:
        return default_netname_context(netname)
    if context_type == ContextType.TRANSPORT_CAPABILITIES:
        return NegotiateContext.wrap(TransportCapabilities())
    return NegotiateContext.wrap(RdmaTransformCapabilities.create([RdmaTransformId.NONE]))


def with_negotiate_layout(body: Negotiate) -> Negotiate:
    """
    Recompute the dependent NEGOTIATE fields.

    dialect_count and negotiate_context_count follow the collections.
    With contexts present, padding aligns the first context and
    negotiate_context_offset points at it; without contexts both are
    empty.
    """
    dialects_end = fixed_length(Negotiate.WIRE_FIELDS) + 2 * len(body.dialects)
    if body.negotiate_context_list:
        padding = alignment_padding(HEADER_LENGTH + dialects_end)
        offset = HEADER_LENGTH + dialects_end + len(padding)
    else:
        padding = b""
        offset = 0
    return attrs.evolve(
        body,
        dialect_count=int_to_le(len(body.dialects), 2),
        padding=padding,
        negotiate_context_offset=int_to_le(offset, 4),
        negotiate_context_count=int_to_le(len(body.negotiate_context_list), 2),
    )


def build_negotiate(
    netname: str,
    dialects: Sequence[int] = DEFAULT_DIALECTS,
) -> Negotiate:
    """Default NEGOTIATE: five dialects, preauth, compression and netname contexts."""
    body = Negotiate(
        security_mode=int_to_le(SecurityMode.SIGNING_ENABLED, 2),
        capabilities=int_to_le(Capabilities.all_except_encryption(), 4),
        dialects=dialect_codes(dialects),
        negotiate_context_list=(
            default_preauth_context(),
            default_compression_context(),
            default_netname_context(netname),
        ),
    )
    return with_negotiate_layout(body)


# =============================================================================
# SESSION SETUP
# =============================================================================


def _session_setup(buffer: bytes) -> SessionSetup:
    return with_derived_lengths(
        SessionSetup(
            flags=int_to_le(SessionSetupFlags.NONE, 1),
            security_mode=int_to_le(SecurityMode.SIGNING_ENABLED, 1),
            capabilities=int_to_le(Capabilities.DFS, 4),
            buffer=buffer,
        )
    )


def build_session_setup_negotiate() -> SessionSetup:
    """First SESSION_SETUP: SPNEGO NegTokenInit around an NTLM NEGOTIATE."""
    return _session_setup(INITIAL_SECURITY_BLOB)


def build_session_setup_authenticate(
    challenge: ChallengeMessage, host: str
) -> Result[SessionSetup, SMBFuzzerError]:
    """
    Second SESSION_SETUP: GSS-wrapped NTLM AUTHENTICATE.

    Returns:
        Success(SessionSetup), or Failure(MissingTimestampError) when the
        challenge has no timestamp
    """

    def wrap(message: AuthenticateMessage) -> SessionSetup:
        ntlm_bytes = message.to_bytes()
        logger.debug("authenticate_wrapped", host=host, ntlm_length=len(ntlm_bytes))
        return _session_setup(wrap_authenticate(ntlm_bytes))

    return build_authenticate(challenge, host).map(wrap)


# =============================================================================
# TREE / FILE OPERATIONS
# =============================================================================


def build_tree_connect(share_path: str) -> TreeConnect:
    """Default TREE_CONNECT for a UNC share path."""
    return with_derived_lengths(TreeConnect(buffer=utf16le(share_path)))


def build_create(file_name: str) -> Create:
    """Default CREATE opening an existing file for reading."""
    access = (
        FileAccessMask.FILE_READ_DATA
        | FileAccessMask.FILE_READ_EA
        | FileAccessMask.FILE_READ_ATTRIBUTES
        | FileAccessMask.READ_CONTROL
        | FileAccessMask.SYNCHRONIZE
    )
    return with_derived_lengths(
        Create(
            requested_oplock_level=int_to_le(OplockLevel.NONE, 1),
            impersonation_level=int_to_le(ImpersonationLevel.IMPERSONATION, 4),
            desired_access=int_to_le(access, 4),
            share_access=int_to_le(ShareAccess.READ | ShareAccess.WRITE, 4),
            create_disposition=int_to_le(CreateDisposition.OPEN, 4),
            create_options=int_to_le(CreateOptions.NON_DIRECTORY_FILE, 4),
            buffer=utf16le(file_name + "\x00"),
        )
    )


def build_query_info(file_id: bytes) -> QueryInfo:
    """Default QUERY_INFO asking for FileAllInformation."""
    return QueryInfo(
        info_type=int_to_le(InfoType.FILE, 1),
        file_info_class=int_to_le(FILE_ALL_INFORMATION, 1),
        output_buffer_length=int_to_le(0xFFFF, 4),
        file_id=file_id,
        buffer=b"\x00",
    )


def build_close(file_id: bytes) -> Close:
    return Close(file_id=file_id)


def build_echo() -> Echo:
    return Echo()


# =============================================================================
# DISPATCH
# =============================================================================


def build_default_body(
    message: MessageType, ids: CarriedIds, config: FuzzerConfig
) -> Result[RequestBody, SMBFuzzerError]:
    """
    Working default body for a message kind.

    Fails with DecodeError when a carried value the body needs is absent
    (no challenge for SESSION_SETUP_AUTHENTICATE, no file id for
    QUERY_INFO and CLOSE), or with MissingTimestampError when the
    challenge has no timestamp.
    """
    if message == MessageType.NEGOTIATE:
        return Success(build_negotiate(config.effective_netname))
    if message == MessageType.SESSION_SETUP_NEGOTIATE:
        return Success(build_session_setup_negotiate())
    if message == MessageType.SESSION_SETUP_AUTHENTICATE:
        return ids.require_challenge().bind(
            lambda challenge: build_session_setup_authenticate(challenge, config.host)
        )
    if message == MessageType.TREE_CONNECT:
        return Success(build_tree_connect(config.share_path))
    if message == MessageType.CREATE:
        return Success(build_create(config.file_name))
    if message == MessageType.QUERY_INFO:
        return ids.require_file_id().map(build_query_info)
    if message == MessageType.CLOSE:
        return ids.require_file_id().map(build_close)
    return Success(build_echo())
