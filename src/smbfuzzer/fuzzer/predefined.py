"""
SMBFuzzer Predefined Strategy

Starts from the working default request and replaces fields whose
domain is a small enumerated set with sampled values. Enumerations take
one random member; bit fields take the union of 0..99 random draws.
Fields derived from a sampled collection (counts, offsets, padding) are
recomputed, so every output is itself decodable. Carried identifiers
are used verbatim.
"""

from __future__ import annotations

from typing import Tuple

import attrs
from returns.result import Result, Success

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import SMBFuzzerError
from smbfuzzer.core.fields import int_to_le
from smbfuzzer.fuzzer.random_source import RandomSource
from smbfuzzer.smb2.builders import (
    CarriedIds,
    build_create,
    build_default_body,
    build_negotiate,
    build_session_setup_negotiate,
    build_tree_connect,
    default_context,
    with_negotiate_layout,
)
from smbfuzzer.smb2.enums import (
    Capabilities,
    CloseFlags,
    CreateDisposition,
    CreateOptions,
    Dialect,
    FileAccessMask,
    FileAttributes,
    ImpersonationLevel,
    InfoType,
    OplockLevel,
    QueryInfoFlags,
    SecurityMode,
    SessionSetupFlags,
    ShareAccess,
    TreeConnectFlags,
)
from smbfuzzer.smb2.negotiate_context import (
    Cipher,
    CompressionAlgorithm,
    CompressionCapabilities,
    ContextType,
    EncryptionCapabilities,
    NegotiateContext,
    RdmaTransformCapabilities,
    RdmaTransformId,
)
from smbfuzzer.smb2.requests import (
    Close,
    Create,
    MessageType,
    Negotiate,
    QueryInfo,
    RequestBody,
    SessionSetup,
    TreeConnect,
    dialect_codes,
)


# Upper bound (exclusive) for the number of sampled negotiate contexts
MAX_SAMPLED_CONTEXTS = 10

# Upper bound (exclusive) for sampled ciphers, algorithms and transforms
MAX_SAMPLED_CODES = 10


# =============================================================================
# NEGOTIATE
# =============================================================================


def sample_context(context_type: ContextType, netname: str, rng: RandomSource) -> NegotiateContext:
    """Default entry of a type, with cipher, algorithm or transform lists sampled."""
    if context_type == ContextType.ENCRYPTION_CAPABILITIES:
        ciphers = rng.draws(list(Cipher), MAX_SAMPLED_CODES)
        return NegotiateContext.wrap(EncryptionCapabilities.create(ciphers))
    if context_type == ContextType.COMPRESSION_CAPABILITIES:
        algorithms = rng.draws(list(CompressionAlgorithm), MAX_SAMPLED_CODES)
        return NegotiateContext.wrap(CompressionCapabilities.create(algorithms))
    if context_type == ContextType.RDMA_TRANSFORM_CAPABILITIES:
        transforms = rng.draws(list(RdmaTransformId), MAX_SAMPLED_CODES)
        return NegotiateContext.wrap(RdmaTransformCapabilities.create(transforms))
    return default_context(context_type, netname)


def sample_contexts(netname: str, rng: RandomSource) -> Tuple[NegotiateContext, ...]:
    return tuple(
        sample_context(context_type, netname, rng)
        for context_type in rng.draws(list(ContextType), MAX_SAMPLED_CONTEXTS)
    )


def fuzz_negotiate(config: FuzzerConfig, rng: RandomSource) -> Negotiate:
    body = attrs.evolve(
        build_negotiate(config.effective_netname),
        capabilities=int_to_le(rng.flag_set(Capabilities), 4),
        security_mode=int_to_le(rng.enum_member(SecurityMode), 2),
        dialects=dialect_codes(rng.draws(list(Dialect))),
        negotiate_context_list=sample_contexts(config.effective_netname, rng),
    )
    return with_negotiate_layout(body)


# =============================================================================
# SESSION SETUP / TREE CONNECT
# =============================================================================


def sample_session_setup(body: SessionSetup, rng: RandomSource) -> SessionSetup:
    return attrs.evolve(
        body,
        flags=int_to_le(rng.enum_member(SessionSetupFlags), 1),
        security_mode=int_to_le(rng.enum_member(SecurityMode), 1),
    )


def fuzz_tree_connect(config: FuzzerConfig, rng: RandomSource) -> TreeConnect:
    return attrs.evolve(
        build_tree_connect(config.share_path),
        flags=int_to_le(rng.flag_set(TreeConnectFlags), 2),
    )


# =============================================================================
# FILE OPERATIONS
# =============================================================================


def fuzz_create(config: FuzzerConfig, rng: RandomSource) -> Create:
    return attrs.evolve(
        build_create(config.file_name),
        requested_oplock_level=int_to_le(rng.enum_member(OplockLevel), 1),
        impersonation_level=int_to_le(rng.enum_member(ImpersonationLevel), 4),
        desired_access=int_to_le(rng.flag_set(FileAccessMask), 4),
        file_attributes=int_to_le(rng.flag_set(FileAttributes), 4),
        share_access=int_to_le(rng.flag_set(ShareAccess), 4),
        create_disposition=int_to_le(rng.enum_member(CreateDisposition), 4),
        create_options=int_to_le(rng.flag_set(CreateOptions), 4),
    )


def sample_query_info(body: QueryInfo, rng: RandomSource) -> QueryInfo:
    return attrs.evolve(
        body,
        info_type=int_to_le(rng.enum_member(InfoType), 1),
        flags=int_to_le(rng.flag_set(QueryInfoFlags), 4),
    )


def sample_close(body: Close, rng: RandomSource) -> Close:
    return attrs.evolve(body, flags=int_to_le(rng.flag_set(CloseFlags), 2))


# =============================================================================
# DISPATCH
# =============================================================================


def predefined(
    message: MessageType,
    ids: CarriedIds,
    config: FuzzerConfig,
    rng: RandomSource,
) -> Result[RequestBody, SMBFuzzerError]:
    """
    Predefined-strategy body for a message kind.

    Fails like the default builder when a carried value is missing.
    """
    if message == MessageType.NEGOTIATE:
        return Success(fuzz_negotiate(config, rng))
    if message == MessageType.SESSION_SETUP_NEGOTIATE:
        return Success(sample_session_setup(build_session_setup_negotiate(), rng))
    if message == MessageType.SESSION_SETUP_AUTHENTICATE:
        return build_default_body(message, ids, config).map(
            lambda body: sample_session_setup(body, rng)
        )
    if message == MessageType.TREE_CONNECT:
        return Success(fuzz_tree_connect(config, rng))
    if message == MessageType.CREATE:
        return Success(fuzz_create(config, rng))
    if message == MessageType.QUERY_INFO:
        return build_default_body(message, ids, config).map(
            lambda body: sample_query_info(body, rng)
        )
    if message == MessageType.CLOSE:
        return build_default_body(message, ids, config).map(
            lambda body: sample_close(body, rng)
        )
    # ECHO has nothing to sample
    return build_default_body(message, ids, config)
