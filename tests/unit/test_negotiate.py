"""
Unit tests for NEGOTIATE requests and the negotiate context list.
"""

import attrs
import pytest

from smbfuzzer.core.exceptions import DecodeError
from smbfuzzer.core.fields import le_to_int, utf16le, zeros
from smbfuzzer.smb2.builders import (
    DEFAULT_DIALECTS,
    PREAUTH_SALT,
    build_negotiate,
    default_context,
    with_negotiate_layout,
)
from smbfuzzer.smb2.enums import Capabilities, Dialect
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
    context_type_of,
    decode_context_data,
    decode_context_list,
    encode_context_data,
    encode_context_list,
)
from smbfuzzer.smb2.requests import Negotiate, dialect_codes


ENCRYPTION_ENTRY = b"\x02\x00\x04\x00\x00\x00\x00\x00\x01\x00\x04\x00"
COMPRESSION_ENTRY = (
    b"\x03\x00\x0e\x00\x00\x00\x00\x00"
    b"\x03\x00\x00\x00\x00\x00\x00\x00\x01\x00\x02\x00\x03\x00"
)


@pytest.fixture
def encryption_context() -> NegotiateContext:
    return NegotiateContext.wrap(EncryptionCapabilities.create([Cipher.AES256_GCM]))


@pytest.fixture
def compression_context() -> NegotiateContext:
    return NegotiateContext.wrap(
        CompressionCapabilities.create(
            [
                CompressionAlgorithm.LZNT1,
                CompressionAlgorithm.LZ77,
                CompressionAlgorithm.LZ77_HUFFMAN,
            ]
        )
    )


class TestContextPayloads:
    """Tests for per-type payload serialization."""

    def test_preauth(self):
        """Test preauth payload: counts, algorithm, salt."""
        salt = bytes(range(32))
        data = PreauthIntegrityCapabilities.create([HashAlgorithm.SHA512], salt)
        assert encode_context_data(data) == b"\x01\x00\x20\x00\x01\x00" + salt

    def test_encryption(self):
        data = EncryptionCapabilities.create([Cipher.AES256_GCM])
        assert encode_context_data(data) == b"\x01\x00\x04\x00"

    def test_compression(self):
        data = CompressionCapabilities.create(
            [
                CompressionAlgorithm.LZNT1,
                CompressionAlgorithm.LZ77,
                CompressionAlgorithm.LZ77_HUFFMAN,
            ]
        )
        assert encode_context_data(data) == (
            b"\x03\x00\x00\x00\x00\x00\x00\x00\x01\x00\x02\x00\x03\x00"
        )

    def test_netname(self):
        """Test netname is the UTF-16LE host string."""
        data = NetnameNegotiateContextId.create("192.168.0.171")
        assert encode_context_data(data) == utf16le("192.168.0.171")

    def test_transport(self):
        assert encode_context_data(TransportCapabilities()) == zeros(4)

    def test_rdma(self):
        data = RdmaTransformCapabilities.create([RdmaTransformId.ENCRYPTION])
        assert encode_context_data(data) == b"\x01\x00\x00\x00\x00\x00\x00\x00\x01\x00"

    def test_type_tags(self):
        """Test each payload maps to exactly one context type."""
        assert context_type_of(TransportCapabilities()) == ContextType.TRANSPORT_CAPABILITIES
        assert (
            context_type_of(NetnameNegotiateContextId())
            == ContextType.NETNAME_NEGOTIATE_CONTEXT_ID
        )
        with pytest.raises(TypeError):
            context_type_of(object())

    def test_decode_payload(self):
        data = RdmaTransformCapabilities.create([RdmaTransformId.NONE, RdmaTransformId.ENCRYPTION])
        decoded = decode_context_data(
            ContextType.RDMA_TRANSFORM_CAPABILITIES, encode_context_data(data)
        )
        assert decoded == data

    def test_unmapped_cipher_rejected(self):
        """Test an unknown cipher id is a DecodeError."""
        with pytest.raises(DecodeError):
            decode_context_data(ContextType.ENCRYPTION_CAPABILITIES, b"\x01\x00\x09\x00")

    def test_truncated_code_list_rejected(self):
        with pytest.raises(DecodeError):
            decode_context_data(ContextType.ENCRYPTION_CAPABILITIES, b"\x02\x00\x01\x00")


class TestContextList:
    """Tests for context list encoding and the padding rule."""

    def test_wrap_derives_type_and_length(self, compression_context):
        assert compression_context.context_type == b"\x03\x00"
        assert le_to_int(compression_context.data_length) == 14

    def test_single_entry_has_no_padding(self, encryption_context):
        """Test the terminal entry is never padded."""
        assert encode_context_list([encryption_context], 0x68) == ENCRYPTION_ENTRY

    def test_padding_between_entries(self, encryption_context, compression_context):
        """Test a 12-byte entry at an aligned offset is followed by 4 pad bytes."""
        encoded = encode_context_list([encryption_context, compression_context], 0x68)
        assert encoded == ENCRYPTION_ENTRY + zeros(4) + COMPRESSION_ENTRY

    def test_aligned_entry_gets_eight_pad_bytes(self):
        """Test an entry ending on an 8-byte boundary is followed by a full 8-byte pad."""
        transport = NegotiateContext.wrap(TransportCapabilities())
        encoded = encode_context_list([transport, transport], 0x70)
        assert len(transport.to_bytes()) == 12
        # 0x70 + 12 = 124, so 4 bytes; then 8 more for an aligned end
        assert encoded[12:16] == zeros(4)

        rdma = NegotiateContext.wrap(RdmaTransformCapabilities.create([]))
        assert len(rdma.to_bytes()) == 16
        encoded = encode_context_list([rdma, transport], 0x70)
        assert encoded[16:24] == zeros(8)
        assert encoded[24:26] == b"\x06\x00"

    def test_decode_list(self, encryption_context, compression_context):
        """Test decoding returns the entries in order."""
        body = bytes(40) + encode_context_list([encryption_context, compression_context], 0x68)
        contexts = decode_context_list(body, 40, 2)
        assert contexts == [encryption_context, compression_context]

    def test_decode_count_beyond_data(self, encryption_context):
        """Test a count larger than the entries present is a DecodeError."""
        body = encode_context_list([encryption_context], 0x40)
        with pytest.raises(DecodeError):
            decode_context_list(body, 0, 2)

    def test_decode_truncated_data(self, encryption_context):
        body = encode_context_list([encryption_context], 0x40)
        with pytest.raises(DecodeError):
            decode_context_list(body[:-1], 0, 1)

    def test_unknown_context_type(self):
        with pytest.raises(DecodeError):
            decode_context_list(b"\x04\x00\x00\x00\x00\x00\x00\x00", 0, 1)


class TestNegotiateRequest:
    """Tests for the default NEGOTIATE request."""

    def test_default_dialects(self):
        body = build_negotiate("192.168.0.171")
        assert body.dialects == dialect_codes(DEFAULT_DIALECTS)
        assert le_to_int(body.dialect_count) == 5
        assert body.dialects[-1] == b"\x11\x03"

    def test_default_layout(self):
        """Test five dialects put the first context at 0x70 after 2 pad bytes."""
        body = build_negotiate("192.168.0.171")
        assert body.padding == zeros(2)
        assert le_to_int(body.negotiate_context_offset) == 0x70
        assert le_to_int(body.negotiate_context_count) == 3

    def test_default_contexts(self):
        body = build_negotiate("192.168.0.171")
        types = [le_to_int(c.context_type) for c in body.negotiate_context_list]
        assert types == [
            ContextType.PREAUTH_INTEGRITY_CAPABILITIES,
            ContextType.COMPRESSION_CAPABILITIES,
            ContextType.NETNAME_NEGOTIATE_CONTEXT_ID,
        ]
        assert body.negotiate_context_list[0].data.salt == PREAUTH_SALT

    def test_default_capabilities(self):
        body = build_negotiate("h")
        assert not le_to_int(body.capabilities) & Capabilities.ENCRYPTION
        assert le_to_int(body.security_mode) == 1

    def test_serialized_length(self):
        """Test the context list lands where negotiate_context_offset says."""
        body = build_negotiate("192.168.0.171")
        encoded = body.to_bytes()
        assert len(encoded) == 154
        first_context = le_to_int(body.negotiate_context_offset) - 64
        assert encoded[first_context : first_context + 2] == b"\x01\x00"

    def test_decode_default(self):
        """Test decoding the default NEGOTIATE returns an equal value."""
        body = build_negotiate("192.168.0.171")
        assert Negotiate.from_bytes(body.to_bytes()) == body

    def test_layout_without_contexts(self):
        """Test no contexts means no padding and a zero offset."""
        body = with_negotiate_layout(
            attrs.evolve(build_negotiate("h"), negotiate_context_list=())
        )
        assert body.padding == b""
        assert body.negotiate_context_offset == zeros(4)
        assert body.negotiate_context_count == zeros(2)
        assert Negotiate.from_bytes(body.to_bytes()) == body

    def test_single_dialect_layout(self):
        body = with_negotiate_layout(
            Negotiate(
                dialects=dialect_codes([Dialect.SMB_3_1_1]),
                negotiate_context_list=(default_context(ContextType.ENCRYPTION_CAPABILITIES, "h"),),
            )
        )
        # 64 + 36 + 2 = 102, padded to 104
        assert body.padding == zeros(2)
        assert le_to_int(body.negotiate_context_offset) == 104
