"""
SMBFuzzer SMB2 Field Enumerations

Wire codes for the enumerated and bit-field request/response fields
(MS-SMB2 section 2.2).
"""

from __future__ import annotations

from enum import IntEnum, IntFlag


# =============================================================================
# NEGOTIATE / SESSION SETUP
# =============================================================================


class SecurityMode(IntEnum):
    """Signing mode. 2 bytes in NEGOTIATE, 1 byte in SESSION_SETUP."""

    SIGNING_ENABLED = 0x01
    SIGNING_REQUIRED = 0x02


class Capabilities(IntFlag):
    """Global client/server capabilities."""

    DFS = 0x00000001
    LEASING = 0x00000002
    LARGE_MTU = 0x00000004
    MULTI_CHANNEL = 0x00000008
    PERSISTENT_HANDLES = 0x00000010
    DIRECTORY_LEASING = 0x00000020
    ENCRYPTION = 0x00000040

    @classmethod
    def all_except_encryption(cls) -> "Capabilities":
        return (
            cls.DFS
            | cls.LEASING
            | cls.LARGE_MTU
            | cls.MULTI_CHANNEL
            | cls.PERSISTENT_HANDLES
            | cls.DIRECTORY_LEASING
        )


class Dialect(IntEnum):
    """SMB2 dialect revisions."""

    SMB_2_0_2 = 0x0202
    SMB_2_1 = 0x0210
    SMB_3_0 = 0x0300
    SMB_3_0_2 = 0x0302
    SMB_3_1_1 = 0x0311


class SessionSetupFlags(IntEnum):
    """SESSION_SETUP request flags."""

    NONE = 0x00
    BINDING = 0x01


class SessionFlags(IntFlag):
    """SESSION_SETUP response session flags."""

    NONE = 0x0000
    IS_GUEST = 0x0001
    IS_NULL = 0x0002
    ENCRYPT_DATA = 0x0004


# =============================================================================
# TREE CONNECT
# =============================================================================


class TreeConnectFlags(IntFlag):
    """TREE_CONNECT request flags (3.1.1 only)."""

    CLUSTER_RECONNECT = 0x0001
    REDIRECT_TO_OWNER = 0x0002
    EXTENSION_PRESENT = 0x0004


class ShareType(IntEnum):
    """TREE_CONNECT response share type."""

    DISK = 0x01
    PIPE = 0x02
    PRINT = 0x03


class ShareFlags(IntFlag):
    """TREE_CONNECT response share flags."""

    MANUAL_CACHING = 0x00000000
    DFS = 0x00000001
    DFS_ROOT = 0x00000002
    AUTO_CACHING = 0x00000010
    VDO_CACHING = 0x00000020
    NO_CACHING = 0x00000030
    RESTRICT_EXCLUSIVE_OPENS = 0x00000100
    FORCE_SHARED_DELETE = 0x00000200
    ALLOW_NAMESPACE_CACHING = 0x00000400
    ACCESS_BASED_DIRECTORY_ENUM = 0x00000800
    FORCE_LEVELII_OPLOCK = 0x00001000
    ENABLE_HASH_V1 = 0x00002000
    ENABLE_HASH_V2 = 0x00004000
    ENCRYPT_DATA = 0x00008000
    IDENTITY_REMOTING = 0x00040000


class ShareCapabilities(IntFlag):
    """TREE_CONNECT response capabilities."""

    DFS = 0x00000008
    CONTINUOUS_AVAILABILITY = 0x00000010
    SCALEOUT = 0x00000020
    CLUSTER = 0x00000040
    ASYMMETRIC = 0x00000080
    REDIRECT_TO_OWNER = 0x00000100


# =============================================================================
# CREATE
# =============================================================================


class OplockLevel(IntEnum):
    """Requested oplock level."""

    NONE = 0x00
    II = 0x01
    EXCLUSIVE = 0x08
    BATCH = 0x09
    LEASE = 0xFF


class ImpersonationLevel(IntEnum):
    """Impersonation level."""

    ANONYMOUS = 0x00000000
    IDENTIFICATION = 0x00000001
    IMPERSONATION = 0x00000002
    DELEGATE = 0x00000003


class FileAccessMask(IntFlag):
    """File/pipe/printer access mask."""

    FILE_READ_DATA = 0x00000001
    FILE_WRITE_DATA = 0x00000002
    FILE_APPEND_DATA = 0x00000004
    FILE_READ_EA = 0x00000008
    FILE_WRITE_EA = 0x00000010
    FILE_EXECUTE = 0x00000020
    FILE_DELETE_CHILD = 0x00000040
    FILE_READ_ATTRIBUTES = 0x00000080
    FILE_WRITE_ATTRIBUTES = 0x00000100
    DELETE = 0x00010000
    READ_CONTROL = 0x00020000
    WRITE_DAC = 0x00040000
    WRITE_OWNER = 0x00080000
    SYNCHRONIZE = 0x00100000
    ACCESS_SYSTEM_SECURITY = 0x01000000
    MAXIMUM_ALLOWED = 0x02000000
    GENERIC_ALL = 0x10000000
    GENERIC_EXECUTE = 0x20000000
    GENERIC_WRITE = 0x40000000
    GENERIC_READ = 0x80000000


class FileAttributes(IntFlag):
    """File attributes."""

    READONLY = 0x00000001
    HIDDEN = 0x00000002
    SYSTEM = 0x00000004
    DIRECTORY = 0x00000010
    ARCHIVE = 0x00000020
    NORMAL = 0x00000080
    TEMPORARY = 0x00000100
    SPARSE_FILE = 0x00000200
    REPARSE_POINT = 0x00000400
    COMPRESSED = 0x00000800
    OFFLINE = 0x00001000
    NOT_CONTENT_INDEXED = 0x00002000
    ENCRYPTED = 0x00004000
    INTEGRITY_STREAM = 0x00008000
    NO_SCRUB_DATA = 0x00020000


class ShareAccess(IntFlag):
    """Share access bits."""

    READ = 0x00000001
    WRITE = 0x00000002
    DELETE = 0x00000004


class CreateDisposition(IntEnum):
    """Action when the file does or does not exist."""

    SUPERSEDE = 0x00000000
    OPEN = 0x00000001
    CREATE = 0x00000002
    OPEN_IF = 0x00000003
    OVERWRITE = 0x00000004
    OVERWRITE_IF = 0x00000005


class CreateOptions(IntFlag):
    """Create options."""

    DIRECTORY_FILE = 0x00000001
    WRITE_THROUGH = 0x00000002
    SEQUENTIAL_ONLY = 0x00000004
    NO_INTERMEDIATE_BUFFERING = 0x00000008
    SYNCHRONOUS_IO_ALERT = 0x00000010
    SYNCHRONOUS_IO_NONALERT = 0x00000020
    NON_DIRECTORY_FILE = 0x00000040
    COMPLETE_IF_OPLOCKED = 0x00000100
    NO_EA_KNOWLEDGE = 0x00000200
    RANDOM_ACCESS = 0x00000800
    DELETE_ON_CLOSE = 0x00001000
    OPEN_BY_FILE_ID = 0x00002000
    OPEN_FOR_BACKUP_INTENT = 0x00004000
    NO_COMPRESSION = 0x00008000
    OPEN_REMOTE_INSTANCE = 0x00000400
    OPEN_REQUIRING_OPLOCK = 0x00010000
    DISALLOW_EXCLUSIVE = 0x00020000
    RESERVE_OPFILTER = 0x00100000
    OPEN_REPARSE_POINT = 0x00200000
    OPEN_NO_RECALL = 0x00400000
    OPEN_FOR_FREE_SPACE_QUERY = 0x00800000


# =============================================================================
# QUERY INFO / CLOSE
# =============================================================================


class InfoType(IntEnum):
    """QUERY_INFO info type."""

    FILE = 0x01
    FILESYSTEM = 0x02
    SECURITY = 0x03
    QUOTA = 0x04


class QueryInfoFlags(IntFlag):
    """QUERY_INFO flags."""

    RESTART_SCAN = 0x00000001
    RETURN_SINGLE_ENTRY = 0x00000002
    INDEX_SPECIFIED = 0x00000004


class CloseFlags(IntFlag):
    """CLOSE flags."""

    NONE = 0x0000
    POSTQUERY_ATTRIB = 0x0001


FILE_ALL_INFORMATION = 18
