"""
Wire constants for the MongoDB OP_MSG protocol.

All values are enums or module-level ints and are never mutated.
"""

from enum import IntEnum, IntFlag


class OpCode(IntEnum):
    """Message operation codes."""

    OP_COMPRESSED = 2012
    OP_MSG = 2013


class BSONType(IntEnum):
    """BSON element type tags."""

    DOUBLE = 0x01
    STRING = 0x02
    DOCUMENT = 0x03
    ARRAY = 0x04
    BINARY = 0x05
    UNDEFINED = 0x06  # deprecated, decoded as null
    OBJECT_ID = 0x07
    BOOLEAN = 0x08
    DATETIME = 0x09
    NULL = 0x0A
    REGEX = 0x0B
    INT32 = 0x10
    TIMESTAMP = 0x11
    INT64 = 0x12
    DECIMAL128 = 0x13
    MIN_KEY = 0xFF
    MAX_KEY = 0x7F


class MessageFlag(IntFlag):
    """OP_MSG flag bits."""

    CHECKSUM_PRESENT = 1 << 0
    MORE_TO_COME = 1 << 1
    EXHAUST_ALLOWED = 1 << 16


class SectionKind(IntEnum):
    """OP_MSG section payload types."""

    BODY = 0
    DOCUMENT_SEQUENCE = 1


# Bits 0-15 must be understood by the receiver, bits 16-31 may be ignored.
REQUIRED_FLAG_MASK = 0xFFFF
KNOWN_FLAGS = int(MessageFlag.CHECKSUM_PRESENT | MessageFlag.MORE_TO_COME | MessageFlag.EXHAUST_ALLOWED)

HEADER_SIZE = 16
FLAGS_SIZE = 4
CHECKSUM_SIZE = 4
# header + flags + kind byte + smallest document
MIN_MESSAGE_SIZE = HEADER_SIZE + FLAGS_SIZE + 1 + 5

DEFAULT_MAX_MESSAGE_SIZE = 48_000_000
MAX_NESTING_DEPTH = 100

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

__all__ = [
    "BSONType",
    "MessageFlag",
    "OpCode",
    "SectionKind",
    "REQUIRED_FLAG_MASK",
    "KNOWN_FLAGS",
    "HEADER_SIZE",
    "FLAGS_SIZE",
    "CHECKSUM_SIZE",
    "MIN_MESSAGE_SIZE",
    "DEFAULT_MAX_MESSAGE_SIZE",
    "MAX_NESTING_DEPTH",
    "INT32_MIN",
    "INT32_MAX",
    "INT64_MIN",
    "INT64_MAX",
]
