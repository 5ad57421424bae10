"""
Mango SDK Protocol Module.

Implements the MongoDB wire protocol pieces: BSON documents, OP_MSG
framing, request correlation and Extended JSON.
"""

from .bson import decode as bson_decode, decode_all as bson_decode_all, encode as bson_encode
from .checksum import crc32c
from .constants import BSONType, MessageFlag, OpCode, SectionKind
from .correlator import RequestCorrelator
from .message import (
    BodySection,
    DocumentSequence,
    FrameReader,
    MessageHeader,
    Section,
    WireMessage,
    build_message,
    decode_message,
    parse_message,
    section_from_mapping,
)

__all__ = [
    # BSON
    "bson_encode",
    "bson_decode",
    "bson_decode_all",
    # Constants
    "BSONType",
    "MessageFlag",
    "OpCode",
    "SectionKind",
    # Framing
    "BodySection",
    "DocumentSequence",
    "FrameReader",
    "MessageHeader",
    "Section",
    "WireMessage",
    "build_message",
    "decode_message",
    "parse_message",
    "section_from_mapping",
    "crc32c",
    # Correlation
    "RequestCorrelator",
]
