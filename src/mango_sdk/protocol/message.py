"""
OP_MSG framing for the MongoDB wire protocol.

Message layout::

    header      int32 messageLength   (whole message, header included)
                int32 requestID
                int32 responseTo      (0 for requests)
                int32 opCode          (2013, OP_MSG)
    flagBits    uint32
    sections    kind 0: one BSON document (the command body)
                kind 1: int32 size, cstring identifier, BSON documents
    checksum    optional uint32 CRC-32C, present when flagBits bit 0 is set
"""

from __future__ import annotations

import struct
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

from ..exceptions import ConnectionClosedError, ProtocolError, TransportError
from ..types import Document
from . import bson
from .checksum import crc32c
from .constants import (
    CHECKSUM_SIZE,
    DEFAULT_MAX_MESSAGE_SIZE,
    FLAGS_SIZE,
    HEADER_SIZE,
    INT32_MAX,
    INT32_MIN,
    KNOWN_FLAGS,
    MIN_MESSAGE_SIZE,
    REQUIRED_FLAG_MASK,
    MessageFlag,
    OpCode,
    SectionKind,
)

_HEADER = struct.Struct("<iiii")
_INT32 = struct.Struct("<i")
_UINT32 = struct.Struct("<I")


class ByteSource(Protocol):
    """Anything with an ``asyncio.StreamReader``-style ``read``."""

    async def read(self, n: int = -1) -> bytes: ...


@dataclass(frozen=True)
class BodySection:
    """Kind 0 section: the command body."""

    body: Mapping[str, Any]
    kind: ClassVar[SectionKind] = SectionKind.BODY


@dataclass(frozen=True)
class DocumentSequence:
    """Kind 1 section: an identified sequence of documents (bulk payloads)."""

    identifier: str
    documents: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    kind: ClassVar[SectionKind] = SectionKind.DOCUMENT_SEQUENCE

    def __post_init__(self) -> None:
        object.__setattr__(self, "documents", tuple(self.documents))


Section = BodySection | DocumentSequence


@dataclass(frozen=True)
class MessageHeader:
    """The fixed 16-byte message header."""

    length: int
    request_id: int
    response_to: int
    op_code: int


@dataclass(frozen=True)
class WireMessage:
    """
    A decoded OP_MSG message.

    Attributes:
        header: Fixed header fields
        flag_bits: Raw flag bits
        sections: Sections in wire order
        checksum: Trailing CRC-32C, when the checksum flag is set
    """

    header: MessageHeader
    flag_bits: int
    sections: tuple[Section, ...]
    checksum: int | None = None

    @property
    def request_id(self) -> int:
        return self.header.request_id

    @property
    def response_to(self) -> int:
        return self.header.response_to

    @property
    def more_to_come(self) -> bool:
        """Whether the sender will follow this message with another one."""
        return bool(self.flag_bits & MessageFlag.MORE_TO_COME)

    @property
    def body(self) -> Document:
        """The kind 0 section's document."""
        for section in self.sections:
            if isinstance(section, BodySection):
                return Document(section.body)
        raise ProtocolError("Message has no body section")

    def to_document(self) -> Document:
        """
        Return the body with every document sequence merged in.

        Each kind 1 section is added to a copy of the body as a list under its
        identifier, which is how the server reads bulk payloads too.
        """
        document = self.body
        for section in self.sections:
            if isinstance(section, DocumentSequence):
                document[section.identifier] = [Document(doc) for doc in section.documents]
        return document


def section_from_mapping(data: Mapping[str, Any]) -> Section:
    """
    Build a section from its mapping form.

    ``{"kind": 0, "body": {...}}`` or
    ``{"kind": 1, "identifier": "documents", "documents": [...]}``.
    """
    kind = data.get("kind")
    if kind == SectionKind.BODY:
        if "body" not in data:
            raise ProtocolError("Kind 0 section requires a 'body'")
        return BodySection(body=data["body"])
    if kind == SectionKind.DOCUMENT_SEQUENCE:
        if "identifier" not in data:
            raise ProtocolError("Kind 1 section requires an 'identifier'")
        return DocumentSequence(identifier=data["identifier"], documents=data.get("documents", ()))
    raise ProtocolError(f"Unknown section kind {kind!r}")


def coerce_sections(sections: Iterable[Section | Mapping[str, Any]]) -> tuple[Section, ...]:
    """Normalize a mix of section objects and mappings into section objects."""
    result: list[Section] = []
    for section in sections:
        if isinstance(section, (BodySection, DocumentSequence)):
            result.append(section)
        elif isinstance(section, Mapping):
            result.append(section_from_mapping(section))
        else:
            raise ProtocolError(f"Invalid section {section!r}")
    return tuple(result)


def command_name(body: Mapping[str, Any]) -> str:
    """The command name is the first key of the body."""
    for key in body:
        return key
    return ""


def check_flags(flag_bits: int) -> None:
    """Reject required flag bits (0-15) this client does not understand."""
    if not 0 <= flag_bits <= 0xFFFFFFFF:
        raise ProtocolError(f"Flag bits must fit in 32 bits, got {flag_bits}")
    unknown = flag_bits & REQUIRED_FLAG_MASK & ~KNOWN_FLAGS
    if unknown:
        raise ProtocolError(f"Unsupported OP_MSG flags: 0x{unknown:x}")


def _check_length(length: int, max_message_size: int) -> None:
    if length < MIN_MESSAGE_SIZE:
        raise ProtocolError(f"Message length {length} is smaller than the minimum {MIN_MESSAGE_SIZE}")
    if length > max_message_size:
        raise ProtocolError(f"Message length {length} exceeds the maximum {max_message_size}")


def _encode_identifier(identifier: str) -> bytes:
    data = identifier.encode("utf-8")
    if b"\x00" in data:
        raise ProtocolError(f"Section identifier {identifier!r} contains a NUL byte")
    return data + b"\x00"


# Encoding


def build_message(
    flag_bits: int,
    sections: Iterable[Section | Mapping[str, Any]],
    request_id: int,
    response_to: int = 0,
) -> bytes:
    """
    Build a complete OP_MSG frame.

    Args:
        flag_bits: OP_MSG flag bits; ``CHECKSUM_PRESENT`` appends a CRC-32C
        sections: Sections in wire order, exactly one of them kind 0
        request_id: Identifier the reply's ``responseTo`` will carry
        response_to: 0 for requests

    Returns:
        The framed bytes, header length field backpatched

    Raises:
        ProtocolError: On unknown flag bits or an invalid section list
        MalformedDocumentError: If a document cannot be encoded
    """
    flags = int(flag_bits)
    check_flags(flags)
    for name, value in (("request id", request_id), ("responseTo", response_to)):
        if not INT32_MIN <= value <= INT32_MAX:
            raise ProtocolError(f"{name} {value} does not fit in an int32")

    normalized = coerce_sections(sections)
    bodies = sum(1 for section in normalized if isinstance(section, BodySection))
    if bodies != 1:
        raise ProtocolError(f"OP_MSG requires exactly one kind 0 section, got {bodies}")

    buf = bytearray(HEADER_SIZE)
    buf += _UINT32.pack(flags)
    for section in normalized:
        if isinstance(section, BodySection):
            buf.append(SectionKind.BODY)
            buf += bson.encode(section.body)
        else:
            identifier = _encode_identifier(section.identifier)
            payload = b"".join(bson.encode(document) for document in section.documents)
            buf.append(SectionKind.DOCUMENT_SEQUENCE)
            buf += _INT32.pack(4 + len(identifier) + len(payload))
            buf += identifier
            buf += payload

    with_checksum = bool(flags & MessageFlag.CHECKSUM_PRESENT)
    length = len(buf) + (CHECKSUM_SIZE if with_checksum else 0)
    _HEADER.pack_into(buf, 0, length, request_id, response_to, OpCode.OP_MSG)
    if with_checksum:
        buf += _UINT32.pack(crc32c(buf))
    return bytes(buf)


# Decoding


def decode_message(data: bytes, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> WireMessage:
    """
    Decode one complete, in-memory OP_MSG frame.

    Raises:
        ProtocolError: On a bad header, op code, flags, checksum or section layout
        MalformedDocumentError: If a section document is corrupt
    """
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise ProtocolError(f"Message of {len(data)} bytes is shorter than its header")

    header = MessageHeader(*_HEADER.unpack_from(data, 0))
    _check_length(header.length, max_message_size)
    if header.length != len(data):
        raise ProtocolError(f"Header declares {header.length} bytes but the frame holds {len(data)}")
    if header.op_code != OpCode.OP_MSG:
        try:
            name = OpCode(header.op_code).name
        except ValueError:
            name = str(header.op_code)
        raise ProtocolError(f"Unexpected operation code {name}, expected OP_MSG")

    (flags,) = _UINT32.unpack_from(data, HEADER_SIZE)
    check_flags(flags)

    end = header.length
    checksum = None
    if flags & MessageFlag.CHECKSUM_PRESENT:
        end -= CHECKSUM_SIZE
        if end < HEADER_SIZE + FLAGS_SIZE:
            raise ProtocolError("Message is too short to carry a checksum")
        (checksum,) = _UINT32.unpack_from(data, end)
        expected = crc32c(data[:end])
        if checksum != expected:
            raise ProtocolError(f"Checksum mismatch: message carries 0x{checksum:08x}, computed 0x{expected:08x}")

    payload = data[:end]
    pos = HEADER_SIZE + FLAGS_SIZE
    sections: list[Section] = []
    while pos < end:
        kind = payload[pos]
        pos += 1
        if kind == SectionKind.BODY:
            body, consumed = bson.decode(payload, pos)
            sections.append(BodySection(body=body))
            pos += consumed
        elif kind == SectionKind.DOCUMENT_SEQUENCE:
            sections.append(_decode_sequence(payload, pos))
            pos += _INT32.unpack_from(payload, pos)[0]
        else:
            raise ProtocolError(f"Unknown section kind {kind} at offset {pos - 1}")

    bodies = sum(1 for section in sections if isinstance(section, BodySection))
    if bodies != 1:
        raise ProtocolError(f"OP_MSG requires exactly one kind 0 section, got {bodies}")

    return WireMessage(header=header, flag_bits=flags, sections=tuple(sections), checksum=checksum)


def _decode_sequence(payload: bytes, pos: int) -> DocumentSequence:
    if pos + 4 > len(payload):
        raise ProtocolError("Document sequence size runs past the end of the message")
    (size,) = _INT32.unpack_from(payload, pos)
    seq_end = pos + size
    if size < 5 or seq_end > len(payload):
        raise ProtocolError(f"Invalid document sequence size {size}")
    ident_end = payload.find(b"\x00", pos + 4, seq_end)
    if ident_end < 0:
        raise ProtocolError("Document sequence identifier is missing its terminator")
    try:
        identifier = payload[pos + 4 : ident_end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Invalid document sequence identifier: {e}") from e
    documents = bson.decode_all(payload[ident_end + 1 : seq_end])
    return DocumentSequence(identifier=identifier, documents=documents)


class FrameReader:
    """
    Reassembles complete frames from a byte source.

    The source may hand back any number of bytes per ``read`` call; bytes
    past the end of one frame are kept for the next.
    """

    def __init__(self, source: ByteSource, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE):
        self._source = source
        self.max_message_size = max_message_size
        self._buffer = bytearray()

    @property
    def buffered(self) -> int:
        """Number of bytes read but not yet returned as part of a frame."""
        return len(self._buffer)

    async def _fill(self, size: int) -> None:
        while len(self._buffer) < size:
            try:
                chunk = await self._source.read(size - len(self._buffer))
            except (ConnectionError, OSError) as e:
                raise TransportError(f"Read failed: {e}") from e
            if not chunk:
                raise ConnectionClosedError(f"Stream ended after {len(self._buffer)} of {size} expected bytes")
            self._buffer += chunk

    async def read_frame(self) -> bytes:
        """Read until one whole frame, as declared by its header, is buffered."""
        await self._fill(HEADER_SIZE)
        (length,) = _INT32.unpack_from(self._buffer, 0)
        _check_length(length, self.max_message_size)
        await self._fill(length)
        frame = bytes(self._buffer[:length])
        del self._buffer[:length]
        return frame

    async def read_message(self) -> WireMessage:
        """Read and decode the next frame."""
        return decode_message(await self.read_frame(), self.max_message_size)


async def parse_message(source: ByteSource, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> WireMessage:
    """
    Read one OP_MSG message from *source*, reassembling partial reads.

    Raises:
        ConnectionClosedError: If the stream ends before the declared length
        ProtocolError: On a bad header, op code, flags or checksum
    """
    return await FrameReader(source, max_message_size).read_message()


__all__ = [
    "BodySection",
    "ByteSource",
    "DocumentSequence",
    "FrameReader",
    "MessageHeader",
    "Section",
    "WireMessage",
    "build_message",
    "check_flags",
    "coerce_sections",
    "command_name",
    "decode_message",
    "parse_message",
    "section_from_mapping",
]
