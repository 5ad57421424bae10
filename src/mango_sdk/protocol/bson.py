"""
BSON Encoding/Decoding for the MongoDB wire protocol.

Documents are encoded as an int32 little-endian length prefix (covering the
whole document, prefix and terminator included), a sequence of elements
(type tag, null-terminated key, payload) and a trailing ``0x00``.

Type mapping (see ``mango_sdk.types``):
- double            -> float
- string            -> str
- embedded document -> Document
- array             -> list
- binary            -> Binary (bytes subclass with subtype)
- object id         -> ObjectId
- boolean           -> bool
- UTC datetime      -> timezone-aware datetime (millisecond precision)
- null / undefined  -> None
- regex             -> Regex
- int32             -> int
- timestamp         -> Timestamp
- int64             -> Int64
- decimal128        -> Decimal128
- min key / max key -> MinKey / MaxKey
"""

from __future__ import annotations

import re
import struct
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from ..exceptions import MalformedDocumentError
from ..types import (
    EPOCH,
    Binary,
    Decimal128,
    Document,
    Int64,
    MaxKey,
    MinKey,
    ObjectId,
    Regex,
    Timestamp,
)
from .constants import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN, MAX_NESTING_DEPTH, BSONType

_INT32 = struct.Struct("<i")
_INT64 = struct.Struct("<q")
_DOUBLE = struct.Struct("<d")
_TIMESTAMP = struct.Struct("<II")

# Old binary subtype, which nests a second length prefix inside the payload.
_BINARY_SUBTYPE_OLD = 2

_RE_FLAGS = (
    (re.IGNORECASE, "i"),
    (re.LOCALE, "l"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.UNICODE, "u"),
    (re.VERBOSE, "x"),
)


# Encoding


def encode(document: Mapping[str, Any]) -> bytes:
    """
    Encode a mapping to BSON bytes.

    Key order is taken from the mapping's iteration order.

    Raises:
        MalformedDocumentError: If the document holds a key or value that
            cannot be represented in BSON
    """
    if not isinstance(document, Mapping):
        raise MalformedDocumentError(f"Cannot encode {type(document).__name__} as a BSON document")
    return _encode_document(document, 0)


def _encode_document(document: Mapping[str, Any], depth: int) -> bytes:
    if depth > MAX_NESTING_DEPTH:
        raise MalformedDocumentError(f"Document nesting exceeds {MAX_NESTING_DEPTH} levels")

    buf = bytearray(4)
    for key, value in document.items():
        _encode_element(buf, key, value, depth)
    buf.append(0)
    _INT32.pack_into(buf, 0, len(buf))
    return bytes(buf)


def _encode_cstring(value: str, what: str) -> bytes:
    if not isinstance(value, str):
        raise MalformedDocumentError(f"{what} must be str, not {type(value).__name__}")
    data = value.encode("utf-8")
    if b"\x00" in data:
        raise MalformedDocumentError(f"{what} {value!r} contains a NUL byte")
    return data + b"\x00"


def _encode_element(buf: bytearray, key: str, value: Any, depth: int) -> None:
    name = _encode_cstring(key, "Key")

    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        buf += bytes((BSONType.BOOLEAN,)) + name + (b"\x01" if value else b"\x00")
    elif isinstance(value, Int64):
        if not INT64_MIN <= value <= INT64_MAX:
            raise MalformedDocumentError(f"Int64 value for {key!r} out of range")
        buf += bytes((BSONType.INT64,)) + name + _INT64.pack(value)
    elif isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            buf += bytes((BSONType.INT32,)) + name + _INT32.pack(value)
        elif INT64_MIN <= value <= INT64_MAX:
            buf += bytes((BSONType.INT64,)) + name + _INT64.pack(value)
        else:
            raise MalformedDocumentError(f"Integer value for {key!r} does not fit in 64 bits")
    elif isinstance(value, float):
        buf += bytes((BSONType.DOUBLE,)) + name + _DOUBLE.pack(value)
    elif isinstance(value, str):
        data = value.encode("utf-8")
        buf += bytes((BSONType.STRING,)) + name + _INT32.pack(len(data) + 1) + data + b"\x00"
    elif isinstance(value, (bytes, bytearray, memoryview)):
        subtype = value.subtype if isinstance(value, Binary) else 0
        data = bytes(value)
        buf += bytes((BSONType.BINARY,)) + name
        if subtype == _BINARY_SUBTYPE_OLD:
            buf += _INT32.pack(len(data) + 4) + bytes((subtype,)) + _INT32.pack(len(data)) + data
        else:
            buf += _INT32.pack(len(data)) + bytes((subtype,)) + data
    elif isinstance(value, ObjectId):
        buf += bytes((BSONType.OBJECT_ID,)) + name + value.binary
    elif isinstance(value, datetime):
        buf += bytes((BSONType.DATETIME,)) + name + _INT64.pack(_datetime_to_millis(value))
    elif value is None:
        buf += bytes((BSONType.NULL,)) + name
    elif isinstance(value, Regex):
        buf += (
            bytes((BSONType.REGEX,))
            + name
            + _encode_cstring(value.pattern, "Regex pattern")
            + _encode_cstring(value.flags, "Regex flags")
        )
    elif isinstance(value, re.Pattern):
        flags = "".join(letter for flag, letter in _RE_FLAGS if value.flags & flag)
        _encode_element(buf, key, Regex(value.pattern, flags), depth)
    elif isinstance(value, Timestamp):
        buf += bytes((BSONType.TIMESTAMP,)) + name + _TIMESTAMP.pack(value.inc, value.time)
    elif isinstance(value, Decimal128):
        buf += bytes((BSONType.DECIMAL128,)) + name + value.bid
    elif isinstance(value, Decimal):
        try:
            encoded = Decimal128(value)
        except ValueError as e:
            raise MalformedDocumentError(f"Decimal value for {key!r}: {e}") from e
        buf += bytes((BSONType.DECIMAL128,)) + name + encoded.bid
    elif isinstance(value, MinKey):
        buf += bytes((BSONType.MIN_KEY,)) + name
    elif isinstance(value, MaxKey):
        buf += bytes((BSONType.MAX_KEY,)) + name
    elif isinstance(value, Mapping):
        buf += bytes((BSONType.DOCUMENT,)) + name + _encode_document(value, depth + 1)
    elif isinstance(value, (list, tuple)):
        array = {str(index): item for index, item in enumerate(value)}
        buf += bytes((BSONType.ARRAY,)) + name + _encode_document(array, depth + 1)
    else:
        raise MalformedDocumentError(f"Cannot encode value of type {type(value).__name__} for key {key!r}")


def _datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    delta = value - EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


# Decoding


def decode(data: bytes | bytearray | memoryview, offset: int = 0) -> tuple[Document, int]:
    """
    Decode one BSON document starting at *offset*.

    Args:
        data: Buffer holding the document
        offset: Position of the document's length prefix

    Returns:
        Tuple of (decoded Document, number of bytes consumed)

    Raises:
        MalformedDocumentError: If the bytes are not a well-formed document
    """
    buffer = bytes(data)
    document, end = _decode_document(buffer, offset, len(buffer), 0)
    return document, end - offset


def decode_all(data: bytes | bytearray | memoryview) -> list[Document]:
    """Decode a buffer holding zero or more back-to-back documents."""
    buffer = bytes(data)
    documents: list[Document] = []
    offset = 0
    while offset < len(buffer):
        document, offset = _decode_document(buffer, offset, len(buffer), 0)
        documents.append(document)
    return documents


def _need(pos: int, size: int, limit: int, what: str) -> None:
    if pos + size > limit:
        raise MalformedDocumentError(f"{what} at offset {pos} runs past the end of the document", offset=pos)


def _decode_document(data: bytes, offset: int, limit: int, depth: int) -> tuple[Document, int]:
    if depth > MAX_NESTING_DEPTH:
        raise MalformedDocumentError(f"Document nesting exceeds {MAX_NESTING_DEPTH} levels", offset=offset)

    _need(offset, 4, limit, "Document length")
    (length,) = _INT32.unpack_from(data, offset)
    if length < 5:
        raise MalformedDocumentError(f"Invalid document length {length}", offset=offset)
    end = offset + length
    if end > limit:
        raise MalformedDocumentError(
            f"Declared document length {length} runs past the end of the buffer",
            offset=offset,
        )
    if data[end - 1] != 0:
        raise MalformedDocumentError("Document is missing its terminator byte", offset=end - 1)

    terminator = end - 1
    pos = offset + 4
    document = Document()
    while pos < terminator:
        tag = data[pos]
        pos += 1
        key, pos = _decode_cstring(data, pos, terminator)
        value, pos = _decode_value(data, pos, tag, terminator, depth)
        document[key] = value

    if pos != terminator:
        raise MalformedDocumentError(
            f"Declared document length {length} does not match {pos + 1 - offset} bytes consumed",
            offset=offset,
        )
    return document, end


def _decode_cstring(data: bytes, pos: int, limit: int) -> tuple[str, int]:
    end = data.find(b"\x00", pos, limit)
    if end < 0:
        raise MalformedDocumentError("String is missing its terminator", offset=pos)
    try:
        return data[pos:end].decode("utf-8"), end + 1
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(f"Invalid UTF-8 in string: {e}", offset=pos) from e


def _decode_string(data: bytes, pos: int, limit: int) -> tuple[str, int]:
    _need(pos, 4, limit, "String length")
    (length,) = _INT32.unpack_from(data, pos)
    if length < 1:
        raise MalformedDocumentError(f"Invalid string length {length}", offset=pos)
    start = pos + 4
    end = start + length
    _need(start, length, limit, "String")
    if data[end - 1] != 0:
        raise MalformedDocumentError("String is missing its terminator", offset=end - 1)
    try:
        return data[start : end - 1].decode("utf-8"), end
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(f"Invalid UTF-8 in string: {e}", offset=start) from e


def _decode_array(data: bytes, pos: int, limit: int, depth: int) -> tuple[list[Any], int]:
    document, end = _decode_document(data, pos, limit, depth + 1)
    for index, key in enumerate(document):
        if key != str(index):
            raise MalformedDocumentError(f"Array key {key!r} out of sequence, expected {str(index)!r}", offset=pos)
    return list(document.values()), end


def _decode_binary(data: bytes, pos: int, limit: int) -> tuple[Binary, int]:
    _need(pos, 5, limit, "Binary header")
    (length,) = _INT32.unpack_from(data, pos)
    if length < 0:
        raise MalformedDocumentError(f"Invalid binary length {length}", offset=pos)
    subtype = data[pos + 4]
    start = pos + 5
    _need(start, length, limit, "Binary payload")
    end = start + length
    if subtype == _BINARY_SUBTYPE_OLD:
        if length < 4:
            raise MalformedDocumentError("Old binary subtype is missing its inner length", offset=start)
        (inner,) = _INT32.unpack_from(data, start)
        if inner != length - 4:
            raise MalformedDocumentError("Old binary subtype inner length mismatch", offset=start)
        start += 4
    return Binary(data[start:end], subtype), end


def _decode_value(data: bytes, pos: int, tag: int, limit: int, depth: int) -> tuple[Any, int]:
    if tag == BSONType.DOUBLE:
        _need(pos, 8, limit, "Double")
        return _DOUBLE.unpack_from(data, pos)[0], pos + 8
    if tag == BSONType.STRING:
        return _decode_string(data, pos, limit)
    if tag == BSONType.DOCUMENT:
        return _decode_document(data, pos, limit, depth + 1)
    if tag == BSONType.ARRAY:
        return _decode_array(data, pos, limit, depth)
    if tag == BSONType.BINARY:
        return _decode_binary(data, pos, limit)
    if tag in (BSONType.UNDEFINED, BSONType.NULL):
        return None, pos
    if tag == BSONType.OBJECT_ID:
        _need(pos, 12, limit, "ObjectId")
        return ObjectId(data[pos : pos + 12]), pos + 12
    if tag == BSONType.BOOLEAN:
        _need(pos, 1, limit, "Boolean")
        flag = data[pos]
        if flag not in (0, 1):
            raise MalformedDocumentError(f"Invalid boolean byte 0x{flag:02x}", offset=pos)
        return flag == 1, pos + 1
    if tag == BSONType.DATETIME:
        _need(pos, 8, limit, "Datetime")
        (millis,) = _INT64.unpack_from(data, pos)
        try:
            return EPOCH + timedelta(milliseconds=millis), pos + 8
        except OverflowError as e:
            raise MalformedDocumentError(f"Datetime {millis}ms is out of range", offset=pos) from e
    if tag == BSONType.REGEX:
        pattern, pos = _decode_cstring(data, pos, limit)
        flags, pos = _decode_cstring(data, pos, limit)
        return Regex(pattern, flags), pos
    if tag == BSONType.INT32:
        _need(pos, 4, limit, "Int32")
        return _INT32.unpack_from(data, pos)[0], pos + 4
    if tag == BSONType.TIMESTAMP:
        _need(pos, 8, limit, "Timestamp")
        inc, seconds = _TIMESTAMP.unpack_from(data, pos)
        return Timestamp(time=seconds, inc=inc), pos + 8
    if tag == BSONType.INT64:
        _need(pos, 8, limit, "Int64")
        return Int64(_INT64.unpack_from(data, pos)[0]), pos + 8
    if tag == BSONType.DECIMAL128:
        _need(pos, 16, limit, "Decimal128")
        return Decimal128.from_bid(data[pos : pos + 16]), pos + 16
    if tag == BSONType.MIN_KEY:
        return MinKey(), pos
    if tag == BSONType.MAX_KEY:
        return MaxKey(), pos
    raise MalformedDocumentError(f"Unrecognized BSON type tag 0x{tag:02x}", offset=pos)


__all__ = ["decode", "decode_all", "encode"]
