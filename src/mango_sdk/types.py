"""
BSON value types for the Mango SDK.

Python has native types for most BSON values (``float``, ``str``, ``bool``,
``None``, ``int``, ``list``, ``datetime``). The classes here cover the rest,
plus the width markers (``Int64``, ``Decimal128``) that keep values from
silently changing type or losing precision through a round trip.
"""

from __future__ import annotations

import binascii
import itertools
import os
import struct
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class Document(OrderedDict[str, Any]):
    """
    Ordered BSON document.

    Key order is part of the wire contract, so equality between two
    ``Document`` instances is order-sensitive (``OrderedDict`` semantics).
    Comparing against a plain ``dict`` ignores order.
    """

    def __repr__(self) -> str:
        return f"Document({dict(self)!r})"


class Int64(int):
    """An integer that is always encoded as a BSON int64."""

    def __repr__(self) -> str:
        return f"Int64({int(self)})"


class Binary(bytes):
    """
    BSON binary data with a subtype.

    Plain ``bytes`` values encode as subtype 0 (generic).
    """

    subtype: int

    def __new__(cls, data: bytes = b"", subtype: int = 0) -> Binary:
        if not 0 <= subtype <= 255:
            raise ValueError(f"Binary subtype must be in 0..255, got {subtype}")
        obj = super().__new__(cls, data)
        obj.subtype = subtype
        return obj

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Binary):
            return self.subtype == other.subtype and bytes(self) == bytes(other)
        return bytes(self) == other

    def __ne__(self, other: object) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash((bytes(self), self.subtype))

    def __repr__(self) -> str:
        return f"Binary({bytes(self)!r}, subtype={self.subtype})"


_oid_random = os.urandom(5)
_oid_counter = itertools.count(struct.unpack(">I", os.urandom(4))[0] & 0xFFFFFF)


class ObjectId:
    """
    A 12-byte BSON ObjectId.

    ``ObjectId()`` generates a new id (4-byte seconds timestamp, 5 random
    bytes, 3-byte counter). ``ObjectId("<24 hex chars>")`` or
    ``ObjectId(b"<12 bytes>")`` wrap an existing one.
    """

    __slots__ = ("_oid",)

    def __init__(self, oid: str | bytes | ObjectId | None = None):
        if oid is None:
            counter = next(_oid_counter) & 0xFFFFFF
            value = struct.pack(">I", int(time.time()) & 0xFFFFFFFF) + _oid_random + counter.to_bytes(3, "big")
        elif isinstance(oid, ObjectId):
            value = oid.binary
        elif isinstance(oid, bytes):
            if len(oid) != 12:
                raise ValueError(f"ObjectId must be 12 bytes, got {len(oid)}")
            value = bytes(oid)
        elif isinstance(oid, str):
            if len(oid) != 24:
                raise ValueError(f"Invalid ObjectId {oid!r}: expected 24 hex characters")
            try:
                value = binascii.unhexlify(oid)
            except binascii.Error as e:
                raise ValueError(f"Invalid ObjectId {oid!r}: {e}") from e
        else:
            raise TypeError(f"ObjectId cannot be built from {type(oid).__name__}")
        object.__setattr__(self, "_oid", value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ObjectId is immutable")

    @property
    def binary(self) -> bytes:
        """The raw 12 bytes."""
        return self._oid

    @property
    def generation_time(self) -> datetime:
        """Creation time embedded in the id, at second precision."""
        seconds = struct.unpack(">I", self._oid[:4])[0]
        return datetime.fromtimestamp(seconds, tz=UTC)

    def __str__(self) -> str:
        return self._oid.hex()

    def __repr__(self) -> str:
        return f"ObjectId('{self}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ObjectId):
            return self._oid == other._oid
        return NotImplemented

    def __lt__(self, other: ObjectId) -> bool:
        if isinstance(other, ObjectId):
            return self._oid < other._oid
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._oid)


@dataclass(frozen=True)
class Timestamp:
    """
    BSON internal timestamp.

    Attributes:
        time: Seconds since the epoch (unsigned 32-bit)
        inc: Ordinal within the second (unsigned 32-bit)
    """

    time: int
    inc: int

    def __post_init__(self) -> None:
        for name in ("time", "inc"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFFFFFFFF:
                raise ValueError(f"Timestamp {name} must fit in an unsigned 32-bit integer")


@dataclass(frozen=True)
class Regex:
    """
    BSON regular expression.

    Flags are stored in alphabetical order, as the wire format requires.
    """

    pattern: str
    flags: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "flags", "".join(sorted(self.flags)))


@dataclass(frozen=True)
class MinKey:
    """Compares lower than every other BSON value on the server."""


@dataclass(frozen=True)
class MaxKey:
    """Compares higher than every other BSON value on the server."""


# Decimal128 (IEEE 754-2008 decimal128, binary integer decimal encoding)
_D128_EXPONENT_BIAS = 6176
_D128_EXPONENT_MAX = 6111
_D128_EXPONENT_MIN = -6176
_D128_MAX_DIGITS = 34
_D128_MAX_COEFFICIENT = 10**_D128_MAX_DIGITS - 1
_D128_SIGN = 1 << 63
_D128_NAN = 0x7C00000000000000
_D128_SNAN = 0x7E00000000000000
_D128_INFINITY = 0x7800000000000000


def _decimal_to_bid(value: Decimal) -> tuple[int, int]:
    sign, digits, exponent = value.as_tuple()
    high = _D128_SIGN if sign else 0

    if value.is_nan():
        if digits:
            raise ValueError("NaN with a payload cannot be stored in Decimal128")
        return (high | (_D128_SNAN if value.is_snan() else _D128_NAN), 0)
    if value.is_infinite():
        return (high | _D128_INFINITY, 0)

    exponent = int(exponent)
    coefficient = int("".join(map(str, digits))) if digits else 0

    # Move zeros between coefficient and exponent until both fit, without rounding.
    while exponent > _D128_EXPONENT_MAX and coefficient * 10 <= _D128_MAX_COEFFICIENT:
        coefficient *= 10
        exponent -= 1
    while (exponent < _D128_EXPONENT_MIN or coefficient > _D128_MAX_COEFFICIENT) and coefficient % 10 == 0:
        coefficient //= 10
        exponent += 1

    if coefficient > _D128_MAX_COEFFICIENT:
        raise ValueError(f"{value} has more than {_D128_MAX_DIGITS} significant digits")
    if not _D128_EXPONENT_MIN <= exponent <= _D128_EXPONENT_MAX:
        raise ValueError(f"{value} is outside the Decimal128 exponent range")

    biased = exponent + _D128_EXPONENT_BIAS
    high |= (biased << 49) | (coefficient >> 64)
    return (high, coefficient & 0xFFFFFFFFFFFFFFFF)


def _bid_to_decimal(high: int, low: int) -> Decimal:
    sign = "-" if high & _D128_SIGN else ""
    combination = (high >> 58) & 0x1F
    if combination == 0x1F:
        return Decimal(f"{sign}{'sNaN' if (high >> 57) & 1 else 'NaN'}")
    if combination == 0x1E:
        return Decimal(f"{sign}Infinity")

    if (high >> 61) & 0x3 == 0x3:
        # Large-coefficient form: always above 10**34 - 1, so it is read as zero.
        exponent = ((high >> 47) & 0x3FFF) - _D128_EXPONENT_BIAS
        coefficient = 0
    else:
        exponent = ((high >> 49) & 0x3FFF) - _D128_EXPONENT_BIAS
        coefficient = ((high & 0x1FFFFFFFFFFFF) << 64) | low
        if coefficient > _D128_MAX_COEFFICIENT:
            coefficient = 0

    return Decimal(f"{sign}{coefficient}E{exponent}")


class Decimal128:
    """
    BSON 128-bit decimal.

    Wraps a ``decimal.Decimal`` and keeps its exact IEEE 754-2008 bit pattern,
    so equality compares representations (``1.0`` and ``1.00`` differ).
    """

    __slots__ = ("_high", "_low")

    def __init__(self, value: Decimal | str | int):
        if isinstance(value, Decimal128):
            high, low = value._high, value._low
        else:
            try:
                decimal_value = value if isinstance(value, Decimal) else Decimal(value)
            except InvalidOperation as e:
                raise ValueError(f"Invalid Decimal128 value {value!r}") from e
            high, low = _decimal_to_bid(decimal_value)
        object.__setattr__(self, "_high", high)
        object.__setattr__(self, "_low", low)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Decimal128 is immutable")

    @classmethod
    def from_bid(cls, data: bytes) -> Decimal128:
        """Build from the 16 little-endian bytes used on the wire."""
        if len(data) != 16:
            raise ValueError(f"Decimal128 needs 16 bytes, got {len(data)}")
        low, high = struct.unpack("<QQ", data)
        obj = cls.__new__(cls)
        object.__setattr__(obj, "_high", high)
        object.__setattr__(obj, "_low", low)
        return obj

    @property
    def bid(self) -> bytes:
        """The 16 little-endian bytes used on the wire."""
        return struct.pack("<QQ", self._low, self._high)

    def to_decimal(self) -> Decimal:
        """Return the value as a ``decimal.Decimal``."""
        return _bid_to_decimal(self._high, self._low)

    def __str__(self) -> str:
        return str(self.to_decimal())

    def __repr__(self) -> str:
        return f"Decimal128('{self}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Decimal128):
            return (self._high, self._low) == (other._high, other._low)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._high, self._low))


__all__ = [
    "Binary",
    "Decimal128",
    "Document",
    "EPOCH",
    "Int64",
    "MaxKey",
    "MinKey",
    "ObjectId",
    "Regex",
    "Timestamp",
]
