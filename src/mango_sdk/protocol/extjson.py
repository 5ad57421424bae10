"""
MongoDB Extended JSON (v2) conversion.

Lets BSON-typed values travel through plain JSON without losing their type,
e.g. for command bodies typed on a command line or replies printed to a
terminal.

Supported wrappers:
- ``{"$oid": "<24 hex>"}``
- ``{"$date": {"$numberLong": "<millis>"}}`` (canonical) or ``{"$date": "<ISO-8601>"}`` (relaxed)
- ``{"$numberInt": "<int>"}``, ``{"$numberLong": "<int>"}``
- ``{"$numberDouble": "<float>"}`` (including ``Infinity``, ``-Infinity``, ``NaN``)
- ``{"$numberDecimal": "<decimal>"}``
- ``{"$binary": {"base64": "<payload>", "subType": "<hex>"}}``
- ``{"$regularExpression": {"pattern": "<re>", "options": "<flags>"}}``
- ``{"$timestamp": {"t": <seconds>, "i": <increment>}}``
- ``{"$minKey": 1}``, ``{"$maxKey": 1}``
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

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
from .constants import INT32_MAX, INT32_MIN


def _double_to_string(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return repr(value)


def _millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    delta = value - EPOCH
    return delta.days * 86_400_000 + delta.seconds * 1000 + delta.microseconds // 1000


def _date_to_extended(value: datetime, relaxed: bool) -> dict[str, Any]:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    if relaxed and 1970 <= value.year <= 9999:
        # Millisecond precision, "Z" suffix
        text = value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return {"$date": text}
    return {"$date": {"$numberLong": str(_millis(value))}}


def to_extended(value: Any, relaxed: bool = True) -> Any:
    """
    Convert a BSON value tree to JSON-compatible Extended JSON.

    Args:
        value: Document, list or scalar
        relaxed: Use relaxed mode (native JSON numbers, ISO dates) where
            that loses no information a JSON reader would need

    Raises:
        TypeError: For values that are not BSON types
    """
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, Int64):
        return int(value) if relaxed else {"$numberLong": str(int(value))}
    if isinstance(value, int):
        if INT32_MIN <= value <= INT32_MAX:
            return value if relaxed else {"$numberInt": str(value)}
        return value if relaxed else {"$numberLong": str(value)}
    if isinstance(value, float):
        if relaxed and math.isfinite(value):
            return value
        return {"$numberDouble": _double_to_string(value)}
    if isinstance(value, Decimal128):
        return {"$numberDecimal": str(value)}
    if isinstance(value, ObjectId):
        return {"$oid": str(value)}
    if isinstance(value, datetime):
        return _date_to_extended(value, relaxed)
    if isinstance(value, Regex):
        return {"$regularExpression": {"pattern": value.pattern, "options": value.flags}}
    if isinstance(value, Timestamp):
        return {"$timestamp": {"t": value.time, "i": value.inc}}
    if isinstance(value, MinKey):
        return {"$minKey": 1}
    if isinstance(value, MaxKey):
        return {"$maxKey": 1}
    if isinstance(value, (bytes, bytearray)):
        subtype = value.subtype if isinstance(value, Binary) else 0
        return {
            "$binary": {
                "base64": base64.b64encode(bytes(value)).decode("ascii"),
                "subType": f"{subtype:02x}",
            }
        }
    if isinstance(value, Mapping):
        return {key: to_extended(item, relaxed) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_extended(item, relaxed) for item in value]
    raise TypeError(f"Cannot convert {type(value).__name__} to Extended JSON")


# Parsing


def _expect_mapping(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{name} must be an object")
    return value


def _parse_int(text: Any, name: str) -> int:
    if not isinstance(text, str):
        raise ValueError(f"{name} must be a string")
    try:
        return int(text)
    except ValueError as e:
        raise ValueError(f"Invalid {name} value {text!r}") from e


def _parse_oid(value: Any) -> ObjectId:
    if not isinstance(value, str):
        raise ValueError("$oid must be a string")
    return ObjectId(value)


def _parse_date(value: Any) -> datetime:
    if isinstance(value, Mapping):
        millis = _parse_int(value.get("$numberLong"), "$date.$numberLong")
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid $date value {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    elif isinstance(value, int) and not isinstance(value, bool):
        millis = value
    else:
        raise ValueError("$date must be an ISO-8601 string or {$numberLong}")
    try:
        return EPOCH + timedelta(milliseconds=millis)
    except OverflowError as e:
        raise ValueError(f"$date {millis} is out of range") from e


def _parse_number_int(value: Any) -> int:
    number = _parse_int(value, "$numberInt")
    if not INT32_MIN <= number <= INT32_MAX:
        raise ValueError(f"$numberInt {number} does not fit in 32 bits")
    return number


def _parse_number_long(value: Any) -> Int64:
    return Int64(_parse_int(value, "$numberLong"))


def _parse_number_double(value: Any) -> float:
    if not isinstance(value, str):
        raise ValueError("$numberDouble must be a string")
    special = {"Infinity": math.inf, "-Infinity": -math.inf, "NaN": math.nan}
    if value in special:
        return special[value]
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"Invalid $numberDouble value {value!r}") from e


def _parse_number_decimal(value: Any) -> Decimal128:
    if not isinstance(value, str):
        raise ValueError("$numberDecimal must be a string")
    return Decimal128(value)


def _parse_binary(value: Any) -> Binary:
    spec = _expect_mapping(value, "$binary")
    payload = spec.get("base64")
    subtype = spec.get("subType")
    if not isinstance(payload, str):
        raise ValueError("invalid base64 in $binary")
    if not isinstance(subtype, str) or not 1 <= len(subtype) <= 2:
        raise ValueError("invalid subType in $binary")
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64 in $binary: {e}") from e
    try:
        return Binary(data, int(subtype, 16))
    except ValueError as e:
        raise ValueError(f"invalid subType in $binary: {subtype!r}") from e


def _parse_regex(value: Any) -> Regex:
    spec = _expect_mapping(value, "$regularExpression")
    pattern = spec.get("pattern")
    options = spec.get("options")
    if not isinstance(pattern, str):
        raise ValueError("invalid pattern in $regularExpression")
    if not isinstance(options, str):
        raise ValueError("invalid options in $regularExpression")
    return Regex(pattern, options)


def _parse_timestamp(value: Any) -> Timestamp:
    spec = _expect_mapping(value, "$timestamp")
    t, i = spec.get("t"), spec.get("i")
    if not isinstance(t, int) or isinstance(t, bool):
        raise ValueError("invalid t in $timestamp")
    if not isinstance(i, int) or isinstance(i, bool):
        raise ValueError("invalid i in $timestamp")
    return Timestamp(time=t, inc=i)


def _parse_key(marker: str, value: Any) -> MinKey | MaxKey:
    if value != 1:
        raise ValueError(f"{marker} must be 1")
    return MinKey() if marker == "$minKey" else MaxKey()


_PARSERS = {
    "$oid": _parse_oid,
    "$date": _parse_date,
    "$numberInt": _parse_number_int,
    "$numberLong": _parse_number_long,
    "$numberDouble": _parse_number_double,
    "$numberDecimal": _parse_number_decimal,
    "$binary": _parse_binary,
    "$regularExpression": _parse_regex,
    "$timestamp": _parse_timestamp,
    "$minKey": lambda value: _parse_key("$minKey", value),
    "$maxKey": lambda value: _parse_key("$maxKey", value),
}


def from_extended(value: Any) -> Any:
    """
    Convert parsed Extended JSON back into BSON value types.

    Objects whose only key is a known ``$`` wrapper become the matching
    type; every other object becomes a ``Document``.

    Raises:
        ValueError: If a wrapper holds an invalid value
    """
    if isinstance(value, Mapping):
        if len(value) == 1:
            key = next(iter(value))
            parser = _PARSERS.get(key)
            if parser is not None:
                return parser(value[key])
        return Document((key, from_extended(item)) for key, item in value.items())
    if isinstance(value, list):
        return [from_extended(item) for item in value]
    return value


def loads(text: str) -> Document:
    """Parse an Extended JSON object into a Document, preserving key order."""
    parsed = json.loads(text, object_pairs_hook=Document)
    if not isinstance(parsed, Mapping):
        raise ValueError("Extended JSON text must hold an object")
    result = from_extended(parsed)
    if not isinstance(result, Document):
        raise ValueError("Extended JSON text must hold a document, not a type wrapper")
    return result


def dumps(value: Any, relaxed: bool = True, **kwargs: Any) -> str:
    """Serialize a BSON value tree to an Extended JSON string."""
    return json.dumps(to_extended(value, relaxed), **kwargs)


__all__ = ["dumps", "from_extended", "loads", "to_extended"]
