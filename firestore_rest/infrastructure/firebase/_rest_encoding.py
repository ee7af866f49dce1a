"""Encode/decode Python values to/from Firestore REST API typed values.

Three layers:

- native <-> TypedValue (``encode_value`` / ``decode_value``), where decoding
  can be checked against a target type annotation;
- TypedValue <-> wire JSON (``value_to_wire`` / ``value_from_wire``);
- record introspection for dataclasses and pydantic models, shared with the
  envelope codec.

All functions are pure.
"""

import base64
import binascii
import collections.abc
import dataclasses
import math
import re
import types
import typing
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from firestore_rest.domain.exceptions import (
    MalformedTimestampException,
    MissingFieldException,
    TypeMismatchException,
)
from firestore_rest.domain.values import (
    ABSENT,
    INT64_MAX,
    INT64_MIN,
    TYPED_VALUE_CLASSES,
    WIRE_TAGS,
    ArrayValue,
    BooleanValue,
    BytesValue,
    DoubleValue,
    GeoPoint,
    GeoPointValue,
    IntegerValue,
    MapValue,
    NullValue,
    Reference,
    ReferenceValue,
    StringValue,
    TimestampValue,
    TypedValue,
)
from firestore_rest.shared.utils.datetime import ensure_utc

_RFC3339_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?([Zz]|[+-]\d{2}:\d{2})$"
)

_NON_FINITE = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}

_SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
    collections.abc.Iterable,
    collections.abc.Set,
    collections.abc.MutableSet,
)
_MAPPING_ORIGINS = (
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)


def _child(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _index(path: str, i: int) -> str:
    return f"{path}[{i}]"


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


# --- timestamps ---------------------------------------------------------------


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC3339 timestamp into a UTC-aware datetime.

    Fractional seconds beyond microseconds are truncated.

    Raises:
        MalformedTimestampException: If the string is not RFC3339.
    """
    if not isinstance(value, str):
        raise MalformedTimestampException(repr(value))
    m = _RFC3339_RE.match(value.strip())
    if not m:
        raise MalformedTimestampException(value)
    day, clock, frac, tz = m.groups()
    iso = f"{day}T{clock}"
    if frac:
        iso += "." + frac[:6].ljust(6, "0")
    iso += "+00:00" if tz in ("Z", "z") else tz
    try:
        return datetime.fromisoformat(iso).astimezone(UTC)
    except ValueError as e:
        raise MalformedTimestampException(value) from e


def format_timestamp(value: datetime) -> str:
    """Format a datetime as RFC3339 UTC with microseconds (naive = UTC)."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# --- records (dataclasses / pydantic models) ------------------------------------


@dataclasses.dataclass(frozen=True)
class RecordField:
    """One declared field of a record type."""

    wire_name: str
    attr: str
    annotation: Any
    required: bool


def is_record_type(target: Any) -> bool:
    """True for dataclass classes and pydantic model classes."""
    if not isinstance(target, type):
        return False
    if target in (Reference, GeoPoint):
        return False
    return dataclasses.is_dataclass(target) or issubclass(target, BaseModel)


def record_fields(target: type) -> list[RecordField]:
    """Declared fields of a dataclass or pydantic model, in declaration order."""
    if issubclass(target, BaseModel):
        return [
            RecordField(
                wire_name=info.alias or name,
                attr=name,
                annotation=info.annotation if info.annotation is not None else Any,
                required=info.is_required(),
            )
            for name, info in target.model_fields.items()
        ]
    hints = typing.get_type_hints(target)
    return [
        RecordField(
            wire_name=f.name,
            attr=f.name,
            annotation=hints.get(f.name, Any),
            required=(
                f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
            ),
        )
        for f in dataclasses.fields(target)
        if f.init
    ]


def record_items(record: Any) -> dict[str, Any] | None:
    """Wire-name -> value pairs of a record instance, or None if it is not a record."""
    if isinstance(record, BaseModel):
        return {
            (info.alias or name): getattr(record, name)
            for name, info in type(record).model_fields.items()
        }
    if (
        dataclasses.is_dataclass(record)
        and not isinstance(record, type)
        and not isinstance(record, (Reference, GeoPoint))
    ):
        return {f.name: getattr(record, f.name) for f in dataclasses.fields(record)}
    return None


def decode_record(
    fields: dict[str, TypedValue],
    target: type,
    path: str = "",
    document: str | None = None,
) -> Any:
    """Build a record of ``target`` type from a map of typed values.

    Missing required fields raise MissingFieldException; unknown wire
    fields are ignored.
    """
    is_model = issubclass(target, BaseModel)
    kwargs: dict[str, Any] = {}
    for spec in record_fields(target):
        if spec.wire_name not in fields:
            if spec.required:
                raise MissingFieldException(_child(path, spec.wire_name), document)
            continue
        # pydantic validates by alias, dataclasses take attribute names
        key = spec.wire_name if is_model else spec.attr
        kwargs[key] = decode_value(
            fields[spec.wire_name], spec.annotation, _child(path, spec.wire_name)
        )
    if is_model:
        try:
            return target.model_validate(kwargs)
        except ValidationError as e:
            raise TypeMismatchException(path, "mapValue", f"{target.__name__} ({e})") from e
    return target(**kwargs)


# --- native -> TypedValue -------------------------------------------------------


def encode_value(value: Any, path: str = "") -> TypedValue:
    """Convert a native Python value to a TypedValue.

    Floats stay doubles even when integral; nested None becomes Null.

    Raises:
        TypeMismatchException: If the value has no wire representation.
    """
    if isinstance(value, TYPED_VALUE_CLASSES):
        return value
    if value is None:
        return NullValue()
    if value is ABSENT:
        raise TypeMismatchException(
            path, "ABSENT", "a value (ABSENT only applies to top-level record fields)"
        )
    if isinstance(value, bool):
        return BooleanValue(value)
    if isinstance(value, Enum):
        return encode_value(value.value, path)
    if isinstance(value, int):
        if not INT64_MIN <= value <= INT64_MAX:
            raise TypeMismatchException(path, f"int {value}", "64-bit signed integer")
        return IntegerValue(value)
    if isinstance(value, float):
        return DoubleValue(value)
    if isinstance(value, datetime):
        return TimestampValue(ensure_utc(value))
    if isinstance(value, str):
        return StringValue(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BytesValue(bytes(value))
    if isinstance(value, Reference):
        return ReferenceValue(value.name)
    if isinstance(value, GeoPoint):
        return GeoPointValue(float(value.latitude), float(value.longitude))
    if isinstance(value, collections.abc.Mapping):
        out: dict[str, TypedValue] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeMismatchException(
                    _child(path, repr(k)), type(k).__name__, "str map key"
                )
            out[k] = encode_value(v, _child(path, k))
        return MapValue(out)
    if isinstance(value, (list, tuple)):
        return ArrayValue(
            tuple(encode_value(x, _index(path, i)) for i, x in enumerate(value))
        )
    items = record_items(value)
    if items is not None:
        return MapValue(
            {
                k: encode_value(v, _child(path, k))
                for k, v in items.items()
                if v is not ABSENT
            }
        )
    raise TypeMismatchException(path, type(value).__name__, "a Firestore-encodable value")


# --- TypedValue -> native -------------------------------------------------------


def _decode_any(value: TypedValue, path: str) -> Any:
    if isinstance(value, NullValue):
        return None
    if isinstance(
        value,
        (BooleanValue, IntegerValue, DoubleValue, TimestampValue, StringValue, BytesValue),
    ):
        return value.value
    if isinstance(value, ReferenceValue):
        return Reference(value.value)
    if isinstance(value, GeoPointValue):
        return GeoPoint(value.latitude, value.longitude)
    if isinstance(value, ArrayValue):
        return [_decode_any(x, _index(path, i)) for i, x in enumerate(value.values)]
    if isinstance(value, MapValue):
        return {k: _decode_any(v, _child(path, k)) for k, v in value.fields.items()}
    raise TypeMismatchException(path, type(value).__name__, "TypedValue")


# (variant, target) pairs that decode only by widening the wire value
_WIDENING = frozenset({(IntegerValue, float), (ReferenceValue, str)})


def _is_union(target: Any) -> bool:
    return get_origin(target) in (Union, types.UnionType)


def _decode_union(value: TypedValue, target: Any, path: str) -> Any:
    members = get_args(target)
    if isinstance(value, NullValue):
        if type(None) in members:
            return None
        raise TypeMismatchException(path, value.wire_tag, _type_name(target))
    members = [m for m in members if m is not type(None)]
    # exact tags first, so float | int keeps an integer an int
    exact = [m for m in members if (type(value), m) not in _WIDENING]
    for member in exact + [m for m in members if m not in exact]:
        try:
            return decode_value(value, member, path)
        except (TypeMismatchException, MissingFieldException):
            continue
    raise TypeMismatchException(path, value.wire_tag, repr(target))


def _decode_sequence(value: TypedValue, target: Any, container: Any, path: str) -> Any:
    if not isinstance(value, ArrayValue):
        raise TypeMismatchException(path, value.wire_tag, _type_name(target))
    args = get_args(target)
    if container is tuple and args and args[-1] is not Ellipsis:
        if len(args) != len(value.values):
            raise TypeMismatchException(
                path, f"arrayValue of length {len(value.values)}", repr(target)
            )
        return tuple(
            decode_value(x, t, _index(path, i))
            for i, (x, t) in enumerate(zip(value.values, args))
        )
    item_type = args[0] if args else Any
    items = [decode_value(x, item_type, _index(path, i)) for i, x in enumerate(value.values)]
    if container is tuple:
        return tuple(items)
    if container in (set, collections.abc.Set, collections.abc.MutableSet):
        return set(items)
    if container is frozenset:
        return frozenset(items)
    return items


def _decode_mapping(value: TypedValue, target: Any, path: str) -> dict[str, Any]:
    if not isinstance(value, MapValue):
        raise TypeMismatchException(path, value.wire_tag, _type_name(target))
    args = get_args(target)
    item_type = args[1] if len(args) == 2 else Any
    return {
        k: decode_value(v, item_type, _child(path, k)) for k, v in value.fields.items()
    }


_SCALARS: dict[type, tuple[type, ...]] = {
    bool: (BooleanValue,),
    int: (IntegerValue,),
    str: (StringValue, ReferenceValue),
    bytes: (BytesValue,),
    datetime: (TimestampValue,),
    Reference: (ReferenceValue,),
    GeoPoint: (GeoPointValue,),
}


def decode_value(value: TypedValue, target: Any = Any, path: str = "") -> Any:
    """Convert a TypedValue to a native value, checked against ``target``.

    ``target`` is a type annotation: scalars, ``X | None``, unions,
    ``list[X]``/``tuple``/``set``, ``dict[str, X]``, Enum subclasses,
    dataclasses and pydantic models. ``Any`` decodes by tag alone.
    Integers widen to float for float targets; nothing narrows.

    Raises:
        TypeMismatchException: If the tag does not fit the target.
    """
    if get_origin(target) is typing.Annotated:
        target = get_args(target)[0]
    if target is Any or target is object:
        return _decode_any(value, path)
    if _is_union(target):
        return _decode_union(value, target, path)
    if isinstance(value, NullValue):
        if target is type(None):
            return None
        raise TypeMismatchException(path, value.wire_tag, _type_name(target))

    if isinstance(target, type) and issubclass(target, Enum):
        raw = _decode_any(value, path)
        try:
            return target(raw)
        except ValueError as e:
            raise TypeMismatchException(path, value.wire_tag, _type_name(target)) from e
    if target is float:
        if isinstance(value, DoubleValue):
            return value.value
        if isinstance(value, IntegerValue):
            return float(value.value)
        raise TypeMismatchException(path, value.wire_tag, "float")
    if target in _SCALARS:
        if not isinstance(value, _SCALARS[target]):
            raise TypeMismatchException(path, value.wire_tag, _type_name(target))
        if target is str and isinstance(value, ReferenceValue):
            return value.value
        return _decode_any(value, path)

    container = get_origin(target) or target
    if container in _SEQUENCE_ORIGINS:
        return _decode_sequence(value, target, container, path)
    if container in _MAPPING_ORIGINS:
        return _decode_mapping(value, target, path)
    if is_record_type(target):
        if not isinstance(value, MapValue):
            raise TypeMismatchException(path, value.wire_tag, _type_name(target))
        return decode_record(value.fields, target, path)
    raise TypeMismatchException(path, value.wire_tag, f"supported type, not {target!r}")


# --- TypedValue <-> wire JSON ---------------------------------------------------


def value_to_wire(value: TypedValue) -> dict:
    """Render a TypedValue as its REST JSON object."""
    if isinstance(value, NullValue):
        return {"nullValue": None}
    if isinstance(value, BooleanValue):
        return {"booleanValue": value.value}
    if isinstance(value, IntegerValue):
        return {"integerValue": str(value.value)}
    if isinstance(value, DoubleValue):
        v = value.value
        if math.isnan(v):
            return {"doubleValue": "NaN"}
        if math.isinf(v):
            return {"doubleValue": "Infinity" if v > 0 else "-Infinity"}
        return {"doubleValue": v}
    if isinstance(value, TimestampValue):
        return {"timestampValue": format_timestamp(value.value)}
    if isinstance(value, StringValue):
        return {"stringValue": value.value}
    if isinstance(value, BytesValue):
        return {"bytesValue": base64.standard_b64encode(value.value).decode("ascii")}
    if isinstance(value, ReferenceValue):
        return {"referenceValue": value.value}
    if isinstance(value, GeoPointValue):
        return {
            "geoPointValue": {"latitude": value.latitude, "longitude": value.longitude}
        }
    if isinstance(value, ArrayValue):
        return {"arrayValue": {"values": [value_to_wire(x) for x in value.values]}}
    if isinstance(value, MapValue):
        return {
            "mapValue": {"fields": {k: value_to_wire(v) for k, v in value.fields.items()}}
        }
    raise TypeMismatchException("", type(value).__name__, "TypedValue")


def _wire_double(raw: Any, path: str) -> float:
    if isinstance(raw, bool):
        raise TypeMismatchException(path, "doubleValue", "number")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str) and raw in _NON_FINITE:
        return _NON_FINITE[raw]
    raise TypeMismatchException(path, "doubleValue", "number")


def _wire_integer(raw: Any, path: str) -> int:
    if isinstance(raw, bool):
        raise TypeMismatchException(path, "integerValue", "integer string")
    try:
        n = int(raw)
    except (TypeError, ValueError, OverflowError) as e:
        raise TypeMismatchException(path, "integerValue", "integer string") from e
    if isinstance(raw, float) and n != raw:
        raise TypeMismatchException(path, "integerValue", "integer string")
    if not INT64_MIN <= n <= INT64_MAX:
        raise TypeMismatchException(path, "integerValue", "64-bit signed integer")
    return n


def value_from_wire(obj: Any, path: str = "") -> TypedValue:
    """Parse a REST JSON typed value.

    proto3 JSON omits default members, so '{"arrayValue": {}}' is an empty
    array and a geo point without latitude sits on the equator.

    Raises:
        TypeMismatchException: Unknown/missing tag or malformed payload.
        MalformedTimestampException: Unparsable timestampValue.
    """
    if not isinstance(obj, dict):
        raise TypeMismatchException(path, type(obj).__name__, "typed value object")
    tags = [k for k in obj if k in WIRE_TAGS]
    if len(tags) != 1:
        found = ",".join(sorted(obj)) or "<empty>"
        raise TypeMismatchException(path, found, "exactly one typed value tag")
    tag = tags[0]
    raw = obj[tag]

    if tag == "nullValue":
        return NullValue()
    if tag == "booleanValue":
        if not isinstance(raw, bool):
            raise TypeMismatchException(path, tag, "boolean")
        return BooleanValue(raw)
    if tag == "integerValue":
        return IntegerValue(_wire_integer(raw, path))
    if tag == "doubleValue":
        return DoubleValue(_wire_double(raw, path))
    if tag == "timestampValue":
        return TimestampValue(parse_timestamp(raw))
    if tag == "stringValue":
        if not isinstance(raw, str):
            raise TypeMismatchException(path, tag, "string")
        return StringValue(raw)
    if tag == "bytesValue":
        try:
            return BytesValue(base64.b64decode(raw.encode("ascii"), validate=True))
        except (AttributeError, UnicodeEncodeError, binascii.Error) as e:
            raise TypeMismatchException(path, tag, "base64 string") from e
    if tag == "referenceValue":
        if not isinstance(raw, str):
            raise TypeMismatchException(path, tag, "resource name string")
        return ReferenceValue(raw)
    if tag == "geoPointValue":
        point = raw or {}
        if not isinstance(point, dict):
            raise TypeMismatchException(path, tag, "{latitude, longitude}")
        return GeoPointValue(
            _wire_double(point.get("latitude", 0.0), _child(path, "latitude")),
            _wire_double(point.get("longitude", 0.0), _child(path, "longitude")),
        )
    if tag == "arrayValue":
        if raw is not None and not isinstance(raw, dict):
            raise TypeMismatchException(path, tag, "{values: [...]}")
        values = (raw or {}).get("values") or []
        if not isinstance(values, list):
            raise TypeMismatchException(path, tag, "{values: [...]}")
        return ArrayValue(
            tuple(value_from_wire(x, _index(path, i)) for i, x in enumerate(values))
        )
    # mapValue
    if raw is not None and not isinstance(raw, dict):
        raise TypeMismatchException(path, tag, "{fields: {...}}")
    fields = (raw or {}).get("fields") or {}
    if not isinstance(fields, dict):
        raise TypeMismatchException(path, tag, "{fields: {...}}")
    return MapValue({k: value_from_wire(v, _child(path, k)) for k, v in fields.items()})


def encode_wire(value: Any) -> dict:
    """Native value straight to REST JSON."""
    return value_to_wire(encode_value(value))


def decode_wire(obj: Any, target: Any = Any) -> Any:
    """REST JSON straight to a native value of ``target`` type."""
    return decode_value(value_from_wire(obj), target)
