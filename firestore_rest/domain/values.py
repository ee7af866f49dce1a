"""Typed values: the store's tagged-union representation of a single value.

One frozen dataclass per wire tag. ``TypedValue`` is the closed union of
them; codecs dispatch on the concrete class so a new tag has to be handled
explicitly everywhere. Native helper types (``Reference``, ``GeoPoint``)
and the ``ABSENT`` field marker live here as well.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Union

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class Reference:
    """Native value for a document reference: the absolute resource name, verbatim."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class GeoPoint:
    """Native value for a geographic point (degrees)."""

    latitude: float
    longitude: float


class _Absent:
    """Marker for a record field that must not be written at all."""

    _instance: ClassVar["_Absent | None"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class NullValue:
    wire_tag: ClassVar[str] = "nullValue"


@dataclass(frozen=True)
class BooleanValue:
    value: bool
    wire_tag: ClassVar[str] = "booleanValue"


@dataclass(frozen=True)
class IntegerValue:
    """64-bit signed integer; string-encoded on the wire."""

    value: int
    wire_tag: ClassVar[str] = "integerValue"

    def __post_init__(self) -> None:
        if not INT64_MIN <= self.value <= INT64_MAX:
            raise ValueError(f"Integer out of 64-bit range: {self.value}")


@dataclass(frozen=True)
class DoubleValue:
    value: float
    wire_tag: ClassVar[str] = "doubleValue"


@dataclass(frozen=True)
class TimestampValue:
    """Timezone-aware instant (UTC)."""

    value: datetime
    wire_tag: ClassVar[str] = "timestampValue"


@dataclass(frozen=True)
class StringValue:
    value: str
    wire_tag: ClassVar[str] = "stringValue"


@dataclass(frozen=True)
class BytesValue:
    value: bytes
    wire_tag: ClassVar[str] = "bytesValue"


@dataclass(frozen=True)
class ReferenceValue:
    """Absolute resource name of another document."""

    value: str
    wire_tag: ClassVar[str] = "referenceValue"


@dataclass(frozen=True)
class GeoPointValue:
    latitude: float
    longitude: float
    wire_tag: ClassVar[str] = "geoPointValue"


@dataclass(frozen=True)
class ArrayValue:
    values: tuple["TypedValue", ...] = ()
    wire_tag: ClassVar[str] = "arrayValue"


@dataclass(frozen=True)
class MapValue:
    fields: dict[str, "TypedValue"] = field(default_factory=dict)
    wire_tag: ClassVar[str] = "mapValue"


TypedValue = Union[
    NullValue,
    BooleanValue,
    IntegerValue,
    DoubleValue,
    TimestampValue,
    StringValue,
    BytesValue,
    ReferenceValue,
    GeoPointValue,
    ArrayValue,
    MapValue,
]

TYPED_VALUE_CLASSES: tuple[type, ...] = (
    NullValue,
    BooleanValue,
    IntegerValue,
    DoubleValue,
    TimestampValue,
    StringValue,
    BytesValue,
    ReferenceValue,
    GeoPointValue,
    ArrayValue,
    MapValue,
)

WIRE_TAGS: frozenset[str] = frozenset(cls.wire_tag for cls in TYPED_VALUE_CLASSES)
