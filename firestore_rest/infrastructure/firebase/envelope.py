"""Document envelope codec: native records <-> DocumentEnvelope <-> REST Document JSON.

Records are dicts, dataclass instances or pydantic models. Top-level
fields set to ``ABSENT`` are left out of the document (and ``None`` too
when ``skip_nulls`` is set); nested members are always written.
"""

from collections.abc import Mapping
from typing import Any

from firestore_rest.domain.documents import DocumentEnvelope
from firestore_rest.domain.exceptions import ProtocolException, TypeMismatchException
from firestore_rest.domain.values import ABSENT, MapValue, TypedValue
from firestore_rest.infrastructure.firebase._rest_encoding import (
    decode_record,
    decode_value,
    encode_value,
    format_timestamp,
    is_record_type,
    parse_timestamp,
    record_items,
    value_from_wire,
    value_to_wire,
)


def _top_level_items(record: Any) -> dict[str, Any]:
    if isinstance(record, Mapping):
        for k in record:
            if not isinstance(k, str):
                raise TypeMismatchException(repr(k), type(k).__name__, "str field name")
        return dict(record)
    items = record_items(record)
    if items is None:
        raise TypeMismatchException(
            "", type(record).__name__, "dict, dataclass or pydantic model"
        )
    return items


def to_envelope(
    record: Any,
    *,
    name: str | None = None,
    skip_nulls: bool = False,
) -> DocumentEnvelope:
    """Encode a record into an envelope.

    Args:
        record: dict, dataclass instance or pydantic model.
        name: Absolute resource name when the caller picks the document ID.
        skip_nulls: Also omit top-level fields whose value is None.
    """
    fields: dict[str, TypedValue] = {}
    for key, value in _top_level_items(record).items():
        if value is ABSENT or (skip_nulls and value is None):
            continue
        fields[key] = encode_value(value, key)
    return DocumentEnvelope(name=name, fields=fields)


def from_envelope(envelope: DocumentEnvelope, target: Any = dict) -> Any:
    """Decode an envelope into ``target``.

    ``dict`` (or ``Any``) gives every wire field decoded by tag. For a
    dataclass or pydantic model each declared field is decoded against its
    annotation; wire fields without a slot are ignored.

    Raises:
        MissingFieldException: A required field is absent on the wire.
        TypeMismatchException: A field's tag does not fit its annotation.
    """
    if target is dict or target is Any:
        return decode_value(MapValue(envelope.fields))
    if is_record_type(target):
        return decode_record(envelope.fields, target, document=envelope.name)
    return decode_value(MapValue(envelope.fields), target)


def envelope_to_wire(envelope: DocumentEnvelope) -> dict:
    """Render the envelope as a REST Document body."""
    out: dict[str, Any] = {}
    if envelope.name:
        out["name"] = envelope.name
    out["fields"] = {k: value_to_wire(v) for k, v in envelope.fields.items()}
    if envelope.create_time is not None:
        out["createTime"] = format_timestamp(envelope.create_time)
    if envelope.update_time is not None:
        out["updateTime"] = format_timestamp(envelope.update_time)
    return out


def envelope_from_wire(doc: Any) -> DocumentEnvelope:
    """Parse a REST Document body.

    Raises:
        ProtocolException: The body is not a JSON object.
    """
    if not isinstance(doc, dict):
        raise ProtocolException(f"Expected a document object, got {type(doc).__name__}")
    fields = doc.get("fields") or {}
    if not isinstance(fields, dict):
        raise ProtocolException("Document 'fields' must be an object")
    create_time = doc.get("createTime")
    update_time = doc.get("updateTime")
    return DocumentEnvelope(
        name=doc.get("name"),
        fields={k: value_from_wire(v, k) for k, v in fields.items()},
        create_time=parse_timestamp(create_time) if create_time else None,
        update_time=parse_timestamp(update_time) if update_time else None,
    )


def document_to_record(doc: Any, target: Any = dict) -> Any:
    """REST Document JSON straight to a record."""
    return from_envelope(envelope_from_wire(doc), target)


def record_to_document(
    record: Any, *, name: str | None = None, skip_nulls: bool = False
) -> dict:
    """Record straight to a REST Document body."""
    return envelope_to_wire(to_envelope(record, name=name, skip_nulls=skip_nulls))
