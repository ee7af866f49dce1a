"""Compile a StructuredQuery into the runQuery ``structuredQuery`` body.

Callers hand over a flat list of conditions; the wire format wants an
explicit filter tree. Two or more top-level filters are always wrapped in
an AND composite, one filter is emitted as-is, none omits ``where``.
Orderings keep caller order: it decides which index serves the query.
"""

import re
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from firestore_rest.domain.enums import (
    CompositeOperator,
    Direction,
    FieldOperator,
    UnaryOperator,
)
from firestore_rest.domain.exceptions import CompileException, TypeMismatchException
from firestore_rest.domain.query import (
    CollectionSelector,
    CompositeFilter,
    Cursor,
    FieldFilter,
    Filter,
    Ordering,
    StructuredQuery,
    UnaryFilter,
)
from firestore_rest.infrastructure.firebase._rest_encoding import encode_wire

_OP_MAP: dict[str, FieldOperator] = {
    "==": FieldOperator.EQUAL,
    "!=": FieldOperator.NOT_EQUAL,
    "<": FieldOperator.LESS_THAN,
    "<=": FieldOperator.LESS_THAN_OR_EQUAL,
    ">": FieldOperator.GREATER_THAN,
    ">=": FieldOperator.GREATER_THAN_OR_EQUAL,
    "in": FieldOperator.IN,
    "not-in": FieldOperator.NOT_IN,
    "not_in": FieldOperator.NOT_IN,
    "array_contains": FieldOperator.ARRAY_CONTAINS,
    "array-contains": FieldOperator.ARRAY_CONTAINS,
    "array_contains_any": FieldOperator.ARRAY_CONTAINS_ANY,
    "array-contains-any": FieldOperator.ARRAY_CONTAINS_ANY,
}

_DIRECTION_MAP: dict[str, Direction] = {
    "asc": Direction.ASCENDING,
    "ascending": Direction.ASCENDING,
    "desc": Direction.DESCENDING,
    "descending": Direction.DESCENDING,
}

# Segments matching this need no backquotes in a field path.
_SIMPLE_SEGMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_segment(segment: str) -> str:
    """Backquote a single field name unless it is a simple identifier."""
    if _SIMPLE_SEGMENT_RE.match(segment):
        return segment
    return "`" + segment.replace("\\", "\\\\").replace("`", "\\`") + "`"


def field_path(field: str) -> str:
    """Validate a dotted field reference and quote segments that need it.

    "address.city" stays as is; "meta.content-type" becomes
    "meta.`content-type`". Already backquoted references are passed through.

    Raises:
        CompileException: Empty reference or empty segment.
    """
    if not isinstance(field, str) or not field.strip():
        raise CompileException("Field reference must be a non-empty dotted path", field)
    if field.startswith("`") or field == "__name__":
        return field
    segments = field.split(".")
    if any(not s for s in segments):
        raise CompileException(f"Field reference has an empty segment: {field!r}", field)
    return ".".join(quote_segment(s) for s in segments)


def _field_ref(field: str) -> dict:
    return {"fieldPath": field_path(field)}


def _field_operator(op: FieldOperator | str, field: str) -> FieldOperator:
    if isinstance(op, FieldOperator):
        return op
    if op in _OP_MAP:
        return _OP_MAP[op]
    try:
        return FieldOperator(op)
    except ValueError as e:
        raise CompileException(f"Unknown filter operator: {op!r}", field) from e


def _encode_operand(value: Any, field: str) -> dict:
    try:
        return encode_wire(value)
    except TypeMismatchException as e:
        raise CompileException(f"Cannot encode filter value: {e.message}", field) from e


def compile_filter(node: Filter) -> dict:
    """Compile one filter node (leaf or composite) into its wire form."""
    if isinstance(node, FieldFilter):
        op = _field_operator(node.op, node.field)
        return {
            "fieldFilter": {
                "field": _field_ref(node.field),
                "op": op.value,
                "value": _encode_operand(node.value, node.field),
            }
        }
    if isinstance(node, UnaryFilter):
        try:
            op = UnaryOperator(node.op)
        except ValueError as e:
            raise CompileException(f"Unknown unary operator: {node.op!r}", node.field) from e
        return {"unaryFilter": {"op": op.value, "field": _field_ref(node.field)}}
    if isinstance(node, CompositeFilter):
        if not node.filters:
            raise CompileException("Composite filter must contain at least one filter")
        try:
            op = CompositeOperator(node.op)
        except ValueError as e:
            raise CompileException(f"Unknown composite operator: {node.op!r}") from e
        return {
            "compositeFilter": {
                "op": op.value,
                "filters": [compile_filter(f) for f in node.filters],
            }
        }
    raise CompileException(f"Unsupported filter node: {type(node).__name__}")


def compile_where(filters: Sequence[Filter]) -> dict | None:
    """Compile the flat top-level filter list; None when there is nothing to filter.

    The list is always wrapped in an AND composite, even for a single filter.
    """
    if not filters:
        return None
    return compile_filter(CompositeFilter(list(filters), CompositeOperator.AND))


def _direction(direction: Direction | str, field: str) -> Direction:
    if isinstance(direction, Direction):
        return direction
    if isinstance(direction, str) and direction.lower() in _DIRECTION_MAP:
        return _DIRECTION_MAP[direction.lower()]
    raise CompileException(f"Unknown sort direction: {direction!r}", field)


def compile_orderings(orderings: Sequence[Ordering]) -> list[dict]:
    return [
        {"field": _field_ref(o.field), "direction": _direction(o.direction, o.field).value}
        for o in orderings
    ]


def compile_cursor(cursor: Cursor, orderings: Sequence[Ordering], label: str) -> dict:
    """Encode cursor values positionally against the orderings.

    Raises:
        CompileException: An empty cursor, or more cursor values than orderings.
    """
    if not cursor.values:
        raise CompileException(f"{label} must hold at least one value")
    if len(cursor.values) > len(orderings):
        raise CompileException(
            f"{label} has {len(cursor.values)} values but the query has only "
            f"{len(orderings)} orderings"
        )
    values = []
    for value, ordering in zip(cursor.values, orderings):
        values.append(_encode_operand(value, ordering.field))
    return {"values": values, "before": bool(cursor.before)}


def _non_negative(value: int | None, label: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise CompileException(f"{label} must be an integer, got {value!r}")
    if value < 0:
        raise CompileException(f"{label} must be non-negative, got {value}")
    return value


def compile_query(spec: StructuredQuery) -> dict:
    """Compile a full query definition into a ``structuredQuery`` object.

    Raises:
        CompileException: Invalid field reference, operator, cursor, limit or offset.
    """
    if not spec.collection.collection_id or "/" in spec.collection.collection_id:
        raise CompileException(
            f"Collection ID must be a single non-empty segment: {spec.collection.collection_id!r}"
        )
    query: dict[str, Any] = {
        "from": [
            {
                "collectionId": spec.collection.collection_id,
                "allDescendants": spec.collection.all_descendants,
            }
        ]
    }
    where = compile_where(spec.filters)
    if where is not None:
        query["where"] = where
    if spec.orderings:
        query["orderBy"] = compile_orderings(spec.orderings)
    if spec.start_at is not None:
        query["startAt"] = compile_cursor(spec.start_at, spec.orderings, "startAt")
    if spec.end_at is not None:
        query["endAt"] = compile_cursor(spec.end_at, spec.orderings, "endAt")
    limit = _non_negative(spec.limit, "limit")
    if limit is not None:
        query["limit"] = limit
    offset = _non_negative(spec.offset, "offset")
    if offset is not None:
        query["offset"] = offset
    return query


class QueryBuilder:
    """Fluent builder for StructuredQuery. Each call returns a new builder.

    Example:
        spec = (
            QueryBuilder("users")
            .where("age", ">=", 18)
            .where("active", "==", True)
            .order_by("age")
            .limit(20)
            .build()
        )
    """

    def __init__(
        self,
        collection_id: str,
        *,
        all_descendants: bool = False,
        _spec: StructuredQuery | None = None,
    ) -> None:
        self._spec = _spec or StructuredQuery(
            CollectionSelector(collection_id, all_descendants)
        )

    def _with(self, **changes: Any) -> "QueryBuilder":
        return QueryBuilder(
            self._spec.collection.collection_id, _spec=replace(self._spec, **changes)
        )

    def where(self, field: str, op: FieldOperator | str, value: Any) -> "QueryBuilder":
        return self._with(filters=(*self._spec.filters, FieldFilter(field, op, value)))

    def where_unary(self, field: str, op: UnaryOperator | str) -> "QueryBuilder":
        return self._with(filters=(*self._spec.filters, UnaryFilter(field, op)))

    def where_filter(self, node: Filter) -> "QueryBuilder":
        return self._with(filters=(*self._spec.filters, node))

    def order_by(
        self, field: str, direction: Direction | str = Direction.ASCENDING
    ) -> "QueryBuilder":
        return self._with(orderings=(*self._spec.orderings, Ordering(field, direction)))

    def start_at(self, *values: Any) -> "QueryBuilder":
        return self._with(start_at=Cursor(values, before=True))

    def start_after(self, *values: Any) -> "QueryBuilder":
        return self._with(start_at=Cursor(values, before=False))

    def end_before(self, *values: Any) -> "QueryBuilder":
        return self._with(end_at=Cursor(values, before=True))

    def end_at(self, *values: Any) -> "QueryBuilder":
        return self._with(end_at=Cursor(values, before=False))

    def limit(self, n: int) -> "QueryBuilder":
        return self._with(limit=n)

    def offset(self, n: int) -> "QueryBuilder":
        return self._with(offset=n)

    def build(self) -> StructuredQuery:
        return self._spec

    def compile(self) -> dict:
        return compile_query(self._spec)
