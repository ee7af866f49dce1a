"""Structured query model.

Declarative, protocol-agnostic description of a collection scan. The
compiler in ``infrastructure/firebase/query_compiler.py`` validates it and
turns it into the wire tree; nothing here knows about JSON.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from firestore_rest.domain.enums import (
    CompositeOperator,
    Direction,
    FieldOperator,
    UnaryOperator,
)


@dataclass(frozen=True)
class CollectionSelector:
    """Collection to scan, by ID relative to the query parent."""

    collection_id: str
    all_descendants: bool = False


@dataclass(frozen=True)
class FieldFilter:
    """``field <op> value``. ``op`` may be a FieldOperator or a shorthand like '=='."""

    field: str
    op: FieldOperator | str
    value: Any


@dataclass(frozen=True)
class UnaryFilter:
    field: str
    op: UnaryOperator | str


@dataclass(frozen=True)
class CompositeFilter:
    """Group of filters joined by one operator; members may be composites themselves."""

    filters: Sequence["Filter"]
    op: CompositeOperator | str = CompositeOperator.AND


Filter = Union[FieldFilter, UnaryFilter, CompositeFilter]


@dataclass(frozen=True)
class Ordering:
    field: str
    direction: Direction | str = Direction.ASCENDING


@dataclass(frozen=True)
class Cursor:
    """Pagination boundary aligned positionally with the query orderings.

    ``before=True`` places the cursor just before documents matching the
    values (inclusive start, exclusive end); ``before=False`` just after.
    """

    values: Sequence[Any]
    before: bool = True


@dataclass(frozen=True)
class StructuredQuery:
    """Full query definition.

    ``filters`` is a flat list of conditions combined with AND; use a
    CompositeFilter inside it for any other shape.
    """

    collection: CollectionSelector
    filters: Sequence[Filter] = field(default_factory=tuple)
    orderings: Sequence[Ordering] = field(default_factory=tuple)
    start_at: Cursor | None = None
    end_at: Cursor | None = None
    limit: int | None = None
    offset: int | None = None
