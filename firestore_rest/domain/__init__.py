"""Domain layer: typed values, documents, query model, exceptions.

No dependencies on transport or configuration.
"""

from firestore_rest.domain.documents import DocumentEnvelope, QueryResultFrame, WriteResult
from firestore_rest.domain.enums import (
    CompositeOperator,
    Direction,
    FieldOperator,
    UnaryOperator,
)
from firestore_rest.domain.exceptions import (
    CompileException,
    DocumentExistsException,
    DocumentNotFoundException,
    FirestoreApiException,
    FirestoreRestException,
    MalformedTimestampException,
    MissingFieldException,
    PathFormatException,
    ProtocolException,
    TypeMismatchException,
)
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
from firestore_rest.domain.values import ABSENT, GeoPoint, Reference, TypedValue

__all__ = [
    "ABSENT",
    "GeoPoint",
    "Reference",
    "TypedValue",
    "DocumentEnvelope",
    "QueryResultFrame",
    "WriteResult",
    "CompositeOperator",
    "Direction",
    "FieldOperator",
    "UnaryOperator",
    "CollectionSelector",
    "CompositeFilter",
    "Cursor",
    "FieldFilter",
    "Filter",
    "Ordering",
    "StructuredQuery",
    "UnaryFilter",
    "FirestoreRestException",
    "TypeMismatchException",
    "MalformedTimestampException",
    "MissingFieldException",
    "CompileException",
    "PathFormatException",
    "ProtocolException",
    "FirestoreApiException",
    "DocumentNotFoundException",
    "DocumentExistsException",
]
