"""Firestore REST integration: codecs, query compiler, result decoding, client."""

from firestore_rest.infrastructure.firebase._rest_client import FirestoreRESTClient
from firestore_rest.infrastructure.firebase._rest_encoding import (
    decode_value,
    decode_wire,
    encode_value,
    encode_wire,
    value_from_wire,
    value_to_wire,
)
from firestore_rest.infrastructure.firebase.client import (
    close_firestore,
    create_client,
    get_firestore_client,
    init_firestore,
)
from firestore_rest.infrastructure.firebase.envelope import (
    envelope_from_wire,
    envelope_to_wire,
    from_envelope,
    to_envelope,
)
from firestore_rest.infrastructure.firebase.paths import (
    FirestoreEndpoint,
    abs_to_rel,
    rel_to_abs,
)
from firestore_rest.infrastructure.firebase.query_compiler import (
    QueryBuilder,
    compile_query,
)
from firestore_rest.infrastructure.firebase.query_results import (
    AsyncQueryResults,
    QueryResults,
    iter_frames,
)

__all__ = [
    "FirestoreRESTClient",
    "create_client",
    "init_firestore",
    "get_firestore_client",
    "close_firestore",
    "encode_value",
    "decode_value",
    "value_to_wire",
    "value_from_wire",
    "encode_wire",
    "decode_wire",
    "to_envelope",
    "from_envelope",
    "envelope_to_wire",
    "envelope_from_wire",
    "FirestoreEndpoint",
    "abs_to_rel",
    "rel_to_abs",
    "QueryBuilder",
    "compile_query",
    "QueryResults",
    "AsyncQueryResults",
    "iter_frames",
]
