"""Thin Firestore REST API client (no firebase-admin).

Uses google-auth for service account tokens and Firestore REST v1. Every
operation builds a URL, encodes/decodes through the envelope codec, and
makes a single call through ``_request_async``. All HTTP calls use
httpx.AsyncClient so they do not block the event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

import httpx

from firestore_rest.domain.documents import DocumentEnvelope, WriteResult
from firestore_rest.domain.exceptions import (
    DocumentExistsException,
    DocumentNotFoundException,
    FirestoreApiException,
    ProtocolException,
)
from firestore_rest.domain.query import CollectionSelector, FieldFilter, StructuredQuery
from firestore_rest.infrastructure.firebase.envelope import (
    envelope_from_wire,
    from_envelope,
    record_to_document,
)
from firestore_rest.infrastructure.firebase.paths import (
    FirestoreEndpoint,
    database_root,
    rel_to_abs,
    split_collection,
)
from firestore_rest.infrastructure.firebase.query_compiler import (
    compile_query,
    quote_segment,
)
from firestore_rest.infrastructure.firebase.query_results import (
    AsyncQueryResults,
    aiter_frames,
)
from firestore_rest.shared.telemetry.logging import get_logger
from firestore_rest.shared.telemetry.tracing import add_span_attributes, traced

logger = get_logger(__name__)

_FIRESTORE_SCOPE = "https://www.googleapis.com/auth/datastore"


def _get_credentials(key_dict: dict):
    """Return google.oauth2.service_account.Credentials for Firestore."""
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_info(
        key_dict, scopes=[_FIRESTORE_SCOPE]
    )


def _get_access_token(credentials) -> str:
    from google.auth.transport.requests import Request

    if not credentials.valid:
        credentials.refresh(Request())
    return credentials.token


def _headers(access_token: str | None) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def _api_error(resp: httpx.Response, context: str | None) -> FirestoreApiException:
    """Build an exception from the Google error envelope of a failed response.

    The envelope is ``{"error": {"code", "message", "status"}}``; runQuery
    wraps it in a one-element array.
    """
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        payload = payload[0]
    err = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(err, dict):
        message = err.get("message") or resp.reason_phrase
        status = err.get("status")
    else:
        message = resp.text or resp.reason_phrase
        status = None
    if resp.status_code == 404:
        return DocumentNotFoundException(context, message)
    if resp.status_code == 409 and status in (None, "ALREADY_EXISTS"):
        return DocumentExistsException(context, message)
    return FirestoreApiException(resp.status_code, message, status, context)


async def _request_async(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    body: dict | None = None,
    access_token: str | None = None,
    params: list[tuple[str, str]] | None = None,
    context: str | None = None,
) -> dict:
    """Perform one HTTP request against the REST API and return the JSON body.

    Raises:
        FirestoreApiException: Non-2xx response (404/409 as their subclasses).
        ProtocolException: 2xx response whose body is not a JSON object.
    """
    if method not in ("GET", "PATCH", "POST", "DELETE"):
        raise ValueError(f"Unsupported method: {method!r}")
    resp = await client.request(
        method, url, headers=_headers(access_token), json=body, params=params
    )
    if resp.status_code >= 300:
        exc = _api_error(resp, context)
        logger.warning("%s %s failed: %s", method, url, exc.message)
        raise exc
    logger.debug("%s %s -> %d", method, url, resp.status_code)
    if not resp.content:
        return {}
    try:
        out = resp.json()
    except ValueError as e:
        raise ProtocolException(f"Response from {url} is not JSON") from e
    if not isinstance(out, dict):
        raise ProtocolException(f"Response from {url} is not a JSON object")
    return out


class FirestoreRESTClient:
    """Lightweight Firestore client using the REST API.

    Paths passed to the operations are relative ("users", "users/u1/orders");
    names are absolute ("projects/p/databases/(default)/documents/users/u1").
    Pass ``credentials=None`` for an emulator.
    """

    def __init__(
        self,
        project_id: str,
        credentials=None,
        *,
        endpoint: FirestoreEndpoint | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._project_id = project_id
        self._credentials = credentials
        self._root = database_root(project_id)
        self._endpoint = endpoint or FirestoreEndpoint()
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @property
    def project_id(self) -> str:
        return self._project_id

    @property
    def endpoint(self) -> FirestoreEndpoint:
        return self._endpoint

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> FirestoreRESTClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def get_token(self) -> str | None:
        """Return a valid access token (None without credentials); refreshes in a worker thread."""
        if self._credentials is None:
            return None
        return await asyncio.to_thread(_get_access_token, self._credentials)

    def _name(self, relative: str) -> str:
        return rel_to_abs(self._project_id, relative)

    async def _call(
        self,
        name: str,
        method: str = "GET",
        body: dict | None = None,
        params: list[tuple[str, str]] | None = None,
        suffix: str = "",
    ) -> dict:
        return await _request_async(
            self._http,
            self._endpoint.url(name) + suffix,
            method=method,
            body=body,
            access_token=await self.get_token(),
            params=params,
            context=name,
        )

    # --- read ---------------------------------------------------------------

    @traced("firestore.get_document")
    async def get_document(self, name: str) -> DocumentEnvelope:
        """Fetch a document envelope by absolute name.

        Raises:
            DocumentNotFoundException: The document does not exist.
        """
        return envelope_from_wire(await self._call(name))

    async def read_by_name(self, name: str, target: Any = dict) -> Any:
        """Read a document by absolute name, e.g. "projects/p/databases/(default)/documents/tests/t1"."""
        return from_envelope(await self.get_document(name), target)

    async def read(self, path: str, document_id: str, target: Any = dict) -> Any:
        """Read a document from a collection.

        Args:
            path: Relative collection path, e.g. "users" or "a/nested/collection".
            document_id: Document ID; not part of ``path``.
            target: dict, dataclass or pydantic model type.
        """
        return await self.read_by_name(self._name(f"{path}/{document_id}"), target)

    # --- write --------------------------------------------------------------

    @traced("firestore.write")
    async def write(
        self,
        path: str,
        record: Any,
        document_id: str | None = None,
        *,
        merge: bool = False,
        skip_nulls: bool = False,
    ) -> WriteResult:
        """Create or overwrite a document.

        With ``document_id`` the document at ``path/document_id`` is replaced
        (or, with ``merge``, only the record's top-level fields are updated).
        Without it the store assigns an ID; read it from the result.
        """
        body = record_to_document(record, skip_nulls=skip_nulls)
        if document_id is not None:
            name = self._name(f"{path}/{document_id}")
            params = None
            if merge:
                params = [("updateMask.fieldPaths", quote_segment(k)) for k in body["fields"]]
            out = await self._call(name, method="PATCH", body=body, params=params)
        else:
            out = await self._call(self._name(path), method="POST", body=body)
        env = envelope_from_wire(out)
        if not env.name:
            raise ProtocolException("Write response carries no document name")
        add_span_attributes(**{"firestore.document": env.name})
        return WriteResult(env.name, env.create_time, env.update_time)

    @traced("firestore.create")
    async def create(self, path: str, document_id: str, record: Any) -> WriteResult:
        """Create a document with the given ID.

        Raises:
            DocumentExistsException: A document with that ID already exists.
        """
        body = record_to_document(record)
        out = await self._call(
            self._name(path), method="POST", body=body, params=[("documentId", document_id)]
        )
        env = envelope_from_wire(out)
        return WriteResult(env.name or self._name(f"{path}/{document_id}"), env.create_time, env.update_time)

    @traced("firestore.delete")
    async def delete(self, path: str, *, fail_if_not_exists: bool = False) -> None:
        """Delete the document at relative ``path`` (idempotent unless fail_if_not_exists)."""
        params = [("currentDocument.exists", "true")] if fail_if_not_exists else None
        await self._call(self._name(path), method="DELETE", params=params)

    # --- list / query -------------------------------------------------------

    async def list_documents(
        self, path: str, target: Any = dict, *, page_size: int | None = None
    ) -> AsyncIterator[tuple[Any, DocumentEnvelope]]:
        """Yield (record, envelope) for every document of a collection, page by page."""
        name = self._name(path)
        token: str | None = None
        while True:
            params: list[tuple[str, str]] = []
            if page_size:
                params.append(("pageSize", str(page_size)))
            if token:
                params.append(("pageToken", token))
            out = await self._call(name, params=params or None)
            for doc in out.get("documents") or []:
                env = envelope_from_wire(doc)
                yield from_envelope(env, target), env
            token = out.get("nextPageToken")
            if not token:
                return

    def run_query(
        self, spec: StructuredQuery, target: Any = dict, *, parent: str | None = None
    ) -> AsyncQueryResults:
        """Run a structured query and stream decoded records.

        The query is compiled before anything is sent, so CompileException is
        raised here. The HTTP stream opens on first iteration and is closed
        when the results are exhausted, fail, or are closed.

        Args:
            spec: Query definition.
            target: Record type for decoding.
            parent: Document the collection hangs off (relative or absolute);
                the database root by default.
        """
        body = {"structuredQuery": compile_query(spec)}
        if parent is None:
            parent_name = self._root
        elif parent.startswith("projects/"):
            parent_name = parent
        else:
            parent_name = self._name(parent)
        return AsyncQueryResults(self._stream_frames(parent_name, body), target)

    async def _stream_frames(self, parent: str, body: dict) -> AsyncIterator[dict]:
        url = self._endpoint.run_query_url(parent)
        token = await self.get_token()
        async with self._http.stream("POST", url, json=body, headers=_headers(token)) as resp:
            if resp.status_code >= 300:
                await resp.aread()
                exc = _api_error(resp, parent)
                logger.warning("runQuery %s failed: %s", parent, exc.message)
                raise exc
            async with aclosing(aiter_frames(resp.aiter_bytes())) as frames:
                async for frame in frames:
                    yield frame

    @traced("firestore.query")
    async def query(
        self, path: str, field: str, op: str, value: Any, target: Any = dict
    ) -> list[Any]:
        """Run a single-condition query over a collection and collect the records.

        ``path`` may be nested ("users/u1/orders"); the query then runs under
        the parent document.
        """
        parent, collection_id = split_collection(path)
        spec = StructuredQuery(
            CollectionSelector(collection_id), filters=(FieldFilter(field, op, value),)
        )
        async with self.run_query(spec, target, parent=parent or None) as results:
            return await results.to_list()
