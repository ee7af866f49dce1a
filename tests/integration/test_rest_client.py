"""Integration tests for FirestoreRESTClient against a mocked REST API.

Requests go through httpx.MockTransport, so these exercise URL building,
request bodies, error envelopes and stream decoding end to end without a
network or credentials.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
import pytest

from firestore_rest.domain.exceptions import (
    CompileException,
    DocumentExistsException,
    DocumentNotFoundException,
    FirestoreApiException,
    ProtocolException,
    TypeMismatchException,
)
from firestore_rest.domain.query import CollectionSelector, Ordering, StructuredQuery
from firestore_rest.infrastructure.firebase.query_compiler import QueryBuilder

_ROOT = "projects/test-project/databases/(default)/documents"
_TS = "2024-05-01T08:30:00.250000Z"


@dataclass
class User:
    name: str
    age: int
    email: str | None = None


def _doc(doc_id: str, **fields: dict) -> dict:
    return {
        "name": f"{_ROOT}/users/{doc_id}",
        "fields": fields,
        "createTime": _TS,
        "updateTime": _TS,
    }


def _error(code: int, status: str, message: str) -> dict:
    return {"error": {"code": code, "message": message, "status": status}}


class TestRead:
    async def test_read_decodes_record(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=_doc("u1", name={"stringValue": "Ada"}, age={"integerValue": "36"}),
            )

        client = make_client(handler)
        user = await client.read("users", "u1", User)
        assert user == User(name="Ada", age=36)
        assert seen[0].method == "GET"
        assert seen[0].url.path.endswith("/v1/" + _ROOT + "/users/u1")
        assert "authorization" not in seen[0].headers

    async def test_read_by_name_as_dict(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(200, json=_doc("u2", tags={"arrayValue": {}}))
        )
        assert await client.read_by_name(f"{_ROOT}/users/u2") == {"tags": []}

    async def test_get_document_envelope(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(200, json=_doc("u3", n={"nullValue": None}))
        )
        env = await client.get_document(f"{_ROOT}/users/u3")
        assert env.document_id == "u3"
        assert env.update_time == datetime(2024, 5, 1, 8, 30, 0, 250000, tzinfo=UTC)

    async def test_missing_document(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(404, json=_error(404, "NOT_FOUND", "no such doc"))
        )
        with pytest.raises(DocumentNotFoundException) as exc_info:
            await client.read("users", "ghost", User)
        assert exc_info.value.context == f"{_ROOT}/users/ghost"
        assert "no such doc" in exc_info.value.message

    async def test_error_envelope_status(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(
                403, json=_error(403, "PERMISSION_DENIED", "Missing or insufficient permissions.")
            )
        )
        with pytest.raises(FirestoreApiException) as exc_info:
            await client.read("users", "u1")
        assert exc_info.value.status_code == 403
        assert exc_info.value.status == "PERMISSION_DENIED"

    async def test_non_json_error_body(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(502, text="Bad gateway"))
        with pytest.raises(FirestoreApiException, match="Bad gateway"):
            await client.read("users", "u1")

    async def test_non_object_body_is_protocol_error(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(ProtocolException):
            await client.read("users", "u1")


class TestWrite:
    async def test_overwrite_with_document_id(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = json.loads(request.content)
            return httpx.Response(200, json={**body, "name": f"{_ROOT}/users/u1", "updateTime": _TS})

        client = make_client(handler)
        result = await client.write("users", User("Ada", 36), "u1")
        assert result.document_id == "u1"
        assert result.update_time is not None
        request = seen[0]
        assert request.method == "PATCH"
        assert "updateMask.fieldPaths" not in request.url.params
        assert json.loads(request.content)["fields"] == {
            "name": {"stringValue": "Ada"},
            "age": {"integerValue": "36"},
            "email": {"nullValue": None},
        }

    async def test_merge_sends_update_mask(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": f"{_ROOT}/users/u1", "updateTime": _TS})

        client = make_client(handler)
        await client.write("users", {"name": "Ada", "display name": "A"}, "u1", merge=True)
        assert seen[0].url.params.get_list("updateMask.fieldPaths") == ["name", "`display name`"]

    async def test_skip_nulls(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": f"{_ROOT}/users/u1"})

        client = make_client(handler)
        await client.write("users", User("Ada", 36), "u1", skip_nulls=True)
        assert "email" not in json.loads(seen[0].content)["fields"]

    async def test_store_assigned_id(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": f"{_ROOT}/users/AbC123", "createTime": _TS})

        client = make_client(handler)
        result = await client.write("users", {"name": "Bob"})
        assert result.document_id == "AbC123"
        assert seen[0].method == "POST"
        assert seen[0].url.path.endswith("/documents/users")

    async def test_response_without_name(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProtocolException, match="no document name"):
            await client.write("users", {"a": 1}, "u1")

    async def test_create_conflict(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(409, json=_error(409, "ALREADY_EXISTS", "Document already exists"))

        client = make_client(handler)
        with pytest.raises(DocumentExistsException):
            await client.create("users", "u1", User("Ada", 36))
        assert seen[0].url.params["documentId"] == "u1"

    async def test_delete_with_precondition(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler)
        await client.delete("users/u1", fail_if_not_exists=True)
        assert seen[0].method == "DELETE"
        assert seen[0].url.params["currentDocument.exists"] == "true"

    async def test_delete_missing_with_precondition(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(404, json=_error(404, "NOT_FOUND", "No document to update"))
        )
        with pytest.raises(DocumentNotFoundException):
            await client.delete("users/u1", fail_if_not_exists=True)


class TestListDocuments:
    async def test_follows_page_tokens(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if "pageToken" not in request.url.params:
                return httpx.Response(
                    200,
                    json={
                        "documents": [_doc("a", name={"stringValue": "A"}, age={"integerValue": "1"})],
                        "nextPageToken": "p2",
                    },
                )
            return httpx.Response(
                200,
                json={"documents": [_doc("b", name={"stringValue": "B"}, age={"integerValue": "2"})]},
            )

        client = make_client(handler)
        rows = [row async for row in client.list_documents("users", User, page_size=1)]
        assert [user.name for user, _ in rows] == ["A", "B"]
        assert [env.document_id for _, env in rows] == ["a", "b"]
        assert seen[1].url.params["pageToken"] == "p2"
        assert seen[0].url.params["pageSize"] == "1"

    async def test_empty_collection(self, make_client) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))
        assert [row async for row in client.list_documents("users")] == []


def _stream(frames: list[dict], chunk_size: int = 16):
    body = json.dumps(frames).encode()

    async def chunks():
        for i in range(0, len(body), chunk_size):
            yield body[i : i + chunk_size]

    return chunks()


class TestRunQuery:
    async def test_streams_records_and_skip_counts(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            frames = [
                {"readTime": _TS, "skippedResults": 2},
                {"document": _doc("c", name={"stringValue": "C"}, age={"integerValue": "40"}), "readTime": _TS},
                {"document": _doc("d", name={"stringValue": "D"}, age={"integerValue": "50"}), "readTime": _TS},
            ]
            return httpx.Response(200, content=_stream(frames))

        client = make_client(handler)
        spec = QueryBuilder("users").where("age", ">=", 18).order_by("age").offset(2).build()
        async with client.run_query(spec, User) as results:
            users = await results.to_list()
        assert [u.name for u in users] == ["C", "D"]
        assert results.skipped_results == 2
        assert results.closed

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/documents:runQuery")
        structured = json.loads(request.content)["structuredQuery"]
        assert structured["from"] == [{"collectionId": "users", "allDescendants": False}]
        assert structured["offset"] == 2
        leaf = structured["where"]["compositeFilter"]["filters"][0]
        assert leaf["fieldFilter"]["op"] == "GREATER_THAN_OR_EQUAL"

    async def test_parent_document(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"readTime": _TS}])

        client = make_client(handler)
        spec = StructuredQuery(CollectionSelector("orders"))
        assert await client.run_query(spec, parent="users/u1").to_list() == []
        assert seen[0].url.path.endswith("/documents/users/u1:runQuery")

    async def test_compile_error_before_any_request(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = make_client(handler)
        spec = StructuredQuery(CollectionSelector("users"), limit=-1)
        with pytest.raises(CompileException):
            client.run_query(spec)
        assert seen == []

    async def test_stream_opens_lazily(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = make_client(handler)
        results = client.run_query(StructuredQuery(CollectionSelector("users")))
        assert seen == []
        await results.aclose()
        assert seen == []

    async def test_error_response(self, make_client) -> None:
        client = make_client(
            lambda request: httpx.Response(
                400, json=[_error(400, "FAILED_PRECONDITION", "The query requires an index.")]
            )
        )
        spec = StructuredQuery(
            CollectionSelector("users"), orderings=(Ordering("age"), Ordering("name"))
        )
        results = client.run_query(spec)
        with pytest.raises(FirestoreApiException) as exc_info:
            await results.to_list()
        assert exc_info.value.status == "FAILED_PRECONDITION"
        assert "index" in exc_info.value.message
        assert results.closed

    async def test_decode_error_closes_stream(self, make_client) -> None:
        frames = [
            {"document": _doc("x", name={"integerValue": "1"}, age={"integerValue": "1"})},
            {"document": _doc("y", name={"stringValue": "Y"}, age={"integerValue": "2"})},
        ]
        client = make_client(lambda request: httpx.Response(200, content=_stream(frames)))
        results = client.run_query(StructuredQuery(CollectionSelector("users")), User)
        with pytest.raises(TypeMismatchException) as exc_info:
            await results.to_list()
        assert exc_info.value.details["path"] == "name"
        assert results.closed

    async def test_query_convenience(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=[{"document": _doc("a", name={"stringValue": "A"}, age={"integerValue": "3"})}],
            )

        client = make_client(handler)
        rows = await client.query("users", "name", "==", "A")
        assert rows == [{"name": "A", "age": 3}]
        where = json.loads(seen[0].content)["structuredQuery"]["where"]
        assert where == {
            "compositeFilter": {
                "op": "AND",
                "filters": [
                    {
                        "fieldFilter": {
                            "field": {"fieldPath": "name"},
                            "op": "EQUAL",
                            "value": {"stringValue": "A"},
                        }
                    }
                ],
            }
        }

    async def test_query_nested_collection_runs_under_parent(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"readTime": _TS}])

        client = make_client(handler)
        assert await client.query("users/u1/orders", "total", ">", 10) == []
        assert seen[0].url.path.endswith("/documents/users/u1:runQuery")
        structured = json.loads(seen[0].content)["structuredQuery"]
        assert structured["from"] == [{"collectionId": "orders", "allDescendants": False}]
