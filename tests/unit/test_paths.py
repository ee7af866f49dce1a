"""Tests for resource name normalization and endpoint URLs."""

import pytest

from firestore_rest.domain.exceptions import PathFormatException
from firestore_rest.infrastructure.firebase.paths import (
    FirestoreEndpoint,
    abs_to_rel,
    database_root,
    document_id,
    rel_to_abs,
    split_collection,
)


class TestAbsToRel:
    def test_strips_prefix(self) -> None:
        assert abs_to_rel("projects/P/databases/(default)/documents/col/doc") == "col/doc"

    def test_nested_path(self) -> None:
        name = "projects/P/databases/(default)/documents/a/1/b/2"
        assert abs_to_rel(name) == "a/1/b/2"

    def test_database_root_is_empty_relative(self) -> None:
        assert abs_to_rel("projects/P/databases/(default)/documents") == ""

    @pytest.mark.parametrize(
        "path",
        [
            "col/doc",
            "projects/P/databases/other/documents/col/doc",
            "projects/P/databases/(default)/documentsX/col",
        ],
    )
    def test_missing_marker_is_recoverable_error(self, path: str) -> None:
        with pytest.raises(PathFormatException) as exc_info:
            abs_to_rel(path)
        assert exc_info.value.error_code == "PATH_FORMAT_ERROR"
        assert exc_info.value.details == {"path": path}


class TestRelToAbs:
    def test_compose(self) -> None:
        assert (
            rel_to_abs("P", "col/doc")
            == "projects/P/databases/(default)/documents/col/doc"
        )

    def test_slashes_trimmed(self) -> None:
        assert rel_to_abs("P", "/col/doc/") == rel_to_abs("P", "col/doc")

    @pytest.mark.parametrize("project_id", ["", "   "])
    def test_empty_project_rejected(self, project_id: str) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            rel_to_abs(project_id, "col/doc")

    @pytest.mark.parametrize("relative", ["col/doc", "a/1/b/2", "users", "x-y/z_1"])
    def test_composition_is_identity(self, relative: str) -> None:
        assert abs_to_rel(rel_to_abs("proj", relative)) == relative


class TestHelpers:
    def test_database_root(self) -> None:
        assert database_root("P") == "projects/P/databases/(default)/documents"

    def test_split_collection(self) -> None:
        assert split_collection("users") == ("", "users")
        assert split_collection("users/u1/orders") == ("users/u1", "orders")

    def test_split_collection_empty(self) -> None:
        with pytest.raises(ValueError):
            split_collection("/")

    def test_document_id(self) -> None:
        assert document_id("projects/P/databases/(default)/documents/users/u1") == "u1"


class TestFirestoreEndpoint:
    def test_public_endpoint(self) -> None:
        ep = FirestoreEndpoint()
        assert not ep.is_emulator
        assert ep.url("projects/P") == "https://firestore.googleapis.com/v1/projects/P"

    def test_emulator_uses_plain_http(self) -> None:
        ep = FirestoreEndpoint("localhost:8080")
        assert ep.is_emulator
        assert ep.document_url("P", "c/d") == (
            "http://localhost:8080/v1/projects/P/databases/(default)/documents/c/d"
        )

    def test_run_query_url(self) -> None:
        root = database_root("P")
        assert FirestoreEndpoint().run_query_url(root) == (
            "https://firestore.googleapis.com/v1/projects/P/databases/(default)/documents:runQuery"
        )
