"""Resource names and endpoint URLs.

Absolute document names look like
``projects/{project}/databases/(default)/documents/{relative}``; relative
paths are ``{collection}/{document}`` with any number of nested pairs.
"""

from dataclasses import dataclass

from firestore_rest.domain.exceptions import PathFormatException

_MARKER = "(default)/documents"
_PUBLIC_HOST = "firestore.googleapis.com"


def database_root(project_id: str) -> str:
    """Return ``projects/{id}/databases/(default)/documents``.

    Raises:
        ValueError: If project_id is empty.
    """
    if not project_id or not project_id.strip():
        raise ValueError("project_id must be a non-empty string")
    return f"projects/{project_id}/databases/{_MARKER}"


def abs_to_rel(path: str) -> str:
    """Convert an absolute document name into a relative path.

    "projects/P/databases/(default)/documents/my_collection/doc_id"
    becomes "my_collection/doc_id".

    Raises:
        PathFormatException: If the '(default)/documents' segment is missing.
    """
    idx = path.find(_MARKER)
    if idx < 0:
        raise PathFormatException(path)
    rest = path[idx + len(_MARKER):]
    if rest and not rest.startswith("/"):
        raise PathFormatException(path)
    return rest[1:]


def rel_to_abs(project_id: str, relative: str) -> str:
    """Compose an absolute document name from a project ID and a relative path."""
    root = database_root(project_id)
    relative = relative.strip("/")
    return f"{root}/{relative}" if relative else root


def split_collection(relative: str) -> tuple[str, str]:
    """Split a relative collection path into (parent document path, collection ID).

    "users" -> ("", "users"); "users/u1/orders" -> ("users/u1", "orders").
    """
    relative = relative.strip("/")
    if not relative:
        raise ValueError("collection path must be non-empty")
    parent, _, collection_id = relative.rpartition("/")
    return parent, collection_id


def document_id(name: str) -> str:
    """Last segment of a document name or path."""
    return name.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class FirestoreEndpoint:
    """Where REST calls go: the public API, or an emulator host over plain HTTP."""

    emulator_host: str | None = None

    @property
    def base_url(self) -> str:
        if self.emulator_host:
            return f"http://{self.emulator_host}"
        return f"https://{_PUBLIC_HOST}"

    @property
    def is_emulator(self) -> bool:
        return bool(self.emulator_host)

    def url(self, name: str) -> str:
        """``{base}/v1/{name}`` for an absolute resource name."""
        return f"{self.base_url}/v1/{name}"

    def document_url(self, project_id: str, relative: str) -> str:
        return self.url(rel_to_abs(project_id, relative))

    def run_query_url(self, parent: str) -> str:
        return f"{self.url(parent)}:runQuery"
