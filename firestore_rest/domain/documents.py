"""Document envelope and related read models (no dependency on transport)."""

from dataclasses import dataclass, field
from datetime import datetime

from firestore_rest.domain.values import TypedValue


def _last_segment(name: str | None) -> str | None:
    if not name:
        return None
    return name.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DocumentEnvelope:
    """A document as the store sends and receives it.

    ``name`` is the absolute resource name and stays None until the
    document exists (or the caller assigns its own ID before writing).
    Never mutated: every round trip produces a fresh envelope.
    """

    name: str | None = None
    fields: dict[str, TypedValue] = field(default_factory=dict)
    create_time: datetime | None = None
    update_time: datetime | None = None

    @property
    def document_id(self) -> str | None:
        """Last segment of the resource name, or None when unnamed."""
        return _last_segment(self.name)


@dataclass(frozen=True)
class QueryResultFrame:
    """One frame of a runQuery response stream.

    Either carries a document, or only a skipped-results count. The count
    is 0 when the frame did not report one.
    """

    document: DocumentEnvelope | None = None
    read_time: datetime | None = None
    skipped_results: int = 0


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a create/write call."""

    name: str
    create_time: datetime | None = None
    update_time: datetime | None = None

    @property
    def document_id(self) -> str:
        return _last_segment(self.name) or ""
