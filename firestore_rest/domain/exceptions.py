"""Exceptions for firestore_rest.

Codec, compiler and path errors are local and deterministic: the same input
always raises the same exception. Transport errors wrap the Google API
error envelope. Callers can switch on ``error_code`` or ``details`` without
parsing messages.
"""

from typing import Any


class FirestoreRestException(Exception):
    """Base exception for all firestore_rest errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, path, value).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class TypeMismatchException(FirestoreRestException):
    """Raised when a wire tag does not fit the requested native shape, or a
    native value has no wire representation."""

    def __init__(self, path: str, wire_tag: str, expected: str) -> None:
        """Initialize with the offending location and the two shapes.

        Args:
            path: Dotted/indexed location of the value (e.g. 'tags[2]'); '' for the root.
            wire_tag: Wire tag (or native type name when encoding) that was found.
            expected: Description of the expected shape.
        """
        where = path or "<root>"
        super().__init__(
            f"Type mismatch at {where}: got {wire_tag}, expected {expected}",
            "TYPE_MISMATCH",
            {"path": path, "wire_tag": wire_tag, "expected": expected},
        )


class MalformedTimestampException(FirestoreRestException):
    """Raised when a timestamp string is not valid RFC3339."""

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Malformed RFC3339 timestamp: {value!r}",
            "MALFORMED_TIMESTAMP",
            {"value": value},
        )


class MissingFieldException(FirestoreRestException):
    """Raised when a required record field is absent from the wire document."""

    def __init__(self, field: str, document: str | None = None) -> None:
        """Initialize with the missing field and the document it was expected in.

        Args:
            field: Name of the required field.
            document: Resource name of the document, when known.
        """
        message = f"Missing required field: {field}"
        if document:
            message = f"{message} (document {document})"
        super().__init__(
            message,
            "MISSING_FIELD",
            {"field": field, "document": document},
        )


class CompileException(FirestoreRestException):
    """Raised when a structured query cannot be compiled."""

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, "COMPILE_ERROR", details)


class PathFormatException(FirestoreRestException):
    """Raised when an absolute resource name lacks the '(default)/documents' segment."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Not an absolute document path (missing '(default)/documents'): {path!r}",
            "PATH_FORMAT_ERROR",
            {"path": path},
        )


class ProtocolException(FirestoreRestException):
    """Raised when a response body or stream frame is not what the protocol promises."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "PROTOCOL_ERROR")


class FirestoreApiException(FirestoreRestException):
    """Raised when the REST API answers with a non-success status.

    Attributes:
        status_code: HTTP status code.
        status: Google RPC status name (e.g. 'FAILED_PRECONDITION'), if provided.
        context: What was being accessed (usually a resource name).
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        status: str | None = None,
        context: str | None = None,
        error_code: str = "API_ERROR",
    ) -> None:
        self.status_code = status_code
        self.status = status
        self.context = context
        text = f"Firestore API error {status_code}"
        if status:
            text = f"{text} {status}"
        text = f"{text}: {message}"
        if context:
            text = f"{text} ({context})"
        super().__init__(
            text,
            error_code,
            {"status_code": status_code, "status": status, "context": context},
        )


class DocumentNotFoundException(FirestoreApiException):
    """Raised when the addressed document does not exist (404)."""

    def __init__(self, context: str | None = None, message: str = "Document not found") -> None:
        super().__init__(404, message, "NOT_FOUND", context, "NOT_FOUND")


class DocumentExistsException(FirestoreApiException):
    """Raised when creating a document whose ID already exists (409)."""

    def __init__(
        self, context: str | None = None, message: str = "Document already exists"
    ) -> None:
        super().__init__(409, message, "ALREADY_EXISTS", context, "ALREADY_EXISTS")
