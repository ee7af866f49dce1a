"""Tests for logging and tracing helpers (no SDK installed: spans are no-ops)."""

import logging

import pytest

from firestore_rest.shared.telemetry import add_span_attributes, get_logger, traced


def test_get_logger_is_named() -> None:
    logger = get_logger("firestore_rest.test")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "firestore_rest.test"


class TestTraced:
    def test_sync_function_passthrough(self) -> None:
        @traced("test.sync")
        def add(a: int, b: int, *, path: str | None = None) -> int:
            return a + b

        assert add(1, 2, path="users/u1") == 3
        assert add.__name__ == "add"

    async def test_async_function_passthrough(self) -> None:
        @traced(attributes={"component": "test"})
        async def fetch(name: str) -> str:
            add_span_attributes(**{"firestore.document": name})
            return name.upper()

        assert await fetch(name="doc") == "DOC"

    async def test_errors_propagate(self) -> None:
        @traced("test.fail")
        async def boom() -> None:
            raise ValueError("nope")

        with pytest.raises(ValueError, match="nope"):
            await boom()
