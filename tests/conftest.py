"""Pytest configuration and fixtures for firestore_rest.

REST client tests run against httpx.MockTransport; no network or
credentials are needed. Tests marked requires_emulator skip unless
FIRESTORE_EMULATOR_HOST is set.
"""

import os
from collections.abc import Callable

import httpx
import pytest

from firestore_rest.infrastructure.firebase import FirestoreRESTClient

PROJECT_ID = "test-project"
ROOT = f"projects/{PROJECT_ID}/databases/(default)/documents"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
async def make_client():
    """Factory: FirestoreRESTClient whose HTTP calls go to a handler function."""
    http_clients: list[httpx.AsyncClient] = []

    def _make(handler: Handler) -> FirestoreRESTClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        http_clients.append(http)
        return FirestoreRESTClient(PROJECT_ID, None, http_client=http)

    yield _make
    for http in http_clients:
        await http.aclose()


@pytest.fixture
def emulator_host() -> str:
    """Emulator host:port; skips when no emulator is configured."""
    host = os.getenv("FIRESTORE_EMULATOR_HOST")
    if not host:
        pytest.skip("Emulator not configured: set FIRESTORE_EMULATOR_HOST")
    return host
