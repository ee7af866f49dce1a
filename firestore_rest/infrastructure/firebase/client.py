"""Build a FirestoreRESTClient from settings.

Credentials come from FIREBASE_SERVICE_ACCOUNT_KEY (JSON string) or
FIREBASE_SERVICE_ACCOUNT_PATH (file path). With FIRESTORE_EMULATOR_HOST set
the client talks plain HTTP to the emulator and sends no token.
"""

import json
import logging
from pathlib import Path

from firestore_rest.core.config import Settings, get_settings
from firestore_rest.infrastructure.firebase._rest_client import (
    FirestoreRESTClient,
    _get_credentials,
)
from firestore_rest.infrastructure.firebase.paths import FirestoreEndpoint

logger = logging.getLogger(__name__)

_firestore_client: FirestoreRESTClient | None = None


def _load_key_dict(settings: Settings) -> dict | None:
    """Return service account dict from env key or file path."""
    key_json = (
        settings.firebase_service_account_key.get_secret_value()
        if settings.firebase_service_account_key
        else None
    )
    if key_json:
        try:
            return json.loads(key_json)
        except json.JSONDecodeError as e:
            raise ValueError("FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON") from e
    path = settings.firebase_service_account_path
    if path:
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_file():
            raise ValueError(
                f"FIREBASE_SERVICE_ACCOUNT_PATH set but file not found: {path} (resolved: {resolved})"
            )
        with open(resolved, encoding="utf-8") as f:
            return json.load(f)
    return None


def create_client(settings: Settings | None = None) -> FirestoreRESTClient:
    """Create a client from explicit settings (default: environment settings).

    Raises:
        ValueError: Credentials are malformed or carry no project ID.
    """
    settings = settings or get_settings()
    endpoint = FirestoreEndpoint(settings.firestore_emulator_host)
    if endpoint.is_emulator:
        logger.info("Using Firestore emulator at %s", endpoint.base_url)
        return FirestoreRESTClient(
            settings.project_id,
            None,
            endpoint=endpoint,
            timeout=settings.request_timeout_seconds,
        )

    key_dict = _load_key_dict(settings)
    if not key_dict:
        raise ValueError("No Firebase service account configured")
    project_id = settings.project_id or key_dict.get("project_id")
    if not project_id:
        raise ValueError("Firebase service account JSON missing 'project_id'")
    return FirestoreRESTClient(
        project_id,
        _get_credentials(key_dict),
        endpoint=endpoint,
        timeout=settings.request_timeout_seconds,
    )


def init_firestore(settings: Settings | None = None) -> bool:
    """Initialize the shared client. Idempotent.

    On invalid credentials logs the exception and returns False so the
    host application can start without Firestore.
    """
    global _firestore_client
    if _firestore_client is not None:
        return True
    try:
        _firestore_client = create_client(settings)
        return True
    except Exception:
        logger.exception("Firestore initialization failed")
        return False


def get_firestore_client() -> FirestoreRESTClient | None:
    """Return the shared client, or None if init_firestore has not succeeded."""
    return _firestore_client


async def close_firestore() -> None:
    """Close the shared client's HTTP connection pool."""
    global _firestore_client
    if _firestore_client is not None:
        await _firestore_client.aclose()
        _firestore_client = None
        logger.info("Firestore HTTP client closed")
