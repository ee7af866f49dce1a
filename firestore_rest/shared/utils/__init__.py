"""Shared utilities."""

from firestore_rest.shared.utils.datetime import ensure_utc

__all__ = [
    "ensure_utc",
]
