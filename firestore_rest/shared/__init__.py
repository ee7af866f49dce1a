"""Shared helpers: telemetry and datetime utilities. No Firestore logic."""
