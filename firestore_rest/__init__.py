"""Typed access to the Firestore REST API.

Encode Python records to Firestore documents and back, compile structured
queries, and stream query results.
"""

__version__ = "0.1.0"
