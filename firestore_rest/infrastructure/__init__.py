"""Infrastructure: Firestore REST codecs and client."""
