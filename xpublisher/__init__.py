"""X post publisher: OAuth 1.0a signing and the post publishing lifecycle."""

__version__ = "0.1.0"
