"""Bond app backend tooling: typed API client and query-key helpers."""

__version__ = "0.1.0"
