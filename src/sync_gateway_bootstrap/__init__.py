"""Pre-start bootstrap for Couchbase Sync Gateway."""

__version__ = "1.0.0"
