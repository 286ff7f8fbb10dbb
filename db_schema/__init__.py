"""db_schema package.

SQLite DDL + migrations for the sqlite key-value backend (kvstore.sqlite_store).

Public API:
- apply_schema(...)
- SCHEMA_VERSION
"""

from .init import apply_schema  # noqa: F401

SCHEMA_VERSION = "ratedem.kv.2"

__all__ = ["apply_schema", "SCHEMA_VERSION"]
