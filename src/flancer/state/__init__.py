"""Negotiation record persistence package.

Provides the SQLite schema, the versioned record store, and column
serialization helpers.
"""

from flancer.state.schema import TABLE_KEYS, init_marketplace_tables, open_database
from flancer.state.serializers import decode_json, encode_json, to_column
from flancer.state.store import RecordStore, SQLiteRecordStore

__all__ = [
    "TABLE_KEYS",
    "RecordStore",
    "SQLiteRecordStore",
    "decode_json",
    "encode_json",
    "init_marketplace_tables",
    "open_database",
    "to_column",
]
