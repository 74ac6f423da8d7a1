"""Column serialization helpers for the SQLite record store.

Handles the Decimal <-> TEXT round-trip by converting Decimal values to
strings so no precision is lost.  Pydantic converts them back to ``Decimal``
when a row is validated into a domain model.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class _DecimalEncoder(json.JSONEncoder):
    """JSON encoder that converts Decimal values to strings."""

    def default(self, o: object) -> Any:
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def encode_json(value: Any) -> str:
    """JSON-encode a structure, converting Decimals to strings.

    Args:
        value: A dict or list that may contain ``Decimal`` values.

    Returns:
        A JSON string with Decimal values represented as strings.
    """
    return json.dumps(value, cls=_DecimalEncoder)


def decode_json(json_str: str | None) -> Any:
    """Decode a JSON column back to a Python structure (``{}`` for NULL)."""
    if json_str is None:
        return {}
    return json.loads(json_str)


def to_column(value: Any) -> Any:
    """Convert a Python value into something sqlite3 can bind.

    Decimals and datetimes become strings, enums their values, booleans
    integers, and containers JSON text.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict | list):
        return encode_json(value)
    return value
