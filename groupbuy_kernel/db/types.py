"""
Module: groupbuy_kernel.db.types
Responsibility: Column types that keep the persisted layout text-based and
    portable (every timestamp, price and structured payload is stored as
    TEXT) while the ORM hands Python values to the rest of the kernel.
Architecture position: Kernel > DB.  May be imported by models/.  MUST NOT
    import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Timestamps are timezone-aware UTC on read and ISO-8601 UTC on write.
      Naive datetimes are rejected at bind time.
    - Prices are Decimal; floats are rejected at bind time.
    - JSON payloads are written compact with sorted keys, so identical
      payloads always produce identical stored text.

Failure modes:
    - ValueError on naive datetime, float price, or un-serializable payload.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID as PyUUID

from sqlalchemy import String, Text
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str returned as-is (ids are opaque strings
          to callers).
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, PyUUID):
            return str(value)
        return str(value)


class IsoDateTime(TypeDecorator):
    """Timezone-aware datetime stored as ISO-8601 TEXT in UTC."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, datetime):
            raise ValueError(f"Expected datetime, got {type(value).__name__}")
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be stored; pass a UTC-aware value")
        return value.astimezone(timezone.utc).isoformat(timespec="microseconds")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)


class DecimalText(TypeDecorator):
    """Decimal stored as its canonical string (e.g. "100", "12.50")."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise ValueError("Floats are not accepted for prices; use Decimal")
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


def dump_json(value: Any) -> str:
    """Compact, key-sorted JSON with non-ASCII text kept readable."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


class JSONText(TypeDecorator):
    """Structured payload (dict or list) stored as JSON TEXT."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        try:
            return dump_json(value)
        except TypeError as exc:
            raise ValueError(f"Payload is not JSON serializable: {exc}") from exc

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(value)
