"""Database layer - engine, base class, column types, and immutability guards."""

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    session_scope,
)
from groupbuy_kernel.db.types import DecimalText, IsoDateTime, JSONText, UUIDString

__all__ = [
    "Base",
    "build_engine",
    "create_tables",
    "drop_tables",
    "session_scope",
    "DecimalText",
    "IsoDateTime",
    "JSONText",
    "UUIDString",
]
