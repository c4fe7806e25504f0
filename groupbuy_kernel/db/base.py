"""
Module: groupbuy_kernel.db.base
Responsibility: Declarative base class for all SQLAlchemy ORM models and the
    type annotation map that keeps column types consistent.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST
    NOT import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Decimal maps to DecimalText: prices never pass through float.
    - datetime maps to IsoDateTime: always timezone-aware UTC.
    - int maps to Integer, so SQLite treats integer primary keys as rowid
      aliases (required for AUTOINCREMENT on the log and adjustment tables).
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import Integer, MetaData
from sqlalchemy.orm import DeclarativeBase

from groupbuy_kernel.db.types import DecimalText, IsoDateTime

# Deterministic constraint names keep generated DDL stable across backends
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the system inherits from Base.  Primary keys are
        declared per model: group buys and orders use opaque UUID strings,
        logs and adjustments use autoincrementing integers.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: DecimalText(),
        datetime: IsoDateTime(),
        int: Integer,
    }
