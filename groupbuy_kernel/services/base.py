"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service in the kernel.  Concrete services receive a
    SQLAlchemy ``Session`` and a ``Clock`` and persist through
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back.  GroupBuyLedger (or a
      test harness) owns commit/rollback, so an order insert, its version
      bump and its audit row land together or not at all.

Failure modes:
    - If a subclass commits on its own, a later failure in the same
      operation leaves a partial write behind.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.domain.clock import Clock, SystemClock
from groupbuy_kernel.exceptions import ValidationError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.  Timestamps come from the injected clock only.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read methods -- those live in
          ``groupbuy_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()


def require_text(value, field: str) -> str:
    """Return ``value`` stripped, or raise ValidationError if blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    return value.strip()


# Quantity columns are 32-bit INTEGER on PostgreSQL.
MAX_INT32 = 2**31 - 1


def require_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(
            f"{field} must be a positive integer, got {value!r}", field=field
        )
    if value > MAX_INT32:
        raise ValidationError(
            f"{field} must not exceed {MAX_INT32}, got {value}", field=field
        )
    return value


def require_version(value) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, int)
        or not 1 <= value <= MAX_INT32
    ):
        raise ValidationError(
            f"expected_version must be a positive integer, got {value!r}",
            field="expected_version",
        )
    return value
