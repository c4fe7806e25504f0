"""
VersionGuard -- optimistic compare-and-set on the group-buy row.

Responsibility:
    The single code path that advances ``group_buys.version``.  Every
    mutation of a group buy, or of the orders and adjustments it owns,
    calls ``advance()`` inside the operation's transaction.

Architecture position:
    Kernel > Services -- used by GroupBuyService, OrderService and
    ShortageService.  Never called by selectors.

Invariants enforced:
    - The version moves by exactly one per accepted mutation:
      ``UPDATE group_buys SET version = version + 1, updated_at = :now
      WHERE id = :id AND version = :expected``.
    - Of any set of writers holding the same prior version, at most one
      sees ``rowcount == 1``.  The UPDATE takes the row lock (PostgreSQL)
      or the database write lock (SQLite); the losers re-evaluate the
      predicate against the committed row and match nothing.
    - No retries.  A lost race surfaces as ConflictError for the caller
      to re-read and decide again.

Failure modes:
    - GroupBuyNotFoundError: the row does not exist (or was deleted).
    - ConflictError: the stored version differs from ``expected_version``.
"""

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from groupbuy_kernel.domain.clock import Clock, SystemClock
from groupbuy_kernel.exceptions import ConflictError, GroupBuyNotFoundError
from groupbuy_kernel.logging_config import get_logger
from groupbuy_kernel.models.group_buy import GroupBuy

logger = get_logger("services.version_guard")


class VersionGuard:
    """
    Compare-and-set on ``GroupBuy.version``.

    Contract:
        ``advance(id, expected, **changes)`` writes ``changes`` (mapped
        attribute name -> value) together with the version bump, or raises.

    Guarantees:
        - On success the returned value is ``expected_version + 1``.
        - On failure nothing has been written by this call.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def current_version(self, group_buy_id: str) -> int:
        """Read the committed (or own-transaction) version of a group buy."""
        version = self._session.execute(
            select(GroupBuy.version).where(GroupBuy.id == group_buy_id)
        ).scalar_one_or_none()
        if version is None:
            raise GroupBuyNotFoundError(group_buy_id)
        return version

    def advance(self, group_buy_id: str, expected_version: int, **changes) -> int:
        values = {getattr(GroupBuy, name): value for name, value in changes.items()}
        values[GroupBuy.version] = GroupBuy.version + 1
        values[GroupBuy.updated_at] = self._clock.now()

        result = self._session.execute(
            update(GroupBuy)
            .where(
                GroupBuy.id == group_buy_id,
                GroupBuy.version == expected_version,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            actual = self._session.execute(
                select(GroupBuy.version).where(GroupBuy.id == group_buy_id)
            ).scalar_one_or_none()
            if actual is None:
                raise GroupBuyNotFoundError(group_buy_id)
            logger.warning(
                "version_conflict",
                extra={
                    "group_buy_id": group_buy_id,
                    "expected_version": expected_version,
                    "actual_version": actual,
                },
            )
            raise ConflictError(group_buy_id, expected_version, actual)

        # Keep any loaded instance in step with the row just written.
        cached = self._session.identity_map.get(
            self._session.identity_key(GroupBuy, group_buy_id)
        )
        if cached is not None:
            self._session.expire(cached)

        return expected_version + 1
