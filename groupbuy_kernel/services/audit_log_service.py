"""
AuditLogService -- append-only, hash-chained history of a group buy.

Responsibility:
    Writes one GroupBuyLog row per mutating operation.  Each row's
    ``details`` carries the group-buy version produced by the operation and
    a link (``prev_hash``/``hash``) to the previous row of the same group buy.

Architecture position:
    Kernel > Services -- called by GroupBuyService, OrderService and
    ShortageService after their VersionGuard.advance() succeeded.

Invariants enforced:
    - Append-only: this service only inserts.  ORM listeners in
      db/immutability.py reject UPDATE and DELETE of log rows.
    - Chain: ``hash = H(group_buy_id | action | user_id |
      H(details without chain fields) | prev_hash)``.
    - Ordering: appends happen after the version compare-and-set inside
      the same transaction, so two appends to one group buy can never
      read the same ``prev_hash``.

Failure modes:
    - TypeError from canonical JSON if a caller passes a non-serializable
      detail value (a programming error).

Audit relevance:
    This IS the audit trail.  verify_audit_chain() in GroupBuySelector
    recomputes every link written here.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupbuy_kernel.domain.clock import Clock
from groupbuy_kernel.domain.dtos import Actor
from groupbuy_kernel.logging_config import get_logger
from groupbuy_kernel.models.group_buy_log import GroupBuyLog, LogAction
from groupbuy_kernel.services.base import BaseService
from groupbuy_kernel.utils.hashing import hash_log_entry, hash_payload

logger = get_logger("services.audit_log")


class AuditLogService(BaseService[GroupBuyLog]):
    """
    Service for appending audit rows.

    Contract:
        ``append()`` flushes exactly one GroupBuyLog row and returns it.

    Non-goals:
        - Does NOT validate the chain (GroupBuySelector does).
        - Does NOT log deletions of whole group buys; those rows cascade away.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def _get_last_hash(self, group_buy_id: str) -> str | None:
        details = self.session.execute(
            select(GroupBuyLog.details)
            .where(GroupBuyLog.group_buy_id == group_buy_id)
            .order_by(GroupBuyLog.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if not details:
            return None
        return details.get("hash")

    def append(
        self,
        group_buy_id: str,
        actor: Actor,
        action: LogAction,
        version: int,
        details: dict[str, Any] | None = None,
    ) -> GroupBuyLog:
        """
        Append one chained log row.

        Preconditions:
            - The caller advanced the group-buy version to ``version`` in
              this transaction.

        Postconditions:
            - ``details["version"] == version`` and the chain fields are set.
        """
        payload = dict(details or {})
        payload["version"] = version
        payload_hash = hash_payload(payload)

        prev_hash = self._get_last_hash(group_buy_id)
        entry_hash = hash_log_entry(
            group_buy_id=group_buy_id,
            action=action.value,
            user_id=actor.user_id,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = GroupBuyLog(
            group_buy_id=group_buy_id,
            user_id=actor.user_id,
            username=actor.username,
            action=action.value,
            details={**payload, "prev_hash": prev_hash, "hash": entry_hash},
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_log_appended",
            extra={
                "group_buy_id": group_buy_id,
                "action": action.value,
                "version": version,
                "log_id": entry.id,
            },
        )
        return entry
