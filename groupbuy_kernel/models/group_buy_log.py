"""
Module: groupbuy_kernel.models.group_buy_log
Responsibility: ORM persistence for the per-group-buy audit log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE through the ORM (db/immutability.py).
      Rows leave the table only through the cascade that deletes their
      group buy.
    - Hash chain: ``details`` carries ``prev_hash`` and ``hash`` where
      hash = H(group_buy_id | action | user_id | H(details without hashes) |
      prev_hash).  Maintained by AuditLogService, verified by
      GroupBuySelector.verify_audit_chain().

Audit relevance:
    GroupBuyLog IS the audit trail.  Every mutating operation on a group
    buy writes exactly one row here, in the same transaction as the change.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.db.types import JSONText, UUIDString


class LogAction(str, Enum):
    """Action tags written to ``group_buy_logs.action``.

    Contract: every mutating kernel operation maps to exactly one member.
    """

    GROUP_BUY_CREATED = "group_buy_created"
    GROUP_BUY_UPDATED = "group_buy_updated"
    GROUP_BUY_CLOSED = "group_buy_closed"
    ORDER_REGISTERED = "order_registered"
    ORDER_CANCELLED = "order_cancelled"
    BUYER_ORDERS_CANCELLED = "buyer_orders_cancelled"
    SHORTAGE_ADJUSTED = "shortage_adjusted"


class GroupBuyLog(Base):
    """Append-only audit entry."""

    __tablename__ = "group_buy_logs"

    __table_args__ = (
        Index("idx_logs_group_buy_id", "group_buy_id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_buy_id: Mapped[str] = mapped_column(
        UUIDString(),
        ForeignKey("group_buys.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONText(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<GroupBuyLog {self.id} {self.action} on {self.group_buy_id}>"
