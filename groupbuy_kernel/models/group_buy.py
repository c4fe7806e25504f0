"""
Module: groupbuy_kernel.models.group_buy
Responsibility: ORM persistence for the group-buy aggregate root.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - status is 'active' or 'closed' (CHECK constraint); the transition is
      one-way, enforced by GroupBuyService.
    - version defaults to 1 and only moves through VersionGuard, which
      increments it by exactly one per accepted mutation.

Failure modes:
    - IntegrityError on a status outside the CHECK set.

Audit relevance:
    Every change to a GroupBuy row, and every change to the orders and
    adjustments it owns, advances ``version`` and appends a GroupBuyLog row
    in the same transaction.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.db.types import JSONText, UUIDString


class GroupBuyStatus(str, Enum):
    """Lifecycle states.  ACTIVE -> CLOSED is the only transition."""

    ACTIVE = "active"
    CLOSED = "closed"


class GroupBuy(Base):
    """
    One purchasing round for a merchant.

    ``metadata`` and ``items`` are stored as JSON text; the typed shapes
    live in ``groupbuy_kernel.domain.payloads`` and are validated before
    anything reaches this model.
    """

    __tablename__ = "group_buys"

    __table_args__ = (
        CheckConstraint("status IN ('active', 'closed')", name="status"),
    )

    id: Mapped[str] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    creator_id: Mapped[str] = mapped_column(Text, nullable=False)
    creator_username: Mapped[str] = mapped_column(Text, nullable=False)
    channel_id: Mapped[str] = mapped_column(Text, nullable=False)
    post_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONText(), nullable=True)

    items: Mapped[list] = mapped_column(JSONText(), nullable=False)
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=GroupBuyStatus.ACTIVE.value,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<GroupBuy {self.id} {self.merchant_name!r} {self.status} v{self.version}>"

    @property
    def is_active(self) -> bool:
        return self.status == GroupBuyStatus.ACTIVE.value

    @property
    def is_closed(self) -> bool:
        return self.status == GroupBuyStatus.CLOSED.value
