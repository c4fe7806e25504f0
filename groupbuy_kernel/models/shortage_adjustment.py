"""
Module: groupbuy_kernel.models.shortage_adjustment
Responsibility: ORM persistence for shortage corrections of order quantities.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only, one row per adjustment event (db/immutability.py).
    - old_quantity != new_quantity and both > 0 (validated by
      ShortageService before insert).
    - Removed by cascade when either the owning group buy or the adjusted
      order is deleted.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.db.types import UUIDString


class ShortageAdjustment(Base):
    """A single admin correction of one order's quantity."""

    __tablename__ = "shortage_adjustments"

    __table_args__ = ({"sqlite_autoincrement": True},)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_buy_id: Mapped[str] = mapped_column(
        UUIDString(),
        ForeignKey("group_buys.id", ondelete="CASCADE"),
        nullable=False,
    )
    order_id: Mapped[str] = mapped_column(
        UUIDString(),
        ForeignKey("group_buy_orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    adjuster_id: Mapped[str] = mapped_column(Text, nullable=False)
    adjuster_username: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    buyer_id: Mapped[str] = mapped_column(Text, nullable=False)
    buyer_username: Mapped[str] = mapped_column(Text, nullable=False)
    old_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ShortageAdjustment {self.id} order={self.order_id} "
            f"{self.old_quantity}->{self.new_quantity}>"
        )
