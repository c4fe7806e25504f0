"""
Module: groupbuy_kernel.models.order
Responsibility: ORM persistence for buyer orders recorded against a group buy.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity > 0, validated by every service that writes it.
    - original_quantity is written at most once: NULL until the first
      shortage adjustment, then frozen (see db/immutability.py).
    - unit_price is a snapshot of the item price at registration time;
      later edits to the group buy's items do not reprice existing orders.

Failure modes:
    - IntegrityError if group_buy_id references a missing group buy.
    - ImmutabilityViolationError on an attempt to overwrite
      original_quantity once set.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy_kernel.db.base import Base
from groupbuy_kernel.db.types import UUIDString


class Order(Base):
    """One buyer's line item in a group buy."""

    __tablename__ = "group_buy_orders"

    __table_args__ = (
        Index("idx_orders_group_buy_id", "group_buy_id"),
        Index("idx_orders_buyer_id", "buyer_id"),
    )

    id: Mapped[str] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    group_buy_id: Mapped[str] = mapped_column(
        UUIDString(),
        ForeignKey("group_buys.id", ondelete="CASCADE"),
        nullable=False,
    )
    registrar_id: Mapped[str] = mapped_column(Text, nullable=False)
    registrar_username: Mapped[str] = mapped_column(Text, nullable=False)
    buyer_id: Mapped[str] = mapped_column(Text, nullable=False)
    buyer_username: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    original_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.buyer_username} {self.item_name} x{self.quantity}>"

    @property
    def was_adjusted(self) -> bool:
        return self.original_quantity is not None
