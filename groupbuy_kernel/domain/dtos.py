"""
DTOs -- immutable data structures crossing the kernel boundary.

Responsibility:
    Defines the inputs (Actor, GroupBuyDraft, GroupBuyMutation) and outputs
    (GroupBuyInfo, OrderInfo, LogEntryInfo, ShortageAdjustmentInfo, and the
    summary types) of every kernel operation.  Callers never see ORM
    entities: sessions close at the end of each operation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    services and selectors.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - GroupBuyInfo.items is parsed through domain/payloads.py, so a
      corrupted stored payload fails loudly instead of being passed on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from groupbuy_kernel.domain.payloads import (
    ItemSpec,
    find_item,
    parse_items,
    parse_metadata,
)

if TYPE_CHECKING:
    from groupbuy_kernel.models.group_buy import GroupBuy as GroupBuyModel
    from groupbuy_kernel.models.group_buy_log import GroupBuyLog as GroupBuyLogModel
    from groupbuy_kernel.models.order import Order as OrderModel
    from groupbuy_kernel.models.shortage_adjustment import (
        ShortageAdjustment as ShortageAdjustmentModel,
    )


_UNSET: Any = object()


@dataclass(frozen=True)
class Actor:
    """A chat user acting on the ledger (creator, registrar, buyer, admin)."""

    user_id: str
    username: str


@dataclass(frozen=True)
class GroupBuyDraft:
    """Caller input for opening a round.  Validated by GroupBuyService.create."""

    creator: Actor
    channel_id: str
    merchant_name: str
    items: Any
    description: str | None = None
    metadata: Any = None
    post_id: str | None = None


@dataclass(frozen=True)
class GroupBuyMutation:
    """
    Fields to change on a group buy.  Fields left at their default are not
    touched; ``close=True`` moves the round to closed.
    """

    merchant_name: Any = _UNSET
    description: Any = _UNSET
    metadata: Any = _UNSET
    items: Any = _UNSET
    post_id: Any = _UNSET
    close: bool = False

    def changed_fields(self) -> list[str]:
        names = [
            name
            for name in ("merchant_name", "description", "metadata", "items", "post_id")
            if getattr(self, name) is not _UNSET
        ]
        if self.close:
            names.append("status")
        return names

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not _UNSET

    @property
    def edits_listing(self) -> bool:
        """True when the mutation changes what buyers see (closed rounds reject this)."""
        return any(
            self.is_set(name)
            for name in ("merchant_name", "description", "metadata", "items")
        )


@dataclass(frozen=True)
class GroupBuyInfo:
    id: str
    creator_id: str
    creator_username: str
    channel_id: str
    post_id: str | None
    merchant_name: str
    description: str | None
    metadata: dict[str, str]
    items: tuple[ItemSpec, ...]
    status: str
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def is_closed(self) -> bool:
        return self.status == "closed"

    def price_of(self, item_name: str) -> Decimal | None:
        item = find_item(self.items, item_name)
        return item.unit_price if item else None

    @classmethod
    def from_model(cls, model: GroupBuyModel) -> GroupBuyInfo:
        return cls(
            id=model.id,
            creator_id=model.creator_id,
            creator_username=model.creator_username,
            channel_id=model.channel_id,
            post_id=model.post_id,
            merchant_name=model.merchant_name,
            description=model.description,
            metadata=parse_metadata(model.metadata_),
            items=parse_items(model.items),
            status=model.status,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class OrderInfo:
    id: str
    group_buy_id: str
    registrar_id: str
    registrar_username: str
    buyer_id: str
    buyer_username: str
    item_name: str
    quantity: int
    original_quantity: int | None
    unit_price: Decimal
    created_at: datetime

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def registered_by_other(self) -> bool:
        """True when someone recorded the order on the buyer's behalf."""
        return self.registrar_id != self.buyer_id

    @classmethod
    def from_model(cls, model: OrderModel) -> OrderInfo:
        return cls(
            id=model.id,
            group_buy_id=model.group_buy_id,
            registrar_id=model.registrar_id,
            registrar_username=model.registrar_username,
            buyer_id=model.buyer_id,
            buyer_username=model.buyer_username,
            item_name=model.item_name,
            quantity=model.quantity,
            original_quantity=model.original_quantity,
            unit_price=model.unit_price,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class LogEntryInfo:
    id: int
    group_buy_id: str
    user_id: str
    username: str
    action: str
    details: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, model: GroupBuyLogModel) -> LogEntryInfo:
        return cls(
            id=model.id,
            group_buy_id=model.group_buy_id,
            user_id=model.user_id,
            username=model.username,
            action=model.action,
            details=dict(model.details or {}),
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class ShortageAdjustmentInfo:
    id: int
    group_buy_id: str
    order_id: str
    adjuster_id: str
    adjuster_username: str
    item_name: str
    buyer_id: str
    buyer_username: str
    old_quantity: int
    new_quantity: int
    created_at: datetime

    @property
    def delta(self) -> int:
        return self.new_quantity - self.old_quantity

    @classmethod
    def from_model(cls, model: ShortageAdjustmentModel) -> ShortageAdjustmentInfo:
        return cls(
            id=model.id,
            group_buy_id=model.group_buy_id,
            order_id=model.order_id,
            adjuster_id=model.adjuster_id,
            adjuster_username=model.adjuster_username,
            item_name=model.item_name,
            buyer_id=model.buyer_id,
            buyer_username=model.buyer_username,
            old_quantity=model.old_quantity,
            new_quantity=model.new_quantity,
            created_at=model.created_at,
        )


# ---------------------------------------------------------------------------
# Aggregation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemTotal:
    """Shopping-list line: how much of one item to buy from the merchant."""

    item_name: str
    unit_price: Decimal
    total_quantity: int
    amount: Decimal
    by_buyer: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class BuyerSubtotal:
    """What one buyer owes, keyed by buyer username."""

    buyer_id: str
    buyer_username: str
    quantities: dict[str, int]
    amount: Decimal


@dataclass(frozen=True)
class GroupBuySummary:
    group_buy_id: str
    merchant_name: str
    status: str
    version: int
    items: dict[str, ItemTotal]
    buyers: dict[str, BuyerSubtotal]
    total_quantity: int
    total_amount: Decimal

    def quantity_of(self, item_name: str) -> int:
        total = self.items.get(item_name)
        return total.total_quantity if total else 0
