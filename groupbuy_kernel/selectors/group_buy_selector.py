"""
Module: groupbuy_kernel.selectors.group_buy_selector
Responsibility: Read-only queries over a group buy: the record itself, its
    orders, the shopping-list summary, closure eligibility, the audit log
    and shortage history, and audit chain verification.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Nothing is cached.  Every call re-reads current rows, so a summary
      always reflects committed orders, cancellations and adjustments.
    - Orders are returned oldest first (created_at, then id).
    - Summary amounts use each order's snapshotted unit price.

Failure modes:
    - GroupBuyNotFoundError for an unknown group buy id.
    - AuditChainBrokenError from verify_audit_chain() when any stored link
      or hash does not recompute.

Audit relevance:
    verify_audit_chain() is the tamper check for group_buy_logs.  It
    recomputes each row's hash from its own fields and its predecessor.
"""

from decimal import Decimal

from sqlalchemy import select

from groupbuy_kernel.domain.dtos import (
    BuyerSubtotal,
    GroupBuyInfo,
    GroupBuySummary,
    ItemTotal,
    LogEntryInfo,
    OrderInfo,
    ShortageAdjustmentInfo,
)
from groupbuy_kernel.exceptions import AuditChainBrokenError, GroupBuyNotFoundError
from groupbuy_kernel.logging_config import get_logger
from groupbuy_kernel.models.group_buy import GroupBuy
from groupbuy_kernel.models.group_buy_log import GroupBuyLog
from groupbuy_kernel.models.order import Order
from groupbuy_kernel.models.shortage_adjustment import ShortageAdjustment
from groupbuy_kernel.selectors.base import BaseSelector
from groupbuy_kernel.utils.hashing import chain_payload, hash_log_entry, hash_payload

logger = get_logger("selectors.group_buy")


class GroupBuySelector(BaseSelector[GroupBuy]):
    """Read-side view of one or more group buys."""

    def _get_model(self, group_buy_id: str) -> GroupBuy:
        group_buy = self.session.get(GroupBuy, group_buy_id, populate_existing=True)
        if group_buy is None:
            raise GroupBuyNotFoundError(group_buy_id)
        return group_buy

    def _require_exists(self, group_buy_id: str) -> None:
        found = self.session.execute(
            select(GroupBuy.id).where(GroupBuy.id == group_buy_id)
        ).scalar_one_or_none()
        if found is None:
            raise GroupBuyNotFoundError(group_buy_id)

    def get_group_buy(self, group_buy_id: str) -> GroupBuyInfo:
        return GroupBuyInfo.from_model(self._get_model(group_buy_id))

    def _orders(self, group_buy_id: str, buyer_id: str | None = None) -> list[OrderInfo]:
        query = select(Order).where(Order.group_buy_id == group_buy_id)
        if buyer_id is not None:
            query = query.where(Order.buyer_id == buyer_id)
        rows = self.session.execute(
            query.order_by(Order.created_at, Order.id).execution_options(
                populate_existing=True
            )
        ).scalars()
        return [OrderInfo.from_model(row) for row in rows]

    def list_orders(self, group_buy_id: str) -> list[OrderInfo]:
        self._require_exists(group_buy_id)
        return self._orders(group_buy_id)

    def list_buyer_orders(self, group_buy_id: str, buyer_id: str) -> list[OrderInfo]:
        self._require_exists(group_buy_id)
        return self._orders(group_buy_id, buyer_id)

    def summarize(self, group_buy_id: str) -> GroupBuySummary:
        """
        Shopping list and per-buyer bill for a round.

        Every listed item appears, including those nobody ordered.  Orders
        for an item later removed from the listing still count, at their
        snapshotted price.  Per-buyer maps are keyed by buyer username.
        """
        info = self.get_group_buy(group_buy_id)
        orders = self._orders(group_buy_id)

        quantities: dict[str, int] = {item.name: 0 for item in info.items}
        amounts: dict[str, Decimal] = {item.name: Decimal("0") for item in info.items}
        prices: dict[str, Decimal] = {item.name: item.unit_price for item in info.items}
        by_buyer: dict[str, dict[str, int]] = {item.name: {} for item in info.items}

        buyer_ids: dict[str, str] = {}
        buyer_quantities: dict[str, dict[str, int]] = {}
        buyer_amounts: dict[str, Decimal] = {}

        for order in orders:
            name = order.item_name
            if name not in quantities:
                quantities[name] = 0
                amounts[name] = Decimal("0")
                prices[name] = order.unit_price
                by_buyer[name] = {}
            quantities[name] += order.quantity
            amounts[name] += order.amount
            per_item = by_buyer[name]
            per_item[order.buyer_username] = per_item.get(order.buyer_username, 0) + order.quantity

            buyer = order.buyer_username
            buyer_ids.setdefault(buyer, order.buyer_id)
            bill = buyer_quantities.setdefault(buyer, {})
            bill[name] = bill.get(name, 0) + order.quantity
            buyer_amounts[buyer] = buyer_amounts.get(buyer, Decimal("0")) + order.amount

        items = {
            name: ItemTotal(
                item_name=name,
                unit_price=prices[name],
                total_quantity=quantities[name],
                amount=amounts[name],
                by_buyer=by_buyer[name],
            )
            for name in quantities
        }
        buyers = {
            username: BuyerSubtotal(
                buyer_id=buyer_ids[username],
                buyer_username=username,
                quantities=buyer_quantities[username],
                amount=buyer_amounts[username],
            )
            for username in buyer_quantities
        }
        return GroupBuySummary(
            group_buy_id=info.id,
            merchant_name=info.merchant_name,
            status=info.status,
            version=info.version,
            items=items,
            buyers=buyers,
            total_quantity=sum(quantities.values()),
            total_amount=sum(amounts.values(), Decimal("0")),
        )

    def is_closable(self, group_buy_id: str) -> bool:
        return self._get_model(group_buy_id).is_active

    def list_logs(self, group_buy_id: str) -> list[LogEntryInfo]:
        self._require_exists(group_buy_id)
        rows = self.session.execute(
            select(GroupBuyLog)
            .where(GroupBuyLog.group_buy_id == group_buy_id)
            .order_by(GroupBuyLog.id)
        ).scalars()
        return [LogEntryInfo.from_model(row) for row in rows]

    def list_adjustments(self, group_buy_id: str) -> list[ShortageAdjustmentInfo]:
        self._require_exists(group_buy_id)
        rows = self.session.execute(
            select(ShortageAdjustment)
            .where(ShortageAdjustment.group_buy_id == group_buy_id)
            .order_by(ShortageAdjustment.id)
        ).scalars()
        return [ShortageAdjustmentInfo.from_model(row) for row in rows]

    def verify_audit_chain(self, group_buy_id: str) -> int:
        """
        Recompute every link of the group buy's log chain.

        Returns:
            Number of entries verified.

        Raises:
            AuditChainBrokenError: first entry whose prev_hash or hash
                does not match.
        """
        prev_hash = None
        entries = self.list_logs(group_buy_id)
        for entry in entries:
            stored_prev = entry.details.get("prev_hash")
            if stored_prev != prev_hash:
                logger.error(
                    "audit_chain_broken",
                    extra={"group_buy_id": group_buy_id, "log_id": entry.id},
                )
                raise AuditChainBrokenError(entry.id, str(prev_hash), str(stored_prev))

            expected = hash_log_entry(
                group_buy_id=entry.group_buy_id,
                action=entry.action,
                user_id=entry.user_id,
                payload_hash=hash_payload(chain_payload(entry.details)),
                prev_hash=prev_hash,
            )
            stored = entry.details.get("hash")
            if stored != expected:
                logger.error(
                    "audit_chain_broken",
                    extra={"group_buy_id": group_buy_id, "log_id": entry.id},
                )
                raise AuditChainBrokenError(entry.id, expected, str(stored))
            prev_hash = stored

        logger.debug(
            "audit_chain_verified",
            extra={"group_buy_id": group_buy_id, "entries": len(entries)},
        )
        return len(entries)
