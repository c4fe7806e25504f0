"""
OrderService -- buyer orders recorded against a group buy.

Responsibility:
    Registers and cancels orders.  Each call advances the owning group
    buy's version, so concurrent registrars, editors and closers all
    serialize on one compare-and-set and none of them works on a stale
    picture of the round.

Architecture position:
    Kernel > Services -- imperative shell, called by GroupBuyLedger.

Invariants enforced:
    - quantity is a positive integer.
    - Orders are only created while the round is active; cancellation is
      allowed in any state.
    - item_name must name one of the round's items; its unit price is
      copied onto the order at registration.
    - The group-buy version is read before the order rows it guards, so a
      change committed in between always fails the compare-and-set.
    - Within a round, created_at strictly increases in registration order.
    - Flush-only.

Failure modes:
    - ValidationError: bad quantity, blank or unknown item, blank ids.
    - GroupBuyNotFoundError / OrderNotFoundError / NotFoundError.
    - GroupBuyClosedError: registration against a closed round.
    - ForbiddenError: cancellation by someone other than the registrar
      (or the buyer, for bulk cancellation) without admin rights.
    - ConflictError: from VersionGuard.
"""

from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from groupbuy_kernel.domain.authority import AdminAuthority, DenyAllAuthority
from groupbuy_kernel.domain.clock import Clock
from groupbuy_kernel.domain.dtos import Actor, GroupBuyInfo, OrderInfo
from groupbuy_kernel.exceptions import (
    ForbiddenError,
    GroupBuyClosedError,
    GroupBuyNotFoundError,
    NotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from groupbuy_kernel.logging_config import get_logger
from groupbuy_kernel.models.group_buy import GroupBuy
from groupbuy_kernel.models.group_buy_log import LogAction
from groupbuy_kernel.models.order import Order
from groupbuy_kernel.models.shortage_adjustment import ShortageAdjustment
from groupbuy_kernel.services.audit_log_service import AuditLogService
from groupbuy_kernel.services.base import (
    BaseService,
    require_positive_int,
    require_text,
    require_version,
)
from groupbuy_kernel.services.version_guard import VersionGuard

logger = get_logger("services.order")


class OrderService(BaseService[Order]):
    """
    Service for registering and cancelling orders.

    Contract:
        Every successful call bumps the group-buy version by one and
        appends one audit row, in the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: AdminAuthority | None = None,
    ):
        super().__init__(session, clock)
        self._authority = authority or DenyAllAuthority()
        self._guard = VersionGuard(session, self._clock)
        self._audit = AuditLogService(session, self._clock)

    def _load_order(self, order_id: str) -> Order:
        order = self.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _delete_orders(self, order_ids: list[str]) -> None:
        self.session.execute(
            delete(ShortageAdjustment)
            .where(ShortageAdjustment.order_id.in_(order_ids))
            .execution_options(synchronize_session=False)
        )
        self.session.execute(
            delete(Order)
            .where(Order.id.in_(order_ids))
            .execution_options(synchronize_session=False)
        )
        for order_id in order_ids:
            cached = self.session.identity_map.get(
                self.session.identity_key(Order, order_id)
            )
            if cached is not None:
                self.session.expunge(cached)

    def _next_created_at(self, group_buy_id: str) -> datetime:
        """Clock time, or one microsecond past the round's latest order if the
        clock has not moved beyond it."""
        now = self._clock.now()
        latest = self.session.execute(
            select(func.max(Order.created_at)).where(Order.group_buy_id == group_buy_id)
        ).scalar_one_or_none()
        if latest is not None and now <= latest:
            return latest + timedelta(microseconds=1)
        return now

    def register(
        self,
        group_buy_id: str,
        registrar: Actor,
        buyer: Actor,
        item_name: str,
        quantity: int,
        expected_version: int | None = None,
    ) -> OrderInfo:
        """
        Record one order.

        Preconditions:
            - The round exists and is active.
            - ``expected_version``, when given, equals the stored version;
              when omitted the version read here is used.

        Postconditions:
            - The group-buy version advanced by exactly one.
            - One ``order_registered`` log row carries the new version.
        """
        quantity = require_positive_int(quantity, "quantity")
        item_name = require_text(item_name, "item_name")
        require_text(registrar.user_id, "registrar_id")
        require_text(registrar.username, "registrar_username")
        require_text(buyer.user_id, "buyer_id")
        require_text(buyer.username, "buyer_username")
        if expected_version is not None:
            require_version(expected_version)

        group_buy = self.session.get(GroupBuy, group_buy_id, populate_existing=True)
        if group_buy is None:
            raise GroupBuyNotFoundError(group_buy_id)
        if not group_buy.is_active:
            logger.warning(
                "order_rejected_closed",
                extra={"group_buy_id": group_buy_id, "registrar_id": registrar.user_id},
            )
            raise GroupBuyClosedError(group_buy_id, "register orders")

        unit_price = GroupBuyInfo.from_model(group_buy).price_of(item_name)
        if unit_price is None:
            raise ValidationError(
                f"Unknown item {item_name!r} for group buy {group_buy_id}",
                field="item_name",
            )

        version = expected_version if expected_version is not None else group_buy.version
        new_version = self._guard.advance(group_buy_id, version)

        order = Order(
            id=str(uuid4()),
            group_buy_id=group_buy_id,
            registrar_id=registrar.user_id,
            registrar_username=registrar.username,
            buyer_id=buyer.user_id,
            buyer_username=buyer.username,
            item_name=item_name,
            quantity=quantity,
            original_quantity=None,
            unit_price=unit_price,
            created_at=self._next_created_at(group_buy_id),
        )
        self.session.add(order)
        self.session.flush()

        self._audit.append(
            group_buy_id,
            registrar,
            LogAction.ORDER_REGISTERED,
            new_version,
            {
                "order_id": order.id,
                "buyer_id": buyer.user_id,
                "buyer_username": buyer.username,
                "item_name": item_name,
                "quantity": quantity,
                "unit_price": str(unit_price),
            },
        )

        logger.info(
            "order_registered",
            extra={
                "group_buy_id": group_buy_id,
                "order_id": order.id,
                "item_name": item_name,
                "quantity": quantity,
                "version": new_version,
            },
        )
        return OrderInfo.from_model(order)

    def cancel(self, order_id: str, actor: Actor) -> None:
        """Remove one order.  Registrar or admin only."""
        group_buy_id = self._load_order(order_id).group_buy_id
        version = self._guard.current_version(group_buy_id)
        order = self._load_order(order_id)

        if actor.user_id != order.registrar_id and not self._authority.is_admin(
            actor.user_id, actor.username
        ):
            logger.warning(
                "order_cancel_forbidden",
                extra={"order_id": order_id, "user_id": actor.user_id},
            )
            raise ForbiddenError(actor.user_id, "cancel order")

        snapshot = OrderInfo.from_model(order)
        new_version = self._guard.advance(group_buy_id, version)
        self._delete_orders([order_id])

        self._audit.append(
            group_buy_id,
            actor,
            LogAction.ORDER_CANCELLED,
            new_version,
            {
                "order_id": order_id,
                "buyer_id": snapshot.buyer_id,
                "buyer_username": snapshot.buyer_username,
                "item_name": snapshot.item_name,
                "quantity": snapshot.quantity,
            },
        )
        logger.info(
            "order_cancelled",
            extra={"group_buy_id": group_buy_id, "order_id": order_id, "version": new_version},
        )

    def cancel_buyer_orders(
        self,
        group_buy_id: str,
        buyer_id: str,
        actor: Actor,
        item_name: str | None = None,
    ) -> int:
        """
        Remove all of a buyer's orders in a round, optionally for one item.

        Allowed for an admin, the buyer, or a registrar who recorded every
        matching order.

        Returns:
            Number of orders removed (always >= 1).
        """
        buyer_id = require_text(buyer_id, "buyer_id")
        if item_name is not None:
            item_name = require_text(item_name, "item_name")

        version = self._guard.current_version(group_buy_id)

        query = select(Order).where(
            Order.group_buy_id == group_buy_id,
            Order.buyer_id == buyer_id,
        )
        if item_name is not None:
            query = query.where(Order.item_name == item_name)
        orders = list(
            self.session.execute(
                query.order_by(Order.created_at, Order.id).execution_options(
                    populate_existing=True
                )
            ).scalars()
        )
        if not orders:
            raise NotFoundError(
                f"No orders for buyer {buyer_id} in group buy {group_buy_id}"
                + (f" for item {item_name!r}" if item_name else "")
            )

        allowed = (
            actor.user_id == buyer_id
            or all(order.registrar_id == actor.user_id for order in orders)
            or self._authority.is_admin(actor.user_id, actor.username)
        )
        if not allowed:
            logger.warning(
                "buyer_orders_cancel_forbidden",
                extra={"group_buy_id": group_buy_id, "user_id": actor.user_id},
            )
            raise ForbiddenError(actor.user_id, "cancel buyer orders")

        order_ids = [order.id for order in orders]
        buyer_username = orders[0].buyer_username
        new_version = self._guard.advance(group_buy_id, version)
        self._delete_orders(order_ids)

        self._audit.append(
            group_buy_id,
            actor,
            LogAction.BUYER_ORDERS_CANCELLED,
            new_version,
            {
                "buyer_id": buyer_id,
                "buyer_username": buyer_username,
                "item_name": item_name,
                "order_ids": order_ids,
                "count": len(order_ids),
            },
        )
        logger.info(
            "buyer_orders_cancelled",
            extra={
                "group_buy_id": group_buy_id,
                "buyer_id": buyer_id,
                "count": len(order_ids),
                "version": new_version,
            },
        )
        return len(order_ids)
