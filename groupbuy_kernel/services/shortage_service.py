"""
ShortageService -- admin correction of order quantities.

Responsibility:
    When a merchant cannot supply what was ordered, an administrator
    lowers (or otherwise corrects) an order's quantity.  The service keeps
    the first pre-adjustment quantity on the order, writes one
    ShortageAdjustment row per correction and logs ``shortage_adjusted``.

Architecture position:
    Kernel > Services -- imperative shell, called by GroupBuyLedger.

Invariants enforced:
    - Only administrators (per the injected AdminAuthority) may adjust.
    - new_quantity > 0 and differs from the current quantity.
    - ``original_quantity`` is written on the first adjustment only.
    - Allowed whether the round is active or closed.
    - Order update, adjustment insert, version bump and log append share
      one transaction.

Failure modes:
    - ForbiddenError, ValidationError, OrderNotFoundError, ConflictError.
"""

from sqlalchemy.orm import Session

from groupbuy_kernel.domain.authority import AdminAuthority, DenyAllAuthority
from groupbuy_kernel.domain.clock import Clock
from groupbuy_kernel.domain.dtos import Actor, OrderInfo, ShortageAdjustmentInfo
from groupbuy_kernel.exceptions import ForbiddenError, OrderNotFoundError, ValidationError
from groupbuy_kernel.logging_config import get_logger
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

logger = get_logger("services.shortage")


class ShortageService(BaseService[ShortageAdjustment]):
    """
    Service for shortage adjustments.

    Guarantees:
        - A second adjustment of the same order changes ``quantity`` again
          and leaves ``original_quantity`` at the value the first one saved.
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

    def adjust_quantity(
        self,
        order_id: str,
        adjuster: Actor,
        new_quantity: int,
        expected_version: int | None = None,
    ) -> tuple[OrderInfo, ShortageAdjustmentInfo]:
        new_quantity = require_positive_int(new_quantity, "new_quantity")
        require_text(adjuster.user_id, "adjuster_id")
        require_text(adjuster.username, "adjuster_username")
        if expected_version is not None:
            require_version(expected_version)

        if not self._authority.is_admin(adjuster.user_id, adjuster.username):
            logger.warning(
                "shortage_adjust_forbidden",
                extra={"order_id": order_id, "user_id": adjuster.user_id},
            )
            raise ForbiddenError(adjuster.user_id, "adjust order quantity")

        group_buy_id = self._load_order(order_id).group_buy_id
        if expected_version is None:
            version = self._guard.current_version(group_buy_id)
        else:
            version = expected_version
        order = self._load_order(order_id)

        old_quantity = order.quantity
        if new_quantity == old_quantity:
            raise ValidationError(
                f"Order {order_id} already has quantity {old_quantity}",
                field="new_quantity",
            )

        new_version = self._guard.advance(group_buy_id, version)

        if not order.was_adjusted:
            order.original_quantity = old_quantity
        order.quantity = new_quantity

        adjustment = ShortageAdjustment(
            group_buy_id=group_buy_id,
            order_id=order.id,
            adjuster_id=adjuster.user_id,
            adjuster_username=adjuster.username,
            item_name=order.item_name,
            buyer_id=order.buyer_id,
            buyer_username=order.buyer_username,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            created_at=self._clock.now(),
        )
        self.session.add(adjustment)
        self.session.flush()

        self._audit.append(
            group_buy_id,
            adjuster,
            LogAction.SHORTAGE_ADJUSTED,
            new_version,
            {
                "order_id": order.id,
                "adjustment_id": adjustment.id,
                "item_name": order.item_name,
                "buyer_id": order.buyer_id,
                "buyer_username": order.buyer_username,
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
            },
        )

        logger.info(
            "shortage_adjusted",
            extra={
                "group_buy_id": group_buy_id,
                "order_id": order.id,
                "old_quantity": old_quantity,
                "new_quantity": new_quantity,
                "version": new_version,
            },
        )
        return OrderInfo.from_model(order), ShortageAdjustmentInfo.from_model(adjustment)
