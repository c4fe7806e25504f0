"""
ORM-level protection for append-only and write-once data.

Protected records:

  GroupBuyLog          -- never updated, never deleted through the ORM
  ShortageAdjustment   -- never updated, never deleted through the ORM
  Order.original_quantity -- NULL until first set, then frozen

Cascading removal of a whole group buy uses bulk DELETE statements, which
do not fire mapper events; that is the only sanctioned removal path for
logs and adjustments.

Listeners are registered explicitly via register_immutability_listeners()
and are idempotent.
"""

from sqlalchemy import event, inspect

from groupbuy_kernel.exceptions import ImmutabilityViolationError
from groupbuy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_log_update(mapper, connection, target):
    _block("GroupBuyLog", target.id, "UPDATE", "Audit log entries are append-only")


def _check_log_delete(mapper, connection, target):
    _block("GroupBuyLog", target.id, "DELETE", "Audit log entries are append-only")


def _check_adjustment_update(mapper, connection, target):
    _block(
        "ShortageAdjustment", target.id, "UPDATE",
        "Shortage adjustments are append-only",
    )


def _check_adjustment_delete(mapper, connection, target):
    _block(
        "ShortageAdjustment", target.id, "DELETE",
        "Shortage adjustments are append-only",
    )


def _check_original_quantity(mapper, connection, target):
    """Allow original_quantity to go from NULL to a value exactly once."""
    history = inspect(target).attrs.original_quantity.history
    if not history.has_changes():
        return
    previous = [v for v in history.deleted if v is not None]
    if previous:
        _block(
            "Order", target.id, "UPDATE",
            f"original_quantity already recorded as {previous[0]}",
        )


def _listener_table():
    from groupbuy_kernel.models.group_buy_log import GroupBuyLog
    from groupbuy_kernel.models.order import Order
    from groupbuy_kernel.models.shortage_adjustment import ShortageAdjustment

    return [
        (GroupBuyLog, "before_update", _check_log_update),
        (GroupBuyLog, "before_delete", _check_log_delete),
        (ShortageAdjustment, "before_update", _check_adjustment_update),
        (ShortageAdjustment, "before_delete", _check_adjustment_delete),
        (Order, "before_update", _check_original_quantity),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, name, fn in _listener_table():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")
