"""ORM models for the group-buy ledger."""

from groupbuy_kernel.models.group_buy import GroupBuy, GroupBuyStatus
from groupbuy_kernel.models.group_buy_log import GroupBuyLog, LogAction
from groupbuy_kernel.models.order import Order
from groupbuy_kernel.models.shortage_adjustment import ShortageAdjustment

__all__ = [
    "GroupBuy",
    "GroupBuyStatus",
    "GroupBuyLog",
    "LogAction",
    "Order",
    "ShortageAdjustment",
]
