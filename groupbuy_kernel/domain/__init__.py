"""
Pure domain layer: DTOs, payload schemas, clock and authority protocol.

Nothing in this package performs I/O or imports SQLAlchemy sessions.
"""

from groupbuy_kernel.domain.authority import AdminAuthority, DenyAllAuthority
from groupbuy_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from groupbuy_kernel.domain.dtos import (
    Actor,
    BuyerSubtotal,
    GroupBuyDraft,
    GroupBuyInfo,
    GroupBuyMutation,
    GroupBuySummary,
    ItemTotal,
    LogEntryInfo,
    OrderInfo,
    ShortageAdjustmentInfo,
)
from groupbuy_kernel.domain.payloads import ItemSpec, parse_items, parse_metadata

__all__ = [
    "Actor",
    "AdminAuthority",
    "BuyerSubtotal",
    "Clock",
    "DenyAllAuthority",
    "DeterministicClock",
    "GroupBuyDraft",
    "GroupBuyInfo",
    "GroupBuyMutation",
    "GroupBuySummary",
    "ItemSpec",
    "ItemTotal",
    "LogEntryInfo",
    "OrderInfo",
    "ShortageAdjustmentInfo",
    "SystemClock",
    "parse_items",
    "parse_metadata",
]
