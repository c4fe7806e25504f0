"""
Write-side kernel services.

All services are flush-only; the caller owns the transaction.
"""

from groupbuy_kernel.services.audit_log_service import AuditLogService
from groupbuy_kernel.services.group_buy_service import GroupBuyService
from groupbuy_kernel.services.order_service import OrderService
from groupbuy_kernel.services.shortage_service import ShortageService
from groupbuy_kernel.services.version_guard import VersionGuard

__all__ = [
    "AuditLogService",
    "GroupBuyService",
    "OrderService",
    "ShortageService",
    "VersionGuard",
]
