"""Read-only selectors."""

from groupbuy_kernel.selectors.group_buy_selector import GroupBuySelector

__all__ = ["GroupBuySelector"]
