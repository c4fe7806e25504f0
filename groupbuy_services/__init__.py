"""
groupbuy_services -- transactional entry point for the group-buy ledger.

``GroupBuyLedger`` exposes every ledger operation; ``AllowListAuthority``
is the configured administrator check it uses by default.
"""

from groupbuy_services.admin_authority import AllowListAuthority
from groupbuy_services.ledger import GroupBuyLedger

__all__ = ["AllowListAuthority", "GroupBuyLedger"]
