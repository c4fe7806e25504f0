"""
Authority -- the administrative capability check consumed by the kernel.

The kernel never decides who is an administrator.  Services receive an
object satisfying ``AdminAuthority`` and ask it; the default implementation
(an allow-list built from configuration) lives in groupbuy_services.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class AdminAuthority(Protocol):
    """External authorization collaborator."""

    def is_admin(self, user_id: str, username: str | None = None) -> bool:
        ...


class DenyAllAuthority:
    """Authority with no administrators.  Used when none is configured."""

    def is_admin(self, user_id: str, username: str | None = None) -> bool:
        return False
