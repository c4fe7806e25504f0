"""
groupbuy_services.admin_authority -- configured administrator allow-list.

Responsibility:
    Default ``AdminAuthority`` for the ledger.  Entries come from
    configuration: ``"@name"`` grants admin to the username ``name``, any
    other entry grants it to that exact user id.

Invariants:
    - The kernel stays identity-agnostic; this module only answers
      ``is_admin`` for the ids and usernames the caller supplies.
"""

from __future__ import annotations

from collections.abc import Iterable


class AllowListAuthority:
    """Admin check against fixed sets of user ids and usernames."""

    def __init__(
        self,
        user_ids: Iterable[str] = (),
        usernames: Iterable[str] = (),
    ):
        self.user_ids = frozenset(user_ids)
        self.usernames = frozenset(usernames)

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> AllowListAuthority:
        user_ids: list[str] = []
        usernames: list[str] = []
        for entry in entries:
            entry = entry.strip()
            if not entry:
                continue
            if entry.startswith("@"):
                usernames.append(entry[1:])
            else:
                user_ids.append(entry)
        return cls(user_ids=user_ids, usernames=usernames)

    def is_admin(self, user_id: str, username: str | None = None) -> bool:
        if user_id in self.user_ids:
            return True
        return username is not None and username in self.usernames
