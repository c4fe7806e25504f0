"""Utility modules for the group-buy kernel."""

from groupbuy_kernel.utils.hashing import (
    canonicalize_json,
    hash_log_entry,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_log_entry",
    "hash_payload",
]
