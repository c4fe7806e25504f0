"""
Deterministic hashing utilities.

All hashing in the kernel must be deterministic and reproducible.  The audit
log hash chain is built and verified exclusively with these functions.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so "100" and "100.00" hash identically
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of special types (Decimal, datetime, UUID)
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
        ensure_ascii=False,
    )


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_log_entry(
    group_buy_id: str,
    action: str,
    user_id: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chain hash for one audit log entry.

    The hash includes the key fields plus the previous entry's hash for the
    same group buy, creating a tamper-evident chain per round.

    Args:
        group_buy_id: Owning group buy.
        action: Log action tag.
        user_id: Acting user.
        payload_hash: Hash of the details payload (without chain fields).
        prev_hash: Hash of the previous entry (None for the first entry).

    Returns:
        Hex-encoded SHA-256 hash.
    """
    components = [
        str(group_buy_id),
        action,
        user_id,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


CHAIN_FIELDS = ("prev_hash", "hash")


def chain_payload(details: dict) -> dict:
    """Strip the chain fields from stored log details, leaving the hashed payload."""
    return {k: v for k, v in details.items() if k not in CHAIN_FIELDS}
