"""
Group-Buy Kernel

A transactional ledger for chat-organized group purchases with:
- Optimistic (version) locking on every mutation of a round
- One-way active -> closed lifecycle
- Admin shortage adjustments that preserve the first recorded quantity
- Append-only, hash-chained audit log per round
"""

__version__ = "0.1.0"
