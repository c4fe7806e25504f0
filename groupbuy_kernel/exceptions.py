"""
Typed Exception Hierarchy for the Group-Buy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The command-dispatch layer turns every failure into a chat reply.  It must
know *which* failure happened without parsing message strings:

    try:
        ledger.register_order(...)
    except GroupBuyClosedError as e:       # typed catch
        reply(f"Round {e.group_buy_id} is closed")
    except ConflictError as e:             # structured data
        reply_retry(expected=e.expected_version, actual=e.actual_version)

Every error has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured attributes carrying the context

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GroupBuyKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- GroupBuyNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- InvalidStateError
    |   +-- GroupBuyClosedError
    |   +-- GroupBuyAlreadyClosedError
    |
    +-- ConflictError
    |
    +-- ForbiddenError
    |
    +-- StorageError
    |
    +-- AuditError
        +-- AuditChainBrokenError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-------------------------------------
Validation    | VALIDATION_FAILED          | Blank merchant, bad item, qty <= 0,
              |                            | no-op adjustment, empty mutation
--------------|----------------------------|-------------------------------------
Not found     | GROUP_BUY_NOT_FOUND        | Group buy id doesn't exist
              | ORDER_NOT_FOUND            | Order id doesn't exist
--------------|----------------------------|-------------------------------------
State         | GROUP_BUY_CLOSED           | Ordering/editing a closed round
              | GROUP_BUY_ALREADY_CLOSED   | Closing a closed round
--------------|----------------------------|-------------------------------------
Concurrency   | VERSION_CONFLICT           | Stale expected_version
--------------|----------------------------|-------------------------------------
Permission    | FORBIDDEN                  | Actor lacks the capability
--------------|----------------------------|-------------------------------------
Storage       | STORAGE_ERROR              | Driver / connectivity failure
--------------|----------------------------|-------------------------------------
Audit         | AUDIT_CHAIN_BROKEN         | Log hash chain validation failed
              | IMMUTABILITY_VIOLATION     | UPDATE/DELETE of an append-only row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFLICTS ARE RETRIED BY THE CALLER, NEVER BY THE KERNEL:

    while True:
        gb = ledger.get_group_buy(gb_id)
        try:
            ledger.close_group_buy(gb_id, gb.version, actor)
            break
        except ConflictError:
            continue   # re-read and decide again

2. STORAGE ERRORS ARE TRANSIENT FOR THE CALLER, INTERNAL FOR THE USER:

    except StorageError:
        reply("Internal error, please try again later")

===============================================================================
"""


class GroupBuyKernelError(Exception):
    """
    Base exception for all group-buy kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "GROUP_BUY_KERNEL_ERROR"


# Validation


class ValidationError(GroupBuyKernelError):
    """Malformed input, rejected before any write."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lookup


class NotFoundError(GroupBuyKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class GroupBuyNotFoundError(NotFoundError):
    """Group buy with given ID was not found."""

    code: str = "GROUP_BUY_NOT_FOUND"

    def __init__(self, group_buy_id: str):
        self.group_buy_id = group_buy_id
        super().__init__(f"Group buy not found: {group_buy_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# Lifecycle


class InvalidStateError(GroupBuyKernelError):
    """Operation forbidden by the current lifecycle state."""

    code: str = "INVALID_STATE"


class GroupBuyClosedError(InvalidStateError):
    """
    The round is closed.

    Closed rounds accept no new orders and no edits to their listing.
    """

    code: str = "GROUP_BUY_CLOSED"

    def __init__(self, group_buy_id: str, operation: str):
        self.group_buy_id = group_buy_id
        self.operation = operation
        super().__init__(
            f"Group buy {group_buy_id} is closed: cannot {operation}"
        )


class GroupBuyAlreadyClosedError(InvalidStateError):
    """Closing is one-way and not idempotent."""

    code: str = "GROUP_BUY_ALREADY_CLOSED"

    def __init__(self, group_buy_id: str):
        self.group_buy_id = group_buy_id
        super().__init__(f"Group buy {group_buy_id} is already closed")


# Concurrency


class ConflictError(GroupBuyKernelError):
    """Optimistic lock conflict: the caller worked against a stale version."""

    code: str = "VERSION_CONFLICT"

    def __init__(
        self,
        group_buy_id: str,
        expected_version: int,
        actual_version: int | None,
    ):
        self.group_buy_id = group_buy_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on group buy {group_buy_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


# Authorization


class ForbiddenError(GroupBuyKernelError):
    """Capability check failed."""

    code: str = "FORBIDDEN"

    def __init__(self, user_id: str, operation: str):
        self.user_id = user_id
        self.operation = operation
        super().__init__(f"User {user_id} is not allowed to {operation}")


# Persistence


class StorageError(GroupBuyKernelError):
    """Underlying persistence failure (I/O, connectivity, lock timeout)."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage failure during {operation}: {reason}")


# Audit


class AuditError(GroupBuyKernelError):
    """Base exception for audit-trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit log hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, log_id: int, expected_hash: str, actual_hash: str):
        self.log_id = log_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at log {log_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class ImmutabilityViolationError(AuditError):
    """
    Attempted to modify or delete an append-only record.

    Logs and shortage adjustments are written once; they only disappear
    through the cascade that deletes their group buy.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
