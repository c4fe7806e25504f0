"""
GroupBuyService -- lifecycle of the group-buy aggregate root.

Responsibility:
    Creates, edits, closes and deletes group buys.  Every edit and the
    close transition pass through VersionGuard and append exactly one
    audit row in the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by GroupBuyLedger; reads through selectors are separate.

Invariants enforced:
    - A new group buy starts at version 1, status ``active``.
    - ACTIVE -> CLOSED is the only transition.  Closing a closed round is
      rejected before the version is even compared: never idempotent.
    - The listing (merchant, description, metadata, items) is frozen once
      the round is closed; ``post_id`` may be attached in any state.
    - Only the creator or an administrator may edit, close or delete.
    - Returns frozen ``GroupBuyInfo`` DTOs, never ORM entities.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ValidationError: blank merchant/creator/channel, malformed items or
      metadata, empty mutation.
    - GroupBuyNotFoundError: unknown id.
    - GroupBuyAlreadyClosedError / GroupBuyClosedError: lifecycle rules.
    - ForbiddenError: actor is neither creator nor admin.
    - ConflictError: stale ``expected_version`` (from VersionGuard).

Audit relevance:
    Creation, edits and the close transition are logged as
    ``group_buy_created``, ``group_buy_updated`` and ``group_buy_closed``.
    Deletion removes the trail together with the aggregate, so it is
    reported on the operator log at WARNING instead.
"""

from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.orm import Session

from groupbuy_kernel.domain.authority import AdminAuthority, DenyAllAuthority
from groupbuy_kernel.domain.clock import Clock
from groupbuy_kernel.domain.dtos import (
    Actor,
    GroupBuyDraft,
    GroupBuyInfo,
    GroupBuyMutation,
)
from groupbuy_kernel.domain.payloads import items_to_json, parse_items, parse_metadata
from groupbuy_kernel.exceptions import (
    ForbiddenError,
    GroupBuyAlreadyClosedError,
    GroupBuyClosedError,
    GroupBuyNotFoundError,
    ValidationError,
)
from groupbuy_kernel.logging_config import get_logger
from groupbuy_kernel.models.group_buy import GroupBuy, GroupBuyStatus
from groupbuy_kernel.models.group_buy_log import GroupBuyLog, LogAction
from groupbuy_kernel.models.order import Order
from groupbuy_kernel.models.shortage_adjustment import ShortageAdjustment
from groupbuy_kernel.services.audit_log_service import AuditLogService
from groupbuy_kernel.services.base import (
    BaseService,
    require_text,
    require_version,
)
from groupbuy_kernel.services.version_guard import VersionGuard

logger = get_logger("services.group_buy")


def _optional_text(value, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value


class GroupBuyService(BaseService[GroupBuy]):
    """
    Service for the group-buy lifecycle.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        ``GroupBuyInfo`` reflecting the row after the change.

    Non-goals:
        - Does NOT retry on ConflictError.
        - Does NOT reopen closed rounds.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: AdminAuthority | None = None,
    ):
        super().__init__(session, clock)
        self._authority = authority or DenyAllAuthority()
        self._guard = VersionGuard(session, self._clock)
        self._audit = AuditLogService(session, self._clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, group_buy_id: str) -> GroupBuy:
        group_buy = self.session.get(GroupBuy, group_buy_id, populate_existing=True)
        if group_buy is None:
            raise GroupBuyNotFoundError(group_buy_id)
        return group_buy

    def _require_owner_or_admin(
        self, group_buy: GroupBuy, actor: Actor, operation: str
    ) -> None:
        if actor.user_id == group_buy.creator_id:
            return
        if self._authority.is_admin(actor.user_id, actor.username):
            return
        logger.warning(
            "group_buy_forbidden",
            extra={
                "group_buy_id": group_buy.id,
                "user_id": actor.user_id,
                "operation": operation,
            },
        )
        raise ForbiddenError(actor.user_id, operation)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, draft: GroupBuyDraft) -> GroupBuyInfo:
        """
        Open a new round.

        Postconditions:
            - version == 1, status == active, created_at == updated_at.
            - One ``group_buy_created`` log row exists for the new id.
        """
        creator_id = require_text(draft.creator.user_id, "creator_id")
        creator_username = require_text(draft.creator.username, "creator_username")
        channel_id = require_text(draft.channel_id, "channel_id")
        merchant_name = require_text(draft.merchant_name, "merchant_name")
        description = _optional_text(draft.description, "description")
        post_id = _optional_text(draft.post_id, "post_id")
        items = parse_items(draft.items)
        metadata = parse_metadata(draft.metadata)

        now = self._clock.now()
        group_buy = GroupBuy(
            id=str(uuid4()),
            creator_id=creator_id,
            creator_username=creator_username,
            channel_id=channel_id,
            post_id=post_id,
            merchant_name=merchant_name,
            description=description,
            metadata_=metadata or None,
            items=items_to_json(items),
            status=GroupBuyStatus.ACTIVE.value,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(group_buy)
        self.session.flush()

        self._audit.append(
            group_buy.id,
            draft.creator,
            LogAction.GROUP_BUY_CREATED,
            version=1,
            details={
                "merchant_name": merchant_name,
                "items": items_to_json(items),
            },
        )

        logger.info(
            "group_buy_created",
            extra={
                "group_buy_id": group_buy.id,
                "merchant_name": merchant_name,
                "item_count": len(items),
                "creator_id": creator_id,
            },
        )
        return GroupBuyInfo.from_model(group_buy)

    def update(
        self,
        group_buy_id: str,
        expected_version: int,
        mutation: GroupBuyMutation,
        actor: Actor,
    ) -> GroupBuyInfo:
        """
        Apply ``mutation`` if the stored version equals ``expected_version``.

        Check order: empty mutation, existence, permission, lifecycle,
        field validation, then the version compare-and-set.  Nothing is
        written unless every check passes.
        """
        fields = mutation.changed_fields()
        if not fields:
            raise ValidationError("Mutation changes nothing", field="mutation")
        require_version(expected_version)

        group_buy = self._load(group_buy_id)
        operation = "close group buy" if mutation.close else "edit group buy"
        self._require_owner_or_admin(group_buy, actor, operation)

        if mutation.close and group_buy.is_closed:
            raise GroupBuyAlreadyClosedError(group_buy_id)
        if group_buy.is_closed and mutation.edits_listing:
            raise GroupBuyClosedError(group_buy_id, "edit listing")

        changes: dict = {}
        details: dict = {"fields": fields}
        if mutation.is_set("merchant_name"):
            changes["merchant_name"] = require_text(mutation.merchant_name, "merchant_name")
            details["merchant_name"] = changes["merchant_name"]
        if mutation.is_set("description"):
            changes["description"] = _optional_text(mutation.description, "description")
        if mutation.is_set("metadata"):
            changes["metadata_"] = parse_metadata(mutation.metadata) or None
        if mutation.is_set("items"):
            changes["items"] = items_to_json(parse_items(mutation.items))
            details["items"] = changes["items"]
        if mutation.is_set("post_id"):
            changes["post_id"] = _optional_text(mutation.post_id, "post_id")
            details["post_id"] = changes["post_id"]
        if mutation.close:
            changes["status"] = GroupBuyStatus.CLOSED.value

        new_version = self._guard.advance(group_buy_id, expected_version, **changes)

        action = LogAction.GROUP_BUY_CLOSED if mutation.close else LogAction.GROUP_BUY_UPDATED
        self._audit.append(group_buy_id, actor, action, new_version, details)

        logger.info(
            "group_buy_closed" if mutation.close else "group_buy_updated",
            extra={
                "group_buy_id": group_buy_id,
                "fields": fields,
                "version": new_version,
                "actor_id": actor.user_id,
            },
        )
        return GroupBuyInfo.from_model(self._load(group_buy_id))

    def close(self, group_buy_id: str, expected_version: int, actor: Actor) -> GroupBuyInfo:
        """Close the round.  Rejected if already closed, whatever the version."""
        return self.update(
            group_buy_id, expected_version, GroupBuyMutation(close=True), actor
        )

    def attach_post(self, group_buy_id: str, post_id: str, actor: Actor) -> GroupBuyInfo:
        """Record the announcement post against the version just read."""
        post_id = require_text(post_id, "post_id")
        group_buy = self._load(group_buy_id)
        return self.update(
            group_buy_id,
            group_buy.version,
            GroupBuyMutation(post_id=post_id),
            actor,
        )

    def delete(self, group_buy_id: str, actor: Actor) -> None:
        """
        Remove a group buy and everything it owns.

        Dependents are deleted explicitly, children first, so the result
        does not depend on the backend honouring ON DELETE CASCADE.  Bulk
        DELETE statements bypass the append-only mapper listeners, which
        is the one sanctioned removal path for logs and adjustments.
        """
        group_buy = self._load(group_buy_id)
        self._require_owner_or_admin(group_buy, actor, "delete group buy")

        counts = {}
        for name, model in (
            ("adjustments", ShortageAdjustment),
            ("logs", GroupBuyLog),
            ("orders", Order),
        ):
            result = self.session.execute(
                delete(model)
                .where(model.group_buy_id == group_buy_id)
                .execution_options(synchronize_session=False)
            )
            counts[name] = result.rowcount

        self.session.execute(
            delete(GroupBuy)
            .where(GroupBuy.id == group_buy_id)
            .execution_options(synchronize_session=False)
        )
        self.session.expunge(group_buy)

        logger.warning(
            "group_buy_deleted",
            extra={
                "group_buy_id": group_buy_id,
                "merchant_name": group_buy.merchant_name,
                "actor_id": actor.user_id,
                **counts,
            },
        )
