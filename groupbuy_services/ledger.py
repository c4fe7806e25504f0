"""
groupbuy_services.ledger -- the public operation contract of the ledger.

Responsibility:
    ``GroupBuyLedger`` is what the command-dispatch layer (chat handlers,
    dialogs) calls.  Each public method runs in exactly one transaction,
    composes the flush-only kernel services and selectors for that
    transaction, and returns frozen DTOs.

Architecture position:
    Services -- top of the stack.  The only place that owns transaction
    boundaries and the only place that builds kernel services.

Invariants enforced:
    - One operation, one transaction: commit on success, roll back on any
      exception, including KeyboardInterrupt and task cancellation.
    - No retries.  ConflictError reaches the caller, which re-reads and
      decides again.
    - No shared mutable state besides the engine pool and session factory,
      so one instance may serve many threads.

Failure modes:
    - GroupBuyKernelError subclasses propagate unchanged.
    - Any SQLAlchemyError (lock timeout, lost connection, constraint
      failure) becomes StorageError, chained with ``from``, and is logged
      at ERROR for operators.

Audit relevance:
    Every call binds a correlation id, the operation name, the actor and
    (when known) the group buy id into LogContext, so all log lines of one
    operation can be grouped.

Usage:
    settings = get_settings()
    ledger = GroupBuyLedger.from_settings(settings)
    ledger.init_schema()
    info = ledger.create_group_buy(GroupBuyDraft(...))
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from uuid import uuid4

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from groupbuy_config import LedgerSettings, log_level_number
from groupbuy_kernel.db.engine import build_engine, create_tables, session_scope
from groupbuy_kernel.db.immutability import register_immutability_listeners
from groupbuy_kernel.domain.authority import AdminAuthority, DenyAllAuthority
from groupbuy_kernel.domain.clock import Clock, SystemClock
from groupbuy_kernel.domain.dtos import (
    Actor,
    GroupBuyDraft,
    GroupBuyInfo,
    GroupBuyMutation,
    GroupBuySummary,
    LogEntryInfo,
    OrderInfo,
    ShortageAdjustmentInfo,
)
from groupbuy_kernel.exceptions import GroupBuyKernelError, StorageError
from groupbuy_kernel.logging_config import LogContext, configure_logging, get_logger
from groupbuy_kernel.selectors.group_buy_selector import GroupBuySelector
from groupbuy_kernel.services.group_buy_service import GroupBuyService
from groupbuy_kernel.services.order_service import OrderService
from groupbuy_kernel.services.shortage_service import ShortageService
from groupbuy_services.admin_authority import AllowListAuthority

logger = get_logger("services.ledger")


class GroupBuyLedger:
    """
    Transactional facade over the group-buy kernel.

    Contract:
        Every method opens a fresh session, runs, commits and closes it.
        Returned values are detached DTOs, safe to use after the call.

    Non-goals:
        - Does NOT parse chat commands or render messages.
        - Does NOT retry on ConflictError or StorageError.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        authority: AdminAuthority | None = None,
        engine: Engine | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._authority = authority or DenyAllAuthority()
        self._engine = engine
        register_immutability_listeners()

    @classmethod
    def from_settings(
        cls,
        settings: LedgerSettings,
        clock: Clock | None = None,
        authority: AdminAuthority | None = None,
    ) -> GroupBuyLedger:
        """Build engine, session factory, logging and admin allow-list from settings."""
        configure_logging(level=log_level_number(settings))
        engine = build_engine(settings.database.url, **settings.database.engine_options())
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        if authority is None:
            authority = AllowListAuthority.from_entries(settings.admins)
        logger.info(
            "ledger_initialized",
            extra={"dialect": engine.dialect.name, "admin_count": len(settings.admins)},
        )
        return cls(factory, clock=clock, authority=authority, engine=engine)

    @property
    def authority(self) -> AdminAuthority:
        return self._authority

    def init_schema(self) -> None:
        """Create missing tables and indexes (idempotent)."""
        engine = self._engine or self._session_factory.kw.get("bind")
        create_tables(engine)

    def dispose(self) -> None:
        """Release pooled connections of an engine built by from_settings()."""
        if self._engine is not None:
            self._engine.dispose()

    # ------------------------------------------------------------------
    # Transaction scope
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(
        self,
        name: str,
        actor: Actor | None = None,
        group_buy_id: str | None = None,
    ) -> Generator[Session, None, None]:
        existing = LogContext.get_all().get("correlation_id")
        t0 = time.monotonic()
        with LogContext.bind(
            correlation_id=None if existing else str(uuid4()),
            operation=name,
            actor_id=actor.user_id if actor else None,
            group_buy_id=group_buy_id,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    yield session
            except GroupBuyKernelError:
                raise
            except SQLAlchemyError as exc:
                logger.error(
                    "storage_error",
                    extra={
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "error_class": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise StorageError(name, str(exc)) from exc

    def _group_buys(self, session: Session) -> GroupBuyService:
        return GroupBuyService(session, self._clock, self._authority)

    def _orders(self, session: Session) -> OrderService:
        return OrderService(session, self._clock, self._authority)

    # ------------------------------------------------------------------
    # Ledger store
    # ------------------------------------------------------------------

    def create_group_buy(self, draft: GroupBuyDraft) -> GroupBuyInfo:
        with self._operation("create_group_buy", draft.creator) as session:
            return self._group_buys(session).create(draft)

    def get_group_buy(self, group_buy_id: str) -> GroupBuyInfo:
        with self._operation("get_group_buy", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).get_group_buy(group_buy_id)

    def update_group_buy(
        self,
        group_buy_id: str,
        expected_version: int,
        mutation: GroupBuyMutation,
        actor: Actor,
    ) -> GroupBuyInfo:
        with self._operation("update_group_buy", actor, group_buy_id) as session:
            return self._group_buys(session).update(
                group_buy_id, expected_version, mutation, actor
            )

    def attach_post(self, group_buy_id: str, post_id: str, actor: Actor) -> GroupBuyInfo:
        with self._operation("attach_post", actor, group_buy_id) as session:
            return self._group_buys(session).attach_post(group_buy_id, post_id, actor)

    def close_group_buy(
        self, group_buy_id: str, expected_version: int, actor: Actor
    ) -> GroupBuyInfo:
        with self._operation("close_group_buy", actor, group_buy_id) as session:
            return self._group_buys(session).close(group_buy_id, expected_version, actor)

    def delete_group_buy(self, group_buy_id: str, actor: Actor) -> None:
        with self._operation("delete_group_buy", actor, group_buy_id) as session:
            self._group_buys(session).delete(group_buy_id, actor)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def register_order(
        self,
        group_buy_id: str,
        registrar: Actor,
        buyer: Actor,
        item_name: str,
        quantity: int,
        expected_version: int | None = None,
    ) -> OrderInfo:
        with self._operation("register_order", registrar, group_buy_id) as session:
            return self._orders(session).register(
                group_buy_id, registrar, buyer, item_name, quantity, expected_version
            )

    def cancel_order(self, order_id: str, actor: Actor) -> None:
        with self._operation("cancel_order", actor) as session:
            self._orders(session).cancel(order_id, actor)

    def cancel_buyer_orders(
        self,
        group_buy_id: str,
        buyer_id: str,
        actor: Actor,
        item_name: str | None = None,
    ) -> int:
        with self._operation("cancel_buyer_orders", actor, group_buy_id) as session:
            return self._orders(session).cancel_buyer_orders(
                group_buy_id, buyer_id, actor, item_name
            )

    def list_orders(self, group_buy_id: str) -> list[OrderInfo]:
        with self._operation("list_orders", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).list_orders(group_buy_id)

    def list_buyer_orders(self, group_buy_id: str, buyer_id: str) -> list[OrderInfo]:
        with self._operation("list_buyer_orders", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).list_buyer_orders(group_buy_id, buyer_id)

    # ------------------------------------------------------------------
    # Shortage adjustments
    # ------------------------------------------------------------------

    def adjust_quantity(
        self,
        order_id: str,
        adjuster: Actor,
        new_quantity: int,
        expected_version: int | None = None,
    ) -> tuple[OrderInfo, ShortageAdjustmentInfo]:
        with self._operation("adjust_quantity", adjuster) as session:
            service = ShortageService(session, self._clock, self._authority)
            return service.adjust_quantity(order_id, adjuster, new_quantity, expected_version)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def summarize(self, group_buy_id: str) -> GroupBuySummary:
        with self._operation("summarize", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).summarize(group_buy_id)

    def is_closable(self, group_buy_id: str) -> bool:
        with self._operation("is_closable", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).is_closable(group_buy_id)

    def list_logs(self, group_buy_id: str) -> list[LogEntryInfo]:
        with self._operation("list_logs", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).list_logs(group_buy_id)

    def list_adjustments(self, group_buy_id: str) -> list[ShortageAdjustmentInfo]:
        with self._operation("list_adjustments", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).list_adjustments(group_buy_id)

    def verify_audit_chain(self, group_buy_id: str) -> int:
        with self._operation("verify_audit_chain", group_buy_id=group_buy_id) as session:
            return GroupBuySelector(session).verify_audit_chain(group_buy_id)
