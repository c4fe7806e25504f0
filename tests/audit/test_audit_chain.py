"""
Audit trail tests.

Verifies:
- One log row per mutating operation, carrying the version it produced
- The per-group-buy hash chain verifies after normal use
- Raw-SQL tampering is detected by verify_audit_chain()
- ORM updates and deletes of logs and adjustments are rejected
- original_quantity is write-once
"""

import pytest
from sqlalchemy import text

from groupbuy_kernel.domain import GroupBuyMutation
from groupbuy_kernel.exceptions import (
    AuditChainBrokenError,
    GroupBuyNotFoundError,
    ImmutabilityViolationError,
)
from groupbuy_kernel.models import GroupBuyLog, Order, ShortageAdjustment


@pytest.fixture
def busy_round(ledger, group_buy, creator, admin, registrar_a, tom, amy):
    """A round with every kind of logged operation."""
    first = ledger.register_order(group_buy.id, registrar_a, tom, "蝦", 2)
    second = ledger.register_order(group_buy.id, registrar_a, amy, "蟹", 1)
    ledger.update_group_buy(group_buy.id, 3, GroupBuyMutation(description="Saturday"), creator)
    ledger.adjust_quantity(first.id, admin, 1)
    ledger.cancel_order(second.id, registrar_a)
    ledger.close_group_buy(group_buy.id, 6, creator)
    return group_buy


class TestLogRows:
    def test_one_row_per_operation(self, ledger, busy_round):
        entries = ledger.list_logs(busy_round.id)

        assert [e.action for e in entries] == [
            "group_buy_created",
            "order_registered",
            "order_registered",
            "group_buy_updated",
            "shortage_adjusted",
            "order_cancelled",
            "group_buy_closed",
        ]
        assert [e.details["version"] for e in entries] == [1, 2, 3, 4, 5, 6, 7]
        assert ledger.get_group_buy(busy_round.id).version == 7

    def test_rows_name_the_actor(self, ledger, busy_round, admin):
        adjusted = [e for e in ledger.list_logs(busy_round.id) if e.action == "shortage_adjusted"]
        assert adjusted[0].user_id == admin.user_id
        assert adjusted[0].username == admin.username

    def test_failed_operation_writes_nothing(self, ledger, group_buy, registrar_a, tom, row_count):
        with pytest.raises(GroupBuyNotFoundError):
            ledger.register_order("missing", registrar_a, tom, "蝦", 1)
        assert row_count(GroupBuyLog) == 1


class TestHashChain:
    def test_chain_verifies(self, ledger, busy_round):
        assert ledger.verify_audit_chain(busy_round.id) == 7

    def test_links_follow_insertion_order(self, ledger, busy_round):
        entries = ledger.list_logs(busy_round.id)
        assert entries[0].details["prev_hash"] is None
        for previous, current in zip(entries, entries[1:]):
            assert current.details["prev_hash"] == previous.details["hash"]

    def test_chains_are_per_group_buy(self, ledger, busy_round, draft):
        other = ledger.create_group_buy(draft)
        assert ledger.list_logs(other.id)[0].details["prev_hash"] is None
        assert ledger.verify_audit_chain(other.id) == 1

    def test_tampered_actor_detected(self, ledger, busy_round, session_factory, captured_logs):
        target = ledger.list_logs(busy_round.id)[3]
        with session_factory.begin() as session:
            session.execute(
                text("UPDATE group_buy_logs SET user_id = 'u-evil' WHERE id = :id"),
                {"id": target.id},
            )

        with pytest.raises(AuditChainBrokenError) as excinfo:
            ledger.verify_audit_chain(busy_round.id)
        assert excinfo.value.log_id == target.id
        assert any(r["message"] == "audit_chain_broken" for r in captured_logs())

    def test_tampered_details_detected(self, ledger, busy_round, session_factory):
        target = ledger.list_logs(busy_round.id)[1]
        assert target.details["quantity"] == 2
        with session_factory.begin() as session:
            session.execute(
                text(
                    "UPDATE group_buy_logs "
                    "SET details = replace(details, :old, :new) WHERE id = :id"
                ),
                {"old": '"quantity":2', "new": '"quantity":20', "id": target.id},
            )
        assert ledger.list_logs(busy_round.id)[1].details["quantity"] == 20

        with pytest.raises(AuditChainBrokenError) as excinfo:
            ledger.verify_audit_chain(busy_round.id)
        assert excinfo.value.log_id == target.id

    def test_removed_row_detected(self, ledger, busy_round, session_factory):
        entries = ledger.list_logs(busy_round.id)
        with session_factory.begin() as session:
            session.execute(
                text("DELETE FROM group_buy_logs WHERE id = :id"), {"id": entries[2].id}
            )

        with pytest.raises(AuditChainBrokenError) as excinfo:
            ledger.verify_audit_chain(busy_round.id)
        assert excinfo.value.log_id == entries[3].id

    def test_unknown_group_buy(self, ledger):
        with pytest.raises(GroupBuyNotFoundError):
            ledger.verify_audit_chain("missing")


class TestImmutability:
    def test_log_update_rejected(self, busy_round, session):
        entry = session.query(GroupBuyLog).filter_by(group_buy_id=busy_round.id).first()
        entry.action = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_log_delete_rejected(self, busy_round, session):
        entry = session.query(GroupBuyLog).filter_by(group_buy_id=busy_round.id).first()
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_adjustment_update_rejected(self, busy_round, session):
        adjustment = session.query(ShortageAdjustment).one()
        adjustment.new_quantity = 9
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_adjustment_delete_rejected(self, busy_round, session):
        adjustment = session.query(ShortageAdjustment).one()
        session.delete(adjustment)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_original_quantity_is_write_once(self, busy_round, session):
        order = session.query(Order).filter_by(group_buy_id=busy_round.id).one()
        assert order.original_quantity == 2
        order.original_quantity = 7
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_original_quantity_first_write_allowed(self, ledger, group_buy, registrar_a, tom, session):
        placed = ledger.register_order(group_buy.id, registrar_a, tom, "蝦", 4)
        order = session.get(Order, placed.id)
        order.original_quantity = 4
        order.quantity = 3
        session.flush()
        assert session.get(Order, placed.id).original_quantity == 4
