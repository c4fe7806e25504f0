"""
End-to-end round: open, collect orders, close, correct a shortage, settle.

Runs entirely through GroupBuyLedger against a SQLite file database, the
way the chat command layer drives it.
"""

from decimal import Decimal

import pytest

from groupbuy_kernel.domain import Actor, GroupBuyDraft
from groupbuy_kernel.exceptions import (
    ConflictError,
    GroupBuyAlreadyClosedError,
    GroupBuyClosedError,
    GroupBuyNotFoundError,
)
from groupbuy_kernel.models import GroupBuyLog, Order, ShortageAdjustment


class TestSeafoodRound:
    def test_full_round(self, ledger, clock, admin, registrar_a, registrar_b, row_count):
        tom = Actor("u-tom", "Tom")
        amy = Actor("u-amy", "Amy")

        group_buy = ledger.create_group_buy(
            GroupBuyDraft(
                creator=admin,
                channel_id="ch-seafood",
                merchant_name="海鮮拼單",
                items=[{"name": "蝦", "unit_price": "100"}],
            )
        )
        assert group_buy.version == 1
        assert group_buy.status == "active"

        clock.tick()
        tom_order = ledger.register_order(group_buy.id, registrar_a, tom, "蝦", 3)
        clock.tick()
        ledger.register_order(group_buy.id, registrar_b, amy, "蝦", 2)

        summary = ledger.summarize(group_buy.id)
        assert summary.items["蝦"].total_quantity == 5
        assert summary.items["蝦"].by_buyer == {"Tom": 3, "Amy": 2}

        clock.tick()
        closed = ledger.close_group_buy(group_buy.id, summary.version, admin)
        assert closed.status == "closed"
        assert closed.version == summary.version + 1

        with pytest.raises(GroupBuyClosedError):
            ledger.register_order(group_buy.id, registrar_a, tom, "蝦", 1)
        with pytest.raises(GroupBuyAlreadyClosedError):
            ledger.close_group_buy(group_buy.id, closed.version, admin)
        assert row_count(Order) == 2

        clock.tick()
        adjusted, adjustment = ledger.adjust_quantity(tom_order.id, admin, 2)
        assert adjusted.quantity == 2
        assert adjusted.original_quantity == 3
        assert (adjustment.old_quantity, adjustment.new_quantity) == (3, 2)
        assert row_count(ShortageAdjustment) == 1
        assert ledger.list_logs(group_buy.id)[-1].action == "shortage_adjusted"

        final = ledger.summarize(group_buy.id)
        assert final.items["蝦"].total_quantity == 4
        assert final.buyers["Tom"].amount == Decimal("200")
        assert final.buyers["Amy"].amount == Decimal("200")
        assert final.total_amount == Decimal("400")
        assert final.version == closed.version + 1

        assert ledger.verify_audit_chain(group_buy.id) == 5

        ledger.delete_group_buy(group_buy.id, admin)
        with pytest.raises(GroupBuyNotFoundError):
            ledger.get_group_buy(group_buy.id)
        assert row_count(Order) == 0
        assert row_count(GroupBuyLog) == 0
        assert row_count(ShortageAdjustment) == 0

    def test_stale_writer_retries(self, ledger, group_buy, creator, registrar_a, tom):
        seen = ledger.get_group_buy(group_buy.id)
        ledger.register_order(group_buy.id, registrar_a, tom, "蝦", 1)

        with pytest.raises(ConflictError) as excinfo:
            ledger.close_group_buy(group_buy.id, seen.version, creator)
        assert excinfo.value.actual_version == seen.version + 1
        assert ledger.get_group_buy(group_buy.id).is_active

        fresh = ledger.get_group_buy(group_buy.id)
        assert ledger.close_group_buy(group_buy.id, fresh.version, creator).is_closed
