"""
Facade error translation tests.

Verifies:
- SQLAlchemy failures surface as StorageError chained to the driver error
- Storage failures are logged at ERROR with the operation context
- Kernel errors pass through unchanged and are not reported as storage errors
- Every operation gets a correlation id; a caller's id is kept
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from groupbuy_kernel.db.engine import build_engine
from groupbuy_kernel.exceptions import GroupBuyNotFoundError, StorageError
from groupbuy_kernel.logging_config import LogContext
from groupbuy_services import GroupBuyLedger


@pytest.fixture
def broken_ledger(tmp_path, clock, authority):
    engine = build_engine(f"sqlite:///{tmp_path / 'missing' / 'ledger.db'}")
    yield GroupBuyLedger(sessionmaker(bind=engine), clock=clock, authority=authority)
    engine.dispose()


@pytest.fixture
def schemaless_ledger(tmp_path, clock, authority):
    engine = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield GroupBuyLedger(sessionmaker(bind=engine), clock=clock, authority=authority)
    engine.dispose()


class TestStorageErrors:
    def test_unreachable_database(self, broken_ledger, draft, captured_logs):
        with pytest.raises(StorageError) as excinfo:
            broken_ledger.create_group_buy(draft)

        assert isinstance(excinfo.value.__cause__, OperationalError)
        assert excinfo.value.operation == "create_group_buy"
        assert excinfo.value.code == "STORAGE_ERROR"

        errors = [r for r in captured_logs() if r["message"] == "storage_error"]
        assert len(errors) == 1
        assert errors[0]["level"] == "ERROR"
        assert errors[0]["operation"] == "create_group_buy"
        assert errors[0]["actor_id"] == draft.creator.user_id
        assert errors[0]["error_class"] == "OperationalError"
        assert "traceback" in errors[0]

    def test_missing_schema(self, schemaless_ledger):
        with pytest.raises(StorageError) as excinfo:
            schemaless_ledger.summarize("any-id")
        assert "no such table" in excinfo.value.reason

    def test_init_schema_recovers(self, schemaless_ledger, draft):
        schemaless_ledger.init_schema()
        assert schemaless_ledger.create_group_buy(draft).version == 1


class TestKernelErrorsPassThrough:
    def test_not_found_is_not_wrapped(self, ledger, captured_logs):
        with pytest.raises(GroupBuyNotFoundError):
            ledger.get_group_buy("missing")
        assert not any(r["message"] == "storage_error" for r in captured_logs())


class TestOperationContext:
    def test_correlation_id_generated(self, ledger, draft, captured_logs):
        ledger.create_group_buy(draft)
        records = [r for r in captured_logs() if r["message"] == "audit_log_appended"]
        assert records[0]["correlation_id"]
        assert records[0]["operation"] == "create_group_buy"

    def test_caller_correlation_id_kept(self, ledger, draft, captured_logs):
        with LogContext.bind(correlation_id="req-42"):
            ledger.create_group_buy(draft)
        records = [r for r in captured_logs() if r["message"] == "group_buy_created"]
        assert records[0]["correlation_id"] == "req-42"

    def test_context_cleared_after_operation(self, ledger, draft):
        ledger.create_group_buy(draft)
        assert "operation" not in LogContext.get_all()
