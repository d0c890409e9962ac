import pytest
from datetime import datetime
from unittest.mock import MagicMock

from sqlalchemy.orm import Session

from workflowhr.core import init_system
from workflowhr.core.config import settings
from workflowhr.models import LeaveBalance, LeaveType
from workflowhr.services.leave_balance import LeaveBalanceLedger


@pytest.fixture
def startup_sessions(db_session, monkeypatch):
    """Point the startup jobs at the test connection instead of the app engine."""
    connection = db_session.get_bind()
    monkeypatch.setattr(
        init_system,
        "SessionLocal",
        lambda: Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint"),
    )
    return db_session


def _balance_row(db_session, employee, leave_type, created_at):
    row = LeaveBalance(
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        year=2024,
        total_days=20,
        used_days=0,
        remaining_days=20,
        created_at=created_at,
    )
    db_session.add(row)
    db_session.commit()
    return row


def test_startup_cleanup_removes_duplicate_balances(startup_sessions, employee, leave_types):
    db_session = startup_sessions
    annual = leave_types["Annual Leave"]
    oldest = _balance_row(db_session, employee, annual, datetime(2024, 1, 1))
    _balance_row(db_session, employee, annual, datetime(2024, 1, 5))
    _balance_row(db_session, employee, annual, datetime(2024, 2, 1))

    init_system.run_balance_cleanup()

    db_session.expire_all()
    rows = db_session.query(LeaveBalance).filter_by(employee_id=employee.id, leave_type_id=annual.id, year=2024).all()
    assert [r.id for r in rows] == [oldest.id]


def test_startup_runs_cleanup_when_enabled(startup_sessions, monkeypatch):
    cleanup = MagicMock(return_value={})
    monkeypatch.setattr(LeaveBalanceLedger, "global_cleanup", cleanup)
    monkeypatch.setattr(settings, "cleanup_balances_on_startup", True)

    init_system.init_system_data()

    cleanup.assert_called_once()
    assert startup_sessions.query(LeaveType).count() > 0


def test_startup_skips_cleanup_when_disabled(startup_sessions, monkeypatch):
    cleanup = MagicMock(return_value={})
    monkeypatch.setattr(LeaveBalanceLedger, "global_cleanup", cleanup)
    monkeypatch.setattr(settings, "cleanup_balances_on_startup", False)

    init_system.init_system_data()

    cleanup.assert_not_called()


def test_cleanup_failure_does_not_block_startup(startup_sessions, monkeypatch, caplog):
    def broken_cleanup(self):
        raise RuntimeError("ledger table locked")

    monkeypatch.setattr(LeaveBalanceLedger, "global_cleanup", broken_cleanup)
    monkeypatch.setattr(settings, "cleanup_balances_on_startup", True)

    init_system.init_system_data()

    assert "Startup leave balance cleanup failed" in caplog.text
