import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from workflowhr.core.exceptions import NotFoundError, ValidationError
from workflowhr.models import Employee, LeaveBalance, LeaveRequest, LeaveStatus, LeaveType
from workflowhr.services.leave_balance import LeaveBalanceLedger, allocation_for


def _rows(db_session, employee_id, year):
    return db_session.query(LeaveBalance).filter_by(employee_id=employee_id, year=year).all()


@pytest.fixture
def new_hire(db_session, company):
    hire = Employee(
        company_id=company.id,
        full_name="July Hire",
        email="july@alphacorp.com",
        joining_date=date(2024, 7, 1),
        salary=Decimal("240000"),
        leave_balance=20,
    )
    db_session.add(hire)
    db_session.commit()
    return hire


def test_hire_year_is_prorated_from_joining_date(new_hire, leave_types):
    annual = leave_types["Annual Leave"]
    # 183 days from 2024-07-01 to 2024-12-31: ceil(20 * 183 / 365) = 11
    assert allocation_for(new_hire, annual, 2024) == 11
    assert allocation_for(new_hire, annual, 2025) == 20
    assert allocation_for(new_hire, annual, 2023) == 0


def test_unpaid_types_get_fixed_allocations(db_session, new_hire, leave_types):
    study = LeaveType(name="Study Leave", is_paid=False)
    db_session.add(study)
    db_session.commit()

    assert allocation_for(new_hire, leave_types["Personal Leave"], 2024) == 5
    assert allocation_for(new_hire, study, 2024) == 10


def test_get_or_create_balances_creates_one_row_per_type(db_session, company, new_hire, leave_types):
    ledger = LeaveBalanceLedger(db_session, company_id=company.id)
    balances = ledger.get_or_create_balances(new_hire.id, 2024)

    by_type = {b.leave_type_id: b for b in balances}
    assert len(balances) == 3
    assert by_type[leave_types["Annual Leave"].id].total_days == 11
    assert by_type[leave_types["Personal Leave"].id].total_days == 5
    assert all(b.used_days == 0 and b.remaining_days == b.total_days for b in balances)

    # Second read creates nothing new
    ledger.get_or_create_balances(new_hire.id, 2024)
    assert len(_rows(db_session, new_hire.id, 2024)) == 3


def test_balances_of_another_company_are_not_found(db_session, other_company, new_hire, leave_types):
    ledger = LeaveBalanceLedger(db_session, company_id=other_company.id)
    with pytest.raises(NotFoundError):
        ledger.get_or_create_balances(new_hire.id, 2024)
    assert _rows(db_session, new_hire.id, 2024) == []


def test_record_usage_keeps_remaining_non_negative(db_session, company, employee, leave_types):
    ledger = LeaveBalanceLedger(db_session, company_id=company.id)
    annual = leave_types["Annual Leave"]

    balance = ledger.record_usage(employee.id, annual.id, 2024, 15)
    assert (balance.total_days, balance.used_days, balance.remaining_days) == (20, 15, 5)

    balance = ledger.record_usage(employee.id, annual.id, 2024, 10)
    assert (balance.used_days, balance.remaining_days) == (25, 0)

    with pytest.raises(ValidationError):
        ledger.record_usage(employee.id, annual.id, 2024, -1)


def _insert_duplicate(db_session, employee, leave_type, year, created_at, used=0, remaining=None):
    row = LeaveBalance(
        employee_id=employee.id,
        leave_type_id=leave_type.id,
        year=year,
        total_days=20,
        used_days=used,
        remaining_days=20 - used if remaining is None else remaining,
        created_at=created_at,
    )
    db_session.add(row)
    db_session.commit()
    return row


def test_deduplicate_keeps_oldest_row_and_is_idempotent(db_session, company, employee, leave_types):
    annual = leave_types["Annual Leave"]
    oldest = _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 1, 9, 0), used=3)
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 1, 9, 5))
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 2, 9, 0))

    ledger = LeaveBalanceLedger(db_session, company_id=company.id)
    first = [(b.id, b.leave_type_id, b.used_days, b.remaining_days) for b in ledger.deduplicate(employee.id, 2024)]
    second = [(b.id, b.leave_type_id, b.used_days, b.remaining_days) for b in ledger.deduplicate(employee.id, 2024)]

    assert first == second
    assert first == [(oldest.id, annual.id, 3, 17)]


def test_get_or_create_balances_repairs_duplicates_it_sees(db_session, company, employee, leave_types):
    sick = leave_types["Sick Leave"]
    oldest = _insert_duplicate(db_session, employee, sick, 2025, datetime(2025, 1, 1))
    _insert_duplicate(db_session, employee, sick, 2025, datetime(2025, 1, 3))

    balances = LeaveBalanceLedger(db_session, company_id=company.id).get_or_create_balances(employee.id, 2025)

    assert len(balances) == 3
    assert len({b.leave_type_id for b in balances}) == 3
    assert oldest.id in {b.id for b in balances}
    assert len(_rows(db_session, employee.id, 2025)) == 3


def test_global_cleanup_resolves_duplicates_and_normalises(db_session, company, employee, new_hire, leave_types):
    annual = leave_types["Annual Leave"]
    personal = leave_types["Personal Leave"]
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 1))
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 2, 1))
    _insert_duplicate(db_session, new_hire, personal, 2024, datetime(2024, 7, 1))
    _insert_duplicate(db_session, new_hire, personal, 2024, datetime(2024, 7, 2))
    _insert_duplicate(db_session, new_hire, personal, 2024, datetime(2024, 7, 3))
    # Drifted row: remaining should be max(0, 20 - 25) == 0
    drifted = _insert_duplicate(db_session, employee, personal, 2024, datetime(2024, 1, 1), used=25, remaining=-5)

    ledger = LeaveBalanceLedger(db_session, company_id=company.id)
    summary = ledger.global_cleanup()

    assert summary["groups_repaired"] == 2
    assert summary["rows_deleted"] == 3
    assert summary["rows_normalised"] >= 1
    assert len(_rows(db_session, employee.id, 2024)) == 2
    assert len(_rows(db_session, new_hire.id, 2024)) == 1
    db_session.refresh(drifted)
    assert drifted.remaining_days == 0

    again = ledger.global_cleanup()
    assert again == {"groups_repaired": 0, "rows_deleted": 0, "rows_normalised": 0, "usage_applied": 0}


def test_global_cleanup_is_scoped_to_company(db_session, other_company, employee, leave_types):
    annual = leave_types["Annual Leave"]
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 1))
    _insert_duplicate(db_session, employee, annual, 2024, datetime(2024, 1, 2))

    summary = LeaveBalanceLedger(db_session, company_id=other_company.id).global_cleanup()

    assert summary["rows_deleted"] == 0
    assert len(_rows(db_session, employee.id, 2024)) == 2


def test_approved_usage_that_never_landed_is_applied_once(db_session, company, employee, leave_types):
    annual = leave_types["Annual Leave"]
    year = date.today().year
    start = date(year, 3, 4)
    request = LeaveRequest(
        employee_id=employee.id,
        leave_type_id=annual.id,
        company_id=company.id,
        start_date=start,
        end_date=start + timedelta(days=2),
        total_days=3,
        reason="Family trip",
        status=LeaveStatus.APPROVED_BY_HR.value,
        decided_at=datetime(year, 2, 20, 12, 0),
        usage_recorded=False,
    )
    db_session.add(request)
    db_session.commit()

    ledger = LeaveBalanceLedger(db_session, company_id=company.id)
    balances = ledger.get_or_create_balances(employee.id, year)
    annual_row = next(b for b in balances if b.leave_type_id == annual.id)
    assert (annual_row.used_days, annual_row.remaining_days) == (3, 17)

    assert ledger.apply_outstanding_usage() == 0
    db_session.refresh(annual_row)
    db_session.refresh(request)
    assert annual_row.used_days == 3
    assert request.usage_recorded is True
