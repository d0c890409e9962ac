import pytest
from datetime import date, timedelta
from decimal import Decimal

from workflowhr.core.exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from workflowhr.models import LeaveBalance, LeaveRequest, LeaveStatus, Notification, SalarySlip
from workflowhr.services import leave_workflow
from workflowhr.services.leave_balance import LeaveBalanceLedger
from workflowhr.services.leave_workflow import LeaveRequestWorkflow, months_spanned


def _submit(db_session, actor, leave_type, start, days=5, **kwargs):
    return LeaveRequestWorkflow(db_session, actor).submit(
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=start + timedelta(days=days - 1),
        reason="  Family wedding  ",
        **kwargs,
    )


def _balance(db_session, employee, leave_type, year):
    return db_session.query(LeaveBalance).filter_by(
        employee_id=employee.id, leave_type_id=leave_type.id, year=year
    ).one()


def test_submit_sizes_request_and_routes_it(db_session, employee, hr_user, team_lead_user,
                                            employee_user, leave_types, actor_for, next_monday):
    # Monday through Sunday: five working days
    request = _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday, days=7)

    assert request.status == LeaveStatus.PENDING.value
    assert request.total_days == 5
    assert request.reason == "Family wedding"
    assert request.team_lead_id == team_lead_user.id
    assert request.hr_id == hr_user.id
    assert request.usage_recorded is False

    hr_notes = db_session.query(Notification).filter_by(user_id=hr_user.id).all()
    assert [n.kind for n in hr_notes] == ["leave_request_submitted"]


def test_submit_materialises_balances_without_charging(db_session, employee, employee_user,
                                                       leave_types, actor_for, next_monday):
    _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)

    rows = db_session.query(LeaveBalance).filter_by(employee_id=employee.id, year=next_monday.year).all()
    assert len(rows) == 3
    assert all(r.used_days == 0 for r in rows)


def test_past_start_date_is_rejected_without_side_effects(db_session, employee, employee_user,
                                                         leave_types, actor_for):
    yesterday = date.today() - timedelta(days=1)
    with pytest.raises(ValidationError):
        _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], yesterday)

    assert db_session.query(LeaveRequest).count() == 0
    assert db_session.query(LeaveBalance).count() == 0


def test_end_before_start_is_rejected(db_session, employee, employee_user, leave_types, actor_for, next_monday):
    workflow = LeaveRequestWorkflow(db_session, actor_for(employee_user))
    with pytest.raises(ValidationError):
        workflow.submit(leave_types["Annual Leave"].id, next_monday, next_monday - timedelta(days=1), "Trip")


def test_unknown_leave_type_is_rejected(db_session, employee, employee_user, leave_types, actor_for, next_monday):
    workflow = LeaveRequestWorkflow(db_session, actor_for(employee_user))
    with pytest.raises(ValidationError):
        workflow.submit(9999, next_monday, next_monday, "Trip")
    assert db_session.query(LeaveRequest).count() == 0


def test_hr_submits_on_behalf_of_employee(db_session, employee, hr_user, leave_types, actor_for, next_monday):
    request = _submit(db_session, actor_for(hr_user), leave_types["Sick Leave"], next_monday,
                      days=2, employee_id=employee.id)
    assert request.employee_id == employee.id
    assert request.total_days == 2


def test_team_lead_then_hr_approval_charges_ledger_once(db_session, employee, employee_user, team_lead_user,
                                                        hr_user, leave_types, actor_for, next_monday):
    annual = leave_types["Annual Leave"]
    request = _submit(db_session, actor_for(employee_user), annual, next_monday)

    request = LeaveRequestWorkflow(db_session, actor_for(team_lead_user)).decide(request.id, True, "Fine by me")
    assert request.status == LeaveStatus.APPROVED_BY_TEAM_LEAD.value
    assert request.team_lead_comment == "Fine by me"

    hr = LeaveRequestWorkflow(db_session, actor_for(hr_user))
    request = hr.decide(request.id, True, "Enjoy")
    assert request.status == LeaveStatus.APPROVED_BY_HR.value
    assert request.decided_by == hr_user.id
    assert request.usage_recorded is True

    # Charged to the year the decision was recorded in
    year = request.decided_at.year
    balance = _balance(db_session, employee, annual, year)
    assert (balance.used_days, balance.remaining_days) == (5, 15)

    with pytest.raises(ConflictError):
        hr.decide(request.id, True)
    with pytest.raises(ConflictError):
        hr.decide(request.id, False)

    # Neither the conflicts nor the repair pass charge it again
    LeaveBalanceLedger(db_session, company_id=employee.company_id).get_or_create_balances(employee.id, year)
    db_session.refresh(balance)
    assert balance.used_days == 5


def test_approval_charges_the_year_the_decision_was_recorded(db_session, employee, employee_user, hr_user,
                                                             leave_types, actor_for, next_monday, monkeypatch):
    annual = leave_types["Annual Leave"]
    request = _submit(db_session, actor_for(employee_user), annual, next_monday)

    class LocalCalendarAhead(date):
        @classmethod
        def today(cls):
            return date(date.today().year + 1, 1, 1)

    # Local clock already in the next year while the recorded decision is not
    monkeypatch.setattr(leave_workflow, "date", LocalCalendarAhead)
    request = LeaveRequestWorkflow(db_session, actor_for(hr_user)).decide(request.id, True)

    decided_year = request.decided_at.year
    assert _balance(db_session, employee, annual, decided_year).used_days == 5
    rows = db_session.query(LeaveBalance).filter_by(employee_id=employee.id, leave_type_id=annual.id).all()
    assert all(row.used_days == 0 for row in rows if row.year != decided_year)


def test_team_lead_can_only_decide_pending_requests(db_session, employee, employee_user, team_lead_user,
                                                    leave_types, actor_for, next_monday):
    request = _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)
    lead = LeaveRequestWorkflow(db_session, actor_for(team_lead_user))
    lead.decide(request.id, True)

    with pytest.raises(ConflictError):
        lead.decide(request.id, False)


def test_team_lead_cannot_decide_requests_routed_elsewhere(db_session, company, employee, employee_user,
                                                          leave_types, actor_for, next_monday):
    from workflowhr.models import User, UserRole
    stranger = User(email="otherlead@alphacorp.com", role=UserRole.TEAM_LEAD, company_id=company.id)
    db_session.add(stranger)
    db_session.commit()

    request = _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)
    with pytest.raises(NotFoundError):
        LeaveRequestWorkflow(db_session, actor_for(stranger)).decide(request.id, True)


def test_hr_rejection_from_pending_notifies_employee(db_session, employee, employee_user, hr_user,
                                                     leave_types, actor_for, next_monday):
    annual = leave_types["Annual Leave"]
    request = _submit(db_session, actor_for(employee_user), annual, next_monday)

    request = LeaveRequestWorkflow(db_session, actor_for(hr_user)).decide(request.id, False, "Release week")

    assert request.status == LeaveStatus.REJECTED.value
    assert request.hr_remarks == "Release week"
    assert request.usage_recorded is False
    kinds = [n.kind for n in db_session.query(Notification).filter_by(user_id=employee_user.id)]
    assert kinds == ["leave_status_updated"]


def test_employees_cannot_decide(db_session, employee, employee_user, leave_types, actor_for, next_monday):
    request = _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)
    with pytest.raises(AccessDeniedError):
        LeaveRequestWorkflow(db_session, actor_for(employee_user)).decide(request.id, True)


def test_other_company_hr_sees_not_found(db_session, employee, employee_user, other_hr_user,
                                         leave_types, actor_for, next_monday):
    request = _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)
    outsider = LeaveRequestWorkflow(db_session, actor_for(other_hr_user))

    with pytest.raises(NotFoundError):
        outsider.get_request(request.id)
    with pytest.raises(NotFoundError):
        outsider.decide(request.id, True)
    assert outsider.list_requests() == []

    db_session.refresh(request)
    assert request.status == LeaveStatus.PENDING.value


def test_listing_is_scoped_by_role(db_session, employee, employee_user, team_lead_user, hr_user,
                                   leave_types, actor_for, next_monday):
    _submit(db_session, actor_for(employee_user), leave_types["Annual Leave"], next_monday)
    _submit(db_session, actor_for(employee_user), leave_types["Sick Leave"], next_monday + timedelta(days=7))

    assert len(LeaveRequestWorkflow(db_session, actor_for(hr_user)).list_requests()) == 2
    assert len(LeaveRequestWorkflow(db_session, actor_for(employee_user)).list_requests()) == 2
    assert len(LeaveRequestWorkflow(db_session, actor_for(team_lead_user)).pending_for_team_lead()) == 2
    assert LeaveRequestWorkflow(db_session, actor_for(hr_user)).list_requests(status="approved_by_hr") == []


def test_unpaid_approval_flags_generated_slip(db_session, employee, employee_user, hr_user,
                                              leave_types, actor_for, next_monday):
    request = _submit(db_session, actor_for(employee_user), leave_types["Personal Leave"], next_monday, days=2)
    slip = SalarySlip(
        employee_id=employee.id,
        company_id=employee.company_id,
        month=next_monday.month,
        year=next_monday.year,
        basic_salary=Decimal("30000"),
        total_working_days=21,
        actual_working_days=21,
        gross_salary=Decimal("30000"),
        net_salary=Decimal("30000"),
    )
    db_session.add(slip)
    db_session.commit()

    LeaveRequestWorkflow(db_session, actor_for(hr_user)).decide(request.id, True)

    db_session.refresh(slip)
    assert slip.needs_recalculation is True


def test_months_spanned_crosses_year_boundary():
    assert list(months_spanned(date(2024, 12, 30), date(2025, 1, 2))) == [(12, 2024), (1, 2025)]
    assert list(months_spanned(date(2024, 3, 4), date(2024, 3, 5))) == [(3, 2024)]
