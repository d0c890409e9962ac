"""
Leave Router

Leave types, balances and requests. HR decisions go through PUT
/requests/{id}; team-lead decisions live in the team_lead router.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from workflowhr.core.exceptions import NotFoundError
from workflowhr.database import get_db
from workflowhr.models.employee import Employee
from workflowhr.models.leave_request import LeaveStatus
from workflowhr.routers.auth_deps import get_current_actor, require_hr
from workflowhr.schemas.auth import Actor
from workflowhr.schemas.leave import (
    CleanupSummary,
    HRDecisionRequest,
    LeaveBalanceResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveTypeResponse,
)
from workflowhr.schemas.payroll import UnpaidLeaveDaysResponse
from workflowhr.services.leave_balance import LeaveBalanceLedger
from workflowhr.services.leave_workflow import LeaveRequestWorkflow
from workflowhr.services.payroll_service import PayrollCalculator

router = APIRouter(prefix="/leave", tags=["leave"])


@router.get("/types", response_model=List[LeaveTypeResponse])
def list_leave_types(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return LeaveRequestWorkflow(db, actor).leave_types()


# --- Balances ---

@router.get("/balance", response_model=List[LeaveBalanceResponse])
def get_my_leave_balance(
    year: Optional[int] = Query(default=None, ge=1900, le=2100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Balances of the caller's own employee record. May create missing rows."""
    employee = db.query(Employee).filter(
        Employee.user_id == actor.user_id,
        Employee.company_id == actor.company_id,
    ).first()
    if not employee:
        raise NotFoundError("Employee record not found")
    ledger = LeaveBalanceLedger(db, company_id=actor.company_id)
    return ledger.get_or_create_balances(employee.id, year or date.today().year)


@router.get("/balance/{employee_id}", response_model=List[LeaveBalanceResponse])
def get_employee_leave_balance(
    employee_id: int,
    year: Optional[int] = Query(default=None, ge=1900, le=2100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    ledger = LeaveBalanceLedger(db, company_id=actor.company_id)
    return ledger.get_or_create_balances(employee_id, year or date.today().year)


@router.post("/balances/cleanup", response_model=CleanupSummary)
def cleanup_leave_balances(db: Session = Depends(get_db), actor: Actor = Depends(require_hr())):
    """On-demand ledger maintenance for the caller's company."""
    return LeaveBalanceLedger(db, company_id=actor.company_id).global_cleanup()


@router.get("/unpaid-days", response_model=UnpaidLeaveDaysResponse)
def get_unpaid_leave_days(
    employee_id: int,
    month: int = Query(ge=1, le=12),
    year: int = Query(ge=1900, le=2100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    """Approved unpaid leave counted against one employee's month, as payroll sees it."""
    return PayrollCalculator(db, actor).unpaid_leave_summary(employee_id, month, year)


# --- Requests ---

@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
def submit_leave_request(
    payload: LeaveRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return LeaveRequestWorkflow(db, actor).submit(
        leave_type_id=payload.leave_type_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        employee_id=payload.employee_id,
    )


@router.get("/requests", response_model=List[LeaveRequestResponse])
def list_leave_requests(
    status: Optional[LeaveStatus] = None,
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return LeaveRequestWorkflow(db, actor).list_requests(
        status=status.value if status else None,
        employee_id=employee_id,
    )


@router.get("/requests/{request_id}", response_model=LeaveRequestResponse)
def get_leave_request(request_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return LeaveRequestWorkflow(db, actor).get_request(request_id)


@router.put("/requests/{request_id}", response_model=LeaveRequestResponse)
def decide_leave_request(
    request_id: int,
    decision: HRDecisionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return LeaveRequestWorkflow(db, actor).decide(
        request_id,
        approve=decision.status == LeaveStatus.APPROVED_BY_HR.value,
        remarks=decision.hr_remarks,
    )
