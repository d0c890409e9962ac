"""
Leave Request Workflow

State machine for a leave request:

    pending -> approved_by_team_lead -> approved_by_hr
    pending | approved_by_team_lead -> rejected

Team-lead approval is optional; HR may decide straight from pending.
approved_by_hr and rejected are terminal, and deciding a terminal request
again is a conflict.

The ledger is charged once, when HR approves. Approving an unpaid type also
flags any salary slip already generated for the months the leave touches.
"""
import logging
from datetime import date, datetime, timezone
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from workflowhr.core.exceptions import (
    AccessDeniedError,
    AppException,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from workflowhr.models.employee import Employee
from workflowhr.models.leave_request import LeaveRequest, LeaveStatus
from workflowhr.models.leave_type import LeaveType
from workflowhr.models.user import UserRole
from workflowhr.schemas.auth import Actor
from workflowhr.services.base import BaseService
from workflowhr.services.leave_balance import LeaveBalanceLedger
from workflowhr.services.notification import (
    NotificationService,
    LEAVE_REQUEST_SUBMITTED,
    LEAVE_STATUS_UPDATED,
)
from workflowhr.services.payroll_service import PayrollCalculator
from workflowhr.services.store import store_operation
from workflowhr.services.working_days import WorkingDaysCalendar

logger = logging.getLogger(__name__)


def months_spanned(start_date: date, end_date: date) -> Iterator[Tuple[int, int]]:
    """Yield (month, year) for every calendar month touched by [start, end]."""
    month, year = start_date.month, start_date.year
    while (year, month) <= (end_date.year, end_date.month):
        yield month, year
        month += 1
        if month > 12:
            month, year = 1, year + 1


class LeaveRequestWorkflow(BaseService):

    def __init__(
        self,
        db: Session,
        actor: Actor,
        calendar: Optional[WorkingDaysCalendar] = None,
        ledger: Optional[LeaveBalanceLedger] = None,
        notifier: Optional[NotificationService] = None,
        payroll: Optional[PayrollCalculator] = None,
    ):
        super().__init__(db, company_id=actor.company_id)
        self.actor = actor
        self.calendar = calendar or WorkingDaysCalendar(db, company_id=actor.company_id)
        self.ledger = ledger or LeaveBalanceLedger(db, company_id=actor.company_id)
        self.notifier = notifier or NotificationService(db)
        self.payroll = payroll or PayrollCalculator(db, actor, calendar=self.calendar, notifier=self.notifier)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @store_operation
    def _own_employee(self) -> Optional[Employee]:
        return self.db.query(Employee).filter(
            Employee.user_id == self.actor.user_id,
            Employee.company_id == self.company_id,
        ).first()

    @store_operation
    def _company_employee(self, employee_id: int) -> Employee:
        employee = self.db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.company_id == self.company_id,
        ).first()
        if not employee:
            raise NotFoundError("Employee not found or access denied")
        return employee

    def _resolve_employee(self, employee_id: Optional[int]) -> Employee:
        if self.actor.is_hr and employee_id is not None:
            return self._company_employee(employee_id)

        employee = self._own_employee()
        if not employee:
            raise NotFoundError("Employee record not found")
        if employee_id is not None and employee_id != employee.id:
            raise AccessDeniedError("You can only submit leave requests for yourself")
        return employee

    @store_operation
    def _find_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.query(LeaveType).filter(LeaveType.id == leave_type_id).first()
        if not leave_type:
            raise ValidationError("Invalid leave type")
        return leave_type

    @store_operation
    def leave_types(self) -> List[LeaveType]:
        return self.db.query(LeaveType).order_by(LeaveType.name).all()

    @store_operation
    def get_request(self, request_id: int) -> LeaveRequest:
        """Company scoped; a request from another company looks like a missing one."""
        request = self.db.query(LeaveRequest).filter(
            LeaveRequest.id == request_id,
            LeaveRequest.company_id == self.company_id,
        ).first()
        if not request:
            raise NotFoundError("Leave request not found or access denied")

        if not self.actor.is_hr:
            own = self._own_employee()
            is_own = own is not None and request.employee_id == own.id
            is_routed = self.actor.role == UserRole.TEAM_LEAD and request.team_lead_id == self.actor.user_id
            if not (is_own or is_routed):
                raise NotFoundError("Leave request not found or access denied")
        return request

    @store_operation
    def list_requests(self, status: Optional[str] = None, employee_id: Optional[int] = None) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(LeaveRequest.company_id == self.company_id)

        if self.actor.is_hr:
            if employee_id is not None:
                query = query.filter(LeaveRequest.employee_id == employee_id)
        elif self.actor.role == UserRole.TEAM_LEAD:
            # Requests routed to the lead, plus the lead's own
            own = self._own_employee()
            visible = LeaveRequest.team_lead_id == self.actor.user_id
            if own is not None:
                visible = or_(visible, LeaveRequest.employee_id == own.id)
            query = query.filter(visible)
            if employee_id is not None:
                query = query.filter(LeaveRequest.employee_id == employee_id)
        else:
            own = self._own_employee()
            if not own:
                return []
            query = query.filter(LeaveRequest.employee_id == own.id)

        if status:
            query = query.filter(LeaveRequest.status == status)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()

    @store_operation
    def pending_for_team_lead(self) -> List[LeaveRequest]:
        if self.actor.role != UserRole.TEAM_LEAD:
            raise AccessDeniedError("Only team leads have a leave approval queue")
        return self.db.query(LeaveRequest).filter(
            LeaveRequest.company_id == self.company_id,
            LeaveRequest.team_lead_id == self.actor.user_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
        ).order_by(LeaveRequest.created_at, LeaveRequest.id).all()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    @store_operation
    def _insert_request(self, request: LeaveRequest) -> LeaveRequest:
        self.db.add(request)
        self._commit()
        self.db.refresh(request)
        return request

    def submit(
        self,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        reason: str,
        employee_id: Optional[int] = None,
    ) -> LeaveRequest:
        if start_date < date.today():
            raise ValidationError("Start date cannot be in the past")
        if end_date < start_date:
            raise ValidationError("End date must be on or after start date")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reason is required")

        employee = self._resolve_employee(employee_id)
        leave_type = self._find_leave_type(leave_type_id)

        total_days = self.calendar.working_days_between(employee.company_id, start_date, end_date)
        if total_days == 0:
            raise ValidationError("The selected dates contain no working days")

        request = self._insert_request(LeaveRequest(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            company_id=employee.company_id,
            start_date=start_date,
            end_date=end_date,
            total_days=total_days,
            reason=reason,
            status=LeaveStatus.PENDING.value,
            team_lead_id=employee.team_lead_id,
            hr_id=employee.created_by,
        ))
        logger.info(
            f"Leave request {request.id} submitted for employee {employee.id}: "
            f"{leave_type.name}, {start_date}..{end_date} ({total_days} working day(s))"
        )

        # Materialise the year's balance rows; usage is charged at HR approval
        try:
            self.ledger.get_or_create_balances(employee.id, start_date.year)
        except ServiceUnavailableError as e:
            logger.warning(f"Could not prepare leave balances for employee {employee.id}: {e.message}")

        self.notifier.dispatch(
            self.notifier.hr_recipients(employee.company_id),
            LEAVE_REQUEST_SUBMITTED,
            {
                "request_id": request.id,
                "employee_id": employee.id,
                "employee_name": employee.full_name,
                "leave_type": leave_type.name,
                "start_date": start_date,
                "end_date": end_date,
                "total_days": total_days,
                "reason": reason,
            },
        )
        return request

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    @store_operation
    def _save_decision(self, request: LeaveRequest) -> LeaveRequest:
        self._commit()
        self.db.refresh(request)
        return request

    def decide(self, request_id: int, approve: bool, remarks: Optional[str] = None) -> LeaveRequest:
        """
        Apply the acting role's decision. HR-tier actors take the HR path,
        team leads the team-lead path; anyone else is refused.
        """
        if self.actor.is_hr:
            return self._decide_as_hr(request_id, approve, remarks)
        if self.actor.role == UserRole.TEAM_LEAD:
            return self._decide_as_team_lead(request_id, approve, remarks)
        raise AccessDeniedError("Only team leads and HR can decide leave requests")

    def _decide_as_team_lead(self, request_id: int, approve: bool, comment: Optional[str]) -> LeaveRequest:
        request = self.get_request(request_id)
        if request.team_lead_id != self.actor.user_id:
            raise NotFoundError("Leave request not found or access denied")
        if request.status != LeaveStatus.PENDING.value:
            raise ConflictError(f"Leave request is already {request.status}")

        request.status = (LeaveStatus.APPROVED_BY_TEAM_LEAD if approve else LeaveStatus.REJECTED).value
        request.team_lead_comment = comment
        request.team_lead_decided_at = datetime.now(timezone.utc)
        if not approve:
            request.decided_by = self.actor.user_id
            request.decided_at = request.team_lead_decided_at
        request = self._save_decision(request)
        logger.info(f"Team lead {self.actor.user_id} set leave request {request.id} to {request.status}")

        if LeaveStatus(request.status).is_terminal:
            self._notify_employee(request)
        return request

    def _decide_as_hr(self, request_id: int, approve: bool, remarks: Optional[str]) -> LeaveRequest:
        request = self.get_request(request_id)
        if LeaveStatus(request.status).is_terminal:
            raise ConflictError(f"Leave request has already been {request.status}")

        request.status = (LeaveStatus.APPROVED_BY_HR if approve else LeaveStatus.REJECTED).value
        request.hr_remarks = remarks
        request.decided_by = self.actor.user_id
        request.decided_at = datetime.now(timezone.utc)
        request = self._save_decision(request)
        logger.info(f"HR user {self.actor.user_id} set leave request {request.id} to {request.status}")

        if approve:
            self._reconcile_approval(request)
        self._notify_employee(request)
        return request

    def _reconcile_approval(self, request: LeaveRequest):
        """Charge the ledger and flag payroll. Failures are left for the repair pass."""
        try:
            self.ledger.charge_request(request, year=request.decided_at.year)
        except ServiceUnavailableError as e:
            logger.warning(
                f"Ledger update for approved leave request {request.id} deferred to repair pass: {e.message}"
            )

        leave_type = self._find_leave_type(request.leave_type_id)
        if leave_type.is_paid:
            return
        for month, year in months_spanned(request.start_date, request.end_date):
            try:
                self.payroll.flag_for_recalculation(request.employee_id, month, year)
            except ServiceUnavailableError as e:
                logger.warning(
                    f"Could not flag salary slip {month}/{year} of employee {request.employee_id}: {e.message}"
                )

    def _notify_employee(self, request: LeaveRequest):
        try:
            employee = self._company_employee(request.employee_id)
        except AppException as e:
            logger.warning(f"Cannot notify employee of leave request {request.id}: {e.message}")
            return
        self.notifier.dispatch(
            self.notifier.employee_recipient(employee),
            LEAVE_STATUS_UPDATED,
            {
                "request_id": request.id,
                "status": request.status,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "total_days": request.total_days,
                "remarks": request.hr_remarks or request.team_lead_comment,
            },
        )
