"""
Leave Balance Ledger

Owns the LeaveBalance rows: one per (employee, leave type, year), with
remaining_days == max(0, total_days - used_days) after every mutation.

The store has no uniqueness constraint on that key and no multi-statement
transactions we rely on, so two requests racing through balance creation can
both insert a row. That narrow window is accepted: duplicates are detected on
read and removed by deduplicate()/global_cleanup(), oldest row wins. Both
repair passes are idempotent and safe to run concurrently with normal
traffic.

Usage is charged exactly once per request, when HR approves it. The charge is
guarded by LeaveRequest.usage_recorded so a half-finished approval is picked
up again by apply_outstanding_usage() instead of being charged twice.
"""
import logging
import math
from collections import OrderedDict
from datetime import date, datetime, timezone
from fractions import Fraction
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, select

from workflowhr.core.exceptions import NotFoundError, ValidationError
from workflowhr.models.employee import Employee
from workflowhr.models.leave_balance import LeaveBalance
from workflowhr.models.leave_request import LeaveRequest, LeaveStatus
from workflowhr.models.leave_type import LeaveType
from workflowhr.services.base import BaseService
from workflowhr.services.store import store_operation

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365

# Fixed allocations for unpaid types (policy, not configuration)
UNPAID_ALLOCATIONS = {"Personal Leave": 5}
DEFAULT_UNPAID_ALLOCATION = 10


def leave_year_window(joining_date: date, year: int) -> Tuple[date, date]:
    """Hire year starts on the joining date; later years start on Jan 1."""
    start = joining_date if year == joining_date.year else date(year, 1, 1)
    return start, date(year, 12, 31)


def allocation_for(employee: Employee, leave_type: LeaveType, year: int) -> int:
    """Total days granted for a fresh balance row."""
    if not leave_type.is_paid:
        return UNPAID_ALLOCATIONS.get(leave_type.name, DEFAULT_UNPAID_ALLOCATION)

    entitlement = employee.leave_balance or 0
    years_since_joining = year - employee.joining_date.year
    if years_since_joining < 0:
        return 0
    if years_since_joining == 0:
        start, end = leave_year_window(employee.joining_date, year)
        days_remaining = (end - start).days
        return math.ceil(Fraction(entitlement * days_remaining, DAYS_PER_YEAR))
    return entitlement


def _remaining_expr(used_expr=None):
    """SQL for max(0, total_days - used)."""
    used = LeaveBalance.used_days if used_expr is None else used_expr
    return case(
        (LeaveBalance.total_days - used > 0, LeaveBalance.total_days - used),
        else_=0,
    )


def _split_duplicates(rows) -> Tuple[List[int], List[int]]:
    """
    rows are (id, employee_id, leave_type_id, year) ordered oldest first.
    Returns (ids to keep, ids to delete).
    """
    survivors: "OrderedDict[tuple, int]" = OrderedDict()
    doomed: List[int] = []
    for row_id, employee_id, leave_type_id, year in rows:
        key = (employee_id, leave_type_id, year)
        if key in survivors:
            doomed.append(row_id)
        else:
            survivors[key] = row_id
    return list(survivors.values()), doomed


class LeaveBalanceLedger(BaseService):

    # ------------------------------------------------------------------
    # Store round-trips
    # ------------------------------------------------------------------

    @store_operation
    def _get_employee(self, employee_id: int) -> Employee:
        query = self.db.query(Employee).filter(Employee.id == employee_id)
        if self.company_id is not None:
            query = query.filter(Employee.company_id == self.company_id)
        employee = query.first()
        if not employee:
            raise NotFoundError("Employee not found or access denied")
        return employee

    @store_operation
    def _get_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.query(LeaveType).filter(LeaveType.id == leave_type_id).first()
        if not leave_type:
            raise NotFoundError("Leave type not found")
        return leave_type

    @store_operation
    def _leave_types(self) -> List[LeaveType]:
        return self.db.query(LeaveType).order_by(LeaveType.id).all()

    @store_operation
    def _balance_rows(self, employee_id: int, year: int, leave_type_id: Optional[int] = None) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.year == year,
        )
        if leave_type_id is not None:
            query = query.filter(LeaveBalance.leave_type_id == leave_type_id)
        return query.order_by(LeaveBalance.created_at, LeaveBalance.id).all()

    @store_operation
    def _balance_keys(self, employee_id: Optional[int] = None, year: Optional[int] = None) -> list:
        query = self.db.query(
            LeaveBalance.id, LeaveBalance.employee_id, LeaveBalance.leave_type_id, LeaveBalance.year
        )
        if employee_id is not None:
            query = query.filter(LeaveBalance.employee_id == employee_id)
        if year is not None:
            query = query.filter(LeaveBalance.year == year)
        if self.company_id is not None:
            company_employees = select(Employee.id).where(Employee.company_id == self.company_id)
            query = query.filter(LeaveBalance.employee_id.in_(company_employees))
        return query.order_by(LeaveBalance.created_at, LeaveBalance.id).all()

    @store_operation
    def _insert_balance(self, employee: Employee, leave_type: LeaveType, year: int) -> LeaveBalance:
        # Re-check right before inserting; narrows (but cannot close) the race window
        existing = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee.id,
            LeaveBalance.leave_type_id == leave_type.id,
            LeaveBalance.year == year,
        ).order_by(LeaveBalance.created_at, LeaveBalance.id).first()
        if existing:
            return existing

        total = allocation_for(employee, leave_type, year)
        balance = LeaveBalance(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            year=year,
            total_days=total,
            used_days=0,
            remaining_days=total,
        )
        self.db.add(balance)
        self._commit()
        self.db.refresh(balance)
        logger.info(
            f"Created leave balance for employee {employee.id}, {leave_type.name} {year}: {total} days"
        )
        return balance

    @store_operation
    def _delete_rows(self, ids: List[int]) -> int:
        if not ids:
            return 0
        deleted = self.db.query(LeaveBalance).filter(
            LeaveBalance.id.in_(ids)
        ).delete(synchronize_session=False)
        self._commit()
        return deleted

    @store_operation
    def _normalise_rows(self, ids: Optional[List[int]] = None) -> int:
        """Rewrite remaining_days wherever it drifted from max(0, total - used)."""
        if ids is not None and not ids:
            return 0
        expected = _remaining_expr()
        query = self.db.query(LeaveBalance).filter(LeaveBalance.remaining_days != expected)
        if ids is not None:
            query = query.filter(LeaveBalance.id.in_(ids))
        changed = query.update({LeaveBalance.remaining_days: expected}, synchronize_session=False)
        self._commit()
        return changed

    @store_operation
    def _charge(self, balance_id: int, days: int, request_id: Optional[int] = None) -> bool:
        """
        Atomically add `days` to used_days and recompute remaining_days.
        With request_id, the charge only happens if this call is the one that
        flips the request's usage_recorded flag.
        """
        if request_id is not None:
            claimed = self.db.query(LeaveRequest).filter(
                LeaveRequest.id == request_id,
                LeaveRequest.usage_recorded.is_(False),
            ).update({LeaveRequest.usage_recorded: True}, synchronize_session=False)
            if not claimed:
                return False

        new_used = LeaveBalance.used_days + days
        self.db.query(LeaveBalance).filter(LeaveBalance.id == balance_id).update(
            {
                LeaveBalance.used_days: new_used,
                LeaveBalance.remaining_days: _remaining_expr(new_used),
            },
            synchronize_session=False,
        )
        self._commit()
        return True

    @store_operation
    def _outstanding_requests(self, employee_id: Optional[int] = None) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(
            LeaveRequest.status == LeaveStatus.APPROVED_BY_HR.value,
            LeaveRequest.usage_recorded.is_(False),
        )
        if employee_id is not None:
            query = query.filter(LeaveRequest.employee_id == employee_id)
        if self.company_id is not None:
            query = query.filter(LeaveRequest.company_id == self.company_id)
        return query.order_by(LeaveRequest.id).all()

    # ------------------------------------------------------------------
    # Ledger operations
    # ------------------------------------------------------------------

    def get_or_create_balances(self, employee_id: int, year: int) -> List[LeaveBalance]:
        """
        Balances for every leave type for the given year, one per type.

        This may write: missing rows are created with proration, any
        approved-but-uncharged requests of the employee are charged, and
        duplicates observed on the way are removed.
        """
        employee = self._get_employee(employee_id)
        self.apply_outstanding_usage(employee_id=employee.id)

        rows = self._balance_rows(employee.id, year)
        by_type: Dict[int, LeaveBalance] = {}
        for row in rows:
            by_type.setdefault(row.leave_type_id, row)
        saw_duplicates = len(rows) != len(by_type)

        for leave_type in self._leave_types():
            if leave_type.id not in by_type:
                by_type[leave_type.id] = self._insert_balance(employee, leave_type, year)

        if saw_duplicates:
            return self.deduplicate(employee.id, year)
        return sorted(by_type.values(), key=lambda b: b.leave_type_id)

    def get_or_create_balance(self, employee: Employee, leave_type: LeaveType, year: int) -> LeaveBalance:
        rows = self._balance_rows(employee.id, year, leave_type_id=leave_type.id)
        if rows:
            return rows[0]
        return self._insert_balance(employee, leave_type, year)

    def record_usage(self, employee_id: int, leave_type_id: int, year: int, days: int) -> LeaveBalance:
        """Add `days` to the (employee, type, year) row, creating it if needed."""
        if days < 0:
            raise ValidationError("Usage days cannot be negative")
        employee = self._get_employee(employee_id)
        leave_type = self._get_leave_type(leave_type_id)
        balance = self.get_or_create_balance(employee, leave_type, year)
        self._charge(balance.id, days)
        self.db.refresh(balance)
        return balance

    def charge_request(self, request: LeaveRequest, year: Optional[int] = None) -> bool:
        """
        Charge an HR-approved request to the ledger, at most once.
        Returns False if it had already been charged.
        """
        if request.usage_recorded:
            return False
        if year is None:
            decided = request.decided_at or datetime.now(timezone.utc)
            year = decided.year
        employee = self._get_employee(request.employee_id)
        leave_type = self._get_leave_type(request.leave_type_id)
        balance = self.get_or_create_balance(employee, leave_type, year)
        charged = self._charge(balance.id, request.total_days or 0, request_id=request.id)
        self.db.refresh(request)
        if charged:
            logger.info(
                f"Charged {request.total_days} day(s) of leave request {request.id} "
                f"to balance {balance.id} ({year})"
            )
        return charged

    def apply_outstanding_usage(self, employee_id: Optional[int] = None) -> int:
        """Charge every approved request whose ledger update never landed."""
        applied = 0
        for request in self._outstanding_requests(employee_id):
            if self.charge_request(request):
                applied += 1
        if applied:
            logger.warning(f"Applied outstanding usage for {applied} approved leave request(s)")
        return applied

    def deduplicate(self, employee_id: int, year: int) -> List[LeaveBalance]:
        """
        Keep the oldest row per leave type, delete the rest, then return the
        clean set. Idempotent.
        """
        employee = self._get_employee(employee_id)
        keep, doomed = _split_duplicates(self._balance_keys(employee.id, year))
        deleted = self._delete_rows(doomed)
        self._normalise_rows(keep)
        if deleted:
            logger.warning(
                f"Removed {deleted} duplicate leave balance row(s) for employee {employee.id}, year {year}"
            )
        self.db.expire_all()
        return sorted(self._balance_rows(employee.id, year), key=lambda b: b.leave_type_id)

    def global_cleanup(self) -> dict:
        """
        Maintenance sweep over the whole ledger (or one company when scoped):
        oldest-wins duplicate resolution per (employee, type, year), then
        remaining_days normalisation, then outstanding usage.
        """
        keys = self._balance_keys()
        keep, doomed = _split_duplicates(keys)
        doomed_ids = set(doomed)
        groups_repaired = len({(e, t, y) for row_id, e, t, y in keys if row_id in doomed_ids})
        deleted = self._delete_rows(doomed)
        normalised = self._normalise_rows(None if self.company_id is None else keep)
        self.db.expire_all()
        usage_applied = self.apply_outstanding_usage()

        summary = {
            "groups_repaired": groups_repaired,
            "rows_deleted": deleted,
            "rows_normalised": normalised,
            "usage_applied": usage_applied,
        }
        logger.info(f"Leave balance cleanup complete: {summary}")
        return summary
