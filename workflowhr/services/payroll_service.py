"""
Payroll Service Layer

Builds monthly salary slips from the employee's annual salary, the company
working-day calendar, approved unpaid leave, fixed deductions and ad hoc
adjustments.

Architecture:
- Router -> Service (this module) -> Models
- Calendar lookups delegate to WorkingDaysCalendar
- Notifications and document rendering are collaborators whose failures are
  logged, never propagated

A slip is unique per (employee, month, year). Generating it twice is a
conflict; a slip flagged for recalculation (unpaid leave approved after it
was generated) can be rebuilt with regenerate_slip().
"""
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from workflowhr.core.exceptions import ConflictError, NotFoundError, ServiceUnavailableError, ValidationError
from workflowhr.models.employee import Employee, EmployeeFixedDeduction, DeductionType
from workflowhr.models.leave_request import LeaveRequest, LeaveStatus
from workflowhr.models.leave_type import LeaveType
from workflowhr.models.salary_component import SalaryComponent
from workflowhr.models.salary_slip import SalarySlip, SalarySlipDetail, ComponentKind
from workflowhr.schemas.auth import Actor
from workflowhr.schemas.payroll import SlipAdjustments, SlipComponent
from workflowhr.services.base import BaseService
from workflowhr.services.notification import NotificationService, SALARY_SLIP_GENERATED
from workflowhr.services.payslip_renderer import DocumentRenderingError, render_salary_slip
from workflowhr.services.store import store_operation
from workflowhr.services.working_days import (
    MONTHS_PER_YEAR,
    WorkingDaysCalendar,
    count_working_days,
    daily_salary_rate,
    month_bounds,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def fixed_deduction_amount(deduction: EmployeeFixedDeduction, monthly_salary: Decimal) -> Decimal:
    """Flat amount, or a percentage of the monthly basic salary."""
    if deduction.deduction_type == DeductionType.PERCENTAGE.value:
        return Decimal(monthly_salary) * Decimal(deduction.percentage or 0) / 100
    return Decimal(deduction.amount or 0)


class PayrollCalculator(BaseService):

    def __init__(
        self,
        db: Session,
        actor: Actor,
        calendar: Optional[WorkingDaysCalendar] = None,
        notifier: Optional[NotificationService] = None,
    ):
        super().__init__(db, company_id=actor.company_id)
        self.actor = actor
        self.calendar = calendar or WorkingDaysCalendar(db, company_id=actor.company_id)
        self.notifier = notifier or NotificationService(db)

    # ------------------------------------------------------------------
    # Store round-trips
    # ------------------------------------------------------------------

    @store_operation
    def _get_employee(self, employee_id: int) -> Employee:
        employee = self.db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.company_id == self.company_id,
        ).first()
        if not employee:
            raise NotFoundError("Employee not found or access denied")
        return employee

    @store_operation
    def _find_slip(self, employee_id: int, month: int, year: int) -> Optional[SalarySlip]:
        return self.db.query(SalarySlip).filter(
            SalarySlip.employee_id == employee_id,
            SalarySlip.month == month,
            SalarySlip.year == year,
        ).first()

    @store_operation
    def _active_fixed_deductions(self, employee_id: int) -> List[EmployeeFixedDeduction]:
        return self.db.query(EmployeeFixedDeduction).filter(
            EmployeeFixedDeduction.employee_id == employee_id,
            EmployeeFixedDeduction.is_active.is_(True),
        ).order_by(EmployeeFixedDeduction.deduction_name).all()

    @store_operation
    def _approved_unpaid_requests(self, employee_id: int, start: date, end: date) -> List[Tuple[LeaveRequest, str]]:
        """Approved requests of unpaid types that overlap [start, end], with the type name."""
        return self.db.query(LeaveRequest, LeaveType.name).join(
            LeaveType, LeaveRequest.leave_type_id == LeaveType.id
        ).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == LeaveStatus.APPROVED_BY_HR.value,
            LeaveType.is_paid.is_(False),
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        ).order_by(LeaveRequest.start_date, LeaveRequest.id).all()

    def _add_slip(self, fields: Dict[str, Any], components: List[Tuple[SlipComponent, bool]]) -> SalarySlip:
        slip = SalarySlip(**fields)
        self.db.add(slip)
        self.db.flush()  # flush to get ID
        for component, is_fixed in components:
            self.db.add(SalarySlipDetail(
                salary_slip_id=slip.id,
                component_name=component.name,
                component_type=component.kind.value,
                amount=_money(component.amount),
                description=component.description,
                is_fixed=is_fixed,
            ))
        return slip

    @store_operation
    def _insert_slip(self, fields: Dict[str, Any], components: List[Tuple[SlipComponent, bool]]) -> SalarySlip:
        slip = self._add_slip(fields, components)
        self._commit()
        self.db.refresh(slip)
        return slip

    @store_operation
    def _replace_slip(
        self,
        existing: SalarySlip,
        fields: Dict[str, Any],
        components: List[Tuple[SlipComponent, bool]],
    ) -> SalarySlip:
        """Delete the stale slip and insert its replacement in one commit."""
        self.db.delete(existing)
        self.db.flush()  # free the (employee, month, year) slot
        slip = self._add_slip(fields, components)
        self._commit()
        self.db.refresh(slip)
        return slip

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def unpaid_leave_breakdown(self, employee: Employee, month: int, year: int) -> List[Dict[str, Any]]:
        """One entry per approved unpaid request, counting only its days inside the month."""
        month_start, month_end = month_bounds(month, year)
        config = self.calendar.get_config(employee.company_id)
        entries = []
        for request, type_name in self._approved_unpaid_requests(employee.id, month_start, month_end):
            overlap_start = max(request.start_date, month_start)
            overlap_end = min(request.end_date, month_end)
            entries.append({
                "request_id": request.id,
                "leave_type": type_name,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "days_in_month": count_working_days(config, overlap_start, overlap_end),
            })
        return entries

    def unpaid_leave_days(self, employee: Employee, month: int, year: int) -> int:
        """Working days of approved unpaid leave that fall inside the month."""
        return sum(entry["days_in_month"] for entry in self.unpaid_leave_breakdown(employee, month, year))

    def unpaid_leave_summary(self, employee_id: int, month: int, year: int) -> Dict[str, Any]:
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        employee = self._get_employee(employee_id)
        entries = self.unpaid_leave_breakdown(employee, month, year)
        return {
            "employee_id": employee.id,
            "month": month,
            "year": year,
            "unpaid_leaves": entries,
            "total_unpaid_days": sum(entry["days_in_month"] for entry in entries),
        }

    def calculate(self, employee: Employee, month: int, year: int, adjustments: SlipAdjustments) -> Dict[str, Any]:
        """Pure breakdown for one employee/month; nothing is persisted."""
        annual = Decimal(employee.salary or 0)
        monthly_salary = annual / MONTHS_PER_YEAR
        gross_salary = monthly_salary

        total_working_days = self.calendar.working_days_in_month(employee.company_id, month, year)
        unpaid_days = self.unpaid_leave_days(employee, month, year)
        actual_working_days = total_working_days - unpaid_days

        leave_impact = unpaid_days * daily_salary_rate(annual)

        fixed_components = [
            SlipComponent(
                name=d.deduction_name,
                amount=fixed_deduction_amount(d, monthly_salary),
                kind=ComponentKind.DEDUCTION,
                description=d.description or f"Fixed {d.deduction_name}",
            )
            for d in self._active_fixed_deductions(employee.id)
        ]
        fixed_components = [c for c in fixed_components if c.amount > 0]
        total_fixed = sum((c.amount for c in fixed_components), Decimal("0"))

        total_additions = sum((c.amount for c in adjustments.additions), Decimal("0"))
        adjustment_deductions = sum((c.amount for c in adjustments.deductions), Decimal("0"))
        total_deductions = adjustment_deductions + leave_impact + total_fixed
        net_salary = gross_salary + total_additions - total_deductions

        return {
            "basic_salary": _money(monthly_salary),
            "gross_salary": _money(gross_salary),
            "total_working_days": total_working_days,
            "actual_working_days": actual_working_days,
            "unpaid_leaves": unpaid_days,
            "leave_deduction": _money(leave_impact),
            "total_fixed_deductions": _money(total_fixed),
            "total_additions": _money(total_additions),
            "total_deductions": _money(total_deductions),
            "net_salary": _money(net_salary),
            "components": (
                [(c, False) for c in adjustments.additions]
                + [(c, False) for c in adjustments.deductions]
                + [(c, True) for c in fixed_components]
            ),
        }

    def generate_slip(
        self,
        employee_id: int,
        month: int,
        year: int,
        adjustments: Optional[SlipAdjustments] = None,
        notes: Optional[str] = None,
    ) -> SalarySlip:
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")

        employee = self._get_employee(employee_id)
        if self._find_slip(employee.id, month, year):
            raise ConflictError(f"Salary slip already exists for {month}/{year}")

        breakdown = self.calculate(employee, month, year, adjustments or SlipAdjustments())
        slip = self._insert_slip(self._slip_fields(employee, month, year, breakdown, notes), breakdown["components"])
        logger.info(
            f"Generated salary slip {slip.id} for employee {employee.id} ({month}/{year}): "
            f"net {slip.net_salary}, unpaid days {slip.unpaid_leaves}"
        )
        self._notify_generated(slip, employee)
        return slip

    def _slip_fields(
        self,
        employee: Employee,
        month: int,
        year: int,
        breakdown: Dict[str, Any],
        notes: Optional[str],
    ) -> Dict[str, Any]:
        return {
            "employee_id": employee.id,
            "company_id": employee.company_id,
            "month": month,
            "year": year,
            "basic_salary": breakdown["basic_salary"],
            "total_working_days": breakdown["total_working_days"],
            "actual_working_days": breakdown["actual_working_days"],
            "unpaid_leaves": breakdown["unpaid_leaves"],
            "gross_salary": breakdown["gross_salary"],
            "total_additions": breakdown["total_additions"],
            "total_deductions": breakdown["total_deductions"],
            "leave_deduction": breakdown["leave_deduction"],
            "net_salary": breakdown["net_salary"],
            "notes": notes or "",
            "generated_by": self.actor.user_id,
        }

    def _notify_generated(self, slip: SalarySlip, employee: Employee):
        self.notifier.dispatch(
            self.notifier.employee_recipient(employee),
            SALARY_SLIP_GENERATED,
            self.slip_payload(slip, employee),
        )

    def regenerate_slip(self, employee_id: int, month: int, year: int) -> SalarySlip:
        """
        Rebuild a slip that was flagged after unpaid leave was approved for
        its period. Manual adjustments from the old slip are carried over.
        """
        employee = self._get_employee(employee_id)
        existing = self._find_slip(employee.id, month, year)
        if not existing:
            raise NotFoundError("Salary slip not found for this month")
        if not existing.needs_recalculation:
            raise ConflictError("Salary slip is up to date and cannot be regenerated")

        adjustments = SlipAdjustments(
            additions=[self._component_from_detail(d) for d in existing.details
                       if not d.is_fixed and d.component_type == ComponentKind.ADDITION.value],
            deductions=[self._component_from_detail(d) for d in existing.details
                        if not d.is_fixed and d.component_type == ComponentKind.DEDUCTION.value],
        )
        breakdown = self.calculate(employee, month, year, adjustments)

        # The old slip stays in place until its replacement commits
        slip = self._replace_slip(
            existing,
            self._slip_fields(employee, month, year, breakdown, existing.notes),
            breakdown["components"],
        )
        logger.info(
            f"Regenerated salary slip {slip.id} for employee {employee.id} ({month}/{year}): "
            f"net {slip.net_salary}, unpaid days {slip.unpaid_leaves}"
        )
        self._notify_generated(slip, employee)
        return slip

    @staticmethod
    def _component_from_detail(detail: SalarySlipDetail) -> SlipComponent:
        return SlipComponent(
            name=detail.component_name,
            amount=Decimal(detail.amount),
            kind=ComponentKind(detail.component_type),
            description=detail.description,
        )

    @store_operation
    def flag_for_recalculation(self, employee_id: int, month: int, year: int) -> bool:
        """Mark an existing slip as stale. Returns False when no slip exists."""
        flagged = self.db.query(SalarySlip).filter(
            SalarySlip.employee_id == employee_id,
            SalarySlip.month == month,
            SalarySlip.year == year,
        ).update({SalarySlip.needs_recalculation: True}, synchronize_session=False)
        self._commit()
        if flagged:
            logger.info(f"Salary slip for employee {employee_id} ({month}/{year}) flagged for recalculation")
        return bool(flagged)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @store_operation
    def list_slips(self, employee_id: Optional[int] = None) -> List[SalarySlip]:
        query = self.db.query(SalarySlip).options(selectinload(SalarySlip.details)).filter(
            SalarySlip.company_id == self.company_id
        )
        if employee_id is not None:
            query = query.filter(SalarySlip.employee_id == employee_id)
        return query.order_by(SalarySlip.year.desc(), SalarySlip.month.desc()).all()

    @store_operation
    def my_slips(self) -> List[SalarySlip]:
        employee = self.db.query(Employee).filter(
            Employee.user_id == self.actor.user_id,
            Employee.company_id == self.company_id,
        ).first()
        if not employee:
            raise NotFoundError("Employee record not found")
        return self.db.query(SalarySlip).options(selectinload(SalarySlip.details)).filter(
            SalarySlip.employee_id == employee.id
        ).order_by(SalarySlip.year.desc(), SalarySlip.month.desc()).all()

    @store_operation
    def get_slip(self, slip_id: int) -> SalarySlip:
        slip = self.db.query(SalarySlip).filter(
            SalarySlip.id == slip_id,
            SalarySlip.company_id == self.company_id,
        ).first()
        if not slip:
            raise NotFoundError("Salary slip not found or access denied")
        if not self.actor.is_hr:
            owner = self.db.query(Employee).filter(Employee.id == slip.employee_id).first()
            if owner is None or owner.user_id != self.actor.user_id:
                raise NotFoundError("Salary slip not found or access denied")
        return slip

    @staticmethod
    def slip_payload(slip: SalarySlip, employee: Employee) -> Dict[str, Any]:
        return {
            "slip_id": slip.id,
            "employee_id": employee.id,
            "employee_name": employee.full_name,
            "month": slip.month,
            "year": slip.year,
            "basic_salary": slip.basic_salary,
            "total_working_days": slip.total_working_days,
            "actual_working_days": slip.actual_working_days,
            "unpaid_leaves": slip.unpaid_leaves,
            "gross_salary": slip.gross_salary,
            "total_additions": slip.total_additions,
            "total_deductions": slip.total_deductions,
            "leave_deduction": slip.leave_deduction,
            "net_salary": slip.net_salary,
            "components": [
                {
                    "component_name": d.component_name,
                    "component_type": d.component_type,
                    "amount": d.amount,
                    "description": d.description,
                }
                for d in slip.details
            ],
        }

    def render_slip(self, slip_id: int) -> bytes:
        slip = self.get_slip(slip_id)
        employee = self._get_employee(slip.employee_id)
        try:
            return render_salary_slip(self.slip_payload(slip, employee))
        except DocumentRenderingError as e:
            logger.error(f"Rendering salary slip {slip_id} failed: {e}")
            raise ServiceUnavailableError("Salary slip document could not be rendered") from e

    # ------------------------------------------------------------------
    # Fixed deductions
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_deduction(deduction_type: str, amount: Decimal, percentage: Decimal):
        if deduction_type == DeductionType.FIXED.value and not (amount and amount > 0):
            raise ValidationError("Amount is required for fixed deductions")
        if deduction_type == DeductionType.PERCENTAGE.value and not (percentage and 0 < percentage <= 100):
            raise ValidationError("Percentage must be between 0 and 100 for percentage deductions")

    @store_operation
    def list_fixed_deductions(self, employee_id: int, include_inactive: bool = False) -> List[EmployeeFixedDeduction]:
        employee = self._get_employee(employee_id)
        query = self.db.query(EmployeeFixedDeduction).filter(EmployeeFixedDeduction.employee_id == employee.id)
        if not include_inactive:
            query = query.filter(EmployeeFixedDeduction.is_active.is_(True))
        return query.order_by(EmployeeFixedDeduction.deduction_name).all()

    @store_operation
    def add_fixed_deduction(self, employee_id: int, data: dict) -> EmployeeFixedDeduction:
        employee = self._get_employee(employee_id)
        name = (data.get("deduction_name") or "").strip()
        if not name:
            raise ValidationError("Deduction name is required")
        deduction_type = data.get("deduction_type")
        if deduction_type not in (DeductionType.FIXED.value, DeductionType.PERCENTAGE.value):
            raise ValidationError("Deduction type must be fixed or percentage")
        amount = Decimal(str(data.get("amount") or 0))
        percentage = Decimal(str(data.get("percentage") or 0))
        self._validate_deduction(deduction_type, amount, percentage)

        duplicate = self.db.query(EmployeeFixedDeduction).filter(
            EmployeeFixedDeduction.employee_id == employee.id,
            EmployeeFixedDeduction.deduction_name == name,
            EmployeeFixedDeduction.is_active.is_(True),
        ).first()
        if duplicate:
            raise ConflictError(f"An active deduction named '{name}' already exists for this employee")

        deduction = EmployeeFixedDeduction(
            employee_id=employee.id,
            deduction_name=name,
            deduction_type=deduction_type,
            amount=amount,
            percentage=percentage,
            description=data.get("description"),
            is_active=True,
        )
        self.db.add(deduction)
        self._commit()
        self.db.refresh(deduction)
        logger.info(f"Added fixed deduction '{name}' for employee {employee.id}")
        return deduction

    @store_operation
    def _get_fixed_deduction(self, deduction_id: int) -> EmployeeFixedDeduction:
        deduction = self.db.query(EmployeeFixedDeduction).join(
            Employee, EmployeeFixedDeduction.employee_id == Employee.id
        ).filter(
            EmployeeFixedDeduction.id == deduction_id,
            Employee.company_id == self.company_id,
        ).first()
        if not deduction:
            raise NotFoundError("Fixed deduction not found or access denied")
        return deduction

    @store_operation
    def update_fixed_deduction(self, deduction_id: int, changes: dict) -> EmployeeFixedDeduction:
        deduction = self._get_fixed_deduction(deduction_id)
        updates = {k: v for k, v in changes.items() if v is not None}
        for field in ("amount", "percentage"):
            if field in updates:
                updates[field] = Decimal(str(updates[field]))
        if "deduction_name" in updates:
            updates["deduction_name"] = updates["deduction_name"].strip()
            if not updates["deduction_name"]:
                raise ValidationError("Deduction name is required")

        # Validate the merged result before touching the row
        self._validate_deduction(
            updates.get("deduction_type", deduction.deduction_type),
            updates.get("amount", Decimal(deduction.amount or 0)),
            updates.get("percentage", Decimal(deduction.percentage or 0)),
        )
        for field in ("deduction_name", "deduction_type", "amount", "percentage", "description", "is_active"):
            if field in updates:
                setattr(deduction, field, updates[field])
        self._commit()
        self.db.refresh(deduction)
        return deduction

    @store_operation
    def deactivate_fixed_deduction(self, deduction_id: int) -> EmployeeFixedDeduction:
        deduction = self._get_fixed_deduction(deduction_id)
        deduction.is_active = False
        self._commit()
        self.db.refresh(deduction)
        logger.info(f"Deactivated fixed deduction {deduction_id}")
        return deduction

    # ------------------------------------------------------------------
    # Salary component catalog
    # ------------------------------------------------------------------

    @store_operation
    def list_components(self) -> List[SalaryComponent]:
        return self.db.query(SalaryComponent).filter(
            SalaryComponent.company_id == self.company_id,
            SalaryComponent.is_active.is_(True),
        ).order_by(SalaryComponent.name).all()

    @store_operation
    def add_component(self, name: str, component_type: str, description: Optional[str] = None) -> SalaryComponent:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Component name is required")
        try:
            kind = ComponentKind(component_type)
        except ValueError:
            raise ValidationError("Component type must be addition or deduction")

        duplicate = self.db.query(SalaryComponent).filter(
            SalaryComponent.company_id == self.company_id,
            SalaryComponent.name == name,
            SalaryComponent.component_type == kind.value,
            SalaryComponent.is_active.is_(True),
        ).first()
        if duplicate:
            raise ConflictError(f"An active {kind.value} component named '{name}' already exists")

        component = SalaryComponent(
            company_id=self.company_id,
            name=name,
            component_type=kind.value,
            description=description,
            created_by=self.actor.user_id,
            is_active=True,
        )
        self.db.add(component)
        self._commit()
        self.db.refresh(component)
        logger.info(f"Added salary component '{name}' ({kind.value}) for company {self.company_id}")
        return component
