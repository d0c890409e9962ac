from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from datetime import date, datetime
from typing import List, Optional, Literal, Any

from workflowhr.models.salary_slip import ComponentKind


class SlipComponent(BaseModel):
    """A single addition or deduction line, validated at the boundary."""
    name: str
    amount: Decimal
    kind: ComponentKind
    description: Optional[str] = None

    @classmethod
    def parse_lenient(cls, raw: Any, kind: ComponentKind) -> Optional["SlipComponent"]:
        """Build a component from caller input; None when the item is unusable."""
        if not isinstance(raw, dict):
            return None
        name = raw.get("name") or raw.get("component_name")
        if not isinstance(name, str) or not name.strip():
            return None
        try:
            amount = Decimal(str(raw.get("amount")))
        except (ArithmeticError, ValueError, TypeError):
            return None
        if not amount.is_finite() or amount <= 0:
            return None
        description = raw.get("description")
        return cls(
            name=name.strip(),
            amount=amount,
            kind=kind,
            description=description if isinstance(description, str) else None,
        )


class SlipAdjustments(BaseModel):
    additions: List[SlipComponent] = []
    deductions: List[SlipComponent] = []

    @classmethod
    def from_raw(cls, additions: Optional[list] = None, deductions: Optional[list] = None) -> "SlipAdjustments":
        """Invalid items are dropped rather than failing the whole request."""
        return cls(
            additions=[c for c in (SlipComponent.parse_lenient(r, ComponentKind.ADDITION) for r in additions or []) if c],
            deductions=[c for c in (SlipComponent.parse_lenient(r, ComponentKind.DEDUCTION) for r in deductions or []) if c],
        )


class GenerateSlipRequest(BaseModel):
    employee_id: int
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    # Raw items; each is validated individually and dropped if invalid
    additions: List[Any] = []
    deductions: List[Any] = []
    notes: Optional[str] = None


class RegenerateSlipRequest(BaseModel):
    employee_id: int
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class SlipDetailResponse(BaseModel):
    id: int
    component_name: str
    component_type: str
    amount: Decimal
    description: Optional[str] = None
    is_fixed: bool = False

    model_config = ConfigDict(from_attributes=True)


class SalarySlipResponse(BaseModel):
    id: int
    employee_id: int
    company_id: int
    month: int
    year: int
    basic_salary: Decimal
    total_working_days: int
    actual_working_days: int
    unpaid_leaves: int
    gross_salary: Decimal
    total_additions: Decimal
    total_deductions: Decimal
    leave_deduction: Decimal
    net_salary: Decimal
    notes: Optional[str] = None
    needs_recalculation: bool = False
    created_at: Optional[datetime] = None
    details: List[SlipDetailResponse] = []

    model_config = ConfigDict(from_attributes=True)


class FixedDeductionCreate(BaseModel):
    deduction_name: str = Field(min_length=1)
    deduction_type: Literal["fixed", "percentage"]
    amount: Decimal = Decimal("0")
    percentage: Decimal = Decimal("0")
    description: Optional[str] = None


class FixedDeductionUpdate(BaseModel):
    deduction_name: Optional[str] = None
    deduction_type: Optional[Literal["fixed", "percentage"]] = None
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class FixedDeductionResponse(BaseModel):
    id: int
    employee_id: int
    deduction_name: str
    deduction_type: str
    amount: Decimal
    percentage: Decimal
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SalaryComponentCreate(BaseModel):
    name: str = Field(min_length=1)
    component_type: ComponentKind
    description: Optional[str] = None


class SalaryComponentResponse(BaseModel):
    id: int
    company_id: int
    name: str
    component_type: str
    description: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UnpaidLeaveEntry(BaseModel):
    request_id: int
    leave_type: str
    start_date: date
    end_date: date
    days_in_month: int


class UnpaidLeaveDaysResponse(BaseModel):
    employee_id: int
    month: int
    year: int
    unpaid_leaves: List[UnpaidLeaveEntry] = []
    total_unpaid_days: int
