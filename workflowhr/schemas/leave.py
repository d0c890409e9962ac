from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from typing import Optional, Literal


class LeaveTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_paid: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveRequestCreate(BaseModel):
    leave_type_id: int
    start_date: date
    end_date: date
    reason: str = Field(min_length=1)
    employee_id: Optional[int] = None  # required when HR submits on behalf of someone

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Reason is required")
        return value.strip()


class LeaveRequestResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    company_id: int
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: str
    team_lead_id: Optional[int] = None
    hr_id: Optional[int] = None
    team_lead_comment: Optional[str] = None
    hr_remarks: Optional[str] = None
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HRDecisionRequest(BaseModel):
    status: Literal["approved_by_hr", "rejected"]
    hr_remarks: Optional[str] = None


class TeamLeadDecisionRequest(BaseModel):
    action: Literal["approve", "reject"]
    comment: Optional[str] = None


class LeaveBalanceResponse(BaseModel):
    id: int
    employee_id: int
    leave_type_id: int
    year: int
    total_days: int
    used_days: int
    remaining_days: int

    model_config = ConfigDict(from_attributes=True)


class CleanupSummary(BaseModel):
    groups_repaired: int
    rows_deleted: int
    rows_normalised: int
    usage_applied: int
