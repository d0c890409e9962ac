from pydantic import BaseModel, ConfigDict, Field
from decimal import Decimal
from typing import Optional


class WorkingDaysConfigResponse(BaseModel):
    company_id: Optional[int] = None
    working_days_per_week: int
    working_hours_per_day: Decimal
    monday_working: bool
    tuesday_working: bool
    wednesday_working: bool
    thursday_working: bool
    friday_working: bool
    saturday_working: bool
    sunday_working: bool

    model_config = ConfigDict(from_attributes=True)


class WorkingDaysConfigUpdate(BaseModel):
    """Partial update. working_days_per_week is derived and cannot be set."""
    working_hours_per_day: Optional[Decimal] = Field(default=None, ge=0, le=24)
    monday_working: Optional[bool] = None
    tuesday_working: Optional[bool] = None
    wednesday_working: Optional[bool] = None
    thursday_working: Optional[bool] = None
    friday_working: Optional[bool] = None
    saturday_working: Optional[bool] = None
    sunday_working: Optional[bool] = None


class WorkingDaysInMonthResponse(BaseModel):
    month: int
    year: int
    working_days: int
    config: WorkingDaysConfigResponse
