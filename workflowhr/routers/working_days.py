"""
Working Days Router

Company calendar configuration and working-day counts.
All business logic is delegated to WorkingDaysCalendar.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from workflowhr.core.exceptions import ValidationError
from workflowhr.database import get_db
from workflowhr.routers.auth_deps import get_current_actor, require_hr
from workflowhr.schemas.auth import Actor
from workflowhr.schemas.working_days import (
    WorkingDaysConfigResponse,
    WorkingDaysConfigUpdate,
    WorkingDaysInMonthResponse,
)
from workflowhr.services.working_days import WorkingDaysCalendar

router = APIRouter(prefix="/working-days", tags=["working-days"])


@router.get("/config", response_model=WorkingDaysConfigResponse)
def get_working_days_config(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Persisted configuration, or the Mon–Fri default. Never writes."""
    return WorkingDaysCalendar(db, company_id=actor.company_id).get_config(actor.company_id)


@router.put("/config", response_model=WorkingDaysConfigResponse)
def update_working_days_config(
    changes: WorkingDaysConfigUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    calendar = WorkingDaysCalendar(db, company_id=actor.company_id)
    return calendar.update_config(actor.company_id, changes.model_dump(exclude_unset=True))


@router.get("/calculate/{month}/{year}", response_model=WorkingDaysInMonthResponse)
def calculate_working_days(
    month: int,
    year: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not 1 <= month <= 12:
        raise ValidationError("Invalid month. Must be between 1 and 12")
    if not 1900 <= year <= 2100:
        raise ValidationError("Invalid year")

    calendar = WorkingDaysCalendar(db, company_id=actor.company_id)
    config = calendar.get_config(actor.company_id)
    return {
        "month": month,
        "year": year,
        "working_days": calendar.working_days_in_month(actor.company_id, month, year),
        "config": config,
    }
