"""
Salary Router

Handles HTTP endpoints for salary slips, fixed deductions and the
company salary component catalog.
All business logic is delegated to the payroll service layer.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from workflowhr.database import get_db
from workflowhr.routers.auth_deps import get_current_actor, require_hr
from workflowhr.schemas.auth import Actor
from workflowhr.schemas.payroll import (
    FixedDeductionCreate,
    FixedDeductionResponse,
    FixedDeductionUpdate,
    GenerateSlipRequest,
    RegenerateSlipRequest,
    SalaryComponentCreate,
    SalaryComponentResponse,
    SalarySlipResponse,
    SlipAdjustments,
)
from workflowhr.services.payroll_service import PayrollCalculator

router = APIRouter(prefix="/salary", tags=["salary"])


@router.post("/generate", response_model=SalarySlipResponse, status_code=201)
def generate_salary_slip(
    request: GenerateSlipRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    """
    Generate the monthly slip for one employee.

    Invalid addition/deduction items are dropped, not rejected.
    Fails with 409 if a slip already exists for the month.
    """
    adjustments = SlipAdjustments.from_raw(request.additions, request.deductions)
    return PayrollCalculator(db, actor).generate_slip(
        request.employee_id, request.month, request.year, adjustments, notes=request.notes
    )


@router.post("/regenerate", response_model=SalarySlipResponse)
def regenerate_salary_slip(
    request: RegenerateSlipRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).regenerate_slip(request.employee_id, request.month, request.year)


@router.get("/slips", response_model=List[SalarySlipResponse])
def list_salary_slips(
    employee_id: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).list_slips(employee_id=employee_id)


@router.get("/my-slips", response_model=List[SalarySlipResponse])
def list_my_salary_slips(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return PayrollCalculator(db, actor).my_slips()


@router.get("/slips/{slip_id}", response_model=SalarySlipResponse)
def get_salary_slip(slip_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return PayrollCalculator(db, actor).get_slip(slip_id)


@router.get("/slips/{slip_id}/download")
def download_salary_slip(slip_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    document = PayrollCalculator(db, actor).render_slip(slip_id)
    return Response(
        content=document,
        media_type="text/html",
        headers={"Content-Disposition": f'attachment; filename="salary-slip-{slip_id}.html"'},
    )


# --- Fixed deductions ---

@router.get("/fixed-deductions/{employee_id}", response_model=List[FixedDeductionResponse])
def list_fixed_deductions(
    employee_id: int,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).list_fixed_deductions(employee_id, include_inactive=include_inactive)


@router.post("/fixed-deductions/{employee_id}", response_model=FixedDeductionResponse, status_code=201)
def add_fixed_deduction(
    employee_id: int,
    payload: FixedDeductionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).add_fixed_deduction(employee_id, payload.model_dump())


@router.put("/fixed-deductions/item/{deduction_id}", response_model=FixedDeductionResponse)
def update_fixed_deduction(
    deduction_id: int,
    payload: FixedDeductionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).update_fixed_deduction(deduction_id, payload.model_dump(exclude_unset=True))


@router.delete("/fixed-deductions/item/{deduction_id}", response_model=FixedDeductionResponse)
def delete_fixed_deduction(
    deduction_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    """Soft delete: the deduction is deactivated and stops applying to new slips."""
    return PayrollCalculator(db, actor).deactivate_fixed_deduction(deduction_id)


# --- Salary component catalog ---

@router.get("/components", response_model=List[SalaryComponentResponse])
def list_salary_components(db: Session = Depends(get_db), actor: Actor = Depends(require_hr())):
    return PayrollCalculator(db, actor).list_components()


@router.post("/components", response_model=SalaryComponentResponse, status_code=201)
def add_salary_component(
    payload: SalaryComponentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_hr()),
):
    return PayrollCalculator(db, actor).add_component(
        payload.name, payload.component_type.value, description=payload.description
    )
