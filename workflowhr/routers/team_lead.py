from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from workflowhr.database import get_db
from workflowhr.routers.auth_deps import require_team_lead
from workflowhr.schemas.auth import Actor
from workflowhr.schemas.leave import LeaveRequestResponse, TeamLeadDecisionRequest
from workflowhr.services.leave_workflow import LeaveRequestWorkflow

router = APIRouter(prefix="/team-lead", tags=["team-lead"])


@router.get("/leave-requests", response_model=List[LeaveRequestResponse])
def list_pending_team_requests(db: Session = Depends(get_db), actor: Actor = Depends(require_team_lead())):
    """Pending requests routed to the calling team lead."""
    return LeaveRequestWorkflow(db, actor).pending_for_team_lead()


@router.put("/leave-requests/{request_id}", response_model=LeaveRequestResponse)
def decide_team_request(
    request_id: int,
    decision: TeamLeadDecisionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_team_lead()),
):
    return LeaveRequestWorkflow(db, actor).decide(
        request_id,
        approve=decision.action == "approve",
        remarks=decision.comment,
    )
