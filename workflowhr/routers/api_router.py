from fastapi import APIRouter
from workflowhr.routers import leave, payroll, team_lead, working_days

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(working_days.router, tags=["Working Days"])
api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(team_lead.router, tags=["Team Lead"])
api_router.include_router(payroll.router, tags=["Salary"])
