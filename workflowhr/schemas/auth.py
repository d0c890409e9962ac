from pydantic import BaseModel
from workflowhr.models.user import UserRole, HR_ROLES


class Actor(BaseModel):
    """The already-authenticated caller, as supplied by the identity collaborator."""
    user_id: int
    role: UserRole
    company_id: int

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES
