"""
User Model with role-based access.
Users are the routing targets for approvals and notifications.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
import enum
from workflowhr.database import Base


class UserRole(str, enum.Enum):
    """
    Hierarchy (most to least permissions):
    - ADMIN: company owner, full HR access within the company
    - HR_MANAGER: HR access, manages HR staff
    - HR: HR staff (onboards employees, approves leave, runs payroll)
    - TEAM_LEAD: first-level leave approval for their team
    - EMPLOYEE: self-service access
    """
    ADMIN = "admin"
    HR_MANAGER = "hr_manager"
    HR = "hr"
    TEAM_LEAD = "team_lead"
    EMPLOYEE = "employee"


HR_ROLES = (UserRole.ADMIN, UserRole.HR_MANAGER, UserRole.HR)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e]), default=UserRole.EMPLOYEE, nullable=False)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def is_hr(self) -> bool:
        return self.role in HR_ROLES
