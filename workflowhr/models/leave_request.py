from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from workflowhr.database import Base
import enum


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED_BY_TEAM_LEAD = "approved_by_team_lead"
    APPROVED_BY_HR = "approved_by_hr"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (LeaveStatus.APPROVED_BY_HR, LeaveStatus.REJECTED)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False, default=0)
    reason = Column(Text, nullable=False)
    status = Column(String, default=LeaveStatus.PENDING.value, nullable=False, index=True)  # Store enum value as string

    # Routing, copied from the employee at creation
    team_lead_id = Column(Integer, nullable=True, index=True)
    hr_id = Column(Integer, nullable=True, index=True)

    team_lead_comment = Column(Text, nullable=True)
    team_lead_decided_at = Column(DateTime(timezone=True), nullable=True)
    hr_remarks = Column(Text, nullable=True)
    decided_by = Column(Integer, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    # Set once the HR approval has been charged to the ledger
    usage_recorded = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("Employee")
    leave_type = relationship("LeaveType")
