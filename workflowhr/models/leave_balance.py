from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from workflowhr.database import Base


class LeaveBalance(Base):
    """
    One row per (employee_id, leave_type_id, year).

    The store carries no uniqueness constraint for that key; duplicates created
    by racing writers are detected and removed by LeaveBalanceLedger.
    """
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    total_days = Column(Integer, nullable=False, default=0)
    used_days = Column(Integer, nullable=False, default=0)
    remaining_days = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return (
            f"<LeaveBalance emp={self.employee_id} type={self.leave_type_id} year={self.year} "
            f"{self.used_days}/{self.total_days}>"
        )
