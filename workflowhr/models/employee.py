from sqlalchemy import Column, Integer, String, Date, Numeric, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from workflowhr.database import Base
import enum


class DeductionType(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, index=True, nullable=False)

    joining_date = Column(Date, nullable=False)
    salary = Column(Numeric(12, 2), nullable=False, default=0)  # annual
    leave_balance = Column(Integer, nullable=False, default=0)  # paid-leave entitlement per year

    # Weak references to users, copied onto leave requests for routing
    team_lead_id = Column(Integer, nullable=True, index=True)
    created_by = Column(Integer, nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    fixed_deductions = relationship("EmployeeFixedDeduction", back_populates="employee", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Employee {self.id} {self.email}>"


class EmployeeFixedDeduction(Base):
    __tablename__ = "employee_fixed_deductions"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    deduction_name = Column(String, nullable=False)
    deduction_type = Column(String, nullable=False, default=DeductionType.FIXED.value)  # Store enum value as string
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    percentage = Column(Numeric(5, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    employee = relationship("Employee", back_populates="fixed_deductions")
