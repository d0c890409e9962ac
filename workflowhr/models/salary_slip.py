from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from workflowhr.database import Base
import enum


class ComponentKind(str, enum.Enum):
    ADDITION = "addition"
    DEDUCTION = "deduction"


class SalarySlip(Base):
    """One per (employee_id, month, year); enforced by an existence check before insert."""
    __tablename__ = "salary_slips"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    basic_salary = Column(Numeric(12, 2), nullable=False)
    total_working_days = Column(Integer, nullable=False)
    actual_working_days = Column(Integer, nullable=False)
    unpaid_leaves = Column(Integer, nullable=False, default=0)
    gross_salary = Column(Numeric(12, 2), nullable=False)
    total_additions = Column(Numeric(12, 2), nullable=False, default=0)
    total_deductions = Column(Numeric(12, 2), nullable=False, default=0)
    leave_deduction = Column(Numeric(12, 2), nullable=False, default=0)
    net_salary = Column(Numeric(12, 2), nullable=False)

    notes = Column(Text, nullable=True)
    generated_by = Column(Integer, nullable=True)
    needs_recalculation = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    details = relationship("SalarySlipDetail", back_populates="salary_slip", cascade="all, delete-orphan")


class SalarySlipDetail(Base):
    __tablename__ = "salary_slip_details"

    id = Column(Integer, primary_key=True, index=True)
    salary_slip_id = Column(Integer, ForeignKey("salary_slips.id"), nullable=False, index=True)
    component_name = Column(String, nullable=False)
    component_type = Column(String, nullable=False)  # Store enum value as string
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String, nullable=True)
    is_fixed = Column(Boolean, default=False, nullable=False)

    salary_slip = relationship("SalarySlip", back_populates="details")
