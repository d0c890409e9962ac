from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from workflowhr.database import Base


class SalaryComponent(Base):
    """
    Company catalog of named additions and deductions offered when HR builds
    a slip. Slips copy the name into their detail rows, so later catalog
    edits never change an issued slip.
    """
    __tablename__ = "salary_components"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    component_type = Column(String, nullable=False)  # ComponentKind value
    description = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
