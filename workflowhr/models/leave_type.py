from sqlalchemy import Column, Integer, String, Boolean, Text
from workflowhr.database import Base

# Seeded at startup; see workflowhr.core.init_system
DEFAULT_LEAVE_TYPES = (
    {"name": "Annual Leave", "description": "Regular annual leave with full pay", "is_paid": True},
    {"name": "Sick Leave", "description": "Medical leave with full pay", "is_paid": True},
    {"name": "Personal Leave", "description": "Personal leave without pay", "is_paid": False},
)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    is_paid = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<LeaveType {self.name} paid={self.is_paid}>"
