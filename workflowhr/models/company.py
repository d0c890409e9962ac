"""
Company (tenant) and its weekly working-days configuration.
"""
from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from decimal import Decimal
from workflowhr.database import Base

# Monday-first, matching date.weekday()
WEEKDAY_FIELDS = (
    "monday_working",
    "tuesday_working",
    "wednesday_working",
    "thursday_working",
    "friday_working",
    "saturday_working",
    "sunday_working",
)

DEFAULT_WORKING_HOURS_PER_DAY = Decimal("8.00")
DEFAULT_WORKING_MASK = (True, True, True, True, True, False, False)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    working_days = relationship("WorkingDaysConfig", back_populates="company", uselist=False)


class WorkingDaysConfig(Base):
    __tablename__ = "company_working_days"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), unique=True, nullable=False, index=True)

    # Derived from the mask below, never authoritative on its own
    working_days_per_week = Column(Integer, default=5, nullable=False)
    working_hours_per_day = Column(Numeric(4, 2), default=DEFAULT_WORKING_HOURS_PER_DAY, nullable=False)

    monday_working = Column(Boolean, default=True, nullable=False)
    tuesday_working = Column(Boolean, default=True, nullable=False)
    wednesday_working = Column(Boolean, default=True, nullable=False)
    thursday_working = Column(Boolean, default=True, nullable=False)
    friday_working = Column(Boolean, default=True, nullable=False)
    saturday_working = Column(Boolean, default=False, nullable=False)
    sunday_working = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    company = relationship("Company", back_populates="working_days")

    @classmethod
    def default(cls, company_id=None) -> "WorkingDaysConfig":
        """Unsaved Mon–Fri, 8h configuration."""
        config = cls(
            company_id=company_id,
            working_hours_per_day=DEFAULT_WORKING_HOURS_PER_DAY,
            **dict(zip(WEEKDAY_FIELDS, DEFAULT_WORKING_MASK)),
        )
        config.recount()
        return config

    @property
    def mask(self) -> tuple:
        return tuple(bool(getattr(self, field)) for field in WEEKDAY_FIELDS)

    def recount(self) -> int:
        self.working_days_per_week = sum(self.mask)
        return self.working_days_per_week

    def __repr__(self):
        days = "".join("X" if on else "." for on in self.mask)
        return f"<WorkingDaysConfig company={self.company_id} {days}>"
