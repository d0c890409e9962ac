# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import (
    company, user, employee, leave_type, leave_balance,
    leave_request, salary_slip, salary_component, notification
)

# Explicit class exports for cleaner imports
from .company import Company, WorkingDaysConfig
from .user import User, UserRole
from .employee import Employee, EmployeeFixedDeduction, DeductionType
from .leave_type import LeaveType
from .leave_balance import LeaveBalance
from .leave_request import LeaveRequest, LeaveStatus
from .salary_slip import SalarySlip, SalarySlipDetail, ComponentKind
from .salary_component import SalaryComponent
from .notification import Notification

__all__ = [
    "Company",
    "WorkingDaysConfig",
    "User",
    "UserRole",
    "Employee",
    "EmployeeFixedDeduction",
    "DeductionType",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveStatus",
    "SalarySlip",
    "SalarySlipDetail",
    "ComponentKind",
    "SalaryComponent",
    "Notification",
]
