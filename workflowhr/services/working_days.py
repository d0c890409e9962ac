"""
Working Days Calendar

Translates a company's weekly work mask into day counts. The same mask-based
count serves two purposes: the number of business days in a payroll month,
and the number of days a leave request consumes (leave is only ever charged
against working days).

Reads never fail: when the configuration cannot be loaded the hardcoded
Mon–Fri default is used, so calendar trouble never blocks leave or payroll.
"""
import calendar
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from workflowhr.core.exceptions import ServiceUnavailableError, ValidationError
from workflowhr.models.company import WorkingDaysConfig, WEEKDAY_FIELDS
from workflowhr.services.base import BaseService
from workflowhr.services.store import store_operation

logger = logging.getLogger(__name__)

# Business policy: the daily rate is always monthly salary / 30, independent
# of how many working days the month actually has.
SALARY_DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12


def daily_salary_rate(annual_salary) -> Decimal:
    return Decimal(annual_salary) / MONTHS_PER_YEAR / SALARY_DAYS_PER_MONTH


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def count_working_days(config: WorkingDaysConfig, start_date: date, end_date: date) -> int:
    """Inclusive count of days in [start_date, end_date] whose weekday is working."""
    if end_date < start_date:
        return 0
    mask = config.mask
    total = 0
    current = start_date
    while current <= end_date:
        if mask[current.weekday()]:
            total += 1
        current += timedelta(days=1)
    return total


class WorkingDaysCalendar(BaseService):

    @store_operation
    def _fetch_config(self, company_id: int) -> Optional[WorkingDaysConfig]:
        return self.db.query(WorkingDaysConfig).filter(
            WorkingDaysConfig.company_id == company_id
        ).first()

    def get_config(self, company_id: int) -> WorkingDaysConfig:
        """
        Persisted configuration, or an unsaved Mon–Fri/8h default.
        Absence is not an error and this method performs no writes.
        """
        try:
            config = self._fetch_config(company_id)
        except (ServiceUnavailableError, SQLAlchemyError) as e:
            self.db.rollback()
            logger.warning(f"Working days config unavailable for company {company_id}, using default: {e}")
            config = None
        return config if config is not None else WorkingDaysConfig.default(company_id)

    @store_operation
    def get_or_create_config(self, company_id: int) -> WorkingDaysConfig:
        """
        Like get_config, but materializes the default row when none exists.
        This may write to the store.
        """
        config = self.db.query(WorkingDaysConfig).filter(
            WorkingDaysConfig.company_id == company_id
        ).first()
        if config is not None:
            return config

        config = WorkingDaysConfig.default(company_id)
        self.db.add(config)
        self._commit()
        self.db.refresh(config)
        logger.info(f"Materialized default working days config for company {company_id}")
        return config

    def update_config(self, company_id: int, changes: dict) -> WorkingDaysConfig:
        """
        Apply a partial update of the weekday mask and/or working hours.
        working_days_per_week is always recomputed from the mask.
        """
        hours = changes.get("working_hours_per_day")
        if hours is not None and not (Decimal("0") <= Decimal(str(hours)) <= Decimal("24")):
            raise ValidationError("Working hours per day must be between 0 and 24")

        config = self.get_or_create_config(company_id)
        mask = dict(zip(WEEKDAY_FIELDS, config.mask))
        for field in WEEKDAY_FIELDS:
            if changes.get(field) is not None:
                mask[field] = bool(changes[field])
        if not any(mask.values()):
            raise ValidationError("At least one day of the week must be a working day")

        return self._save_config(config, mask, hours)

    @store_operation
    def _save_config(self, config: WorkingDaysConfig, mask: dict, hours) -> WorkingDaysConfig:
        for field, value in mask.items():
            setattr(config, field, value)
        if hours is not None:
            config.working_hours_per_day = Decimal(str(hours))
        config.recount()
        self.db.add(config)
        self._commit()
        self.db.refresh(config)
        logger.info(f"Working days config updated for company {config.company_id}: {config!r}")
        return config

    def working_days_in_month(self, company_id: int, month: int, year: int) -> int:
        # month range is enforced by callers
        start, end = month_bounds(month, year)
        return count_working_days(self.get_config(company_id), start, end)

    def working_days_between(self, company_id: int, start_date: date, end_date: date) -> int:
        return count_working_days(self.get_config(company_id), start_date, end_date)
