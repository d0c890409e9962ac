"""
Notification collaborator.

dispatch() is fire-and-forget from the caller's point of view: it never
raises, and a failure to notify never fails the operation that triggered it.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from workflowhr.models.employee import Employee
from workflowhr.models.notification import Notification
from workflowhr.models.user import User, HR_ROLES

logger = logging.getLogger(__name__)

LEAVE_REQUEST_SUBMITTED = "leave_request_submitted"
LEAVE_STATUS_UPDATED = "leave_status_updated"
SALARY_SLIP_GENERATED = "salary_slip_generated"

TITLES = {
    LEAVE_REQUEST_SUBMITTED: "New leave request",
    LEAVE_STATUS_UPDATED: "Leave request updated",
    SALARY_SLIP_GENERATED: "Salary slip available",
}


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def hr_recipients(self, company_id: int) -> List[str]:
        try:
            users = self.db.query(User).filter(
                User.company_id == company_id,
                User.role.in_(HR_ROLES),
                User.is_active.is_(True),
            ).all()
            return [u.email for u in users]
        except Exception as e:
            logger.warning(f"Could not resolve HR recipients for company {company_id}: {e}")
            return []

    @staticmethod
    def employee_recipient(employee: Optional[Employee]) -> List[str]:
        return [employee.email] if employee is not None and employee.email else []

    def dispatch(self, recipients: Iterable[str], template_kind: str, payload: Dict[str, Any]) -> int:
        """
        Record one notification per known recipient address.
        Returns the number delivered; never raises.
        """
        addresses = [a for a in dict.fromkeys(recipients or []) if a]
        if not addresses:
            logger.info(f"No recipients for {template_kind} notification")
            return 0
        try:
            body = jsonable_encoder(payload)
            users = self.db.query(User).filter(User.email.in_(addresses)).all()
            known = {u.email: u for u in users}
            for address in addresses:
                user = known.get(address)
                if user is None:
                    logger.warning(f"Notification {template_kind}: no user for {address}, skipping")
                    continue
                self.db.add(Notification(
                    user_id=user.id,
                    recipient=address,
                    kind=template_kind,
                    title=TITLES.get(template_kind, template_kind.replace("_", " ").capitalize()),
                    payload=body,
                ))
            self.db.commit()
            delivered = sum(1 for a in addresses if a in known)
            logger.info(f"Dispatched {template_kind} notification to {delivered} recipient(s)")
            return delivered
        except Exception as e:
            # Don't fail the request if notification fails
            logger.warning(f"Notification {template_kind} failed: {e}", exc_info=True)
            try:
                self.db.rollback()
            except Exception:
                logger.exception("Rollback after notification failure also failed")
            return 0
