from typing import Optional

from sqlalchemy.orm import Session


class BaseService:
    """
    Common plumbing for the service layer: the session and the tenant scope.
    A company_id of None means unscoped (maintenance jobs only).
    """

    def __init__(self, db: Session, company_id: Optional[int] = None):
        self.db = db
        self.company_id = company_id

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
