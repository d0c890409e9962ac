import logging
from workflowhr.core.config import settings
from workflowhr.database import SessionLocal
from workflowhr.models.leave_type import LeaveType, DEFAULT_LEAVE_TYPES
from workflowhr.services.leave_balance import LeaveBalanceLedger

logger = logging.getLogger(__name__)


def seed_leave_types(db) -> int:
    """Insert any missing catalog entries. Idempotent; returns the number created."""
    existing = {name for (name,) in db.query(LeaveType.name).all()}
    created = 0
    for entry in DEFAULT_LEAVE_TYPES:
        if entry["name"] not in existing:
            db.add(LeaveType(**entry))
            created += 1
    if created:
        db.commit()
        logger.info(f"✓ Seeded {created} leave type(s)")
    return created


def init_system_data():
    """
    Startup initialization: seed reference data, then optionally run the
    ledger maintenance sweep once.
    """
    db = SessionLocal()
    try:
        seed_leave_types(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error seeding leave types: {str(e)}", exc_info=True)
        raise
    finally:
        db.close()

    if settings.cleanup_balances_on_startup:
        run_balance_cleanup()


def run_balance_cleanup():
    """Global ledger cleanup. Failures are logged and never block startup."""
    db = SessionLocal()
    try:
        summary = LeaveBalanceLedger(db).global_cleanup()
        logger.info(f"✓ Startup leave balance cleanup: {summary}")
    except Exception as e:
        db.rollback()
        logger.error(f"Startup leave balance cleanup failed: {str(e)}", exc_info=True)
    finally:
        db.close()
