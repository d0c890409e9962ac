import pytest
import os
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CLEANUP_BALANCES_ON_STARTUP"] = "false"
os.environ["STORE_RETRY_BACKOFF_SECONDS"] = "0"

from jose import jwt
from workflowhr.core.config import settings
from workflowhr.core.init_system import seed_leave_types
from workflowhr.database import Base, get_db
from workflowhr.main import app
from workflowhr.models import Company, Employee, LeaveType, User, UserRole
from workflowhr.schemas.auth import Actor
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit it ourselves
@event.listens_for(engine, "connect")
def _disable_pysqlite_begin(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Get a clean database session for each test function with rollback safety.
    Service commits and rollbacks act on savepoints inside the outer
    transaction, which is discarded at teardown.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def company(db_session):
    company = Company(name="Alpha Corp")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope="function")
def other_company(db_session):
    company = Company(name="Beta Corp")
    db_session.add(company)
    db_session.commit()
    return company


def _make_user(db_session, email, role, company_id):
    user = User(email=email, full_name=email.split("@")[0], role=role, company_id=company_id, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope="function")
def hr_user(db_session, company):
    return _make_user(db_session, "hr@alphacorp.com", UserRole.HR, company.id)


@pytest.fixture(scope="function")
def team_lead_user(db_session, company):
    return _make_user(db_session, "lead@alphacorp.com", UserRole.TEAM_LEAD, company.id)


@pytest.fixture(scope="function")
def employee_user(db_session, company):
    return _make_user(db_session, "dev@alphacorp.com", UserRole.EMPLOYEE, company.id)


@pytest.fixture(scope="function")
def other_hr_user(db_session, other_company):
    return _make_user(db_session, "hr@betacorp.com", UserRole.HR, other_company.id)


@pytest.fixture(scope="function")
def leave_types(db_session):
    """The seeded catalog, keyed by name."""
    seed_leave_types(db_session)
    return {lt.name: lt for lt in db_session.query(LeaveType).all()}


@pytest.fixture(scope="function")
def employee(db_session, company, employee_user, team_lead_user, hr_user):
    employee = Employee(
        company_id=company.id,
        user_id=employee_user.id,
        full_name="Dana Developer",
        email=employee_user.email,
        joining_date=date(2020, 1, 1),
        salary=Decimal("360000.00"),
        leave_balance=20,
        team_lead_id=team_lead_user.id,
        created_by=hr_user.id,
    )
    db_session.add(employee)
    db_session.commit()
    return employee


@pytest.fixture(scope="function")
def actor_for():
    def _actor_for(user):
        return Actor(user_id=user.id, role=user.role, company_id=user.company_id)
    return _actor_for


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create identity tokens the way the identity service issues them."""
    def _get_token(user):
        return jwt.encode(
            {"sub": str(user.id), "role": user.role.value, "company_id": user.company_id},
            settings.auth.secret_key,
            algorithm=settings.auth.algorithm,
        )
    return _get_token


@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def next_monday():
    """The Monday of next week; always in the future."""
    today = date.today()
    return today + timedelta(days=7 - today.weekday())
