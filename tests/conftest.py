import pytest
import os
from datetime import date

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ALLOW_CANCEL_APPROVED"] = "false"

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from leave_ledger.database import Base, get_db
from leave_ledger.main import app
from leave_ledger.core.security import UserRole, create_access_token
from leave_ledger.services.leave_balance_service import LeaveBalanceService
from leave_ledger.services.leave_request_service import LeaveRequestService
from leave_ledger.services.leave_type_service import LeaveTypeService
from leave_ledger.services.notification import NotificationDispatcher

# Service-level tests run against a fixed clock
TODAY = date(2024, 5, 1)


@pytest.fixture(scope="function")
def db_session():
    """Fresh in-memory database per test function."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def make_leave_type(db_session):
    """Factory for leave types with sensible defaults."""
    service = LeaveTypeService(db_session)
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "name": f"Vacation {counter['n']}",
            "description": "Paid time off",
            "accrual_rate": 1.25,  # 15 days a year
        }
        fields.update(overrides)
        return service.create_leave_type(fields)
    return _make


@pytest.fixture(scope="function")
def vacation(make_leave_type):
    return make_leave_type(name="Vacation", max_consecutive_days=5, accrual_rate=1.25)


@pytest.fixture(scope="function")
def ledger(db_session):
    return LeaveBalanceService(db_session, today=lambda: TODAY)


@pytest.fixture(scope="function")
def dispatcher():
    return NotificationDispatcher()


@pytest.fixture(scope="function")
def lifecycle(db_session, dispatcher):
    return LeaveRequestService(db_session, dispatcher=dispatcher, today=lambda: TODAY)


@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens for a given employee and role."""
    def _get_token(employee_id: str, role: UserRole = UserRole.EMPLOYEE, manager_id: str = None):
        claims = {"sub": employee_id, "role": role.value}
        if manager_id:
            claims["manager_id"] = manager_id
        return create_access_token(data=claims)
    return _get_token


@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _auth_headers(employee_id: str, role: UserRole = UserRole.EMPLOYEE, manager_id: str = None):
        return {"Authorization": f"Bearer {get_token(employee_id, role, manager_id)}"}
    return _auth_headers


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
