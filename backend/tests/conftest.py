import os
import uuid
from datetime import date
from decimal import Decimal

# CRITICAL: Set environment variables BEFORE any factoring imports
# These must be set before factoring.config.settings is loaded
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["API_V1_STR"] = "/api"  # Ensure /api prefix is used in tests

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Now import factoring modules - they will use the test DATABASE_URL
from factoring import models
from factoring.database import Base, get_db, engine as app_engine
from factoring.main import app
from factoring.services.factor_service import FactorService

# Use the same engine that the app uses (StaticPool for :memory:)
TEST_ENGINE = app_engine

TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=TEST_ENGINE, future=True
)

COMPANY_ID = "11111111-1111-4111-8111-111111111111"
OTHER_COMPANY_ID = "33333333-3333-4333-8333-333333333333"
USER_ID = "22222222-2222-4222-8222-222222222222"

HEADERS = {"X-Company-ID": COMPANY_ID, "X-User-ID": USER_ID}


def override_get_db():
    """Test database session that uses the test engine."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


# Override the ORIGINAL function from the database module
app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function", autouse=True)
def setup_test_database():
    """
    Create all tables before each test and clean up after.
    Also restores dependency overrides so tests stay isolated.
    """
    original_overrides = dict(app.dependency_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)
    Base.metadata.create_all(bind=TEST_ENGINE)

    yield

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)

    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def service(db_session):
    return FactorService(db_session, COMPANY_ID, USER_ID)


@pytest.fixture
def seed_factor(db_session):
    """Factory for committed factors. Defaults to the reference rate card."""

    def _make(**overrides) -> models.Factor:
        values = {
            "company_id": COMPANY_ID,
            "organization_id": str(uuid.uuid4()),
            "name": "Factor Alfa",
            "code": "ALFA",
            "default_interest_rate": Decimal("2"),
            "default_fee_rate": Decimal("1"),
            "default_iof_rate": Decimal("0.38"),
            "default_other_cost_rate": Decimal("0"),
            "default_grace_days": 5,
            "default_auto_settle_buyback": False,
            "is_active": True,
        }
        values.update(overrides)
        factor = models.Factor(**values)
        db_session.add(factor)
        db_session.commit()
        db_session.refresh(factor)
        return factor

    return _make


@pytest.fixture
def seed_installment(db_session):
    """Factory for committed receivable installments, one title each."""

    def _make(
        *,
        amount: str = "1000.00",
        due_date: date = date(2026, 1, 31),
        status: models.InstallmentStatus = models.InstallmentStatus.OPEN,
        custody: models.FactorCustodyStatus = models.FactorCustodyStatus.own,
        factor_id: str | None = None,
        document_number: str | None = None,
        company_id: str = COMPANY_ID,
    ) -> models.ArInstallment:
        title = models.ArTitle(
            company_id=company_id,
            customer_id=str(uuid.uuid4()),
            document_number=document_number or f"NF-{uuid.uuid4().hex[:6]}",
        )
        db_session.add(title)
        db_session.flush()
        installment = models.ArInstallment(
            company_id=company_id,
            ar_title_id=title.id,
            installment_number=1,
            due_date=due_date,
            amount_open=Decimal(amount),
            status=status,
            factor_custody_status=custody,
            factor_id=factor_id,
        )
        db_session.add(installment)
        db_session.commit()
        db_session.refresh(installment)
        return installment

    return _make
