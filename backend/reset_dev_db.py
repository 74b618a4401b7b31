#!/usr/bin/env python3
"""
Reset development database - creates fresh schema and a demo company with one
factor and a handful of open receivable installments.
Run from the backend/ directory.
"""
import os
import uuid
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Ensure we're in the backend directory
backend_dir = Path(__file__).parent
os.chdir(backend_dir)

# Force load .env before importing factoring modules
from dotenv import load_dotenv

load_dotenv(backend_dir / ".env", override=True)

# Always target the local sqlite dev DB for this script.
os.environ["DATABASE_URL"] = "sqlite:///./dev.db"

# Now import factoring modules
from factoring import models  # noqa: E402
from factoring.database import Base, SessionLocal, engine  # noqa: E402

DEMO_COMPANY_ID = "00000000-0000-4000-8000-000000000001"


def seed_demo_company(db) -> None:
    factor = models.Factor(
        company_id=DEMO_COMPANY_ID,
        organization_id=str(uuid.uuid4()),
        name="Factor Demo",
        code="DEMO",
        default_interest_rate=Decimal("2.0"),
        default_fee_rate=Decimal("1.0"),
        default_iof_rate=Decimal("0.0041"),
        default_grace_days=0,
    )
    db.add(factor)

    today = date.today()
    for n in range(1, 6):
        title = models.ArTitle(
            company_id=DEMO_COMPANY_ID,
            customer_id=str(uuid.uuid4()),
            document_number=f"NF-{1000 + n}",
        )
        db.add(title)
        db.flush()
        db.add(
            models.ArInstallment(
                company_id=DEMO_COMPANY_ID,
                ar_title_id=title.id,
                installment_number=1,
                due_date=today + timedelta(days=30 * n),
                amount_open=Decimal("1000.00") * n,
            )
        )
    db.commit()


def main():
    db_path = backend_dir / "dev.db"

    # Remove existing database
    if db_path.exists():
        print(f"Removing existing database: {db_path}")
        db_path.unlink()

    # Create all tables (SQLAlchemy) to match current ORM models.
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created")

    db = SessionLocal()
    try:
        print("Seeding demo company...")
        seed_demo_company(db)
        print(f"Demo company ready (X-Company-ID: {DEMO_COMPANY_ID})")
        print(f"Database: {db_path}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
