"""Pytest fixtures for testing"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Generator
from sqlalchemy.orm import Session, sessionmaker
from fintrack.domain.models import Direction, RawMessage, Transaction
from fintrack.domain.patterns import PatternRegistry
from fintrack.infrastructure.database.migrations import migrate
from fintrack.infrastructure.database.session import create_db_engine, create_session_factory
from fintrack.services.pipeline import FinancePipeline, bootstrap

TEST_DATABASE_URL = "sqlite:///:memory:"

DEBIT_SMS = "Rs.450.00 debited from A/c XX1234 at SWIGGY on 12-01-25. Avl Bal Rs 10,000.00"
CREDIT_SMS = "Your A/c XX5678 is credited with Rs 25,000.00 on 01-01-25 by NEFT from ACME CORP. Salary."
DISPUTE_SMS = (
    "ICICIBANK Acct xxx961 debited for Rs 5000.00 on 01-01-25 anand icici credited "
    "call +9988798 for dispute."
)


@pytest.fixture
def engine():
    """Migrated in-memory database shared by every session of one test"""
    engine = create_db_engine(TEST_DATABASE_URL)
    migrate(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return create_session_factory(engine)


@pytest.fixture
def registry(session_factory) -> PatternRegistry:
    """Default categories and bank patterns seeded, registry loaded from storage"""
    return bootstrap(session_factory)


@pytest.fixture
def db(session_factory, registry) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def pipeline(session_factory, registry) -> FinancePipeline:
    """Pipeline without remote enrichment"""
    return FinancePipeline(session_factory, registry, adapter=None, user_id="user_test")


@pytest.fixture
def mixed_inbox() -> list[RawMessage]:
    """One clear debit, one clear credit, one debit with a credit keyword in dispute wording"""
    return [
        RawMessage(sender="HDFCBK", body=DEBIT_SMS, received_at=datetime(2025, 1, 12, 13, 5, 22)),
        RawMessage(sender="SBIINB", body=CREDIT_SMS, received_at=datetime(2025, 1, 1, 9, 0, 5)),
        RawMessage(sender="ICICIB", body=DISPUTE_SMS, received_at=datetime(2025, 1, 1, 18, 45, 0)),
    ]


@pytest.fixture
def make_transaction():
    """Factory for domain transactions with sensible defaults"""

    def _make(
        amount,
        occurred_at: datetime,
        direction: Direction = Direction.EXPENSE,
        category: str = "Food & Dining",
        merchant: str = None,
        user_id: str = "user_test",
        **kwargs,
    ) -> Transaction:
        return Transaction(
            user_id=user_id,
            amount=Decimal(str(amount)),
            direction=direction,
            occurred_at=occurred_at,
            category=category,
            merchant=merchant,
            **kwargs,
        )

    return _make
