"""SQLAlchemy ORM models for the transaction store"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class CategoryRecord(Base):
    """Spending/income category"""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    icon = Column(String(64), nullable=True)
    color = Column(String(16), nullable=True)
    is_income = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    transactions = relationship("TransactionRecord", back_populates="category")


class BankPatternRecord(Base):
    """Stored bank message format; keyword lists are comma-separated"""

    __tablename__ = "bank_patterns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    bank_name = Column(String(64), nullable=False)
    sender_pattern = Column(Text, nullable=False)
    amount_pattern = Column(Text, nullable=True)
    account_pattern = Column(Text, nullable=True)
    description_pattern = Column(Text, nullable=True)
    balance_pattern = Column(Text, nullable=True)
    debit_keywords = Column(Text, nullable=False, default="")
    credit_keywords = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class TransactionRecord(Base):
    """Persisted transaction derived from a bank message"""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "dedup_key", name="uq_transactions_user_dedup"),
        Index("ix_transactions_user_occurred", "user_id", "occurred_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    direction = Column(String(16), nullable=False)
    occurred_at = Column(DateTime, nullable=False)
    description = Column(Text, nullable=False, default="")
    raw_text = Column(Text, nullable=True)
    sender = Column(String(64), nullable=True)
    bank_name = Column(String(64), nullable=True)
    account = Column(String(32), nullable=True)
    merchant = Column(String(64), nullable=True)
    balance_cents = Column(BigInteger, nullable=True)
    dedup_key = Column(String(64), nullable=True)

    # Enrichment metadata, all optional
    subcategory = Column(String(64), nullable=True)
    transaction_method = Column(String(32), nullable=True)
    location = Column(String(128), nullable=True)
    reference_number = Column(String(64), nullable=True)
    enrichment_confidence = Column(Float, nullable=True)
    anomaly_flags = Column(JSON, nullable=True)
    insight = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    category = relationship("CategoryRecord", back_populates="transactions")


class SchemaMigration(Base):
    """Applied schema versions"""

    __tablename__ = "schema_migrations"

    version = Column(Integer, primary_key=True)
    description = Column(Text, nullable=False)
    applied_at = Column(DateTime, nullable=False, server_default=func.now())
