"""Data access layer for transactions, categories and bank patterns"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fintrack.domain.categories import DEFAULT_CATEGORIES
from fintrack.domain.exceptions import PersistenceError
from fintrack.domain.models import BankPattern, Direction, Enrichment, OTHER_CATEGORY, Transaction
from fintrack.domain.patterns import DEFAULT_PATTERNS
from fintrack.infrastructure.database.models import BankPatternRecord, CategoryRecord, TransactionRecord
from fintrack.utils.date_utils import to_naive_utc

logger = logging.getLogger(__name__)


def to_cents(amount: Optional[Decimal]) -> Optional[int]:
    if amount is None:
        return None
    return int((amount * 100).to_integral_value())


def from_cents(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class CategoryRepository:
    """Repository for categories"""

    def __init__(self, db: Session):
        self.db = db

    def ensure_defaults(self) -> int:
        """Insert any missing default categories; returns how many were added"""
        existing = {name for (name,) in self.db.query(CategoryRecord.name).all()}
        added = 0
        for definition in DEFAULT_CATEGORIES:
            if definition.name in existing:
                continue
            self.db.add(
                CategoryRecord(
                    name=definition.name,
                    icon=definition.icon,
                    color=definition.color,
                    is_income=definition.is_income,
                )
            )
            added += 1
        self.db.flush()
        return added

    def ids_by_name(self) -> Dict[str, int]:
        return {record.name: record.id for record in self.db.query(CategoryRecord).all()}


class BankPatternRepository:
    """Repository for stored bank message formats"""

    def __init__(self, db: Session):
        self.db = db

    def ensure_defaults(self) -> int:
        if self.db.query(BankPatternRecord).count():
            return 0
        for pattern in DEFAULT_PATTERNS:
            self.add(pattern)
        self.db.flush()
        return len(DEFAULT_PATTERNS)

    def add(self, pattern: BankPattern) -> BankPatternRecord:
        record = BankPatternRecord(
            bank_name=pattern.bank_name,
            sender_pattern=pattern.sender_pattern,
            amount_pattern=pattern.amount_pattern,
            account_pattern=pattern.account_pattern,
            description_pattern=pattern.description_pattern,
            balance_pattern=pattern.balance_pattern,
            debit_keywords=",".join(pattern.debit_keywords),
            credit_keywords=",".join(pattern.credit_keywords),
        )
        self.db.add(record)
        return record

    def load_all(self) -> List[BankPattern]:
        """Stored patterns in registration order"""
        records = self.db.query(BankPatternRecord).order_by(BankPatternRecord.id).all()
        return [
            BankPattern(
                bank_name=r.bank_name,
                sender_pattern=r.sender_pattern,
                amount_pattern=r.amount_pattern,
                account_pattern=r.account_pattern,
                description_pattern=r.description_pattern,
                balance_pattern=r.balance_pattern,
                debit_keywords=tuple(k for k in (r.debit_keywords or "").split(",") if k),
                credit_keywords=tuple(k for k in (r.credit_keywords or "").split(",") if k),
            )
            for r in records
        ]


class TransactionRepository:
    """Repository for persisted transactions"""

    def __init__(self, db: Session):
        self.db = db

    def existing_dedup_keys(self, user_id: str, keys: Iterable[str]) -> set:
        """Subset of keys already persisted for the user"""
        keys = list(keys)
        if not keys:
            return set()
        found = set()
        # Chunked to stay under sqlite's bound parameter limit
        for i in range(0, len(keys), 500):
            chunk = keys[i:i + 500]
            rows = (
                self.db.query(TransactionRecord.dedup_key)
                .filter(TransactionRecord.user_id == user_id, TransactionRecord.dedup_key.in_(chunk))
                .all()
            )
            found.update(key for (key,) in rows)
        return found

    def add_all(self, transactions: Sequence[Transaction]) -> List[Transaction]:
        """
        Persist a batch within the caller's transaction.

        Any storage failure is raised as PersistenceError; the session is left
        for the caller's scope to roll back.
        """
        try:
            category_ids = CategoryRepository(self.db).ids_by_name()
            records = [self._to_record(t, category_ids) for t in transactions]
            self.db.add_all(records)
            self.db.flush()  # Get IDs without committing
        except (SQLAlchemyError, OverflowError) as e:
            logger.error("Batch write failed", extra={"batch_size": len(transactions), "error": str(e)})
            raise PersistenceError(f"Failed to persist {len(transactions)} transactions") from e

        for transaction, record in zip(transactions, records):
            transaction.id = record.id
        return list(transactions)

    def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category: Optional[str] = None,
    ) -> List[Transaction]:
        """Fetch a user's transactions, newest first, optionally windowed and filtered"""
        query = self.db.query(TransactionRecord).filter(TransactionRecord.user_id == user_id)
        if start is not None:
            query = query.filter(TransactionRecord.occurred_at >= to_naive_utc(start))
        if end is not None:
            query = query.filter(TransactionRecord.occurred_at <= to_naive_utc(end))
        if category is not None:
            query = query.join(CategoryRecord).filter(CategoryRecord.name == category)
        records = query.order_by(TransactionRecord.occurred_at.desc(), TransactionRecord.id.desc()).all()
        return [self.to_domain(r) for r in records]

    def update_directions(self, changes: Dict[int, Direction]) -> int:
        """Batched direction update keyed by transaction id"""
        if not changes:
            return 0
        try:
            self.db.bulk_update_mappings(
                TransactionRecord,
                [{"id": txn_id, "direction": direction.value} for txn_id, direction in changes.items()],
            )
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update {len(changes)} transactions") from e
        return len(changes)

    def delete(self, user_id: str, transaction_id: int) -> bool:
        deleted = (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.user_id == user_id, TransactionRecord.id == transaction_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def clear(self, user_id: str) -> int:
        return (
            self.db.query(TransactionRecord)
            .filter(TransactionRecord.user_id == user_id)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def _to_record(transaction: Transaction, category_ids: Dict[str, int]) -> TransactionRecord:
        category_id = category_ids.get(transaction.category, category_ids.get(OTHER_CATEGORY))
        enrichment = transaction.enrichment or Enrichment()
        return TransactionRecord(
            user_id=transaction.user_id,
            category_id=category_id,
            amount_cents=to_cents(transaction.amount),
            direction=transaction.direction.value,
            occurred_at=to_naive_utc(transaction.occurred_at),
            description=transaction.description,
            raw_text=transaction.raw_text,
            sender=transaction.sender,
            bank_name=transaction.bank_name,
            account=transaction.account,
            merchant=transaction.merchant,
            balance_cents=to_cents(transaction.balance),
            dedup_key=transaction.dedup_key,
            subcategory=enrichment.subcategory,
            transaction_method=enrichment.transaction_method,
            location=enrichment.location,
            reference_number=enrichment.reference_number,
            enrichment_confidence=enrichment.confidence,
            anomaly_flags=list(enrichment.anomaly_flags) or None,
            insight=enrichment.insight,
        )

    @staticmethod
    def to_domain(record: TransactionRecord) -> Transaction:
        enrichment = Enrichment(
            subcategory=record.subcategory,
            transaction_method=record.transaction_method,
            location=record.location,
            reference_number=record.reference_number,
            confidence=record.enrichment_confidence,
            anomaly_flags=list(record.anomaly_flags or []),
            insight=record.insight,
        )
        return Transaction(
            id=record.id,
            user_id=record.user_id,
            amount=from_cents(record.amount_cents),
            direction=Direction.from_stored(record.direction),
            occurred_at=record.occurred_at,
            category=record.category.name if record.category else OTHER_CATEGORY,
            description=record.description or "",
            raw_text=record.raw_text,
            sender=record.sender,
            bank_name=record.bank_name,
            account=record.account,
            merchant=record.merchant,
            balance=from_cents(record.balance_cents),
            dedup_key=record.dedup_key,
            enrichment=None if enrichment.is_empty() else enrichment,
        )
