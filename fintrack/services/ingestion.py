"""Ingestion orchestrator - raw inbox messages to persisted, deduplicated transactions"""

import asyncio
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from fintrack.config import settings
from fintrack.domain.categories import describe, infer_category
from fintrack.domain.classifier import classify, is_financial
from fintrack.domain.dedup import compute_dedup_key
from fintrack.domain.exceptions import IngestionInProgressError, PersistenceError
from fintrack.domain.extraction import MAX_AMOUNT, clean_merchant, extract
from fintrack.domain.models import (
    INCOME_CATEGORY,
    Direction,
    EnrichmentResult,
    EnrichmentUnavailable,
    IngestionResult,
    RawMessage,
    Transaction,
)
from fintrack.domain.patterns import PatternRegistry
from fintrack.infrastructure.clients.enrichment import EnrichmentAdapter
from fintrack.infrastructure.database.repositories import TransactionRepository
from fintrack.infrastructure.database.session import session_scope
from fintrack.infrastructure.observability.logging import log_ingestion_run, log_reclassification
from fintrack.infrastructure.observability.metrics import record_ingestion, reclassified_counter
from fintrack.utils.date_utils import to_naive_utc

logger = logging.getLogger(__name__)


def merge_enrichment(transaction: Transaction, result: EnrichmentResult) -> None:
    """
    Fold a remote analysis into a heuristically built transaction.

    Amount, category and merchant are replaced only by sane values; the
    direction always stays with the local classifier.
    """
    amount = result.amount
    if amount is not None and amount.is_finite() and 0 < amount <= MAX_AMOUNT:
        transaction.amount = amount
    # Income-only category never labels an expense
    if result.category and not (result.category == INCOME_CATEGORY and transaction.direction == Direction.EXPENSE):
        transaction.category = result.category
    merchant = clean_merchant(result.merchant)
    if merchant:
        transaction.merchant = merchant
    enrichment = result.to_enrichment()
    transaction.enrichment = None if enrichment.is_empty() else enrichment


class IngestionOrchestrator:
    """Runs one user's scan: parse, classify, dedup, enrich, then a single batch write"""

    # Users with a run in progress, shared by every orchestrator in the process
    _active = set()
    _lock = threading.Lock()

    def __init__(
        self,
        session_factory: sessionmaker,
        registry: PatternRegistry,
        adapter: Optional[EnrichmentAdapter] = None,
        user_id: Optional[str] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.adapter = adapter
        self.user_id = user_id or settings.default_user_id
        self.max_concurrency = max_concurrency or settings.enrichment_max_concurrency

    @contextmanager
    def _run_guard(self):
        with self._lock:
            if self.user_id in self._active:
                raise IngestionInProgressError(f"A run is already active for user {self.user_id}")
            self._active.add(self.user_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(self.user_id)

    def build_transaction(self, message: RawMessage, dedup_key: str) -> Optional[Transaction]:
        """Heuristic transaction for one message, or None when it is not financial"""
        pattern = self.registry.find_pattern(message.sender)
        if pattern is None:
            logger.debug("No bank pattern for sender", extra={"sender": message.sender})
        fields = extract(message.body, pattern)

        if fields.amount is None and not is_financial(message.body):
            return None

        direction = classify(message.body)
        return Transaction(
            user_id=self.user_id,
            amount=fields.amount if fields.amount is not None else Decimal("0.00"),
            direction=direction,
            occurred_at=to_naive_utc(message.received_at),
            category=infer_category(message.body, fields.merchant, direction),
            description=describe(message.body, direction, fields.merchant),
            raw_text=message.body,
            sender=message.sender,
            bank_name=pattern.bank_name if pattern else None,
            account=fields.account,
            merchant=fields.merchant,
            balance=fields.balance,
            dedup_key=dedup_key,
        )

    async def ingest(self, messages: Sequence[RawMessage]) -> IngestionResult:
        """
        Process one inbox snapshot.

        Flow:
        1. Dedup keys for every message; repeats within the batch are dropped
        2. Keys already stored for the user are dropped
        3. Pattern lookup, extraction, direction, category per message
        4. Non-financial messages (no amount, no money wording) are skipped
        5. Optional bounded-concurrency enrichment
        6. One batched write; any storage error rolls back the whole run

        Raises:
            IngestionInProgressError: Another run is active for this user
            PersistenceError: The batch could not be stored
        """
        with self._run_guard():
            start_time = time.time()
            result = IngestionResult(run_id=uuid.uuid4().hex, received=len(messages))
            try:
                await self._ingest(messages, result)
            except PersistenceError as e:
                result.error = str(e)
                result.transactions = []
                raise
            finally:
                record_ingestion(result)
                log_ingestion_run(
                    run_id=result.run_id,
                    user_id=self.user_id,
                    received=result.received,
                    created=result.created,
                    duplicates=result.duplicates,
                    skipped_non_financial=result.skipped_non_financial,
                    enriched=result.enriched,
                    enrichment_unavailable=result.enrichment_unavailable,
                    duration_ms=(time.time() - start_time) * 1000,
                    error=result.error,
                )
            return result

    async def _ingest(self, messages: Sequence[RawMessage], result: IngestionResult) -> None:
        candidates = []
        seen = set()
        for message in messages:
            key = compute_dedup_key(message)
            if key in seen:
                result.duplicates += 1
                continue
            seen.add(key)
            candidates.append((message, key))

        if not candidates:
            return

        try:
            with session_scope(self.session_factory) as db:
                stored = TransactionRepository(db).existing_dedup_keys(self.user_id, seen)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to read stored transactions") from e

        drafts: List[Transaction] = []
        for message, key in candidates:
            if key in stored:
                result.duplicates += 1
                continue
            transaction = self.build_transaction(message, key)
            if transaction is None:
                result.skipped_non_financial += 1
                continue
            drafts.append(transaction)

        if not drafts:
            return

        if self.adapter is not None and self.adapter.available:
            await self._enrich(drafts, result)

        try:
            with session_scope(self.session_factory) as db:
                TransactionRepository(db).add_all(drafts)
        except (SQLAlchemyError, OverflowError) as e:
            raise PersistenceError(f"Failed to persist {len(drafts)} transactions") from e

        result.transactions = drafts

    async def _enrich(self, drafts: List[Transaction], result: IngestionResult) -> None:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def enrich_one(transaction: Transaction):
            async with semaphore:
                return transaction, await self.adapter.analyze(transaction.raw_text)

        outcomes = await asyncio.gather(*(enrich_one(t) for t in drafts))
        for transaction, outcome in outcomes:
            if isinstance(outcome, EnrichmentUnavailable):
                result.enrichment_unavailable += 1
                continue
            merge_enrichment(transaction, outcome)
            result.enriched += 1

    def reclassify(self, existing: Optional[Sequence[Transaction]] = None) -> int:
        """
        Re-run direction classification on stored message text.

        Only direction changes are written, in one batched update.
        Returns the number of transactions updated.
        """
        with self._run_guard():
            start_time = time.time()
            try:
                with session_scope(self.session_factory) as db:
                    repo = TransactionRepository(db)
                    transactions = existing if existing is not None else repo.list_transactions(self.user_id)
                    changes = {}
                    for transaction in transactions:
                        if transaction.id is None or not transaction.raw_text:
                            continue
                        direction = classify(transaction.raw_text)
                        if direction != transaction.direction:
                            changes[transaction.id] = direction
                    updated = repo.update_directions(changes)
            except SQLAlchemyError as e:
                raise PersistenceError("Failed to reclassify transactions") from e

            for transaction in transactions:
                if transaction.id in changes:
                    transaction.direction = changes[transaction.id]

            reclassified_counter.inc(updated)
            log_reclassification(
                run_id=uuid.uuid4().hex,
                user_id=self.user_id,
                examined=len(transactions),
                updated=updated,
                duration_ms=(time.time() - start_time) * 1000,
            )
            return updated
