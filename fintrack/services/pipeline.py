"""Pipeline facade - the command surface used by presentation layers"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence
from sqlalchemy.orm import sessionmaker
from fintrack.config import settings
from fintrack.domain.analytics import AnalyticsThresholds
from fintrack.domain.exceptions import PersistenceError
from fintrack.domain.models import IngestionResult, RawMessage, SpendingInsights, Transaction
from fintrack.domain.patterns import PatternRegistry
from fintrack.infrastructure.clients.enrichment import EnrichmentAdapter
from fintrack.infrastructure.database.migrations import migrate
from fintrack.infrastructure.database.repositories import (
    BankPatternRepository,
    CategoryRepository,
    TransactionRepository,
)
from fintrack.infrastructure.database.session import create_db_engine, create_session_factory, session_scope
from fintrack.infrastructure.observability.logging import setup_logging
from fintrack.services.ingestion import IngestionOrchestrator
from fintrack.services.insights import InsightsService

logger = logging.getLogger(__name__)

SCAN_FAILED_MESSAGE = "Could not save scanned transactions. Nothing was imported, please try again."


def bootstrap(session_factory: sessionmaker) -> PatternRegistry:
    """Seed default categories and bank patterns, then load the registry from storage"""
    with session_scope(session_factory) as db:
        CategoryRepository(db).ensure_defaults()
        patterns_repo = BankPatternRepository(db)
        patterns_repo.ensure_defaults()
        patterns = patterns_repo.load_all()
    return PatternRegistry(patterns)


class FinancePipeline:
    """Scan, browse and analyze one user's transactions"""

    def __init__(
        self,
        session_factory: sessionmaker,
        registry: PatternRegistry,
        adapter: Optional[EnrichmentAdapter] = None,
        user_id: Optional[str] = None,
        thresholds: Optional[AnalyticsThresholds] = None,
    ):
        self.session_factory = session_factory
        self.user_id = user_id or settings.default_user_id
        self.ingestion = IngestionOrchestrator(session_factory, registry, adapter=adapter, user_id=self.user_id)
        self.insights_service = InsightsService(session_factory, user_id=self.user_id, thresholds=thresholds)

    @classmethod
    def from_settings(
        cls, database_url: Optional[str] = None, adapter: Optional[EnrichmentAdapter] = None
    ) -> "FinancePipeline":
        """Wire storage, migrations, seed data and enrichment from configuration"""
        engine = create_db_engine(database_url)
        migrate(engine)
        session_factory = create_session_factory(engine)
        registry = bootstrap(session_factory)
        return cls(session_factory, registry, adapter=adapter or EnrichmentAdapter.from_settings())

    async def scan(self, messages: Sequence[RawMessage]) -> IngestionResult:
        """
        "Scan now": ingest an inbox snapshot.

        A storage failure comes back as a result with error set and no
        transactions instead of an exception.
        """
        try:
            return await self.ingestion.ingest(messages)
        except PersistenceError as e:
            logger.error("Scan failed", extra={"user_id": self.user_id, "error": str(e)})
            return IngestionResult(run_id=uuid.uuid4().hex, received=len(messages), error=SCAN_FAILED_MESSAGE)

    def reclassify_all(self) -> int:
        return self.ingestion.reclassify()

    def list_transactions(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category: Optional[str] = None,
    ) -> List[Transaction]:
        with session_scope(self.session_factory) as db:
            return TransactionRepository(db).list_transactions(self.user_id, start, end, category)

    def delete_transaction(self, transaction_id: int) -> bool:
        with session_scope(self.session_factory) as db:
            return TransactionRepository(db).delete(self.user_id, transaction_id)

    def clear_all(self) -> int:
        with session_scope(self.session_factory) as db:
            removed = TransactionRepository(db).clear(self.user_id)
        logger.info("Cleared transactions", extra={"user_id": self.user_id, "removed": removed})
        return removed

    async def insights(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Optional[SpendingInsights]:
        return await self.insights_service.generate(start, end)


def create_pipeline() -> FinancePipeline:
    """Application entry point: structured logging plus a fully wired pipeline"""
    setup_logging(settings.log_level)
    return FinancePipeline.from_settings()
