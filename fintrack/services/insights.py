"""Insights service - runs the analytics engine off the event loop"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import sessionmaker
from fintrack.config import Settings, settings
from fintrack.domain.analytics import AnalyticsThresholds, generate_insights
from fintrack.domain.models import SpendingInsights
from fintrack.infrastructure.database.repositories import TransactionRepository
from fintrack.infrastructure.database.session import session_scope
from fintrack.infrastructure.observability.metrics import insights_duration_histogram

logger = logging.getLogger(__name__)


def thresholds_from_settings(config: Optional[Settings] = None) -> AnalyticsThresholds:
    config = config or settings
    return AnalyticsThresholds(
        trend_threshold=config.trend_threshold,
        anomaly_sigma=config.anomaly_sigma,
        new_merchant_floor=config.new_merchant_floor,
        late_night_floor=config.late_night_floor,
        daily_frequency_limit=config.daily_frequency_limit,
        category_increase_threshold=config.category_increase_threshold,
        empty_window_days=config.empty_window_days,
    )


class InsightsService:
    """
    Computes spending insights for one user.

    Each call bumps a generation counter; a result that finishes after a
    newer request was made is discarded and None is returned instead.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        user_id: Optional[str] = None,
        thresholds: Optional[AnalyticsThresholds] = None,
    ):
        self.session_factory = session_factory
        self.user_id = user_id or settings.default_user_id
        self.thresholds = thresholds or thresholds_from_settings()
        self._generation = 0

    def compute(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> SpendingInsights:
        with session_scope(self.session_factory) as db:
            transactions = TransactionRepository(db).list_transactions(self.user_id, start, end)
        return generate_insights(transactions, window_start=start, window_end=end, thresholds=self.thresholds)

    async def generate(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Optional[SpendingInsights]:
        self._generation += 1
        generation = self._generation

        started = time.perf_counter()
        insights = await asyncio.to_thread(self.compute, start, end)
        insights_duration_histogram.observe(time.perf_counter() - started)

        if generation != self._generation:
            logger.debug(
                "Discarding superseded insights",
                extra={"user_id": self.user_id, "generation": generation, "latest": self._generation},
            )
            return None
        return insights
