"""Integration tests for the pipeline facade"""

import asyncio
import time
import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch
from fintrack.domain.exceptions import IngestionInProgressError, PersistenceError
from fintrack.domain.models import Direction, EnrichmentUnavailable, RawMessage, SpendingInsights, SpendingTrend
from fintrack.infrastructure.clients.enrichment import EnrichmentAdapter
from fintrack.services.insights import InsightsService
from fintrack.services.pipeline import SCAN_FAILED_MESSAGE, FinancePipeline


@pytest.mark.integration
async def test_scan_then_browse(pipeline: FinancePipeline, mixed_inbox):
    result = await pipeline.scan(mixed_inbox)
    assert result.created == 3
    assert not result.failed

    listed = pipeline.list_transactions()
    assert [t.occurred_at for t in listed] == sorted((t.occurred_at for t in listed), reverse=True)

    food = pipeline.list_transactions(category="Food & Dining")
    assert len(food) == 1
    assert food[0].merchant == "SWIGGY"

    january_first = pipeline.list_transactions(start=datetime(2025, 1, 1), end=datetime(2025, 1, 1, 23, 59))
    assert len(january_first) == 2


@pytest.mark.integration
async def test_scan_reports_storage_failure(pipeline: FinancePipeline, mixed_inbox):
    with patch(
        "fintrack.services.ingestion.TransactionRepository.add_all",
        side_effect=PersistenceError("disk full"),
    ):
        result = await pipeline.scan(mixed_inbox)

    assert result.failed
    assert result.error == SCAN_FAILED_MESSAGE
    assert result.transactions == []
    assert pipeline.list_transactions() == []


@pytest.mark.integration
async def test_delete_and_clear(pipeline: FinancePipeline, mixed_inbox):
    result = await pipeline.scan(mixed_inbox)
    target = result.transactions[0].id

    assert pipeline.delete_transaction(target) is True
    assert pipeline.delete_transaction(target) is False
    assert len(pipeline.list_transactions()) == 2
    assert pipeline.clear_all() == 2
    assert pipeline.list_transactions() == []

    # Cleared messages can be scanned in again
    again = await pipeline.scan(mixed_inbox)
    assert again.created == 3


@pytest.mark.integration
async def test_reclassify_all(pipeline: FinancePipeline, mixed_inbox):
    await pipeline.scan(mixed_inbox)
    assert pipeline.reclassify_all() == 0


@pytest.mark.integration
async def test_insights_over_scanned_inbox(pipeline: FinancePipeline, mixed_inbox):
    await pipeline.scan(mixed_inbox)

    insights = await pipeline.insights()

    assert insights.total_income == Decimal("25000.00")
    assert insights.total_expense == Decimal("5450.00")
    assert insights.net == Decimal("19550.00")
    assert insights.transaction_count == 3
    assert insights.overall_trend == SpendingTrend.UNKNOWN


@pytest.mark.integration
async def test_insights_without_data(pipeline: FinancePipeline):
    insights = await pipeline.insights()
    assert insights.total_expense == Decimal("0")
    assert insights.recommendations == []


@pytest.mark.integration
async def test_superseded_insights_are_discarded(session_factory, registry):
    service = InsightsService(session_factory, user_id="user_test")

    def slow_compute(start, end):
        time.sleep(0.05)
        return SpendingInsights.empty(generated_at=datetime(2025, 1, 1))

    with patch.object(service, "compute", side_effect=slow_compute):
        stale, fresh = await asyncio.gather(service.generate(), service.generate())

    assert stale is None
    assert fresh is not None


@pytest.mark.integration
async def test_from_settings_bootstraps_storage(mixed_inbox):
    pipeline = FinancePipeline.from_settings("sqlite:///:memory:")

    result = await pipeline.scan(mixed_inbox)

    assert result.created == 3
    assert pipeline.ingestion.adapter.available is False
    directions = sorted(t.direction for t in pipeline.list_transactions())
    assert directions.count(Direction.EXPENSE) == 2


@pytest.mark.integration
async def test_oversized_amount_is_stored_as_zero(pipeline: FinancePipeline):
    inbox = [RawMessage("HDFCBK", "Rs 99999999999999999999.00 debited from A/c XX1234", datetime(2025, 2, 1, 10))]

    result = await pipeline.scan(inbox)

    assert not result.failed
    assert result.created == 1
    assert pipeline.list_transactions()[0].amount == Decimal("0.00")


@pytest.mark.integration
async def test_scan_reports_out_of_range_write(pipeline: FinancePipeline, mixed_inbox):
    with patch(
        "fintrack.services.ingestion.TransactionRepository.add_all",
        side_effect=OverflowError("Python int too large to convert to SQLite INTEGER"),
    ):
        result = await pipeline.scan(mixed_inbox)

    assert result.failed
    assert result.error == SCAN_FAILED_MESSAGE
    assert pipeline.list_transactions() == []


@pytest.mark.integration
async def test_second_pipeline_for_same_user_is_rejected(session_factory, registry, mixed_inbox):
    started = asyncio.Event()
    release = asyncio.Event()

    async def analyze(body):
        started.set()
        await release.wait()
        return EnrichmentUnavailable(reason="timeout")

    adapter = MagicMock(spec=EnrichmentAdapter)
    adapter.available = True
    adapter.analyze = analyze
    busy = FinancePipeline(session_factory, registry, adapter=adapter, user_id="shared_user")
    other = FinancePipeline(session_factory, registry, user_id="shared_user")

    first = asyncio.create_task(busy.scan(mixed_inbox))
    await started.wait()
    with pytest.raises(IngestionInProgressError):
        await other.scan(mixed_inbox)
    release.set()

    assert (await first).created == 3
    assert len(other.list_transactions()) == 3
