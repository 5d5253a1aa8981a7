"""Unit tests for the enrichment client and adapter"""

import asyncio
import json
import httpx
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock
from fintrack.domain.exceptions import EnrichmentAPIError
from fintrack.domain.models import EnrichmentResult, EnrichmentUnavailable
from fintrack.infrastructure.clients.enrichment import EnrichmentAdapter, EnrichmentClient, extract_json_object
from fintrack.infrastructure.clients.schemas import AnalysisPayload

ANALYSIS = {
    "transaction_type": "debit",
    "amount": 450.0,
    "category": "Food & Dining",
    "subcategory": "Food Delivery",
    "merchant_name": "Swiggy",
    "transaction_method": "UPI",
    "location": None,
    "reference_number": "UPI123456",
    "confidence_score": 0.93,
    "anomaly_flags": ["late_night"],
    "insights": "Regular food delivery order",
}


def _completion(content) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def _client(handler) -> EnrichmentClient:
    return EnrichmentClient(
        api_key="test-key",
        base_url="https://llm.test/api/v1",
        model="test-model",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


async def test_client_parses_completion():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion(json.dumps(ANALYSIS)))

    result = await _client(handler).analyze("Rs 450 debited at SWIGGY")

    assert captured["url"] == "https://llm.test/api/v1/chat/completions"
    assert captured["auth"] == "Bearer test-key"
    assert captured["body"]["model"] == "test-model"
    assert captured["body"]["temperature"] == 0.1
    assert "Rs 450 debited at SWIGGY" in captured["body"]["messages"][1]["content"]
    assert result.amount == Decimal("450.00")
    assert result.category == "Food & Dining"
    assert result.merchant == "Swiggy"
    assert result.confidence == 0.93
    assert result.anomaly_flags == ["late_night"]


async def test_client_accepts_fenced_json():
    content = "Here is the analysis:\n```json\n" + json.dumps(ANALYSIS) + "\n```"
    result = await _client(lambda request: httpx.Response(200, json=_completion(content))).analyze("x")
    assert result.subcategory == "Food Delivery"


@pytest.mark.parametrize(
    "status,reason",
    [(429, "quota"), (401, "auth"), (403, "auth"), (500, "http_error"), (404, "http_error")],
)
async def test_client_maps_http_errors(status: int, reason: str):
    client = _client(lambda request: httpx.Response(status, json={"error": "nope"}))
    with pytest.raises(EnrichmentAPIError) as exc_info:
        await client.analyze("x")
    assert exc_info.value.reason == reason


async def test_client_maps_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(EnrichmentAPIError) as exc_info:
        await _client(handler).analyze("x")
    assert exc_info.value.reason == "timeout"


async def test_client_maps_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EnrichmentAPIError) as exc_info:
        await _client(handler).analyze("x")
    assert exc_info.value.reason == "network"


async def test_client_maps_undecodable_body():
    def handler(request):
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip-at-all")

    with pytest.raises(EnrichmentAPIError) as exc_info:
        await _client(handler).analyze("x")
    assert exc_info.value.reason == "network"

    adapter = EnrichmentAdapter(client=_client(handler), enabled=True)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="network")


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": []},
        _completion("sorry, I cannot help with that"),
        _completion("[1, 2, 3]"),
        _completion('{"amount": 10, "confidence_score": 0.5'),
    ],
)
async def test_client_maps_malformed_content(payload):
    client = _client(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(EnrichmentAPIError) as exc_info:
        await client.analyze("x")
    assert exc_info.value.reason == "malformed"


def test_payload_sanitizes_values():
    payload = AnalysisPayload.model_validate(
        {
            "amount": -20,
            "category": "Others",
            "merchant_name": "  ",
            "recipient_or_sender": "Ramesh",
            "confidence_score": 7,
            "anomaly_flags": "new_merchant",
        }
    )
    result = payload.to_result()
    assert result.amount is None
    assert result.category == "Other"
    assert result.merchant == "Ramesh"
    assert result.confidence == 1.0
    assert result.anomaly_flags == ["new_merchant"]


def test_payload_defaults_and_unknown_category():
    result = AnalysisPayload.model_validate({"amount": "1,250.5", "category": "Groceries"}).to_result()
    assert result.amount == Decimal("1250.50")
    assert result.category is None
    assert result.confidence == 0.8


def test_payload_rejects_nan_amount():
    assert AnalysisPayload.model_validate({"amount": "NaN"}).amount is None


def test_payload_rejects_implausible_amount():
    assert AnalysisPayload.model_validate({"amount": 1e20}).amount is None
    assert AnalysisPayload.model_validate({"amount": "99999999999999999999"}).amount is None


def test_extract_json_object():
    assert extract_json_object('prefix {"a": {"b": 1}} suffix') == {"a": {"b": 1}}
    assert extract_json_object({"a": 1}) == {"a": 1}
    with pytest.raises(ValueError):
        extract_json_object("no json")


async def test_adapter_disabled_returns_unavailable():
    adapter = EnrichmentAdapter(client=None, enabled=True)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="disabled")

    client = AsyncMock(spec=EnrichmentClient)
    adapter = EnrichmentAdapter(client=client, enabled=False)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="disabled")
    client.analyze.assert_not_called()


async def test_adapter_converts_api_errors():
    client = AsyncMock(spec=EnrichmentClient)
    client.analyze.side_effect = EnrichmentAPIError("quota", "rate limited")
    adapter = EnrichmentAdapter(client=client, enabled=True)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="quota")


async def test_adapter_absorbs_unexpected_failures():
    client = AsyncMock(spec=EnrichmentClient)
    client.analyze.side_effect = RuntimeError("boom")
    adapter = EnrichmentAdapter(client=client, enabled=True)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="malformed")


async def test_adapter_enforces_timeout():
    async def slow(body):
        await asyncio.sleep(1)
        return EnrichmentResult()

    client = AsyncMock(spec=EnrichmentClient)
    client.analyze.side_effect = slow
    adapter = EnrichmentAdapter(client=client, enabled=True, timeout=0.01)
    assert await adapter.analyze("x") == EnrichmentUnavailable(reason="timeout")


async def test_adapter_returns_result():
    client = AsyncMock(spec=EnrichmentClient)
    client.analyze.return_value = EnrichmentResult(category="Transport", confidence=0.9)
    adapter = EnrichmentAdapter(client=client, enabled=True)
    result = await adapter.analyze("Rs 250 paid to UBER")
    assert isinstance(result, EnrichmentResult)
    assert result.category == "Transport"
