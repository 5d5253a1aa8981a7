"""Remote enrichment client (chat-completions API) and the never-raising adapter around it"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Union
import httpx
from pydantic import ValidationError
from fintrack.config import settings
from fintrack.domain.exceptions import EnrichmentAPIError
from fintrack.domain.models import EnrichmentResult, EnrichmentUnavailable
from fintrack.infrastructure.clients.schemas import AnalysisPayload
from fintrack.infrastructure.observability.metrics import record_enrichment

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a financial analyst specializing in transaction messages from Indian banks "
    "(SBI, HDFC, ICICI, Axis, Kotak and others). Extract transaction details precisely, "
    "categorize the transaction and flag anything unusual. "
    "Always respond with a single valid JSON object."
)

ANALYSIS_PROMPT = """Analyze this bank SMS and extract the transaction details:

SMS: "{body}"

Return a JSON object with this structure:
{{
  "amount": 0.00,
  "category": "one of: Food & Dining, Transport, Shopping, Entertainment, Healthcare, Utilities, Education, Financial Services, Income, Others",
  "subcategory": "specific subcategory like 'Food Delivery' or 'ATM Withdrawal'",
  "merchant_name": "cleaned merchant name",
  "recipient_or_sender": "counterparty name",
  "transaction_method": "UPI, ATM, POS, Online, Transfer, etc.",
  "location": "location if mentioned",
  "reference_number": "transaction reference if available",
  "confidence_score": 0.95,
  "anomaly_flags": ["unusual_amount", "new_merchant", "late_night"],
  "insights": "brief analysis of this transaction"
}}

If a field is not available, use null."""


def extract_json_object(content: Any) -> Dict[str, Any]:
    """Outermost JSON object in a completion, tolerating prose or code fences around it"""
    if isinstance(content, dict):
        return content
    if not isinstance(content, str):
        raise ValueError("Completion content is not text")
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end < start:
        raise ValueError("No JSON object in completion content")
    parsed = json.loads(content[start:end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Completion JSON is not an object")
    return parsed


class EnrichmentClient:
    """Client for an OpenAI/OpenRouter-compatible chat completions API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.enrichment_api_key
        self.base_url = (base_url or settings.enrichment_api_base).rstrip("/")
        self.model = model or settings.enrichment_model
        self.timeout = timeout or settings.enrichment_timeout_seconds
        self.transport = transport

    def _request_body(self, body: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": ANALYSIS_PROMPT.format(body=body)},
            ],
            "temperature": 0.1,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }

    async def analyze(self, body: str) -> EnrichmentResult:
        """
        Request a structured analysis of one message.

        Raises:
            EnrichmentAPIError: On timeout, HTTP errors, transport failures, or unusable content
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "X-Title": "FinTrack SMS Analysis",
                    },
                    json=self._request_body(body),
                )
                response.raise_for_status()
                data = response.json()

                content = data["choices"][0]["message"]["content"]
                payload = AnalysisPayload.model_validate(extract_json_object(content))
                return payload.to_result()

            except httpx.TimeoutException as e:
                raise EnrichmentAPIError("timeout", f"Enrichment API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status == 429:
                    raise EnrichmentAPIError("quota", "Enrichment API rate limit exceeded") from e
                if status in (401, 403):
                    raise EnrichmentAPIError("auth", "Enrichment API authentication failed") from e
                raise EnrichmentAPIError("http_error", f"Enrichment API error: {status}") from e
            except httpx.TransportError as e:
                raise EnrichmentAPIError("network", f"Enrichment API unreachable: {e}") from e
            except (KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
                raise EnrichmentAPIError("malformed", f"Invalid analysis from enrichment API: {e}") from e
            except httpx.HTTPError as e:
                # Undecodable bodies and redirect loops
                raise EnrichmentAPIError("network", f"Enrichment API request failed: {e}") from e


class EnrichmentAdapter:
    """
    Optional enrichment capability for the ingestion pipeline.

    analyze() never raises: every failure, and the disabled state, comes back
    as EnrichmentUnavailable so ingestion can continue on heuristics alone.
    """

    def __init__(self, client: Optional[EnrichmentClient] = None, enabled: bool = True, timeout: Optional[float] = None):
        self.client = client
        self.enabled = enabled
        self.timeout = timeout or settings.enrichment_timeout_seconds

    @classmethod
    def from_settings(cls) -> "EnrichmentAdapter":
        client = EnrichmentClient() if settings.enrichment_api_key else None
        return cls(client=client, enabled=settings.enrichment_enabled)

    @property
    def available(self) -> bool:
        return self.enabled and self.client is not None

    async def analyze(self, body: str) -> Union[EnrichmentResult, EnrichmentUnavailable]:
        if not self.available:
            record_enrichment("disabled")
            return EnrichmentUnavailable(reason="disabled")

        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(self.client.analyze(body), timeout=self.timeout)
        except asyncio.TimeoutError:
            reason = "timeout"
        except EnrichmentAPIError as e:
            reason = e.reason
            logger.warning("Enrichment unavailable", extra={"reason": reason, "error": str(e)})
        except Exception as e:
            reason = "malformed"
            logger.exception("Unexpected enrichment failure", extra={"reason": reason, "error": str(e)})
        else:
            record_enrichment("ok", time.perf_counter() - started)
            return result

        record_enrichment(reason, time.perf_counter() - started)
        return EnrichmentUnavailable(reason=reason)
