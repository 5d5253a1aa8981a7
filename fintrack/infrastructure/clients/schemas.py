"""Pydantic schemas for validating remote enrichment responses"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional
from pydantic import BaseModel, Field, field_validator
from fintrack.domain.categories import normalize_category
from fintrack.domain.extraction import MAX_AMOUNT
from fintrack.domain.models import EnrichmentResult

DEFAULT_CONFIDENCE = 0.8


class AnalysisPayload(BaseModel):
    """JSON object produced by the enrichment model for one message"""

    amount: Optional[float] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    merchant_name: Optional[str] = None
    recipient_or_sender: Optional[str] = None
    transaction_method: Optional[str] = None
    location: Optional[str] = None
    reference_number: Optional[str] = None
    confidence_score: float = Field(DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    anomaly_flags: List[str] = Field(default_factory=list)
    insights: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _sane_amount(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        try:
            amount = float(str(value).replace(",", ""))
        except ValueError:
            return None
        if math.isnan(amount) or math.isinf(amount) or amount < 0 or amount > MAX_AMOUNT:
            return None
        return amount

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return DEFAULT_CONFIDENCE
        if math.isnan(confidence):
            return DEFAULT_CONFIDENCE
        return min(1.0, max(0.0, confidence))

    @field_validator("anomaly_flags", mode="before")
    @classmethod
    def _as_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(flag).strip() for flag in value if flag is not None and str(flag).strip()]

    @field_validator(
        "category",
        "subcategory",
        "merchant_name",
        "recipient_or_sender",
        "transaction_method",
        "location",
        "reference_number",
        "insights",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.lower() in ("null", "none", "n/a"):
            return None
        return text

    def to_result(self) -> EnrichmentResult:
        amount = None
        if self.amount is not None:
            try:
                amount = Decimal(str(self.amount)).quantize(Decimal("0.01"))
            except InvalidOperation:
                amount = None
        return EnrichmentResult(
            amount=amount,
            category=normalize_category(self.category),
            subcategory=self.subcategory,
            merchant=self.merchant_name or self.recipient_or_sender,
            transaction_method=self.transaction_method,
            location=self.location,
            reference_number=self.reference_number,
            confidence=self.confidence_score,
            anomaly_flags=list(self.anomaly_flags),
            insight=self.insights,
        )
