"""Domain models - pure Python dataclasses representing business entities"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

# Anomaly metadata is restricted to these value shapes
MetadataValue = Union[float, int, str, bool, List[str]]

OTHER_CATEGORY = "Other"
INCOME_CATEGORY = "Income"


class Direction(str, Enum):
    """Money movement relative to the account holder"""

    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def from_stored(cls, value: Optional[str]) -> "Direction":
        """Map a stored label to a direction, falling back to expense on unknown values"""
        normalized = (value or "").strip().lower()
        if normalized in ("income", "credit"):
            return cls.INCOME
        if normalized in ("expense", "debit"):
            return cls.EXPENSE
        logging.warning("Unknown stored direction, defaulting to expense", extra={"stored_value": value})
        return cls.EXPENSE


class SpendingTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    UNKNOWN = "unknown"


class RecommendationType(str, Enum):
    SAVING = "saving"
    BUDGETING = "budgeting"
    INVESTMENT = "investment"
    SPENDING = "spending"
    CASHFLOW = "cashflow"
    OPTIMIZATION = "optimization"


class RecommendationPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort key: lower ranks first"""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RecommendationPriority.CRITICAL: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 3,
}


class AnomalyType(str, Enum):
    UNUSUAL_AMOUNT = "unusual-amount"
    UNUSUAL_FREQUENCY = "unusual-frequency"
    UNUSUAL_TIME = "unusual-time"
    UNUSUAL_MERCHANT = "unusual-merchant"


@dataclass(frozen=True)
class BankPattern:
    """Named bundle of text matchers for one bank's message format"""

    bank_name: str
    sender_pattern: str
    amount_pattern: Optional[str] = None
    account_pattern: Optional[str] = None
    description_pattern: Optional[str] = None
    balance_pattern: Optional[str] = None
    debit_keywords: Tuple[str, ...] = ()
    credit_keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RawMessage:
    """Inbox record supplied by the device message collaborator"""

    sender: str
    body: str
    received_at: datetime


@dataclass
class ExtractedFields:
    """Best-effort fields pulled out of one message; every field may be absent"""

    amount: Optional[Decimal] = None
    account: Optional[str] = None
    merchant: Optional[str] = None
    balance: Optional[Decimal] = None


@dataclass
class ClassificationResult:
    """Direction decision with the weighted signal totals behind it"""

    direction: Direction
    debit_score: float
    credit_score: float

    @property
    def strength(self) -> float:
        return abs(self.debit_score - self.credit_score)


@dataclass
class EnrichmentResult:
    """Normalized analysis returned by the remote enrichment capability"""

    amount: Optional[Decimal] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    merchant: Optional[str] = None
    transaction_method: Optional[str] = None
    location: Optional[str] = None
    reference_number: Optional[str] = None
    confidence: float = 0.0
    anomaly_flags: List[str] = field(default_factory=list)
    insight: Optional[str] = None

    def to_enrichment(self) -> "Enrichment":
        return Enrichment(
            subcategory=self.subcategory,
            transaction_method=self.transaction_method,
            location=self.location,
            reference_number=self.reference_number,
            confidence=self.confidence,
            anomaly_flags=list(self.anomaly_flags),
            insight=self.insight,
        )


@dataclass(frozen=True)
class EnrichmentUnavailable:
    """Enrichment could not be obtained; ingestion continues on heuristics"""

    reason: str


@dataclass
class Enrichment:
    """Persisted enrichment metadata attached to a transaction"""

    subcategory: Optional[str] = None
    transaction_method: Optional[str] = None
    location: Optional[str] = None
    reference_number: Optional[str] = None
    confidence: Optional[float] = None
    anomaly_flags: List[str] = field(default_factory=list)
    insight: Optional[str] = None

    def is_empty(self) -> bool:
        return (
            self.subcategory is None
            and self.transaction_method is None
            and self.location is None
            and self.reference_number is None
            and self.confidence is None
            and not self.anomaly_flags
            and self.insight is None
        )


@dataclass
class Transaction:
    """Financial transaction derived from a bank message"""

    user_id: str
    amount: Decimal
    direction: Direction
    occurred_at: datetime
    category: str = OTHER_CATEGORY
    description: str = ""
    raw_text: Optional[str] = None
    sender: Optional[str] = None
    bank_name: Optional[str] = None
    account: Optional[str] = None
    merchant: Optional[str] = None
    balance: Optional[Decimal] = None
    dedup_key: Optional[str] = None
    enrichment: Optional[Enrichment] = None
    id: Optional[int] = None


@dataclass
class Recommendation:
    """Rule-based financial recommendation"""

    id: str
    title: str
    description: str
    type: RecommendationType
    priority: RecommendationPriority
    potential_savings: Optional[Decimal] = None
    categories: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    actionable: bool = True


@dataclass
class Anomaly:
    """Statistically unusual transaction"""

    id: str
    type: AnomalyType
    description: str
    severity: float  # 0.0 to 1.0
    amount: Decimal
    detected_at: datetime
    merchant: Optional[str] = None
    category: Optional[str] = None
    metadata: Dict[str, MetadataValue] = field(default_factory=dict)


@dataclass
class SpendingInsights:
    """Disposable aggregate snapshot, always recomputable from transactions"""

    total_income: Decimal
    total_expense: Decimal
    net: Decimal
    average_daily: Decimal
    average_weekly: Decimal
    average_monthly: Decimal
    category_breakdown: Dict[str, Decimal]
    monthly_trends: Dict[str, Decimal]
    overall_trend: SpendingTrend
    top_categories: List[str]
    top_merchants: List[str]
    compared_to_last_month: float
    compared_to_last_week: float
    recommendations: List[Recommendation]
    anomalies: List[Anomaly]
    generated_at: datetime
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    transaction_count: int = 0

    @classmethod
    def empty(
        cls,
        generated_at: datetime,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> "SpendingInsights":
        """Zeroed snapshot used as the "no data yet" state"""
        zero = Decimal("0.00")
        return cls(
            total_income=zero,
            total_expense=zero,
            net=zero,
            average_daily=zero,
            average_weekly=zero,
            average_monthly=zero,
            category_breakdown={},
            monthly_trends={},
            overall_trend=SpendingTrend.UNKNOWN,
            top_categories=[],
            top_merchants=[],
            compared_to_last_month=0.0,
            compared_to_last_week=0.0,
            recommendations=[],
            anomalies=[],
            generated_at=generated_at,
            window_start=window_start,
            window_end=window_end,
        )


@dataclass
class IngestionResult:
    """Outcome and statistics of one ingestion run"""

    run_id: str
    transactions: List[Transaction] = field(default_factory=list)
    received: int = 0
    duplicates: int = 0
    skipped_non_financial: int = 0
    enriched: int = 0
    enrichment_unavailable: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def created(self) -> int:
        return len(self.transactions)
