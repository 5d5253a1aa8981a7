"""Analytics engine - core aggregation, trend, anomaly and recommendation logic"""

import statistics
import uuid
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence
from fintrack.domain.models import (
    Anomaly,
    AnomalyType,
    Direction,
    Recommendation,
    RecommendationPriority,
    RecommendationType,
    SpendingInsights,
    SpendingTrend,
    Transaction,
)
from fintrack.utils.date_utils import days_inclusive, generate_month_range, month_key, to_naive_utc, utcnow

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class AnalyticsThresholds:
    """Tunable constants for trend, anomaly and recommendation rules"""

    trend_threshold: float = 0.05
    anomaly_sigma: float = 2.5
    min_category_history: int = 3
    min_relative_std: float = 0.1  # Floor for stdev as a fraction of the mean
    new_merchant_floor: float = 5000.0
    late_night_floor: float = 1000.0
    late_night_end_hour: int = 5
    daily_frequency_limit: int = 5
    category_increase_threshold: float = 0.25
    high_priority_increase: float = 0.5
    trailing_months: int = 3
    low_savings_rate: float = 0.2
    investable_savings_rate: float = 0.3
    dominant_category_share: float = 0.4
    empty_window_days: int = 30
    top_n: int = 5


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _pct_change(recent: Decimal, previous: Decimal) -> float:
    if previous == 0:
        return 0.0
    return round(float((recent - previous) / previous) * 100, 2)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def classify_trend(monthly_values: Sequence[Decimal], threshold: float = 0.05) -> SpendingTrend:
    """
    Label the most recent period against the prior one.

    - Fewer than two periods: unknown
    - Relative change above +threshold: increasing, below -threshold: decreasing
    - Otherwise stable
    """
    if len(monthly_values) < 2:
        return SpendingTrend.UNKNOWN
    recent, previous = monthly_values[-1], monthly_values[-2]
    if previous == 0:
        return SpendingTrend.INCREASING if recent > 0 else SpendingTrend.STABLE
    change = float((recent - previous) / previous)
    if change > threshold:
        return SpendingTrend.INCREASING
    if change < -threshold:
        return SpendingTrend.DECREASING
    return SpendingTrend.STABLE


def _sum(transactions: Sequence[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions), ZERO)


def _ranked(totals: Dict[str, Decimal], limit: int) -> List[str]:
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [name for name, _ in ordered[:limit]]


def _monthly_totals(transactions: Sequence[Transaction], months: List[str]) -> Dict[str, Decimal]:
    totals = {m: ZERO for m in months}
    for txn in transactions:
        key = month_key(txn.occurred_at)
        if key in totals:
            totals[key] += txn.amount
    return totals


# --- Anomaly detection -------------------------------------------------------


def detect_amount_anomalies(
    expenses: Sequence[Transaction], thresholds: AnalyticsThresholds, now: datetime
) -> List[Anomaly]:
    """Flag expenses far above the leave-one-out mean of their category"""
    anomalies = []
    by_category: Dict[str, List[Transaction]] = defaultdict(list)
    for txn in expenses:
        by_category[txn.category].append(txn)

    for category, txns in by_category.items():
        if len(txns) < thresholds.min_category_history + 1:
            continue
        amounts = [float(t.amount) for t in txns]
        for i, txn in enumerate(txns):
            history = amounts[:i] + amounts[i + 1:]
            mean = statistics.fmean(history)
            if mean <= 0:
                continue
            std = statistics.pstdev(history)
            effective_std = max(std, mean * thresholds.min_relative_std)
            deviation = (amounts[i] - mean) / effective_std
            if deviation <= thresholds.anomaly_sigma:
                continue
            anomalies.append(
                Anomaly(
                    id=_new_id("anomaly"),
                    type=AnomalyType.UNUSUAL_AMOUNT,
                    description=f"{category} transaction significantly higher than usual",
                    severity=min(1.0, deviation / (3 * thresholds.anomaly_sigma)),
                    amount=txn.amount,
                    merchant=txn.merchant,
                    category=category,
                    detected_at=now,
                    metadata={
                        "mean": round(mean, 2),
                        "std_dev": round(std, 2),
                        "deviation": round(deviation, 2),
                        "threshold_sigma": thresholds.anomaly_sigma,
                        "transaction_id": txn.id if txn.id is not None else -1,
                    },
                )
            )
    return anomalies


def detect_merchant_anomalies(
    expenses: Sequence[Transaction], thresholds: AnalyticsThresholds, now: datetime
) -> List[Anomaly]:
    """Flag a merchant's first appearance when the amount is above the floor"""
    anomalies = []
    seen = set()
    for position, txn in enumerate(expenses):
        if not txn.merchant:
            continue
        merchant = txn.merchant.lower()
        is_new = merchant not in seen
        seen.add(merchant)
        if not is_new or position < thresholds.min_category_history:
            continue
        if float(txn.amount) < thresholds.new_merchant_floor:
            continue
        anomalies.append(
            Anomaly(
                id=_new_id("anomaly"),
                type=AnomalyType.UNUSUAL_MERCHANT,
                description=f"First large payment to {txn.merchant}",
                severity=min(1.0, float(txn.amount) / (2 * thresholds.new_merchant_floor)),
                amount=txn.amount,
                merchant=txn.merchant,
                category=txn.category,
                detected_at=now,
                metadata={"floor": thresholds.new_merchant_floor, "first_seen": txn.occurred_at.isoformat()},
            )
        )
    return anomalies


def detect_time_anomalies(
    expenses: Sequence[Transaction], thresholds: AnalyticsThresholds, now: datetime
) -> List[Anomaly]:
    """Flag sizeable expenses made late at night"""
    anomalies = []
    for txn in expenses:
        if txn.occurred_at.hour >= thresholds.late_night_end_hour:
            continue
        if float(txn.amount) < thresholds.late_night_floor:
            continue
        anomalies.append(
            Anomaly(
                id=_new_id("anomaly"),
                type=AnomalyType.UNUSUAL_TIME,
                description=f"Late-night spend at {txn.occurred_at:%H:%M}",
                severity=min(1.0, float(txn.amount) / (10 * thresholds.late_night_floor)),
                amount=txn.amount,
                merchant=txn.merchant,
                category=txn.category,
                detected_at=now,
                metadata={"hour": txn.occurred_at.hour},
            )
        )
    return anomalies


def detect_frequency_anomalies(
    expenses: Sequence[Transaction], thresholds: AnalyticsThresholds, now: datetime
) -> List[Anomaly]:
    """Flag a merchant charged many times on the same day"""
    groups: Dict[tuple, List[Transaction]] = defaultdict(list)
    for txn in expenses:
        if txn.merchant:
            groups[(txn.merchant.lower(), txn.occurred_at.date())].append(txn)

    anomalies = []
    for (_, day), txns in groups.items():
        if len(txns) < thresholds.daily_frequency_limit:
            continue
        anomalies.append(
            Anomaly(
                id=_new_id("anomaly"),
                type=AnomalyType.UNUSUAL_FREQUENCY,
                description=f"{len(txns)} payments to {txns[0].merchant} on {day.isoformat()}",
                severity=min(1.0, len(txns) / (2 * thresholds.daily_frequency_limit)),
                amount=_sum(txns),
                merchant=txns[0].merchant,
                category=txns[0].category,
                detected_at=now,
                metadata={"count": len(txns), "day": day.isoformat()},
            )
        )
    return anomalies


def detect_anomalies(
    expenses: Sequence[Transaction], thresholds: AnalyticsThresholds, now: datetime
) -> List[Anomaly]:
    anomalies: List[Anomaly] = []
    anomalies.extend(detect_amount_anomalies(expenses, thresholds, now))
    anomalies.extend(detect_frequency_anomalies(expenses, thresholds, now))
    anomalies.extend(detect_time_anomalies(expenses, thresholds, now))
    anomalies.extend(detect_merchant_anomalies(expenses, thresholds, now))
    return anomalies


# --- Recommendations ---------------------------------------------------------


def _budget_recommendations(
    expenses: Sequence[Transaction], months: List[str], thresholds: AnalyticsThresholds, now: datetime
) -> List[Recommendation]:
    if len(months) < 2:
        return []
    latest = months[-1]
    prior = months[-1 - thresholds.trailing_months:-1]

    per_category: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    for txn in expenses:
        per_category[txn.category][month_key(txn.occurred_at)] += txn.amount

    recommendations = []
    for category, by_month in sorted(per_category.items()):
        trailing_avg = sum((by_month[m] for m in prior), ZERO) / len(prior)
        current = by_month[latest]
        if trailing_avg <= 0:
            continue
        increase = float((current - trailing_avg) / trailing_avg)
        if increase <= thresholds.category_increase_threshold:
            continue
        excess = _money(current - trailing_avg)
        recommendations.append(
            Recommendation(
                id=_new_id("rec"),
                title=f"Reduce {category} spending",
                description=(
                    f"{category} spending is {increase:.0%} above your recent average. "
                    f"Bringing it back in line would save about {excess}."
                ),
                type=RecommendationType.BUDGETING,
                priority=(
                    RecommendationPriority.HIGH
                    if increase > thresholds.high_priority_increase
                    else RecommendationPriority.MEDIUM
                ),
                potential_savings=excess,
                categories=[category],
                created_at=now,
                actionable=True,
            )
        )
    return recommendations


def _cashflow_recommendations(
    selected: Sequence[Transaction], net: Decimal, now: datetime
) -> List[Recommendation]:
    if net >= 0:
        return []
    income_by_month: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    expense_by_month: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in selected:
        target = income_by_month if txn.direction == Direction.INCOME else expense_by_month
        target[month_key(txn.occurred_at)] += txn.amount

    active = set(income_by_month) | set(expense_by_month)
    if not all(expense_by_month[m] > income_by_month[m] for m in active):
        return []
    deficit = _money(-net / len(active))
    return [
        Recommendation(
            id=_new_id("rec"),
            title="Spending exceeds income",
            description=(
                f"Expenses have been higher than income in every month tracked, "
                f"an average shortfall of {deficit} per month."
            ),
            type=RecommendationType.CASHFLOW,
            priority=RecommendationPriority.CRITICAL,
            potential_savings=deficit,
            categories=[],
            created_at=now,
            actionable=True,
        )
    ]


def _savings_recommendations(
    total_income: Decimal, net: Decimal, thresholds: AnalyticsThresholds, now: datetime
) -> List[Recommendation]:
    if total_income <= 0 or net <= 0:
        return []
    rate = float(net / total_income)
    if rate < thresholds.low_savings_rate:
        target_gap = _money(total_income * Decimal(str(thresholds.low_savings_rate)) - net)
        return [
            Recommendation(
                id=_new_id("rec"),
                title="Increase your savings rate",
                description=(
                    f"You are saving {rate:.0%} of your income. Setting aside "
                    f"{target_gap} more would reach {thresholds.low_savings_rate:.0%}."
                ),
                type=RecommendationType.SAVING,
                priority=RecommendationPriority.MEDIUM,
                potential_savings=target_gap,
                created_at=now,
            )
        ]
    if rate >= thresholds.investable_savings_rate:
        return [
            Recommendation(
                id=_new_id("rec"),
                title="Put your surplus to work",
                description=f"You are saving {rate:.0%} of your income. Consider investing part of the surplus.",
                type=RecommendationType.INVESTMENT,
                priority=RecommendationPriority.LOW,
                created_at=now,
            )
        ]
    return []


def _optimization_recommendations(
    breakdown: Dict[str, Decimal], total_expense: Decimal, thresholds: AnalyticsThresholds, now: datetime
) -> List[Recommendation]:
    if total_expense <= 0 or len(breakdown) < 2:
        return []
    category, amount = max(breakdown.items(), key=lambda item: (item[1], item[0]))
    share = float(amount / total_expense)
    if share <= thresholds.dominant_category_share:
        return []
    return [
        Recommendation(
            id=_new_id("rec"),
            title=f"{category} dominates your spending",
            description=f"{category} accounts for {share:.0%} of all expenses. Trimming it by 10% frees up money fastest.",
            type=RecommendationType.OPTIMIZATION,
            priority=RecommendationPriority.LOW,
            potential_savings=_money(amount * Decimal("0.10")),
            categories=[category],
            created_at=now,
        )
    ]


def rank_recommendations(recommendations: List[Recommendation]) -> List[Recommendation]:
    """Order by priority, then by potential savings descending"""
    return sorted(
        recommendations,
        key=lambda r: (r.priority.rank, -(r.potential_savings or ZERO)),
    )


# --- Entry point -------------------------------------------------------------


def generate_insights(
    transactions: Sequence[Transaction],
    window_start: Optional[datetime] = None,
    window_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    thresholds: Optional[AnalyticsThresholds] = None,
) -> SpendingInsights:
    """
    Main entry point: aggregate a transaction history into a SpendingInsights snapshot.

    The window is inclusive on both ends and defaults to the full history.
    An empty selection yields the zeroed snapshot over the last
    empty_window_days days instead of an error.
    """
    thresholds = thresholds or AnalyticsThresholds()
    now = to_naive_utc(now) if now else utcnow()
    start = to_naive_utc(window_start) if window_start else None
    end = to_naive_utc(window_end) if window_end else None

    # Month, day and hour buckets are all taken in UTC
    normalized = [
        t if t.occurred_at.tzinfo is None else replace(t, occurred_at=to_naive_utc(t.occurred_at))
        for t in transactions
    ]
    selected = sorted(
        (t for t in normalized if (start is None or t.occurred_at >= start) and (end is None or t.occurred_at <= end)),
        key=lambda t: t.occurred_at,
    )

    if not selected:
        end = end or now
        start = start or end - timedelta(days=thresholds.empty_window_days)
        return SpendingInsights.empty(generated_at=now, window_start=start, window_end=end)

    start = start or selected[0].occurred_at
    end = end or selected[-1].occurred_at

    expenses = [t for t in selected if t.direction == Direction.EXPENSE]
    income = [t for t in selected if t.direction == Direction.INCOME]

    total_expense = _sum(expenses)
    total_income = _sum(income)
    net = total_income - total_expense

    category_breakdown: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    merchant_totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in expenses:
        category_breakdown[txn.category] += txn.amount
        if txn.merchant:
            merchant_totals[txn.merchant] += txn.amount

    months = generate_month_range(start.date(), end.date())
    monthly_trends = _monthly_totals(expenses, months)
    monthly_values = list(monthly_trends.values())

    days = days_inclusive(start.date(), end.date())

    last_week = [t for t in expenses if end - timedelta(days=7) < t.occurred_at <= end]
    prior_week = [t for t in expenses if end - timedelta(days=14) < t.occurred_at <= end - timedelta(days=7)]

    recommendations: List[Recommendation] = []
    recommendations.extend(_budget_recommendations(expenses, months, thresholds, now))
    recommendations.extend(_cashflow_recommendations(selected, net, now))
    recommendations.extend(_savings_recommendations(total_income, net, thresholds, now))
    recommendations.extend(_optimization_recommendations(category_breakdown, total_expense, thresholds, now))

    return SpendingInsights(
        total_income=_money(total_income),
        total_expense=_money(total_expense),
        net=_money(net),
        average_daily=_money(total_expense / days),
        average_weekly=_money(total_expense * 7 / days),
        average_monthly=_money(total_expense / len(months)),
        category_breakdown={k: _money(v) for k, v in category_breakdown.items()},
        monthly_trends={k: _money(v) for k, v in monthly_trends.items()},
        overall_trend=classify_trend(monthly_values, thresholds.trend_threshold),
        top_categories=_ranked(category_breakdown, thresholds.top_n),
        top_merchants=_ranked(merchant_totals, thresholds.top_n),
        compared_to_last_month=(
            _pct_change(monthly_values[-1], monthly_values[-2]) if len(monthly_values) >= 2 else 0.0
        ),
        compared_to_last_week=_pct_change(_sum(last_week), _sum(prior_week)),
        recommendations=rank_recommendations(recommendations),
        anomalies=detect_anomalies(expenses, thresholds, now),
        generated_at=now,
        window_start=start,
        window_end=end,
        transaction_count=len(selected),
    )
