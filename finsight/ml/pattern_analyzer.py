"""
Spending Pattern Analyzer for FinSight.

Pure reductions over a transaction sequence: per-category trend direction,
category concentration, weekend/weekday skew, merchant frequency, month over
month change and savings rate. The analysis window is anchored on the latest
transaction (or an explicit reference date), never on the wall clock, so the
same input always produces the same analysis.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

from finsight.core.config import settings
from finsight.ml.merchant_memory import merchant_key
from finsight.ml.schemas import (
    CategorySpending,
    MerchantSummary,
    MonthlyChange,
    PatternAnalysis,
    SpendingPrediction,
    Transaction,
    TransactionCategory,
    Trend,
    WeekendSkew,
)

logger = logging.getLogger(__name__)

FREQUENT_MERCHANT_MIN = 5
FREQUENT_MERCHANT_LIMIT = 5
PREDICTION_MIN_SAMPLES = 3


class SpendingPatternAnalyzer:
    """Aggregates debits by category, time and merchant."""

    def __init__(
        self,
        recent_transactions: Optional[int] = None,
        increase_ratio: Optional[float] = None,
        decrease_ratio: Optional[float] = None,
        weekend_ratio: Optional[float] = None,
    ):
        self.recent_transactions = recent_transactions if recent_transactions is not None else settings.TREND_RECENT_TRANSACTIONS
        self.increase_ratio = increase_ratio if increase_ratio is not None else settings.TREND_INCREASE_RATIO
        self.decrease_ratio = decrease_ratio if decrease_ratio is not None else settings.TREND_DECREASE_RATIO
        self.weekend_ratio = weekend_ratio if weekend_ratio is not None else settings.WEEKEND_SKEW_RATIO

    def analyze(
        self,
        transactions: Sequence[Transaction],
        window_days: Optional[int] = None,
        reference_date: Optional[datetime] = None,
    ) -> PatternAnalysis:
        """
        Analyze spending patterns.

        Args:
            transactions: Transactions in any order
            window_days: Days before the anchor date to include in the
                         concentration, weekend, merchant and savings figures.
                         ``None`` includes everything.
            reference_date: Window anchor; defaults to the latest transaction date

        Returns:
            PatternAnalysis. Trends always use the full history supplied.
        """
        if not transactions:
            return PatternAnalysis(window_days=window_days)

        window = self.window(transactions, window_days, reference_date)
        debits = [t for t in window if t.is_debit]
        credits = [t for t in window if not t.is_debit]

        total_spending = float(sum(t.amount for t in debits))
        total_income = float(sum(t.amount for t in credits))
        savings_rate = (
            (total_income - total_spending) / total_income if total_income > 0 else None
        )

        merchants = _merchant_summaries(debits)
        frequent = sorted(
            (m for m in merchants if m.count > FREQUENT_MERCHANT_MIN),
            key=lambda m: m.count,
            reverse=True,
        )[:FREQUENT_MERCHANT_LIMIT]

        analysis = PatternAnalysis(
            window_days=window_days,
            trend_by_category=self.trends(transactions),
            concentration_ratios=self.concentration(debits),
            weekend_skew=self.weekend_skew(debits),
            top_merchant=max(merchants, key=lambda m: (m.count, m.total), default=None),
            merchant_frequency={m.merchant: m.count for m in merchants},
            frequent_merchants=frequent,
            monthly_change=self.monthly_change(transactions),
            total_spending=total_spending,
            total_income=total_income,
            savings_rate=savings_rate,
        )

        logger.info(
            f"Pattern analysis complete: {len(debits)} debits in window, "
            f"{len(analysis.concentration_ratios)} categories, "
            f"weekend skew high={analysis.weekend_skew.is_high}"
        )
        return analysis

    def trends(self, transactions: Sequence[Transaction]) -> Dict[TransactionCategory, Trend]:
        """Mean of the most recent debits against the all-time mean, per category."""
        trends = {}
        for category, amounts in _amounts_by_category(transactions).items():
            trends[category] = self._trend(amounts)
        return trends

    def _trend(self, amounts: List[float]) -> Trend:
        overall = float(np.mean(amounts))
        if overall <= 0:
            return Trend.STABLE

        recent = float(np.mean(amounts[-self.recent_transactions:]))
        ratio = recent / overall
        if ratio > self.increase_ratio:
            return Trend.INCREASING
        if ratio < self.decrease_ratio:
            return Trend.DECREASING
        return Trend.STABLE

    def concentration(self, debits: Sequence[Transaction]) -> List[CategorySpending]:
        """Share of total spend per category, largest first; shares sum to 100."""
        totals: Dict[TransactionCategory, float] = defaultdict(float)
        counts: Dict[TransactionCategory, int] = defaultdict(int)
        for t in debits:
            if t.is_debit:
                totals[t.category] += t.amount
                counts[t.category] += 1

        grand_total = sum(totals.values())
        if grand_total <= 0:
            return []

        ratios = [
            CategorySpending(
                category=category,
                amount=totals[category],
                count=counts[category],
                percentage=totals[category] / grand_total * 100,
            )
            for category in TransactionCategory
            if category in totals
        ]
        ratios.sort(key=lambda r: r.amount, reverse=True)
        return ratios

    def weekend_skew(self, debits: Sequence[Transaction]) -> WeekendSkew:
        weekend_total = 0.0
        weekday_total = 0.0
        for t in debits:
            if not t.is_debit:
                continue
            if t.date.weekday() >= 5:
                weekend_total += t.amount
            else:
                weekday_total += t.amount

        total = weekend_total + weekday_total
        return WeekendSkew(
            weekend_total=weekend_total,
            weekday_total=weekday_total,
            ratio=weekend_total / weekday_total if weekday_total > 0 else None,
            weekend_percentage=weekend_total / total * 100 if total > 0 else 0.0,
            is_high=weekend_total > weekday_total * self.weekend_ratio,
        )

    def monthly_change(self, transactions: Sequence[Transaction]) -> Optional[MonthlyChange]:
        """Spend change between the two latest calendar months present."""
        monthly: Dict[str, float] = defaultdict(float)
        for t in transactions:
            if t.is_debit:
                monthly[_naive(t.date).strftime("%Y-%m")] += t.amount

        months = sorted(monthly)
        if len(months) < 2:
            return None

        previous_month, current_month = months[-2], months[-1]
        previous_total, current_total = monthly[previous_month], monthly[current_month]
        if previous_total <= 0:
            return None

        return MonthlyChange(
            current_month=current_month,
            previous_month=previous_month,
            current_total=current_total,
            previous_total=previous_total,
            percentage_change=(current_total - previous_total) / previous_total * 100,
        )

    def predict(self, transactions: Sequence[Transaction]) -> List[SpendingPrediction]:
        """
        Next-transaction spend estimate per category.

        The category mean is scaled by +15% / -15% for rising / falling
        trends; confidence drops as amounts get more dispersed.
        """
        predictions = []
        for category, amounts in _amounts_by_category(transactions).items():
            if len(amounts) < PREDICTION_MIN_SAMPLES:
                continue

            values = np.array(amounts, dtype=float)
            average = float(values.mean())
            trend = self._trend(amounts)

            predicted = average
            if trend == Trend.INCREASING:
                predicted *= 1.15
            elif trend == Trend.DECREASING:
                predicted *= 0.85

            cv = float(values.std()) / average if average > 0 else 1.0
            confidence = max(0.3, min(0.95, 1 - cv))

            predictions.append(SpendingPrediction(
                category=category,
                predicted_amount=round(predicted),
                confidence=round(confidence, 2),
                trend=trend,
                factors=_spending_factors(category, trend, amounts),
            ))

        predictions.sort(key=lambda p: p.predicted_amount, reverse=True)
        return predictions

    def window(
        self,
        transactions: Sequence[Transaction],
        window_days: Optional[int],
        reference_date: Optional[datetime] = None,
    ) -> List[Transaction]:
        """Transactions within `window_days` of the anchor date; all of them when unset."""
        if window_days is None or not transactions:
            return list(transactions)

        anchor = _naive(reference_date) if reference_date else max(_naive(t.date) for t in transactions)
        start = anchor - timedelta(days=window_days)
        return [t for t in transactions if start <= _naive(t.date) <= anchor]


def _naive(value: datetime) -> datetime:
    """Compare everything as naive UTC so aware and naive dates can mix."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _amounts_by_category(transactions: Sequence[Transaction]) -> Dict[TransactionCategory, List[float]]:
    """Debit amounts per category, oldest first, in category declaration order."""
    ordered = sorted(
        (t for t in transactions if t.is_debit),
        key=lambda t: _naive(t.date),
    )
    grouped: Dict[TransactionCategory, List[float]] = defaultdict(list)
    for t in ordered:
        grouped[t.category].append(t.amount)
    return {category: grouped[category] for category in TransactionCategory if category in grouped}


def _merchant_summaries(debits: Sequence[Transaction]) -> List[MerchantSummary]:
    counts: Dict[str, int] = defaultdict(int)
    totals: Dict[str, float] = defaultdict(float)
    names: Dict[str, str] = {}

    for t in debits:
        key = merchant_key(t.merchant)
        if not key:
            continue
        names.setdefault(key, t.merchant.strip())
        counts[key] += 1
        totals[key] += t.amount

    return [
        MerchantSummary(merchant=names[key], count=counts[key], total=totals[key])
        for key in names
    ]


def _spending_factors(category: TransactionCategory, trend: Trend, amounts: List[float]) -> List[str]:
    factors = []

    if trend == Trend.INCREASING:
        factors.append("Recent spending trend is upward")
        if category == TransactionCategory.FOOD:
            factors.append("Possible increase in dining out or food delivery")
        elif category == TransactionCategory.TRANSPORT:
            factors.append("May indicate more travel or higher fuel costs")
    elif trend == Trend.DECREASING:
        factors.append("Recent spending trend is downward")
        factors.append("Good cost control in this category")

    latest = np.array(amounts[-5:], dtype=float)
    if float(latest.var()) > 10000:
        factors.append("High spending variability in recent transactions")
    else:
        factors.append("Consistent spending pattern")

    return factors
