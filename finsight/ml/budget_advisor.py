"""
Budget advisor for FinSight.

Turns historical spending into per-category monthly budget suggestions using
the 50/30/20 split as a ceiling, and classifies how far a budget has been
consumed.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

import numpy as np

from finsight.ml.pattern_analyzer import SpendingPatternAnalyzer
from finsight.ml.schemas import BudgetSuggestion, Transaction, TransactionCategory, Trend

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_INCOME = 50000.0

NEEDS_SHARE = 0.5
WANTS_SHARE = 0.3


class BudgetAdvisor:
    """Suggests monthly budgets per category and reports budget status."""

    def __init__(self, analyzer: Optional[SpendingPatternAnalyzer] = None):
        self.analyzer = analyzer or SpendingPatternAnalyzer()

    def suggest(self, transactions: Sequence[Transaction]) -> List[BudgetSuggestion]:
        """
        Suggest a monthly budget for every category with debits.

        Monthly averages are computed over the calendar months present in the
        data. Essentials get a buffer, discretionary categories are trimmed,
        and the result is nudged down for rising trends and up for falling
        ones.
        """
        debits = [t for t in transactions if t.is_debit]
        if not debits:
            return []

        months = _months_covered(transactions)
        monthly_income = self._monthly_income(transactions, months)
        needs = monthly_income * NEEDS_SHARE
        wants = monthly_income * WANTS_SHARE

        trends = self.analyzer.trends(transactions)
        totals: Dict[TransactionCategory, List[float]] = defaultdict(list)
        for t in debits:
            totals[t.category].append(t.amount)

        suggestions = []
        for category in TransactionCategory:
            amounts = totals.get(category)
            if not amounts:
                continue

            average = float(np.sum(amounts)) / months
            variability = float(np.std(amounts))
            suggested, confidence, reasoning = self._baseline(category, average, variability, needs, wants)

            trend = trends.get(category, Trend.STABLE)
            if trend == Trend.INCREASING:
                suggested *= 0.9
                reasoning += ". Reduced due to increasing trend"
            elif trend == Trend.DECREASING:
                suggested *= 1.05
                reasoning += ". Slight increase as spending is decreasing"

            suggestions.append(BudgetSuggestion(
                category=category,
                suggested_budget=float(round(suggested)),
                current_spending=float(round(average)),
                confidence=confidence,
                alert_threshold=self.alert_threshold(average, variability),
                reasoning=reasoning,
            ))

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        logger.info(f"Generated {len(suggestions)} budget suggestions over {months} month(s)")
        return suggestions

    @staticmethod
    def alert_threshold(average_monthly: float, variability: float) -> int:
        """Volatile categories get earlier alerts (percentage of the limit)."""
        if variability > average_monthly * 0.5:
            return 70
        if variability > average_monthly * 0.3:
            return 75
        return 80

    @staticmethod
    def status(limit: float, spent: float, alert_threshold: int = 80) -> Optional[str]:
        """``exceeded``, ``warning``, ``approaching`` or ``None`` when on track."""
        if limit <= 0:
            return 'exceeded' if spent > 0 else None

        percentage = spent / limit * 100
        if percentage >= 100:
            return 'exceeded'
        if percentage >= alert_threshold:
            return 'warning'
        if percentage >= alert_threshold - 10:
            return 'approaching'
        return None

    def _monthly_income(self, transactions: Sequence[Transaction], months: int) -> float:
        income = sum(t.amount for t in transactions if not t.is_debit)
        if income <= 0:
            logger.debug("No income in window, using default monthly income")
            return DEFAULT_MONTHLY_INCOME
        return income / months

    @staticmethod
    def _baseline(category, average, variability, needs, wants):
        C = TransactionCategory
        if category == C.FOOD:
            confidence = 0.9 if variability <= average * 0.3 else 0.7
            return (
                min(average * 1.1, needs * 0.4), confidence,
                "Based on your spending pattern with 10% buffer for essentials",
            )
        if category == C.TRANSPORT:
            return (
                min(average * 1.15, needs * 0.25), 0.8,
                "Includes buffer for unexpected trips and fuel price changes",
            )
        if category == C.BILLS:
            return average * 1.05, 0.95, "Based on historical bills with minimal buffer"
        if category == C.SHOPPING:
            return (
                min(average * 0.9, wants * 0.6), 0.6,
                "Reduced from current spending to encourage savings",
            )
        if category == C.ENTERTAINMENT:
            return (
                min(average * 0.95, wants * 0.4), 0.7,
                "Entertainment budget with room for occasional splurges",
            )
        return average, 0.5, "Maintain current spending level"


def _months_covered(transactions: Sequence[Transaction]) -> int:
    return max(1, len({(t.date.year, t.date.month) for t in transactions}))
