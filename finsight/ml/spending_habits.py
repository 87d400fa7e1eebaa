"""
Spending habits profile for FinSight.

Describes *when* and *how evenly* a user spends: peak hour, peak weekday,
average ticket size, most frequent category and a consistency label based
on how much daily totals vary.

The goal is not prediction, but self-awareness and financial insight.
"""

from collections import Counter, defaultdict
from typing import Dict, Sequence

import numpy as np

from finsight.ml.schemas import SpendingHabits, Transaction, TransactionCategory

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class SpendingHabitsAnalyzer:
    """
    Summarizes spending rhythm into a small, human-readable profile.
    """

    BINGE_VARIATION = 1.5
    SPORADIC_VARIATION = 0.8

    def profile(self, transactions: Sequence[Transaction]) -> SpendingHabits:
        """
        Build the habits profile for a set of transactions.

        Args:
            transactions: Transactions of any direction; only debits count

        Returns:
            SpendingHabits; an empty window gives the default profile
        """
        debits = [t for t in transactions if t.is_debit]
        if not debits:
            return SpendingHabits()

        by_hour: Dict[int, float] = defaultdict(float)
        by_day: Dict[int, float] = defaultdict(float)
        by_date: Dict[str, float] = defaultdict(float)
        for t in debits:
            by_hour[t.date.hour] += t.amount
            by_day[t.date.weekday()] += t.amount
            by_date[t.date.strftime("%Y-%m-%d")] += t.amount

        amounts = np.array([t.amount for t in debits], dtype=float)

        return SpendingHabits(
            peak_spending_hour=_peak(by_hour),
            peak_spending_day=WEEKDAYS[_peak(by_day)],
            average_transaction_amount=round(float(amounts.mean()), 2),
            most_frequent_category=self._most_frequent_category(debits),
            spending_consistency=self._consistency(list(by_date.values())),
        )

    def _consistency(self, daily_totals) -> str:
        daily = np.array(daily_totals, dtype=float)
        mean = daily.mean()
        coefficient_of_variation = daily.std() / mean if mean > 0 else 0

        # --- Classification rules ---
        if coefficient_of_variation > self.BINGE_VARIATION:
            return "binge"
        if coefficient_of_variation > self.SPORADIC_VARIATION:
            return "sporadic"
        return "consistent"

    @staticmethod
    def _most_frequent_category(debits: Sequence[Transaction]) -> TransactionCategory:
        counts = Counter(t.category for t in debits)
        # Ties go to the category declared first.
        return max(TransactionCategory, key=lambda c: (counts.get(c, 0), -list(TransactionCategory).index(c)))


def _peak(totals: Dict[int, float]) -> int:
    """Key with the largest total; the smallest key wins ties."""
    return min(totals, key=lambda k: (-totals[k], k))
